"""
Logging Setup
=============
Structured logging configuration for services embedding the traffic core.

Usage:
    from traffic_core.logging_config import setup_logging

    # Setup at startup
    setup_logging(service_name="edge-gateway")
"""

import logging
import sys
from contextvars import ContextVar

import structlog

service_name_var: ContextVar[str] = ContextVar("service_name", default="unknown")


def _add_service_name(logger, method_name, event_dict):
    event_dict.setdefault("service", service_name_var.get())
    return event_dict


def setup_logging(
    service_name: str,
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """
    Configure stdlib logging and structlog for a service.

    Args:
        service_name: Name of the service (e.g., "edge-gateway")
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Whether to output JSON (for production)
    """
    service_name_var.set(service_name)
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            _add_service_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    structlog.get_logger(__name__).info("logging_configured", level=level.upper())
