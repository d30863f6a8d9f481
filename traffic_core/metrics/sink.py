"""
Metrics Sink Interface
======================
Fire-and-forget event sink the traffic controller reports to.
"""

from typing import Any, Dict, Mapping, Protocol, runtime_checkable


@runtime_checkable
class MetricsSink(Protocol):
    """Anything with a ``record(event_name, fields)`` method."""

    def record(self, event_name: str, fields: Mapping[str, Any]) -> None:
        ...


class NullMetricsSink:
    """Discards every event."""

    def record(self, event_name: str, fields: Mapping[str, Any]) -> None:
        return None


# Event names emitted by the controller
class MetricNames:
    ROUTE_SELECTED = "route_selected"
    ROUTE_NOT_FOUND = "route_not_found"
    RATE_LIMITED = "rate_limited"
    BREAKER_STATE_CHANGED = "breaker_state_changed"
    REQUEST_RETRIED = "request_retried"
    REQUEST_COMPLETED = "request_completed"


# Field values of REQUEST_COMPLETED
class Outcomes:
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    NOT_FOUND = "not_found"
    NO_ROUTE = "no_route"
    CIRCUIT_OPEN = "circuit_open"
    UPSTREAM_ERROR = "upstream_error"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


STATE_GAUGE_VALUES: Dict[str, int] = {"closed": 0, "half_open": 1, "open": 2}
