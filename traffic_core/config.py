"""
Traffic Controller Configuration
================================
Defaults, validation and environment loading for the traffic controller.
"""

import os
from dataclasses import dataclass, fields
from typing import Optional, Mapping

from .exceptions import ConfigurationError

KEY_STRATEGIES = ("ip", "user", "api_key", "custom")

_TRUE_VALUES = {"1", "true", "yes", "on"}

_ENV_TYPES = (bool, int, float, str)


@dataclass
class TrafficConfig:
    """Configuration for a TrafficController."""

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit: int = 100                # Requests per window per client key
    rate_limit_window: float = 60.0      # Window size in seconds
    rate_limit_strategy: str = "ip"      # ip, user, api_key or custom
    rate_limit_prefix: str = "rl"
    rate_limit_max_keys: int = 10000
    rate_limit_idle_windows: int = 2     # Windows of inactivity before sweep evicts a key

    # Circuit breakers
    failure_threshold: int = 5           # Consecutive failures before opening
    recovery_timeout: float = 30.0       # Seconds to stay open before a trial call
    call_timeout: float = 30.0           # Seconds allowed per invoker call
    max_breakers: int = 5000
    excluded_exceptions: tuple = ()      # Invoker errors that don't count as failures

    # Retries
    default_retries: int = 3
    retry_backoff: float = 0.0           # Base of exponential backoff, 0 disables waiting
    retry_backoff_max: float = 10.0

    # Reselect another weighted candidate when the chosen circuit is open
    reselect_on_open: bool = False

    def __post_init__(self):
        if self.rate_limit_window <= 0:
            raise ConfigurationError("rate_limit_window must be a positive number")
        if self.rate_limit_strategy not in KEY_STRATEGIES:
            raise ConfigurationError(
                f"rate_limit_strategy must be one of {', '.join(KEY_STRATEGIES)}"
            )
        if self.rate_limit_max_keys <= 0:
            raise ConfigurationError("rate_limit_max_keys must be positive")
        if self.rate_limit_idle_windows < 1:
            raise ConfigurationError("rate_limit_idle_windows must be at least 1")
        if self.failure_threshold <= 0:
            raise ConfigurationError("failure_threshold must be positive")
        if self.recovery_timeout < 0:
            raise ConfigurationError("recovery_timeout must not be negative")
        if self.call_timeout <= 0:
            raise ConfigurationError("call_timeout must be positive")
        if self.max_breakers <= 0:
            raise ConfigurationError("max_breakers must be positive")
        if self.default_retries < 0:
            raise ConfigurationError("default_retries must not be negative")
        if self.retry_backoff < 0 or self.retry_backoff_max < 0:
            raise ConfigurationError("retry backoff values must not be negative")

    @classmethod
    def from_env(
        cls,
        prefix: str = "TRAFFIC_",
        environ: Optional[Mapping[str, str]] = None,
    ) -> "TrafficConfig":
        """
        Build a configuration from environment variables.

        Each scalar field maps to ``<prefix><FIELD_NAME>``, e.g.
        ``TRAFFIC_RATE_LIMIT`` or ``TRAFFIC_RECOVERY_TIMEOUT``. Unset
        variables keep their defaults. ``excluded_exceptions`` can only be
        set in code.

        Raises:
            ConfigurationError: If a value cannot be parsed or fails validation
        """
        environ = os.environ if environ is None else environ
        values = {}

        for f in fields(cls):
            if not isinstance(f.default, _ENV_TYPES):
                continue
            raw = environ.get(f"{prefix}{f.name.upper()}")
            if raw is None or raw.strip() == "":
                continue
            values[f.name] = _parse(f.name, raw.strip(), type(f.default))

        return cls(**values)


def _parse(name: str, raw: str, kind: type):
    if kind is bool:
        return raw.lower() in _TRUE_VALUES
    try:
        return kind(raw)
    except ValueError:
        raise ConfigurationError(f"Invalid value for {name}: {raw!r}") from None
