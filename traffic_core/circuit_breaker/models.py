"""
Circuit Breaker Models
======================
Data models and enums for the per-route circuit breaker.
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Optional

from ..exceptions import ConfigurationError

RESPONSE_TIME_SAMPLES = 100


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation
    OPEN = "open"            # Failing, reject requests
    HALF_OPEN = "half_open"  # One trial call allowed


@dataclass
class CircuitBreakerConfig:
    """Configuration for a circuit breaker."""
    failure_threshold: int = 5       # Consecutive failures before opening
    recovery_timeout: float = 30.0   # Seconds after the last failure before a trial
    call_timeout: float = 30.0       # Seconds allowed per call
    excluded_exceptions: tuple = ()  # Exceptions that don't count as failures

    def __post_init__(self):
        if not all(
            isinstance(exc, type) and issubclass(exc, BaseException)
            for exc in self.excluded_exceptions
        ):
            raise ConfigurationError("excluded_exceptions must be exception classes")
        if self.failure_threshold <= 0:
            raise ConfigurationError("failure_threshold must be positive")
        if self.recovery_timeout < 0:
            raise ConfigurationError("recovery_timeout must not be negative")
        if self.call_timeout <= 0:
            raise ConfigurationError("call_timeout must be positive")


@dataclass
class CircuitBreakerState:
    """Runtime state of a circuit breaker."""
    state: CircuitState = CircuitState.CLOSED
    consecutive_failures: int = 0
    last_failure_time: Optional[float] = None
    last_success_time: Optional[float] = None
    state_changed_at: Optional[float] = None
    half_open_trial_in_flight: bool = False

    # Metrics
    total_calls: int = 0
    total_failures: int = 0
    total_successes: int = 0
    total_rejections: int = 0
    response_times: Deque[float] = field(
        default_factory=lambda: deque(maxlen=RESPONSE_TIME_SAMPLES)
    )


@dataclass(frozen=True)
class BreakerSnapshot:
    """Read-only view of a breaker for health checks and tests."""
    route_id: str
    state: CircuitState
    consecutive_failures: int
    last_failure_time: Optional[float] = None
    half_open_trial_in_flight: bool = False
