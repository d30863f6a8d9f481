"""
Traffic Exceptions
==================
Error taxonomy raised by the rate limiter, router, circuit breakers and
the traffic controller.

Every error carries the HTTP-equivalent status code it maps to so the
surrounding web layer can translate it without a lookup table.
"""

from typing import Optional, Any


class TrafficError(Exception):
    """Base exception for all traffic controller errors."""

    status_code: int = 500
    code: str = "TRAFFIC_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Any = None,
    ):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.details = details
        super().__init__(message)


class ConfigurationError(TrafficError):
    """Raised at setup time for invalid limits, windows or thresholds."""
    code = "CONFIG_ERROR"


class RateLimitedError(TrafficError):
    """Raised when a client key exceeded its request window."""
    status_code = 429
    code = "RATE_LIMITED"

    def __init__(self, key: str, retry_after: Optional[float] = None):
        self.key = key
        self.retry_after = retry_after
        super().__init__(f"Rate limit exceeded for '{key}'")


class RouteNotFoundError(TrafficError):
    """Raised when no route matches the request path and method."""
    status_code = 404
    code = "ROUTE_NOT_FOUND"


class NoRouteAvailableError(TrafficError):
    """Raised when every candidate route is disabled."""
    status_code = 503
    code = "NO_ROUTE_AVAILABLE"


class CircuitOpenError(TrafficError):
    """Raised by a breaker that rejects a call without attempting it."""
    status_code = 503
    code = "CIRCUIT_OPEN"

    def __init__(self, route_id: str, state: Any, retry_after: float = 0.0):
        self.route_id = route_id
        self.state = state
        self.retry_after = retry_after
        super().__init__(
            f"Circuit breaker for '{route_id}' is {getattr(state, 'value', state)}. "
            f"Retry after {retry_after:.1f}s"
        )


class UpstreamError(TrafficError):
    """Raised when the backend invoker failed."""
    status_code = 502
    code = "UPSTREAM_ERROR"

    def __init__(self, message: str, route_id: Optional[str] = None, **kwargs):
        self.route_id = route_id
        super().__init__(message, **kwargs)


class UpstreamTimeoutError(UpstreamError):
    """Raised when the backend invoker exceeded its deadline."""
    status_code = 504
    code = "UPSTREAM_TIMEOUT"


class ServiceUnavailableError(TrafficError):
    """Raised by the controller when the selected route's circuit is open."""
    status_code = 503
    code = "SERVICE_UNAVAILABLE"

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs):
        self.retry_after = retry_after
        super().__init__(message, **kwargs)


class BadGatewayError(TrafficError):
    """Raised by the controller once retries against a failing route are exhausted."""
    status_code = 502
    code = "BAD_GATEWAY"

    def __init__(self, message: str, route_id: Optional[str] = None, attempts: int = 1, **kwargs):
        self.route_id = route_id
        self.attempts = attempts
        super().__init__(message, **kwargs)


class GatewayTimeoutError(BadGatewayError):
    """Bad gateway whose last attempt timed out."""
    status_code = 504
    code = "GATEWAY_TIMEOUT"
