"""
Traffic Core Library
====================
Per-route traffic control for API gateways: fixed-window rate limiting,
weighted route selection and per-route circuit breaking.
"""

__version__ = "0.1.0"

# Configuration
from traffic_core.config import TrafficConfig

# Errors
from traffic_core.exceptions import (
    TrafficError,
    ConfigurationError,
    RateLimitedError,
    RouteNotFoundError,
    NoRouteAvailableError,
    CircuitOpenError,
    UpstreamError,
    UpstreamTimeoutError,
    ServiceUnavailableError,
    BadGatewayError,
    GatewayTimeoutError,
)

# Requests
from traffic_core.models import TrafficRequest

# Rate Limiting
from traffic_core.rate_limit import (
    RateWindow,
    RateLimitInfo,
    RateLimitResult,
    build_rate_limit_key,
)

# Circuit Breaker
from traffic_core.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    BreakerSnapshot,
    BreakerRegistry,
)

# Routing
from traffic_core.routing import (
    Route,
    RouteTarget,
    RouteTable,
    WeightedRouteSelector,
)

# Metrics
from traffic_core.metrics import (
    MetricsSink,
    NullMetricsSink,
    InMemoryMetricsSink,
    PrometheusMetricsSink,
    MetricNames,
)

# Controller
from traffic_core.controller import (
    TrafficController,
    GatewayStats,
    SweepResult,
)

# HTTP
from traffic_core.http import HttpInvoker, UpstreamResponse

# Web integration
from traffic_core.errors import register_exception_handlers, request_from_starlette
from traffic_core.health import create_health_router

__all__ = [
    # Configuration
    "TrafficConfig",
    # Errors
    "TrafficError",
    "ConfigurationError",
    "RateLimitedError",
    "RouteNotFoundError",
    "NoRouteAvailableError",
    "CircuitOpenError",
    "UpstreamError",
    "UpstreamTimeoutError",
    "ServiceUnavailableError",
    "BadGatewayError",
    "GatewayTimeoutError",
    # Requests
    "TrafficRequest",
    # Rate Limiting
    "RateWindow",
    "RateLimitInfo",
    "RateLimitResult",
    "build_rate_limit_key",
    # Circuit Breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "BreakerSnapshot",
    "BreakerRegistry",
    # Routing
    "Route",
    "RouteTarget",
    "RouteTable",
    "WeightedRouteSelector",
    # Metrics
    "MetricsSink",
    "NullMetricsSink",
    "InMemoryMetricsSink",
    "PrometheusMetricsSink",
    "MetricNames",
    # Controller
    "TrafficController",
    "GatewayStats",
    "SweepResult",
    # HTTP
    "HttpInvoker",
    "UpstreamResponse",
    # Web integration
    "register_exception_handlers",
    "request_from_starlette",
    "create_health_router",
]
