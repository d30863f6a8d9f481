"""
Circuit Breaker
===============
Per-route circuit breaker for upstream fault isolation.

States:

1. CLOSED: Normal operation, calls flow through
2. OPEN: Route is failing, calls are rejected without an attempt
3. HALF-OPEN: One trial call tests whether the route recovered

Usage:
    from traffic_core.circuit_breaker import CircuitBreaker, CircuitBreakerConfig

    breaker = CircuitBreaker("route-orders", CircuitBreakerConfig(failure_threshold=3))
    response = await breaker.execute(invoke_orders, request)
"""

from .models import (
    BreakerSnapshot,
    CircuitState,
    CircuitBreakerConfig,
    CircuitBreakerState,
)

from .breaker import CircuitBreaker

from .registry import BreakerRegistry

__all__ = [
    # Models
    "BreakerSnapshot",
    "CircuitState",
    "CircuitBreakerConfig",
    "CircuitBreakerState",
    # Breaker
    "CircuitBreaker",
    # Registry
    "BreakerRegistry",
]
