"""
Circuit Breaker Registry
========================
Controller-owned registry of per-route circuit breakers.
"""

import time
from collections import OrderedDict
from typing import Optional, Dict, Any, Callable, List

import structlog

from .models import CircuitBreakerConfig, CircuitState
from .breaker import CircuitBreaker, StateListener

logger = structlog.get_logger(__name__)


class BreakerRegistry:
    """
    Map of route id to CircuitBreaker, bounded in size.

    Breakers are kept in least-recently-used order. When the registry is
    full, healthy breakers (CLOSED with no pending failures) are evicted
    first since recreating them loses no information.
    """

    def __init__(
        self,
        max_size: int = 5000,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[StateListener] = None,
    ):
        self.max_size = max_size
        self._clock = clock
        self._on_state_change = on_state_change
        self._breakers: "OrderedDict[str, CircuitBreaker]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._breakers)

    def __contains__(self, name: str) -> bool:
        return name in self._breakers

    def create(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
    ) -> CircuitBreaker:
        """
        Get or create the breaker for ``name``.

        Args:
            name: Route id
            config: Configuration (only used if creating a new breaker)

        Returns:
            CircuitBreaker instance
        """
        breaker = self._breakers.get(name)
        if breaker is None:
            self._make_room()
            breaker = CircuitBreaker(
                name=name,
                config=config,
                clock=self._clock,
                on_state_change=self._on_state_change,
            )
            self._breakers[name] = breaker
        else:
            self._breakers.move_to_end(name)
        return breaker

    def get(self, name: str) -> Optional[CircuitBreaker]:
        """Look up a breaker without touching its recency."""
        return self._breakers.get(name)

    def remove(self, name: str) -> bool:
        """Drop the breaker for ``name``. Returns True if one existed."""
        return self._breakers.pop(name, None) is not None

    def names(self) -> List[str]:
        return list(self._breakers)

    def all_metrics(self) -> Dict[str, Dict[str, Any]]:
        """Get metrics for all registered circuit breakers."""
        return {
            name: breaker.metrics
            for name, breaker in self._breakers.items()
        }

    def summary(self) -> Dict[str, int]:
        """Counts of breakers per state plus aggregate call outcomes."""
        states = [b.state for b in self._breakers.values()]
        metrics = [b.metrics for b in self._breakers.values()]
        return {
            "total_circuits": len(states),
            "open_circuits": states.count(CircuitState.OPEN),
            "closed_circuits": states.count(CircuitState.CLOSED),
            "half_open_circuits": states.count(CircuitState.HALF_OPEN),
            "total_failures": sum(m["total_failures"] for m in metrics),
            "total_successes": sum(m["total_successes"] for m in metrics),
        }

    def reset_all(self) -> None:
        """Reset all circuit breakers to closed state."""
        for breaker in self._breakers.values():
            breaker.reset()

    def _make_room(self) -> None:
        if len(self._breakers) < self.max_size:
            return

        victim = next(
            (
                name for name, b in self._breakers.items()
                if b.state == CircuitState.CLOSED and b.consecutive_failures == 0
            ),
            next(iter(self._breakers)),
        )
        del self._breakers[victim]
        logger.info("circuit_evicted", route=victim, max_size=self.max_size)
