"""
Circuit Breaker Core
====================
Per-route circuit breaker as an explicit CLOSED / OPEN / HALF_OPEN state
machine.

Transitions are evaluated on call attempts, never on a background timer.
Every check-then-update is synchronous, so within one event loop a state
check and the update that follows it cannot interleave with another call.
"""

import asyncio
import time
from typing import Optional, Dict, Any, Callable, TypeVar, Awaitable
import structlog

from ..exceptions import CircuitOpenError, UpstreamError, UpstreamTimeoutError
from .models import (
    BreakerSnapshot,
    CircuitState,
    CircuitBreakerConfig,
    CircuitBreakerState,
)

logger = structlog.get_logger(__name__)

T = TypeVar("T")

StateListener = Callable[[str, CircuitState, CircuitState], None]


class CircuitBreaker:
    """
    Async-compatible circuit breaker for a single route.

    Example:
        breaker = CircuitBreaker("route-orders")

        try:
            result = await breaker.execute(invoke_orders, request)
        except CircuitOpenError:
            return fallback_value
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        on_state_change: Optional[StateListener] = None,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock
        self._on_state_change = on_state_change
        self._state = CircuitBreakerState(state_changed_at=clock())

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state.state

    @property
    def consecutive_failures(self) -> int:
        return self._state.consecutive_failures

    @property
    def metrics(self) -> Dict[str, Any]:
        """Get circuit breaker metrics."""
        s = self._state
        finished = s.total_successes + s.total_failures
        return {
            "name": self.name,
            "state": s.state.value,
            "consecutive_failures": s.consecutive_failures,
            "total_calls": s.total_calls,
            "total_failures": s.total_failures,
            "total_successes": s.total_successes,
            "total_rejections": s.total_rejections,
            "failure_rate": (s.total_failures / finished * 100) if finished else 0.0,
            "average_response_time": (
                sum(s.response_times) / len(s.response_times)
                if s.response_times else 0.0
            ),
            "last_failure": s.last_failure_time,
            "last_success": s.last_success_time,
            "state_changed_at": s.state_changed_at,
        }

    def snapshot(self) -> BreakerSnapshot:
        """Read-only view of the breaker. Never changes state."""
        s = self._state
        return BreakerSnapshot(
            route_id=self.name,
            state=s.state,
            consecutive_failures=s.consecutive_failures,
            last_failure_time=s.last_failure_time,
            half_open_trial_in_flight=s.half_open_trial_in_flight,
        )

    def allows_call(self, now: Optional[float] = None) -> bool:
        """True if a call attempted now would be let through. Never changes state."""
        s = self._state
        if s.state == CircuitState.CLOSED:
            return True
        if s.state == CircuitState.HALF_OPEN:
            return not s.half_open_trial_in_flight
        return self._recovery_elapsed(self._clock() if now is None else now)

    def retry_after(self, now: Optional[float] = None) -> float:
        """Seconds until an open circuit accepts a trial call."""
        s = self._state
        if s.state != CircuitState.OPEN or s.last_failure_time is None:
            return 0.0
        now = self._clock() if now is None else now
        return max(0.0, self.config.recovery_timeout - (now - s.last_failure_time))

    def _recovery_elapsed(self, now: float) -> bool:
        last = self._state.last_failure_time
        return last is not None and now - last >= self.config.recovery_timeout

    def _transition(self, new_state: CircuitState, now: float) -> None:
        s = self._state
        old_state = s.state
        if old_state == new_state:
            return

        s.state = new_state
        s.state_changed_at = now
        if new_state == CircuitState.CLOSED:
            s.consecutive_failures = 0
            s.half_open_trial_in_flight = False

        if new_state == CircuitState.OPEN:
            logger.warning(
                "circuit_opened" if old_state == CircuitState.CLOSED else "circuit_reopened",
                route=self.name,
                failures=s.consecutive_failures,
            )
        elif new_state == CircuitState.HALF_OPEN:
            logger.info("circuit_half_open", route=self.name)
        else:
            logger.info("circuit_closed", route=self.name)

        if self._on_state_change is not None:
            self._on_state_change(self.name, old_state, new_state)

    def _acquire(self) -> bool:
        """Admit or reject a call. Returns True if the call is the half-open trial."""
        s = self._state
        now = self._clock()

        if s.state == CircuitState.OPEN:
            if not self._recovery_elapsed(now):
                s.total_rejections += 1
                raise CircuitOpenError(self.name, s.state, self.retry_after(now))
            self._transition(CircuitState.HALF_OPEN, now)

        if s.state == CircuitState.HALF_OPEN:
            if s.half_open_trial_in_flight:
                s.total_rejections += 1
                raise CircuitOpenError(self.name, s.state, 0.0)
            s.half_open_trial_in_flight = True
            return True

        return False

    def _record_success(self, trial: bool, started: float) -> None:
        s = self._state
        now = self._clock()
        s.total_calls += 1
        s.total_successes += 1
        s.last_success_time = now
        s.response_times.append(now - started)

        if trial:
            s.half_open_trial_in_flight = False
            if s.state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.CLOSED, now)
        elif s.state == CircuitState.CLOSED:
            s.consecutive_failures = 0

    def _record_failure(self, trial: bool, started: float) -> None:
        s = self._state
        now = self._clock()
        s.total_calls += 1
        s.total_failures += 1
        s.consecutive_failures += 1
        s.last_failure_time = now
        s.response_times.append(now - started)

        if trial:
            s.half_open_trial_in_flight = False
            if s.state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN, now)
        elif (
            s.state == CircuitState.CLOSED
            and s.consecutive_failures >= self.config.failure_threshold
        ):
            self._transition(CircuitState.OPEN, now)

    async def execute(
        self,
        invoker: Callable[[Any], Awaitable[T]],
        request: Any,
    ) -> T:
        """
        Execute ``invoker(request)`` with circuit breaker protection.

        Args:
            invoker: Async callable performing the backend call
            request: Argument passed through to the invoker

        Returns:
            Result of the invoker

        Raises:
            CircuitOpenError: If the circuit rejected the call (no attempt made)
            UpstreamTimeoutError: If the call exceeded ``call_timeout``
            UpstreamError: If the invoker raised

        Exceptions listed in ``config.excluded_exceptions`` propagate
        unchanged and are not counted as failures.
        """
        trial = self._acquire()
        started = self._clock()

        try:
            result = await asyncio.wait_for(
                invoker(request),
                timeout=self.config.call_timeout,
            )
        except self.config.excluded_exceptions:
            self._state.total_calls += 1
            raise
        except asyncio.TimeoutError as e:
            self._record_failure(trial, started)
            raise UpstreamTimeoutError(
                f"Call through '{self.name}' timed out after {self.config.call_timeout}s",
                route_id=self.name,
            ) from e
        except asyncio.CancelledError:
            self._record_failure(trial, started)
            raise
        except UpstreamError:
            self._record_failure(trial, started)
            raise
        except Exception as e:
            self._record_failure(trial, started)
            raise UpstreamError(
                f"Call through '{self.name}' failed: {e}",
                route_id=self.name,
            ) from e
        finally:
            # Outcomes that were not recorded must not hold the trial slot
            if trial:
                self._state.half_open_trial_in_flight = False

        self._record_success(trial, started)
        return result

    def reset(self) -> None:
        """Reset to CLOSED with cleared counters (for testing/admin)."""
        old_state = self._state.state
        self._state = CircuitBreakerState(state_changed_at=self._clock())
        logger.info("circuit_reset", route=self.name)
        if old_state != CircuitState.CLOSED and self._on_state_change is not None:
            self._on_state_change(self.name, old_state, CircuitState.CLOSED)

    def force_open(self) -> None:
        """Open the circuit now, as if a failure had just been recorded."""
        now = self._clock()
        self._state.last_failure_time = now
        self._state.half_open_trial_in_flight = False
        self._transition(CircuitState.OPEN, now)
