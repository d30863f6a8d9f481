"""
Traffic Controller
==================
Per-request composition of rate limiting, route matching, weighted
selection and per-route circuit breaking.

Request flow:

1. Rate window check for the client key (429 on rejection)
2. Route match by method and path (404 when nothing matches)
3. Weighted pick among the enabled candidates
4. Call through the route's circuit breaker, retrying upstream failures
   against the same route while the breaker still admits calls

Usage:
    controller = TrafficController(invoker=HttpInvoker())
    controller.register_route(Route(
        path="/v1/orders/:id",
        method="GET",
        target=RouteTarget(host="orders", port=8000, service="orders"),
    ))

    response = await controller.handle(request)
"""

import asyncio
import functools
import random
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    stop_any,
    wait_exponential,
    wait_none,
)

from .circuit_breaker import (
    BreakerRegistry,
    BreakerSnapshot,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from .config import TrafficConfig
from .exceptions import (
    BadGatewayError,
    CircuitOpenError,
    ConfigurationError,
    GatewayTimeoutError,
    NoRouteAvailableError,
    RateLimitedError,
    RouteNotFoundError,
    ServiceUnavailableError,
    TrafficError,
    UpstreamError,
    UpstreamTimeoutError,
)
from .metrics import MetricNames, MetricsSink, NullMetricsSink, Outcomes
from .models import TrafficRequest
from .rate_limit import RateWindow, build_rate_limit_key
from .routing import Route, RouteTable, WeightedRouteSelector

Invoker = Callable[[Route, TrafficRequest], Awaitable[Any]]
KeyFunc = Callable[[TrafficRequest], str]

_OUTCOMES = (
    (RateLimitedError, Outcomes.RATE_LIMITED),
    (RouteNotFoundError, Outcomes.NOT_FOUND),
    (NoRouteAvailableError, Outcomes.NO_ROUTE),
    (ServiceUnavailableError, Outcomes.CIRCUIT_OPEN),
    (GatewayTimeoutError, Outcomes.TIMEOUT),
    (BadGatewayError, Outcomes.UPSTREAM_ERROR),
)


@dataclass
class GatewayStats:
    """Aggregate request statistics of a controller."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    active_requests: int = 0
    average_response_time: float = 0.0  # Exponential moving average, seconds
    requests_by_route: Dict[str, int] = field(default_factory=dict)
    requests_by_service: Dict[str, int] = field(default_factory=dict)

    @property
    def error_rate(self) -> float:
        """Failed requests as a percentage of finished requests."""
        finished = self.successful_requests + self.failed_requests
        return (self.failed_requests / finished * 100) if finished else 0.0


@dataclass(frozen=True)
class SweepResult:
    rate_windows_evicted: int
    breakers_removed: int


@dataclass
class _RequestTrace:
    route: Optional[Route] = None
    attempts: int = 0
    outcome: str = Outcomes.SUCCESS


def _excluded(route: Route, config: TrafficConfig) -> tuple:
    if route.excluded_exceptions is not None:
        return route.excluded_exceptions
    return config.excluded_exceptions


def _stop_when_breaker_rejects(breaker: CircuitBreaker):
    def stop(retry_state) -> bool:
        return not breaker.allows_call()
    return stop


class TrafficController:
    """
    Owns the routes, breakers and rate windows of one gateway.

    No state is shared between controller instances. Breaker and rate
    window bookkeeping never awaits, so all calls must come from the
    controller's event loop.
    """

    def __init__(
        self,
        invoker: Invoker,
        config: Optional[TrafficConfig] = None,
        metrics: Optional[MetricsSink] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
        key_func: Optional[KeyFunc] = None,
    ):
        """
        Args:
            invoker: Async ``invoker(route, request)`` performing the backend call
            config: Controller configuration (defaults to TrafficConfig())
            metrics: Sink receiving controller events
            rng: Random source for weighted selection
            clock: Monotonic time source shared by breakers and rate windows
            key_func: Overrides the configured rate limit key strategy.
                Required when the strategy is ``custom``.

        Raises:
            ConfigurationError: If the ``custom`` strategy has no key_func
        """
        self.config = config or TrafficConfig()
        if self.config.rate_limit_strategy == "custom" and key_func is None:
            raise ConfigurationError(
                "rate_limit_strategy 'custom' requires a key_func"
            )
        self._invoker = invoker
        self._metrics = metrics or NullMetricsSink()
        self._clock = clock
        self._key_func = key_func

        self._routes = RouteTable()
        self._selector = WeightedRouteSelector(rng)
        self._rate_window = RateWindow(
            limit=self.config.rate_limit,
            window=self.config.rate_limit_window,
            clock=clock,
            max_keys=self.config.rate_limit_max_keys,
            idle_windows=self.config.rate_limit_idle_windows,
        )
        self._breakers = BreakerRegistry(
            max_size=self.config.max_breakers,
            clock=clock,
            on_state_change=self._on_breaker_transition,
        )
        self._stats = GatewayStats()

        if self.config.retry_backoff > 0:
            self._wait = wait_exponential(
                multiplier=self.config.retry_backoff,
                max=self.config.retry_backoff_max,
            )
        else:
            self._wait = wait_none()

    # -- Route management --

    def register_route(self, route: Route) -> str:
        """
        Register a route and create its circuit breaker.

        Routes without an id get a generated one.

        Returns:
            The route id

        Raises:
            ConfigurationError: If the id is already registered
        """
        if not route.id:
            route = replace(route, id=f"route-{uuid.uuid4().hex[:12]}")
        breaker_config = self._breaker_config(route)
        self._routes.add(route)
        self._breakers.create(route.id, breaker_config)
        return route.id

    def remove_route(self, route_id: str) -> bool:
        """Remove a route and destroy its breaker. Returns False for unknown ids."""
        if self._routes.remove(route_id) is None:
            return False
        self._breakers.remove(route_id)
        return True

    def get_route(self, route_id: str) -> Optional[Route]:
        return self._routes.get(route_id)

    def get_routes(self) -> List[Route]:
        return self._routes.routes()

    def get_routes_by_service(self, service: str) -> List[Route]:
        return self._routes.by_service(service)

    # -- Introspection --

    def get_breaker_state(self, route_id: str) -> BreakerSnapshot:
        """
        Current breaker state of a route. Never changes state.

        Raises:
            RouteNotFoundError: If the route is not registered
        """
        if route_id not in self._routes:
            raise RouteNotFoundError(f"Route '{route_id}' is not registered")
        breaker = self._breakers.get(route_id)
        if breaker is None:
            # Evicted while healthy, recreated on next use
            return BreakerSnapshot(
                route_id=route_id,
                state=CircuitState.CLOSED,
                consecutive_failures=0,
            )
        return breaker.snapshot()

    def breaker_summary(self) -> Dict[str, int]:
        return self._breakers.summary()

    def breaker_metrics(self) -> Dict[str, Dict[str, Any]]:
        return self._breakers.all_metrics()

    def reset_breakers(self) -> None:
        self._breakers.reset_all()

    def stats(self) -> GatewayStats:
        """Copy of the aggregate request statistics."""
        return replace(
            self._stats,
            requests_by_route=dict(self._stats.requests_by_route),
            requests_by_service=dict(self._stats.requests_by_service),
        )

    @property
    def rate_window(self) -> RateWindow:
        return self._rate_window

    def client_key(self, request: TrafficRequest) -> str:
        """Rate limit key a request is counted against."""
        if self._key_func is not None:
            return self._key_func(request)
        return build_rate_limit_key(
            request,
            strategy=self.config.rate_limit_strategy,
            prefix=self.config.rate_limit_prefix,
        )

    # -- Maintenance --

    def sweep(self, now: Optional[float] = None) -> SweepResult:
        """
        Evict idle rate windows and breakers of routes no longer registered.

        Meant to be called periodically by an external scheduler.
        """
        evicted = self._rate_window.sweep(now)
        orphans = [name for name in self._breakers.names() if name not in self._routes]
        for name in orphans:
            self._breakers.remove(name)
        return SweepResult(rate_windows_evicted=evicted, breakers_removed=len(orphans))

    # -- Request handling --

    async def handle(self, request: TrafficRequest) -> Any:
        """
        Admit, route and forward a request.

        Returns:
            Whatever the invoker returned

        Raises:
            RateLimitedError: Client key exceeded its window (429)
            RouteNotFoundError: No route matches (404)
            NoRouteAvailableError: Every candidate is disabled (503)
            ServiceUnavailableError: Selected route's circuit is open (503)
            GatewayTimeoutError: Last attempt timed out (504)
            BadGatewayError: Upstream failed after retries (502)
        """
        trace = _RequestTrace()
        started = self._clock()
        self._stats.total_requests += 1
        self._stats.active_requests += 1

        try:
            return await self._handle(request, trace)
        except TrafficError as e:
            trace.outcome = next(
                (outcome for kind, outcome in _OUTCOMES if isinstance(e, kind)),
                Outcomes.UPSTREAM_ERROR,
            )
            raise
        except asyncio.CancelledError:
            trace.outcome = Outcomes.CANCELLED
            raise
        except Exception:
            # Excluded invoker errors propagate unwrapped
            trace.outcome = Outcomes.UPSTREAM_ERROR
            raise
        finally:
            self._finish(trace, self._clock() - started)

    async def _handle(self, request: TrafficRequest, trace: _RequestTrace) -> Any:
        if self.config.rate_limit_enabled:
            key = self.client_key(request)
            info = self._rate_window.check(key)
            if not info.allowed:
                self._emit(MetricNames.RATE_LIMITED, {"client_key": key})
                raise RateLimitedError(key, retry_after=info.retry_after)

        candidates = self._routes.match(request.method, request.path)
        if not candidates:
            self._emit(MetricNames.ROUTE_NOT_FOUND, {
                "method": request.method,
                "path": request.path,
            })
            raise RouteNotFoundError(f"No route for {request.method} {request.path}")

        while True:
            route = self._selector.pick(candidates)
            trace.route = route
            trace.attempts = 0
            self._emit(MetricNames.ROUTE_SELECTED, {
                "route_id": route.id,
                "service": route.service,
            })

            try:
                return await self._call_with_retries(route, request, trace)
            except CircuitOpenError as e:
                remaining = [r for r in candidates if r.id != route.id]
                if self.config.reselect_on_open and any(r.enabled for r in remaining):
                    candidates = remaining
                    continue
                raise ServiceUnavailableError(
                    f"Route '{route.id}' is unavailable: circuit {e.state.value}",
                    retry_after=e.retry_after,
                ) from e
            except UpstreamTimeoutError as e:
                raise GatewayTimeoutError(
                    f"Route '{route.id}' timed out after {trace.attempts} attempt(s)",
                    route_id=route.id,
                    attempts=trace.attempts,
                ) from e
            except UpstreamError as e:
                raise BadGatewayError(
                    f"Route '{route.id}' failed after {trace.attempts} attempt(s)",
                    route_id=route.id,
                    attempts=trace.attempts,
                ) from e

    async def _call_with_retries(
        self,
        route: Route,
        request: TrafficRequest,
        trace: _RequestTrace,
    ) -> Any:
        breaker = self._breakers.create(route.id, self._breaker_config(route))
        retries = route.retries if route.retries is not None else self.config.default_retries
        invoke = functools.partial(self._invoker, route)

        def before_retry(retry_state) -> None:
            self._emit(MetricNames.REQUEST_RETRIED, {
                "route_id": route.id,
                "attempt": retry_state.attempt_number,
            })

        retrying = AsyncRetrying(
            stop=stop_any(
                stop_after_attempt(retries + 1),
                _stop_when_breaker_rejects(breaker),
            ),
            wait=self._wait,
            retry=(
                retry_if_exception_type(UpstreamError)
                & retry_if_not_exception_type(breaker.config.excluded_exceptions)
            ),
            before_sleep=before_retry,
            reraise=True,
        )

        async for attempt in retrying:
            with attempt:
                trace.attempts = attempt.retry_state.attempt_number
                return await breaker.execute(invoke, request)

    def _breaker_config(self, route: Route) -> CircuitBreakerConfig:
        return CircuitBreakerConfig(
            failure_threshold=self.config.failure_threshold,
            recovery_timeout=self.config.recovery_timeout,
            call_timeout=route.timeout or self.config.call_timeout,
            excluded_exceptions=_excluded(route, self.config),
        )

    def _on_breaker_transition(
        self,
        route_id: str,
        old_state: CircuitState,
        new_state: CircuitState,
    ) -> None:
        self._emit(MetricNames.BREAKER_STATE_CHANGED, {
            "route_id": route_id,
            "from_state": old_state.value,
            "to_state": new_state.value,
        })

    def _finish(self, trace: _RequestTrace, duration: float) -> None:
        stats = self._stats
        stats.active_requests -= 1

        if trace.outcome == Outcomes.SUCCESS:
            stats.successful_requests += 1
        else:
            stats.failed_requests += 1

        if stats.average_response_time == 0:
            stats.average_response_time = duration
        else:
            stats.average_response_time = stats.average_response_time * 0.9 + duration * 0.1

        route = trace.route
        if route is not None:
            stats.requests_by_route[route.id] = stats.requests_by_route.get(route.id, 0) + 1
            if route.service:
                stats.requests_by_service[route.service] = (
                    stats.requests_by_service.get(route.service, 0) + 1
                )

        self._emit(MetricNames.REQUEST_COMPLETED, {
            "route_id": route.id if route else None,
            "service": route.service if route else None,
            "outcome": trace.outcome,
            "attempts": trace.attempts,
            "duration_seconds": duration,
        })

    def _emit(self, event_name: str, fields: Dict[str, Any]) -> None:
        self._metrics.record(event_name, fields)
