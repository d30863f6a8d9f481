"""
Prometheus Metrics
==================
Metrics sink backed by prometheus_client with its own CollectorRegistry.

Usage:
    sink = PrometheusMetricsSink()
    controller = TrafficController(invoker, metrics=sink)

    # Mount metrics endpoint
    from fastapi import FastAPI
    app = FastAPI()
    app.mount("/metrics", sink.asgi_app())
"""

from typing import Any, Mapping, Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
    make_asgi_app,
)

from .sink import MetricNames, STATE_GAUGE_VALUES

LATENCY_BUCKETS = [
    0.001, 0.005, 0.01, 0.025, 0.05,
    0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0,
]


class PrometheusMetricsSink:
    """Translate controller events into Prometheus counters, gauges and histograms."""

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        namespace: str = "traffic",
    ):
        self.registry = registry or CollectorRegistry()

        self.route_selections = Counter(
            name="route_selections",
            documentation="Routes chosen by weighted selection",
            labelnames=["route_id", "service"],
            namespace=namespace,
            registry=self.registry,
        )

        self.routes_not_found = Counter(
            name="routes_not_found",
            documentation="Requests that matched no route",
            labelnames=["method"],
            namespace=namespace,
            registry=self.registry,
        )

        # No client key label, it would be unbounded
        self.rate_limited = Counter(
            name="rate_limited",
            documentation="Requests rejected by the rate limiter",
            namespace=namespace,
            registry=self.registry,
        )

        self.breaker_state = Gauge(
            name="circuit_breaker_state",
            documentation="Circuit breaker state (0=closed, 1=half-open, 2=open)",
            labelnames=["route_id"],
            namespace=namespace,
            registry=self.registry,
        )

        self.breaker_transitions = Counter(
            name="circuit_breaker_transitions",
            documentation="Circuit breaker state transitions",
            labelnames=["route_id", "from_state", "to_state"],
            namespace=namespace,
            registry=self.registry,
        )

        self.retries = Counter(
            name="request_retries",
            documentation="Retries against an already selected route",
            labelnames=["route_id"],
            namespace=namespace,
            registry=self.registry,
        )

        self.requests = Counter(
            name="requests",
            documentation="Handled requests by outcome",
            labelnames=["route_id", "outcome"],
            namespace=namespace,
            registry=self.registry,
        )

        self.request_latency = Histogram(
            name="request_duration_seconds",
            documentation="Time spent handling a request",
            labelnames=["route_id", "outcome"],
            buckets=LATENCY_BUCKETS,
            namespace=namespace,
            registry=self.registry,
        )

    def record(self, event_name: str, fields: Mapping[str, Any]) -> None:
        route_id = fields.get("route_id") or "none"

        if event_name == MetricNames.ROUTE_SELECTED:
            self.route_selections.labels(
                route_id=route_id,
                service=fields.get("service") or "",
            ).inc()
        elif event_name == MetricNames.ROUTE_NOT_FOUND:
            self.routes_not_found.labels(method=fields.get("method", "")).inc()
        elif event_name == MetricNames.RATE_LIMITED:
            self.rate_limited.inc()
        elif event_name == MetricNames.BREAKER_STATE_CHANGED:
            to_state = fields.get("to_state", "")
            self.breaker_state.labels(route_id=route_id).set(
                STATE_GAUGE_VALUES.get(to_state, -1)
            )
            self.breaker_transitions.labels(
                route_id=route_id,
                from_state=fields.get("from_state", ""),
                to_state=to_state,
            ).inc()
        elif event_name == MetricNames.REQUEST_RETRIED:
            self.retries.labels(route_id=route_id).inc()
        elif event_name == MetricNames.REQUEST_COMPLETED:
            outcome = fields.get("outcome", "unknown")
            self.requests.labels(route_id=route_id, outcome=outcome).inc()
            if fields.get("duration_seconds") is not None:
                self.request_latency.labels(
                    route_id=route_id,
                    outcome=outcome,
                ).observe(fields["duration_seconds"])

    def metrics_text(self) -> str:
        """Get metrics in Prometheus text format."""
        return generate_latest(self.registry).decode("utf-8")

    def asgi_app(self):
        """ASGI app serving this sink's registry, for mounting at /metrics."""
        return make_asgi_app(registry=self.registry)
