"""
Metrics
=======
Sinks receiving route selection, breaker transition, rate-limit and
request completion events from the traffic controller.
"""

from .sink import MetricsSink, NullMetricsSink, MetricNames, Outcomes
from .memory import InMemoryMetricsSink
from .prometheus import PrometheusMetricsSink

__all__ = [
    "MetricsSink",
    "NullMetricsSink",
    "MetricNames",
    "Outcomes",
    "InMemoryMetricsSink",
    "PrometheusMetricsSink",
]
