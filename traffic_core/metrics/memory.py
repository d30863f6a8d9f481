"""
In-Memory Metrics
=================
Metrics sink that keeps counters, gauges and histograms in process memory.
"""

from collections import defaultdict, deque
from typing import Any, DefaultDict, Deque, Dict, List, Mapping, Optional, Tuple

from .sink import MetricNames, STATE_GAUGE_VALUES

# Fields recorded as observations instead of labels
_NUMERIC_FIELDS = ("duration_seconds", "attempts")

SeriesKey = Tuple[str, Tuple[Tuple[str, str], ...]]


def _series(name: str, labels: Optional[Mapping[str, Any]]) -> SeriesKey:
    return name, tuple(sorted((k, str(v)) for k, v in (labels or {}).items()))


class InMemoryMetricsSink:
    """
    Keeps every series in dictionaries plus a bounded log of raw events.

    Meant for tests and local development; production deployments use
    PrometheusMetricsSink.
    """

    def __init__(self, max_events: int = 1000):
        self._counters: DefaultDict[SeriesKey, int] = defaultdict(int)
        self._gauges: Dict[SeriesKey, float] = {}
        self._histograms: DefaultDict[SeriesKey, List[float]] = defaultdict(list)
        self.events: Deque[Tuple[str, Dict[str, Any]]] = deque(maxlen=max_events)

    def record(self, event_name: str, fields: Mapping[str, Any]) -> None:
        fields = dict(fields)
        self.events.append((event_name, fields))

        labels = {
            k: v for k, v in fields.items()
            if k not in _NUMERIC_FIELDS and v is not None
        }
        self.increment(event_name, labels=labels)

        if "duration_seconds" in fields:
            self.observe(f"{event_name}_duration_seconds", fields["duration_seconds"])

        if event_name == MetricNames.BREAKER_STATE_CHANGED:
            self.set_gauge(
                "circuit_state",
                STATE_GAUGE_VALUES.get(fields.get("to_state"), -1),
                labels={"route_id": fields.get("route_id")},
            )

    def increment(self, name: str, value: int = 1, labels: Optional[Mapping] = None) -> None:
        self._counters[_series(name, labels)] += value

    def set_gauge(self, name: str, value: float, labels: Optional[Mapping] = None) -> None:
        self._gauges[_series(name, labels)] = value

    def observe(self, name: str, value: float, labels: Optional[Mapping] = None) -> None:
        self._histograms[_series(name, labels)].append(value)

    def get_counter(self, name: str, labels: Optional[Mapping] = None) -> int:
        """Counter value for an exact label set."""
        return self._counters.get(_series(name, labels), 0)

    def get_gauge(self, name: str, labels: Optional[Mapping] = None) -> Optional[float]:
        return self._gauges.get(_series(name, labels))

    def count(self, name: str, **labels: Any) -> int:
        """Number of retained ``name`` events whose fields include ``labels``."""
        return sum(
            1 for event_name, fields in self.events
            if event_name == name
            and all(fields.get(k) == v for k, v in labels.items())
        )

    def get_histogram_stats(self, name: str, labels: Optional[Mapping] = None) -> Dict[str, float]:
        """Count, sum, mean and p50/p95/p99 of a histogram series."""
        values = sorted(self._histograms.get(_series(name, labels), ()))
        if not values:
            return dict.fromkeys(("count", "sum", "avg", "p50", "p95", "p99"), 0)

        total = sum(values)
        last = len(values) - 1
        stats: Dict[str, float] = {
            "count": len(values),
            "sum": total,
            "avg": total / len(values),
        }
        for pct in (50, 95, 99):
            stats[f"p{pct}"] = values[min(len(values) * pct // 100, last)]
        return stats

    def clear(self) -> None:
        for store in (self._counters, self._gauges, self._histograms, self.events):
            store.clear()
