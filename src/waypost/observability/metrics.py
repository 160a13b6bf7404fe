"""In-process metrics for the deployment engine.

Counters and histograms are collected while route tests, strategy runs and
runtime dispatches happen, and can be exported in Prometheus text format
(``waypost metrics`` or an application endpoint the host wires up).

Example:
    >>> from waypost.observability.metrics import get_metrics
    >>> metrics = get_metrics()
    >>> metrics.increment_counter("waypost_strategy_runs_total", {"outcome": "success"})
    >>> "waypost_strategy_runs_total" in metrics.export_prometheus()
    True
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from typing import ClassVar

LabelKey = tuple[tuple[str, str], ...]

DEFAULT_DURATION_BUCKETS = (0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


def _label_key(labels: dict[str, str] | None) -> LabelKey:
    return tuple(sorted((labels or {}).items()))


@dataclass
class Counter:
    """Monotonically increasing counter keyed by label set."""

    name: str
    help_text: str
    values: dict[LabelKey, float] = field(default_factory=dict)

    def increment(self, labels: dict[str, str] | None = None, value: float = 1.0) -> None:
        key = _label_key(labels)
        self.values[key] = self.values.get(key, 0.0) + value

    def get(self, labels: dict[str, str] | None = None) -> float:
        return self.values.get(_label_key(labels), 0.0)


@dataclass
class HistogramSeries:
    """Bucket counts, sum and count for one label set."""

    bucket_counts: dict[float, float]
    total: float = 0.0
    count: float = 0.0


@dataclass
class Histogram:
    """Distribution of observed values."""

    name: str
    help_text: str
    buckets: tuple[float, ...] = DEFAULT_DURATION_BUCKETS
    series: dict[LabelKey, HistogramSeries] = field(default_factory=dict)

    def observe(self, value: float, labels: dict[str, str] | None = None) -> None:
        key = _label_key(labels)
        data = self.series.get(key)
        if data is None:
            data = HistogramSeries(bucket_counts=dict.fromkeys(self.buckets, 0.0))
            self.series[key] = data
        # Per-bucket counts; export_prometheus makes them cumulative.
        for bound in self.buckets:
            if value <= bound:
                data.bucket_counts[bound] += 1.0
                break
        data.total += value
        data.count += 1.0

    def get_count(self, labels: dict[str, str] | None = None) -> float:
        data = self.series.get(_label_key(labels))
        return data.count if data is not None else 0.0


class MetricsCollector:
    """Thread-safe collector for waypost counters and histograms."""

    DEFAULT_COUNTERS: ClassVar[dict[str, str]] = {
        "waypost_block_executions_total": "Building block executions by block and outcome",
        "waypost_rollbacks_total": "Strategy runs that were rolled back",
        "waypost_route_tests_total": "Route test probes by approach and outcome",
        "waypost_dispatch_requests_total": "Requests answered by the runtime dispatcher",
        "waypost_strategy_runs_total": "Strategy executor runs by strategy and outcome",
        "waypost_state_transitions_total": "Endpoint lifecycle transitions by from and to status",
    }

    DEFAULT_HISTOGRAMS: ClassVar[dict[str, str]] = {
        "waypost_route_test_duration_seconds": "Route test round-trip duration in seconds",
    }

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters = {
            name: Counter(name=name, help_text=help_text)
            for name, help_text in self.DEFAULT_COUNTERS.items()
        }
        self._histograms = {
            name: Histogram(name=name, help_text=help_text)
            for name, help_text in self.DEFAULT_HISTOGRAMS.items()
        }
        self._start_time = time.time()

    def increment_counter(
        self, name: str, labels: dict[str, str] | None = None, value: float = 1.0
    ) -> None:
        """Increment a known counter; unknown names are ignored."""
        with self._lock:
            counter = self._counters.get(name)
            if counter is not None:
                counter.increment(labels, value)

    def observe_histogram(
        self, name: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        with self._lock:
            histogram = self._histograms.get(name)
            if histogram is not None:
                histogram.observe(value, labels)

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            counter = self._counters.get(name)
            return counter.get(labels) if counter is not None else 0.0

    def get_histogram_count(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            histogram = self._histograms.get(name)
            return histogram.get_count(labels) if histogram is not None else 0.0

    @staticmethod
    def _format_labels(labels: LabelKey, extra: tuple[str, str] | None = None) -> str:
        pairs = list(labels)
        if extra is not None:
            pairs.append(extra)
        if not pairs:
            return ""

        def escape(value: str) -> str:
            return value.replace("\\", "\\\\").replace('"', '\\"')

        return "{" + ",".join(f'{k}="{escape(v)}"' for k, v in pairs) + "}"

    def export_prometheus(self) -> str:
        """Render every metric in Prometheus exposition format."""
        lines: list[str] = []
        with self._lock:
            for counter in self._counters.values():
                lines.append(f"# HELP {counter.name} {counter.help_text}")
                lines.append(f"# TYPE {counter.name} counter")
                if not counter.values:
                    lines.append(f"{counter.name} 0")
                for key, value in counter.values.items():
                    lines.append(f"{counter.name}{self._format_labels(key)} {value}")

            for histogram in self._histograms.values():
                lines.append(f"# HELP {histogram.name} {histogram.help_text}")
                lines.append(f"# TYPE {histogram.name} histogram")
                for key, data in histogram.series.items():
                    cumulative = 0.0
                    for bound in histogram.buckets:
                        cumulative += data.bucket_counts[bound]
                        labels = self._format_labels(key, ("le", str(bound)))
                        lines.append(f"{histogram.name}_bucket{labels} {cumulative}")
                    labels = self._format_labels(key, ("le", "+Inf"))
                    lines.append(f"{histogram.name}_bucket{labels} {data.count}")
                    lines.append(f"{histogram.name}_sum{self._format_labels(key)} {data.total}")
                    lines.append(f"{histogram.name}_count{self._format_labels(key)} {data.count}")

            uptime = time.time() - self._start_time
            lines.append("# HELP waypost_process_uptime_seconds Time since collector creation")
            lines.append("# TYPE waypost_process_uptime_seconds gauge")
            lines.append(f"waypost_process_uptime_seconds {uptime:.3f}")

        return "\n".join(lines) + "\n"

    def reset(self) -> None:
        """Clear all recorded values. Useful for testing."""
        with self._lock:
            for counter in self._counters.values():
                counter.values.clear()
            for histogram in self._histograms.values():
                histogram.series.clear()


_metrics_collector: MetricsCollector | None = None
_collector_lock = threading.Lock()


def get_metrics() -> MetricsCollector:
    """Return the process-wide metrics collector."""
    global _metrics_collector
    with _collector_lock:
        if _metrics_collector is None:
            _metrics_collector = MetricsCollector()
        return _metrics_collector


def reset_metrics() -> None:
    """Reset the process-wide collector. Useful for testing."""
    with _collector_lock:
        if _metrics_collector is not None:
            _metrics_collector.reset()
