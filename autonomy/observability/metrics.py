"""
Metrics Collection

Prometheus-compatible metrics and the engine's outcome sink.

Design decisions:
- A metric is a family of series keyed by label values
- Updates take a per-metric lock; runs may record from worker threads
- The sink keeps a bounded list of raw samples next to the series
"""

import math
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

LabelKey = tuple[tuple[str, str], ...]


def _key(labels: dict[str, str]) -> LabelKey:
    return tuple(sorted((k, str(v)) for k, v in labels.items()))


def _render_labels(labels: LabelKey) -> str:
    if not labels:
        return ""
    return "{" + ",".join(f'{k}="{v}"' for k, v in labels) + "}"


class Metric:
    """A named family of labelled series."""

    kind = "untyped"

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self._lock = threading.Lock()

    def samples(self) -> Iterator[tuple[str, LabelKey, float]]:
        """Yield (name suffix, labels, value) for every exported line."""
        raise NotImplementedError


class Counter(Metric):
    """Monotonic total per label set: runs, safety events, completed tasks."""

    kind = "counter"

    def __init__(self, name: str, description: str = ""):
        super().__init__(name, description)
        self._series: dict[LabelKey, float] = {}

    def inc(self, value: float = 1.0, **labels: str) -> None:
        if value < 0:
            raise ValueError("Counter can only increase")
        key = _key(labels)
        with self._lock:
            self._series[key] = self._series.get(key, 0.0) + value

    def get(self, **labels: str) -> float:
        with self._lock:
            return self._series.get(_key(labels), 0.0)

    def by_label(self, label: str) -> dict[str, float]:
        """Totals grouped on one label."""
        grouped: dict[str, float] = {}
        with self._lock:
            for key, value in self._series.items():
                name = dict(key).get(label, "")
                grouped[name] = grouped.get(name, 0.0) + value
        return grouped

    def samples(self) -> Iterator[tuple[str, LabelKey, float]]:
        with self._lock:
            series = list(self._series.items())
        for key, value in series:
            yield "", key, value


@dataclass
class _Distribution:
    buckets: list[int]
    total: float = 0.0
    count: int = 0


class Histogram(Metric):
    """Cumulative bucket counts per label set: calibration error."""

    kind = "histogram"

    def __init__(self, name: str, description: str = "", buckets: tuple[float, ...] = (0.1, 0.5, 1.0)):
        super().__init__(name, description)
        self.bounds = tuple(sorted(buckets)) + ((math.inf,) if buckets[-1] != math.inf else ())
        self._series: dict[LabelKey, _Distribution] = {}

    def observe(self, value: float, **labels: str) -> None:
        key = _key(labels)
        with self._lock:
            dist = self._series.setdefault(key, _Distribution(buckets=[0] * len(self.bounds)))
            dist.total += value
            dist.count += 1
            for i, bound in enumerate(self.bounds):
                if value <= bound:
                    dist.buckets[i] += 1

    def get_count(self, **labels: str) -> int:
        with self._lock:
            dist = self._series.get(_key(labels))
            return dist.count if dist else 0

    def get_sum(self, **labels: str) -> float:
        with self._lock:
            dist = self._series.get(_key(labels))
            return dist.total if dist else 0.0

    def samples(self) -> Iterator[tuple[str, LabelKey, float]]:
        with self._lock:
            series = [(key, _Distribution(list(d.buckets), d.total, d.count)) for key, d in self._series.items()]
        for key, dist in series:
            for bound, count in zip(self.bounds, dist.buckets):
                le = "+Inf" if bound == math.inf else repr(bound)
                yield "_bucket", key + (("le", le),), count
            yield "_sum", key, dist.total
            yield "_count", key, dist.count


class MetricsCollector:
    """
    Registry of engine metrics under a common name prefix.

    Metrics are looked up by their short name; exported names carry the prefix.
    """

    def __init__(self, prefix: str = "autonomy"):
        self.prefix = prefix
        self._metrics: dict[str, Metric] = {}
        self._lock = threading.Lock()

        self.register(Counter("safety_events_total", "Safety gate outcomes"))
        self.register(Counter("productivity_total", "Accumulated productivity values"))
        self.register(
            Histogram(
                "calibration_error",
                "Squared error between predicted confidence and actual outcome",
                buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0),
            )
        )

    def register(self, metric: Metric) -> Metric:
        with self._lock:
            if metric.name in self._metrics:
                raise ValueError(f"Metric already registered: {metric.name}")
            self._metrics[metric.name] = metric
        return metric

    def get(self, name: str) -> Metric | None:
        return self._metrics.get(name)

    def counter(self, name: str) -> Counter | None:
        metric = self.get(name)
        return metric if isinstance(metric, Counter) else None

    def histogram(self, name: str) -> Histogram | None:
        metric = self.get(name)
        return metric if isinstance(metric, Histogram) else None

    def to_prometheus(self) -> str:
        """Text exposition format."""
        with self._lock:
            metrics = list(self._metrics.values())

        lines = []
        for metric in metrics:
            full_name = f"{self.prefix}_{metric.name}"
            lines.append(f"# HELP {full_name} {metric.description}")
            lines.append(f"# TYPE {full_name} {metric.kind}")
            for suffix, labels, value in metric.samples():
                lines.append(f"{full_name}{suffix}{_render_labels(labels)} {value}")
        return "\n".join(lines) + "\n"


@dataclass
class CalibrationSample:
    predicted: float
    actual: float
    task: str
    timestamp: datetime = field(default_factory=datetime.utcnow)


class InMemoryMetricsSink:
    """
    Default metrics sink for the engine.

    Implements MetricsSinkProtocol on top of a MetricsCollector and keeps
    the raw payloads for inspection.
    """

    def __init__(self, collector: MetricsCollector | None = None, max_samples: int = 1000):
        self.collector = collector or MetricsCollector()
        self._max_samples = max_samples
        self.safety_events: list[tuple[str, dict[str, Any]]] = []
        self.productivity: list[tuple[str, float, dict[str, Any]]] = []
        self.calibration: list[CalibrationSample] = []

    def record_safety_event(self, kind: str, payload: dict[str, Any]) -> None:
        self.collector.counter("safety_events_total").inc(kind=kind)
        self._append(self.safety_events, (kind, dict(payload)))

    def record_productivity(self, kind: str, value: float, payload: dict[str, Any]) -> None:
        self.collector.counter("productivity_total").inc(value, kind=kind)
        self._append(self.productivity, (kind, value, dict(payload)))

    def record_calibration(self, predicted: float, actual: float, task: str) -> None:
        self.collector.histogram("calibration_error").observe((predicted - actual) ** 2)
        self._append(self.calibration, CalibrationSample(predicted=predicted, actual=actual, task=task))

    def brier_score(self) -> float | None:
        """Mean squared calibration error, None before any sample."""
        if not self.calibration:
            return None
        return sum((s.predicted - s.actual) ** 2 for s in self.calibration) / len(self.calibration)

    def snapshot(self) -> dict[str, Any]:
        return {
            "safety_events": self.collector.counter("safety_events_total").by_label("kind"),
            "productivity": self.collector.counter("productivity_total").by_label("kind"),
            "calibration_samples": len(self.calibration),
            "brier_score": self.brier_score(),
        }

    def _append(self, target: list, item: Any) -> None:
        target.append(item)
        if len(target) > self._max_samples:
            del target[: len(target) - self._max_samples]
