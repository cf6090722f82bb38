"""Metrics sink interface for the webhook relay.

The relay emits counters, gauges and histograms to an external sink on a
fire-and-forget basis. Delivery never waits on or fails because of metrics;
``emit_safely`` swallows and logs sink errors.

Metric series are identified by ``MetricKey``: a name plus labels stored
as a sorted tuple, so two keys with the same labels in a different order
compare and hash equal.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

MetricKind = Literal["counter", "gauge", "histogram"]

# Metric names emitted by the relay
DELIVERIES_TOTAL = "webhook_deliveries_total"
DELIVERY_SUCCESS_TOTAL = "webhook_delivery_success_total"
DELIVERY_FAILURE_TOTAL = "webhook_delivery_failure_total"
RESPONSE_TIME_MS = "webhook_response_time_ms"
DEAD_LETTERED_TOTAL = "webhook_dead_lettered_total"
QUEUE_SIZE = "queue_processor_queue_size"
ACTIVE_DELIVERIES = "queue_processor_active_deliveries"
UTILIZATION_PERCENT = "queue_processor_utilization_percent"
BACKLOG_WARNINGS_TOTAL = "queue_processor_backlog_warnings_total"


@dataclass(frozen=True, slots=True)
class MetricKey:
    """Identity of one metric series."""

    name: str
    labels: tuple[tuple[str, str], ...] = ()

    @classmethod
    def of(cls, name: str, labels: Mapping[str, str] | None = None) -> MetricKey:
        items = tuple(sorted((str(k), str(v)) for k, v in (labels or {}).items()))
        return cls(name=name, labels=items)

    def label_dict(self) -> dict[str, str]:
        return dict(self.labels)


@runtime_checkable
class MetricsSink(Protocol):
    """Destination for relay metrics. Implementations must not block."""

    def increment_counter(
        self, name: str, value: float = 1.0, labels: Mapping[str, str] | None = None
    ) -> None: ...

    def record_gauge(
        self, name: str, value: float, labels: Mapping[str, str] | None = None
    ) -> None: ...

    def record_histogram(
        self, name: str, value: float, labels: Mapping[str, str] | None = None
    ) -> None: ...


class NullMetrics:
    """Sink that discards everything."""

    def increment_counter(
        self, name: str, value: float = 1.0, labels: Mapping[str, str] | None = None
    ) -> None:
        return None

    def record_gauge(
        self, name: str, value: float, labels: Mapping[str, str] | None = None
    ) -> None:
        return None

    def record_histogram(
        self, name: str, value: float, labels: Mapping[str, str] | None = None
    ) -> None:
        return None


class InMemoryMetrics:
    """Process-local sink, useful for tests and the status endpoint.

    Example:
        ```python
        metrics = InMemoryMetrics()
        metrics.increment_counter("webhook_deliveries_total", labels={"webhook_id": "whk_1"})
        metrics.counter("webhook_deliveries_total", {"webhook_id": "whk_1"})  # 1.0
        ```
    """

    def __init__(self) -> None:
        self._counters: dict[MetricKey, float] = defaultdict(float)
        self._gauges: dict[MetricKey, float] = {}
        self._histograms: dict[MetricKey, list[float]] = defaultdict(list)

    def increment_counter(
        self, name: str, value: float = 1.0, labels: Mapping[str, str] | None = None
    ) -> None:
        self._counters[MetricKey.of(name, labels)] += value

    def record_gauge(
        self, name: str, value: float, labels: Mapping[str, str] | None = None
    ) -> None:
        self._gauges[MetricKey.of(name, labels)] = value

    def record_histogram(
        self, name: str, value: float, labels: Mapping[str, str] | None = None
    ) -> None:
        self._histograms[MetricKey.of(name, labels)].append(value)

    def counter(self, name: str, labels: Mapping[str, str] | None = None) -> float:
        return self._counters.get(MetricKey.of(name, labels), 0.0)

    def gauge(self, name: str, labels: Mapping[str, str] | None = None) -> float | None:
        return self._gauges.get(MetricKey.of(name, labels))

    def histogram(self, name: str, labels: Mapping[str, str] | None = None) -> list[float]:
        return list(self._histograms.get(MetricKey.of(name, labels), []))

    def snapshot(self) -> dict[str, dict[MetricKey, object]]:
        """Copy of every recorded series, grouped by kind."""
        return {
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
            "histograms": {k: list(v) for k, v in self._histograms.items()},
        }

    def reset(self) -> None:
        self._counters.clear()
        self._gauges.clear()
        self._histograms.clear()


def emit_safely(
    sink: MetricsSink | None,
    kind: MetricKind,
    name: str,
    value: float = 1.0,
    labels: Mapping[str, str] | None = None,
) -> None:
    """Send one metric to a sink, never raising.

    Args:
        sink: Destination; ``None`` means metrics are disabled.
        kind: counter, gauge or histogram.
        name: Metric name.
        value: Increment or observed value.
        labels: Series labels.
    """
    if sink is None:
        return
    try:
        if kind == "counter":
            sink.increment_counter(name, value, labels)
        elif kind == "gauge":
            sink.record_gauge(name, value, labels)
        else:
            sink.record_histogram(name, value, labels)
    except Exception as e:
        logger.debug("Dropping metric %s: %s", name, e)


__all__ = [
    "InMemoryMetrics",
    "MetricKey",
    "MetricKind",
    "MetricsSink",
    "NullMetrics",
    "emit_safely",
]
