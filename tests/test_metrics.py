"""Tests for metrics sinks."""

from unittest.mock import MagicMock

from webhook_relay.metrics import (
    InMemoryMetrics,
    MetricKey,
    MetricsSink,
    NullMetrics,
    emit_safely,
)


class TestMetricKey:
    """Tests for MetricKey identity."""

    def test_label_order_irrelevant(self):
        a = MetricKey.of("m", {"b": "2", "a": "1"})
        b = MetricKey.of("m", {"a": "1", "b": "2"})
        assert a == b
        assert hash(a) == hash(b)

    def test_labels_stringified(self):
        assert MetricKey.of("m", {"code": 500}).label_dict() == {"code": "500"}

    def test_no_labels(self):
        assert MetricKey.of("m").labels == ()


class TestInMemoryMetrics:
    """Tests for InMemoryMetrics."""

    def test_implements_protocol(self):
        assert isinstance(InMemoryMetrics(), MetricsSink)
        assert isinstance(NullMetrics(), MetricsSink)

    def test_counter(self):
        metrics = InMemoryMetrics()
        metrics.increment_counter("c", labels={"webhook_id": "whk_1"})
        metrics.increment_counter("c", 2, labels={"webhook_id": "whk_1"})
        metrics.increment_counter("c", labels={"webhook_id": "whk_2"})
        assert metrics.counter("c", {"webhook_id": "whk_1"}) == 3
        assert metrics.counter("c", {"webhook_id": "whk_2"}) == 1
        assert metrics.counter("missing") == 0

    def test_gauge_keeps_last(self):
        metrics = InMemoryMetrics()
        metrics.record_gauge("g", 5)
        metrics.record_gauge("g", 7)
        assert metrics.gauge("g") == 7
        assert metrics.gauge("unset") is None

    def test_histogram(self):
        metrics = InMemoryMetrics()
        for value in (1, 2, 3):
            metrics.record_histogram("h", value)
        assert metrics.histogram("h") == [1, 2, 3]

    def test_snapshot_and_reset(self):
        metrics = InMemoryMetrics()
        metrics.increment_counter("c")
        snapshot = metrics.snapshot()
        assert snapshot["counters"][MetricKey.of("c")] == 1
        metrics.reset()
        assert metrics.counter("c") == 0


class TestEmitSafely:
    """Tests for emit_safely."""

    def test_routes_by_kind(self):
        metrics = InMemoryMetrics()
        emit_safely(metrics, "counter", "c")
        emit_safely(metrics, "gauge", "g", 4)
        emit_safely(metrics, "histogram", "h", 9)
        assert metrics.counter("c") == 1
        assert metrics.gauge("g") == 4
        assert metrics.histogram("h") == [9]

    def test_none_sink(self):
        emit_safely(None, "counter", "c")

    def test_sink_errors_swallowed(self):
        sink = MagicMock()
        sink.increment_counter.side_effect = RuntimeError("statsd down")
        emit_safely(sink, "counter", "c")
        sink.increment_counter.assert_called_once_with("c", 1.0, None)
