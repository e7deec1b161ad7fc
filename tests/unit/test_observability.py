"""
Unit Tests - Observability

Tests for structured logging, the event bus and metrics.
"""

import io
import json

import pytest

from autonomy.observability import (
    BufferHandler,
    ConsoleHandler,
    EventBus,
    EventType,
    InMemoryMetricsSink,
    LogLevel,
    MetricsCollector,
    StructuredLogger,
)
from autonomy.observability.events import WILDCARD


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_level_filtering(self):
        buffer = BufferHandler()
        logger = StructuredLogger("test", level=LogLevel.WARNING, handlers=[buffer])

        logger.info("hidden")
        logger.warning("shown")

        assert buffer.messages() == ["shown"]

    def test_context_enriches_records(self):
        buffer = BufferHandler()
        logger = StructuredLogger("test", handlers=[buffer])

        with logger.context(run_id="run-1", task_id="task-1"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = buffer.records
        assert inside.run_id == "run-1"
        assert inside.task_id == "task-1"
        assert outside.run_id is None

    def test_error_captures_exception(self):
        buffer = BufferHandler()
        logger = StructuredLogger("test", handlers=[buffer])

        try:
            raise RuntimeError("boom")
        except RuntimeError as e:
            logger.error("failed", error=e, step=3)

        record = buffer.records[0]
        assert record.error == "boom"
        assert record.error_type == "RuntimeError"
        assert record.data == {"step": 3}
        assert "Traceback" in record.stack_trace

    def test_console_json_output(self):
        stream = io.StringIO()
        logger = StructuredLogger("test", handlers=[ConsoleHandler(stream=stream)])

        logger.info("hello", answer=42)

        payload = json.loads(stream.getvalue())
        assert payload["message"] == "hello"
        assert payload["level"] == "INFO"
        assert payload["data"] == {"answer": 42}

    def test_child_shares_handlers(self):
        buffer = BufferHandler()
        child = StructuredLogger("root", handlers=[buffer]).child("loop")

        child.info("from child")

        assert buffer.records[0].logger_name == "root.loop"


class TestEventBus:
    """Tests for EventBus."""

    @pytest.mark.asyncio
    async def test_sync_and_async_subscribers(self):
        bus = EventBus()
        seen = []

        async def on_async(event):
            seen.append(("async", event.data["task_id"]))

        bus.subscribe(EventType.TASK_COMPLETED, lambda e: seen.append(("sync", e.data["task_id"])))
        bus.subscribe(EventType.TASK_COMPLETED, on_async)

        await bus.publish(EventType.TASK_COMPLETED, {"task_id": "task-1"})

        assert seen == [("sync", "task-1"), ("async", "task-1")]

    @pytest.mark.asyncio
    async def test_wildcard_receives_everything(self):
        bus = EventBus()
        seen = []
        bus.subscribe(WILDCARD, lambda e: seen.append(e.type))

        await bus.publish(EventType.LOOP_STARTED)
        await bus.publish(EventType.GOAL_CREATED)

        assert seen == [EventType.LOOP_STARTED, EventType.GOAL_CREATED]

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(EventType.LOOP_STARTED, seen.append)

        unsubscribe()
        await bus.publish(EventType.LOOP_STARTED)

        assert seen == []
        assert bus.subscriber_count() == 0

    @pytest.mark.asyncio
    async def test_failing_handler_is_isolated(self, logger, log_buffer):
        bus = EventBus(logger=logger)
        seen = []

        def broken(event):
            raise RuntimeError("handler bug")

        bus.subscribe(EventType.LOOP_STARTED, broken)
        bus.subscribe(EventType.LOOP_STARTED, seen.append)

        await bus.publish(EventType.LOOP_STARTED)

        assert len(seen) == 1
        assert "Event handler failed" in log_buffer.messages(LogLevel.WARNING)

    @pytest.mark.asyncio
    async def test_history_is_bounded(self):
        bus = EventBus(max_history=3)
        for _ in range(5):
            await bus.publish(EventType.STEP_EXECUTED)
        await bus.publish(EventType.LOOP_COMPLETED)

        assert len(bus.history()) == 3
        assert [e.type for e in bus.history(EventType.LOOP_COMPLETED)] == [EventType.LOOP_COMPLETED]


class TestMetrics:
    """Tests for MetricsCollector and InMemoryMetricsSink."""

    def test_sink_counts_by_kind(self):
        sink = InMemoryMetricsSink()

        sink.record_safety_event("blocked", {"reason": "policy"})
        sink.record_safety_event("blocked", {"reason": "mode"})
        sink.record_productivity("task_completed", 1, {"task": "x"})

        snapshot = sink.snapshot()
        assert snapshot["safety_events"] == {"blocked": 2.0}
        assert snapshot["productivity"] == {"task_completed": 1.0}

    def test_brier_score(self):
        sink = InMemoryMetricsSink()
        assert sink.brier_score() is None

        sink.record_calibration(0.7, 1.0, "a")
        sink.record_calibration(0.7, 0.0, "b")

        assert sink.brier_score() == pytest.approx((0.09 + 0.49) / 2)
        assert sink.collector.histogram("calibration_error").get_count() == 2

    def test_sample_retention(self):
        sink = InMemoryMetricsSink(max_samples=2)
        for i in range(5):
            sink.record_productivity("task_completed", 1, {"i": i})

        assert [p[2]["i"] for p in sink.productivity] == [3, 4]

    def test_prometheus_export(self):
        collector = MetricsCollector(prefix="test")
        collector.counter("safety_events_total").inc(kind="blocked")

        text = collector.to_prometheus()

        assert "# TYPE test_safety_events_total counter" in text
        assert 'test_safety_events_total{kind="blocked"} 1.0' in text

    def test_histogram_exposition(self):
        collector = MetricsCollector(prefix="test")
        collector.histogram("calibration_error").observe(0.09)

        text = collector.to_prometheus()

        assert 'test_calibration_error_bucket{le="0.05"} 0' in text
        assert 'test_calibration_error_bucket{le="0.1"} 1' in text
        assert 'test_calibration_error_bucket{le="+Inf"} 1' in text
        assert "test_calibration_error_count 1" in text

    def test_counter_rejects_decrease(self):
        with pytest.raises(ValueError):
            MetricsCollector().counter("productivity_total").inc(-1)
