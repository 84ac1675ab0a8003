"""Unit tests for logging and metrics.

Tests cover:
1. JSON log formatting with structured fields
2. Run context propagation
3. In-process metrics collector
4. Broker-side queue metrics
"""

import json
import logging
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from trendjack_core.observability.logging import (
    JsonFormatter,
    RunContext,
    StructuredLogger,
    configure_logging,
    get_logger,
)
from trendjack_core.observability.metrics import MetricsCollector, QueueMetrics


# =============================================================================
# LOGGING
# =============================================================================


class TestJsonFormatter:
    """Tests for JsonFormatter."""

    def make_record(self, level=logging.INFO, **extra):
        record = logging.LogRecord(
            name="trendjack.test",
            level=level,
            pathname="pipeline.py",
            lineno=42,
            msg="Keyword %s",
            args=("processed",),
            exc_info=None,
        )
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_basic_fields(self):
        entry = json.loads(JsonFormatter(service_name="trendjack-worker").format(self.make_record()))

        assert entry["message"] == "Keyword processed"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "trendjack.test"
        assert entry["service"] == "trendjack-worker"
        assert "source" not in entry

    def test_warnings_include_source(self):
        entry = json.loads(JsonFormatter().format(self.make_record(level=logging.WARNING)))

        assert entry["source"]["line"] == 42

    def test_extra_fields_are_included(self):
        entry = json.loads(JsonFormatter().format(self.make_record(run_id="abc", leads_created=2)))

        assert entry["run_id"] == "abc"
        assert entry["leads_created"] == 2

    def test_unserializable_extra_is_stringified(self):
        entry = json.loads(JsonFormatter().format(self.make_record(started=datetime(2026, 3, 15))))

        assert entry["started"] == "2026-03-15 00:00:00"


class TestRunContext:
    """Tests for RunContext."""

    def test_start_assigns_run_id(self):
        context = RunContext.start("leads.run_pipeline")

        assert len(context.run_id) == 12
        assert context.task_name == "leads.run_pipeline"

    def test_for_keyword_keeps_run_id(self):
        parent = RunContext.start("leads.run_pipeline")

        child = parent.for_keyword(7, "user-1")

        assert child.run_id == parent.run_id
        assert child.to_dict()["keyword_id"] == 7
        assert parent.keyword_id is None

    def test_to_dict_omits_empty_fields(self):
        assert RunContext().to_dict() == {}
        assert RunContext(task_name="t", extra={"batch": 3}).to_dict() == {"task_name": "t", "batch": 3}


class TestStructuredLogger:
    """Tests for StructuredLogger."""

    def test_get_logger_is_cached(self):
        assert get_logger("trendjack.cached") is get_logger("trendjack.cached")

    def test_context_and_fields_reach_record(self, caplog):
        logger = StructuredLogger("trendjack.structured")
        context = RunContext(run_id="r1", keyword_id=3)

        with caplog.at_level(logging.INFO, logger="trendjack.structured"):
            logger.info("Keyword processed", context=context, leads_created=1)

        record = caplog.records[-1]
        assert record.run_id == "r1"
        assert record.keyword_id == 3
        assert record.leads_created == 1

    def test_configure_logging_installs_json_handler(self):
        root = logging.getLogger()
        original_handlers = list(root.handlers)
        original_level = root.level
        try:
            configure_logging(level="DEBUG", json_format=True, service_name="svc")

            assert root.level == logging.DEBUG
            assert isinstance(root.handlers[0].formatter, JsonFormatter)
        finally:
            root.handlers[:] = original_handlers
            root.setLevel(original_level)


# =============================================================================
# METRICS
# =============================================================================


class TestMetricsCollector:
    """Tests for MetricsCollector."""

    def test_counters_with_labels(self):
        collector = MetricsCollector()

        collector.increment("runs")
        collector.increment("runs", 2)
        collector.increment("runs", labels={"pipeline": "leads"})

        assert collector.get("runs") == 3
        assert collector.get("runs", labels={"pipeline": "leads"}) == 1
        assert collector.get("missing") == 0

    def test_gauge(self):
        collector = MetricsCollector()

        collector.set_gauge("trending", 4)
        collector.set_gauge("trending", 2)

        assert collector.get("trending") == 2

    def test_histogram_stats(self):
        collector = MetricsCollector()
        for value in [1.0, 2.0, 3.0, 4.0]:
            collector.record_histogram("latency", value)

        stats = collector.get_histogram_stats("latency")

        assert stats["count"] == 4
        assert stats["min"] == 1.0
        assert stats["max"] == 4.0
        assert stats["avg"] == 2.5

    def test_empty_histogram(self):
        assert MetricsCollector().get_histogram_stats("latency")["count"] == 0

    def test_get_all_and_reset(self):
        collector = MetricsCollector()
        collector.increment("runs")
        collector.record_histogram("latency", 1.0)

        snapshot = collector.get_all()
        collector.reset()

        assert snapshot["counters"] == {"runs": 1}
        assert snapshot["histograms"]["latency"]["count"] == 1
        assert collector.get_all() == {"counters": {}, "gauges": {}, "histograms": {}}


class TestQueueMetrics:
    """Tests for broker-side metrics."""

    @pytest.fixture
    def redis_client(self):
        client = MagicMock()
        client.llen.side_effect = lambda name: {"leads": 3}.get(name, 0)
        client.scan_iter.return_value = [b"trendjack:last_run:leads.run_pipeline"]
        client.get.return_value = b"2026-03-15T12:00:00+00:00"
        return client

    def test_collect_all(self, redis_client):
        with patch("redis.from_url", return_value=redis_client):
            data = QueueMetrics(redis_url="redis://test:6379/0").collect_all()

        assert data["queues"]["queue_depth_leads"] == 3
        assert data["queues"]["queue_depth_embed"] == 0
        assert data["last_runs"] == {"leads.run_pipeline": "2026-03-15T12:00:00+00:00"}

    def test_mark_run(self, redis_client):
        when = datetime(2026, 3, 15, 12, tzinfo=timezone.utc)

        with patch("redis.from_url", return_value=redis_client):
            QueueMetrics(redis_url="redis://test:6379/0").mark_run("trends.score_keywords", when)

        redis_client.set.assert_called_once_with(
            "trendjack:last_run:trends.score_keywords", when.isoformat()
        )
