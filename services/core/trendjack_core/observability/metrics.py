"""Metrics collection for TrendJack services.

In-process counters, gauges and histograms for the batch passes, plus
queue depth probes read from the Celery broker.

Usage:
    collector = get_collector()
    collector.increment(LEAD_CANDIDATES_CREATED, labels={"pipeline": "leads"})
    collector.record_histogram(AI_CALL_LATENCY_SECONDS, 1.8)
"""

import os
import threading
from datetime import datetime, timezone
from typing import Any, Optional


# =============================================================================
# METRIC NAMES
# =============================================================================

LEAD_RUNS = "lead_pipeline_runs_total"
LEAD_CANDIDATES_CREATED = "lead_candidates_created_total"
AI_CALLS_MADE = "ai_calls_made_total"
AI_CALL_FAILURES = "ai_call_failures_total"
LEADS_CREATED = "leads_created_total"
AI_CALL_LATENCY_SECONDS = "ai_call_latency_seconds"
TREND_SCORES_WRITTEN = "trend_scores_written_total"
TRENDING_KEYWORDS = "trending_keywords"
ENTITIES_EXTRACTED = "entities_extracted_total"


class MetricsCollector:
    """Thread-safe in-memory metrics store."""

    def __init__(self):
        self._lock = threading.RLock()
        self._counters: dict[str, float] = {}
        self._gauges: dict[str, float] = {}
        self._histograms: dict[str, list[float]] = {}

    def _make_key(self, name: str, labels: Optional[dict[str, str]] = None) -> str:
        if not labels:
            return name
        label_str = ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
        return f"{name}{{{label_str}}}"

    def increment(
        self,
        name: str,
        value: float = 1.0,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        """Increment a counter metric.

        Args:
            name: Counter name
            value: Value to add (default 1)
            labels: Optional labels
        """
        key = self._make_key(name, labels)
        with self._lock:
            self._counters[key] = self._counters.get(key, 0) + value

    def set_gauge(
        self,
        name: str,
        value: float,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        """Set a gauge metric value."""
        key = self._make_key(name, labels)
        with self._lock:
            self._gauges[key] = value

    def record_histogram(
        self,
        name: str,
        value: float,
        labels: Optional[dict[str, str]] = None,
    ) -> None:
        """Record a value in a histogram."""
        key = self._make_key(name, labels)
        with self._lock:
            self._histograms.setdefault(key, []).append(value)

    def get(self, name: str, labels: Optional[dict[str, str]] = None) -> float:
        """Get a counter or gauge value, 0 if never recorded."""
        key = self._make_key(name, labels)
        with self._lock:
            if key in self._counters:
                return self._counters[key]
            return self._gauges.get(key, 0)

    def get_histogram_stats(
        self,
        name: str,
        labels: Optional[dict[str, str]] = None,
    ) -> dict[str, float]:
        """Get histogram statistics.

        Args:
            name: Histogram name
            labels: Optional labels

        Returns:
            Dictionary with count, min, max, avg, p50, p95
        """
        key = self._make_key(name, labels)
        with self._lock:
            values = list(self._histograms.get(key, []))

        if not values:
            return {"count": 0, "min": 0, "max": 0, "avg": 0}

        sorted_values = sorted(values)
        count = len(values)

        return {
            "count": count,
            "min": sorted_values[0],
            "max": sorted_values[-1],
            "avg": sum(values) / count,
            "p50": sorted_values[int(count * 0.5)],
            "p95": sorted_values[min(int(count * 0.95), count - 1)],
        }

    def get_all(self) -> dict[str, Any]:
        """Snapshot of every metric."""
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "histograms": {k: self.get_histogram_stats(k) for k in self._histograms},
            }

    def reset(self) -> None:
        """Reset all metrics to zero."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()


class QueueMetrics:
    """Broker-side metrics: Celery queue depths and last batch run times."""

    QUEUE_NAMES = ["leads", "trends", "embed", "jobs"]
    LAST_RUN_PREFIX = "trendjack:last_run:"

    def __init__(self, redis_url: Optional[str] = None):
        self._redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self._redis_client = None

    def _get_redis(self):
        if self._redis_client is None:
            import redis

            self._redis_client = redis.from_url(self._redis_url)
        return self._redis_client

    def collect_queue_depths(self) -> dict[str, int]:
        """Length of each Celery queue list on the broker."""
        client = self._get_redis()
        return {
            f"queue_depth_{queue_name}": int(client.llen(queue_name))
            for queue_name in self.QUEUE_NAMES
        }

    def mark_run(self, task_name: str, when: Optional[datetime] = None) -> None:
        """Record when a batch task last completed."""
        when = when or datetime.now(timezone.utc)
        self._get_redis().set(f"{self.LAST_RUN_PREFIX}{task_name}", when.isoformat())

    def collect_last_runs(self) -> dict[str, Optional[str]]:
        client = self._get_redis()
        result = {}
        for key in client.scan_iter(f"{self.LAST_RUN_PREFIX}*"):
            if isinstance(key, bytes):
                key = key.decode()
            value = client.get(key)
            if isinstance(value, bytes):
                value = value.decode()
            result[key[len(self.LAST_RUN_PREFIX):]] = value
        return result

    def collect_all(self) -> dict[str, Any]:
        return {
            "collected_at": datetime.now(timezone.utc).isoformat(),
            "queues": self.collect_queue_depths(),
            "last_runs": self.collect_last_runs(),
        }


# Global metrics collector instance
_collector = MetricsCollector()


def get_collector() -> MetricsCollector:
    """Get the global metrics collector."""
    return _collector
