"""Observability package for logging and metrics."""

from trendjack_core.observability.logging import (
    StructuredLogger,
    JsonFormatter,
    RunContext,
    get_logger,
    configure_logging,
)
from trendjack_core.observability.metrics import (
    MetricsCollector,
    QueueMetrics,
    get_collector,
)

__all__ = [
    "StructuredLogger",
    "JsonFormatter",
    "RunContext",
    "get_logger",
    "configure_logging",
    "MetricsCollector",
    "QueueMetrics",
    "get_collector",
]
