"""Metrics API routes for observability."""

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter

from trendjack_core.observability.metrics import QueueMetrics, get_collector

router = APIRouter(prefix="/api", tags=["metrics"])


@router.get("/metrics")
async def get_metrics() -> dict[str, Any]:
    """Get all metrics.

    Returns collected metrics including:
    - Application metrics (counters, gauges, histograms)
    - System metrics (queue depths, last batch runs)
    """
    return {
        "collected_at": datetime.now(timezone.utc).isoformat(),
        "application": get_collector().get_all(),
        "system": QueueMetrics().collect_all(),
    }


@router.get("/metrics/application")
async def get_application_metrics() -> dict[str, Any]:
    """Counters, gauges and histograms collected in this process."""
    return get_collector().get_all()
