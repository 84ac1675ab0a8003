"""Per-task runtime helpers: database sessions and run bookkeeping."""

import logging

from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from trendjack_core.infra.db import get_sync_session_factory
from trendjack_core.observability.metrics import QueueMetrics

logger = logging.getLogger(__name__)


def get_db_session() -> Session:
    """Get a database session for task execution."""
    return get_sync_session_factory()()


def mark_run(task_name: str) -> None:
    """Record the task's completion time for the metrics endpoint.

    Bookkeeping only: a broker outage is logged and ignored.
    """
    try:
        QueueMetrics().mark_run(task_name)
    except RedisError as e:
        logger.warning(f"Could not record last run of {task_name}: {e}")
