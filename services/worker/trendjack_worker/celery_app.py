"""Celery application configuration for TrendJack Worker."""

import os

from celery import Celery
from celery.signals import setup_logging

# Celery configuration from environment
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/2")

app = Celery(
    "trendjack_worker",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
    include=[
        "trendjack_worker.tasks.leads",
        "trendjack_worker.tasks.trends",
        "trendjack_worker.tasks.embed",
        "trendjack_worker.tasks.jobs",
    ],
)

# Celery configuration
app.conf.update(
    # Task settings
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    # Task execution
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    # Time limits (seconds); a lead batch makes many sequential AI calls
    task_soft_time_limit=840,
    task_time_limit=900,
    # Retry settings
    task_default_retry_delay=60,
    task_max_retries=3,
    # Queue routing
    task_routes={
        "leads.*": {"queue": "leads"},
        "trends.*": {"queue": "trends"},
        "embed.*": {"queue": "embed"},
        "jobs.*": {"queue": "jobs"},
    },
    # Worker settings
    worker_prefetch_multiplier=1,
    worker_concurrency=4,
)

# Beat schedule for periodic tasks
app.conf.beat_schedule = {
    # Lead pipeline batch every 15 minutes
    "lead-pipeline-periodic": {
        "task": "leads.run_pipeline",
        "schedule": 900.0,
        "args": (),
    },
    # Keyword trend scores hourly
    "trend-scoring-periodic": {
        "task": "trends.score_keywords",
        "schedule": 3600.0,
        "args": (),
    },
    # Entity extraction from new headlines hourly
    "entity-extraction-periodic": {
        "task": "trends.extract_entities",
        "schedule": 3600.0,
        "args": (),
    },
    # Entity analysis every 6 hours
    "entity-analysis-periodic": {
        "task": "trends.analyze_entities",
        "schedule": 21600.0,
        "args": (),
    },
    # Embed new posts every 10 minutes
    "embed-posts-periodic": {
        "task": "embed.embed_pending_posts",
        "schedule": 600.0,
        "args": (),
    },
    # Drain the job ledger every minute
    "job-queue-periodic": {
        "task": "jobs.process_queue",
        "schedule": 60.0,
        "args": (),
    },
}


@setup_logging.connect
def _configure_worker_logging(**kwargs) -> None:
    """Route worker logs through the JSON formatter instead of Celery's."""
    from trendjack_core.config import get_settings
    from trendjack_core.observability.logging import configure_logging

    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="trendjack-worker",
    )


if __name__ == "__main__":
    app.start()
