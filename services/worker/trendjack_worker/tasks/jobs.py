"""Job ledger processing task.

Claims due jobs from the ledger and runs them. A failing job is put
back with exponential backoff (or marked failed once out of attempts);
it never affects the batch run that queued it.
"""

import logging
from typing import Any, Callable

from trendjack_worker.celery_app import app
from trendjack_worker.tasks.embed import embed_posts
from trendjack_worker.util.runtime import get_db_session, mark_run

logger = logging.getLogger(__name__)


def _run_embed_posts(db: Any, settings: Any, payload: dict) -> dict:
    result = embed_posts(db, settings, limit=100, community=payload.get("community"))
    return {"processed": result.processed, "embedded": result.embedded}


# job_type -> handler(db, settings, payload)
JOB_HANDLERS: dict[str, Callable[[Any, Any, dict], dict]] = {
    "embed_posts": _run_embed_posts,
}


@app.task(name="jobs.process_queue")
def process_queue(queue_name: str = "embed", max_jobs: int = 10) -> dict[str, Any]:
    """Claim and run up to ``max_jobs`` due jobs from one queue.

    Returns:
        Dictionary with counts of completed and failed jobs.
    """
    from trendjack_core.config import get_settings
    from trendjack_core.domain.services.jobs import JobService

    settings = get_settings()
    db = get_db_session()
    completed = 0
    failed = 0

    try:
        jobs = JobService(db)

        for _ in range(max_jobs):
            job = jobs.claim_next_job(queue_name, job_types=list(JOB_HANDLERS))
            db.commit()
            if job is None:
                break

            job_id = job.id
            job_type = job.job_type
            payload = dict(job.payload_json or {})

            try:
                outcome = JOB_HANDLERS[job_type](db, settings, payload)
            except Exception as e:
                db.rollback()
                logger.warning(f"Job {job_id} ({job_type}) failed: {e}")
                jobs.fail_job(job_id, e)
                db.commit()
                failed += 1
                continue

            jobs.complete_job(job_id)
            db.commit()
            completed += 1
            logger.info(f"Job {job_id} ({job_type}) done: {outcome}")

        mark_run("jobs.process_queue")
        return {"status": "success", "completed": completed, "failed": failed}

    except Exception as e:
        db.rollback()
        logger.exception(f"Job queue processing error: {e}")
        return {"status": "error", "error": str(e), "completed": completed, "failed": failed}

    finally:
        db.close()
