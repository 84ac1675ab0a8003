"""Lead pipeline task.

Runs one batch of the lead pipeline: the least recently processed
keywords are filtered, deduplicated, scored by the model and turned
into leads. Beat fires it every 15 minutes; every run is independent.
"""

import asyncio
import logging
from typing import Any, Optional

from trendjack_worker.celery_app import app
from trendjack_worker.util.runtime import get_db_session, mark_run

logger = logging.getLogger(__name__)


async def _run_batch(db: Any, settings: Any, batch_size: Optional[int]) -> Any:
    """Build the pipeline around a fresh inference client and run it."""
    from trendjack_core.domain.services.inference import InferenceClient
    from trendjack_core.domain.services.lead_pipeline import build_lead_pipeline
    from trendjack_core.observability.logging import RunContext

    client = InferenceClient.from_settings(settings)
    try:
        service = build_lead_pipeline(db, client, settings)
        return await service.run(
            batch_size=batch_size,
            context=RunContext.start("leads.run_pipeline"),
        )
    finally:
        await client.close()


@app.task(
    bind=True,
    name="leads.run_pipeline",
    max_retries=2,
    default_retry_delay=120,
)
def run_pipeline(self, batch_size: Optional[int] = None) -> dict:
    """Process one batch of keywords.

    Args:
        batch_size: Keywords to process; defaults to LEAD_BATCH_SIZE.

    Returns:
        dict: Status plus the pipeline summary and per-keyword logs.
    """
    from trendjack_core.config import get_settings
    from trendjack_core.domain.services.inference import InferenceNotConfiguredError

    db = None

    try:
        db = get_db_session()
        settings = get_settings()

        result = asyncio.run(_run_batch(db, settings, batch_size))
        mark_run("leads.run_pipeline")

        if not result.success:
            logger.error(f"Lead pipeline failed: {result.error}")
        else:
            summary = result.summary
            logger.info(
                f"Lead pipeline complete: {summary.keywords_processed} keywords, "
                f"{summary.total_leads_created} leads"
            )

        return {
            "status": "success" if result.success else "error",
            **result.to_dict(),
        }

    except InferenceNotConfiguredError as e:
        logger.warning(f"Lead pipeline skipped: {e}")
        return {"status": "skipped", "reason": str(e)}

    except Exception as exc:
        logger.exception(f"Lead pipeline task error: {exc}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60)
        return {"status": "error", "error": str(exc)}

    finally:
        if db:
            db.close()
