"""Trend tasks.

- trends.score_keywords: hourly z-score pass over keyword buckets
- trends.analyze_entities: rotating daily-series analysis of entities
- trends.extract_entities: AI entity extraction from news headlines
"""

import asyncio
import logging
from typing import Any, Optional

from trendjack_worker.celery_app import app
from trendjack_worker.util.runtime import get_db_session, mark_run

logger = logging.getLogger(__name__)


@app.task(
    bind=True,
    name="trends.score_keywords",
    max_retries=2,
    default_retry_delay=300,
)
def score_keywords(self) -> dict:
    """Append a TrendScore snapshot for every enabled keyword.

    Returns:
        dict: Status, counts and the trending keywords.
    """
    from trendjack_core.domain.services.trend_scoring import TrendScoringService

    db = None

    try:
        db = get_db_session()
        result = TrendScoringService(db).run()
        mark_run("trends.score_keywords")
        return {
            "status": "success" if result.success else "error",
            **result.to_dict(),
        }

    except Exception as exc:
        logger.exception(f"Trend scoring task error: {exc}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=300)
        return {"status": "error", "error": str(exc)}

    finally:
        if db:
            db.close()


@app.task(
    bind=True,
    name="trends.analyze_entities",
    max_retries=2,
    default_retry_delay=300,
)
def analyze_entities(
    self,
    batch_size: Optional[int] = None,
    entity_id: Optional[int] = None,
) -> dict:
    """Analyze the least recently analyzed entities.

    Args:
        batch_size: Entities per run; defaults to ENTITY_BATCH_SIZE.
        entity_id: Analyze only this entity.

    Returns:
        dict: Status and per-entity results.
    """
    from trendjack_core.config import get_settings
    from trendjack_core.domain.services.entity_analysis import EntityAnalysisService

    db = None

    try:
        db = get_db_session()
        batch_size = batch_size or get_settings().entity_batch_size
        result = EntityAnalysisService(db).run(batch_size=batch_size, entity_id=entity_id)
        mark_run("trends.analyze_entities")
        return {
            "status": "success" if result.success else "error",
            **result.to_dict(),
        }

    except Exception as exc:
        logger.exception(f"Entity analysis task error: {exc}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=300)
        return {"status": "error", "error": str(exc)}

    finally:
        if db:
            db.close()


async def _extract_batch(
    db: Any,
    settings: Any,
    batch_size: int,
    titles: Optional[list[str]],
    source: str,
) -> Any:
    """Run one extraction pass around a fresh inference client."""
    from trendjack_core.domain.services.entity_extraction import EntityExtractionService
    from trendjack_core.domain.services.inference import InferenceClient

    client = InferenceClient.from_settings(settings)
    try:
        service = EntityExtractionService(
            db,
            client,
            min_confidence=settings.entity_min_confidence,
            timeout=settings.ai_call_timeout,
        )
        if titles:
            return await service.extract_titles(titles[:batch_size], source=source)
        return await service.run(batch_size=batch_size)
    finally:
        await client.close()


@app.task(
    bind=True,
    name="trends.extract_entities",
    max_retries=2,
    default_retry_delay=300,
)
def extract_entities(
    self,
    batch_size: Optional[int] = None,
    titles: Optional[list[str]] = None,
    source: str = "news",
) -> dict:
    """Extract entities from headlines into the global entity table.

    Args:
        batch_size: Titles per run; defaults to ENTITY_EXTRACT_BATCH_SIZE.
        titles: Explicit titles; when omitted, pending news items are used.
        source: Mention source recorded for explicit titles.

    Returns:
        dict: Status plus the extracted entities.
    """
    from trendjack_core.config import get_settings
    from trendjack_core.domain.services.inference import InferenceNotConfiguredError

    db = None

    try:
        db = get_db_session()
        settings = get_settings()
        batch_size = batch_size or settings.entity_extract_batch_size

        result = asyncio.run(_extract_batch(db, settings, batch_size, titles, source))
        mark_run("trends.extract_entities")
        return {
            "status": "success" if result.success else "error",
            **result.to_dict(),
        }

    except InferenceNotConfiguredError as e:
        logger.warning(f"Entity extraction skipped: {e}")
        return {"status": "skipped", "reason": str(e)}

    except Exception as exc:
        logger.exception(f"Entity extraction task error: {exc}")
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=300)
        return {"status": "error", "error": str(exc)}

    finally:
        if db:
            db.close()
