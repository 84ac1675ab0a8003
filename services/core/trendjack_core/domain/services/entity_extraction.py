"""Entity extraction from news headlines.

Batches of headlines go to the chat model, which names the products,
brands and topics they mention. Each kept entity is upserted into
``global_entities`` and one mention is counted in ``entity_mentions``
for the day and source; EntityAnalysisService builds its daily series
from those counts.

Usage:
    service = EntityExtractionService(db=session, inference_client=client)
    result = await service.run(batch_size=20)
    print(result.extracted, [e["entity_name"] for e in result.entities])
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from trendjack_core.domain.models import EntityMention, GlobalEntity, NewsItem, utcnow
from trendjack_core.domain.services.inference import ChatMessage, InferenceClient, InferenceError
from trendjack_core.domain.services.response_parser import (
    EntityListParser,
    EntityListResult,
    ExtractedEntity,
)
from trendjack_core.observability.metrics import (
    AI_CALL_FAILURES,
    AI_CALLS_MADE,
    ENTITIES_EXTRACTED,
    get_collector,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================


DEFAULT_TITLE_BATCH = 20
DEFAULT_SOURCE = "news"
MIN_CONFIDENCE = 0.6
MAX_ENTITIES = 10

ERROR_NO_TITLES = "titles are required"

EXTRACTION_TEMPERATURE = 0.3
EXTRACTION_MAX_TOKENS = 1000

METRIC_LABELS = {"pipeline": "entities"}

EXTRACTION_PROMPT = """You are an expert trend analyst. Extract specific products, brands, technologies, concepts, or emerging topics from these article titles.

RULES:
- Ignore generic words like "review", "best", "guide", "how to" or bare years
- Focus on proper nouns, brand names, specific products, or unique concepts
- Return ONLY entities that represent real trends or topics people would search for
- Categorize each entity (SaaS, Health, Marketing, Finance, Tech, AI, E-commerce, etc.)
- Return at most {max_entities} entities, most specific first

Titles:
{titles}

Return a JSON array of objects with this exact format:
[{{"entity": "Cursor AI", "category": "SaaS", "confidence": 0.95}}, ...]"""


def build_extraction_prompt(titles: list[str], max_entities: int = MAX_ENTITIES) -> str:
    return EXTRACTION_PROMPT.format(titles="\n".join(titles), max_entities=max_entities)


# =============================================================================
# RESULT
# =============================================================================


@dataclass
class ExtractionResult:
    """Outcome of one extraction pass."""

    success: bool
    titles_processed: int = 0
    dropped: int = 0
    entities: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def extracted(self) -> int:
        return len(self.entities)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "titles_processed": self.titles_processed,
            "extracted": self.extracted,
            "dropped": self.dropped,
            "entities": self.entities,
            "errors": self.errors,
            "error": self.error,
        }


# =============================================================================
# SERVICE
# =============================================================================


class EntityExtractionService:
    """Extracts entities from headlines and records their mentions."""

    def __init__(
        self,
        db: Session,
        inference_client: InferenceClient,
        min_confidence: float = MIN_CONFIDENCE,
        timeout: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the extraction service.

        Args:
            db: SQLAlchemy database session.
            inference_client: Chat client used for extraction.
            min_confidence: Entities at or below this confidence are dropped.
            timeout: Optional deadline in seconds for the model call.
            clock: Returns the current naive-UTC time.
        """
        self.db = db
        self.inference_client = inference_client
        self.parser = EntityListParser(min_confidence=min_confidence)
        self.timeout = timeout
        self.clock = clock or utcnow
        self.metrics = get_collector()

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------

    def fetch_pending(self, batch_size: int) -> list[NewsItem]:
        """Newest headlines not yet sent for extraction."""
        return list(
            self.db.scalars(
                select(NewsItem)
                .where(NewsItem.entities_extracted_at.is_(None))
                .order_by(NewsItem.published_at.desc(), NewsItem.id.desc())
                .limit(batch_size)
            )
        )

    def find_entity(self, name: str) -> Optional[GlobalEntity]:
        return self.db.scalars(
            select(GlobalEntity).where(func.lower(GlobalEntity.entity_name) == name.lower())
        ).first()

    def upsert_entity(self, extracted: ExtractedEntity) -> tuple[GlobalEntity, bool]:
        """Create the entity or bump its 24h volume and category.

        Returns:
            (entity, created)
        """
        entity = self.find_entity(extracted.entity)
        if entity is None:
            entity = GlobalEntity(
                entity_name=extracted.entity,
                category=extracted.category,
                volume_24h=1,
                volume_7d=1,
                volume_30d=1,
            )
            try:
                with self.db.begin_nested():
                    self.db.add(entity)
                return entity, True
            except IntegrityError:
                # Inserted by a concurrent run
                entity = self.find_entity(extracted.entity)
                if entity is None:
                    raise

        self.db.execute(
            update(GlobalEntity)
            .where(GlobalEntity.id == entity.id)
            .values(volume_24h=GlobalEntity.volume_24h + 1, category=extracted.category)
            .execution_options(synchronize_session=False)
        )
        return entity, False

    def record_mention(self, entity_id: int, day: date, source: str) -> None:
        """Count one mention for (entity, day, source)."""
        bump = (
            update(EntityMention)
            .where(
                EntityMention.entity_id == entity_id,
                EntityMention.mention_date == day,
                EntityMention.source == source,
            )
            .values(mention_count=EntityMention.mention_count + 1)
            .execution_options(synchronize_session=False)
        )
        if self.db.execute(bump).rowcount > 0:
            return
        try:
            with self.db.begin_nested():
                self.db.add(
                    EntityMention(entity_id=entity_id, mention_date=day, source=source, mention_count=1)
                )
        except IntegrityError:
            self.db.execute(bump)

    def mark_extracted(self, items: list[NewsItem], now: datetime) -> None:
        ids = [item.id for item in items]
        if not ids:
            return
        self.db.execute(
            update(NewsItem)
            .where(NewsItem.id.in_(ids))
            .values(entities_extracted_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()

    # -------------------------------------------------------------------------
    # Extraction
    # -------------------------------------------------------------------------

    async def extract(self, titles: list[str]) -> EntityListResult:
        """Ask the model for entities in ``titles``.

        Returns:
            EntityListResult from the parser.

        Raises:
            InferenceError: On transport or server errors.
            asyncio.TimeoutError: When ``timeout`` elapses.
        """
        messages = [ChatMessage(role="user", content=build_extraction_prompt(titles))]
        call = self.inference_client.chat(
            messages,
            temperature=EXTRACTION_TEMPERATURE,
            max_tokens=EXTRACTION_MAX_TOKENS,
        )
        if self.timeout is not None:
            response = await asyncio.wait_for(call, timeout=self.timeout)
        else:
            response = await call
        return self.parser.parse(response.content)

    def store(self, entities: list[ExtractedEntity], source: str, now: datetime, result: ExtractionResult) -> None:
        """Upsert each entity once and count its mention; one commit per entity."""
        seen = set()
        for extracted in entities[:MAX_ENTITIES]:
            key = extracted.entity.lower()
            if key in seen:
                continue
            seen.add(key)

            try:
                entity, created = self.upsert_entity(extracted)
                self.record_mention(entity.id, now.date(), source)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.warning(f"Entity upsert failed for {extracted.entity!r}: {e}")
                result.errors.append(f"Entity {extracted.entity}: {e}")
                continue

            result.entities.append(
                {
                    "entity_id": entity.id,
                    "entity_name": entity.entity_name,
                    "category": extracted.category,
                    "created": created,
                }
            )
            self.metrics.increment(ENTITIES_EXTRACTED, labels=METRIC_LABELS)

    async def extract_titles(
        self,
        titles: list[str],
        source: str = DEFAULT_SOURCE,
        now: Optional[datetime] = None,
    ) -> ExtractionResult:
        """Extract and store entities for an explicit list of titles."""
        now = now or self.clock()
        titles = [title.strip() for title in titles if title and title.strip()]
        if not titles:
            return ExtractionResult(success=False, error=ERROR_NO_TITLES)

        result = ExtractionResult(success=True, titles_processed=len(titles))
        try:
            parsed = await self.extract(titles)
        except asyncio.TimeoutError:
            self.metrics.increment(AI_CALL_FAILURES, labels=METRIC_LABELS)
            result.success = False
            result.error = f"Timed out after {self.timeout:g}s"
            return result
        except InferenceError as e:
            self.metrics.increment(AI_CALL_FAILURES, labels=METRIC_LABELS)
            logger.error(f"Entity extraction call failed: {e}")
            result.success = False
            result.error = f"Inference error: {e}"
            return result

        self.metrics.increment(AI_CALLS_MADE, labels=METRIC_LABELS)
        if not parsed.ok:
            logger.warning(f"Entity extraction response rejected: {parsed.error}")
            result.errors.append(parsed.error)
            return result

        result.dropped = parsed.dropped
        self.store(parsed.entities, source, now, result)
        return result

    async def run(
        self,
        batch_size: int = DEFAULT_TITLE_BATCH,
        now: Optional[datetime] = None,
    ) -> ExtractionResult:
        """Extract entities from the newest unprocessed headlines.

        Headlines are stamped once the model has answered, even when the
        answer is unusable; a failed call leaves them for the next run.
        """
        now = now or self.clock()

        try:
            items = self.fetch_pending(batch_size)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to fetch news items: {e}")
            return ExtractionResult(success=False, error=f"Failed to fetch news items: {e}")

        usable = [item for item in items if item.title and item.title.strip()]
        if not usable:
            self.mark_extracted(items, now)
            return ExtractionResult(success=True)

        result = await self.extract_titles([item.title for item in usable], now=now)
        if result.success:
            self.mark_extracted(items, now)

        logger.info(
            f"Entity extraction complete: {result.extracted} entities "
            f"from {result.titles_processed} titles"
        )
        return result


__all__ = [
    "DEFAULT_SOURCE",
    "ERROR_NO_TITLES",
    "DEFAULT_TITLE_BATCH",
    "EntityExtractionService",
    "ExtractionResult",
    "build_extraction_prompt",
]
