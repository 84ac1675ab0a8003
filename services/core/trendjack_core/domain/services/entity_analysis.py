"""Entity trend analysis over daily mention counts.

Each pass takes the least recently analyzed entities, rebuilds a 31-day
daily series from ``entity_mentions`` (missing days count as zero) and
writes back volumes, z-score, growth slope, trend state and momentum.

Usage:
    service = EntityAnalysisService(db=session)
    result = service.run(batch_size=20)
    print(result.analyzed, [r["trend_status"] for r in result.results])
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from trendjack_core.domain.models import EntityMention, GlobalEntity, utcnow
from trendjack_core.domain.services.entity_dynamics import (
    calculate_trend_dynamics,
    classify_signal,
    prediction_label,
)
from trendjack_core.domain.services.statistics import (
    compute_mean,
    compute_std_dev,
    compute_z_score,
)
from trendjack_core.domain.services.trend_classifier import classify_trend, linear_regression

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================


DEFAULT_ENTITY_BATCH = 20
HISTORY_DAYS = 30
WEEK_DAYS = 7
MIN_HISTORY_POINTS = 2


# =============================================================================
# RESULTS
# =============================================================================


@dataclass
class EntityRunResult:
    success: bool
    analyzed: int = 0
    results: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "analyzed": self.analyzed,
            "results": self.results,
            "errors": self.errors,
            "error": self.error,
        }


def daily_series(mentions: dict[date, int], today: date) -> list[tuple[date, int]]:
    """31 (day, count) pairs from ``today - 30`` to ``today`` inclusive."""
    start = today - timedelta(days=HISTORY_DAYS)
    return [
        (start + timedelta(days=offset), mentions.get(start + timedelta(days=offset), 0))
        for offset in range(HISTORY_DAYS + 1)
    ]


def historical_z_score(latest: float, history: list[float]) -> float:
    """z-score of the latest day against the preceding days."""
    if len(history) < MIN_HISTORY_POINTS:
        return 0.0
    mean = compute_mean(history)
    return compute_z_score(latest, mean, compute_std_dev(history, mean))


# =============================================================================
# SERVICE
# =============================================================================


class EntityAnalysisService:
    """Rotating batch analysis of global entities."""

    def __init__(self, db: Session):
        self.db = db

    def fetch_entities(self, batch_size: int, entity_id: Optional[int] = None) -> list[GlobalEntity]:
        query = select(GlobalEntity)
        if entity_id is not None:
            query = query.where(GlobalEntity.id == entity_id).limit(1)
        else:
            query = query.order_by(
                GlobalEntity.last_analyzed_at.is_(None).desc(),
                GlobalEntity.last_analyzed_at.asc(),
                GlobalEntity.id.asc(),
            ).limit(batch_size)
        return list(self.db.scalars(query))

    def fetch_mentions(self, entity_id: int, since: date) -> dict[date, int]:
        """Daily totals across sources from ``since`` on."""
        rows = self.db.execute(
            select(EntityMention.mention_date, func.sum(EntityMention.mention_count))
            .where(EntityMention.entity_id == entity_id, EntityMention.mention_date >= since)
            .group_by(EntityMention.mention_date)
        ).all()
        return {mention_date: int(total) for mention_date, total in rows}

    def analyze_entity(self, entity: GlobalEntity, now: datetime) -> Optional[dict[str, Any]]:
        """Recompute and store one entity's statistics.

        Returns:
            Summary dict, or None when the entity has no recent mentions
            (it is still stamped so the rotation moves on).
        """
        today = now.date()
        mentions = self.fetch_mentions(entity.id, today - timedelta(days=HISTORY_DAYS))
        if not mentions:
            entity.last_analyzed_at = now
            return None

        series = daily_series(mentions, today)
        counts = [count for _, count in series]

        volume_24h = counts[-1]
        volume_7d = sum(counts[-WEEK_DAYS:])
        volume_30d = sum(counts)

        slope, r_squared = linear_regression([(float(i), float(c)) for i, c in enumerate(counts)])
        z_score = historical_z_score(volume_24h, counts[:-1])
        status = classify_trend(z_score, slope, r_squared, volume_24h)

        dynamics = calculate_trend_dynamics(series)
        signal = classify_signal(series)
        label = prediction_label(dynamics.g_force)

        entity.volume_24h = volume_24h
        entity.volume_7d = volume_7d
        entity.volume_30d = volume_30d
        entity.z_score = z_score
        entity.growth_slope = slope
        entity.trend_status = status.value
        entity.g_force = dynamics.g_force
        entity.momentum_signal = signal.value
        entity.prediction_label = label.value if label else None
        entity.last_analyzed_at = now

        return {
            "entity_id": entity.id,
            "entity_name": entity.entity_name,
            "volume_24h": volume_24h,
            "volume_7d": volume_7d,
            "volume_30d": volume_30d,
            "z_score": round(z_score, 2),
            "growth_slope": round(slope, 4),
            "r_squared": round(r_squared, 2),
            "trend_status": status.value,
            "g_force": dynamics.g_force,
            "momentum_signal": signal.value,
            "prediction_label": entity.prediction_label,
        }

    def run(
        self,
        batch_size: int = DEFAULT_ENTITY_BATCH,
        entity_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> EntityRunResult:
        """Analyze one batch of entities, or a single entity by id."""
        now = now or utcnow()
        result = EntityRunResult(success=True)

        try:
            entities = self.fetch_entities(batch_size, entity_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to fetch entities: {e}")
            return EntityRunResult(success=False, error=f"Failed to fetch entities: {e}")

        for entity in entities:
            key = entity.id
            try:
                summary = self.analyze_entity(entity, now)
                self.db.commit()
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.warning(f"Entity {key} analysis failed: {e}")
                result.errors.append(f"Entity {key}: {e}")
                continue
            if summary is not None:
                result.results.append(summary)

        result.analyzed = len(result.results)
        logger.info(f"Entity analysis complete: {result.analyzed}/{len(entities)} analyzed")
        return result


__all__ = [
    "EntityAnalysisService",
    "EntityRunResult",
    "daily_series",
    "historical_z_score",
]
