"""Hourly trend scoring over keyword mention buckets.

Reads the last ``trend_history_days`` of hourly buckets for every enabled
keyword, runs the series statistics and appends one TrendScore row per
keyword. Scores are never updated in place; each run adds a snapshot.

Usage:
    service = TrendScoringService(db=session)
    result = service.run()
    for item in result.trending:
        print(item["keyword"], item["z_score"])
"""

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from trendjack_core.config import Settings, get_settings
from trendjack_core.domain.models import MonitoredKeyword, TrendBucket, TrendScore, utcnow
from trendjack_core.domain.services.statistics import analyze_series
from trendjack_core.observability.metrics import (
    TREND_SCORES_WRITTEN,
    TRENDING_KEYWORDS,
    get_collector,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================


# Keyword ids per bucket query and score rows per insert
CHUNK_SIZE = 50

ERROR_NO_HISTORY = "No historical data available"


def hour_start(moment: datetime) -> datetime:
    """Truncate a timestamp to the start of its hour."""
    return moment.replace(minute=0, second=0, microsecond=0)


# =============================================================================
# RESULTS
# =============================================================================


@dataclass
class TrendKeywordLog:
    timestamp: str
    keyword: str
    keyword_id: int
    window_hours: int
    current_count: int = 0
    baseline: float = 0.0
    heat_score: float = 0.0
    z_score: float = 0.0
    standard_deviation: float = 0.0
    is_trending: bool = False
    errors: list[str] = field(default_factory=list)


@dataclass
class TrendRunResult:
    """Summary of one trend scoring pass."""

    success: bool
    keywords_processed: int = 0
    scores_written: int = 0
    trending: list[dict[str, Any]] = field(default_factory=list)
    logs: list[TrendKeywordLog] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "summary": {
                "keywords_processed": self.keywords_processed,
                "scores_written": self.scores_written,
                "trending_keywords_found": len(self.trending),
                "trending_keywords": self.trending,
            },
            "logs": [asdict(log) for log in self.logs],
            "errors": self.errors,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "error": self.error,
        }


# =============================================================================
# SERVICE
# =============================================================================


class TrendScoringService:
    """Batch z-score analysis of keyword buckets."""

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.metrics = get_collector()

    # -------------------------------------------------------------------------
    # Buckets
    # -------------------------------------------------------------------------

    def upsert_bucket(self, keyword_id: int, timestamp: datetime, count: int) -> TrendBucket:
        """Set the count of the hour bucket containing ``timestamp``.

        There is at most one bucket per (keyword, hour); a concurrent
        insert of the same bucket falls back to updating it.
        """
        if count < 0:
            raise ValueError("Bucket count cannot be negative")

        bucket_start = hour_start(timestamp)
        query = select(TrendBucket).where(
            TrendBucket.keyword_id == keyword_id,
            TrendBucket.bucket_start == bucket_start,
        )

        bucket = self.db.scalars(query).first()
        if bucket is None:
            bucket = TrendBucket(keyword_id=keyword_id, bucket_start=bucket_start, news_count=count)
            try:
                with self.db.begin_nested():
                    self.db.add(bucket)
            except IntegrityError:
                bucket = self.db.scalars(query).one()
                bucket.news_count = count
        else:
            bucket.news_count = count

        self.db.commit()
        return bucket

    def fetch_buckets(
        self, keyword_ids: list[int], since: datetime
    ) -> dict[int, list[tuple[datetime, int]]]:
        """Bucket series per keyword, oldest first, queried in chunks."""
        grouped: dict[int, list[tuple[datetime, int]]] = defaultdict(list)

        for start in range(0, len(keyword_ids), CHUNK_SIZE):
            chunk = keyword_ids[start:start + CHUNK_SIZE]
            rows = self.db.execute(
                select(TrendBucket.keyword_id, TrendBucket.bucket_start, TrendBucket.news_count)
                .where(TrendBucket.keyword_id.in_(chunk), TrendBucket.bucket_start >= since)
                .order_by(TrendBucket.bucket_start.asc())
            ).all()
            for keyword_id, bucket_start, news_count in rows:
                grouped[keyword_id].append((bucket_start, news_count))

        return grouped

    def _insert_scores(self, scores: list[TrendScore]) -> tuple[int, list[str]]:
        written = 0
        errors = []
        for start in range(0, len(scores), CHUNK_SIZE):
            chunk = scores[start:start + CHUNK_SIZE]
            try:
                self.db.add_all(chunk)
                self.db.commit()
                written += len(chunk)
            except SQLAlchemyError as e:
                self.db.rollback()
                logger.error(f"Failed to insert trend scores: {e}")
                errors.append(f"Score insert error: {e}")
        return written, errors

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def run(self, now: Optional[datetime] = None) -> TrendRunResult:
        """Score every enabled keyword once.

        Args:
            now: Reference time (naive UTC); defaults to the current time.

        Returns:
            TrendRunResult; ``success`` is False if keywords or buckets
            could not be read.
        """
        now = now or utcnow()
        window_hours = self.settings.trend_window_hours
        result = TrendRunResult(success=True, start_time=now.isoformat())

        try:
            keywords = list(
                self.db.scalars(
                    select(MonitoredKeyword)
                    .where(MonitoredKeyword.enabled.is_(True))
                    .order_by(MonitoredKeyword.id)
                )
            )
            since = now - timedelta(days=self.settings.trend_history_days)
            grouped = self.fetch_buckets([kw.id for kw in keywords], since)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Trend scoring aborted: {e}")
            result.success = False
            result.error = str(e)
            result.end_time = utcnow().isoformat()
            return result

        scores = []
        for keyword in keywords:
            log = TrendKeywordLog(
                timestamp=utcnow().isoformat(),
                keyword=keyword.keyword,
                keyword_id=keyword.id,
                window_hours=window_hours,
            )
            result.logs.append(log)

            analysis = analyze_series(grouped.get(keyword.id, []), window_hours, now)
            if analysis is None:
                log.errors.append(ERROR_NO_HISTORY)
                continue

            log.current_count = analysis.current_count
            log.baseline = analysis.mean
            log.heat_score = analysis.heat_score
            log.z_score = analysis.z_score
            log.standard_deviation = analysis.std_dev
            log.is_trending = analysis.is_trending

            scores.append(
                TrendScore(
                    keyword_id=keyword.id,
                    window_hours=window_hours,
                    mean=analysis.mean,
                    standard_deviation=analysis.std_dev,
                    z_score=analysis.z_score,
                    heat_score=analysis.heat_score,
                    snap_score=analysis.snap_score,
                    current_count=analysis.current_count,
                    baseline_json=analysis.baseline_json(),
                    is_trending=analysis.is_trending,
                    calculated_at=now,
                )
            )
            if analysis.is_trending:
                result.trending.append(
                    {
                        "keyword": keyword.keyword,
                        "keyword_id": keyword.id,
                        "heat_score": analysis.heat_score,
                        "z_score": analysis.z_score,
                        "current_count": analysis.current_count,
                    }
                )

        result.scores_written, insert_errors = self._insert_scores(scores)
        result.errors.extend(insert_errors)
        result.keywords_processed = len(keywords)
        result.end_time = utcnow().isoformat()

        self.metrics.increment(TREND_SCORES_WRITTEN, result.scores_written)
        self.metrics.set_gauge(TRENDING_KEYWORDS, len(result.trending))
        logger.info(
            f"Trend scoring complete: {result.keywords_processed} keywords, "
            f"{len(result.trending)} trending"
        )
        return result


__all__ = [
    "CHUNK_SIZE",
    "TrendKeywordLog",
    "TrendRunResult",
    "TrendScoringService",
    "hour_start",
]
