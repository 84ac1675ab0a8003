"""Lead pipeline orchestration.

One invocation processes up to ``batch_size`` enabled keywords, oldest
``last_processed_at`` first (never-processed keywords lead), so every
keyword gets its turn under a fixed per-run budget. Keywords run one
after another; only the AI calls inside a keyword are concurrent.

Per keyword:
    context -> recent posts -> lexical filter (+ semantic matches)
    -> dedup -> lead quota check -> AI scoring -> persist leads
    -> mark processed

Failures are isolated at the narrowest scope: a bad candidate is
dropped, a bad keyword is logged and still marked processed. Only an
unreachable store or an unreadable keyword list fails the whole run,
and even then the partial keyword logs are returned.

Usage:
    service = LeadPipelineService(db=session, scorer=LeadScorer(agent))
    result = await service.run(batch_size=10)
    print(result.to_dict())
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from sqlalchemy import or_, select
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from trendjack_core.config import Settings, get_settings
from trendjack_core.domain.models import (
    MonitoredKeyword,
    NewsItem,
    RawPost,
    UsageType,
    UserSettings,
    utcnow,
)
from trendjack_core.domain.services.candidate_filter import filter_posts
from trendjack_core.domain.services.deduplication import CandidateDeduplicator
from trendjack_core.domain.services.inference import InferenceClient
from trendjack_core.domain.services.jobs import JOB_EMBED_POSTS, QUEUE_EMBED, JobService
from trendjack_core.domain.services.lead_scoring import LeadScorer, LeadScoringAgent
from trendjack_core.domain.services.leads import ERROR_LEADS_LIMIT, LeadsService
from trendjack_core.domain.services.semantic_matcher import SemanticMatcher
from trendjack_core.domain.services.usage import UsageLedger
from trendjack_core.infrastructure.embeddings import EmbeddingsClient, EmbeddingsNotConfiguredError
from trendjack_core.observability.logging import RunContext, get_logger
from trendjack_core.observability.metrics import (
    LEAD_CANDIDATES_CREATED,
    LEAD_RUNS,
    LEADS_CREATED,
    get_collector,
)

logger = get_logger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================


DEFAULT_BATCH_SIZE = 10
NEWS_LOOKBACK_DAYS = 7
NEWS_CONTEXT_LIMIT = 8

ERROR_NO_LIMITS = "User tier limits not found"
ERROR_NO_COMMUNITY = "No related community configured"
ERROR_NO_POSTS = "No recent posts found"


# =============================================================================
# EXCEPTIONS
# =============================================================================


class LeadPipelineError(Exception):
    """Fatal pipeline error; carries the log of the keyword in flight."""

    def __init__(self, message: str, log: Optional["KeywordLog"] = None):
        super().__init__(message)
        self.log = log


# =============================================================================
# RESULTS
# =============================================================================


def _iso(moment: datetime) -> str:
    return moment.isoformat(timespec="seconds") + "Z"


@dataclass
class KeywordLog:
    """Per-keyword record, produced on success and on failure alike."""

    timestamp: str
    keyword: str
    keyword_id: int
    posts_analyzed: int = 0
    candidates_created: int = 0
    ai_calls_made: int = 0
    leads_created: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class PipelineSummary:
    keywords_processed: int = 0
    total_candidates_created: int = 0
    total_ai_calls_made: int = 0
    total_leads_created: int = 0

    @classmethod
    def from_logs(cls, logs: list[KeywordLog]) -> "PipelineSummary":
        return cls(
            keywords_processed=len(logs),
            total_candidates_created=sum(log.candidates_created for log in logs),
            total_ai_calls_made=sum(log.ai_calls_made for log in logs),
            total_leads_created=sum(log.leads_created for log in logs),
        )


@dataclass
class PipelineResult:
    """Structured summary of one pipeline invocation."""

    success: bool
    summary: PipelineSummary
    logs: list[KeywordLog]
    start_time: str
    end_time: str
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "success": self.success,
            "summary": asdict(self.summary),
            "logs": [log.to_dict() for log in self.logs],
            "start_time": self.start_time,
            "end_time": self.end_time,
        }
        if self.error is not None:
            data["error"] = self.error
        return data


# =============================================================================
# SERVICE
# =============================================================================


class LeadPipelineService:
    """Runs the filter, dedup, scoring and persistence pipeline."""

    def __init__(
        self,
        db: Session,
        scorer: LeadScorer,
        settings: Optional[Settings] = None,
        semantic_matcher: Optional[SemanticMatcher] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the pipeline.

        Args:
            db: SQLAlchemy database session.
            scorer: Batch scorer wrapping the AI agent.
            settings: Thresholds and lookbacks (defaults to app settings).
            semantic_matcher: Optional embedding-similarity augmentation.
            clock: Returns the current naive UTC datetime (for tests).
        """
        self.db = db
        self.scorer = scorer
        self.settings = settings or get_settings()
        self.semantic_matcher = semantic_matcher
        self._clock = clock or utcnow

        self.ledger = UsageLedger(db, clock=self._clock)
        self.deduplicator = CandidateDeduplicator(db)
        self.leads = LeadsService(db)
        self.jobs = JobService(db)
        self.metrics = get_collector()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def fetch_keywords(self, batch_size: int) -> list[MonitoredKeyword]:
        """Enabled keywords, least recently processed first, NULLs first."""
        query = (
            select(MonitoredKeyword)
            .where(MonitoredKeyword.enabled.is_(True))
            .order_by(
                MonitoredKeyword.last_processed_at.is_(None).desc(),
                MonitoredKeyword.last_processed_at.asc(),
                MonitoredKeyword.id.asc(),
            )
            .limit(batch_size)
        )
        return list(self.db.scalars(query))

    def fetch_offer_context(self, user_id: str) -> str:
        offer = self.db.scalars(
            select(UserSettings.offer_context).where(UserSettings.user_id == user_id)
        ).first()
        return offer or ""

    def fetch_news_context(self, keyword: MonitoredKeyword) -> str:
        """Recent headlines about the keyword as a numbered list."""
        cutoff = self._clock() - timedelta(days=NEWS_LOOKBACK_DAYS)
        items = self.db.scalars(
            select(NewsItem)
            .where(
                or_(
                    NewsItem.keyword_id == keyword.id,
                    NewsItem.title.ilike(f"%{keyword.keyword}%"),
                ),
                NewsItem.published_at >= cutoff,
            )
            .order_by(NewsItem.published_at.desc())
            .limit(NEWS_CONTEXT_LIMIT)
        ).all()
        return "\n".join(
            f"{index}. {item.title} ({item.published_at.date().isoformat()})"
            for index, item in enumerate(items, start=1)
        )

    def fetch_recent_posts(self, keyword: MonitoredKeyword) -> list[RawPost]:
        cutoff = self._clock() - timedelta(hours=self.settings.post_lookback_hours)
        return list(
            self.db.scalars(
                select(RawPost)
                .where(
                    RawPost.community == keyword.related_community,
                    RawPost.created_at >= cutoff,
                )
                .order_by(RawPost.created_at.desc())
            )
        )

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def mark_processed(self, keyword_id: int) -> None:
        keyword = self.db.get(MonitoredKeyword, keyword_id)
        if keyword is not None:
            keyword.last_processed_at = self._clock()
        self.db.commit()

    def enqueue_embedding(self, community: str) -> None:
        """Queue an embedding pass for a community; never fails the keyword."""
        try:
            self.jobs.create_job_or_get(
                queue_name=QUEUE_EMBED,
                job_type=JOB_EMBED_POSTS,
                payload={"community": community},
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Could not queue embedding job", community=community, error=str(e))

    # -------------------------------------------------------------------------
    # Keyword processing
    # -------------------------------------------------------------------------

    async def _process(self, keyword: MonitoredKeyword, log: KeywordLog) -> None:
        user_id = keyword.user_id

        limits = self.ledger.get_limits(user_id)
        if limits is None:
            log.errors.append(ERROR_NO_LIMITS)
            return

        if not keyword.related_community:
            log.errors.append(ERROR_NO_COMMUNITY)
            return

        posts = self.fetch_recent_posts(keyword)
        log.posts_analyzed = len(posts)
        if not posts:
            log.errors.append(ERROR_NO_POSTS)
            return

        offer_context = self.fetch_offer_context(user_id)
        news_context = self.fetch_news_context(keyword)

        candidates = filter_posts(posts, keyword)
        if self.semantic_matcher is not None:
            matched = self.semantic_matcher.augment(keyword, posts, candidates)
            candidates = matched.candidates
            if matched.error:
                log.errors.append(matched.error)

        dedup = self.deduplicator.deduplicate(user_id, candidates)
        log.candidates_created = len(dedup.novel)
        log.errors.extend(dedup.errors)
        self.metrics.increment(LEAD_CANDIDATES_CREATED, len(dedup.novel))

        if not dedup.novel:
            return

        if self.semantic_matcher is not None:
            self.enqueue_embedding(keyword.related_community)

        if limits.leads_exhausted:
            log.errors.append(ERROR_LEADS_LIMIT)
            return

        batch = await self.scorer.score_candidates(
            dedup.novel,
            remaining_quota=limits.remaining_ai_analyses,
            offer_context=offer_context,
            news_context=news_context,
            reservation=self.ledger.reservation(user_id, UsageType.AI_ANALYSIS),
        )
        log.ai_calls_made = batch.ai_calls_made
        log.errors.extend(batch.errors)

        persisted = self.leads.persist_scored(
            user_id,
            batch.scored,
            threshold=self.settings.intent_threshold,
            reservation=self.ledger.reservation(user_id, UsageType.LEAD),
        )
        log.leads_created = len(persisted.created)
        log.errors.extend(persisted.errors)
        self.metrics.increment(LEADS_CREATED, len(persisted.created))

    async def process_keyword(
        self,
        keyword: MonitoredKeyword,
        context: Optional[RunContext] = None,
    ) -> KeywordLog:
        """Run every pipeline stage for one keyword.

        The keyword is marked processed whatever happens.

        Raises:
            LeadPipelineError: If the store is unreachable.
        """
        keyword_id = keyword.id
        log = KeywordLog(
            timestamp=_iso(self._clock()),
            keyword=keyword.keyword,
            keyword_id=keyword_id,
        )
        ctx = (context or RunContext()).for_keyword(keyword_id, keyword.user_id)

        try:
            await self._process(keyword, log)
        except OperationalError as e:
            self.db.rollback()
            log.errors.append(f"Store unavailable: {e}")
            logger.error("Keyword aborted, store unavailable", context=ctx, exc_info=True)
            raise LeadPipelineError(str(e), log=log) from e
        except Exception as e:
            self.db.rollback()
            log.errors.append(f"Processing error: {e}")
            logger.error("Keyword processing failed", context=ctx, exc_info=True)

        try:
            self.mark_processed(keyword_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            log.errors.append(f"Could not mark keyword processed: {e}")
            raise LeadPipelineError(str(e), log=log) from e

        logger.info("Keyword processed", context=ctx, **log.to_dict())
        return log

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    async def run(
        self,
        batch_size: Optional[int] = None,
        context: Optional[RunContext] = None,
    ) -> PipelineResult:
        """Process one batch of keywords.

        Args:
            batch_size: Keywords to process (defaults to settings).
            context: Run context for structured logs.

        Returns:
            PipelineResult; ``success`` is False only for fatal errors.
        """
        batch_size = batch_size or self.settings.lead_batch_size
        context = context or RunContext.start("leads.run_pipeline")
        start_time = _iso(self._clock())
        logs: list[KeywordLog] = []
        self.metrics.increment(LEAD_RUNS)

        try:
            keywords = self.fetch_keywords(batch_size)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Could not fetch keywords", context=context, exc_info=True)
            return self._result(False, logs, start_time, f"Failed to fetch keywords: {e}")

        for keyword in keywords:
            try:
                logs.append(await self.process_keyword(keyword, context))
            except LeadPipelineError as e:
                if e.log is not None:
                    logs.append(e.log)
                return self._result(False, logs, start_time, str(e))

        result = self._result(True, logs, start_time)
        logger.info("Lead pipeline finished", context=context, **asdict(result.summary))
        return result

    def _result(
        self,
        success: bool,
        logs: list[KeywordLog],
        start_time: str,
        error: Optional[str] = None,
    ) -> PipelineResult:
        return PipelineResult(
            success=success,
            summary=PipelineSummary.from_logs(logs),
            logs=logs,
            start_time=start_time,
            end_time=_iso(self._clock()),
            error=error,
        )


# =============================================================================
# WIRING
# =============================================================================


def build_lead_pipeline(
    db: Session,
    inference_client: InferenceClient,
    settings: Optional[Settings] = None,
) -> LeadPipelineService:
    """Assemble the pipeline from settings.

    Semantic matching is attached only when enabled and the embeddings
    endpoint is configured.
    """
    settings = settings or get_settings()
    agent = LeadScoringAgent(
        inference_client,
        timeout=settings.ai_call_timeout,
        include_fury=settings.fury_analysis_enabled,
    )
    scorer = LeadScorer(agent, concurrency=settings.scoring_concurrency)

    matcher = None
    if settings.semantic_matching_enabled:
        try:
            matcher = SemanticMatcher(
                db,
                EmbeddingsClient.from_settings(settings),
                threshold=settings.semantic_match_threshold,
            )
        except EmbeddingsNotConfiguredError as e:
            logger.warning("Semantic matching disabled", error=str(e))

    return LeadPipelineService(db, scorer, settings=settings, semantic_matcher=matcher)


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "KeywordLog",
    "LeadPipelineError",
    "LeadPipelineService",
    "PipelineResult",
    "PipelineSummary",
    "build_lead_pipeline",
]
