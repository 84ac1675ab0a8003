"""Domain models for TrendJack.

This module defines the SQLAlchemy ORM models for trend tracking and
lead scoring. User accounts live in the external auth store, so
``user_id`` columns hold the external identifier without a foreign key.
"""

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


# =============================================================================
# ENUMS
# =============================================================================


class LeadStatus(str):
    """Lead workflow status values."""

    NEW = "new"
    REVIEWED = "reviewed"
    CONTACTED = "contacted"
    IGNORED = "ignored"


class UsageType(str):
    """Usage counter kinds tracked per user and period."""

    AI_ANALYSIS = "ai_analysis"
    LEAD = "lead"


class JobStatus(str):
    """Job status values."""

    QUEUED = "queued"
    RUNNING = "running"
    RETRYING = "retrying"
    FAILED = "failed"
    DONE = "done"


# =============================================================================
# TRACKED SUBJECTS
# =============================================================================


class MonitoredKeyword(Base):
    """A keyword a user tracks for trends and leads."""

    __tablename__ = "monitored_keywords"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    keyword: Mapped[str] = mapped_column(String(255), nullable=False)
    related_community: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Round-robin key: oldest (or never) processed keywords go first
    last_processed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "keyword", name="uq_keyword_user"),
        Index("idx_keyword_rotation", "enabled", "last_processed_at"),
    )

    buckets: Mapped[list["TrendBucket"]] = relationship(
        back_populates="keyword", cascade="all, delete-orphan", passive_deletes=True
    )
    scores: Mapped[list["TrendScore"]] = relationship(
        back_populates="keyword", cascade="all, delete-orphan", passive_deletes=True
    )


class GlobalEntity(Base):
    """A cross-user entity (product, company, topic) with mention dynamics."""

    __tablename__ = "global_entities"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    entity_name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    category: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    volume_24h: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    volume_7d: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    volume_30d: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    z_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    growth_slope: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    trend_status: Mapped[str] = mapped_column(String(32), nullable=False, default="New")

    g_force: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    momentum_signal: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    prediction_label: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    last_analyzed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_entity_rotation", "last_analyzed_at"),)

    mentions: Mapped[list["EntityMention"]] = relationship(
        back_populates="entity", cascade="all, delete-orphan", passive_deletes=True
    )


class EntityMention(Base):
    """Daily mention count of an entity from one source."""

    __tablename__ = "entity_mentions"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    entity_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("global_entities.id", ondelete="CASCADE"), nullable=False
    )
    mention_date: Mapped[date] = mapped_column(Date, nullable=False)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default="news")
    mention_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("entity_id", "mention_date", "source", name="uq_entity_mention"),
        CheckConstraint("mention_count >= 0", name="ck_mention_count_non_negative"),
    )

    entity: Mapped["GlobalEntity"] = relationship(back_populates="mentions")


# =============================================================================
# TREND SERIES
# =============================================================================


class TrendBucket(Base):
    """Hour-aligned mention count for a keyword."""

    __tablename__ = "trend_buckets"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    keyword_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("monitored_keywords.id", ondelete="CASCADE"), nullable=False
    )
    bucket_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    news_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("keyword_id", "bucket_start", name="uq_trend_bucket"),
        CheckConstraint("news_count >= 0", name="ck_news_count_non_negative"),
    )

    keyword: Mapped["MonitoredKeyword"] = relationship(back_populates="buckets")


class TrendScore(Base):
    """Append-only snapshot of one trend analysis run for a keyword."""

    __tablename__ = "trend_scores"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    keyword_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("monitored_keywords.id", ondelete="CASCADE"), nullable=False
    )
    window_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=24)
    mean: Mapped[float] = mapped_column(Float, nullable=False)
    standard_deviation: Mapped[float] = mapped_column(Float, nullable=False)
    z_score: Mapped[float] = mapped_column(Float, nullable=False)
    heat_score: Mapped[float] = mapped_column(Float, nullable=False)
    snap_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    current_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    baseline_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    is_trending: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    calculated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_trend_score_keyword", "keyword_id", "calculated_at"),)

    keyword: Mapped["MonitoredKeyword"] = relationship(back_populates="scores")


class NewsItem(Base):
    """Headline linked to a keyword, used as recent-news prompt context."""

    __tablename__ = "news_items"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    keyword_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("monitored_keywords.id", ondelete="SET NULL"), nullable=True
    )
    url_hash: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False)
    published_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    entities_extracted_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_news_published", "published_at"),
        Index("idx_news_extraction_pending", "entities_extracted_at", "published_at"),
    )


# =============================================================================
# POSTS, CANDIDATES, LEADS
# =============================================================================


class RawPost(Base):
    """Externally sourced community post. Immutable once stored."""

    __tablename__ = "raw_posts"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    community: Mapped[str] = mapped_column(String(128), nullable=False)
    canonical_url: Mapped[str] = mapped_column(String(512), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(512), nullable=False, default="")
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    author: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    flair: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (Index("idx_post_community_time", "community", "created_at"),)

    embedding: Mapped[Optional["PostEmbedding"]] = relationship(
        back_populates="post", uselist=False
    )


class PostEmbedding(Base):
    """Stored embedding vector for a post, searched by the semantic matcher."""

    __tablename__ = "post_embeddings"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    post_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("raw_posts.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    embedding: Mapped[list] = mapped_column(JSON, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    model: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    post: Mapped["RawPost"] = relationship(back_populates="embedding")


class LeadCandidate(Base):
    """Dedup gate: one row per (user, keyword, post) ever considered."""

    __tablename__ = "lead_candidates"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    keyword_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("monitored_keywords.id", ondelete="CASCADE"), nullable=False
    )
    post_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("raw_posts.id", ondelete="CASCADE"), nullable=False
    )
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "keyword_id", "post_id", name="uq_lead_candidate"),
    )


class Lead(Base):
    """AI-graded post that cleared the intent threshold."""

    __tablename__ = "leads"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    keyword_id: Mapped[Optional[int]] = mapped_column(
        BigInteger, ForeignKey("monitored_keywords.id", ondelete="CASCADE"), nullable=True
    )
    post_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("raw_posts.id", ondelete="CASCADE"), nullable=False
    )

    intent_score: Mapped[int] = mapped_column(Integer, nullable=False)
    fury_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    pain_point: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    suggested_reply: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pain_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    primary_trigger: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    sample_quote: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ai_analysis: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    status: Mapped[str] = mapped_column(
        Enum("new", "reviewed", "contacted", "ignored", name="lead_status_enum"),
        nullable=False,
        default="new",
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (
        UniqueConstraint("user_id", "post_id", name="uq_lead_user_post"),
        CheckConstraint("intent_score >= 0 AND intent_score <= 100", name="ck_lead_intent"),
        CheckConstraint("fury_score >= 0 AND fury_score <= 100", name="ck_lead_fury"),
        Index("idx_lead_user_status", "user_id", "status"),
    )

    post: Mapped["RawPost"] = relationship()


# =============================================================================
# USER SETTINGS AND USAGE
# =============================================================================


class UserSettings(Base):
    """Per-user business context fed into scoring prompts."""

    __tablename__ = "user_settings"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    offer_context: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )


class UsageCounter(Base):
    """Per-user, per-month usage counters with plan ceilings."""

    __tablename__ = "usage_counters"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)

    ai_analyses_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_ai_analyses: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    leads_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_leads: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("user_id", "period_start", name="uq_usage_period"),
        CheckConstraint("ai_analyses_used >= 0", name="ck_ai_used_non_negative"),
        CheckConstraint("leads_used >= 0", name="ck_leads_used_non_negative"),
    )


# =============================================================================
# JOB LEDGER
# =============================================================================


class Job(Base):
    """Job ledger for follow-up work queued by batch runs."""

    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    queue_name: Mapped[str] = mapped_column(String(64), nullable=False)
    job_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload_json: Mapped[dict] = mapped_column(JSON, nullable=False)

    status: Mapped[str] = mapped_column(
        Enum("queued", "running", "retrying", "failed", "done", name="job_status_enum"),
        nullable=False,
        default="queued",
    )
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    next_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    dedupe_key: Mapped[Optional[str]] = mapped_column(String(256), nullable=True, unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    __table_args__ = (Index("idx_jobs_status", "status", "next_run_at"),)
