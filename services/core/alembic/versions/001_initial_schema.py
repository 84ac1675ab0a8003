"""Initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates all tables for TrendJack:
- monitored_keywords
- global_entities, entity_mentions
- trend_buckets, trend_scores
- news_items
- raw_posts, post_embeddings
- lead_candidates, leads
- user_settings, usage_counters
- jobs
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Monitored keywords
    op.create_table(
        "monitored_keywords",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("keyword", sa.String(255), nullable=False),
        sa.Column("related_community", sa.String(128), nullable=True),
        sa.Column("enabled", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("last_processed_at", sa.DateTime, nullable=True),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("user_id", "keyword", name="uq_keyword_user"),
    )
    op.create_index(
        "idx_keyword_rotation", "monitored_keywords", ["enabled", "last_processed_at"]
    )

    # Global entities
    op.create_table(
        "global_entities",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("entity_name", sa.String(255), nullable=False, unique=True),
        sa.Column("category", sa.String(64), nullable=True),
        sa.Column("volume_24h", sa.Integer, nullable=False, server_default="0"),
        sa.Column("volume_7d", sa.Integer, nullable=False, server_default="0"),
        sa.Column("volume_30d", sa.Integer, nullable=False, server_default="0"),
        sa.Column("z_score", sa.Float, nullable=False, server_default="0"),
        sa.Column("growth_slope", sa.Float, nullable=False, server_default="0"),
        sa.Column("trend_status", sa.String(32), nullable=False, server_default="New"),
        sa.Column("g_force", sa.Float, nullable=False, server_default="0"),
        sa.Column("momentum_signal", sa.String(32), nullable=True),
        sa.Column("prediction_label", sa.String(32), nullable=True),
        sa.Column("last_analyzed_at", sa.DateTime, nullable=True),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_entity_rotation", "global_entities", ["last_analyzed_at"])

    # Entity mentions (daily counts per source)
    op.create_table(
        "entity_mentions",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "entity_id",
            sa.BigInteger,
            sa.ForeignKey("global_entities.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("mention_date", sa.Date, nullable=False),
        sa.Column("source", sa.String(32), nullable=False, server_default="news"),
        sa.Column("mention_count", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("entity_id", "mention_date", "source", name="uq_entity_mention"),
        sa.CheckConstraint("mention_count >= 0", name="ck_mention_count_non_negative"),
    )

    # Trend buckets (hour-aligned counts)
    op.create_table(
        "trend_buckets",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "keyword_id",
            sa.BigInteger,
            sa.ForeignKey("monitored_keywords.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("bucket_start", sa.DateTime, nullable=False),
        sa.Column("news_count", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("keyword_id", "bucket_start", name="uq_trend_bucket"),
        sa.CheckConstraint("news_count >= 0", name="ck_news_count_non_negative"),
    )

    # Trend scores (append-only snapshots)
    op.create_table(
        "trend_scores",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "keyword_id",
            sa.BigInteger,
            sa.ForeignKey("monitored_keywords.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("window_hours", sa.Integer, nullable=False, server_default="24"),
        sa.Column("mean", sa.Float, nullable=False),
        sa.Column("standard_deviation", sa.Float, nullable=False),
        sa.Column("z_score", sa.Float, nullable=False),
        sa.Column("heat_score", sa.Float, nullable=False),
        sa.Column("snap_score", sa.Float, nullable=False, server_default="0"),
        sa.Column("current_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("baseline_json", sa.JSON, nullable=False),
        sa.Column("is_trending", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "calculated_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_trend_score_keyword", "trend_scores", ["keyword_id", "calculated_at"])

    # News items
    op.create_table(
        "news_items",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "keyword_id",
            sa.BigInteger,
            sa.ForeignKey("monitored_keywords.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("url_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("url", sa.String(1024), nullable=True),
        sa.Column("title", sa.String(512), nullable=False),
        sa.Column("published_at", sa.DateTime, nullable=False),
    )
    op.create_index("idx_news_published", "news_items", ["published_at"])

    # Raw posts
    op.create_table(
        "raw_posts",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("community", sa.String(128), nullable=False),
        sa.Column("canonical_url", sa.String(512), nullable=False, unique=True),
        sa.Column("title", sa.String(512), nullable=False, server_default=""),
        sa.Column("body", sa.Text, nullable=True),
        sa.Column("author", sa.String(128), nullable=True),
        sa.Column("flair", sa.String(128), nullable=True),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
    )
    op.create_index("idx_post_community_time", "raw_posts", ["community", "created_at"])

    # Post embeddings
    op.create_table(
        "post_embeddings",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column(
            "post_id",
            sa.BigInteger,
            sa.ForeignKey("raw_posts.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("embedding", sa.JSON, nullable=False),
        sa.Column("content_hash", sa.String(64), nullable=False),
        sa.Column("model", sa.String(128), nullable=True),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
    )

    # Lead candidates (dedup gate)
    op.create_table(
        "lead_candidates",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "keyword_id",
            sa.BigInteger,
            sa.ForeignKey("monitored_keywords.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "post_id",
            sa.BigInteger,
            sa.ForeignKey("raw_posts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.UniqueConstraint("user_id", "keyword_id", "post_id", name="uq_lead_candidate"),
    )

    # Leads
    op.create_table(
        "leads",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column(
            "keyword_id",
            sa.BigInteger,
            sa.ForeignKey("monitored_keywords.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "post_id",
            sa.BigInteger,
            sa.ForeignKey("raw_posts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("intent_score", sa.Integer, nullable=False),
        sa.Column("fury_score", sa.Integer, nullable=False, server_default="0"),
        sa.Column("pain_point", sa.Text, nullable=True),
        sa.Column("suggested_reply", sa.Text, nullable=True),
        sa.Column("pain_summary", sa.Text, nullable=True),
        sa.Column("primary_trigger", sa.String(255), nullable=True),
        sa.Column("sample_quote", sa.Text, nullable=True),
        sa.Column("ai_analysis", sa.JSON, nullable=True),
        sa.Column(
            "status",
            sa.Enum("new", "reviewed", "contacted", "ignored", name="lead_status_enum"),
            nullable=False,
            server_default="new",
        ),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at",
            sa.DateTime,
            nullable=False,
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
        ),
        sa.UniqueConstraint("user_id", "post_id", name="uq_lead_user_post"),
        sa.CheckConstraint("intent_score >= 0 AND intent_score <= 100", name="ck_lead_intent"),
        sa.CheckConstraint("fury_score >= 0 AND fury_score <= 100", name="ck_lead_fury"),
    )
    op.create_index("idx_lead_user_status", "leads", ["user_id", "status"])

    # User settings
    op.create_table(
        "user_settings",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False, unique=True),
        sa.Column("offer_context", sa.Text, nullable=True),
        sa.Column(
            "updated_at",
            sa.DateTime,
            nullable=False,
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
        ),
    )

    # Usage counters
    op.create_table(
        "usage_counters",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("period_start", sa.Date, nullable=False),
        sa.Column("ai_analyses_used", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_ai_analyses", sa.Integer, nullable=False, server_default="0"),
        sa.Column("leads_used", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_leads", sa.Integer, nullable=False, server_default="0"),
        sa.UniqueConstraint("user_id", "period_start", name="uq_usage_period"),
        sa.CheckConstraint("ai_analyses_used >= 0", name="ck_ai_used_non_negative"),
        sa.CheckConstraint("leads_used >= 0", name="ck_leads_used_non_negative"),
    )

    # Jobs ledger
    op.create_table(
        "jobs",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=True),
        sa.Column("queue_name", sa.String(64), nullable=False),
        sa.Column("job_type", sa.String(64), nullable=False),
        sa.Column("payload_json", sa.JSON, nullable=False),
        sa.Column(
            "status",
            sa.Enum("queued", "running", "retrying", "failed", "done", name="job_status_enum"),
            nullable=False,
            server_default="queued",
        ),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default="5"),
        sa.Column("next_run_at", sa.DateTime, nullable=True),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("dedupe_key", sa.String(256), nullable=True, unique=True),
        sa.Column(
            "created_at", sa.DateTime, nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at",
            sa.DateTime,
            nullable=False,
            server_default=sa.func.now(),
            onupdate=sa.func.now(),
        ),
    )
    op.create_index("idx_jobs_status", "jobs", ["status", "next_run_at"])


def downgrade() -> None:
    # Drop tables in reverse order of creation (respecting foreign keys)
    op.drop_table("jobs")
    op.drop_table("usage_counters")
    op.drop_table("user_settings")
    op.drop_table("leads")
    op.drop_table("lead_candidates")
    op.drop_table("post_embeddings")
    op.drop_table("raw_posts")
    op.drop_table("news_items")
    op.drop_table("trend_scores")
    op.drop_table("trend_buckets")
    op.drop_table("entity_mentions")
    op.drop_table("global_entities")
    op.drop_table("monitored_keywords")
