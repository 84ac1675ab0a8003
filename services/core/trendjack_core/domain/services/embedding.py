"""Post embedding service.

Keeps ``post_embeddings`` current so the semantic matcher has vectors to
search. Posts are embedded once; the insert is duplicate-safe so two
workers racing on the same post leave exactly one row.

Usage:
    service = PostEmbeddingService(db=session, client=embeddings_client)
    result = service.embed_pending(limit=25)
    print(result.embedded, result.errors)
"""

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from trendjack_core.domain.models import PostEmbedding, RawPost
from trendjack_core.infrastructure.embeddings import EmbeddingsClient, EmbeddingsError

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================


DEFAULT_EMBED_BATCH = 25
MAX_EMBED_BATCH = 100

# Character cap on the text sent to the embeddings endpoint
MAX_EMBED_TEXT_LENGTH = 2000


def post_text(post: RawPost) -> str:
    """Text that represents a post in embedding space."""
    return f"{post.title or ''} {post.body or ''}"[:MAX_EMBED_TEXT_LENGTH]


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


# =============================================================================
# RESULT
# =============================================================================


@dataclass
class EmbedResult:
    """Outcome of one embedding pass."""

    processed: int = 0
    embedded: int = 0
    errors: list[str] = field(default_factory=list)


# =============================================================================
# SERVICE
# =============================================================================


class PostEmbeddingService:
    """Service that embeds posts missing from the vector index."""

    def __init__(
        self,
        db: Session,
        client: EmbeddingsClient,
        embed_fn: Optional[Callable[[str], Optional[list[float]]]] = None,
    ):
        """Initialize the service.

        Args:
            db: SQLAlchemy database session.
            client: Embeddings client.
            embed_fn: Optional replacement for ``client.embed`` (for
                example one wrapped with retries).
        """
        self.db = db
        self.client = client
        self._embed = embed_fn or client.embed

    def pending_posts(self, limit: int, community: Optional[str] = None) -> list[RawPost]:
        """Newest posts without an embedding row."""
        query = (
            select(RawPost)
            .outerjoin(PostEmbedding, PostEmbedding.post_id == RawPost.id)
            .where(PostEmbedding.id.is_(None))
        )
        if community:
            query = query.where(RawPost.community == community)
        query = query.order_by(RawPost.created_at.desc()).limit(limit)
        return list(self.db.scalars(query))

    def embed_pending(
        self,
        limit: int = DEFAULT_EMBED_BATCH,
        community: Optional[str] = None,
    ) -> EmbedResult:
        """Embed up to ``limit`` posts that have no vector yet.

        Args:
            limit: Maximum posts to embed (capped at 100).
            community: Restrict to one community.

        Returns:
            EmbedResult with counts and per-post error strings.
        """
        limit = max(1, min(limit, MAX_EMBED_BATCH))
        posts = self.pending_posts(limit, community)
        result = EmbedResult(processed=len(posts))

        for post in posts:
            text = post_text(post)
            try:
                vector = self._embed(text)
            except EmbeddingsError as e:
                result.errors.append(f"Post {post.id}: {e}")
                continue

            if vector is None:
                continue

            if self._insert(post.id, vector, content_hash(text)):
                result.embedded += 1

        self.db.commit()
        logger.info(
            f"Embedded {result.embedded}/{result.processed} posts"
            f" ({len(result.errors)} errors)"
        )
        return result

    def _insert(self, post_id: int, vector: list[float], digest: str) -> bool:
        try:
            with self.db.begin_nested():
                self.db.add(
                    PostEmbedding(
                        post_id=post_id,
                        embedding=vector,
                        content_hash=digest,
                        model=self.client.model,
                    )
                )
            return True
        except IntegrityError:
            # Another worker embedded it first
            return False


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "EmbedResult",
    "PostEmbeddingService",
    "content_hash",
    "post_text",
]
