"""Embedding-similarity augmentation of the lexical candidate filter.

The keyword is embedded once and compared with the stored vectors of the
posts under consideration. Posts above the similarity threshold are tagged
``semantic_match: <score>``; posts the lexical filter missed become new
candidates.

Usage:
    matcher = SemanticMatcher(db=session, client=embeddings_client, threshold=0.78)
    outcome = matcher.augment(keyword, posts, lexical_candidates)
    candidates = outcome.candidates
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from trendjack_core.domain.models import MonitoredKeyword, PostEmbedding, RawPost
from trendjack_core.domain.services.candidate_filter import FilteredCandidate
from trendjack_core.infrastructure.embeddings import EmbeddingsClient, EmbeddingsError

logger = logging.getLogger(__name__)


DEFAULT_SIMILARITY_THRESHOLD = 0.78
SEMANTIC_REASON_PREFIX = "semantic_match: "


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors; 0 for mismatched or zero vectors."""
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot / (norm_a * norm_b)


@dataclass
class SemanticMatchResult:
    """Candidates after semantic augmentation."""

    candidates: list[FilteredCandidate] = field(default_factory=list)
    added: int = 0
    error: Optional[str] = None


class SemanticMatcher:
    """Adds embedding-similar posts to a keyword's candidate list."""

    def __init__(
        self,
        db: Session,
        client: EmbeddingsClient,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ):
        self.db = db
        self.client = client
        self.threshold = threshold

    def _stored_vectors(self, post_ids: list[int]) -> dict[int, list[float]]:
        if not post_ids:
            return {}
        rows = self.db.execute(
            select(PostEmbedding.post_id, PostEmbedding.embedding).where(
                PostEmbedding.post_id.in_(post_ids)
            )
        )
        return {post_id: vector for post_id, vector in rows}

    def augment(
        self,
        keyword: MonitoredKeyword,
        posts: Sequence[RawPost],
        candidates: list[FilteredCandidate],
    ) -> SemanticMatchResult:
        """Merge semantic matches into the lexical candidates.

        Args:
            keyword: Keyword whose text is embedded as the query.
            posts: Every post fetched for the keyword.
            candidates: Lexical candidates (returned unchanged on failure).

        Returns:
            SemanticMatchResult. On embeddings failure ``error`` is set and
            the lexical candidates are returned as they were.
        """
        try:
            query_vector = self.client.embed(keyword.keyword)
        except EmbeddingsError as e:
            logger.warning(f"Semantic matching skipped for keyword {keyword.id}: {e}")
            return SemanticMatchResult(candidates=candidates, error=f"Semantic matching error: {e}")

        if query_vector is None:
            return SemanticMatchResult(candidates=candidates)

        vectors = self._stored_vectors([post.id for post in posts])
        by_post = {candidate.post.id: candidate for candidate in candidates}
        merged = list(candidates)
        added = 0

        for post in posts:
            vector = vectors.get(post.id)
            if vector is None:
                continue

            score = cosine_similarity(query_vector, vector)
            if score < self.threshold:
                continue

            reason = f"{SEMANTIC_REASON_PREFIX}{score:.2f}"
            existing = by_post.get(post.id)
            if existing is not None:
                existing.reasons.append(reason)
            else:
                candidate = FilteredCandidate(post=post, keyword=keyword, reasons=[reason])
                by_post[post.id] = candidate
                merged.append(candidate)
                added += 1

        return SemanticMatchResult(candidates=merged, added=added)


__all__ = [
    "SemanticMatchResult",
    "SemanticMatcher",
    "cosine_similarity",
]
