"""Candidate deduplication against the durable ``lead_candidates`` table.

Each candidate is inserted inside its own SAVEPOINT. A unique-constraint
conflict means the (user, keyword, post) triple was seen on an earlier
run: the candidate is dropped without error, so re-running the pipeline
over the same window never pays for the same post twice. Any other
storage error is reported for that candidate alone.

Usage:
    dedup = CandidateDeduplicator(db=session)
    result = dedup.deduplicate(user_id, candidates)
    for candidate in result.novel:
        ...
"""

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from trendjack_core.domain.models import LeadCandidate
from trendjack_core.domain.services.candidate_filter import FilteredCandidate

logger = logging.getLogger(__name__)


@dataclass
class DedupResult:
    """Candidates seen for the first time, plus per-candidate store errors."""

    novel: list[FilteredCandidate] = field(default_factory=list)
    duplicates: int = 0
    errors: list[str] = field(default_factory=list)


class CandidateDeduplicator:
    """Turns filtered candidates into durable "seen" records."""

    def __init__(self, db: Session):
        """Initialize the deduplicator.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db

    def deduplicate(self, user_id: str, candidates: list[FilteredCandidate]) -> DedupResult:
        """Insert a LeadCandidate per candidate and keep only new ones.

        The surviving inserts are committed before returning, so they stay
        recorded even if scoring later fails.

        Args:
            user_id: Owner of the keyword the candidates belong to.
            candidates: Output of the candidate filter.

        Returns:
            DedupResult with novel candidates in input order.
        """
        result = DedupResult()

        for candidate in candidates:
            try:
                with self.db.begin_nested():
                    self.db.add(
                        LeadCandidate(
                            user_id=user_id,
                            keyword_id=candidate.keyword.id,
                            post_id=candidate.post.id,
                            reason=candidate.reason_text,
                        )
                    )
            except IntegrityError:
                result.duplicates += 1
                continue
            except SQLAlchemyError as e:
                logger.warning(f"Candidate insert failed for post {candidate.post.id}: {e}")
                result.errors.append(f"Candidate insert error for post {candidate.post.id}: {e}")
                continue

            result.novel.append(candidate)

        self.db.commit()
        return result


__all__ = ["CandidateDeduplicator", "DedupResult"]
