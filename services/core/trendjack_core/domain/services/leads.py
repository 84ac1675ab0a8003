"""Lead persistence for scored candidates.

A lead is created at most once per (user, post): the existence check
skips posts that are already leads, and the unique constraint catches
races between concurrent runs.

Usage:
    service = LeadsService(db=session)
    outcome = service.persist_scored(user_id, batch.scored, threshold=75)
    print(len(outcome.created), outcome.skipped_existing)
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from trendjack_core.domain.models import Lead, LeadStatus
from trendjack_core.domain.services.lead_scoring import ScoredCandidate
from trendjack_core.domain.services.usage import UsageReservation

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================


INTENT_THRESHOLD = 75

ERROR_LEADS_LIMIT = "Leads limit reached"

# Quadrant bands for the intent/fury matrix
QUADRANT_INTENT_THRESHOLD = 85
QUADRANT_FURY_THRESHOLD = 75


def quadrant_label(intent_score: int, fury_score: int) -> str:
    """Place a lead on the intent/fury matrix."""
    high_intent = intent_score >= QUADRANT_INTENT_THRESHOLD
    high_fury = fury_score >= QUADRANT_FURY_THRESHOLD
    if high_intent and high_fury:
        return "RED ZONE"
    if high_intent:
        return "High Intent"
    if high_fury:
        return "High Fury"
    return "Standard"


# =============================================================================
# RESULT
# =============================================================================


@dataclass
class PersistResult:
    """Outcome of persisting one keyword's scored candidates."""

    created: list[Lead] = field(default_factory=list)
    below_threshold: int = 0
    skipped_existing: int = 0
    errors: list[str] = field(default_factory=list)


# =============================================================================
# SERVICE
# =============================================================================


class LeadsService:
    """Service for creating leads from scored candidates."""

    def __init__(self, db: Session):
        """Initialize the leads service.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db

    def get_lead(self, user_id: str, post_id: int) -> Optional[Lead]:
        return self.db.scalars(
            select(Lead).where(Lead.user_id == user_id, Lead.post_id == post_id)
        ).first()

    def create_lead(self, user_id: str, scored: ScoredCandidate) -> Optional[Lead]:
        """Insert a lead inside a SAVEPOINT.

        Returns:
            The new Lead, or None if one already existed for (user, post).
        """
        response = scored.response
        candidate = scored.candidate
        fury_score = response.fury_score or 0

        analysis = response.model_dump()
        analysis["reasons"] = list(candidate.reasons)
        analysis["quadrant"] = quadrant_label(response.intent_score, fury_score)
        if scored.model_info:
            analysis["model_info"] = scored.model_info

        lead = Lead(
            user_id=user_id,
            keyword_id=candidate.keyword.id,
            post_id=candidate.post.id,
            intent_score=response.intent_score,
            fury_score=fury_score,
            pain_point=response.pain_point,
            suggested_reply=response.suggested_reply,
            pain_summary=response.pain_summary or "",
            primary_trigger=response.primary_trigger or "",
            sample_quote=response.sample_quote or "",
            ai_analysis=analysis,
            status=LeadStatus.NEW,
        )

        try:
            with self.db.begin_nested():
                self.db.add(lead)
        except IntegrityError:
            return None
        return lead

    def persist_scored(
        self,
        user_id: str,
        scored: list[ScoredCandidate],
        threshold: int = INTENT_THRESHOLD,
        reservation: Optional[UsageReservation] = None,
    ) -> PersistResult:
        """Create leads for every scored candidate at or above ``threshold``.

        Args:
            user_id: Owner of the leads.
            scored: Output of the batch scorer.
            threshold: Minimum intent score (inclusive).
            reservation: Optional lead-quota handle; one unit is acquired
                before each insert and released if nothing was inserted.
                Persisting stops once it is refused.

        Returns:
            PersistResult; created leads are committed.
        """
        result = PersistResult()

        for item in scored:
            if item.response.intent_score < threshold:
                result.below_threshold += 1
                continue

            post_id = item.candidate.post.id
            if self.get_lead(user_id, post_id) is not None:
                result.skipped_existing += 1
                continue

            if reservation is not None and not reservation.acquire():
                result.errors.append(ERROR_LEADS_LIMIT)
                break

            try:
                lead = self.create_lead(user_id, item)
            except SQLAlchemyError as e:
                logger.warning(f"Lead insert failed for post {post_id}: {e}")
                result.errors.append(f"Lead insert error for post {post_id}: {e}")
                if reservation is not None:
                    reservation.release()
                continue

            if lead is None:
                result.skipped_existing += 1
                if reservation is not None:
                    reservation.release()
                continue
            result.created.append(lead)

        self.db.commit()
        return result


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "ERROR_LEADS_LIMIT",
    "INTENT_THRESHOLD",
    "LeadsService",
    "PersistResult",
    "quadrant_label",
]
