"""Usage ledger: per-user, per-month quota counters.

Every mutation is a single conditional ``UPDATE`` committed immediately,
so two worker processes scoring for the same user can never both spend
the last unit of budget. Reads are advisory; ``try_reserve`` is the gate.

Usage:
    ledger = UsageLedger(db=session)
    limits = ledger.get_limits(user_id)
    if limits and ledger.try_reserve(user_id, UsageType.AI_ANALYSIS):
        try:
            ...  # make the paid call
        except Exception:
            ledger.refund(user_id, UsageType.AI_ANALYSIS)
            raise
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from trendjack_core.domain.models import UsageCounter, UsageType, utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class UsageLimitError(Exception):
    """Raised when usage limits are missing or cannot be applied."""

    pass


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class UserLimits:
    """Snapshot of a user's counters for the current period."""

    current_ai_analyses: int
    max_ai_analyses: int
    current_leads: int
    max_leads: int

    @property
    def remaining_ai_analyses(self) -> int:
        return max(0, self.max_ai_analyses - self.current_ai_analyses)

    @property
    def remaining_leads(self) -> int:
        return max(0, self.max_leads - self.current_leads)

    @property
    def leads_exhausted(self) -> bool:
        return self.current_leads >= self.max_leads


def period_start_for(moment) -> date:
    """First day of the month containing ``moment``."""
    return date(moment.year, moment.month, 1)


# =============================================================================
# LEDGER
# =============================================================================


class UsageLedger:
    """Atomic reads and writes of ``usage_counters``."""

    _COLUMNS = {
        UsageType.AI_ANALYSIS: ("ai_analyses_used", "max_ai_analyses"),
        UsageType.LEAD: ("leads_used", "max_leads"),
    }

    def __init__(self, db: Session, clock: Optional[Callable] = None):
        """Initialize the ledger.

        Args:
            db: SQLAlchemy database session.
            clock: Returns the current naive UTC datetime (for tests).
        """
        self.db = db
        self._clock = clock or utcnow

    def _period(self) -> date:
        return period_start_for(self._clock())

    def _columns(self, usage_type: str):
        try:
            used_name, max_name = self._COLUMNS[usage_type]
        except KeyError:
            raise UsageLimitError(f"Unknown usage type: {usage_type}") from None
        return getattr(UsageCounter, used_name), getattr(UsageCounter, max_name)

    def _scoped(self, user_id: str):
        return (
            UsageCounter.user_id == user_id,
            UsageCounter.period_start == self._period(),
        )

    def get_limits(self, user_id: str) -> Optional[UserLimits]:
        """Current-period counters, or None when the user has no plan row."""
        counter = self.db.scalars(select(UsageCounter).where(*self._scoped(user_id))).first()
        if counter is None:
            return None
        return UserLimits(
            current_ai_analyses=counter.ai_analyses_used,
            max_ai_analyses=counter.max_ai_analyses,
            current_leads=counter.leads_used,
            max_leads=counter.max_leads,
        )

    def try_reserve(self, user_id: str, usage_type: str, amount: int = 1) -> bool:
        """Spend ``amount`` units only if they fit under the ceiling.

        Returns:
            True if the counter was incremented.
        """
        used, ceiling = self._columns(usage_type)
        stmt = (
            update(UsageCounter)
            .where(*self._scoped(user_id), used + amount <= ceiling)
            .values({used: used + amount})
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount > 0

    def refund(self, user_id: str, usage_type: str, amount: int = 1) -> bool:
        """Give back units reserved for work that did not happen."""
        used, _ = self._columns(usage_type)
        stmt = (
            update(UsageCounter)
            .where(*self._scoped(user_id), used >= amount)
            .values({used: used - amount})
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        return result.rowcount > 0

    def increment(self, usage_type: str, user_id: str, amount: int = 1) -> bool:
        """Record usage that already happened, regardless of the ceiling.

        Returns:
            False when the user has no counter row for the period.
        """
        used, _ = self._columns(usage_type)
        stmt = (
            update(UsageCounter)
            .where(*self._scoped(user_id))
            .values({used: used + amount})
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        self.db.commit()
        if result.rowcount == 0:
            logger.warning(f"No usage counter to increment for user {user_id} ({usage_type})")
            return False
        return True

    def reservation(self, user_id: str, usage_type: str) -> "UsageReservation":
        return UsageReservation(self, user_id, usage_type)


class UsageReservation:
    """Per-call budget handle passed into the scorer.

    ``acquire`` is called before each paid call is issued and ``release``
    when that call fails, so only successful calls stay counted.
    """

    def __init__(self, ledger: UsageLedger, user_id: str, usage_type: str):
        self.ledger = ledger
        self.user_id = user_id
        self.usage_type = usage_type
        self.acquired = 0
        self.released = 0

    def acquire(self) -> bool:
        if self.ledger.try_reserve(self.user_id, self.usage_type):
            self.acquired += 1
            return True
        return False

    def release(self) -> None:
        if self.ledger.refund(self.user_id, self.usage_type):
            self.released += 1

    @property
    def committed(self) -> int:
        return self.acquired - self.released


__all__ = [
    "UsageLedger",
    "UsageLimitError",
    "UsageReservation",
    "UserLimits",
    "period_start_for",
]
