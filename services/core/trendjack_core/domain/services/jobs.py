"""Job ledger service for TrendJack.

Follow-up work spawned by a batch run (for example embedding the posts
of a community that just produced candidates) is written here instead of
being fired and forgotten. The worker claims jobs atomically, and a
failing job is retried with exponential backoff without ever touching
the result of the run that queued it.

Usage:
    jobs = JobService(db=session)
    job, created = jobs.create_job_or_get(
        queue_name=QUEUE_EMBED,
        job_type=JOB_EMBED_POSTS,
        payload={"community": "saas"},
    )

    claimed = jobs.claim_next_job(QUEUE_EMBED)
    if claimed:
        try:
            ...
            jobs.complete_job(claimed.id)
        except Exception as e:
            jobs.fail_job(claimed.id, e)
"""

import hashlib
import json
import traceback
from datetime import timedelta
from typing import Any, Optional, Union

from sqlalchemy import or_
from sqlalchemy.orm import Session as DBSession

from trendjack_core.domain.models import Job, JobStatus, utcnow


# =============================================================================
# CONSTANTS
# =============================================================================


QUEUE_EMBED = "embed"
JOB_EMBED_POSTS = "embed_posts"

# Statuses that can be claimed for execution
CLAIMABLE_STATUSES = {JobStatus.QUEUED, JobStatus.RETRYING}

MAX_ERROR_LENGTH = 5000

BASE_BACKOFF_SECONDS = 60
MAX_BACKOFF_SECONDS = 3600
BACKOFF_MULTIPLIER = 2


# =============================================================================
# SERVICE
# =============================================================================


class JobService:
    """Service for job ledger operations."""

    def __init__(self, db: DBSession):
        """Initialize the job service.

        Args:
            db: SQLAlchemy database session.
        """
        self.db = db

    def compute_dedupe_key(
        self,
        queue_name: str,
        job_type: str,
        payload: dict[str, Any],
    ) -> str:
        """Hash of queue, type and canonical payload JSON.

        Identical jobs produce the same key, so a still-pending job is
        never queued twice.
        """
        canonical = json.dumps(
            {"queue": queue_name, "type": job_type, "payload": payload},
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(canonical.encode()).hexdigest()

    def create_job_or_get(
        self,
        queue_name: str,
        job_type: str,
        payload: dict[str, Any],
        max_attempts: int = 5,
    ) -> tuple[Job, bool]:
        """Create a job, or return the pending one with the same dedupe key.

        Returns:
            Tuple of (Job, created).
        """
        dedupe_key = self.compute_dedupe_key(queue_name, job_type, payload)
        existing = self.db.query(Job).filter(Job.dedupe_key == dedupe_key).first()
        if existing is not None:
            return existing, False

        job = Job(
            queue_name=queue_name,
            job_type=job_type,
            payload_json=payload,
            status=JobStatus.QUEUED,
            attempts=0,
            max_attempts=max_attempts,
            dedupe_key=dedupe_key,
        )
        self.db.add(job)
        self.db.flush()
        return job, True

    def get_job(self, job_id: int) -> Optional[Job]:
        return self.db.query(Job).filter(Job.id == job_id).first()

    def claim_job(self, job_id: int) -> bool:
        """Atomically move a job from queued/retrying to running.

        Only one worker can win the conditional update.
        """
        result = (
            self.db.query(Job)
            .filter(Job.id == job_id, Job.status.in_(CLAIMABLE_STATUSES))
            .update(
                {
                    Job.status: JobStatus.RUNNING,
                    Job.attempts: Job.attempts + 1,
                    Job.updated_at: utcnow(),
                },
                synchronize_session=False,
            )
        )
        self.db.flush()
        return result > 0

    def claim_next_job(
        self,
        queue_name: str,
        job_types: Optional[list[str]] = None,
    ) -> Optional[Job]:
        """Claim the oldest due job of a queue.

        Args:
            queue_name: The queue to claim from.
            job_types: Optional job types to restrict to.

        Returns:
            The claimed Job or None if nothing is due.
        """
        query = self.db.query(Job).filter(
            Job.queue_name == queue_name,
            Job.status.in_(CLAIMABLE_STATUSES),
            or_(Job.next_run_at.is_(None), Job.next_run_at <= utcnow()),
        )
        if job_types:
            query = query.filter(Job.job_type.in_(job_types))

        for job in query.order_by(Job.created_at.asc(), Job.id.asc()).limit(10).all():
            if self.claim_job(job.id):
                self.db.refresh(job)
                return job
        return None

    def complete_job(self, job_id: int) -> None:
        """Mark a job done and free its dedupe key for future runs."""
        self.db.query(Job).filter(Job.id == job_id).update(
            {
                Job.status: JobStatus.DONE,
                Job.dedupe_key: None,
                Job.last_error: None,
                Job.updated_at: utcnow(),
            },
            synchronize_session=False,
        )
        self.db.flush()

    def fail_job(
        self,
        job_id: int,
        error: Union[str, Exception],
        include_traceback: bool = False,
    ) -> None:
        """Mark a job retrying with backoff, or failed when out of attempts.

        Args:
            job_id: The job ID.
            error: The error message or exception.
            include_traceback: Whether to store the current traceback.
        """
        job = self.get_job(job_id)
        if job is None:
            return
        self.db.refresh(job)

        error_str = self.serialize_error(error, include_traceback)

        if job.attempts < job.max_attempts:
            next_run = utcnow() + timedelta(seconds=self._calculate_backoff(job.attempts))
            updates = {
                Job.status: JobStatus.RETRYING,
                Job.last_error: error_str,
                Job.next_run_at: next_run,
                Job.updated_at: utcnow(),
            }
        else:
            updates = {
                Job.status: JobStatus.FAILED,
                Job.last_error: error_str,
                Job.dedupe_key: None,
                Job.updated_at: utcnow(),
            }

        self.db.query(Job).filter(Job.id == job_id).update(updates, synchronize_session=False)
        self.db.flush()

    def _calculate_backoff(self, attempts: int) -> int:
        backoff = BASE_BACKOFF_SECONDS * (BACKOFF_MULTIPLIER ** max(attempts - 1, 0))
        return min(int(backoff), MAX_BACKOFF_SECONDS)

    def serialize_error(
        self,
        error: Union[str, Exception],
        include_traceback: bool = False,
    ) -> str:
        """Render an error for storage, truncated to MAX_ERROR_LENGTH."""
        if isinstance(error, Exception):
            if include_traceback:
                error_str = traceback.format_exc()
            else:
                error_str = f"{type(error).__name__}: {error}"
        else:
            error_str = str(error)

        if len(error_str) > MAX_ERROR_LENGTH:
            error_str = error_str[: MAX_ERROR_LENGTH - 3] + "..."
        return error_str

    def list_jobs(
        self,
        queue_name: Optional[str] = None,
        job_type: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> list[Job]:
        """List jobs, newest first, with optional filtering."""
        query = self._filtered(queue_name, job_type, status)
        return query.order_by(Job.created_at.desc(), Job.id.desc()).limit(limit).all()

    def count_jobs(
        self,
        queue_name: Optional[str] = None,
        job_type: Optional[str] = None,
        status: Optional[str] = None,
    ) -> int:
        return self._filtered(queue_name, job_type, status).count()

    def _filtered(self, queue_name, job_type, status):
        query = self.db.query(Job)
        if queue_name:
            query = query.filter(Job.queue_name == queue_name)
        if job_type:
            query = query.filter(Job.job_type == job_type)
        if status:
            query = query.filter(Job.status == status)
        return query


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "JOB_EMBED_POSTS",
    "QUEUE_EMBED",
    "JobService",
]
