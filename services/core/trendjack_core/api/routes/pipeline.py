"""Pipeline operations API routes.

Provides endpoints for:
- POST /pipeline/leads/run - Run one lead pipeline batch
- POST /pipeline/trends/run - Run one trend scoring pass
- POST /pipeline/entities/run - Run one entity analysis batch
- POST /pipeline/entities/extract - Extract entities from headlines
- GET /pipeline/jobs - List background jobs
- GET /pipeline/jobs/{id} - Get job details
"""

import asyncio
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from trendjack_core.api.deps import AppSettings, DBSession, Inference
from trendjack_core.api.schemas.pipeline import (
    EntityExtractRequest,
    EntityExtractResponse,
    EntityRunRequest,
    EntityRunResponse,
    JobListResponse,
    JobResponse,
    LeadRunRequest,
    LeadRunResponse,
    TrendRunResponse,
)
from trendjack_core.domain.models import Job
from trendjack_core.domain.services.entity_analysis import EntityAnalysisService
from trendjack_core.domain.services.entity_extraction import (
    ERROR_NO_TITLES,
    EntityExtractionService,
)
from trendjack_core.domain.services.jobs import JobService
from trendjack_core.domain.services.lead_pipeline import build_lead_pipeline
from trendjack_core.domain.services.trend_scoring import TrendScoringService
from trendjack_core.observability.logging import RunContext

router = APIRouter(prefix="/pipeline", tags=["pipeline"])


# =============================================================================
# Dependencies
# =============================================================================


def get_job_service(db: DBSession) -> JobService:
    """Get the job service."""
    return JobService(db=db)


JobServiceDep = Annotated[JobService, Depends(get_job_service)]


def to_job_response(job: Job) -> JobResponse:
    return JobResponse(
        id=job.id,
        queue_name=job.queue_name,
        job_type=job.job_type,
        payload=job.payload_json or {},
        status=job.status,
        attempts=job.attempts,
        max_attempts=job.max_attempts,
        next_run_at=job.next_run_at,
        last_error=job.last_error,
        created_at=job.created_at,
    )


# =============================================================================
# Runs
# =============================================================================


@router.post(
    "/leads/run",
    response_model=LeadRunResponse,
    summary="Run lead pipeline",
    description="Process one batch of keywords: filter, dedup, score and persist leads.",
)
def run_leads(
    db: DBSession,
    settings: AppSettings,
    inference_client: Inference,
    request: Optional[LeadRunRequest] = None,
):
    """Run one lead pipeline batch.

    Declared sync so it runs in the threadpool: the batch blocks on the
    Session and the quota updates, so it gets its own event loop there.
    The inference client is closed on that loop.
    """
    batch_size = request.batch_size if request else None
    service = build_lead_pipeline(db, inference_client, settings)

    async def run_batch():
        try:
            return await service.run(
                batch_size=batch_size,
                context=RunContext.start("api.pipeline.leads"),
            )
        finally:
            await inference_client.close()

    return asyncio.run(run_batch()).to_dict()


@router.post(
    "/trends/run",
    response_model=TrendRunResponse,
    summary="Run trend scoring",
    description="Score every enabled keyword against its hourly bucket history.",
)
def run_trends(db: DBSession, settings: AppSettings):
    """Run one trend scoring pass."""
    return TrendScoringService(db, settings).run().to_dict()


@router.post(
    "/entities/run",
    response_model=EntityRunResponse,
    summary="Run entity analysis",
    description="Recompute volumes, trend state and momentum for a batch of entities.",
)
def run_entities(db: DBSession, request: Optional[EntityRunRequest] = None):
    """Run one entity analysis batch."""
    request = request or EntityRunRequest()
    result = EntityAnalysisService(db).run(
        batch_size=request.batch_size,
        entity_id=request.entity_id,
    )
    return result.to_dict()


@router.post(
    "/entities/extract",
    response_model=EntityExtractResponse,
    summary="Extract entities",
    description="Ask the model for entities in the given headlines and count their mentions.",
)
def extract_entities(
    request: EntityExtractRequest,
    db: DBSession,
    settings: AppSettings,
    inference_client: Inference,
):
    """Extract entities from explicit titles. Sync for the same reason as run_leads."""
    service = EntityExtractionService(
        db,
        inference_client,
        min_confidence=settings.entity_min_confidence,
        timeout=settings.ai_call_timeout,
    )

    async def run_extraction():
        try:
            return await service.extract_titles(
                request.titles[:request.batch_size], source=request.source
            )
        finally:
            await inference_client.close()

    result = asyncio.run(run_extraction())
    if result.error == ERROR_NO_TITLES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)
    return result.to_dict()


# =============================================================================
# Jobs
# =============================================================================


@router.get(
    "/jobs",
    response_model=JobListResponse,
    summary="List jobs",
    description="Get a list of jobs with optional filtering by status, type or queue.",
)
def list_jobs(
    job_service: JobServiceDep,
    status_filter: Optional[str] = Query(None, alias="status", description="Filter by job status"),
    job_type: Optional[str] = Query(None, description="Filter by job type"),
    queue_name: Optional[str] = Query(None, description="Filter by queue name"),
    limit: int = Query(50, ge=1, le=200, description="Number of results"),
):
    """List jobs with optional filtering."""
    jobs = job_service.list_jobs(
        queue_name=queue_name, job_type=job_type, status=status_filter, limit=limit
    )
    total = job_service.count_jobs(queue_name=queue_name, job_type=job_type, status=status_filter)
    return JobListResponse(jobs=[to_job_response(job) for job in jobs], total=total)


@router.get(
    "/jobs/{job_id}",
    response_model=JobResponse,
    summary="Get job details",
)
def get_job(job_id: int, job_service: JobServiceDep):
    """Get details of a specific job."""
    job = job_service.get_job(job_id)
    if job is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found",
        )
    return to_job_response(job)
