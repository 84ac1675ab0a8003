"""Pipeline API schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


# =============================================================================
# RUN REQUESTS
# =============================================================================


class LeadRunRequest(BaseModel):
    """Request schema for a lead pipeline run."""

    batch_size: Optional[int] = Field(
        default=None, ge=1, le=100, description="Keywords to process (defaults to settings)"
    )


class EntityRunRequest(BaseModel):
    """Request schema for an entity analysis run."""

    batch_size: int = Field(default=20, ge=1, le=200, description="Entities to analyze")
    entity_id: Optional[int] = Field(default=None, description="Analyze this entity only")


class EntityExtractRequest(BaseModel):
    """Request schema for extracting entities from explicit titles."""

    titles: list[str] = Field(..., min_length=1, description="Headlines to extract from")
    source: str = Field(default="news", max_length=32, description="Mention source")
    batch_size: int = Field(default=20, ge=1, le=100, description="Titles sent to the model")


# =============================================================================
# RUN RESPONSES
# =============================================================================


class KeywordLogResponse(BaseModel):
    """Per-keyword outcome of a lead pipeline run."""

    timestamp: str
    keyword: str
    keyword_id: int
    posts_analyzed: int
    candidates_created: int
    ai_calls_made: int
    leads_created: int
    errors: list[str]


class LeadRunSummary(BaseModel):
    keywords_processed: int
    total_candidates_created: int
    total_ai_calls_made: int
    total_leads_created: int


class LeadRunResponse(BaseModel):
    """Response schema for a lead pipeline run."""

    success: bool
    summary: LeadRunSummary
    logs: list[KeywordLogResponse]
    start_time: str
    end_time: str
    error: Optional[str] = None


class TrendRunResponse(BaseModel):
    """Response schema for a trend scoring run."""

    success: bool
    summary: dict[str, Any] = Field(..., description="Counts and trending keywords")
    logs: list[dict[str, Any]] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    error: Optional[str] = None


class EntityRunResponse(BaseModel):
    """Response schema for an entity analysis run."""

    success: bool
    analyzed: int
    results: list[dict[str, Any]] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    error: Optional[str] = None


class EntityExtractResponse(BaseModel):
    """Response schema for an entity extraction run."""

    success: bool
    titles_processed: int
    extracted: int
    dropped: int
    entities: list[dict[str, Any]] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    error: Optional[str] = None


# =============================================================================
# JOB SCHEMAS
# =============================================================================


class JobResponse(BaseModel):
    """Response schema for a background job."""

    id: int = Field(..., description="Job ID")
    queue_name: str = Field(..., description="Queue the job belongs to")
    job_type: str = Field(..., description="Job type")
    payload: dict[str, Any] = Field(default_factory=dict, description="Job payload")
    status: str = Field(..., description="Job status")
    attempts: int = Field(..., description="Attempts so far")
    max_attempts: int = Field(..., description="Attempts allowed")
    next_run_at: Optional[datetime] = Field(default=None, description="Earliest retry time")
    last_error: Optional[str] = Field(default=None, description="Last error message")
    created_at: datetime = Field(..., description="When the job was queued")


class JobListResponse(BaseModel):
    """Response schema for listing jobs."""

    jobs: list[JobResponse]
    total: int
