"""API schemas."""

from trendjack_core.api.schemas.pipeline import (
    EntityRunRequest,
    EntityRunResponse,
    JobListResponse,
    JobResponse,
    KeywordLogResponse,
    LeadRunRequest,
    LeadRunResponse,
    LeadRunSummary,
    TrendRunResponse,
)

__all__ = [
    # Run schemas
    "EntityRunRequest",
    "EntityRunResponse",
    "KeywordLogResponse",
    "LeadRunRequest",
    "LeadRunResponse",
    "LeadRunSummary",
    "TrendRunResponse",
    # Job schemas
    "JobListResponse",
    "JobResponse",
]
