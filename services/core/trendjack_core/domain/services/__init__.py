"""Domain services for TrendJack."""

from trendjack_core.domain.services.entity_analysis import EntityAnalysisService
from trendjack_core.domain.services.entity_extraction import EntityExtractionService
from trendjack_core.domain.services.jobs import JobService
from trendjack_core.domain.services.lead_pipeline import LeadPipelineService
from trendjack_core.domain.services.trend_scoring import TrendScoringService
from trendjack_core.domain.services.usage import UsageLedger

__all__ = [
    "EntityAnalysisService",
    "EntityExtractionService",
    "JobService",
    "LeadPipelineService",
    "TrendScoringService",
    "UsageLedger",
]
