"""API routes."""

from trendjack_core.api.routes import metrics, pipeline

__all__ = ["metrics", "pipeline"]
