"""TrendJack Core API - Main Application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from trendjack_core.api.routes import metrics as metrics_routes
from trendjack_core.api.routes import pipeline as pipeline_routes
from trendjack_core.config import get_settings
from trendjack_core.observability.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name="trendjack-core",
    )
    app.state.settings = settings
    yield


app = FastAPI(
    title="TrendJack Core API",
    description="Trend detection and lead scoring pipelines",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(metrics_routes.router)
app.include_router(pipeline_routes.router)


@app.get("/healthz")
async def health_check() -> dict:
    """Health check endpoint."""
    return {"ok": True, "service": "trendjack-core"}


@app.get("/")
async def root() -> dict:
    """Root endpoint."""
    return {
        "name": "TrendJack Core API",
        "version": "0.1.0",
        "status": "running",
    }
