"""Pytest configuration and fixtures for worker tests.

These fixtures enable testing Celery tasks without requiring:
- Running Redis/Celery
- Database connections
- Inference or embeddings endpoints
"""

import os
import sys
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

# Add worker and core packages to path
worker_path = Path(__file__).parent.parent
core_path = worker_path.parent / "core"
sys.path.insert(0, str(worker_path))
sys.path.insert(0, str(core_path))

# Set test environment variables before importing celery_app
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")


@pytest.fixture(scope="session")
def celery_config() -> dict[str, Any]:
    """Celery configuration for testing."""
    return {
        "broker_url": "memory://",
        "result_backend": "cache+memory://",
        "task_always_eager": True,
        "task_eager_propagates": True,
    }


@pytest.fixture
def mock_celery_app():
    """Celery app configured for eager execution."""
    from trendjack_worker.celery_app import app

    app.conf.update(
        task_always_eager=True,
        task_eager_propagates=True,
    )
    return app


@pytest.fixture
def mock_db_session():
    """Create a mock database session."""
    session = MagicMock()
    session.commit = MagicMock()
    session.rollback = MagicMock()
    session.close = MagicMock()
    return session


@pytest.fixture
def worker_settings():
    """Real settings with both AI endpoints configured."""
    from trendjack_core.config import Settings

    return Settings(
        database_url="sqlite:///:memory:",
        inference_url="http://inference.test",
        inference_model="test-model",
        embeddings_url="http://embed.test",
        embeddings_model="embed-small",
        log_json=False,
    )


@pytest.fixture
def unconfigured_settings():
    """Settings with no inference or embeddings endpoint."""
    from trendjack_core.config import Settings

    return Settings(
        database_url="sqlite:///:memory:",
        inference_url=None,
        inference_model=None,
        embeddings_url=None,
        embeddings_model=None,
        log_json=False,
    )
