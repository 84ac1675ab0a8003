"""Pytest configuration and fixtures for TrendJack Core tests.

This module provides fixtures for:
- Database: SQLite in-memory with SAVEPOINT support
- HTTP client: AsyncClient for FastAPI testing
- Mocks: inference client returning canned completions
"""

from collections.abc import AsyncGenerator, Generator
from datetime import datetime
from typing import Callable
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool, create_engine, event
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, sessionmaker

from trendjack_core.config import Settings
from trendjack_core.domain.models import Base


# -----------------------------------------------------------------------------
# Test Settings
# -----------------------------------------------------------------------------


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings with safe defaults."""
    return Settings(
        database_url="sqlite:///:memory:",
        redis_url="redis://localhost:6379/15",
        inference_url="http://inference.test",
        inference_model="test-model",
        embeddings_url=None,
        embeddings_model=None,
        semantic_matching_enabled=False,
        fury_analysis_enabled=True,
        lead_batch_size=10,
        post_lookback_hours=48,
        intent_threshold=75,
        scoring_concurrency=3,
        ai_call_timeout=5,
        log_json=False,
    )


@pytest.fixture(autouse=True)
def reset_metrics() -> Generator[None, None, None]:
    """Start every test with an empty metrics collector."""
    from trendjack_core.observability.metrics import get_collector

    get_collector().reset()
    yield
    get_collector().reset()


# -----------------------------------------------------------------------------
# Synchronous Database Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def sync_engine():
    """Create a synchronous SQLite in-memory engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy
    # emit BEGIN itself and enable foreign keys
    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    # Temporarily override BigInteger to compile as INTEGER for SQLite
    # SQLite only supports autoincrement on INTEGER PRIMARY KEY
    from sqlalchemy.dialects import sqlite

    original_visit = sqlite.dialect.type_compiler_cls.visit_BIGINT
    sqlite.dialect.type_compiler_cls.visit_BIGINT = lambda self, type_, **kw: "INTEGER"

    Base.metadata.create_all(bind=engine)

    sqlite.dialect.type_compiler_cls.visit_BIGINT = original_visit

    yield engine

    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def sync_session_factory(sync_engine) -> sessionmaker[Session]:
    """Create a synchronous session factory."""
    return sessionmaker(
        bind=sync_engine,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
def db_session(sync_session_factory) -> Generator[Session, None, None]:
    """Create a synchronous database session for testing."""
    session = sync_session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


@pytest.fixture
def fail_insert(db_session) -> Generator[Callable[[type, int], None], None, None]:
    """Arm a storage error for the flush that inserts ``model`` for ``post_id``.

    The error is an OperationalError, not a constraint conflict, and fires
    once per armed pair.
    """
    armed: list[tuple[type, int]] = []

    def before_flush(session, flush_context, instances):
        for obj in session.new:
            for target in list(armed):
                model, post_id = target
                if isinstance(obj, model) and obj.post_id == post_id:
                    armed.remove(target)
                    raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    event.listen(db_session, "before_flush", before_flush)
    yield lambda model, post_id: armed.append((model, post_id))
    event.remove(db_session, "before_flush", before_flush)


# -----------------------------------------------------------------------------
# Clock
# -----------------------------------------------------------------------------


@pytest.fixture
def fixed_now() -> datetime:
    """A fixed naive-UTC reference time in the middle of a month."""
    return datetime(2026, 3, 15, 12, 0, 0)


# -----------------------------------------------------------------------------
# Inference Mocks
# -----------------------------------------------------------------------------


@pytest.fixture
def mock_inference_client() -> MagicMock:
    """Inference client whose ``chat`` returns a high-intent JSON verdict."""
    from tests.factories import make_chat_response

    client = MagicMock()
    client.chat = AsyncMock(
        return_value=make_chat_response(
            '{"intent_score": 90, "pain_point": "Manual invoicing", '
            '"suggested_reply": "I had the same issue, happy to share what worked.", '
            '"fury_score": 60, "pain_summary": "Slow tooling", '
            '"primary_trigger": "cost", "sample_quote": "this is killing me"}'
        )
    )
    client.close = AsyncMock()
    return client


# -----------------------------------------------------------------------------
# FastAPI Test Client Fixtures
# -----------------------------------------------------------------------------


@pytest.fixture
def test_app(test_settings, sync_session_factory, mock_inference_client) -> FastAPI:
    """Create a FastAPI test application with test settings and DB override."""
    from trendjack_core.api.deps import get_db, get_inference_client
    from trendjack_core.config import get_settings
    from trendjack_core.main import app

    app.state.settings = test_settings

    def override_get_db():
        session = sync_session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_inference_client] = lambda: mock_inference_client

    yield app

    app.dependency_overrides.clear()


@pytest.fixture
async def client(test_app) -> AsyncGenerator[AsyncClient, None]:
    """Create an async HTTP client for testing FastAPI endpoints."""
    async with AsyncClient(
        transport=ASGITransport(app=test_app),
        base_url="http://test",
    ) as ac:
        yield ac
