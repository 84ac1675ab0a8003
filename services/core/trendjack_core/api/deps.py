"""API dependencies for dependency injection."""

from typing import Annotated, AsyncGenerator

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from trendjack_core.config import Settings, get_settings
from trendjack_core.domain.services.inference import (
    InferenceClient,
    InferenceNotConfiguredError,
)
from trendjack_core.infra.db import get_sync_session_factory


def get_db() -> Session:
    """Get a database session."""
    session_factory = get_sync_session_factory()
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


async def get_inference_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> AsyncGenerator[InferenceClient, None]:
    """Get an inference client, closed when the request ends.

    Raises:
        HTTPException: If no inference endpoint is configured.
    """
    try:
        client = InferenceClient.from_settings(settings)
    except InferenceNotConfiguredError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        ) from e
    try:
        yield client
    finally:
        await client.close()


# Type aliases for cleaner route signatures
DBSession = Annotated[Session, Depends(get_db)]
AppSettings = Annotated[Settings, Depends(get_settings)]
Inference = Annotated[InferenceClient, Depends(get_inference_client)]
