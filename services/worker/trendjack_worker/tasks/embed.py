"""Embedding tasks.

Keeps ``post_embeddings`` filled for the semantic matcher: posts without
a vector are embedded in small batches, each call retried on transient
endpoint errors.
"""

import logging
from typing import Any, Optional

from trendjack_worker.celery_app import app
from trendjack_worker.util.retry import NETWORK_RETRY, with_retry
from trendjack_worker.util.runtime import get_db_session, mark_run

logger = logging.getLogger(__name__)


def embed_posts(db: Any, settings: Any, limit: int, community: Optional[str] = None) -> Any:
    """Embed pending posts with a retrying client.

    Raises:
        EmbeddingsNotConfiguredError: If no embeddings endpoint is set.
    """
    from trendjack_core.domain.services.embedding import PostEmbeddingService
    from trendjack_core.infrastructure.embeddings import EmbeddingsClient

    client = EmbeddingsClient.from_settings(settings)
    service = PostEmbeddingService(
        db=db,
        client=client,
        embed_fn=with_retry(NETWORK_RETRY)(client.embed),
    )
    return service.embed_pending(limit=limit, community=community)


@app.task(name="embed.embed_pending_posts")
def embed_pending_posts(limit: int = 25, community: Optional[str] = None) -> dict[str, Any]:
    """Embed up to ``limit`` posts that have no vector yet.

    Args:
        limit: Posts per run (capped at 100).
        community: Restrict to one community.

    Returns:
        Dictionary with status and counts.
    """
    from trendjack_core.config import get_settings
    from trendjack_core.infrastructure.embeddings import EmbeddingsNotConfiguredError

    settings = get_settings()
    db = get_db_session()

    try:
        result = embed_posts(db, settings, limit, community)
        mark_run("embed.embed_pending_posts")
        return {
            "status": "success",
            "processed": result.processed,
            "embedded": result.embedded,
            "errors": result.errors,
        }

    except EmbeddingsNotConfiguredError as e:
        return {"status": "skipped", "reason": str(e)}

    except Exception as e:
        logger.exception(f"Embedding task error: {e}")
        return {"status": "error", "error": str(e)}

    finally:
        db.close()
