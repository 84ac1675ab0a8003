"""Infrastructure components for TrendJack.

Clients for external services the pipelines consume.
"""

from trendjack_core.infrastructure.embeddings import (
    EmbeddingsClient,
    EmbeddingsError,
    EmbeddingsNotConfiguredError,
)

__all__ = [
    "EmbeddingsClient",
    "EmbeddingsError",
    "EmbeddingsNotConfiguredError",
]
