"""Embeddings client for an OpenAI-compatible ``/v1/embeddings`` endpoint.

Usage:
    from trendjack_core.infrastructure.embeddings import EmbeddingsClient

    client = EmbeddingsClient(
        url="https://openrouter.ai/api",
        model="text-embedding-3-small",
        api_key="...",
    )

    vector = client.embed("standing desk recommendations")
    vectors = client.embed_batch(["first post", "second post"])
"""

from typing import Any, Optional, Union

import httpx

from trendjack_core.config import Settings


# =============================================================================
# EXCEPTIONS
# =============================================================================


class EmbeddingsError(Exception):
    """Base exception for embeddings-related errors."""

    pass


class EmbeddingsNotConfiguredError(EmbeddingsError):
    """No embeddings endpoint is configured."""

    pass


# =============================================================================
# CLIENT
# =============================================================================


class EmbeddingsClient:
    """Synchronous client for generating embedding vectors."""

    def __init__(
        self,
        url: str,
        model: str,
        api_key: Optional[str] = None,
        timeout: int = 60,
    ):
        """Initialize the embeddings client.

        Args:
            url: Base URL for the embeddings API.
            model: Model name to use for embeddings.
            api_key: Optional bearer token.
            timeout: Request timeout in seconds.
        """
        self.url = url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmbeddingsClient":
        if not settings.embeddings_url or not settings.embeddings_model:
            raise EmbeddingsNotConfiguredError("EMBEDDINGS_URL and EMBEDDINGS_MODEL are required")
        return cls(
            url=settings.embeddings_url,
            model=settings.embeddings_model,
            api_key=settings.embeddings_api_key,
        )

    def _get_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _request(self, payload_input: Union[str, list[str]]) -> list[dict[str, Any]]:
        try:
            with httpx.Client(timeout=self.timeout) as client:
                response = client.post(
                    f"{self.url}/v1/embeddings",
                    headers=self._get_headers(),
                    json={"input": payload_input, "model": self.model},
                )
        except httpx.TimeoutException as e:
            raise EmbeddingsError(f"Request timeout: {e}") from e
        except httpx.HTTPError as e:
            raise EmbeddingsError(f"Connection error: {e}") from e

        if response.status_code != 200:
            raise EmbeddingsError(f"API error: {response.status_code} - {response.text}")

        data = response.json()
        if not data.get("data"):
            raise EmbeddingsError("Invalid response format: missing 'data' field")

        # Some providers do not guarantee response order
        items = sorted(data["data"], key=lambda item: item.get("index", 0))
        for item in items:
            if item.get("embedding") is None:
                raise EmbeddingsError("Invalid response format: missing 'embedding' field")
        return items

    def embed(self, text: str) -> Optional[list[float]]:
        """Generate embedding for a single text.

        Returns:
            The embedding vector, or None if text is empty/whitespace.

        Raises:
            EmbeddingsError: If the API request fails.
        """
        if not text or not text.strip():
            return None
        return self._request(text)[0]["embedding"]

    def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for multiple texts in one request.

        Callers must pass non-empty texts; the result is index-aligned
        with the input.

        Raises:
            EmbeddingsError: If the API request fails or returns a
                different number of vectors than texts sent.
        """
        if not texts:
            return []
        items = self._request(texts)
        if len(items) != len(texts):
            raise EmbeddingsError(
                f"Expected {len(texts)} embeddings, got {len(items)}"
            )
        return [item["embedding"] for item in items]


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "EmbeddingsClient",
    "EmbeddingsError",
    "EmbeddingsNotConfiguredError",
]
