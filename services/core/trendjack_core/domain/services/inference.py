"""Inference client for the AI completion service.

Talks to any OpenAI-compatible ``/v1/chat/completions`` endpoint
(OpenRouter, vLLM, llama.cpp). The service is a black box: prompt in,
text out, and it may fail.

Usage:
    client = InferenceClient.from_settings(get_settings())

    messages = [
        ChatMessage(role="system", content="You are a lead analyst."),
        ChatMessage(role="user", content=prompt),
    ]

    response = await client.chat(messages)
    print(response.content)
    print(response.model_info.to_dict())

    await client.close()
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse

import httpx

from trendjack_core.config import Settings

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class InferenceError(Exception):
    """Base exception for inference errors."""

    pass


class ConnectionInferenceError(InferenceError):
    """Connection error during inference."""

    pass


class TimeoutInferenceError(InferenceError):
    """Timeout during inference."""

    pass


class ResponseInferenceError(InferenceError):
    """Invalid or malformed response from the inference server."""

    pass


class InferenceNotConfiguredError(InferenceError):
    """No inference endpoint is configured."""

    pass


# =============================================================================
# DATA CLASSES
# =============================================================================


@dataclass
class InferenceConfig:
    """Configuration for the inference client.

    Attributes:
        base_url: URL of the inference server (e.g., https://openrouter.ai/api)
        model_name: Name of the model to use
        timeout: HTTP request timeout in seconds
        max_tokens: Maximum tokens to generate
        temperature: Sampling temperature
        api_key: Optional bearer token
    """

    base_url: str
    model_name: str = "default"
    timeout: float = 120.0
    max_tokens: int = 1024
    temperature: float = 0.3
    api_key: Optional[str] = None


@dataclass
class ChatMessage:
    """A message in a chat conversation."""

    role: str  # "system", "user", "assistant"
    content: str


@dataclass
class ModelInfo:
    """Information about the model and inference run, kept for auditing."""

    model_name: str
    provider: str
    temperature: float
    max_tokens: int
    input_tokens: int
    output_tokens: int
    latency_ms: int
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON storage."""
        return {
            "model_name": self.model_name,
            "provider": self.provider,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "latency_ms": self.latency_ms,
            **self.extra,
        }


@dataclass
class ChatResponse:
    """Response from a chat request."""

    content: str
    model_info: ModelInfo
    finish_reason: str


# =============================================================================
# INFERENCE CLIENT
# =============================================================================


class InferenceClient:
    """Async client for chat completions.

    One client is shared by every concurrent scoring call of a run; the
    underlying ``httpx.AsyncClient`` is created lazily and must be closed
    with ``close()``.
    """

    def __init__(self, config: InferenceConfig):
        self.config = config
        self._http_client: Optional[httpx.AsyncClient] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "InferenceClient":
        """Build a client from application settings.

        Raises:
            InferenceNotConfiguredError: If the URL or model is missing.
        """
        if not settings.inference_url or not settings.inference_model:
            raise InferenceNotConfiguredError("INFERENCE_URL and INFERENCE_MODEL are required")
        return cls(
            InferenceConfig(
                base_url=settings.inference_url,
                model_name=settings.inference_model,
                timeout=settings.inference_timeout,
                api_key=settings.inference_api_key,
            )
        )

    @property
    def provider(self) -> str:
        return urlparse(self.config.base_url).hostname or "unknown"

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            headers = {}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                headers=headers,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _make_request(
        self,
        messages: list[dict],
        temperature: float,
        max_tokens: int,
    ) -> dict:
        """Make a chat completion request to the server.

        Raises:
            InferenceError: On connection, timeout, or HTTP status errors
        """
        client = await self._get_http_client()

        payload = {
            "model": self.config.model_name,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        logger.debug(
            f"Chat request to {self.config.base_url} model={self.config.model_name}"
            f" messages={len(messages)}"
        )

        try:
            response = await client.post("/v1/chat/completions", json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.ConnectError as e:
            raise ConnectionInferenceError(f"Connection error: {e}") from e
        except httpx.TimeoutException as e:
            raise TimeoutInferenceError(f"Timeout error: {e}") from e
        except httpx.HTTPStatusError as e:
            raise InferenceError(f"HTTP error: {e}") from e
        except ValueError as e:
            raise ResponseInferenceError(f"Response is not JSON: {e}") from e

    async def chat(
        self,
        messages: list[ChatMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ChatResponse:
        """Send a chat request to the LLM.

        Args:
            messages: List of ChatMessage objects
            temperature: Override default temperature
            max_tokens: Override default max_tokens

        Returns:
            ChatResponse with content and model info

        Raises:
            InferenceError: On errors during inference
        """
        temp = temperature if temperature is not None else self.config.temperature
        tokens = max_tokens if max_tokens is not None else self.config.max_tokens

        message_dicts = [{"role": m.role, "content": m.content} for m in messages]
        start_time = time.monotonic()

        try:
            response_data = await self._make_request(
                messages=message_dicts,
                temperature=temp,
                max_tokens=tokens,
            )
        except asyncio.TimeoutError as e:
            raise TimeoutInferenceError(f"Timeout error: {e}") from e

        elapsed_ms = int((time.monotonic() - start_time) * 1000)

        if "error" in response_data:
            error_info = response_data["error"]
            if isinstance(error_info, dict):
                error_msg = error_info.get("message", str(error_info))
            else:
                error_msg = str(error_info)
            logger.error(f"LLM server returned error: {error_msg}")
            raise ResponseInferenceError(f"LLM server error: {error_msg}")

        try:
            choices = response_data.get("choices", [])
            if not choices:
                raise ResponseInferenceError("Invalid response: no choices")

            choice = choices[0]
            content = (choice.get("message") or {}).get("content") or ""
            finish_reason = choice.get("finish_reason", "unknown")

            usage = response_data.get("usage") or {}
            input_tokens = usage.get("prompt_tokens", 0)
            output_tokens = usage.get("completion_tokens", 0)
        except (AttributeError, KeyError, IndexError, TypeError) as e:
            raise ResponseInferenceError(f"Invalid response format: {e}") from e

        model_info = ModelInfo(
            model_name=self.config.model_name,
            provider=self.provider,
            temperature=temp,
            max_tokens=tokens,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            latency_ms=elapsed_ms,
        )

        return ChatResponse(
            content=content,
            model_info=model_info,
            finish_reason=finish_reason,
        )


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "ChatMessage",
    "ChatResponse",
    "ConnectionInferenceError",
    "InferenceClient",
    "InferenceConfig",
    "InferenceError",
    "InferenceNotConfiguredError",
    "ModelInfo",
    "ResponseInferenceError",
    "TimeoutInferenceError",
]
