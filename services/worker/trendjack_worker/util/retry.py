"""Retry utilities for handling transient failures."""

import logging
import time
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

from trendjack_core.infrastructure.embeddings import EmbeddingsError

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        exponential_base: float = 2.0,
        retryable_exceptions: tuple = (Exception,),
    ) -> None:
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.retryable_exceptions = retryable_exceptions


def exponential_backoff(attempt: int, config: RetryConfig) -> float:
    """Delay before the attempt after ``attempt`` (1-based)."""
    delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    return min(delay, config.max_delay)


def with_retry(
    config: Optional[RetryConfig] = None,
    sleep: Optional[Callable[[float], None]] = None,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Decorator that retries retryable exceptions with exponential backoff.

    The last exception is re-raised once ``max_attempts`` is used up;
    anything not listed in ``retryable_exceptions`` propagates at once.
    """
    if config is None:
        config = RetryConfig()

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            for attempt in range(1, config.max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except config.retryable_exceptions as e:
                    if attempt == config.max_attempts:
                        raise
                    delay = exponential_backoff(attempt, config)
                    logger.warning(
                        f"{getattr(func, '__name__', 'call')} failed "
                        f"(attempt {attempt}/{config.max_attempts}), retrying in {delay:g}s: {e}"
                    )
                    (sleep or time.sleep)(delay)
            raise RuntimeError("Unexpected retry state")

        return wrapper

    return decorator


# Embedding endpoint hiccups: a few quick retries, then the post is skipped
NETWORK_RETRY = RetryConfig(
    max_attempts=3,
    base_delay=1.0,
    max_delay=30.0,
    exponential_base=2.0,
    retryable_exceptions=(EmbeddingsError,),
)
