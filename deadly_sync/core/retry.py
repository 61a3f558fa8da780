"""Retry utilities with exponential backoff for release downloads.

Both GitHub calls (release metadata and the archive download) go through
``retry_async`` so that a flaky connection or a 5xx from the CDN does not
fail the whole import on the first attempt.
"""

import asyncio
import logging
import random
from dataclasses import dataclass, field
from typing import Callable, TypeVar

import httpx

from deadly_sync.config import Settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    base_delay: float = 1.0  # Initial delay in seconds
    max_delay: float = 60.0
    exponential_base: float = 2.0
    jitter: float = 0.1  # +/- 10%
    retryable_exceptions: tuple = field(
        default_factory=lambda: (
            httpx.TimeoutException,
            httpx.NetworkError,
            ConnectionError,
            asyncio.TimeoutError,
        )
    )
    # HTTP errors are only retried on these status codes
    retryable_status_codes: tuple = field(
        default_factory=lambda: (429, 500, 502, 503, 504)
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryConfig":
        return cls(
            max_attempts=settings.max_retry_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
        )


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Calculate delay with exponential backoff and jitter."""
    delay = config.base_delay * (config.exponential_base ** attempt)
    delay = min(delay, config.max_delay)

    jitter_range = delay * config.jitter
    delay = delay + random.uniform(-jitter_range, jitter_range)

    return max(0, delay)


def is_retryable_exception(exc: Exception, config: RetryConfig) -> bool:
    """Check if an exception should trigger a retry."""
    if isinstance(exc, config.retryable_exceptions):
        return True

    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in config.retryable_status_codes

    return False


async def retry_async(
    func: Callable[..., T],
    *args,
    config: RetryConfig | None = None,
    **kwargs,
) -> T:
    """
    Retry an async function call with exponential backoff.

    Usage:
        release = await retry_async(client.fetch_latest_release, config=RetryConfig(max_attempts=5))
    """
    if config is None:
        config = RetryConfig()

    last_exception: Exception | None = None

    for attempt in range(config.max_attempts):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            last_exception = e

            if not is_retryable_exception(e, config):
                raise

            if attempt < config.max_attempts - 1:
                delay = calculate_delay(attempt, config)
                logger.warning(
                    f"Retry {attempt + 1}/{config.max_attempts} for {func.__name__} "
                    f"after {type(e).__name__}: {e}. Waiting {delay:.2f}s"
                )
                await asyncio.sleep(delay)
            else:
                logger.error(
                    f"All {config.max_attempts} attempts failed for {func.__name__}: {e}"
                )

    raise last_exception
