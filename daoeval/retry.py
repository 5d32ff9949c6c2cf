"""Bounded retry with linear backoff for calls that leave the process."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from daoeval.errors import RetryExhausted

log = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 2.0  # seconds


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    label: str,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
) -> T:
    """Await ``operation()`` up to *max_attempts* times.

    Sleeps ``base_delay * attempt`` seconds between attempts. Every exception
    counts as retryable. When the budget is spent, raises ``RetryExhausted``
    carrying *label* and the last error.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")
    last_error: BaseException | None = None
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            last_error = exc
            log.warning("%s attempt %d/%d failed: %s", label, attempt, max_attempts, exc)
            if attempt < max_attempts:
                delay = base_delay * attempt
                log.info("Retrying %s in %.1fs", label, delay)
                await asyncio.sleep(delay)
    assert last_error is not None
    raise RetryExhausted(label, max_attempts, last_error) from last_error
