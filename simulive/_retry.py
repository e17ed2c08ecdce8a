"""Retry with exponential backoff for transient document store failures.

Only store errors carrying a transient code (``unavailable``,
``deadline-exceeded``, ``resource-exhausted``) are retried; other store
errors (``permission-denied``, ``not-found``, ...) propagate immediately.
Errors that do not come from the store are treated as transient.
"""

from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING, TypeVar

from simulive._constants import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_BASE_DELAY_S,
    DEFAULT_RETRY_JITTER_S,
    DEFAULT_RETRY_MAX_DELAY_S,
)
from simulive.exceptions import DocumentStoreError
from simulive.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")

logger = get_logger("retry")


def is_retryable(exc: BaseException) -> bool:
    """True if ``exc`` is worth another attempt."""
    if isinstance(exc, DocumentStoreError):
        return exc.retryable
    return isinstance(exc, Exception)


def backoff_delay(
    attempt: int,
    *,
    base_delay_s: float,
    max_delay_s: float,
    jitter_s: float = 0.0,
) -> float:
    """Delay before retry number ``attempt`` (0-based), capped at ``max_delay_s``."""
    delay = base_delay_s * (2**attempt)
    if jitter_s > 0:
        delay += random.uniform(0, jitter_s)
    return min(delay, max_delay_s)


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    base_delay_s: float = DEFAULT_RETRY_BASE_DELAY_S,
    max_delay_s: float = DEFAULT_RETRY_MAX_DELAY_S,
    jitter_s: float = DEFAULT_RETRY_JITTER_S,
    operation_name: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``operation`` with up to ``max_retries`` retries.

    Args:
        operation: Zero-argument coroutine factory (called once per attempt).
        max_retries: Retries after the first attempt (0 = single attempt).
        base_delay_s: Delay before the first retry; doubles per attempt.
        max_delay_s: Upper bound for any single delay.
        jitter_s: Uniform random jitter added to each delay.
        operation_name: Name used in log events.
        sleep: Sleep function (injectable for deterministic tests).

    Returns:
        The operation result.

    Raises:
        The last error once retries are exhausted, or the first
        non-retryable error.
    """
    attempt = 0
    while True:
        try:
            return await operation()
        except Exception as exc:
            if not is_retryable(exc) or attempt >= max_retries:
                raise
            delay = backoff_delay(
                attempt,
                base_delay_s=base_delay_s,
                max_delay_s=max_delay_s,
                jitter_s=jitter_s,
            )
            logger.warning(
                "operation_retry",
                operation=operation_name,
                attempt=attempt + 1,
                max_retries=max_retries,
                delay_s=round(delay, 3),
                error=str(exc),
            )
            await sleep(delay)
            attempt += 1
