"""Retry with exponential backoff for bank queries."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

import httpx

from app.core.errors import MissingIndexError, TransientSourceError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_ERRORS: tuple[str, ...] = (
    "unavailable",
    "deadline-exceeded",
    "resource-exhausted",
    "failed-precondition",
)

# Backend wording for a query that needs an index that does not exist yet
MISSING_INDEX_MESSAGES: tuple[str, ...] = (
    "requires an index",
    "missing index",
    "index is required",
)


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    initial_delay_ms: float = 1000
    max_delay_ms: float = 5000
    backoff_factor: float = 2
    retryable_errors: tuple[str, ...] = RETRYABLE_ERRORS

    def delay_ms(self, attempt: int) -> float:
        """Delay before retry number attempt+1 (attempt counts from 0)."""
        return min(self.initial_delay_ms * (self.backoff_factor ** attempt), self.max_delay_ms)


# Class bank is the highest-priority source; personal and shared get cheaper retries.
CLASS_POLICY = RetryPolicy(max_retries=3, initial_delay_ms=1000)
SECONDARY_POLICY = RetryPolicy(max_retries=2, initial_delay_ms=500)


def _error_text(exc: BaseException) -> tuple[str, str]:
    code = str(getattr(exc, "code", "") or "").lower()
    message = str(getattr(exc, "message", "") or exc or "").lower()
    return code, message


def is_missing_index_error(exc: BaseException) -> bool:
    if isinstance(exc, MissingIndexError):
        return True
    _, message = _error_text(exc)
    return any(token in message for token in MISSING_INDEX_MESSAGES)


def is_retryable_error(exc: BaseException, retryable_errors=RETRYABLE_ERRORS) -> bool:
    if is_missing_index_error(exc):
        return False
    if isinstance(exc, (TransientSourceError, httpx.TransportError)):
        return True
    code, message = _error_text(exc)
    return any(token in code or token in message for token in retryable_errors)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy = CLASS_POLICY,
    *,
    label: str = "query",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """
    Await fn(), retrying transient failures up to policy.max_retries times.

    Missing-index and non-retryable errors propagate immediately; the last
    error propagates once retries are exhausted.
    """
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as exc:
            if attempt >= policy.max_retries or not is_retryable_error(exc, policy.retryable_errors):
                raise
            delay = policy.delay_ms(attempt)
            logger.info(
                "[retry.retry_with_backoff] %s retry %d/%d after %dms: %s",
                label, attempt + 1, policy.max_retries, delay, exc,
            )
            await sleep(delay / 1000)
            attempt += 1
