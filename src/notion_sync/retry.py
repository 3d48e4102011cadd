"""Bounded retry with exponential backoff and jitter."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

from .config import RetryPolicy
from .errors import NotionSyncError, is_retryable
from .metrics import RETRY_COUNTER

logger = logging.getLogger(__name__)

T = TypeVar("T")

SleepFn = Callable[[float], Awaitable[None]]
RandFn = Callable[[], float]


def backoff_delay(policy: RetryPolicy, attempt: int, rand: RandFn = random.random) -> float:
    """Delay to wait after failed ``attempt`` (1-based): ``base * factor^(attempt-1)`` plus jitter in ``[0, jitter)``."""
    return policy.base_interval * (policy.factor ** (attempt - 1)) + rand() * policy.jitter


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    label: str = "request",
    sleep: Optional[SleepFn] = None,
    rand: RandFn = random.random,
) -> T:
    """Invoke ``operation`` until it succeeds, fails terminally, or the budget is spent.

    Terminal errors are re-raised unchanged, with ``attempts`` set to the number
    of invocations made.
    """
    sleep_fn = sleep or asyncio.sleep
    attempt = 1
    while True:
        try:
            return await operation()
        except NotionSyncError as exc:
            exc.attempts = attempt
            if not is_retryable(exc):
                raise
            if attempt >= policy.max_attempts:
                logger.error(
                    "%s failed after %s/%s attempts kind=%s detail=%s",
                    label,
                    attempt,
                    policy.max_attempts,
                    exc.kind,
                    exc.message,
                )
                raise
            delay = backoff_delay(policy, attempt, rand)
            RETRY_COUNTER.labels(kind=exc.kind).inc()
            logger.warning(
                "%s failed kind=%s, retrying in %.0fms (%s/%s): %s",
                label,
                exc.kind,
                delay * 1000,
                attempt,
                policy.max_attempts,
                exc.message,
            )
            await sleep_fn(delay)
            attempt += 1


__all__ = ["backoff_delay", "call_with_retry"]
