# src/core/retry.py — v1
"""Bounded retry with exponential backoff for transient pipeline errors.

Only PipelineErrors flagged ``retryable`` are retried. Fatal errors are
re-raised immediately; exhausting the attempt budget raises RetryExhausted.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from shipflow.core.errors import PipelineError, RetryExhausted

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for one kind of operation."""

    max_attempts: int = 3
    base_delay_s: float = 1.0
    backoff_factor: float = 2.0
    max_delay_s: float = 30.0
    jitter: bool = True

    def delay_for(self, attempt: int) -> float:
        """Delay before retrying after the given (0-based) failed attempt."""
        delay = self.base_delay_s * (self.backoff_factor ** attempt)
        if self.jitter:
            delay *= 0.5 + random.random()  # noqa: S311
        return min(delay, self.max_delay_s)


NO_RETRY = RetryPolicy(max_attempts=1, base_delay_s=0.0, jitter=False)


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    operation: str = "operation",
    policy: RetryPolicy | None = None,
    on_retry: Callable[[int, PipelineError], None] | None = None,
    **kwargs: Any,
) -> Any:
    """Run an async callable, retrying retryable PipelineErrors.

    Raises:
        RetryExhausted: Retryable error persisted through every attempt.
        PipelineError: Any non-retryable error, unchanged.
    """
    policy = policy or RetryPolicy()
    attempt = 0

    while True:
        try:
            return await fn(*args, **kwargs)
        except PipelineError as e:
            attempt += 1
            if not e.retryable:
                raise
            if attempt >= policy.max_attempts:
                raise RetryExhausted(operation, attempt, e) from e

            delay = policy.delay_for(attempt - 1)
            logger.warning(
                "%s: %s (attempt %d/%d), retrying in %.1fs",
                operation, e.kind.value, attempt, policy.max_attempts, delay,
            )
            if on_retry is not None:
                on_retry(attempt, e)
            await asyncio.sleep(delay)
