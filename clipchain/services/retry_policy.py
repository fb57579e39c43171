"""Retry with exponential backoff, shared by every call site that retries.

Usage:
    policy = RetryPolicy(max_attempts=4, base_delay=5.0, retryable=is_transient)
    data = await policy.run(lambda: fetch_once(url), label="download clip")
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from typing import TypeVar

from clipchain.errors import TransientError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def is_transient(exc: BaseException) -> bool:
    """Default predicate: only classified transient failures are retried."""
    return isinstance(exc, TransientError)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry with exponential backoff and optional jitter.

    Delay before attempt ``n + 1`` is ``base_delay * 2 ** (n - 1)`` capped at
    ``max_delay``, plus ``uniform(0, jitter)``.
    """

    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 60.0
    jitter: float = 0.0
    retryable: Callable[[BaseException], bool] = is_transient
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, compare=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def delay_for(self, attempt: int) -> float:
        """Backoff to wait after the given (1-based) failed attempt."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        if self.jitter:
            delay += random.uniform(0, self.jitter)
        return delay

    def with_sleep(self, sleep: Callable[[float], Awaitable[None]]) -> RetryPolicy:
        return replace(self, sleep=sleep)

    async def run(self, operation: Callable[[], Awaitable[T]], *, label: str = "call") -> T:
        """Run ``operation`` until it succeeds or the policy gives up.

        Non-retryable errors propagate immediately; after the final attempt
        the last error propagates unchanged.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                return await operation()
            except Exception as exc:
                if not self.retryable(exc) or attempt == self.max_attempts:
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s attempt %d/%d failed: %s (retrying in %.1fs)",
                    label, attempt, self.max_attempts, exc, delay,
                )
                await self.sleep(delay)
        raise AssertionError("unreachable")  # loop always returns or raises
