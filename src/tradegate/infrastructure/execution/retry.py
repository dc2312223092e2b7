# src/tradegate/infrastructure/execution/retry.py
"""Bounded exponential backoff for coroutines."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

log = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 0.5
    multiplier: float = 2.0
    max_delay: float = 5.0

    def delay_for(self, attempt: int) -> float:
        """Delay after the `attempt`-th failure (1-based). Non-decreasing, capped."""
        return min(self.max_delay, self.base_delay * (self.multiplier ** (attempt - 1)))

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=max(1, int(settings.ROUTER_MAX_ATTEMPTS)),
            base_delay=settings.ROUTER_BASE_DELAY_MS / 1000.0,
            multiplier=float(settings.ROUTER_BACKOFF_MULTIPLIER),
            max_delay=settings.ROUTER_MAX_DELAY_MS / 1000.0,
        )


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    is_retryable: Callable[[BaseException], bool],
    *,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    label: Optional[str] = None,
) -> T:
    """
    Calls `fn` until it succeeds, raises a non-retryable error, or
    `policy.max_attempts` calls have been made. The last error is re-raised.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return await fn()
        except Exception as e:
            if not is_retryable(e) or attempt >= policy.max_attempts:
                raise
            delay = policy.delay_for(attempt)
            log.warning("%s attempt %d/%d failed (%s); retrying in %.2fs",
                        label or "call", attempt, policy.max_attempts, e, delay)
            await sleep(delay)
