"""
Rate Limiter
============

Token-bucket admission control for request/response API clients.

The search API allows 30 requests per minute per account, so every
SearchClient shares one process-wide bucket unless it is handed its own.

Design Rules:
    - The bucket starts full and refills continuously
    - acquire() waits; it never rejects
    - The default instance is replaceable via set_default_rate_limiter()
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional


logger = logging.getLogger(__name__)


DEFAULT_REQUESTS_PER_MINUTE = 30


class RateLimiter:
    """
    Token bucket.

    Attributes:
        tokens_per_interval: Bucket capacity and refill amount per interval
        interval: Refill interval in seconds

    Example:
        limiter = RateLimiter(30, 60.0)
        await limiter.acquire()   # returns immediately while tokens remain
    """

    def __init__(
        self,
        tokens_per_interval: int = DEFAULT_REQUESTS_PER_MINUTE,
        interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize rate limiter.

        Args:
            tokens_per_interval: Requests allowed per interval. Must be >= 1.
            interval: Interval length in seconds. Must be > 0.
            clock: Monotonic time source
            sleep: Coroutine used to wait for tokens
        """
        if tokens_per_interval < 1:
            raise ValueError("tokens_per_interval must be >= 1")
        if interval <= 0:
            raise ValueError("interval must be > 0")

        self.tokens_per_interval = tokens_per_interval
        self.interval = interval
        self._fill_rate = tokens_per_interval / interval
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(tokens_per_interval)
        self._last_refill = clock()
        self._wait_count: int = 0

    @property
    def tokens(self) -> float:
        """Tokens currently available."""
        self._refill()
        return self._tokens

    @property
    def wait_count(self) -> int:
        """Number of acquire() calls that had to wait."""
        return self._wait_count

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(
                float(self.tokens_per_interval),
                self._tokens + elapsed * self._fill_rate,
            )
            self._last_refill = now

    def try_acquire(self, count: int = 1) -> bool:
        """Take `count` tokens if available, without waiting."""
        self._refill()
        if self._tokens >= count:
            self._tokens -= count
            return True
        return False

    async def acquire(self, count: int = 1) -> None:
        """
        Take `count` tokens, waiting for the bucket to refill if needed.

        Raises:
            ValueError: If count exceeds the bucket capacity
        """
        if count > self.tokens_per_interval:
            raise ValueError(
                f"Cannot acquire {count} tokens from a bucket of {self.tokens_per_interval}"
            )

        waited = False
        while not self.try_acquire(count):
            delay = (count - self._tokens) / self._fill_rate
            if not waited:
                waited = True
                self._wait_count += 1
                logger.info(f"Rate limit reached, waiting {delay:.2f}s")
            await self._sleep(delay)

    def get_metrics(self) -> dict:
        """Get limiter metrics for observability."""
        return {
            "tokens": round(self.tokens, 3),
            "tokens_per_interval": self.tokens_per_interval,
            "interval": self.interval,
            "wait_count": self._wait_count,
        }


_default_rate_limiter: Optional[RateLimiter] = None


def get_default_rate_limiter() -> RateLimiter:
    """Return the process-wide search limiter, creating it on first use."""
    global _default_rate_limiter
    if _default_rate_limiter is None:
        _default_rate_limiter = RateLimiter(DEFAULT_REQUESTS_PER_MINUTE, 60.0)
    return _default_rate_limiter


def set_default_rate_limiter(limiter: Optional[RateLimiter]) -> None:
    """Replace the process-wide limiter (None restores a fresh default on next use)."""
    global _default_rate_limiter
    _default_rate_limiter = limiter
