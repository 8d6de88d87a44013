"""
Process-wide rate limiting for provider calls.

A token bucket caps calls per minute and a semaphore caps calls in flight.
There is one limiter per process; it is the only backpressure on provider
traffic.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TokenBucket:
    """
    Token bucket algorithm for rate limiting

    Attributes:
        capacity: Maximum tokens in bucket
        refill_rate: Tokens added per second
        tokens: Current token count
        last_refill: Last refill timestamp
    """

    def __init__(self, capacity: int, refill_rate: float):
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.tokens = float(capacity)
        self.last_refill = time.monotonic()

    def _refill(self) -> None:
        now = time.monotonic()
        elapsed = now - self.last_refill
        self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def consume(self, tokens: int = 1) -> bool:
        """Take ``tokens`` if available; False leaves the bucket untouched."""
        self._refill()
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def get_wait_time(self, tokens: int = 1) -> float:
        """Seconds until ``tokens`` would be available."""
        self._refill()
        if self.tokens >= tokens:
            return 0.0
        return (tokens - self.tokens) / self.refill_rate


class RateLimiter:
    """
    Combined call-rate and concurrency limit.

    Usage::

        async with limiter:
            response = await adapter.arun(messages)

        response = await limiter.run(lambda: adapter.arun(messages))
    """

    def __init__(self, max_concurrent: int = 4, calls_per_minute: int = 60):
        if max_concurrent < 1 or calls_per_minute < 1:
            raise ValueError("max_concurrent and calls_per_minute must be positive")
        self.max_concurrent = max_concurrent
        self.calls_per_minute = calls_per_minute
        self._bucket = TokenBucket(calls_per_minute, calls_per_minute / 60.0)
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        await self._semaphore.acquire()
        try:
            async with self._lock:
                while not self._bucket.consume():
                    wait = self._bucket.get_wait_time()
                    logger.debug(f"Rate limit reached, waiting {wait:.2f}s")
                    await asyncio.sleep(wait)
        except BaseException:
            self._semaphore.release()
            raise

    def release(self) -> None:
        self._semaphore.release()

    async def __aenter__(self) -> "RateLimiter":
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.release()

    async def run(self, coro_fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``coro_fn()`` once a slot and a token are available."""
        async with self:
            return await coro_fn()


_default_limiter: Optional[RateLimiter] = None


def get_rate_limiter(max_concurrent: int = 4, calls_per_minute: int = 60) -> RateLimiter:
    """
    Return the process-wide limiter, creating it on first use.

    Arguments only apply to the first call.
    """
    global _default_limiter
    if _default_limiter is None:
        _default_limiter = RateLimiter(max_concurrent, calls_per_minute)
        logger.info(
            f"Rate limiter initialized (max_concurrent={max_concurrent}, calls_per_minute={calls_per_minute})"
        )
    return _default_limiter
