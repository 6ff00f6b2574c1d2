"""
Rate Limiter — Continuous-refill token buckets for requests and tokens.

One RateLimiter is shared by every concurrent call made through a gateway.
acquire() suspends (asyncio.sleep) for exactly as long as the slower bucket
needs to refill, then re-checks; it never busy-waits.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from joshua.config import settings
from joshua.errors import RateLimitExceededError

logger = logging.getLogger("joshua.llm.rate_limiter")


class TokenBucket:
    """A bucket of `capacity` permits refilling continuously over `period` seconds."""

    def __init__(
        self,
        capacity: float,
        period: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity <= 0:
            raise ValueError("Bucket capacity must be positive")
        self.capacity = float(capacity)
        self.period = period
        self._clock = clock
        self._tokens = float(capacity)
        self._last_refill = clock()

    @property
    def refill_rate(self) -> float:
        """Permits added per second."""
        return self.capacity / self.period

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed = now - self._last_refill
        if elapsed > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_rate)
            self._last_refill = now

    def can_consume(self, count: float) -> bool:
        self._refill()
        return self._tokens >= count

    def consume(self, count: float) -> None:
        self._tokens -= count

    def time_until_available(self, count: float) -> float:
        """Seconds until `count` permits will be available (0 if already)."""
        self._refill()
        if self._tokens >= count:
            return 0.0
        return (count - self._tokens) / self.refill_rate


class RateLimiter:
    """Admits a call only when both the request and token budgets allow it."""

    def __init__(
        self,
        requests_per_minute: int | None = None,
        tokens_per_minute: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        rpm = requests_per_minute if requests_per_minute is not None else settings.requests_per_minute
        tpm = tokens_per_minute if tokens_per_minute is not None else settings.tokens_per_minute
        self.requests = TokenBucket(rpm, 60.0, clock)
        self.tokens = TokenBucket(tpm, 60.0, clock)
        self._lock = asyncio.Lock()

    def try_acquire(self, tokens: int) -> float:
        """
        Take one request permit and `tokens` token permits if both are available.

        Returns 0.0 on success, otherwise the seconds to wait before retrying.
        Caller must hold the lock.
        """
        if self.requests.can_consume(1) and self.tokens.can_consume(tokens):
            self.requests.consume(1)
            self.tokens.consume(tokens)
            return 0.0
        return max(
            self.requests.time_until_available(1),
            self.tokens.time_until_available(tokens),
        )

    def ensure_admissible(self, tokens: int) -> None:
        """Raise if a request of this size could never be admitted."""
        if tokens > self.tokens.capacity:
            raise RateLimitExceededError(
                f"Request needs {tokens} tokens but the budget is "
                f"{int(self.tokens.capacity)} tokens/minute"
            )

    async def acquire(self, tokens: int) -> float:
        """
        Suspend until the call is admitted.

        Returns:
            Total seconds spent waiting.

        Raises:
            RateLimitExceededError: the request can never fit in the token budget.
        """
        self.ensure_admissible(tokens)

        waited = 0.0
        while True:
            async with self._lock:
                wait = self.try_acquire(tokens)
            if wait <= 0:
                if waited:
                    logger.debug(f"Rate limiter admitted call after {waited:.2f}s")
                return waited
            waited += wait
            await asyncio.sleep(wait)
