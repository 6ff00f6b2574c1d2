"""
Circuit Breaker — Stops calling a failing reasoning service until it recovers.

States:
- CLOSED: normal operation, calls pass through
- OPEN: too many consecutive failures, calls rejected without a network attempt
- HALF_OPEN: recovery timeout elapsed, calls pass through as probes

Transitions:
- CLOSED → OPEN: after failure_threshold consecutive failures
- OPEN → HALF_OPEN: after recovery_timeout seconds
- HALF_OPEN → CLOSED: after success_threshold consecutive successes
- HALF_OPEN → OPEN: on any failure

Every transition happens under a single asyncio.Lock owned by the instance.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from joshua.config import settings
from joshua.errors import ReasoningError, ServiceUnavailableError
from joshua.models.assessment_models import BreakerStats

logger = logging.getLogger("joshua.llm.breaker")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreakerState:
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    opened_at: float | None = None


class CircuitBreaker:
    """
    Usage:
        breaker = CircuitBreaker(name="reasoning")

        async with breaker:
            response = await send_with_retries(request)
    """

    def __init__(
        self,
        name: str = "reasoning",
        failure_threshold: int | None = None,
        recovery_timeout: float | None = None,
        success_threshold: int | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self.failure_threshold = (
            failure_threshold if failure_threshold is not None else settings.breaker_failure_threshold
        )
        self.recovery_timeout = (
            recovery_timeout if recovery_timeout is not None else settings.breaker_recovery_timeout
        )
        self.success_threshold = (
            success_threshold if success_threshold is not None else settings.breaker_success_threshold
        )
        self._clock = clock
        self._state = CircuitBreakerState()
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state.state

    @property
    def is_open(self) -> bool:
        return self._state.state == CircuitState.OPEN

    async def __aenter__(self) -> CircuitBreaker:
        await self.before_call()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is None:
            await self.record_success()
        elif isinstance(exc_val, ReasoningError) and exc_val.trips_breaker:
            await self.record_failure(exc_val)
        return False

    async def before_call(self) -> None:
        """Raise ServiceUnavailableError if the breaker is rejecting calls."""
        async with self._lock:
            if self._state.state != CircuitState.OPEN:
                return
            elapsed = self._clock() - (self._state.opened_at or 0.0)
            if elapsed >= self.recovery_timeout:
                self._transition_to(CircuitState.HALF_OPEN)
                logger.info(f"Circuit '{self.name}' half-open after {elapsed:.1f}s")
                return
            raise ServiceUnavailableError(self.name, self.recovery_timeout - elapsed)

    async def record_success(self) -> None:
        async with self._lock:
            if self._state.state == CircuitState.HALF_OPEN:
                self._state.success_count += 1
                if self._state.success_count >= self.success_threshold:
                    self._transition_to(CircuitState.CLOSED)
                    logger.info(f"Circuit '{self.name}' closed; service recovered")
            elif self._state.state == CircuitState.CLOSED:
                self._state.failure_count = 0

    async def record_failure(self, error: Exception) -> None:
        async with self._lock:
            if self._state.state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
                logger.warning(
                    f"Circuit '{self.name}' reopened by probe failure: {type(error).__name__}"
                )
            elif self._state.state == CircuitState.CLOSED:
                self._state.failure_count += 1
                if self._state.failure_count >= self.failure_threshold:
                    self._transition_to(CircuitState.OPEN)
                    logger.error(
                        f"Circuit '{self.name}' opened after "
                        f"{self.failure_threshold} consecutive failures "
                        f"(last: {type(error).__name__})"
                    )

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state.state
        self._state.state = new_state
        if new_state == CircuitState.OPEN:
            self._state.opened_at = self._clock()
            self._state.success_count = 0
        elif new_state == CircuitState.HALF_OPEN:
            self._state.success_count = 0
        elif new_state == CircuitState.CLOSED:
            self._state.failure_count = 0
            self._state.success_count = 0
            self._state.opened_at = None
        logger.debug(f"Circuit '{self.name}': {old_state.value} -> {new_state.value}")

    def get_stats(self) -> BreakerStats:
        return BreakerStats(
            name=self.name,
            state=self._state.state.value,
            failure_count=self._state.failure_count,
            success_count=self._state.success_count,
            opened_at=self._state.opened_at,
        )
