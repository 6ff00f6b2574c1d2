"""
LLM Gateway — Resilient client for the external reasoning service.

Wraps the HTTP call with:
- Token-bucket rate limiting (requests/minute and tokens/minute)
- Retry with exponential backoff for retryable errors
- A circuit breaker around the whole retry loop
- Per-attempt latency, token, and cost accounting
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Protocol

import httpx
from pydantic import ValidationError

from joshua.config import settings
from joshua.errors import (
    InvalidRequestError,
    NetworkError,
    RateLimitExceededError,
    ReasoningError,
    ServiceTimeoutError,
    UnknownServiceError,
    error_for_status,
)
from joshua.llm.circuit_breaker import CircuitBreaker
from joshua.llm.metrics import CallMetrics
from joshua.llm.prompt_builder import SYSTEM_PROMPT
from joshua.llm.rate_limiter import RateLimiter
from joshua.llm.response_validator import validate_response
from joshua.models.analysis_models import SingleAnalysis
from joshua.models.llm_models import Message, ReasoningRequest, ReasoningResponse

logger = logging.getLogger("joshua.llm")


class ReasoningService(Protocol):
    """Anything that can turn a prompt into one validated analysis."""

    async def invoke(self, prompt: str, temperature: float) -> SingleAnalysis:
        ...


class LLMGateway:
    """
    Reasoning-service client.

    Rate limiter, breaker and metrics may be shared between gateways by
    passing them in; otherwise each gateway builds its own.
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
        rate_limiter: RateLimiter | None = None,
        breaker: CircuitBreaker | None = None,
        metrics: CallMetrics | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.anthropic_api_key
        self.model = model or settings.reasoning_model
        self.base_url = (base_url or settings.reasoning_base_url).rstrip("/")
        self.max_tokens = max_tokens or settings.llm_max_tokens
        self.timeout = timeout if timeout is not None else settings.llm_timeout
        self.max_retries = max_retries if max_retries is not None else settings.llm_max_retries
        self.base_delay = base_delay if base_delay is not None else settings.retry_base_delay
        self.max_delay = max_delay if max_delay is not None else settings.retry_max_delay
        self.rate_limiter = rate_limiter or RateLimiter()
        self.breaker = breaker or CircuitBreaker()
        self.metrics = metrics or CallMetrics()
        self._client = http_client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_request(self, prompt: str, temperature: float) -> ReasoningRequest:
        try:
            return ReasoningRequest(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=temperature,
                system=SYSTEM_PROMPT,
                messages=[Message(role="user", content=prompt)],
            )
        except ValidationError as e:
            raise InvalidRequestError(f"Invalid request: {e}") from e

    async def invoke(self, prompt: str, temperature: float) -> SingleAnalysis:
        """
        Send one prompt and return the validated analysis.

        A response that cannot be parsed raises ParsingError without a
        second network attempt.
        """
        request = self.build_request(prompt, temperature)
        response = await self.complete(request)
        return validate_response(response.text())

    async def complete(self, request: ReasoningRequest) -> ReasoningResponse:
        """
        Send a request through breaker, retries, and rate limiter.

        Raises:
            ServiceUnavailableError: breaker open, no network attempt made
            ReasoningError: non-retryable error, or retries exhausted
        """
        tokens = request.estimated_tokens()
        self.rate_limiter.ensure_admissible(tokens)

        async with self.breaker:
            return await self._send_with_retries(request, tokens)

    async def _send_with_retries(
        self, request: ReasoningRequest, tokens: int
    ) -> ReasoningResponse:
        for attempt in range(self.max_retries + 1):
            await self.rate_limiter.acquire(tokens)
            try:
                return await self._send(request)
            except ReasoningError as e:
                if not e.retryable:
                    logger.warning(f"Non-retryable {e.kind.value} error: {e}")
                    raise
                if attempt >= self.max_retries:
                    logger.error(
                        f"Reasoning service exhausted {self.max_retries} retries. "
                        f"Last error: {e}"
                    )
                    raise
                delay = self.retry_delay(attempt, e)
                self.metrics.record_retry()
                logger.warning(
                    f"Reasoning attempt {attempt + 1}/{self.max_retries + 1} failed "
                    f"({e.kind.value}): {e}; retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)

        raise UnknownServiceError("Retry loop ended without a result")

    def retry_delay(self, attempt: int, error: ReasoningError | None = None) -> float:
        """Exponential backoff: base × 2^attempt, capped; honours retry-after."""
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        if isinstance(error, RateLimitExceededError) and error.retry_after:
            delay = min(max(delay, error.retry_after), self.max_delay)
        return delay

    async def _send(self, request: ReasoningRequest) -> ReasoningResponse:
        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": settings.reasoning_api_version,
            "content-type": "application/json",
        }
        start = time.monotonic()
        try:
            http_response = await self.client.post(
                f"{self.base_url}/messages",
                json=request.model_dump(),
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            error = ServiceTimeoutError(f"Request timed out: {e}")
            self.metrics.record_failure(error.kind, _elapsed_ms(start))
            raise error from e
        except httpx.RequestError as e:
            error = NetworkError(f"Request failed: {e}")
            self.metrics.record_failure(error.kind, _elapsed_ms(start))
            raise error from e

        latency_ms = _elapsed_ms(start)

        if http_response.status_code != 200:
            error = error_for_status(
                http_response.status_code,
                _error_message(http_response),
                retry_after=_retry_after(http_response),
            )
            self.metrics.record_failure(error.kind, latency_ms)
            raise error

        try:
            response = ReasoningResponse.model_validate(http_response.json())
        except (ValueError, ValidationError) as e:
            error = UnknownServiceError(f"Unreadable response body: {e}", 200)
            self.metrics.record_failure(error.kind, latency_ms)
            raise error from e

        cost = self.metrics.record_success(response, latency_ms)
        logger.info(
            f"Reasoning call ok: id={response.id} "
            f"input_tokens={response.usage.input_tokens} "
            f"output_tokens={response.usage.output_tokens} "
            f"latency_ms={latency_ms:.0f} cost_usd={cost:.4f}"
        )
        return response


def _elapsed_ms(start: float) -> float:
    return (time.monotonic() - start) * 1000


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
        error = body.get("error", {})
        return f"{error.get('type', 'error')}: {error.get('message', '')}"
    except (ValueError, AttributeError):
        return response.text[:500]


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
