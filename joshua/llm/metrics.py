"""
Call Metrics — Counters for reasoning-service usage and cost.

Mutated only from the event loop thread, between await points; no lock.
"""

from __future__ import annotations

from collections import Counter

from joshua.config import settings
from joshua.errors import ErrorKind
from joshua.models.assessment_models import MetricsSnapshot
from joshua.models.llm_models import ReasoningResponse


class CallMetrics:
    """Shared counter set for one gateway."""

    def __init__(
        self,
        input_cost_per_mtok: float | None = None,
        output_cost_per_mtok: float | None = None,
    ) -> None:
        self.input_cost_per_mtok = (
            input_cost_per_mtok if input_cost_per_mtok is not None else settings.input_cost_per_mtok
        )
        self.output_cost_per_mtok = (
            output_cost_per_mtok if output_cost_per_mtok is not None else settings.output_cost_per_mtok
        )
        self.reset()

    def reset(self) -> None:
        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.retries = 0
        self.total_latency_ms = 0.0
        self.total_input_tokens = 0
        self.total_output_tokens = 0
        self.total_cost_usd = 0.0
        self.failures_by_kind: Counter[str] = Counter()

    def record_success(self, response: ReasoningResponse, latency_ms: float) -> float:
        """Record a successful network attempt; returns its estimated cost."""
        cost = response.estimated_cost(self.input_cost_per_mtok, self.output_cost_per_mtok)
        self.total_requests += 1
        self.successful_requests += 1
        self.total_latency_ms += latency_ms
        self.total_input_tokens += response.usage.input_tokens
        self.total_output_tokens += response.usage.output_tokens
        self.total_cost_usd += cost
        return cost

    def record_failure(self, kind: ErrorKind, latency_ms: float = 0.0) -> None:
        self.total_requests += 1
        self.failed_requests += 1
        self.total_latency_ms += latency_ms
        self.failures_by_kind[kind.value] += 1

    def record_retry(self) -> None:
        self.retries += 1

    @property
    def success_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.successful_requests / self.total_requests

    @property
    def average_latency_ms(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_latency_ms / self.total_requests

    def snapshot(self) -> MetricsSnapshot:
        return MetricsSnapshot(
            total_requests=self.total_requests,
            successful_requests=self.successful_requests,
            failed_requests=self.failed_requests,
            retries=self.retries,
            total_latency_ms=round(self.total_latency_ms, 3),
            total_input_tokens=self.total_input_tokens,
            total_output_tokens=self.total_output_tokens,
            total_cost_usd=round(self.total_cost_usd, 6),
            failures_by_kind=dict(self.failures_by_kind),
            success_rate=round(self.success_rate, 4),
            average_latency_ms=round(self.average_latency_ms, 3),
        )
