"""
Assessment Cycle Models — Per-call outcomes, cycle report, API contract.
"""

from __future__ import annotations

from pydantic import BaseModel, Field

from joshua.errors import ErrorKind
from joshua.models.analysis_models import ConsensusAnalysis, SingleAnalysis
from joshua.models.intel_models import AggregatedData, HistoricalContext
from joshua.models.risk_models import RiskAssessment


class AnalysisOutcome(BaseModel):
    """Result of one fan-out call: an analysis or the reason it was excluded."""

    index: int
    temperature: float
    analysis: SingleAnalysis | None = None
    error_kind: ErrorKind | None = None
    error: str = ""

    @property
    def succeeded(self) -> bool:
        return self.analysis is not None


class MetricsSnapshot(BaseModel):
    """Point-in-time copy of the reasoning-service call counters."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    retries: int = 0
    total_latency_ms: float = 0.0
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost_usd: float = 0.0
    failures_by_kind: dict[str, int] = Field(default_factory=dict)
    success_rate: float = 0.0
    average_latency_ms: float = 0.0


class BreakerStats(BaseModel):
    name: str
    state: str
    failure_count: int
    success_count: int
    opened_at: float | None = None


class CycleReport(BaseModel):
    """What happened during one assessment cycle, success or not."""

    stage: str = Field(default="collection", description="Last stage reached")
    input_valid: bool = False
    evidence_items: int = 0
    mode: str = "consensus"
    analyses_requested: int = 0
    analyses_succeeded: int = 0
    failures_by_kind: dict[str, int] = Field(default_factory=dict)
    breaker_state: str | None = None
    duration_ms: float = 0.0


class AssessmentReport(BaseModel):
    """Full result of a successful assessment cycle."""

    assessment: RiskAssessment
    consensus: ConsensusAnalysis | None = None
    analysis: SingleAnalysis | None = None
    executive_summary: str = ""
    report: CycleReport


class AssessRequest(BaseModel):
    """Request body for POST /assess."""

    data: AggregatedData
    history: HistoricalContext | None = None


class AssessFailure(BaseModel):
    """Response body when an assessment cycle fails."""

    message: str = "assessment_failed"
    stage: str
    error_kind: ErrorKind
    detail: str
    report: CycleReport
