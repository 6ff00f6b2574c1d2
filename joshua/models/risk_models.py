"""
Risk Scoring Data Models — Factor vectors and the final assessment.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from joshua.models.analysis_models import RiskCategory, RiskLevel, TrendDirection


class RiskFactor(BaseModel):
    """One category's contribution to the score, immutable once produced."""

    model_config = ConfigDict(frozen=True)

    category: RiskCategory
    raw_value: float = Field(..., ge=0.0, le=1.0)
    weight: float = Field(..., ge=0.0)
    confidence: float = Field(..., ge=0.0, le=1.0)


class FactorContribution(BaseModel):
    """How a single factor contributes to the weighted score."""

    category: RiskCategory
    raw_value: float
    weight: float
    contribution: float


class SimulationResult(BaseModel):
    """Distribution of the adjusted score under factor perturbation."""

    iterations: int
    mean: float
    std_dev: float
    median: float
    p5: float
    p95: float


class RiskAssessment(BaseModel):
    """Final output of the scoring pipeline."""

    raw_score: float = Field(..., ge=0.0, le=1.0)
    bayesian_adjusted_score: float = Field(..., ge=0.0, le=1.0)
    baseline_score: float = Field(..., ge=0.0, le=1.0)
    confidence: float = Field(..., ge=0.0, le=1.0)
    confidence_interval: tuple[float, float]
    seconds_to_midnight: int = Field(..., ge=0, le=1440)
    risk_level: RiskLevel
    trend_direction: TrendDirection
    primary_drivers: list[FactorContribution] = Field(default_factory=list)
    delta_from_previous: int | None = None
    simulation: SimulationResult
    formula: str = Field(
        default=(
            "raw = Σ(value × weight) / Σ(weight present); "
            "adjusted = (raw × c + baseline × (1 − c) × prior) / (c + (1 − c) × prior)"
        ),
        description="Human-readable formula used",
    )
