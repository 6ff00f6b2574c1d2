"""
Analysis Data Models — Risk categories, levels, and validated analyses.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


MAX_SECONDS_TO_MIDNIGHT = 1440


class RiskCategory(str, Enum):
    NUCLEAR_ARSENAL_CHANGES = "nuclear_arsenal_changes"
    ARMS_CONTROL_BREAKDOWN = "arms_control_breakdown"
    REGIONAL_CONFLICTS = "regional_conflicts"
    LEADERSHIP_INSTABILITY = "leadership_instability"
    TECHNICAL_INCIDENTS = "technical_incidents"
    COMMUNICATION_FAILURES = "communication_failures"
    EMERGING_TECH_RISKS = "emerging_tech_risks"
    ECONOMIC_PRESSURE = "economic_pressure"


# Canonical category weights; must sum to 1.0
CATEGORY_WEIGHTS: dict[RiskCategory, float] = {
    RiskCategory.NUCLEAR_ARSENAL_CHANGES: 0.15,
    RiskCategory.ARMS_CONTROL_BREAKDOWN: 0.15,
    RiskCategory.REGIONAL_CONFLICTS: 0.20,
    RiskCategory.LEADERSHIP_INSTABILITY: 0.10,
    RiskCategory.TECHNICAL_INCIDENTS: 0.15,
    RiskCategory.COMMUNICATION_FAILURES: 0.10,
    RiskCategory.EMERGING_TECH_RISKS: 0.10,
    RiskCategory.ECONOMIC_PRESSURE: 0.05,
}

CATEGORY_LABELS: dict[RiskCategory, str] = {
    RiskCategory.NUCLEAR_ARSENAL_CHANGES: "Nuclear Arsenal",
    RiskCategory.ARMS_CONTROL_BREAKDOWN: "Arms Control",
    RiskCategory.REGIONAL_CONFLICTS: "Regional Conflicts",
    RiskCategory.LEADERSHIP_INSTABILITY: "Leadership/Rhetoric",
    RiskCategory.TECHNICAL_INCIDENTS: "Technical Incidents",
    RiskCategory.COMMUNICATION_FAILURES: "Communication",
    RiskCategory.EMERGING_TECH_RISKS: "Emerging Tech",
    RiskCategory.ECONOMIC_PRESSURE: "Economic Factors",
}


class RiskLevel(str, Enum):
    CRITICAL = "critical"
    SEVERE = "severe"
    ELEVATED = "elevated"
    MODERATE = "moderate"
    LOW = "low"


# Upper bounds (exclusive) in seconds to midnight; above the last one is LOW
RISK_LEVEL_THRESHOLDS: list[tuple[int, RiskLevel]] = [
    (120, RiskLevel.CRITICAL),
    (300, RiskLevel.SEVERE),
    (600, RiskLevel.ELEVATED),
    (901, RiskLevel.MODERATE),
]

RISK_LEVEL_ALIASES: dict[str, RiskLevel] = {
    "high": RiskLevel.ELEVATED,
    "minimal": RiskLevel.LOW,
}


def classify_risk_level(seconds: int) -> RiskLevel:
    """Map seconds to midnight onto the fixed risk-level bands."""
    for upper, level in RISK_LEVEL_THRESHOLDS:
        if seconds < upper:
            return level
    return RiskLevel.LOW


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DETERIORATING = "deteriorating"
    STABLE = "stable"
    UNCERTAIN = "uncertain"


TREND_ALIASES: dict[str, TrendDirection] = {
    "increasing": TrendDirection.DETERIORATING,
    "decreasing": TrendDirection.IMPROVING,
    "worsening": TrendDirection.DETERIORATING,
}


class ImpactLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


IMPACT_RANK: dict[ImpactLevel, int] = {
    ImpactLevel.LOW: 0,
    ImpactLevel.MEDIUM: 1,
    ImpactLevel.HIGH: 2,
    ImpactLevel.CRITICAL: 3,
}

# Named confidence levels the service may answer with instead of a number
CONFIDENCE_LABELS: dict[str, float] = {
    "verylow": 0.2,
    "low": 0.4,
    "moderate": 0.6,
    "high": 0.8,
    "veryhigh": 1.0,
}


class CriticalDevelopment(BaseModel):
    """A development the service flagged as materially changing risk."""

    model_config = ConfigDict(frozen=True)

    description: str
    source_ref: str = ""
    impact: ImpactLevel = ImpactLevel.MEDIUM
    affected_regions: frozenset[str] = Field(default_factory=frozenset)
    escalation_potential: float = Field(default=0.0, ge=0.0, le=1.0)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


class SingleAnalysis(BaseModel):
    """One validated output of one reasoning-service call."""

    model_config = ConfigDict(frozen=True)

    seconds_to_midnight: int = Field(..., ge=0, le=MAX_SECONDS_TO_MIDNIGHT)
    risk_level: RiskLevel
    confidence: float = Field(..., ge=0.0, le=1.0)
    risk_factors: dict[RiskCategory, float] = Field(default_factory=dict)
    critical_developments: list[CriticalDevelopment] = Field(default_factory=list)
    trend_direction: TrendDirection = TrendDirection.UNCERTAIN
    executive_summary: str
    detailed_analysis: str
    early_warning_indicators: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    recovered: str | None = Field(
        default=None, description="Recovery strategy used, if the raw output was malformed"
    )


class ConsensusAnalysis(BaseModel):
    """Statistical aggregate over several independent analyses."""

    model_config = ConfigDict(frozen=True)

    consensus_seconds: int = Field(..., ge=0, le=MAX_SECONDS_TO_MIDNIGHT)
    mean_seconds: float
    std_dev: float
    divergence: int
    high_divergence: bool
    confidence: float = Field(..., ge=0.0, le=1.0)
    agreement_level: float = Field(..., ge=0.0, le=1.0)
    risk_level: RiskLevel
    risk_factors: dict[RiskCategory, float] = Field(default_factory=dict)
    critical_developments: list[CriticalDevelopment] = Field(default_factory=list)
    early_warning_indicators: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    executive_summary: str
    analysis_count: int
    individual_analyses: list[SingleAnalysis] = Field(default_factory=list)
