"""
Intelligence Input Models — What the data-collection subsystem hands us.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from joshua.models.analysis_models import RiskCategory, RiskLevel


class EvidenceItem(BaseModel):
    """A single categorized piece of collected evidence."""

    category: RiskCategory
    content: str = Field(..., min_length=1)
    relevance: float = Field(default=0.5, ge=0.0, le=1.0)
    published_at: datetime | None = None
    source: str = Field(..., description="Source name, e.g. 'Reuters'")
    title: str | None = None


class AggregatedData(BaseModel):
    """Deduplicated, categorized evidence for one collection window."""

    items: list[EvidenceItem] = Field(default_factory=list)
    collection_start: datetime
    collection_end: datetime
    sources_count: int = 0
    failed_sources: list[str] = Field(default_factory=list)


class PreviousAssessment(BaseModel):
    """Summary of an earlier assessment, as stored by the persistence layer."""

    assessed_at: datetime
    seconds_to_midnight: int = Field(..., ge=0, le=1440)
    adjusted_score: float = Field(..., ge=0.0, le=1.0)
    risk_level: RiskLevel | None = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    top_factors: dict[RiskCategory, float] = Field(default_factory=dict)


class TrendStats(BaseModel):
    """Trend over the most recent assessment cycles (typically 30)."""

    cycles: int = 0
    mean_seconds: float = 0.0
    std_dev_seconds: float = 0.0
    slope_seconds_per_cycle: float = 0.0


class HistoricalContext(BaseModel):
    previous_assessment: PreviousAssessment | None = None
    recent_assessments: list[PreviousAssessment] = Field(
        default_factory=list, description="Oldest first"
    )
    trend_stats: TrendStats | None = None
