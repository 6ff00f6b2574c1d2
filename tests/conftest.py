"""
Test fixtures shared across all JOSHUA tests.
"""

import json
import os

os.environ.setdefault("ANTHROPIC_API_KEY", "test-key")

from datetime import datetime, timezone

import pytest

from joshua.models.analysis_models import RiskCategory, RiskLevel, SingleAnalysis, classify_risk_level
from joshua.models.intel_models import AggregatedData, EvidenceItem, HistoricalContext, PreviousAssessment


def make_analysis(seconds: int, confidence: float = 0.8, summary: str | None = None, **overrides) -> SingleAnalysis:
    """A valid SingleAnalysis with every category scored 0.5 unless overridden."""
    fields = {
        "seconds_to_midnight": seconds,
        "risk_level": classify_risk_level(seconds),
        "confidence": confidence,
        "risk_factors": {c: 0.5 for c in RiskCategory},
        "executive_summary": summary
        or "Regional conflicts involving nuclear states remain the dominant risk driver.",
        "detailed_analysis": "Detailed analysis of the collected evidence.",
    }
    fields.update(overrides)
    return SingleAnalysis(**fields)


class FakeReasoningService:
    """Returns queued results in call order; exceptions in the queue are raised."""

    def __init__(self, results):
        self.results = list(results)
        self.calls: list[tuple[str, float]] = []

    async def invoke(self, prompt, temperature):
        self.calls.append((prompt, temperature))
        result = self.results[len(self.calls) - 1]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def collection_window():
    return (
        datetime(2025, 3, 1, 0, 0, tzinfo=timezone.utc),
        datetime(2025, 3, 1, 6, 0, tzinfo=timezone.utc),
    )


@pytest.fixture
def evidence_items():
    return [
        EvidenceItem(
            category=RiskCategory.REGIONAL_CONFLICTS,
            content="Artillery exchanges reported along the line of control.",
            relevance=0.9,
            published_at=datetime(2025, 3, 1, 4, 0, tzinfo=timezone.utc),
            source="Reuters",
            title="Border clashes intensify",
        ),
        EvidenceItem(
            category=RiskCategory.ARMS_CONTROL_BREAKDOWN,
            content="Treaty inspection regime suspended for a further year.",
            relevance=0.7,
            source="Arms Control Association",
        ),
        EvidenceItem(
            category=RiskCategory.REGIONAL_CONFLICTS,
            content="Naval exercises announced near disputed waters.",
            relevance=0.4,
            source="AP",
        ),
        EvidenceItem(
            category=RiskCategory.ECONOMIC_PRESSURE,
            content="New sanctions package targets defence exports.",
            relevance=0.2,
            source="Bloomberg",
        ),
    ]


@pytest.fixture
def aggregated_data(evidence_items, collection_window):
    start, end = collection_window
    return AggregatedData(
        items=evidence_items,
        collection_start=start,
        collection_end=end,
        sources_count=4,
        failed_sources=["rss-feed-7"],
    )


@pytest.fixture
def previous_assessment():
    return PreviousAssessment(
        assessed_at=datetime(2025, 2, 28, 6, 0, tzinfo=timezone.utc),
        seconds_to_midnight=89,
        adjusted_score=1 - 89 / 1440,
        risk_level=RiskLevel.CRITICAL,
        confidence=0.75,
        top_factors={RiskCategory.REGIONAL_CONFLICTS: 0.8, RiskCategory.ARMS_CONTROL_BREAKDOWN: 0.7},
    )


@pytest.fixture
def history(previous_assessment):
    return HistoricalContext(previous_assessment=previous_assessment)


@pytest.fixture
def valid_payload():
    """A response body exactly as a well-behaved service would produce it."""
    return {
        "seconds_to_midnight": 95,
        "risk_level": "critical",
        "confidence": 0.82,
        "trend_direction": "deteriorating",
        "risk_factors": {c.value: 0.6 for c in RiskCategory},
        "critical_developments": [
            {
                "description": "Border clashes between nuclear-armed states",
                "source_ref": "Reuters",
                "impact": "high",
                "affected_regions": ["South Asia"],
                "escalation_potential": 0.7,
                "confidence": 0.8,
            }
        ],
        "early_warning_indicators": ["Troop mobilization near the border"],
        "executive_summary": "Risk has increased. Regional conflicts dominate.",
        "detailed_analysis": "The evidence shows an escalation in regional conflicts.",
        "recommendations": ["Restore crisis communication channels"],
    }


@pytest.fixture
def valid_response_text(valid_payload):
    return json.dumps(valid_payload)
