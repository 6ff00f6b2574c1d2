"""
Tests for Consensus Builder — verify median, divergence, merging, and fan-out.
"""

import pytest

from conftest import FakeReasoningService, make_analysis
from joshua.engine.consensus import (
    ConsensusBuilder,
    merge_developments,
    merge_text_items,
    normalize_description,
    spread_temperatures,
)
from joshua.errors import ErrorKind, InsufficientConsensusError, OverloadedError
from joshua.models.analysis_models import CriticalDevelopment, ImpactLevel, RiskCategory, RiskLevel


def test_close_analyses_agree():
    builder = ConsensusBuilder(max_divergence=60)
    consensus = builder.build_consensus([make_analysis(90), make_analysis(95), make_analysis(100)])

    assert consensus.consensus_seconds == 95
    assert consensus.divergence == 10
    assert not consensus.high_divergence
    assert consensus.confidence == pytest.approx(0.8)
    assert consensus.risk_level == RiskLevel.CRITICAL
    assert consensus.analysis_count == 3


def test_divergent_analyses_flagged_and_penalized():
    builder = ConsensusBuilder(max_divergence=60)
    consensus = builder.build_consensus([make_analysis(50), make_analysis(95), make_analysis(800)])

    assert consensus.consensus_seconds == 95
    assert consensus.divergence == 750
    assert consensus.high_divergence
    # std dev is far above 30, so the full 0.30 penalty applies
    assert consensus.confidence == pytest.approx(0.8 - 0.30)


def test_identical_analyses_full_agreement():
    builder = ConsensusBuilder()
    consensus = builder.build_consensus([make_analysis(120) for _ in range(4)])

    assert consensus.agreement_level == 1.0
    assert consensus.divergence == 0
    assert consensus.std_dev == 0.0


def test_all_zero_seconds_full_agreement():
    consensus = ConsensusBuilder().build_consensus([make_analysis(0), make_analysis(0)])
    assert consensus.agreement_level == 1.0


def test_single_analysis_is_rejected():
    with pytest.raises(InsufficientConsensusError):
        ConsensusBuilder().build_consensus([make_analysis(90)])


def test_empty_input_is_rejected():
    with pytest.raises(InsufficientConsensusError):
        ConsensusBuilder().build_consensus([])


def test_even_count_median_rounds():
    consensus = ConsensusBuilder().build_consensus([make_analysis(90), make_analysis(101)])
    assert consensus.consensus_seconds == 96
    assert consensus.mean_seconds == pytest.approx(95.5)


def test_result_independent_of_input_order():
    analyses = [
        make_analysis(90, summary="Tensions rose sharply. Talks stalled."),
        make_analysis(130, summary="Talks stalled again. Missile tests continued."),
        make_analysis(100, summary="Missile tests continued. Tensions rose sharply."),
    ]
    builder = ConsensusBuilder()
    forward = builder.build_consensus(analyses)
    backward = builder.build_consensus(list(reversed(analyses)))

    assert forward.consensus_seconds == backward.consensus_seconds
    assert forward.executive_summary == backward.executive_summary
    assert forward.risk_factors == backward.risk_factors
    assert forward.individual_analyses == backward.individual_analyses
    assert [a.seconds_to_midnight for a in forward.individual_analyses] == [90, 100, 130]
    assert forward == backward


def test_factors_averaged_over_reporting_analyses():
    a = make_analysis(90, risk_factors={RiskCategory.REGIONAL_CONFLICTS: 0.9})
    b = make_analysis(
        95,
        risk_factors={RiskCategory.REGIONAL_CONFLICTS: 0.5, RiskCategory.ECONOMIC_PRESSURE: 0.2},
    )
    consensus = ConsensusBuilder().build_consensus([a, b])

    assert consensus.risk_factors[RiskCategory.REGIONAL_CONFLICTS] == pytest.approx(0.7)
    assert consensus.risk_factors[RiskCategory.ECONOMIC_PRESSURE] == pytest.approx(0.2)
    assert RiskCategory.TECHNICAL_INCIDENTS not in consensus.risk_factors


def test_normalize_description():
    assert normalize_description("  Missile  TEST, over the Sea! ") == "missile test over the sea"


def test_near_duplicate_developments_merged():
    a = make_analysis(
        90,
        critical_developments=[
            CriticalDevelopment(
                description="Missile test over the Sea of Japan",
                impact=ImpactLevel.HIGH,
                affected_regions=frozenset({"East Asia"}),
                escalation_potential=0.6,
            )
        ],
    )
    b = make_analysis(
        95,
        critical_developments=[
            CriticalDevelopment(
                description="Missile test over the Sea of Japan.",
                impact=ImpactLevel.CRITICAL,
                affected_regions=frozenset({"Japan"}),
                escalation_potential=0.8,
            ),
            CriticalDevelopment(description="Arms treaty suspended", escalation_potential=0.5),
        ],
    )
    merged = merge_developments([a, b], similarity=0.85)

    assert len(merged) == 2
    missile = merged[0]
    assert missile.escalation_potential == 0.8
    assert missile.impact == ImpactLevel.CRITICAL
    assert missile.affected_regions == frozenset({"East Asia", "Japan"})


def test_distinct_developments_kept_apart():
    a = make_analysis(90, critical_developments=[CriticalDevelopment(description="Border clash in Kashmir")])
    b = make_analysis(95, critical_developments=[CriticalDevelopment(description="Reactor incident reported")])
    assert len(merge_developments([a, b], similarity=0.85)) == 2


def test_text_items_merged_case_insensitively():
    merged = merge_text_items([["Watch troop movements", "Hotline use"], ["watch troop  movements", "New item"]])
    assert merged == ["Watch troop movements", "Hotline use", "New item"]


def test_consensus_summary_synthesized_across_analyses():
    analyses = [
        make_analysis(90, summary="Regional conflicts escalated this week. Diplomacy is failing."),
        make_analysis(95, summary="Regional conflicts escalated near the border. Arsenal growth continues."),
        make_analysis(100, summary="Arsenal growth continues in two states. Regional conflicts escalated."),
    ]
    consensus = ConsensusBuilder().build_consensus(analyses)

    assert consensus.executive_summary.startswith("Consensus of 3 independent analyses: 95 seconds")
    assert consensus.executive_summary != analyses[0].executive_summary
    assert "Arsenal growth continues" in consensus.executive_summary


def test_spread_temperatures():
    assert spread_temperatures(3, 0.1, 0.3) == [0.1, 0.2, 0.3]
    assert spread_temperatures(1, 0.1, 0.3) == [0.2]
    assert spread_temperatures(0, 0.1, 0.3) == []


@pytest.mark.asyncio
async def test_gather_collects_successes_and_failures():
    service = FakeReasoningService(
        [make_analysis(90), OverloadedError("busy", 529), make_analysis(100)]
    )
    outcomes = await ConsensusBuilder().gather(service, "prompt", 3)

    assert [o.succeeded for o in outcomes] == [True, False, True]
    assert outcomes[1].error_kind == ErrorKind.OVERLOADED
    assert sorted(t for _, t in service.calls) == [0.1, 0.2, 0.3]
    assert all(p == "prompt" for p, _ in service.calls)
