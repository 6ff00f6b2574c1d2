"""
Tests for Monte Carlo Simulation — verify deterministic perturbation.
"""

import pytest

from joshua.core.risk_scorer import weighted_score
from joshua.core.simulation import perturb, percentile, run_simulation, sequence_value
from joshua.models.analysis_models import RiskCategory
from joshua.models.risk_models import RiskFactor


def factor(category, value, confidence):
    return RiskFactor(category=category, raw_value=value, weight=0.1, confidence=confidence)


def test_sequence_values_cover_unit_interval():
    values = [sequence_value(i, RiskCategory.REGIONAL_CONFLICTS) for i in range(1000)]
    assert all(0.0 <= v < 1.0 for v in values)
    # Low-discrepancy: every tenth of [0, 1) is visited
    assert {int(v * 10) for v in values} == set(range(10))


def test_categories_use_different_sequences():
    a = [sequence_value(i, RiskCategory.REGIONAL_CONFLICTS) for i in range(5)]
    b = [sequence_value(i, RiskCategory.ECONOMIC_PRESSURE) for i in range(5)]
    assert a != b


def test_full_confidence_factor_unchanged():
    f = factor(RiskCategory.TECHNICAL_INCIDENTS, 0.4, 1.0)
    assert perturb([f], 7, 0.2) == [f]


def test_perturbation_bounded_by_uncertainty():
    f = factor(RiskCategory.TECHNICAL_INCIDENTS, 0.5, 0.5)
    for i in range(200):
        (p,) = perturb([f], i, 0.2)
        assert 0.4 - 1e-12 <= p.raw_value <= 0.6 + 1e-12


def test_perturbation_clamped():
    f = factor(RiskCategory.TECHNICAL_INCIDENTS, 1.0, 0.0)
    values = [perturb([f], i, 0.5)[0].raw_value for i in range(100)]
    assert max(values) == 1.0
    assert min(values) >= 0.5


def test_percentile_interpolates():
    data = [0.0, 1.0, 2.0, 3.0, 4.0]
    assert percentile(data, 0) == 0.0
    assert percentile(data, 50) == 2.0
    assert percentile(data, 100) == 4.0
    assert percentile(data, 5) == pytest.approx(0.2)
    assert percentile([7.0], 95) == 7.0


def test_run_simulation_summary():
    factors = [factor(RiskCategory.REGIONAL_CONFLICTS, 0.5, 0.0)]
    result = run_simulation(factors, weighted_score, 1000, 0.2)

    assert result.iterations == 1000
    assert result.p5 < result.median < result.p95
    assert result.mean == pytest.approx(0.5, abs=0.01)
    assert 0.3 <= result.p5 and result.p95 <= 0.7


def test_run_simulation_is_reproducible():
    factors = [factor(c, 0.3, 0.4) for c in RiskCategory]
    assert run_simulation(factors, weighted_score, 250, 0.2) == run_simulation(
        factors, weighted_score, 250, 0.2
    )


def test_run_simulation_requires_iterations():
    with pytest.raises(ValueError):
        run_simulation([], weighted_score, 0, 0.2)
