"""
Risk Scoring Engine — Turns a risk-factor vector into seconds to midnight.

    raw      = Σ(value × weight) / Σ(weight of categories present)
    c        = mean(factor confidence)
    adjusted = (raw × c + baseline × (1 − c) × prior) / (c + (1 − c) × prior)
    seconds  = round(1440 × (1 − adjusted)), clamped to [0, 1440]

The confidence interval is the 5th–95th percentile of the adjusted score
under deterministic factor perturbation (see joshua.core.simulation).
"""

from __future__ import annotations

import logging
import statistics

from joshua.config import settings
from joshua.core.simulation import run_simulation
from joshua.models.analysis_models import (
    CATEGORY_WEIGHTS,
    MAX_SECONDS_TO_MIDNIGHT,
    RiskCategory,
    TrendDirection,
    classify_risk_level,
)
from joshua.models.intel_models import HistoricalContext
from joshua.models.risk_models import (
    FactorContribution,
    RiskAssessment,
    RiskFactor,
    SimulationResult,
)

logger = logging.getLogger("joshua.core.risk_scorer")

_CATEGORY_ORDER = {category: i for i, category in enumerate(RiskCategory)}

PRIMARY_DRIVER_COUNT = 5


def seconds_from_score(score: float) -> int:
    """Map a risk score in [0, 1] onto the 0–1440 seconds scale."""
    seconds = int(round(MAX_SECONDS_TO_MIDNIGHT * (1.0 - score)))
    return min(MAX_SECONDS_TO_MIDNIGHT, max(0, seconds))


def score_from_seconds(seconds: float) -> float:
    return min(1.0, max(0.0, 1.0 - seconds / MAX_SECONDS_TO_MIDNIGHT))


def weighted_score(factors: list[RiskFactor]) -> float:
    """Weighted mean of factor values, renormalized over the weights present."""
    if not factors:
        return 0.0
    total_weight = sum(f.weight for f in factors)
    if total_weight <= 0:
        return statistics.fmean(f.raw_value for f in factors)
    score = sum(f.raw_value * f.weight for f in factors) / total_weight
    return min(1.0, max(0.0, score))


def bayesian_adjust(raw: float, confidence: float, baseline: float, prior_strength: float) -> float:
    confidence_weight = confidence
    baseline_weight = (1.0 - confidence) * prior_strength
    total = confidence_weight + baseline_weight
    if total <= 0:
        return baseline
    adjusted = (raw * confidence_weight + baseline * baseline_weight) / total
    return min(1.0, max(0.0, adjusted))


def factors_from_scores(
    scores: dict[RiskCategory, float], confidence: float
) -> list[RiskFactor]:
    """Build the factor vector for the categories an analysis reported."""
    confidence = min(1.0, max(0.0, confidence))
    return [
        RiskFactor(
            category=category,
            raw_value=min(1.0, max(0.0, scores[category])),
            weight=CATEGORY_WEIGHTS[category],
            confidence=confidence,
        )
        for category in RiskCategory
        if category in scores
    ]


class RiskScorer:
    """Weighted scoring, Bayesian adjustment, simulation, and trend."""

    def __init__(
        self,
        prior_strength: float | None = None,
        baseline_seconds: int | None = None,
        iterations: int | None = None,
        perturbation_scale: float | None = None,
        trend_threshold: float | None = None,
    ) -> None:
        self.prior_strength = prior_strength if prior_strength is not None else settings.prior_strength
        self.baseline_seconds = (
            baseline_seconds if baseline_seconds is not None else settings.baseline_seconds
        )
        self.iterations = iterations if iterations is not None else settings.monte_carlo_iterations
        self.perturbation_scale = (
            perturbation_scale if perturbation_scale is not None else settings.perturbation_scale
        )
        self.trend_threshold = (
            trend_threshold if trend_threshold is not None else settings.trend_threshold_seconds
        )

    def baseline(self, history: HistoricalContext | None = None) -> float:
        """Prior risk score: recent average, else last assessment, else default."""
        if history is not None:
            if history.recent_assessments:
                return statistics.fmean(a.adjusted_score for a in history.recent_assessments)
            if history.previous_assessment is not None:
                return history.previous_assessment.adjusted_score
        return score_from_seconds(self.baseline_seconds)

    def score(
        self,
        factors: list[RiskFactor],
        history: HistoricalContext | None = None,
    ) -> RiskAssessment:
        """
        Score a factor vector against an optional history.

        An empty vector is not an error: the result sits on the baseline
        with zero confidence and a collapsed interval.
        """
        baseline = self.baseline(history)

        if not factors:
            logger.warning("No risk factors supplied, returning baseline assessment")
            return self._neutral(baseline, history)

        raw = weighted_score(factors)
        confidence = statistics.fmean(f.confidence for f in factors)
        adjusted = bayesian_adjust(raw, confidence, baseline, self.prior_strength)

        simulation = run_simulation(
            factors,
            lambda sample: bayesian_adjust(
                weighted_score(sample), confidence, baseline, self.prior_strength
            ),
            self.iterations,
            self.perturbation_scale,
        )

        seconds = seconds_from_score(adjusted)
        trend, delta = self._trend(seconds, history)

        logger.info(
            f"Risk score raw={raw:.4f} adjusted={adjusted:.4f} baseline={baseline:.4f} "
            f"seconds={seconds} interval=({simulation.p5:.4f}, {simulation.p95:.4f})"
        )

        return RiskAssessment(
            raw_score=raw,
            bayesian_adjusted_score=adjusted,
            baseline_score=baseline,
            confidence=confidence,
            confidence_interval=(simulation.p5, simulation.p95),
            seconds_to_midnight=seconds,
            risk_level=classify_risk_level(seconds),
            trend_direction=trend,
            primary_drivers=primary_drivers(factors),
            delta_from_previous=delta,
            simulation=simulation,
        )

    def _neutral(self, baseline: float, history: HistoricalContext | None) -> RiskAssessment:
        seconds = seconds_from_score(baseline)
        trend, delta = self._trend(seconds, history)
        return RiskAssessment(
            raw_score=baseline,
            bayesian_adjusted_score=baseline,
            baseline_score=baseline,
            confidence=0.0,
            confidence_interval=(baseline, baseline),
            seconds_to_midnight=seconds,
            risk_level=classify_risk_level(seconds),
            trend_direction=trend,
            primary_drivers=[],
            delta_from_previous=delta,
            simulation=SimulationResult(
                iterations=0,
                mean=baseline,
                std_dev=0.0,
                median=baseline,
                p5=baseline,
                p95=baseline,
            ),
        )

    def _trend(
        self, seconds: int, history: HistoricalContext | None
    ) -> tuple[TrendDirection, int | None]:
        # Fewer seconds means closer to midnight
        if history is None or history.previous_assessment is None:
            return TrendDirection.UNCERTAIN, None
        delta = seconds - history.previous_assessment.seconds_to_midnight
        if abs(delta) <= self.trend_threshold:
            return TrendDirection.STABLE, delta
        if delta < 0:
            return TrendDirection.DETERIORATING, delta
        return TrendDirection.IMPROVING, delta


def primary_drivers(factors: list[RiskFactor], limit: int = PRIMARY_DRIVER_COUNT) -> list[FactorContribution]:
    """Top factors by value × weight, ties in canonical category order."""
    ranked = sorted(
        factors,
        key=lambda f: (-(f.raw_value * f.weight), _CATEGORY_ORDER[f.category]),
    )
    return [
        FactorContribution(
            category=f.category,
            raw_value=f.raw_value,
            weight=f.weight,
            contribution=round(f.raw_value * f.weight, 6),
        )
        for f in ranked[:limit]
    ]
