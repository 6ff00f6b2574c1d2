"""
Monte Carlo Simulation — Deterministic perturbation of a factor vector.

Iteration i perturbs factor j by

    u = frac((i + 1) × α_j)
    value' = clamp(value + (2u − 1) × (1 − confidence) × scale, 0, 1)

where α_j is a fixed irrational number per category (fractional part of
the square root of the j-th prime). The additive sequence covers [0, 1)
evenly, so the same input always yields the same distribution.
"""

from __future__ import annotations

import math
import statistics
from typing import Callable

from joshua.models.analysis_models import RiskCategory
from joshua.models.risk_models import RiskFactor, SimulationResult


_PRIMES = [2, 3, 5, 7, 11, 13, 17, 19]

# Step size per category
CATEGORY_STEPS: dict[RiskCategory, float] = {
    category: math.sqrt(prime) % 1.0 for category, prime in zip(RiskCategory, _PRIMES)
}


def sequence_value(iteration: int, category: RiskCategory) -> float:
    """Low-discrepancy sample in [0, 1) for one iteration and category."""
    return ((iteration + 1) * CATEGORY_STEPS[category]) % 1.0


def perturb(factors: list[RiskFactor], iteration: int, scale: float) -> list[RiskFactor]:
    perturbed = []
    for factor in factors:
        spread = (1.0 - factor.confidence) * scale
        if spread <= 0:
            perturbed.append(factor)
            continue
        offset = (2.0 * sequence_value(iteration, factor.category) - 1.0) * spread
        value = min(1.0, max(0.0, factor.raw_value + offset))
        perturbed.append(factor.model_copy(update={"raw_value": value}))
    return perturbed


def percentile(sorted_values: list[float], pct: float) -> float:
    """Linear-interpolated percentile of an already sorted list."""
    if not sorted_values:
        raise ValueError("percentile of empty data")
    if len(sorted_values) == 1:
        return sorted_values[0]
    rank = (pct / 100.0) * (len(sorted_values) - 1)
    lower = math.floor(rank)
    upper = min(lower + 1, len(sorted_values) - 1)
    fraction = rank - lower
    return sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * fraction


def run_simulation(
    factors: list[RiskFactor],
    evaluate: Callable[[list[RiskFactor]], float],
    iterations: int,
    scale: float,
) -> SimulationResult:
    """
    Evaluate `iterations` perturbed copies of `factors`.

    `evaluate` maps a factor vector to the adjusted score; it is called
    once per iteration and must not keep state between calls.
    """
    if iterations < 1:
        raise ValueError("iterations must be at least 1")

    samples = sorted(evaluate(perturb(factors, i, scale)) for i in range(iterations))

    return SimulationResult(
        iterations=iterations,
        mean=statistics.fmean(samples),
        std_dev=statistics.pstdev(samples),
        median=statistics.median(samples),
        p5=percentile(samples, 5),
        p95=percentile(samples, 95),
    )
