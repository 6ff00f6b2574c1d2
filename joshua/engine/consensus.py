"""
Consensus Builder — Fans out N analyses and combines them statistically.

consensus seconds = median of the reported seconds
divergence        = max − min; above the threshold the result is flagged
                    and confidence is reduced by min(std_dev / 100, 0.30)
agreement         = 1 − min(1, std_dev / mean)

Aggregation is independent of completion order: inputs are put in a
canonical order before anything order-sensitive happens.
"""

from __future__ import annotations

import asyncio
import logging
import re
import statistics
from difflib import SequenceMatcher

from joshua.config import settings
from joshua.engine.summary import synthesize_summary
from joshua.errors import InsufficientConsensusError, JoshuaError
from joshua.llm.gateway import ReasoningService
from joshua.models.analysis_models import (
    IMPACT_RANK,
    ConsensusAnalysis,
    CriticalDevelopment,
    RiskCategory,
    SingleAnalysis,
    classify_risk_level,
)
from joshua.models.assessment_models import AnalysisOutcome

logger = logging.getLogger("joshua.engine.consensus")

MIN_ANALYSES = 2
MAX_CONFIDENCE_PENALTY = 0.30

_PUNCT_RE = re.compile(r"[^\w\s]")
_SPACE_RE = re.compile(r"\s+")


def spread_temperatures(n: int, low: float | None = None, high: float | None = None) -> list[float]:
    """n temperatures spaced evenly across [low, high]; one call uses the midpoint."""
    low = low if low is not None else settings.llm_temperature_min
    high = high if high is not None else settings.llm_temperature_max
    if n <= 0:
        return []
    if n == 1:
        return [round((low + high) / 2, 4)]
    step = (high - low) / (n - 1)
    return [round(low + i * step, 4) for i in range(n)]


def normalize_description(text: str) -> str:
    text = _PUNCT_RE.sub(" ", text.lower())
    return _SPACE_RE.sub(" ", text).strip()


def merge_developments(
    analyses: list[SingleAnalysis], similarity: float | None = None
) -> list[CriticalDevelopment]:
    """
    Collapse developments reported by several analyses into one entry each.

    Two descriptions are the same development when their normalized text
    matches or is at least `similarity` alike. The merged entry keeps the
    highest escalation potential (and that entry's text), the highest impact
    and confidence, and the union of affected regions.
    """
    threshold = similarity if similarity is not None else settings.dedup_similarity
    groups: list[tuple[str, list[CriticalDevelopment]]] = []

    for analysis in analyses:
        for dev in analysis.critical_developments:
            key = normalize_description(dev.description)
            for group_key, members in groups:
                if key == group_key or SequenceMatcher(None, key, group_key).ratio() >= threshold:
                    members.append(dev)
                    break
            else:
                groups.append((key, [dev]))

    merged: list[CriticalDevelopment] = []
    for _, members in groups:
        lead = max(members, key=lambda d: (d.escalation_potential, d.confidence))
        regions: set[str] = set()
        for d in members:
            regions |= d.affected_regions
        merged.append(
            lead.model_copy(
                update={
                    "impact": max((d.impact for d in members), key=IMPACT_RANK.__getitem__),
                    "affected_regions": frozenset(regions),
                    "confidence": max(d.confidence for d in members),
                }
            )
        )

    merged.sort(key=lambda d: (-IMPACT_RANK[d.impact], -d.escalation_potential, d.description))
    return merged


def merge_text_items(lists: list[list[str]]) -> list[str]:
    """Union of string lists, case-insensitive, first spelling wins."""
    seen: set[str] = set()
    merged = []
    for items in lists:
        for item in items:
            key = _SPACE_RE.sub(" ", item.strip().lower())
            if key and key not in seen:
                seen.add(key)
                merged.append(item.strip())
    return merged


def average_factors(analyses: list[SingleAnalysis]) -> dict[RiskCategory, float]:
    """Per-category mean over the analyses that reported that category."""
    factors: dict[RiskCategory, float] = {}
    for category in RiskCategory:
        values = [a.risk_factors[category] for a in analyses if category in a.risk_factors]
        if values:
            factors[category] = statistics.fmean(values)
    return factors


class ConsensusBuilder:
    """Runs the ensemble and builds a ConsensusAnalysis from its results."""

    def __init__(
        self,
        max_divergence: int | None = None,
        dedup_similarity: float | None = None,
        temperature_min: float | None = None,
        temperature_max: float | None = None,
    ) -> None:
        self.max_divergence = (
            max_divergence if max_divergence is not None else settings.max_divergence_seconds
        )
        self.dedup_similarity = (
            dedup_similarity if dedup_similarity is not None else settings.dedup_similarity
        )
        self.temperature_min = (
            temperature_min if temperature_min is not None else settings.llm_temperature_min
        )
        self.temperature_max = (
            temperature_max if temperature_max is not None else settings.llm_temperature_max
        )

    async def gather(self, service: ReasoningService, prompt: str, n: int) -> list[AnalysisOutcome]:
        """
        Issue n concurrent calls and collect every outcome.

        A failed call becomes an outcome carrying its error kind; it never
        cancels its siblings.
        """
        temperatures = spread_temperatures(n, self.temperature_min, self.temperature_max)
        tasks = [
            asyncio.create_task(self._run_one(service, prompt, i, t))
            for i, t in enumerate(temperatures)
        ]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

    async def _run_one(
        self, service: ReasoningService, prompt: str, index: int, temperature: float
    ) -> AnalysisOutcome:
        try:
            analysis = await service.invoke(prompt, temperature)
        except JoshuaError as e:
            logger.warning(f"Analysis {index + 1} failed ({e.kind.value}): {e}")
            return AnalysisOutcome(
                index=index, temperature=temperature, error_kind=e.kind, error=str(e)
            )
        return AnalysisOutcome(index=index, temperature=temperature, analysis=analysis)

    def build_consensus(self, analyses: list[SingleAnalysis]) -> ConsensusAnalysis:
        """
        Combine at least two analyses.

        Raises:
            InsufficientConsensusError: fewer than two analyses supplied.
        """
        if len(analyses) < MIN_ANALYSES:
            raise InsufficientConsensusError(len(analyses), MIN_ANALYSES)

        ordered = sorted(
            analyses, key=lambda a: (a.seconds_to_midnight, a.confidence, a.executive_summary)
        )
        seconds = [a.seconds_to_midnight for a in ordered]

        consensus_seconds = int(round(statistics.median(seconds)))
        mean = statistics.fmean(seconds)
        std_dev = statistics.pstdev(seconds)
        divergence = seconds[-1] - seconds[0]
        high_divergence = divergence > self.max_divergence

        confidence = statistics.fmean(a.confidence for a in ordered)
        if high_divergence:
            penalty = min(std_dev / 100.0, MAX_CONFIDENCE_PENALTY)
            confidence = max(0.0, confidence - penalty)
            logger.warning(
                f"High divergence across analyses: {divergence}s spread "
                f"(values {seconds}), confidence reduced by {penalty:.2f}"
            )

        agreement = 1.0 if mean == 0 else 1.0 - min(1.0, std_dev / mean)

        consensus = ConsensusAnalysis(
            consensus_seconds=consensus_seconds,
            mean_seconds=mean,
            std_dev=std_dev,
            divergence=divergence,
            high_divergence=high_divergence,
            confidence=confidence,
            agreement_level=agreement,
            risk_level=classify_risk_level(consensus_seconds),
            risk_factors=average_factors(ordered),
            critical_developments=merge_developments(ordered, self.dedup_similarity),
            early_warning_indicators=merge_text_items(
                [a.early_warning_indicators for a in ordered]
            ),
            recommendations=merge_text_items([a.recommendations for a in ordered]),
            executive_summary=synthesize_summary(ordered, consensus_seconds, agreement),
            analysis_count=len(analyses),
            individual_analyses=ordered,
        )

        logger.info(
            f"Consensus from {len(analyses)} analyses: {consensus_seconds}s "
            f"(mean {mean:.1f}, std {std_dev:.1f}, agreement {agreement:.2f})"
        )
        return consensus
