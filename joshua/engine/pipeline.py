"""
Assessment Pipeline — Main orchestrator for one assessment cycle.

Full pipeline:
1. Collection: check the aggregated evidence is usable
2. Prompt: render evidence and history into one prompt
3. Analysis: N concurrent reasoning calls (or one in single mode)
4. Consensus: median/variance/divergence over the valid analyses
5. Scoring: weighted score → Bayesian adjustment → simulation → trend

Prompt building and scoring are CPU-bound and run in a worker thread.

Any failure is raised as AssessmentError naming the stage it happened in,
with a CycleReport describing how far the cycle got.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter

from joshua.config import settings
from joshua.core.risk_scorer import RiskScorer, factors_from_scores
from joshua.engine.consensus import ConsensusBuilder
from joshua.errors import AssessmentError, ErrorKind, JoshuaError
from joshua.llm.circuit_breaker import CircuitBreaker
from joshua.llm.gateway import ReasoningService
from joshua.llm.prompt_builder import build_prompt
from joshua.models.analysis_models import ConsensusAnalysis, SingleAnalysis
from joshua.models.assessment_models import AssessmentReport, CycleReport
from joshua.models.intel_models import AggregatedData, HistoricalContext

logger = logging.getLogger("joshua.engine.pipeline")


class AssessmentPipeline:
    """
    Ties together: prompt builder → reasoning service × N → consensus →
    risk scorer.
    """

    def __init__(
        self,
        service: ReasoningService,
        consensus_builder: ConsensusBuilder | None = None,
        scorer: RiskScorer | None = None,
        analyses: int | None = None,
        timeout: float | None = None,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self.service = service
        self.consensus_builder = consensus_builder or ConsensusBuilder()
        self.scorer = scorer or RiskScorer()
        self.analyses = analyses if analyses is not None else settings.consensus_analyses
        self.timeout = timeout if timeout is not None else settings.assessment_timeout
        self.breaker = breaker

    async def run(
        self,
        data: AggregatedData,
        history: HistoricalContext | None = None,
    ) -> AssessmentReport:
        """
        Execute one full assessment cycle.

        Raises:
            AssessmentError: with the failed stage and the cycle report
        """
        start_time = time.monotonic()
        report = CycleReport(
            mode="consensus" if self.analyses > 1 else "single",
            analyses_requested=self.analyses,
        )
        logger.info(
            f"Assessment cycle starting: {len(data.items)} evidence items, "
            f"{self.analyses} analyses"
        )

        try:
            result = await asyncio.wait_for(self._run(data, history, report), self.timeout)
        except asyncio.TimeoutError as e:
            self._finish(report, start_time)
            logger.error(f"Assessment cycle timed out after {self.timeout}s at {report.stage} stage")
            raise AssessmentError(
                report.stage,
                f"cycle exceeded {self.timeout}s",
                report,
                kind=ErrorKind.TIMEOUT,
            ) from e
        except AssessmentError as e:
            self._finish(report, start_time)
            logger.error(f"{e} ({e.kind.value})")
            raise

        self._finish(report, start_time)
        logger.info(
            f"Assessment cycle complete in {report.duration_ms:.0f}ms: "
            f"{result.assessment.seconds_to_midnight} seconds to midnight "
            f"({result.assessment.risk_level.value})"
        )
        return result

    def _finish(self, report: CycleReport, start_time: float) -> None:
        report.duration_ms = round((time.monotonic() - start_time) * 1000, 3)
        if self.breaker is not None:
            report.breaker_state = self.breaker.state.value

    async def _run(
        self,
        data: AggregatedData,
        history: HistoricalContext | None,
        report: CycleReport,
    ) -> AssessmentReport:
        # ── Step 1: Collection ──
        report.stage = "collection"
        report.evidence_items = len(data.items)
        if not data.items:
            raise AssessmentError(
                "collection", "no evidence items collected", report, kind=ErrorKind.VALIDATION
            )
        if data.collection_end < data.collection_start:
            raise AssessmentError(
                "collection", "collection window ends before it starts", report,
                kind=ErrorKind.VALIDATION,
            )
        report.input_valid = True

        # ── Step 2–3: Prompt and analysis ──
        report.stage = "analysis"
        prompt = await asyncio.to_thread(build_prompt, data, history)

        consensus: ConsensusAnalysis | None = None
        analysis: SingleAnalysis | None = None

        if self.analyses > 1:
            analyses = await self._gather(prompt, report)

            # ── Step 4: Consensus ──
            report.stage = "consensus"
            try:
                consensus = self.consensus_builder.build_consensus(analyses)
            except JoshuaError as e:
                raise AssessmentError("consensus", str(e), report, kind=e.kind) from e
            scores, confidence = consensus.risk_factors, consensus.confidence
            summary = consensus.executive_summary
        else:
            analysis = await self._single(prompt, report)
            scores, confidence = analysis.risk_factors, analysis.confidence
            summary = analysis.executive_summary

        # ── Step 5: Scoring ──
        report.stage = "scoring"
        try:
            factors = factors_from_scores(scores, confidence)
            assessment = await asyncio.to_thread(self.scorer.score, factors, history)
        except ValueError as e:
            raise AssessmentError("scoring", str(e), report, kind=ErrorKind.VALIDATION) from e

        return AssessmentReport(
            assessment=assessment,
            consensus=consensus,
            analysis=analysis,
            executive_summary=summary,
            report=report,
        )

    async def _gather(self, prompt: str, report: CycleReport) -> list[SingleAnalysis]:
        outcomes = await self.consensus_builder.gather(self.service, prompt, self.analyses)

        failures = Counter(o.error_kind.value for o in outcomes if o.error_kind is not None)
        report.failures_by_kind = dict(failures)
        analyses = [o.analysis for o in outcomes if o.analysis is not None]
        report.analyses_succeeded = len(analyses)

        if not analyses:
            kind = ErrorKind(failures.most_common(1)[0][0]) if failures else ErrorKind.UNKNOWN
            raise AssessmentError(
                "analysis", f"all {len(outcomes)} analyses failed", report, kind=kind
            )
        if failures:
            logger.warning(
                f"{len(analyses)}/{len(outcomes)} analyses succeeded; failures: {dict(failures)}"
            )
        return analyses

    async def _single(self, prompt: str, report: CycleReport) -> SingleAnalysis:
        temperature = settings.llm_temperature
        try:
            analysis = await self.service.invoke(prompt, temperature)
        except JoshuaError as e:
            report.failures_by_kind = {e.kind.value: 1}
            raise AssessmentError("analysis", str(e), report, kind=e.kind) from e
        report.analyses_succeeded = 1
        return analysis
