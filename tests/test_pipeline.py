"""
Tests for Assessment Pipeline — verify stage orchestration and failure reports.
"""

import asyncio
import threading

import pytest

from conftest import FakeReasoningService, make_analysis
from joshua.core.risk_scorer import RiskScorer
from joshua.engine.pipeline import AssessmentPipeline
from joshua.errors import (
    AssessmentError,
    AuthenticationError,
    ErrorKind,
    OverloadedError,
    ParsingError,
)
from joshua.llm.circuit_breaker import CircuitBreaker


def make_pipeline(service, analyses=3, **kwargs):
    return AssessmentPipeline(
        service=service,
        scorer=RiskScorer(iterations=100),
        analyses=analyses,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_consensus_cycle(aggregated_data, history):
    service = FakeReasoningService([make_analysis(90), make_analysis(95), make_analysis(100)])
    result = await make_pipeline(service).run(aggregated_data, history)

    assert result.consensus is not None
    assert result.consensus.consensus_seconds == 95
    assert result.analysis is None
    assert result.executive_summary == result.consensus.executive_summary
    assert 0 <= result.assessment.seconds_to_midnight <= 1440
    assert result.assessment.delta_from_previous is not None

    report = result.report
    assert report.input_valid
    assert report.mode == "consensus"
    assert report.analyses_requested == 3
    assert report.analyses_succeeded == 3
    assert report.stage == "scoring"
    assert report.duration_ms >= 0
    assert len(service.calls) == 3


@pytest.mark.asyncio
async def test_partial_failure_still_reaches_consensus(aggregated_data):
    service = FakeReasoningService(
        [make_analysis(90), ParsingError("garbled"), make_analysis(100)]
    )
    result = await make_pipeline(service).run(aggregated_data)

    assert result.consensus.analysis_count == 2
    assert result.report.analyses_succeeded == 2
    assert result.report.failures_by_kind == {"parsing": 1}


@pytest.mark.asyncio
async def test_single_valid_analysis_fails_consensus(aggregated_data):
    service = FakeReasoningService(
        [make_analysis(90), OverloadedError("busy", 529), OverloadedError("busy", 529)]
    )
    with pytest.raises(AssessmentError) as exc_info:
        await make_pipeline(service).run(aggregated_data)

    error = exc_info.value
    assert error.stage == "consensus"
    assert error.kind == ErrorKind.INSUFFICIENT_CONSENSUS
    assert error.report.analyses_succeeded == 1
    assert error.report.failures_by_kind == {"overloaded": 2}


@pytest.mark.asyncio
async def test_all_analyses_failing_reports_analysis_stage(aggregated_data):
    service = FakeReasoningService([AuthenticationError("bad key", 401)] * 3)
    with pytest.raises(AssessmentError) as exc_info:
        await make_pipeline(service).run(aggregated_data)

    assert exc_info.value.stage == "analysis"
    assert exc_info.value.kind == ErrorKind.AUTHENTICATION
    assert exc_info.value.report.analyses_succeeded == 0


@pytest.mark.asyncio
async def test_empty_collection_fails_before_analysis(aggregated_data):
    empty = aggregated_data.model_copy(update={"items": []})
    service = FakeReasoningService([])

    with pytest.raises(AssessmentError) as exc_info:
        await make_pipeline(service).run(empty)

    assert exc_info.value.stage == "collection"
    assert not exc_info.value.report.input_valid
    assert service.calls == []


@pytest.mark.asyncio
async def test_single_mode(aggregated_data):
    service = FakeReasoningService([make_analysis(150)])
    result = await make_pipeline(service, analyses=1).run(aggregated_data)

    assert result.consensus is None
    assert result.analysis.seconds_to_midnight == 150
    assert result.report.mode == "single"
    assert service.calls[0][1] == 0.2


@pytest.mark.asyncio
async def test_single_mode_failure(aggregated_data):
    service = FakeReasoningService([OverloadedError("busy", 529)])
    with pytest.raises(AssessmentError) as exc_info:
        await make_pipeline(service, analyses=1).run(aggregated_data)

    assert exc_info.value.stage == "analysis"
    assert exc_info.value.report.failures_by_kind == {"overloaded": 1}


class SlowService:
    async def invoke(self, prompt, temperature):
        await asyncio.sleep(10)


@pytest.mark.asyncio
async def test_cycle_timeout(aggregated_data):
    pipeline = make_pipeline(SlowService(), timeout=0.05)

    with pytest.raises(AssessmentError) as exc_info:
        await pipeline.run(aggregated_data)

    assert exc_info.value.kind == ErrorKind.TIMEOUT
    assert exc_info.value.stage == "analysis"


@pytest.mark.asyncio
async def test_breaker_state_reported(aggregated_data):
    service = FakeReasoningService([make_analysis(90), make_analysis(95), make_analysis(100)])
    result = await make_pipeline(service, breaker=CircuitBreaker()).run(aggregated_data)
    assert result.report.breaker_state == "closed"


class GatedScorer(RiskScorer):
    """Scores only once the event loop has had a chance to open the gate."""

    def __init__(self):
        super().__init__(iterations=100)
        self.gate = threading.Event()
        self.gate_opened = None

    def score(self, factors, history=None):
        self.gate_opened = self.gate.wait(timeout=5)
        return super().score(factors, history)


@pytest.mark.asyncio
async def test_scoring_leaves_event_loop_free(aggregated_data):
    scorer = GatedScorer()
    service = FakeReasoningService([make_analysis(100)])
    pipeline = AssessmentPipeline(service=service, scorer=scorer, analyses=1)

    async def open_gate():
        await asyncio.sleep(0.05)
        scorer.gate.set()

    result, _ = await asyncio.gather(pipeline.run(aggregated_data), open_gate())

    assert scorer.gate_opened is True
    assert result.report.stage == "scoring"
