"""
FastAPI Dependencies — Shared singletons injected via Depends().
"""

from __future__ import annotations

from functools import lru_cache

from joshua.core.risk_scorer import RiskScorer
from joshua.engine.consensus import ConsensusBuilder
from joshua.engine.pipeline import AssessmentPipeline
from joshua.llm.circuit_breaker import CircuitBreaker
from joshua.llm.gateway import LLMGateway
from joshua.llm.metrics import CallMetrics
from joshua.llm.rate_limiter import RateLimiter


@lru_cache
def get_rate_limiter() -> RateLimiter:
    """Shared rate limiter singleton."""
    return RateLimiter()


@lru_cache
def get_circuit_breaker() -> CircuitBreaker:
    """Shared circuit breaker singleton."""
    return CircuitBreaker(name="reasoning")


@lru_cache
def get_call_metrics() -> CallMetrics:
    """Shared call metrics singleton."""
    return CallMetrics()


@lru_cache
def get_llm_gateway() -> LLMGateway:
    """Shared LLM gateway singleton."""
    return LLMGateway(
        rate_limiter=get_rate_limiter(),
        breaker=get_circuit_breaker(),
        metrics=get_call_metrics(),
    )


@lru_cache
def get_pipeline() -> AssessmentPipeline:
    """Shared assessment pipeline singleton."""
    return AssessmentPipeline(
        service=get_llm_gateway(),
        consensus_builder=ConsensusBuilder(),
        scorer=RiskScorer(),
        breaker=get_circuit_breaker(),
    )
