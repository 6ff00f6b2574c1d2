"""
Health Check Route — GET /health, GET /metrics
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from joshua.api.dependencies import get_call_metrics, get_circuit_breaker
from joshua.config import settings
from joshua.llm.circuit_breaker import CircuitBreaker
from joshua.llm.metrics import CallMetrics

router = APIRouter()


@router.get("/health")
async def health(breaker: CircuitBreaker = Depends(get_circuit_breaker)):
    """Health check endpoint."""
    return {
        "status": "ok",
        "model": settings.reasoning_model,
        "version": "1.0.0",
        "breaker": breaker.state.value,
    }


@router.get("/metrics")
async def metrics(
    call_metrics: CallMetrics = Depends(get_call_metrics),
    breaker: CircuitBreaker = Depends(get_circuit_breaker),
):
    """Reasoning-service call counters and breaker state."""
    return {
        "calls": call_metrics.snapshot(),
        "breaker": breaker.get_stats(),
    }
