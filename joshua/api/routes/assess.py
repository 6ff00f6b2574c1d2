"""
Assessment Route — POST /assess

Accepts {"data": AggregatedData, "history": HistoricalContext | null} and
runs one full assessment cycle.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from joshua.api.dependencies import get_pipeline
from joshua.engine.pipeline import AssessmentPipeline
from joshua.errors import AssessmentError, ErrorKind
from joshua.models.assessment_models import AssessFailure, AssessmentReport, AssessRequest

logger = logging.getLogger("joshua.api.assess")

router = APIRouter()

# Failures caused by the reasoning service being unreachable or shedding load
_UNAVAILABLE_KINDS = frozenset(
    {ErrorKind.UNAVAILABLE, ErrorKind.OVERLOADED, ErrorKind.RATE_LIMIT_EXCEEDED}
)


@router.post(
    "/assess",
    response_model=AssessmentReport,
    responses={502: {"model": AssessFailure}, 503: {"model": AssessFailure}},
)
async def assess(
    request: AssessRequest,
    pipeline: AssessmentPipeline = Depends(get_pipeline),
):
    """
    Run one assessment cycle.

    A failed cycle answers 503 when the reasoning service is unavailable
    and 502 otherwise, with the failed stage and the cycle report.
    """
    try:
        return await pipeline.run(request.data, request.history)
    except AssessmentError as e:
        status = 503 if e.kind in _UNAVAILABLE_KINDS else 502
        logger.warning(f"Assessment failed at {e.stage} stage ({e.kind.value}), answering {status}")
        failure = AssessFailure(
            stage=e.stage,
            error_kind=e.kind,
            detail=e.message,
            report=e.report,
        )
        return JSONResponse(status_code=status, content=failure.model_dump(mode="json"))
