"""
Response Validator — Strict schema and business-rule validation of service output.

Rejects responses that:
- Contain no JSON object, or JSON that does not match the schema
- Place seconds_to_midnight outside 0-1440
- Score a risk factor, confidence, or escalation potential outside 0.0-1.0
- Leave the executive summary or detailed analysis empty

A risk level that disagrees with seconds_to_midnight is only logged.
Malformed output goes through the recovery strategies before the call is
given up on.
"""

from __future__ import annotations

import json
import logging
from typing import Callable

from pydantic import ValidationError

from joshua.errors import ParsingError, ResponseValidationError
from joshua.llm.recovery import extract_by_keywords, salvage_partial_json, strip_fences
from joshua.models.analysis_models import (
    IMPACT_RANK,
    MAX_SECONDS_TO_MIDNIGHT,
    RISK_LEVEL_ALIASES,
    TREND_ALIASES,
    CriticalDevelopment,
    ImpactLevel,
    RiskCategory,
    RiskLevel,
    SingleAnalysis,
    TrendDirection,
    classify_risk_level,
)
from joshua.models.llm_models import AnalysisPayload

logger = logging.getLogger("joshua.llm.validator")


RECOVERY_STRATEGIES: list[tuple[str, Callable[[str], AnalysisPayload | None]]] = [
    ("partial_json", salvage_partial_json),
    ("keyword_extraction", extract_by_keywords),
]


def isolate_json(text: str) -> str:
    """Strip any fence and return the text between the first '{' and last '}'."""
    cleaned = strip_fences(text)
    start = cleaned.find("{")
    if start == -1:
        raise ParsingError("No JSON object found in response")
    end = cleaned.rfind("}")
    if end < start:
        raise ParsingError("No closing brace found in response")
    return cleaned[start : end + 1]


def parse_payload(text: str) -> AnalysisPayload:
    """Deserialize raw service text against the response schema."""
    try:
        data = json.loads(isolate_json(text))
    except json.JSONDecodeError as e:
        raise ParsingError(f"Failed to parse JSON: {e}") from e
    if not isinstance(data, dict):
        raise ParsingError("Top-level JSON value is not an object")
    try:
        return AnalysisPayload.model_validate(data)
    except ValidationError as e:
        raise ParsingError(f"Schema validation failed: {e}") from e


def _normalize(value: str) -> str:
    return value.strip().lower().replace(" ", "_").replace("-", "_")


def _parse_category(name: str) -> RiskCategory | None:
    try:
        return RiskCategory(_normalize(name))
    except ValueError:
        return None


def _parse_risk_level(value: str | None) -> RiskLevel | None:
    if not value:
        return None
    key = _normalize(value)
    if key in RISK_LEVEL_ALIASES:
        return RISK_LEVEL_ALIASES[key]
    try:
        return RiskLevel(key)
    except ValueError:
        return None


def _parse_trend(value: str | None) -> TrendDirection:
    if not value:
        return TrendDirection.UNCERTAIN
    key = _normalize(value)
    if key in TREND_ALIASES:
        return TREND_ALIASES[key]
    try:
        return TrendDirection(key)
    except ValueError:
        logger.warning(f"Unknown trend_direction '{value}', using 'uncertain'")
        return TrendDirection.UNCERTAIN


def _parse_impact(value: str) -> ImpactLevel:
    try:
        return ImpactLevel(_normalize(value))
    except ValueError:
        logger.warning(f"Unknown impact '{value}', using 'medium'")
        return ImpactLevel.MEDIUM


def to_analysis(payload: AnalysisPayload, recovered: str | None = None) -> SingleAnalysis:
    """
    Apply business rules to a schema-valid payload.

    Raises:
        ResponseValidationError: listing every rule the payload breaks.
    """
    errors: list[str] = []

    seconds = payload.seconds_to_midnight
    if not 0 <= seconds <= MAX_SECONDS_TO_MIDNIGHT:
        errors.append(
            f"Invalid seconds_to_midnight: {seconds} (must be 0-{MAX_SECONDS_TO_MIDNIGHT})"
        )

    if not 0.0 <= payload.confidence <= 1.0:
        errors.append(f"Invalid confidence: {payload.confidence} (must be 0.0-1.0)")

    factors: dict[RiskCategory, float] = {}
    for name, value in payload.risk_factors.items():
        category = _parse_category(name)
        if category is None:
            logger.warning(f"Ignoring unknown risk factor '{name}'")
            continue
        if not 0.0 <= value <= 1.0:
            errors.append(f"Invalid risk factor {category.value}: {value} (must be 0.0-1.0)")
            continue
        factors[category] = value
    missing = [c.value for c in RiskCategory if c not in factors]
    if missing and recovered is None:
        logger.warning(f"Missing risk factors: {missing}")

    if not payload.executive_summary.strip():
        errors.append("Missing executive summary")
    if not payload.detailed_analysis.strip():
        errors.append("Missing detailed analysis")

    developments: list[CriticalDevelopment] = []
    for dev in payload.critical_developments:
        if not dev.description.strip():
            continue
        if not 0.0 <= dev.escalation_potential <= 1.0:
            errors.append(
                f"Invalid escalation_potential: {dev.escalation_potential} (must be 0.0-1.0)"
            )
            continue
        if not 0.0 <= dev.confidence <= 1.0:
            errors.append(f"Invalid development confidence: {dev.confidence} (must be 0.0-1.0)")
            continue
        developments.append(
            CriticalDevelopment(
                description=dev.description.strip(),
                source_ref=dev.source_ref,
                impact=_parse_impact(dev.impact),
                affected_regions=frozenset(r.strip() for r in dev.affected_regions if r.strip()),
                escalation_potential=dev.escalation_potential,
                confidence=dev.confidence,
            )
        )

    if errors:
        logger.warning(
            f"Response validation failed with {len(errors)} errors: {errors}"
        )
        raise ResponseValidationError("Analysis breaks business rules", errors)

    expected_level = classify_risk_level(seconds)
    reported_level = _parse_risk_level(payload.risk_level)
    if payload.risk_level and reported_level is None:
        logger.warning(f"Unknown risk_level '{payload.risk_level}', using '{expected_level.value}'")
    elif reported_level is not None and reported_level != expected_level:
        logger.warning(
            f"Risk level '{reported_level.value}' inconsistent with {seconds} seconds "
            f"(expected '{expected_level.value}')"
        )

    developments.sort(key=lambda d: (-IMPACT_RANK[d.impact], -d.escalation_potential))

    return SingleAnalysis(
        seconds_to_midnight=seconds,
        risk_level=reported_level or expected_level,
        confidence=payload.confidence,
        risk_factors=factors,
        critical_developments=developments,
        trend_direction=_parse_trend(payload.trend_direction),
        executive_summary=payload.executive_summary.strip(),
        detailed_analysis=payload.detailed_analysis.strip(),
        early_warning_indicators=[i.strip() for i in payload.early_warning_indicators if i.strip()],
        recommendations=[r.strip() for r in payload.recommendations if r.strip()],
        recovered=recovered,
    )


def validate_response(text: str) -> SingleAnalysis:
    """
    Turn one raw service response into a validated SingleAnalysis.

    Tries strict parsing first. Only output that cannot be parsed goes
    through the recovery strategies; a parsed response that breaks the
    business rules is rejected as it stands.

    Raises:
        ResponseValidationError: the payload parsed but broke business rules
        ParsingError: nothing usable could be extracted
    """
    errors: list[str] = []
    rule_failure = False

    try:
        payload = parse_payload(text)
    except ParsingError as e:
        errors.append(e.message)
    else:
        return to_analysis(payload)

    for name, strategy in RECOVERY_STRATEGIES:
        payload = strategy(text)
        if payload is None:
            errors.append(f"{name}: nothing recoverable")
            continue
        try:
            analysis = to_analysis(payload, recovered=name)
        except ResponseValidationError as e:
            rule_failure = True
            errors.extend(f"{name}: {err}" for err in e.errors)
            continue
        logger.warning(f"Recovered malformed response via {name}")
        return analysis

    if rule_failure:
        raise ResponseValidationError("Response failed validation after recovery", errors)
    raise ParsingError("Response could not be parsed or recovered", errors)
