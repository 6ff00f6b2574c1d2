"""
Recovery Strategies — Turn malformed service output into an analysis payload.

Used when strict parsing fails:
1. Partial-JSON salvage: repair truncated JSON, fill missing optional fields
2. Keyword extraction: regex out the handful of required numeric fields

Each strategy returns an AnalysisPayload or None; business rules are applied
afterwards by the response validator exactly as for a clean response.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import ValidationError

from joshua.models.analysis_models import CONFIDENCE_LABELS, RiskCategory
from joshua.models.llm_models import AnalysisPayload, DevelopmentPayload


# Confidence assumed when the service omits it (the "Low" confidence level)
FALLBACK_CONFIDENCE = 0.4

PARTIAL_SUMMARY = "Partial analysis extracted from malformed response"

_FENCE_RE = re.compile(r"```(?:json|JSON)?[ \t]*\n?(.*?)(?:\n?```|$)", re.DOTALL)

_SECONDS_PATTERNS = [
    re.compile(r'"seconds_to_midnight"\s*:\s*"?(\d+)'),
    re.compile(r"(\d+)\s+seconds\s+(?:to|before)\s+midnight", re.IGNORECASE),
    re.compile(r"seconds[\s_-]+to[\s_-]+midnight\W{0,5}(\d+)", re.IGNORECASE),
]
_CONFIDENCE_RE = re.compile(
    r'"confidence(?:_level)?"\s*:\s*"?([A-Za-z][A-Za-z _-]*|\d*\.?\d+)'
)
_TREND_RE = re.compile(r'"trend_direction"\s*:\s*"([A-Za-z_]+)"')
_RISK_LEVEL_RE = re.compile(r'"risk_level"\s*:\s*"([A-Za-z_]+)"')

_MAX_CUT_ATTEMPTS = 20


def strip_fences(text: str) -> str:
    """Remove a markdown code fence wrapper if the service added one."""
    text = text.strip()
    match = _FENCE_RE.search(text)
    if match and text.startswith("```"):
        return match.group(1).strip()
    return text


def _closers(stack: list[str] | tuple[str, ...]) -> str:
    return "".join("}" if c == "{" else "]" for c in reversed(stack))


def repair_candidates(text: str) -> list[str]:
    """
    Build closing-bracket completions for JSON cut off mid-stream.

    The first candidate closes the document where it stopped; later ones
    cut back to each earlier top-level-or-nested comma, most recent first.
    """
    stack: list[str] = []
    cut_points: list[tuple[int, tuple[str, ...]]] = []
    in_string = False
    escape = False

    for i, ch in enumerate(text):
        if in_string:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append(ch)
        elif ch in "}]":
            if stack:
                stack.pop()
        elif ch == ",":
            cut_points.append((i, tuple(stack)))

    tail = text[:-1] if escape else text
    if in_string:
        tail += '"'
    candidates = [tail + _closers(stack)]
    for index, snapshot in reversed(cut_points[-_MAX_CUT_ATTEMPTS:]):
        candidates.append(text[:index] + _closers(snapshot))
    return candidates


def load_partial_json(text: str) -> dict[str, Any] | None:
    """Best-effort load of a JSON object from possibly truncated text."""
    cleaned = strip_fences(text)
    start = cleaned.find("{")
    if start == -1:
        return None

    end = cleaned.rfind("}")
    if end > start:
        try:
            data = json.loads(cleaned[start : end + 1])
            if isinstance(data, dict):
                return data
        except json.JSONDecodeError:
            pass

    for candidate in repair_candidates(cleaned[start:]):
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


def coerce_confidence(value: Any) -> float | None:
    """Numeric or named confidence to a float, None if neither."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        key = re.sub(r"[\s_-]", "", value).lower()
        if key in CONFIDENCE_LABELS:
            return CONFIDENCE_LABELS[key]
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str) and v.strip()]


def _numeric_map(value: Any) -> dict[str, float]:
    if not isinstance(value, dict):
        return {}
    return {
        k: float(v)
        for k, v in value.items()
        if isinstance(v, (int, float)) and not isinstance(v, bool)
    }


def _developments(value: Any) -> list[dict[str, Any]]:
    if not isinstance(value, list):
        return []
    kept = []
    for item in value:
        if not isinstance(item, dict):
            continue
        try:
            DevelopmentPayload.model_validate(item)
        except ValidationError:
            continue
        kept.append(item)
    return kept


def salvage_partial_json(text: str) -> AnalysisPayload | None:
    """
    Recover a payload from incomplete JSON by defaulting optional fields.

    seconds_to_midnight and executive_summary must be present; everything
    else falls back to a documented default.
    """
    data = load_partial_json(text)
    if data is None:
        return None

    seconds = data.get("seconds_to_midnight")
    summary = data.get("executive_summary")
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float, str)):
        return None
    if not isinstance(summary, str) or not summary.strip():
        return None

    confidence = coerce_confidence(data.get("confidence", data.get("confidence_level")))
    detailed = data.get("detailed_analysis")
    salvaged = {
        "seconds_to_midnight": seconds,
        "risk_level": data.get("risk_level") if isinstance(data.get("risk_level"), str) else None,
        "confidence": confidence if confidence is not None else FALLBACK_CONFIDENCE,
        "trend_direction": (
            data.get("trend_direction") if isinstance(data.get("trend_direction"), str) else None
        ),
        "risk_factors": _numeric_map(data.get("risk_factors")),
        "critical_developments": _developments(data.get("critical_developments")),
        "early_warning_indicators": _string_list(data.get("early_warning_indicators")),
        "executive_summary": summary,
        "detailed_analysis": detailed if isinstance(detailed, str) and detailed.strip() else summary,
        "recommendations": _string_list(data.get("recommendations")),
    }
    try:
        return AnalysisPayload.model_validate(salvaged)
    except ValidationError:
        return None


def _extract_string(field: str, text: str) -> str | None:
    match = re.search(rf'"{field}"\s*:\s*"((?:[^"\\]|\\.)*)', text, re.DOTALL)
    if not match:
        return None
    raw = match.group(1)
    try:
        value = json.loads(f'"{raw}"')
    except json.JSONDecodeError:
        value = raw
    return value.strip() or None


def extract_by_keywords(text: str) -> AnalysisPayload | None:
    """Regex out the required numeric fields from arbitrary text."""
    seconds = None
    for pattern in _SECONDS_PATTERNS:
        match = pattern.search(text)
        if match:
            seconds = int(match.group(1))
            break
    if seconds is None:
        return None

    confidence = None
    match = _CONFIDENCE_RE.search(text)
    if match:
        confidence = coerce_confidence(match.group(1).strip())

    factors: dict[str, float] = {}
    for category in RiskCategory:
        match = re.search(rf'"{category.value}"\s*:\s*(\d*\.?\d+)', text)
        if match:
            factors[category.value] = float(match.group(1))

    summary = _extract_string("executive_summary", text) or PARTIAL_SUMMARY
    detailed = _extract_string("detailed_analysis", text) or text.strip()[:4000]
    trend = _TREND_RE.search(text)
    level = _RISK_LEVEL_RE.search(text)

    return AnalysisPayload(
        seconds_to_midnight=seconds,
        risk_level=level.group(1) if level else None,
        confidence=confidence if confidence is not None else FALLBACK_CONFIDENCE,
        trend_direction=trend.group(1) if trend else None,
        risk_factors=factors,
        executive_summary=summary,
        detailed_analysis=detailed,
    )
