"""
Tests for Recovery Strategies — verify partial-JSON repair and keyword extraction.
"""

import json

from joshua.llm.recovery import (
    FALLBACK_CONFIDENCE,
    coerce_confidence,
    extract_by_keywords,
    load_partial_json,
    repair_candidates,
    salvage_partial_json,
    strip_fences,
)


def test_strip_fences_plain_text_untouched():
    assert strip_fences('{"a": 1}') == '{"a": 1}'


def test_strip_fences_unterminated_fence():
    assert strip_fences('```json\n{"a": 1}') == '{"a": 1}'


def test_repair_closes_open_string_and_brackets():
    candidates = repair_candidates('{"a": [1, 2], "b": "unfinished')
    assert json.loads(candidates[0]) == {"a": [1, 2], "b": "unfinished"}


def test_load_partial_json_cuts_back_to_last_comma():
    data = load_partial_json('{"a": 1, "b": {"c": 2, "d": tru')
    assert data is not None
    assert data["a"] == 1


def test_load_partial_json_without_object():
    assert load_partial_json("no braces here") is None


def test_coerce_confidence_labels_and_numbers():
    assert coerce_confidence("Very Low") == 0.2
    assert coerce_confidence("moderate") == 0.6
    assert coerce_confidence("0.7") == 0.7
    assert coerce_confidence(0.9) == 0.9
    assert coerce_confidence(True) is None
    assert coerce_confidence("unsure") is None


def test_salvage_requires_seconds_and_summary():
    assert salvage_partial_json('{"seconds_to_midnight": 90}') is None
    assert salvage_partial_json('{"executive_summary": "x"}') is None


def test_salvage_fills_defaults():
    payload = salvage_partial_json('{"seconds_to_midnight": 90, "executive_summary": "Tense."}')
    assert payload is not None
    assert payload.confidence == FALLBACK_CONFIDENCE
    assert payload.detailed_analysis == "Tense."
    assert payload.risk_factors == {}


def test_salvage_reads_confidence_label():
    payload = salvage_partial_json(
        '{"seconds_to_midnight": 90, "confidence_level": "High", "executive_summary": "Tense."}'
    )
    assert payload.confidence == 0.8


def test_salvage_drops_malformed_developments():
    text = json.dumps(
        {
            "seconds_to_midnight": 90,
            "executive_summary": "Tense.",
            "critical_developments": [{"impact": "high"}, {"description": "Missile test"}],
        }
    )
    payload = salvage_partial_json(text)
    assert [d.description for d in payload.critical_developments] == ["Missile test"]


def test_keyword_extraction_reads_json_fragments():
    text = (
        'garbage {"seconds_to_midnight": 100, "confidence": 0.65, '
        '"risk_factors": {"regional_conflicts": 0.8, "economic_pressure": 0.3'
        ' "executive_summary": "Broken but useful", "trend_direction": "stable"'
    )
    payload = extract_by_keywords(text)
    assert payload.seconds_to_midnight == 100
    assert payload.confidence == 0.65
    assert payload.risk_factors == {"regional_conflicts": 0.8, "economic_pressure": 0.3}
    assert payload.executive_summary == "Broken but useful"
    assert payload.trend_direction == "stable"


def test_keyword_extraction_needs_seconds():
    assert extract_by_keywords("Confidence is high but no number given.") is None
