"""
Prompt Builder — Builds structured prompts from aggregated intelligence.

The service never sees raw collector output. It receives:
- Collection window and source health
- Previous assessment baseline and recent trend (if any)
- Evidence grouped by risk category, most relevant first
- The response schema (in the fixed system instruction)

Pure functions: the same inputs always produce the same prompt.
"""

from __future__ import annotations

import json
from collections import Counter

from joshua.config import settings
from joshua.models.analysis_models import (
    CATEGORY_LABELS,
    CATEGORY_WEIGHTS,
    RiskCategory,
    classify_risk_level,
)
from joshua.models.intel_models import (
    AggregatedData,
    EvidenceItem,
    HistoricalContext,
    PreviousAssessment,
)


_CATEGORY_ORDER = {category: i for i, category in enumerate(RiskCategory)}

_RESPONSE_SCHEMA = {
    "seconds_to_midnight": "<integer 0-1440>",
    "risk_level": "critical|severe|elevated|moderate|low",
    "confidence": "<float 0.0-1.0>",
    "trend_direction": "improving|deteriorating|stable|uncertain",
    "risk_factors": {c.value: "<float 0.0-1.0>" for c in RiskCategory},
    "critical_developments": [
        {
            "description": "<what happened>",
            "source_ref": "<source name from the evidence>",
            "impact": "low|medium|high|critical",
            "affected_regions": ["<region>"],
            "escalation_potential": "<float 0.0-1.0>",
            "confidence": "<float 0.0-1.0>",
        }
    ],
    "early_warning_indicators": ["<indicator>"],
    "executive_summary": "<2-3 paragraph summary>",
    "detailed_analysis": "<comprehensive analysis with evidence>",
    "recommendations": ["<recommendation>"],
}


def _category_lines() -> str:
    return "\n".join(
        f"- {c.value} ({CATEGORY_LABELS[c]}): weight {CATEGORY_WEIGHTS[c]:.2f}"
        for c in RiskCategory
    )


SYSTEM_PROMPT = f"""\
You are JOSHUA, a nuclear war risk assessment system that monitors global
nuclear threats with absolute objectivity and analytical rigor.

Your analysis must:
1. Use the same risk framework as the Bulletin of the Atomic Scientists
2. Consider military, political, technological, and social dimensions
3. Ground every judgment in the supplied evidence and cite its sources
4. Explain changes relative to the previous assessment when one is given
5. Identify early warning indicators of escalation

Scale: seconds to midnight, 0 (midnight, nuclear war) to 1440 (noon, minimal risk).
Risk levels: critical < 120, severe 120-299, elevated 300-599, moderate 600-900, low > 900.

Score each of these eight risk categories from 0.0 (no risk) to 1.0 (extreme risk).
Canonical weights:
{_category_lines()}

Output STRICT JSON matching this schema, with no text outside the JSON:

{json.dumps(_RESPONSE_SCHEMA, indent=2)}
"""


def order_evidence(items: list[EvidenceItem]) -> list[EvidenceItem]:
    """Sort by category, then relevance descending; ties broken deterministically."""
    return sorted(
        items,
        key=lambda item: (
            _CATEGORY_ORDER[item.category],
            -item.relevance,
            -(item.published_at.timestamp() if item.published_at else 0.0),
            item.source,
            item.content,
        ),
    )


def _format_previous(prev: PreviousAssessment) -> str:
    level = prev.risk_level or classify_risk_level(prev.seconds_to_midnight)
    lines = [
        "## Previous Assessment Baseline",
        "",
        f"- **Date**: {prev.assessed_at:%Y-%m-%d}",
        f"- **Seconds to Midnight**: {prev.seconds_to_midnight}",
        f"- **Risk Level**: {level.value}",
        f"- **Confidence**: {prev.confidence:.2f}",
    ]
    if prev.top_factors:
        top = sorted(prev.top_factors.items(), key=lambda kv: (-kv[1], kv[0].value))[:3]
        lines.append(
            "- **Top Risk Factors**: "
            + ", ".join(f"{c.value} ({v:.2f})" for c, v in top)
        )
    return "\n".join(lines) + "\n"


def _format_history(history: HistoricalContext | None) -> str:
    if history is None or history.previous_assessment is None:
        return (
            "## Previous Assessment\n\n"
            "**No previous assessment available.** This is a baseline assessment.\n"
        )

    parts = [_format_previous(history.previous_assessment)]
    stats = history.trend_stats
    if stats and stats.cycles:
        parts.append(
            f"## Recent Trend ({stats.cycles} cycles)\n\n"
            f"- **Mean Seconds**: {stats.mean_seconds:.1f}\n"
            f"- **Std Dev**: {stats.std_dev_seconds:.1f}\n"
            f"- **Slope**: {stats.slope_seconds_per_cycle:+.2f} seconds/cycle\n"
        )
    elif history.recent_assessments:
        series = ", ".join(str(a.seconds_to_midnight) for a in history.recent_assessments[-30:])
        parts.append(f"## Recent Assessments (oldest first)\n\n{series}\n")
    return "\n".join(parts)


def _format_item(item: EvidenceItem, excerpt_chars: int) -> str:
    excerpt = item.content[:excerpt_chars]
    header = f"**[{item.source}]** (relevance {item.relevance:.2f}"
    if item.published_at:
        header += f", {item.published_at:%Y-%m-%d}"
    header += ")"
    if item.title:
        header += f" {item.title}"
    return f"{header}\n{excerpt}\n"


def _category_heading(category: RiskCategory) -> str:
    return f"### {CATEGORY_LABELS[category]} ({category.value})\n"


def _omitted_line(omitted: int) -> str:
    return f"- **Omitted (lowest relevance, size budget)**: {omitted}"


def _header_sections(
    data: AggregatedData, history: HistoricalContext | None, omitted: int
) -> list[str]:
    sections = [
        "# Nuclear Risk Assessment Request",
        "",
        f"**Assessment Date**: {data.collection_end:%Y-%m-%d %H:%M:%S UTC}",
        f"**Data Collection Period**: {data.collection_start:%Y-%m-%d %H:%M UTC} "
        f"to {data.collection_end:%Y-%m-%d %H:%M UTC}",
        "",
        _format_history(history),
        "## Collected Intelligence Data",
        "",
        f"- **Total Data Points**: {len(data.items)}",
        f"- **Sources**: {data.sources_count} active, {len(data.failed_sources)} failed",
    ]
    if data.failed_sources:
        sections.append(f"- **Failed Sources**: {', '.join(data.failed_sources)}")
    if omitted:
        sections.append(_omitted_line(omitted))
    sections += ["", "## Intelligence by Risk Category", ""]
    return sections


_FOOTER_SECTIONS = [
    "## Assessment Requirements",
    "",
    "1. Respond ONLY with valid JSON matching the schema in your instructions",
    "2. Base the assessment on the intelligence above",
    "3. Compare to the previous assessment if one is given",
    "4. Cite sources in critical_developments.source_ref",
    "5. Quantify uncertainty in the confidence fields",
]


def _rendered_length(sections: list[str]) -> int:
    # Each section is followed by one newline in the final prompt
    return sum(len(s) + 1 for s in sections)


def build_prompt(
    data: AggregatedData,
    history: HistoricalContext | None = None,
    max_chars: int | None = None,
    excerpt_chars: int | None = None,
) -> str:
    """
    Build the user prompt for one assessment cycle.

    Every piece is rendered once. Items are dropped by subtracting their
    rendered length from a running total, so trimming stays linear in the
    number of items.

    Args:
        data: Aggregated evidence for the collection window
        history: Previous assessment and recent trend, if any
        max_chars: Size budget; lowest-relevance items are dropped to fit
        excerpt_chars: Characters of each item's content to include

    Returns:
        Complete prompt string (the system instruction is SYSTEM_PROMPT)
    """
    budget = max_chars if max_chars is not None else settings.prompt_max_chars
    excerpt = excerpt_chars if excerpt_chars is not None else settings.evidence_excerpt_chars

    ordered = order_evidence(data.items)
    rendered = [_format_item(item, excerpt) for item in ordered]
    per_category = Counter(item.category for item in ordered)

    fixed = _rendered_length(_header_sections(data, history, 0)) + _rendered_length(_FOOTER_SECTIONS)
    total = (
        fixed
        + _rendered_length(rendered)
        + _rendered_length([_category_heading(c) for c in per_category])
    )

    # Drop order: least relevant first, deterministic among equals
    drop_order = sorted(range(len(ordered)), key=lambda i: (ordered[i].relevance, -i))

    dropped: set[int] = set()
    for idx in drop_order:
        omitted = len(dropped)
        note = len(_omitted_line(omitted)) + 1 if omitted else 0
        if total + note <= budget:
            break
        dropped.add(idx)
        total -= len(rendered[idx]) + 1
        category = ordered[idx].category
        per_category[category] -= 1
        if per_category[category] == 0:
            total -= len(_category_heading(category)) + 1

    sections = _header_sections(data, history, len(dropped))
    current: RiskCategory | None = None
    for idx, item in enumerate(ordered):
        if idx in dropped:
            continue
        if item.category != current:
            current = item.category
            sections.append(_category_heading(current))
        sections.append(rendered[idx])
    sections += _FOOTER_SECTIONS
    return "\n".join(sections) + "\n"


def build_delta_explanation_prompt(
    current: PreviousAssessment, previous: PreviousAssessment
) -> str:
    """Ask the service to explain the change between two assessments."""
    delta = current.seconds_to_midnight - previous.seconds_to_midnight
    if delta < 0:
        direction = "(risk INCREASED)"
    elif delta > 0:
        direction = "(risk DECREASED)"
    else:
        direction = "(no change)"

    def describe(a: PreviousAssessment) -> str:
        level = a.risk_level or classify_risk_level(a.seconds_to_midnight)
        return (
            f"- Date: {a.assessed_at:%Y-%m-%d}\n"
            f"- Seconds to Midnight: {a.seconds_to_midnight}\n"
            f"- Risk Level: {level.value}\n"
        )

    return (
        "# Risk Assessment Change Explanation\n\n"
        "Please explain the changes between these two risk assessments:\n\n"
        f"## Previous Assessment\n{describe(previous)}\n"
        f"## Current Assessment\n{describe(current)}\n"
        f"**Change**: {delta:+d} seconds {direction}\n\n"
        "Please provide a clear, concise explanation of:\n"
        "1. The primary drivers of this change\n"
        "2. Specific events or developments that influenced the assessment\n"
        "3. Whether this change is a significant shift or normal variation\n"
        "4. Any early warning indicators that emerged\n\n"
        "Respond in 2-3 paragraphs suitable for an executive summary.\n"
    )
