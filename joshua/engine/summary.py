"""
Summary Synthesis — Extractive consensus summary across several analyses.

Every sentence of every executive summary is scored by how many OTHER
analyses share its content words. The best-supported sentences, minus
near-duplicates, follow a header stating how many analyses agreed and where.
This is extractive: no sentence is rewritten.
"""

from __future__ import annotations

import re
from difflib import SequenceMatcher

from joshua.models.analysis_models import SingleAnalysis

_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")
_WORD_RE = re.compile(r"[a-z0-9]+")

_STOPWORDS = frozenset(
    """
    a an and are as at be been but by for from has have in is it its of on or
    that the their there these this to was were which while will with within
    """.split()
)

MAX_SUMMARY_SENTENCES = 4
DUPLICATE_SIMILARITY = 0.8


def split_sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_RE.split(text.strip()) if s.strip()]


def content_words(text: str) -> set[str]:
    return {w for w in _WORD_RE.findall(text.lower()) if len(w) > 2 and w not in _STOPWORDS}


def synthesize_summary(
    analyses: list[SingleAnalysis],
    consensus_seconds: int,
    agreement: float,
    max_sentences: int = MAX_SUMMARY_SENTENCES,
) -> str:
    """Header plus the sentences most supported across all analyses."""
    header = (
        f"Consensus of {len(analyses)} independent analyses: "
        f"{consensus_seconds} seconds to midnight (agreement {agreement:.0%})."
    )

    vocabularies = [content_words(a.executive_summary) for a in analyses]

    # (support, -analysis index, -sentence index, sentence)
    candidates: list[tuple[int, int, int, str]] = []
    for a_index, analysis in enumerate(analyses):
        for s_index, sentence in enumerate(split_sentences(analysis.executive_summary)):
            words = content_words(sentence)
            if not words:
                continue
            support = sum(
                len(words & vocabulary)
                for other, vocabulary in enumerate(vocabularies)
                if other != a_index
            )
            candidates.append((support, -a_index, -s_index, sentence))

    candidates.sort(reverse=True)

    chosen: list[str] = []
    for _, _, _, sentence in candidates:
        if len(chosen) >= max_sentences:
            break
        if any(_similar(sentence, kept) for kept in chosen):
            continue
        chosen.append(sentence)

    return " ".join([header, *chosen])


def _similar(a: str, b: str) -> bool:
    return SequenceMatcher(None, a.lower(), b.lower()).ratio() >= DUPLICATE_SIMILARITY
