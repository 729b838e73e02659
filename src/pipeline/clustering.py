"""Propose candidate themes from grounded spans and attach spans to them."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from src.models.theme import CandidateTheme, SemanticTheme, Span
from src.pipeline.capabilities import SpanAssigner, ThemeProposer
from src.pipeline.errors import CapabilityCallError, CapabilityParseError
from src.pipeline.parsing import extract_json_array, parse_int_array

logger = logging.getLogger(__name__)


def build_span_summary(spans: Sequence[Span], samples_per_class: int = 10) -> str:
    """Render up to ``samples_per_class`` unique texts per class, classes in first-seen order."""
    by_class: dict[str, list[str]] = {}
    for span in spans:
        texts = by_class.setdefault(span.cls.value, [])
        if span.text not in texts:
            texts.append(span.text)
    blocks: list[str] = []
    for cls, texts in by_class.items():
        lines = "\n".join(f'  - "{text}"' for text in texts[:samples_per_class])
        blocks.append(f"{cls.upper()}:\n{lines}")
    return "\n\n".join(blocks)


def _coerce_theme(item: Any) -> CandidateTheme | None:
    if not isinstance(item, dict):
        return None
    name = str(item.get("name") or "").strip()
    if not name:
        return None
    patterns = item.get("spanPatterns", item.get("patternKeywords")) or []
    if isinstance(patterns, str):
        patterns = [patterns]
    return CandidateTheme(
        name=name,
        description=str(item.get("description") or ""),
        pattern_keywords=[str(p) for p in patterns if str(p).strip()],
    )


async def propose_themes(
    spans: Sequence[Span],
    question: str,
    proposer: ThemeProposer,
    *,
    samples_per_class: int = 10,
) -> list[CandidateTheme]:
    """Ask the proposer for candidate themes; an unusable reply yields no themes."""
    summary = build_span_summary(spans, samples_per_class)
    try:
        try:
            raw = await proposer.propose(summary, question)
        except Exception as exc:
            raise CapabilityCallError("theme_proposer", str(exc)) from exc
        items = extract_json_array(raw)
    except (CapabilityCallError, CapabilityParseError) as exc:
        logger.error(
            "Failed to obtain candidate themes: %s",
            exc,
            extra={"event_type": "theme_evolution.clustering.proposal_failed"},
        )
        return []
    themes = [theme for theme in (_coerce_theme(item) for item in items) if theme is not None]
    logger.info("Proposed %d candidate themes", len(themes))
    return themes


def pattern_match_batch(
    themes: Sequence[CandidateTheme], batch: Sequence[Span]
) -> dict[int, list[Span]]:
    """Assign each span to every theme with a pattern contained in the span text.

    Unlike the assigner path a span may land in several themes here.
    """
    assigned: dict[int, list[Span]] = {}
    for span in batch:
        lowered = span.text.lower()
        for idx, theme in enumerate(themes):
            if any(pattern.lower() in lowered for pattern in theme.pattern_keywords):
                assigned.setdefault(idx, []).append(span)
    return assigned


async def _assign_batch(
    themes: Sequence[CandidateTheme],
    batch: Sequence[Span],
    question: str,
    assigner: SpanAssigner,
) -> dict[int, list[Span]]:
    try:
        raw = await assigner.assign(themes, batch, question)
    except Exception as exc:
        raise CapabilityCallError("span_assigner", str(exc)) from exc
    assignments = parse_int_array(raw)
    assigned: dict[int, list[Span]] = {}
    for span, theme_number in zip(batch, assignments, strict=False):
        if 1 <= theme_number <= len(themes):
            assigned.setdefault(theme_number - 1, []).append(span)
    return assigned


async def assign_spans_to_themes(
    themes: Sequence[CandidateTheme],
    spans: Sequence[Span],
    question: str,
    assigner: SpanAssigner,
    *,
    batch_size: int = 20,
) -> list[SemanticTheme]:
    theme_spans: dict[int, list[Span]] = {idx: [] for idx in range(len(themes))}
    for offset in range(0, len(spans), batch_size):
        batch = spans[offset : offset + batch_size]
        try:
            assigned = await _assign_batch(themes, batch, question, assigner)
        except (CapabilityCallError, CapabilityParseError) as exc:
            logger.warning(
                "Batch assignment failed, using pattern matching fallback: %s",
                exc,
                extra={"event_type": "theme_evolution.clustering.assignment_fallback"},
            )
            assigned = pattern_match_batch(themes, batch)
        for idx, matched in assigned.items():
            theme_spans[idx].extend(matched)

    built: list[SemanticTheme] = []
    for idx, theme in enumerate(themes):
        contributing = theme_spans[idx]
        if not contributing:
            continue
        built.append(
            SemanticTheme(
                name=theme.name,
                description=theme.description,
                contributing_spans=contributing,
                response_ids=list(dict.fromkeys(span.response_id for span in contributing)),
            )
        )
    return built


async def cluster_spans_into_themes(
    spans: Sequence[Span],
    question: str,
    proposer: ThemeProposer,
    assigner: SpanAssigner,
    *,
    samples_per_class: int = 10,
    batch_size: int = 20,
) -> list[SemanticTheme]:
    if not spans:
        logger.info("No spans to cluster")
        return []
    logger.info("Clustering %d spans", len(spans))
    candidates = await propose_themes(spans, question, proposer, samples_per_class=samples_per_class)
    if not candidates:
        return []
    themes = await assign_spans_to_themes(candidates, spans, question, assigner, batch_size=batch_size)
    logger.info(
        "Generated %d semantic themes from %d candidates",
        len(themes),
        len(candidates),
        extra={"event_type": "theme_evolution.clustering.completed"},
    )
    return themes
