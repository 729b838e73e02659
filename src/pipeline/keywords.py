"""Keyword-set consolidation for the simpler, span-free pipeline mode."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from src.models.theme import KeywordTheme

logger = logging.getLogger(__name__)


def split_keywords(keywords: str | Sequence[str] | None) -> list[str]:
    if keywords is None:
        return []
    items = keywords.split(",") if isinstance(keywords, str) else list(keywords)
    return [item.strip() for item in items if item and item.strip()]


def calculate_keyword_overlap(keywords_a: Sequence[str], keywords_b: Sequence[str]) -> float:
    """Shared keywords as a percentage of the smaller case-insensitive set."""
    set_a = {keyword.lower() for keyword in keywords_a}
    set_b = {keyword.lower() for keyword in keywords_b}
    smaller = min(len(set_a), len(set_b))
    if smaller == 0:
        return 0.0
    return len(set_a & set_b) / smaller * 100


def _union_keywords(first: Sequence[str], second: Sequence[str]) -> list[str]:
    combined: list[str] = []
    seen: set[str] = set()
    for keyword in [*first, *second]:
        if keyword.lower() in seen:
            continue
        seen.add(keyword.lower())
        combined.append(keyword)
    return combined


def _find_mergeable_pair(
    themes: Sequence[KeywordTheme], threshold: float
) -> tuple[int, int, float] | None:
    for i in range(len(themes)):
        for j in range(i + 1, len(themes)):
            overlap = calculate_keyword_overlap(themes[i].keyword_array, themes[j].keyword_array)
            if overlap > threshold:
                return i, j, overlap
    return None


def merge_themes_with_overlap(
    themes: Sequence[KeywordTheme], overlap_threshold: float = 50.0
) -> list[KeywordTheme]:
    """Merge the first pair over the threshold, rescan, and stop at a fixpoint.

    Each merge removes one theme, so the loop ends after at most ``len(themes)``
    merges.
    """
    consolidated = [theme.model_copy(deep=True) for theme in themes]
    while True:
        pair = _find_mergeable_pair(consolidated, overlap_threshold)
        if pair is None:
            break
        i, j, overlap = pair
        keep, absorbed = consolidated[i], consolidated[j]
        logger.info(
            "Consolidating %r + %r (%.0f%% overlap)",
            keep.name,
            absorbed.name,
            overlap,
            extra={"event_type": "theme_evolution.keywords.consolidated"},
        )
        description = keep.description
        if not keep.is_existing and not absorbed.is_existing:
            description = f"{keep.description} {absorbed.description}".strip()
        consolidated[i] = keep.model_copy(
            update={
                "keyword_array": _union_keywords(keep.keyword_array, absorbed.keyword_array),
                "description": description,
            }
        )
        del consolidated[j]
    return consolidated


def deduplicate_keywords(themes: Sequence[KeywordTheme]) -> list[KeywordTheme]:
    """Leave each keyword, case-insensitively, only on the first theme that lists it."""
    claimed: set[str] = set()
    result: list[KeywordTheme] = []
    for theme in themes:
        unique: list[str] = []
        for keyword in theme.keyword_array:
            lowered = keyword.lower()
            if lowered in claimed:
                continue
            claimed.add(lowered)
            unique.append(keyword)
        if unique:
            result.append(theme.model_copy(update={"keyword_array": unique}))
    return result
