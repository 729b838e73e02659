"""Fold a batch's themes into the persisted theme set.

Matching is greedy and one-to-one: new themes are visited in order and each
takes the best-scoring persisted theme still unclaimed in this pass, if that
score clears the threshold.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from src.models.theme import (
    PersistedTheme,
    ThemeCandidate,
    ThemeMergeResult,
    ThemePhrase,
    ThemeWithResponses,
    UpdatedTheme,
)
from src.pipeline.capabilities import SimilarityScorer
from src.pipeline.errors import CapabilityCallError, CapabilityParseError
from src.pipeline.parsing import parse_similarity_score

logger = logging.getLogger(__name__)


def merge_phrases(
    existing: Sequence[ThemePhrase], incoming: Sequence[ThemePhrase]
) -> list[ThemePhrase]:
    """Union by trimmed, case-insensitive text; the first-seen spelling is kept."""
    merged: list[ThemePhrase] = []
    seen: set[str] = set()
    for phrase in [*existing, *incoming]:
        text = phrase.text.strip()
        key = text.lower()
        if not key or key in seen:
            continue
        seen.add(key)
        merged.append(ThemePhrase(text=text, cls=phrase.cls))
    return merged


def to_theme_candidate(theme: ThemeWithResponses) -> ThemeCandidate:
    phrases = merge_phrases(
        [], [ThemePhrase(text=span.text, cls=span.cls.value) for span in theme.contributing_spans]
    )
    return ThemeCandidate(
        name=theme.name,
        description=theme.description,
        phrases=phrases,
        response_count=len(theme.response_ids),
    )


def _sample(theme: PersistedTheme | ThemeCandidate, sample_phrases: int) -> ThemeCandidate:
    return ThemeCandidate(
        name=theme.name,
        description=theme.description,
        phrases=list(theme.phrases[:sample_phrases]),
        response_count=theme.response_count,
    )


async def _score(
    scorer: SimilarityScorer, new: ThemeCandidate, existing: ThemeCandidate
) -> int:
    try:
        try:
            raw = await scorer.score(new, existing)
        except Exception as exc:
            raise CapabilityCallError("similarity_scorer", str(exc)) from exc
        return parse_similarity_score(raw)
    except (CapabilityCallError, CapabilityParseError) as exc:
        logger.warning(
            "Similarity scoring failed for %r vs %r, treating as 0: %s",
            new.name,
            existing.name,
            exc,
            extra={"event_type": "theme_evolution.merge.score_failed"},
        )
        return 0


async def merge_with_existing_themes(
    existing_themes: Sequence[PersistedTheme],
    new_themes: Sequence[ThemeCandidate],
    scorer: SimilarityScorer,
    *,
    threshold: int = 80,
    sample_phrases: int = 3,
    on_progress: Callable[[str], None] | None = None,
) -> ThemeMergeResult:
    result = ThemeMergeResult()
    if not existing_themes:
        result.new_themes = list(new_themes)
        return result

    unmatched: list[int] = list(range(len(existing_themes)))
    for position, new_theme in enumerate(new_themes, start=1):
        if on_progress is not None:
            on_progress(f"Comparing theme {position}/{len(new_themes)}: {new_theme.name}")

        new_sample = _sample(new_theme, sample_phrases)
        best_idx: int | None = None
        best_score = -1
        for idx in unmatched:
            score = await _score(scorer, new_sample, _sample(existing_themes[idx], sample_phrases))
            if score > best_score:
                best_idx, best_score = idx, score

        if best_idx is not None and best_score >= threshold:
            unmatched.remove(best_idx)
            best = existing_themes[best_idx]
            merged = ThemeCandidate(
                name=best.name,
                description=best.description,
                phrases=merge_phrases(best.phrases, new_theme.phrases),
                response_count=best.response_count + new_theme.response_count,
            )
            result.updated_themes.append(UpdatedTheme(id=best.id, theme=merged))
            logger.info(
                "Merged %r into existing theme %s %r (score=%d)",
                new_theme.name,
                best.id,
                best.name,
                best_score,
                extra={"event_type": "theme_evolution.merge.cross_batch"},
            )
        else:
            result.new_themes.append(new_theme)
            logger.info("Added %r as new theme (best score=%d)", new_theme.name, max(best_score, 0))
    return result
