"""Combine themes from one batch that the grouper judges equivalent.

Groups share response entries. Each call works on a private copy of the
input, and a merged theme reuses its members' response entries instead of
copying them. A theme referenced by a later group therefore already carries
the spans an earlier group folded into those entries. Span deduplication
reconciles the result against each theme's contributing spans.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from src.models.theme import ThemeResponse, ThemeWithResponses
from src.pipeline.capabilities import MergeGrouper
from src.pipeline.errors import CapabilityCallError, CapabilityParseError
from src.pipeline.parsing import parse_merge_groups

logger = logging.getLogger(__name__)


def valid_merge_groups(groups: Sequence[Sequence[int]], theme_count: int) -> list[list[int]]:
    """Convert 1-based groups to 0-based indices, dropping anything unusable."""
    valid: list[list[int]] = []
    for group in groups:
        if len(group) < 2:
            continue
        indices = [number - 1 for number in group if 1 <= number <= theme_count]
        if len(indices) < 2:
            continue
        valid.append(indices)
    return valid


def _working_copy(theme: ThemeWithResponses) -> ThemeWithResponses:
    return ThemeWithResponses(
        name=theme.name,
        description=theme.description,
        contributing_spans=list(theme.contributing_spans),
        response_ids=list(theme.response_ids),
        responses=[
            ThemeResponse(id=resp.id, text=resp.text, spans=list(resp.spans)) for resp in theme.responses
        ],
    )


def _start_group(primary: ThemeWithResponses) -> ThemeWithResponses:
    # response entries are shared with the primary, not copied
    return ThemeWithResponses(
        name=primary.name,
        description=primary.description,
        contributing_spans=list(primary.contributing_spans),
        response_ids=list(primary.response_ids),
        responses=list(primary.responses),
    )


def _absorb(primary: ThemeWithResponses, other: ThemeWithResponses) -> None:
    primary.contributing_spans.extend(other.contributing_spans)
    primary.response_ids = list(dict.fromkeys([*primary.response_ids, *other.response_ids]))
    for resp in other.responses:
        existing = next((r for r in primary.responses if r.id == resp.id), None)
        if existing is None:
            primary.responses.append(resp)
            continue
        seen = {(span.start, span.end) for span in existing.spans}
        existing.spans.extend(span for span in resp.spans if (span.start, span.end) not in seen)


async def merge_similar_themes(
    themes: Sequence[ThemeWithResponses],
    grouper: MergeGrouper,
) -> list[ThemeWithResponses]:
    """Merge grouped themes into their group's first (primary) theme.

    Merged themes come first in the grouper's order, followed by the
    untouched themes in input order. Any grouper failure returns the input.
    """
    if len(themes) < 2:
        return list(themes)

    logger.info("Checking %d themes for similarity", len(themes))
    try:
        try:
            raw = await grouper.group([(theme.name, theme.description) for theme in themes])
        except Exception as exc:
            raise CapabilityCallError("merge_grouper", str(exc)) from exc
        groups = parse_merge_groups(raw)
    except (CapabilityCallError, CapabilityParseError) as exc:
        logger.warning(
            "Theme merge failed: %s",
            exc,
            extra={"event_type": "theme_evolution.merge.batch_failed"},
        )
        return list(themes)

    if not groups:
        logger.info("No themes to merge")
        return list(themes)

    working = [_working_copy(theme) for theme in themes]
    merged_indices: set[int] = set()
    result: list[ThemeWithResponses] = []
    for indices in valid_merge_groups(groups, len(themes)):
        merged = _start_group(working[indices[0]])
        for idx in indices[1:]:
            _absorb(merged, working[idx])
        result.append(merged)
        merged_indices.update(indices)
        logger.info(
            "Merged: %s",
            " + ".join(themes[idx].name for idx in indices),
            extra={"event_type": "theme_evolution.merge.batch"},
        )

    result.extend(theme for idx, theme in enumerate(themes) if idx not in merged_indices)
    logger.info("Merged into %d final themes", len(result))
    return result
