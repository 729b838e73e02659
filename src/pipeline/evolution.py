"""End-to-end theme evolution for one batch of responses.

Nothing here persists anything: callers receive the merge decision
(``updated_themes`` by id, ``new_themes`` to create) and store it themselves.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from src.config import Settings, get_settings
from src.models.theme import (
    KeywordTheme,
    PersistedTheme,
    ResponseAssignment,
    ResponseInput,
    ThemeMergeResult,
    ThemeWithResponses,
)
from src.pipeline.batch_merge import merge_similar_themes
from src.pipeline.builder import build_themes_with_responses
from src.pipeline.capabilities import Capabilities, KeywordThemeExtractor, ResponseThemeAssigner
from src.pipeline.clustering import cluster_spans_into_themes
from src.pipeline.dedup import deduplicate_spans_across_themes
from src.pipeline.errors import (
    CapabilityCallError,
    CapabilityParseError,
    EmptyInputError,
    GroundingRejection,
)
from src.pipeline.grounding import extract_spans_from_responses
from src.pipeline.keywords import deduplicate_keywords, merge_themes_with_overlap, split_keywords
from src.pipeline.parsing import extract_json_array, parse_int_array
from src.pipeline.theme_merge import merge_with_existing_themes, to_theme_candidate

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str], None]

DEFAULT_ASSIGNMENT_CONFIDENCE = 0.85


@dataclass(slots=True)
class SpanEvolutionResult:
    themes: list[ThemeWithResponses]
    merge: ThemeMergeResult
    span_count: int
    grounding_rejections: list[GroundingRejection] = field(default_factory=list)


@dataclass(slots=True)
class KeywordEvolutionResult:
    themes: list[KeywordTheme]
    assignments: list[ResponseAssignment]
    extracted_count: int


def _notifier(on_progress: ProgressCallback | None) -> ProgressCallback:
    def _notify(message: str) -> None:
        if on_progress is None:
            return
        try:
            on_progress(message)
        except Exception:
            logger.exception("Progress callback failed for %r", message)

    return _notify


async def run_span_evolution(
    question: str,
    responses: Sequence[ResponseInput],
    existing_themes: Sequence[PersistedTheme],
    capabilities: Capabilities,
    *,
    settings: Settings | None = None,
    on_progress: ProgressCallback | None = None,
) -> SpanEvolutionResult:
    settings = settings or get_settings()
    notify = _notifier(on_progress)
    if not responses:
        raise EmptyInputError("responses", "No responses found for this batch")

    notify(f"Extracting spans from {len(responses)} responses...")
    grounded = await extract_spans_from_responses(
        responses,
        question,
        capabilities.classifier,
        concurrency=settings.grounding_concurrency,
        on_progress=lambda done, total: notify(f"Extracted spans from response {done}/{total}"),
    )
    spans = [span for response in grounded.responses for span in response.spans]
    if not spans:
        raise EmptyInputError("grounding", "No phrases could be grounded in the responses")

    notify("Analyzing semantic patterns...")
    themes = await cluster_spans_into_themes(
        spans,
        question,
        capabilities.proposer,
        capabilities.assigner,
        samples_per_class=settings.span_summary_samples_per_class,
        batch_size=settings.span_assignment_batch_size,
    )
    if not themes:
        raise EmptyInputError("clustering", "No themes could be built from the extracted phrases")

    notify("Merging similar themes...")
    built = build_themes_with_responses(themes, grounded.responses)
    merged = await merge_similar_themes(built, capabilities.grouper)
    deduplicated = deduplicate_spans_across_themes(merged)
    if not deduplicated:
        raise EmptyInputError("deduplication", "No distinct themes after processing")

    notify(f"Consolidating {len(deduplicated)} themes with {len(existing_themes)} existing themes...")
    merge = await merge_with_existing_themes(
        existing_themes,
        [to_theme_candidate(theme) for theme in deduplicated],
        capabilities.scorer,
        threshold=settings.cross_batch_merge_threshold,
        sample_phrases=settings.similarity_sample_phrases,
        on_progress=notify,
    )
    logger.info(
        "Evolution: %d existing + %d batch themes -> %d updated, %d new",
        len(existing_themes),
        len(deduplicated),
        len(merge.updated_themes),
        len(merge.new_themes),
        extra={"event_type": "theme_evolution.completed"},
    )
    notify("Theme evolution complete!")
    return SpanEvolutionResult(
        themes=deduplicated,
        merge=merge,
        span_count=len(spans),
        grounding_rejections=grounded.rejections,
    )


def _coerce_keyword_themes(items: list[object]) -> list[KeywordTheme]:
    themes: list[KeywordTheme] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        name = str(item.get("name") or "").strip()
        if not name:
            continue
        themes.append(
            KeywordTheme(
                name=name,
                description=str(item.get("description") or ""),
                keyword_array=split_keywords(item.get("keywords")),
            )
        )
    return themes


async def _extract_keyword_themes(
    extractor: KeywordThemeExtractor,
    question: str,
    texts: list[str],
    existing: list[KeywordTheme],
) -> list[KeywordTheme]:
    try:
        try:
            raw = await extractor.extract(question, texts, existing)
        except Exception as exc:
            raise CapabilityCallError("keyword_theme_extractor", str(exc)) from exc
        return _coerce_keyword_themes(extract_json_array(raw))
    except (CapabilityCallError, CapabilityParseError) as exc:
        raise EmptyInputError("keywords", f"Extraction failed: {exc}") from exc


async def assign_responses_to_themes(
    responses: Sequence[ResponseInput],
    themes: Sequence[KeywordTheme],
    assigner: ResponseThemeAssigner,
    *,
    on_progress: Callable[[int, int], None] | None = None,
) -> list[ResponseAssignment]:
    assignments: list[ResponseAssignment] = []
    for position, response in enumerate(responses, start=1):
        if on_progress is not None:
            on_progress(position, len(responses))
        try:
            try:
                raw = await assigner.assign(response.text, themes)
            except Exception as exc:
                raise CapabilityCallError("response_theme_assigner", str(exc)) from exc
            indices = parse_int_array(raw)
        except (CapabilityCallError, CapabilityParseError) as exc:
            logger.warning("Failed to assign response %s: %s", response.id, exc)
            continue
        for theme_index in dict.fromkeys(indices):
            if 1 <= theme_index <= len(themes):
                assignments.append(
                    ResponseAssignment(
                        response_id=response.id,
                        theme_index=theme_index,
                        confidence=DEFAULT_ASSIGNMENT_CONFIDENCE,
                        contributing_text=themes[theme_index - 1].keywords,
                    )
                )
    return assignments


async def run_keyword_evolution(
    question: str,
    responses: Sequence[ResponseInput],
    existing_themes: Sequence[KeywordTheme],
    capabilities: Capabilities,
    *,
    settings: Settings | None = None,
    on_progress: ProgressCallback | None = None,
) -> KeywordEvolutionResult:
    settings = settings or get_settings()
    notify = _notifier(on_progress)
    if not responses:
        raise EmptyInputError("responses", "No responses found for this batch")
    if capabilities.keyword_extractor is None or capabilities.response_assigner is None:
        raise ValueError("keyword mode requires keyword_extractor and response_assigner")

    existing = [
        theme.model_copy(
            update={
                "keyword_array": [keyword.lower() for keyword in split_keywords(theme.keyword_array)],
                "is_existing": True,
            }
        )
        for theme in existing_themes
    ]
    notify("Evolving existing themes..." if existing else "Extracting themes from responses...")
    extracted = await _extract_keyword_themes(
        capabilities.keyword_extractor, question, [response.text for response in responses], existing
    )
    if not extracted:
        raise EmptyInputError("keywords", "No themes extracted")

    threshold = settings.keyword_overlap_threshold
    notify("Merging similar themes...")
    consolidated = merge_themes_with_overlap(extracted, threshold)
    if existing:
        notify("Consolidating with existing themes...")
        consolidated = merge_themes_with_overlap([*existing, *consolidated], threshold)

    notify("Ensuring keyword uniqueness...")
    cleaned = deduplicate_keywords(consolidated)
    if not cleaned:
        raise EmptyInputError("keywords", "No distinct themes after processing")

    ids_by_name = {theme.name.lower(): theme.id for theme in existing_themes}
    cleaned = [
        theme.model_copy(update={"id": ids_by_name.get(theme.name.lower())}) for theme in cleaned
    ]
    notify(f"{'Evolved' if existing else 'Found'} {len(cleaned)} distinct themes")

    assignments = await assign_responses_to_themes(
        responses,
        cleaned,
        capabilities.response_assigner,
        on_progress=lambda done, total: notify(f"Processing response {done}/{total}..."),
    )
    logger.info(
        "Keyword evolution: %d existing + %d extracted -> %d final, %d assignments",
        len(existing_themes),
        len(extracted),
        len(cleaned),
        len(assignments),
        extra={"event_type": "theme_evolution.keywords.completed"},
    )
    return KeywordEvolutionResult(
        themes=cleaned, assignments=assignments, extracted_count=len(extracted)
    )

