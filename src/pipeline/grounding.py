"""Locate classifier-proposed phrases verbatim in their source responses."""

from __future__ import annotations

import asyncio
import logging
import re
from collections import Counter
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from src.models.theme import (
    EXTRACTION_CLASS_VALUES,
    CandidateSpan,
    ExtractionClass,
    ResponseInput,
    ResponseWithSpans,
    Span,
)
from src.pipeline.capabilities import SpanClassifier
from src.pipeline.errors import CapabilityCallError, CapabilityParseError, GroundingRejection
from src.pipeline.parsing import extract_json_array

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GroundingResult:
    spans: list[Span] = field(default_factory=list)
    rejections: list[GroundingRejection] = field(default_factory=list)


@dataclass(slots=True)
class BatchGroundingResult:
    responses: list[ResponseWithSpans] = field(default_factory=list)
    rejections: list[GroundingRejection] = field(default_factory=list)

    @property
    def span_count(self) -> int:
        return sum(len(response.spans) for response in self.responses)


def _coerce_candidates(items: list[Any]) -> list[CandidateSpan]:
    candidates: list[CandidateSpan] = []
    for item in items:
        if not isinstance(item, dict):
            continue
        try:
            candidates.append(
                CandidateSpan(text=str(item.get("text") or ""), cls=str(item.get("class") or ""))
            )
        except ValidationError:
            continue
    return candidates


def ground_candidates(
    response_id: int,
    response_text: str,
    candidates: Sequence[CandidateSpan],
) -> GroundingResult:
    """Turn candidates into spans bounded by exact positions in ``response_text``.

    The first case-insensitive occurrence wins. Span text is sliced from the
    response so it keeps the respondent's casing. Overlapping spans from
    different candidates are all kept.
    """
    result = GroundingResult()
    for candidate in candidates:
        if candidate.cls not in EXTRACTION_CLASS_VALUES:
            logger.debug("Skipping unknown class %r for response %s", candidate.cls, response_id)
            result.rejections.append(
                GroundingRejection(response_id, candidate.text, candidate.cls, "invalid_class")
            )
            continue
        match = (
            re.search(re.escape(candidate.text), response_text, re.IGNORECASE)
            if candidate.text
            else None
        )
        if match is None:
            logger.debug("Skipping (not found) %r for response %s", candidate.text[:40], response_id)
            result.rejections.append(
                GroundingRejection(response_id, candidate.text, candidate.cls, "grounding_miss")
            )
            continue
        start, end = match.start(), match.end()
        result.spans.append(
            Span(
                text=response_text[start:end],
                cls=ExtractionClass(candidate.cls),
                start=start,
                end=end,
                response_id=response_id,
            )
        )
    return result


async def extract_spans_from_response(
    response: ResponseInput,
    question: str,
    classifier: SpanClassifier,
) -> GroundingResult:
    try:
        try:
            raw = await classifier.classify(response.text, question)
        except Exception as exc:
            raise CapabilityCallError("span_classifier", str(exc)) from exc
        candidates = _coerce_candidates(extract_json_array(raw))
    except (CapabilityCallError, CapabilityParseError) as exc:
        logger.warning(
            "Response %s: extraction failed: %s",
            response.id,
            exc,
            extra={"event_type": "theme_evolution.grounding.response_failed"},
        )
        return GroundingResult()
    return ground_candidates(response.id, response.text, candidates)


async def extract_spans_from_responses(
    responses: Sequence[ResponseInput],
    question: str,
    classifier: SpanClassifier,
    *,
    concurrency: int = 5,
    on_progress: Callable[[int, int], None] | None = None,
) -> BatchGroundingResult:
    """Ground every response concurrently, then re-assemble in input order.

    Responses that end up with no spans are left out of the result.
    """
    semaphore = asyncio.Semaphore(concurrency)
    done = 0
    total = len(responses)

    async def _one(response: ResponseInput) -> GroundingResult:
        nonlocal done
        async with semaphore:
            grounded = await extract_spans_from_response(response, question, classifier)
        done += 1
        if on_progress is not None:
            on_progress(done, total)
        return grounded

    results = await asyncio.gather(*(_one(response) for response in responses))

    batch = BatchGroundingResult()
    for response, grounded in zip(responses, results, strict=True):
        batch.rejections.extend(grounded.rejections)
        if grounded.spans:
            batch.responses.append(
                ResponseWithSpans(id=response.id, text=response.text, spans=grounded.spans)
            )
        else:
            logger.info("Response %s: no valid spans extracted", response.id)

    distribution = Counter(span.cls.value for item in batch.responses for span in item.spans)
    misses = sum(1 for rejection in batch.rejections if rejection.reason == "grounding_miss")
    logger.info(
        "Extracted spans from %d/%d responses (%d grounding misses), distribution=%s",
        len(batch.responses),
        total,
        misses,
        dict(distribution),
        extra={"event_type": "theme_evolution.grounding.completed"},
    )
    return batch


def group_spans_by_class(responses: Sequence[ResponseWithSpans]) -> dict[ExtractionClass, list[Span]]:
    grouped: dict[ExtractionClass, list[Span]] = {cls: [] for cls in ExtractionClass}
    for response in responses:
        for span in response.spans:
            grouped[span.cls].append(span)
    return grouped
