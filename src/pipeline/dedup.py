from __future__ import annotations

from collections.abc import Sequence

from src.models.theme import Span, ThemeResponse, ThemeWithResponses

SpanKey = tuple[int, int, int]


def span_key(span: Span) -> SpanKey:
    return (span.response_id, span.start, span.end)


def deduplicate_spans_across_themes(
    themes: Sequence[ThemeWithResponses],
    consumed: set[SpanKey] | None = None,
) -> list[ThemeWithResponses]:
    """Give every span to the first theme (in list order) that claims it.

    ``consumed`` collects the keys already handed out; pass a set to share
    it across calls. Themes whose evidence drops to zero are removed.
    """
    used = consumed if consumed is not None else set()
    result: list[ThemeWithResponses] = []
    for theme in themes:
        kept: list[Span] = []
        for span in theme.contributing_spans:
            key = span_key(span)
            if key in used:
                continue
            used.add(key)
            kept.append(span)
        if not kept:
            continue

        kept_keys = {span_key(span) for span in kept}
        responses: list[ThemeResponse] = []
        for resp in theme.responses:
            spans: list[Span] = []
            seen: set[SpanKey] = set()
            for span in resp.spans:
                key = span_key(span)
                if key in kept_keys and key not in seen:
                    seen.add(key)
                    spans.append(span)
            if spans:
                responses.append(ThemeResponse(id=resp.id, text=resp.text, spans=spans))

        result.append(
            ThemeWithResponses(
                name=theme.name,
                description=theme.description,
                contributing_spans=kept,
                response_ids=list(dict.fromkeys(span.response_id for span in kept)),
                responses=responses,
            )
        )
    return result
