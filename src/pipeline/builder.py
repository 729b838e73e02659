from __future__ import annotations

from collections.abc import Sequence

from src.models.theme import ResponseWithSpans, SemanticTheme, ThemeResponse, ThemeWithResponses


def build_themes_with_responses(
    themes: Sequence[SemanticTheme],
    responses: Sequence[ResponseWithSpans],
) -> list[ThemeWithResponses]:
    """Attach each theme's source responses, carrying only that theme's spans."""
    response_map = {response.id: response for response in responses}
    built: list[ThemeWithResponses] = []
    for theme in themes:
        response_ids = list(dict.fromkeys(span.response_id for span in theme.contributing_spans))
        theme_responses: list[ThemeResponse] = []
        for response_id in response_ids:
            source = response_map.get(response_id)
            if source is None:
                continue
            theme_responses.append(
                ThemeResponse(
                    id=source.id,
                    text=source.text,
                    spans=[span for span in theme.contributing_spans if span.response_id == response_id],
                )
            )
        built.append(
            ThemeWithResponses(
                name=theme.name,
                description=theme.description,
                contributing_spans=list(theme.contributing_spans),
                response_ids=response_ids,
                responses=theme_responses,
            )
        )
    return built
