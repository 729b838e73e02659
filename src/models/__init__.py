from src.models.theme import (
    EXTRACTION_CLASS_VALUES,
    CandidateSpan,
    CandidateTheme,
    ExtractionClass,
    Highlight,
    KeywordTheme,
    PersistedTheme,
    ResponseAssignment,
    ResponseInput,
    ResponseWithSpans,
    SemanticTheme,
    Span,
    ThemeCandidate,
    ThemeMergeResult,
    ThemePhrase,
    ThemeResponse,
    ThemeWithResponses,
    UpdatedTheme,
)

__all__ = [
    "EXTRACTION_CLASS_VALUES",
    "CandidateSpan",
    "CandidateTheme",
    "ExtractionClass",
    "Highlight",
    "KeywordTheme",
    "PersistedTheme",
    "ResponseAssignment",
    "ResponseInput",
    "ResponseWithSpans",
    "SemanticTheme",
    "Span",
    "ThemeCandidate",
    "ThemeMergeResult",
    "ThemePhrase",
    "ThemeResponse",
    "ThemeWithResponses",
    "UpdatedTheme",
]
