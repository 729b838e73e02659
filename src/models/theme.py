from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ExtractionClass(StrEnum):
    USER_GOAL = "user_goal"
    PAIN_POINT = "pain_point"
    EMOTION = "emotion"
    REQUEST = "request"
    INSIGHT = "insight"
    SUGGESTION = "suggestion"
    CONCERN = "concern"


EXTRACTION_CLASS_VALUES = frozenset(member.value for member in ExtractionClass)


class CandidateSpan(BaseModel):
    """A phrase proposed by the classifier, not yet located in the source text."""

    text: str
    cls: str = Field(alias="class")

    model_config = ConfigDict(populate_by_name=True)


class Span(BaseModel):
    text: str
    cls: ExtractionClass = Field(alias="class")
    start: int = Field(ge=0)
    end: int
    response_id: int

    model_config = ConfigDict(populate_by_name=True)

    @model_validator(mode="after")
    def validate_range(self) -> Span:
        if self.end <= self.start:
            raise ValueError("span end must be greater than start")
        if self.end - self.start != len(self.text):
            raise ValueError("span text length must match its range")
        return self

    @property
    def key(self) -> tuple[int, int, int]:
        return (self.response_id, self.start, self.end)


class ResponseInput(BaseModel):
    id: int
    text: str


class ResponseWithSpans(BaseModel):
    id: int
    text: str
    spans: list[Span] = Field(default_factory=list)


class CandidateTheme(BaseModel):
    name: str
    description: str = ""
    pattern_keywords: list[str] = Field(default_factory=list)


class SemanticTheme(BaseModel):
    name: str
    description: str
    contributing_spans: list[Span] = Field(default_factory=list)
    response_ids: list[int] = Field(default_factory=list)


class ThemeResponse(BaseModel):
    id: int
    text: str
    spans: list[Span] = Field(default_factory=list)


class ThemeWithResponses(SemanticTheme):
    responses: list[ThemeResponse] = Field(default_factory=list)


class ThemePhrase(BaseModel):
    text: str
    cls: str = Field(alias="class")

    model_config = ConfigDict(populate_by_name=True)


class PersistedTheme(BaseModel):
    id: int
    name: str
    description: str
    phrases: list[ThemePhrase] = Field(default_factory=list)
    response_count: int = Field(default=0, ge=0)


class ThemeCandidate(BaseModel):
    name: str
    description: str
    phrases: list[ThemePhrase] = Field(default_factory=list)
    response_count: int = Field(default=0, ge=0)


class UpdatedTheme(BaseModel):
    id: int
    theme: ThemeCandidate


class ThemeMergeResult(BaseModel):
    updated_themes: list[UpdatedTheme] = Field(default_factory=list)
    new_themes: list[ThemeCandidate] = Field(default_factory=list)


class KeywordTheme(BaseModel):
    name: str
    description: str = ""
    keyword_array: list[str] = Field(default_factory=list)
    is_existing: bool = False
    id: int | None = None

    @property
    def keywords(self) -> str:
        return ", ".join(self.keyword_array)


class ResponseAssignment(BaseModel):
    response_id: int
    theme_index: int = Field(ge=1)
    confidence: float = Field(ge=0.0, le=1.0)
    contributing_text: str = ""


class Highlight(BaseModel):
    text: str
    start: int = Field(ge=0)
    end: int
    cls: str = Field(alias="class")

    model_config = ConfigDict(populate_by_name=True)
