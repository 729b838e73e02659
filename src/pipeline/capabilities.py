"""Injectable contracts for every generative-model touchpoint.

Each capability returns the model's raw text; parsing and fallback policy
belong to the pipeline stage that consumes it.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

from src.models.theme import CandidateTheme, KeywordTheme, Span, ThemeCandidate


class SpanClassifier(Protocol):
    async def classify(self, response_text: str, question: str) -> str: ...


class ThemeProposer(Protocol):
    async def propose(self, span_summary: str, question: str) -> str: ...


class SpanAssigner(Protocol):
    async def assign(
        self, themes: Sequence[CandidateTheme], spans: Sequence[Span], question: str
    ) -> str: ...


class SimilarityScorer(Protocol):
    async def score(self, theme_a: ThemeCandidate, theme_b: ThemeCandidate) -> str: ...


class MergeGrouper(Protocol):
    async def group(self, themes: Sequence[tuple[str, str]]) -> str: ...


class KeywordThemeExtractor(Protocol):
    async def extract(
        self, question: str, responses: Sequence[str], existing_themes: Sequence[KeywordTheme]
    ) -> str: ...


class ResponseThemeAssigner(Protocol):
    async def assign(self, response_text: str, themes: Sequence[KeywordTheme]) -> str: ...


@dataclass(slots=True)
class Capabilities:
    classifier: SpanClassifier
    proposer: ThemeProposer
    assigner: SpanAssigner
    scorer: SimilarityScorer
    grouper: MergeGrouper
    keyword_extractor: KeywordThemeExtractor | None = None
    response_assigner: ResponseThemeAssigner | None = None
