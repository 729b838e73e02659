"""Deterministic stand-ins for the generative capabilities.

Each stub records its calls and replies from a script: a string, a list of
replies consumed in order, a callable, or an exception instance to raise.
"""
from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from src.models.theme import (
    CandidateTheme,
    ExtractionClass,
    KeywordTheme,
    Span,
    ThemeCandidate,
    ThemeResponse,
    ThemeWithResponses,
)
from src.pipeline.capabilities import Capabilities

Reply = str | Exception | Callable[..., str]


class _Scripted:
    def __init__(self, replies: Reply | Sequence[Reply] = "[]") -> None:
        if isinstance(replies, (str, Exception)) or callable(replies):
            self._replies: list[Reply] = []
            self._default: Reply = replies
        else:
            self._replies = list(replies)
            self._default = "[]"
        self.calls: list[tuple[Any, ...]] = []

    def _reply(self, *args: Any) -> str:
        self.calls.append(args)
        reply = self._replies.pop(0) if self._replies else self._default
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(*args)
        return reply


class StubClassifier(_Scripted):
    async def classify(self, response_text: str, question: str) -> str:
        return self._reply(response_text, question)


class StubProposer(_Scripted):
    async def propose(self, span_summary: str, question: str) -> str:
        return self._reply(span_summary, question)


class StubAssigner(_Scripted):
    async def assign(
        self, themes: Sequence[CandidateTheme], spans: Sequence[Span], question: str
    ) -> str:
        return self._reply(themes, spans, question)


class StubScorer(_Scripted):
    async def score(self, theme_a: ThemeCandidate, theme_b: ThemeCandidate) -> str:
        return self._reply(theme_a, theme_b)


class StubGrouper(_Scripted):
    async def group(self, themes: Sequence[tuple[str, str]]) -> str:
        return self._reply(themes)


class StubKeywordExtractor(_Scripted):
    async def extract(
        self, question: str, responses: Sequence[str], existing_themes: Sequence[KeywordTheme]
    ) -> str:
        return self._reply(question, responses, existing_themes)


class StubResponseAssigner(_Scripted):
    async def assign(self, response_text: str, themes: Sequence[KeywordTheme]) -> str:
        return self._reply(response_text, themes)


def make_capabilities(**overrides: Any) -> Capabilities:
    defaults: dict[str, Any] = {
        "classifier": StubClassifier(),
        "proposer": StubProposer(),
        "assigner": StubAssigner(),
        "scorer": StubScorer("0"),
        "grouper": StubGrouper(),
        "keyword_extractor": StubKeywordExtractor(),
        "response_assigner": StubResponseAssigner(),
    }
    defaults.update(overrides)
    return Capabilities(**defaults)


def make_span(
    text: str,
    start: int,
    response_id: int = 1,
    cls: ExtractionClass = ExtractionClass.PAIN_POINT,
) -> Span:
    return Span(text=text, cls=cls, start=start, end=start + len(text), response_id=response_id)


def make_theme(name: str, spans: Sequence[Span], texts: dict[int, str] | None = None) -> ThemeWithResponses:
    texts = texts or {}
    response_ids = list(dict.fromkeys(span.response_id for span in spans))
    return ThemeWithResponses(
        name=name,
        description=f"{name} description",
        contributing_spans=list(spans),
        response_ids=response_ids,
        responses=[
            ThemeResponse(
                id=rid,
                text=texts.get(rid, ""),
                spans=[span for span in spans if span.response_id == rid],
            )
            for rid in response_ids
        ],
    )
