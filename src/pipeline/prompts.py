"""Capability implementations backed by ``LLMRouter``.

Each class renders a prompt, calls one router tier and hands back the raw
completion text. Parsing and fallbacks stay in the pipeline stages.
"""

from __future__ import annotations

from collections.abc import Sequence

from src.models.theme import CandidateTheme, KeywordTheme, Span, ThemeCandidate
from src.pipeline.capabilities import Capabilities
from src.pipeline.llm import LLMRouter

_CLASS_GUIDE = """\
- user_goal: What they want to achieve or wish for
- pain_point: What frustrates or bothers them
- emotion: How they feel (frustrated, excited, worried, etc.)
- request: Specific things they're asking for
- insight: Key observations or realizations
- suggestion: Ideas or solutions they propose
- concern: Worries or fears they express"""

_SPAN_PROMPT_TEMPLATE = """\
Extract meaningful phrases from this survey response that reveal what the user is trying to communicate.

QUESTION: "{question}"

RESPONSE: "{response}"

For each phrase, classify it as ONE of:
{class_guide}

RULES:
1. Extract 3-6 phrases that capture the user's key messages
2. Each phrase MUST be an EXACT substring from the response text
3. Phrases should be meaningful (3-15 words typically)
4. Cover different aspects if possible

Return ONLY a JSON array, no other text:
[
  {{"text": "exact phrase from response", "class": "pain_point"}},
  {{"text": "another exact phrase", "class": "user_goal"}}
]"""

_PROPOSE_PROMPT_TEMPLATE = """\
Analyze these extracted semantic spans from survey responses to the question: "{question}"

{span_summary}

Based on these spans, identify {min_themes}-{max_themes} DISTINCT themes that capture what users are \
trying to communicate. Each theme should represent a coherent "inner message" - what users truly mean or feel.

CRITICAL RULES:
1. Theme names should be human-readable insights (e.g., "feels ignored by support")
2. Each theme should be DISTINCT - no overlapping meanings
3. Focus on the UNDERLYING message, not just the surface words
4. Group spans that express similar sentiments or goals, even if worded differently

Respond with ONLY a JSON array:
[
  {{
    "name": "Theme name capturing the inner message",
    "description": "What this theme represents and why it matters",
    "spanPatterns": ["pattern1", "pattern2", "pattern3"]
  }}
]

spanPatterns should be keywords/phrases that would match spans belonging to this theme."""

_ASSIGN_PROMPT_TEMPLATE = """\
Assign each span to the most relevant theme (or "none" if it doesn't fit).

Question: "{question}"

Themes:
{theme_list}

Spans to assign:
{span_list}

Respond with ONLY a JSON array of theme numbers (1-{theme_count}) or 0 for none, one entry per span:
Example: [1, 2, 0, 1, 3]"""

_SCORE_PROMPT_TEMPLATE = """\
Rate how closely these two themes express the same underlying message.

THEME A: "{name_a}" - {description_a}
Sample phrases: {phrases_a}

THEME B: "{name_b}" - {description_b}
Sample phrases: {phrases_b}

Respond with ONLY an integer from 0 (unrelated) to 100 (identical meaning)."""

_GROUP_PROMPT_TEMPLATE = """\
Analyze these themes and identify which ones should be MERGED because they express the same underlying message.

Themes:
{theme_list}

Respond with a JSON array of merge groups. Each group contains theme numbers that should be combined:
Example: [[1, 3], [2, 5]] means merge themes 1+3 and merge themes 2+5

Rules:
- Only merge themes that are TRULY similar in meaning
- Don't merge just because they share a word
- Put the theme that best names the group first

Respond with ONLY the JSON array:"""

_KEYWORD_PROMPT_TEMPLATE = """\
Analyze these survey responses and extract 3-5 DISTINCT, NON-OVERLAPPING themes.

Question: "{question}"

{responses}

{existing_block}CRITICAL INSTRUCTIONS:
1. Each theme must be CLEARLY DISTINCT - no overlap
2. Keywords MUST be unique to each theme - NO keyword overlap between themes
3. Quality over quantity - 3 distinct themes beat 7 overlapping ones

Format response as JSON array:
[
  {{
    "name": "Clear descriptive statement",
    "description": "Brief explanation with context",
    "keywords": "keyword1, keyword2, keyword3"
  }}
]

IMPORTANT: Respond ONLY with JSON array."""

_RESPONSE_ASSIGN_PROMPT_TEMPLATE = """\
Given this response and list of themes, identify which themes (1-3) best apply to the response.

Response: "{response}"

Themes:
{theme_list}

Respond with ONLY a JSON array of theme numbers that apply (e.g., [1, 3]):"""


def _format_phrases(theme: ThemeCandidate) -> str:
    return ", ".join(f'"{phrase.text}"' for phrase in theme.phrases) or "(none)"


class LLMSpanClassifier:
    def __init__(self, router: LLMRouter) -> None:
        self.router = router

    async def classify(self, response_text: str, question: str) -> str:
        prompt = _SPAN_PROMPT_TEMPLATE.format(
            question=question, response=response_text, class_guide=_CLASS_GUIDE
        )
        completion = await self.router.complete(tier="extraction", prompt=prompt, temperature=0.2)
        return completion.text


class LLMThemeProposer:
    def __init__(self, router: LLMRouter, *, min_themes: int = 3, max_themes: int = 7) -> None:
        self.router = router
        self.min_themes = min_themes
        self.max_themes = max_themes

    async def propose(self, span_summary: str, question: str) -> str:
        prompt = _PROPOSE_PROMPT_TEMPLATE.format(
            question=question,
            span_summary=span_summary,
            min_themes=self.min_themes,
            max_themes=self.max_themes,
        )
        completion = await self.router.complete(tier="clustering", prompt=prompt, temperature=0.3)
        return completion.text


class LLMSpanAssigner:
    def __init__(self, router: LLMRouter) -> None:
        self.router = router

    async def assign(
        self, themes: Sequence[CandidateTheme], spans: Sequence[Span], question: str
    ) -> str:
        prompt = _ASSIGN_PROMPT_TEMPLATE.format(
            question=question,
            theme_list="\n".join(
                f'{idx}. "{theme.name}" - {theme.description}' for idx, theme in enumerate(themes, 1)
            ),
            span_list="\n".join(
                f'{idx}. [{span.cls.value}] "{span.text}"' for idx, span in enumerate(spans, 1)
            ),
            theme_count=len(themes),
        )
        completion = await self.router.complete(tier="clustering", prompt=prompt, temperature=0.1)
        return completion.text


class LLMSimilarityScorer:
    def __init__(self, router: LLMRouter) -> None:
        self.router = router

    async def score(self, theme_a: ThemeCandidate, theme_b: ThemeCandidate) -> str:
        prompt = _SCORE_PROMPT_TEMPLATE.format(
            name_a=theme_a.name,
            description_a=theme_a.description,
            phrases_a=_format_phrases(theme_a),
            name_b=theme_b.name,
            description_b=theme_b.description,
            phrases_b=_format_phrases(theme_b),
        )
        completion = await self.router.complete(
            tier="scoring", prompt=prompt, temperature=0.0, max_tokens=16
        )
        return completion.text


class LLMMergeGrouper:
    def __init__(self, router: LLMRouter) -> None:
        self.router = router

    async def group(self, themes: Sequence[tuple[str, str]]) -> str:
        prompt = _GROUP_PROMPT_TEMPLATE.format(
            theme_list="\n".join(
                f'{idx}. "{name}" - {description}' for idx, (name, description) in enumerate(themes, 1)
            )
        )
        completion = await self.router.complete(tier="clustering", prompt=prompt, temperature=0.1)
        return completion.text


class LLMKeywordThemeExtractor:
    def __init__(self, router: LLMRouter) -> None:
        self.router = router

    async def extract(
        self, question: str, responses: Sequence[str], existing_themes: Sequence[KeywordTheme]
    ) -> str:
        existing_block = ""
        if existing_themes:
            listing = "\n".join(
                f"{idx}. {theme.name}\n   Description: {theme.description}"
                for idx, theme in enumerate(existing_themes, 1)
            )
            existing_block = (
                f"EXISTING THEMES:\n{listing}\n\n"
                "PREFER fitting responses into the existing themes above (keep their names). "
                "Only add a NEW theme for a truly distinct topic, and return ALL themes that "
                "still apply.\n\n"
            )
        prompt = _KEYWORD_PROMPT_TEMPLATE.format(
            question=question,
            responses="\n\n".join(f"Response {idx}: {text}" for idx, text in enumerate(responses, 1)),
            existing_block=existing_block,
        )
        completion = await self.router.complete(tier="clustering", prompt=prompt, temperature=0.3)
        return completion.text


class LLMResponseThemeAssigner:
    def __init__(self, router: LLMRouter) -> None:
        self.router = router

    async def assign(self, response_text: str, themes: Sequence[KeywordTheme]) -> str:
        prompt = _RESPONSE_ASSIGN_PROMPT_TEMPLATE.format(
            response=response_text,
            theme_list="\n".join(
                f"{idx}. {theme.name}: {theme.description}" for idx, theme in enumerate(themes, 1)
            ),
        )
        completion = await self.router.complete(tier="extraction", prompt=prompt, temperature=0.2)
        return completion.text


def build_llm_capabilities(router: LLMRouter) -> Capabilities:
    settings = router.settings
    return Capabilities(
        classifier=LLMSpanClassifier(router),
        proposer=LLMThemeProposer(
            router,
            min_themes=settings.min_proposed_themes,
            max_themes=settings.max_proposed_themes,
        ),
        assigner=LLMSpanAssigner(router),
        scorer=LLMSimilarityScorer(router),
        grouper=LLMMergeGrouper(router),
        keyword_extractor=LLMKeywordThemeExtractor(router),
        response_assigner=LLMResponseThemeAssigner(router),
    )

