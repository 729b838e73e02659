#!/usr/bin/env python3
"""Smoke-test the configured LLM provider with real calls.

Reads config from .env, makes one completion per routing tier, and can run
the full span pipeline over a handful of sample answers.

Usage:
    uv run python scripts/smoke_test_llm.py                     # test all tiers
    uv run python scripts/smoke_test_llm.py --tier scoring      # test one tier
    uv run python scripts/smoke_test_llm.py --pipeline          # tiers + end-to-end run
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.config import Settings
from src.models.theme import ResponseInput
from src.pipeline.errors import EmptyInputError
from src.pipeline.evolution import run_span_evolution
from src.pipeline.llm import TASK_TIERS, LLMRouter
from src.pipeline.prompts import build_llm_capabilities

TIER_TEST_PROMPT = "Respond with exactly one sentence: what is 2+2?"

SAMPLE_QUESTION = "What is the biggest obstacle to getting your work done?"
SAMPLE_RESPONSES = [
    "Too many meetings eat my whole afternoon and I never get deep focus time.",
    "I need better documentation, searching the wiki is a constant frustration.",
    "Honestly the meetings are the worst part, I wish we had a no-meeting day.",
    "Our tools are slow and I feel anxious when builds take twenty minutes.",
]


def _settings() -> Settings:
    return Settings()


async def test_tier(router: LLMRouter, tier: str) -> bool:
    print(f"  tier        {tier:<40s} ", end="", flush=True)
    t0 = time.monotonic()
    try:
        resp = await router.complete(tier=tier, prompt=TIER_TEST_PROMPT, max_tokens=64)  # type: ignore[arg-type]
        elapsed = time.monotonic() - t0
        preview = resp.text[:80].replace("\n", " ")
        print(
            f"OK  {elapsed:.1f}s  "
            f"model={resp.model}  "
            f"in={resp.input_tokens} out={resp.output_tokens}  "
            f"\"{preview}...\""
        )
        return True
    except Exception as exc:
        elapsed = time.monotonic() - t0
        print(f"FAIL  {elapsed:.1f}s  {exc}")
        return False


async def test_pipeline(router: LLMRouter) -> bool:
    print("  pipeline    span evolution over sample answers")
    responses = [ResponseInput(id=idx, text=text) for idx, text in enumerate(SAMPLE_RESPONSES, 1)]
    t0 = time.monotonic()
    try:
        result = await run_span_evolution(
            SAMPLE_QUESTION,
            responses,
            [],
            build_llm_capabilities(router),
            settings=router.settings,
            on_progress=lambda message: print(f"    .. {message}"),
        )
    except EmptyInputError as exc:
        print(f"  FAIL  {time.monotonic() - t0:.1f}s  stage={exc.stage}: {exc}")
        return False
    print(f"  OK  {time.monotonic() - t0:.1f}s  spans={result.span_count}")
    for theme in result.merge.new_themes:
        phrases = ", ".join(phrase.text for phrase in theme.phrases[:3])
        print(f"    - {theme.name} ({theme.response_count} responses): {phrases}")
    return True


async def main() -> int:
    parser = argparse.ArgumentParser(description="Smoke-test LLM routing and the theme pipeline")
    parser.add_argument("--tier", choices=list(TASK_TIERS.keys()), help="Test one tier only")
    parser.add_argument("--pipeline", action="store_true", help="Also run the span pipeline end to end")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    router = LLMRouter(settings=_settings())
    results: list[bool] = []

    print(f"\n--- Tier routing (provider={router.settings.llm_provider}) ---")
    tiers = [args.tier] if args.tier else list(TASK_TIERS.keys())
    for tier in tiers:
        results.append(await test_tier(router, tier))

    if args.pipeline:
        print("\n--- Pipeline ---")
        results.append(await test_pipeline(router))

    passed = sum(results)
    failed = len(results) - passed
    print(f"\n{'='*60}")
    print(f"  {passed} passed, {failed} failed")
    print(f"{'='*60}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
