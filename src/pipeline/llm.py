from __future__ import annotations

import asyncio
import logging
from typing import Any, Literal

import httpx
from pydantic import BaseModel

from src.config import Settings, get_settings

logger = logging.getLogger(__name__)

TASK_TIERS: dict[str, tuple[str, str]] = {
    "extraction": ("extraction_model", "extraction_fallback_model"),
    "clustering": ("clustering_model", "clustering_fallback_model"),
    "scoring": ("scoring_model", "scoring_fallback_model"),
}

TierName = Literal["extraction", "clustering", "scoring"]


class LLMResponse(BaseModel):
    text: str
    model: str
    input_tokens: int
    output_tokens: int


class LLMRouter:
    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def _resolve_tier_models(self, tier: str) -> tuple[str, str | None]:
        if tier not in TASK_TIERS:
            raise ValueError(f"Unknown tier: {tier}")
        primary_key, fallback_key = TASK_TIERS[tier]
        primary: str = getattr(self.settings, primary_key)
        fallback: str | None = getattr(self.settings, fallback_key, None)
        return primary, fallback

    def _provider_for_model(self, model: str) -> str:
        lowered = model.lower()
        if "claude" in lowered:
            return "anthropic"
        if "gemini" in lowered:
            return "gemini"
        if lowered.startswith(("gpt-", "o1", "o3", "o4")):
            return "openai"
        return self.settings.llm_provider

    async def _call_completion_api(
        self,
        *,
        model: str,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        timeout_s: float = 60.0,
    ) -> dict[str, Any]:
        provider = self._provider_for_model(model)
        async with httpx.AsyncClient(timeout=timeout_s) as client:
            if provider == "anthropic":
                if not self.settings.anthropic_api_key:
                    raise RuntimeError("ANTHROPIC_API_KEY not configured")
                body: dict[str, Any] = {
                    "model": model,
                    "messages": [{"role": "user", "content": prompt}],
                    "max_tokens": max_tokens,
                    "temperature": temperature,
                }
                if system_prompt:
                    body["system"] = system_prompt
                response = await client.post(
                    "https://api.anthropic.com/v1/messages",
                    json=body,
                    headers={"x-api-key": self.settings.anthropic_api_key, "anthropic-version": "2023-06-01"},
                )
                response.raise_for_status()
                payload = response.json()
                text = payload.get("content", [{}])[0].get("text", "")
                usage = payload.get("usage", {})
                return {"text": text, "usage": usage}

            if provider == "gemini":
                if not self.settings.gemini_api_key:
                    raise RuntimeError("GEMINI_API_KEY not configured")
                gemini_body: dict[str, Any] = {
                    "contents": [{"parts": [{"text": prompt}]}],
                    "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
                }
                if system_prompt:
                    gemini_body["systemInstruction"] = {"parts": [{"text": system_prompt}]}
                response = await client.post(
                    f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent",
                    json=gemini_body,
                    params={"key": self.settings.gemini_api_key},
                )
                response.raise_for_status()
                payload = response.json()
                text = payload["candidates"][0]["content"]["parts"][0]["text"]
                meta = payload.get("usageMetadata", {})
                usage = {
                    "input_tokens": meta.get("promptTokenCount", 0),
                    "output_tokens": meta.get("candidatesTokenCount", 0),
                }
                return {"text": text, "usage": usage}

            if provider == "ollama":
                full_prompt = f"{system_prompt}\n\n{prompt}" if system_prompt else prompt
                response = await client.post(
                    f"{self.settings.ollama_base_url.rstrip('/')}/api/generate",
                    json={
                        "model": model,
                        "prompt": full_prompt,
                        "stream": False,
                        "options": {"temperature": temperature, "num_predict": max_tokens},
                    },
                )
                response.raise_for_status()
                payload = response.json()
                usage = {
                    "input_tokens": payload.get("prompt_eval_count", 0),
                    "output_tokens": payload.get("eval_count", 0),
                }
                return {"text": payload.get("response", ""), "usage": usage}

            if not self.settings.openai_api_key:
                raise RuntimeError("OPENAI_API_KEY not configured")
            messages: list[dict[str, str]] = []
            if system_prompt:
                messages.append({"role": "system", "content": system_prompt})
            messages.append({"role": "user", "content": prompt})
            response = await client.post(
                "https://api.openai.com/v1/chat/completions",
                json={"model": model, "messages": messages, "max_tokens": max_tokens, "temperature": temperature},
                headers={"Authorization": f"Bearer {self.settings.openai_api_key}"},
            )
            response.raise_for_status()
            payload = response.json()
            text = payload["choices"][0]["message"]["content"]
            raw_usage = payload.get("usage", {})
            usage = {
                "input_tokens": raw_usage.get("prompt_tokens", 0),
                "output_tokens": raw_usage.get("completion_tokens", 0),
            }
            return {"text": text, "usage": usage}

    async def _call_with_retries(
        self,
        *,
        model: str,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        timeout_s: float = 60.0,
    ) -> dict[str, Any]:
        transient = self.settings.llm_transient_status_code_set()
        non_retriable = self.settings.llm_non_retriable_status_code_set()
        backoff = self.settings.llm_completion_retry_backoff_base_seconds
        last_exc: Exception | None = None
        for attempt in range(self.settings.llm_max_retries):
            try:
                return await self._call_completion_api(
                    model=model,
                    prompt=prompt,
                    system_prompt=system_prompt,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    timeout_s=timeout_s,
                )
            except httpx.HTTPStatusError as exc:
                if exc.response.status_code in non_retriable:
                    raise
                if exc.response.status_code in transient:
                    last_exc = exc
                    await asyncio.sleep(backoff * (2**attempt))
                    continue
                raise
            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_exc = exc
                await asyncio.sleep(backoff * (2**attempt))
                continue
        raise last_exc or RuntimeError(f"Retries exhausted for model={model}")

    async def complete(
        self,
        *,
        tier: TierName,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float = 0.0,
        timeout_s: float | None = None,
    ) -> LLMResponse:
        primary, fallback = self._resolve_tier_models(tier)
        models = [primary] + ([fallback] if fallback else [])
        errors: list[Exception] = []
        for model in models:
            try:
                return await self.complete_with_model(
                    model=model,
                    prompt=prompt,
                    system_prompt=system_prompt,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    timeout_s=timeout_s,
                )
            except Exception as exc:
                errors.append(exc)
                logger.warning("Model %s failed for tier=%s: %s", model, tier, exc)
        raise RuntimeError(f"All completion models failed for tier={tier}: {errors}")

    async def complete_with_model(
        self,
        *,
        model: str,
        prompt: str,
        system_prompt: str | None = None,
        max_tokens: int | None = None,
        temperature: float = 0.0,
        timeout_s: float | None = None,
    ) -> LLMResponse:
        payload = await self._call_with_retries(
            model=model,
            prompt=prompt,
            system_prompt=system_prompt,
            max_tokens=max_tokens or self.settings.llm_default_max_tokens,
            temperature=temperature,
            timeout_s=timeout_s or self.settings.llm_completion_timeout_seconds,
        )
        usage = payload.get("usage", {})
        return LLMResponse(
            text=payload["text"],
            model=model,
            input_tokens=int(usage.get("input_tokens", 0)),
            output_tokens=int(usage.get("output_tokens", 0)),
        )
