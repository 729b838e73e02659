from __future__ import annotations

import pytest


@pytest.fixture(autouse=True)
def _default_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LLM_PROVIDER", "ollama")
    monkeypatch.delenv("CROSS_BATCH_MERGE_THRESHOLD", raising=False)
    monkeypatch.delenv("KEYWORD_OVERLAP_THRESHOLD", raising=False)
    from src.config import get_settings

    get_settings.cache_clear()
