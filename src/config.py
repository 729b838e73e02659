from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    llm_provider: Literal["ollama", "openai", "gemini", "anthropic"] = "ollama"
    ollama_base_url: str = "http://localhost:11434"
    openai_api_key: str | None = None
    gemini_api_key: str | None = None
    anthropic_api_key: str | None = None

    extraction_model: str = "llama3.2:3b"
    extraction_fallback_model: str | None = None
    clustering_model: str = "llama3.2:3b"
    clustering_fallback_model: str | None = None
    scoring_model: str = "llama3.2:3b"
    scoring_fallback_model: str | None = None

    llm_max_retries: int = 3
    llm_completion_retry_backoff_base_seconds: float = 0.1
    llm_default_max_tokens: int = 1024
    llm_completion_timeout_seconds: float = 60.0
    llm_transient_status_codes: str = "429,500,502,503"
    llm_non_retriable_status_codes: str = "400,401"

    cross_batch_merge_threshold: int = 80
    keyword_overlap_threshold: float = 50.0
    span_assignment_batch_size: int = 20
    span_summary_samples_per_class: int = 10
    similarity_sample_phrases: int = 3
    grounding_concurrency: int = 5
    min_proposed_themes: int = 3
    max_proposed_themes: int = 7

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @field_validator("cross_batch_merge_threshold", "keyword_overlap_threshold")
    @classmethod
    def validate_percentage(cls, value: float) -> float:
        if not 0 <= value <= 100:
            raise ValueError("thresholds are percentages and must be within 0..100")
        return value

    @field_validator(
        "span_assignment_batch_size",
        "span_summary_samples_per_class",
        "similarity_sample_phrases",
        "grounding_concurrency",
    )
    @classmethod
    def validate_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("must be a positive integer")
        return value

    def llm_transient_status_code_set(self) -> set[int]:
        return {int(item.strip()) for item in self.llm_transient_status_codes.split(",") if item.strip()}

    def llm_non_retriable_status_code_set(self) -> set[int]:
        return {int(item.strip()) for item in self.llm_non_retriable_status_codes.split(",") if item.strip()}


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
