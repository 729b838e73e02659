from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

RejectionReason = Literal["grounding_miss", "invalid_class"]
EmptyStage = Literal["responses", "grounding", "clustering", "deduplication", "keywords"]


class ThemeEvolutionError(Exception):
    pass


class CapabilityParseError(ThemeEvolutionError, ValueError):
    pass


class CapabilityCallError(ThemeEvolutionError, RuntimeError):
    def __init__(self, capability: str, message: str) -> None:
        super().__init__(f"{capability}: {message}")
        self.capability = capability


class EmptyInputError(ThemeEvolutionError):
    """Raised when a stage boundary is reached with nothing usable left."""

    def __init__(self, stage: EmptyStage, message: str) -> None:
        super().__init__(message)
        self.stage = stage


@dataclass(frozen=True, slots=True)
class GroundingRejection:
    response_id: int
    text: str
    cls: str
    reason: RejectionReason
