"""Tolerant parsing of loosely structured capability output.

Models wrap JSON in prose, markdown fences, or leave trailing commas behind.
Everything here either returns a well-typed value or raises
``CapabilityParseError``; callers decide on the fallback.
"""

from __future__ import annotations

import json
import re
from typing import Any

from src.pipeline.errors import CapabilityParseError

_FENCE_RE = re.compile(r"```[a-zA-Z]*")
_TRAILING_COMMA_RE = re.compile(r",\s*([\]}])")
_INT_RE = re.compile(r"-?\d+")


def _strip_fences(text: str) -> str:
    return _FENCE_RE.sub("", text).strip()


def _first_bracketed_block(text: str) -> str:
    start = text.find("[")
    if start == -1:
        raise CapabilityParseError("no JSON array in capability output")
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    raise CapabilityParseError("unterminated JSON array in capability output")


def extract_json_array(raw: str) -> list[Any]:
    """Return the first bracketed JSON array found in ``raw``."""
    block = _first_bracketed_block(_strip_fences(raw or ""))
    try:
        parsed = json.loads(block)
    except json.JSONDecodeError:
        try:
            parsed = json.loads(_TRAILING_COMMA_RE.sub(r"\1", block))
        except json.JSONDecodeError as exc:
            raise CapabilityParseError(f"invalid JSON array: {exc}") from exc
    if not isinstance(parsed, list):
        raise CapabilityParseError(f"expected a JSON array, got {type(parsed).__name__}")
    return parsed


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        raise CapabilityParseError("booleans are not indices")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise CapabilityParseError(f"expected an integer, got {value!r}")


def parse_int_array(raw: str) -> list[int]:
    """Read an array of indices; ``null`` entries read as 0 (no match)."""
    return [0 if item is None else _as_int(item) for item in extract_json_array(raw)]


def parse_merge_groups(raw: str) -> list[list[int]]:
    groups: list[list[int]] = []
    for item in extract_json_array(raw):
        if not isinstance(item, list):
            raise CapabilityParseError(f"merge group must be an array, got {item!r}")
        groups.append([_as_int(value) for value in item])
    return groups


def parse_similarity_score(raw: str) -> int:
    match = _INT_RE.search(raw or "")
    if match is None:
        raise CapabilityParseError(f"no score in capability output: {(raw or '')[:40]!r}")
    return max(0, min(100, int(match.group())))
