from __future__ import annotations

import re
from collections.abc import Sequence

from src.models.theme import Highlight, ThemePhrase


def _overlaps(start: int, end: int, ranges: Sequence[tuple[int, int]]) -> bool:
    return any(start < used_end and end > used_start for used_start, used_end in ranges)


def find_phrase_matches(text: str, phrases: Sequence[ThemePhrase]) -> list[Highlight]:
    """Highlight every case-insensitive occurrence of each phrase, without overlaps.

    Phrases are taken in the given order and earlier phrases win any overlap,
    so callers control priority through ordering. The result is sorted by start.
    """
    highlights: list[Highlight] = []
    used: list[tuple[int, int]] = []
    for phrase in phrases:
        if not phrase.text:
            continue
        pattern = re.compile(re.escape(phrase.text), re.IGNORECASE)
        position = 0
        while True:
            match = pattern.search(text, position)
            if match is None:
                break
            start, end = match.start(), match.end()
            if not _overlaps(start, end, used):
                highlights.append(Highlight(text=text[start:end], start=start, end=end, cls=phrase.cls))
                used.append((start, end))
            position = start + 1
    highlights.sort(key=lambda item: item.start)
    return highlights
