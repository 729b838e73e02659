from __future__ import annotations

import pytest

from src.pipeline.errors import CapabilityParseError
from src.pipeline.parsing import (
    extract_json_array,
    parse_int_array,
    parse_merge_groups,
    parse_similarity_score,
)


# --- extract_json_array ---
def test_extracts_plain_array() -> None:
    assert extract_json_array('[{"text": "a", "class": "emotion"}]') == [{"text": "a", "class": "emotion"}]


def test_extracts_array_from_markdown_fence() -> None:
    raw = '```json\n[1, 2, 0]\n```'
    assert extract_json_array(raw) == [1, 2, 0]


def test_extracts_first_array_surrounded_by_prose() -> None:
    raw = 'Sure! Here you go: [[1, 3], [2, 5]] and later [9]'
    assert extract_json_array(raw) == [[1, 3], [2, 5]]


def test_tolerates_trailing_commas() -> None:
    raw = '[{"name": "A", "keywords": "x, y",}, {"name": "B",},]'
    assert extract_json_array(raw) == [{"name": "A", "keywords": "x, y"}, {"name": "B"}]


def test_brackets_inside_strings_do_not_end_the_array() -> None:
    raw = '[{"text": "see [note] here"}] trailing'
    assert extract_json_array(raw) == [{"text": "see [note] here"}]


@pytest.mark.parametrize("raw", ["", "no array here", "[1, 2", '{"a": 1}', "[nonsense]"])
def test_unusable_output_raises_parse_error(raw: str) -> None:
    with pytest.raises(CapabilityParseError):
        extract_json_array(raw)


# --- typed helpers ---
def test_parse_int_array_accepts_numeric_strings_and_floats() -> None:
    assert parse_int_array('[1, "2", 3.0, 0]') == [1, 2, 3, 0]


def test_parse_int_array_reads_null_as_zero() -> None:
    assert parse_int_array("[1, null, 2]") == [1, 0, 2]


def test_parse_int_array_rejects_non_numbers() -> None:
    with pytest.raises(CapabilityParseError):
        parse_int_array('[1, "two"]')


def test_parse_merge_groups() -> None:
    assert parse_merge_groups("[[1, 3], [2]]") == [[1, 3], [2]]


def test_parse_merge_groups_rejects_flat_array() -> None:
    with pytest.raises(CapabilityParseError):
        parse_merge_groups("[1, 3]")


def test_parse_merge_groups_empty() -> None:
    assert parse_merge_groups("[]") == []


# --- parse_similarity_score ---
@pytest.mark.parametrize(
    ("raw", "expected"),
    [("85", 85), ("Score: 72/100", 72), ("150", 100), ("-5", 0), (" 80\n", 80)],
)
def test_parse_similarity_score(raw: str, expected: int) -> None:
    assert parse_similarity_score(raw) == expected


def test_parse_similarity_score_without_number_raises() -> None:
    with pytest.raises(CapabilityParseError):
        parse_similarity_score("invalid response")
