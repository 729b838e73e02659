from __future__ import annotations

import pytest

from src.pipeline.batch_merge import merge_similar_themes, valid_merge_groups
from tests.fixtures.stub_capabilities import StubGrouper, make_span, make_theme


def _themes() -> list:
    return [
        make_theme("Meetings", [make_span("meetings", 0, response_id=1), make_span("calls", 10, response_id=2)]),
        make_theme("Tooling", [make_span("slow laptop", 0, response_id=3)]),
        make_theme("Too many calls", [make_span("calls", 10, response_id=2), make_span("standups", 0, response_id=4)]),
        make_theme("Docs", [make_span("wiki", 0, response_id=5)]),
    ]


# --- valid_merge_groups ---
def test_valid_groups_drop_singletons_and_out_of_range() -> None:
    assert valid_merge_groups([[1, 3], [2], [4, 9], [0, 5], [2, 4, 7]], theme_count=4) == [[0, 2], [1, 3]]


# --- merge_similar_themes ---
@pytest.mark.asyncio
async def test_fewer_than_two_themes_skips_grouper() -> None:
    grouper = StubGrouper("[[1, 2]]")
    themes = _themes()[:1]
    assert await merge_similar_themes(themes, grouper) == themes
    assert grouper.calls == []


@pytest.mark.asyncio
async def test_grouper_receives_names_and_descriptions() -> None:
    grouper = StubGrouper("[]")
    await merge_similar_themes(_themes(), grouper)
    assert grouper.calls[0][0][0] == ("Meetings", "Meetings description")


@pytest.mark.asyncio
async def test_primary_keeps_identity_and_absorbs_evidence() -> None:
    themes = _themes()
    result = await merge_similar_themes(themes, StubGrouper("[[1, 3]]"))

    assert [t.name for t in result] == ["Meetings", "Tooling", "Docs"]
    merged = result[0]
    assert merged.description == "Meetings description"
    assert merged.response_ids == [1, 2, 4]
    assert len(merged.contributing_spans) == 4
    by_id = {r.id: [(s.start, s.end) for s in r.spans] for r in merged.responses}
    # the shared (10, 15) span on response 2 is not duplicated in the response entry
    assert by_id == {1: [(0, 8)], 2: [(10, 15)], 4: [(0, 8)]}


@pytest.mark.asyncio
async def test_merge_does_not_mutate_input_themes() -> None:
    themes = _themes()
    await merge_similar_themes(themes, StubGrouper("[[1, 3]]"))
    assert len(themes[0].contributing_spans) == 2
    assert [r.id for r in themes[0].responses] == [1, 2]


@pytest.mark.asyncio
async def test_invalid_groups_are_ignored() -> None:
    themes = _themes()
    result = await merge_similar_themes(themes, StubGrouper("[[2], [4, 99]]"))
    assert [t.name for t in result] == ["Meetings", "Tooling", "Too many calls", "Docs"]


@pytest.mark.asyncio
@pytest.mark.parametrize("reply", ["[]", "no groups", RuntimeError("down"), "[1, 2]"])
async def test_failure_or_empty_groups_return_input_unchanged(reply: object) -> None:
    themes = _themes()
    result = await merge_similar_themes(themes, StubGrouper(reply))  # type: ignore[arg-type]
    assert result == themes


@pytest.mark.asyncio
async def test_index_in_two_groups_contributes_to_both() -> None:
    themes = _themes()
    result = await merge_similar_themes(themes, StubGrouper("[[1, 3], [3, 4]]"))

    assert [t.name for t in result] == ["Meetings", "Too many calls", "Tooling"]
    # theme 3's evidence now sits in both merged outputs until deduplication
    assert any(s.text == "standups" for s in result[0].contributing_spans)
    assert any(s.text == "standups" for s in result[1].contributing_spans)
    assert any(s.text == "wiki" for s in result[1].contributing_spans)


@pytest.mark.asyncio
async def test_later_group_sees_spans_added_by_earlier_group() -> None:
    themes = [
        make_theme("A", [make_span("ab", 0, response_id=1)]),
        make_theme("B", [make_span("cd", 5, response_id=1)]),
        make_theme("C", [make_span("ef", 0, response_id=9)]),
    ]
    result = await merge_similar_themes(themes, StubGrouper("[[1, 2], [1, 3]]"))

    first, second = result
    assert [(s.start, s.end) for s in first.responses[0].spans] == [(0, 2), (5, 7)]
    # A's response entry already holds B's span when the second group starts from A
    by_id = {r.id: [(s.start, s.end) for s in r.spans] for r in second.responses}
    assert by_id == {1: [(0, 2), (5, 7)], 9: [(0, 2)]}
    assert [s.text for s in second.contributing_spans] == ["ab", "ef"]
    assert [(s.start, s.end) for s in themes[0].responses[0].spans] == [(0, 2)]
