from __future__ import annotations

from gitbuddy import fuzzy


def test_match_is_case_insensitive_subsequence() -> None:
    found = fuzzy.match("FLB", "fix login bug")
    assert found is not None
    assert found[1] == (0, 4, 10)
    assert fuzzy.match("xyz", "fix login bug") is None


def test_match_prefers_contiguous_alignment() -> None:
    score, positions = fuzzy.match("bug", "b u g bug")
    assert positions == (6, 7, 8)
    loose, _ = fuzzy.match("bug", "b-u-g")
    assert score > loose


def test_empty_query_keeps_order() -> None:
    matches = fuzzy.filter_items("", ["a", "b", "c"])
    assert [m.index for m in matches] == [0, 1, 2]


def test_recency_breaks_ties() -> None:
    matches = fuzzy.filter_items("fix", ["fix a", "fix b", "docs"])
    assert [m.index for m in matches] == [0, 1]
    assert matches[0].score > matches[1].score


def test_better_match_beats_recency() -> None:
    matches = fuzzy.filter_items("parser", ["p a r s e r x", "Refactor parser"])
    assert matches[0].index == 1
