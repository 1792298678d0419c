"""Subsequence matching for the Log filter."""

from collections.abc import Sequence
from dataclasses import dataclass

MATCH_POINTS = 1.0
CONTIGUOUS_BONUS = 3.0
WORD_START_BONUS = 2.0
RECENCY_WEIGHT = 2.0
WORD_SEPARATORS = " _-/.:()[]"


@dataclass(frozen=True)
class FuzzyMatch:
    index: int
    score: float
    positions: tuple[int, ...]


def _match_from(query: str, text: str, start: int) -> tuple[float, tuple[int, ...]] | None:
    positions: list[int] = []
    score = 0.0
    cursor = start
    for char in query:
        found = text.find(char, cursor)
        if found < 0:
            return None
        score += MATCH_POINTS
        if positions and found == positions[-1] + 1:
            score += CONTIGUOUS_BONUS
        if found == 0 or text[found - 1] in WORD_SEPARATORS:
            score += WORD_START_BONUS
        positions.append(found)
        cursor = found + 1
    return score, tuple(positions)


def match(query: str, text: str) -> tuple[float, tuple[int, ...]] | None:
    """Best subsequence match of ``query`` in ``text``, or None.

    Every occurrence of the first query character is tried as an anchor and
    the highest scoring alignment wins, so "fix" prefers "fix bug" over
    "f(oo) i(n) x".
    """
    needle = query.lower()
    haystack = text.lower()
    if not needle:
        return 0.0, ()
    best: tuple[float, tuple[int, ...]] | None = None
    start = haystack.find(needle[0])
    while start >= 0:
        candidate = _match_from(needle, haystack, start)
        if candidate is None:
            break
        if best is None or candidate[0] > best[0]:
            best = candidate
        start = haystack.find(needle[0], start + 1)
    return best


def filter_items(query: str, texts: Sequence[str]) -> list[FuzzyMatch]:
    """Rank ``texts`` against ``query``; earlier entries count as more recent.

    An empty query keeps every entry in its original order.
    """
    if not query:
        return [FuzzyMatch(index, 0.0, ()) for index in range(len(texts))]
    total = len(texts)
    matches: list[FuzzyMatch] = []
    for index, text in enumerate(texts):
        found = match(query, text)
        if found is None:
            continue
        score, positions = found
        recency = RECENCY_WEIGHT * (1 - index / total)
        matches.append(FuzzyMatch(index, score + recency, positions))
    matches.sort(key=lambda item: (-item.score, item.index))
    return matches
