"""Fuzzy matching for completion ranking.

A query matches when all of its characters appear in order in the text.
Lower score is a better match: consecutive runs and word-boundary hits are
rewarded, gaps and late matches are penalised.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, TypeVar

T = TypeVar("T")

_WORD_BOUNDARY_RE = re.compile(r"[\s\-_./:]")


@dataclass
class FuzzyMatch:
    matches: bool
    score: float


_NO_MATCH = FuzzyMatch(matches=False, score=0)


def fuzzy_match(query: str, text: str) -> FuzzyMatch:
    query = query.lower()
    text = text.lower()
    if not query:
        return FuzzyMatch(matches=True, score=0)
    if len(query) > len(text):
        return _NO_MATCH

    qi = 0
    score = 0.0
    last = -1
    run = 0
    for i, ch in enumerate(text):
        if qi >= len(query):
            break
        if ch != query[qi]:
            continue

        if last == i - 1:
            run += 1
            score -= run * 5
        else:
            run = 0
            if last >= 0:
                score += (i - last - 1) * 2

        if i == 0 or _WORD_BOUNDARY_RE.match(text[i - 1]):
            score -= 10
        score += i * 0.1

        last = i
        qi += 1

    if qi < len(query):
        return _NO_MATCH
    return FuzzyMatch(matches=True, score=score)


def fuzzy_filter(items: list[T], query: str, get_text: Callable[[T], str]) -> list[T]:
    """Filter and sort items by match quality, best first.

    Space-separated tokens must all match. An empty query keeps the input order.
    """
    tokens = query.split()
    if not tokens:
        return list(items)

    scored: list[tuple[float, int, T]] = []
    for position, item in enumerate(items):
        text = get_text(item)
        total = 0.0
        for token in tokens:
            match = fuzzy_match(token, text)
            if not match.matches:
                break
            total += match.score
        else:
            scored.append((total, position, item))

    scored.sort(key=lambda r: (r[0], r[1]))
    return [item for _, _, item in scored]
