"""Parsing of number menus such as ``1 2 3``, ``1-4`` and ``^5``."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Set, Tuple

__all__ = ["IntRange", "IntRanges", "parse_number_menu"]

_INT_RE = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_SEPARATORS = re.compile(r"[\s,]+")


@dataclass(frozen=True)
class IntRange:
    """A closed range of integers."""

    low: int
    high: int

    def get(self, n: int) -> bool:
        """Return True if ``n`` lies within the closed range."""
        return self.low <= n <= self.high


class IntRanges(list):
    """A list of ranges."""

    def get(self, n: int) -> bool:
        """Return True if ``n`` lies within any of the ranges."""
        return any(r.get(n) for r in self)


def _atoi(text: str) -> Optional[int]:
    if not _INT_RE.fullmatch(text):
        return None
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        return None
    return value


def parse_number_menu(text: str) -> Tuple[IntRanges, IntRanges, Set[str], Set[str]]:
    """Parse a number menu answer.

    Words are separated by whitespace or commas. Single numbers, ranges
    (``1-4``) and negations (``^1``, ``^1-4``) are supported. Words that are
    not numbers are collected, lower-cased, into the "other" sets.

    Returns ``(include, exclude, other_include, other_exclude)``.
    """
    include = IntRanges()
    exclude = IntRanges()
    other_include: Set[str] = set()
    other_exclude: Set[str] = set()

    for word in filter(None, _SEPARATORS.split(text)):
        invert = word.startswith("^")
        other = other_exclude if invert else other_include
        if invert:
            word = word[1:]

        parts = word.split("-", 1)
        first = _atoi(parts[0])
        if first is None:
            other.add(word.lower())
            continue

        if len(parts) == 2:
            second = _atoi(parts[1])
            if second is None:
                other.add(word.lower())
                continue
        else:
            second = first

        target = exclude if invert else include
        target.append(IntRange(min(first, second), max(first, second)))

    return include, exclude, other_include, other_exclude