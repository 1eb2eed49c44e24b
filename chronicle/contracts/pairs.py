"""
Character Pair Identity
=======================

A relationship is identified by an unordered pair of character names.
(A, B) and (B, A) normalize to one identity.

INVARIANTS:
- sort_pair is case-insensitive; ties fall back to the raw string
- pair_key is always lower-cased
- Every relationship lookup goes through pair_key
"""

from __future__ import annotations
from typing import Optional, Tuple

Pair = Tuple[str, str]

PAIR_SEPARATOR = "|"


def sort_pair(first: str, second: str) -> Pair:
    """Order two names alphabetically, ignoring case."""
    if (first.casefold(), first) <= (second.casefold(), second):
        return (first, second)
    return (second, first)


def pair_key(first: str, second: str) -> str:
    """Deterministic, order-independent, lower-cased key for a pair."""
    a, b = sort_pair(first, second)
    return f"{a}{PAIR_SEPARATOR}{b}".lower()


def derive_pair(
    from_character: Optional[str],
    toward_character: Optional[str]
) -> Optional[Pair]:
    """
    Sorted pair for a directional relationship fact.

    Returns None if either side is missing or empty.
    """
    if not from_character or not toward_character:
        return None
    return sort_pair(from_character, toward_character)


def is_first_of_pair(character: str, pair: Pair) -> bool:
    """True if `character` is the first (a-side) name of a sorted pair."""
    return character.lower() == pair[0].lower()
