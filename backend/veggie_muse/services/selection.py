"""
Pure candidate selection against the History Ledger.

The model's own semantic judgement (stage 2) is non-deterministic, so every
choice it makes is checked here with a fixed heuristic: two keys collide when
their normalized forms are equal. Normalization case-folds, strips accents
and punctuation, drops filler words and ignores word order, so
"Spinach and Paneer Curry" collides with "Paneer with Spinach in Curry".

Nothing in this module raises for a bad proposal. It returns a Selection
that records whether the fallback was taken.
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Optional, Sequence, TypeVar

T = TypeVar("T")

_FILLER_WORDS = frozenset({"a", "an", "and", "the", "with", "in", "of", "on", "style"})
_NON_WORD = re.compile(r"[^\w]+")


@dataclass
class Selection(Generic[T]):
    index: int
    item: T
    fallback: bool = False
    error: Optional[str] = None


def normalize_key(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    words = _NON_WORD.sub(" ", stripped.casefold().replace("_", " ")).split()
    meaningful = [w for w in words if w not in _FILLER_WORDS] or words
    return " ".join(sorted(meaningful))


def _seen_set(seen: Iterable[str]) -> set[str]:
    return {normalize_key(s) for s in seen if s and s.strip()}


def first_candidate(candidates: Sequence[T], error: Optional[str] = None) -> Selection[T]:
    """Unconditional fallback: candidate 0."""
    if not candidates:
        raise ValueError("cannot select from an empty candidate list")
    return Selection(index=0, item=candidates[0], fallback=True, error=error)


def select_unique(
    candidates: Sequence[T],
    seen: Iterable[str],
    key: Callable[[T], str] = str,
) -> Selection[T]:
    """First candidate whose key does not collide with ``seen``.

    When every candidate collides, candidate 0 is returned with
    ``fallback=True``: repeats are tolerated rather than blocking the user.
    """
    if not candidates:
        raise ValueError("cannot select from an empty candidate list")
    seen_keys = _seen_set(seen)
    for index, candidate in enumerate(candidates):
        if normalize_key(key(candidate)) not in seen_keys:
            return Selection(index=index, item=candidate)
    return first_candidate(candidates, error="all candidates already seen")


def guard_selection(
    candidates: Sequence[T],
    proposed_index: int,
    seen: Iterable[str],
    key: Callable[[T], str] = str,
) -> Selection[T]:
    """Check a model-proposed index against the ledger.

    - out of range → candidate 0 (fallback)
    - proposal collides but another candidate doesn't → first non-colliding
    - otherwise the proposal stands
    """
    if not 0 <= proposed_index < len(candidates):
        return first_candidate(candidates, error=f"proposed index {proposed_index} out of range")
    seen = list(seen)
    if normalize_key(key(candidates[proposed_index])) not in _seen_set(seen):
        return Selection(index=proposed_index, item=candidates[proposed_index])
    return select_unique(candidates, seen, key)
