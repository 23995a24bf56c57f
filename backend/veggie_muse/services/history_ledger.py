"""
History Ledger: what each client has already been shown.

Keys are stored newest-first, one list per category, capped at
MAX_SEEN_ITEMS. The ledger is consulted before a generation (to steer the
model away from repeats) and updated after a successful one.

Stored data that is not a JSON array of strings is treated as empty. That
case is logged and silently reset, never surfaced to the user.
"""

from __future__ import annotations

import json
import logging
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

logger = logging.getLogger(__name__)

MAX_SEEN_ITEMS = 100
PASSPORT_KEY_SEPARATOR = "|"


class LedgerCategory(str, Enum):
    QUOTES = "quotes"
    RECIPE_TITLES = "recipe_titles"
    WEEKLY_PLAN_TITLES = "weekly_plan_titles"
    PASSPORT_DISHES = "passport_dishes"


def passport_dish_key(destination: str, dish_name: str) -> str:
    return f"{destination.strip()}{PASSPORT_KEY_SEPARATOR}{dish_name.strip()}"


def coerce_stored_items(raw: Any, category: str = "?") -> list[str]:
    """Turn whatever was persisted into a clean, capped, duplicate-free list."""
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.warning("Ledger '%s' holds unparseable JSON; resetting", category)
            return []
    if raw is None:
        return []
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        logger.warning("Ledger '%s' is not an array of strings (%s); resetting", category, type(raw).__name__)
        return []
    return list(dict.fromkeys(raw))[:MAX_SEEN_ITEMS]


class HistoryLedger:
    def __init__(self, entries: Optional[Mapping[LedgerCategory, Iterable[str]]] = None):
        self._entries: dict[LedgerCategory, list[str]] = {category: [] for category in LedgerCategory}
        self._dirty: set[LedgerCategory] = set()
        for category, items in (entries or {}).items():
            self._entries[LedgerCategory(category)] = coerce_stored_items(list(items), category)

    @classmethod
    def from_storage(cls, stored: Mapping[str, Any]) -> HistoryLedger:
        """Build a ledger from raw persisted values keyed by category name.

        Unknown categories are ignored. Corrupted categories load as empty and
        are marked dirty so the next save overwrites them.
        """
        ledger = cls()
        for name, raw in stored.items():
            try:
                category = LedgerCategory(name)
            except ValueError:
                logger.warning("Ignoring unknown ledger category '%s'", name)
                continue
            items = coerce_stored_items(raw, name)
            ledger._entries[category] = items
            if items != raw:
                ledger._dirty.add(category)
        return ledger

    # -----------------------------------------------------------------------
    # Accessors
    # -----------------------------------------------------------------------

    def list(self, category: LedgerCategory) -> list[str]:
        """Current keys for a category, newest first. Returns a copy."""
        return list(self._entries[LedgerCategory(category)])

    def for_destination(self, destination: str) -> list[str]:
        """Dish names already recommended for a destination (case-insensitive match)."""
        wanted = destination.strip().casefold()
        dishes = []
        for key in self._entries[LedgerCategory.PASSPORT_DISHES]:
            place, sep, dish = key.partition(PASSPORT_KEY_SEPARATOR)
            if sep and place.casefold() == wanted:
                dishes.append(dish)
        return dishes

    def to_dict(self) -> dict[str, list[str]]:
        return {category.value: list(items) for category, items in self._entries.items()}

    @property
    def dirty(self) -> set[LedgerCategory]:
        return set(self._dirty)

    # -----------------------------------------------------------------------
    # Mutators
    # -----------------------------------------------------------------------

    def record(self, category: LedgerCategory, key: str) -> list[str]:
        """Prepend key, dropping any older copy and anything past the cap."""
        category = LedgerCategory(category)
        key = key.strip()
        if not key:
            return self.list(category)
        items = [key] + [existing for existing in self._entries[category] if existing != key]
        self._entries[category] = items[:MAX_SEEN_ITEMS]
        self._dirty.add(category)
        return self.list(category)

    def record_many(self, category: LedgerCategory, keys: Iterable[str]) -> list[str]:
        """Prepend several keys at once; keys[0] ends up newest."""
        for key in reversed(list(keys)):
            self.record(category, key)
        return self.list(category)

    def clear(self, category: Optional[LedgerCategory] = None) -> None:
        categories = [LedgerCategory(category)] if category else list(LedgerCategory)
        for cat in categories:
            self._entries[cat] = []
            self._dirty.add(cat)

    def mark_clean(self) -> None:
        self._dirty.clear()
