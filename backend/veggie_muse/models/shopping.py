from typing import Iterable, List

from pydantic import BaseModel

RECIPE_SHOPPING_LIST_FILENAME = "shopping-list.txt"
WEEKLY_SHOPPING_LIST_FILENAME = "weekly-shopping-list.txt"


def dedupe_preserving_order(items: Iterable[str]) -> List[str]:
    """Exact-match de-duplication; the first occurrence keeps its position."""
    return list(dict.fromkeys(items))


class ShoppingList(BaseModel):
    """A downloadable plain-text list. Items are unique by construction."""

    items: List[str]
    filename: str = RECIPE_SHOPPING_LIST_FILENAME

    @classmethod
    def from_items(cls, items: Iterable[str], filename: str = RECIPE_SHOPPING_LIST_FILENAME) -> "ShoppingList":
        return cls(items=dedupe_preserving_order(items), filename=filename)

    def to_text(self) -> str:
        return "\n".join(self.items)

    @property
    def content_disposition(self) -> str:
        return f'attachment; filename="{self.filename}"'
