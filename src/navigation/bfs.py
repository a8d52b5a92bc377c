"""Breadth-first walk over the available items, in order."""

from __future__ import annotations

from src.core.errors import InvalidArgumentError, NoMoreItemsError, SwitchStrategy
from src.navigation.base import NavigationStrategy
from src.navigation.types import LearningContext, LearningItem, NavigationContext, SecurityItem


class BFSStrategy(NavigationStrategy):
    """
    Sequential catalog walk.

    ``next_item`` serves the first unviewed item at or after the cursor
    without marking it viewed; the learner marks items through
    ``on_view``. Link following is never handled here.
    """

    name = "bfs"

    def __init__(self, items: list[SecurityItem] | None = None):
        super().__init__()
        self._items: list[SecurityItem] = list(items or [])
        self._cursor = 0

    def next_item(self, context: LearningContext | None = None) -> LearningItem:
        with self._lock.write():
            for index in range(self._cursor, len(self._items)):
                item = self._items[index]
                if item.urn not in self._viewed:
                    self._cursor = index
                    return LearningItem.from_item(item, NavigationContext.BROWSING)
            raise NoMoreItemsError("all items have been viewed")

    def on_follow_link(self, from_urn: str, to_urn: str) -> None:
        raise SwitchStrategy(f"bfs does not follow links ({from_urn} -> {to_urn})")

    def on_go_back(self, context: LearningContext | None = None) -> LearningItem:
        raise InvalidArgumentError("go back is not supported in bfs mode")

    def reset(self) -> None:
        with self._lock.write():
            self._viewed.clear()
            self._cursor = 0

    def set_items(self, items: list[SecurityItem]) -> None:
        """Replace the item list and start over."""
        with self._lock.write():
            self._items = list(items)
            self._viewed.clear()
            self._cursor = 0

    def get_total_count(self) -> int:
        with self._lock.read():
            return len(self._items)

    def get_progress(self) -> float:
        """Percentage of items viewed."""
        with self._lock.read():
            if not self._items:
                return 0.0
            return 100.0 * len(self._viewed) / len(self._items)
