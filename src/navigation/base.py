"""Common interface of the navigation strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

from src.core.locks import RWLock
from src.navigation.types import LearningContext, LearningItem


class NavigationStrategy(ABC):
    """
    A learner navigation discipline.

    Each strategy guards its whole state with one reader-writer lock.
    Strategies signal the manager by raising SwitchStrategy or
    NoMoreItemsError rather than returning sentinel values.
    """

    name: ClassVar[str] = "base"

    def __init__(self):
        self._lock = RWLock()
        self._viewed: set[str] = set()

    @abstractmethod
    def next_item(self, context: LearningContext) -> LearningItem:
        """Serve the next item, or raise SwitchStrategy / NoMoreItemsError."""
        ...

    def on_view(self, urn: str) -> None:
        with self._lock.write():
            self._viewed.add(urn)

    @abstractmethod
    def on_follow_link(self, from_urn: str, to_urn: str) -> None:
        ...

    @abstractmethod
    def on_go_back(self, context: LearningContext | None = None) -> LearningItem:
        ...

    @abstractmethod
    def reset(self) -> None:
        ...

    def get_viewed_count(self) -> int:
        with self._lock.read():
            return len(self._viewed)

    def is_viewed(self, urn: str) -> bool:
        with self._lock.read():
            return urn in self._viewed
