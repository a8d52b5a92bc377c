"""Value types shared by the navigation strategies."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class NavigationContext(str, Enum):
    """How the learner reached an item."""

    BROWSING = "browsing"
    DEEP_DIVE = "deep_dive"


@dataclass(frozen=True)
class SecurityItem:
    """An item available for study, identified by its URN."""

    urn: str
    item_type: str  # cve, cwe, capec, attack
    item_id: str = ""
    title: str = ""


@dataclass(frozen=True)
class LearningItem:
    """An item served to the learner, tagged with how it was reached."""

    urn: str
    item_type: str = ""
    title: str = ""
    context: NavigationContext = NavigationContext.BROWSING

    @classmethod
    def from_item(cls, item: SecurityItem, context: NavigationContext) -> LearningItem:
        return cls(urn=item.urn, item_type=item.item_type, title=item.title, context=context)


@dataclass
class LearningContext:
    """Snapshot of manager state handed to a strategy."""

    viewed_items: list[str] = field(default_factory=list)
    completed_items: list[str] = field(default_factory=list)
    available_items: list[SecurityItem] = field(default_factory=list)
    path_stack: list[str] = field(default_factory=list)

    def find(self, urn: str) -> SecurityItem | None:
        for item in self.available_items:
            if item.urn == urn:
                return item
        return None
