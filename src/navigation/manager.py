"""
Strategy manager.

Owns one BFS and one DFS strategy and routes learner actions to the
active one. Following a link switches to DFS; when DFS runs dry it
signals SwitchStrategy and the manager falls back to BFS.

Lock order is manager then strategy. Strategies never call back into
the manager, so their locks are leaves.
"""

from __future__ import annotations

from typing import Any

from loguru import logger

from src.core.errors import NoMoreItemsError, StoreError, SwitchStrategy
from src.core.locks import RWLock
from src.navigation.base import NavigationStrategy
from src.navigation.bfs import BFSStrategy
from src.navigation.dfs import DFSStrategy
from src.navigation.graph import ItemGraph
from src.navigation.types import LearningContext, LearningItem, NavigationContext, SecurityItem

# Fallback fan-out between catalog types when no cross references are stored
TYPE_CHAIN = (("cve", "cwe"), ("cwe", "capec"), ("capec", "attack"))


def _normalize_type(item_type: str) -> str:
    value = (item_type or "").lower()
    return "attack" if value in ("att&ck", "attack") else value


def build_item_graph(
    items: list[SecurityItem],
    cross_references: Any | None = None,
    fanout: int = 3,
) -> ItemGraph:
    """
    Build the link graph for a set of items.

    With a cross-reference service, every stored edge whose source is one
    of the items becomes a link. Without one, each item links to the first
    ``fanout`` items of the next type in the cve > cwe > capec > attack
    chain, and items of the same type are chained in order.
    """
    graph = ItemGraph()

    if cross_references is not None:
        for item in items:
            try:
                refs = cross_references.by_source(item.urn)
            except StoreError as e:
                logger.warning(f"Failed to get cross references for {item.urn}: {e}")
                continue
            for ref in refs:
                graph.add_link(ref.source_item_id, ref.target_item_id)
        return graph

    by_type: dict[str, list[SecurityItem]] = {}
    for item in items:
        by_type.setdefault(_normalize_type(item.item_type), []).append(item)

    for from_type, to_type in TYPE_CHAIN:
        targets = by_type.get(to_type, [])[:fanout]
        for source in by_type.get(from_type, []):
            for target in targets:
                graph.add_link(source.urn, target.urn)

    for typed_items in by_type.values():
        for current, following in zip(typed_items, typed_items[1:]):
            graph.add_link(current.urn, following.urn)

    return graph


class StrategyManager:
    """
    Navigation state for one learning session.

    Create one manager per session; nothing here is process-wide.
    """

    def __init__(
        self,
        items: list[SecurityItem],
        cross_references: Any | None = None,
        fanout: int = 3,
    ):
        self._lock = RWLock()
        self._cross_references = cross_references
        self._fanout = fanout

        self._items: list[SecurityItem] = list(items)
        self._graph = build_item_graph(self._items, cross_references, fanout)
        self._bfs = BFSStrategy(self._items)
        self._dfs = DFSStrategy(self._graph)
        self._current: NavigationStrategy = self._bfs

        self._viewed_items: list[str] = []
        self._completed_items: list[str] = []
        self._path_stack: list[str] = []

    @property
    def graph(self) -> ItemGraph:
        return self._graph

    def get_current_strategy(self) -> str:
        with self._lock.read():
            return self._current.name

    def get_next_item(self) -> LearningItem:
        """
        Serve the next item from the active strategy.

        Raises:
            NoMoreItemsError: Nothing left to serve
            NotFoundError: DFS popped a URN absent from the item list
        """
        with self._lock.write():
            context = self._context()
            try:
                return self._current.next_item(context)
            except SwitchStrategy:
                self._switch_to_bfs()
                return self._bfs.next_item(context)

    def mark_viewed(self, urn: str) -> None:
        with self._lock.write():
            if urn not in self._viewed_items:
                self._viewed_items.append(urn)
            self._current.on_view(urn)

    def mark_learned(self, urn: str) -> None:
        with self._lock.write():
            if urn not in self._completed_items:
                self._completed_items.append(urn)

    def follow_link(self, from_urn: str, to_urn: str) -> None:
        """Learner followed a related link: switch to DFS and remember the origin."""
        with self._lock.write():
            if self._current is not self._dfs:
                logger.debug(f"Switching strategy {self._current.name} -> dfs")
            self._current = self._dfs
            self._path_stack.append(from_urn)
            self._viewed_items.append(to_urn)
            self._dfs.on_follow_link(from_urn, to_urn)

    def go_back(self) -> LearningItem:
        """
        Return to the previous item.

        DFS backtracks first. Once its stack is empty the manager switches
        to BFS and falls back to its own path stack.

        Raises:
            NoMoreItemsError: Nowhere to go back to
        """
        with self._lock.write():
            context = self._context()
            if self._current is self._dfs:
                try:
                    item = self._dfs.on_go_back(context)
                except SwitchStrategy:
                    self._switch_to_bfs()
                else:
                    if self._path_stack:
                        self._path_stack.pop()
                    return item

            if self._path_stack:
                urn = self._path_stack.pop()
                found = context.find(urn)
                if found is not None:
                    return LearningItem.from_item(found, NavigationContext.DEEP_DIVE)
            raise NoMoreItemsError("no previous item")

    def update_items(self, items: list[SecurityItem]) -> None:
        """Replace the item list, rebuild the graph and DFS. The active mode is kept."""
        with self._lock.write():
            was_dfs = self._current is self._dfs
            self._items = list(items)
            self._bfs.set_items(self._items)
            self._graph = build_item_graph(self._items, self._cross_references, self._fanout)
            self._dfs = DFSStrategy(self._graph)
            self._current = self._dfs if was_dfs else self._bfs

    def reset(self) -> None:
        with self._lock.write():
            self._bfs.reset()
            self._dfs.reset()
            self._viewed_items.clear()
            self._completed_items.clear()
            self._path_stack.clear()

    def get_progress(self) -> dict[str, Any]:
        with self._lock.read():
            return {
                "strategy": self._current.name,
                "viewed_count": len(self._viewed_items),
                "completed_count": len(self._completed_items),
                "total_items": len(self._items),
                "bfs_progress": self._bfs.get_progress(),
                "dfs_stack_depth": self._dfs.get_stack_depth(),
            }

    def get_context(self) -> LearningContext:
        """Copies of the manager's navigation state."""
        with self._lock.read():
            return self._context()

    def _context(self) -> LearningContext:
        return LearningContext(
            viewed_items=list(self._viewed_items),
            completed_items=list(self._completed_items),
            available_items=list(self._items),
            path_stack=list(self._path_stack),
        )

    def _switch_to_bfs(self) -> None:
        if self._current is not self._bfs:
            logger.debug(f"Switching strategy {self._current.name} -> bfs")
        self._current = self._bfs
