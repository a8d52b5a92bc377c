"""Depth-first traversal along followed links, with backtracking."""

from __future__ import annotations

from src.core.errors import NotFoundError, SwitchStrategy
from src.navigation.base import NavigationStrategy
from src.navigation.graph import ItemGraph
from src.navigation.types import LearningContext, LearningItem, NavigationContext


class DFSStrategy(NavigationStrategy):
    """
    Stack of URNs the learner can return to.

    Following a link pushes the origin; ``next_item`` and ``on_go_back``
    pop. An empty stack hands control back to the manager with
    SwitchStrategy. The graph is shared and only read.
    """

    name = "dfs"

    def __init__(self, graph: ItemGraph | None = None):
        super().__init__()
        self._graph = graph
        self._stack: list[str] = []

    def next_item(self, context: LearningContext) -> LearningItem:
        with self._lock.write():
            if not self._stack:
                raise SwitchStrategy("dfs path exhausted")
            urn = self._stack.pop()
            self._viewed.add(urn)

        item = context.find(urn) if context is not None else None
        if item is None:
            raise NotFoundError(f"item {urn}: not found in available items")
        return LearningItem.from_item(item, NavigationContext.DEEP_DIVE)

    def on_follow_link(self, from_urn: str, to_urn: str) -> None:
        with self._lock.write():
            if from_urn:
                self._stack.append(from_urn)
            self._viewed.add(to_urn)

    def on_go_back(self, context: LearningContext | None = None) -> LearningItem:
        with self._lock.write():
            if not self._stack:
                raise SwitchStrategy("dfs stack is empty")
            urn = self._stack.pop()

        item = context.find(urn) if context is not None else None
        if item is None:
            return LearningItem(urn=urn, context=NavigationContext.DEEP_DIVE)
        return LearningItem.from_item(item, NavigationContext.DEEP_DIVE)

    def reset(self) -> None:
        with self._lock.write():
            self._stack.clear()
            self._viewed.clear()

    def push_stack(self, urn: str) -> None:
        with self._lock.write():
            self._stack.append(urn)

    def get_stack_depth(self) -> int:
        with self._lock.read():
            return len(self._stack)

    def get_linked_items(self, urn: str) -> list[str]:
        if self._graph is None:
            return []
        return self._graph.get_links(urn)
