"""
Directed item graph keyed by URN.

Adjacency lists allow duplicate edges. A reverse index answers
"what links here" without scanning every list.
"""

from __future__ import annotations

from collections import defaultdict

from src.core.locks import RWLock


class ItemGraph:
    """Thread-safe directed multigraph of URN links."""

    def __init__(self):
        self._lock = RWLock()
        self._links: dict[str, list[str]] = defaultdict(list)
        self._backlinks: dict[str, list[str]] = defaultdict(list)

    def add_link(self, from_urn: str, to_urn: str) -> None:
        with self._lock.write():
            self._links[from_urn].append(to_urn)
            self._backlinks[to_urn].append(from_urn)

    def get_links(self, urn: str) -> list[str]:
        """Outgoing targets of ``urn`` (a copy; empty when unknown)."""
        with self._lock.read():
            return list(self._links.get(urn, ()))

    def get_backlinks(self, urn: str) -> list[str]:
        with self._lock.read():
            return list(self._backlinks.get(urn, ()))

    def clear(self) -> None:
        with self._lock.write():
            self._links.clear()
            self._backlinks.clear()

    def node_count(self) -> int:
        with self._lock.read():
            return len(set(self._links) | set(self._backlinks))

    def edge_count(self) -> int:
        with self._lock.read():
            return sum(len(targets) for targets in self._links.values())

    def __contains__(self, urn: str) -> bool:
        with self._lock.read():
            return urn in self._links or urn in self._backlinks
