"""
Unit tests for the item graph and the BFS/DFS navigation strategies.
"""

import threading

import pytest

from src.core.errors import (
    InvalidArgumentError,
    NoMoreItemsError,
    NotFoundError,
    SwitchStrategy,
)
from src.navigation.bfs import BFSStrategy
from src.navigation.dfs import DFSStrategy
from src.navigation.graph import ItemGraph
from src.navigation.types import LearningContext, NavigationContext, SecurityItem


def cves(*numbers):
    return [
        SecurityItem(urn=f"v2e::nvd::cve::CVE-2024-{n:04d}", item_type="cve", item_id=str(n), title=f"CVE {n}")
        for n in numbers
    ]


# ============================================================================
# Item graph
# ============================================================================


class TestItemGraph:
    def test_add_and_get_links(self):
        graph = ItemGraph()
        graph.add_link("urn:1", "urn:2")
        graph.add_link("urn:1", "urn:3")
        assert graph.get_links("urn:1") == ["urn:2", "urn:3"]
        assert graph.get_links("urn:missing") == []

    def test_duplicates_are_kept(self):
        graph = ItemGraph()
        graph.add_link("urn:1", "urn:2")
        graph.add_link("urn:1", "urn:2")
        assert graph.get_links("urn:1") == ["urn:2", "urn:2"]
        assert graph.edge_count() == 2

    def test_get_links_returns_a_copy(self):
        graph = ItemGraph()
        graph.add_link("urn:1", "urn:2")
        links = graph.get_links("urn:1")
        links.append("urn:99")
        assert graph.get_links("urn:1") == ["urn:2"]

    def test_bidirectional_links(self):
        graph = ItemGraph()
        graph.add_link("urn:1", "urn:2")
        graph.add_link("urn:2", "urn:1")
        assert graph.get_links("urn:1") == ["urn:2"]
        assert graph.get_links("urn:2") == ["urn:1"]

    def test_backlinks_and_counts(self):
        graph = ItemGraph()
        graph.add_link("urn:a", "urn:c")
        graph.add_link("urn:b", "urn:c")
        assert graph.get_backlinks("urn:c") == ["urn:a", "urn:b"]
        assert graph.node_count() == 3
        assert "urn:c" in graph
        graph.clear()
        assert graph.node_count() == 0
        assert graph.get_backlinks("urn:c") == []

    def test_concurrent_writers(self):
        graph = ItemGraph()

        def add(n):
            for i in range(100):
                graph.add_link(f"urn:{n}", f"urn:{i}")

        threads = [threading.Thread(target=add, args=(n,)) for n in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)
        assert graph.edge_count() == 500


# ============================================================================
# BFS
# ============================================================================


class TestBFSStrategy:
    def test_name_and_counts(self):
        strategy = BFSStrategy(cves(1, 2, 3))
        assert strategy.name == "bfs"
        assert strategy.get_total_count() == 3
        assert strategy.get_viewed_count() == 0

    def test_next_item_serves_in_order(self):
        strategy = BFSStrategy(cves(1, 2, 3))
        first = strategy.next_item(LearningContext())
        assert first.urn.endswith("0001")
        assert first.context is NavigationContext.BROWSING

        # Not viewed yet, so it is served again
        assert strategy.next_item(LearningContext()).urn == first.urn

        strategy.on_view(first.urn)
        assert strategy.next_item(LearningContext()).urn.endswith("0002")

    def test_skips_items_viewed_out_of_order(self):
        items = cves(1, 2, 3)
        strategy = BFSStrategy(items)
        strategy.on_view(items[0].urn)
        strategy.on_view(items[1].urn)
        assert strategy.next_item(LearningContext()).urn == items[2].urn

    def test_no_more_items(self):
        items = cves(1)
        strategy = BFSStrategy(items)
        strategy.on_view(items[0].urn)
        with pytest.raises(NoMoreItemsError):
            strategy.next_item(LearningContext())

    def test_duplicate_views_count_once(self):
        items = cves(1)
        strategy = BFSStrategy(items)
        strategy.on_view(items[0].urn)
        strategy.on_view(items[0].urn)
        assert strategy.get_viewed_count() == 1

    def test_follow_link_asks_for_switch(self):
        with pytest.raises(SwitchStrategy):
            BFSStrategy(cves(1)).on_follow_link("urn:1", "urn:2")

    def test_go_back_is_not_supported(self):
        with pytest.raises(InvalidArgumentError):
            BFSStrategy(cves(1)).on_go_back()

    def test_reset(self):
        items = cves(1, 2)
        strategy = BFSStrategy(items)
        for _ in items:
            strategy.on_view(strategy.next_item(LearningContext()).urn)
        assert strategy.get_viewed_count() == 2
        strategy.reset()
        assert strategy.get_viewed_count() == 0
        assert strategy.next_item(LearningContext()).urn == items[0].urn

    def test_set_items(self):
        strategy = BFSStrategy(cves(1, 2))
        strategy.on_view(cves(1)[0].urn)
        strategy.set_items(cves(3, 4))
        assert strategy.get_total_count() == 2
        assert strategy.get_viewed_count() == 0

    def test_progress(self):
        items = cves(1, 2, 3, 4)
        strategy = BFSStrategy(items)
        assert strategy.get_progress() == 0.0
        strategy.on_view(items[0].urn)
        assert strategy.get_progress() == 25.0
        strategy.on_view(items[1].urn)
        assert strategy.get_progress() == 50.0

    def test_progress_with_no_items(self):
        assert BFSStrategy([]).get_progress() == 0.0


# ============================================================================
# DFS
# ============================================================================


class TestDFSStrategy:
    def context(self):
        return LearningContext(
            available_items=[
                SecurityItem(urn="urn:1", item_type="cve", title="Item 1"),
                SecurityItem(urn="urn:2", item_type="cwe", title="Item 2"),
                SecurityItem(urn="urn:3", item_type="capec", title="Item 3"),
            ]
        )

    def test_name(self):
        assert DFSStrategy(ItemGraph()).name == "dfs"

    def test_empty_stack_switches(self):
        with pytest.raises(SwitchStrategy):
            DFSStrategy(ItemGraph()).next_item(self.context())

    def test_next_item_pops_and_marks_viewed(self):
        strategy = DFSStrategy(ItemGraph())
        strategy.push_stack("urn:1")
        item = strategy.next_item(self.context())
        assert item.urn == "urn:1"
        assert item.title == "Item 1"
        assert item.context is NavigationContext.DEEP_DIVE
        assert strategy.get_stack_depth() == 0
        assert strategy.is_viewed("urn:1")

    def test_next_item_unknown_urn(self):
        strategy = DFSStrategy(ItemGraph())
        strategy.push_stack("urn:nonexistent")
        with pytest.raises(NotFoundError):
            strategy.next_item(self.context())

    def test_full_cycle_is_lifo(self):
        strategy = DFSStrategy(ItemGraph())
        for urn in ("urn:1", "urn:2", "urn:3"):
            strategy.push_stack(urn)
        served = [strategy.next_item(self.context()).urn for _ in range(3)]
        assert served == ["urn:3", "urn:2", "urn:1"]
        with pytest.raises(SwitchStrategy):
            strategy.next_item(self.context())

    def test_follow_link_pushes_origin(self):
        strategy = DFSStrategy(ItemGraph())
        strategy.on_follow_link("urn:1", "urn:2")
        assert strategy.get_stack_depth() == 1
        assert strategy.get_viewed_count() == 1
        assert strategy.is_viewed("urn:2")

        strategy.on_follow_link("", "urn:3")
        assert strategy.get_stack_depth() == 1
        assert strategy.get_viewed_count() == 2

    def test_go_back(self):
        strategy = DFSStrategy(ItemGraph())
        strategy.push_stack("urn:1")
        strategy.push_stack("urn:2")
        item = strategy.on_go_back(self.context())
        assert item.urn == "urn:2"
        assert item.context is NavigationContext.DEEP_DIVE
        assert strategy.get_stack_depth() == 1
        assert strategy.on_go_back().urn == "urn:1"

    def test_go_back_on_empty_stack_switches(self):
        with pytest.raises(SwitchStrategy):
            DFSStrategy(ItemGraph()).on_go_back()

    def test_reset(self):
        strategy = DFSStrategy(ItemGraph())
        strategy.push_stack("urn:1")
        strategy.on_view("urn:3")
        strategy.reset()
        assert strategy.get_stack_depth() == 0
        assert strategy.get_viewed_count() == 0

    def test_linked_items(self):
        graph = ItemGraph()
        graph.add_link("urn:1", "urn:2")
        graph.add_link("urn:1", "urn:3")
        strategy = DFSStrategy(graph)
        assert len(strategy.get_linked_items("urn:1")) == 2
        assert strategy.get_linked_items("urn:nonexistent") == []
        assert DFSStrategy(None).get_linked_items("urn:1") == []

    def test_thread_safety(self):
        strategy = DFSStrategy(ItemGraph())

        def worker(n):
            urn = f"urn:{n % 5}"
            strategy.push_stack(urn)
            strategy.on_view(urn)
            strategy.get_linked_items(urn)
            strategy.get_stack_depth()
            strategy.get_viewed_count()

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(100)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)
        assert strategy.get_stack_depth() == 100
        assert strategy.get_viewed_count() == 5
