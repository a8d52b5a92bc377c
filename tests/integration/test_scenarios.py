"""
End-to-end learning flows across the store, scheduler and navigation.
"""

import threading
from datetime import timedelta

import pytest

from src.core.errors import ConcurrentUpdateError, OperationCancelledError
from src.navigation import NavigationContext, SecurityItem, StrategyManager


def test_bookmark_creation(services):
    bookmark, card = services.bookmarks.create_bookmark("g", "CVE", "CVE-2024-0001", "T", "D")

    assert bookmark.learning_state == "to-review"
    assert (card.front, card.back, card.status, card.version) == ("T", "D", "new", 1)
    history = services.history.get_history(bookmark.id)
    assert [(e.action, e.new_value) for e in history] == [("created", "to-review")]
    stats = services.bookmarks.get_stats(bookmark.id)
    assert stats["view_count"] == 0 and stats["study_sessions"] == 0
    assert stats["last_viewed"] == stats["first_bookmarked"]


def test_review_progression_to_mastered(services, now):
    bookmark, card = services.bookmarks.create_bookmark("g", "CVE", "CVE-2024-0001", "T", "D")

    card = services.cards.apply_review(card.id, "good", expected_version=1, now=now)
    assert (card.repetition, card.interval, card.status, card.version) == (1, 1, "learning", 2)
    assert card.ease_factor == pytest.approx(2.5)
    assert card.next_review == now + timedelta(days=1)
    assert services.bookmarks.get_bookmark(bookmark.id).learning_state == "learning"

    intervals = []
    for _ in range(4):
        card = services.cards.apply_review(card.id, "good", expected_version=card.version, now=now)
        intervals.append(card.interval)
    assert intervals == [3, 7, 17, 42]
    assert card.repetition == 5
    assert card.status == "mastered"


def test_racing_transitions(services):
    _, card = services.bookmarks.create_bookmark("g", "CVE", "CVE-2024-0001", "T", "D")
    barrier = threading.Barrier(2, timeout=10)
    outcomes = []

    def transition(target):
        barrier.wait()
        try:
            services.cards.transition_status(card.id, target, expected_version=1)
            outcomes.append("ok")
        except ConcurrentUpdateError:
            outcomes.append("conflict")

    threads = [threading.Thread(target=transition, args=(t,)) for t in ("learning", "archived")]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert sorted(outcomes) == ["conflict", "ok"]
    final = services.cards.get(card.id)
    assert final.status in ("learning", "archived")
    assert final.version == 2


def test_navigation_round_trip():
    a = SecurityItem(urn="v2e::nvd::cve::CVE-2024-0001", item_type="cve")
    b = SecurityItem(urn="v2e::mitre::cwe::CWE-79", item_type="cwe")
    c = SecurityItem(urn="v2e::mitre::capec::CAPEC-63", item_type="capec")
    manager = StrategyManager([a, b, c])

    assert manager.get_next_item().urn == a.urn
    manager.mark_viewed(a.urn)
    manager.follow_link(a.urn, b.urn)
    assert manager.get_current_strategy() == "dfs"
    assert manager.get_context().path_stack == [a.urn]

    popped = manager.get_next_item()
    assert popped.context is NavigationContext.DEEP_DIVE

    back = manager.go_back()
    assert back.urn == a.urn
    assert back.context is NavigationContext.DEEP_DIVE

    seen = []
    while True:
        item = manager.get_next_item()
        assert manager.get_current_strategy() == "bfs"
        seen.append(item.urn)
        manager.mark_viewed(item.urn)
        if item.urn == c.urn:
            break
    assert seen == [b.urn, c.urn]


def test_state_changes_then_revert(services):
    bookmark, _ = services.bookmarks.create_bookmark("g", "CVE", "CVE-2024-0001", "T", "D")
    services.bookmarks.update_learning_state(bookmark.id, "learning")
    services.bookmarks.update_learning_state(bookmark.id, "mastered")

    reverted = services.history.revert(bookmark.id, None)

    assert reverted.learning_state == "learning"
    entries = [
        (e.action, e.old_value, e.new_value)
        for e in reversed(services.history.get_history(bookmark.id))
    ]
    assert entries == [
        ("created", "", "to-review"),
        ("learning_state_changed", "to-review", "learning"),
        ("learning_state_changed", "learning", "mastered"),
        ("state_reverted", "mastered", "learning"),
    ]


def test_cancelled_review_changes_nothing(services, now):
    bookmark, card = services.bookmarks.create_bookmark("g", "CVE", "CVE-2024-0001", "T", "D")
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelledError):
        services.cards.apply_review(card.id, "good", now=now, cancel=cancel)

    stored = services.cards.get(card.id)
    assert stored.version == 1
    assert stored.repetition == 0
    assert services.bookmarks.get_bookmark(bookmark.id).mastery_level == 0.0
