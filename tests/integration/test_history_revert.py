"""
Integration tests for the bookmark audit log and point-in-time revert.
"""

import time
from datetime import date, timedelta

import pytest

from src.core.errors import (
    InvalidArgumentError,
    NoHistoryBeforeTimestampError,
    NotFoundError,
    ParseError,
)
from src.db.utils import format_timestamp


@pytest.fixture
def bookmark(bookmark_with_card):
    return bookmark_with_card[0]


def timeline(services, bookmark_id):
    """Oldest-first (action, old, new) tuples."""
    return [
        (e.action, e.old_value, e.new_value)
        for e in reversed(services.history.get_history(bookmark_id))
    ]


class TestHistory:
    def test_newest_first(self, services, bookmark):
        services.bookmarks.update_learning_state(bookmark.id, "learning")
        services.notes.add_note(bookmark.id, "")
        history = services.history.get_history(bookmark.id)
        assert [e.action for e in history] == ["note_added", "learning_state_changed", "created"]
        assert all(a.timestamp >= b.timestamp for a, b in zip(history, history[1:]))

    def test_unknown_bookmark_has_no_history(self, services):
        assert services.history.get_history(999) == []


class TestRevert:
    def test_revert_latest_change(self, services, bookmark):
        services.bookmarks.update_learning_state(bookmark.id, "learning")
        services.bookmarks.update_learning_state(bookmark.id, "mastered")

        reverted = services.history.revert(bookmark.id)
        assert reverted.learning_state == "learning"
        assert services.bookmarks.get_bookmark(bookmark.id).learning_state == "learning"
        assert timeline(services, bookmark.id) == [
            ("created", "", "to-review"),
            ("learning_state_changed", "to-review", "learning"),
            ("learning_state_changed", "learning", "mastered"),
            ("state_reverted", "mastered", "learning"),
        ]

    def test_revert_to_a_point_in_time(self, services, bookmark):
        services.bookmarks.update_learning_state(bookmark.id, "learning")
        time.sleep(0.01)
        checkpoint = services.history.get_history(bookmark.id)[0].timestamp
        time.sleep(0.01)
        services.bookmarks.update_learning_state(bookmark.id, "mastered")
        services.bookmarks.update_learning_state(bookmark.id, "archived")

        reverted = services.history.revert(bookmark.id, checkpoint + timedelta(microseconds=1))
        # The entry at the checkpoint moved to-review -> learning
        assert reverted.learning_state == "to-review"

    def test_revert_accepts_rfc3339_strings(self, services, bookmark):
        services.bookmarks.update_learning_state(bookmark.id, "learning")
        latest = services.history.get_history(bookmark.id)[0]
        reverted = services.history.revert(bookmark.id, format_timestamp(latest.timestamp))
        assert reverted.learning_state == "to-review"

    def test_reverting_creation_restores_initial_state(self, services, bookmark):
        reverted = services.history.revert(bookmark.id)
        assert reverted.learning_state == "to-review"
        latest = services.history.get_history(bookmark.id)[0]
        assert (latest.action, latest.old_value, latest.new_value) == (
            "state_reverted",
            "to-review",
            "to-review",
        )

    def test_no_history_before_timestamp(self, services, bookmark):
        with pytest.raises(NoHistoryBeforeTimestampError):
            services.history.revert(bookmark.id, "2000-01-01T00:00:00Z")

    def test_bad_timestamp(self, services, bookmark):
        with pytest.raises(ParseError):
            services.history.revert(bookmark.id, "yesterday")

    def test_missing_bookmark(self, services):
        with pytest.raises(NotFoundError):
            services.history.revert(31337)

    def test_revert_is_itself_revertible(self, services, bookmark):
        services.bookmarks.update_learning_state(bookmark.id, "learning")
        services.history.revert(bookmark.id)
        again = services.history.revert(bookmark.id)
        # The state_reverted entry moved learning -> to-review; reverting restores learning
        assert again.learning_state == "learning"

    def test_reverting_a_note_keeps_the_state_in_effect(self, services, bookmark):
        services.bookmarks.update_learning_state(bookmark.id, "learning")
        services.bookmarks.update_learning_state(bookmark.id, "mastered")
        services.notes.add_note(bookmark.id, "")

        reverted = services.history.revert(bookmark.id)
        assert reverted.learning_state == "mastered"
        assert timeline(services, bookmark.id)[-1] == ("state_reverted", "mastered", "mastered")

    def test_reverting_a_note_before_any_state_change(self, services, bookmark):
        services.notes.add_note(bookmark.id, "")
        services.bookmarks.update_learning_state(bookmark.id, "learning")
        note_entry = services.history.get_history(bookmark.id)[1]
        assert note_entry.action == "note_added"

        reverted = services.history.revert(bookmark.id, note_entry.timestamp)
        assert reverted.learning_state == "to-review"

    @pytest.mark.parametrize("timestamp", [1714564800, date(2024, 5, 1), 12.5])
    def test_unsupported_timestamp_type(self, services, bookmark, timestamp):
        services.bookmarks.update_learning_state(bookmark.id, "learning")
        with pytest.raises(InvalidArgumentError, match="invalid timestamp type"):
            services.history.revert(bookmark.id, timestamp)
        assert services.bookmarks.get_bookmark(bookmark.id).learning_state == "learning"
