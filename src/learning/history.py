"""
Bookmark audit log and point-in-time revert.

History entries are append-only. Within one bookmark they are ordered by
(timestamp, id); reverting reads that timeline backwards and itself
appends a new entry rather than rewriting old ones.
"""

from __future__ import annotations

import threading
from datetime import datetime
from enum import Enum

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from src.core.errors import InvalidArgumentError, NoHistoryBeforeTimestampError, NotFoundError
from src.db.database import read_scope, session_scope
from src.db.models import Bookmark, BookmarkHistory
from src.db.utils import parse_timestamp, to_naive_utc, utcnow


INITIAL_LEARNING_STATE = "to-review"


class BookmarkAction(str, Enum):
    """Audited bookmark actions."""

    CREATED = "created"
    UPDATED = "updated"
    LEARNING_STATE_CHANGED = "learning_state_changed"
    NOTE_ADDED = "note_added"
    DELETED = "deleted"
    REVIEWED = "reviewed"
    STATE_REVERTED = "state_reverted"


# Actions whose entries record the learning state before and after them
STATE_ACTIONS = frozenset(
    {
        BookmarkAction.CREATED.value,
        BookmarkAction.LEARNING_STATE_CHANGED.value,
        BookmarkAction.STATE_REVERTED.value,
        BookmarkAction.DELETED.value,
    }
)


def record(
    session: Session,
    bookmark_id: int,
    action: BookmarkAction,
    old_value: str = "",
    new_value: str = "",
    user_id: str | None = None,
) -> BookmarkHistory:
    """Append a history entry inside the caller's transaction."""
    entry = BookmarkHistory(
        bookmark_id=bookmark_id,
        action=action.value,
        old_value=old_value or "",
        new_value=new_value or "",
        timestamp=utcnow(),
        user_id=user_id,
    )
    session.add(entry)
    return entry


def load_bookmark(session: Session, bookmark_id: int, include_deleted: bool = False) -> Bookmark:
    bookmark = session.get(Bookmark, bookmark_id)
    if bookmark is None or (bookmark.is_deleted and not include_deleted):
        raise NotFoundError(f"bookmark {bookmark_id}: not found")
    return bookmark


class HistoryService:
    """Reads the audit timeline and reverts learning state."""

    def __init__(self, session_factory: sessionmaker | None = None):
        self._factory = session_factory

    def get_history(self, bookmark_id: int) -> list[BookmarkHistory]:
        """Entries for a bookmark, newest first."""
        with read_scope(self._factory) as session:
            return list(
                session.scalars(
                    select(BookmarkHistory)
                    .where(BookmarkHistory.bookmark_id == bookmark_id)
                    .order_by(BookmarkHistory.timestamp.desc(), BookmarkHistory.id.desc())
                )
            )

    def revert(
        self,
        bookmark_id: int,
        timestamp: datetime | str | None = None,
        cancel: threading.Event | None = None,
    ) -> Bookmark:
        """
        Restore the learning state recorded before a point in time.

        Args:
            bookmark_id: Bookmark to revert
            timestamp: Target time. None reverts the most recent entry;
                strings are parsed as ISO-8601.
            cancel: Optional cancellation token

        Returns:
            The bookmark with its restored learning state

        Raises:
            NotFoundError: Bookmark does not exist
            ParseError: Unparseable timestamp string
            InvalidArgumentError: Timestamp is neither a string nor a datetime
            NoHistoryBeforeTimestampError: Nothing recorded at or before the target
        """
        if isinstance(timestamp, str):
            target = parse_timestamp(timestamp)
        elif isinstance(timestamp, datetime):
            target = to_naive_utc(timestamp)
        elif timestamp is None:
            target = None
        else:
            raise InvalidArgumentError(
                f"invalid timestamp type: {type(timestamp).__name__}"
            )

        with session_scope(self._factory, cancel=cancel) as session:
            bookmark = load_bookmark(session, bookmark_id)

            if target is None:
                target = session.scalar(
                    select(BookmarkHistory.timestamp)
                    .where(BookmarkHistory.bookmark_id == bookmark_id)
                    .order_by(BookmarkHistory.timestamp.desc(), BookmarkHistory.id.desc())
                    .limit(1)
                )
                if target is None:
                    raise NoHistoryBeforeTimestampError(
                        f"bookmark {bookmark_id}: no history to revert"
                    )

            entry = session.scalar(
                select(BookmarkHistory)
                .where(
                    BookmarkHistory.bookmark_id == bookmark_id,
                    BookmarkHistory.timestamp <= target,
                )
                .order_by(BookmarkHistory.timestamp.desc(), BookmarkHistory.id.desc())
                .limit(1)
            )
            if entry is None:
                raise NoHistoryBeforeTimestampError(
                    f"bookmark {bookmark_id}: no history at or before {target.isoformat()}"
                )

            undone, restored = self._states_around(session, entry)
            bookmark.learning_state = restored
            record(session, bookmark_id, BookmarkAction.STATE_REVERTED, undone, restored)
            session.flush()

        logger.info(f"Bookmark {bookmark_id} reverted to '{restored}'")
        return bookmark

    @staticmethod
    def _states_around(session: Session, entry: BookmarkHistory) -> tuple[str, str]:
        """
        The (undone, restored) learning states when undoing an entry.

        State-changing entries restore their old value ('created' has none,
        so it restores the initial state). Other entries, such as
        'note_added', left the state alone: the state then in effect is the
        new value of the latest state-changing entry that precedes them.
        """
        if entry.action in STATE_ACTIONS:
            return entry.new_value, entry.old_value or INITIAL_LEARNING_STATE

        in_effect = session.scalar(
            select(BookmarkHistory.new_value)
            .where(
                BookmarkHistory.bookmark_id == entry.bookmark_id,
                BookmarkHistory.action.in_(STATE_ACTIONS),
                BookmarkHistory.new_value != "",
                (BookmarkHistory.timestamp < entry.timestamp)
                | ((BookmarkHistory.timestamp == entry.timestamp) & (BookmarkHistory.id < entry.id)),
            )
            .order_by(BookmarkHistory.timestamp.desc(), BookmarkHistory.id.desc())
            .limit(1)
        )
        state = in_effect or INITIAL_LEARNING_STATE
        return state, state
