"""
Bookmark service.

A bookmark is created together with its first history entry and an
auto-generated memory card, all in one transaction. Learning-state
changes are always audited in the same transaction as the save.
"""

from __future__ import annotations

import threading
from datetime import timedelta
from enum import Enum
from typing import Any

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from src.core.errors import InvalidArgumentError, NotFoundError, ParseError, StoreError
from src.core.urn import generate_item_urn
from src.db.database import read_scope, session_scope
from src.db.models import Bookmark, MemoryCard
from src.db.utils import format_timestamp, parse_timestamp, utcnow
from src.learning.card_status import CardStatus
from src.learning.card_store import insert_card
from src.learning.history import BookmarkAction, load_bookmark, record
from src.learning.sm2 import SM2Config


class LearningState(str, Enum):
    """Where the learner stands with a bookmarked item."""

    TO_REVIEW = "to-review"
    LEARNING = "learning"
    MASTERED = "mastered"
    ARCHIVED = "archived"

    @classmethod
    def parse(cls, value: LearningState | str) -> LearningState:
        if isinstance(value, LearningState):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ParseError(f"invalid learning state: '{value}'") from None


# Bookmark fields that update_bookmark may change
EDITABLE_FIELDS = ("title", "description", "learning_state", "mastery_level", "next_review")


class BookmarkService:
    """Bookmark lifecycle, stats and learning-state changes."""

    def __init__(self, session_factory: sessionmaker | None = None, config: SM2Config | None = None):
        self._factory = session_factory
        self.config = config or SM2Config()

    def create_bookmark(
        self,
        global_item_id: str,
        item_type: str,
        item_id: str,
        title: str,
        description: str = "",
        cancel: threading.Event | None = None,
    ) -> tuple[Bookmark, MemoryCard | None]:
        """
        Bookmark an item, or return the live bookmark that already exists.

        Args:
            global_item_id: Cross-source identifier of the item
            item_type: Catalog name (CVE, CWE, CAPEC, ATT&CK, SSG)
            item_id: Item identifier within the catalog
            title: Becomes the front of the auto-created card
            description: Becomes the back of the auto-created card
            cancel: Optional cancellation token

        Returns:
            (bookmark, new card) on creation; (existing bookmark, None) otherwise
        """
        if not global_item_id or not item_type or not item_id:
            raise InvalidArgumentError("global_item_id, item_type and item_id are required")
        if not title:
            raise InvalidArgumentError("title is required")

        existing = self._find_live(global_item_id, item_type, item_id)
        if existing is not None:
            return existing, None

        urn = generate_item_urn(item_type, item_id)
        now = utcnow()
        stamp = format_timestamp(now)

        try:
            with session_scope(self._factory, cancel=cancel) as session:
                bookmark = Bookmark(
                    global_item_id=global_item_id,
                    item_type=item_type,
                    item_id=item_id,
                    urn=urn,
                    title=title,
                    description=description or "",
                    learning_state=LearningState.TO_REVIEW.value,
                    mastery_level=0.0,
                    meta={
                        "view_count": 0,
                        "study_sessions": 0,
                        "last_viewed": stamp,
                        "first_bookmarked": stamp,
                    },
                    created_at=now,
                    updated_at=now,
                )
                session.add(bookmark)
                session.flush()

                record(session, bookmark.id, BookmarkAction.CREATED, "", LearningState.TO_REVIEW.value)
                card = insert_card(
                    session,
                    bookmark.id,
                    title,
                    description,
                    status=CardStatus.NEW,
                    initial_ease=self.config.initial_ease,
                )
        except StoreError as e:
            # Lost a creation race to a concurrent caller
            if not isinstance(e.__cause__, IntegrityError):
                raise
            existing = self._find_live(global_item_id, item_type, item_id)
            if existing is None:
                raise
            return existing, None

        logger.info(f"Created bookmark {bookmark.id} for {item_type} {item_id}")
        return bookmark, card

    def get_bookmark(self, bookmark_id: int) -> Bookmark:
        with read_scope(self._factory) as session:
            return load_bookmark(session, bookmark_id)

    def get_by_global_item(self, global_item_id: str) -> Bookmark:
        with read_scope(self._factory) as session:
            bookmark = session.scalar(
                select(Bookmark)
                .where(Bookmark.global_item_id == global_item_id, Bookmark.deleted_at.is_(None))
                .order_by(Bookmark.id)
                .limit(1)
            )
            if bookmark is None:
                raise NotFoundError(f"bookmark for global item {global_item_id}: not found")
            return bookmark

    def get_by_learning_state(self, learning_state: LearningState | str) -> list[Bookmark]:
        state = LearningState.parse(learning_state)
        with read_scope(self._factory) as session:
            return list(
                session.scalars(
                    select(Bookmark)
                    .where(Bookmark.learning_state == state.value, Bookmark.deleted_at.is_(None))
                    .order_by(Bookmark.id)
                )
            )

    def list_bookmarks(
        self,
        learning_state: LearningState | str | None = None,
        offset: int = 0,
        limit: int = 50,
    ) -> tuple[list[Bookmark], int]:
        """
        Page through live bookmarks.

        An empty ``learning_state`` applies no filter.

        Returns:
            (page, total count)
        """
        query = select(Bookmark).where(Bookmark.deleted_at.is_(None))
        if learning_state:
            query = query.where(Bookmark.learning_state == LearningState.parse(learning_state).value)

        with read_scope(self._factory) as session:
            total = session.scalar(select(func.count()).select_from(query.subquery())) or 0
            query = query.order_by(Bookmark.id)
            if limit > 0:
                query = query.offset(max(0, offset)).limit(limit)
            return list(session.scalars(query)), total

    def update_bookmark(
        self,
        bookmark_id: int,
        changes: dict[str, Any],
        cancel: threading.Event | None = None,
    ) -> Bookmark:
        """
        Save edits to a bookmark.

        A learning-state change appends a learning_state_changed entry in
        the same transaction.
        """
        unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
        if unknown:
            raise InvalidArgumentError(f"bookmark {bookmark_id}: unknown fields {', '.join(unknown)}")

        with session_scope(self._factory, cancel=cancel) as session:
            bookmark = load_bookmark(session, bookmark_id)
            old_state = bookmark.learning_state

            for key, value in changes.items():
                if key == "learning_state":
                    value = LearningState.parse(value).value
                elif key == "mastery_level":
                    value = float(value)
                    if not 0.0 <= value <= 1.0:
                        raise InvalidArgumentError(
                            f"bookmark {bookmark_id}: mastery_level must be within [0, 1]"
                        )
                elif key == "next_review" and isinstance(value, str):
                    value = parse_timestamp(value)
                setattr(bookmark, key, value)

            if bookmark.learning_state != old_state:
                record(
                    session,
                    bookmark_id,
                    BookmarkAction.LEARNING_STATE_CHANGED,
                    old_state,
                    bookmark.learning_state,
                )
            session.flush()

        logger.debug(f"Updated bookmark {bookmark_id}")
        return bookmark

    def update_learning_state(
        self,
        bookmark_id: int,
        learning_state: LearningState | str,
        user_id: str | None = None,
        cancel: threading.Event | None = None,
    ) -> Bookmark:
        """Set the learning state. Always audited, even when unchanged."""
        state = LearningState.parse(learning_state)

        with session_scope(self._factory, cancel=cancel) as session:
            bookmark = load_bookmark(session, bookmark_id)
            old_state = bookmark.learning_state
            bookmark.learning_state = state.value
            record(
                session,
                bookmark_id,
                BookmarkAction.LEARNING_STATE_CHANGED,
                old_state,
                state.value,
                user_id=user_id,
            )
            session.flush()

        logger.info(f"Bookmark {bookmark_id}: {old_state} -> {state.value}")
        return bookmark

    def delete_bookmark(self, bookmark_id: int, cancel: threading.Event | None = None) -> None:
        """Soft-delete. Cards, notes and history stay in place."""
        with session_scope(self._factory, cancel=cancel) as session:
            bookmark = load_bookmark(session, bookmark_id)
            record(session, bookmark_id, BookmarkAction.DELETED, bookmark.learning_state, "")
            bookmark.deleted_at = utcnow()

        logger.info(f"Deleted bookmark {bookmark_id}")

    def update_stats(
        self,
        bookmark_id: int,
        view_delta: int = 0,
        study_delta: int = 0,
        cancel: threading.Event | None = None,
    ) -> dict[str, Any]:
        """
        Add to the view and study counters and refresh last_viewed.

        last_viewed always moves forward, even with zero deltas.
        first_bookmarked is never touched.
        """
        with session_scope(self._factory, cancel=cancel) as session:
            bookmark = self._lock_bookmark(session, bookmark_id)
            stats = dict(bookmark.meta or {})
            stats["view_count"] = int(stats.get("view_count", 0)) + view_delta
            stats["study_sessions"] = int(stats.get("study_sessions", 0)) + study_delta

            now = utcnow()
            previous = stats.get("last_viewed")
            if previous:
                try:
                    last = parse_timestamp(previous)
                except ParseError:
                    last = None
                if last is not None and now <= last:
                    now = last + timedelta(microseconds=1)
            stats["last_viewed"] = format_timestamp(now)

            bookmark.meta = stats
            session.flush()

        return dict(stats)

    def get_stats(self, bookmark_id: int) -> dict[str, Any]:
        with read_scope(self._factory) as session:
            return dict(load_bookmark(session, bookmark_id).meta or {})

    def _find_live(self, global_item_id: str, item_type: str, item_id: str) -> Bookmark | None:
        with read_scope(self._factory) as session:
            return session.scalar(
                select(Bookmark).where(
                    Bookmark.global_item_id == global_item_id,
                    Bookmark.item_type == item_type,
                    Bookmark.item_id == item_id,
                    Bookmark.deleted_at.is_(None),
                )
            )

    @staticmethod
    def _lock_bookmark(session: Session, bookmark_id: int) -> Bookmark:
        # Write first so the row (or the SQLite database) is locked before the read
        touched = session.execute(
            update(Bookmark)
            .where(Bookmark.id == bookmark_id, Bookmark.deleted_at.is_(None))
            .values(updated_at=utcnow())
            .execution_options(synchronize_session=False)
        ).rowcount
        if not touched:
            raise NotFoundError(f"bookmark {bookmark_id}: not found")
        bookmark = session.get(Bookmark, bookmark_id, populate_existing=True)
        if bookmark is None:
            raise NotFoundError(f"bookmark {bookmark_id}: not found")
        return bookmark
