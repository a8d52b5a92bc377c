"""
Learning table models.

Bookmarks are the user's saved references to external security items.
Each bookmark owns its notes, memory cards and an append-only history.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.db.utils import utcnow

from .base import Base

# ========================================
# BOOKMARKS
# ========================================


class Bookmark(Base):
    """A user's interest in one external catalog item."""

    __tablename__ = "bookmarks"
    __table_args__ = (
        Index("ix_bookmarks_global_item_id", "global_item_id"),
        Index("ix_bookmarks_item_type", "item_type"),
        Index(
            "ix_bookmarks_deleted_at",
            "deleted_at",
            sqlite_where=text("deleted_at IS NOT NULL"),
            postgresql_where=text("deleted_at IS NOT NULL"),
        ),
        # At most one live bookmark per catalog item
        Index(
            "uq_bookmarks_live_item",
            "global_item_id",
            "item_type",
            "item_id",
            unique=True,
            sqlite_where=text("deleted_at IS NULL"),
            postgresql_where=text("deleted_at IS NULL"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    global_item_id: Mapped[str] = mapped_column(String(255), nullable=False)
    item_type: Mapped[str] = mapped_column(String(32), nullable=False)  # CVE, CWE, CAPEC, ATT&CK
    item_id: Mapped[str] = mapped_column(String(255), nullable=False)  # e.g. CVE-2021-1234
    urn: Mapped[str] = mapped_column(String(512), default="", index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")

    learning_state: Mapped[str] = mapped_column(String(32), default="to-review")
    mastery_level: Mapped[float] = mapped_column(Float, default=0.0)
    last_reviewed: Mapped[datetime | None] = mapped_column(DateTime)
    next_review: Mapped[datetime | None] = mapped_column(DateTime)

    # view_count, study_sessions, last_viewed, first_bookmarked
    meta: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime)

    # Relationships
    notes: Mapped[list[Note]] = relationship(back_populates="bookmark", cascade="all, delete-orphan")
    cards: Mapped[list[MemoryCard]] = relationship(
        back_populates="bookmark", cascade="all, delete-orphan"
    )
    history: Mapped[list[BookmarkHistory]] = relationship(
        back_populates="bookmark",
        order_by="BookmarkHistory.timestamp, BookmarkHistory.id",
        cascade="all, delete-orphan",
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "global_item_id": self.global_item_id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "urn": self.urn,
            "title": self.title,
            "description": self.description,
            "learning_state": self.learning_state,
            "mastery_level": self.mastery_level,
            "last_reviewed": _iso(self.last_reviewed),
            "next_review": _iso(self.next_review),
            "metadata": dict(self.meta or {}),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }


class BookmarkHistory(Base):
    """Immutable audit entry; ordered by (bookmark_id, timestamp, id)."""

    __tablename__ = "bookmark_histories"
    __table_args__ = (Index("ix_bookmark_histories_bookmark_ts", "bookmark_id", "timestamp"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bookmark_id: Mapped[int] = mapped_column(
        ForeignKey("bookmarks.id", ondelete="CASCADE"), nullable=False
    )
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    old_value: Mapped[str] = mapped_column(Text, default="")
    new_value: Mapped[str] = mapped_column(Text, default="")
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(255))

    bookmark: Mapped[Bookmark] = relationship(back_populates="history")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "bookmark_id": self.bookmark_id,
            "action": self.action,
            "old_value": self.old_value,
            "new_value": self.new_value,
            "timestamp": _iso(self.timestamp),
            "user_id": self.user_id,
        }


# ========================================
# NOTES & MEMORY CARDS
# ========================================


class Note(Base):
    """User annotation attached to a bookmark. Body is a validated rich-text document."""

    __tablename__ = "notes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bookmark_id: Mapped[int] = mapped_column(
        ForeignKey("bookmarks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    urn: Mapped[str | None] = mapped_column(String(128), unique=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    author: Mapped[str | None] = mapped_column(String(128))
    is_private: Mapped[bool] = mapped_column(Boolean, default=False)
    fsm_state: Mapped[str] = mapped_column(String(32), default="draft")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    bookmark: Mapped[Bookmark] = relationship(back_populates="notes")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "bookmark_id": self.bookmark_id,
            "urn": self.urn,
            "content": self.content,
            "author": self.author,
            "is_private": self.is_private,
            "fsm_state": self.fsm_state,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class MemoryCard(Base):
    """
    Flashcard owned by one bookmark.

    ``version`` is the optimistic-concurrency anchor: every committed
    mutation bumps it by exactly one.
    """

    __tablename__ = "memory_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    bookmark_id: Mapped[int] = mapped_column(
        ForeignKey("bookmarks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    urn: Mapped[str | None] = mapped_column(String(128), unique=True)
    front: Mapped[str] = mapped_column(Text, nullable=False, default="")
    back: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    major_class: Mapped[str] = mapped_column(String(64), default="")
    minor_class: Mapped[str] = mapped_column(String(64), default="")
    status: Mapped[str] = mapped_column(String(32), default="new")
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # SM-2 state
    ease_factor: Mapped[float] = mapped_column(Float, default=2.5)
    interval: Mapped[int] = mapped_column(Integer, default=1)
    repetition: Mapped[int] = mapped_column(Integer, default=0)
    next_review: Mapped[datetime | None] = mapped_column(DateTime)

    card_type: Mapped[str] = mapped_column(String(32), default="basic")
    author: Mapped[str] = mapped_column(String(128), default="")
    is_private: Mapped[bool] = mapped_column(Boolean, default=False)
    meta: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict)
    fsm_state: Mapped[str] = mapped_column(String(32), default="new")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    bookmark: Mapped[Bookmark] = relationship(back_populates="cards")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "bookmark_id": self.bookmark_id,
            "urn": self.urn,
            "front_content": self.front,
            "back_content": self.back,
            "content": self.content,
            "major_class": self.major_class,
            "minor_class": self.minor_class,
            "status": self.status,
            "version": self.version,
            "ease_factor": self.ease_factor,
            "interval": self.interval,
            "repetition": self.repetition,
            "next_review_at": _iso(self.next_review),
            "card_type": self.card_type,
            "author": self.author,
            "is_private": self.is_private,
            "metadata": dict(self.meta or {}),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


# ========================================
# SESSIONS
# ========================================


class LearningSession(Base):
    """A study session and its review tally."""

    __tablename__ = "learning_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str | None] = mapped_column(String(255))
    session_start: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    session_end: Mapped[datetime | None] = mapped_column(DateTime)
    cards_reviewed: Mapped[int] = mapped_column(Integer, default=0)
    cards_correct: Mapped[int] = mapped_column(Integer, default=0)
    session_notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    @property
    def accuracy(self) -> float:
        if not self.cards_reviewed:
            return 0.0
        return self.cards_correct / self.cards_reviewed

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "session_start": _iso(self.session_start),
            "session_end": _iso(self.session_end),
            "cards_reviewed": self.cards_reviewed,
            "cards_correct": self.cards_correct,
            "accuracy": self.accuracy,
            "session_notes": self.session_notes,
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
