"""
Versioned memory card store.

Every mutation runs in one transaction and is written with a
check-and-set on (id, version):

1. load the card inside the transaction
2. reject a stale caller-supplied version (ConcurrentUpdateError)
3. check any status change against the lifecycle (InvalidTransitionError)
4. UPDATE ... WHERE id = ? AND version = ?; zero rows means another
   writer won (ConcurrentUpdateError)
5. the committed row carries version + 1

Reviews run the SM-2 scheduler and recompute the owning bookmark's
mastery in the same transaction as the card write.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, sessionmaker

from src.core import richtext
from src.core.errors import (
    ConcurrentUpdateError,
    InvalidArgumentError,
    InvalidTransitionError,
    NotFoundError,
)
from src.core.urn import card_urn
from src.db.database import read_scope, session_scope
from src.db.models import Bookmark, MemoryCard
from src.db.utils import to_naive_utc, utcnow
from src.learning.card_status import (
    CardStatus,
    can_transition,
    normalize_legacy_status,
    parse_card_status,
)
from src.learning.history import BookmarkAction, load_bookmark, record
from src.learning.sm2 import Rating, SM2Config, SM2Scheduler, compute_mastery

# Accepted keys for update_fields, mapped to model attributes
UPDATABLE_FIELDS = {
    "front": "front",
    "front_content": "front",
    "back": "back",
    "back_content": "back",
    "content": "content",
    "major_class": "major_class",
    "minor_class": "minor_class",
    "card_type": "card_type",
    "author": "author",
    "is_private": "is_private",
    "metadata": "meta",
    "status": "status",
}


def insert_card(
    session: Session,
    bookmark_id: int,
    front: str,
    back: str,
    content: str = "{}",
    major_class: str = "",
    minor_class: str = "",
    status: CardStatus = CardStatus.NEW,
    card_type: str = "basic",
    author: str = "",
    is_private: bool = False,
    metadata: dict[str, Any] | None = None,
    initial_ease: float = 2.5,
) -> MemoryCard:
    """Insert a card inside the caller's transaction and assign its URN."""
    card = MemoryCard(
        bookmark_id=bookmark_id,
        front=front or "",
        back=back or "",
        content=content or "{}",
        major_class=major_class or "",
        minor_class=minor_class or "",
        status=status.value,
        fsm_state=status.value,
        version=1,
        ease_factor=initial_ease,
        interval=1,
        repetition=0,
        card_type=card_type or "basic",
        author=author or "",
        is_private=is_private,
        meta=dict(metadata or {}),
    )
    session.add(card)
    session.flush()
    card.urn = card_urn(card.id)
    session.flush()
    return card


class MemoryCardService:
    """Create, read and mutate memory cards under optimistic concurrency."""

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        config: SM2Config | None = None,
    ):
        self._factory = session_factory
        self.config = config or SM2Config()
        self.scheduler = SM2Scheduler(self.config)

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    def create(
        self,
        bookmark_id: int,
        front: str,
        back: str,
        content: str = "{}",
        major_class: str = "",
        minor_class: str = "",
        status: CardStatus | str = CardStatus.NEW,
        card_type: str = "basic",
        author: str = "",
        is_private: bool = False,
        metadata: dict[str, Any] | None = None,
        cancel: threading.Event | None = None,
    ) -> MemoryCard:
        """
        Create a card for a bookmark.

        Raises:
            NotFoundError: Bookmark does not exist
            ParseError: Unknown status string or undecodable content
            InvalidArgumentError: Content fails rich-text validation
        """
        status = status if isinstance(status, CardStatus) else parse_card_status(status)
        richtext.validate_json(content)

        with session_scope(self._factory, cancel=cancel) as session:
            load_bookmark(session, bookmark_id)
            card = insert_card(
                session,
                bookmark_id,
                front,
                back,
                content=content,
                major_class=major_class,
                minor_class=minor_class,
                status=status,
                card_type=card_type,
                author=author,
                is_private=is_private,
                metadata=metadata,
                initial_ease=self.config.initial_ease,
            )

        logger.debug(f"Created memory card {card.id} for bookmark {bookmark_id}")
        return card

    def get(self, card_id: int) -> MemoryCard:
        with read_scope(self._factory) as session:
            return self._load(session, card_id)

    def get_by_urn(self, urn: str) -> MemoryCard:
        with read_scope(self._factory) as session:
            card = session.scalar(select(MemoryCard).where(MemoryCard.urn == urn))
            if card is None:
                raise NotFoundError(f"memory card with URN {urn}: not found")
            return card

    def list_by_bookmark(self, bookmark_id: int) -> list[MemoryCard]:
        with read_scope(self._factory) as session:
            return list(
                session.scalars(
                    select(MemoryCard)
                    .where(MemoryCard.bookmark_id == bookmark_id)
                    .order_by(MemoryCard.id)
                )
            )

    def list(
        self,
        bookmark_id: int | None = None,
        major_class: str | None = None,
        minor_class: str | None = None,
        status: CardStatus | str | None = None,
        author: str | None = None,
        is_private: bool | None = None,
        offset: int = 0,
        limit: int = 0,
    ) -> tuple[list[MemoryCard], int]:
        """
        List cards matching every given filter.

        Empty string filters are ignored. ``limit`` of 0 returns all rows.

        Returns:
            (page of cards, total matching count)
        """
        query = select(MemoryCard)
        if bookmark_id is not None:
            query = query.where(MemoryCard.bookmark_id == bookmark_id)
        if major_class:
            query = query.where(MemoryCard.major_class == major_class)
        if minor_class:
            query = query.where(MemoryCard.minor_class == minor_class)
        if status:
            status = status if isinstance(status, CardStatus) else parse_card_status(status)
            query = query.where(MemoryCard.status == status.value)
        if author:
            query = query.where(MemoryCard.author == author)
        if is_private is not None:
            query = query.where(MemoryCard.is_private == is_private)

        with read_scope(self._factory) as session:
            total = session.scalar(select(func.count()).select_from(query.subquery())) or 0
            query = query.order_by(MemoryCard.id)
            if limit > 0:
                query = query.offset(max(0, offset)).limit(limit)
            return list(session.scalars(query)), total

    def list_due(self, now: datetime | None = None) -> list[MemoryCard]:
        """Cards of bookmarks being learned whose next review is unset or has passed."""
        now = to_naive_utc(now) if now is not None else utcnow()
        with read_scope(self._factory) as session:
            return list(
                session.scalars(
                    select(MemoryCard)
                    .join(Bookmark, MemoryCard.bookmark_id == Bookmark.id)
                    .where(
                        Bookmark.learning_state == "learning",
                        Bookmark.deleted_at.is_(None),
                        MemoryCard.status != CardStatus.ARCHIVED.value,
                        or_(MemoryCard.next_review.is_(None), MemoryCard.next_review <= now),
                    )
                    .order_by(MemoryCard.next_review, MemoryCard.id)
                )
            )

    def list_by_learning_state(self, learning_state: str) -> list[MemoryCard]:
        with read_scope(self._factory) as session:
            return list(
                session.scalars(
                    select(MemoryCard)
                    .join(Bookmark, MemoryCard.bookmark_id == Bookmark.id)
                    .where(
                        Bookmark.learning_state == learning_state,
                        Bookmark.deleted_at.is_(None),
                    )
                    .order_by(MemoryCard.id)
                )
            )

    # ------------------------------------------------------------------
    # Versioned mutations
    # ------------------------------------------------------------------

    def update_fields(
        self,
        card_id: int,
        fields: dict[str, Any],
        expected_version: int | None = None,
        cancel: threading.Event | None = None,
    ) -> MemoryCard:
        """
        Apply a bag of attribute changes as one versioned write.

        A ``status`` key goes through the lifecycle check before anything
        is written. A ``version`` key is taken as the expected version when
        ``expected_version`` is not given.

        Raises:
            NotFoundError, ConcurrentUpdateError, InvalidTransitionError,
            InvalidArgumentError, ParseError
        """
        fields = dict(fields)
        fields.pop("id", None)
        if "version" in fields:
            version = fields.pop("version")
            if expected_version is None and version is not None:
                expected_version = int(version)

        unknown = sorted(set(fields) - set(UPDATABLE_FIELDS))
        if unknown:
            raise InvalidArgumentError(f"card {card_id}: unknown fields {', '.join(unknown)}")

        values: dict[str, Any] = {}
        for key, value in fields.items():
            values[UPDATABLE_FIELDS[key]] = value
        if "content" in values:
            richtext.validate_json(values["content"])
        if "meta" in values:
            if not isinstance(values["meta"], dict):
                raise InvalidArgumentError(f"card {card_id}: metadata must be a mapping")
            values["meta"] = dict(values["meta"])
        target = None
        if "status" in values:
            target = parse_card_status(values.pop("status"))

        with session_scope(self._factory, cancel=cancel) as session:
            card = self._load(session, card_id)
            self._check_version(card, expected_version)
            if target is not None:
                self._check_transition(card, target)
                values["status"] = target.value
                values["fsm_state"] = target.value
            if not values:
                return card
            self._write(session, card, values)

        logger.debug(f"Updated memory card {card_id} to version {card.version}")
        return card

    def transition_status(
        self,
        card_id: int,
        target: CardStatus | str,
        expected_version: int | None = None,
        cancel: threading.Event | None = None,
    ) -> MemoryCard:
        """
        Move a card to a new lifecycle status.

        Raises:
            NotFoundError: Card does not exist
            ParseError: Unknown status string
            ConcurrentUpdateError: Stale version or lost race
            InvalidTransitionError: Lifecycle forbids the change
        """
        target = target if isinstance(target, CardStatus) else parse_card_status(target)

        with session_scope(self._factory, cancel=cancel) as session:
            card = self._load(session, card_id)
            self._check_version(card, expected_version)
            previous = normalize_legacy_status(card.status)
            self._check_transition(card, target)
            self._write(session, card, {"status": target.value, "fsm_state": target.value})

        logger.debug(f"Card {card_id}: {previous.value} -> {target.value} (v{card.version})")
        return card

    def apply_review(
        self,
        card_id: int,
        rating: Rating | str,
        expected_version: int | None = None,
        now: datetime | None = None,
        cancel: threading.Event | None = None,
    ) -> MemoryCard:
        """
        Record a review: schedule with SM-2, write the card, recompute mastery.

        The card write and the bookmark mastery update share one transaction.

        Raises:
            NotFoundError, ParseError, ConcurrentUpdateError, InvalidTransitionError
        """
        rating = Rating.parse(rating)
        now = to_naive_utc(now) if now is not None else utcnow()

        with session_scope(self._factory, cancel=cancel) as session:
            card = self._load(session, card_id)
            self._check_version(card, expected_version)

            outcome = self.scheduler.schedule(
                interval=card.interval,
                ease_factor=card.ease_factor,
                repetition=card.repetition,
                status=normalize_legacy_status(card.status),
                rating=rating,
                now=now,
            )
            self._check_transition(card, outcome.status)
            self._write(
                session,
                card,
                {
                    "interval": outcome.interval,
                    "ease_factor": outcome.ease_factor,
                    "repetition": outcome.repetition,
                    "next_review": outcome.next_review,
                    "status": outcome.status.value,
                    "fsm_state": outcome.status.value,
                },
            )
            self._recompute_mastery(session, card.bookmark_id, now)

        logger.info(
            f"Reviewed card {card_id} ({rating.value}): interval={card.interval}d "
            f"ease={card.ease_factor} status={card.status} v{card.version}"
        )
        return card

    def delete(
        self,
        card_id: int,
        expected_version: int | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        with session_scope(self._factory, cancel=cancel) as session:
            card = self._load(session, card_id)
            self._check_version(card, expected_version)
            session.delete(card)
        logger.debug(f"Deleted memory card {card_id}")

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _load(session: Session, card_id: int) -> MemoryCard:
        card = session.get(MemoryCard, card_id)
        if card is None:
            raise NotFoundError(f"memory card {card_id}: not found")
        return card

    @staticmethod
    def _check_version(card: MemoryCard, expected_version: int | None) -> None:
        if expected_version is not None and card.version != expected_version:
            raise ConcurrentUpdateError(
                f"card {card.id}: expected version {expected_version}, found {card.version}"
            )

    @staticmethod
    def _check_transition(card: MemoryCard, target: CardStatus) -> None:
        current = normalize_legacy_status(card.status)
        if not can_transition(current, target):
            raise InvalidTransitionError(
                f"card {card.id}: cannot transition from {current.value} to {target.value}"
            )

    @staticmethod
    def _write(session: Session, card: MemoryCard, values: dict[str, Any]) -> None:
        """Versioned UPDATE predicated on the version loaded in this transaction."""
        result = session.execute(
            update(MemoryCard)
            .where(MemoryCard.id == card.id, MemoryCard.version == card.version)
            .values(**values, version=card.version + 1, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentUpdateError(
                f"card {card.id}: version {card.version} was modified concurrently"
            )
        session.refresh(card)

    def _recompute_mastery(self, session: Session, bookmark_id: int, now: datetime) -> None:
        bookmark = session.get(Bookmark, bookmark_id)
        if bookmark is None:
            return

        eases = session.scalars(
            select(MemoryCard.ease_factor).where(MemoryCard.bookmark_id == bookmark_id)
        ).all()
        mastery = compute_mastery(list(eases), self.config.min_ease, self.config.max_ease)
        next_review = session.scalar(
            select(func.min(MemoryCard.next_review)).where(
                MemoryCard.bookmark_id == bookmark_id,
                MemoryCard.next_review.is_not(None),
            )
        )

        bookmark.mastery_level = mastery
        bookmark.last_reviewed = now
        bookmark.next_review = next_review

        if mastery >= self.config.mastered_threshold:
            new_state = "mastered"
        elif mastery >= self.config.learning_threshold:
            new_state = "learning"
        else:
            new_state = bookmark.learning_state
        if new_state != bookmark.learning_state:
            record(
                session,
                bookmark_id,
                BookmarkAction.LEARNING_STATE_CHANGED,
                bookmark.learning_state,
                new_state,
            )
            bookmark.learning_state = new_state
        session.flush()
