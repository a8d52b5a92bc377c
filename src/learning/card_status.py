"""
Memory card lifecycle.

Statuses advance along a fixed set of edges. Staying in the same status
is always allowed, and every status can be archived.
"""

from __future__ import annotations

from enum import Enum

from src.core.errors import ParseError


class CardStatus(str, Enum):
    """Lifecycle status of a memory card."""

    NEW = "new"
    LEARNING = "learning"
    DUE = "due"
    REVIEWED = "reviewed"
    MASTERED = "mastered"
    ARCHIVED = "archived"


_ALLOWED: dict[CardStatus, frozenset[CardStatus]] = {
    CardStatus.NEW: frozenset({CardStatus.LEARNING, CardStatus.ARCHIVED}),
    CardStatus.LEARNING: frozenset(
        {CardStatus.DUE, CardStatus.REVIEWED, CardStatus.MASTERED, CardStatus.ARCHIVED}
    ),
    CardStatus.DUE: frozenset({CardStatus.REVIEWED, CardStatus.ARCHIVED}),
    CardStatus.REVIEWED: frozenset(
        {CardStatus.LEARNING, CardStatus.MASTERED, CardStatus.ARCHIVED}
    ),
    CardStatus.MASTERED: frozenset({CardStatus.ARCHIVED}),
    CardStatus.ARCHIVED: frozenset(),
}

_ALIASES = {
    "in-progress": CardStatus.LEARNING,
    "archive": CardStatus.ARCHIVED,
}

# Status strings written by older releases
LEGACY_STATUS_MAP = {
    "active": CardStatus.LEARNING,
    "in-progress": CardStatus.LEARNING,
    "archive": CardStatus.ARCHIVED,
    "to_review": CardStatus.NEW,
    "": CardStatus.NEW,
}


def can_transition(current: CardStatus | str, target: CardStatus | str) -> bool:
    """Whether a card may move from ``current`` to ``target``."""
    current = CardStatus(current)
    target = CardStatus(target)
    if current == target:
        return True
    return target in _ALLOWED[current]


def allowed_targets(current: CardStatus | str) -> list[CardStatus]:
    current = CardStatus(current)
    return [current, *sorted(_ALLOWED[current], key=lambda s: list(CardStatus).index(s))]


def parse_card_status(value: str) -> CardStatus:
    """
    Parse an external status string.

    Case-insensitive and whitespace-trimmed; accepts the aliases
    'in-progress' (learning) and 'archive' (archived).

    Raises:
        ParseError: If the string names no known status
    """
    normalized = (value or "").strip().lower()
    if normalized in _ALIASES:
        return _ALIASES[normalized]
    try:
        return CardStatus(normalized)
    except ValueError:
        raise ParseError(f"invalid card status: '{value}'") from None


def normalize_legacy_status(value: str | None) -> CardStatus:
    """Map a stored status string (possibly legacy) onto the current lifecycle."""
    normalized = (value or "").strip().lower()
    if normalized in LEGACY_STATUS_MAP:
        return LEGACY_STATUS_MAP[normalized]
    return parse_card_status(normalized)
