"""
Core Module - Shared primitives.

Components:
- errors: Error taxonomy with stable ``kind`` strings
- urn: Parser/formatter for v2e URNs
- richtext: Structural validation of note and card bodies
- locks: Reader-writer lock guarding in-memory navigation state

Design Principle:
Domain modules (src/learning/, src/navigation/) import shared concepts
from here rather than redefining them.
"""

from src.core.errors import (
    ConcurrentUpdateError,
    InvalidArgumentError,
    InvalidTransitionError,
    NoHistoryBeforeTimestampError,
    NoMoreItemsError,
    NotesError,
    NotFoundError,
    OperationCancelledError,
    ParseError,
    StoreError,
    SwitchStrategy,
)
from src.core.locks import RWLock

__all__ = [
    "NotesError",
    "NotFoundError",
    "InvalidTransitionError",
    "ConcurrentUpdateError",
    "InvalidArgumentError",
    "ParseError",
    "NoHistoryBeforeTimestampError",
    "SwitchStrategy",
    "NoMoreItemsError",
    "StoreError",
    "OperationCancelledError",
    "RWLock",
]
