"""
Error taxonomy shared by every subsystem.

Each exception carries a stable ``kind`` so transports and the CLI can
report failures by meaning rather than by class name.
"""

from __future__ import annotations


class NotesError(Exception):
    """Base class for all learning-engine errors."""

    kind = "store-error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


class NotFoundError(NotesError):
    """Entity by id or URN does not exist."""

    kind = "not-found"


class InvalidTransitionError(NotesError):
    """The status FSM denies the requested change."""

    kind = "invalid-transition"


class ConcurrentUpdateError(NotesError):
    """Optimistic version check failed; retry with the refreshed version."""

    kind = "concurrent-update"


class InvalidArgumentError(NotesError):
    kind = "invalid-argument"


class ParseError(InvalidArgumentError):
    """Timestamp, JSON body or URN grammar violation."""

    kind = "parse-error"


class NoHistoryBeforeTimestampError(NotesError):
    kind = "no-history-before-timestamp"


class SwitchStrategy(NotesError):
    """Control signal raised by a strategy that wants the manager to switch."""

    kind = "switch-strategy"


class NoMoreItemsError(NotesError):
    """Navigation is exhausted. A completion condition, not a failure."""

    kind = "no-more-items"


class StoreError(NotesError):
    kind = "store-error"


class OperationCancelledError(NotesError):
    kind = "cancelled"
