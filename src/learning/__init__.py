"""
Learning: bookmarks, memory cards and their review schedule.

- card_status: memory card lifecycle
- sm2: spaced repetition scheduler
- card_store: versioned card persistence
- bookmarks / history: bookmark lifecycle, audit log and revert
- notes, cross_references, sessions: supporting records
"""

from src.learning.bookmarks import BookmarkService, LearningState
from src.learning.card_status import CardStatus, can_transition, parse_card_status
from src.learning.card_store import MemoryCardService
from src.learning.container import LearningServices
from src.learning.cross_references import CrossReferenceService, RelationshipType
from src.learning.history import BookmarkAction, HistoryService
from src.learning.notes import NoteService
from src.learning.sessions import LearningSessionService
from src.learning.sm2 import Rating, ReviewOutcome, SM2Config, SM2Scheduler, compute_mastery

__all__ = [
    "BookmarkAction",
    "BookmarkService",
    "CardStatus",
    "CrossReferenceService",
    "HistoryService",
    "LearningServices",
    "LearningSessionService",
    "LearningState",
    "MemoryCardService",
    "NoteService",
    "Rating",
    "RelationshipType",
    "ReviewOutcome",
    "SM2Config",
    "SM2Scheduler",
    "can_transition",
    "compute_mastery",
    "parse_card_status",
]
