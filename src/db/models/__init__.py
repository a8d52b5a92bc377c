# SQLAlchemy models
from .base import Base
from .catalog import CrossReference, GlobalItem, UrnLink
from .learning import (
    Bookmark,
    BookmarkHistory,
    LearningSession,
    MemoryCard,
    Note,
)

__all__ = [
    # Base
    "Base",
    # Learning
    "Bookmark",
    "BookmarkHistory",
    "Note",
    "MemoryCard",
    "LearningSession",
    # Catalog
    "CrossReference",
    "GlobalItem",
    "UrnLink",
]
