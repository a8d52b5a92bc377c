"""Wires the learning services to one session factory."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import sessionmaker

from config import get_settings
from src.db.database import get_session_factory
from src.learning.bookmarks import BookmarkService
from src.learning.card_store import MemoryCardService
from src.learning.cross_references import CrossReferenceService
from src.learning.history import HistoryService
from src.learning.notes import NoteService
from src.learning.sessions import LearningSessionService
from src.learning.sm2 import SM2Config
from src.navigation import SecurityItem, StrategyManager


@dataclass
class LearningServices:
    bookmarks: BookmarkService
    cards: MemoryCardService
    history: HistoryService
    notes: NoteService
    cross_references: CrossReferenceService
    sessions: LearningSessionService

    @classmethod
    def create(
        cls,
        session_factory: sessionmaker | None = None,
        config: SM2Config | None = None,
    ) -> LearningServices:
        """Build every service on ``session_factory`` (the process-wide one by default)."""
        factory = session_factory or get_session_factory()
        config = config or SM2Config.from_settings()
        return cls(
            bookmarks=BookmarkService(factory, config),
            cards=MemoryCardService(factory, config),
            history=HistoryService(factory),
            notes=NoteService(factory),
            cross_references=CrossReferenceService(factory),
            sessions=LearningSessionService(factory),
        )

    def build_strategy_manager(
        self,
        items: list[SecurityItem],
        use_cross_references: bool = True,
    ) -> StrategyManager:
        """A navigation manager whose graph comes from stored cross references."""
        return StrategyManager(
            items,
            cross_references=self.cross_references if use_cross_references else None,
            fanout=get_settings().strategy_type_fanout,
        )
