"""Study session tallies."""

from __future__ import annotations

import threading

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from src.core.errors import InvalidArgumentError, NotFoundError
from src.db.database import read_scope, session_scope
from src.db.models import LearningSession
from src.db.utils import utcnow


class LearningSessionService:
    def __init__(self, session_factory: sessionmaker | None = None):
        self._factory = session_factory

    def start(self, user_id: str | None = None, cancel: threading.Event | None = None) -> LearningSession:
        with session_scope(self._factory, cancel=cancel) as session:
            study = LearningSession(
                user_id=user_id, session_start=utcnow(), cards_reviewed=0, cards_correct=0
            )
            session.add(study)
            session.flush()
        logger.info(f"Started learning session {study.id}")
        return study

    def record_review(
        self,
        session_id: int,
        correct: bool,
        cancel: threading.Event | None = None,
    ) -> LearningSession:
        with session_scope(self._factory, cancel=cancel) as session:
            study = self._load_open(session, session_id)
            study.cards_reviewed += 1
            if correct:
                study.cards_correct += 1
            session.flush()
        return study

    def end(
        self,
        session_id: int,
        notes: str | None = None,
        cancel: threading.Event | None = None,
    ) -> LearningSession:
        with session_scope(self._factory, cancel=cancel) as session:
            study = self._load_open(session, session_id)
            study.session_end = utcnow()
            if notes is not None:
                study.session_notes = notes
            session.flush()
        logger.info(
            f"Ended learning session {session_id}: {study.cards_correct}/{study.cards_reviewed} correct"
        )
        return study

    def get(self, session_id: int) -> LearningSession:
        with read_scope(self._factory) as session:
            return self._load(session, session_id)

    @staticmethod
    def _load(session: Session, session_id: int) -> LearningSession:
        study = session.get(LearningSession, session_id)
        if study is None:
            raise NotFoundError(f"learning session {session_id}: not found")
        return study

    def _load_open(self, session: Session, session_id: int) -> LearningSession:
        study = self._load(session, session_id)
        if study.session_end is not None:
            raise InvalidArgumentError(f"learning session {session_id}: already ended")
        return study
