"""Notes attached to bookmarks."""

from __future__ import annotations

import threading

from loguru import logger
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from src.core import richtext
from src.core.errors import NotFoundError
from src.core.urn import note_urn
from src.db.database import read_scope, session_scope
from src.db.models import Note
from src.learning.history import BookmarkAction, load_bookmark, record


class NoteService:
    """Rich-text notes. Adding a note is audited on the owning bookmark."""

    def __init__(self, session_factory: sessionmaker | None = None):
        self._factory = session_factory

    def add_note(
        self,
        bookmark_id: int,
        content: str,
        author: str | None = None,
        is_private: bool = False,
        cancel: threading.Event | None = None,
    ) -> Note:
        """
        Attach a note to a bookmark.

        The body is validated, the note receives its URN, and a note_added
        history entry is written, all in one transaction.

        Raises:
            NotFoundError: Bookmark does not exist
            ParseError: Body is not JSON
            InvalidArgumentError: Body fails rich-text validation
        """
        richtext.validate_json(content)

        with session_scope(self._factory, cancel=cancel) as session:
            load_bookmark(session, bookmark_id)
            note = Note(
                bookmark_id=bookmark_id,
                content=content or "",
                author=author,
                is_private=is_private,
                fsm_state="draft",
            )
            session.add(note)
            session.flush()
            note.urn = note_urn(note.id)
            record(session, bookmark_id, BookmarkAction.NOTE_ADDED, "", f"Note ID: {note.id}")
            session.flush()

        logger.debug(f"Added note {note.id} to bookmark {bookmark_id}")
        return note

    def get_note(self, note_id: int) -> Note:
        with read_scope(self._factory) as session:
            return self._load(session, note_id)

    def get_note_by_urn(self, urn: str) -> Note:
        with read_scope(self._factory) as session:
            note = session.scalar(select(Note).where(Note.urn == urn))
            if note is None:
                raise NotFoundError(f"note with URN {urn}: not found")
            return note

    def list_notes(self, bookmark_id: int) -> list[Note]:
        with read_scope(self._factory) as session:
            return list(
                session.scalars(
                    select(Note).where(Note.bookmark_id == bookmark_id).order_by(Note.id)
                )
            )

    def update_note(
        self,
        note_id: int,
        content: str | None = None,
        is_private: bool | None = None,
        cancel: threading.Event | None = None,
    ) -> Note:
        if content is not None:
            richtext.validate_json(content)

        with session_scope(self._factory, cancel=cancel) as session:
            note = self._load(session, note_id)
            if content is not None:
                note.content = content
            if is_private is not None:
                note.is_private = is_private
            session.flush()
        return note

    def delete_note(self, note_id: int, cancel: threading.Event | None = None) -> None:
        """Hard delete."""
        with session_scope(self._factory, cancel=cancel) as session:
            session.delete(self._load(session, note_id))
        logger.debug(f"Deleted note {note_id}")

    @staticmethod
    def _load(session: Session, note_id: int) -> Note:
        note = session.get(Note, note_id)
        if note is None:
            raise NotFoundError(f"note {note_id}: not found")
        return note
