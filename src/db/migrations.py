"""
Idempotent schema migration.

Creates missing tables, then back-fills rows written by older releases:
- empty URNs are regenerated from the row id
- empty FSM state becomes 'draft' (notes) or 'new' (cards)
- legacy card status strings are normalized to the current lifecycle
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger
from sqlalchemy import Engine, or_, select, update
from sqlalchemy.orm import sessionmaker

from src.core.urn import card_urn, note_urn
from src.db.database import make_session_factory, session_scope
from src.db.models import Base, MemoryCard, Note
from src.learning.card_status import LEGACY_STATUS_MAP


@dataclass
class MigrationReport:
    """Counts of rows touched by a migration run."""

    card_urns_backfilled: int = 0
    note_urns_backfilled: int = 0
    card_states_backfilled: int = 0
    note_states_backfilled: int = 0
    statuses_normalized: int = 0

    @property
    def total(self) -> int:
        return (
            self.card_urns_backfilled
            + self.note_urns_backfilled
            + self.card_states_backfilled
            + self.note_states_backfilled
            + self.statuses_normalized
        )


def migrate(engine: Engine, factory: sessionmaker | None = None) -> MigrationReport:
    """Create tables if absent and back-fill legacy rows. Safe to run repeatedly."""
    Base.metadata.create_all(bind=engine)
    factory = factory or make_session_factory(engine)
    report = MigrationReport()

    with session_scope(factory) as session:
        cards = session.scalars(
            select(MemoryCard).where(or_(MemoryCard.urn.is_(None), MemoryCard.urn == ""))
        ).all()
        for card in cards:
            card.urn = card_urn(card.id)
        report.card_urns_backfilled = len(cards)

        notes = session.scalars(select(Note).where(or_(Note.urn.is_(None), Note.urn == ""))).all()
        for note in notes:
            note.urn = note_urn(note.id)
        report.note_urns_backfilled = len(notes)

        report.card_states_backfilled = session.execute(
            update(MemoryCard)
            .where(or_(MemoryCard.fsm_state.is_(None), MemoryCard.fsm_state == ""))
            .values(fsm_state="new")
            .execution_options(synchronize_session=False)
        ).rowcount
        report.note_states_backfilled = session.execute(
            update(Note)
            .where(or_(Note.fsm_state.is_(None), Note.fsm_state == ""))
            .values(fsm_state="draft")
            .execution_options(synchronize_session=False)
        ).rowcount

        for legacy, current in LEGACY_STATUS_MAP.items():
            report.statuses_normalized += session.execute(
                update(MemoryCard)
                .where(MemoryCard.status == legacy)
                .values(status=current.value)
                .execution_options(synchronize_session=False)
            ).rowcount
        report.statuses_normalized += session.execute(
            update(MemoryCard)
            .where(MemoryCard.status.is_(None))
            .values(status="new")
            .execution_options(synchronize_session=False)
        ).rowcount

    logger.info(f"Migration complete: {report.total} rows updated")
    return report
