"""
Cross references between external catalog items.

These rows are the input of the navigation item graph: an edge from a
CVE to the CWE it instantiates, from a CAPEC pattern to an ATT&CK
technique, and so on.
"""

from __future__ import annotations

import threading
from enum import Enum

from loguru import logger
from sqlalchemy import and_, or_, select
from sqlalchemy.orm import sessionmaker

from src.core.errors import InvalidArgumentError, ParseError
from src.db.database import read_scope, session_scope
from src.db.models import CrossReference


class RelationshipType(str, Enum):
    RELATED_TO = "related-to"
    EXPLOITS = "exploits"
    MITIGATES = "mitigates"
    SIMILAR_TO = "similar-to"
    PART_OF = "part-of"
    CAUSED_BY = "caused-by"

    @classmethod
    def parse(cls, value: RelationshipType | str) -> RelationshipType:
        if isinstance(value, RelationshipType):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ParseError(f"invalid relationship type: '{value}'") from None


class CrossReferenceService:
    """Stores and queries typed edges between items."""

    def __init__(self, session_factory: sessionmaker | None = None):
        self._factory = session_factory

    def create(
        self,
        source_item_id: str,
        target_item_id: str,
        source_type: str,
        target_type: str,
        relationship_type: RelationshipType | str = RelationshipType.RELATED_TO,
        strength: float = 1.0,
        description: str | None = None,
        cancel: threading.Event | None = None,
    ) -> CrossReference:
        """
        Record a directed edge.

        Raises:
            InvalidArgumentError: Missing endpoint or strength outside [0, 1]
            ParseError: Unknown relationship type
        """
        if not source_item_id or not target_item_id:
            raise InvalidArgumentError("source_item_id and target_item_id are required")
        relationship = RelationshipType.parse(relationship_type)
        if not 0.0 <= strength <= 1.0:
            raise InvalidArgumentError(f"strength must be within [0, 1], got {strength}")

        with session_scope(self._factory, cancel=cancel) as session:
            ref = CrossReference(
                source_item_id=source_item_id,
                target_item_id=target_item_id,
                source_type=source_type,
                target_type=target_type,
                relationship_type=relationship.value,
                strength=strength,
                description=description,
            )
            session.add(ref)
            session.flush()

        logger.debug(
            f"Cross reference {ref.id}: {source_item_id} -{relationship.value}-> {target_item_id}"
        )
        return ref

    def by_source(self, source_item_id: str) -> list[CrossReference]:
        return self._query(CrossReference.source_item_id == source_item_id)

    def by_target(self, target_item_id: str) -> list[CrossReference]:
        return self._query(CrossReference.target_item_id == target_item_id)

    def by_type(self, relationship_type: RelationshipType | str) -> list[CrossReference]:
        relationship = RelationshipType.parse(relationship_type)
        return self._query(CrossReference.relationship_type == relationship.value)

    def bidirectional(self, item_a: str, item_b: str) -> list[CrossReference]:
        """Edges between two items in either direction."""
        return self._query(
            or_(
                and_(
                    CrossReference.source_item_id == item_a,
                    CrossReference.target_item_id == item_b,
                ),
                and_(
                    CrossReference.source_item_id == item_b,
                    CrossReference.target_item_id == item_a,
                ),
            )
        )

    def _query(self, condition) -> list[CrossReference]:
        with read_scope(self._factory) as session:
            return list(
                session.scalars(select(CrossReference).where(condition).order_by(CrossReference.id))
            )
