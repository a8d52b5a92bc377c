"""
Catalog table models.

Cross references and global items describe the external knowledge graph;
they are independent of any bookmark. URN links are maintained by the
URN index collaborator and only declared here so the schema is complete.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.db.utils import utcnow

from .base import Base


class CrossReference(Base):
    """Directed, typed edge between two external items."""

    __tablename__ = "cross_references"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_item_id: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    target_item_id: Mapped[str] = mapped_column(String(512), nullable=False, index=True)
    source_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), nullable=False)
    relationship_type: Mapped[str] = mapped_column(String(32), nullable=False)
    strength: Mapped[float] = mapped_column(Float, default=1.0)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_item_id": self.source_item_id,
            "target_item_id": self.target_item_id,
            "source_type": self.source_type,
            "target_type": self.target_type,
            "relationship_type": self.relationship_type,
            "strength": self.strength,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class GlobalItem(Base):
    """Unified identifier for an item across sources."""

    __tablename__ = "global_items"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    item_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    source_id: Mapped[str] = mapped_column(String(255), nullable=False)
    urn: Mapped[str] = mapped_column(String(512), default="", index=True)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(String(64), nullable=False)  # NVD, MITRE, SSG
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)


class UrnLink(Base):
    """Link row owned by the URN index."""

    __tablename__ = "urn_links"
    __table_args__ = (
        Index("ix_urn_links_source", "source_urn", "source_type"),
        Index("ix_urn_links_target", "target_urn"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_urn: Mapped[str] = mapped_column(String(512), nullable=False)
    source_type: Mapped[str] = mapped_column(String(32), nullable=False)
    target_urn: Mapped[str] = mapped_column(String(512), nullable=False)
    target_type: Mapped[str] = mapped_column(String(32), default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
