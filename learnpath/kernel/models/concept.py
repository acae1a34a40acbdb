"""
Concept (learning node) model.

Concepts belong to a topic and are referenced, never copied, by workflows.
They are never deleted; only the usage counter changes after creation.
"""

import uuid
from typing import Optional

from sqlalchemy import Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from learnpath.kernel.models.base import Base, TimestampMixin, generate_uuid

DEFAULT_ICON = "📘"
DEFAULT_COLOR = "#6366f1"


class Concept(Base, TimestampMixin):
    """A named learning concept, the vertex type of every path graph."""
    
    __tablename__ = "learning_nodes"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    # Topics live in the content service; only the id is kept here
    topic_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    normalized_title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    icon: Mapped[str] = mapped_column(
        String(32),
        default=DEFAULT_ICON,
        nullable=False,
    )
    color: Mapped[str] = mapped_column(
        String(16),
        default=DEFAULT_COLOR,
        nullable=False,
    )
    usage_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    created_by: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
    )

    __table_args__ = (
        # One concept per normalized title in a topic, also under concurrent creates
        Index("ix_learning_nodes_topic_title", "topic_id", "normalized_title", unique=True),
    )

    def __repr__(self) -> str:
        return f"<Concept {self.title[:50]} topic={self.topic_id}>"
