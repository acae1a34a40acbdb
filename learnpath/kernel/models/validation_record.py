"""
Cached prerequisite verdicts.

Keyed by the ordered pair of concept titles as plain text, so a verdict is
shared by every workflow that draws the same relation. Rows are only ever
inserted or overwritten (last write wins); nothing expires them.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, Text, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from learnpath.kernel.models.base import Base, generate_uuid


class NodePairValidation(Base):
    """Last verdict of the reasoning service for (source_name -> target_name)."""
    
    __tablename__ = "node_pair_validations"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    source_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    target_name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    is_valid: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
    )
    reason: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
    )
    recommendation: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    validated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("source_name", "target_name", name="uq_node_pair_validations_pair"),
    )

    def __repr__(self) -> str:
        return f"<NodePairValidation {self.source_name!r} -> {self.target_name!r} valid={self.is_valid}>"
