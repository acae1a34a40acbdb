"""
Workflow models: a saved concept graph plus its visual layout.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from learnpath.kernel.models.base import Base, TimestampMixin, generate_uuid
from learnpath.kernel.models.concept import Concept


class ValidationStatus(str, Enum):
    """Edge validation lifecycle: pending until a verdict arrives."""
    PENDING = "pending"
    VALID = "valid"
    INVALID = "invalid"


class PublishStatus(str, Enum):
    """Whether the workflow's schedule was pushed to the calendar."""
    NOT_PUBLISHED = "not_published"
    PUBLISHING = "publishing"
    PARTIAL = "partial"
    PUBLISHED = "published"


class Workflow(Base, TimestampMixin):
    """A named, saved learning path for one topic."""
    
    __tablename__ = "workflows"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    topic_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True,
    )
    # Owner id issued by the external identity provider
    user_id: Mapped[Optional[str]] = mapped_column(
        String(64),
        nullable=True,
        index=True,
    )
    title: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    is_draft: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    # {node_id: {"x": float, "y": float}}
    node_positions: Mapped[dict] = mapped_column(
        JSON,
        default=dict,
        nullable=False,
    )
    forked_from_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid(),
        ForeignKey("workflows.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Calendar publishing guard
    publish_status: Mapped[PublishStatus] = mapped_column(
        String(20),
        default=PublishStatus.NOT_PUBLISHED,
        nullable=False,
    )
    star_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    published_event_count: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    published_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    # Set while a publish holds the claim
    publish_claimed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    edges: Mapped[List["WorkflowEdge"]] = relationship(
        "WorkflowEdge",
        back_populates="workflow",
        cascade="all, delete-orphan",
        order_by="WorkflowEdge.position",
    )

    def __repr__(self) -> str:
        return f"<Workflow {self.title[:50]} topic={self.topic_id}>"


class WorkflowEdge(Base):
    """A prerequisite relation inside one workflow: source before target."""
    
    __tablename__ = "workflow_edges"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    workflow_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )
    source_node_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("learning_nodes.id"),
        nullable=False,
    )
    target_node_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("learning_nodes.id"),
        nullable=False,
    )
    validation_status: Mapped[ValidationStatus] = mapped_column(
        String(20),
        default=ValidationStatus.PENDING,
        nullable=False,
    )
    validation_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    recommendation: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
    )
    validated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    workflow: Mapped["Workflow"] = relationship(
        "Workflow",
        back_populates="edges",
    )
    source_node: Mapped["Concept"] = relationship(
        "Concept",
        foreign_keys=[source_node_id],
        lazy="joined",
    )
    target_node: Mapped["Concept"] = relationship(
        "Concept",
        foreign_keys=[target_node_id],
        lazy="joined",
    )

    __table_args__ = (
        UniqueConstraint(
            "workflow_id", "source_node_id", "target_node_id",
            name="uq_workflow_edges_pair",
        ),
    )

    def __repr__(self) -> str:
        return f"<WorkflowEdge {self.source_node_id} -> {self.target_node_id} {self.validation_status}>"


class WorkflowStar(Base):
    """One user's star on someone else's workflow."""
    
    __tablename__ = "workflow_stars"
    
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        primary_key=True,
        default=generate_uuid,
    )
    workflow_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(),
        ForeignKey("workflows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("workflow_id", "user_id", name="uq_workflow_stars_user"),
    )
