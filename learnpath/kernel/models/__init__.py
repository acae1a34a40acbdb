"""
Kernel Data Models

SQLAlchemy models for concepts, workflows, cached verdicts and the activity log.
"""

from learnpath.kernel.models.base import Base, TimestampMixin, generate_uuid, normalize_title
from learnpath.kernel.models.concept import Concept, DEFAULT_COLOR, DEFAULT_ICON
from learnpath.kernel.models.workflow import (
    Workflow,
    WorkflowEdge,
    WorkflowStar,
    ValidationStatus,
    PublishStatus,
)
from learnpath.kernel.models.validation_record import NodePairValidation
from learnpath.kernel.models.event_log import EventLog, EventType

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "generate_uuid",
    "normalize_title",
    # Concepts
    "Concept",
    "DEFAULT_COLOR",
    "DEFAULT_ICON",
    # Workflows
    "Workflow",
    "WorkflowEdge",
    "WorkflowStar",
    "ValidationStatus",
    "PublishStatus",
    # Validation cache
    "NodePairValidation",
    # Event Log
    "EventLog",
    "EventType",
]
