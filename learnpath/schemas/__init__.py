"""
Pydantic schemas for API request/response validation.
"""

from learnpath.schemas.common import (
    ErrorResponse,
    HealthResponse,
    MessageResponse,
    SuccessResponse,
    ValidationErrorResponse,
)
from learnpath.schemas.concept import (
    ConceptCreate,
    ConceptResponse,
    ConceptSummary,
    DuplicateConceptResponse,
)
from learnpath.schemas.validation import ValidatePathRequest, ValidatePathResponse
from learnpath.schemas.planning import (
    EstimateNodesRequest,
    EstimateResponse,
    ImplementRequest,
    ImplementResponse,
    PartialPublishResponse,
    ScheduleRequest,
    ScheduleResponse,
)
from learnpath.schemas.workflow import (
    EdgeIn,
    HistoryEntry,
    WorkflowCreate,
    WorkflowListItem,
    WorkflowListResponse,
    WorkflowResponse,
    WorkflowUpdate,
)

__all__ = [
    "ErrorResponse",
    "HealthResponse",
    "MessageResponse",
    "SuccessResponse",
    "ValidationErrorResponse",
    "ConceptCreate",
    "ConceptResponse",
    "ConceptSummary",
    "DuplicateConceptResponse",
    "ValidatePathRequest",
    "ValidatePathResponse",
    "EstimateNodesRequest",
    "EstimateResponse",
    "ImplementRequest",
    "ImplementResponse",
    "PartialPublishResponse",
    "ScheduleRequest",
    "ScheduleResponse",
    "EdgeIn",
    "HistoryEntry",
    "WorkflowCreate",
    "WorkflowListItem",
    "WorkflowListResponse",
    "WorkflowResponse",
    "WorkflowUpdate",
]
