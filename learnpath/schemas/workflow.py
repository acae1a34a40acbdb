"""
Workflow schemas.
"""

import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from learnpath.schemas.concept import ConceptSummary


class NodePosition(BaseModel):
    x: float = 0.0
    y: float = 0.0


class EdgeIn(BaseModel):
    """An edge as drawn in the editor, with any verdict it already carries."""
    
    source_node_id: uuid.UUID
    target_node_id: uuid.UUID
    is_valid: Optional[bool] = None
    validation_reason: Optional[str] = None
    recommendation: Optional[str] = None


class WorkflowCreate(BaseModel):
    """Save request; set forked_from_id to fork an existing workflow."""
    
    topic_id: int
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    edges: List[EdgeIn] = Field(default_factory=list)
    node_positions: Dict[str, NodePosition] = Field(default_factory=dict)
    is_draft: bool = False
    forked_from_id: Optional[uuid.UUID] = None
    user_id: Optional[str] = Field(None, max_length=64)


class WorkflowUpdate(BaseModel):
    """Owner update; edges and node_positions replace the graph together."""
    
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    edges: Optional[List[EdgeIn]] = None
    node_positions: Optional[Dict[str, NodePosition]] = None
    is_draft: Optional[bool] = None
    user_id: Optional[str] = Field(None, max_length=64)


class WorkflowEdgeResponse(BaseModel):
    id: uuid.UUID
    source_node_id: uuid.UUID
    target_node_id: uuid.UUID
    source_node: ConceptSummary
    target_node: ConceptSummary
    validation_status: str
    validation_reason: Optional[str]
    recommendation: Optional[str]
    validated_at: Optional[datetime]
    
    class Config:
        from_attributes = True


class WorkflowResponse(BaseModel):
    """Full workflow with edges and layout."""
    
    id: uuid.UUID
    topic_id: int
    user_id: Optional[str]
    title: str
    description: Optional[str]
    is_draft: bool
    node_positions: Dict[str, NodePosition]
    forked_from_id: Optional[uuid.UUID]
    publish_status: str
    star_count: int = 0
    published_event_count: int
    published_at: Optional[datetime]
    edges: List[WorkflowEdgeResponse]
    created_at: datetime
    updated_at: datetime
    
    class Config:
        from_attributes = True


class WorkflowListItem(BaseModel):
    """Workflow list item response."""
    
    id: uuid.UUID
    topic_id: int
    user_id: Optional[str]
    title: str
    description: Optional[str]
    is_draft: bool
    publish_status: str
    star_count: int = 0
    has_starred: bool = False
    node_count: int = 0
    edge_count: int = 0
    created_at: datetime
    
    @classmethod
    def from_model(cls, workflow, has_starred: bool = False) -> "WorkflowListItem":
        return cls(
            id=workflow.id,
            topic_id=workflow.topic_id,
            user_id=workflow.user_id,
            title=workflow.title,
            description=workflow.description,
            is_draft=workflow.is_draft,
            publish_status=workflow.publish_status,
            star_count=workflow.star_count or 0,
            has_starred=has_starred,
            node_count=len(workflow.node_positions or {}),
            edge_count=len(workflow.edges),
            created_at=workflow.created_at,
        )


class WorkflowListResponse(BaseModel):
    success: bool = True
    data: List[WorkflowListItem]
    grouped: Dict[int, List[WorkflowListItem]] = Field(default_factory=dict)


class HistoryEntry(BaseModel):
    id: uuid.UUID
    event_type: str
    user_id: Optional[str]
    payload: dict
    created_at: datetime
    
    class Config:
        from_attributes = True
