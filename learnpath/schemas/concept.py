"""
Concept (learning node) schemas.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ConceptCreate(BaseModel):
    """Concept creation request."""
    
    topic_id: int
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=4000)
    icon: Optional[str] = Field(None, max_length=32)
    color: Optional[str] = Field(None, max_length=16)
    user_id: Optional[str] = Field(None, max_length=64)


class ConceptResponse(BaseModel):
    """Concept response."""
    
    id: uuid.UUID
    topic_id: int
    title: str
    description: Optional[str]
    icon: str
    color: str
    usage_count: int
    created_at: datetime
    
    class Config:
        from_attributes = True


class ConceptSummary(BaseModel):
    """Concept as embedded in workflow edges."""
    
    id: uuid.UUID
    title: str
    description: Optional[str] = None
    icon: str
    color: str
    
    class Config:
        from_attributes = True


class DuplicateConceptResponse(BaseModel):
    """409 body when a concept duplicates an existing one."""
    
    success: bool = False
    is_duplicate: bool = Field(True, alias="isDuplicate")
    reason: str
    similar_node: Optional[ConceptSummary] = Field(None, alias="similarNode")
    
    class Config:
        populate_by_name = True
