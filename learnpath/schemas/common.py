"""
Common schema types used across the API.
"""

from typing import Any, Generic, List, Optional, TypeVar
from pydantic import BaseModel

T = TypeVar("T")


class ErrorResponse(BaseModel):
    """Standard error response."""
    
    success: bool = False
    error: str
    request_id: Optional[str] = None


class SuccessResponse(BaseModel, Generic[T]):
    """`{success, data}` envelope used by every route."""
    
    success: bool = True
    data: T


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class FieldError(BaseModel):
    field: str
    message: str
    type: str


class ValidationErrorResponse(BaseModel):
    success: bool = False
    error: str = "Validation error"
    errors: List[FieldError]


class HealthResponse(BaseModel):
    """Health check response."""
    
    status: str = "ok"
    version: str
    database: str = "connected"
    ai_configured: bool = False
    details: Optional[Any] = None
