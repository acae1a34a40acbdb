"""
Prerequisite validation schemas.
"""

from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class ValidatePathRequest(BaseModel):
    """Ordered pair of concept titles: is `from_node` a prerequisite of `to_node`?"""
    
    from_node: str = Field(
        ...,
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("from_node", "fromNode"),
    )
    to_node: str = Field(
        ...,
        min_length=1,
        max_length=255,
        validation_alias=AliasChoices("to_node", "toNode"),
    )


class ValidatePathResponse(BaseModel):
    success: bool = True
    is_valid: bool = Field(..., alias="isValid")
    reason: str
    recommendation: Optional[str] = None
    from_database: bool = Field(False, alias="fromDatabase")
    
    class Config:
        populate_by_name = True
