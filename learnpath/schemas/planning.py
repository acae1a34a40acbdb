"""
Estimation, scheduling and calendar implementation schemas.
"""

import datetime
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, Field


class EstimateNode(BaseModel):
    id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class EstimateNodesRequest(BaseModel):
    nodes: List[EstimateNode] = Field(default_factory=list)


class NodeEstimateResponse(BaseModel):
    node_id: str = Field(..., alias="nodeId")
    node_title: str = Field(..., alias="nodeTitle")
    estimated_hours: float = Field(..., alias="estimatedHours")
    description: str = ""
    
    class Config:
        from_attributes = True
        populate_by_name = True


class EstimateResponse(BaseModel):
    """Schedule-shaped estimate, camelCase on the wire."""
    
    total_hours: float = Field(..., alias="totalHours")
    suggested_daily_hours: float = Field(..., alias="suggestedDailyHours")
    total_days: int = Field(..., alias="totalDays")
    nodes: List[NodeEstimateResponse]
    source: str
    
    class Config:
        from_attributes = True
        populate_by_name = True


class ScheduleRequest(BaseModel):
    """Preview request; daily_hours defaults to the estimate's suggestion."""
    
    start_date: datetime.date = Field(default_factory=datetime.date.today)
    daily_hours: Optional[float] = Field(None, gt=0)


class ImplementRequest(ScheduleRequest):
    # Calendar OAuth token; older clients send it as supabase_token
    access_token: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("access_token", "supabase_token"),
    )
    force: bool = False
    user_id: Optional[str] = Field(None, max_length=64)


class ScheduledBlockResponse(BaseModel):
    date: datetime.date
    end_date: Optional[datetime.date] = None
    node_id: str
    node_title: str
    hours: float
    start_offset_hours: float
    
    class Config:
        from_attributes = True


class ScheduleWarning(BaseModel):
    message: str
    node_ids: List[str]


class ScheduleResponse(BaseModel):
    estimate: EstimateResponse
    blocks: List[ScheduledBlockResponse]
    order: List[str]
    warnings: List[ScheduleWarning] = Field(default_factory=list)
    total_hours: float
    daily_hours: float
    total_days: int
    last_date: Optional[datetime.date] = None


class ImplementResponse(BaseModel):
    success: bool = True
    created_count: int
    event_ids: List[str]
    schedule: ScheduleResponse


class PartialPublishResponse(BaseModel):
    success: bool = False
    error: str
    created_count: int
    failed_at: dict
