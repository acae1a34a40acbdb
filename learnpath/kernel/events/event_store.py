"""
Event Store service for the append-only activity log.
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from sqlalchemy import select, and_, desc
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.kernel.models.event_log import EventLog, EventType


class EventStore:
    """
    Service for writing and reading the activity log.
    
    Usage:
        event_store = EventStore(session)
        await event_store.log(
            event_type=EventType.WORKFLOW_SAVED,
            entity_type="workflow",
            entity_id=workflow.id,
            user_id=user_id,
            payload={"title": workflow.title, "edge_count": len(edges)},
        )
    """
    
    def __init__(self, session: AsyncSession):
        self.session = session
    
    async def log(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: uuid.UUID,
        user_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> EventLog:
        """
        Add an event to the activity log.
        
        The row joins the caller's transaction; it is written when the
        caller commits.
        """
        if payload:
            payload = self._serialize_payload(payload)
        
        event = EventLog(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            payload=payload or {},
            ip_address=ip_address,
            user_agent=user_agent,
        )
        
        self.session.add(event)
        return event
    
    async def get_entity_history(
        self,
        entity_type: str,
        entity_id: uuid.UUID,
        event_types: Optional[List[EventType]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[EventLog]:
        """Get the event history for one entity, newest first."""
        query = select(EventLog).where(
            and_(
                EventLog.entity_type == entity_type,
                EventLog.entity_id == entity_id,
            )
        )
        
        if event_types:
            query = query.where(EventLog.event_type.in_(event_types))
        
        query = query.order_by(desc(EventLog.created_at)).offset(offset).limit(limit)
        
        result = await self.session.execute(query)
        return list(result.scalars().all())
    
    @staticmethod
    def _serialize_payload(payload: Dict[str, Any]) -> Dict[str, Any]:
        """Convert UUIDs, dates and enums so the payload fits a JSON column."""
        def convert(value: Any) -> Any:
            if isinstance(value, uuid.UUID):
                return str(value)
            if isinstance(value, (datetime, date)):
                return value.isoformat()
            if isinstance(value, Enum):
                return value.value
            if isinstance(value, dict):
                return {str(k): convert(v) for k, v in value.items()}
            if isinstance(value, (list, tuple, set)):
                return [convert(v) for v in value]
            return value
        
        return convert(payload)
