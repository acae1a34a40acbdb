"""
FastAPI dependencies for database sessions, caller identity and services.
"""

from datetime import timedelta
from functools import lru_cache
from typing import Annotated, Optional

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.ai.reasoning import ReasoningClient, ReasoningService
from learnpath.config import get_settings
from learnpath.database import async_session_maker, get_db
from learnpath.engines.calendar.calendar_publisher import CalendarPublisher
from learnpath.engines.catalog.concept_catalog import ConceptCatalog
from learnpath.engines.catalog.duplicate_detector import DuplicateDetector
from learnpath.engines.graph.edge_validation import EdgeValidationEngine
from learnpath.engines.graph.validation_cache import SqlValidationCache
from learnpath.engines.planning.effort_estimator import EffortEstimator
from learnpath.engines.workflows.planner import WorkflowPlanner
from learnpath.engines.workflows.repository import WorkflowRepository


DbSession = Annotated[AsyncSession, Depends(get_db)]


async def get_user_id(
    x_user_id: Annotated[Optional[str], Header(alias="X-User-Id", max_length=64)] = None,
) -> Optional[str]:
    """Caller id forwarded by the identity layer in front of this service, if any."""
    if x_user_id is None:
        return None
    return x_user_id.strip() or None


OptionalUserId = Annotated[Optional[str], Depends(get_user_id)]


@lru_cache
def get_reasoning_service() -> ReasoningService:
    """One shared reasoning client per process."""
    return ReasoningService.from_settings(get_settings())


Reasoning = Annotated[ReasoningClient, Depends(get_reasoning_service)]


def get_catalog(db: DbSession, reasoning: Reasoning) -> ConceptCatalog:
    return ConceptCatalog(db, DuplicateDetector(reasoning))


def get_validation_engine(reasoning: Reasoning) -> EdgeValidationEngine:
    """Engine backed by the persistent verdict cache."""
    settings = get_settings()
    return EdgeValidationEngine(
        reasoning,
        SqlValidationCache(async_session_maker),
        fail_closed=settings.validation_fail_closed,
    )


def get_estimator(reasoning: Reasoning) -> EffortEstimator:
    settings = get_settings()
    return EffortEstimator(
        reasoning,
        default_hours=settings.default_hours_per_node,
        default_daily_hours=settings.default_daily_hours,
        max_daily_hours=settings.max_daily_hours,
    )


def get_calendar_publisher() -> CalendarPublisher:
    return CalendarPublisher(get_settings())


def get_workflow_repository(db: DbSession) -> WorkflowRepository:
    return WorkflowRepository(db)


Catalog = Annotated[ConceptCatalog, Depends(get_catalog)]
ValidationEngine = Annotated[EdgeValidationEngine, Depends(get_validation_engine)]
Estimator = Annotated[EffortEstimator, Depends(get_estimator)]
Workflows = Annotated[WorkflowRepository, Depends(get_workflow_repository)]


def get_planner(
    repository: Workflows,
    estimator: Estimator,
    publisher: Annotated[CalendarPublisher, Depends(get_calendar_publisher)],
) -> WorkflowPlanner:
    settings = get_settings()
    return WorkflowPlanner(
        repository,
        estimator,
        publisher,
        claim_timeout=timedelta(seconds=settings.publish_claim_timeout_seconds),
    )


Planner = Annotated[WorkflowPlanner, Depends(get_planner)]


def get_client_ip(request: Request) -> Optional[str]:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None
