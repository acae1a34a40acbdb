"""
Workflow endpoints: save, share, plan and implement learning paths.
"""

import uuid
from collections import defaultdict
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import JSONResponse

from learnpath.api.deps import (
    DbSession,
    OptionalUserId,
    Planner,
    ValidationEngine,
    Workflows,
)
from learnpath.config import get_settings
from learnpath.engines.workflows.planner import PlannedSchedule
from learnpath.engines.workflows.repository import EdgeInput, stored_edge_inputs
from learnpath.errors import PartialPublish
from learnpath.kernel.events.event_store import EventStore
from learnpath.logging_config import bind_workflow
from learnpath.schemas.common import MessageResponse, SuccessResponse
from learnpath.schemas.planning import (
    EstimateResponse,
    ImplementRequest,
    ImplementResponse,
    PartialPublishResponse,
    ScheduledBlockResponse,
    ScheduleRequest,
    ScheduleResponse,
    ScheduleWarning,
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

router = APIRouter()


def _edge_inputs(edges: List[EdgeIn]) -> List[EdgeInput]:
    return [
        EdgeInput(
            source_node_id=e.source_node_id,
            target_node_id=e.target_node_id,
            is_valid=e.is_valid,
            validation_reason=e.validation_reason,
            recommendation=e.recommendation,
        )
        for e in edges
    ]


def _check_daily_hours(daily_hours: Optional[float]) -> None:
    limit = get_settings().max_daily_hours
    if daily_hours is not None and daily_hours > limit:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"daily_hours must not exceed {limit:g}",
        )


def _schedule_response(planned: PlannedSchedule) -> ScheduleResponse:
    schedule = planned.schedule
    return ScheduleResponse(
        estimate=EstimateResponse.model_validate(planned.estimate),
        blocks=[ScheduledBlockResponse.model_validate(b) for b in schedule.blocks],
        order=schedule.order,
        warnings=[ScheduleWarning(message=w.message, node_ids=w.node_ids) for w in schedule.warnings],
        total_hours=schedule.total_hours,
        daily_hours=schedule.daily_hours,
        total_days=schedule.total_days,
        last_date=schedule.last_date,
    )


@router.post("", response_model=SuccessResponse[WorkflowResponse], status_code=status.HTTP_201_CREATED)
async def create_workflow(
    data: WorkflowCreate,
    repository: Workflows,
    engine: ValidationEngine,
    user_id: OptionalUserId,
):
    """Save a workflow; pending edges are validated before it is stored."""
    owner = user_id or data.user_id
    try:
        graph = await repository.build_graph(
            data.topic_id,
            _edge_inputs(data.edges),
            {k: v.model_dump() for k, v in data.node_positions.items()},
            validator=engine,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))

    workflow = await repository.save(
        topic_id=data.topic_id,
        title=data.title,
        graph=graph,
        user_id=owner,
        description=data.description,
        is_draft=data.is_draft,
        forked_from_id=data.forked_from_id,
    )
    bind_workflow(workflow.id)
    return SuccessResponse(data=WorkflowResponse.model_validate(workflow))


@router.get("", response_model=WorkflowListResponse)
async def list_workflows(
    repository: Workflows,
    user_id: OptionalUserId,
    topic_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    """Published (non-draft) workflows, newest first, also grouped by topic."""
    workflows = await repository.list_public(topic_id=topic_id, limit=limit, offset=offset)
    starred = await repository.starred_by(user_id, [w.id for w in workflows]) if user_id else set()
    items = [WorkflowListItem.from_model(w, has_starred=w.id in starred) for w in workflows]
    grouped = defaultdict(list)
    for item in items:
        grouped[item.topic_id].append(item)
    return WorkflowListResponse(data=items, grouped=dict(grouped))


@router.get("/mine", response_model=WorkflowListResponse)
async def list_my_workflows(repository: Workflows, user_id: OptionalUserId):
    """The caller's workflows, drafts included."""
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required",
        )
    workflows = await repository.list_for_user(user_id)
    return WorkflowListResponse(data=[WorkflowListItem.from_model(w) for w in workflows])


@router.get("/{workflow_id}", response_model=SuccessResponse[WorkflowResponse])
async def get_workflow(workflow_id: uuid.UUID, repository: Workflows, user_id: OptionalUserId):
    bind_workflow(workflow_id)
    workflow = await repository.get(workflow_id, viewer_id=user_id)
    return SuccessResponse(data=WorkflowResponse.model_validate(workflow))


@router.put("/{workflow_id}", response_model=SuccessResponse[WorkflowResponse])
async def update_workflow(
    workflow_id: uuid.UUID,
    data: WorkflowUpdate,
    repository: Workflows,
    engine: ValidationEngine,
    user_id: OptionalUserId,
):
    """Owner update. Sending edges or node_positions replaces the graph."""
    bind_workflow(workflow_id)
    caller = user_id or data.user_id
    workflow = await repository.get_owned(workflow_id, caller)

    graph = None
    if data.edges is not None or data.node_positions is not None:
        edges = _edge_inputs(data.edges) if data.edges is not None else stored_edge_inputs(workflow)
        positions = (
            {k: v.model_dump() for k, v in data.node_positions.items()}
            if data.node_positions is not None
            else dict(workflow.node_positions or {})
        )
        try:
            graph = await repository.build_graph(workflow.topic_id, edges, positions, validator=engine)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))

    workflow = await repository.update(
        workflow_id,
        caller,
        title=data.title,
        description=data.description,
        is_draft=data.is_draft,
        graph=graph,
    )
    return SuccessResponse(data=WorkflowResponse.model_validate(workflow))


@router.delete("/{workflow_id}", response_model=MessageResponse)
async def delete_workflow(workflow_id: uuid.UUID, repository: Workflows, user_id: OptionalUserId):
    bind_workflow(workflow_id)
    await repository.delete(workflow_id, user_id)
    return MessageResponse(message="Workflow deleted")


@router.get("/{workflow_id}/history", response_model=SuccessResponse[List[HistoryEntry]])
async def workflow_history(
    workflow_id: uuid.UUID,
    repository: Workflows,
    db: DbSession,
    user_id: OptionalUserId,
    limit: int = Query(100, ge=1, le=500),
):
    """Activity log of a workflow, newest first."""
    workflow = await repository.get(workflow_id, viewer_id=user_id)
    events = await EventStore(db).get_entity_history("workflow", workflow.id, limit=limit)
    return SuccessResponse(data=[HistoryEntry.model_validate(e) for e in events])


@router.post("/{workflow_id}/star", response_model=SuccessResponse[WorkflowResponse])
async def star_workflow(workflow_id: uuid.UUID, repository: Workflows, user_id: OptionalUserId):
    """Star someone else's workflow. Each user stars a workflow once."""
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-Id header is required",
        )
    bind_workflow(workflow_id)
    workflow = await repository.star(workflow_id, user_id)
    return SuccessResponse(data=WorkflowResponse.model_validate(workflow))


@router.post("/{workflow_id}/estimate", response_model=SuccessResponse[EstimateResponse])
async def estimate_workflow(
    workflow_id: uuid.UUID,
    repository: Workflows,
    planner: Planner,
    user_id: OptionalUserId,
):
    bind_workflow(workflow_id)
    workflow = await repository.get(workflow_id, viewer_id=user_id)
    estimate = await planner.estimate(workflow)
    return SuccessResponse(data=EstimateResponse.model_validate(estimate))


@router.post("/{workflow_id}/schedule", response_model=SuccessResponse[ScheduleResponse])
async def preview_schedule(
    workflow_id: uuid.UUID,
    data: ScheduleRequest,
    repository: Workflows,
    planner: Planner,
    user_id: OptionalUserId,
):
    """Dated study blocks for the workflow, without touching the calendar."""
    bind_workflow(workflow_id)
    _check_daily_hours(data.daily_hours)
    workflow = await repository.get(workflow_id, viewer_id=user_id)
    planned = await planner.plan(workflow, data.start_date, data.daily_hours)
    return SuccessResponse(data=_schedule_response(planned))


@router.post(
    "/{workflow_id}/implement",
    response_model=ImplementResponse,
    responses={502: {"model": PartialPublishResponse}},
)
async def implement_workflow(
    workflow_id: uuid.UUID,
    data: ImplementRequest,
    repository: Workflows,
    planner: Planner,
    user_id: OptionalUserId,
):
    """
    Estimate, schedule and publish the workflow to the caller's calendar.

    Only the owner can implement; others fork first.
    """
    bind_workflow(workflow_id)
    _check_daily_hours(data.daily_hours)
    caller = user_id or data.user_id
    workflow = await repository.get_owned(workflow_id, caller)

    try:
        planned, result = await planner.implement(
            workflow,
            data.access_token,
            start_date=data.start_date,
            daily_hours=data.daily_hours,
            user_id=caller,
            force=data.force,
        )
    except PartialPublish as exc:
        # Returned, not raised, so the partial publish state is committed
        body = PartialPublishResponse(
            error=str(exc),
            created_count=exc.created_count,
            failed_at=exc.failed_at,
        )
        return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content=body.model_dump(mode="json"))

    return ImplementResponse(
        created_count=result.created_count,
        event_ids=result.event_ids,
        schedule=_schedule_response(planned),
    )
