"""
Workflow Repository - persistence of saved path graphs.

Saving always goes through a PathGraph so the edge invariants (no
self-loops, one edge per ordered pair, endpoints placed in the graph) hold
for stored workflows exactly as they do in the editor.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from learnpath.engines.catalog.concept_catalog import ConceptCatalog
from learnpath.engines.graph.edge_validation import EdgeValidationEngine
from learnpath.engines.graph.path_graph import EdgeValidation, PathGraph, Position
from learnpath.errors import (
    AlreadyPublished,
    AlreadyStarred,
    WorkflowNotFound,
    WorkflowPermissionDenied,
)
from learnpath.kernel.events.event_store import EventStore
from learnpath.kernel.models.concept import Concept
from learnpath.kernel.models.event_log import EventType
from learnpath.kernel.models.workflow import (
    PublishStatus,
    ValidationStatus,
    Workflow,
    WorkflowEdge,
    WorkflowStar,
)
from learnpath.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class EdgeInput:
    """An edge as sent by the editor, optionally with a verdict it already holds."""
    source_node_id: uuid.UUID
    target_node_id: uuid.UUID
    is_valid: Optional[bool] = None
    validation_reason: Optional[str] = None
    recommendation: Optional[str] = None

    def settled_validation(self) -> Optional[EdgeValidation]:
        if self.is_valid is None or not self.validation_reason:
            return None
        return EdgeValidation(
            status=ValidationStatus.VALID if self.is_valid else ValidationStatus.INVALID,
            reason=self.validation_reason,
            recommendation=self.recommendation,
            validated_at=datetime.now(timezone.utc),
        )


def _parse_node_id(raw: Any) -> uuid.UUID:
    try:
        return raw if isinstance(raw, uuid.UUID) else uuid.UUID(str(raw))
    except ValueError:
        raise ValueError(f"Invalid node id in node_positions: {raw!r}") from None


def _position(raw: Any) -> Position:
    if isinstance(raw, Mapping):
        return Position(x=float(raw.get("x", 0.0)), y=float(raw.get("y", 0.0)))
    return Position()


def stored_edge_inputs(workflow: Workflow) -> List[EdgeInput]:
    """Edges of a stored workflow as editor input; pending ones get validated again."""
    inputs = []
    for edge in workflow.edges:
        settled = edge.validation_status != ValidationStatus.PENDING
        inputs.append(EdgeInput(
            source_node_id=edge.source_node_id,
            target_node_id=edge.target_node_id,
            is_valid=(edge.validation_status == ValidationStatus.VALID) if settled else None,
            validation_reason=edge.validation_reason if settled else None,
            recommendation=edge.recommendation,
        ))
    return inputs


def _after_claim(previous: PublishStatus) -> PublishStatus:
    # A taken-over stale claim may have left events behind
    if previous == PublishStatus.PUBLISHING:
        return PublishStatus.PARTIAL
    return previous


class WorkflowRepository:
    """Service for saving, loading and listing workflows."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.catalog = ConceptCatalog(session)
        self.event_store = EventStore(session)

    # ── Graph construction ───────────────────────────────────────────────

    async def build_graph(
        self,
        topic_id: int,
        edges: Sequence[EdgeInput],
        node_positions: Mapping[str, Any],
        validator: Optional[EdgeValidationEngine] = None,
    ) -> PathGraph:
        """
        Assemble a PathGraph from editor input and settle every edge verdict.

        Node order: node_positions order, then edge endpoints not listed there.

        Raises:
            ConceptNotFound: an id does not name a concept
            ValueError: a concept belongs to another topic or an id is malformed
            GraphError: an edge breaks the graph invariants
        """
        ordered_ids: List[uuid.UUID] = []
        for raw in node_positions:
            node_id = _parse_node_id(raw)
            if node_id not in ordered_ids:
                ordered_ids.append(node_id)
        for edge in edges:
            for node_id in (edge.source_node_id, edge.target_node_id):
                if node_id not in ordered_ids:
                    ordered_ids.append(node_id)

        concepts = await self.catalog.get_many(ordered_ids)
        foreign = [c.title for c in concepts.values() if c.topic_id != topic_id]
        if foreign:
            raise ValueError(
                "Concepts from another topic cannot be placed: " + ", ".join(sorted(foreign))
            )

        positions = {str(k): v for k, v in node_positions.items()}
        graph = PathGraph(validator=validator)
        for node_id in ordered_ids:
            graph.add_node(concepts[node_id], _position(positions.get(str(node_id))))
        for edge in edges:
            graph.add_edge(edge.source_node_id, edge.target_node_id, edge.settled_validation())

        if validator is not None:
            await validator.drain()
        return graph

    async def load_graph(self, workflow: Workflow) -> PathGraph:
        """PathGraph of a stored workflow, verdicts as stored."""
        positions = workflow.node_positions or {}
        edges = list(workflow.edges)
        ids: List[uuid.UUID] = [_parse_node_id(k) for k in positions]
        for edge in edges:
            for node_id in (edge.source_node_id, edge.target_node_id):
                if node_id not in ids:
                    ids.append(node_id)
        concepts = await self.catalog.get_many(ids)

        graph = PathGraph()
        for node_id in ids:
            graph.add_node(concepts[node_id], _position(positions.get(str(node_id))))
        for edge in edges:
            graph.add_edge(
                edge.source_node_id,
                edge.target_node_id,
                EdgeValidation(
                    status=ValidationStatus(edge.validation_status),
                    reason=edge.validation_reason or "",
                    recommendation=edge.recommendation,
                    validated_at=edge.validated_at,
                ),
            )
        return graph

    @staticmethod
    def _edge_rows(graph: PathGraph) -> List[WorkflowEdge]:
        rows = []
        for position, edge in enumerate(graph.edges):
            rows.append(WorkflowEdge(
                position=position,
                source_node_id=uuid.UUID(edge.source_node_id),
                target_node_id=uuid.UUID(edge.target_node_id),
                validation_status=edge.validation.status,
                validation_reason=edge.validation.reason,
                recommendation=edge.validation.recommendation,
                validated_at=edge.validation.validated_at,
            ))
        return rows

    # ── CRUD ─────────────────────────────────────────────────────────────

    async def save(
        self,
        topic_id: int,
        title: str,
        graph: PathGraph,
        user_id: Optional[str] = None,
        description: Optional[str] = None,
        is_draft: bool = False,
        forked_from_id: Optional[uuid.UUID] = None,
    ) -> Workflow:
        """Persist a new workflow (or a fork of an existing one)."""
        if forked_from_id is not None:
            # Forking requires read access to the original
            await self.get(forked_from_id, viewer_id=user_id)

        workflow = Workflow(
            topic_id=topic_id,
            user_id=user_id,
            title=title.strip(),
            description=description,
            is_draft=is_draft,
            node_positions=graph.node_positions(),
            forked_from_id=forked_from_id,
            publish_status=PublishStatus.NOT_PUBLISHED,
            edges=self._edge_rows(graph),
        )
        self.session.add(workflow)
        await self.session.flush()

        await self.catalog.increment_usage([uuid.UUID(n.id) for n in graph.nodes])
        await self.event_store.log(
            event_type=EventType.WORKFLOW_SAVED,
            entity_type="workflow",
            entity_id=workflow.id,
            user_id=user_id,
            payload={
                "topic_id": topic_id,
                "title": workflow.title,
                "node_count": len(graph),
                "edge_count": len(graph.edges),
                "is_draft": is_draft,
                "forked_from_id": forked_from_id,
            },
        )
        logger.info(
            "Workflow saved",
            extra={"workflow_id": str(workflow.id), "edge_count": len(graph.edges)},
        )
        return await self.get(workflow.id, viewer_id=user_id)

    async def update(
        self,
        workflow_id: uuid.UUID,
        user_id: Optional[str],
        title: Optional[str] = None,
        description: Optional[str] = None,
        is_draft: Optional[bool] = None,
        graph: Optional[PathGraph] = None,
    ) -> Workflow:
        """Owner-only update; a new graph replaces edges and layout."""
        workflow = await self.get_owned(workflow_id, user_id)
        changes: Dict[str, Any] = {}

        if title is not None and title.strip():
            workflow.title = title.strip()
            changes["title"] = workflow.title
        if description is not None:
            workflow.description = description
            changes["description"] = True
        if is_draft is not None:
            workflow.is_draft = is_draft
            changes["is_draft"] = is_draft
        if graph is not None:
            previous = {str(k) for k in (workflow.node_positions or {})}
            previous.update(str(e.source_node_id) for e in workflow.edges)
            previous.update(str(e.target_node_id) for e in workflow.edges)

            workflow.edges.clear()
            await self.session.flush()
            workflow.edges.extend(self._edge_rows(graph))
            workflow.node_positions = graph.node_positions()

            added = [uuid.UUID(n.id) for n in graph.nodes if n.id not in previous]
            await self.catalog.increment_usage(added)
            changes["edge_count"] = len(graph.edges)

        await self.session.flush()
        await self.event_store.log(
            event_type=EventType.WORKFLOW_UPDATED,
            entity_type="workflow",
            entity_id=workflow.id,
            user_id=user_id,
            payload=changes,
        )
        return await self.get(workflow.id, viewer_id=user_id)

    async def delete(self, workflow_id: uuid.UUID, user_id: Optional[str]) -> None:
        workflow = await self.get_owned(workflow_id, user_id)
        await self.event_store.log(
            event_type=EventType.WORKFLOW_DELETED,
            entity_type="workflow",
            entity_id=workflow.id,
            user_id=user_id,
            payload={"title": workflow.title},
        )
        await self.session.delete(workflow)
        await self.session.flush()

    async def get(self, workflow_id: uuid.UUID, viewer_id: Optional[str] = None) -> Workflow:
        """
        Load a workflow with its edges and their concepts.

        Drafts are only visible to their owner.
        """
        result = await self.session.execute(
            select(Workflow)
            .where(Workflow.id == workflow_id)
            .options(selectinload(Workflow.edges))
            .execution_options(populate_existing=True)
        )
        workflow = result.scalar_one_or_none()
        if workflow is None:
            raise WorkflowNotFound(f"Workflow {workflow_id} not found")
        if workflow.is_draft and workflow.user_id is not None and workflow.user_id != viewer_id:
            raise WorkflowNotFound(f"Workflow {workflow_id} not found")
        return workflow

    async def get_owned(self, workflow_id: uuid.UUID, user_id: Optional[str]) -> Workflow:
        workflow = await self.get(workflow_id, viewer_id=user_id)
        if workflow.user_id is not None and workflow.user_id != user_id:
            raise WorkflowPermissionDenied("Only the owner can change this workflow")
        return workflow

    async def list_public(
        self,
        topic_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[Workflow]:
        """Non-draft workflows, newest first."""
        query = (
            select(Workflow)
            .where(Workflow.is_draft.is_(False))
            .options(selectinload(Workflow.edges))
        )
        if topic_id is not None:
            query = query.where(Workflow.topic_id == topic_id)
        query = query.order_by(Workflow.created_at.desc()).offset(offset).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_for_user(self, user_id: str) -> List[Workflow]:
        """All of a user's workflows, drafts included."""
        result = await self.session.execute(
            select(Workflow)
            .where(Workflow.user_id == user_id)
            .options(selectinload(Workflow.edges))
            .order_by(Workflow.updated_at.desc())
        )
        return list(result.scalars().all())

    # ── Publishing state ─────────────────────────────────────────────────

    # ── Stars ────────────────────────────────────────────────────────────

    async def star(self, workflow_id: uuid.UUID, user_id: str) -> Workflow:
        """
        Star someone else's workflow, once per user.

        Raises:
            WorkflowNotFound: unknown workflow or someone else's draft
            WorkflowPermissionDenied: the user owns the workflow
            AlreadyStarred: the user starred it before
        """
        workflow = await self.get(workflow_id, viewer_id=user_id)
        if workflow.user_id is not None and workflow.user_id == user_id:
            raise WorkflowPermissionDenied("You cannot star your own workflow")

        existing = await self.session.execute(
            select(WorkflowStar.id).where(
                WorkflowStar.workflow_id == workflow_id,
                WorkflowStar.user_id == user_id,
            )
        )
        if existing.first() is not None:
            raise AlreadyStarred("You already starred this workflow")

        self.session.add(WorkflowStar(workflow_id=workflow_id, user_id=user_id))
        try:
            await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            raise AlreadyStarred("You already starred this workflow") from None

        await self.session.execute(
            update(Workflow)
            .where(Workflow.id == workflow_id)
            .values(star_count=Workflow.star_count + 1)
            .execution_options(synchronize_session=False)
        )
        await self.event_store.log(
            event_type=EventType.WORKFLOW_STARRED,
            entity_type="workflow",
            entity_id=workflow_id,
            user_id=user_id,
            payload={},
        )
        return await self.get(workflow_id, viewer_id=user_id)

    async def starred_by(self, user_id: str, workflow_ids: Sequence[uuid.UUID]) -> Set[uuid.UUID]:
        """Which of the given workflows the user has starred."""
        if not workflow_ids:
            return set()
        result = await self.session.execute(
            select(WorkflowStar.workflow_id).where(
                WorkflowStar.user_id == user_id,
                WorkflowStar.workflow_id.in_(list(workflow_ids)),
            )
        )
        return set(result.scalars().all())

    async def claim_publish(
        self,
        workflow: Workflow,
        force: bool = False,
        stale_after: Optional[timedelta] = None,
    ) -> PublishStatus:
        """
        Atomically move the workflow to PUBLISHING and commit, so a concurrent
        implement sees the claim. Returns the status held before the claim.

        Without force only an unpublished workflow can be claimed. With force
        a published or partial one can, and so can a PUBLISHING one whose
        claim is older than `stale_after`.

        Raises:
            AlreadyPublished: another request holds the claim or published first
        """
        await self.session.flush()
        previous = PublishStatus(workflow.publish_status)
        now = datetime.now(timezone.utc)
        allowed = [PublishStatus.NOT_PUBLISHED]
        if force:
            allowed += [PublishStatus.PARTIAL, PublishStatus.PUBLISHED]
        claimable = Workflow.publish_status.in_([s.value for s in allowed])
        if force and stale_after is not None:
            claimable = or_(
                claimable,
                and_(
                    Workflow.publish_status == PublishStatus.PUBLISHING.value,
                    Workflow.publish_claimed_at < now - stale_after,
                ),
            )

        result = await self.session.execute(
            update(Workflow)
            .where(
                Workflow.id == workflow.id,
                Workflow.publish_status == previous.value,
                claimable,
            )
            .values(publish_status=PublishStatus.PUBLISHING.value, publish_claimed_at=now)
            .execution_options(synchronize_session="fetch")
        )
        if result.rowcount != 1:
            raise AlreadyPublished("Workflow is being published by another request")
        await self.session.commit()
        return previous

    async def release_publish(self, workflow: Workflow, previous: PublishStatus) -> None:
        """Give the claim back after a publish that created no events, and commit."""
        workflow.publish_status = _after_claim(previous)
        workflow.publish_claimed_at = None
        await self.session.commit()

    async def mark_published(self, workflow: Workflow, event_count: int, user_id: Optional[str]) -> None:
        workflow.publish_status = PublishStatus.PUBLISHED
        workflow.publish_claimed_at = None
        workflow.published_event_count = event_count
        workflow.published_at = datetime.now(timezone.utc)
        await self.event_store.log(
            event_type=EventType.WORKFLOW_IMPLEMENTED,
            entity_type="workflow",
            entity_id=workflow.id,
            user_id=user_id,
            payload={"event_count": event_count},
        )

    async def mark_publish_failed(
        self,
        workflow: Workflow,
        created_count: int,
        user_id: Optional[str],
        failed_at: Optional[dict] = None,
        previous: PublishStatus = PublishStatus.NOT_PUBLISHED,
    ) -> None:
        """
        Record a failed publish. Events already created make the workflow
        partial; otherwise it returns to `previous`.
        """
        workflow.publish_claimed_at = None
        if created_count > 0:
            workflow.publish_status = PublishStatus.PARTIAL
            workflow.published_event_count = created_count
            workflow.published_at = datetime.now(timezone.utc)
        else:
            workflow.publish_status = _after_claim(previous)
        await self.event_store.log(
            event_type=EventType.WORKFLOW_PUBLISH_FAILED,
            entity_type="workflow",
            entity_id=workflow.id,
            user_id=user_id,
            payload={"created_count": created_count, "failed_at": failed_at or {}},
        )
