"""
Workflow Planner - turns a saved workflow into an estimate, a schedule
and finally calendar events.
"""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from learnpath.ai.reasoning import ConceptRef
from learnpath.engines.calendar.calendar_publisher import CalendarPublisher, PublishResult
from learnpath.engines.graph.path_graph import PathGraph
from learnpath.engines.planning.effort_estimator import EffortEstimator, ScheduleEstimate
from learnpath.engines.planning.scheduler import ScheduleResult, build_schedule
from learnpath.engines.workflows.repository import WorkflowRepository
from learnpath.errors import AlreadyPublished, PartialPublish
from learnpath.kernel.models.workflow import PublishStatus, Workflow
from learnpath.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class PlannedSchedule:
    estimate: ScheduleEstimate
    schedule: ScheduleResult


def concept_refs(graph: PathGraph) -> list[ConceptRef]:
    return [
        ConceptRef(id=node.id, title=node.title, description=node.description)
        for node in graph.nodes
    ]


class WorkflowPlanner:
    """Estimate, schedule and publish a stored workflow."""

    def __init__(
        self,
        repository: WorkflowRepository,
        estimator: EffortEstimator,
        publisher: Optional[CalendarPublisher] = None,
        claim_timeout: Optional[timedelta] = None,
    ):
        self.repository = repository
        self.estimator = estimator
        self.publisher = publisher
        self.claim_timeout = claim_timeout

    async def estimate(self, workflow: Workflow) -> ScheduleEstimate:
        graph = await self.repository.load_graph(workflow)
        return await self.estimator.estimate(concept_refs(graph))

    async def plan(
        self,
        workflow: Workflow,
        start_date: date,
        daily_hours: Optional[float] = None,
    ) -> PlannedSchedule:
        """Estimate every node then pack the blocks from start_date on.

        Without daily_hours the estimator's suggestion is used.
        """
        graph = await self.repository.load_graph(workflow)
        estimate = await self.estimator.estimate(concept_refs(graph))
        schedule = build_schedule(
            graph.nodes,
            graph.edges,
            estimate.hours_by_node(),
            start_date=start_date,
            daily_hours=daily_hours or estimate.suggested_daily_hours,
            default_hours=self.estimator.default_hours,
        )
        return PlannedSchedule(estimate=estimate, schedule=schedule)

    async def implement(
        self,
        workflow: Workflow,
        access_token: Optional[str],
        start_date: date,
        daily_hours: Optional[float] = None,
        user_id: Optional[str] = None,
        force: bool = False,
    ) -> tuple[PlannedSchedule, PublishResult]:
        """
        Schedule the workflow and create its calendar events.

        A workflow that was published, even partially, is only published
        again with force=True. The publish runs under a committed claim
        (status PUBLISHING) so concurrent implements cannot both publish.

        Raises:
            AlreadyPublished, AuthRequired, PartialPublish
        """
        if self.publisher is None:
            raise RuntimeError("WorkflowPlanner has no calendar publisher")
        status = PublishStatus(workflow.publish_status)
        if status == PublishStatus.PUBLISHING and not force:
            raise AlreadyPublished("Workflow is being published by another request")
        if status != PublishStatus.NOT_PUBLISHED and not force:
            raise AlreadyPublished(
                f"Workflow already {status.value} "
                f"({workflow.published_event_count} event(s)); pass force to publish again"
            )

        planned = await self.plan(workflow, start_date, daily_hours)
        descriptions = {n.node_id: n.description for n in planned.estimate.nodes}
        previous = await self.repository.claim_publish(
            workflow, force=force, stale_after=self.claim_timeout,
        )
        try:
            result = await self.publisher.publish(
                planned.schedule.blocks,
                access_token,
                summary_prefix=workflow.title,
                descriptions=descriptions,
                workflow_id=workflow.id,
            )
        except PartialPublish as exc:
            await self.repository.mark_publish_failed(
                workflow, exc.created_count, user_id, failed_at=exc.failed_at, previous=previous,
            )
            raise
        except Exception:
            # Nothing was created (AuthRequired and the like)
            await self.repository.release_publish(workflow, previous)
            raise

        await self.repository.mark_published(workflow, result.created_count, user_id)
        logger.info(
            "Workflow implemented",
            extra={"workflow_id": str(workflow.id), "event_count": result.created_count},
        )
        return planned, result
