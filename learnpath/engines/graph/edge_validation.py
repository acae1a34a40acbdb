"""
Edge Validation Engine - asynchronous verdicts for prerequisite edges.

Per edge: pending -> valid | invalid, and back to pending only when the edge
is reconnected. A verdict is looked up by concept titles in the
ValidationCache first; on a miss the reasoning service is asked and the
answer stored. When the service is unavailable the edge fails open to valid
with reason "Validation unavailable" and nothing is cached, so a later
attempt against a healthy service can still produce a real verdict.

Validity is advisory: invalid edges stay in the graph and are scheduled
like any other edge.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Set

from learnpath.ai.reasoning import ReasoningClient
from learnpath.engines.graph.path_graph import GraphEdge, PathGraph
from learnpath.engines.graph.validation_cache import ValidationCache, ValidationRecord
from learnpath.errors import ReasoningUnavailable
from learnpath.kernel.models.workflow import ValidationStatus
from learnpath.logging_config import get_logger

logger = get_logger(__name__)

UNAVAILABLE_REASON = "Validation unavailable"


@dataclass
class ValidationOutcome:
    """Verdict for one ordered concept pair, plus where it came from."""
    is_valid: bool
    reason: str
    recommendation: Optional[str] = None
    from_database: bool = False
    # False when the reasoning service could not be reached
    available: bool = True
    validated_at: Optional[datetime] = None

    @property
    def status(self) -> ValidationStatus:
        return ValidationStatus.VALID if self.is_valid else ValidationStatus.INVALID


class EdgeValidationEngine:
    """Validates concept pairs, caching verdicts, and drives edge state in a PathGraph."""

    def __init__(
        self,
        reasoning: ReasoningClient,
        cache: ValidationCache,
        fail_closed: bool = False,
    ):
        self.reasoning = reasoning
        self.cache = cache
        self.fail_closed = fail_closed
        self._tasks: Set[asyncio.Task] = set()

    async def validate_pair(self, from_title: str, to_title: str) -> ValidationOutcome:
        """Verdict for "from_title is a prerequisite of to_title"."""
        cached = await self.cache.get(from_title, to_title)
        if cached is not None:
            return ValidationOutcome(
                is_valid=cached.is_valid,
                reason=cached.reason,
                recommendation=cached.recommendation,
                from_database=True,
                validated_at=cached.validated_at,
            )

        try:
            verdict = await self.reasoning.validate_prerequisite(from_title, to_title)
        except ReasoningUnavailable as exc:
            logger.warning(
                "Edge validation unavailable, failing %s",
                "closed" if self.fail_closed else "open",
                extra={"from_node": from_title, "to_node": to_title, "error": str(exc)},
            )
            return self._unavailable_outcome()

        record = ValidationRecord(
            from_title=from_title,
            to_title=to_title,
            is_valid=verdict.is_valid,
            reason=verdict.reason,
            recommendation=verdict.recommendation,
        )
        await self.cache.put(record)
        return ValidationOutcome(
            is_valid=record.is_valid,
            reason=record.reason,
            recommendation=record.recommendation,
            from_database=False,
            validated_at=record.validated_at,
        )

    def _unavailable_outcome(self) -> ValidationOutcome:
        return ValidationOutcome(
            is_valid=not self.fail_closed,
            reason=UNAVAILABLE_REASON,
            available=False,
            validated_at=datetime.now(timezone.utc),
        )

    def submit(self, graph: PathGraph, edge: GraphEdge) -> asyncio.Task:
        """
        Start validating an edge in the background and return the task.

        Titles and revision are captured now; if the edge is removed or
        reconnected before the verdict arrives, the verdict is dropped.
        """
        from_title, to_title = graph.endpoint_titles(edge)
        task = asyncio.get_running_loop().create_task(
            self._validate_edge(graph, edge.id, edge.revision, from_title, to_title),
            name=f"validate-{edge.id}-r{edge.revision}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _validate_edge(
        self,
        graph: PathGraph,
        edge_id: str,
        revision: int,
        from_title: str,
        to_title: str,
    ) -> ValidationOutcome:
        try:
            outcome = await self.validate_pair(from_title, to_title)
        except Exception:
            # Nobody awaits this task; settle the edge as if the service were down
            logger.exception(
                "Edge validation task failed",
                extra={"edge_id": edge_id, "from_node": from_title, "to_node": to_title},
            )
            outcome = self._unavailable_outcome()

        applied = graph.apply_validation(
            edge_id,
            revision,
            outcome.status,
            outcome.reason,
            outcome.recommendation,
            outcome.validated_at,
        )
        if not applied:
            logger.debug("Discarded verdict for stale edge", extra={"edge_id": edge_id})
        return outcome

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every submitted validation has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
