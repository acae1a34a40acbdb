"""
Effort Estimator - study hours per concept.

Asks the reasoning service for per-node hours and a sustainable daily load.
Any node the service leaves out (or the whole set, when the service is
unavailable) falls back to a flat default so scheduling is never blocked.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from learnpath.ai.reasoning import ConceptRef, EffortVerdict, ReasoningClient
from learnpath.errors import ReasoningUnavailable
from learnpath.logging_config import get_logger

logger = get_logger(__name__)

MIN_NODE_HOURS = 0.5
MAX_NODE_HOURS = 200.0


@dataclass
class NodeEstimate:
    node_id: str
    node_title: str
    estimated_hours: float
    description: str = ""


@dataclass
class ScheduleEstimate:
    """Summary figures plus per-node hours; what the implement dialog shows."""
    total_hours: float
    suggested_daily_hours: float
    total_days: int
    nodes: List[NodeEstimate] = field(default_factory=list)
    source: str = "ai"  # "ai" | "heuristic"

    def hours_by_node(self) -> Dict[str, float]:
        return {n.node_id: n.estimated_hours for n in self.nodes}


def round_hours(hours: float) -> float:
    """Round to the nearest half hour, never below MIN_NODE_HOURS."""
    clamped = min(max(hours, MIN_NODE_HOURS), MAX_NODE_HOURS)
    return max(MIN_NODE_HOURS, round(clamped * 2) / 2)


def total_days_for(total_hours: float, daily_hours: float) -> int:
    if total_hours <= 0 or daily_hours <= 0:
        return 0
    return math.ceil(total_hours / daily_hours)


class EffortEstimator:
    """Produces a ScheduleEstimate for a set of concepts."""

    def __init__(
        self,
        reasoning: Optional[ReasoningClient],
        default_hours: float = 2.0,
        default_daily_hours: float = 2.0,
        max_daily_hours: float = 12.0,
    ):
        self.reasoning = reasoning
        self.default_hours = default_hours
        self.default_daily_hours = default_daily_hours
        self.max_daily_hours = max_daily_hours

    async def estimate(self, nodes: Sequence[ConceptRef]) -> ScheduleEstimate:
        if not nodes:
            return ScheduleEstimate(
                total_hours=0.0,
                suggested_daily_hours=self.default_daily_hours,
                total_days=0,
                source="heuristic",
            )

        verdict: Optional[EffortVerdict] = None
        if self.reasoning is not None:
            try:
                verdict = await self.reasoning.estimate_effort(nodes)
            except ReasoningUnavailable as exc:
                logger.warning(
                    "Effort estimation unavailable, using %.1fh per node",
                    self.default_hours,
                    extra={"node_count": len(nodes), "error": str(exc)},
                )

        by_id = {n.node_id: n for n in verdict.nodes} if verdict else {}
        estimates: List[NodeEstimate] = []
        for node in nodes:
            answer = by_id.get(node.id)
            if answer is not None and answer.hours > 0:
                hours = round_hours(answer.hours)
                description = answer.description or (node.description or "")
            else:
                hours = self.default_hours
                description = node.description or ""
            estimates.append(NodeEstimate(
                node_id=node.id,
                node_title=node.title,
                estimated_hours=hours,
                description=description,
            ))

        daily = self.default_daily_hours
        if verdict and verdict.suggested_daily_hours:
            daily = min(round_hours(verdict.suggested_daily_hours), self.max_daily_hours)

        total = sum(e.estimated_hours for e in estimates)
        return ScheduleEstimate(
            total_hours=total,
            suggested_daily_hours=daily,
            total_days=total_days_for(total, daily),
            nodes=estimates,
            source="ai" if by_id else "heuristic",
        )
