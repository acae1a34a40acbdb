"""Effort estimation and study scheduling."""

from learnpath.engines.planning.effort_estimator import (
    EffortEstimator,
    NodeEstimate,
    ScheduleEstimate,
)
from learnpath.engines.planning.scheduler import (
    ScheduleResult,
    ScheduledBlock,
    build_schedule,
    topological_order,
)

__all__ = [
    "EffortEstimator",
    "NodeEstimate",
    "ScheduleEstimate",
    "ScheduleResult",
    "ScheduledBlock",
    "build_schedule",
    "topological_order",
]
