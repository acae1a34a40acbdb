"""
Workflows Engine - saved learning paths and their calendar rollout.
"""

from learnpath.engines.workflows.planner import PlannedSchedule, WorkflowPlanner, concept_refs
from learnpath.engines.workflows.repository import (
    EdgeInput,
    WorkflowRepository,
    stored_edge_inputs,
)

__all__ = [
    "EdgeInput",
    "PlannedSchedule",
    "WorkflowPlanner",
    "WorkflowRepository",
    "concept_refs",
    "stored_edge_inputs",
]
