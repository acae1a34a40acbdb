"""
Domain errors for the learning path engine.

Reasoning-service failures are recovered where they happen (fail-open
validation, heuristic estimation) except for the duplicate check, which
blocks concept creation. Calendar failures always reach the caller.
"""

from dataclasses import dataclass
from typing import Any, List, Optional


class LearningPathError(Exception):
    """Base class for all domain errors."""


# ── Reasoning service ────────────────────────────────────────────────────

class ReasoningUnavailable(LearningPathError):
    """The reasoning service timed out, failed, or returned an unusable answer."""


class ValidationUnavailable(ReasoningUnavailable):
    """Edge validation could not reach a verdict; recovered by fail-open."""


class EstimationUnavailable(ReasoningUnavailable):
    """Effort estimation could not reach the service; recovered by heuristic."""


# ── Concept catalog ──────────────────────────────────────────────────────

class DuplicateConcept(LearningPathError):
    """Creation blocked: the candidate matches an existing concept in the topic."""

    def __init__(self, reason: str, suggested_existing: Optional[Any] = None):
        super().__init__(reason)
        self.reason = reason
        self.suggested_existing = suggested_existing


class DuplicateCheckUnavailable(LearningPathError):
    """The duplicate check failed, so the concept was not created."""


class ConceptNotFound(LearningPathError):
    pass


# ── Graph ────────────────────────────────────────────────────────────────

class GraphError(LearningPathError):
    """A graph mutation was rejected."""


class SelfLoopError(GraphError):
    pass


class DuplicateEdgeError(GraphError):
    pass


class UnknownNodeError(GraphError):
    pass


class UnknownEdgeError(GraphError):
    pass


@dataclass
class CyclicGraph:
    """
    Warning raised by the scheduler when prerequisites form a cycle.

    Not an exception: the schedule is still produced using insertion order
    for the nodes listed here.
    """

    node_ids: List[str]

    @property
    def message(self) -> str:
        return (
            "Prerequisite cycle detected; scheduled in insertion order: "
            + ", ".join(self.node_ids)
        )


# ── Workflows / publishing ───────────────────────────────────────────────

class WorkflowNotFound(LearningPathError):
    pass


class WorkflowPermissionDenied(LearningPathError):
    pass


class AlreadyStarred(LearningPathError):
    """The user already starred this workflow."""


class AlreadyPublished(LearningPathError):
    """The workflow's schedule was already pushed to the calendar."""


class AuthRequired(LearningPathError):
    """Calendar access token missing or rejected; the user must re-authenticate."""


class PartialPublish(LearningPathError):
    """Some calendar events were created before publishing stopped."""

    def __init__(self, created_count: int, failed_at: dict, detail: str = ""):
        self.created_count = created_count
        self.failed_at = failed_at
        self.detail = detail
        super().__init__(
            f"Created {created_count} event(s) before failing at block "
            f"{failed_at.get('index')} ({failed_at.get('date')}): {detail}"
        )
