"""
Reasoning service adapter.

Every call is bounded by a timeout and either returns a typed verdict or
raises ReasoningUnavailable; callers decide the fallback.
"""

from learnpath.ai.reasoning import (
    ConceptRef,
    DuplicateVerdict,
    EffortVerdict,
    NodeEffort,
    PathVerdict,
    ReasoningClient,
    ReasoningService,
)

__all__ = [
    "ConceptRef",
    "DuplicateVerdict",
    "EffortVerdict",
    "NodeEffort",
    "PathVerdict",
    "ReasoningClient",
    "ReasoningService",
]
