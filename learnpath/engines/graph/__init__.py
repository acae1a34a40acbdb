"""Path graph, validation cache and edge validation engine."""

from learnpath.engines.graph.path_graph import (
    EdgeValidation,
    GraphEdge,
    GraphNode,
    PathGraph,
    Position,
)
from learnpath.engines.graph.validation_cache import (
    InMemoryValidationCache,
    SqlValidationCache,
    ValidationCache,
    ValidationRecord,
)
from learnpath.engines.graph.edge_validation import (
    EdgeValidationEngine,
    ValidationOutcome,
    UNAVAILABLE_REASON,
)

__all__ = [
    "EdgeValidation",
    "GraphEdge",
    "GraphNode",
    "PathGraph",
    "Position",
    "InMemoryValidationCache",
    "SqlValidationCache",
    "ValidationCache",
    "ValidationRecord",
    "EdgeValidationEngine",
    "ValidationOutcome",
    "UNAVAILABLE_REASON",
]
