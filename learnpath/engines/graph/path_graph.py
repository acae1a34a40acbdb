"""
Path Graph - in-memory directed concept graph for one workflow.

Nodes are placements of catalog concepts (node id == concept id) with a 2-D
position. Edges mean "source is a prerequisite of target". Mutations are
synchronous; edge validation is handed to an attached validator and never
awaited here, so the editor stays responsive whatever the reasoning latency.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Protocol

from learnpath.errors import (
    DuplicateEdgeError,
    SelfLoopError,
    UnknownEdgeError,
    UnknownNodeError,
)
from learnpath.kernel.models.workflow import ValidationStatus

PENDING_REASON = "Validating..."


@dataclass
class Position:
    x: float = 0.0
    y: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass
class EdgeValidation:
    """Validation state carried by every edge."""
    status: ValidationStatus = ValidationStatus.PENDING
    reason: str = PENDING_REASON
    recommendation: Optional[str] = None
    validated_at: Optional[datetime] = None

    @property
    def is_pending(self) -> bool:
        return self.status == ValidationStatus.PENDING


@dataclass
class GraphNode:
    id: str
    title: str
    description: Optional[str] = None
    position: Position = field(default_factory=Position)


@dataclass
class GraphEdge:
    id: str
    source_node_id: str
    target_node_id: str
    validation: EdgeValidation = field(default_factory=EdgeValidation)
    # Bumped on every reconnection; stale verdicts carry an older revision
    revision: int = 0


class EdgeValidator(Protocol):
    def submit(self, graph: "PathGraph", edge: GraphEdge) -> Any: ...


def edge_id_for(source_node_id: str, target_node_id: str) -> str:
    return f"e{source_node_id}-{target_node_id}"


class PathGraph:
    """Single-writer graph of concepts and prerequisite edges."""

    def __init__(self, validator: Optional[EdgeValidator] = None):
        self._nodes: Dict[str, GraphNode] = {}
        self._edges: Dict[str, GraphEdge] = {}
        self.validator = validator

    # ── Nodes ────────────────────────────────────────────────────────────

    @property
    def nodes(self) -> List[GraphNode]:
        """Nodes in insertion order."""
        return list(self._nodes.values())

    def has_node(self, node_id: Any) -> bool:
        return str(node_id) in self._nodes

    def get_node(self, node_id: Any) -> GraphNode:
        try:
            return self._nodes[str(node_id)]
        except KeyError:
            raise UnknownNodeError(f"Node {node_id} is not in the graph") from None

    def add_node(self, concept: Any, position: Optional[Position] = None) -> bool:
        """
        Place a concept in the graph.

        `concept` is anything with id, title and description attributes.
        Placing a concept twice is a no-op and returns False.
        """
        node_id = str(concept.id)
        if node_id in self._nodes:
            return False
        self._nodes[node_id] = GraphNode(
            id=node_id,
            title=concept.title,
            description=getattr(concept, "description", None),
            position=position or Position(),
        )
        return True

    def move_node(self, node_id: Any, position: Position) -> None:
        self.get_node(node_id).position = position

    def remove_node(self, node_id: Any) -> List[GraphEdge]:
        """Remove a node and every edge touching it. Returns the removed edges."""
        node = self.get_node(node_id)
        removed = [
            e for e in self._edges.values()
            if node.id in (e.source_node_id, e.target_node_id)
        ]
        for edge in removed:
            del self._edges[edge.id]
        del self._nodes[node.id]
        return removed

    def node_positions(self) -> Dict[str, Dict[str, float]]:
        return {n.id: n.position.as_dict() for n in self._nodes.values()}

    # ── Edges ────────────────────────────────────────────────────────────

    @property
    def edges(self) -> List[GraphEdge]:
        """Edges in creation order."""
        return list(self._edges.values())

    def get_edge(self, edge_id: str) -> GraphEdge:
        try:
            return self._edges[edge_id]
        except KeyError:
            raise UnknownEdgeError(f"Edge {edge_id} is not in the graph") from None

    def find_edge(self, source_node_id: Any, target_node_id: Any) -> Optional[GraphEdge]:
        source, target = str(source_node_id), str(target_node_id)
        for edge in self._edges.values():
            if edge.source_node_id == source and edge.target_node_id == target:
                return edge
        return None

    def _check_endpoints(self, source: str, target: str, ignore_edge: Optional[str] = None) -> None:
        if source == target:
            raise SelfLoopError(f"A concept cannot be its own prerequisite ({source})")
        for node_id in (source, target):
            if node_id not in self._nodes:
                raise UnknownNodeError(f"Node {node_id} is not in the graph")
        existing = self.find_edge(source, target)
        if existing is not None and existing.id != ignore_edge:
            raise DuplicateEdgeError(f"Edge {source} -> {target} already exists")

    def add_edge(
        self,
        source_node_id: Any,
        target_node_id: Any,
        validation: Optional[EdgeValidation] = None,
    ) -> GraphEdge:
        """
        Connect source -> target and return immediately.

        New edges start pending and are handed to the validator. Passing a
        settled `validation` (when loading a saved graph) skips that step.

        Raises:
            SelfLoopError, UnknownNodeError, DuplicateEdgeError
        """
        source, target = str(source_node_id), str(target_node_id)
        self._check_endpoints(source, target)

        base_id = edge_id = edge_id_for(source, target)
        suffix = 1
        # An earlier edge may have been reconnected away from this pair, keeping its id
        while edge_id in self._edges:
            edge_id = f"{base_id}-{suffix}"
            suffix += 1
        edge = GraphEdge(
            id=edge_id,
            source_node_id=source,
            target_node_id=target,
            validation=validation or EdgeValidation(),
        )
        self._edges[edge.id] = edge
        if edge.validation.is_pending:
            self._dispatch(edge)
        return edge

    def update_edge_endpoints(
        self,
        edge_id: str,
        new_source_node_id: Any,
        new_target_node_id: Any,
    ) -> GraphEdge:
        """Reconnect an edge; its validation goes back to pending."""
        edge = self.get_edge(edge_id)
        source, target = str(new_source_node_id), str(new_target_node_id)
        self._check_endpoints(source, target, ignore_edge=edge.id)

        edge.source_node_id = source
        edge.target_node_id = target
        edge.revision += 1
        edge.validation = EdgeValidation()
        self._dispatch(edge)
        return edge

    def remove_edge(self, edge_id: str) -> GraphEdge:
        edge = self.get_edge(edge_id)
        del self._edges[edge_id]
        return edge

    def apply_validation(
        self,
        edge_id: str,
        revision: int,
        status: ValidationStatus,
        reason: str,
        recommendation: Optional[str] = None,
        validated_at: Optional[datetime] = None,
    ) -> bool:
        """
        Record a verdict for an edge revision.

        Returns False (and changes nothing) when the edge was removed or
        reconnected since the verdict was requested.
        """
        edge = self._edges.get(edge_id)
        if edge is None or edge.revision != revision:
            return False
        edge.validation = EdgeValidation(
            status=status,
            reason=reason,
            recommendation=recommendation,
            validated_at=validated_at or datetime.now(timezone.utc),
        )
        return True

    def pending_edges(self) -> List[GraphEdge]:
        return [e for e in self._edges.values() if e.validation.is_pending]

    def _dispatch(self, edge: GraphEdge) -> None:
        if self.validator is not None:
            self.validator.submit(self, edge)

    # ── Queries ──────────────────────────────────────────────────────────

    def prerequisites_of(self, node_id: Any) -> List[str]:
        target = str(node_id)
        return [e.source_node_id for e in self._edges.values() if e.target_node_id == target]

    def endpoint_titles(self, edge: GraphEdge) -> tuple[str, str]:
        return (
            self._nodes[edge.source_node_id].title,
            self._nodes[edge.target_node_id].title,
        )

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[GraphNode]:
        return iter(self._nodes.values())
