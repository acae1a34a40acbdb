"""
Scheduler - turns estimated concepts into dated study blocks.

1. Order nodes topologically along prerequisite edges, breaking ties by
   insertion order. A cycle never blocks the walk: when no node is free, the
   earliest-inserted remaining node is released and a CyclicGraph warning
   is recorded.
2. Pack nodes greedily into days of `daily_hours`. A node starts where the
   previous one ended and keeps all its hours, running on into the
   following days if needed; it is never split into several blocks.

The result is deterministic for a given input. It is feasible, not optimal.
"""

import heapq
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from learnpath.engines.planning.effort_estimator import total_days_for
from learnpath.errors import CyclicGraph
from learnpath.logging_config import get_logger

logger = get_logger(__name__)

_EPS = 1e-9


@dataclass
class ScheduledBlock:
    """One concept's study block: starts on `date` at `start_offset_hours` into the day."""
    date: date
    node_id: str
    hours: float
    node_title: str = ""
    start_offset_hours: float = 0.0
    end_date: Optional[date] = None


@dataclass
class ScheduleResult:
    blocks: List[ScheduledBlock] = field(default_factory=list)
    order: List[str] = field(default_factory=list)
    warnings: List[CyclicGraph] = field(default_factory=list)
    total_hours: float = 0.0
    daily_hours: float = 0.0
    # ceil(total_hours / daily_hours); last_date is what the walk actually produced
    total_days: int = 0
    last_date: Optional[date] = None


def _edge_pair(edge: Any) -> Tuple[str, str]:
    if isinstance(edge, tuple):
        source, target = edge
    else:
        source, target = edge.source_node_id, edge.target_node_id
    return str(source), str(target)


def _adjacency(node_ids: Sequence[str], edges: Iterable[Any]) -> Dict[str, List[str]]:
    known = set(node_ids)
    successors: Dict[str, List[str]] = {nid: [] for nid in node_ids}
    for edge in edges:
        source, target = _edge_pair(edge)
        # Edges to nodes outside the set, self-loops and repeats carry no constraint
        if source in known and target in known and source != target \
                and target not in successors[source]:
            successors[source].append(target)
    return successors


def find_cycle_nodes(node_ids: Sequence[str], successors: Mapping[str, List[str]]) -> Set[str]:
    """Nodes that lie on at least one cycle (iterative DFS colouring)."""
    white, gray, black = 0, 1, 2
    colour = {nid: white for nid in node_ids}
    in_cycle: Set[str] = set()

    for root in node_ids:
        if colour[root] != white:
            continue
        path: List[str] = [root]
        stack: List[Tuple[str, int]] = [(root, 0)]
        colour[root] = gray
        while stack:
            node, next_child = stack[-1]
            children = successors[node]
            if next_child < len(children):
                stack[-1] = (node, next_child + 1)
                child = children[next_child]
                if colour[child] == white:
                    colour[child] = gray
                    stack.append((child, 0))
                    path.append(child)
                elif colour[child] == gray:
                    # Back edge: everything on the path from child to node is a cycle
                    in_cycle.update(path[path.index(child):])
            else:
                colour[node] = black
                stack.pop()
                path.pop()
    return in_cycle


def topological_order(
    node_ids: Sequence[str],
    edges: Iterable[Any],
) -> Tuple[List[str], List[CyclicGraph]]:
    """Prerequisite-respecting order; ties and cycles resolved by insertion order."""
    successors = _adjacency(node_ids, edges)
    index = {nid: i for i, nid in enumerate(node_ids)}

    warnings: List[CyclicGraph] = []
    cycle_nodes = find_cycle_nodes(node_ids, successors)
    if cycle_nodes:
        warnings.append(CyclicGraph(node_ids=sorted(cycle_nodes, key=index.__getitem__)))

    indegree = {nid: 0 for nid in node_ids}
    for source in node_ids:
        for target in successors[source]:
            indegree[target] += 1

    ready = [(index[nid], nid) for nid in node_ids if indegree[nid] == 0]
    heapq.heapify(ready)
    order: List[str] = []
    placed: Set[str] = set()

    while len(order) < len(node_ids):
        if not ready:
            # Every remaining node waits on another: release the earliest one
            released = min((nid for nid in node_ids if nid not in placed), key=index.__getitem__)
            indegree[released] = 0
            heapq.heappush(ready, (index[released], released))
        _, nid = heapq.heappop(ready)
        if nid in placed:
            continue
        placed.add(nid)
        order.append(nid)
        for target in successors[nid]:
            if target in placed:
                continue
            indegree[target] -= 1
            if indegree[target] == 0:
                heapq.heappush(ready, (index[target], target))

    return order, warnings


def build_schedule(
    nodes: Sequence[Any],
    edges: Iterable[Any],
    per_node_hours: Mapping[str, float],
    start_date: date,
    daily_hours: float,
    default_hours: float = 2.0,
) -> ScheduleResult:
    """
    Allocate study blocks day by day.

    `nodes` are objects with `id` and `title` in insertion order; `edges`
    are (source_id, target_id) tuples or objects with source_node_id and
    target_node_id. Nodes without an entry in `per_node_hours` get
    `default_hours`.
    """
    if daily_hours <= 0:
        raise ValueError("daily_hours must be positive")

    node_ids = [str(n.id) for n in nodes]
    if len(set(node_ids)) != len(node_ids):
        raise ValueError("Node ids must be unique")
    titles = {str(n.id): getattr(n, "title", "") for n in nodes}

    order, warnings = topological_order(node_ids, edges)
    for warning in warnings:
        logger.warning(warning.message, extra={"cycle_nodes": warning.node_ids})

    blocks: List[ScheduledBlock] = []
    day = 0
    used = 0.0
    for nid in order:
        hours = float(per_node_hours.get(nid, default_hours))
        if used >= daily_hours - _EPS:
            day += 1
            used = 0.0
        start_day, offset = day, used

        finish = used + hours
        while finish > daily_hours + _EPS:
            day += 1
            finish -= daily_hours
        used = finish

        blocks.append(ScheduledBlock(
            date=start_date + timedelta(days=start_day),
            node_id=nid,
            node_title=titles[nid],
            hours=hours,
            start_offset_hours=offset,
            end_date=start_date + timedelta(days=day),
        ))

    total = sum(b.hours for b in blocks)
    return ScheduleResult(
        blocks=blocks,
        order=order,
        warnings=warnings,
        total_hours=total,
        daily_hours=daily_hours,
        total_days=total_days_for(total, daily_hours),
        last_date=blocks[-1].end_date if blocks else None,
    )
