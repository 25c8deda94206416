"""Rewrite generator dependency indices into persisted subtask ids."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

from app.db.models.subtask import Subtask
from app.services.task_set import GeneratedTaskSet

logger = logging.getLogger(__name__)


@dataclass
class DroppedDependency:
    task_index: int
    value: Any
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {"task_index": self.task_index, "value": repr(self.value), "reason": self.reason}


@dataclass
class ResolutionReport:
    resolved_edges: int = 0
    dropped: List[DroppedDependency] = field(default_factory=list)
    critical_path_ids: List[str] = field(default_factory=list)
    critical_path_indices: List[int] = field(default_factory=list)


def coerce_index(value: Any) -> Optional[int]:
    """Return ``value`` as an int index, or None when it is not integral."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return None


def resolve_dependencies(subtasks: Sequence[Subtask], task_set: GeneratedTaskSet) -> ResolutionReport:
    """Second phase of batch creation: map indices to ids on ``subtasks``.

    ``subtasks`` must be the flushed rows in generation order so that row ``i``
    corresponds to ``task_set.subtasks[i]``. Out-of-range, non-integer,
    self-referencing, duplicate and cycle-closing entries are dropped.
    """
    count = len(subtasks)
    if count != len(task_set.subtasks):
        raise ValueError(f"expected {len(task_set.subtasks)} persisted subtasks, got {count}")

    ids = [str(subtask.id) for subtask in subtasks]
    edges: Dict[int, List[int]] = {index: [] for index in range(count)}
    report = ResolutionReport()

    for index, task in enumerate(task_set.subtasks):
        for raw in task.dependencies:
            target = coerce_index(raw)
            reason = None
            if target is None:
                reason = "not an integer index"
            elif not 0 <= target < count:
                reason = "index out of range"
            elif target == index:
                reason = "self reference"
            elif target in edges[index]:
                reason = "duplicate"
            elif _reaches(edges, start=target, goal=index):
                reason = "would create a cycle"
            if reason:
                report.dropped.append(DroppedDependency(task_index=index, value=raw, reason=reason))
                continue
            edges[index].append(target)
            report.resolved_edges += 1

    for index, subtask in enumerate(subtasks):
        subtask.dependencies = [ids[target] for target in edges[index]]

    for raw in task_set.critical_path:
        target = coerce_index(raw)
        if target is not None and 0 <= target < count and target not in report.critical_path_indices:
            report.critical_path_indices.append(target)
            report.critical_path_ids.append(ids[target])

    if report.dropped:
        logger.info(
            "Dropped %s invalid dependency entries while resolving %s subtasks",
            len(report.dropped),
            count,
            extra={"dropped": [item.to_dict() for item in report.dropped]},
        )
    return report


def _reaches(edges: Dict[int, List[int]], start: int, goal: int) -> bool:
    stack = [start]
    seen: Set[int] = set()
    while stack:
        node = stack.pop()
        if node == goal:
            return True
        if node in seen:
            continue
        seen.add(node)
        stack.extend(edges.get(node, ()))
    return False


def dependency_graph_has_cycle(graph: Dict[str, List[str]]) -> bool:
    """True when the id-keyed dependency graph contains a cycle."""
    visiting: Set[str] = set()
    done: Set[str] = set()

    def visit(node: str) -> bool:
        if node in done:
            return False
        if node in visiting:
            return True
        visiting.add(node)
        for neighbour in graph.get(node, ()):
            if visit(neighbour):
                return True
        visiting.discard(node)
        done.add(node)
        return False

    return any(visit(node) for node in list(graph))
