"""Persistence helpers for subtasks; callers own the transaction."""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
from uuid import UUID, uuid4

from sqlalchemy import asc, desc, func, nulls_last
from sqlalchemy.orm import Session

from app.db.models.project import Project
from app.db.models.subtask import Subtask
from app.services.date_range import DateWindow
from app.services.date_scheduler import clamp_into_window
from app.services.dependency_resolver import dependency_graph_has_cycle
from app.services.task_set import GeneratedTask

logger = logging.getLogger(__name__)

COMPLETED = "Completed"

SORTABLE_FIELDS = {
    "order": Subtask.order,
    "priority": Subtask.priority,
    "status": Subtask.status,
    "due_date": Subtask.due_date,
    "start_date": Subtask.start_date,
    "estimated_hours": Subtask.estimated_hours,
    "created_at": Subtask.created_at,
}

UPDATABLE_FIELDS = (
    "title",
    "description",
    "order",
    "priority",
    "estimated_hours",
    "actual_hours",
    "status",
    "phase",
    "complexity",
    "risk_level",
    "start_date",
    "due_date",
    "dependencies",
    "tags",
    "skills",
    "notes",
)


class SubtaskValidationError(ValueError):
    """A manual write would break a subtask invariant."""


class OrderConflict(Exception):
    def __init__(self, order: int) -> None:
        super().__init__(f"Another subtask already uses order {order}")
        self.order = order


def get_subtask(db: Session, subtask_id: UUID) -> Optional[Subtask]:
    return db.get(Subtask, subtask_id)


def fetch_project_subtasks(db: Session, project_id: UUID) -> List[Subtask]:
    return (
        db.query(Subtask)
        .filter(Subtask.project_id == project_id)
        .order_by(Subtask.order.asc(), Subtask.created_at.asc())
        .all()
    )


def list_project_subtasks(
    db: Session,
    project_id: UUID,
    *,
    status: Optional[str] = None,
    priority: Optional[str] = None,
    sort_by: str = "order",
    sort_order: str = "asc",
) -> List[Subtask]:
    query = db.query(Subtask).filter(Subtask.project_id == project_id)
    if status:
        query = query.filter(Subtask.status == status)
    if priority:
        query = query.filter(Subtask.priority == priority)
    column = SORTABLE_FIELDS.get(sort_by, Subtask.order)
    direction = desc if sort_order == "desc" else asc
    return query.order_by(nulls_last(direction(column)), Subtask.order.asc()).all()


def count_subtasks_by_status(db: Session, project_id: UUID) -> Dict[str, int]:
    rows = (
        db.query(Subtask.status, func.count(Subtask.id))
        .filter(Subtask.project_id == project_id)
        .group_by(Subtask.status)
        .all()
    )
    return {status: int(count) for status, count in rows}


def next_order(db: Session, project_id: UUID) -> int:
    current = db.query(func.max(Subtask.order)).filter(Subtask.project_id == project_id).scalar()
    return (current or 0) + 1


def create_subtasks(
    db: Session,
    project: Project,
    tasks: Sequence[GeneratedTask],
    *,
    ai_generated: bool,
) -> List[Subtask]:
    """First phase of batch creation: persist rows (dependencies empty) and flush for ids.

    Rows come back in the same order as ``tasks``. Orders are re-ranked after
    any existing subtasks so they stay unique within the project.
    """
    base = next_order(db, project.id) - 1
    ranking = sorted(range(len(tasks)), key=lambda index: (tasks[index].order or index + 1, index))
    order_for_index = {index: base + rank + 1 for rank, index in enumerate(ranking)}

    rows: List[Subtask] = []
    for index, task in enumerate(tasks):
        row = Subtask(
            project_id=project.id,
            user_id=project.user_id,
            title=task.title[:200],
            description=task.description[:1000],
            order=order_for_index[index],
            priority=task.priority,
            estimated_hours=task.estimated_hours,
            actual_hours=0.0,
            status="Pending",
            phase=task.phase,
            complexity=task.complexity,
            risk_level=task.risk_level,
            start_date=task.start_date,
            due_date=task.due_date,
            dependencies=[],
            tags=list(task.tags),
            skills=list(task.skills),
            ai_generated=ai_generated,
        )
        db.add(row)
        rows.append(row)
    db.flush()
    return rows


def create_subtask(db: Session, project: Project, fields: Mapping[str, Any]) -> Subtask:
    """Create one manual subtask after checking order, dates and dependencies."""
    values = {key: value for key, value in fields.items() if key in UPDATABLE_FIELDS and value is not None}
    order = values.pop("order", None) or next_order(db, project.id)
    _ensure_order_free(db, project.id, order, exclude_id=None)

    dependencies = [str(item) for item in values.pop("dependencies", [])]
    subtask = Subtask(
        id=uuid4(),
        project_id=project.id,
        user_id=project.user_id,
        order=order,
        status="Pending",
        actual_hours=0.0,
        dependencies=[],
        tags=[],
        skills=[],
        ai_generated=False,
    )
    for key, value in values.items():
        setattr(subtask, key, value)
    _validate_dates(subtask, project)
    if dependencies:
        _validate_dependencies(db, project.id, subtask, dependencies)
        subtask.dependencies = dependencies
    apply_status_transition(subtask, subtask.status, previous=None)

    db.add(subtask)
    db.flush()
    return subtask


def update_subtask(db: Session, subtask: Subtask, project: Project, changes: Mapping[str, Any]) -> Subtask:
    """Apply a partial update; ``changes`` holds only the fields the caller sent."""
    previous_status = subtask.status
    for key, value in changes.items():
        if key not in UPDATABLE_FIELDS:
            continue
        if key == "order":
            if value is None:
                continue
            if value != subtask.order:
                _ensure_order_free(db, project.id, value, exclude_id=subtask.id)
        if key == "dependencies":
            _validate_dependencies(db, project.id, subtask, list(value or []))
            value = [str(item) for item in (value or [])]
        if key in {"tags", "skills"}:
            value = list(value or [])
        if key in {"title", "status", "priority", "phase", "complexity", "risk_level"} and value is None:
            continue
        setattr(subtask, key, value)

    _validate_dates(subtask, project)
    if "status" in changes and changes["status"] is not None:
        apply_status_transition(subtask, subtask.status, previous=previous_status)
    db.add(subtask)
    db.flush()
    return subtask


def delete_subtask(db: Session, subtask: Subtask) -> int:
    """Delete ``subtask`` and strip its id from sibling dependency lists; returns siblings touched."""
    removed_id = str(subtask.id)
    touched = 0
    for sibling in fetch_project_subtasks(db, subtask.project_id):
        if sibling.id == subtask.id:
            continue
        if removed_id in (sibling.dependencies or []):
            sibling.dependencies = [dep for dep in sibling.dependencies if dep != removed_id]
            db.add(sibling)
            touched += 1
    db.delete(subtask)
    db.flush()
    return touched


def bulk_update_status(db: Session, project_id: UUID, subtask_ids: Iterable[UUID], status: str) -> List[Subtask]:
    wanted = set(subtask_ids)
    if not wanted:
        return []
    rows = (
        db.query(Subtask)
        .filter(Subtask.project_id == project_id, Subtask.id.in_(wanted))
        .all()
    )
    missing = wanted - {row.id for row in rows}
    if missing:
        raise SubtaskValidationError(f"{len(missing)} subtask ids do not belong to this project")
    for row in rows:
        previous = row.status
        row.status = status
        apply_status_transition(row, status, previous=previous)
        db.add(row)
    db.flush()
    return rows


def reorder_subtasks(db: Session, project_id: UUID, ordered_ids: Sequence[UUID]) -> List[Subtask]:
    """Give ``ordered_ids`` orders 1..k; unlisted subtasks follow in their current order."""
    subtasks = fetch_project_subtasks(db, project_id)
    by_id = {subtask.id: subtask for subtask in subtasks}
    if len(set(ordered_ids)) != len(ordered_ids):
        raise SubtaskValidationError("subtask_ids contains duplicates")
    unknown = [subtask_id for subtask_id in ordered_ids if subtask_id not in by_id]
    if unknown:
        raise SubtaskValidationError(f"{len(unknown)} subtask ids do not belong to this project")

    listed = set(ordered_ids)
    sequence = [by_id[subtask_id] for subtask_id in ordered_ids]
    sequence.extend(subtask for subtask in subtasks if subtask.id not in listed)
    for position, subtask in enumerate(sequence, start=1):
        if subtask.order != position:
            subtask.order = position
            db.add(subtask)
    db.flush()
    return sequence


def clamp_project_subtasks(db: Session, project: Project) -> int:
    """Pull every subtask's dates back inside the project window; returns rows changed."""
    window = DateWindow(project.start_date, project.due_date)
    changed = 0
    for subtask in fetch_project_subtasks(db, project.id):
        start, due = clamp_into_window(subtask.start_date, subtask.due_date, window)
        if start != subtask.start_date or due != subtask.due_date:
            subtask.start_date = start
            subtask.due_date = due
            db.add(subtask)
            changed += 1
    if changed:
        db.flush()
        logger.info("Clamped %s subtasks into the new project window", changed)
    return changed


def apply_status_transition(subtask: Subtask, status: str, previous: Optional[str]) -> None:
    if status == COMPLETED:
        if previous != COMPLETED or subtask.completed_date is None:
            subtask.completed_date = datetime.now(timezone.utc)
    else:
        subtask.completed_date = None


def is_overdue(subtask: Subtask, today: Optional[date] = None) -> bool:
    today = today or date.today()
    return bool(subtask.due_date and subtask.status != COMPLETED and subtask.due_date < today)


def _ensure_order_free(db: Session, project_id: UUID, order: int, exclude_id: Optional[UUID]) -> None:
    query = db.query(Subtask.id).filter(Subtask.project_id == project_id, Subtask.order == order)
    if exclude_id is not None:
        query = query.filter(Subtask.id != exclude_id)
    if query.first() is not None:
        raise OrderConflict(order)


def _validate_dates(subtask: Subtask, project: Project) -> None:
    window = DateWindow(project.start_date, project.due_date)
    for label, value in (("start_date", subtask.start_date), ("due_date", subtask.due_date)):
        if value is not None and not window.contains(value):
            raise SubtaskValidationError(
                f"{label} {value.isoformat()} is outside the project window "
                f"{project.start_date.isoformat()}..{project.due_date.isoformat()}"
            )
    if subtask.start_date and subtask.due_date and subtask.due_date < subtask.start_date:
        raise SubtaskValidationError("due_date must be on or after start_date")


def _validate_dependencies(db: Session, project_id: UUID, subtask: Subtask, dependencies: List[Any]) -> None:
    own_id = str(subtask.id) if subtask.id else None
    ids = [str(item) for item in dependencies]
    if own_id and own_id in ids:
        raise SubtaskValidationError("A subtask cannot depend on itself")
    if len(set(ids)) != len(ids):
        raise SubtaskValidationError("dependencies contains duplicates")

    siblings = fetch_project_subtasks(db, project_id)
    graph = {str(sibling.id): [str(dep) for dep in (sibling.dependencies or [])] for sibling in siblings}
    unknown = [dep for dep in ids if dep not in graph or dep == own_id]
    if unknown:
        raise SubtaskValidationError("dependencies must reference other subtasks of the same project")

    if own_id:
        graph[own_id] = ids
    if dependency_graph_has_cycle(graph):
        raise SubtaskValidationError("dependencies would create a cycle")
