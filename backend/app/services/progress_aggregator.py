"""Keep project progress/status consistent with the statuses of its subtasks."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Mapping
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.db.models.project import Project
from app.db.models.subtask import Subtask
from app.services.date_range import round_half_up
from app.services.subtask_store import count_subtasks_by_status

logger = logging.getLogger(__name__)

PENDING = "Pending"
IN_PROGRESS = "In Progress"
COMPLETED = "Completed"


class DerivedFieldLocked(Exception):
    """Raised when progress/status is written directly on a project that has subtasks."""

    def __init__(self, project_id: UUID, subtask_count: int) -> None:
        super().__init__(
            f"Project {project_id} has {subtask_count} subtasks; progress and status are derived from them"
        )
        self.project_id = project_id
        self.subtask_count = subtask_count


@dataclass(frozen=True)
class ProgressSnapshot:
    total: int
    completed: int
    in_progress: int
    progress: int
    status: str
    changed: bool


def compute_progress(completed: int, total: int) -> int:
    if total <= 0:
        return 0
    return round_half_up(completed / total * 100)


def derive_status(total: int, completed: int, in_progress: int) -> str:
    if total == 0:
        return PENDING
    if completed == total:
        return COMPLETED
    if in_progress > 0 or 0 < completed < total:
        return IN_PROGRESS
    return PENDING


def snapshot_from_counts(counts: Mapping[str, int]) -> tuple[int, int, int, int, str]:
    total = sum(counts.values())
    completed = counts.get(COMPLETED, 0)
    in_progress = counts.get(IN_PROGRESS, 0)
    return total, completed, in_progress, compute_progress(completed, total), derive_status(total, completed, in_progress)


def recalculate_project_progress(db: Session, project_id: UUID) -> ProgressSnapshot | None:
    """Recompute and write progress/status for ``project_id`` inside the caller's transaction.

    The project row is re-read under ``SELECT ... FOR UPDATE`` so concurrent
    writers serialize on it. Returns None when the project no longer exists.
    The caller commits.
    """
    # Sessions run with autoflush off; pending writes must land before the re-read.
    db.flush()
    project = (
        db.query(Project)
        .filter(Project.id == project_id)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )
    if project is None:
        return None

    counts = count_subtasks_by_status(db, project_id)
    total, completed, in_progress, progress, status = snapshot_from_counts(counts)
    changed = project.progress != progress or project.status != status
    if changed:
        project.progress = progress
        project.status = status
        db.add(project)
        db.flush()
        logger.info(
            "Project progress recalculated",
            extra={"project_id": str(project_id), "progress": progress, "status": status, "subtasks": total},
        )
    return ProgressSnapshot(
        total=total,
        completed=completed,
        in_progress=in_progress,
        progress=progress,
        status=status,
        changed=changed,
    )


def status_for_manual_progress(progress: int) -> str:
    if progress <= 0:
        return PENDING
    if progress >= 100:
        return COMPLETED
    return IN_PROGRESS


def set_manual_progress(db: Session, project: Project, progress: int) -> Project:
    """Directly set progress on a project that has no subtasks."""
    subtask_count = db.query(func.count(Subtask.id)).filter(Subtask.project_id == project.id).scalar() or 0
    if subtask_count:
        raise DerivedFieldLocked(project.id, subtask_count)
    project.progress = progress
    project.status = status_for_manual_progress(progress)
    db.add(project)
    db.flush()
    return project


def reconcile_all_projects(db: Session) -> List[UUID]:
    """Re-run aggregation for every project with subtasks; return the ids that changed."""
    project_ids = [row[0] for row in db.query(Subtask.project_id).distinct().all()]
    changed: List[UUID] = []
    for project_id in project_ids:
        snapshot = recalculate_project_progress(db, project_id)
        if snapshot and snapshot.changed:
            changed.append(project_id)
    db.commit()
    return changed
