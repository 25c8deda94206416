"""Project CRUD, stats and manual progress routes."""
from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import case, func
from sqlalchemy.orm import Session

from app.api.schemas.project import (
    ProjectCreateRequest,
    ProjectDeleteResponse,
    ProjectListResponse,
    ProjectProgressRequest,
    ProjectResponse,
    ProjectStatsResponse,
    ProjectUpdateRequest,
)
from app.api.schemas.subtask import ProgressSummary
from app.db.deps import get_db
from app.db.models.project import Project
from app.db.models.subtask import Subtask
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services.progress_aggregator import (
    DerivedFieldLocked,
    ProgressSnapshot,
    set_manual_progress,
    snapshot_from_counts,
)
from app.services.project_descriptor import normalize_descriptor
from app.services.subtask_generation import GENERATION_METADATA_KEY
from app.services.subtask_store import clamp_project_subtasks, count_subtasks_by_status

router = APIRouter()


def load_owned_project(db: Session, project_id: UUID, user_id: UUID) -> Project:
    project = db.get(Project, project_id)
    if not project:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    if project.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Project does not belong to user")
    return project


def progress_summary(db: Session, project_id: UUID, snapshot: Optional[ProgressSnapshot] = None) -> ProgressSummary:
    if snapshot is None:
        project = db.get(Project, project_id)
        counts = count_subtasks_by_status(db, project_id)
        total, completed, in_progress, progress, derived_status = snapshot_from_counts(counts)
        if total == 0 and project is not None:
            # Manual progress stands while the project has no subtasks.
            progress, derived_status = project.progress, project.status
        return ProgressSummary(
            progress=progress,
            status=derived_status,
            total=total,
            completed=completed,
            in_progress=in_progress,
        )
    return ProgressSummary(
        progress=snapshot.progress,
        status=snapshot.status,
        total=snapshot.total,
        completed=snapshot.completed,
        in_progress=snapshot.in_progress,
    )


def _serialize_project(db: Session, project: Project) -> ProjectResponse:
    subtask_count = db.query(func.count(Subtask.id)).filter(Subtask.project_id == project.id).scalar() or 0
    metadata = project.metadata_json or {}
    return ProjectResponse(
        id=project.id,
        user_id=project.user_id,
        name=project.name,
        description=project.description,
        timeline=project.timeline,
        start_date=project.start_date,
        due_date=project.due_date,
        due_time=project.due_time,
        priority=project.priority,
        category=project.category,
        tags=list(project.tags or []),
        progress=project.progress,
        status=project.status,
        subtask_count=subtask_count,
        generation=metadata.get(GENERATION_METADATA_KEY),
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


@router.post("/projects", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED, tags=["projects"])
def create_project(
    payload: ProjectCreateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> ProjectResponse:
    """Create a project; missing dates default to today and today + timeline."""
    request_id = getattr(http_request.state, "request_id", None)
    descriptor = normalize_descriptor(
        name=payload.name,
        description=payload.description,
        timeline=payload.timeline,
        start_date=payload.start_date,
        due_date=payload.due_date,
        priority=payload.priority,
        category=payload.category,
    )
    project = Project(
        user_id=payload.user_id,
        name=descriptor.name,
        description=descriptor.description,
        timeline=descriptor.timeline,
        start_date=descriptor.start_date,
        due_date=descriptor.due_date,
        due_time=payload.due_time,
        priority=descriptor.priority,
        category=descriptor.category,
        tags=list(payload.tags),
        progress=0,
        status="Pending",
    )
    try:
        with trace(
            "project.create",
            metadata={"route": "/projects", "timeline": descriptor.timeline, "priority": descriptor.priority},
            user_id=str(payload.user_id),
            request_id=request_id,
        ):
            db.add(project)
            db.commit()
            db.refresh(project)
    except Exception:
        db.rollback()
        raise

    log_metric("project.create.success", 1, metadata={"user_id": str(payload.user_id)})
    return _serialize_project(db, project)


@router.get("/projects", response_model=ProjectListResponse, tags=["projects"])
def list_projects(
    user_id: UUID = Query(..., description="User ID owning the projects"),
    status_filter: Optional[str] = Query(default=None, alias="status", pattern="^(Pending|In Progress|Completed)$"),
    priority: Optional[str] = Query(default=None, pattern="^(Low|Medium|High)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
) -> ProjectListResponse:
    query = db.query(Project).filter(Project.user_id == user_id)
    if status_filter:
        query = query.filter(Project.status == status_filter)
    if priority:
        query = query.filter(Project.priority == priority)

    total = query.count()
    projects = (
        query.order_by(Project.created_at.desc(), Project.name.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return ProjectListResponse(
        items=[_serialize_project(db, project) for project in projects],
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit) if total else 0,
    )


@router.get("/projects/stats", response_model=ProjectStatsResponse, tags=["projects"])
def project_stats(
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
) -> ProjectStatsResponse:
    """Counts by status, average progress, high-priority and overdue projects for a user."""
    today = date.today()
    rows = (
        db.query(Project.status, func.count(Project.id))
        .filter(Project.user_id == user_id)
        .group_by(Project.status)
        .all()
    )
    by_status: Dict[str, int] = {row_status: int(count) for row_status, count in rows}
    average, high_priority, overdue = (
        db.query(
            func.avg(Project.progress),
            func.sum(case((Project.priority == "High", 1), else_=0)),
            func.sum(case(((Project.due_date < today) & (Project.status != "Completed"), 1), else_=0)),
        )
        .filter(Project.user_id == user_id)
        .one()
    )
    return ProjectStatsResponse(
        total=sum(by_status.values()),
        pending=by_status.get("Pending", 0),
        in_progress=by_status.get("In Progress", 0),
        completed=by_status.get("Completed", 0),
        average_progress=round(float(average or 0), 1),
        high_priority=int(high_priority or 0),
        overdue=int(overdue or 0),
    )


@router.get("/projects/{project_id}", response_model=ProjectResponse, tags=["projects"])
def get_project(
    project_id: UUID,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
) -> ProjectResponse:
    project = load_owned_project(db, project_id, user_id)
    return _serialize_project(db, project)


@router.patch("/projects/{project_id}", response_model=ProjectResponse, tags=["projects"])
def update_project(
    project_id: UUID,
    payload: ProjectUpdateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> ProjectResponse:
    """Update project fields; a changed window re-clamps subtask dates into it."""
    project = load_owned_project(db, project_id, payload.user_id)
    request_id = getattr(http_request.state, "request_id", None)
    changes: Dict[str, Any] = payload.model_dump(exclude_unset=True, exclude={"user_id", "progress"})

    new_start = changes.get("start_date") or project.start_date
    new_due = changes.get("due_date") or project.due_date
    if new_due <= new_start:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="due_date must be after start_date",
        )
    window_changed = new_start != project.start_date or new_due != project.due_date

    clamped = 0
    try:
        with trace(
            "project.update",
            metadata={"route": f"/projects/{project_id}", "fields": sorted(changes), "window_changed": window_changed},
            user_id=str(payload.user_id),
            request_id=request_id,
        ):
            for key, value in changes.items():
                if key in {"name", "description", "priority", "due_time", "tags"} and value is None:
                    continue
                if key in {"start_date", "due_date"}:
                    continue
                if key in {"name", "description"}:
                    value = value.strip()
                setattr(project, key, value)
            project.start_date = new_start
            project.due_date = new_due
            project.timeline = (new_due - new_start).days
            db.add(project)
            db.flush()
            if window_changed:
                clamped = clamp_project_subtasks(db, project)
            if payload.progress is not None:
                set_manual_progress(db, project, payload.progress)
            db.commit()
    except DerivedFieldLocked as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except Exception:
        db.rollback()
        raise

    log_metric("project.update.success", 1, metadata={"clamped_subtasks": clamped})
    return _serialize_project(db, project)


@router.patch("/projects/{project_id}/progress", response_model=ProjectResponse, tags=["projects"])
def update_project_progress(
    project_id: UUID,
    payload: ProjectProgressRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> ProjectResponse:
    """Set progress directly; only allowed while the project has no subtasks."""
    project = load_owned_project(db, project_id, payload.user_id)
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace(
            "project.progress.manual",
            metadata={"route": f"/projects/{project_id}/progress", "progress": payload.progress},
            user_id=str(payload.user_id),
            request_id=request_id,
        ):
            set_manual_progress(db, project, payload.progress)
            db.commit()
    except DerivedFieldLocked as exc:
        db.rollback()
        log_metric("project.progress.locked", 1, metadata={"subtasks": exc.subtask_count})
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except Exception:
        db.rollback()
        raise
    return _serialize_project(db, project)


@router.delete("/projects/{project_id}", response_model=ProjectDeleteResponse, tags=["projects"])
def delete_project(
    project_id: UUID,
    http_request: Request,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
) -> ProjectDeleteResponse:
    """Delete a project together with every subtask it owns."""
    project = load_owned_project(db, project_id, user_id)
    request_id = getattr(http_request.state, "request_id", None)
    started = datetime.now(timezone.utc)
    try:
        with trace(
            "project.delete",
            metadata={"route": f"/projects/{project_id}"},
            user_id=str(user_id),
            request_id=request_id,
        ):
            deleted = (
                db.query(Subtask)
                .filter(Subtask.project_id == project_id)
                .delete(synchronize_session=False)
            )
            db.delete(project)
            db.commit()
    except Exception:
        db.rollback()
        raise

    latency_ms = (datetime.now(timezone.utc) - started).total_seconds() * 1000
    log_metric("project.delete.latency_ms", latency_ms, metadata={"deleted_subtasks": deleted})
    return ProjectDeleteResponse(id=project_id, deleted_subtasks=deleted, request_id=request_id or "")
