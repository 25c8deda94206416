"""Subtask listing, CRUD, reorder and bulk status routes."""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.api.routes.projects import load_owned_project, progress_summary
from app.api.schemas.subtask import (
    SortField,
    SubtaskBulkResponse,
    SubtaskBulkStatusRequest,
    SubtaskCreateRequest,
    SubtaskDeleteResponse,
    SubtaskListResponse,
    SubtaskMutationResponse,
    SubtaskReorderRequest,
    SubtaskResponse,
    SubtaskStatsResponse,
    SubtaskUpdateRequest,
)
from app.db.deps import get_db
from app.db.models.project import Project
from app.db.models.subtask import Subtask
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services.progress_aggregator import recalculate_project_progress
from app.services.subtask_store import (
    OrderConflict,
    SubtaskValidationError,
    bulk_update_status,
    create_subtask,
    delete_subtask,
    get_subtask,
    is_overdue,
    list_project_subtasks,
    reorder_subtasks,
    update_subtask,
)

router = APIRouter()


def serialize_subtask(subtask: Subtask, today: Optional[date] = None) -> SubtaskResponse:
    payload = SubtaskResponse.model_validate(subtask)
    return payload.model_copy(update={"is_overdue": is_overdue(subtask, today)})


def _load_owned_subtask(db: Session, subtask_id: UUID, user_id: UUID) -> Subtask:
    subtask = get_subtask(db, subtask_id)
    if not subtask:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Subtask not found")
    if subtask.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Subtask does not belong to user")
    return subtask


@router.get("/projects/{project_id}/subtasks", response_model=SubtaskListResponse, tags=["subtasks"])
def list_subtasks(
    project_id: UUID,
    user_id: UUID = Query(...),
    status_filter: Optional[str] = Query(
        default=None, alias="status", pattern="^(Pending|In Progress|Completed|Blocked)$"
    ),
    priority: Optional[str] = Query(default=None, pattern="^(Low|Medium|High)$"),
    sort_by: SortField = Query("order"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
) -> SubtaskListResponse:
    """List a project's subtasks along with the progress derived from them."""
    load_owned_project(db, project_id, user_id)
    with trace("subtask.list", metadata={"route": f"/projects/{project_id}/subtasks", "sort_by": sort_by}):
        subtasks = list_project_subtasks(
            db,
            project_id,
            status=status_filter,
            priority=priority,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        summary = progress_summary(db, project_id)
    today = date.today()
    return SubtaskListResponse(
        count=len(subtasks),
        progress=summary,
        items=[serialize_subtask(subtask, today) for subtask in subtasks],
    )


@router.post(
    "/projects/{project_id}/subtasks",
    response_model=SubtaskMutationResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["subtasks"],
)
def create_project_subtask(
    project_id: UUID,
    payload: SubtaskCreateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> SubtaskMutationResponse:
    project = load_owned_project(db, project_id, payload.user_id)
    request_id = getattr(http_request.state, "request_id", None)
    fields = payload.model_dump(exclude={"user_id"}, exclude_none=True)
    try:
        with trace(
            "subtask.create",
            metadata={"route": f"/projects/{project_id}/subtasks"},
            user_id=str(payload.user_id),
            request_id=request_id,
        ):
            subtask = create_subtask(db, project, fields)
            snapshot = recalculate_project_progress(db, project_id)
            db.commit()
    except OrderConflict as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except SubtaskValidationError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except Exception:
        db.rollback()
        raise

    log_metric("subtask.create.success", 1, metadata={"project_id": str(project_id)})
    return SubtaskMutationResponse(
        subtask=serialize_subtask(subtask),
        project_progress=progress_summary(db, project_id, snapshot),
        request_id=request_id or "",
    )


@router.put("/projects/{project_id}/subtasks/reorder", response_model=SubtaskBulkResponse, tags=["subtasks"])
def reorder_project_subtasks(
    project_id: UUID,
    payload: SubtaskReorderRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> SubtaskBulkResponse:
    """Give the listed subtasks orders 1..k; unlisted ones keep their relative order after them."""
    load_owned_project(db, project_id, payload.user_id)
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace(
            "subtask.reorder",
            metadata={"route": f"/projects/{project_id}/subtasks/reorder", "count": len(payload.subtask_ids)},
            user_id=str(payload.user_id),
            request_id=request_id,
        ):
            ordered = reorder_subtasks(db, project_id, payload.subtask_ids)
            db.commit()
    except SubtaskValidationError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except Exception:
        db.rollback()
        raise

    return SubtaskBulkResponse(
        updated=len(ordered),
        items=[serialize_subtask(subtask) for subtask in ordered],
        project_progress=progress_summary(db, project_id),
        request_id=request_id or "",
    )


@router.patch("/projects/{project_id}/subtasks/status", response_model=SubtaskBulkResponse, tags=["subtasks"])
def bulk_update_subtask_status(
    project_id: UUID,
    payload: SubtaskBulkStatusRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> SubtaskBulkResponse:
    load_owned_project(db, project_id, payload.user_id)
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace(
            "subtask.bulk_status",
            metadata={
                "route": f"/projects/{project_id}/subtasks/status",
                "status": payload.status,
                "count": len(payload.subtask_ids),
            },
            user_id=str(payload.user_id),
            request_id=request_id,
        ):
            rows = bulk_update_status(db, project_id, payload.subtask_ids, payload.status)
            snapshot = recalculate_project_progress(db, project_id)
            db.commit()
    except SubtaskValidationError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except Exception:
        db.rollback()
        raise

    log_metric("subtask.bulk_status.count", len(rows), metadata={"status": payload.status})
    return SubtaskBulkResponse(
        updated=len(rows),
        items=[serialize_subtask(subtask) for subtask in rows],
        project_progress=progress_summary(db, project_id, snapshot),
        request_id=request_id or "",
    )


@router.get("/subtasks/stats", response_model=SubtaskStatsResponse, tags=["subtasks"])
def subtask_stats(
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
) -> SubtaskStatsResponse:
    """Per-user subtask counts by status, hour totals and overdue count."""
    rows = (
        db.query(
            Subtask.status,
            func.count(Subtask.id),
            func.coalesce(func.sum(Subtask.estimated_hours), 0.0),
            func.coalesce(func.sum(Subtask.actual_hours), 0.0),
        )
        .filter(Subtask.user_id == user_id)
        .group_by(Subtask.status)
        .all()
    )
    counts: Dict[str, int] = {}
    estimated = 0.0
    actual = 0.0
    for row_status, count, estimated_sum, actual_sum in rows:
        counts[row_status] = int(count)
        estimated += float(estimated_sum or 0)
        actual += float(actual_sum or 0)

    overdue = (
        db.query(func.count(Subtask.id))
        .filter(
            Subtask.user_id == user_id,
            Subtask.due_date < date.today(),
            Subtask.status != "Completed",
        )
        .scalar()
        or 0
    )
    return SubtaskStatsResponse(
        total=sum(counts.values()),
        pending=counts.get("Pending", 0),
        in_progress=counts.get("In Progress", 0),
        completed=counts.get("Completed", 0),
        blocked=counts.get("Blocked", 0),
        total_estimated_hours=round(estimated, 2),
        total_actual_hours=round(actual, 2),
        overdue=int(overdue),
    )


@router.patch("/subtasks/{subtask_id}", response_model=SubtaskMutationResponse, tags=["subtasks"])
def update_project_subtask(
    subtask_id: UUID,
    payload: SubtaskUpdateRequest,
    http_request: Request,
    db: Session = Depends(get_db),
) -> SubtaskMutationResponse:
    """Partial update; status changes maintain completed_date and re-derive project progress."""
    subtask = _load_owned_subtask(db, subtask_id, payload.user_id)
    project = db.get(Project, subtask.project_id)
    request_id = getattr(http_request.state, "request_id", None)
    changes: Dict[str, Any] = payload.model_dump(exclude_unset=True, exclude={"user_id"})
    try:
        with trace(
            "subtask.update",
            metadata={"route": f"/subtasks/{subtask_id}", "fields": sorted(changes)},
            user_id=str(payload.user_id),
            request_id=request_id,
        ):
            update_subtask(db, subtask, project, changes)
            snapshot = recalculate_project_progress(db, project.id)
            db.commit()
    except OrderConflict as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except SubtaskValidationError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except Exception:
        db.rollback()
        raise

    log_metric("subtask.update.success", 1, metadata={"status_changed": "status" in changes})
    return SubtaskMutationResponse(
        subtask=serialize_subtask(subtask),
        project_progress=progress_summary(db, project.id, snapshot),
        request_id=request_id or "",
    )


@router.delete("/subtasks/{subtask_id}", response_model=SubtaskDeleteResponse, tags=["subtasks"])
def delete_project_subtask(
    subtask_id: UUID,
    http_request: Request,
    user_id: UUID = Query(...),
    db: Session = Depends(get_db),
) -> SubtaskDeleteResponse:
    subtask = _load_owned_subtask(db, subtask_id, user_id)
    project_id = subtask.project_id
    request_id = getattr(http_request.state, "request_id", None)
    try:
        with trace(
            "subtask.delete",
            metadata={"route": f"/subtasks/{subtask_id}"},
            user_id=str(user_id),
            request_id=request_id,
        ):
            cleared = delete_subtask(db, subtask)
            snapshot = recalculate_project_progress(db, project_id)
            db.commit()
    except Exception:
        db.rollback()
        raise

    return SubtaskDeleteResponse(
        id=subtask_id,
        dependencies_cleared=cleared,
        project_progress=progress_summary(db, project_id, snapshot),
        request_id=request_id or "",
    )
