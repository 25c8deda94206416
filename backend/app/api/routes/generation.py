"""Subtask generation route."""
from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from app.api.routes.projects import load_owned_project, progress_summary
from app.api.routes.subtasks import serialize_subtask
from app.api.schemas.generation import GenerateSubtasksRequest, GenerateSubtasksResponse
from app.db.deps import get_db
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services.pattern_cache import PatternCache, get_pattern_cache
from app.services.subtask_generation import generate_project_subtasks
from app.services.task_generator import TaskGenerator, get_task_generator

router = APIRouter()


@router.post(
    "/projects/{project_id}/subtasks/generate",
    response_model=GenerateSubtasksResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["subtasks"],
)
async def generate_subtasks(
    project_id: UUID,
    payload: GenerateSubtasksRequest,
    http_request: Request,
    response: Response,
    db: Session = Depends(get_db),
    generator: TaskGenerator = Depends(get_task_generator),
    cache: PatternCache = Depends(get_pattern_cache),
) -> GenerateSubtasksResponse:
    """Generate (or return the already generated) subtask breakdown for a project.

    Generator failures never surface as errors here: the fallback template is
    used and reported through ``fallback_used``/``failure_reason``. Only a
    persistence failure produces a 5xx.
    """
    project = load_owned_project(db, project_id, payload.user_id)
    request_id = getattr(http_request.state, "request_id", None)
    started = datetime.now(timezone.utc)

    try:
        with trace(
            "subtasks.generate",
            metadata={
                "route": f"/projects/{project_id}/subtasks/generate",
                "regenerate": payload.regenerate,
                "provider": generator.provider,
            },
            user_id=str(payload.user_id),
            request_id=request_id,
        ):
            report = await generate_project_subtasks(
                db,
                project,
                generator=generator,
                cache=cache,
                regenerate=payload.regenerate,
            )
            db.commit()
    except Exception:
        db.rollback()
        raise

    latency_ms = (datetime.now(timezone.utc) - started).total_seconds() * 1000
    log_metric("subtasks.generate.latency_ms", latency_ms, metadata={"created": report.created})
    log_metric(
        "subtasks.generate.count",
        len(report.subtasks),
        metadata={"fallback_used": report.fallback_used, "cache_used": report.cache_used},
    )
    if not report.created:
        response.status_code = status.HTTP_200_OK

    summary = report.summary
    return GenerateSubtasksResponse(
        project_id=project_id,
        created=report.created,
        subtasks=[serialize_subtask(subtask) for subtask in report.subtasks],
        total_estimated_hours=summary.get("total_estimated_hours") or 0.0,
        critical_path=summary.get("critical_path") or [],
        critical_path_ids=summary.get("critical_path_ids") or [],
        milestones=summary.get("milestones") or [],
        risk_factors=summary.get("risk_factors") or [],
        suggestions=summary.get("suggestions") or [],
        resources=summary.get("resources") or [],
        insights=summary.get("insights") or {},
        fallback_used=report.fallback_used,
        cache_used=report.cache_used,
        failure_reason=summary.get("failure_reason"),
        project_progress=progress_summary(db, project_id, report.progress),
        request_id=request_id or "",
    )
