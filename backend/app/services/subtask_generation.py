"""End-to-end subtask generation for a project.

generate -> parse -> schedule -> persist -> resolve dependencies -> aggregate.
Any failure before persistence switches to the fallback template, which
re-enters the same schedule/persist/resolve/aggregate path. Only the
generator call suspends; everything else runs on the caller's session and
the caller commits.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from app.db.models.project import Project
from app.db.models.subtask import Subtask
from app.observability.metrics import log_metric
from app.observability.tracing import trace
from app.services.date_scheduler import schedule_task_dates
from app.services.dependency_resolver import ResolutionReport, coerce_index, resolve_dependencies
from app.services.fallback_generator import build_fallback_task_set
from app.services.pattern_cache import PatternCache
from app.services.progress_aggregator import ProgressSnapshot, recalculate_project_progress
from app.services.project_descriptor import ProjectDescriptor, descriptor_for_project
from app.services.project_insights import build_insights
from app.services.subtask_store import create_subtasks, fetch_project_subtasks
from app.services.task_generator import TaskGenerator
from app.services.task_set import GeneratedTaskSet, GenerationFailure

logger = logging.getLogger(__name__)

GENERATION_METADATA_KEY = "generation"


@dataclass
class GenerationReport:
    subtasks: List[Subtask]
    summary: Dict[str, Any]
    created: bool
    progress: Optional[ProgressSnapshot] = None
    resolution: Optional[ResolutionReport] = None
    failure: Optional[GenerationFailure] = None
    dropped_dependencies: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def fallback_used(self) -> bool:
        return bool(self.summary.get("fallback_used"))

    @property
    def cache_used(self) -> bool:
        return bool(self.summary.get("cache_used"))


async def obtain_task_set(
    descriptor: ProjectDescriptor,
    *,
    generator: TaskGenerator,
    cache: PatternCache,
    regenerate: bool = False,
) -> tuple[GeneratedTaskSet, Optional[GenerationFailure]]:
    """Return a usable task set: cached, freshly generated, or the fallback template."""
    if not regenerate:
        cached = cache.lookup(descriptor)
        if cached is not None:
            log_metric("generation.cache.hit", 1, {"timeline": descriptor.timeline})
            return cached, None

    outcome = await generator.generate(descriptor)
    if isinstance(outcome, GenerationFailure):
        logger.warning("Falling back to template subtasks: %s (%s)", outcome.message, outcome.kind)
        log_metric("generation.fallback.used", 1, {"reason": outcome.kind})
        return build_fallback_task_set(descriptor), outcome

    cache.store(descriptor, outcome)
    return outcome, None


async def generate_project_subtasks(
    db: Session,
    project: Project,
    *,
    generator: TaskGenerator,
    cache: PatternCache,
    regenerate: bool = False,
    today: Optional[date] = None,
) -> GenerationReport:
    today = today or date.today()
    existing = fetch_project_subtasks(db, project.id)
    previous_summary = (project.metadata_json or {}).get(GENERATION_METADATA_KEY)

    if existing and previous_summary and not regenerate:
        logger.info("Project already has generated subtasks; returning them unchanged")
        return GenerationReport(subtasks=existing, summary=dict(previous_summary), created=False)

    if regenerate and existing:
        for subtask in existing:
            db.delete(subtask)
        db.flush()
        logger.info("Deleted %s subtasks before regeneration", len(existing))

    descriptor = descriptor_for_project(project, today=today)
    task_set, failure = await obtain_task_set(descriptor, generator=generator, cache=cache, regenerate=regenerate)

    with trace("subtasks.generate.persist", metadata={"count": len(task_set.subtasks), "fallback": task_set.fallback_used}):
        scheduled = schedule_task_dates(task_set.subtasks, descriptor.window, today)
        task_set = task_set.model_copy(update={"subtasks": scheduled})
        rows = create_subtasks(db, project, task_set.subtasks, ai_generated=not task_set.fallback_used)
        resolution = resolve_dependencies(rows, task_set)
        db.flush()

    insights = build_insights(task_set, descriptor.timeline)
    summary = _build_summary(task_set, rows, resolution, failure, generator.provider, insights.to_dict())

    metadata = dict(project.metadata_json or {})
    metadata[GENERATION_METADATA_KEY] = summary
    project.metadata_json = metadata
    db.add(project)

    progress = recalculate_project_progress(db, project.id)
    return GenerationReport(
        subtasks=fetch_project_subtasks(db, project.id),
        summary=summary,
        created=True,
        progress=progress,
        resolution=resolution,
        failure=failure,
        dropped_dependencies=[item.to_dict() for item in resolution.dropped],
    )


def _build_summary(
    task_set: GeneratedTaskSet,
    rows: List[Subtask],
    resolution: ResolutionReport,
    failure: Optional[GenerationFailure],
    provider: str,
    insights: Dict[str, Any],
) -> Dict[str, Any]:
    ids = [str(row.id) for row in rows]
    milestones = []
    for milestone in task_set.milestones:
        indices = [coerce_index(value) for value in milestone.task_indices]
        milestones.append(
            {
                "name": milestone.name,
                "description": milestone.description,
                "task_ids": [ids[index] for index in indices if index is not None and 0 <= index < len(ids)],
                "estimated_completion": milestone.estimated_completion,
            }
        )
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "provider": "template" if task_set.fallback_used else ("cache" if task_set.from_cache else provider),
        "subtask_count": len(rows),
        "total_estimated_hours": task_set.total_estimated_hours,
        "critical_path": list(resolution.critical_path_indices),
        "critical_path_ids": list(resolution.critical_path_ids),
        "milestones": milestones,
        "risk_factors": list(task_set.risk_factors),
        "suggestions": list(task_set.suggestions),
        "resources": list(task_set.resources),
        "insights": insights,
        "fallback_used": task_set.fallback_used,
        "cache_used": task_set.from_cache,
        "failure_reason": failure.to_dict() if failure else None,
    }
