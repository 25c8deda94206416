"""Deterministic task breakdown used whenever generation is unusable."""
from __future__ import annotations

from typing import Any, Dict, List

from app.db.models.subtask import MAX_ESTIMATED_HOURS
from app.services.project_descriptor import ProjectDescriptor
from app.services.task_set import GeneratedTask, GeneratedTaskSet

FALLBACK_TEMPLATE: List[Dict[str, Any]] = [
    {
        "title": "Project Planning and Setup",
        "description": "Define project scope, requirements, and set up initial structure",
        "priority": "High",
        "estimated_hours": 4,
        "phase": "Planning",
        "tags": ["planning"],
        "skills": ["Project Management"],
    },
    {
        "title": "Research and Analysis",
        "description": "Conduct necessary research and analyze requirements",
        "priority": "High",
        "estimated_hours": 6,
        "phase": "Planning",
        "tags": ["research"],
        "skills": ["Analysis"],
    },
    {
        "title": "Design and Architecture",
        "description": "Create design documents and system architecture",
        "priority": "High",
        "estimated_hours": 8,
        "phase": "Planning",
        "tags": ["design"],
        "skills": ["Design"],
    },
    {
        "title": "Core Implementation",
        "description": "Implement the main features and functionality",
        "priority": "High",
        "estimated_hours": 16,
        "phase": "Execution",
        "complexity": "High",
        "risk_level": "Medium",
        "tags": ["implementation"],
        "skills": ["Development"],
    },
    {
        "title": "Testing and Quality Assurance",
        "description": "Test all components and ensure quality standards",
        "priority": "Medium",
        "estimated_hours": 6,
        "phase": "QA",
        "tags": ["testing"],
        "skills": ["Testing"],
    },
    {
        "title": "Documentation and Deployment",
        "description": "Create documentation and deploy the solution",
        "priority": "Medium",
        "estimated_hours": 4,
        "phase": "Review",
        "tags": ["documentation"],
        "skills": ["Technical Writing"],
    },
]

FALLBACK_SUGGESTIONS = [
    "This is a basic template. Customize tasks based on the specific project requirements.",
    "Add more detailed subtasks once the project scope is better defined.",
]


def timeline_factor(timeline_days: int) -> int:
    return max(1, timeline_days // 7)


def build_fallback_task_set(descriptor: ProjectDescriptor) -> GeneratedTaskSet:
    """Return the fixed six-task template scaled to the descriptor's timeline.

    Each task depends on the one before it and the whole chain is the
    critical path. Dates are left for the scheduler.
    """
    factor = timeline_factor(descriptor.timeline)
    subtasks = []
    for index, template in enumerate(FALLBACK_TEMPLATE):
        fields = dict(template)
        fields["estimated_hours"] = min(MAX_ESTIMATED_HOURS, float(template["estimated_hours"] * factor))
        fields["order"] = index + 1
        fields["dependencies"] = [index - 1] if index else []
        subtasks.append(GeneratedTask(**fields))

    task_set = GeneratedTaskSet(
        subtasks=subtasks,
        critical_path=list(range(len(subtasks))),
        risk_factors=[],
        suggestions=list(FALLBACK_SUGGESTIONS),
        fallback_used=True,
    )
    return task_set
