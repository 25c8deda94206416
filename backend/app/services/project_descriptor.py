"""Normalized project description consumed by every generation stage."""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, timedelta
from typing import Any, Optional

from app.db.models.project import PROJECT_PRIORITIES, Project
from app.services.date_range import DateWindow

DEFAULT_TIMELINE_DAYS = 30
DEFAULT_PROJECT_NAME = "Untitled Project"
DEFAULT_PROJECT_PRIORITY = "Medium"
DEFAULT_CATEGORY_LABEL = "General"


@dataclass(frozen=True)
class ProjectDescriptor:
    name: str
    description: str
    timeline: int
    start_date: date
    due_date: date
    priority: str
    category: Optional[str] = None

    @property
    def window(self) -> DateWindow:
        return DateWindow(self.start_date, self.due_date)

    @property
    def category_label(self) -> str:
        return self.category or DEFAULT_CATEGORY_LABEL

    def with_timeline(self, timeline: int) -> "ProjectDescriptor":
        return replace(self, timeline=timeline)


def normalize_descriptor(
    *,
    name: Any = None,
    description: Any = None,
    timeline: Any = None,
    start_date: Optional[date] = None,
    due_date: Optional[date] = None,
    priority: Any = None,
    category: Any = None,
    today: Optional[date] = None,
) -> ProjectDescriptor:
    """Fill every missing or unusable field so downstream stages never see gaps.

    Start defaults to today, due to start plus the timeline (30 days when
    absent). A due date on or before the start is pushed out by the timeline.
    """
    today = today or date.today()
    clean_name = name.strip() if isinstance(name, str) and name.strip() else DEFAULT_PROJECT_NAME
    clean_description = description.strip() if isinstance(description, str) and description.strip() else clean_name

    timeline_days = _positive_int(timeline)
    start = start_date or today
    if due_date and due_date > start:
        due = due_date
    else:
        due = start + timedelta(days=timeline_days or DEFAULT_TIMELINE_DAYS)

    clean_priority = DEFAULT_PROJECT_PRIORITY
    if isinstance(priority, str):
        for choice in PROJECT_PRIORITIES:
            if choice.lower() == priority.strip().lower():
                clean_priority = choice
                break

    clean_category = category.strip() if isinstance(category, str) and category.strip() else None

    return ProjectDescriptor(
        name=clean_name,
        description=clean_description,
        timeline=(due - start).days,
        start_date=start,
        due_date=due,
        priority=clean_priority,
        category=clean_category,
    )


def descriptor_for_project(project: Project, today: Optional[date] = None) -> ProjectDescriptor:
    return normalize_descriptor(
        name=project.name,
        description=project.description,
        timeline=project.timeline,
        start_date=project.start_date,
        due_date=project.due_date,
        priority=project.priority,
        category=project.category,
        today=today,
    )


def _positive_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    return number if number >= 1 else None
