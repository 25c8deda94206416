"""Assign or correct subtask dates so every task sits inside its project window."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional, Sequence, Tuple

from app.services.date_range import (
    DateWindow,
    clamp_date,
    duration_days_for_hours,
    proportional_offset,
)
from app.services.task_set import GeneratedTask

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskSchedule:
    start_date: date
    due_date: date
    start_supplied: bool
    due_supplied: bool


def earliest_start(window: DateWindow, today: date) -> date:
    """Lower bound for any start date: the later of project start and today, when that still fits."""
    candidate = max(window.start, today)
    return candidate if candidate <= window.due else window.start


def schedule_dates(
    index: int,
    count: int,
    window: DateWindow,
    today: date,
    estimated_hours: Optional[float],
    supplied_start: Optional[date] = None,
    supplied_due: Optional[date] = None,
) -> TaskSchedule:
    """Compute the dates for task ``index`` of ``count``.

    Supplied dates are kept when they are valid for the window; otherwise
    the start is spread proportionally across the window and the due date
    either follows the task's own span (supplied start) or lands on the
    task's proportional slot (nothing supplied).
    """
    lower = earliest_start(window, today)

    start_supplied = supplied_start is not None and lower <= supplied_start <= window.due
    if start_supplied:
        start = supplied_start
    else:
        start = clamp_date(window.offset(proportional_offset(index, count, window.days)), lower, window.due)

    due_supplied = supplied_due is not None and start < supplied_due <= window.due
    if due_supplied:
        due = supplied_due
    elif start_supplied:
        due = min(start + timedelta(days=duration_days_for_hours(estimated_hours)), window.due)
    else:
        slot_end = window.offset(proportional_offset(index + 1, count, window.days))
        due = max(start, min(slot_end, window.due))

    return TaskSchedule(start_date=start, due_date=due, start_supplied=start_supplied, due_supplied=due_supplied)


def schedule_task_dates(tasks: Sequence[GeneratedTask], window: DateWindow, today: date) -> List[GeneratedTask]:
    """Return copies of ``tasks`` with start/due dates valid for ``window``."""
    count = len(tasks)
    scheduled: List[GeneratedTask] = []
    corrected = 0
    for index, task in enumerate(tasks):
        schedule = schedule_dates(
            index,
            count,
            window,
            today,
            task.estimated_hours,
            supplied_start=task.start_date,
            supplied_due=task.due_date,
        )
        if (task.start_date and not schedule.start_supplied) or (task.due_date and not schedule.due_supplied):
            corrected += 1
        scheduled.append(task.model_copy(update={"start_date": schedule.start_date, "due_date": schedule.due_date}))
    if corrected:
        logger.info("Corrected out-of-window dates on %s of %s generated subtasks", corrected, count)
    return scheduled


def clamp_into_window(
    start: Optional[date],
    due: Optional[date],
    window: DateWindow,
) -> Tuple[Optional[date], Optional[date]]:
    """Pull an existing subtask's dates back inside a (possibly changed) project window."""
    new_start = window.clamp(start) if start else None
    new_due = window.clamp(due) if due else None
    if new_start and new_due and new_due < new_start:
        new_due = new_start
    return new_start, new_due
