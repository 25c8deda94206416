"""Pure date arithmetic shared by the scheduler and fallback generator."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta

HOURS_PER_WORKDAY = 8


@dataclass(frozen=True)
class DateWindow:
    """Inclusive [start, due] interval a project's subtasks must fit inside."""

    start: date
    due: date

    def __post_init__(self) -> None:
        if self.due < self.start:
            raise ValueError(f"window due {self.due} precedes start {self.start}")

    @property
    def days(self) -> int:
        return (self.due - self.start).days

    def contains(self, value: date) -> bool:
        return self.start <= value <= self.due

    def clamp(self, value: date) -> date:
        return clamp_date(value, self.start, self.due)

    def offset(self, days: int) -> date:
        return self.start + timedelta(days=days)


def clamp_date(value: date, lower: date, upper: date) -> date:
    if value < lower:
        return lower
    if value > upper:
        return upper
    return value


def days_between(start: date, end: date) -> int:
    return (end - start).days


def proportional_offset(index: int, count: int, total_days: int) -> int:
    """Whole days from the window start for position ``index / count``."""
    if count <= 0:
        return 0
    return (index * total_days) // count


def duration_days_for_hours(estimated_hours: float | None) -> int:
    """Calendar days needed for an estimate at eight working hours a day (min 1)."""
    hours = estimated_hours or 0
    return max(1, math.ceil(hours / HOURS_PER_WORKDAY))


def round_to_half(value: float) -> float:
    """Round half-up to the nearest 0.5."""
    return math.floor(value * 2 + 0.5) / 2


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
