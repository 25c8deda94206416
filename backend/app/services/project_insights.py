"""Heuristic planning insights derived from a generated task set."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List

from app.services.date_range import HOURS_PER_WORKDAY
from app.services.task_set import GeneratedTaskSet

BASE_HOURLY_RATE = 50
COMPLEXITY_RATE_MULTIPLIERS = {"High": 1.5, "Medium": 1.0, "Low": 0.8}
HOURS_PER_PERSON_MONTH = 160
HIGH_COMPLEXITY_SHARE = 0.3

SUCCESS_METRICS = [
    "All subtasks completed within estimated timeframe",
    "Project delivered by due date",
    "Quality standards met for all deliverables",
    "Budget maintained within 10% of estimate",
    "No critical risks materialized",
    "Stakeholder satisfaction rating above 4/5",
]


@dataclass
class ProjectInsights:
    notes: List[Dict[str, str]] = field(default_factory=list)
    recommended_team_size: int = 1
    budget: Dict[str, Any] = field(default_factory=dict)
    success_metrics: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "notes": list(self.notes),
            "recommended_team_size": self.recommended_team_size,
            "budget": dict(self.budget),
            "success_metrics": list(self.success_metrics),
        }


def timeline_notes(task_set: GeneratedTaskSet, timeline_days: int) -> List[Dict[str, str]]:
    notes: List[Dict[str, str]] = []
    total_hours = task_set.total_estimated_hours or task_set.summed_hours()
    working_days = math.ceil(total_hours / HOURS_PER_WORKDAY)
    if working_days > timeline_days:
        notes.append(
            {
                "type": "warning",
                "message": (
                    f"Estimated work ({working_days} days) exceeds timeline ({timeline_days} days). "
                    "Consider reducing scope or extending the deadline."
                ),
            }
        )

    high_complexity = sum(1 for task in task_set.subtasks if task.complexity == "High")
    if high_complexity > len(task_set.subtasks) * HIGH_COMPLEXITY_SHARE:
        notes.append(
            {
                "type": "info",
                "message": f"Project has {high_complexity} high-complexity tasks. Consider breaking these down further.",
            }
        )

    high_risk = sum(1 for task in task_set.subtasks if task.risk_level == "High")
    if high_risk:
        notes.append(
            {
                "type": "warning",
                "message": f"{high_risk} high-risk tasks identified. Develop mitigation strategies early.",
            }
        )
    return notes


def recommended_team_size(task_set: GeneratedTaskSet) -> int:
    total_hours = task_set.total_estimated_hours or task_set.summed_hours()
    skills = {skill.lower() for task in task_set.subtasks for skill in task.skills}
    hours_based = math.ceil(total_hours / HOURS_PER_PERSON_MONTH)
    skills_based = math.ceil(len(skills) / 2)
    return max(1, hours_based, skills_based)


def estimate_budget(task_set: GeneratedTaskSet) -> Dict[str, Any]:
    total = 0.0
    for task in task_set.subtasks:
        multiplier = COMPLEXITY_RATE_MULTIPLIERS.get(task.complexity, 1.0)
        total += task.estimated_hours * BASE_HOURLY_RATE * multiplier
    return {
        "currency": "USD",
        "hourly_rate": BASE_HOURLY_RATE,
        "estimated": round(total),
        "range": {"min": round(total * 0.8), "max": round(total * 1.3)},
    }


def build_insights(task_set: GeneratedTaskSet, timeline_days: int) -> ProjectInsights:
    return ProjectInsights(
        notes=timeline_notes(task_set, timeline_days),
        recommended_team_size=recommended_team_size(task_set),
        budget=estimate_budget(task_set),
        success_metrics=list(SUCCESS_METRICS),
    )
