"""Index-addressed task breakdown handed from generation to persistence."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from app.db.models.subtask import LEVELS, MAX_ESTIMATED_HOURS, MIN_ESTIMATED_HOURS, SUBTASK_PHASES

DEFAULT_ESTIMATED_HOURS = 2.0
DEFAULT_PRIORITY = "Medium"
DEFAULT_PHASE = "Execution"
DEFAULT_COMPLEXITY = "Medium"
DEFAULT_RISK_LEVEL = "Low"

MALFORMED_RESPONSE = "MalformedResponse"
EMPTY_TASK_SET = "EmptyTaskSet"
COLLABORATOR_ERROR = "CollaboratorError"
COLLABORATOR_TIMEOUT = "CollaboratorTimeout"
COLLABORATOR_RATE_LIMITED = "CollaboratorRateLimited"
COLLABORATOR_UNAVAILABLE = "CollaboratorUnavailable"


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class GeneratedTask(_CamelModel):
    """One task descriptor as emitted by the generator (dependencies are raw indices)."""

    title: str
    description: str
    estimated_hours: float = DEFAULT_ESTIMATED_HOURS
    priority: str = DEFAULT_PRIORITY
    order: Optional[int] = None
    phase: str = DEFAULT_PHASE
    complexity: str = DEFAULT_COMPLEXITY
    risk_level: str = DEFAULT_RISK_LEVEL
    dependencies: List[Any] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    start_date: Optional[date] = None
    due_date: Optional[date] = None

    @field_validator("title", "description", mode="before")
    @classmethod
    def _require_text(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("must be a non-empty string")
        return value.strip()

    @field_validator("estimated_hours", mode="before")
    @classmethod
    def _coerce_hours(cls, value: Any) -> float:
        hours = _finite_float(value)
        if hours is None or hours <= 0:
            return DEFAULT_ESTIMATED_HOURS
        return min(MAX_ESTIMATED_HOURS, max(MIN_ESTIMATED_HOURS, hours))

    @field_validator("priority", mode="before")
    @classmethod
    def _coerce_priority(cls, value: Any) -> str:
        return _match_choice(value, LEVELS, DEFAULT_PRIORITY)

    @field_validator("complexity", mode="before")
    @classmethod
    def _coerce_complexity(cls, value: Any) -> str:
        return _match_choice(value, LEVELS, DEFAULT_COMPLEXITY)

    @field_validator("risk_level", mode="before")
    @classmethod
    def _coerce_risk(cls, value: Any) -> str:
        return _match_choice(value, LEVELS, DEFAULT_RISK_LEVEL)

    @field_validator("phase", mode="before")
    @classmethod
    def _coerce_phase(cls, value: Any) -> str:
        return _match_choice(value, SUBTASK_PHASES, DEFAULT_PHASE)

    @field_validator("order", mode="before")
    @classmethod
    def _coerce_order(cls, value: Any) -> Optional[int]:
        if isinstance(value, bool):
            return None
        if isinstance(value, float) and not math.isfinite(value):
            return None
        try:
            number = int(value)
        except (TypeError, ValueError, OverflowError):
            return None
        return number if number >= 1 else None

    @field_validator("dependencies", mode="before")
    @classmethod
    def _keep_raw_dependencies(cls, value: Any) -> List[Any]:
        # Raw values; positions must line up with the persisted rows until ids are resolved.
        return list(value) if isinstance(value, list) else []

    @field_validator("tags", "skills", mode="before")
    @classmethod
    def _coerce_labels(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [str(item).strip() for item in value if isinstance(item, (str, int, float)) and str(item).strip()]

    @field_validator("start_date", "due_date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> Optional[date]:
        return parse_iso_date(value)


class GeneratedMilestone(_CamelModel):
    name: str
    description: str = ""
    task_indices: List[Any] = Field(default_factory=list)
    estimated_completion: Optional[str] = None

    @field_validator("description", mode="before")
    @classmethod
    def _coerce_description(cls, value: Any) -> str:
        return value.strip() if isinstance(value, str) else ""

    @field_validator("task_indices", mode="before")
    @classmethod
    def _coerce_indices(cls, value: Any) -> List[Any]:
        return list(value) if isinstance(value, list) else []

    @field_validator("estimated_completion", mode="before")
    @classmethod
    def _coerce_completion(cls, value: Any) -> Optional[str]:
        if isinstance(value, bool) or value is None:
            return None
        if isinstance(value, str):
            return value.strip() or None
        if isinstance(value, int) or (isinstance(value, float) and math.isfinite(value)):
            return str(value)
        return None


class GeneratedTaskSet(_CamelModel):
    """Validated generator output, prior to persistence and id resolution."""

    subtasks: List[GeneratedTask] = Field(..., min_length=1)
    total_estimated_hours: float = 0.0
    critical_path: List[Any] = Field(default_factory=list)
    milestones: List[GeneratedMilestone] = Field(default_factory=list)
    risk_factors: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    resources: List[str] = Field(default_factory=list)
    fallback_used: bool = False
    from_cache: bool = False

    @field_validator("total_estimated_hours", mode="before")
    @classmethod
    def _coerce_total(cls, value: Any) -> float:
        total = _finite_float(value)
        return max(0.0, total) if total is not None else 0.0

    @field_validator("critical_path", mode="before")
    @classmethod
    def _coerce_path(cls, value: Any) -> List[Any]:
        return list(value) if isinstance(value, list) else []

    @field_validator("milestones", mode="before")
    @classmethod
    def _drop_unnamed_milestones(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [entry for entry in value if isinstance(entry, dict) and isinstance(entry.get("name"), str)]

    @field_validator("risk_factors", "suggestions", "resources", mode="before")
    @classmethod
    def _coerce_notes(cls, value: Any) -> List[str]:
        if not isinstance(value, list):
            return []
        return [item.strip() for item in value if isinstance(item, str) and item.strip()]

    @model_validator(mode="after")
    def _fill_defaults(self) -> "GeneratedTaskSet":
        for index, task in enumerate(self.subtasks):
            if task.order is None:
                task.order = index + 1
        if self.total_estimated_hours <= 0:
            self.total_estimated_hours = self.summed_hours()
        return self

    def summed_hours(self) -> float:
        return round(sum(task.estimated_hours for task in self.subtasks), 2)


@dataclass(frozen=True)
class GenerationFailure:
    """Why the generative path produced no usable task set."""

    kind: str
    message: str
    error: Optional[BaseException] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "message": self.message}


GenerationOutcome = Union[GeneratedTaskSet, GenerationFailure]


def parse_iso_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return date.fromisoformat(value.strip().split("T")[0][:10])
    except ValueError:
        return None


def _finite_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def _match_choice(value: Any, choices: tuple[str, ...], default: str) -> str:
    if not isinstance(value, str):
        return default
    normalized = value.strip().lower()
    for choice in choices:
        if choice.lower() == normalized:
            return choice
    return default
