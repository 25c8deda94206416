"""Schemas for the projects API."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

Priority = Literal["Low", "Medium", "High"]
ProjectStatus = Literal["Pending", "In Progress", "Completed"]

DUE_TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


def _clean_tags(value: Any) -> List[str]:
    if value is None:
        return []
    cleaned: List[str] = []
    for item in value:
        tag = str(item).strip()
        if tag and tag not in cleaned:
            cleaned.append(tag)
    return cleaned


class ProjectCreateRequest(BaseModel):
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=500)
    timeline: Optional[int] = Field(default=None, ge=1, le=3650)
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    due_time: str = Field(default="17:00", pattern=DUE_TIME_PATTERN)
    priority: Priority = "Medium"
    category: Optional[str] = Field(default=None, max_length=50)
    tags: List[str] = Field(default_factory=list)

    @field_validator("name", "description")
    @classmethod
    def strip_text(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("must not be blank")
        return cleaned

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, value: Any) -> List[str]:
        return _clean_tags(value)

    @model_validator(mode="after")
    def check_window(self) -> "ProjectCreateRequest":
        if self.start_date and self.due_date and self.due_date <= self.start_date:
            raise ValueError("due_date must be after start_date")
        return self


class ProjectUpdateRequest(BaseModel):
    user_id: UUID
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    due_time: Optional[str] = Field(default=None, pattern=DUE_TIME_PATTERN)
    priority: Optional[Priority] = None
    category: Optional[str] = Field(default=None, max_length=50)
    tags: Optional[List[str]] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)

    @field_validator("tags", mode="before")
    @classmethod
    def clean_tags(cls, value: Any) -> Optional[List[str]]:
        return None if value is None else _clean_tags(value)


class ProjectProgressRequest(BaseModel):
    user_id: UUID
    progress: int = Field(..., ge=0, le=100)


class ProjectResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    name: str
    description: str
    timeline: int
    start_date: date
    due_date: date
    due_time: str
    priority: str
    category: Optional[str]
    tags: List[str]
    progress: int
    status: str
    subtask_count: int = 0
    generation: Optional[Dict[str, Any]] = None
    created_at: datetime
    updated_at: datetime


class ProjectListResponse(BaseModel):
    items: List[ProjectResponse]
    total: int
    page: int
    limit: int
    pages: int


class ProjectStatsResponse(BaseModel):
    total: int
    pending: int
    in_progress: int
    completed: int
    average_progress: float
    high_priority: int
    overdue: int


class ProjectDeleteResponse(BaseModel):
    id: UUID
    deleted_subtasks: int
    request_id: str
