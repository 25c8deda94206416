"""Schemas for the subtasks API."""
from __future__ import annotations

from datetime import date, datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

Level = Literal["Low", "Medium", "High"]
SubtaskStatus = Literal["Pending", "In Progress", "Completed", "Blocked"]
Phase = Literal["Planning", "Execution", "Review", "QA"]
SortField = Literal["order", "priority", "status", "due_date", "start_date", "estimated_hours", "created_at"]


class SubtaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    user_id: UUID
    title: str
    description: Optional[str]
    order: int
    priority: str
    estimated_hours: Optional[float]
    actual_hours: float
    status: str
    phase: str
    complexity: str
    risk_level: str
    start_date: Optional[date]
    due_date: Optional[date]
    completed_date: Optional[datetime]
    dependencies: List[str]
    tags: List[str]
    skills: List[str]
    notes: Optional[str]
    ai_generated: bool
    is_overdue: bool = False
    created_at: datetime
    updated_at: datetime


class _SubtaskFields(BaseModel):
    description: Optional[str] = Field(default=None, max_length=1000)
    order: Optional[int] = Field(default=None, ge=1)
    priority: Optional[Level] = None
    estimated_hours: Optional[float] = Field(default=None, ge=0.5, le=100)
    actual_hours: Optional[float] = Field(default=None, ge=0)
    status: Optional[SubtaskStatus] = None
    phase: Optional[Phase] = None
    complexity: Optional[Level] = None
    risk_level: Optional[Level] = None
    start_date: Optional[date] = None
    due_date: Optional[date] = None
    dependencies: Optional[List[UUID]] = None
    tags: Optional[List[str]] = None
    skills: Optional[List[str]] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date and self.due_date and self.due_date < self.start_date:
            raise ValueError("due_date must be on or after start_date")
        return self


class SubtaskCreateRequest(_SubtaskFields):
    user_id: UUID
    title: str = Field(..., min_length=1, max_length=200)


class SubtaskUpdateRequest(_SubtaskFields):
    user_id: UUID
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)


class ProgressSummary(BaseModel):
    progress: int
    status: str
    total: int
    completed: int
    in_progress: int


class SubtaskListResponse(BaseModel):
    count: int
    progress: ProgressSummary
    items: List[SubtaskResponse]


class SubtaskMutationResponse(BaseModel):
    subtask: SubtaskResponse
    project_progress: ProgressSummary
    request_id: str


class SubtaskDeleteResponse(BaseModel):
    id: UUID
    dependencies_cleared: int
    project_progress: ProgressSummary
    request_id: str


class SubtaskReorderRequest(BaseModel):
    user_id: UUID
    subtask_ids: List[UUID] = Field(..., min_length=1)


class SubtaskBulkStatusRequest(BaseModel):
    user_id: UUID
    subtask_ids: List[UUID] = Field(..., min_length=1)
    status: SubtaskStatus


class SubtaskBulkResponse(BaseModel):
    updated: int
    items: List[SubtaskResponse]
    project_progress: ProgressSummary
    request_id: str


class SubtaskStatsResponse(BaseModel):
    total: int
    pending: int
    in_progress: int
    completed: int
    blocked: int
    total_estimated_hours: float
    total_actual_hours: float
    overdue: int
