"""Schemas for subtask generation."""
from __future__ import annotations

from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.api.schemas.subtask import ProgressSummary, SubtaskResponse


class GenerateSubtasksRequest(BaseModel):
    user_id: UUID
    regenerate: bool = False


class MilestonePayload(BaseModel):
    name: str
    description: str = ""
    task_ids: List[str] = Field(default_factory=list)
    estimated_completion: Optional[str] = None


class GenerateSubtasksResponse(BaseModel):
    project_id: UUID
    created: bool
    subtasks: List[SubtaskResponse]
    total_estimated_hours: float
    critical_path: List[int] = Field(default_factory=list)
    critical_path_ids: List[str] = Field(default_factory=list)
    milestones: List[MilestonePayload] = Field(default_factory=list)
    risk_factors: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)
    resources: List[str] = Field(default_factory=list)
    insights: Dict[str, Any] = Field(default_factory=dict)
    fallback_used: bool
    cache_used: bool
    failure_reason: Optional[Dict[str, str]] = None
    project_progress: ProgressSummary
    request_id: str
