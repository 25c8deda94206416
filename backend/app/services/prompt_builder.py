"""Prompt text for the task-breakdown generator."""
from __future__ import annotations

import json

from app.services.project_descriptor import ProjectDescriptor

MIN_TASKS = 5
MAX_TASKS = 15
MIN_TASK_HOURS = 0.5
MAX_TASK_HOURS = 40

SYSTEM_PROMPT = (
    "You are an expert project management assistant who breaks projects into "
    "concrete, schedulable subtasks. You always answer with a single JSON object."
)

RESPONSE_SCHEMA = {
    "subtasks": [
        {
            "title": "Clear, actionable task title (max 80 chars)",
            "description": "Detailed description with specific deliverables",
            "estimatedHours": 4.5,
            "priority": "High|Medium|Low",
            "order": 1,
            "dependencies": [0],
            "phase": "Planning|Execution|Review|QA",
            "complexity": "Low|Medium|High",
            "riskLevel": "Low|Medium|High",
            "tags": ["short labels"],
            "skills": ["skills needed"],
            "startDate": "YYYY-MM-DD",
            "dueDate": "YYYY-MM-DD",
        }
    ],
    "totalEstimatedHours": 45.5,
    "criticalPath": [0, 2, 4],
    "milestones": [
        {"name": "Milestone name", "description": "What is done", "taskIndices": [0, 1], "estimatedCompletion": "YYYY-MM-DD"}
    ],
    "riskFactors": ["Potential risks"],
    "suggestions": ["Practical tips"],
    "resources": ["Tools or references"],
}


def build_task_prompt(descriptor: ProjectDescriptor) -> str:
    """Render the user prompt asking for a JSON task breakdown of ``descriptor``."""
    schema = json.dumps(RESPONSE_SCHEMA, indent=2)
    return (
        "Break the following project into executable subtasks.\n\n"
        "PROJECT CONTEXT:\n"
        f"- Name: {descriptor.name}\n"
        f"- Description: {descriptor.description}\n"
        f"- Timeline: {descriptor.timeline} days\n"
        f"- Start Date: {descriptor.start_date.isoformat()}\n"
        f"- Due Date: {descriptor.due_date.isoformat()}\n"
        f"- Priority: {descriptor.priority}\n"
        f"- Category: {descriptor.category_label}\n\n"
        "RULES:\n"
        f"- Produce between {MIN_TASKS} and {MAX_TASKS} subtasks, ordered as they should be executed.\n"
        f"- Each estimatedHours value must be between {MIN_TASK_HOURS} and {MAX_TASK_HOURS}.\n"
        "- Keep totalEstimatedHours realistic for the timeline at 6-8 working hours per day.\n"
        "- `dependencies` and `criticalPath` are zero-based indices into this same `subtasks` array. "
        "Never use titles or ids, and never list a task as its own dependency.\n"
        f"- Any startDate/dueDate must fall between {descriptor.start_date.isoformat()} "
        f"and {descriptor.due_date.isoformat()}, with startDate on or before dueDate.\n"
        "- Respond with JSON only: no prose, no markdown fences.\n\n"
        "RESPONSE FORMAT:\n"
        f"{schema}\n"
    )
