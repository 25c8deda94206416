"""ORM models exposed for metadata discovery."""
from app.db.models.project import Project
from app.db.models.subtask import Subtask

__all__ = [
    "Project",
    "Subtask",
]
