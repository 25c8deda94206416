"""Database base, models and session helpers."""

from app.db.base import Base
from app.db.models import Project, Subtask

__all__ = ["Base", "Project", "Subtask"]
