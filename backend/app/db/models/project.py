"""Project ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, Date, DateTime, Index, Integer, String, Text, func, text as sa_text
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.db.types import JSONBCompat, JSONList

PROJECT_PRIORITIES = ("Low", "Medium", "High")
PROJECT_STATUSES = ("Pending", "In Progress", "Completed")


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        Index("ix_projects_user_id", "user_id"),
        Index("ix_projects_user_id_status", "user_id", "status"),
        Index("ix_projects_user_id_due_date", "user_id", "due_date"),
        CheckConstraint("start_date < due_date", name="ck_projects_window"),
        CheckConstraint("progress >= 0 AND progress <= 100", name="ck_projects_progress_range"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    name = Column(String(length=100), nullable=False)
    description = Column(Text, nullable=False)
    timeline = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    due_time = Column(String(length=5), nullable=False, server_default=sa_text("'17:00'"), default="17:00")
    priority = Column(String(length=10), nullable=False, server_default=sa_text("'Medium'"), default="Medium")
    category = Column(String(length=50), nullable=True)
    tags = Column(JSONList, nullable=False, default=list)
    # Derived from subtasks whenever at least one exists; see services.progress_aggregator.
    progress = Column(Integer, nullable=False, server_default=sa_text("0"), default=0)
    status = Column(String(length=20), nullable=False, server_default=sa_text("'Pending'"), default="Pending")
    # Column named "metadata" but attribute renamed to avoid Base.metadata collisions.
    metadata_json = Column("metadata", JSONBCompat, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    @property
    def window_days(self) -> int:
        return max(1, (self.due_date - self.start_date).days)
