"""Subtask ORM model."""
from __future__ import annotations

from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    text as sa_text,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.db.types import JSONList

SUBTASK_STATUSES = ("Pending", "In Progress", "Completed", "Blocked")
SUBTASK_PHASES = ("Planning", "Execution", "Review", "QA")
LEVELS = ("Low", "Medium", "High")

MIN_ESTIMATED_HOURS = 0.5
MAX_ESTIMATED_HOURS = 100.0


class Subtask(Base):
    __tablename__ = "subtasks"
    __table_args__ = (
        Index("ix_subtasks_project_id_order", "project_id", "order"),
        Index("ix_subtasks_project_id_status", "project_id", "status"),
        Index("ix_subtasks_user_id_status", "user_id", "status"),
        Index("ix_subtasks_due_date_status", "due_date", "status"),
        CheckConstraint('"order" >= 1', name="ck_subtasks_order_positive"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    project_id = Column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id = Column(UUID(as_uuid=True), nullable=False)
    title = Column(String(length=200), nullable=False)
    description = Column(Text, nullable=True)
    order = Column(Integer, nullable=False)
    priority = Column(String(length=10), nullable=False, server_default=sa_text("'Medium'"), default="Medium")
    estimated_hours = Column(Float, nullable=True)
    actual_hours = Column(Float, nullable=False, server_default=sa_text("0"), default=0.0)
    status = Column(String(length=20), nullable=False, server_default=sa_text("'Pending'"), default="Pending")
    phase = Column(String(length=20), nullable=False, server_default=sa_text("'Execution'"), default="Execution")
    complexity = Column(String(length=10), nullable=False, server_default=sa_text("'Medium'"), default="Medium")
    risk_level = Column(String(length=10), nullable=False, server_default=sa_text("'Low'"), default="Low")
    start_date = Column(Date, nullable=True)
    due_date = Column(Date, nullable=True)
    completed_date = Column(DateTime(timezone=True), nullable=True)
    # Sibling subtask ids (strings); always same project, never self.
    dependencies = Column(JSONList, nullable=False, default=list)
    tags = Column(JSONList, nullable=False, default=list)
    skills = Column(JSONList, nullable=False, default=list)
    notes = Column(Text, nullable=True)
    ai_generated = Column(Boolean, nullable=False, server_default=sa_text("false"), default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
