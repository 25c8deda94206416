"""Initial ProjectPilot schema: projects and subtasks."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "202410041200"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("timeline", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("due_time", sa.String(length=5), nullable=False, server_default=sa.text("'17:00'")),
        sa.Column("priority", sa.String(length=10), nullable=False, server_default=sa.text("'Medium'")),
        sa.Column("category", sa.String(length=50), nullable=True),
        sa.Column(
            "tags",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("progress", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'Pending'")),
        sa.Column("metadata", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.CheckConstraint("start_date < due_date", name="ck_projects_window"),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_projects_progress_range"),
    )
    op.create_index("ix_projects_user_id", "projects", ["user_id"], unique=False)
    op.create_index("ix_projects_user_id_status", "projects", ["user_id", "status"], unique=False)
    op.create_index("ix_projects_user_id_due_date", "projects", ["user_id", "due_date"], unique=False)

    op.create_table(
        "subtasks",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("project_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("order", sa.Integer(), nullable=False),
        sa.Column("priority", sa.String(length=10), nullable=False, server_default=sa.text("'Medium'")),
        sa.Column("estimated_hours", sa.Float(), nullable=True),
        sa.Column("actual_hours", sa.Float(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'Pending'")),
        sa.Column("phase", sa.String(length=20), nullable=False, server_default=sa.text("'Execution'")),
        sa.Column("complexity", sa.String(length=10), nullable=False, server_default=sa.text("'Medium'")),
        sa.Column("risk_level", sa.String(length=10), nullable=False, server_default=sa.text("'Low'")),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("completed_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "dependencies",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("tags", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("skills", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("ai_generated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
        sa.CheckConstraint('"order" >= 1', name="ck_subtasks_order_positive"),
    )
    op.create_index("ix_subtasks_project_id_order", "subtasks", ["project_id", "order"], unique=False)
    op.create_index("ix_subtasks_project_id_status", "subtasks", ["project_id", "status"], unique=False)
    op.create_index("ix_subtasks_user_id_status", "subtasks", ["user_id", "status"], unique=False)
    op.create_index("ix_subtasks_due_date_status", "subtasks", ["due_date", "status"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_subtasks_due_date_status", table_name="subtasks")
    op.drop_index("ix_subtasks_user_id_status", table_name="subtasks")
    op.drop_index("ix_subtasks_project_id_status", table_name="subtasks")
    op.drop_index("ix_subtasks_project_id_order", table_name="subtasks")
    op.drop_table("subtasks")
    op.drop_index("ix_projects_user_id_due_date", table_name="projects")
    op.drop_index("ix_projects_user_id_status", table_name="projects")
    op.drop_index("ix_projects_user_id", table_name="projects")
    op.drop_table("projects")
