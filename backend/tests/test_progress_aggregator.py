from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.models.project import Project
from app.db.models.subtask import Subtask
from app.services.progress_aggregator import (
    DerivedFieldLocked,
    compute_progress,
    derive_status,
    reconcile_all_projects,
    recalculate_project_progress,
    set_manual_progress,
    status_for_manual_progress,
)


@pytest.fixture()
def session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    @event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):  # pragma: no cover - sqlite setup
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    Project.__table__.create(bind=engine)
    Subtask.__table__.create(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


def _project(db) -> Project:
    project = Project(
        user_id=uuid4(),
        name="Launch",
        description="Launch the product",
        timeline=30,
        start_date=date(2024, 1, 1),
        due_date=date(2024, 1, 31),
    )
    db.add(project)
    db.commit()
    return project


def _add_subtasks(db, project: Project, statuses) -> list[Subtask]:
    rows = []
    for index, status in enumerate(statuses, start=1):
        row = Subtask(
            project_id=project.id,
            user_id=project.user_id,
            title=f"Step {index}",
            order=index,
            status=status,
        )
        db.add(row)
        rows.append(row)
    db.flush()
    return rows


@pytest.mark.parametrize(
    ("completed", "total", "expected"),
    [(0, 0, 0), (0, 4, 0), (1, 3, 33), (2, 3, 67), (1, 8, 13), (3, 8, 38), (4, 4, 100)],
)
def test_compute_progress_rounds_half_up(completed, total, expected) -> None:
    assert compute_progress(completed, total) == expected


@pytest.mark.parametrize(
    ("total", "completed", "in_progress", "expected"),
    [
        (0, 0, 0, "Pending"),
        (3, 0, 0, "Pending"),
        (3, 0, 1, "In Progress"),
        (3, 1, 0, "In Progress"),
        (3, 3, 0, "Completed"),
    ],
)
def test_derive_status(total, completed, in_progress, expected) -> None:
    assert derive_status(total, completed, in_progress) == expected


def test_blocked_subtasks_count_toward_total_only(session) -> None:
    project = _project(session)
    _add_subtasks(session, project, ["Completed", "Blocked", "Blocked", "Pending"])

    snapshot = recalculate_project_progress(session, project.id)
    session.commit()

    assert snapshot.total == 4
    assert snapshot.progress == 25
    assert snapshot.status == "In Progress"
    session.refresh(project)
    assert (project.progress, project.status) == (25, "In Progress")


def test_recalculate_sees_unflushed_status_change(session) -> None:
    project = _project(session)
    rows = _add_subtasks(session, project, ["Pending", "Pending"])
    session.commit()

    for row in rows:
        row.status = "Completed"
    snapshot = recalculate_project_progress(session, project.id)

    assert snapshot.changed is True
    assert (snapshot.progress, snapshot.status) == (100, "Completed")


def test_recalculate_reports_unchanged(session) -> None:
    project = _project(session)
    _add_subtasks(session, project, ["Pending"])

    snapshot = recalculate_project_progress(session, project.id)

    assert snapshot.changed is False
    assert (snapshot.progress, snapshot.status) == (0, "Pending")


def test_recalculate_missing_project_returns_none(session) -> None:
    assert recalculate_project_progress(session, uuid4()) is None


def test_manual_progress_without_subtasks(session) -> None:
    project = _project(session)

    set_manual_progress(session, project, 40)

    assert (project.progress, project.status) == (40, "In Progress")
    assert status_for_manual_progress(0) == "Pending"
    assert status_for_manual_progress(100) == "Completed"


def test_manual_progress_is_locked_once_subtasks_exist(session) -> None:
    project = _project(session)
    _add_subtasks(session, project, ["Pending", "Completed"])

    with pytest.raises(DerivedFieldLocked) as excinfo:
        set_manual_progress(session, project, 90)

    assert excinfo.value.subtask_count == 2


def test_reconcile_repairs_drifted_projects(session) -> None:
    drifted = _project(session)
    healthy = _project(session)
    untouched = _project(session)
    _add_subtasks(session, drifted, ["Completed", "Completed"])
    _add_subtasks(session, healthy, ["Pending"])
    untouched.progress = 55
    untouched.status = "In Progress"
    session.commit()

    changed = reconcile_all_projects(session)

    assert changed == [drifted.id]
    session.refresh(drifted)
    session.refresh(untouched)
    assert (drifted.progress, drifted.status) == (100, "Completed")
    assert (untouched.progress, untouched.status) == (55, "In Progress")
