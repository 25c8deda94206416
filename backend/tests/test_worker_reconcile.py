from __future__ import annotations

from datetime import date
from uuid import uuid4

import pytest
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings
from app.db.models.project import Project
from app.db.models.subtask import Subtask
from app.worker import scheduler_main


@pytest.fixture()
def session_factory():
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
    return TestingSessionLocal


def _seed_drifted_project(session_factory):
    with session_factory() as db:
        project = Project(
            user_id=uuid4(),
            name="Move house",
            description="Pack and move",
            timeline=14,
            start_date=date(2024, 5, 1),
            due_date=date(2024, 5, 15),
        )
        db.add(project)
        db.flush()
        db.add_all(
            [
                Subtask(project_id=project.id, user_id=project.user_id, title="Pack", order=1, status="Completed"),
                Subtask(project_id=project.id, user_id=project.user_id, title="Drive", order=2, status="In Progress"),
            ]
        )
        db.commit()
        return project.id


def test_reconcile_job_repairs_progress(session_factory):
    project_id = _seed_drifted_project(session_factory)

    changed = scheduler_main.run_reconcile_job(session_factory=session_factory)

    assert changed == 1
    with session_factory() as db:
        project = db.get(Project, project_id)
        assert (project.progress, project.status) == (50, "In Progress")
    assert scheduler_main.run_reconcile_job(session_factory=session_factory) == 0


def test_reconcile_job_swallows_and_logs_failures(monkeypatch, session_factory, caplog):
    def explode(db):
        raise RuntimeError("database went away")

    monkeypatch.setattr(scheduler_main, "reconcile_all_projects", explode)

    assert scheduler_main.run_reconcile_job(session_factory=session_factory) == 0
    assert "Progress reconciliation job failed" in caplog.text


def test_register_jobs_adds_interval_job(monkeypatch):
    monkeypatch.setattr(settings, "reconcile_interval_minutes", 5)
    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler_main.register_jobs(scheduler)

    job = scheduler.get_job(scheduler_main.RECONCILE_JOB_ID)
    assert job is not None
    assert job.trigger.interval.total_seconds() == 300
    assert job.max_instances == 1
    assert job.coalesce is True
