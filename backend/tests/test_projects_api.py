from __future__ import annotations

from datetime import date, timedelta
from uuid import UUID, uuid4

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.db.deps import get_db
from app.db.models.project import Project
from app.db.models.subtask import Subtask
from app.main import app


@pytest.fixture()
def client():
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

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client, TestingSessionLocal
    app.dependency_overrides.clear()


def _create_project(client: TestClient, user_id: UUID, **overrides) -> dict:
    payload = {
        "user_id": str(user_id),
        "name": "Launch website",
        "description": "Ship the new marketing website",
        "timeline": 30,
        "start_date": "2024-01-01",
        "priority": "High",
    }
    payload.update(overrides)
    response = client.post("/projects", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


def _add_subtask(session_factory, project_id: str, **fields) -> str:
    with session_factory() as db:
        project = db.get(Project, UUID(project_id))
        subtask = Subtask(
            project_id=project.id,
            user_id=project.user_id,
            title=fields.pop("title", "Step"),
            order=fields.pop("order", 1),
            **fields,
        )
        db.add(subtask)
        db.commit()
        return str(subtask.id)


def test_create_project_derives_due_date_from_timeline(client):
    test_client, _ = client
    user_id = uuid4()

    body = _create_project(test_client, user_id)

    assert body["user_id"] == str(user_id)
    assert body["start_date"] == "2024-01-01"
    assert body["due_date"] == "2024-01-31"
    assert body["timeline"] == 30
    assert body["progress"] == 0
    assert body["status"] == "Pending"
    assert body["due_time"] == "17:00"
    assert body["subtask_count"] == 0
    assert body["generation"] is None


def test_create_project_defaults_start_to_today(client):
    test_client, _ = client

    body = _create_project(test_client, uuid4(), start_date=None, timeline=None)

    today = date.today()
    assert body["start_date"] == today.isoformat()
    assert body["due_date"] == (today + timedelta(days=30)).isoformat()


def test_create_project_explicit_due_date_sets_timeline(client):
    test_client, _ = client

    body = _create_project(test_client, uuid4(), due_date="2024-01-11", timeline=None, tags=["web", " web ", "launch"])

    assert body["timeline"] == 10
    assert body["tags"] == ["web", "launch"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"due_date": "2024-01-01"},
        {"due_date": "2023-12-01"},
        {"name": "   "},
        {"priority": "Urgent"},
        {"due_time": "25:00"},
    ],
)
def test_create_project_rejects_invalid_payloads(client, overrides):
    test_client, _ = client
    payload = {
        "user_id": str(uuid4()),
        "name": "Launch website",
        "description": "Ship it",
        "start_date": "2024-01-01",
    }
    payload.update(overrides)

    response = test_client.post("/projects", json=payload)

    assert response.status_code == 422


def test_get_project_checks_ownership(client):
    test_client, _ = client
    owner = uuid4()
    project = _create_project(test_client, owner)

    assert test_client.get(f"/projects/{project['id']}", params={"user_id": str(owner)}).status_code == 200
    assert test_client.get(f"/projects/{project['id']}", params={"user_id": str(uuid4())}).status_code == 403
    assert test_client.get(f"/projects/{uuid4()}", params={"user_id": str(owner)}).status_code == 404


def test_list_projects_filters_and_paginates(client):
    test_client, _ = client
    user_id = uuid4()
    for index in range(3):
        _create_project(test_client, user_id, name=f"Project {index}", priority="Low" if index else "High")
    _create_project(test_client, uuid4())

    response = test_client.get("/projects", params={"user_id": str(user_id), "limit": 2})
    body = response.json()
    assert response.status_code == 200
    assert body["total"] == 3
    assert body["pages"] == 2
    assert len(body["items"]) == 2

    high = test_client.get("/projects", params={"user_id": str(user_id), "priority": "High"}).json()
    assert [item["name"] for item in high["items"]] == ["Project 0"]

    pending = test_client.get("/projects", params={"user_id": str(user_id), "status": "Pending"}).json()
    assert pending["total"] == 3


def test_project_stats(client):
    test_client, session_factory = client
    user_id = uuid4()
    first = _create_project(test_client, user_id, priority="High")
    _create_project(test_client, user_id, priority="Low", start_date="2999-01-01")
    _add_subtask(session_factory, first["id"], status="Completed")
    test_client.patch(
        f"/subtasks/{_add_subtask(session_factory, first['id'], order=2)}",
        json={"user_id": str(user_id), "status": "Completed"},
    )

    stats = test_client.get("/projects/stats", params={"user_id": str(user_id)}).json()

    assert stats["total"] == 2
    assert stats["completed"] == 1
    assert stats["pending"] == 1
    assert stats["average_progress"] == 50.0
    assert stats["high_priority"] == 1
    assert stats["overdue"] == 0


def test_update_project_window_clamps_subtask_dates(client):
    test_client, session_factory = client
    user_id = uuid4()
    project = _create_project(test_client, user_id)
    subtask_id = _add_subtask(
        session_factory,
        project["id"],
        start_date=date(2024, 1, 2),
        due_date=date(2024, 1, 28),
    )

    response = test_client.patch(
        f"/projects/{project['id']}",
        json={"user_id": str(user_id), "start_date": "2024-01-05", "due_date": "2024-01-20", "name": " Renamed "},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["timeline"] == 15
    assert body["name"] == "Renamed"
    with session_factory() as db:
        subtask = db.get(Subtask, UUID(subtask_id))
        assert subtask.start_date == date(2024, 1, 5)
        assert subtask.due_date == date(2024, 1, 20)


def test_update_project_rejects_inverted_window(client):
    test_client, _ = client
    user_id = uuid4()
    project = _create_project(test_client, user_id)

    response = test_client.patch(
        f"/projects/{project['id']}",
        json={"user_id": str(user_id), "due_date": "2023-12-31"},
    )

    assert response.status_code == 422


def test_manual_progress_only_without_subtasks(client):
    test_client, session_factory = client
    user_id = uuid4()
    project = _create_project(test_client, user_id)

    response = test_client.patch(
        f"/projects/{project['id']}/progress",
        json={"user_id": str(user_id), "progress": 100},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "Completed"

    _add_subtask(session_factory, project["id"])
    locked = test_client.patch(
        f"/projects/{project['id']}/progress",
        json={"user_id": str(user_id), "progress": 10},
    )
    assert locked.status_code == 409

    via_patch = test_client.patch(
        f"/projects/{project['id']}",
        json={"user_id": str(user_id), "progress": 10},
    )
    assert via_patch.status_code == 409


def test_delete_project_removes_subtasks(client):
    test_client, session_factory = client
    user_id = uuid4()
    project = _create_project(test_client, user_id)
    _add_subtask(session_factory, project["id"])
    _add_subtask(session_factory, project["id"], order=2)

    forbidden = test_client.delete(f"/projects/{project['id']}", params={"user_id": str(uuid4())})
    assert forbidden.status_code == 403

    response = test_client.delete(f"/projects/{project['id']}", params={"user_id": str(user_id)})

    assert response.status_code == 200
    assert response.json()["deleted_subtasks"] == 2
    assert response.headers.get("X-Request-Id") == response.json()["request_id"]
    with session_factory() as db:
        assert db.query(Subtask).count() == 0
        assert db.get(Project, UUID(project["id"])) is None
