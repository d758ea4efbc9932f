import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("AUTO_CREATE_SCHEMA", "false")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.api.deps import get_db
from app.db.base import Base
from app.main import app
from app.services.scope_lock import clear_scope_registry
from app.services.variants import clear_variant_cache


@pytest.fixture()
def session_factory():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(session_factory):
    clear_scope_registry()
    clear_variant_cache()

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
    clear_scope_registry()
    clear_variant_cache()


@pytest.fixture()
def department_setup(client):
    def post(path: str, payload: dict) -> dict:
        response = client.post(f"/api/{path}", json=payload, headers={"X-Actor": "registrar"})
        assert response.status_code == 201, response.text
        return response.json()

    department = post("departments", {"code": "cs", "name": "Computer Science"})
    room_1 = post("rooms", {"code": "R1", "building": "Main", "floor": "1"})
    room_2 = post("rooms", {"code": "R2", "building": "Main", "floor": "2"})
    program = post("programs", {"code": "bscs", "name": "BS Computer Science", "department_id": department["id"]})
    section_a = post(f"programs/{program['id']}/sections", {"year": 1, "letter": "a", "enrolled_count": 20})
    section_b = post(f"programs/{program['id']}/sections", {"year": 1, "letter": "b", "enrolled_count": 20})
    course_1 = post("courses", {"code": "cs101", "description": "Programming 1", "duration": 3, "type": "Core", "year": 1})
    course_2 = post("courses", {"code": "cs102", "description": "Discrete Math", "duration": 2, "type": "Core", "year": 1})
    ana = post("professors", {"name": "Ana", "department_id": department["id"]})
    ben = post("professors", {"name": "Ben", "department_id": department["id"]})
    assignation_1 = post(
        "assignations",
        {"course_id": course_1["id"], "professor_id": ana["id"], "department_id": department["id"]},
    )
    assignation_2 = post(
        "assignations",
        {"course_id": course_2["id"], "professor_id": ben["id"], "department_id": department["id"]},
    )
    return {
        "department_id": department["id"],
        "room_ids": [room_1["id"], room_2["id"]],
        "program_id": program["id"],
        "section_ids": [section_a["id"], section_b["id"]],
        "course_ids": [course_1["id"], course_2["id"]],
        "professor_ids": [ana["id"], ben["id"]],
        "assignation_ids": [assignation_1["id"], assignation_2["id"]],
    }
