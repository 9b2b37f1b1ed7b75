"""Pytest fixtures: file-backed SQLite database, recreated for every test."""
import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient

from groupdesk.database import Base, get_db
from groupdesk.main import app

# Import all models so they register with Base.metadata
from groupdesk.models.user import User                              # noqa: F401
from groupdesk.models.group import Group, GroupMember               # noqa: F401
from groupdesk.models.join_request import JoinRequest               # noqa: F401
from groupdesk.models.moderation import GroupBlock, GroupRemoval    # noqa: F401
from groupdesk.models.invite import GroupInvite                     # noqa: F401

SQLITE_URL = "sqlite:///./test.db"


@pytest.fixture(scope="function")
def db_engine():
    """Create a fresh SQLite engine for each test."""
    engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})

    # Enable WAL mode for better concurrency
    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def db(db_engine):
    """Yield a database session for service-level tests."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_engine):
    """FastAPI TestClient with the database dependency overridden to use SQLite."""
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)

    def _override_get_db():
        session = TestingSession()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def make_user(db, name: str = "Test User") -> User:
    """Insert a user straight into the database (service-level tests)."""
    user = User(display_name=name, email=f"{name.lower().replace(' ', '.')}@example.com", password_hash="x")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def register_user(client: TestClient, name: str = "Test User", password: str = "correct-horse") -> dict:
    """Helper: POST /api/users/register; returns the user plus ready-made auth headers."""
    resp = client.post("/api/users/register", json={
        "displayName": name,
        "email": f"{name.lower().replace(' ', '.')}@example.com",
        "password": password,
    })
    assert resp.status_code == 201, resp.text
    data = resp.json()
    return {
        "user_id": data["user"]["userId"],
        "token": data["accessToken"],
        "headers": {"Authorization": f"Bearer {data['accessToken']}"},
    }


def create_test_group(client: TestClient, owner: dict, name: str = "Test Group") -> dict:
    """Helper: POST /api/groups/create as `owner`; returns {groupId, groupCode}."""
    resp = client.post("/api/groups/create", json={"name": name}, headers=owner["headers"])
    assert resp.status_code == 201, resp.text
    return resp.json()


def join_and_approve(client: TestClient, admin: dict, user: dict, group: dict) -> None:
    """Helper: `user` requests to join and `admin` approves."""
    resp = client.post("/api/groups/join", json={"groupCode": group["groupCode"]}, headers=user["headers"])
    assert resp.status_code == 200, resp.text
    request_id = resp.json()["requestId"]
    resp = client.put(
        f"/api/groups/{group['groupId']}/requests/{request_id}/approve",
        headers=admin["headers"],
    )
    assert resp.status_code == 200, resp.text
