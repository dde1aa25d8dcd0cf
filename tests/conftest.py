import os

# Must be set before the app (and its engine) is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from app.database import get_session, init_db
from app.main import app


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture()
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture()
def client(engine):
    def _get_session():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = _get_session
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client: TestClient, email: str, password: str = "secret123", **extra) -> dict:
    """Register a user and return bearer headers for it."""
    resp = client.post("/auth/register", json={"email": email, "password": password, **extra})
    assert resp.status_code == 201, resp.text
    resp = client.post("/auth/token", data={"username": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest.fixture()
def auth_headers(client):
    return register(client, "alice@example.com", first_name="Alice", last_name="Smith")


@pytest.fixture()
def make_user(client):
    def _make(email: str, **extra) -> dict:
        return register(client, email, **extra)

    return _make
