"""
Pytest fixtures for the Mumbai Transit backend tests.

Every test gets a fresh in-memory SQLite database shared through a
StaticPool, swapped into the app through ``dependency_overrides``.
"""

import os

# Keep the import-time engine off the filesystem
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from src import models  # noqa: F401
from src.auth.schemas import CallerContext, UserCreate
from src.auth.service import UserService
from src.database import Base, get_db, get_session_factory
from src.main import app

# 10:00 in Mumbai
FIXED_NOW = datetime(2024, 3, 15, 4, 30, tzinfo=timezone.utc)

@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()

@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)

@pytest.fixture()
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()

@pytest.fixture()
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    yield TestClient(app)
    app.dependency_overrides.clear()

def ensure_user(db, email: str, password: str = "testpass", is_admin: bool = False):
    user = UserService.get_user_by_email(db, email)
    if user is None:
        user = UserService.create_user(
            db,
            UserCreate(email=email, full_name=email.split("@")[0], password=password),
            is_admin=is_admin
        )
    return user

def login(client: TestClient, email: str, password: str = "testpass") -> dict:
    r = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}

@pytest.fixture()
def rider(db_session):
    return ensure_user(db_session, "rider@example.com")

@pytest.fixture()
def operator(db_session):
    return ensure_user(db_session, "operator@example.com", is_admin=True)

@pytest.fixture()
def rider_headers(client, rider):
    return login(client, rider.email)

@pytest.fixture()
def operator_headers(client, operator):
    return login(client, operator.email)

@pytest.fixture()
def rider_caller(rider):
    return CallerContext.from_user(rider)
