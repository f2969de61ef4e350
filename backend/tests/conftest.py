"""
conftest.py: shared fixtures: in-memory database, user factory, API client.
"""
import itertools
import os
from datetime import datetime, timedelta

# Point the application engine at an in-memory database before app modules load
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app import models  # noqa: F401
from app.models.user import User, UserDetails, ROLE_STUDENT
from app.security import create_access_token, get_password_hash

BASE_TIME = datetime(2026, 1, 1, 12, 0, 0)
DEFAULT_PASSWORD = "secret123"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def make_user(db):
    """
    Create and commit a user. Each call is one second newer than the last,
    so "newest first" orderings are deterministic.
    """
    counter = itertools.count(1)

    def _make(role=ROLE_STUDENT, user_id=None, approved=True, active=True,
              email=None, first_name="", last_name=""):
        n = next(counter)
        user_id = user_id or "USR00{:05d}".format(n)
        created = BASE_TIME + timedelta(seconds=n)
        user = User(
            id=user_id,
            email=email or "{}@example.com".format(user_id.lower()),
            password_hash=get_password_hash(DEFAULT_PASSWORD),
            first_name=first_name or role.capitalize(),
            last_name=last_name or str(n),
            role=role,
            approved=approved,
            active=active,
            created_at=created,
            updated_at=created,
        )
        user.details = UserDetails(user_id=user_id, additional_info={})
        db.add(user)
        db.commit()
        return user

    return _make


def auth_headers(user: User) -> dict:
    return {"Authorization": "Bearer " + create_access_token(user.id, user.role)}


@pytest.fixture
def client(db):
    """TestClient whose requests share the test session."""
    from app.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()
