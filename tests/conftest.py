"""
Shared pytest fixtures.

Uses a throwaway SQLite file so no Postgres is required for tests.
DATABASE_URL is set before habitflow is imported because the engine is
created at import time.
"""
import os

os.environ["DATABASE_URL"] = "sqlite:///./test_habitflow.db"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from habitflow.db.base import Base, get_db  # noqa: E402
from habitflow.main import app  # noqa: E402
from habitflow.models import Habit, HabitCompletion  # noqa: E402

SQLITE_URL = os.environ["DATABASE_URL"]

engine = create_engine(SQLITE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="session", autouse=True)
def create_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def empty_tables():
    """Every test starts with no habits; the insight feed spans all of them."""
    db = TestingSessionLocal()
    try:
        db.query(HabitCompletion).delete()
        db.query(Habit).delete()
        db.commit()
    finally:
        db.close()
    yield


@pytest.fixture()
def db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def client(db):
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
