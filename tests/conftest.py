"""Shared pytest fixtures for FOMO."""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from fomo import api, database, storage
from fomo.models import Base

# Wednesday; the ISO week runs from Monday 13 to Sunday 19 May 2024.
NOW = datetime(2024, 5, 15, 10, 0)
TIMEZONE = "Europe/Paris"


@pytest.fixture(scope="session", autouse=True)
def configure_in_memory_db():
    """Reuse a single in-memory SQLite database for fast, isolated tests."""

    engine = database.enable_sqlite_savepoints(
        create_engine(
            "sqlite+pysqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
    )
    session_factory = scoped_session(
        sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            future=True,
            expire_on_commit=False,
        )
    )
    database.engine = engine
    database.SessionLocal = session_factory
    storage.engine = engine
    api.SessionLocal = session_factory
    Base.metadata.create_all(bind=engine)
    yield
    session_factory.remove()


@pytest.fixture(autouse=True)
def clean_database():
    """Reset all tables between tests to guarantee isolation."""

    database.SessionLocal.remove()
    Base.metadata.drop_all(bind=database.engine)
    Base.metadata.create_all(bind=database.engine)
    yield


@pytest.fixture()
def session():
    db = database.SessionLocal()
    try:
        yield db
    finally:
        db.rollback()
        db.close()


def make_event(event_id: str, **overrides):
    """Plain event snapshot for the pure filtering functions."""
    values = {
        "id": event_id,
        "title": f"Event {event_id}",
        "description": "",
        "venue_name": None,
        "venue_address": None,
        "start_time": datetime(2024, 5, 15, 18, 0),
        "end_time": None,
        "organizer_id": None,
        "is_public": True,
        "is_online": True,
        "tags": [],
        "deleted_at": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def make_entry(entry_id: str, user_id: str, event_id: str, response, created_at):
    return SimpleNamespace(
        id=entry_id,
        user_id=user_id,
        event_id=event_id,
        initial_response=None,
        final_response=response,
        created_at=created_at,
    )
