from __future__ import annotations

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from fomo.batch import process_batch
from fomo.database import enable_sqlite_savepoints
from fomo.friendships import upsert_friendship
from fomo.models import Base, Friendship, ResponseHistoryEntry


@pytest.fixture()
def file_sessions(tmp_path):
    engine = enable_sqlite_savepoints(
        create_engine(f"sqlite:///{tmp_path / 'fomo.db'}", future=True)
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, future=True)
    yield factory
    engine.dispose()


def _rows(factory, model):
    with factory() as fresh:
        return fresh.scalars(select(model)).all()


def test_rollback_discards_friendship_upsert(file_sessions):
    session = file_sessions()
    upsert_friendship(session, "a", "b", "pending")
    session.rollback()
    session.close()

    assert _rows(file_sessions, Friendship) == []


def test_rollback_discards_batch_actions(file_sessions):
    session = file_sessions()
    result = process_batch(
        session,
        [{"id": "1", "type": "event_response", "data": {"event_id": "ev1", "response": "going"}}],
        "u",
    )
    assert result.processed == 1
    session.rollback()
    session.close()

    assert _rows(file_sessions, ResponseHistoryEntry) == []


def test_commit_keeps_savepoint_work(file_sessions):
    session = file_sessions()
    upsert_friendship(session, "a", "b", "pending")
    process_batch(
        session,
        [
            {"id": "ok", "type": "event_response", "data": {"event_id": "ev1", "response": "going"}},
            {"id": "bad", "type": "event_response", "data": {"response": "going"}},
        ],
        "u",
    )
    session.commit()
    session.close()

    assert [row.id for row in _rows(file_sessions, Friendship)] == ["friendship_a_b"]
    assert [row.event_id for row in _rows(file_sessions, ResponseHistoryEntry)] == ["ev1"]
