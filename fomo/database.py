"""Engine and session factory for the FOMO SQLite store."""

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import scoped_session, sessionmaker

from .config import settings


def enable_sqlite_savepoints(target: Engine) -> Engine:
    """Let SQLAlchemy own transaction boundaries on pysqlite connections.

    pysqlite defers ``BEGIN`` and commits on ``RELEASE SAVEPOINT`` otherwise,
    so nested transactions would escape the outer rollback.
    """

    @event.listens_for(target, "connect")
    def _disable_pysqlite_transactions(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(target, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return target


DATABASE_URL = f"sqlite:///{settings.database_path}"
engine = enable_sqlite_savepoints(
    create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        future=True,
    )
)
SessionLocal = scoped_session(
    sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        future=True,
        expire_on_commit=False,
    )
)


@contextmanager
def get_session():
    """Session that commits on success and rolls back on any error."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
