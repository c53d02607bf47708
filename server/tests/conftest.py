"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import os

# Settings are read at import time, so provide defaults before the package loads.
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/15")
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")

from typing import Any, Generator, Mapping

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from user_manager.core.db import SessionScope, make_session_scope
from user_manager.models import Base

# SQLite in memory by default; point at PostgreSQL to match production
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")


@pytest.fixture
def db_engine():
    """Create an engine with a fresh schema for each test."""
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_engine(
            TEST_DATABASE_URL,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

        @event.listens_for(engine, "connect")
        def enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    else:
        engine = create_engine(TEST_DATABASE_URL, future=True, pool_pre_ping=True)

    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> sessionmaker:
    return sessionmaker(bind=db_engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)


@pytest.fixture
def session_scope(session_factory) -> SessionScope:
    """Transactional scope bound to the test engine, as the workers use it."""
    return make_session_scope(session_factory)


@pytest.fixture
def db_session(session_factory) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


class RecordingPublisher:
    """Publisher stub that keeps every message instead of sending it."""

    def __init__(self) -> None:
        self.messages: list[tuple[str, dict[str, Any]]] = []

    def publish(self, topic: str, payload: Mapping[str, Any]) -> int:
        self.messages.append((topic, dict(payload)))
        return 1

    def on(self, topic: str) -> list[dict[str, Any]]:
        return [payload for name, payload in self.messages if name == topic]


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()
