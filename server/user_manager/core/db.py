"""Database session/engine helpers."""
from contextlib import contextmanager
from typing import Callable, ContextManager, Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from .config import get_settings

SessionScope = Callable[[], ContextManager[Session]]

_settings = get_settings()

engine = create_engine(
    _settings.database_url,
    future=True,
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, class_=Session)


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a database session."""

    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def make_session_scope(factory: Callable[[], Session]) -> SessionScope:
    """Build a ``session_scope``-style context manager around any session factory.

    Background workers open one short transaction per unit of work (a row,
    a progress write, a state transition), so a failure only rolls back that
    unit. Tests use this to bind the pipeline to their own engine.
    """

    @contextmanager
    def scope() -> Generator[Session, None, None]:
        session = factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return scope


session_scope = make_session_scope(SessionLocal)
