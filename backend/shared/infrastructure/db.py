"""
Database configuration and session management.
Uses SQLAlchemy 2.0 ORM with synchronous sessions; FastAPI runs sync
endpoints in its threadpool, so a blocked order lock never stalls the event loop.
"""

from collections.abc import Generator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from shared.config.settings import DATABASE_URL

import os


def _calculate_pool_size() -> int:
    """
    Calculate pool size based on CPU cores.
    Formula: (2 * CPU cores) + 1, capped at 20 for reasonable limits.
    """
    cores = os.cpu_count() or 4
    return min(cores * 2 + 1, 20)


def _engine_options(url: str) -> dict[str, Any]:
    """Pool and driver options for the configured backend."""
    if url.startswith("sqlite"):
        # File-backed SQLite is used for local runs and concurrency tests.
        # The busy timeout lets a writer wait for another connection's commit.
        return {"connect_args": {"check_same_thread": False, "timeout": 30}}

    return {
        "pool_pre_ping": True,
        "pool_size": _calculate_pool_size(),
        "max_overflow": 15,
        "pool_timeout": 30,
        "pool_recycle": 1800,
        "connect_args": {"connect_timeout": 10},
    }


def build_engine(url: str = DATABASE_URL, **overrides: Any) -> Engine:
    """Create an engine for ``url`` with the options above."""
    options = _engine_options(url)
    options.update(overrides)
    return create_engine(url, echo=False, **options)


engine = build_engine()

# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions.

    The session is automatically closed after the request completes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def get_db_context() -> Generator[Session, None, None]:
    """
    Context manager for database sessions outside of FastAPI.

    Usage:
        with get_db_context() as db:
            db.scalar(select(Notification).where(...))
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def safe_commit(db: Session) -> None:
    """
    Commit with automatic rollback on failure.

    Raises the original exception after rolling back.
    """
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
