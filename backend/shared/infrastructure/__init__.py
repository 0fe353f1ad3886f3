"""
Infrastructure module: Database and Redis.

Provides:
- Database sessions and transactions (db.py)
- Request correlation IDs (correlation.py)
- Redis connection pool for the distributed order mutex (redis/)
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    build_engine,
    get_db,
    get_db_context,
    safe_commit,
)

__all__ = [
    "engine",
    "SessionLocal",
    "build_engine",
    "get_db",
    "get_db_context",
    "safe_commit",
]
