"""Database utilities - engine, session, schema creation."""

from src.mailflow.core.db.engine import (
    create_tables,
    dispose_engine,
    get_engine,
)
from src.mailflow.core.db.migrations import run_migrations_async, run_migrations_sync
from src.mailflow.core.db.session import create_session_factory, get_session

__all__ = [
    # Engine
    "create_tables",
    "dispose_engine",
    "get_engine",
    # Migrations
    "run_migrations_async",
    "run_migrations_sync",
    # Session
    "create_session_factory",
    "get_session",
]
