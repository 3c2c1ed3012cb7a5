"""
db/session.py

SQLAlchemy engine and session factory.

Request handlers get a session from get_db(); background jobs use
session_scope(). Neither commits: services own the transaction.
"""

from __future__ import annotations

import os
from collections.abc import Generator, Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from db.config import resolve_database_url


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, ""))
    except ValueError:
        return default


def _engine_options() -> dict[str, Any]:
    options: dict[str, Any] = {
        "echo": os.getenv("SQL_ECHO", "").strip().lower() in {"1", "true", "yes", "on"},
        "pool_pre_ping": True,
        "pool_recycle": _env_int("DB_POOL_RECYCLE", 1800),
        "pool_size": _env_int("DB_POOL_SIZE", 5),
        "max_overflow": _env_int("DB_MAX_OVERFLOW", 10),
    }
    # Bounds tariff row locks and large trip inserts; 0 leaves the server default.
    timeout_ms = _env_int("DB_STATEMENT_TIMEOUT_MS", 0)
    if timeout_ms > 0:
        options["connect_args"] = {"options": f"-c statement_timeout={timeout_ms}"}
    return options


def create_db_engine() -> Engine:
    database_url = resolve_database_url()
    if not database_url.startswith("postgresql"):
        raise RuntimeError("Only PostgreSQL URLs are supported (JSONB and row locks are required).")
    return create_engine(database_url, **_engine_options())


_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def get_engine() -> Engine:
    """Return the shared engine, creating it on first call."""
    global _engine
    if _engine is None:
        _engine = create_db_engine()
    return _engine


def SessionLocal() -> Session:
    global _session_factory
    if _session_factory is None:
        _session_factory = sessionmaker(
            bind=get_engine(),
            autoflush=False,
            expire_on_commit=False,
        )
    return _session_factory()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope() -> Iterator[Session]:
    """
    Yield a fresh session for jobs running outside a request. Uncommitted
    work is rolled back if the block raises.
    """
    session = SessionLocal()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
