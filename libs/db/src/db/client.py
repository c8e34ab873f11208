"""Engine and session helpers for the ledger database.

Usage
-----
from db.client import session_scope

with session_scope() as s:
    s.execute(...)

The URL comes from the ``database_url`` argument or the ``DATABASE_URL``
environment variable (e.g. ``postgresql+psycopg://...`` or
``sqlite+pysqlite:///ledger.db``). One engine is cached per URL, so a CLI
``--database-url`` override and the environment default can coexist in one
process.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import create_engine, make_url
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

_ENGINES: dict[str, tuple[Engine, sessionmaker[Session]]] = {}


def _database_url(override: str | None = None) -> str:
    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set; cannot initialize database client")
    return url


def _engine_options(url: str) -> dict[str, Any]:
    # File-backed SQLite needs no liveness checks; server databases do.
    if make_url(url).get_backend_name() == "sqlite":
        return {}
    return {"pool_pre_ping": True}


def redacted_url(url: str) -> str:
    """Render ``url`` with any password masked, for logs and error messages."""

    return make_url(url).render_as_string(hide_password=True)


def get_engine(*, database_url: str | None = None) -> Engine:
    """Return the cached engine for the resolved URL, creating it on first use."""

    url = _database_url(database_url)
    cached = _ENGINES.get(url)
    if cached is None:
        engine = create_engine(url, **_engine_options(url))
        cached = (engine, sessionmaker(bind=engine, expire_on_commit=False, class_=Session))
        _ENGINES[url] = cached
    return cached[0]


def reset_engine() -> None:
    """Dispose every cached engine; the next call binds afresh."""

    for engine, _ in _ENGINES.values():
        engine.dispose()
    _ENGINES.clear()


def get_session(*, database_url: str | None = None) -> Session:
    """Return a new session bound to the engine for the resolved URL."""

    url = _database_url(database_url)
    get_engine(database_url=url)
    return _ENGINES[url][1]()


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """Commit on success, roll back on any error, always close."""

    session = get_session(database_url=database_url)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


__all__ = [
    "get_engine",
    "reset_engine",
    "get_session",
    "session_scope",
    "redacted_url",
]
