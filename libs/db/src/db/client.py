"""SQLAlchemy engines and sessions for the ledger store.

Usage
-----
from db.client import session_scope

with session_scope(database_url=url) as s:
    s.get(LedgerKv, "real::profile.v1")

One engine is kept per database URL for the life of the process;
``dispose_engines()`` drops them all (tests use it between SQLite files).
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker


@dataclass(frozen=True, slots=True)
class _Binding:
    engine: Engine
    sessions: sessionmaker[Session]


_BINDINGS: dict[str, _Binding] = {}


def resolve_database_url(override: str | None = None) -> str:
    """``override`` if given, else ``DATABASE_URL``; ``RuntimeError`` when neither is set."""

    url = override or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not set and no database URL was passed")
    return url


def _bind(url: str) -> _Binding:
    binding = _BINDINGS.get(url)
    if binding is not None:
        return binding
    engine = create_engine(url, pool_pre_ping=True)
    binding = _Binding(engine, sessionmaker(bind=engine, expire_on_commit=False, class_=Session))
    _BINDINGS[url] = binding
    return binding


def get_engine(*, database_url: str | None = None) -> Engine:
    """Engine for ``database_url`` (or ``DATABASE_URL``), created on first use."""

    return _bind(resolve_database_url(database_url)).engine


@contextmanager
def session_scope(*, database_url: str | None = None) -> Iterator[Session]:
    """One transaction: commit on success, roll back and re-raise on error."""

    session = _bind(resolve_database_url(database_url)).sessions()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def dispose_engines() -> None:
    for binding in _BINDINGS.values():
        binding.engine.dispose()
    _BINDINGS.clear()


__all__ = [
    "dispose_engines",
    "get_engine",
    "resolve_database_url",
    "session_scope",
]
