"""Persistence port and JSON helpers.

Every stateful component (rule stores, profile, snapshot index) reads and
writes through a ``PersistencePort``: a string key-value store with ``get``,
``set`` and ``delete``. Two implementations ship here:

- ``InMemoryStore`` for tests and throwaway sessions.
- ``SqlKeyValueStore`` backed by the ``ledger_kv`` table owned by ``libs/db``.

Reads never raise on bad data. A value that fails to decode or validate is
logged and replaced with the caller's default, so a corrupt store degrades to
an empty ledger rather than a crash.

Remote-style writes go through ``set_with_rev`` (read current revision,
increment, write) and may be deferred with ``DebouncedWriter`` so a burst of
edits produces a single write of the latest value.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, Protocol, TypeVar

from pydantic import TypeAdapter, ValidationError

from .config import DEFAULT_DEBOUNCE_SECONDS, LedgerConfig
from .logging_setup import get_logger

logger = get_logger("statement_ledger.persistence")

T = TypeVar("T")


class PersistencePort(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryStore:
    """Dict-backed port. ``writes`` counts ``set`` calls (handy in tests)."""

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self.writes = 0

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value
        self.writes += 1

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return sorted(self._data)


class SqlKeyValueStore:
    """Port over the ``ledger_kv`` table.

    Each ``set`` runs in its own transaction and bumps the row's ``rev``
    column. Last physical write wins.
    """

    def __init__(self, *, database_url: str | None = None) -> None:
        self._database_url = database_url

    def get(self, key: str) -> str | None:
        from db.client import session_scope
        from db.models.ledger import LedgerKv

        with session_scope(database_url=self._database_url) as session:
            row = session.get(LedgerKv, key)
            return row.value if row is not None else None

    def set(self, key: str, value: str) -> None:
        from db.client import session_scope
        from db.models.ledger import LedgerKv

        with session_scope(database_url=self._database_url) as session:
            row = session.get(LedgerKv, key)
            if row is None:
                session.add(LedgerKv(key=key, value=value, rev=1))
            else:
                row.value = value
                row.rev = (row.rev or 0) + 1
                row.updated_at = datetime.now(UTC)

    def delete(self, key: str) -> None:
        from db.client import session_scope
        from db.models.ledger import LedgerKv

        with session_scope(database_url=self._database_url) as session:
            row = session.get(LedgerKv, key)
            if row is not None:
                session.delete(row)

    def rev(self, key: str) -> int:
        from db.client import session_scope
        from db.models.ledger import LedgerKv

        with session_scope(database_url=self._database_url) as session:
            row = session.get(LedgerKv, key)
            return row.rev if row is not None else 0


def ns_key(namespace: str, name: str) -> str:
    """Storage key for ``name`` inside a namespace (``real`` or ``demo``)."""

    return f"{namespace}::{name}"


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------


def read_json(port: PersistencePort, key: str, default: T) -> Any | T:
    """Decode the JSON stored at ``key``; ``default`` when missing or corrupt."""

    raw = port.get(key)
    if raw is None or raw == "":
        return default
    try:
        return json.loads(raw)
    except ValueError as exc:
        logger.warning("Corrupt JSON at %r; using default: %s", key, exc)
        return default


def read_model(port: PersistencePort, key: str, adapter: TypeAdapter[T], default: T) -> T:
    """Validate the value at ``key`` with a pydantic ``TypeAdapter``.

    Falls back to ``default`` (with a warning) on undecodable or invalid data.
    """

    raw = port.get(key)
    if raw is None or raw == "":
        return default
    try:
        return adapter.validate_json(raw)
    except (ValidationError, ValueError) as exc:
        logger.warning("Invalid stored value at %r; using default: %s", key, exc)
        return default


def write_json(port: PersistencePort, key: str, value: Any) -> None:
    port.set(key, json.dumps(value, default=str))


def write_model(port: PersistencePort, key: str, adapter: TypeAdapter[T], value: T) -> None:
    port.set(key, adapter.dump_json(value, by_alias=True).decode("utf-8"))


def set_with_rev(port: PersistencePort, key: str, payload: Mapping[str, Any]) -> int:
    """Merge ``payload`` into the document at ``key`` with an incremented ``rev``.

    Returns the revision written. There is no retry on conflict: a concurrent
    bump that commits later simply wins.
    """

    current = read_json(port, key, {})
    if not isinstance(current, dict):
        current = {}
    try:
        prev = int(current.get("rev") or 0)
    except (TypeError, ValueError):
        prev = 0
    doc = {
        **current,
        **payload,
        "rev": prev + 1,
        "updatedAt": datetime.now(UTC).isoformat(),
    }
    write_json(port, key, doc)
    return prev + 1


# ---------------------------------------------------------------------------
# Debounced writes
# ---------------------------------------------------------------------------


class DebouncedWriter:
    """Coalesce rapid writes to one key into a single ``set_with_rev``.

    Must be used from inside a running event loop. Each ``schedule`` call
    replaces the pending payload and restarts the delay. ``cancel`` drops the
    pending write; ``flush`` performs it immediately. Leaving the async
    context cancels, it does not flush: the local state is the read path and
    the durable write is best effort.

    Example
    -------
    >>> async def edit(port):
    ...     async with DebouncedWriter(port, "real::rules") as w:
    ...         w.schedule({"rules": []})
    ...         await w.flush()
    """

    def __init__(
        self,
        port: PersistencePort,
        key: str,
        *,
        delay: float = DEFAULT_DEBOUNCE_SECONDS,
        on_write: Callable[[int], None] | None = None,
    ) -> None:
        self.port = port
        self.key = key
        self.delay = delay
        self._on_write = on_write
        self._pending: dict[str, Any] | None = None
        self._task: asyncio.Task[None] | None = None

    @classmethod
    def from_config(
        cls,
        port: PersistencePort,
        name: str,
        config: LedgerConfig,
        *,
        on_write: Callable[[int], None] | None = None,
    ) -> DebouncedWriter:
        """Writer for ``name`` in the configured namespace, delayed by ``debounce_seconds``."""

        return cls(port, ns_key(config.namespace, name), delay=config.debounce_seconds, on_write=on_write)

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def schedule(self, payload: Mapping[str, Any]) -> None:
        self._pending = dict(payload)
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        await asyncio.sleep(self.delay)
        self._write()

    def _write(self) -> None:
        payload, self._pending = self._pending, None
        if payload is None:
            return
        rev = set_with_rev(self.port, self.key, payload)
        logger.debug("Debounced write to %r at rev %d", self.key, rev)
        if self._on_write is not None:
            self._on_write(rev)

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None
        self._pending = None

    async def flush(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._write()

    async def __aenter__(self) -> DebouncedWriter:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        task = self._task
        self.cancel()
        if task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await task


__all__ = [
    "DebouncedWriter",
    "InMemoryStore",
    "PersistencePort",
    "SqlKeyValueStore",
    "ns_key",
    "read_json",
    "read_model",
    "set_with_rev",
    "write_json",
    "write_model",
]
