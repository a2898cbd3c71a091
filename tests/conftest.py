"""Pytest configuration for test isolation.

Every test gets a fresh in-memory store and a clean environment: the ledger
reads ``LEDGER_*`` variables and ``DATABASE_URL`` at call time, so a
developer's shell or ``.env`` could otherwise leak into assertions.
"""

from __future__ import annotations

import pytest

from statement_ledger.persistence import InMemoryStore

_ENV_VARS = (
    "DATABASE_URL",
    "LEDGER_NAMESPACE",
    "LEDGER_DEBOUNCE_SECONDS",
    "LEDGER_FALLBACK_CATEGORY",
    "LEDGER_SPENDERS",
    "STATEMENT_LEDGER_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()
