"""Database library for the ledger: the ``ledger_kv`` table and its engines.

``metadata`` is the migration target for ``libs/db/alembic``. Engine and
session helpers live in ``db.client``.
"""

from __future__ import annotations

from .models.ledger import Base, LedgerKv

metadata = Base.metadata

__all__ = ["Base", "LedgerKv", "metadata"]
