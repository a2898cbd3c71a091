"""Shared SQLAlchemy models registry for the workspace database.

Currently holds the key-value table used by ``statement_ledger``.
"""

from .ledger import Base, LedgerKv

__all__ = [
    "Base",
    "LedgerKv",
]
