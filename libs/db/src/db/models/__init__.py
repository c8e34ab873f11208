"""Shared SQLAlchemy models registry for the workspace database.

Currently holds the imported statement ledger used by ``statement_ingest``.
"""

from .ledger import Base, LedgerTransaction

__all__ = [
    "Base",
    "LedgerTransaction",
]
