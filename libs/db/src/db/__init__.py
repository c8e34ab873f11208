"""db: ledger storage shared by the workspace packages.

``Base.metadata`` (exported as ``metadata``) is the Alembic target; the
``ledger_transactions`` model lives in ``db.models.ledger`` and the
engine/session helpers in ``db.client``.
"""

from __future__ import annotations

from .models.ledger import Base, LedgerTransaction

metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "LedgerTransaction",
]
