# ruff: noqa: I001
"""Persistence integration for statement_ingest.

Functions here read and write the ``ledger_transactions`` table owned by
``libs/db``. They rely on the SQLAlchemy ORM model in ``db.models.ledger`` and
a session provided by ``db.client``.

Scope:
- Load previously imported transactions as duplicate-detection history.
- Upsert parsed transactions keyed by their deterministic id, so importing the
  same statement twice leaves one row per movement.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Iterator, Sequence
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from db.models.ledger import LedgerTransaction
from .logging_setup import get_logger
from .models import Direction, IncomeSource, Nature, PaymentMethod, Transaction

_logger = get_logger("statement_ingest.persistence")

_CENTS = Decimal("0.01")

# Columns rewritten when a re-import hits an existing id.
_UPDATABLE = (
    "ordinal",
    "date",
    "value_date",
    "description",
    "raw_description",
    "amount",
    "direction",
    "category",
    "nature",
    "income_source",
    "payment_method",
    "post_balance",
    "cheque_no",
    "corrected",
    "is_duplicate",
    "duplicate_of_id",
    "source_file",
)


def _q(v: Decimal | None) -> Decimal | None:
    if v is None:
        return None
    return Decimal(v).quantize(_CENTS, rounding=ROUND_HALF_UP)


def _row_values(t: Transaction, source_file: str | None) -> dict[str, Any]:
    return {
        "id": t.id,
        "ordinal": t.ordinal,
        "date": t.date,
        "value_date": t.value_date,
        "description": t.description,
        "raw_description": t.raw_description,
        "amount": _q(t.amount),
        "direction": str(t.direction),
        "category": t.category,
        "nature": str(t.nature),
        "income_source": str(t.income_source) if t.income_source is not None else None,
        "payment_method": str(t.payment_method),
        "post_balance": _q(t.post_balance),
        "cheque_no": t.cheque_no,
        "corrected": t.corrected,
        "is_duplicate": t.is_duplicate,
        "duplicate_of_id": t.duplicate_of_id,
        "source_file": source_file,
    }


def to_transaction(row: LedgerTransaction) -> Transaction:
    """Rebuild a :class:`Transaction` from a stored ledger row."""

    return Transaction(
        id=row.id,
        ordinal=row.ordinal,
        date=row.date,
        description=row.description,
        raw_description=row.raw_description,
        amount=_q(row.amount) or Decimal("0.00"),
        direction=Direction(row.direction),
        category=row.category,
        nature=Nature(row.nature),
        payment_method=PaymentMethod(row.payment_method),
        income_source=IncomeSource(row.income_source) if row.income_source else None,
        value_date=row.value_date,
        post_balance=_q(row.post_balance),
        cheque_no=row.cheque_no,
        is_duplicate=bool(row.is_duplicate),
        duplicate_of_id=row.duplicate_of_id,
        corrected=bool(row.corrected),
    )


def load_prior_transactions(
    session: Session, *, since: dt.date | None = None
) -> list[Transaction]:
    """Return stored transactions (optionally on or after ``since``) in date order."""

    stmt = select(LedgerTransaction).order_by(
        LedgerTransaction.date, LedgerTransaction.ordinal, LedgerTransaction.id
    )
    if since is not None:
        stmt = stmt.where(LedgerTransaction.date >= since)
    rows = session.scalars(stmt).all()
    _logger.debug("Loaded %d prior transaction(s)", len(rows))
    return [to_transaction(r) for r in rows]


def _batches(items: Sequence[dict[str, Any]], size: int) -> Iterator[Sequence[dict[str, Any]]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def upsert_transactions(
    session: Session,
    transactions: Iterable[Transaction],
    *,
    source_file: str | None = None,
    batch_size: int = 500,
) -> int:
    """Insert or update ``transactions`` into ``ledger_transactions``.

    Idempotency rule: upsert on the primary key (the parser's deterministic
    transaction id); the latest import wins for every other column.
    PostgreSQL and SQLite use ``INSERT ... ON CONFLICT DO UPDATE``; other
    dialects fall back to ``Session.merge``.

    Returns the number of rows written.
    """

    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    payloads = [_row_values(t, source_file) for t in transactions]
    if not payloads:
        return 0

    dialect = session.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        insert = pg_insert if dialect == "postgresql" else sqlite_insert
        for chunk in _batches(payloads, batch_size):
            stmt = insert(LedgerTransaction).values(list(chunk))
            set_ = {name: getattr(stmt.excluded, name) for name in _UPDATABLE}
            set_["updated_at"] = func.now()
            stmt = stmt.on_conflict_do_update(
                index_elements=[LedgerTransaction.id],
                set_=set_,
            )
            session.execute(stmt)
    else:
        for values in payloads:
            session.merge(LedgerTransaction(**values))
        session.flush()

    _logger.info(
        "Upserted %d transaction(s)%s",
        len(payloads),
        f" from {source_file}" if source_file else "",
    )
    return len(payloads)


__all__ = [
    "to_transaction",
    "load_prior_transactions",
    "upsert_transactions",
]
