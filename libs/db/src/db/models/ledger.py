from __future__ import annotations

import datetime as dt
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr


class Base(DeclarativeBase):
    pass


# ---------------------------
# Core: ledger_transactions
# ---------------------------


class LedgerTransaction(Base):
    """One imported statement movement, keyed by the parser's deterministic id.

    Re-importing the same statement upserts the same rows (last write wins per
    id). Amounts are positive magnitudes; ``direction`` carries the sign.
    """

    __tablename__ = "ledger_transactions"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    ordinal: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    value_date: Mapped[dt.date | None] = mapped_column(Date, nullable=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    raw_description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    nature: Mapped[str] = mapped_column(String(32), nullable=False)
    income_source: Mapped[str | None] = mapped_column(String(32), nullable=True)
    payment_method: Mapped[str] = mapped_column(String(16), nullable=False)
    post_balance: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    cheque_no: Mapped[str | None] = mapped_column(String, nullable=True)
    corrected: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    is_duplicate: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.false()
    )
    duplicate_of_id: Mapped[str | None] = mapped_column(String(32), nullable=True)
    # Original file name the row was imported from (audit only)
    source_file: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ledger_tx_amount_positive"),
        CheckConstraint(
            "direction IN ('INCOME', 'EXPENSE')", name="ck_ledger_tx_direction"
        ),
        CheckConstraint(
            "income_source IS NULL OR direction = 'INCOME'",
            name="ck_ledger_tx_income_source_income_only",
        ),
        Index("ix_ledger_tx_date", "date"),
    )
