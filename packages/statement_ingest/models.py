"""Data models for the statement ingestion pipeline.

All records are frozen ``dataclass`` instances so a parse result can be
compared for equality (idempotence) and shared without defensive copies.
Stages that change a record (reconciliation flips, duplicate flags) produce a
new instance with :func:`dataclasses.replace`.

Amounts are :class:`~decimal.Decimal` magnitudes quantized to two places. The
sign of a movement is carried by :class:`Direction`, never by the amount.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Any


class Direction(StrEnum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"

    def flipped(self) -> Direction:
        return Direction.EXPENSE if self is Direction.INCOME else Direction.INCOME


class Nature(StrEnum):
    """Economic character of a movement, independent of the display category."""

    CONSUMPTION = "CONSUMPTION"
    TRANSFER = "TRANSFER"
    CASH_OUT = "CASH_OUT"
    INVESTMENT_INFLOW = "INVESTMENT_INFLOW"
    INVESTMENT_OUTFLOW = "INVESTMENT_OUTFLOW"
    INVESTMENT_RETURN = "INVESTMENT_RETURN"
    PASSIVE_INCOME = "PASSIVE_INCOME"
    SALARY = "SALARY"
    UNCATEGORIZED = "UNCATEGORIZED"


class IncomeSource(StrEnum):
    SALARY = "Salary"
    INTEREST = "Interest"
    DIVIDENDS = "Dividends"
    REFUND = "Refund"
    TRANSFER = "Transfer"
    MF_REDEMPTION = "MF_Redemption"
    FREELANCE = "Freelance"
    RENTAL = "Rental"
    OTHER = "Other"


class PaymentMethod(StrEnum):
    UPI = "UPI"
    NEFT = "NEFT"
    IMPS = "IMPS"
    RTGS = "RTGS"
    ATM = "ATM"
    CHEQUE = "Cheque"
    CARD = "Card/POS"
    OTHER = "Other"


# ---------------------------------------------------------------------------
# Extraction output
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RawRow:
    """One candidate transaction row, as located by an extractor.

    Cell values are kept raw (strings, numbers or ``datetime`` objects from a
    spreadsheet; strings from PDF text) and normalized by the classifier.
    ``position`` is the row index (grid) or line number (PDF text) used in
    log messages about skipped rows.
    """

    position: int
    txn_date: Any
    value_date: Any
    particulars: Any
    cheque_no: Any
    debit: Any
    credit: Any
    balance: Any


# ---------------------------------------------------------------------------
# Core records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Transaction:
    """A single classified statement movement.

    ``raw_description`` is the narration exactly as printed (whitespace
    collapsed) and is never rewritten; ``description`` is the cleaned display
    name. ``corrected`` is set when reconciliation flipped ``direction``
    against the column the amount was read from.
    """

    id: str
    ordinal: int
    date: dt.date
    description: str
    raw_description: str
    amount: Decimal
    direction: Direction
    category: str
    nature: Nature
    payment_method: PaymentMethod
    income_source: IncomeSource | None = None
    value_date: dt.date | None = None
    post_balance: Decimal | None = None
    cheque_no: str | None = None
    is_duplicate: bool = False
    duplicate_of_id: str | None = None
    corrected: bool = False

    def __post_init__(self) -> None:
        if self.amount <= 0:
            raise ValueError(f"Transaction amount must be positive, got {self.amount}")
        if self.direction is Direction.EXPENSE and self.income_source is not None:
            raise ValueError("income_source is only valid for INCOME transactions")


@dataclass(frozen=True, slots=True)
class StatementSummary:
    """Totals printed by the bank, taken verbatim from the summary block."""

    opening_balance: Decimal = Decimal("0.00")
    total_debit: Decimal = Decimal("0.00")
    total_credit: Decimal = Decimal("0.00")
    closing_balance: Decimal = Decimal("0.00")
    account_number: str = ""
    customer_name: str = ""
    statement_period: str = ""
    found: bool = False

    @property
    def expected_closing(self) -> Decimal:
        return self.opening_balance + self.total_credit - self.total_debit


@dataclass(frozen=True, slots=True)
class ValidationReport:
    is_valid: bool
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    computed_debit: Decimal = Decimal("0.00")
    computed_credit: Decimal = Decimal("0.00")
    global_swap_applied: bool = False
    corrections_applied: int = 0
    duplicate_count: int = 0
    skipped_rows: int = 0


@dataclass(frozen=True, slots=True)
class ParseResult:
    transactions: tuple[Transaction, ...]
    summary: StatementSummary
    validation: ValidationReport
    source_format: str
    strategy: str
    sheet_name: str | None = None


def totals(transactions: Sequence[Transaction]) -> tuple[Decimal, Decimal]:
    """Return ``(debit, credit)``: summed EXPENSE and INCOME amounts."""

    debit = Decimal("0.00")
    credit = Decimal("0.00")
    for t in transactions:
        if t.direction is Direction.EXPENSE:
            debit += t.amount
        else:
            credit += t.amount
    return debit, credit


__all__ = [
    "Direction",
    "Nature",
    "IncomeSource",
    "PaymentMethod",
    "RawRow",
    "Transaction",
    "StatementSummary",
    "ValidationReport",
    "ParseResult",
    "totals",
]
