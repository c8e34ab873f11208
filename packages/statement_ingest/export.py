"""JSON export of a :class:`ParseResult`.

Amounts are written as two-decimal strings (never floats) and dates as ISO
``YYYY-MM-DD`` so the document round-trips through JSON without precision
loss. The pydantic models double as the schema for consumers.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from .models import ParseResult, StatementSummary, Transaction, ValidationReport
from .normalizers import format_amount

SCHEMA_VERSION = 1


def _amount_str(v: Any) -> str:
    if isinstance(v, str):
        return v
    return format_amount(v)


class TransactionOut(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str
    ordinal: int
    date: str
    value_date: str | None = None
    description: str
    raw_description: str
    amount: str
    direction: str
    category: str
    nature: str
    income_source: str | None = None
    payment_method: str
    post_balance: str | None = None
    cheque_no: str | None = None
    is_duplicate: bool = False
    duplicate_of_id: str | None = None
    corrected: bool = False

    @field_validator("amount", "post_balance", mode="before")
    @classmethod
    def _two_places(cls, v: Any) -> str | None:
        if v is None:
            return None
        return _amount_str(v)

    @classmethod
    def from_transaction(cls, t: Transaction) -> TransactionOut:
        return cls(
            id=t.id,
            ordinal=t.ordinal,
            date=t.date.isoformat(),
            value_date=t.value_date.isoformat() if t.value_date else None,
            description=t.description,
            raw_description=t.raw_description,
            amount=t.amount,
            direction=str(t.direction),
            category=t.category,
            nature=str(t.nature),
            income_source=str(t.income_source) if t.income_source else None,
            payment_method=str(t.payment_method),
            post_balance=t.post_balance,
            cheque_no=t.cheque_no,
            is_duplicate=t.is_duplicate,
            duplicate_of_id=t.duplicate_of_id,
            corrected=t.corrected,
        )


class SummaryOut(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    found: bool
    opening_balance: str
    total_debit: str
    total_credit: str
    closing_balance: str
    account_number: str = ""
    customer_name: str = ""
    statement_period: str = ""

    @field_validator(
        "opening_balance", "total_debit", "total_credit", "closing_balance", mode="before"
    )
    @classmethod
    def _two_places(cls, v: Any) -> str:
        return _amount_str(v)

    @classmethod
    def from_summary(cls, s: StatementSummary) -> SummaryOut:
        return cls(
            found=s.found,
            opening_balance=s.opening_balance,
            total_debit=s.total_debit,
            total_credit=s.total_credit,
            closing_balance=s.closing_balance,
            account_number=s.account_number,
            customer_name=s.customer_name,
            statement_period=s.statement_period,
        )


class ValidationOut(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    is_valid: bool
    errors: list[str]
    warnings: list[str]
    computed_debit: str
    computed_credit: str
    global_swap_applied: bool
    corrections_applied: int
    duplicate_count: int
    skipped_rows: int

    @field_validator("computed_debit", "computed_credit", mode="before")
    @classmethod
    def _two_places(cls, v: Any) -> str:
        return _amount_str(v)

    @classmethod
    def from_report(cls, r: ValidationReport) -> ValidationOut:
        return cls(
            is_valid=r.is_valid,
            errors=list(r.errors),
            warnings=list(r.warnings),
            computed_debit=r.computed_debit,
            computed_credit=r.computed_credit,
            global_swap_applied=r.global_swap_applied,
            corrections_applied=r.corrections_applied,
            duplicate_count=r.duplicate_count,
            skipped_rows=r.skipped_rows,
        )


class ParseResultDocument(BaseModel):
    """Top-level export document."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    schema_version: int = SCHEMA_VERSION
    source_format: str
    strategy: str
    sheet_name: str | None = None
    summary: SummaryOut
    validation: ValidationOut
    transactions: list[TransactionOut]


def to_document(result: ParseResult) -> ParseResultDocument:
    return ParseResultDocument(
        source_format=result.source_format,
        strategy=result.strategy,
        sheet_name=result.sheet_name,
        summary=SummaryOut.from_summary(result.summary),
        validation=ValidationOut.from_report(result.validation),
        transactions=[TransactionOut.from_transaction(t) for t in result.transactions],
    )


def to_json(result: ParseResult, *, indent: int | None = 2) -> str:
    """Serialize ``result`` to a JSON string (UTF-8 safe, non-ASCII kept)."""

    return json.dumps(to_document(result).model_dump(mode="json"), ensure_ascii=False, indent=indent)


__all__ = [
    "SCHEMA_VERSION",
    "TransactionOut",
    "SummaryOut",
    "ValidationOut",
    "ParseResultDocument",
    "to_document",
    "to_json",
]
