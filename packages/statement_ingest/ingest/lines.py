"""Best-effort transaction extraction from PDF text lines.

Text extraction flattens the statement table into whitespace-separated lines,
so column recovery is heuristic:

- a transaction line starts with a date (an optional value date may follow);
- the remainder is split on runs of two or more spaces or tabs (single
  whitespace when the line has no wider gaps);
- up to three trailing amount tokens are read as debit, credit and balance.
  With only two, the first is the amount and the second the balance; the
  amount is a credit when the narration carries a credit marker (``/CR/``,
  ``CR``, ``CREDIT``) and a debit otherwise;
- a line without a leading date that follows a transaction line continues its
  narration (the PDF wrapped it).

Systematic misreads are caught downstream by reconciliation.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

from ..errors import HeaderNotFoundError
from ..logging_setup import get_logger
from ..models import RawRow, StatementSummary
from ..normalizers import parse_date
from .grid import END_MARKERS, HEADER_NOT_FOUND, parse_summary_value

_logger = get_logger("statement_ingest.ingest.lines")

_DATE_TOKEN = (
    r"(?:\d{1,2}[\-/ ][A-Za-z]{3,9}[\-/ ]\d{2,4}"
    r"|\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}"
    r"|\d{4}-\d{2}-\d{2})"
)
_LEADING_DATE_RE = re.compile(rf"^\s*({_DATE_TOKEN})\b\s*(.*)$")
_AMOUNT_TOKEN_RE = re.compile(r"^-?[\d,]+\.\d{2}$")
_AMOUNT_ANYWHERE_RE = re.compile(r"\(?-?[\d,]+\.\d{2}\)?(?:\s*Dr\b)?", re.IGNORECASE)
_COLUMN_GAP_RE = re.compile(r"\s{2,}|\t+")
_CREDIT_MARKER_RE = re.compile(r"/CR/|\bCR\b|\bCREDIT\b", re.IGNORECASE)
_ACCOUNT_NUMBER_RE = re.compile(r"\b(\d{10,})\b")
_NOISE_RE = re.compile(r"^\s*(?:page\s+\d+(?:\s+of\s+\d+)?|\d+\s*/\s*\d+)\s*$", re.IGNORECASE)

_SUMMARY_LINE_FIELDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("opening_balance", ("opening balance",)),
    ("total_debit", ("total debit", "total withdrawal")),
    ("total_credit", ("total credit", "total deposit")),
    ("closing_balance", ("closing balance",)),
)


@dataclass(frozen=True, slots=True)
class LineExtraction:
    header_index: int
    summary: StatementSummary
    rows: tuple[RawRow, ...]
    skipped: tuple[tuple[int, str], ...] = ()


@dataclass(slots=True)
class _PendingRow:
    position: int
    txn_date: str
    value_date: str | None
    particulars: list[str] = field(default_factory=list)
    debit: str | None = None
    credit: str | None = None
    balance: str | None = None

    def freeze(self) -> RawRow:
        return RawRow(
            position=self.position,
            txn_date=self.txn_date,
            value_date=self.value_date,
            particulars=" ".join(self.particulars),
            cheque_no=None,
            debit=self.debit,
            credit=self.credit,
            balance=self.balance,
        )


def is_header_line(line: str) -> bool:
    lowered = line.lower()
    return "transaction date" in lowered or ("date" in lowered and "particulars" in lowered)


def _is_end(line: str) -> bool:
    lowered = line.lower()
    return any(marker in lowered for marker in END_MARKERS) or "important message" in lowered


def find_header_line(lines: Sequence[str]) -> int | None:
    for i, line in enumerate(lines):
        if is_header_line(line):
            return i
    return None


def _amounts(line: str) -> list[str]:
    return _AMOUNT_ANYWHERE_RE.findall(line)


def _after_colon(line: str) -> str:
    return line.split(":", 1)[1].strip() if ":" in line else ""


def extract_text_summary(lines: Sequence[str]) -> StatementSummary:
    """Read summary totals and metadata from statement text.

    Prefers a label line (``Opening Balance ... Total Debit ...``) followed by a
    line with four amounts; otherwise falls back to individual labelled lines
    such as ``Opening Balance: 10,000.00``. Transaction lines are ignored.
    """

    values: dict[str, Any] = {}
    found = False
    for i, line in enumerate(lines):
        lowered = line.lower()
        if "opening balance" in lowered and "total debit" in lowered and i + 1 < len(lines):
            amounts = _amounts(lines[i + 1])
            if len(amounts) >= 4:
                for (field_name, _), raw in zip(_SUMMARY_LINE_FIELDS, amounts, strict=False):
                    values[field_name] = parse_summary_value(field_name, raw)
                found = True
                break

    for line in lines:
        if _LEADING_DATE_RE.match(line):
            continue
        lowered = line.lower()
        if not found:
            for field_name, labels in _SUMMARY_LINE_FIELDS:
                if field_name in values or not any(lbl in lowered for lbl in labels):
                    continue
                amounts = _amounts(line)
                if amounts:
                    values[field_name] = parse_summary_value(field_name, amounts[-1])
        if "account" in lowered and "account_number" not in values:
            m = _ACCOUNT_NUMBER_RE.search(line)
            if m:
                values["account_number"] = m.group(1)
        if "customer name" in lowered and "customer_name" not in values:
            name = _after_colon(line)
            if name:
                values["customer_name"] = name
        if "statement period" in lowered and "statement_period" not in values:
            period = _after_colon(line)
            if period:
                values["statement_period"] = period

    if not found:
        found = "total_debit" in values or "total_credit" in values
    return StatementSummary(found=found, **values)


def _split_columns(rest: str) -> list[str]:
    parts = [p.strip() for p in _COLUMN_GAP_RE.split(rest) if p.strip()]
    if len(parts) <= 1:
        parts = rest.split()
    return parts


def _parse_transaction_line(position: int, date_token: str, rest: str) -> _PendingRow | None:
    parts = _split_columns(rest)

    trailing: list[str] = []
    while parts and len(trailing) < 3 and _AMOUNT_TOKEN_RE.match(parts[-1]):
        trailing.insert(0, parts.pop())
    if not trailing:
        return None

    value_date = None
    if parts and parse_date(parts[0]) is not None:
        value_date = parts.pop(0)
    narration = " ".join(parts)

    row = _PendingRow(position=position, txn_date=date_token, value_date=value_date)
    row.particulars.append(narration)
    if len(trailing) == 3:
        row.debit, row.credit, row.balance = trailing
    else:
        amount = trailing[0]
        row.balance = trailing[1] if len(trailing) == 2 else None
        if _CREDIT_MARKER_RE.search(narration):
            row.credit = amount
        else:
            row.debit = amount
    return row


def extract_lines(lines: Sequence[str]) -> LineExtraction:
    """Locate header, summary and transaction rows in PDF text ``lines``.

    Raises :class:`HeaderNotFoundError` when no header line exists.
    """

    header_index = find_header_line(lines)
    if header_index is None:
        raise HeaderNotFoundError(HEADER_NOT_FOUND)
    _logger.debug("Header at line %d", header_index)

    rows: list[RawRow] = []
    skipped: list[tuple[int, str]] = []
    current: _PendingRow | None = None

    for pos in range(header_index + 1, len(lines)):
        line = lines[pos]
        if _is_end(line):
            _logger.debug("End marker at line %d", pos)
            break
        if not line.strip() or _NOISE_RE.match(line) or is_header_line(line):
            continue

        m = _LEADING_DATE_RE.match(line)
        if m is None:
            if current is not None and not _amounts(line):
                current.particulars.append(line.strip())
            continue

        if current is not None:
            rows.append(current.freeze())
            current = None
        current = _parse_transaction_line(pos, m.group(1), m.group(2))
        if current is None:
            reason = "no amount columns on date line"
            _logger.debug("Skipping line %d: %s", pos, reason)
            skipped.append((pos, reason))

    if current is not None:
        rows.append(current.freeze())

    return LineExtraction(
        header_index=header_index,
        summary=extract_text_summary(lines),
        rows=tuple(rows),
        skipped=tuple(skipped),
    )


__all__ = [
    "LineExtraction",
    "is_header_line",
    "find_header_line",
    "extract_text_summary",
    "extract_lines",
]
