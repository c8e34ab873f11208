"""Locate header, summary block and transaction rows in a sheet grid.

An IDFC FIRST account statement sheet looks like::

    Customer Name      | A N Other
    Account Number     | 10012345678
    Statement Period   | 01-Jan-2025 to 31-Jan-2025
    Opening Balance | Total Debit | Total Credit | Closing Balance
    10,000.00       | 2,500.00    | 3,000.00     | 10,500.00
    Transaction Date | Value Date | Particulars | Cheque No | Debit | Credit | Balance
    01-Jan-2025      | ...

The header row is the first row with a cell containing "transaction date".
Column roles are deduced from the header labels and fall back to the fixed
IDFC order for anything unrecognized. Summary values sit on the row right
after the summary labels and are read under their labels (positionally when a
label is missing).
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from ..errors import HeaderNotFoundError
from ..logging_setup import get_logger
from ..models import RawRow, StatementSummary
from ..normalizers import clean_text, parse_amount, parse_balance

_logger = get_logger("statement_ingest.ingest.grid")

HEADER_MARKER = "transaction date"
END_MARKERS: tuple[str, ...] = ("end of statement", "registered office")
MIN_ROW_CELLS = 6
METADATA_SEARCH_ROWS = 20

HEADER_NOT_FOUND = (
    "Could not find transaction header row; expected a 'Transaction Date' column"
)

# Role -> header label keywords. Scored like a fuzzy lookup: exact label beats
# prefix beats substring, longer keywords beat shorter ones.
_COLUMN_KEYWORDS: dict[str, tuple[str, ...]] = {
    "date": ("transaction date", "txn date", "tran date", "posting date", "date"),
    "value_date": ("value date", "value dt"),
    "particulars": ("particulars", "description", "narration", "details", "remarks"),
    "cheque_no": ("cheque no", "cheque", "chq no", "chq", "ref no", "reference"),
    "debit": ("debit", "withdrawal", "withdrawals", "dr"),
    "credit": ("credit", "deposit", "deposits", "cr"),
    "balance": ("balance", "closing balance", "running balance", "bal"),
}

_SUMMARY_LABELS: tuple[tuple[str, str], ...] = (
    ("opening_balance", "opening balance"),
    ("total_debit", "total debit"),
    ("total_credit", "total credit"),
    ("closing_balance", "closing balance"),
)
# Balances keep their sign; the totals are magnitudes.
_SIGNED_SUMMARY_FIELDS = frozenset({"opening_balance", "closing_balance"})

_ACCOUNT_NUMBER_RE = re.compile(r"\b(\d{10,})\b")
_NORM_RE = re.compile(r"[^a-z0-9]+")


def parse_summary_value(field_name: str, raw: Any) -> Decimal:
    if field_name in _SIGNED_SUMMARY_FIELDS:
        return parse_balance(raw)
    return parse_amount(raw)


@dataclass(frozen=True, slots=True)
class ColumnMap:
    """Column index per role; ``None`` when the sheet has no such column."""

    date: int | None = 0
    value_date: int | None = 1
    particulars: int | None = 2
    cheque_no: int | None = 3
    debit: int | None = 4
    credit: int | None = 5
    balance: int | None = 6

    def cell(self, row: Sequence[Any], role: str) -> Any:
        idx = getattr(self, role)
        if idx is None or idx >= len(row):
            return None
        return row[idx]


IDFC_COLUMNS = ColumnMap()


@dataclass(frozen=True, slots=True)
class GridExtraction:
    header_index: int
    columns: ColumnMap
    summary: StatementSummary
    rows: tuple[RawRow, ...]
    skipped: tuple[tuple[int, str], ...] = ()


def _text(cell: Any) -> str:
    return clean_text(cell).lower()


def _row_text(row: Sequence[Any]) -> str:
    return " | ".join(_text(c) for c in row)


def _is_blank(cell: Any) -> bool:
    return clean_text(cell) == ""


def find_header(grid: Sequence[Sequence[Any]]) -> int | None:
    for i, row in enumerate(grid):
        if any(HEADER_MARKER in _text(c) for c in row):
            return i
    return None


def _score(label: str, keyword: str) -> int:
    if label == keyword:
        return 200
    # Two-letter abbreviations ("dr", "cr") only count as whole labels.
    if len(keyword) <= 2:
        return 0
    if label.startswith(keyword):
        return 100 + len(keyword)
    if keyword in label:
        return 50 + len(keyword)
    return 0


def deduce_columns(header: Sequence[Any]) -> ColumnMap:
    """Map column roles from header labels, falling back to the IDFC order.

    A role whose label is not recognized keeps its IDFC default index unless
    another role already claimed that column, in which case it is absent.
    """

    found: dict[str, int] = {}
    for idx, cell in enumerate(header):
        label = " ".join(_NORM_RE.sub(" ", _text(cell)).split())
        if not label:
            continue
        best_role: str | None = None
        best_score = 0
        for role, keywords in _COLUMN_KEYWORDS.items():
            for kw in keywords:
                score = _score(label, kw)
                if score > best_score:
                    best_score, best_role = score, role
        if best_role is not None and best_role not in found:
            found[best_role] = idx

    claimed = set(found.values())
    resolved: dict[str, int | None] = {}
    for role in _COLUMN_KEYWORDS:
        if role in found:
            resolved[role] = found[role]
            continue
        default = getattr(IDFC_COLUMNS, role)
        resolved[role] = None if default in claimed else default
    return ColumnMap(**resolved)


def _label_index(row: Sequence[Any], label: str) -> int | None:
    for i, c in enumerate(row):
        if label in _text(c):
            return i
    return None


def _value_after(row: Sequence[Any], start: int) -> str:
    """First non-blank cell after ``start``, or the text after a colon."""

    label_cell = clean_text(row[start])
    if ":" in label_cell:
        tail = label_cell.split(":", 1)[1].strip()
        if tail:
            return tail
    for c in row[start + 1 :]:
        if not _is_blank(c):
            return clean_text(c)
    return ""


def extract_summary(
    grid: Sequence[Sequence[Any]], *, search_rows: int = 30
) -> StatementSummary:
    """Read the summary block and statement metadata from the top of a sheet."""

    values: dict[str, Any] = {}
    found = False
    for i, row in enumerate(grid[:search_rows]):
        text = _row_text(row)
        if "opening balance" in text and "total debit" in text:
            if i + 1 < len(grid):
                value_row = grid[i + 1]
                for pos, (field_name, label) in enumerate(_SUMMARY_LABELS):
                    col = _label_index(row, label)
                    col = pos if col is None else col
                    raw = value_row[col] if col < len(value_row) else None
                    values[field_name] = parse_summary_value(field_name, raw)
                found = True
                _logger.debug("Summary labels at row %d, values at row %d", i, i + 1)
            break

    for row in grid[:METADATA_SEARCH_ROWS]:
        if not row:
            continue
        for i, c in enumerate(row):
            label = _text(c)
            if "account" in label and "account_number" not in values:
                m = _ACCOUNT_NUMBER_RE.search(_row_text(row))
                if m:
                    values["account_number"] = m.group(1)
            elif "customer name" in label and "customer_name" not in values:
                name = _value_after(row, i)
                if name:
                    values["customer_name"] = name
            elif "statement period" in label and "statement_period" not in values:
                period = _value_after(row, i)
                if period:
                    values["statement_period"] = period

    return StatementSummary(found=found, **values)


def extract_grid(
    grid: Sequence[Sequence[Any]], *, summary_search_rows: int = 30
) -> GridExtraction:
    """Locate header, summary and candidate transaction rows in ``grid``.

    Raises :class:`HeaderNotFoundError` when no header row exists. Rows are
    consumed until an end marker, or a blank first cell once data has started.
    Repeated header rows are skipped; short rows are skipped with a reason.
    """

    header_index = find_header(grid)
    if header_index is None:
        raise HeaderNotFoundError(HEADER_NOT_FOUND)

    header = grid[header_index]
    columns = deduce_columns(header)
    header_width = max(
        (i + 1 for i, c in enumerate(header) if not _is_blank(c)), default=MIN_ROW_CELLS
    )
    min_cells = min(MIN_ROW_CELLS, header_width)
    _logger.debug("Header at row %d, columns %s", header_index, columns)

    rows: list[RawRow] = []
    skipped: list[tuple[int, str]] = []
    for pos in range(header_index + 1, len(grid)):
        row = grid[pos]
        text = _row_text(row)
        if any(marker in text for marker in END_MARKERS):
            _logger.debug("End marker at row %d", pos)
            break
        if not row or _is_blank(row[0]):
            if rows:
                _logger.debug("Blank first cell at row %d ends the transaction block", pos)
                break
            continue
        if HEADER_MARKER in text:
            continue
        if len(row) < min_cells:
            reason = f"row has {len(row)} cell(s), expected at least {min_cells}"
            _logger.debug("Skipping row %d: %s", pos, reason)
            skipped.append((pos, reason))
            continue
        rows.append(
            RawRow(
                position=pos,
                txn_date=columns.cell(row, "date"),
                value_date=columns.cell(row, "value_date"),
                particulars=columns.cell(row, "particulars"),
                cheque_no=columns.cell(row, "cheque_no"),
                debit=columns.cell(row, "debit"),
                credit=columns.cell(row, "credit"),
                balance=columns.cell(row, "balance"),
            )
        )

    return GridExtraction(
        header_index=header_index,
        columns=columns,
        summary=extract_summary(grid, search_rows=summary_search_rows),
        rows=tuple(rows),
        skipped=tuple(skipped),
    )


__all__ = [
    "HEADER_MARKER",
    "HEADER_NOT_FOUND",
    "ColumnMap",
    "IDFC_COLUMNS",
    "GridExtraction",
    "find_header",
    "deduce_columns",
    "extract_summary",
    "parse_summary_value",
    "extract_grid",
]
