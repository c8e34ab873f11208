"""Amount and date normalization for statement cells.

Statements mix spreadsheet cell types (numbers, ``datetime`` objects, NaN for
blank cells when decoded through pandas) with text recovered from PDFs, where
everything is a string in Indian number formatting. These helpers accept
either and are forgiving but deterministic:

- :func:`parse_amount` never raises; blank or unparseable input is
  ``Decimal("0.00")`` so an empty debit cell simply means "no debit".
- :func:`parse_balance` is the signed variant for running and summary
  balances, which go negative on an overdrawn account.
- :func:`parse_date` never raises; ``None`` means "not a transaction row".
"""

from __future__ import annotations

import datetime as dt
import math
import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from dateutil import parser as date_parser

_CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

_CURRENCY_PREFIX_RE = re.compile(r"^(?:INR|Rs\.?|₹|\$|€|£)\s*", re.IGNORECASE)
_DR_CR_SUFFIX_RE = re.compile(r"\s*\(?(?:dr|cr)\)?\.?$", re.IGNORECASE)
_AMOUNT_BODY_RE = re.compile(r"^\d+(?:\.\d+)?$")


def _quantize(d: Decimal) -> Decimal:
    return d.quantize(_CENT, rounding=ROUND_HALF_UP)


def parse_amount(raw: Any) -> Decimal:
    """Return the non-negative magnitude of ``raw`` with two decimal places.

    Handles thousands separators in both Western (``1,234,567.89``) and
    Indian (``12,34,567.89``) grouping, currency symbols/codes, trailing
    ``Dr``/``Cr`` tags, a leading sign and accounting parentheses. The sign is
    dropped: which column a value came from decides its direction.
    """

    if raw is None or isinstance(raw, bool):
        return ZERO
    if isinstance(raw, Decimal):
        if not raw.is_finite():
            return ZERO
        return _quantize(abs(raw))
    if isinstance(raw, int):
        return _quantize(abs(Decimal(raw)))
    if isinstance(raw, float):
        if math.isnan(raw) or math.isinf(raw):
            return ZERO
        # str() keeps the shortest repr, so 2500.1 does not become 2500.0999...
        return _quantize(abs(Decimal(str(raw))))

    s = str(raw).strip()
    if not s:
        return ZERO

    # Strip sign, currency markers and parentheses in any order until stable.
    while True:
        before = s
        s = s.lstrip("+-").strip()
        s = _CURRENCY_PREFIX_RE.sub("", s)
        s = _DR_CR_SUFFIX_RE.sub("", s)
        if s.startswith("(") and s.endswith(")"):
            s = s[1:-1].strip()
        if s == before:
            break

    s = s.replace(",", "").replace(" ", "").replace(" ", "")
    if not _AMOUNT_BODY_RE.match(s):
        return ZERO
    try:
        return _quantize(Decimal(s))
    except InvalidOperation:
        return ZERO


_DR_TAG_RE = re.compile(r"(?<![a-z])dr\)?\.?$", re.IGNORECASE)


def parse_balance(raw: Any) -> Decimal:
    """Return a signed balance with two decimal places.

    Same formats as :func:`parse_amount`, but an overdrawn balance stays
    negative: a leading minus, accounting parentheses or a trailing ``Dr``
    tag each mark one. Unparseable input is ``0.00``.
    """

    magnitude = parse_amount(raw)
    if magnitude == ZERO:
        return ZERO
    if isinstance(raw, Decimal | int | float):
        return -magnitude if raw < 0 else magnitude

    s = str(raw).strip()
    negative = (
        s.startswith("-")
        or (s.startswith("(") and s.endswith(")"))
        or _DR_TAG_RE.search(s) is not None
    )
    return -magnitude if negative else magnitude


def format_amount(d: Decimal) -> str:
    """Format with exactly two decimals and an ASCII dot."""

    return f"{_quantize(d):.2f}"


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

_MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}

# 01-Feb-2026, 1 Feb 26, 01/Feb/2026, 01-February-2026
_DMY_NAMED_RE = re.compile(r"^(\d{1,2})[\s\-/]+([A-Za-z]{3,9})[\s\-/,]+(\d{4}|\d{2})$")
# 01/02/2026, 01-02-2026, 01.02.26
_DMY_NUMERIC_RE = re.compile(r"^(\d{1,2})[/\-.](\d{1,2})[/\-.](\d{4}|\d{2})$")
# 2026-02-01, optionally followed by a time part
_ISO_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T\s].*)?$")
_HAS_YEAR_RE = re.compile(r"\b\d{4}\b")

# Fixed default for the dateutil fallback so missing fields never depend on
# the current day.
_FALLBACK_DEFAULT = dt.datetime(2000, 1, 1)


def expand_year(year: int) -> int:
    """Expand a two-digit year: ``> 50`` is 19xx, otherwise 20xx."""

    if year >= 100:
        return year
    return 1900 + year if year > 50 else 2000 + year


def _safe_date(year: int, month: int, day: int) -> dt.date | None:
    try:
        return dt.date(year, month, day)
    except ValueError:
        return None


def parse_date(raw: Any) -> dt.date | None:
    """Parse a statement date cell into a calendar date, or ``None``.

    Accepted: ``date``/``datetime`` objects, ``DD-MMM-YYYY`` (and ``DD MMM
    YY``), ``DD/MM/YYYY``, ``DD-MM-YYYY``, ``DD.MM.YY``, ISO ``YYYY-MM-DD``
    (with or without a time part), then a day-first ``dateutil`` fallback for
    strings that carry a four-digit year.
    """

    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, dt.datetime):
        return raw.date()
    if isinstance(raw, dt.date):
        return raw
    if isinstance(raw, float) and math.isnan(raw):
        return None
    if isinstance(raw, int | float | Decimal):
        # Bare numbers (serials, amounts, row numbers) are never dates here.
        return None

    s = " ".join(str(raw).split())
    if not s:
        return None

    m = _DMY_NAMED_RE.match(s)
    if m:
        month = _MONTHS.get(m.group(2)[:3].lower())
        if month is None:
            return None
        return _safe_date(expand_year(int(m.group(3))), month, int(m.group(1)))

    m = _DMY_NUMERIC_RE.match(s)
    if m:
        return _safe_date(expand_year(int(m.group(3))), int(m.group(2)), int(m.group(1)))

    m = _ISO_RE.match(s)
    if m:
        return _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))

    if not _HAS_YEAR_RE.search(s):
        return None
    try:
        parsed = date_parser.parse(s, dayfirst=True, default=_FALLBACK_DEFAULT)
    except (ValueError, OverflowError):
        return None
    return parsed.date()


# ---------------------------------------------------------------------------
# Text
# ---------------------------------------------------------------------------


def clean_text(value: Any) -> str:
    """Collapse whitespace (including embedded newlines) and strip.

    ``None`` and NaN cells become ``""``.
    """

    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return " ".join(str(value).split())


__all__ = [
    "ZERO",
    "parse_amount",
    "parse_balance",
    "format_amount",
    "parse_date",
    "expand_year",
    "clean_text",
]
