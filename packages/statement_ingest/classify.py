"""Turn extracted rows into classified :class:`Transaction` records.

Direction comes only from the column holding the positive amount: debit
means EXPENSE, credit means INCOME. Keyword heuristics never decide
direction. They only assign the display ``category``, the economic
``nature``, the income source and the payment rail, all driven by the tables
in :mod:`statement_ingest.rules`.

Ids are deterministic (see :func:`transaction_id`) so re-importing the same
file yields the same ids.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import re
import string
from collections.abc import Callable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from .logging_setup import get_logger
from .models import Direction, IncomeSource, Nature, PaymentMethod, RawRow, Transaction
from .normalizers import ZERO, clean_text, format_amount, parse_amount, parse_balance, parse_date
from .rules import (
    BUSINESS_MARKERS,
    CASH_KEYWORDS,
    DEFAULT_EXPENSE_CATEGORY,
    DEFAULT_INCOME_CATEGORY,
    EXPENSE_CATEGORY_RULES,
    INCOME_CATEGORY_RULES,
    INCOME_SOURCE_RULES,
    INTEREST_KEYWORDS,
    INVESTMENT_KEYWORDS,
    INVESTMENT_RETURN_KEYWORDS,
    MERCHANT_TABLE,
    PAYMENT_METHOD_RULES,
    PERSON_INDICATORS,
    REFUND_KEYWORDS,
    SALARY_KEYWORDS,
    any_keyword,
    first_match,
    keyword_in,
)

_logger = get_logger("statement_ingest.classify")

# ---------------------------------------------------------------------------
# Description cleaning
# ---------------------------------------------------------------------------

_DR_CR_MARKER_RE = re.compile(r"/(?:DR|CR)/", re.IGNORECASE)
_RAIL_PREFIX_RE = re.compile(
    r"^(?:(?:UPI|NEFT|IMPS|RTGS|IFT|BY TRANSFER)(?:[\s\-/]+|$)|POS\s+)", re.IGNORECASE
)
_LONG_NUMBER_RE = re.compile(r"[\-/]?\b\d{10,}\b[\-/]?")
_HANDLE_RE = re.compile(r"@[A-Za-z0-9.\-_]+")
_SEGMENT_SPLIT_RE = re.compile(r"\s*[/|]+\s*")
_NON_WORD_RE = re.compile(r"[^a-z0-9]+")


def _strip_rails(text: str) -> str:
    s = _DR_CR_MARKER_RE.sub("/", text)
    while True:
        stripped = _RAIL_PREFIX_RE.sub("", s, count=1)
        if stripped == s:
            return s
        s = stripped


def clean_description(raw: Any) -> str:
    """Return a display name for a bank narration.

    Collapses whitespace, strips payment-rail prefixes and ``/DR/``/``/CR/``
    markers, long numeric references (10+ digits) and ``@handle`` suffixes, and
    title-cases the remainder. Falls back to the collapsed raw text when
    cleaning leaves nothing.

    >>> clean_description("UPI-ZOMATO-1234567890")
    'Zomato'
    """

    collapsed = clean_text(raw)
    s = _strip_rails(collapsed)
    s = _LONG_NUMBER_RE.sub(" ", s)
    s = _HANDLE_RE.sub("", s)
    segments = [seg.strip(" -_.") for seg in _SEGMENT_SPLIT_RE.split(s)]
    s = " / ".join(seg for seg in segments if seg)
    s = " ".join(s.split())
    if not s:
        return collapsed
    return string.capwords(s)


def normalize_description(raw: Any) -> str:
    """Lowercase comparison key for a narration.

    Rail prefixes, long numeric references and UPI handles are removed and any
    run of punctuation becomes a single space, so ``UPI-ZOMATO-1234567890`` and
    ``UPI-ZOMATO-9876543210`` both normalize to ``"zomato"``.
    """

    s = _strip_rails(clean_text(raw))
    s = _LONG_NUMBER_RE.sub(" ", s)
    s = _HANDLE_RE.sub(" ", s)
    return " ".join(_NON_WORD_RE.sub(" ", s.lower()).split())


# ---------------------------------------------------------------------------
# Category / payment method / nature
# ---------------------------------------------------------------------------


def categorize(text: str, direction: Direction) -> str:
    """First-match-wins category for lowercase narration ``text``."""

    if direction is Direction.INCOME:
        return first_match(text, INCOME_CATEGORY_RULES, DEFAULT_INCOME_CATEGORY)
    return first_match(text, EXPENSE_CATEGORY_RULES, DEFAULT_EXPENSE_CATEGORY)


def detect_payment_method(text: str) -> PaymentMethod:
    return first_match(text.lower(), PAYMENT_METHOD_RULES, PaymentMethod.OTHER)


def merchant_category(text: str) -> str | None:
    """Return the merchant-table label for ``text`` or ``None`` when unknown."""

    return first_match(text, MERCHANT_TABLE, None)


def is_person_transfer(text: str) -> bool:
    """Heuristic: a UPI counterparty without business markers is a person."""

    if any_keyword(text, BUSINESS_MARKERS):
        return any_keyword(text, PERSON_INDICATORS)
    return True


@dataclass(frozen=True, slots=True)
class _NatureContext:
    text: str
    direction: Direction
    payment_method: PaymentMethod

    @property
    def income(self) -> bool:
        return self.direction is Direction.INCOME

    @property
    def known_merchant(self) -> bool:
        return merchant_category(self.text) is not None


type _Verdict = tuple[Nature, IncomeSource | None]


def _investment(ctx: _NatureContext) -> _Verdict:
    if not ctx.income:
        return Nature.INVESTMENT_OUTFLOW, None
    if any_keyword(ctx.text, INVESTMENT_RETURN_KEYWORDS):
        if keyword_in(ctx.text, "dividend"):
            return Nature.INVESTMENT_RETURN, IncomeSource.DIVIDENDS
        return Nature.INVESTMENT_RETURN, IncomeSource.MF_REDEMPTION
    return Nature.INVESTMENT_INFLOW, IncomeSource.OTHER


def _is_transfer(ctx: _NatureContext) -> bool:
    if keyword_in(ctx.text, "ift"):
        return True
    if ctx.known_merchant:
        return False
    if any_keyword(ctx.text, ("imps", "neft", "rtgs")):
        return True
    return keyword_in(ctx.text, "upi") and is_person_transfer(ctx.text)


def _fallback(ctx: _NatureContext) -> _Verdict:
    if ctx.payment_method is PaymentMethod.CARD:
        return Nature.CONSUMPTION, None
    if ctx.payment_method is PaymentMethod.UPI and not ctx.income:
        return Nature.CONSUMPTION, None
    if ctx.income and ctx.payment_method in (
        PaymentMethod.NEFT,
        PaymentMethod.IMPS,
        PaymentMethod.RTGS,
    ):
        return Nature.TRANSFER, IncomeSource.TRANSFER
    return Nature.UNCATEGORIZED, None


# Ordered (name, predicate, verdict) table; first predicate that holds wins.
NATURE_RULES: tuple[
    tuple[str, Callable[[_NatureContext], bool], Callable[[_NatureContext], _Verdict]], ...
] = (
    (
        "cash",
        lambda c: any_keyword(c.text, CASH_KEYWORDS),
        lambda c: (Nature.CASH_OUT, None),
    ),
    ("investment", lambda c: any_keyword(c.text, INVESTMENT_KEYWORDS), _investment),
    (
        "interest",
        lambda c: c.income and any_keyword(c.text, INTEREST_KEYWORDS),
        lambda c: (Nature.PASSIVE_INCOME, IncomeSource.INTEREST),
    ),
    (
        "salary",
        lambda c: c.income and any_keyword(c.text, SALARY_KEYWORDS),
        lambda c: (Nature.SALARY, IncomeSource.SALARY),
    ),
    ("transfer", _is_transfer, lambda c: (Nature.TRANSFER, IncomeSource.TRANSFER)),
    ("merchant", lambda c: c.known_merchant, lambda c: (Nature.CONSUMPTION, None)),
    (
        "refund",
        lambda c: c.income and any_keyword(c.text, REFUND_KEYWORDS),
        lambda c: (Nature.PASSIVE_INCOME, IncomeSource.REFUND),
    ),
)

_DEFAULT_SOURCE_BY_NATURE: dict[Nature, IncomeSource] = {
    Nature.SALARY: IncomeSource.SALARY,
    Nature.PASSIVE_INCOME: IncomeSource.INTEREST,
    Nature.TRANSFER: IncomeSource.TRANSFER,
}


def classify_nature(
    text: str, direction: Direction, payment_method: PaymentMethod
) -> tuple[Nature, IncomeSource | None]:
    """Return ``(nature, income_source)`` for lowercase narration ``text``.

    ``income_source`` is always ``None`` for EXPENSE.
    """

    ctx = _NatureContext(text=text, direction=direction, payment_method=payment_method)
    for _name, applies, verdict in NATURE_RULES:
        if applies(ctx):
            nature, source = verdict(ctx)
            break
    else:
        nature, source = _fallback(ctx)

    if direction is Direction.EXPENSE:
        return nature, None

    if nature in (Nature.TRANSFER, Nature.UNCATEGORIZED):
        refined = first_match(text, INCOME_SOURCE_RULES, None)
        if refined is not None:
            return nature, refined
    if source is None:
        if nature is Nature.INVESTMENT_RETURN:
            source = (
                IncomeSource.DIVIDENDS
                if keyword_in(text, "dividend")
                else IncomeSource.MF_REDEMPTION
            )
        else:
            source = _DEFAULT_SOURCE_BY_NATURE.get(nature, IncomeSource.OTHER)
    return nature, source


# ---------------------------------------------------------------------------
# Ids
# ---------------------------------------------------------------------------


def transaction_id(
    date_iso: str, amount: Decimal, description: str, direction: Direction, ordinal: int
) -> str:
    """Return a stable id for a transaction at ``ordinal`` within its batch.

    SHA-256 over a canonical JSON payload, truncated to 24 hex chars and
    prefixed ``txn_``.
    """

    payload = {
        "date": date_iso,
        "amount": format_amount(amount),
        "description": normalize_description(description),
        "direction": str(direction),
        "ordinal": ordinal,
    }
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return "txn_" + hashlib.sha256(data.encode("utf-8")).hexdigest()[:24]


# ---------------------------------------------------------------------------
# Row classification
# ---------------------------------------------------------------------------


def _optional_text(value: Any) -> str | None:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    s = clean_text(value)
    return s or None


def _optional_balance(value: Any) -> Decimal | None:
    if not clean_text(value):
        return None
    return parse_balance(value)


def classify_row(row: RawRow, *, ordinal: int) -> tuple[Transaction | None, str | None]:
    """Classify ``row`` and explain a skip.

    Returns ``(transaction, None)`` on success, ``(None, None)`` for rows that
    are silently ignored (no amount in either column: header, footer or
    page-break noise) and ``(None, reason)`` for rows dropped as malformed.
    """

    debit = parse_amount(row.debit)
    credit = parse_amount(row.credit)
    if debit == ZERO and credit == ZERO:
        return None, None
    if debit > ZERO and credit > ZERO:
        reason = f"ambiguous amounts (debit {format_amount(debit)}, credit {format_amount(credit)})"
        _logger.info("Skipping row %s: %s", row.position, reason)
        return None, reason

    txn_date = parse_date(row.txn_date)
    if txn_date is None:
        reason = f"unparseable date {clean_text(row.txn_date)!r}"
        _logger.debug("Skipping row %s: %s", row.position, reason)
        return None, reason

    raw_description = clean_text(row.particulars)
    description = clean_description(raw_description)
    direction = Direction.EXPENSE if debit > ZERO else Direction.INCOME
    amount = debit if direction is Direction.EXPENSE else credit

    haystack = f"{raw_description} {description}".lower()
    payment_method = detect_payment_method(raw_description)
    category = categorize(haystack, direction)
    nature, income_source = classify_nature(haystack, direction, payment_method)

    txn = Transaction(
        id=transaction_id(txn_date.isoformat(), amount, raw_description, direction, ordinal),
        ordinal=ordinal,
        date=txn_date,
        description=description,
        raw_description=raw_description,
        amount=amount,
        direction=direction,
        category=category,
        nature=nature,
        payment_method=payment_method,
        income_source=income_source,
        value_date=parse_date(row.value_date),
        post_balance=_optional_balance(row.balance),
        cheque_no=_optional_text(row.cheque_no),
    )
    return txn, None


def flip_direction(txn: Transaction) -> Transaction:
    """Return ``txn`` with its direction inverted and re-derived labels.

    Category, nature and income source depend on direction, so they are
    recomputed. The id is kept so a correction can be traced back to its row;
    ``corrected`` toggles, which makes a double flip a no-op.
    """

    direction = txn.direction.flipped()
    haystack = f"{txn.raw_description} {txn.description}".lower()
    nature, income_source = classify_nature(haystack, direction, txn.payment_method)
    return dataclasses.replace(
        txn,
        direction=direction,
        category=categorize(haystack, direction),
        nature=nature,
        income_source=income_source,
        corrected=not txn.corrected,
    )


def classify(row: RawRow, *, ordinal: int) -> Transaction | None:
    """Classify a single row; ``None`` when the row is not a transaction."""

    txn, _reason = classify_row(row, ordinal=ordinal)
    return txn


__all__ = [
    "clean_description",
    "normalize_description",
    "categorize",
    "detect_payment_method",
    "merchant_category",
    "is_person_transfer",
    "NATURE_RULES",
    "classify_nature",
    "transaction_id",
    "classify_row",
    "flip_direction",
    "classify",
]
