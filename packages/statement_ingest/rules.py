"""Keyword tables driving categorization and nature classification.

Everything here is data: ordered ``(keywords, result)`` pairs evaluated
first-match-wins by :mod:`statement_ingest.classify`. Extending the classifier
for a new merchant or narration style means editing a table, not control flow.

Keywords are lowercase. Matching is case-insensitive: keywords of four
characters or fewer (``"ola"``, ``"emi"``, ``"ift"``, ``"atm"``) only match as
whole words so they do not fire inside longer words (``"premium"``,
``"gift"``). Multi-word keywords (``"int cr"``, ``"sal cr"``) must start on a
word boundary, so ``"paint crafts"`` is not interest and ``"personal credit"``
is not salary. Other longer keywords match as plain substrings.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from functools import lru_cache

from .models import IncomeSource, PaymentMethod

type KeywordRule[T] = tuple[tuple[str, ...], T]

_SHORT_KEYWORD_MAX = 4


@lru_cache(maxsize=1024)
def _word_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z]){re.escape(keyword)}(?![a-z])")


@lru_cache(maxsize=1024)
def _word_start_pattern(keyword: str) -> re.Pattern[str]:
    return re.compile(rf"(?<![a-z]){re.escape(keyword)}")


def keyword_in(text: str, keyword: str) -> bool:
    """Return True when ``keyword`` occurs in lowercase ``text``."""

    kw = keyword.strip()
    if len(kw) <= _SHORT_KEYWORD_MAX:
        return _word_pattern(kw).search(text) is not None
    if " " in kw or "." in kw:
        return _word_start_pattern(kw).search(text) is not None
    return kw in text


def any_keyword(text: str, keywords: Iterable[str]) -> bool:
    return any(keyword_in(text, kw) for kw in keywords)


def first_match[T](text: str, rules: Iterable[KeywordRule[T]], default: T) -> T:
    """Return the result of the first rule with a keyword present in ``text``."""

    for keywords, result in rules:
        if any_keyword(text, keywords):
            return result
    return default


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------

TRANSFER_RAILS: tuple[str, ...] = ("neft", "rtgs", "imps", "ift")

INCOME_CATEGORY_RULES: tuple[KeywordRule[str], ...] = (
    (("salary", "payroll"), "Salary"),
    (("dividend", "mutual fund", "mf"), "Investment Returns"),
    (("interest",), "Interest Income"),
    (("refund", "reversal"), "Refunds"),
    (TRANSFER_RAILS, "Transfers In"),
)
DEFAULT_INCOME_CATEGORY = "Other Income"

EXPENSE_CATEGORY_RULES: tuple[KeywordRule[str], ...] = (
    (("zomato", "swiggy", "food", "restaurant"), "Food & Dining"),
    (("blinkit", "zepto", "grocery", "bigbasket"), "Groceries"),
    (("uber", "ola", "metro", "petrol", "fuel"), "Transportation"),
    (("amazon", "flipkart", "shopping", "myntra"), "Shopping"),
    (("netflix", "spotify", "prime", "google play"), "Entertainment"),
    (("electricity", "water", "gas", "broadband"), "Utilities"),
    (("rent", "lease"), "Housing"),
    (("hospital", "pharmacy", "doctor", "medical"), "Healthcare"),
    (TRANSFER_RAILS, "Transfers Out"),
    (("atm", "cash withdrawal"), "Cash Withdrawal"),
    (("insurance",), "Insurance"),
    (("emi", "loan"), "Loans & EMI"),
    (("mutual fund", "mf", "stock", "invest"), "Investments"),
)
DEFAULT_EXPENSE_CATEGORY = "Other"


# ---------------------------------------------------------------------------
# Nature
# ---------------------------------------------------------------------------

CASH_KEYWORDS: tuple[str, ...] = (
    "atm",
    "atm-nfs",
    "cash withdrawal",
    "cash wdl",
    "nfs wdl",
)

INVESTMENT_KEYWORDS: tuple[str, ...] = (
    "choice",
    "equity",
    "broking",
    "broker",
    "zerodha",
    "groww",
    "upstox",
    "angel one",
    "kite",
    "mutual fund",
    "mf",
    "prudential",
    "icici pru",
    "redemption",
    "dividend",
    "nse",
    "bse",
    "cdsl",
    "nsdl",
)
INVESTMENT_RETURN_KEYWORDS: tuple[str, ...] = ("redemption", "dividend")

INTEREST_KEYWORDS: tuple[str, ...] = ("interest", "int cr", "int.cr", "savings interest")

SALARY_KEYWORDS: tuple[str, ...] = ("salary", "sal cr", "payroll", "wages")

REFUND_KEYWORDS: tuple[str, ...] = ("refund", "reversal", "cashback", "cash back")

# Known merchants: presence means the counterparty is a business, which makes
# a movement consumption rather than a person-to-person transfer.
MERCHANT_TABLE: tuple[KeywordRule[str], ...] = (
    (("zomato", "swiggy", "eatsure", "dunzo", "zepto"), "Food Delivery"),
    (
        ("blinkit", "bigbasket", "jiomart", "dmart", "instamart", "grofers", "spencers"),
        "Groceries",
    ),
    (("amazon", "flipkart", "myntra", "meesho", "ajio", "nykaa"), "Shopping"),
    (("uber", "ola", "rapido"), "Transport"),
    (("irctc", "redbus", "makemytrip"), "Travel"),
    (
        ("netflix", "hotstar", "spotify", "prime video", "youtube", "zee5"),
        "Streaming",
    ),
    (("google", "apple", "microsoft"), "Digital"),
    (("jio", "airtel", "vodafone"), "Phone"),
    (("bescom", "bsnl", "tata power"), "Utilities"),
    (("dominos", "mcdonalds", "kfc", "starbucks", "ccd", "pizza hut"), "Dining"),
    (
        ("bpcl", "hpcl", "iocl", "indian oil", "petrol", "diesel", "reliance fuel"),
        "Fuel",
    ),
)

# Narration fragments that mark a UPI counterparty as a business.
BUSINESS_MARKERS: tuple[str, ...] = (
    "razorpay",
    "paytm",
    "phonepe",
    "googlepay",
    "amazonpay",
    "@axis",
    "@icici",
    "@hdfc",
    "@ybl",
    "@sbi",
    "merchant",
    "pvt ltd",
    "private limited",
    "llp",
    "technologies",
)
# Override business markers: family transfers routed through a business VPA.
PERSON_INDICATORS: tuple[str, ...] = (
    "dad",
    "mom",
    "wife",
    "husband",
    "brother",
    "sister",
    "family",
)

# Income-only source refinements for otherwise generic transfers.
INCOME_SOURCE_RULES: tuple[KeywordRule[IncomeSource], ...] = (
    (("freelance", "consulting", "upwork", "fiverr", "invoice"), IncomeSource.FREELANCE),
    (("rent received", "rental", "tenant"), IncomeSource.RENTAL),
)


# ---------------------------------------------------------------------------
# Payment rails
# ---------------------------------------------------------------------------

PAYMENT_METHOD_RULES: tuple[KeywordRule[PaymentMethod], ...] = (
    (("upi",), PaymentMethod.UPI),
    (("neft",), PaymentMethod.NEFT),
    (("rtgs",), PaymentMethod.RTGS),
    (("imps",), PaymentMethod.IMPS),
    (("chq", "cheque"), PaymentMethod.CHEQUE),
    (("atm", "nfs"), PaymentMethod.ATM),
    (("pos", "card"), PaymentMethod.CARD),
)


__all__ = [
    "KeywordRule",
    "keyword_in",
    "any_keyword",
    "first_match",
    "TRANSFER_RAILS",
    "INCOME_CATEGORY_RULES",
    "DEFAULT_INCOME_CATEGORY",
    "EXPENSE_CATEGORY_RULES",
    "DEFAULT_EXPENSE_CATEGORY",
    "CASH_KEYWORDS",
    "INVESTMENT_KEYWORDS",
    "INVESTMENT_RETURN_KEYWORDS",
    "INTEREST_KEYWORDS",
    "SALARY_KEYWORDS",
    "REFUND_KEYWORDS",
    "MERCHANT_TABLE",
    "BUSINESS_MARKERS",
    "PERSON_INDICATORS",
    "INCOME_SOURCE_RULES",
    "PAYMENT_METHOD_RULES",
]
