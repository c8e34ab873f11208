"""statement_ingest: IDFC FIRST Bank statement ingestion.

Public exports
--------------
- ``parse`` / ``parse_file``: bytes or path in, :class:`ParseResult` out
- data models (``Transaction``, ``StatementSummary``, ``ValidationReport``, ...)
- the error hierarchy rooted at :class:`StatementError`
- ``ParserSettings`` thresholds and the ``CancellationToken``
- the standalone stages (``reconcile``, ``detect_duplicates``) for callers
  that assemble their own pipeline
"""

from __future__ import annotations

from .concurrency import CancellationToken
from .duplicates import detect_duplicates
from .errors import (
    HeaderNotFoundError,
    NoTransactionsError,
    ParseCancelled,
    StatementError,
    UnreadableFileError,
    UnsupportedFormatError,
)
from .models import (
    Direction,
    IncomeSource,
    Nature,
    ParseResult,
    PaymentMethod,
    StatementSummary,
    Transaction,
    ValidationReport,
)
from .parser import parse, parse_file
from .reconcile import reconcile
from .settings import ParserSettings

__all__ = [
    "parse",
    "parse_file",
    "reconcile",
    "detect_duplicates",
    "ParserSettings",
    "CancellationToken",
    "Direction",
    "Nature",
    "IncomeSource",
    "PaymentMethod",
    "Transaction",
    "StatementSummary",
    "ValidationReport",
    "ParseResult",
    "StatementError",
    "UnsupportedFormatError",
    "UnreadableFileError",
    "HeaderNotFoundError",
    "NoTransactionsError",
    "ParseCancelled",
]
