"""Exception types raised by the statement parser.

Only structural failures raise. Row-level problems are skipped and logged, and
reconciliation problems are reported through
:class:`~statement_ingest.models.ValidationReport`.
"""

from __future__ import annotations


class StatementError(ValueError):
    """Base class for fatal, structural statement failures.

    The message is meant to be shown to the user verbatim.
    """


class UnsupportedFormatError(StatementError):
    """The input is neither a spreadsheet (xlsx/xls/csv) nor a PDF."""


class UnreadableFileError(StatementError):
    """The bytes could not be decoded into sheets or text."""


class HeaderNotFoundError(StatementError):
    """No row/line carrying the transaction header was located."""


class NoTransactionsError(StatementError):
    """The header was found but no transaction rows followed it."""


class ParseCancelled(Exception):  # noqa: N818 - reads better at call sites
    """Raised when a :class:`~statement_ingest.concurrency.CancellationToken` fires.

    Deliberately not a :class:`StatementError`: a cancelled parse must never be
    retried by a fallback strategy or reported as a partial result.
    """


__all__ = [
    "StatementError",
    "UnsupportedFormatError",
    "UnreadableFileError",
    "HeaderNotFoundError",
    "NoTransactionsError",
    "ParseCancelled",
]
