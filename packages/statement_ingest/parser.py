"""Statement parser: bytes in, validated :class:`ParseResult` out.

Pipeline: detect format, decode (sheet grid or PDF text), extract header,
summary and rows, classify each row, reconcile against the printed summary,
then flag duplicates against the batch and any prior history.

Only structural problems raise (:class:`~statement_ingest.errors.StatementError`
subclasses): unsupported or unreadable input, no header, no transactions after
the header. Malformed rows are skipped and counted; reconciliation and
duplicate findings land in ``ParseResult.validation``.

Extraction runs through a :class:`StrategyChain`. The rule-based strategy is
always tried first; alternates are tried only when it fails structurally and
never override a successful result. ``parse`` is a pure function of its
inputs: the same bytes yield an equal result.
"""

from __future__ import annotations

import dataclasses
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from os import PathLike
from pathlib import Path
from typing import Any, Protocol, TypeVar

from .classify import classify_row
from .concurrency import CancellationToken, check_cancelled
from .duplicates import detect_duplicates
from .errors import NoTransactionsError, StatementError, UnreadableFileError
from .ingest.decoders import (
    FileKind,
    decode_csv,
    decode_workbook,
    detect_format,
    extract_pdf_pages,
    pages_to_lines,
    select_sheet,
)
from .ingest.grid import extract_grid
from .ingest.lines import extract_lines
from .logging_setup import get_logger
from .models import ParseResult, RawRow, StatementSummary, Transaction
from .reconcile import reconcile
from .settings import ParserSettings

_logger = get_logger("statement_ingest.parser")

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class StatementSource:
    data: bytes
    kind: FileKind
    filename: str | None = None


@dataclass(frozen=True, slots=True)
class Extraction:
    """Format-agnostic extractor output shared by every strategy."""

    rows: tuple[RawRow, ...]
    summary: StatementSummary
    skipped: tuple[tuple[int, str], ...] = ()
    sheet_name: str | None = None


class ExtractionStrategy(Protocol):
    name: str

    def extract(
        self,
        source: StatementSource,
        *,
        settings: ParserSettings,
        cancel: CancellationToken | None,
    ) -> Extraction: ...


class RuleBasedStrategy:
    """Deterministic extraction for IDFC FIRST Bank sheet and PDF layouts."""

    name = "rule-based"

    def extract(
        self,
        source: StatementSource,
        *,
        settings: ParserSettings,
        cancel: CancellationToken | None,
    ) -> Extraction:
        if source.kind is FileKind.PDF:
            pages = extract_pdf_pages(
                source.data,
                concurrency=settings.pdf_concurrency,
                pages_per_chunk=settings.pdf_pages_per_chunk,
                cancel=cancel,
            )
            if not any(p.strip() for p in pages):
                raise UnreadableFileError(
                    "PDF contains no extractable text (scanned image?); "
                    "OCR is not supported, export the statement as Excel instead"
                )
            check_cancelled(cancel)
            lx = extract_lines(pages_to_lines(pages))
            return Extraction(rows=lx.rows, summary=lx.summary, skipped=lx.skipped)

        if source.kind is FileKind.CSV:
            sheets = decode_csv(source.data)
        else:
            sheets = decode_workbook(source.data, source.kind)
        sheet_name, grid = select_sheet(sheets)
        check_cancelled(cancel)
        gx = extract_grid(grid, summary_search_rows=settings.summary_search_rows)
        return Extraction(
            rows=gx.rows,
            summary=gx.summary,
            skipped=gx.skipped,
            sheet_name=None if source.kind is FileKind.CSV else sheet_name,
        )


class StrategyChain:
    """Try a primary strategy, then fallbacks on structural failure only.

    ``ParseCancelled`` and programming errors propagate immediately. When every
    strategy fails, the primary's error is re-raised.
    """

    def __init__(
        self, primary: ExtractionStrategy, fallbacks: Sequence[ExtractionStrategy] = ()
    ) -> None:
        self.primary = primary
        self.fallbacks = tuple(fallbacks)

    def run(self, attempt: Callable[[ExtractionStrategy], T]) -> tuple[T, str]:
        first_error: StatementError | None = None
        for strategy in (self.primary, *self.fallbacks):
            try:
                return attempt(strategy), strategy.name
            except StatementError as exc:
                if first_error is None:
                    first_error = exc
                _logger.info("Strategy %s failed: %s", strategy.name, exc)
        assert first_error is not None
        raise first_error


def default_chain() -> StrategyChain:
    return StrategyChain(RuleBasedStrategy())


def _classify_rows(
    extraction: Extraction, cancel: CancellationToken | None
) -> tuple[list[Transaction], list[tuple[int, str]]]:
    transactions: list[Transaction] = []
    skipped = list(extraction.skipped)
    for row in extraction.rows:
        check_cancelled(cancel)
        txn, reason = classify_row(row, ordinal=len(transactions))
        if reason is not None:
            skipped.append((row.position, reason))
        if txn is not None:
            transactions.append(txn)
    if not transactions:
        raise NoTransactionsError(
            "No transactions found after the header row; the statement may be empty"
        )

    seen: set[str] = set()
    for t in transactions:
        if t.id in seen:
            raise RuntimeError(f"Transaction id collision within a batch: {t.id}")
        seen.add(t.id)
    return transactions, skipped


def parse(
    data: bytes,
    filename: str | None = None,
    *,
    mime_type: str | None = None,
    prior: Iterable[Transaction] = (),
    settings: ParserSettings | None = None,
    cancel: CancellationToken | None = None,
    strategies: StrategyChain | None = None,
) -> ParseResult:
    """Parse a bank statement export.

    Parameters
    ----------
    data:
        Raw file bytes (``.xlsx``, ``.xls``, ``.csv`` or text ``.pdf``).
    filename, mime_type:
        Format hints; the extension wins over the MIME type, which wins over
        magic-byte sniffing.
    prior:
        Previously stored transactions to flag re-imported movements against.
    settings:
        Thresholds; defaults to :meth:`ParserSettings.from_env`.
    cancel:
        Cooperative cancellation token checked between chunks and rows. A
        cancelled parse raises ``ParseCancelled`` and returns nothing.
    strategies:
        Extraction strategy chain; defaults to the rule-based strategy alone.

    Raises
    ------
    StatementError
        On structural failures (see :mod:`statement_ingest.errors`).
    """

    started = time.perf_counter()
    if settings is None:
        settings = ParserSettings.from_env()
    chain = strategies or default_chain()
    check_cancelled(cancel)

    kind = detect_format(data, filename, mime_type)
    source = StatementSource(data=data, kind=kind, filename=filename)
    _logger.info("Parsing %s as %s", filename or "<bytes>", source.kind)

    def _attempt(
        strategy: ExtractionStrategy,
    ) -> tuple[Extraction, list[Transaction], list[tuple[int, str]]]:
        extraction = strategy.extract(source, settings=settings, cancel=cancel)
        transactions, skipped = _classify_rows(extraction, cancel)
        return extraction, transactions, skipped

    (extraction, transactions, skipped), strategy_name = chain.run(_attempt)

    check_cancelled(cancel)
    corrected, report = reconcile(transactions, extraction.summary, settings=settings)
    check_cancelled(cancel)
    flagged = detect_duplicates(corrected, prior, settings=settings)

    duplicate_count = sum(1 for t in flagged if t.is_duplicate)
    warnings = list(report.warnings)
    if skipped:
        warnings.append(f"Skipped {len(skipped)} malformed or ambiguous row(s)")
    if duplicate_count:
        warnings.append(f"{duplicate_count} possible duplicate transaction(s) flagged")
    report = dataclasses.replace(
        report,
        warnings=tuple(warnings),
        duplicate_count=duplicate_count,
        skipped_rows=len(skipped),
    )

    _logger.info(
        "Parsed %d transaction(s) via %s in %.3fs (valid=%s, skipped=%d, duplicates=%d)",
        len(flagged),
        strategy_name,
        time.perf_counter() - started,
        report.is_valid,
        len(skipped),
        duplicate_count,
    )
    return ParseResult(
        transactions=tuple(flagged),
        summary=extraction.summary,
        validation=report,
        source_format=source.kind.source_format,
        strategy=strategy_name,
        sheet_name=extraction.sheet_name,
    )


def parse_file(path: str | PathLike[str], **kwargs: Any) -> ParseResult:
    """Read ``path`` and :func:`parse` it, using the file name as format hint."""

    p = Path(path)
    return parse(p.read_bytes(), p.name, **kwargs)


__all__ = [
    "StatementSource",
    "Extraction",
    "ExtractionStrategy",
    "RuleBasedStrategy",
    "StrategyChain",
    "default_chain",
    "parse",
    "parse_file",
]
