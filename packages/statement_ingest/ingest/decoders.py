"""Decode statement bytes into sheet grids or PDF text lines.

Three decoders, all returning plain Python structures so the extractors never
see pandas or pdfplumber objects:

- workbooks (``.xlsx`` through openpyxl, legacy ``.xls`` through xlrd when
  installed) via ``pandas.read_excel``: ``{sheet name: rows}``;
- CSV via the standard ``csv`` module: a single-sheet workbook;
- PDF via pdfplumber: text lines in page order, optionally decoded in parallel
  chunks of pages.

Format detection looks at the filename extension, then the declared MIME type,
then magic bytes.
"""

from __future__ import annotations

import csv
import io
import math
from collections.abc import Mapping, Sequence
from enum import StrEnum
from pathlib import PurePath
from typing import Any

import pandas as pd
import pdfplumber

from ..concurrency import CancellationToken, check_cancelled, p_map
from ..errors import UnreadableFileError, UnsupportedFormatError
from ..logging_setup import get_logger

_logger = get_logger("statement_ingest.ingest.decoders")

type Grid = list[list[Any]]


class FileKind(StrEnum):
    XLSX = "xlsx"
    XLS = "xls"
    CSV = "csv"
    PDF = "pdf"

    @property
    def source_format(self) -> str:
        return "pdf" if self is FileKind.PDF else "spreadsheet"


_EXTENSIONS: dict[str, FileKind] = {
    ".xlsx": FileKind.XLSX,
    ".xlsm": FileKind.XLSX,
    ".xls": FileKind.XLS,
    ".csv": FileKind.CSV,
    ".pdf": FileKind.PDF,
}

_MIME_TYPES: dict[str, FileKind] = {
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet": FileKind.XLSX,
    "application/vnd.ms-excel": FileKind.XLS,
    "text/csv": FileKind.CSV,
    "application/csv": FileKind.CSV,
    "application/pdf": FileKind.PDF,
}

_MAGIC: tuple[tuple[bytes, FileKind], ...] = (
    (b"%PDF", FileKind.PDF),
    (b"PK\x03\x04", FileKind.XLSX),
    (b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1", FileKind.XLS),
)

_CSV_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")


def detect_format(
    data: bytes, filename: str | None = None, mime_type: str | None = None
) -> FileKind:
    """Resolve the input kind or raise :class:`UnsupportedFormatError`."""

    if filename:
        kind = _EXTENSIONS.get(PurePath(filename).suffix.lower())
        if kind is not None:
            return kind
    if mime_type:
        kind = _MIME_TYPES.get(mime_type.split(";", 1)[0].strip().lower())
        if kind is not None:
            return kind
    for magic, kind in _MAGIC:
        if data.startswith(magic):
            return kind
    hint = filename or mime_type or "unnamed input"
    raise UnsupportedFormatError(
        f"Unsupported statement format for {hint!r}: expected .xlsx, .xls, .csv or .pdf"
    )


# ---------------------------------------------------------------------------
# Spreadsheets
# ---------------------------------------------------------------------------


def _cell(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value


def decode_workbook(data: bytes, kind: FileKind) -> dict[str, Grid]:
    """Return every sheet of an Excel workbook as rows of raw cell values.

    Cells keep their native types (``datetime`` for date cells, numbers for
    numeric cells); blanks become ``None``. No header inference happens here.
    """

    engine = "xlrd" if kind is FileKind.XLS else "openpyxl"
    try:
        frames = pd.read_excel(
            io.BytesIO(data), sheet_name=None, header=None, dtype=object, engine=engine
        )
    except ImportError as exc:
        raise UnsupportedFormatError(
            "Legacy .xls workbooks need the optional 'xlrd' package "
            "(install statement-ingest[xls]) or re-save the file as .xlsx"
        ) from exc
    except Exception as exc:  # noqa: BLE001 - engines raise a wide variety of errors
        raise UnreadableFileError(f"Could not read workbook: {exc}") from exc

    sheets: dict[str, Grid] = {}
    for name, frame in frames.items():
        sheets[str(name)] = [[_cell(v) for v in row] for row in frame.itertuples(index=False)]
    _logger.debug("Decoded workbook with sheets %s", list(sheets))
    return sheets


def decode_csv(data: bytes, *, sheet_name: str = "csv") -> dict[str, Grid]:
    """Decode CSV bytes into a single-sheet workbook of string cells."""

    for encoding in _CSV_ENCODINGS:
        try:
            text = data.decode(encoding)
            break
        except UnicodeDecodeError:
            continue
    else:  # pragma: no cover - latin-1 decodes any byte sequence
        raise UnreadableFileError("Could not decode CSV bytes")

    if "\x00" in text:
        raise UnreadableFileError("CSV input contains NUL bytes; is it really a text file?")

    try:
        dialect: Any = csv.Sniffer().sniff(text[:8192], delimiters=",;\t|")
    except csv.Error:
        dialect = csv.excel
    try:
        rows = [list(r) for r in csv.reader(io.StringIO(text, newline=""), dialect)]
    except csv.Error as exc:
        raise UnreadableFileError(f"Could not parse CSV: {exc}") from exc
    return {sheet_name: rows}


def select_sheet(sheets: Mapping[str, Grid]) -> tuple[str, Grid]:
    """Pick the first sheet named like an account statement, else the first.

    Raises :class:`UnreadableFileError` when the workbook has no sheets.
    """

    if not sheets:
        raise UnreadableFileError("Workbook contains no sheets")
    for name, grid in sheets.items():
        lowered = name.lower()
        if "account" in lowered or "statement" in lowered:
            _logger.info("Using sheet %r", name)
            return name, grid
    name = next(iter(sheets))
    _logger.info("No account/statement sheet; using first sheet %r", name)
    return name, sheets[name]


# ---------------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------------


def _open_pdf(data: bytes) -> Any:
    try:
        return pdfplumber.open(io.BytesIO(data))
    except Exception as exc:  # noqa: BLE001 - pdfminer raises several unrelated types
        raise UnreadableFileError(f"Could not open PDF: {exc}") from exc


def _page_chunks(page_count: int, per_chunk: int) -> list[range]:
    return [range(i, min(i + per_chunk, page_count)) for i in range(0, page_count, per_chunk)]


def extract_pdf_pages(
    data: bytes,
    *,
    concurrency: int = 4,
    pages_per_chunk: int = 2,
    cancel: CancellationToken | None = None,
) -> list[str]:
    """Return the text of every page, in page order.

    Pages are split into chunks of ``pages_per_chunk``; each chunk is decoded by
    an independent worker that opens its own document handle, with at most
    ``concurrency`` chunks in flight. Cancellation is checked between chunks.
    """

    with _open_pdf(data) as pdf:
        page_count = len(pdf.pages)
    if page_count == 0:
        raise UnreadableFileError("PDF has no pages")

    def _extract(chunk: range) -> list[str]:
        check_cancelled(cancel)
        with _open_pdf(data) as doc:
            try:
                return [doc.pages[i].extract_text() or "" for i in chunk]
            except Exception as exc:  # noqa: BLE001
                raise UnreadableFileError(
                    f"Could not extract text from PDF pages {chunk.start + 1}-{chunk.stop}: {exc}"
                ) from exc

    chunks = _page_chunks(page_count, pages_per_chunk)
    _logger.debug(
        "Extracting %d PDF page(s) in %d chunk(s), concurrency %d",
        page_count,
        len(chunks),
        concurrency,
    )
    per_chunk = p_map(chunks, _extract, concurrency=concurrency, cancel=cancel)
    return [text for texts in per_chunk for text in texts]


def pages_to_lines(pages: Sequence[str]) -> list[str]:
    """Concatenate page texts and split into lines, preserving order."""

    lines: list[str] = []
    for text in pages:
        lines.extend(text.splitlines())
    return lines


__all__ = [
    "Grid",
    "FileKind",
    "detect_format",
    "decode_workbook",
    "decode_csv",
    "select_sheet",
    "extract_pdf_pages",
    "pages_to_lines",
]
