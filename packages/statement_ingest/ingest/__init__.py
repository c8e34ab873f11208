"""Statement extraction: decoding bytes and locating header, summary and rows."""

from .decoders import FileKind, decode_csv, decode_workbook, detect_format, select_sheet
from .grid import ColumnMap, GridExtraction, extract_grid
from .lines import LineExtraction, extract_lines

__all__ = [
    "FileKind",
    "detect_format",
    "decode_workbook",
    "decode_csv",
    "select_sheet",
    "ColumnMap",
    "GridExtraction",
    "extract_grid",
    "LineExtraction",
    "extract_lines",
]
