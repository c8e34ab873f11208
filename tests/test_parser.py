from __future__ import annotations

from decimal import Decimal

import pytest

import statement_ingest.parser as parser_mod
from statement_ingest import (
    CancellationToken,
    HeaderNotFoundError,
    NoTransactionsError,
    ParseCancelled,
    UnreadableFileError,
    UnsupportedFormatError,
    parse,
    parse_file,
)
from statement_ingest.models import Direction, Nature, StatementSummary
from statement_ingest.parser import Extraction, RuleBasedStrategy, StrategyChain
from statement_ingest.settings import ParserSettings
from tests.helpers.statements import (
    BALANCED_ROWS,
    PDF_TEXT,
    statement_grid,
    swap_columns,
    to_csv_bytes,
    to_xlsx_bytes,
)


def test_balanced_workbook_is_valid():
    result = parse(to_xlsx_bytes(statement_grid()), "statement.xlsx")

    assert result.source_format == "spreadsheet"
    assert result.strategy == "rule-based"
    assert result.sheet_name == "Account Statement"
    assert len(result.transactions) == 5
    assert result.validation.is_valid
    assert result.validation.errors == ()
    assert result.summary.account_number == "10012345678"

    zomato, salary, atm, pos, neft = result.transactions
    assert [t.ordinal for t in result.transactions] == [0, 1, 2, 3, 4]
    assert zomato.description == "Zomato"
    assert zomato.post_balance == Decimal("9550.00")
    assert salary.direction is Direction.INCOME and salary.nature is Nature.SALARY
    assert atm.nature is Nature.CASH_OUT
    assert pos.nature is Nature.CONSUMPTION
    assert neft.category == "Utilities"


def test_conservation_when_valid():
    result = parse(to_xlsx_bytes(statement_grid()), "statement.xlsx")
    debit = sum((t.amount for t in result.transactions if t.direction is Direction.EXPENSE), Decimal(0))
    credit = sum((t.amount for t in result.transactions if t.direction is Direction.INCOME), Decimal(0))

    assert result.validation.is_valid
    assert debit == result.validation.computed_debit == result.summary.total_debit
    assert credit == result.validation.computed_credit == result.summary.total_credit


def test_parse_is_idempotent():
    data = to_xlsx_bytes(statement_grid())
    assert parse(data, "statement.xlsx") == parse(data, "statement.xlsx")


def test_swapped_workbook_is_corrected():
    result = parse(to_xlsx_bytes(statement_grid(swap_columns(BALANCED_ROWS))), "s.xlsx")

    assert result.validation.is_valid
    assert result.validation.global_swap_applied
    assert result.validation.computed_debit == Decimal("2500.00")
    assert result.validation.computed_credit == Decimal("3000.00")
    assert all(t.corrected for t in result.transactions)


def test_malformed_rows_are_skipped_without_aborting():
    rows = [
        BALANCED_ROWS[0],
        ["not-a-date", "desc", "", "", "", "", ""],
        ["not-a-date", "desc", "", "", "99.00", "", ""],
        *BALANCED_ROWS[1:],
    ]
    result = parse(to_xlsx_bytes(statement_grid(rows)), "statement.xlsx")

    assert len(result.transactions) == 5
    assert all(t.raw_description != "desc" for t in result.transactions)
    # The row without amounts is noise; only the dated-looking row with an amount counts.
    assert result.validation.skipped_rows == 1
    assert result.validation.is_valid
    assert any(w.startswith("Skipped 1 malformed") for w in result.validation.warnings)


def test_missing_header_is_fatal():
    data = to_xlsx_bytes(statement_grid(header=None))
    with pytest.raises(HeaderNotFoundError, match="Transaction Date"):
        parse(data, "statement.xlsx")


def test_header_without_rows_is_fatal():
    with pytest.raises(NoTransactionsError):
        parse(to_xlsx_bytes(statement_grid([])), "statement.xlsx")


def test_unsupported_and_unreadable_inputs():
    with pytest.raises(UnsupportedFormatError):
        parse(b"hello", "notes.txt")
    with pytest.raises(UnreadableFileError):
        parse(b"PK\x03\x04 definitely not a zip", "statement.xlsx")


def test_sheet_selection_prefers_statement_sheet():
    data = to_xlsx_bytes(statement_grid(), sheet_name="Account Statement", extra_sheets=["Notes"])
    result = parse(data, "statement.xlsx")
    assert result.sheet_name == "Account Statement"
    assert len(result.transactions) == 5


def test_csv_statement():
    result = parse(to_csv_bytes(statement_grid()), "statement.csv")

    assert result.sheet_name is None
    assert result.source_format == "spreadsheet"
    assert result.validation.is_valid
    assert len(result.transactions) == 5


def test_overdrawn_csv_statement_reconciles():
    rows = [
        ["02-Jan-2025", "02-Jan-2025", "UPI-ZOMATO-1234567890", "", "200.00", "", "-700.00"],
        ["05-Jan-2025", "05-Jan-2025", "SALARY CREDIT JAN 2025", "", "", "1000.00", "300.00"],
    ]
    grid = statement_grid(rows, summary=["-500.00", "200.00", "1000.00", "300.00"])
    result = parse(to_csv_bytes(grid), "statement.csv")

    assert result.summary.opening_balance == Decimal("-500.00")
    assert result.summary.closing_balance == Decimal("300.00")
    assert result.transactions[0].post_balance == Decimal("-700.00")
    assert result.validation.is_valid
    assert not result.validation.global_swap_applied
    assert result.validation.corrections_applied == 0
    assert not any("Balance calculation off" in w for w in result.validation.warnings)
    assert not any("Running balance mismatch" in w for w in result.validation.warnings)


def test_mime_type_hint_without_filename():
    result = parse(to_csv_bytes(statement_grid()), mime_type="text/csv")
    assert len(result.transactions) == 5


def test_pdf_statement(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(parser_mod, "extract_pdf_pages", lambda data, **kw: [PDF_TEXT])

    result = parse(b"%PDF-1.7", "statement.pdf")

    assert result.source_format == "pdf"
    assert result.sheet_name is None
    assert len(result.transactions) == 5
    assert result.validation.is_valid
    assert result.validation.skipped_rows == 1
    assert result.transactions[2].raw_description == "ATM-NFS CASH WITHDRAWAL MG ROAD"


def test_pdf_without_text_is_unreadable(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(parser_mod, "extract_pdf_pages", lambda data, **kw: ["", "  "])

    with pytest.raises(UnreadableFileError, match="OCR"):
        parse(b"%PDF-1.7", "scan.pdf")


def test_prior_history_flags_reimports():
    data = to_xlsx_bytes(statement_grid())
    first = parse(data, "statement.xlsx")
    again = parse(data, "statement.xlsx", prior=first.transactions)

    assert [t.id for t in again.transactions] == [t.id for t in first.transactions]
    assert all(t.is_duplicate for t in again.transactions)
    assert again.validation.duplicate_count == 5
    # Duplicates are advisory only.
    assert again.validation.is_valid


def test_cancelled_parse_raises():
    token = CancellationToken()
    token.cancel()
    with pytest.raises(ParseCancelled):
        parse(to_xlsx_bytes(statement_grid()), "statement.xlsx", cancel=token)


def test_settings_from_environment(monkeypatch: pytest.MonkeyPatch):
    rows = [list(r) for r in BALANCED_ROWS]
    rows[3][4], rows[3][5] = "", "800.00"
    data = to_xlsx_bytes(statement_grid(rows))

    assert parse(data, "s.xlsx").validation.corrections_applied == 1

    monkeypatch.setenv("SI_MAX_CORRECTIONS", "0")
    result = parse(data, "s.xlsx")
    assert result.validation.corrections_applied == 0
    assert not result.validation.is_valid


def test_explicit_settings_win():
    rows = [list(r) for r in BALANCED_ROWS]
    rows[3][4], rows[3][5] = "", "800.00"
    result = parse(
        to_xlsx_bytes(statement_grid(rows)), "s.xlsx", settings=ParserSettings(max_corrections=0)
    )
    assert result.validation.corrections_applied == 0


def test_parse_file_uses_name_as_hint(tmp_path):
    path = tmp_path / "january.csv"
    path.write_bytes(to_csv_bytes(statement_grid()))
    assert len(parse_file(path).transactions) == 5


# ---- Strategy chain ------------------------------------------------------------------


class _StaticStrategy:
    name = "static"

    def __init__(self, extraction: Extraction) -> None:
        self.extraction = extraction
        self.calls = 0

    def extract(self, source, *, settings, cancel):
        self.calls += 1
        return self.extraction


def _static_extraction() -> Extraction:
    from statement_ingest.models import RawRow

    row = RawRow(
        position=0,
        txn_date="01-Jan-2025",
        value_date=None,
        particulars="UPI-ZOMATO-1234567890",
        cheque_no=None,
        debit="450.00",
        credit=None,
        balance=None,
    )
    summary = StatementSummary(total_debit=Decimal("450.00"), found=True)
    return Extraction(rows=(row,), summary=summary)


def test_fallback_strategy_runs_only_after_structural_failure():
    fallback = _StaticStrategy(_static_extraction())
    chain = StrategyChain(RuleBasedStrategy(), [fallback])

    result = parse(to_xlsx_bytes(statement_grid(header=None)), "s.xlsx", strategies=chain)
    assert result.strategy == "static"
    assert fallback.calls == 1
    assert result.validation.is_valid

    result = parse(to_xlsx_bytes(statement_grid()), "s.xlsx", strategies=chain)
    assert result.strategy == "rule-based"
    assert fallback.calls == 1


def test_primary_error_is_reraised_when_every_strategy_fails():
    class _Failing:
        name = "failing"

        def extract(self, source, *, settings, cancel):
            raise NoTransactionsError("fallback found nothing")

    chain = StrategyChain(RuleBasedStrategy(), [_Failing()])
    with pytest.raises(HeaderNotFoundError):
        parse(to_xlsx_bytes(statement_grid(header=None)), "s.xlsx", strategies=chain)
