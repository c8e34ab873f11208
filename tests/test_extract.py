from __future__ import annotations

from decimal import Decimal

import pytest

from statement_ingest.errors import HeaderNotFoundError, UnsupportedFormatError
from statement_ingest.ingest.decoders import (
    FileKind,
    decode_csv,
    detect_format,
    pages_to_lines,
    select_sheet,
)
from statement_ingest.ingest.grid import (
    HEADER_NOT_FOUND,
    IDFC_COLUMNS,
    deduce_columns,
    extract_grid,
    extract_summary,
)
from statement_ingest.ingest.lines import extract_lines, extract_text_summary
from tests.helpers.statements import (
    BALANCED_ROWS,
    HEADER,
    PDF_TEXT,
    statement_grid,
    to_csv_bytes,
)


# ---- Format detection ---------------------------------------------------------


@pytest.mark.parametrize(
    ("data", "filename", "mime", "expected"),
    [
        (b"", "stmt.XLSX", None, FileKind.XLSX),
        (b"", "stmt.xls", None, FileKind.XLS),
        (b"", "stmt.csv", "application/pdf", FileKind.CSV),
        (b"", None, "text/csv; charset=utf-8", FileKind.CSV),
        (b"%PDF-1.7 ...", None, None, FileKind.PDF),
        (b"PK\x03\x04rest", "download", None, FileKind.XLSX),
    ],
)
def test_detect_format(data, filename, mime, expected):
    assert detect_format(data, filename, mime) is expected


def test_detect_format_rejects_unknown():
    with pytest.raises(UnsupportedFormatError):
        detect_format(b"hello", "notes.txt", "text/plain")


def test_select_sheet_prefers_account_statement():
    sheets = {"Summary": [["x"]], "Account Statement": [["y"]], "Other": [["z"]]}
    assert select_sheet(sheets)[0] == "Account Statement"
    assert select_sheet({"Sheet1": [["a"]], "Sheet2": [["b"]]})[0] == "Sheet1"


def test_decode_csv_handles_bom_and_cp1252():
    bom = "\ufeffTransaction Date,Particulars\n01-Jan-2025,Cafe\n".encode()
    assert decode_csv(bom)["csv"][0][0] == "Transaction Date"

    legacy = "Transaction Date,Particulars\n01-Jan-2025,Café\n".encode("cp1252")
    assert decode_csv(legacy)["csv"][1][1] == "Café"


# ---- Grid extraction -------------------------------------------------------------


def test_extract_grid_reads_summary_header_and_rows():
    gx = extract_grid(statement_grid())

    assert gx.header_index == 7
    assert gx.columns == IDFC_COLUMNS
    assert len(gx.rows) == 5
    assert gx.rows[0].particulars == "UPI-ZOMATO-1234567890"
    assert gx.rows[1].credit == "3000.00"
    assert gx.skipped == ()

    s = gx.summary
    assert s.found
    assert (s.opening_balance, s.total_debit, s.total_credit, s.closing_balance) == (
        Decimal("10000.00"),
        Decimal("2500.00"),
        Decimal("3000.00"),
        Decimal("10500.00"),
    )
    assert s.account_number == "10012345678"
    assert s.customer_name == "A N Other"
    assert s.statement_period == "01-Jan-2025 to 31-Jan-2025"


def test_extract_grid_without_header_is_fatal():
    grid = statement_grid(header=None)
    with pytest.raises(HeaderNotFoundError) as excinfo:
        extract_grid(grid)
    assert str(excinfo.value) == HEADER_NOT_FOUND
    assert "Transaction Date" in str(excinfo.value)


def test_extract_grid_stops_at_end_marker_and_skips_repeated_header():
    rows = [BALANCED_ROWS[0], HEADER, BALANCED_ROWS[1]]
    grid = statement_grid(rows, footer=False)
    grid.append(["End of Statement", "", "", "", "", "", ""])
    grid.append(["02-Feb-2025", "", "AFTER THE END", "", "1.00", "", ""])

    gx = extract_grid(grid)
    assert [r.particulars for r in gx.rows] == ["UPI-ZOMATO-1234567890", "SALARY CREDIT JAN 2025"]


def test_extract_grid_skips_short_rows_with_reason():
    rows = [BALANCED_ROWS[0], ["02-Jan-2025", "x", "y"], BALANCED_ROWS[1]]
    gx = extract_grid(statement_grid(rows))

    assert len(gx.rows) == 2
    assert len(gx.skipped) == 1
    assert "expected at least 6" in gx.skipped[0][1]


def test_summary_missing_is_reported_not_raised():
    gx = extract_grid(statement_grid(summary=None))
    assert not gx.summary.found
    assert gx.summary.total_debit == Decimal("0.00")


def test_summary_values_are_read_under_their_labels():
    grid = [
        ["", "Closing Balance", "Total Credit", "Total Debit", "Opening Balance"],
        ["", "10,500.00", "3,000.00", "2,500.00", "10,000.00"],
    ]
    s = extract_summary(grid)
    assert s.opening_balance == Decimal("10000.00")
    assert s.total_debit == Decimal("2500.00")
    assert s.closing_balance == Decimal("10500.00")


def test_overdrawn_summary_balances_keep_their_sign():
    grid = [
        ["Opening Balance", "Total Debit", "Total Credit", "Closing Balance"],
        ["-500.00", "(200.00)", "1,000.00", "(1,250.00)"],
    ]
    s = extract_summary(grid)
    assert s.opening_balance == Decimal("-500.00")
    assert s.closing_balance == Decimal("-1250.00")
    # Totals are magnitudes whatever their notation.
    assert s.total_debit == Decimal("200.00")


def test_deduce_columns_maps_alternate_labels():
    cols = deduce_columns(
        ["Txn Date", "Narration", "Withdrawal Amt", "Deposit Amt", "Closing Balance"]
    )
    assert cols.date == 0
    assert cols.particulars == 1
    assert cols.debit == 2
    assert cols.credit == 3
    assert cols.balance == 4
    # Unrecognized roles fall back to the default order unless that column is taken.
    assert cols.value_date is None
    assert cols.cheque_no is None


def test_csv_grid_round_trip_through_extractor():
    sheets = decode_csv(to_csv_bytes(statement_grid()))
    _, grid = select_sheet(sheets)
    gx = extract_grid(grid)
    assert len(gx.rows) == 5
    assert gx.summary.found


# ---- PDF text lines --------------------------------------------------------------------


def test_extract_lines_recovers_rows():
    lx = extract_lines(pages_to_lines([PDF_TEXT]))

    assert len(lx.rows) == 5
    zomato, salary, atm, pos, neft = lx.rows

    assert zomato.debit == "450.00" and zomato.credit is None
    assert zomato.balance == "9,550.00"
    assert zomato.value_date == "01-Jan-2025"

    assert salary.credit == "3,000.00" and salary.debit is None

    assert atm.particulars == "ATM-NFS CASH WITHDRAWAL MG ROAD"
    assert atm.value_date is None

    assert pos.particulars == "POS AMAZON PAY INDIA"
    assert pos.debit == "800.00"

    assert (neft.debit, neft.credit, neft.balance) == ("250.00", "0.00", "10,500.00")

    assert len(lx.skipped) == 1
    assert "no amount" in lx.skipped[0][1]


def test_extract_text_summary_reads_amount_line():
    s = extract_text_summary(pages_to_lines([PDF_TEXT]))

    assert s.found
    assert s.total_debit == Decimal("2500.00")
    assert s.total_credit == Decimal("3000.00")
    assert s.account_number == "10012345678"
    assert s.customer_name == "A N Other"


def test_extract_text_summary_individual_labels():
    lines = ["Opening Balance: 1,000.00", "Total Debit: 200.00", "Total Credit: 50.00"]
    s = extract_text_summary(lines)
    assert s.found
    assert s.opening_balance == Decimal("1000.00")
    assert s.total_debit == Decimal("200.00")
    assert s.total_credit == Decimal("50.00")


def test_extract_text_summary_signed_balances():
    s = extract_text_summary(
        [
            "Opening Balance  Total Debit  Total Credit  Closing Balance",
            "-500.00  200.00  1,000.00  300.00",
        ]
    )
    assert s.opening_balance == Decimal("-500.00")
    assert s.closing_balance == Decimal("300.00")

    s = extract_text_summary(["Opening Balance: 1,250.00 Dr", "Closing Balance: (75.00)"])
    assert s.opening_balance == Decimal("-1250.00")
    assert s.closing_balance == Decimal("-75.00")


def test_extract_lines_without_header_is_fatal():
    with pytest.raises(HeaderNotFoundError):
        extract_lines(["some text", "01-Jan-2025 thing 10.00"])
