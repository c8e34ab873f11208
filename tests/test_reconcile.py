from __future__ import annotations

from decimal import Decimal

from statement_ingest.classify import classify
from statement_ingest.models import Direction, RawRow, StatementSummary, totals
from statement_ingest.reconcile import (
    SUMMARY_NOT_FOUND,
    check_closing_balance,
    check_running_balance,
    reconcile,
)
from statement_ingest.settings import ParserSettings
from tests.helpers.statements import BALANCED_ROWS, swap_columns

SUMMARY = StatementSummary(
    opening_balance=Decimal("10000.00"),
    total_debit=Decimal("2500.00"),
    total_credit=Decimal("3000.00"),
    closing_balance=Decimal("10500.00"),
    found=True,
)


def _classified(rows):
    out = []
    for i, r in enumerate(rows):
        txn = classify(
            RawRow(
                position=i,
                txn_date=r[0],
                value_date=r[1],
                particulars=r[2],
                cheque_no=r[3],
                debit=r[4],
                credit=r[5],
                balance=r[6],
            ),
            ordinal=len(out),
        )
        assert txn is not None
        out.append(txn)
    return out


def test_balanced_statement_is_valid():
    txns, report = reconcile(_classified(BALANCED_ROWS), SUMMARY)

    assert report.is_valid
    assert report.errors == ()
    assert report.warnings == ()
    assert (report.computed_debit, report.computed_credit) == (
        Decimal("2500.00"),
        Decimal("3000.00"),
    )
    assert not report.global_swap_applied
    assert report.corrections_applied == 0
    assert not any(t.corrected for t in txns)


def test_global_swap_is_detected_and_fully_corrected():
    parsed = _classified(swap_columns(BALANCED_ROWS))
    assert totals(parsed) == (Decimal("3000.00"), Decimal("2500.00"))

    txns, report = reconcile(parsed, SUMMARY)

    assert report.is_valid
    assert report.global_swap_applied
    assert totals(txns) == (Decimal("2500.00"), Decimal("3000.00"))
    assert all(t.corrected for t in txns)
    assert [t.id for t in txns] == [t.id for t in parsed]
    salary = txns[1]
    assert salary.direction is Direction.INCOME
    assert salary.category == "Salary"
    assert any("swapped" in w for w in report.warnings)


def test_targeted_correction_flips_the_misread_row():
    rows = [list(r) for r in BALANCED_ROWS]
    rows[3][4], rows[3][5] = "", "800.00"  # POS purchase read from the credit column
    parsed = _classified(rows)

    txns, report = reconcile(parsed, SUMMARY)

    assert report.is_valid
    assert not report.global_swap_applied
    assert report.corrections_applied == 1
    assert [t.corrected for t in txns] == [False, False, False, True, False]
    assert txns[3].direction is Direction.EXPENSE
    assert txns[3].income_source is None


def test_correction_cap_is_respected():
    rows = [list(r) for r in BALANCED_ROWS]
    rows[3][4], rows[3][5] = "", "800.00"

    _, report = reconcile(_classified(rows), SUMMARY, settings=ParserSettings(max_corrections=0))

    assert not report.is_valid
    assert report.corrections_applied == 0
    assert any(e.startswith("Debit mismatch") for e in report.errors)


def test_small_mismatch_is_reported_not_corrected():
    rows = [list(r) for r in BALANCED_ROWS]
    rows[0][4] = "440.00"

    txns, report = reconcile(_classified(rows), SUMMARY)

    assert not report.is_valid
    assert report.corrections_applied == 0
    assert report.errors == (
        "Debit mismatch: Expected ₹2500.00, got ₹2490.00 (difference: ₹10.00)",
    )
    assert not any(t.corrected for t in txns)
    # The printed running balance no longer matches the misread amount.
    assert any(w.startswith("Running balance mismatch on 1 row(s)") for w in report.warnings)


def test_missing_summary_makes_result_invalid():
    txns, report = reconcile(_classified(BALANCED_ROWS), StatementSummary())

    assert not report.is_valid
    assert report.errors == (SUMMARY_NOT_FOUND,)
    assert len(txns) == 5


def test_closing_balance_drift_is_a_warning():
    summary = StatementSummary(
        opening_balance=Decimal("10000.00"),
        total_debit=Decimal("2500.00"),
        total_credit=Decimal("3000.00"),
        closing_balance=Decimal("10600.00"),
        found=True,
    )
    assert check_closing_balance(summary).startswith("Balance calculation off by ₹100.00")

    _, report = reconcile(_classified(BALANCED_ROWS), summary)
    assert report.is_valid
    assert any(w.startswith("Balance calculation off") for w in report.warnings)


def test_running_balance_without_summary_starts_from_first_row():
    txns = _classified(BALANCED_ROWS)
    assert check_running_balance(txns, StatementSummary()) is None

    rows = [list(r) for r in BALANCED_ROWS]
    rows[2][6] = "11000.00"
    warning = check_running_balance(_classified(rows), StatementSummary())
    # A wrong printed balance breaks its own row and the one replayed from it.
    assert warning is not None
    assert warning.startswith("Running balance mismatch on 2 row(s)")


def test_flip_must_beat_min_improvement():
    rows = [
        ["01-Jan-2025", "01-Jan-2025", "UPI-CHAI POINT-1234567890", "", "5.00", "", ""],
        ["02-Jan-2025", "02-Jan-2025", "SALARY CREDIT JAN 2025", "", "", "8.00", ""],
        # A 0.50 fee read from the credit column; flipping it gains exactly 1.00.
        ["03-Jan-2025", "03-Jan-2025", "SMS ALERT CHARGES", "", "", "0.50", ""],
    ]
    summary = StatementSummary(
        opening_balance=Decimal("100.00"),
        total_debit=Decimal("5.50"),
        total_credit=Decimal("8.00"),
        closing_balance=Decimal("102.50"),
        found=True,
    )

    txns, report = reconcile(_classified(rows), summary)

    assert not report.global_swap_applied
    assert report.corrections_applied == 0
    assert not report.is_valid
    assert not any(t.corrected for t in txns)

    lenient = ParserSettings(min_improvement=Decimal("0.50"))
    txns, report = reconcile(_classified(rows), summary, settings=lenient)

    assert report.is_valid
    assert report.corrections_applied == 1
    assert [t.corrected for t in txns] == [False, False, True]


def test_targeted_correction_visits_largest_amount_first():
    rows = [list(r) for r in BALANCED_ROWS]
    rows[3][4], rows[3][5] = "", "800.00"
    # Flipping the refund would also shrink the gap, but it sorts after the 800.00 row.
    refund = ["02-Jan-2025", "02-Jan-2025", "REFUND AMAZON ORDER 12345", "", "", "300.00", ""]
    rows.insert(1, refund)
    summary = StatementSummary(
        opening_balance=Decimal("10000.00"),
        total_debit=Decimal("2500.00"),
        total_credit=Decimal("3300.00"),
        closing_balance=Decimal("10800.00"),
        found=True,
    )

    txns, report = reconcile(_classified(rows), summary)

    assert report.is_valid
    assert not report.global_swap_applied
    assert report.corrections_applied == 1
    assert [t.corrected for t in txns] == [False, False, False, False, True, False]
    assert txns[1].direction is Direction.INCOME
    assert txns[4].direction is Direction.EXPENSE
