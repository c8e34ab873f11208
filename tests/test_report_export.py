from __future__ import annotations

import dataclasses
import json
from decimal import Decimal

from statement_ingest import parse
from statement_ingest.export import SCHEMA_VERSION, to_document, to_json
from statement_ingest.models import Direction, Nature
from statement_ingest.report import (
    spending_total,
    totals_by_category,
    totals_by_nature,
    totals_by_payment_method,
)
from tests.helpers.statements import statement_grid, to_xlsx_bytes


def _result():
    return parse(to_xlsx_bytes(statement_grid()), "statement.xlsx")


def test_totals_by_nature_sorted_largest_first():
    txns = _result().transactions

    expenses = totals_by_nature(txns, direction=Direction.EXPENSE)
    assert list(expenses.values()) == sorted(expenses.values(), reverse=True)
    assert expenses[Nature.CASH_OUT] == Decimal("1000.00")
    # Zomato and the Amazon POS purchase at least.
    assert expenses[Nature.CONSUMPTION] >= Decimal("1250.00")
    assert sum(expenses.values()) == Decimal("2500.00")

    assert totals_by_nature(txns, direction=Direction.INCOME) == {Nature.SALARY: Decimal("3000.00")}


def test_totals_by_category_and_payment_method():
    txns = _result().transactions

    by_category = totals_by_category(txns, direction=Direction.EXPENSE)
    assert by_category["Cash Withdrawal"] == Decimal("1000.00")
    assert by_category["Food & Dining"] == Decimal("450.00")

    by_method = totals_by_payment_method(txns)
    assert by_method["UPI"] == Decimal("450.00")
    assert by_method["ATM"] == Decimal("1000.00")
    assert sum(by_method.values()) == Decimal("5500.00")


def test_spending_excludes_cash_and_transfers():
    txns = _result().transactions
    spend = spending_total(txns)

    consumption = sum(
        (
            t.amount
            for t in txns
            if t.direction is Direction.EXPENSE
            and t.nature in (Nature.CONSUMPTION, Nature.UNCATEGORIZED)
        ),
        Decimal("0.00"),
    )
    assert spend == consumption
    assert spend >= Decimal("1250.00")
    # ATM cash never counts as spending.
    assert spend <= Decimal("1500.00")


def test_spending_skips_flagged_duplicates_by_default():
    txns = list(_result().transactions)
    zomato = txns[0]
    txns.append(dataclasses.replace(zomato, id="copy", is_duplicate=True, duplicate_of_id=zomato.id))

    assert spending_total(txns) == spending_total(txns[:-1])
    assert spending_total(txns, include_duplicates=True) == spending_total(txns[:-1]) + zomato.amount


def test_json_export_uses_string_amounts():
    result = _result()
    doc = json.loads(to_json(result))

    assert doc["schema_version"] == SCHEMA_VERSION == 1
    assert doc["source_format"] == "spreadsheet"
    assert doc["summary"]["total_debit"] == "2500.00"
    assert doc["validation"]["is_valid"] is True
    assert doc["validation"]["computed_credit"] == "3000.00"

    first = doc["transactions"][0]
    assert first["amount"] == "450.00"
    assert first["post_balance"] == "9550.00"
    assert first["date"] == "2025-01-01"
    assert first["direction"] == "EXPENSE"
    assert first["income_source"] is None
    assert len(doc["transactions"]) == 5


def test_json_export_keeps_non_ascii():
    result = _result()
    invalid = dataclasses.replace(
        result,
        validation=dataclasses.replace(result.validation, errors=("Debit mismatch: ₹10.00",)),
    )
    text = to_json(invalid, indent=None)
    assert "₹10.00" in text
    assert "\n" not in text


def test_document_model_round_trips_through_pydantic():
    doc = to_document(_result())
    again = type(doc).model_validate_json(doc.model_dump_json())
    assert again == doc
