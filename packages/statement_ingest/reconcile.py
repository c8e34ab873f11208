"""Reconcile parsed transactions against the statement's printed summary.

The bank-computed totals are ground truth; per-row classification is a
heuristic. When the aggregates disagree by more than the relative band, two
corrections are attempted in order:

1. Global swap: when inverting every direction brings *both* aggregates
   strictly closer to their targets, the debit/credit columns were read the
   wrong way round and every transaction is flipped.
2. Targeted correction: otherwise, walk transactions largest amount first
   (ties by ordinal) and flip any one whose flip reduces the combined error
   ``|debit - target_debit| + |credit - target_credit|`` by more than
   ``min_improvement``. Stops once within tolerance or after
   ``max_corrections`` flips. This is a greedy best-effort reduction with no
   optimality guarantee; the number of flips is reported.

``reconcile`` never raises: every outcome is a :class:`ValidationReport`.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from .classify import flip_direction
from .logging_setup import get_logger
from .models import Direction, StatementSummary, Transaction, ValidationReport, totals
from .normalizers import format_amount
from .settings import DEFAULT_SETTINGS, ParserSettings

_logger = get_logger("statement_ingest.reconcile")

SUMMARY_NOT_FOUND = "Statement summary not found; totals could not be verified"


def _rupees(d: Decimal) -> str:
    return f"₹{format_amount(d)}"


def _mismatch(label: str, expected: Decimal, actual: Decimal) -> str:
    return (
        f"{label} mismatch: Expected {_rupees(expected)}, got {_rupees(actual)} "
        f"(difference: {_rupees(abs(expected - actual))})"
    )


def _combined_error(
    debit: Decimal, credit: Decimal, summary: StatementSummary
) -> Decimal:
    return abs(debit - summary.total_debit) + abs(credit - summary.total_credit)


def _within(debit: Decimal, credit: Decimal, summary: StatementSummary, tol: Decimal) -> bool:
    return (
        abs(debit - summary.total_debit) <= tol and abs(credit - summary.total_credit) <= tol
    )


def _global_swap_applies(debit: Decimal, credit: Decimal, summary: StatementSummary) -> bool:
    return abs(credit - summary.total_debit) < abs(debit - summary.total_debit) and abs(
        debit - summary.total_credit
    ) < abs(credit - summary.total_credit)


def _targeted_corrections(
    txns: list[Transaction], summary: StatementSummary, settings: ParserSettings
) -> int:
    """Greedily flip single transactions in place; return the number flipped."""

    debit, credit = totals(txns)
    error = _combined_error(debit, credit, summary)
    order = sorted(range(len(txns)), key=lambda i: (-txns[i].amount, txns[i].ordinal))
    flips = 0
    for i in order:
        if flips >= settings.max_corrections:
            _logger.info("Correction cap of %d reached", settings.max_corrections)
            break
        if _within(debit, credit, summary, settings.absolute_tolerance):
            break

        t = txns[i]
        if t.direction is Direction.EXPENSE:
            new_debit, new_credit = debit - t.amount, credit + t.amount
        else:
            new_debit, new_credit = debit + t.amount, credit - t.amount
        new_error = _combined_error(new_debit, new_credit, summary)
        if error - new_error <= settings.min_improvement:
            continue

        txns[i] = flip_direction(t)
        debit, credit, error = new_debit, new_credit, new_error
        flips += 1
        _logger.info(
            "Flipped %s (%s) from %s to %s; combined error now %s",
            t.id,
            format_amount(t.amount),
            t.direction,
            txns[i].direction,
            format_amount(error),
        )
    return flips


def check_closing_balance(
    summary: StatementSummary, *, settings: ParserSettings = DEFAULT_SETTINGS
) -> str | None:
    """Return a warning when opening + credit - debit drifts from closing."""

    if not summary.found:
        return None
    expected = summary.expected_closing
    drift = abs(expected - summary.closing_balance)
    if drift <= settings.absolute_tolerance:
        return None
    return (
        f"Balance calculation off by {_rupees(drift)}: opening + credit - debit = "
        f"{_rupees(expected)}, statement closing balance is {_rupees(summary.closing_balance)}"
    )


def check_running_balance(
    transactions: Sequence[Transaction],
    summary: StatementSummary,
    *,
    settings: ParserSettings = DEFAULT_SETTINGS,
) -> str | None:
    """Replay printed running balances and describe the first mismatch.

    Starts from the summary's opening balance when a summary was found, else
    from the first printed balance. After a mismatch the replay resyncs to the
    printed balance so a single bad row is counted once. Directions are never
    altered here.
    """

    balance: Decimal | None = summary.opening_balance if summary.found else None
    mismatches = 0
    first: str | None = None
    for t in transactions:
        delta = t.amount if t.direction is Direction.INCOME else -t.amount
        if balance is None:
            balance = t.post_balance
            continue
        expected = balance + delta
        if t.post_balance is None:
            balance = expected
            continue
        if abs(expected - t.post_balance) > settings.absolute_tolerance:
            mismatches += 1
            if first is None:
                first = (
                    f"first at {t.date.isoformat()} ({t.id}): expected {_rupees(expected)}, "
                    f"statement shows {_rupees(t.post_balance)}"
                )
        balance = t.post_balance

    if not mismatches:
        return None
    return f"Running balance mismatch on {mismatches} row(s); {first}"


def reconcile(
    transactions: Sequence[Transaction],
    summary: StatementSummary,
    *,
    settings: ParserSettings = DEFAULT_SETTINGS,
) -> tuple[list[Transaction], ValidationReport]:
    """Validate (and when needed correct) ``transactions`` against ``summary``.

    Returns the possibly corrected transactions, in input order, and the
    report. ``duplicate_count`` and ``skipped_rows`` are left at zero for the
    orchestrator to fill in.
    """

    txns = list(transactions)
    errors: list[str] = []
    warnings: list[str] = []
    tol = settings.absolute_tolerance
    swapped = False
    flips = 0

    if not summary.found:
        errors.append(SUMMARY_NOT_FOUND)
    else:
        debit, credit = totals(txns)
        has_target = summary.total_debit != 0 or summary.total_credit != 0
        band = max(summary.total_debit * settings.relative_tolerance, tol)
        beyond_band = (
            abs(debit - summary.total_debit) > band or abs(credit - summary.total_credit) > band
        )
        if has_target and beyond_band:
            if _global_swap_applies(debit, credit, summary):
                _logger.info(
                    "Debit/credit appear swapped (debit %s, credit %s vs stated %s/%s); "
                    "flipping all %d transactions",
                    format_amount(debit),
                    format_amount(credit),
                    format_amount(summary.total_debit),
                    format_amount(summary.total_credit),
                    len(txns),
                )
                txns = [flip_direction(t) for t in txns]
                for t in txns:
                    _logger.info("Flipped %s (%s) to %s", t.id, format_amount(t.amount), t.direction)
                swapped = True
                warnings.append(
                    f"Debit and credit columns appeared swapped; flipped all {len(txns)} "
                    "transaction directions"
                )
            else:
                flips = _targeted_corrections(txns, summary, settings)
                if flips:
                    warnings.append(
                        f"Corrected the direction of {flips} transaction(s) to match "
                        "statement totals"
                    )

    debit, credit = totals(txns)
    if summary.found:
        if abs(debit - summary.total_debit) > tol:
            errors.append(_mismatch("Debit", summary.total_debit, debit))
        if abs(credit - summary.total_credit) > tol:
            errors.append(_mismatch("Credit", summary.total_credit, credit))
        closing = check_closing_balance(summary, settings=settings)
        if closing:
            warnings.append(closing)

    running = check_running_balance(txns, summary, settings=settings)
    if running:
        warnings.append(running)

    _logger.info(
        "Reconciled %d transactions: debit %s, credit %s (stated %s/%s), valid=%s",
        len(txns),
        format_amount(debit),
        format_amount(credit),
        format_amount(summary.total_debit),
        format_amount(summary.total_credit),
        not errors,
    )
    report = ValidationReport(
        is_valid=not errors,
        errors=tuple(errors),
        warnings=tuple(warnings),
        computed_debit=debit,
        computed_credit=credit,
        global_swap_applied=swapped,
        corrections_applied=flips,
    )
    return txns, report


__all__ = [
    "SUMMARY_NOT_FOUND",
    "check_closing_balance",
    "check_running_balance",
    "reconcile",
]
