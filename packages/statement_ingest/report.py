"""Breakdowns over parsed transactions for summaries and the CLI.

Nature drives financial semantics: ``spending_total`` counts only expenses
whose nature is CONSUMPTION or UNCATEGORIZED, so ATM withdrawals, transfers
between accounts and investment purchases never inflate "spending".
"""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable
from decimal import Decimal

from .models import Direction, Nature, Transaction

SPENDING_NATURES: frozenset[Nature] = frozenset({Nature.CONSUMPTION, Nature.UNCATEGORIZED})


def _group_totals[K: Hashable](
    transactions: Iterable[Transaction],
    key: Callable[[Transaction], K],
    direction: Direction | None,
) -> dict[K, Decimal]:
    out: dict[K, Decimal] = {}
    for t in transactions:
        if direction is not None and t.direction is not direction:
            continue
        k = key(t)
        out[k] = out.get(k, Decimal("0.00")) + t.amount
    return dict(sorted(out.items(), key=lambda kv: (-kv[1], str(kv[0]))))


def totals_by_nature(
    transactions: Iterable[Transaction], *, direction: Direction | None = None
) -> dict[Nature, Decimal]:
    """Sum amounts per nature, largest first."""

    return _group_totals(transactions, lambda t: t.nature, direction)


def totals_by_payment_method(
    transactions: Iterable[Transaction], *, direction: Direction | None = None
) -> dict[str, Decimal]:
    return _group_totals(transactions, lambda t: str(t.payment_method), direction)


def totals_by_category(
    transactions: Iterable[Transaction], *, direction: Direction | None = None
) -> dict[str, Decimal]:
    return _group_totals(transactions, lambda t: t.category, direction)


def spending_total(transactions: Iterable[Transaction], *, include_duplicates: bool = False) -> Decimal:
    """Sum of consumption-like expenses; flagged duplicates excluded by default."""

    total = Decimal("0.00")
    for t in transactions:
        if t.direction is not Direction.EXPENSE or t.nature not in SPENDING_NATURES:
            continue
        if t.is_duplicate and not include_duplicates:
            continue
        total += t.amount
    return total


__all__ = [
    "SPENDING_NATURES",
    "totals_by_nature",
    "totals_by_payment_method",
    "totals_by_category",
    "spending_total",
]
