"""Advisory duplicate flagging for parsed transactions.

Bank re-exports and overlapping statement periods produce the same movement
twice. Silently dropping one would also drop legitimate repeats (two identical
coffees), so this module only sets ``is_duplicate``/``duplicate_of_id`` and
leaves the include/exclude decision to the caller.

Public surface:
- ``similarity``: token-set Jaccard similarity of two narrations.
- ``are_possible_duplicates``: the four-condition pair test.
- ``detect_duplicates``: flag a batch against itself and prior history.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Sequence

from .classify import normalize_description
from .logging_setup import get_logger
from .models import Transaction
from .settings import DEFAULT_SETTINGS, ParserSettings

_logger = get_logger("statement_ingest.duplicates")


def _tokens(normalized: str, min_length: int) -> frozenset[str]:
    return frozenset(tok for tok in normalized.split() if len(tok) >= min_length)


def similarity(a: str, b: str, *, min_token_length: int = 3) -> float:
    """Return the Jaccard similarity of the token sets of ``a`` and ``b``.

    Both strings are normalized first (rail prefixes, long numeric references
    and UPI handles removed) and tokens shorter than ``min_token_length`` are
    dropped. A side with no remaining tokens scores ``0.0``, so reference-only
    narrations never look alike; otherwise identical normalized strings score
    ``1.0``.
    """

    na = normalize_description(a)
    nb = normalize_description(b)
    ta = _tokens(na, min_token_length)
    tb = _tokens(nb, min_token_length)
    if not ta or not tb:
        return 0.0
    if na == nb:
        return 1.0
    return len(ta & tb) / len(ta | tb)


def are_possible_duplicates(
    a: Transaction, b: Transaction, *, settings: ParserSettings = DEFAULT_SETTINGS
) -> bool:
    """Return True when all four duplicate conditions hold for ``a`` and ``b``.

    Same direction, amounts within ``duplicate_amount_tolerance``, dates within
    ``duplicate_day_window`` days, and description similarity strictly above
    ``duplicate_similarity``. Cheap checks run first.
    """

    if a.direction is not b.direction:
        return False
    if abs(a.amount - b.amount) > settings.duplicate_amount_tolerance:
        return False
    if abs((a.date - b.date).days) > settings.duplicate_day_window:
        return False
    score = similarity(
        a.raw_description,
        b.raw_description,
        min_token_length=settings.min_token_length,
    )
    return score > settings.duplicate_similarity


def detect_duplicates(
    transactions: Sequence[Transaction],
    prior: Iterable[Transaction] = (),
    *,
    settings: ParserSettings = DEFAULT_SETTINGS,
) -> list[Transaction]:
    """Flag likely duplicates without removing or reordering anything.

    Each transaction is compared against the earlier transactions of the batch
    first, then against ``prior`` (previously stored history). The first match
    wins and is recorded in ``duplicate_of_id``. The returned list has the same
    length and order as ``transactions``.
    """

    history = list(prior)
    out: list[Transaction] = []
    for i, current in enumerate(transactions):
        match: Transaction | None = None
        for earlier in transactions[:i]:
            if are_possible_duplicates(current, earlier, settings=settings):
                match = earlier
                break
        if match is None:
            for old in history:
                if are_possible_duplicates(current, old, settings=settings):
                    match = old
                    break

        if match is None:
            out.append(current)
            continue
        _logger.debug("Possible duplicate %s of %s (%s)", current.id, match.id, current.amount)
        out.append(dataclasses.replace(current, is_duplicate=True, duplicate_of_id=match.id))

    flagged = sum(1 for t in out if t.is_duplicate)
    if flagged:
        _logger.info("Flagged %d possible duplicate transaction(s)", flagged)
    return out


__all__ = ["similarity", "are_possible_duplicates", "detect_duplicates"]
