"""Bounded, order-preserving parallel map plus cooperative cancellation.

Used for PDF page extraction: each chunk of pages is decoded by an independent
worker and results are stitched back in input order, so the merged text is
identical to a sequential run.

- ``p_map``: map an iterable through a mapper with at most ``concurrency``
  calls in flight. Fails fast by default; with ``stop_on_error=False`` waits
  for everything and raises an ``ExceptionGroup`` of all failures.
- ``CancellationToken``: a thread-safe flag checked between chunks and rows.
  ``raise_if_cancelled`` raises :class:`~statement_ingest.errors.ParseCancelled`.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import TypeVar

from .errors import ParseCancelled

InT = TypeVar("InT")
OutT = TypeVar("OutT")


class CancellationToken:
    """Cooperative cancellation flag shared between a caller and a parse."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise ParseCancelled("Statement parse was cancelled")


def check_cancelled(token: CancellationToken | None) -> None:
    """Raise ``ParseCancelled`` when ``token`` is set; ``None`` never cancels."""

    if token is not None:
        token.raise_if_cancelled()


def p_map(
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
    stop_on_error: bool = True,
    cancel: CancellationToken | None = None,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with a bounded concurrency limit.

    - The returned list preserves the input order.
    - When ``stop_on_error`` is True (default), the first mapper error is
      propagated immediately and any not-yet-started work is cancelled.
    - When ``stop_on_error`` is False, the function waits for all mappers to
      finish and then raises an ``ExceptionGroup`` if any failed.
    - ``cancel`` is checked before each submission; once set, queued work is
      dropped and ``ParseCancelled`` is raised after in-flight calls return.
    """

    if not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    it = enumerate(iterable)

    results: dict[int, OutT] = {}
    errors: list[Exception] = []
    submitted = 0

    future_to_idx: dict[Future, int] = {}

    def _submit(pool: ThreadPoolExecutor) -> Future | None:
        nonlocal submitted
        if cancel is not None and cancel.cancelled:
            return None
        try:
            idx, item = next(it)
        except StopIteration:
            return None
        fut = pool.submit(mapper, item)
        future_to_idx[fut] = idx
        submitted += 1
        return fut

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        # Prime the window
        active: set[Future] = set()
        for _ in range(concurrency):
            fut = _submit(pool)
            if fut is None:
                break
            active.add(fut)

        while active:
            done, active = wait(active, return_when=FIRST_COMPLETED)

            for fut in done:
                idx = future_to_idx.pop(fut)
                try:
                    results[idx] = fut.result()
                except Exception as e:  # noqa: BLE001
                    if stop_on_error:
                        try:
                            pool.shutdown(wait=False, cancel_futures=True)
                        finally:
                            raise
                    errors.append(e)

            # Top up: one new submission per completion.
            for _ in range(len(done)):
                fut = _submit(pool)
                if fut is None:
                    break
                active.add(fut)

    check_cancelled(cancel)

    if errors:
        raise ExceptionGroup("p_map: one or more mapper calls failed", errors)

    return [results[i] for i in range(submitted)]


__all__ = ["CancellationToken", "check_cancelled", "p_map"]
