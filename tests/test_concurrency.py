from __future__ import annotations

import threading
import time

import pytest

from statement_ingest.concurrency import CancellationToken, check_cancelled, p_map
from statement_ingest.errors import ParseCancelled


def test_p_map_preserves_input_order():
    def slow_square(x: int) -> int:
        # Later items finish first.
        time.sleep(0.01 * (5 - x))
        return x * x

    assert p_map(range(5), slow_square, concurrency=3) == [0, 1, 4, 9, 16]


def test_p_map_bounds_in_flight_calls():
    lock = threading.Lock()
    in_flight = 0
    peak = 0

    def work(x: int) -> int:
        nonlocal in_flight, peak
        with lock:
            in_flight += 1
            peak = max(peak, in_flight)
        time.sleep(0.01)
        with lock:
            in_flight -= 1
        return x

    assert p_map(range(12), work, concurrency=2) == list(range(12))
    assert 1 <= peak <= 2


def test_p_map_empty_input():
    assert p_map([], lambda x: x, concurrency=4) == []


@pytest.mark.parametrize("bad", [0, -1, 1.5])
def test_p_map_rejects_bad_concurrency(bad):
    with pytest.raises(ValueError):
        p_map([1], lambda x: x, concurrency=bad)


def test_p_map_fails_fast_by_default():
    def boom(x: int) -> int:
        if x == 1:
            raise RuntimeError("page 1 is corrupt")
        return x

    with pytest.raises(RuntimeError, match="page 1"):
        p_map(range(3), boom, concurrency=1)


def test_p_map_collects_every_failure_when_not_stopping():
    def boom(x: int) -> int:
        if x % 2:
            raise KeyError(x)
        return x

    with pytest.raises(ExceptionGroup) as excinfo:
        p_map(range(6), boom, concurrency=2, stop_on_error=False)
    assert len(excinfo.value.exceptions) == 3
    assert all(isinstance(e, KeyError) for e in excinfo.value.exceptions)


def test_p_map_stops_submitting_once_cancelled():
    token = CancellationToken()
    seen: list[int] = []

    def work(x: int) -> int:
        seen.append(x)
        if x == 0:
            token.cancel()
        return x

    with pytest.raises(ParseCancelled):
        p_map(range(10), work, concurrency=1, cancel=token)
    assert seen == [0]


def test_cancellation_token():
    token = CancellationToken()
    assert not token.cancelled
    check_cancelled(token)
    check_cancelled(None)

    token.cancel()
    assert token.cancelled
    with pytest.raises(ParseCancelled):
        check_cancelled(token)
