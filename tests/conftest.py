"""Pytest configuration for test isolation.

Parser thresholds can be overridden through ``SI_*`` environment variables
and the database client caches one engine per process. Either would leak
state between tests (a developer's shell exporting ``SI_MAX_CORRECTIONS`` or
a previous test's SQLite URL), so an autouse fixture clears both.
"""

# ruff: noqa: E402, I001
from __future__ import annotations

import os
import sys
from collections.abc import Iterator
from pathlib import Path

# Make the workspace `packages/` and `libs/db/src` dirs importable, plus the repo
# root so `tests.helpers` resolves.
_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in (str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT))
    if p not in sys.path
]

import pytest

from db.client import reset_engine


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Drop ``SI_*`` overrides and ``DATABASE_URL`` and reset the shared engine."""

    for name in list(os.environ):
        if name.startswith("SI_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    reset_engine()
    yield
    reset_engine()
