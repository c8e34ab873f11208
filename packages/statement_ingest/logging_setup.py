"""Logging for the ``statement_ingest`` package.

Library modules only ever call ``get_logger("statement_ingest.<module>")``.
Until an entrypoint calls ``configure_logging`` the package logger carries a
``NullHandler``, so importing the parser into another application prints
nothing. The CLI configures logging once, from its root callback.

pdfplumber delegates to pdfminer, which logs every parsed PDF object at DEBUG.
``configure_logging`` caps those loggers at WARNING so ``--log-level DEBUG``
shows skipped rows and corrections instead of PDF internals.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "statement_ingest"
_LEVEL_ENV = "STATEMENT_INGEST_LOG_LEVEL"
_DEFAULT_FMT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
_NOISY_LOGGERS = ("pdfminer", "pdfplumber")
_CONFIGURED = False


def resolve_level(level: int | str | None) -> int:
    """Turn an int, a level name or a numeric string into a logging level.

    ``None`` falls back to ``STATEMENT_INGEST_LOG_LEVEL`` and then INFO; an
    unknown name also means INFO.
    """

    if level is None:
        level = os.getenv(_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    mapped = logging.getLevelNamesMapping().get(name)
    return mapped if mapped is not None else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Attach one stream handler to the package logger; later calls are no-ops.

    Parameters
    ----------
    level:
        See :func:`resolve_level`.
    fmt:
        Record format; defaults to time, level, logger name and message.
    stream:
        Defaults to stderr so ``parse --json`` output on stdout stays valid JSON.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    resolved = resolve_level(level)
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in [h for h in logger.handlers if isinstance(h, logging.NullHandler)]:
        logger.removeHandler(h)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FMT))
    logger.addHandler(handler)
    logger.setLevel(resolved)
    logger.propagate = False

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.WARNING))

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger", "resolve_level"]
