# ruff: noqa: I001
"""
Alembic environment for the ledger schema in ``db``.

URL resolution: ``DATABASE_URL`` (after loading the nearest ``.env``), then
``sqlalchemy.url`` from the ini file. Autogenerate only considers ``ledger_*``
tables so the ledger can live in a database shared with other schemas.
SQLite runs in batch mode because it cannot ALTER most constraints in place.
"""

from __future__ import annotations

import os
from logging.config import fileConfig
from typing import Any

from alembic import context
from sqlalchemy import engine_from_config, make_url, pool
from dotenv import load_dotenv, find_dotenv

import db

_LEDGER_PREFIX = "ledger_"

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

load_dotenv(find_dotenv(usecwd=True), override=False)

url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
if not url:
    raise RuntimeError(
        "No database configured for ledger migrations: set DATABASE_URL "
        "or 'sqlalchemy.url' in the alembic ini file"
    )
config.set_main_option("sqlalchemy.url", url)


def _include_object(obj: Any, name: str | None, type_: str, reflected: bool, compare_to: Any) -> bool:
    if type_ == "table":
        return bool(name and name.startswith(_LEDGER_PREFIX))
    return True


def _context_options(dialect_name: str) -> dict[str, Any]:
    return {
        "target_metadata": db.metadata,
        "include_object": _include_object,
        "compare_type": True,
        "render_as_batch": dialect_name == "sqlite",
    }


def run_offline() -> None:
    """Emit SQL for the ledger migrations without connecting."""

    context.configure(
        url=url,
        literal_binds=True,
        **_context_options(make_url(url).get_backend_name()),
    )
    with context.begin_transaction():
        context.run_migrations()


def run_online() -> None:
    engine = engine_from_config(
        config.get_section(config.config_ini_section) or {"sqlalchemy.url": url},
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        context.configure(connection=connection, **_context_options(connection.dialect.name))
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_offline()
else:
    run_online()
