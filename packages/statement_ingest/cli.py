# ruff: noqa: I001
"""CLI for the ``statement_ingest`` package.

This module exposes callable command handlers (``cmd_parse``, ``cmd_import``)
and a Typer-based console interface. Environment variables (``DATABASE_URL``
and the ``SI_*`` parser thresholds) are loaded from a local ``.env`` using
``python-dotenv`` before delegating to command logic. Business logic lives in
``statement_ingest.parser`` and ``statement_ingest.persistence``.

Exit codes: ``0`` success, ``1`` fatal error (message on stderr), ``2`` the
statement parsed but failed validation (``parse``) or was refused because of
it (``import``).
"""

from __future__ import annotations

import sys
from decimal import Decimal
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table
from typer.models import OptionInfo

from .errors import StatementError
from .logging_setup import configure_logging, get_logger
from .models import Direction, ParseResult
from .normalizers import format_amount
from .report import spending_total, totals_by_nature
from .settings import ParserSettings

_logger = get_logger("statement_ingest.cli")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID = 2


# ---- Rendering helpers --------------------------------------------------------


def _rupees(v: Decimal) -> str:
    return f"₹{format_amount(v)}"


def _render_summary(console: Console, result: ParseResult) -> None:
    s = result.summary
    v = result.validation

    header = f"[bold]{result.source_format}[/bold] via {result.strategy}"
    if result.sheet_name:
        header += f" (sheet: {result.sheet_name})"
    console.print(header)
    if s.account_number or s.customer_name or s.statement_period:
        console.print(
            " ".join(
                part
                for part in (
                    f"Account {s.account_number}" if s.account_number else "",
                    s.customer_name,
                    s.statement_period,
                )
                if part
            )
        )

    totals = Table(title="Totals", show_lines=False)
    totals.add_column("")
    totals.add_column("Stated", justify="right")
    totals.add_column("Computed", justify="right")
    stated = s.found
    totals.add_row(
        "Debit", _rupees(s.total_debit) if stated else "-", _rupees(v.computed_debit)
    )
    totals.add_row(
        "Credit", _rupees(s.total_credit) if stated else "-", _rupees(v.computed_credit)
    )
    if stated:
        totals.add_row("Opening", _rupees(s.opening_balance), "")
        totals.add_row("Closing", _rupees(s.closing_balance), _rupees(s.expected_closing))
    console.print(totals)

    status = "[green]VALID[/green]" if v.is_valid else "[red]INVALID[/red]"
    console.print(
        f"{status}  transactions={len(result.transactions)} skipped={v.skipped_rows} "
        f"corrections={v.corrections_applied} global_swap={v.global_swap_applied} "
        f"duplicates={v.duplicate_count}"
    )
    for err in v.errors:
        console.print(f"[red]error[/red]: {err}", highlight=False)
    for warn in v.warnings:
        console.print(f"[yellow]warning[/yellow]: {warn}", highlight=False)

    natures = Table(title="Expenses by nature")
    natures.add_column("Nature")
    natures.add_column("Amount", justify="right")
    for nature, amount in totals_by_nature(
        result.transactions, direction=Direction.EXPENSE
    ).items():
        natures.add_row(str(nature), _rupees(amount))
    console.print(natures)
    console.print(f"Spending (consumption only): {_rupees(spending_total(result.transactions))}")


def _render_transactions(console: Console, result: ParseResult, *, only_duplicates: bool) -> None:
    table = Table(title="Possible duplicates" if only_duplicates else "Transactions")
    table.add_column("#", justify="right")
    table.add_column("Date")
    table.add_column("Description", overflow="fold")
    table.add_column("Category")
    table.add_column("Nature")
    table.add_column("Method")
    table.add_column("Debit", justify="right")
    table.add_column("Credit", justify="right")
    table.add_column("Flags")
    for t in result.transactions:
        if only_duplicates and not t.is_duplicate:
            continue
        flags = []
        if t.corrected:
            flags.append("corrected")
        if t.is_duplicate:
            flags.append(f"dup of {t.duplicate_of_id}")
        is_debit = t.direction is Direction.EXPENSE
        table.add_row(
            str(t.ordinal),
            t.date.isoformat(),
            t.description,
            t.category,
            str(t.nature),
            str(t.payment_method),
            format_amount(t.amount) if is_debit else "",
            "" if is_debit else format_amount(t.amount),
            ", ".join(flags),
        )
    console.print(table)


# ---- Command handlers -----------------------------------------------------------


def _load_settings() -> ParserSettings | None:
    try:
        return ParserSettings.from_env()
    except ValidationError as e:
        print(f"Error: invalid SI_* parser settings: {e}", file=sys.stderr)
        return None


def _read(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        print(f"Error: File not found: {path}", file=sys.stderr)
    except PermissionError:
        print(f"Error: Permission denied: {path}", file=sys.stderr)
    except IsADirectoryError:
        print(f"Error: Not a file: {path}", file=sys.stderr)
    return None


def cmd_parse(path: str, *, as_json: bool = False, show_duplicates: bool = False) -> int:
    """Parse a statement file and print a summary (or the JSON document).

    Errors are written to stderr and the function returns ``1``. A statement
    that parses but fails validation returns ``2`` after printing its report.
    """

    from .export import to_json
    from .parser import parse

    settings = _load_settings()
    if settings is None:
        return EXIT_ERROR
    p = Path(path)
    data = _read(p)
    if data is None:
        return EXIT_ERROR

    try:
        result = parse(data, p.name, settings=settings)
    except StatementError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    if as_json:
        typer.echo(to_json(result))
    else:
        console = Console()
        _render_summary(console, result)
        _render_transactions(console, result, only_duplicates=False)
        if show_duplicates and result.validation.duplicate_count:
            _render_transactions(console, result, only_duplicates=True)

    return EXIT_OK if result.validation.is_valid else EXIT_INVALID


def cmd_import(
    path: str,
    *,
    database_url: str | None = None,
    include_duplicates: bool = False,
    allow_invalid: bool = False,
) -> int:
    """Parse a statement against stored history and upsert it.

    Prior transactions are loaded in one short transaction, parsing happens
    outside any DB transaction, and the upsert runs in a second one.
    """

    from db.client import redacted_url, session_scope
    from .parser import parse
    from .persistence import load_prior_transactions, upsert_transactions

    settings = _load_settings()
    if settings is None:
        return EXIT_ERROR
    p = Path(path)
    data = _read(p)
    if data is None:
        return EXIT_ERROR

    try:
        with session_scope(database_url=database_url) as session:
            url = session.get_bind().url.render_as_string(hide_password=False)
            _logger.info("Loading prior transactions from %s", redacted_url(url))
            prior = load_prior_transactions(session)
    except Exception as e:  # noqa: BLE001
        print(f"Error: failed to load prior transactions: {e}", file=sys.stderr)
        return EXIT_ERROR

    try:
        result = parse(data, p.name, prior=prior, settings=settings)
    except StatementError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_ERROR

    if not result.validation.is_valid and not allow_invalid:
        for err in result.validation.errors:
            print(f"Error: {err}", file=sys.stderr)
        print(
            "Error: statement failed validation; rerun with --allow-invalid to import anyway",
            file=sys.stderr,
        )
        return EXIT_INVALID

    to_store = [t for t in result.transactions if include_duplicates or not t.is_duplicate]
    try:
        with session_scope(database_url=database_url) as session:
            written = upsert_transactions(session, to_store, source_file=p.name)
    except Exception as e:  # noqa: BLE001
        print(f"Error: persistence (upsert) failed: {e}", file=sys.stderr)
        return EXIT_ERROR

    excluded = len(result.transactions) - len(to_store)
    typer.echo(
        f"Imported {written} transaction(s) from {p.name}"
        + (f"; skipped {excluded} flagged duplicate(s)" if excluded else "")
    )
    return EXIT_OK


# ---- Typer-based console interface ----------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Parse IDFC FIRST Bank statements (Excel, CSV or text PDF), reconcile them "
        "against the printed summary and import them into the ledger database."
    ),
)

# Module-level option object to satisfy ruff B008 (no calls in parameter
# defaults).
PATH_OPTION: OptionInfo = typer.Option(
    ...,  # required
    "--path",
    help="Path to a statement export (.xlsx, .xls, .csv or .pdf)",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
)


@app.command("parse")
def parse_cmd(
    path: Annotated[Path, PATH_OPTION],
    *,
    as_json: bool = typer.Option(False, "--json", help="Print the JSON document instead."),
    show_duplicates: bool = typer.Option(
        False, help="Also list flagged duplicates in a separate table."
    ),
) -> None:
    """Parse a statement and print its validation report."""

    raise typer.Exit(cmd_parse(str(path), as_json=as_json, show_duplicates=show_duplicates))


@app.command("import")
def import_cmd(
    path: Annotated[Path, PATH_OPTION],
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    include_duplicates: bool = typer.Option(
        False, help="Store transactions flagged as possible duplicates too."
    ),
    allow_invalid: bool = typer.Option(
        False, help="Import even when totals do not reconcile."
    ),
) -> None:
    """Parse a statement against stored history and upsert it into the ledger."""

    raise typer.Exit(
        cmd_import(
            str(path),
            database_url=database_url,
            include_duplicates=include_duplicates,
            allow_invalid=allow_invalid,
        )
    )


@app.callback()
def _root(
    *,
    log_level: str | None = typer.Option(
        None, help="Logging level (falls back to STATEMENT_INGEST_LOG_LEVEL, then INFO)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures package logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)


if __name__ == "__main__":  # pragma: no cover
    app()
