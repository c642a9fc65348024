"""CLI for the ``ledger_import`` package.

A Typer console interface over ``ledger_import.api``. Environment variables
(``DATABASE_URL``, ``OPENAI_API_KEY``, ``LEDGER_IMPORT_*``) are loaded from a
local ``.env`` using ``python-dotenv`` before any command runs. Business logic
lives in ``ledger_import.api`` and related modules.
"""

from __future__ import annotations

import json
import mimetypes
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table
from typer.models import ArgumentInfo, OptionInfo

from . import api
from .errors import CommitValidationError, LedgerImportError
from .logging_setup import configure_logging

app = typer.Typer(
    name="ledger-import",
    help="Preview and commit transactions extracted from receipts and bank statements.",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


# ---- Shared options ----------------------------------------------------------

USER_ID_OPTION: OptionInfo = typer.Option(
    ..., "--user-id", envvar="LEDGER_IMPORT_USER_ID", help="Owner of the previews/transactions."
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    None, "--database-url", help="Override DATABASE_URL (falls back to env var)."
)
MIME_TYPE_OPTION: OptionInfo = typer.Option(
    None, "--mime-type", help="Content type of FILE (guessed from the extension when omitted)."
)
FILE_ARGUMENT: ArgumentInfo = typer.Argument(
    ..., exists=True, dir_okay=False, readable=True, help="Document to extract."
)


# ---- Helpers -----------------------------------------------------------------


def _fail(message: str) -> typer.Exit:
    err_console.print(f"[red]Error:[/red] {message}")
    return typer.Exit(1)

T = TypeVar("T")


def _run(fn: Callable[[], T]) -> T:
    """Call ``fn`` and turn expected failures into ``Error:`` lines and exit code 1."""

    try:
        return fn()
    except CommitValidationError as e:
        for issue in e.issues:
            where = f"row {issue.index}" if issue.index is not None else "request"
            err_console.print(f"  {where} [bold]{issue.field}[/bold]: {issue.reason}")
        raise _fail(str(e)) from e
    except LedgerImportError as e:
        raise _fail(str(e)) from e
    except RuntimeError as e:
        # Raised by db.client when DATABASE_URL is missing.
        raise _fail(str(e)) from e


def _guess_mime(path: Path, explicit: str | None) -> str:
    if explicit:
        return explicit
    guessed, _ = mimetypes.guess_type(path.name)
    if guessed is None:
        raise _fail(f"Cannot determine the content type of {path}; pass --mime-type")
    return guessed


def _load_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise _fail(f"File not found: {path}") from None
    except json.JSONDecodeError as e:
        raise _fail(f"Invalid JSON in {path}: {e}") from e


def _print_summary(summary: dict[str, Any]) -> None:
    table = Table(title="Commit summary")
    for col in ("Created", "Skipped", "Failed", "Total"):
        table.add_column(col, justify="right")
    table.add_row(
        str(summary["created"]),
        str(summary["skipped"]),
        str(len(summary["failed"])),
        str(summary["total"]),
    )
    console.print(table)
    if summary["failed"]:
        failures = Table(title="Failed rows")
        failures.add_column("Row", justify="right")
        failures.add_column("Reason")
        for f in summary["failed"]:
            failures.add_row(str(f["index"]), f["reason"])
        console.print(failures)


# ---- Commands ----------------------------------------------------------------


@app.command("preview-receipt")
def preview_receipt(
    file: Path = FILE_ARGUMENT,
    user_id: str = USER_ID_OPTION,
    mime_type: str | None = MIME_TYPE_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Extract a receipt image and stage a preview."""

    mime = _guess_mime(file, mime_type)
    data = file.read_bytes()
    resp = _run(
        lambda: api.create_receipt_preview(user_id, data, mime, database_url=database_url)
    )
    console.print_json(data=resp)


@app.command("preview-statement")
def preview_statement(
    file: Path = FILE_ARGUMENT,
    user_id: str = USER_ID_OPTION,
    mime_type: str | None = MIME_TYPE_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Extract a bank statement and stage a preview."""

    mime = _guess_mime(file, mime_type)
    data = file.read_bytes()
    resp = _run(
        lambda: api.create_statement_preview(user_id, data, mime, database_url=database_url)
    )
    console.print_json(data=resp)


@app.command("show-preview")
def show_preview(
    preview_id: str = typer.Argument(..., help="Preview token."),
    user_id: str = USER_ID_OPTION,
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Print a live preview without consuming it."""

    resp = _run(lambda: api.get_preview(user_id, preview_id, database_url=database_url))
    console.print_json(data=resp)


@app.command("list-previews")
def list_previews(
    user_id: str = USER_ID_OPTION,
    kind: str | None = typer.Option(None, "--kind", help="receipt or statement."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """List the user's unexpired, uncommitted previews."""

    rows = _run(lambda: api.list_previews(user_id, kind, database_url=database_url))
    if not rows:
        console.print("[yellow]No active previews.[/yellow]")
        return
    table = Table(title="Active previews")
    table.add_column("Preview")
    table.add_column("Type")
    table.add_column("Drafts", justify="right")
    table.add_column("Expires")
    for r in rows:
        table.add_row(
            r["previewId"], r["type"], str(len(r["suggestedTransactions"])), r["expiresAt"]
        )
    console.print(table)


@app.command("commit-statement")
def commit_statement(
    preview_id: str = typer.Argument(..., help="Preview token."),
    rows_json: Path = typer.Argument(
        ..., help="JSON file: a list of reviewed rows, or an object with 'transactions'."
    ),
    user_id: str = USER_ID_OPTION,
    skip_duplicates: bool = typer.Option(
        True, "--skip-duplicates/--no-skip-duplicates", help="Skip rows already in the ledger."
    ),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Commit reviewed statement rows."""

    loaded = _load_json(rows_json)
    rows = loaded.get("transactions") if isinstance(loaded, dict) else loaded
    payload = {
        "previewId": preview_id,
        "transactions": rows,
        "options": {"skipDuplicates": skip_duplicates},
    }
    summary = _run(lambda: api.commit_statement(user_id, payload, database_url=database_url))
    _print_summary(summary)


@app.command("commit-receipt")
def commit_receipt(
    preview_id: str = typer.Argument(..., help="Preview token."),
    row_json: Path = typer.Argument(..., help="JSON file with the reviewed transaction."),
    user_id: str = USER_ID_OPTION,
    merchant: str | None = typer.Option(None, "--merchant", help="Merchant metadata."),
    currency: str | None = typer.Option(None, "--currency", help="Currency metadata."),
    database_url: str | None = DATABASE_URL_OPTION,
) -> None:
    """Commit the reviewed receipt transaction."""

    payload: dict[str, Any] = {"previewId": preview_id, "transaction": _load_json(row_json)}
    if merchant or currency:
        payload["metadata"] = {"merchant": merchant, "currency": currency}
    record = _run(lambda: api.commit_receipt(user_id, payload, database_url=database_url))
    console.print_json(data=record)


@app.command("sweep-previews")
def sweep_previews(database_url: str | None = DATABASE_URL_OPTION) -> None:
    """Delete expired and consumed previews."""

    deleted = _run(lambda: api.sweep_expired_previews(database_url=database_url))
    console.print(f"Deleted {deleted} preview(s).")


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    # override=False keeps already-set environment variables
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
