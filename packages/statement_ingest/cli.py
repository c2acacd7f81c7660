# ruff: noqa: I001
"""CLI for the ``statement_ingest`` package.

This module exposes callable command handlers (``cmd_parse``, ``cmd_match``,
``cmd_import``) that return a process exit code, and a Typer-based console
interface wrapping them. Environment variables (``DATABASE_URL``,
``OPENAI_API_KEY``) are loaded from a local ``.env`` using ``python-dotenv``
before any command runs. Business logic lives in ``statement_ingest.api``.
"""

from __future__ import annotations

import asyncio
import json
import mimetypes
import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from sqlalchemy.exc import SQLAlchemyError
from typer.models import OptionInfo

from .errors import StatementIngestError
from .logging_setup import configure_logging
from .models import ImportMode, KeywordSettings, StatementParseResult


# ---- Small module-level helpers used by CLI commands -------------------------

_SUFFIX_MEDIA_TYPES = {
    ".csv": "text/csv",
    ".pdf": "application/pdf",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
}


def _media_type_for(path: Path) -> str:
    guessed = _SUFFIX_MEDIA_TYPES.get(path.suffix.lower())
    if guessed:
        return guessed
    mt, _ = mimetypes.guess_type(path.name)
    return mt or "application/octet-stream"


def _load_settings(user_id: str | None, database_url: str | None) -> KeywordSettings | None:
    if user_id is None:
        return None
    from db.client import session_scope
    from .persistence import get_keyword_settings

    with session_scope(database_url=database_url) as session:
        return get_keyword_settings(session, user_id=user_id)


def _read_statement(
    file_path: Path,
    *,
    bank: str | None,
    user_id: str | None,
    database_url: str | None,
) -> StatementParseResult:
    from .api import ingest_upload
    from .formats import resolve_bank_format

    bank_format = resolve_bank_format(bank) if bank else None
    settings = _load_settings(user_id, database_url)
    content = file_path.read_bytes()
    return asyncio.run(
        ingest_upload(
            content,
            _media_type_for(file_path),
            bank_format=bank_format,
            keyword_settings=settings,
        )
    )


def _report_row_errors(result: StatementParseResult) -> None:
    for message in result.errors:
        print(message, file=sys.stderr)


# ---- Command handlers --------------------------------------------------------


def cmd_parse(
    file_path: str,
    *,
    bank: str | None = None,
    user_id: str | None = None,
    database_url: str | None = None,
) -> int:
    """Print the bank name, candidate transactions as tab-separated lines, then a summary."""

    from .formats import BANK_NAMES
    from .summary import summarize_transactions

    try:
        result = _read_statement(
            Path(file_path), bank=bank, user_id=user_id, database_url=database_url
        )
    except FileNotFoundError:
        print(f"Error: File not found: {file_path}", file=sys.stderr)
        return 1
    except (StatementIngestError, ValueError, RuntimeError, SQLAlchemyError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if result.bank_format is not None:
        print(f"# {BANK_NAMES[result.bank_format]} statement")
    else:
        print("# Extracted from document")
    for tx in result.transactions:
        print(
            f"{tx.date.isoformat()}\t{tx.type}\t{tx.amount:.2f}\t{tx.category}\t{tx.description}"
        )

    summary = summarize_transactions(result.transactions)
    print(
        f"# format={result.bank_format or 'document'} transactions={len(result.transactions)} "
        f"debits={summary.total_debits:.2f} credits={summary.total_credits:.2f} "
        f"net={summary.net_amount:.2f}"
    )
    _report_row_errors(result)
    return 0


def cmd_match(
    file_path: str,
    *,
    user_id: str,
    bank: str | None = None,
    database_url: str | None = None,
) -> int:
    """Print proposed obligation matches, highest confidence first."""

    from db.client import session_scope
    from .api import propose_obligation_matches

    try:
        result = _read_statement(
            Path(file_path), bank=bank, user_id=user_id, database_url=database_url
        )
        with session_scope(database_url=database_url) as session:
            matches = propose_obligation_matches(
                session, user_id=user_id, transactions=result.transactions
            )
    except FileNotFoundError:
        print(f"Error: File not found: {file_path}", file=sys.stderr)
        return 1
    except (StatementIngestError, ValueError, RuntimeError, SQLAlchemyError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for m in matches:
        print(
            f"{m.confidence}\t{m.transaction_date.isoformat()}\t{m.obligation_name}\t"
            f"{m.actual_amount:.2f}\t{m.match_reason}"
        )
    return 0


def cmd_import(
    file_path: str,
    *,
    user_id: str,
    bank: str | None = None,
    mode: ImportMode = "all",
    include_transfers: bool = False,
    record_matches: bool = True,
    database_url: str | None = None,
) -> int:
    """Parse, import and print the aggregate result as JSON."""

    from db.client import session_scope
    from .api import import_statement

    try:
        result = _read_statement(
            Path(file_path), bank=bank, user_id=user_id, database_url=database_url
        )
        with session_scope(database_url=database_url) as session:
            outcome = import_statement(
                session,
                user_id=user_id,
                transactions=result.transactions,
                mode=mode,
                include_transfers=include_transfers,
                record_matches=record_matches,
            )
    except FileNotFoundError:
        print(f"Error: File not found: {file_path}", file=sys.stderr)
        return 1
    except (StatementIngestError, ValueError, RuntimeError, SQLAlchemyError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _report_row_errors(result)
    print(json.dumps(outcome.to_payload()))
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Import bank statements (CSV, PDF or image) into the finance ledger. "
        "Loads DATABASE_URL and OPENAI_API_KEY from a local .env before running."
    ),
)

# Module-level option objects to satisfy ruff B008 (no calls in parameter
# defaults).
FILE_OPTION: OptionInfo = typer.Option(
    ...,
    "--file",
    help="Path to a bank statement (CSV, PDF, JPEG, PNG, GIF or WebP).",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
)
BANK_OPTION: OptionInfo = typer.Option(
    "--bank",
    help="Force a bank layout (fnb, standard_bank, nedbank, capitec, absa, generic).",
)
DATABASE_URL_OPTION: OptionInfo = typer.Option(
    "--database-url", help="Override DATABASE_URL (falls back to env var)."
)


def _exit(code: int) -> None:
    if code:
        raise typer.Exit(code)


@app.command("parse")
def parse_cmd(
    file_path: Annotated[Path, FILE_OPTION],
    *,
    bank: Annotated[str | None, BANK_OPTION] = None,
    user_id: str | None = typer.Option(
        None, help="Apply this user's keyword overrides (requires a database)."
    ),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Parse a statement and print categorized candidate transactions."""

    _exit(cmd_parse(str(file_path), bank=bank, user_id=user_id, database_url=database_url))


@app.command("match")
def match_cmd(
    file_path: Annotated[Path, FILE_OPTION],
    *,
    user_id: str = typer.Option(..., help="Owner of the obligations to match against."),
    bank: Annotated[str | None, BANK_OPTION] = None,
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Propose obligation matches for the statement's debits."""

    _exit(cmd_match(str(file_path), user_id=user_id, bank=bank, database_url=database_url))


@app.command("import")
def import_cmd(
    file_path: Annotated[Path, FILE_OPTION],
    *,
    user_id: str = typer.Option(..., help="Owner of the imported rows."),
    bank: Annotated[str | None, BANK_OPTION] = None,
    mode: str = typer.Option("all", help="What to import: expenses, income or all."),
    include_transfers: bool = typer.Option(
        False, help="Also import rows that look like transfers between own accounts."
    ),
    match: bool = typer.Option(
        True, help="Record likely obligation payments (high and medium confidence)."
    ),
    database_url: Annotated[str | None, DATABASE_URL_OPTION] = None,
) -> None:
    """Import a statement and print the result summary as JSON."""

    if mode not in ("expenses", "income", "all"):
        print(f"Error: unknown mode: {mode}", file=sys.stderr)
        raise typer.Exit(1)
    _exit(
        cmd_import(
            str(file_path),
            user_id=user_id,
            bank=bank,
            mode=mode,  # type: ignore[arg-type]
            include_transfers=include_transfers,
            record_matches=match,
            database_url=database_url,
        )
    )


@app.callback()
def _root() -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)

    # Central logging setup so child loggers inherit configuration
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    # Running as a module: `python -m statement_ingest.cli`
    app()
