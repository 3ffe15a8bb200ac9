# ruff: noqa: I001
"""CLI for the ``sms_ledger`` package.

A thin host around the processing pipeline: it creates the schema, feeds
messages (one from the command line or a JSONL backlog), and manages the
accounts and settings the resolvers consult. Environment variables (notably
``DATABASE_URL``) are loaded from a local ``.env`` using ``python-dotenv``
before any command runs. Business logic lives in ``sms_ledger.pipeline`` and
the modules it wires together.
"""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from pydantic import ValidationError

from .config import LedgerConfig
from .logging_setup import configure_logging
from .models import InboundMessage, MessageSource

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Turn bank and payment SMS/notifications into ledger transactions. "
        "Loads DATABASE_URL from a local .env before running."
    ),
)


def _config(ctx: typer.Context) -> LedgerConfig:
    override = (ctx.obj or {}).get("database_url")
    env = dict(os.environ)
    if override:
        env["DATABASE_URL"] = override
    try:
        return LedgerConfig.from_env(env)
    except RuntimeError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e


def _format_result(result) -> str:
    parts = [result.outcome.value, f"stage={result.stage.value}", f"reason={result.reason!r}"]
    if result.transaction_id is not None:
        parts.append(f"transaction_id={result.transaction_id}")
    if result.account_id is not None:
        parts.append(f"account_id={result.account_id}")
    if result.category_id is not None:
        parts.append(f"category_id={result.category_id}")
    return " ".join(parts)


@app.command("init-db")
def init_db_cmd(ctx: typer.Context) -> None:
    """Create the ledger tables and seed the default categories."""

    from db.client import create_schema, session_scope

    from .categories import seed_default_categories

    config = _config(ctx)
    create_schema(database_url=config.database_url)
    with session_scope(database_url=config.database_url) as session:
        added = seed_default_categories(session)
    typer.echo(f"schema ready; {added} default categories added")


@app.command("process")
def process_cmd(
    ctx: typer.Context,
    *,
    sender: Annotated[str, typer.Option(help="Sender header, e.g. VM-HDFCBK.")],
    body: Annotated[str, typer.Option(help="Message text.")],
    timestamp_ms: Annotated[
        int | None, typer.Option(help="Event time in epoch milliseconds (default: now).")
    ] = None,
    source: Annotated[MessageSource, typer.Option(help="Event source.")] = MessageSource.SMS,
) -> None:
    """Process a single message and print its outcome."""

    from .pipeline import Outcome, build_processor, wall_clock_ms

    config = _config(ctx)
    try:
        message = InboundMessage(
            sender=sender,
            body=body,
            timestamp_ms=wall_clock_ms() if timestamp_ms is None else timestamp_ms,
            source=source,
        )
    except ValidationError as e:
        typer.echo(f"Error: invalid message: {e}", err=True)
        raise typer.Exit(2) from e

    result = build_processor(config).process(message)
    typer.echo(_format_result(result))
    if result.outcome is Outcome.FAILED:
        raise typer.Exit(1)


@app.command("ingest")
def ingest_cmd(
    ctx: typer.Context,
    path: Annotated[
        Path, typer.Argument(help="JSONL file; one {sender, body, timestamp_ms, source} per line.")
    ],
    *,
    concurrency: Annotated[
        int | None, typer.Option(min=1, help="Worker threads (default: SMS_LEDGER_MAX_WORKERS).")
    ] = None,
) -> None:
    """Process a backlog of messages concurrently."""

    from .pipeline import build_processor
    from .runner import process_concurrently

    config = _config(ctx)
    if not path.is_file():
        typer.echo(f"Error: {path} is not a file", err=True)
        raise typer.Exit(2)

    messages: list[InboundMessage] = []
    invalid = 0
    with path.open("r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                messages.append(InboundMessage.model_validate_json(line))
            except ValidationError as e:
                invalid += 1
                typer.echo(f"line {lineno}: invalid message: {e.errors()[0]['msg']}", err=True)

    results = process_concurrently(
        build_processor(config), messages, concurrency=concurrency or config.max_workers
    )
    counts = {outcome: 0 for outcome in ("recorded", "skipped", "failed")}
    for r in results:
        counts[r.outcome.value] += 1
    typer.echo(
        f"recorded={counts['recorded']} skipped={counts['skipped']} "
        f"failed={counts['failed']} invalid={invalid}"
    )


@app.command("add-account")
def add_account_cmd(
    ctx: typer.Context,
    *,
    name: Annotated[str, typer.Option(help="Display name, e.g. 'HDFC Savings'.")],
    type_label: Annotated[str, typer.Option("--type", help="Free-text account type.")] = "",
    number: Annotated[
        str | None, typer.Option(help="Account or card number (or its last digits).")
    ] = None,
    opening_balance: Annotated[str, typer.Option(help="Opening balance.")] = "0",
    default: Annotated[bool, typer.Option(help="Use as the default account.")] = False,
) -> None:
    """Create an account."""

    from db.client import session_scope

    from .ledger import create_account
    from .stores import SettingsStore

    config = _config(ctx)
    try:
        with session_scope(database_url=config.database_url) as session:
            account = create_account(
                session,
                name,
                type_label=type_label,
                account_number=number,
                opening_balance=Decimal(opening_balance) if opening_balance else 0,
            )
            if default:
                SettingsStore().set_default_account_id(session, account.id)
    except (ValueError, ArithmeticError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2) from e
    typer.echo(f"account {account.id} created: {account.name} balance={account.balance}")


@app.command("set-default-account")
def set_default_account_cmd(
    ctx: typer.Context,
    account_id: Annotated[int | None, typer.Argument(help="Account id; omit to clear.")] = None,
) -> None:
    """Set (or clear) the account used when nothing else identifies one."""

    from db.client import session_scope

    from .stores import AccountStore, SettingsStore

    config = _config(ctx)
    with session_scope(database_url=config.database_url) as session:
        if account_id is not None and AccountStore().get(session, account_id) is None:
            typer.echo(f"Error: account {account_id} does not exist", err=True)
            raise typer.Exit(2)
        SettingsStore().set_default_account_id(session, account_id)
    typer.echo("default account cleared" if account_id is None else f"default account {account_id}")


@app.command("toggle-source")
def toggle_source_cmd(
    ctx: typer.Context,
    source: Annotated[MessageSource, typer.Argument(help="sms or notification")],
    *,
    enabled: Annotated[bool, typer.Option("--enable/--disable")] = True,
) -> None:
    """Enable or disable processing of a message source."""

    from db.client import session_scope

    from .stores import SettingsStore

    config = _config(ctx)
    with session_scope(database_url=config.database_url) as session:
        SettingsStore().set_source_enabled(session, source, enabled)
    typer.echo(f"{source.value} parsing {'enabled' if enabled else 'disabled'}")


@app.command("cleanup")
def cleanup_cmd(ctx: typer.Context) -> None:
    """Evict expired duplicate markers."""

    from .pipeline import build_processor

    removed = build_processor(_config(ctx)).cleanup()
    typer.echo(" ".join(f"{layer}={n}" for layer, n in removed.items()))


@app.command("stats")
def stats_cmd(ctx: typer.Context) -> None:
    """Print transaction, account and duplicate-marker counts."""

    from db.client import session_scope

    from .duplicates import duplicate_stats
    from .stores import AccountStore, MarkerStore, TransactionStore

    config = _config(ctx)
    with session_scope(database_url=config.database_url) as session:
        typer.echo(f"transactions={TransactionStore().count(session)}")
        for account in AccountStore().list_all(session):
            typer.echo(f"account {account.id} {account.name}: balance={account.balance}")
        for scope, n in duplicate_stats(session, MarkerStore()).items():
            typer.echo(f"markers[{scope}]={n}")


@app.callback()
def _root(
    ctx: typer.Context,
    *,
    database_url: str | None = typer.Option(
        None, help="Override DATABASE_URL (falls back to env var)."
    ),
    log_level: str | None = typer.Option(
        None, help="Log level (falls back to SMS_LEDGER_LOG_LEVEL, then INFO)."
    ),
) -> None:
    """Root command.

    Loads ``.env`` from the current working directory (without overriding any
    already-set environment variables) and configures logging once.
    """

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)
    ctx.obj = {"database_url": database_url}


def main() -> None:
    """Console-script entry point."""

    app()


if __name__ == "__main__":  # pragma: no cover - manual utility
    main()


__all__ = ["app", "main"]
