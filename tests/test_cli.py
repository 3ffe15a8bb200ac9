from __future__ import annotations

import json
from collections.abc import Iterator
from pathlib import Path

import pytest
from db.client import dispose_engines
from typer.testing import CliRunner

from sms_ledger.cli import app

DEBIT = "Rs. 1,234.50 debited from A/c XX1234"
TS = "1700000000000"


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def cli_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[str]:
    # Run from an empty directory so no developer .env is picked up.
    monkeypatch.chdir(tmp_path)
    yield f"sqlite+pysqlite:///{tmp_path / 'cli.db'}"
    dispose_engines()


def _invoke(runner: CliRunner, url: str, *args: str):
    return runner.invoke(app, ["--database-url", url, *args])


def test_end_to_end(runner: CliRunner, cli_db: str):
    result = _invoke(runner, cli_db, "init-db")
    assert result.exit_code == 0, result.output
    assert "13 default categories added" in result.output

    result = _invoke(
        runner,
        cli_db,
        "add-account",
        "--name",
        "HDFC Savings",
        "--number",
        "50100012341234",
        "--opening-balance",
        "10000",
        "--default",
    )
    assert result.exit_code == 0, result.output
    assert "account 1 created: HDFC Savings balance=10000.00" in result.output

    args = ["process", "--sender", "VM-HDFCBK", "--body", DEBIT, "--timestamp-ms", TS]
    first = _invoke(runner, cli_db, *args)
    assert first.exit_code == 0, first.output
    assert first.output.startswith("recorded")
    assert "account_id=1" in first.output

    second = _invoke(runner, cli_db, *args)
    assert second.exit_code == 0, second.output
    assert "skipped" in second.output
    assert "syntactic duplicate" in second.output

    stats = _invoke(runner, cli_db, "stats")
    assert stats.exit_code == 0, stats.output
    assert "transactions=1" in stats.output
    assert "account 1 HDFC Savings: balance=8765.50" in stats.output
    assert "markers[message]=1" in stats.output


def test_toggle_source(runner: CliRunner, cli_db: str):
    assert _invoke(runner, cli_db, "init-db").exit_code == 0

    result = _invoke(runner, cli_db, "toggle-source", "sms", "--disable")
    assert result.exit_code == 0, result.output
    assert "sms parsing disabled" in result.output

    result = _invoke(
        runner, cli_db, "process", "--sender", "VM-HDFCBK", "--body", DEBIT, "--timestamp-ms", TS
    )
    assert result.exit_code == 0, result.output
    assert result.output.startswith("skipped")


def test_unparsable_message_exits_nonzero(runner: CliRunner, cli_db: str):
    assert _invoke(runner, cli_db, "init-db").exit_code == 0
    result = _invoke(
        runner,
        cli_db,
        "process",
        "--sender",
        "VM-HDFCBK",
        "--body",
        "Dear customer, your A/c XX1234 statement is ready",
    )
    assert result.exit_code == 1
    assert "unparsable message" in result.output


def test_ingest_jsonl(runner: CliRunner, cli_db: str, tmp_path: Path):
    assert _invoke(runner, cli_db, "init-db").exit_code == 0

    line = {"sender": "VM-HDFCBK", "body": DEBIT, "timestamp_ms": int(TS), "source": "sms"}
    path = tmp_path / "inbox.jsonl"
    path.write_text(
        "\n".join(
            [
                json.dumps(line),
                json.dumps(line),
                "",
                json.dumps({"sender": " ", "body": DEBIT, "timestamp_ms": 1}),
            ]
        ),
        encoding="utf-8",
    )

    result = _invoke(runner, cli_db, "ingest", str(path), "--concurrency", "2")
    assert result.exit_code == 0, result.output
    assert "recorded=1 skipped=1 failed=0 invalid=1" in result.output


def test_set_default_account_requires_existing_account(runner: CliRunner, cli_db: str):
    assert _invoke(runner, cli_db, "init-db").exit_code == 0
    result = _invoke(runner, cli_db, "set-default-account", "42")
    assert result.exit_code == 2
    assert "account 42 does not exist" in result.output

    result = _invoke(runner, cli_db, "set-default-account")
    assert result.exit_code == 0
    assert "default account cleared" in result.output


def test_cleanup(runner: CliRunner, cli_db: str):
    assert _invoke(runner, cli_db, "init-db").exit_code == 0
    result = _invoke(runner, cli_db, "cleanup")
    assert result.exit_code == 0, result.output
    assert "syntactic=0 semantic=0" in result.output


def test_missing_database_url(runner: CliRunner, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    result = runner.invoke(app, ["stats"])
    assert result.exit_code == 2
    assert "DATABASE_URL is not set" in result.output
