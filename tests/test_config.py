from __future__ import annotations

from decimal import Decimal

import pytest

from sms_ledger.config import LedgerConfig


def test_defaults():
    config = LedgerConfig.from_env({"DATABASE_URL": "sqlite:///x.db"})
    assert config.database_url == "sqlite:///x.db"
    assert config.duplicate_window_ms == 300_000
    assert config.amount_tolerance == Decimal("0.01")
    assert config.content_retention_ms == 7 * 24 * 3600 * 1000
    assert config.message_retention_ms == 24 * 3600 * 1000
    assert config.message_marker_cap == 1000
    assert config.max_workers == 4


def test_overrides():
    config = LedgerConfig.from_env(
        {
            "DATABASE_URL": " sqlite:///y.db ",
            "SMS_LEDGER_DUPLICATE_WINDOW_SECONDS": "60",
            "SMS_LEDGER_AMOUNT_TOLERANCE": "0.5",
            "SMS_LEDGER_MESSAGE_MARKER_CAP": "10",
            "SMS_LEDGER_MAX_WORKERS": "",
        }
    )
    assert config.database_url == "sqlite:///y.db"
    assert config.duplicate_window_ms == 60_000
    assert config.amount_tolerance == Decimal("0.5")
    assert config.message_marker_cap == 10
    assert config.max_workers == 4


def test_reads_process_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///env.db")
    monkeypatch.setenv("SMS_LEDGER_MAX_WORKERS", "2")
    config = LedgerConfig.from_env()
    assert config.database_url == "sqlite:///env.db"
    assert config.max_workers == 2


@pytest.mark.parametrize(
    ("env", "match"),
    [
        ({}, "DATABASE_URL is not set"),
        ({"DATABASE_URL": "x", "SMS_LEDGER_MAX_WORKERS": "many"}, "must be an integer"),
        ({"DATABASE_URL": "x", "SMS_LEDGER_MAX_WORKERS": "0"}, "must be >= 1"),
        ({"DATABASE_URL": "x", "SMS_LEDGER_AMOUNT_TOLERANCE": "-1"}, "non-negative"),
        ({"DATABASE_URL": "x", "SMS_LEDGER_AMOUNT_TOLERANCE": "abc"}, "decimal number"),
    ],
)
def test_invalid_configuration(env: dict[str, str], match: str):
    with pytest.raises(RuntimeError, match=match):
        LedgerConfig.from_env(env)
