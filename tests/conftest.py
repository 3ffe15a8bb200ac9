# ruff: noqa: E402, I001
"""Pytest configuration for test isolation.

Every database test gets its own file-backed SQLite database under
``tmp_path`` with the default categories seeded. Engines are cached per URL
by ``db.client``, so they are disposed after each test to release the file.

The workspace ``packages/`` and ``libs/db/src`` dirs are put on ``sys.path``
so the suite runs without an editable install.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_PATHS = [_ROOT / "packages", _ROOT / "libs" / "db" / "src", _ROOT]
sys.path[:0] = [str(p) for p in _PATHS if str(p) not in sys.path]

from db.client import dispose_engines
from tests.helpers.db import bootstrap_sqlite_db


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep a developer's shell configuration out of the tests."""

    for key in (
        "DATABASE_URL",
        "SMS_LEDGER_DUPLICATE_WINDOW_SECONDS",
        "SMS_LEDGER_AMOUNT_TOLERANCE",
        "SMS_LEDGER_CONTENT_RETENTION_DAYS",
        "SMS_LEDGER_MESSAGE_RETENTION_HOURS",
        "SMS_LEDGER_MESSAGE_MARKER_CAP",
        "SMS_LEDGER_MAX_WORKERS",
    ):
        monkeypatch.delenv(key, raising=False)


@pytest.fixture
def database_url(tmp_path: Path) -> Iterator[str]:
    url = bootstrap_sqlite_db(tmp_path / "ledger.db")
    yield url
    dispose_engines()
