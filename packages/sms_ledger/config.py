"""Runtime configuration read from the environment.

``LedgerConfig.from_env()`` is the single place environment variables are
interpreted; everything downstream receives a frozen ``LedgerConfig``. The CLI
loads a ``.env`` file (python-dotenv) before calling it.

Variables
---------
DATABASE_URL (required)
    SQLAlchemy URL of the ledger database.
SMS_LEDGER_DUPLICATE_WINDOW_SECONDS (300)
    Window for semantic duplicates (similar transactions, recent markers).
SMS_LEDGER_AMOUNT_TOLERANCE (0.01)
    Amount difference under which two transactions count as the same.
SMS_LEDGER_CONTENT_RETENTION_DAYS (7)
    How long content-digest markers are kept.
SMS_LEDGER_MESSAGE_RETENTION_HOURS (24)
    How long exact-message markers are kept.
SMS_LEDGER_MESSAGE_MARKER_CAP (1000)
    Maximum number of exact-message markers kept.
SMS_LEDGER_MAX_WORKERS (4)
    Thread pool size for concurrent ingestion.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

_SECOND_MS = 1000
_HOUR_MS = 3600 * _SECOND_MS
_DAY_MS = 24 * _HOUR_MS


def _int_env(env: Mapping[str, str], key: str, default: int, *, minimum: int = 0) -> int:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw.strip())
    except ValueError as e:
        raise RuntimeError(f"{key} must be an integer, got {raw!r}") from e
    if value < minimum:
        raise RuntimeError(f"{key} must be >= {minimum}, got {value}")
    return value


def _decimal_env(env: Mapping[str, str], key: str, default: Decimal) -> Decimal:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return default
    try:
        value = Decimal(raw.strip())
    except InvalidOperation as e:
        raise RuntimeError(f"{key} must be a decimal number, got {raw!r}") from e
    if not value.is_finite() or value < 0:
        raise RuntimeError(f"{key} must be a non-negative number, got {raw!r}")
    return value


@dataclass(frozen=True, slots=True)
class LedgerConfig:
    database_url: str
    duplicate_window_ms: int = 300 * _SECOND_MS
    amount_tolerance: Decimal = Decimal("0.01")
    content_retention_ms: int = 7 * _DAY_MS
    message_retention_ms: int = 24 * _HOUR_MS
    message_marker_cap: int = 1000
    max_workers: int = 4

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> LedgerConfig:
        env = os.environ if env is None else env
        url = (env.get("DATABASE_URL") or "").strip()
        if not url:
            raise RuntimeError("DATABASE_URL is not set; cannot configure the ledger")
        return cls(
            database_url=url,
            duplicate_window_ms=_int_env(env, "SMS_LEDGER_DUPLICATE_WINDOW_SECONDS", 300)
            * _SECOND_MS,
            amount_tolerance=_decimal_env(env, "SMS_LEDGER_AMOUNT_TOLERANCE", Decimal("0.01")),
            content_retention_ms=_int_env(env, "SMS_LEDGER_CONTENT_RETENTION_DAYS", 7) * _DAY_MS,
            message_retention_ms=_int_env(env, "SMS_LEDGER_MESSAGE_RETENTION_HOURS", 24)
            * _HOUR_MS,
            message_marker_cap=_int_env(env, "SMS_LEDGER_MESSAGE_MARKER_CAP", 1000, minimum=1),
            max_workers=_int_env(env, "SMS_LEDGER_MAX_WORKERS", 4, minimum=1),
        )


__all__ = ["LedgerConfig"]
