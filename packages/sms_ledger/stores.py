# ruff: noqa: I001
"""Persistence stores for the ledger tables.

Each store is a stateless object whose methods take the caller's SQLAlchemy
``Session``; the caller owns the transaction boundary (normally
``db.client.session_scope``). Reads return frozen point-in-time views from
``sms_ledger.models``; ORM rows are only returned by the write paths that the
ledger layer composes into a single unit of work.

Scope:
- ``TransactionStore``: CRUD plus the similarity and by-sender queries used by
  duplicate detection and account resolution.
- ``AccountStore``: CRUD plus in-SQL balance adjustment.
- ``CategoryStore``: lookups and inserts for the category set.
- ``SettingsStore``: typed accessors over ``app_settings``.
- ``MarkerStore``: duplicate-suppression markers with an atomic claim.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from db.models.ledger import (
    AppSetting,
    DedupMarker,
    LedgerAccount,
    LedgerCategory,
    LedgerTransaction,
)
from .models import (
    AccountRef,
    CategoryRef,
    Direction,
    MessageSource,
    TransactionDraft,
    TransactionView,
    to_money,
)


def _dialect_insert(session: Session):
    """Return the dialect ``insert`` construct supporting ``ON CONFLICT``."""

    name = session.get_bind().dialect.name
    if name == "postgresql":
        return pg_insert
    if name == "sqlite":
        return sqlite_insert
    raise RuntimeError(f"unsupported database dialect for conflict-aware inserts: {name}")


def _tx_view(row: LedgerTransaction) -> TransactionView:
    return TransactionView(
        id=row.id,
        amount=to_money(row.amount) or Decimal("0.00"),
        direction=Direction(row.direction),
        occurred_at_ms=row.occurred_at_ms,
        counterparty=row.counterparty,
        payment_channel=row.payment_channel,
        note=row.note,
        category_id=row.category_id,
        account_id=row.account_id,
        is_manual=bool(row.is_manual),
        origin_digest=row.origin_digest,
    )


def _account_view(row: LedgerAccount) -> AccountRef:
    return AccountRef(
        id=row.id,
        name=row.name,
        type_label=row.type_label or "",
        account_number=row.account_number,
        balance=to_money(row.balance) or Decimal("0.00"),
    )


def _category_view(row: LedgerCategory) -> CategoryRef:
    return CategoryRef(id=row.id, name=row.name, direction=Direction(row.direction))


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class TransactionStore:
    _MUTABLE = frozenset(
        {
            "amount",
            "direction",
            "occurred_at_ms",
            "counterparty",
            "note",
            "payment_channel",
            "category_id",
            "account_id",
        }
    )

    def insert(self, session: Session, draft: TransactionDraft) -> LedgerTransaction:
        row = LedgerTransaction(
            amount=draft.amount,
            direction=draft.direction.value,
            occurred_at_ms=draft.occurred_at_ms,
            counterparty=draft.counterparty,
            note=draft.note,
            payment_channel=draft.payment_channel,
            category_id=draft.category_id,
            account_id=draft.account_id,
            is_manual=draft.is_manual,
            origin_digest=draft.origin_digest,
        )
        session.add(row)
        session.flush()
        return row

    def row(self, session: Session, transaction_id: int) -> LedgerTransaction | None:
        return session.get(LedgerTransaction, transaction_id)

    def update(
        self, session: Session, transaction_id: int, values: Mapping[str, Any]
    ) -> LedgerTransaction | None:
        unknown = set(values) - self._MUTABLE
        if unknown:
            raise ValueError(f"cannot update transaction fields: {sorted(unknown)}")
        row = self.row(session, transaction_id)
        if row is None:
            return None
        for key, value in values.items():
            if key == "direction":
                value = Direction(value).value
            setattr(row, key, value)
        row.updated_at = func.current_timestamp()
        session.flush()
        return row

    def delete(self, session: Session, transaction_id: int) -> bool:
        row = self.row(session, transaction_id)
        if row is None:
            return False
        session.delete(row)
        session.flush()
        return True

    def get(self, session: Session, transaction_id: int) -> TransactionView | None:
        row = self.row(session, transaction_id)
        return _tx_view(row) if row is not None else None

    def list_between(self, session: Session, start_ms: int, end_ms: int) -> list[TransactionView]:
        stmt = (
            select(LedgerTransaction)
            .where(LedgerTransaction.occurred_at_ms.between(start_ms, end_ms))
            .order_by(LedgerTransaction.occurred_at_ms.desc(), LedgerTransaction.id.desc())
        )
        return [_tx_view(r) for r in session.scalars(stmt)]

    def find_similar(
        self,
        session: Session,
        direction: Direction,
        min_amount: Decimal,
        max_amount: Decimal,
        start_ms: int,
        end_ms: int,
    ) -> TransactionView | None:
        """Return the latest transaction matching direction, amount range and time range."""

        stmt = (
            select(LedgerTransaction)
            .where(
                LedgerTransaction.direction == direction.value,
                LedgerTransaction.amount.between(min_amount, max_amount),
                LedgerTransaction.occurred_at_ms.between(start_ms, end_ms),
            )
            .order_by(LedgerTransaction.occurred_at_ms.desc())
            .limit(1)
        )
        row = session.scalars(stmt).first()
        return _tx_view(row) if row is not None else None

    def recent_by_sender(self, session: Session, sender: str, limit: int = 10) -> list[TransactionView]:
        """Pipeline-created transactions whose note mentions ``sender``, newest first."""

        stmt = (
            select(LedgerTransaction)
            .where(
                LedgerTransaction.is_manual.is_(False),
                LedgerTransaction.note.contains(sender, autoescape=True),
            )
            .order_by(LedgerTransaction.occurred_at_ms.desc(), LedgerTransaction.id.desc())
            .limit(limit)
        )
        return [_tx_view(r) for r in session.scalars(stmt)]

    def has_origin_digest(self, session: Session, digest: str) -> bool:
        stmt = select(LedgerTransaction.id).where(LedgerTransaction.origin_digest == digest)
        return session.execute(stmt).first() is not None

    def count(self, session: Session) -> int:
        return int(session.scalar(select(func.count()).select_from(LedgerTransaction)) or 0)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class AccountStore:
    def list_all(self, session: Session) -> list[AccountRef]:
        rows = session.scalars(select(LedgerAccount).order_by(LedgerAccount.id))
        return [_account_view(r) for r in rows]

    def get(self, session: Session, account_id: int) -> AccountRef | None:
        # Bypass the identity map so balances reflect in-SQL adjustments.
        row = session.scalars(
            select(LedgerAccount)
            .where(LedgerAccount.id == account_id)
            .execution_options(populate_existing=True)
        ).first()
        return _account_view(row) if row is not None else None

    def insert(
        self,
        session: Session,
        *,
        name: str,
        type_label: str = "",
        account_number: str | None = None,
        balance: Decimal = Decimal("0.00"),
    ) -> AccountRef:
        row = LedgerAccount(
            name=name,
            type_label=type_label,
            account_number=account_number,
            balance=balance,
        )
        session.add(row)
        session.flush()
        return _account_view(row)

    def update(self, session: Session, account_id: int, **values: Any) -> AccountRef | None:
        allowed = {"name", "type_label", "account_number"}
        unknown = set(values) - allowed
        if unknown:
            raise ValueError(f"cannot update account fields: {sorted(unknown)}")
        row = session.get(LedgerAccount, account_id)
        if row is None:
            return None
        for key, value in values.items():
            setattr(row, key, value)
        row.updated_at = func.current_timestamp()
        session.flush()
        return self.get(session, account_id)

    def adjust_balance(self, session: Session, account_id: int, delta: Decimal) -> bool:
        """Apply ``balance = balance + delta`` in SQL; False when the account is gone."""

        result = session.execute(
            update(LedgerAccount)
            .where(LedgerAccount.id == account_id)
            .values(
                balance=LedgerAccount.balance + delta,
                updated_at=func.current_timestamp(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class CategoryStore:
    def list_all(self, session: Session) -> list[CategoryRef]:
        rows = session.scalars(select(LedgerCategory).order_by(LedgerCategory.id))
        return [_category_view(r) for r in rows]

    def get(self, session: Session, category_id: int) -> CategoryRef | None:
        row = session.get(LedgerCategory, category_id)
        return _category_view(row) if row is not None else None

    def get_by_name(self, session: Session, name: str) -> CategoryRef | None:
        row = session.scalars(select(LedgerCategory).where(LedgerCategory.name == name)).first()
        return _category_view(row) if row is not None else None

    def insert(
        self,
        session: Session,
        *,
        name: str,
        direction: Direction,
        icon_name: str | None = None,
        color_hex: str | None = None,
    ) -> CategoryRef:
        row = LedgerCategory(
            name=name,
            direction=direction.value,
            icon_name=icon_name,
            color_hex=color_hex,
        )
        session.add(row)
        session.flush()
        return _category_view(row)


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

SMS_PARSING_ENABLED = "sms_parsing_enabled"
NOTIFICATION_PARSING_ENABLED = "notification_parsing_enabled"
DEFAULT_ACCOUNT_ID = "default_account_id"

_SOURCE_KEYS: dict[MessageSource, str] = {
    MessageSource.SMS: SMS_PARSING_ENABLED,
    MessageSource.NOTIFICATION: NOTIFICATION_PARSING_ENABLED,
}


class SettingsStore:
    def get(self, session: Session, key: str) -> str | None:
        row = session.get(AppSetting, key)
        return row.value if row is not None else None

    def set(self, session: Session, key: str, value: str) -> None:
        ins = _dialect_insert(session)(AppSetting.__table__).values(key=key, value=value)
        session.execute(
            ins.on_conflict_do_update(
                index_elements=[AppSetting.__table__.c.key],
                set_={"value": ins.excluded.value},
            )
        )

    def unset(self, session: Session, key: str) -> None:
        session.execute(
            delete(AppSetting)
            .where(AppSetting.key == key)
            .execution_options(synchronize_session=False)
        )

    def get_bool(self, session: Session, key: str, default: bool = True) -> bool:
        raw = self.get(session, key)
        if raw is None:
            return default
        return raw.strip().lower() in {"1", "true", "yes", "on"}

    def set_bool(self, session: Session, key: str, value: bool) -> None:
        self.set(session, key, "true" if value else "false")

    def get_default_account_id(self, session: Session) -> int | None:
        raw = self.get(session, DEFAULT_ACCOUNT_ID)
        if raw is None or not raw.strip().isdigit():
            return None
        return int(raw)

    def set_default_account_id(self, session: Session, account_id: int | None) -> None:
        if account_id is None:
            self.unset(session, DEFAULT_ACCOUNT_ID)
        else:
            self.set(session, DEFAULT_ACCOUNT_ID, str(account_id))

    def is_source_enabled(self, session: Session, source: MessageSource) -> bool:
        return self.get_bool(session, _SOURCE_KEYS[source], default=True)

    def set_source_enabled(self, session: Session, source: MessageSource, enabled: bool) -> None:
        self.set_bool(session, _SOURCE_KEYS[source], enabled)


# ---------------------------------------------------------------------------
# Duplicate markers
# ---------------------------------------------------------------------------


class MarkerStore:
    """Key -> timestamp markers partitioned by scope.

    ``claim`` is the only write path and is a single conflict-aware INSERT, so
    two sessions racing on the same key cannot both succeed.
    """

    _table = DedupMarker.__table__

    def contains(self, session: Session, scope: str, digest: str, *, since_ms: int | None = None) -> bool:
        stmt = select(DedupMarker.recorded_at_ms).where(
            DedupMarker.scope == scope, DedupMarker.digest == digest
        )
        if since_ms is not None:
            stmt = stmt.where(DedupMarker.recorded_at_ms >= since_ms)
        return session.execute(stmt).first() is not None

    def claim(
        self,
        session: Session,
        scope: str,
        digest: str,
        now_ms: int,
        *,
        stale_before_ms: int | None = None,
    ) -> bool:
        """Insert ``(scope, digest)`` unless present; True when this call claimed it.

        With ``stale_before_ms``, an existing row recorded before that instant
        is treated as expired and re-claimed in place.
        """

        ins = _dialect_insert(session)(self._table).values(
            scope=scope, digest=digest, recorded_at_ms=now_ms
        )
        keys = [self._table.c.scope, self._table.c.digest]
        if stale_before_ms is None:
            stmt = ins.on_conflict_do_nothing(index_elements=keys)
        else:
            stmt = ins.on_conflict_do_update(
                index_elements=keys,
                set_={"recorded_at_ms": ins.excluded.recorded_at_ms},
                where=self._table.c.recorded_at_ms < stale_before_ms,
            )
        return session.execute(stmt).rowcount == 1

    def delete_older_than(self, session: Session, scope: str, cutoff_ms: int) -> int:
        result = session.execute(
            delete(DedupMarker)
            .where(DedupMarker.scope == scope, DedupMarker.recorded_at_ms < cutoff_ms)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def trim_to(self, session: Session, scope: str, cap: int) -> int:
        """Keep the newest ``cap`` rows of ``scope``; return how many were evicted."""

        keep = (
            select(DedupMarker.digest)
            .where(DedupMarker.scope == scope)
            .order_by(DedupMarker.recorded_at_ms.desc(), DedupMarker.digest)
            .limit(cap)
        )
        result = session.execute(
            delete(DedupMarker)
            .where(DedupMarker.scope == scope, DedupMarker.digest.not_in(keep))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def count(self, session: Session, scope: str | None = None) -> int:
        stmt = select(func.count()).select_from(DedupMarker)
        if scope is not None:
            stmt = stmt.where(DedupMarker.scope == scope)
        return int(session.scalar(stmt) or 0)

    def counts_by_scope(self, session: Session) -> dict[str, int]:
        rows = session.execute(
            select(DedupMarker.scope, func.count()).group_by(DedupMarker.scope)
        ).all()
        return {scope: int(n) for scope, n in rows}


__all__ = [
    "AccountStore",
    "CategoryStore",
    "DEFAULT_ACCOUNT_ID",
    "MarkerStore",
    "NOTIFICATION_PARSING_ENABLED",
    "SMS_PARSING_ENABLED",
    "SettingsStore",
    "TransactionStore",
]
