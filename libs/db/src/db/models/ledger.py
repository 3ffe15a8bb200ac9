from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: ledger_categories
# ---------------------------


class LedgerCategory(Base):
    __tablename__ = "ledger_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    # Direction tag; transactions may only reference categories of the same
    # direction (enforced in ``sms_ledger.ledger``).
    direction: Mapped[str] = mapped_column(String, nullable=False)
    icon_name: Mapped[str | None] = mapped_column(String, nullable=True)
    color_hex: Mapped[str | None] = mapped_column(String, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )

    __table_args__ = (
        CheckConstraint("direction in ('expense','income')", name="ck_ledger_category_direction"),
    )


# ---------------------------
# Reference: ledger_accounts
# ---------------------------


class LedgerAccount(Base):
    __tablename__ = "ledger_accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    # Free-text type label, e.g. "Savings", "Credit Card", "Wallet".
    type_label: Mapped[str] = mapped_column(String, nullable=False, server_default=text("''"))
    # Optional full or partial account/card number as entered by the user.
    account_number: Mapped[str | None] = mapped_column(String, nullable=True)
    # Signed running balance. Only ever mutated through ``balance = balance + delta``
    # statements issued together with the transaction change that caused it.
    balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2), nullable=False, server_default=text("0")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )


# ---------------------------
# Core: ledger_transactions
# ---------------------------


class LedgerTransaction(Base):
    __tablename__ = "ledger_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    direction: Mapped[str] = mapped_column(String, nullable=False)
    # Event time (when the message was sent), epoch milliseconds.
    occurred_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)
    counterparty: Mapped[str] = mapped_column(Text, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_channel: Mapped[str] = mapped_column(String, nullable=False)
    category_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("ledger_categories.id", ondelete="SET NULL"),
        nullable=True,
    )
    account_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("ledger_accounts.id", ondelete="SET NULL"),
        nullable=True,
    )
    is_manual: Mapped[bool] = mapped_column(
        Boolean, nullable=False, server_default=sa_expr.true()
    )
    # Digest of the originating message; NULL for manual entries.
    origin_digest: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.current_timestamp()
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ledger_tx_amount_positive"),
        CheckConstraint("direction in ('expense','income')", name="ck_ledger_tx_direction"),
        Index("ix_ledger_tx_direction_occurred", "direction", "occurred_at_ms"),
        Index("ix_ledger_tx_account", "account_id"),
        Index("ix_ledger_tx_category", "category_id"),
    )


# ---------------------------
# Duplicate suppression: dedup_markers
# ---------------------------


class DedupMarker(Base):
    """Key -> last-seen timestamp map, partitioned by ``scope``.

    Scopes in use: ``message`` (exact-message digest), ``recent``
    (amount/direction/minute key) and ``content`` (normalized content digest).
    """

    __tablename__ = "dedup_markers"

    scope: Mapped[str] = mapped_column(String, primary_key=True)
    digest: Mapped[str] = mapped_column(String(128), primary_key=True)
    recorded_at_ms: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (Index("ix_dedup_markers_scope_recorded", "scope", "recorded_at_ms"),)


# ---------------------------
# Settings: app_settings
# ---------------------------


class AppSetting(Base):
    __tablename__ = "app_settings"

    key: Mapped[str] = mapped_column(String, primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)


__all__ = [
    "AppSetting",
    "Base",
    "DedupMarker",
    "LedgerAccount",
    "LedgerCategory",
    "LedgerTransaction",
]
