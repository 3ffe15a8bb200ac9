"""Data models and type aliases for ``sms_ledger``.

Plain frozen dataclasses carry values between pipeline stages; the inbound
event is a pydantic model because it crosses the process boundary (host
callbacks, JSONL ingestion) and must be validated strictly before any stage
sees it. ORM rows live in ``db.models.ledger`` and never leave the stores.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

_CENT = Decimal("0.01")


class Direction(enum.StrEnum):
    """Whether a transaction decreases (expense) or increases (income) a balance."""

    EXPENSE = "expense"
    INCOME = "income"


class MessageSource(enum.StrEnum):
    """Which kind of host event produced a message; each can be toggled off."""

    SMS = "sms"
    NOTIFICATION = "notification"

    @property
    def label(self) -> str:
        return "SMS" if self is MessageSource.SMS else "Notification"


def to_money(raw: Any) -> Decimal | None:
    """Return ``raw`` as a two-decimal ``Decimal`` or ``None`` when not numeric."""

    if raw is None:
        return None
    try:
        d = Decimal(str(raw).replace(",", "").strip())
    except (InvalidOperation, ValueError):
        return None
    if not d.is_finite():
        return None
    return d.quantize(_CENT, rounding=ROUND_HALF_UP)


# ---------------------------------------------------------------------------
# Inbound event
# ---------------------------------------------------------------------------


class InboundMessage(BaseModel):
    """A raw ``(sender, body, timestamp)`` triple delivered by the host.

    The same event may be delivered more than once and out of chronological
    order; nothing here assumes otherwise.
    """

    model_config = ConfigDict(strict=True, frozen=True, extra="forbid", str_strip_whitespace=True)

    sender: str
    body: str
    timestamp_ms: int
    source: MessageSource = MessageSource.SMS

    @field_validator("sender", "body")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        if not v:
            raise ValueError("must be non-empty")
        return v

    @field_validator("timestamp_ms")
    @classmethod
    def _non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("timestamp_ms must be >= 0")
        return v

    @field_validator("source", mode="before")
    @classmethod
    def _coerce_source(cls, v: Any) -> Any:
        # Strict mode rejects plain strings for enums; JSON payloads carry strings.
        if isinstance(v, str):
            return MessageSource(v.strip().lower())
        return v


# ---------------------------------------------------------------------------
# Stage outputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedMessage:
    """Fields extracted from a message body by the parser.

    Attributes
    ----------
    amount:
        Positive amount quantized to two decimals.
    direction:
        Expense or income.
    counterparty:
        Cleaned merchant/person name, or ``"Unknown"``.
    payment_channel:
        Channel label such as ``"UPI"`` or ``"Debit Card"``; ``"SMS"`` when
        nothing more specific was found.
    account_hint:
        Masked account/card tail digits (3-6), when present.
    """

    amount: Decimal
    direction: Direction
    counterparty: str
    payment_channel: str
    account_hint: str | None = None


@dataclass(frozen=True, slots=True)
class AccountRef:
    """Point-in-time view of an account, as handed out by the account store."""

    id: int
    name: str
    type_label: str
    account_number: str | None
    balance: Decimal


@dataclass(frozen=True, slots=True)
class CategoryRef:
    id: int
    name: str
    direction: Direction


@dataclass(frozen=True, slots=True)
class TransactionDraft:
    """A transaction that has not been persisted yet.

    ``account_id`` and ``category_id`` are explicit optionals: ``None`` means
    the transaction is unlinked (no balance effect / uncategorized), never a
    sentinel id.
    """

    amount: Decimal
    direction: Direction
    occurred_at_ms: int
    counterparty: str
    payment_channel: str
    note: str | None = None
    category_id: int | None = None
    account_id: int | None = None
    is_manual: bool = True
    origin_digest: str | None = None


@dataclass(frozen=True, slots=True)
class TransactionView:
    """Point-in-time view of a persisted transaction."""

    id: int
    amount: Decimal
    direction: Direction
    occurred_at_ms: int
    counterparty: str
    payment_channel: str
    note: str | None
    category_id: int | None
    account_id: int | None
    is_manual: bool
    origin_digest: str | None


__all__ = [
    "AccountRef",
    "CategoryRef",
    "Direction",
    "InboundMessage",
    "MessageSource",
    "ParsedMessage",
    "TransactionDraft",
    "TransactionView",
    "to_money",
]
