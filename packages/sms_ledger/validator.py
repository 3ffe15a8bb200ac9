"""Precision gate applied after parsing.

The message filter trusts anything that looks like it came from a bank; this
check rejects what a bank sends that is not money movement: balance
notifications, OTPs, and amounts too small to be real transactions.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from .models import Direction
from .rules import Rule, all_of, contains_any, first_match

MIN_TRANSACTION_AMOUNT = Decimal("1.00")

TRANSACTION_INDICATORS: tuple[str, ...] = (
    "debited", "debit alert", "spent", "paid", "withdrawal",
    "purchase", "txn at", "transaction at", "transferred to",
    "payment to", "sent to", "dr ", "dr.", "sent",
    "credited", "credit alert", "received", "deposited",
    "payment from", "transferred from", "refund", "cashback",
    "cr ", "cr.", "salary",
)  # fmt: skip


_HAS_INDICATOR = contains_any(*TRANSACTION_INDICATORS)


def _lacks(*terms: str):
    has = contains_any(*terms)
    return lambda subject: not has(subject)


# Ordered rejection reasons evaluated on the lower-cased body.
CONTENT_REJECTIONS: tuple[Rule[str], ...] = (
    Rule(
        all_of(
            contains_any("balance"),
            _lacks("debited", "credited"),
            _lacks("transaction", "txn"),
        ),
        "balance inquiry",
    ),
    Rule(contains_any("otp", "verification", "verify", "code"), "otp or verification message"),
)


@dataclass(frozen=True, slots=True)
class ValidityVerdict:
    valid: bool
    reason: str | None = None


def is_valid_transaction(body: str, amount: Decimal, direction: Direction) -> ValidityVerdict:
    """Return whether ``body`` describes a real money movement of ``amount``.

    ``direction`` is accepted for symmetry with the parser output; the current
    rules do not depend on it.
    """

    lower = body.lower()
    if not _HAS_INDICATOR(lower):
        return ValidityVerdict(False, "no transaction indicator")
    if amount < MIN_TRANSACTION_AMOUNT:
        return ValidityVerdict(False, f"amount {amount} below minimum")
    reason = first_match(CONTENT_REJECTIONS, lower, None)
    if reason is not None:
        return ValidityVerdict(False, reason)
    return ValidityVerdict(True)


__all__ = [
    "CONTENT_REJECTIONS",
    "MIN_TRANSACTION_AMOUNT",
    "TRANSACTION_INDICATORS",
    "ValidityVerdict",
    "is_valid_transaction",
]
