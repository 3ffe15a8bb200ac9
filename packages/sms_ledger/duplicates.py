# ruff: noqa: I001
"""Duplicate detection for inbound messages.

Two layers, both backed by ``dedup_markers`` rows:

- Syntactic: the exact message (sender, body, minute bucket) was seen before.
  Catches re-deliveries of the same event.
- Semantic: a message describing the same money movement was already
  recorded: an existing transaction with the same direction and an amount
  within tolerance inside the duplicate window, a short-lived
  ``(amount, direction, minute)`` marker, or a longer-lived content digest
  over the normalized sender and body prefix. Catches the same payment
  reported by two channels (bank SMS and wallet notification).

Checks (``is_duplicate``) are read-only and may run outside the persistence
transaction. Claims must run inside it: a claim is an atomic insert-if-absent,
so markers exist only for committed transactions and two concurrent
deliveries of one event cannot both commit.
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import Direction
from .rules import Rule, contains_any, first_match
from .stores import MarkerStore, TransactionStore

logger = get_logger("sms_ledger.duplicates")

SCOPE_MESSAGE = "message"
SCOPE_RECENT = "recent"
SCOPE_CONTENT = "content"
SCOPES = (SCOPE_MESSAGE, SCOPE_RECENT, SCOPE_CONTENT)

MINUTE_MS = 60_000
CONTENT_BODY_PREFIX = 50

# Result values returned by ``SemanticDuplicateDetector.is_duplicate``.
SIMILAR_TRANSACTION = "similar_transaction"
RECENT_MARKER = "recent_marker"
CONTENT_MARKER = "content_marker"

SENDER_ALIAS_RULES: tuple[Rule[str], ...] = (
    Rule(contains_any("hdfcbank", "hdfcbk"), "hdfc"),
    Rule(contains_any("icicibank", "icicibk"), "icici"),
    Rule(contains_any("axisbank", "axisbk"), "axis"),
    Rule(contains_any("sbibank", "sbimb"), "sbi"),
    Rule(contains_any("kotakbank", "kotakbk"), "kotak"),
    Rule(contains_any("phonepe"), "phonepe"),
    Rule(contains_any("googlepay", "gpay"), "gpay"),
    Rule(contains_any("paytm"), "paytm"),
)


# ---------------------------------------------------------------------------
# Digests
# ---------------------------------------------------------------------------


def _sha256(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def minute_bucket(timestamp_ms: int) -> int:
    return (timestamp_ms // MINUTE_MS) * MINUTE_MS


def normalize_sender(sender: str) -> str:
    """Map sender header variants of one institution to a single alias."""

    lower = sender.strip().lower()
    return first_match(SENDER_ALIAS_RULES, lower, lower)


def normalize_body(body: str) -> str:
    return re.sub(r"\s+", " ", body).strip().lower()


def message_digest(sender: str, body: str, timestamp_ms: int) -> str:
    return _sha256(f"{sender}|{body}|{timestamp_ms // MINUTE_MS}")


def recent_key(amount: Decimal, direction: Direction, timestamp_ms: int) -> str:
    return f"{amount:.2f}_{direction.value}_{minute_bucket(timestamp_ms)}"


def content_digest(
    amount: Decimal, direction: Direction, timestamp_ms: int, sender: str, body: str
) -> str:
    prefix = normalize_body(body)[:CONTENT_BODY_PREFIX]
    return _sha256(
        f"{amount:.2f}_{direction.value}_{minute_bucket(timestamp_ms)}"
        f"_{normalize_sender(sender)}_{prefix}"
    )


# ---------------------------------------------------------------------------
# Syntactic layer
# ---------------------------------------------------------------------------


class SyntacticDuplicateDetector:
    """Exact-message markers, retained briefly and capped in number."""

    def __init__(self, marker_store: MarkerStore, *, cap: int = 1000, retention_ms: int) -> None:
        self.markers = marker_store
        self.cap = cap
        self.retention_ms = retention_ms

    def digest(self, sender: str, body: str, timestamp_ms: int) -> str:
        return message_digest(sender, body, timestamp_ms)

    def is_duplicate(self, session: Session, digest: str) -> bool:
        return self.markers.contains(session, SCOPE_MESSAGE, digest)

    def claim(self, session: Session, digest: str, now_ms: int) -> bool:
        return self.markers.claim(session, SCOPE_MESSAGE, digest, now_ms)

    def cleanup(self, session: Session, now_ms: int) -> int:
        removed = self.markers.delete_older_than(session, SCOPE_MESSAGE, now_ms - self.retention_ms)
        removed += self.markers.trim_to(session, SCOPE_MESSAGE, self.cap)
        if removed:
            logger.debug("evicted %d message markers", removed)
        return removed


# ---------------------------------------------------------------------------
# Semantic layer
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SemanticCandidate:
    amount: Decimal
    direction: Direction
    timestamp_ms: int
    sender: str
    body: str

    @property
    def recent_key(self) -> str:
        return recent_key(self.amount, self.direction, self.timestamp_ms)

    @property
    def content_digest(self) -> str:
        return content_digest(self.amount, self.direction, self.timestamp_ms, self.sender, self.body)


class SemanticDuplicateDetector:
    def __init__(
        self,
        transaction_store: TransactionStore,
        marker_store: MarkerStore,
        *,
        window_ms: int,
        amount_tolerance: Decimal,
        content_retention_ms: int,
    ) -> None:
        self.transactions = transaction_store
        self.markers = marker_store
        self.window_ms = window_ms
        self.amount_tolerance = amount_tolerance
        self.content_retention_ms = content_retention_ms

    def similar_transaction(self, session: Session, candidate: SemanticCandidate) -> bool:
        """True when a stored transaction matches within tolerance and window.

        The window is centered on the candidate's own timestamp so late or
        out-of-order deliveries are compared against the right neighbours.
        """

        match = self.transactions.find_similar(
            session,
            candidate.direction,
            candidate.amount - self.amount_tolerance,
            candidate.amount + self.amount_tolerance,
            candidate.timestamp_ms - self.window_ms,
            candidate.timestamp_ms + self.window_ms,
        )
        return match is not None

    def is_duplicate(self, session: Session, candidate: SemanticCandidate, now_ms: int) -> str | None:
        """Return which signal marks ``candidate`` as a duplicate, or ``None``."""

        if self.similar_transaction(session, candidate):
            return SIMILAR_TRANSACTION
        if self.markers.contains(
            session, SCOPE_RECENT, candidate.recent_key, since_ms=now_ms - self.window_ms
        ):
            return RECENT_MARKER
        if self.markers.contains(
            session,
            SCOPE_CONTENT,
            candidate.content_digest,
            since_ms=now_ms - self.content_retention_ms,
        ):
            return CONTENT_MARKER
        return None

    def claim(self, session: Session, candidate: SemanticCandidate, now_ms: int) -> bool:
        """Claim both semantic markers; False when either is already held."""

        if not self.markers.claim(
            session,
            SCOPE_RECENT,
            candidate.recent_key,
            now_ms,
            stale_before_ms=now_ms - self.window_ms,
        ):
            return False
        return self.markers.claim(
            session,
            SCOPE_CONTENT,
            candidate.content_digest,
            now_ms,
            stale_before_ms=now_ms - self.content_retention_ms,
        )

    def cleanup(self, session: Session, now_ms: int) -> int:
        removed = self.markers.delete_older_than(session, SCOPE_RECENT, now_ms - 2 * self.window_ms)
        removed += self.markers.delete_older_than(
            session, SCOPE_CONTENT, now_ms - self.content_retention_ms
        )
        if removed:
            logger.debug("evicted %d semantic markers", removed)
        return removed


def duplicate_stats(session: Session, marker_store: MarkerStore) -> dict[str, int]:
    """Marker rows per scope; scopes without rows report zero."""

    counts = marker_store.counts_by_scope(session)
    return {scope: counts.get(scope, 0) for scope in SCOPES}


__all__ = [
    "CONTENT_MARKER",
    "RECENT_MARKER",
    "SCOPES",
    "SCOPE_CONTENT",
    "SCOPE_MESSAGE",
    "SCOPE_RECENT",
    "SIMILAR_TRANSACTION",
    "SemanticCandidate",
    "SemanticDuplicateDetector",
    "SyntacticDuplicateDetector",
    "content_digest",
    "duplicate_stats",
    "message_digest",
    "minute_bucket",
    "normalize_body",
    "normalize_sender",
    "recent_key",
]
