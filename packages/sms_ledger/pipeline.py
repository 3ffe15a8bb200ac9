# ruff: noqa: I001
"""Message processing orchestrator.

``MessageProcessor.process`` drives one inbound message through the stages

    RECEIVED -> FILTERED -> SYNTACTIC_CHECKED -> PARSED -> VALIDATED
             -> SEMANTIC_CHECKED -> RESOLVED -> PERSISTED -> RECORDED

and returns a ``ProcessingResult`` instead of raising. Policy rejections end
in ``Outcome.SKIPPED``; an unparsable body or a database error ends in
``Outcome.FAILED``. Either way nothing is written: the whole message is one
``session_scope`` and the duplicate-marker claims, the transaction insert and
the balance update commit together or not at all.

Duplicate checks run twice. The read-only checks reject cheaply; the claims
inside the write unit are atomic insert-if-absent statements, so when two
deliveries of the same event race past the read-only checks exactly one of
them commits and the other ends as SKIPPED.
"""

from __future__ import annotations

import enum
import time
from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from db.client import session_scope
from .accounts import AccountResolver
from .categories import CategoryResolver
from .config import LedgerConfig
from .duplicates import SemanticCandidate, SemanticDuplicateDetector, SyntacticDuplicateDetector
from .ledger import record_transaction
from .logging_setup import get_logger
from .message_filter import MessageFilter
from .models import InboundMessage, ParsedMessage, TransactionDraft
from .parser import TransactionParser
from .stores import AccountStore, CategoryStore, MarkerStore, SettingsStore, TransactionStore
from .validator import is_valid_transaction

logger = get_logger("sms_ledger.pipeline")

type Clock = Callable[[], int]


def wall_clock_ms() -> int:
    return time.time_ns() // 1_000_000


class Stage(enum.StrEnum):
    RECEIVED = "received"
    FILTERED = "filtered"
    SYNTACTIC_CHECKED = "syntactic_checked"
    PARSED = "parsed"
    VALIDATED = "validated"
    SEMANTIC_CHECKED = "semantic_checked"
    RESOLVED = "resolved"
    PERSISTED = "persisted"
    RECORDED = "recorded"


class Outcome(enum.StrEnum):
    RECORDED = "recorded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class ProcessingResult:
    """Terminal state of one message.

    ``stage`` is the last stage the message completed; for a recorded message
    it is ``Stage.RECORDED``.
    """

    outcome: Outcome
    stage: Stage
    reason: str
    transaction_id: int | None = None
    account_id: int | None = None
    category_id: int | None = None
    parsed: ParsedMessage | None = None

    @property
    def recorded(self) -> bool:
        return self.outcome is Outcome.RECORDED


class _ClaimLost(Exception):
    """A concurrent delivery committed first; abort the unit of work."""

    def __init__(self, stage: Stage, reason: str) -> None:
        super().__init__(reason)
        self.stage = stage
        self.reason = reason


def _skipped(stage: Stage, reason: str, parsed: ParsedMessage | None = None) -> ProcessingResult:
    return ProcessingResult(Outcome.SKIPPED, stage, reason, parsed=parsed)


class MessageProcessor:
    def __init__(
        self,
        *,
        database_url: str,
        message_filter: MessageFilter,
        parser: TransactionParser,
        syntactic: SyntacticDuplicateDetector,
        semantic: SemanticDuplicateDetector,
        account_resolver: AccountResolver,
        category_resolver: CategoryResolver,
        transaction_store: TransactionStore,
        settings_store: SettingsStore,
        clock: Clock = wall_clock_ms,
    ) -> None:
        self.database_url = database_url
        self.message_filter = message_filter
        self.parser = parser
        self.syntactic = syntactic
        self.semantic = semantic
        self.account_resolver = account_resolver
        self.category_resolver = category_resolver
        self.transactions = transaction_store
        self.settings = settings_store
        self.clock = clock

    # -- public API ---------------------------------------------------------

    def process(self, message: InboundMessage) -> ProcessingResult:
        now_ms = self.clock()
        try:
            with session_scope(database_url=self.database_url) as session:
                result = self._process(session, message, now_ms)
        except _ClaimLost as lost:
            logger.info("skipped message from %s: %s", message.sender, lost.reason)
            return _skipped(lost.stage, lost.reason)
        except (SQLAlchemyError, ValueError) as e:
            logger.error("failed to persist message from %s: %s", message.sender, e)
            return ProcessingResult(Outcome.FAILED, Stage.RESOLVED, f"persistence error: {e}")

        if result.outcome is Outcome.RECORDED:
            logger.info(
                "recorded transaction %s from %s (account=%s, category=%s)",
                result.transaction_id,
                message.sender,
                result.account_id,
                result.category_id,
            )
            self._cleanup_quietly(now_ms)
        elif result.outcome is Outcome.SKIPPED:
            logger.info("skipped message from %s: %s", message.sender, result.reason)
        else:
            logger.warning("could not process message from %s: %s", message.sender, result.reason)
        return result

    def cleanup(self, now_ms: int | None = None) -> dict[str, int]:
        """Evict expired duplicate markers; return rows removed per layer."""

        now_ms = self.clock() if now_ms is None else now_ms
        with session_scope(database_url=self.database_url) as session:
            return {
                "syntactic": self.syntactic.cleanup(session, now_ms),
                "semantic": self.semantic.cleanup(session, now_ms),
            }

    # -- stages -------------------------------------------------------------

    def _process(self, session: Session, message: InboundMessage, now_ms: int) -> ProcessingResult:
        sender, body = message.sender, message.body

        if not self.settings.is_source_enabled(session, message.source):
            return _skipped(Stage.RECEIVED, f"{message.source.value} parsing disabled")

        verdict = self.message_filter.check(sender, body)
        if not verdict.accepted:
            return _skipped(Stage.RECEIVED, verdict.reason)

        digest = self.syntactic.digest(sender, body, message.timestamp_ms)
        if self.syntactic.is_duplicate(session, digest) or self.transactions.has_origin_digest(
            session, digest
        ):
            return _skipped(Stage.FILTERED, "syntactic duplicate")

        parsed = self.parser.parse(body, sender)
        if parsed is None:
            return ProcessingResult(Outcome.FAILED, Stage.SYNTACTIC_CHECKED, "unparsable message")

        validity = is_valid_transaction(body, parsed.amount, parsed.direction)
        if not validity.valid:
            return _skipped(Stage.PARSED, f"invalid transaction: {validity.reason}", parsed)

        candidate = SemanticCandidate(
            amount=parsed.amount,
            direction=parsed.direction,
            timestamp_ms=message.timestamp_ms,
            sender=sender,
            body=body,
        )
        signal = self.semantic.is_duplicate(session, candidate, now_ms)
        if signal is not None:
            return _skipped(Stage.VALIDATED, f"semantic duplicate ({signal})", parsed)

        account = self.account_resolver.resolve(session, body, sender, parsed.account_hint)
        category = self.category_resolver.resolve(
            session, parsed.counterparty, body, parsed.direction
        )

        draft = TransactionDraft(
            amount=parsed.amount,
            direction=parsed.direction,
            occurred_at_ms=message.timestamp_ms,
            counterparty=parsed.counterparty,
            payment_channel=parsed.payment_channel,
            note=f"{message.source.label} ({sender})",
            category_id=category.id if category is not None else None,
            account_id=account.id if account is not None else None,
            is_manual=False,
            origin_digest=digest,
        )

        # Claims take the write lock first; everything below is serialized
        # against concurrent deliveries.
        if not self.syntactic.claim(session, digest, now_ms):
            raise _ClaimLost(Stage.RESOLVED, "syntactic duplicate (concurrent delivery)")
        if self.semantic.similar_transaction(session, candidate):
            raise _ClaimLost(Stage.RESOLVED, "semantic duplicate (concurrent delivery)")
        if not self.semantic.claim(session, candidate, now_ms):
            raise _ClaimLost(Stage.RESOLVED, "semantic duplicate (marker claimed)")

        row = record_transaction(session, draft)
        return ProcessingResult(
            Outcome.RECORDED,
            Stage.RECORDED,
            "recorded",
            transaction_id=row.id,
            account_id=draft.account_id,
            category_id=draft.category_id,
            parsed=parsed,
        )

    def _cleanup_quietly(self, now_ms: int) -> None:
        try:
            self.cleanup(now_ms)
        except SQLAlchemyError as e:
            logger.warning("duplicate marker cleanup failed: %s", e)


def build_processor(config: LedgerConfig, *, clock: Clock = wall_clock_ms) -> MessageProcessor:
    """Wire a ``MessageProcessor`` with the default collaborators for ``config``."""

    transactions = TransactionStore()
    markers = MarkerStore()
    settings = SettingsStore()
    return MessageProcessor(
        database_url=config.database_url,
        message_filter=MessageFilter(),
        parser=TransactionParser(),
        syntactic=SyntacticDuplicateDetector(
            markers,
            cap=config.message_marker_cap,
            retention_ms=config.message_retention_ms,
        ),
        semantic=SemanticDuplicateDetector(
            transactions,
            markers,
            window_ms=config.duplicate_window_ms,
            amount_tolerance=config.amount_tolerance,
            content_retention_ms=config.content_retention_ms,
        ),
        account_resolver=AccountResolver(AccountStore(), settings, transactions),
        category_resolver=CategoryResolver(CategoryStore()),
        transaction_store=transactions,
        settings_store=settings,
        clock=clock,
    )


__all__ = [
    "Clock",
    "MessageProcessor",
    "Outcome",
    "ProcessingResult",
    "Stage",
    "build_processor",
    "wall_clock_ms",
]
