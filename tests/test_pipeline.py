from __future__ import annotations

from decimal import Decimal

import pytest
from db.client import session_scope

from sms_ledger.categories import CategoryResolver
from sms_ledger.config import LedgerConfig
from sms_ledger.models import InboundMessage, MessageSource
from sms_ledger.pipeline import MessageProcessor, Outcome, Stage, build_processor
from sms_ledger.runner import process_concurrently
from sms_ledger.stores import CategoryStore, MarkerStore, SettingsStore, TransactionStore
from tests.helpers.db import account_balance, add_account, marker_count, transaction_count

NOW = 1_700_000_400_000
BANK = "VM-HDFCBK"
DEBIT = "Rs. 1,234.50 debited from A/c XX1234"
CREDIT = "Rs. 5,000.00 credited to A/c XX1234 from RAHUL SHARMA on 05-01-24"


def _message(body: str = DEBIT, sender: str = BANK, ts: int = NOW - 30_000, **kw) -> InboundMessage:
    return InboundMessage(sender=sender, body=body, timestamp_ms=ts, **kw)


@pytest.fixture
def processor(database_url: str) -> MessageProcessor:
    return build_processor(LedgerConfig(database_url=database_url), clock=lambda: NOW)


@pytest.fixture
def savings(database_url: str):
    return add_account(
        database_url, "HDFC Savings", account_number="50100012341234", balance="10000"
    )


def test_expense_is_recorded_and_debits_the_account(
    processor: MessageProcessor, database_url: str, savings
):
    result = processor.process(_message())

    assert result.outcome is Outcome.RECORDED
    assert result.stage is Stage.RECORDED
    assert result.account_id == savings.id
    assert transaction_count(database_url) == 1
    assert account_balance(database_url, savings.id) == Decimal("8765.50")

    with session_scope(database_url=database_url) as s:
        tx = TransactionStore().get(s, result.transaction_id)
        other = CategoryStore().get_by_name(s, "Other")
        markers = MarkerStore().counts_by_scope(s)
    assert tx.amount == Decimal("1234.50")
    assert tx.note == "SMS (VM-HDFCBK)"
    assert not tx.is_manual
    assert tx.payment_channel == "Bank Transfer"
    assert tx.category_id == other.id
    assert tx.occurred_at_ms == NOW - 30_000
    assert markers == {"message": 1, "recent": 1, "content": 1}


def test_income_credits_the_account(processor: MessageProcessor, database_url: str, savings):
    result = processor.process(_message(CREDIT))

    assert result.recorded
    assert result.parsed.counterparty == "Rahul Sharma"
    assert account_balance(database_url, savings.id) == Decimal("15000.00")
    with session_scope(database_url=database_url) as s:
        assert CategoryStore().get(s, result.category_id).name == "Other Income"


def test_unlinked_when_no_account_exists(processor: MessageProcessor, database_url: str):
    result = processor.process(_message())
    assert result.recorded
    assert result.account_id is None
    with session_scope(database_url=database_url) as s:
        assert TransactionStore().get(s, result.transaction_id).account_id is None


@pytest.mark.parametrize(
    ("message", "outcome", "stage"),
    [
        (
            _message("Congratulations! You are a lucky winner of Rs 5000"),
            Outcome.SKIPPED,
            Stage.RECEIVED,
        ),
        (_message("Rs 500 debited", sender="+919876543210"), Outcome.SKIPPED, Stage.RECEIVED),
        (_message("Rs. 0.50 debited from A/c XX1234"), Outcome.SKIPPED, Stage.PARSED),
        (
            _message("Rs 2,000.00 received. Your balance in A/c XX1234 is updated"),
            Outcome.SKIPPED,
            Stage.PARSED,
        ),
        (
            _message("Dear customer, your A/c XX1234 statement is ready"),
            Outcome.FAILED,
            Stage.SYNTACTIC_CHECKED,
        ),
    ],
)
def test_rejected_messages_write_nothing(
    processor: MessageProcessor,
    database_url: str,
    savings,
    message: InboundMessage,
    outcome: Outcome,
    stage: Stage,
):
    result = processor.process(message)

    assert result.outcome is outcome
    assert result.stage is stage
    assert result.transaction_id is None
    assert transaction_count(database_url) == 0
    assert marker_count(database_url) == 0
    assert account_balance(database_url, savings.id) == Decimal("10000.00")


def test_identical_delivery_is_recorded_once(processor: MessageProcessor, database_url: str, savings):
    assert processor.process(_message()).recorded

    again = processor.process(_message())
    assert again.outcome is Outcome.SKIPPED
    assert again.stage is Stage.FILTERED
    assert again.reason == "syntactic duplicate"

    # Even after every marker has been evicted the stored transaction
    # remembers which message produced it.
    removed = processor.cleanup(NOW + 8 * 24 * 3600 * 1000)
    assert removed == {"syntactic": 1, "semantic": 2}
    assert marker_count(database_url) == 0
    late = processor.process(_message())
    assert late.outcome is Outcome.SKIPPED
    assert late.stage is Stage.FILTERED

    assert transaction_count(database_url) == 1
    assert account_balance(database_url, savings.id) == Decimal("8765.50")


def test_same_payment_two_minutes_apart_is_a_semantic_duplicate(
    processor: MessageProcessor, database_url: str, savings
):
    first = _message(ts=NOW - 180_000)
    second = _message(DEBIT + ".", sender="BP-HDFCBK", ts=NOW - 60_000)

    assert processor.process(first).recorded
    result = processor.process(second)

    assert result.outcome is Outcome.SKIPPED
    assert result.stage is Stage.VALIDATED
    assert result.reason == "semantic duplicate (similar_transaction)"
    assert transaction_count(database_url) == 1
    assert account_balance(database_url, savings.id) == Decimal("8765.50")


def test_parallel_deliveries_leave_one_record(
    processor: MessageProcessor, database_url: str, savings
):
    results = process_concurrently(processor, [_message()] * 6, concurrency=6)

    assert [r.outcome for r in results].count(Outcome.RECORDED) == 1
    assert [r.outcome for r in results].count(Outcome.SKIPPED) == 5
    assert transaction_count(database_url) == 1
    assert account_balance(database_url, savings.id) == Decimal("8765.50")
    with session_scope(database_url=database_url) as s:
        assert MarkerStore().counts_by_scope(s) == {"message": 1, "recent": 1, "content": 1}


def test_disabled_source_is_skipped(processor: MessageProcessor, database_url: str):
    with session_scope(database_url=database_url) as s:
        SettingsStore().set_source_enabled(s, MessageSource.SMS, False)

    skipped = processor.process(_message())
    assert skipped.outcome is Outcome.SKIPPED
    assert skipped.reason == "sms parsing disabled"

    recorded = processor.process(_message(source=MessageSource.NOTIFICATION))
    assert recorded.recorded
    with session_scope(database_url=database_url) as s:
        assert TransactionStore().get(s, recorded.transaction_id).note == "Notification (VM-HDFCBK)"


class _SalaryForEverything(CategoryResolver):
    def resolve(self, session, counterparty, body, direction):
        return self.store.get_by_name(session, "Salary")


def test_persistence_error_rolls_back_claims_and_balance(
    processor: MessageProcessor, database_url: str, savings
):
    processor.category_resolver = _SalaryForEverything()

    result = processor.process(_message())

    assert result.outcome is Outcome.FAILED
    assert result.stage is Stage.RESOLVED
    assert "is income" in result.reason
    assert transaction_count(database_url) == 0
    assert marker_count(database_url) == 0
    assert account_balance(database_url, savings.id) == Decimal("10000.00")
