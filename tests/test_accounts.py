from __future__ import annotations

from decimal import Decimal

from db.client import session_scope

from sms_ledger.accounts import AccountResolver
from sms_ledger.models import Direction, TransactionDraft
from sms_ledger.stores import SettingsStore, TransactionStore
from tests.helpers.db import add_account

NEUTRAL_BODY = "Rs 100.00 debited from A/c XX9999"


def _resolve(database_url: str, body: str, sender: str, hint: str | None):
    with session_scope(database_url=database_url) as s:
        return AccountResolver().resolve(s, body, sender, hint)


def test_no_accounts_resolves_to_none(database_url: str):
    assert _resolve(database_url, NEUTRAL_BODY, "VM-HDFCBK", "9999") is None


def test_sole_account_is_the_last_resort(database_url: str):
    only = add_account(database_url, "Cash Wallet")
    # Hint matches nothing, sender maps to nothing, body names nothing.
    found = _resolve(database_url, NEUTRAL_BODY, "XY-UNKNWN", "9999")
    assert found is not None and found.id == only.id


def test_hint_matches_account_number_suffix(database_url: str):
    add_account(database_url, "HDFC Savings", account_number="50100011112222")
    target = add_account(database_url, "Salary Account", account_number="00001234")
    found = _resolve(database_url, "Rs 10 debited from A/c XX1234", "VM-HDFCBK", "1234")
    assert found is not None and found.id == target.id


def test_sender_mapping_matches_name_or_type(database_url: str):
    add_account(database_url, "HDFC Savings")
    icici = add_account(database_url, "Travel Card", type_label="ICICI Credit Card")
    found = _resolve(database_url, "Rs 10 spent", "VM-ICICIBK", None)
    assert found is not None and found.id == icici.id


def test_body_mentions_account_name(database_url: str):
    add_account(database_url, "Savings")
    groceries = add_account(database_url, "Groceries Wallet")
    found = _resolve(database_url, "Rs 10 paid from Groceries Wallet", "XY-UNKNWN", None)
    assert found is not None and found.id == groceries.id


def test_default_account_before_sole_account_rules(database_url: str):
    add_account(database_url, "First")
    second = add_account(database_url, "Second")
    with session_scope(database_url=database_url) as s:
        SettingsStore().set_default_account_id(s, second.id)

    found = _resolve(database_url, NEUTRAL_BODY, "XY-UNKNWN", "9999")
    assert found is not None and found.id == second.id


def test_stale_default_is_ignored(database_url: str):
    add_account(database_url, "First")
    add_account(database_url, "Second")
    with session_scope(database_url=database_url) as s:
        SettingsStore().set_default_account_id(s, 999)

    assert _resolve(database_url, NEUTRAL_BODY, "XY-UNKNWN", "9999") is None


def test_recent_transactions_from_sender(database_url: str):
    add_account(database_url, "First")
    second = add_account(database_url, "Second")
    with session_scope(database_url=database_url) as s:
        TransactionStore().insert(
            s,
            TransactionDraft(
                amount=Decimal("5.00"),
                direction=Direction.EXPENSE,
                occurred_at_ms=1,
                counterparty="Unknown",
                payment_channel="SMS",
                note="SMS (XY-UNKNWN)",
                account_id=second.id,
                is_manual=False,
            ),
        )

    found = _resolve(database_url, NEUTRAL_BODY, "XY-UNKNWN", "9999")
    assert found is not None and found.id == second.id
