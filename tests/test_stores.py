from __future__ import annotations

from decimal import Decimal

import pytest
from db.client import session_scope

from sms_ledger.models import Direction, MessageSource, TransactionDraft
from sms_ledger.stores import (
    AccountStore,
    CategoryStore,
    MarkerStore,
    SettingsStore,
    TransactionStore,
)


def _draft(amount: str, direction: Direction, at_ms: int, **kw) -> TransactionDraft:
    return TransactionDraft(
        amount=Decimal(amount),
        direction=direction,
        occurred_at_ms=at_ms,
        counterparty=kw.pop("counterparty", "Test"),
        payment_channel=kw.pop("payment_channel", "UPI"),
        **kw,
    )


def test_marker_claim_is_insert_if_absent(database_url: str):
    markers = MarkerStore()
    with session_scope(database_url=database_url) as s:
        assert markers.claim(s, "message", "abc", 1_000)
        assert not markers.claim(s, "message", "abc", 2_000)
        # Same digest in a different scope is independent.
        assert markers.claim(s, "content", "abc", 2_000)

    with session_scope(database_url=database_url) as s:
        assert markers.contains(s, "message", "abc")
        assert markers.contains(s, "message", "abc", since_ms=1_000)
        assert not markers.contains(s, "message", "abc", since_ms=1_001)
        assert markers.count(s) == 2
        assert markers.counts_by_scope(s) == {"message": 1, "content": 1}


def test_marker_stale_claim_is_refreshed(database_url: str):
    markers = MarkerStore()
    with session_scope(database_url=database_url) as s:
        assert markers.claim(s, "recent", "k", 1_000, stale_before_ms=0)
        # Still fresh: not re-claimable.
        assert not markers.claim(s, "recent", "k", 5_000, stale_before_ms=500)
        # Older than the cutoff: re-claimed with the new timestamp.
        assert markers.claim(s, "recent", "k", 9_000, stale_before_ms=2_000)
        assert markers.contains(s, "recent", "k", since_ms=9_000)


def test_marker_eviction(database_url: str):
    markers = MarkerStore()
    with session_scope(database_url=database_url) as s:
        for i in range(5):
            markers.claim(s, "message", f"d{i}", 1_000 * (i + 1))
        markers.claim(s, "content", "c", 100)

    with session_scope(database_url=database_url) as s:
        assert markers.delete_older_than(s, "message", 2_000) == 1
        assert markers.trim_to(s, "message", 2) == 2
        assert not markers.contains(s, "message", "d2")
        assert markers.contains(s, "message", "d3")
        assert markers.contains(s, "message", "d4")
        # Other scopes are untouched.
        assert markers.count(s, "content") == 1


def test_settings_round_trip(database_url: str):
    settings = SettingsStore()
    with session_scope(database_url=database_url) as s:
        assert settings.is_source_enabled(s, MessageSource.SMS)
        assert settings.get_default_account_id(s) is None

        settings.set_source_enabled(s, MessageSource.SMS, False)
        settings.set_source_enabled(s, MessageSource.SMS, False)
        settings.set_default_account_id(s, 7)

    with session_scope(database_url=database_url) as s:
        assert not settings.is_source_enabled(s, MessageSource.SMS)
        assert settings.is_source_enabled(s, MessageSource.NOTIFICATION)
        assert settings.get_default_account_id(s) == 7
        settings.set_default_account_id(s, None)

    with session_scope(database_url=database_url) as s:
        assert settings.get_default_account_id(s) is None


def test_transaction_queries(database_url: str):
    store = TransactionStore()
    with session_scope(database_url=database_url) as s:
        a = store.insert(s, _draft("100.00", Direction.EXPENSE, 10_000)).id
        store.insert(s, _draft("100.00", Direction.INCOME, 20_000))
        store.insert(
            s,
            _draft(
                "42.00",
                Direction.EXPENSE,
                30_000,
                note="SMS (VM-HDFCBK)",
                is_manual=False,
                origin_digest="d1",
            ),
        )

    with session_scope(database_url=database_url) as s:
        assert store.count(s) == 3
        assert [t.occurred_at_ms for t in store.list_between(s, 0, 25_000)] == [20_000, 10_000]

        match = store.find_similar(
            s, Direction.EXPENSE, Decimal("99.99"), Decimal("100.01"), 0, 15_000
        )
        assert match is not None and match.id == a
        assert store.find_similar(
            s, Direction.EXPENSE, Decimal("99.99"), Decimal("100.01"), 15_000, 40_000
        ) is None

        recent = store.recent_by_sender(s, "VM-HDFCBK")
        assert [t.amount for t in recent] == [Decimal("42.00")]
        assert store.has_origin_digest(s, "d1")
        assert not store.has_origin_digest(s, "d2")


def test_transaction_update_rejects_unknown_fields(database_url: str):
    store = TransactionStore()
    with session_scope(database_url=database_url) as s:
        tx_id = store.insert(s, _draft("10.00", Direction.EXPENSE, 1)).id
        store.update(s, tx_id, {"counterparty": "Renamed"})
        assert store.get(s, tx_id).counterparty == "Renamed"
        with pytest.raises(ValueError, match="origin_digest"):
            store.update(s, tx_id, {"origin_digest": "x"})


def test_account_and_category_stores(database_url: str):
    accounts = AccountStore()
    categories = CategoryStore()
    with session_scope(database_url=database_url) as s:
        acc = accounts.insert(s, name="Wallet", balance=Decimal("10.00"))
        assert accounts.adjust_balance(s, acc.id, Decimal("-2.50"))
        assert not accounts.adjust_balance(s, acc.id + 100, Decimal("1.00"))
        assert accounts.get(s, acc.id).balance == Decimal("7.50")
        renamed = accounts.update(s, acc.id, name="Pocket")
        assert renamed is not None and renamed.name == "Pocket"

        other = categories.get_by_name(s, "Other")
        assert other is not None and other.direction is Direction.EXPENSE
        assert categories.get(s, other.id) == other
        assert len(categories.list_all(s)) == 13
