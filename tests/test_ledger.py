from __future__ import annotations

from decimal import Decimal

import pytest
from db.client import session_scope

from sms_ledger.ledger import (
    create_account,
    delete_transaction,
    record_transaction,
    signed_effect,
    update_transaction,
)
from sms_ledger.models import Direction, TransactionDraft
from sms_ledger.stores import CategoryStore, TransactionStore
from tests.helpers.db import account_balance, add_account, transaction_count


def _draft(amount: str, direction: Direction, account_id: int | None, **kw) -> TransactionDraft:
    return TransactionDraft(
        amount=Decimal(amount),
        direction=direction,
        occurred_at_ms=kw.pop("occurred_at_ms", 1_000),
        counterparty="Test",
        payment_channel="UPI",
        account_id=account_id,
        **kw,
    )


def _record(database_url: str, draft: TransactionDraft) -> int:
    with session_scope(database_url=database_url) as s:
        return record_transaction(s, draft).id


def test_signed_effect():
    assert signed_effect(Direction.EXPENSE, Decimal("10.00")) == Decimal("-10.00")
    assert signed_effect(Direction.INCOME, Decimal("10.00")) == Decimal("10.00")


def test_record_adjusts_balance(database_url: str):
    acc = add_account(database_url, "Savings", balance="1000")
    _record(database_url, _draft("250.25", Direction.EXPENSE, acc.id))
    _record(database_url, _draft("100.00", Direction.INCOME, acc.id))
    assert account_balance(database_url, acc.id) == Decimal("849.75")


def test_unlinked_transaction_has_no_balance_effect(database_url: str):
    acc = add_account(database_url, "Savings", balance="1000")
    tx_id = _record(database_url, _draft("10.00", Direction.EXPENSE, None))
    with session_scope(database_url=database_url) as s:
        assert TransactionStore().get(s, tx_id).account_id is None
    assert account_balance(database_url, acc.id) == Decimal("1000.00")


def test_update_moves_effect_between_accounts_and_directions(database_url: str):
    a = add_account(database_url, "A", balance="500")
    b = add_account(database_url, "B", balance="500")
    tx_id = _record(database_url, _draft("100.00", Direction.EXPENSE, a.id))

    with session_scope(database_url=database_url) as s:
        update_transaction(s, tx_id, amount=Decimal("120.00"))
    assert account_balance(database_url, a.id) == Decimal("380.00")

    with session_scope(database_url=database_url) as s:
        update_transaction(s, tx_id, account_id=b.id, direction=Direction.INCOME)
    assert account_balance(database_url, a.id) == Decimal("500.00")
    assert account_balance(database_url, b.id) == Decimal("620.00")

    with session_scope(database_url=database_url) as s:
        view = TransactionStore().get(s, tx_id)
    assert view.direction is Direction.INCOME
    assert view.amount == Decimal("120.00")


def test_delete_reverts_balance(database_url: str):
    acc = add_account(database_url, "Savings", balance="1000")
    tx_id = _record(database_url, _draft("300.00", Direction.EXPENSE, acc.id))
    assert account_balance(database_url, acc.id) == Decimal("700.00")

    with session_scope(database_url=database_url) as s:
        assert delete_transaction(s, tx_id)
        assert not delete_transaction(s, tx_id)
    assert account_balance(database_url, acc.id) == Decimal("1000.00")
    assert transaction_count(database_url) == 0


def test_missing_account_rolls_back_the_insert(database_url: str):
    with pytest.raises(ValueError, match="account 404 does not exist"):
        _record(database_url, _draft("10.00", Direction.EXPENSE, 404))
    assert transaction_count(database_url) == 0


def test_category_direction_must_match(database_url: str):
    with session_scope(database_url=database_url) as s:
        salary = CategoryStore().get_by_name(s, "Salary")
    assert salary is not None

    with pytest.raises(ValueError, match="is income"):
        _record(database_url, _draft("10.00", Direction.EXPENSE, None, category_id=salary.id))
    assert transaction_count(database_url) == 0


def test_amount_must_be_positive(database_url: str):
    with pytest.raises(ValueError, match="must be positive"):
        _record(database_url, _draft("0", Direction.EXPENSE, None))


def test_update_unknown_transaction(database_url: str):
    with session_scope(database_url=database_url) as s, pytest.raises(LookupError):
        update_transaction(s, 12345, amount=Decimal("1.00"))


def test_create_account_validates_input(database_url: str):
    with session_scope(database_url=database_url) as s:
        acc = create_account(s, "  Wallet  ", account_number="  ", opening_balance="1,000.5")
        assert acc.name == "Wallet"
        assert acc.account_number is None
        assert acc.balance == Decimal("1000.50")
        with pytest.raises(ValueError):
            create_account(s, "   ")
        with pytest.raises(ValueError):
            create_account(s, "Broken", opening_balance="abc")
