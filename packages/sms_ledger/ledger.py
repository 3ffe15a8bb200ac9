"""Ledger mutations that keep account balances consistent.

Every function here runs inside the caller's session and never commits; wrap
calls in ``db.client.session_scope`` so the transaction row change and the
balance adjustment commit (or roll back) together.

Balance rule: an expense subtracts its amount from the linked account and an
income adds it. An update first reverts the old effect on the old account,
then applies the new effect on the new account, so moving a transaction
between accounts or flipping its direction needs no special casing.
"""

from __future__ import annotations

import dataclasses
from decimal import Decimal
from typing import Any

from sqlalchemy.orm import Session

from db.models.ledger import LedgerTransaction

from .logging_setup import get_logger
from .models import AccountRef, Direction, TransactionDraft, to_money
from .stores import AccountStore, CategoryStore, TransactionStore

logger = get_logger("sms_ledger.ledger")

_transactions = TransactionStore()
_accounts = AccountStore()
_categories = CategoryStore()


def signed_effect(direction: Direction, amount: Decimal) -> Decimal:
    """Return the balance delta of a transaction: negative for expenses."""

    return -amount if direction is Direction.EXPENSE else amount


def _checked_amount(raw: Any) -> Decimal:
    amount = to_money(raw)
    if amount is None or amount <= 0:
        raise ValueError(f"transaction amount must be positive, got {raw!r}")
    return amount


def _check_category(session: Session, category_id: int | None, direction: Direction) -> None:
    if category_id is None:
        return
    category = _categories.get(session, category_id)
    if category is None:
        raise ValueError(f"category {category_id} does not exist")
    if category.direction is not direction:
        raise ValueError(
            f"category {category.name!r} is {category.direction.value}, "
            f"transaction is {direction.value}"
        )


def _check_account(session: Session, account_id: int | None) -> None:
    if account_id is not None and _accounts.get(session, account_id) is None:
        raise ValueError(f"account {account_id} does not exist")


def _apply(session: Session, account_id: int | None, delta: Decimal) -> None:
    if account_id is None or delta == 0:
        return
    if not _accounts.adjust_balance(session, account_id, delta):
        raise ValueError(f"account {account_id} does not exist")


def _revert(session: Session, account_id: int | None, delta: Decimal) -> None:
    # The account may have been removed since; its balance is gone with it.
    if account_id is not None and _accounts.get(session, account_id) is not None:
        _apply(session, account_id, -delta)


def record_transaction(session: Session, draft: TransactionDraft) -> LedgerTransaction:
    """Insert ``draft`` and apply its effect to the linked account."""

    amount = _checked_amount(draft.amount)
    _check_category(session, draft.category_id, draft.direction)
    _check_account(session, draft.account_id)
    if amount != draft.amount:
        draft = dataclasses.replace(draft, amount=amount)

    row = _transactions.insert(session, draft)
    _apply(session, draft.account_id, signed_effect(draft.direction, amount))
    logger.debug("recorded transaction %s (%s %s)", row.id, draft.direction.value, amount)
    return row


def update_transaction(session: Session, transaction_id: int, **changes: Any) -> LedgerTransaction:
    """Apply ``changes`` to a transaction, moving its balance effect accordingly.

    Raises
    ------
    LookupError
        When the transaction does not exist.
    ValueError
        When the resulting amount is not positive, the category direction does
        not match, or a referenced account does not exist.
    """

    row = _transactions.row(session, transaction_id)
    if row is None:
        raise LookupError(f"transaction {transaction_id} does not exist")

    old_direction = Direction(row.direction)
    old_amount = to_money(row.amount) or Decimal("0.00")
    old_account = row.account_id

    new_direction = Direction(changes.get("direction", old_direction))
    new_amount = _checked_amount(changes.get("amount", old_amount))
    new_category = changes.get("category_id", row.category_id)
    new_account = changes.get("account_id", old_account)
    _check_category(session, new_category, new_direction)
    _check_account(session, new_account)

    values = {**changes, "amount": new_amount, "direction": new_direction}
    _transactions.update(session, transaction_id, values)

    _revert(session, old_account, signed_effect(old_direction, old_amount))
    _apply(session, new_account, signed_effect(new_direction, new_amount))
    return row


def delete_transaction(session: Session, transaction_id: int) -> bool:
    """Delete a transaction and revert its balance effect; False when absent."""

    row = _transactions.row(session, transaction_id)
    if row is None:
        return False
    direction = Direction(row.direction)
    amount = to_money(row.amount) or Decimal("0.00")
    account_id = row.account_id
    _transactions.delete(session, transaction_id)
    _revert(session, account_id, signed_effect(direction, amount))
    return True


def create_account(
    session: Session,
    name: str,
    type_label: str = "",
    account_number: str | None = None,
    opening_balance: Decimal | int | str = 0,
) -> AccountRef:
    name = name.strip()
    if not name:
        raise ValueError("account name must be non-empty")
    balance = to_money(opening_balance)
    if balance is None:
        raise ValueError(f"invalid opening balance {opening_balance!r}")
    number = account_number.strip() if account_number else None
    return _accounts.insert(
        session,
        name=name,
        type_label=type_label.strip(),
        account_number=number or None,
        balance=balance,
    )


__all__ = [
    "create_account",
    "delete_transaction",
    "record_transaction",
    "signed_effect",
    "update_transaction",
]
