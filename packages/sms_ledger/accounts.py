"""Attribute a parsed message to one of the user's accounts.

Resolution tries progressively weaker evidence and stops at the first hit:

1. the account hint (masked tail digits) against account numbers, then
   against numbers and names by containment;
2. the sender header against a sender -> account keyword table, first on the
   raw sender (account name or type label), then on the sender with its
   operator prefix (``VM-``, ``BP-``, ...) removed (account name only);
3. the body mentioning an account name, full number, or ``x`` + last four;
4. the configured default account, if it still exists;
5. the only account, when exactly one exists;
6. the account used by the most recent pipeline transactions from this sender;
7. nothing (the transaction is recorded unlinked).
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import AccountRef
from .rules import Rule, keyword_table
from .stores import AccountStore, SettingsStore, TransactionStore

logger = get_logger("sms_ledger.accounts")

RECENT_SENDER_LOOKBACK = 10

_OPERATOR_PREFIX = re.compile(r"^(VM-|BP-|AX-|AD-|TM-|JK-|SB-|HD-)")

# Sender code -> substrings expected in the matching account's name/type.
SENDER_ACCOUNT_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("HDFCBK", ("hdfc", "hdfc bank", "hdfc savings", "hdfc current", "hd")),
    ("ICICIBK", ("icici", "icici bank", "icici savings", "icici current", "ic")),
    ("AXISBK", ("axis", "axis bank", "axis savings", "axis current", "ax")),
    ("SBIMB", ("sbi", "sbi bank", "state bank", "state bank of india", "sb")),
    ("KOTAKBK", ("kotak", "kotak bank", "kotak mahindra", "kt")),
    ("YESBANK", ("yes", "yes bank", "yb")),
    ("RBLBANK", ("rbl", "rbl bank")),
    ("PNBSMS", ("pnb", "punjab national bank", "punjab")),
    ("UNIONBK", ("union", "union bank")),
    ("CANARABK", ("canara", "canara bank")),
    ("BOBSMS", ("bob", "bank of baroda", "baroda")),
    ("IDBIBANK", ("idbi", "idbi bank")),
    ("INDUSBK", ("indus", "indusind", "indusind bank")),
    ("FEDERAL", ("federal", "federal bank")),
    ("PAYTM", ("paytm", "paytm wallet", "paytm payments bank")),
    ("PHONEPE", ("phonepe", "phone pe", "pp")),
    ("GPAY", ("gpay", "google pay", "googlepay")),
    ("AMAZON", ("amazon", "amazon pay", "amazonpay")),
    ("BHIM", ("bhim", "bhim upi")),
    ("MOBIKWIK", ("mobikwik", "mobikwik wallet")),
)

# Evaluated on the lower-cased sender; every matching code is tried in order.
SENDER_ACCOUNT_RULES: tuple[Rule[tuple[str, ...]], ...] = keyword_table(
    [(keywords, [code]) for code, keywords in SENDER_ACCOUNT_KEYWORDS]
)


def _first_with_keyword(
    accounts: Sequence[AccountRef], keywords: Sequence[str], *, include_type: bool
) -> AccountRef | None:
    for account in accounts:
        name = account.name.lower()
        type_label = account.type_label.lower()
        for keyword in keywords:
            if keyword in name or (include_type and keyword in type_label):
                return account
    return None


class AccountResolver:
    def __init__(
        self,
        account_store: AccountStore | None = None,
        settings_store: SettingsStore | None = None,
        transaction_store: TransactionStore | None = None,
    ) -> None:
        self.accounts = account_store or AccountStore()
        self.settings = settings_store or SettingsStore()
        self.transactions = transaction_store or TransactionStore()

    def resolve(
        self, session: Session, body: str, sender: str, account_hint: str | None
    ) -> AccountRef | None:
        accounts = self.accounts.list_all(session)
        if not accounts:
            return None

        found = (
            self._by_hint(accounts, account_hint)
            or self._by_sender(accounts, sender)
            or self._by_body(accounts, body)
            or self._by_default(session, accounts)
        )
        if found is not None:
            return found

        if len(accounts) == 1:
            return accounts[0]

        return self._by_recent_sender(session, accounts, sender)

    @staticmethod
    def _by_hint(accounts: Sequence[AccountRef], hint: str | None) -> AccountRef | None:
        if not hint or not hint.strip():
            return None
        for account in accounts:
            if account.account_number and account.account_number.endswith(hint):
                return account
        lower_hint = hint.lower()
        for account in accounts:
            number = (account.account_number or "").lower()
            if lower_hint in number or lower_hint in account.name.lower():
                return account
        return None

    @staticmethod
    def _by_sender(accounts: Sequence[AccountRef], sender: str) -> AccountRef | None:
        for rule in SENDER_ACCOUNT_RULES:
            if rule.predicate(sender.lower()):
                match = _first_with_keyword(accounts, rule.result, include_type=True)
                if match is not None:
                    return match

        upper = sender.upper()
        stripped = _OPERATOR_PREFIX.sub("", upper)
        if stripped == upper:
            return None
        for rule in SENDER_ACCOUNT_RULES:
            if rule.predicate(stripped.lower()):
                match = _first_with_keyword(accounts, rule.result, include_type=False)
                if match is not None:
                    return match
        return None

    @staticmethod
    def _by_body(accounts: Sequence[AccountRef], body: str) -> AccountRef | None:
        lower = body.lower()
        for account in accounts:
            if account.name.strip() and account.name.lower() in lower:
                return account
            number = (account.account_number or "").strip().lower()
            if number and (number in lower or f"x{number[-4:]}" in lower):
                return account
        return None

    def _by_default(self, session: Session, accounts: Sequence[AccountRef]) -> AccountRef | None:
        default_id = self.settings.get_default_account_id(session)
        if default_id is None:
            return None
        for account in accounts:
            if account.id == default_id:
                return account
        logger.debug("default account %s no longer exists", default_id)
        return None

    def _by_recent_sender(
        self, session: Session, accounts: Sequence[AccountRef], sender: str
    ) -> AccountRef | None:
        recent = self.transactions.recent_by_sender(session, sender, RECENT_SENDER_LOOKBACK)
        account_ids = [t.account_id for t in recent if t.account_id is not None]
        if not account_ids:
            return None
        by_id = {a.id: a for a in accounts}
        return by_id.get(account_ids[0])


__all__ = ["AccountResolver", "SENDER_ACCOUNT_KEYWORDS", "SENDER_ACCOUNT_RULES"]
