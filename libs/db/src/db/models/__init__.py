"""Shared SQLAlchemy models registry for the ledger database.

Currently includes the ledger domain models used by ``sms_ledger``.
"""

from .ledger import (
    AppSetting,
    Base,
    DedupMarker,
    LedgerAccount,
    LedgerCategory,
    LedgerTransaction,
)

__all__ = [
    "AppSetting",
    "Base",
    "DedupMarker",
    "LedgerAccount",
    "LedgerCategory",
    "LedgerTransaction",
]
