"""db: shared database library (SQLAlchemy) for the ledger.

Public exports
--------------
- ``Base`` and ``metadata`` for schema creation
- ORM models in ``db.models.ledger`` (re-exported for convenience)
- Engine/session helpers in ``db.client``
"""

from __future__ import annotations

from .models.ledger import (
    AppSetting,
    Base,
    DedupMarker,
    LedgerAccount,
    LedgerCategory,
    LedgerTransaction,
)

# Re-export SQLAlchemy metadata for schema creation and inspection
metadata = Base.metadata

__all__ = [
    "AppSetting",
    "Base",
    "DedupMarker",
    "LedgerAccount",
    "LedgerCategory",
    "LedgerTransaction",
    "metadata",
]
