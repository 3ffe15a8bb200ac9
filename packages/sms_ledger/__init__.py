"""Public interface for the ``sms_ledger`` package.

Turns bank and payment-provider text messages into ledger transactions:
filter, de-duplicate, parse, validate, resolve account and category, then
persist together with the account balance change. There is no runtime logic
here, only symbol re-exports.
"""

from .config import LedgerConfig
from .ledger import create_account, delete_transaction, record_transaction, update_transaction
from .models import (
    AccountRef,
    CategoryRef,
    Direction,
    InboundMessage,
    MessageSource,
    ParsedMessage,
    TransactionDraft,
    TransactionView,
)
from .pipeline import MessageProcessor, Outcome, ProcessingResult, Stage, build_processor
from .runner import process_concurrently

__all__ = [
    # Pipeline
    "LedgerConfig",
    "MessageProcessor",
    "Outcome",
    "ProcessingResult",
    "Stage",
    "build_processor",
    "process_concurrently",
    # Ledger
    "create_account",
    "delete_transaction",
    "record_transaction",
    "update_transaction",
    # Models / types
    "AccountRef",
    "CategoryRef",
    "Direction",
    "InboundMessage",
    "MessageSource",
    "ParsedMessage",
    "TransactionDraft",
    "TransactionView",
]
