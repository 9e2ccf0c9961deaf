"""
Data model for fiscal records, ledger entries and remote wire shapes.
"""

from .records import DEFAULT_DOC_TYPE, CompletedDocument, TransactionRecord
from .sync_payload import DeletePayload, SyncPayload, SyncResponse

__all__ = [
    "DEFAULT_DOC_TYPE",
    "CompletedDocument",
    "TransactionRecord",
    "DeletePayload",
    "SyncPayload",
    "SyncResponse",
]
