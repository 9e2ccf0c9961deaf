"""
Remote document endpoint client.

Provides:
- Update a document (POST ?sap-client=...), with delete-then-retry on conflict
- Delete a document (DELETE ?sap-client=...)
- Connection probe (GET ?sap-client=...&fromdate=...&todate=...)

Transport failures are reported as failed outcomes, never raised.
"""

from .client import ConnectionTestResult, DocumentSyncClient, SyncOutcome

__all__ = [
    "DocumentSyncClient",
    "ConnectionTestResult",
    "SyncOutcome",
]
