"""
Error taxonomy shared by the pipeline components.

Every exception carries an ErrorKind so that record-level failures can be
folded into outcome objects without losing their classification.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Classification of a pipeline failure."""

    VALIDATION = "VALIDATION"
    ARTIFACT = "ARTIFACT"
    LEDGER = "LEDGER"
    SYNC_CONFLICT = "SYNC_CONFLICT"
    SYNC_FAILURE = "SYNC_FAILURE"
    TRANSPORT = "TRANSPORT"
    PROTOCOL = "PROTOCOL"
    SOURCE = "SOURCE"
    UNEXPECTED = "UNEXPECTED"


class FiscalSyncError(Exception):
    """Base exception for pipeline errors."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(FiscalSyncError):
    """A record or argument is missing required data."""

    kind = ErrorKind.VALIDATION


class ArtifactError(FiscalSyncError):
    """Writing a QR image to the artifact directory failed."""

    kind = ErrorKind.ARTIFACT


class LedgerError(FiscalSyncError):
    """The completion ledger could not be read or written."""

    kind = ErrorKind.LEDGER


class TransactionSourceError(FiscalSyncError):
    """The transaction source could not be read."""

    kind = ErrorKind.SOURCE


class SyncConflict(FiscalSyncError):
    """Remote system already holds a document under this key (HTTP 409)."""

    kind = ErrorKind.SYNC_CONFLICT

    def __init__(self, doc_num: str):
        self.doc_num = doc_num
        super().__init__(f"Document {doc_num} already exists on the remote system")


class SyncFailure(FiscalSyncError):
    """Remote system did not accept the document."""

    kind = ErrorKind.SYNC_FAILURE

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class TransportError(FiscalSyncError):
    """Timeout, refused connection or TLS failure."""

    kind = ErrorKind.TRANSPORT


class ProtocolError(FiscalSyncError):
    """Unexpected status code or malformed response body."""

    kind = ErrorKind.PROTOCOL

    def __init__(self, message: str, status_code: int | None = None, body: str | None = None):
        self.status_code = status_code
        self.body = body
        super().__init__(message)
