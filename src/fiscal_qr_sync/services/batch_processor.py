"""Batch QR regeneration and document sync.

The processor walks the working set of fiscal transactions one at a time.
Each record goes through the same steps:
- Skip it if the ledger already has it and duplicates are skipped
- Generate the QR image from the record's payload
- Upsert the completion ledger entry
- Push the document to the remote system

Record-level failures are folded into the ProcessingResult and never abort
the batch. Only a failure to read the working set is fatal.

The ledger and the artifact directory belong to one run at a time; callers
must not start concurrent runs against the same ledger or directory.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from fiscal_qr_sync.errors import (
    ErrorKind,
    FiscalSyncError,
    LedgerError,
    SyncFailure,
    ValidationError,
)
from fiscal_qr_sync.schemas.records import CompletedDocument, TransactionRecord

if TYPE_CHECKING:
    from fiscal_qr_sync.config import Config
    from fiscal_qr_sync.qr_codec import QRCodeCodec
    from fiscal_qr_sync.state_store import CompletionLedger
    from fiscal_qr_sync.sync_client import DocumentSyncClient
    from fiscal_qr_sync.transaction_source import SqliteTransactionSource

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "Success"
STATUS_FAILED = "Failed"


class DuplicateHandling(str, Enum):
    """What to do with a record that already has a ledger entry."""

    SKIP = "skip"
    OVERWRITE = "overwrite"
    UPDATE = "update"

    @classmethod
    def parse(cls, value: str | DuplicateHandling) -> DuplicateHandling:
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(
                f"Unknown duplicate handling {value!r}; expected skip, overwrite or update"
            ) from None


class BatchState(str, Enum):
    """Possible states of a batch run."""

    IDLE = "IDLE"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


@dataclass
class ProcessingOptions:
    """Selection and duplicate policy for a batch run.

    With process_all_records=False, only selected_record_ids are processed;
    an empty or missing id list selects nothing.
    """

    duplicate_handling: DuplicateHandling = DuplicateHandling.OVERWRITE
    process_all_records: bool = True
    selected_record_ids: list[int] | None = None

    @classmethod
    def for_ids(
        cls,
        ids: list[int],
        duplicate_handling: DuplicateHandling = DuplicateHandling.OVERWRITE,
    ) -> ProcessingOptions:
        return cls(
            duplicate_handling=duplicate_handling,
            process_all_records=False,
            selected_record_ids=list(ids),
        )


@dataclass(frozen=True)
class RecordOutcome:
    """Outcome of the single-record procedure."""

    doc_num: str
    success: bool
    skipped: bool = False
    error: str | None = None
    error_kind: ErrorKind | None = None

    @property
    def status(self) -> str:
        return STATUS_SUCCESS if self.success else STATUS_FAILED


@dataclass
class ProcessingResult:
    """Aggregate result of a batch run.

    Mutated as records complete, then frozen by finish().
    """

    total_records: int = 0
    processed: int = 0
    successful: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    is_completed: bool = False
    was_cancelled: bool = False
    start_time: datetime = field(default_factory=datetime.now)
    end_time: datetime | None = None
    _frozen: bool = field(default=False, repr=False, compare=False)

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def duration_ms(self) -> int:
        end = self.end_time or datetime.now()
        return int((end - self.start_time).total_seconds() * 1000)

    def _check_mutable(self) -> None:
        if self._frozen:
            raise RuntimeError("ProcessingResult is frozen after completion")

    def record(self, outcome: RecordOutcome) -> None:
        """Count one processed record."""
        self._check_mutable()
        self.processed += 1
        if outcome.success:
            self.successful += 1
        else:
            self.failed += 1
            if outcome.error:
                self.errors.append(outcome.error)

    def recent_errors(self, count: int = 5) -> list[str]:
        """The last `count` error messages."""
        return self.errors[-count:] if count > 0 else []

    def finish(self, was_cancelled: bool = False) -> None:
        """Stamp the end time and freeze the result."""
        self._check_mutable()
        self.is_completed = True
        self.was_cancelled = was_cancelled
        self.end_time = datetime.now()
        self._frozen = True


@dataclass(frozen=True)
class ProgressEvent:
    """Emitted after every processed record."""

    total_records: int
    processed: int
    successful: int
    failed: int
    current_doc_num: str
    status: str
    recent_errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class CompletionEvent:
    """Emitted exactly once per batch run."""

    result: ProcessingResult
    was_cancelled: bool


ProgressListener = Callable[[ProgressEvent], None]
CompletionListener = Callable[[CompletionEvent], None]


class BatchProcessor:
    """Drives QR generation, ledger writes and remote sync for a set of records.

    A single worker processes records in source order; one record's full
    lifecycle completes before the next begins. Cancellation is cooperative:
    the cancel event is checked before each record and during the pacing
    delay, never in the middle of an HTTP call.

    Usage:
        processor = BatchProcessor(source, ledger, codec, sync_client, config)
        processor.add_progress_listener(print)
        result = processor.run_batch(ProcessingOptions(), cancel_event)
    """

    def __init__(
        self,
        source: SqliteTransactionSource,
        ledger: CompletionLedger,
        codec: QRCodeCodec,
        sync_client: DocumentSyncClient,
        config: Config,
    ) -> None:
        """Initialize the processor.

        Args:
            source: Transaction source (list_all / list_by_ids).
            ledger: Completion ledger.
            codec: QR code codec.
            sync_client: Remote document client.
            config: Application configuration (sync settings, artifact
                directory, pacing delay, recent error count).
        """
        self.source = source
        self.ledger = ledger
        self.codec = codec
        self.sync_client = sync_client
        self.config = config
        self.state = BatchState.IDLE

        self._progress_listeners: list[ProgressListener] = []
        self._completion_listeners: list[CompletionListener] = []

    def add_progress_listener(self, listener: ProgressListener) -> None:
        self._progress_listeners.append(listener)

    def add_completion_listener(self, listener: CompletionListener) -> None:
        self._completion_listeners.append(listener)

    def _emit(self, listeners: list, event: ProgressEvent | CompletionEvent) -> None:
        for listener in list(listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("%s listener %r failed", type(event).__name__, listener)

    def resolve_working_set(self, options: ProcessingOptions) -> list[TransactionRecord]:
        """Records selected by options, in source order.

        Raises:
            TransactionSourceError: If the source cannot be read.
        """
        if options.process_all_records:
            return list(self.source.list_all())
        if not options.selected_record_ids:
            return []
        return list(self.source.list_by_ids(options.selected_record_ids))

    def run_batch(
        self,
        options: ProcessingOptions,
        cancel_event: threading.Event | None = None,
    ) -> ProcessingResult:
        """Process the working set selected by options.

        Args:
            options: Record selection and duplicate policy.
            cancel_event: Set to stop before the next record.

        Returns:
            The frozen ProcessingResult (also carried by the completion event).

        Raises:
            TransactionSourceError: If the working set cannot be read; nothing
                is processed and no completion event is emitted.
            RuntimeError: If a run is already in progress on this processor.
        """
        if self.state == BatchState.RUNNING:
            raise RuntimeError("A batch run is already in progress")

        cancel_event = cancel_event or threading.Event()
        result = ProcessingResult()
        duplicate_handling = DuplicateHandling.parse(options.duplicate_handling)

        logger.info(
            "Starting batch: all_records=%s, selected=%s, duplicates=%s",
            options.process_all_records,
            len(options.selected_record_ids or []),
            duplicate_handling.value,
        )

        records = self.resolve_working_set(options)
        result.total_records = len(records)

        delay = self.config.processing.pacing_delay_seconds
        recent_count = self.config.processing.recent_error_count

        self.state = BatchState.RUNNING
        try:
            if not records:
                logger.info("No transactions to process")

            for index, record in enumerate(records):
                if cancel_event.is_set():
                    logger.info(
                        "Processing cancelled after %d of %d records",
                        result.processed,
                        result.total_records,
                    )
                    break

                outcome = self.process_one(record, duplicate_handling)
                result.record(outcome)

                self._emit(
                    self._progress_listeners,
                    ProgressEvent(
                        total_records=result.total_records,
                        processed=result.processed,
                        successful=result.successful,
                        failed=result.failed,
                        current_doc_num=record.ts_num,
                        status=outcome.status,
                        recent_errors=tuple(result.recent_errors(recent_count)),
                    ),
                )

                # Pacing against the remote system; returns early on cancel
                if index < len(records) - 1 and delay > 0:
                    cancel_event.wait(delay)
        except BaseException:
            self.state = BatchState.IDLE
            raise

        was_cancelled = result.processed < result.total_records
        result.finish(was_cancelled=was_cancelled)
        self.state = BatchState.CANCELLED if was_cancelled else BatchState.COMPLETED

        logger.info(
            "Processing %s. Total: %d, Processed: %d, Successful: %d, Failed: %d (%dms)",
            "cancelled" if was_cancelled else "completed",
            result.total_records,
            result.processed,
            result.successful,
            result.failed,
            result.duration_ms,
        )

        self._emit(
            self._completion_listeners,
            CompletionEvent(result=result, was_cancelled=was_cancelled),
        )
        return result

    def process_one(
        self,
        record: TransactionRecord,
        duplicate_handling: DuplicateHandling = DuplicateHandling.OVERWRITE,
    ) -> RecordOutcome:
        """Run the full pipeline for one record.

        Never raises: every fault becomes a failed RecordOutcome whose error
        names the document number.
        """
        doc_num = record.ts_num

        try:
            existing = self.ledger.get(doc_num)
            if existing is not None and duplicate_handling == DuplicateHandling.SKIP:
                logger.info("Skipping existing document: %s", doc_num)
                return RecordOutcome(doc_num=doc_num, success=True, skipped=True)

            if not record.has_payload:
                raise ValidationError("no QR code payload to encode")

            qr_path = self.codec.encode(record.qr_code, doc_num, self.config.paths.qr_codes_path)

            entry = CompletedDocument.from_record(record, qr_path, existing)
            if not self.ledger.upsert(entry):
                raise LedgerError("failed to save completed document")

            if not self.sync_client.update_document(record, qr_path, self.config.sync):
                raise SyncFailure("failed to update document on the remote system")

        except FiscalSyncError as e:
            logger.warning("Transaction %s failed: %s", doc_num, e.message)
            return RecordOutcome(
                doc_num=doc_num,
                success=False,
                error=f"Transaction {doc_num}: {e.message}",
                error_kind=e.kind,
            )
        except Exception as e:
            logger.exception("Failed to process transaction %s", doc_num)
            return RecordOutcome(
                doc_num=doc_num,
                success=False,
                error=f"Transaction {doc_num}: {e}",
                error_kind=ErrorKind.UNEXPECTED,
            )

        logger.info("Successfully processed transaction: %s", doc_num)
        return RecordOutcome(doc_num=doc_num, success=True)
