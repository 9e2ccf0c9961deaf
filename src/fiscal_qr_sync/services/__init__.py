"""Batch processing services."""

from fiscal_qr_sync.services.batch_processor import (
    BatchProcessor,
    BatchState,
    CompletionEvent,
    DuplicateHandling,
    ProcessingOptions,
    ProcessingResult,
    ProgressEvent,
    RecordOutcome,
)

__all__ = [
    "BatchProcessor",
    "BatchState",
    "CompletionEvent",
    "DuplicateHandling",
    "ProcessingOptions",
    "ProcessingResult",
    "ProgressEvent",
    "RecordOutcome",
]
