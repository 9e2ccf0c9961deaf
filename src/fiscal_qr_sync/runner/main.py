"""
CLI main entry point.
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path

from ..config import Config, ConfigValidationError, create_default_config, load_config
from ..errors import FiscalSyncError, TransactionSourceError
from ..qr_codec import QRCodeCodec
from ..services import (
    BatchProcessor,
    CompletionEvent,
    DuplicateHandling,
    ProcessingOptions,
    ProgressEvent,
)
from ..state_store import CompletionLedger
from ..sync_client import DocumentSyncClient
from ..transaction_source import SqliteTransactionSource

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def parse_ids(value: str) -> list[int]:
    """Parse a comma-separated id list ("1,2,5")."""
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid id list: {value!r}") from None


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="fiscal-qr-sync",
        description="Regenerate fiscal QR codes and sync them to the remote document endpoint",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # run command
    run_parser = subparsers.add_parser("run", help="Regenerate and sync a batch of records")
    run_parser.add_argument(
        "--ids",
        type=parse_ids,
        default=None,
        help="Comma-separated record ids (default: all records)",
    )
    run_parser.add_argument(
        "--duplicates",
        choices=[d.value for d in DuplicateHandling],
        default=None,
        help="Handling of documents already in the ledger (default: from config)",
    )

    # test-connection command
    subparsers.add_parser("test-connection", help="Probe the remote document endpoint")

    # delete command
    delete_parser = subparsers.add_parser(
        "delete", help="Delete a document on the remote system"
    )
    delete_parser.add_argument("doc_num", help="Document number (vbeln)")

    # status command
    status_parser = subparsers.add_parser("status", help="Show source and ledger statistics")
    status_parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Number of latest ledger entries to show (default: 10)",
    )

    # init-config command
    subparsers.add_parser("init-config", help="Write a default config file")

    return parser


def build_processor(config: Config, sync_client: DocumentSyncClient) -> BatchProcessor:
    """Wire the batch processor from configuration."""
    return BatchProcessor(
        source=SqliteTransactionSource(config.paths.transaction_db_path),
        ledger=CompletionLedger(config.paths.ledger_db_path),
        codec=QRCodeCodec(),
        sync_client=sync_client,
        config=config,
    )


def cmd_run(config: Config, ids: list[int] | None, duplicates: str | None) -> int:
    """Run a batch."""
    config.require_valid()

    duplicate_handling = DuplicateHandling.parse(
        duplicates or config.processing.duplicate_handling
    )
    if ids is None:
        options = ProcessingOptions(duplicate_handling=duplicate_handling)
        print("🚀 Processing all records...")
    else:
        options = ProcessingOptions.for_ids(ids, duplicate_handling)
        print(f"🚀 Processing {len(ids)} selected record(s)...")

    cancel_event = threading.Event()

    def _request_cancel(signum, frame) -> None:
        print("\n⏹ Cancelling after the current record...")
        cancel_event.set()

    # Signal handlers can only be installed from the main thread
    install_handler = threading.current_thread() is threading.main_thread()
    previous_handler = signal.signal(signal.SIGINT, _request_cancel) if install_handler else None

    def _on_progress(event: ProgressEvent) -> None:
        marker = "✓" if event.status == "Success" else "❌"
        print(
            f"  {marker} [{event.processed}/{event.total_records}] {event.current_doc_num}"
            f" ({event.successful} ok, {event.failed} failed)"
        )
        if event.status != "Success" and event.recent_errors:
            print(f"     → {event.recent_errors[-1]}")

    def _on_completion(event: CompletionEvent) -> None:
        result = event.result
        print()
        print("📊 Batch Results")
        print("=" * 40)
        print(f"  Status:     {'cancelled' if event.was_cancelled else 'completed'}")
        print(f"  Total:      {result.total_records}")
        print(f"  Processed:  {result.processed}")
        print(f"  Successful: {result.successful}")
        print(f"  Failed:     {result.failed}")
        print(f"  Duration:   {result.duration_ms}ms")
        if result.errors:
            print()
            print("⚠️  Errors encountered:")
            for error in result.errors:
                print(f"   - {error}")

    try:
        with DocumentSyncClient(config.sync) as sync_client:
            processor = build_processor(config, sync_client)
            processor.add_progress_listener(_on_progress)
            processor.add_completion_listener(_on_completion)
            result = processor.run_batch(options, cancel_event)
    except TransactionSourceError as e:
        print(f"❌ Cannot read transactions: {e}")
        return 1
    finally:
        if install_handler:
            signal.signal(signal.SIGINT, previous_handler)

    return 1 if result.failed else 0


def cmd_test_connection(config: Config) -> int:
    """Probe the remote endpoint."""
    print(f"🔌 Testing connection to {config.sync.documents_url}...")

    with DocumentSyncClient(config.sync) as client:
        connected, message, raw_body = client.test_connection()

    print(f"{'✓' if connected else '❌'} {message}")
    if raw_body:
        logger.debug("Response body: %s", raw_body[:2000])
    return 0 if connected else 1


def cmd_delete(config: Config, doc_num: str) -> int:
    """Delete a document on the remote system."""
    print(f"🗑 Deleting document {doc_num}...")

    with DocumentSyncClient(config.sync) as client:
        outcome = client.remove_document(doc_num)

    if outcome.success:
        print(f"✓ Deleted document {doc_num}")
        return 0
    print(f"❌ Failed to delete document {doc_num}: {outcome.message}")
    return 1


def cmd_status(config: Config, limit: int) -> int:
    """Show source and ledger statistics."""
    ledger = CompletionLedger(config.paths.ledger_db_path)
    source = SqliteTransactionSource(config.paths.transaction_db_path)

    try:
        source_count: int | str = source.count()
    except TransactionSourceError as e:
        source_count = f"unavailable ({e})"

    print("\n📊 Pipeline Status")
    print("=" * 40)
    print(f"  Source transactions:  {source_count}")
    print(f"  Completed documents:  {ledger.count()}")
    print(f"  QR codes directory:   {config.paths.qr_codes_path}")

    latest = ledger.list_all(limit=limit)
    if latest:
        print()
        print("  Latest completed documents:")
        for entry in latest:
            print(f"    {entry.timestamp}  {entry.doc_num}  {entry.qr_code_path or '-'}")
    print()

    return 0


def cmd_init_config(config_path: Path) -> int:
    """Write a default config file."""
    if config_path.exists():
        print(f"❌ {config_path} already exists")
        return 1
    create_default_config(config_path)
    print(f"✓ Wrote default config to {config_path}")
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config)

    # Load config
    try:
        config = load_config(parsed.config)
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    # Route to command
    try:
        if parsed.command == "run":
            return cmd_run(config, parsed.ids, parsed.duplicates)
        elif parsed.command == "test-connection":
            return cmd_test_connection(config)
        elif parsed.command == "delete":
            return cmd_delete(config, parsed.doc_num)
        elif parsed.command == "status":
            return cmd_status(config, parsed.limit)
    except ConfigValidationError as e:
        print(f"❌ Invalid configuration: {e}")
        return 1
    except FiscalSyncError as e:
        print(f"❌ {e}")
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
