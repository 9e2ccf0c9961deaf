"""
SQLite-based completion ledger.

Tables:
- CompletedDocuments: one row per document number that went through the
  pipeline (QR generated, ledger written, remote sync attempted)
"""

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from ..errors import LedgerError
from ..schemas.records import DEFAULT_DOC_TYPE, CompletedDocument

logger = logging.getLogger(__name__)

_COLUMNS = "Id, DocNum, DocType, CUIN, CUSN, FiscalSeal, QRCodePath, Timestamp"


class CompletionLedger:
    """
    Idempotency store keyed by document number.

    Absence of an entry is a normal result, not an error. Any sqlite3 failure
    is raised as LedgerError.

    The ledger is owned by a single batch run; callers serialise runs that
    share a database file.
    """

    def __init__(self, db_path: Path | str):
        """
        Initialize the ledger.

        Args:
            db_path: Path to SQLite database file (created if missing)
        """
        self.db_path = Path(db_path)
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_db()
        except (OSError, sqlite3.Error) as e:
            raise LedgerError(f"Cannot open ledger at {self.db_path}: {e}") from e

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self) -> None:
        """Initialize database schema."""
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS CompletedDocuments (
                    Id INTEGER PRIMARY KEY AUTOINCREMENT,
                    DocNum TEXT NOT NULL UNIQUE,
                    DocType TEXT NOT NULL DEFAULT 'IN',
                    CUIN TEXT NOT NULL DEFAULT '',
                    CUSN TEXT NOT NULL DEFAULT '',
                    FiscalSeal TEXT NOT NULL DEFAULT '',
                    QRCodePath TEXT,
                    Timestamp TEXT NOT NULL
                )
            """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_completed_timestamp "
                "ON CompletedDocuments(Timestamp)"
            )

    def upsert(self, entry: CompletedDocument) -> bool:
        """Insert or replace the entry for entry.doc_num.

        A single statement, so the replacement is atomic for the caller.
        When entry.doc_type is None an existing DocType is kept (new rows get
        "IN"). The Timestamp column is always stamped with the current UTC time.

        Returns:
            True if a row was affected

        Raises:
            LedgerError: On any database failure
        """
        now = datetime.now(timezone.utc).isoformat()

        try:
            with self._transaction() as conn:
                cursor = conn.execute(
                    """
                    INSERT INTO CompletedDocuments
                    (DocNum, DocType, CUIN, CUSN, FiscalSeal, QRCodePath, Timestamp)
                    VALUES (?, COALESCE(?, ?), ?, ?, ?, ?, ?)
                    ON CONFLICT(DocNum) DO UPDATE SET
                        DocType = COALESCE(?, CompletedDocuments.DocType),
                        CUIN = excluded.CUIN,
                        CUSN = excluded.CUSN,
                        FiscalSeal = excluded.FiscalSeal,
                        QRCodePath = excluded.QRCodePath,
                        Timestamp = excluded.Timestamp
                """,
                    (
                        entry.doc_num,
                        entry.doc_type,
                        DEFAULT_DOC_TYPE,
                        entry.cuin,
                        entry.cusn,
                        entry.fiscal_seal,
                        entry.qr_code_path or "",
                        now,
                        entry.doc_type,
                    ),
                )
                affected = cursor.rowcount
        except sqlite3.Error as e:
            logger.error("Failed to upsert completed document %s: %s", entry.doc_num, e)
            raise LedgerError(f"Failed to upsert completed document {entry.doc_num}: {e}") from e

        entry.timestamp = now
        logger.info("Upserted completed document: %s", entry.doc_num)
        return affected > 0

    def get(self, doc_num: str) -> CompletedDocument | None:
        """Get the entry for a document number, or None if absent."""
        try:
            with self._transaction() as conn:
                row = conn.execute(
                    f"SELECT {_COLUMNS} FROM CompletedDocuments WHERE DocNum = ?",
                    (doc_num,),
                ).fetchone()
        except sqlite3.Error as e:
            raise LedgerError(f"Failed to read completed document {doc_num}: {e}") from e

        return CompletedDocument.from_row(row) if row else None

    def exists(self, doc_num: str) -> bool:
        """Check whether a document number has a ledger entry."""
        try:
            with self._transaction() as conn:
                row = conn.execute(
                    "SELECT 1 FROM CompletedDocuments WHERE DocNum = ?", (doc_num,)
                ).fetchone()
        except sqlite3.Error as e:
            raise LedgerError(f"Failed to check completed document {doc_num}: {e}") from e

        return row is not None

    def list_all(self, limit: int | None = None) -> list[CompletedDocument]:
        """List entries, newest first."""
        query = f"SELECT {_COLUMNS} FROM CompletedDocuments ORDER BY Timestamp DESC, Id DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)

        try:
            with self._transaction() as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise LedgerError(f"Failed to list completed documents: {e}") from e

        return [CompletedDocument.from_row(row) for row in rows]

    def count(self) -> int:
        """Number of ledger entries."""
        try:
            with self._transaction() as conn:
                row = conn.execute("SELECT COUNT(*) FROM CompletedDocuments").fetchone()
        except sqlite3.Error as e:
            raise LedgerError(f"Failed to count completed documents: {e}") from e

        return int(row[0])
