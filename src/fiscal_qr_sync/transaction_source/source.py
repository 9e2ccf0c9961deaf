"""
Read-only access to the fiscal device's transaction database.
"""

import logging
import sqlite3
from collections.abc import Iterable
from pathlib import Path

from ..errors import TransactionSourceError
from ..schemas.records import TransactionRecord

logger = logging.getLogger(__name__)

_SELECT = """
    SELECT Id, Date, BuyerPIN, TrType, TsNum, MwNum, TotalRounding, TotalAmount,
           VatAmountA, VatAmountB, VatAmountC, VatAmountD, VatAmountE, ControlCode,
           SendDate, RelevantMwNum, TypeNote, SerialNumber, QrCode
    FROM fb_transaction
"""


class SqliteTransactionSource:
    """
    Transaction source backed by the fb_transaction table.

    Records are always returned in Id order. The database is opened read-only
    and never modified.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)

    def _get_connection(self) -> sqlite3.Connection:
        if not self.db_path.exists():
            raise TransactionSourceError(f"Transaction database not found: {self.db_path}")
        try:
            conn = sqlite3.connect(f"{self.db_path.resolve().as_uri()}?mode=ro", uri=True)
        except sqlite3.Error as e:
            raise TransactionSourceError(f"Cannot open transaction database: {e}") from e
        conn.row_factory = sqlite3.Row
        return conn

    def _query(self, sql: str, params: Iterable = ()) -> list[sqlite3.Row]:
        conn = self._get_connection()
        try:
            return conn.execute(sql, tuple(params)).fetchall()
        except sqlite3.Error as e:
            logger.error("Failed to retrieve transactions: %s", e)
            raise TransactionSourceError(f"Failed to retrieve transactions: {e}") from e
        finally:
            conn.close()

    @staticmethod
    def _to_records(rows: list[sqlite3.Row]) -> list[TransactionRecord]:
        records = []
        for row in rows:
            try:
                records.append(TransactionRecord.from_row(row))
            except (ValueError, TypeError, KeyError) as e:
                logger.error("Malformed transaction row %s: %s", row["Id"], e)
                raise TransactionSourceError(
                    f"Malformed transaction row {row['Id']}: {e}"
                ) from e
        return records

    def list_all(self) -> list[TransactionRecord]:
        """All transactions."""
        rows = self._query(_SELECT + " ORDER BY Id")
        return self._to_records(rows)

    def list_by_ids(self, ids: Iterable[int]) -> list[TransactionRecord]:
        """Transactions with the given ids. An empty id list yields no records."""
        id_list = sorted({int(i) for i in ids})
        if not id_list:
            return []

        placeholders = ", ".join("?" for _ in id_list)
        rows = self._query(_SELECT + f" WHERE Id IN ({placeholders}) ORDER BY Id", id_list)
        return self._to_records(rows)

    def get(self, record_id: int) -> TransactionRecord | None:
        """A single transaction by id, or None."""
        rows = self._query(_SELECT + " WHERE Id = ?", (record_id,))
        records = self._to_records(rows)
        return records[0] if records else None

    def count(self) -> int:
        """Total number of transactions."""
        rows = self._query("SELECT COUNT(*) FROM fb_transaction")
        return int(rows[0][0])
