"""
Fiscal transaction records and completion ledger entries.
"""

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation

DEFAULT_DOC_TYPE = "IN"


def _parse_datetime(value: object) -> datetime | None:
    """Parse a SQLite date/datetime column, returning None when unusable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value).strip().replace("Z", "+00:00")
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _parse_decimal(value: object) -> Decimal:
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal("0")


def _optional_str(value: object) -> str | None:
    return None if value is None else str(value)


@dataclass(frozen=True)
class TransactionRecord:
    """A fiscal transaction as stored by the fiscal device.

    ts_num is the document number and is unique within the source.
    qr_code holds the raw URL/payload that the regenerated QR code encodes.
    """

    id: int
    ts_num: str
    date: datetime | None = None
    buyer_pin: str | None = None
    tr_type: int = 0
    mw_num: str | None = None
    total_rounding: Decimal = Decimal("0")
    total_amount: Decimal = Decimal("0")
    vat_amount_a: Decimal = Decimal("0")
    vat_amount_b: Decimal = Decimal("0")
    vat_amount_c: Decimal = Decimal("0")
    vat_amount_d: Decimal = Decimal("0")
    vat_amount_e: Decimal = Decimal("0")
    control_code: str | None = None
    send_date: datetime | None = None
    relevant_mw_num: str | None = None
    type_note: str | None = None
    serial_number: str | None = None
    qr_code: str | None = None

    @property
    def has_payload(self) -> bool:
        """True if the record carries something to encode."""
        return bool(self.qr_code)

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "TransactionRecord":
        """Create from a fb_transaction row."""
        return cls(
            id=int(row["Id"]),
            ts_num=str(row["TsNum"] or ""),
            date=_parse_datetime(row["Date"]),
            buyer_pin=_optional_str(row["BuyerPIN"]),
            tr_type=int(row["TrType"] or 0),
            mw_num=_optional_str(row["MwNum"]),
            total_rounding=_parse_decimal(row["TotalRounding"]),
            total_amount=_parse_decimal(row["TotalAmount"]),
            vat_amount_a=_parse_decimal(row["VatAmountA"]),
            vat_amount_b=_parse_decimal(row["VatAmountB"]),
            vat_amount_c=_parse_decimal(row["VatAmountC"]),
            vat_amount_d=_parse_decimal(row["VatAmountD"]),
            vat_amount_e=_parse_decimal(row["VatAmountE"]),
            control_code=_optional_str(row["ControlCode"]),
            send_date=_parse_datetime(row["SendDate"]),
            relevant_mw_num=_optional_str(row["RelevantMwNum"]),
            type_note=_optional_str(row["TypeNote"]),
            serial_number=_optional_str(row["SerialNumber"]),
            qr_code=_optional_str(row["QrCode"]),
        )


@dataclass
class CompletedDocument:
    """Ledger entry recording that a document went through the pipeline."""

    doc_num: str
    cuin: str = ""
    cusn: str = ""
    fiscal_seal: str = ""
    qr_code_path: str | None = None
    doc_type: str | None = None
    timestamp: str = ""  # ISO-8601 UTC, set by the ledger on write
    id: int | None = None

    @classmethod
    def from_record(
        cls,
        record: TransactionRecord,
        qr_code_path: str,
        existing: "CompletedDocument | None" = None,
    ) -> "CompletedDocument":
        """Build the ledger entry for a freshly encoded record.

        Keeps the doc type of an existing entry, otherwise the default "IN".
        """
        return cls(
            doc_num=record.ts_num,
            doc_type=(existing.doc_type if existing and existing.doc_type else DEFAULT_DOC_TYPE),
            cuin=record.control_code or "",
            cusn=record.serial_number or "",
            fiscal_seal=record.qr_code or "",
            qr_code_path=qr_code_path,
        )

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "CompletedDocument":
        """Create from a CompletedDocuments row."""
        return cls(
            id=row["Id"],
            doc_num=row["DocNum"],
            doc_type=row["DocType"],
            cuin=row["CUIN"] or "",
            cusn=row["CUSN"] or "",
            fiscal_seal=row["FiscalSeal"] or "",
            qr_code_path=row["QRCodePath"] or None,
            timestamp=row["Timestamp"] or "",
        )
