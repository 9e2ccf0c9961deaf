"""Test fixtures and utilities."""

import sqlite3
from pathlib import Path

import pytest

from fiscal_qr_sync.config import Config, PathsConfig, ProcessingConfig, SyncSettings
from fiscal_qr_sync.schemas import TransactionRecord

BASE_URL = "https://erp.test:44300"
DOCUMENTS_ENDPOINT = "/sap/bc/rest/zfiscal/documents"
DOCUMENTS_URL = f"{BASE_URL}{DOCUMENTS_ENDPOINT}"

FB_TRANSACTION_SCHEMA = """
    CREATE TABLE fb_transaction (
        Id INTEGER PRIMARY KEY,
        Date TEXT,
        BuyerPIN TEXT,
        TrType INTEGER NOT NULL DEFAULT 0,
        TsNum TEXT NOT NULL,
        MwNum TEXT,
        TotalRounding REAL NOT NULL DEFAULT 0,
        TotalAmount REAL NOT NULL DEFAULT 0,
        VatAmountA REAL NOT NULL DEFAULT 0,
        VatAmountB REAL NOT NULL DEFAULT 0,
        VatAmountC REAL NOT NULL DEFAULT 0,
        VatAmountD REAL NOT NULL DEFAULT 0,
        VatAmountE REAL NOT NULL DEFAULT 0,
        ControlCode TEXT,
        SendDate TEXT,
        RelevantMwNum TEXT,
        TypeNote TEXT,
        SerialNumber TEXT,
        QrCode TEXT
    )
"""

# (Id, TsNum, TotalAmount, VatAmountA, ControlCode, SerialNumber, QrCode)
SAMPLE_ROWS = [
    (1, "0090001001", 116.00, 16.00, "KRAMW001", "KRAMW0170000001",
     "https://itax.example.go.ke/invoice?cuin=KRAMW001&id=1"),
    (2, "0090001002", 58.00, 8.00, "KRAMW002", "KRAMW0170000001",
     "https://itax.example.go.ke/invoice?cuin=KRAMW002&id=2"),
    (3, "0090001003", 230.50, 31.79, "KRAMW003", "KRAMW0170000001", None),
    (4, "0090001004", 10.00, 0.00, "KRAMW004", "KRAMW0170000001",
     "https://itax.example.go.ke/invoice?cuin=KRAMW004&id=4"),
]


def create_transaction_db(db_path: Path, rows=SAMPLE_ROWS) -> Path:
    """Create an fb_transaction database with the given sample rows."""
    conn = sqlite3.connect(str(db_path))
    try:
        conn.execute(FB_TRANSACTION_SCHEMA)
        for row_id, ts_num, total, vat_a, control, serial, qr in rows:
            conn.execute(
                """
                INSERT INTO fb_transaction
                (Id, Date, BuyerPIN, TrType, TsNum, TotalAmount, VatAmountA,
                 ControlCode, SendDate, SerialNumber, QrCode)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    row_id,
                    "2025-03-14 10:21:05",
                    "P051234567X",
                    1,
                    ts_num,
                    total,
                    vat_a,
                    control,
                    "2025-03-14T10:21:09",
                    serial,
                    qr,
                ),
            )
        conn.commit()
    finally:
        conn.close()
    return db_path


def make_record(
    record_id: int = 1,
    ts_num: str = "0090001001",
    qr_code: str | None = "https://itax.example.go.ke/invoice?cuin=KRAMW001&id=1",
    control_code: str | None = "KRAMW001",
    serial_number: str | None = "KRAMW0170000001",
) -> TransactionRecord:
    return TransactionRecord(
        id=record_id,
        ts_num=ts_num,
        control_code=control_code,
        serial_number=serial_number,
        qr_code=qr_code,
    )


@pytest.fixture
def sync_settings() -> SyncSettings:
    """Settings for the mocked remote endpoint."""
    return SyncSettings(
        base_url=BASE_URL,
        documents_endpoint=DOCUMENTS_ENDPOINT,
        username="qr_sync",
        password="s3cret",
        client="100",
        from_date="20250101",
        to_date="20250131",
        timeout_seconds=30,
        insecure_skip_verify=True,
    )


@pytest.fixture
def transaction_db(tmp_path) -> Path:
    """Transaction database populated with SAMPLE_ROWS."""
    return create_transaction_db(tmp_path / "FbTransaction.db")


@pytest.fixture
def config(tmp_path, sync_settings, transaction_db) -> Config:
    """Config pointing at temporary paths, without pacing delay."""
    return Config(
        sync=sync_settings,
        processing=ProcessingConfig(pacing_delay_seconds=0, recent_error_count=5),
        paths=PathsConfig(
            transaction_db_path=transaction_db,
            ledger_db_path=tmp_path / "ErrorLog.db",
            qr_codes_path=tmp_path / "QRCodes",
        ),
    )


@pytest.fixture
def sample_record() -> TransactionRecord:
    return make_record()
