"""Tests for the completion ledger."""

import sqlite3

import pytest

from fiscal_qr_sync.errors import LedgerError
from fiscal_qr_sync.schemas import CompletedDocument
from fiscal_qr_sync.state_store import CompletionLedger


@pytest.fixture
def ledger(tmp_path):
    """Create a fresh ledger."""
    return CompletionLedger(tmp_path / "ledger" / "ErrorLog.db")


def _entry(doc_num="0090001001", doc_type=None, qr_path="/qr/QR_0090001001.png"):
    return CompletedDocument(
        doc_num=doc_num,
        doc_type=doc_type,
        cuin="KRAMW001",
        cusn="KRAMW0170000001",
        fiscal_seal="https://itax.example.go.ke/invoice?cuin=KRAMW001",
        qr_code_path=qr_path,
    )


class TestLedgerInit:
    """Tests for ledger creation."""

    def test_init_creates_db_and_parents(self, tmp_path):
        """Initializing creates the database file and missing directories."""
        db_path = tmp_path / "nested" / "dir" / "ErrorLog.db"
        CompletionLedger(db_path)
        assert db_path.exists()

    def test_init_creates_table(self, ledger):
        conn = ledger._get_connection()
        try:
            tables = conn.execute("SELECT name FROM sqlite_master WHERE type='table'").fetchall()
            assert "CompletedDocuments" in [t[0] for t in tables]
        finally:
            conn.close()

    def test_init_is_idempotent(self, ledger):
        """Re-opening an existing ledger keeps its rows."""
        ledger.upsert(_entry())
        reopened = CompletionLedger(ledger.db_path)
        assert reopened.exists("0090001001")

    def test_unwritable_path_raises(self, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        with pytest.raises(LedgerError):
            CompletionLedger(blocker / "ErrorLog.db")


class TestLedgerOperations:
    """Tests for upsert / get / exists."""

    def test_absent_entry(self, ledger):
        """Absence is a normal result."""
        assert ledger.get("0090009999") is None
        assert ledger.exists("0090009999") is False

    def test_upsert_new_entry(self, ledger):
        entry = _entry()
        assert ledger.upsert(entry) is True

        stored = ledger.get("0090001001")
        assert stored is not None
        assert stored.doc_num == "0090001001"
        assert stored.doc_type == "IN"
        assert stored.cuin == "KRAMW001"
        assert stored.cusn == "KRAMW0170000001"
        assert stored.qr_code_path == "/qr/QR_0090001001.png"
        assert stored.timestamp == entry.timestamp
        assert stored.timestamp.endswith("+00:00")

    def test_upsert_replaces_single_row(self, ledger):
        """A second upsert for the same document number replaces the row."""
        ledger.upsert(_entry(qr_path="/qr/old.png"))
        ledger.upsert(_entry(qr_path="/qr/new.png"))

        assert ledger.count() == 1
        assert ledger.get("0090001001").qr_code_path == "/qr/new.png"

    def test_upsert_keeps_doc_type_when_none(self, ledger):
        """An existing DocType survives an upsert without one."""
        ledger.upsert(_entry(doc_type="CN"))
        ledger.upsert(_entry(doc_type=None))

        assert ledger.get("0090001001").doc_type == "CN"

    def test_upsert_overrides_doc_type_when_given(self, ledger):
        ledger.upsert(_entry(doc_type="CN"))
        ledger.upsert(_entry(doc_type="IN"))

        assert ledger.get("0090001001").doc_type == "IN"

    def test_timestamp_refreshed_on_upsert(self, ledger):
        first = _entry()
        ledger.upsert(first)
        second = _entry()
        ledger.upsert(second)

        assert ledger.get("0090001001").timestamp == second.timestamp
        assert second.timestamp >= first.timestamp


class TestLedgerListing:
    """Tests for list_all and count."""

    def test_count_and_list(self, ledger):
        for doc_num in ("0090001001", "0090001002", "0090001003"):
            ledger.upsert(_entry(doc_num=doc_num))

        assert ledger.count() == 3
        entries = ledger.list_all()
        assert len(entries) == 3
        # Newest first
        assert entries[0].doc_num == "0090001003"

    def test_list_limit(self, ledger):
        for doc_num in ("0090001001", "0090001002", "0090001003"):
            ledger.upsert(_entry(doc_num=doc_num))

        assert [e.doc_num for e in ledger.list_all(limit=2)] == ["0090001003", "0090001002"]

    def test_empty_ledger(self, ledger):
        assert ledger.count() == 0
        assert ledger.list_all() == []


class TestLedgerErrors:
    """Database failures surface as LedgerError."""

    def test_missing_table_raises(self, ledger):
        conn = sqlite3.connect(str(ledger.db_path))
        conn.execute("DROP TABLE CompletedDocuments")
        conn.commit()
        conn.close()

        with pytest.raises(LedgerError):
            ledger.get("0090001001")
        with pytest.raises(LedgerError):
            ledger.upsert(_entry())
