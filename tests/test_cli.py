"""Tests for CLI commands.

These tests verify that all CLI commands are properly registered and callable.
"""

import pytest
import responses
import yaml

from conftest import BASE_URL, DOCUMENTS_ENDPOINT, DOCUMENTS_URL
from fiscal_qr_sync.runner import create_cli, main
from fiscal_qr_sync.state_store import CompletionLedger


@pytest.fixture
def config_file(tmp_path, transaction_db, monkeypatch):
    """Config file pointing at the sample transaction database."""
    for name in (
        "SYNC_BASE_URL",
        "SYNC_DOCUMENTS_ENDPOINT",
        "SYNC_USERNAME",
        "SYNC_PASSWORD",
        "SYNC_CLIENT",
        "TRANSACTION_DB_PATH",
        "LEDGER_DB_PATH",
        "QR_CODES_PATH",
    ):
        monkeypatch.delenv(name, raising=False)

    path = tmp_path / "config.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "sync": {
                    "base_url": BASE_URL,
                    "documents_endpoint": DOCUMENTS_ENDPOINT,
                    "username": "qr_sync",
                    "password": "s3cret",
                    "client": "100",
                },
                "processing": {"pacing_delay_seconds": 0},
                "paths": {
                    "transaction_db_path": str(transaction_db),
                    "ledger_db_path": str(tmp_path / "ErrorLog.db"),
                    "qr_codes_path": str(tmp_path / "QRCodes"),
                },
            }
        )
    )
    return path


class TestCLICommandRegistry:
    """Tests for CLI command registration."""

    def test_all_commands_registered(self):
        """Verify all expected commands are registered."""
        parser = create_cli()
        for command in ("run", "test-connection", "status", "init-config"):
            assert parser.parse_args([command]).command == command

        args = parser.parse_args(["delete", "0090001001"])
        assert args.command == "delete"
        assert args.doc_num == "0090001001"

    def test_run_options(self):
        """Run command should accept --ids and --duplicates."""
        parser = create_cli()

        args = parser.parse_args(["run"])
        assert args.ids is None
        assert args.duplicates is None

        args = parser.parse_args(["run", "--ids", "1,2,5", "--duplicates", "skip"])
        assert args.ids == [1, 2, 5]
        assert args.duplicates == "skip"

    def test_run_rejects_bad_ids(self):
        parser = create_cli()
        with pytest.raises(SystemExit):
            parser.parse_args(["run", "--ids", "1,x"])

    def test_status_limit(self):
        args = create_cli().parse_args(["status", "--limit", "3"])
        assert args.limit == 3

    def test_no_command_returns_error(self):
        assert main([]) == 1


class TestInitConfig:
    """Tests for init-config."""

    def test_writes_default_config(self, tmp_path):
        path = tmp_path / "config.yaml"
        assert main(["-c", str(path), "init-config"]) == 0
        assert path.exists()

    def test_refuses_to_overwrite(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("existing: true\n")

        assert main(["-c", str(path), "init-config"]) == 1
        assert path.read_text() == "existing: true\n"


class TestRunCommand:
    """End-to-end run against a mocked remote endpoint."""

    @responses.activate
    def test_run_selected_ids(self, config_file, tmp_path, capsys):
        responses.add(responses.POST, DOCUMENTS_URL, json={"TYPE": "S"}, status=200)

        assert main(["-c", str(config_file), "run", "--ids", "1,2"]) == 0

        output = capsys.readouterr().out
        assert "[2/2] 0090001002" in output
        assert CompletionLedger(tmp_path / "ErrorLog.db").count() == 2
        assert len(list((tmp_path / "QRCodes").glob("QR_*.png"))) == 2

    @responses.activate
    def test_run_with_failures_returns_error(self, config_file, capsys):
        responses.add(responses.POST, DOCUMENTS_URL, json={"TYPE": "S"}, status=200)

        assert main(["-c", str(config_file), "run"]) == 1
        assert "0090001003" in capsys.readouterr().out

    def test_run_invalid_config(self, tmp_path, monkeypatch, capsys):
        monkeypatch.delenv("SYNC_BASE_URL", raising=False)
        monkeypatch.delenv("SYNC_USERNAME", raising=False)
        path = tmp_path / "config.yaml"
        path.write_text("sync: {}\n")

        assert main(["-c", str(path), "run"]) == 1
        assert "sync.base_url is required" in capsys.readouterr().out


class TestOtherCommands:
    """test-connection, delete and status."""

    @responses.activate
    def test_test_connection(self, config_file, capsys):
        responses.add(
            responses.GET, DOCUMENTS_URL, body="", status=200, headers={"sap-server": "true"}
        )

        assert main(["-c", str(config_file), "test-connection"]) == 0
        assert "server verified" in capsys.readouterr().out

    @responses.activate
    def test_test_connection_unauthorized(self, config_file):
        responses.add(responses.GET, DOCUMENTS_URL, body="", status=401)

        assert main(["-c", str(config_file), "test-connection"]) == 1

    @responses.activate
    def test_delete(self, config_file):
        responses.add(responses.DELETE, DOCUMENTS_URL, json={"TYPE": "S"}, status=200)

        assert main(["-c", str(config_file), "delete", "0090001001"]) == 0

    def test_status(self, config_file, capsys):
        assert main(["-c", str(config_file), "status"]) == 0

        output = capsys.readouterr().out
        assert "Source transactions:  4" in output
        assert "Completed documents:  0" in output
