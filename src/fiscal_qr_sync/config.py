"""
Configuration management (SSOT).

This module defines ALL configuration for the QR regeneration pipeline.
All config keys are defined here; no other module should invent config keys.

Key invariants:
- The password is never logged or echoed back by the CLI
- Pacing delay and request timeout are configuration values, not literals
- insecure_skip_verify is explicit; the sync client warns whenever it is on
"""

import logging
import os
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_PACING_DELAY_SECONDS = 0.1
DEFAULT_SERVER_HEADER = "sap-server"
DEFAULT_PROBE_WINDOW_DAYS = 30


class ConfigValidationError(Exception):
    """Raised when configuration validation fails."""

    pass


def format_remote_date(value: str | None, fallback: date) -> str:
    """Normalize a date setting to the remote system's yyyymmdd format.

    Accepts yyyymmdd or ISO dates. Empty values use the fallback; anything
    unparsable is passed through unchanged.
    """
    if not value:
        return fallback.strftime("%Y%m%d")

    value = value.strip()
    try:
        datetime.strptime(value, "%Y%m%d")
        return value
    except ValueError:
        pass

    try:
        return datetime.fromisoformat(value).strftime("%Y%m%d")
    except ValueError:
        logger.warning("Could not parse date %r for the remote system, using as-is", value)
        return value


@dataclass
class SyncSettings:
    """Remote document endpoint settings.

    SSOT for the endpoint URL:
    - base_url: Scheme and host (e.g., https://erp.internal:44300)
    - documents_endpoint: Path of the documents resource, appended to base_url
    - client: Value of the sap-client query parameter

    insecure_skip_verify disables TLS certificate validation. It defaults to
    on because the deployed endpoints use internal self-signed certificates.
    """

    base_url: str = ""
    documents_endpoint: str = ""
    username: str = ""
    password: str = ""
    client: str = ""
    # Connection probe date range (yyyymmdd or ISO); empty = last 30 days
    from_date: str = ""
    to_date: str = ""
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    insecure_skip_verify: bool = True
    # Response header that identifies the remote server on empty bodies
    server_header: str = DEFAULT_SERVER_HEADER

    @property
    def documents_url(self) -> str:
        """Full URL of the documents resource (without query string)."""
        return f"{self.base_url.rstrip('/')}{self.documents_endpoint}"

    def probe_date_range(self, today: date | None = None) -> tuple[str, str]:
        """Return (fromdate, todate) for the connection probe in yyyymmdd."""
        today = today or date.today()
        return (
            format_remote_date(self.from_date, today - timedelta(days=DEFAULT_PROBE_WINDOW_DAYS)),
            format_remote_date(self.to_date, today),
        )


@dataclass
class ProcessingConfig:
    """Batch processing settings."""

    # skip | overwrite | update
    duplicate_handling: str = "overwrite"
    # Delay between records to cap the request rate against the remote system
    pacing_delay_seconds: float = DEFAULT_PACING_DELAY_SECONDS
    # Number of recent errors carried on progress events
    recent_error_count: int = 5


@dataclass
class PathsConfig:
    """Filesystem locations."""

    transaction_db_path: Path = field(default_factory=lambda: Path("data/FbTransaction.db"))
    ledger_db_path: Path = field(default_factory=lambda: Path("data/ErrorLog.db"))
    qr_codes_path: Path = field(default_factory=lambda: Path("data/QRCodes"))


@dataclass
class Config:
    """Application configuration (SSOT).

    All configuration is centralized here. No other module should define
    configuration keys or defaults.
    """

    sync: SyncSettings = field(default_factory=SyncSettings)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)

    def validate(self) -> list[str]:
        """Validate configuration completeness and consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        errors: list[str] = []

        if not self.sync.base_url:
            errors.append("sync.base_url is required")
        elif not self.sync.base_url.lower().startswith(("http://", "https://")):
            errors.append("sync.base_url must start with http:// or https://")
        if not self.sync.documents_endpoint:
            errors.append("sync.documents_endpoint is required")
        if not self.sync.username:
            errors.append("sync.username is required")
        if self.sync.timeout_seconds <= 0:
            errors.append("sync.timeout_seconds must be positive")

        if self.processing.duplicate_handling.lower() not in ("skip", "overwrite", "update"):
            errors.append("processing.duplicate_handling must be skip, overwrite or update")
        if self.processing.pacing_delay_seconds < 0:
            errors.append("processing.pacing_delay_seconds must not be negative")
        if self.processing.recent_error_count < 1:
            errors.append("processing.recent_error_count must be at least 1")

        return errors

    def require_valid(self) -> None:
        """Raise ConfigValidationError if validate() reports problems."""
        errors = self.validate()
        if errors:
            raise ConfigValidationError("; ".join(errors))


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name, "").lower()
    if value in ("1", "true", "yes"):
        return True
    if value in ("0", "false", "no"):
        return False
    return default


def load_config(config_path: Path) -> Config:
    """
    Load configuration from YAML file.

    Environment variables can override config values:
    - SYNC_BASE_URL
    - SYNC_DOCUMENTS_ENDPOINT
    - SYNC_USERNAME
    - SYNC_PASSWORD
    - SYNC_CLIENT
    - SYNC_TIMEOUT (request timeout in seconds)
    - SYNC_INSECURE_SKIP_VERIFY (true/false)
    - TRANSACTION_DB_PATH
    - LEDGER_DB_PATH
    - QR_CODES_PATH
    """
    if config_path.exists():
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    else:
        data = {}

    # Sync endpoint
    sync_data = data.get("sync", {}) or {}
    timeout = sync_data.get("timeout_seconds", DEFAULT_TIMEOUT_SECONDS)
    timeout_env = os.environ.get("SYNC_TIMEOUT", "")
    if timeout_env:
        try:
            timeout = float(timeout_env)
        except ValueError:
            logger.warning("Ignoring invalid SYNC_TIMEOUT=%r", timeout_env)

    sync = SyncSettings(
        base_url=os.environ.get("SYNC_BASE_URL", sync_data.get("base_url", "")),
        documents_endpoint=os.environ.get(
            "SYNC_DOCUMENTS_ENDPOINT", sync_data.get("documents_endpoint", "")
        ),
        username=os.environ.get("SYNC_USERNAME", sync_data.get("username", "")),
        password=os.environ.get("SYNC_PASSWORD", sync_data.get("password", "")),
        client=str(os.environ.get("SYNC_CLIENT", sync_data.get("client", ""))),
        from_date=str(sync_data.get("from_date") or ""),
        to_date=str(sync_data.get("to_date") or ""),
        timeout_seconds=float(timeout),
        insecure_skip_verify=_env_bool(
            "SYNC_INSECURE_SKIP_VERIFY", bool(sync_data.get("insecure_skip_verify", True))
        ),
        server_header=sync_data.get("server_header", DEFAULT_SERVER_HEADER),
    )

    # Processing
    processing_data = data.get("processing", {}) or {}
    processing = ProcessingConfig(
        duplicate_handling=str(processing_data.get("duplicate_handling", "overwrite")),
        pacing_delay_seconds=float(
            processing_data.get("pacing_delay_seconds", DEFAULT_PACING_DELAY_SECONDS)
        ),
        recent_error_count=int(processing_data.get("recent_error_count", 5)),
    )

    # Paths
    paths_data = data.get("paths", {}) or {}
    paths = PathsConfig(
        transaction_db_path=Path(
            os.environ.get(
                "TRANSACTION_DB_PATH",
                paths_data.get("transaction_db_path", "data/FbTransaction.db"),
            )
        ),
        ledger_db_path=Path(
            os.environ.get("LEDGER_DB_PATH", paths_data.get("ledger_db_path", "data/ErrorLog.db"))
        ),
        qr_codes_path=Path(
            os.environ.get("QR_CODES_PATH", paths_data.get("qr_codes_path", "data/QRCodes"))
        ),
    )

    return Config(sync=sync, processing=processing, paths=paths)


def create_default_config(config_path: Path) -> None:
    """Create a default configuration file."""
    default_config = """# Fiscal QR regeneration pipeline configuration
#
# Environment variables override the values below (see load_config).

sync:
  base_url: "https://erp.example.internal:44300"   # Scheme and host
  documents_endpoint: "/sap/bc/rest/zfiscal/documents"
  username: "YOUR_USERNAME"
  password: "YOUR_PASSWORD"
  client: "100"                            # sap-client query parameter
  from_date: ""                            # Connection probe range (yyyymmdd),
  to_date: ""                              # empty = last 30 days
  timeout_seconds: 30
  insecure_skip_verify: true               # Accept self-signed certificates
  server_header: "sap-server"

processing:
  duplicate_handling: "overwrite"          # skip | overwrite | update
  pacing_delay_seconds: 0.1                # Delay between records
  recent_error_count: 5                    # Errors shown on progress lines

paths:
  transaction_db_path: "data/FbTransaction.db"
  ledger_db_path: "data/ErrorLog.db"
  qr_codes_path: "data/QRCodes"
"""

    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, "w") as f:
        f.write(default_config)
