"""
Remote document endpoint client implementation.
"""

import json
import logging
from dataclasses import dataclass
from typing import NamedTuple

import requests
import urllib3
from urllib3.exceptions import InsecureRequestWarning

from ..config import SyncSettings
from ..errors import (
    ErrorKind,
    FiscalSyncError,
    ProtocolError,
    SyncConflict,
    SyncFailure,
    TransportError,
)
from ..schemas.records import TransactionRecord
from ..schemas.sync_payload import DeletePayload, SyncPayload, SyncResponse

logger = logging.getLogger(__name__)


@dataclass
class SyncOutcome:
    """Result of a single update or delete against the remote system."""

    success: bool
    kind: ErrorKind | None = None
    status_code: int | None = None
    message: str = ""
    response: SyncResponse | None = None

    @classmethod
    def from_error(cls, error: FiscalSyncError) -> "SyncOutcome":
        return cls(
            success=False,
            kind=error.kind,
            status_code=getattr(error, "status_code", None),
            message=error.message,
        )


class ConnectionTestResult(NamedTuple):
    """Outcome of the connection probe."""

    connected: bool
    message: str
    raw_body: str


class DocumentSyncClient:
    """
    Client for the remote fiscal document endpoint.

    Features:
    - Update a document (POST), with delete-then-retry on HTTP 409
    - Delete a document (DELETE)
    - Connection probe (GET)

    Every public method takes an optional SyncSettings that overrides the
    settings given at construction, so unsaved settings can be probed.
    Timeouts and transport errors are turned into failed outcomes and never
    raised past this class.
    """

    DEFAULT_TIMEOUT = 30

    def __init__(self, settings: SyncSettings, session: requests.Session | None = None):
        """
        Initialize the sync client.

        Args:
            settings: Endpoint URL, credentials, client code, timeout, TLS flag
            session: Optional requests session (a new one is created otherwise)
        """
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

        if settings.insecure_skip_verify:
            # Internal endpoints use self-signed certificates
            urllib3.disable_warnings(InsecureRequestWarning)
            logger.warning(
                "TLS certificate validation is DISABLED for %s (sync.insecure_skip_verify)",
                settings.base_url or "<unset>",
            )

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "DocumentSyncClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(
        self,
        method: str,
        settings: SyncSettings,
        params: dict | None = None,
        json_data: dict | None = None,
        headers: dict | None = None,
    ) -> requests.Response:
        """Make an API request; transport failures raise TransportError."""
        url = settings.documents_url
        timeout = settings.timeout_seconds or self.DEFAULT_TIMEOUT

        logger.debug(f"API Request: {method} {url} params={params}")
        if json_data:
            logger.debug(f"Request body: {json.dumps(json_data, indent=2)}")

        try:
            response = self.session.request(
                method=method,
                url=url,
                params=params,
                json=json_data,
                headers=headers,
                # Basic auth credentials are sent as UTF-8, not latin-1
                auth=(settings.username.encode("utf-8"), settings.password.encode("utf-8")),
                timeout=timeout,
                verify=not settings.insecure_skip_verify,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Timeout for {url}: {e}")
            raise TransportError(
                f"Connection timeout! Server did not respond within {timeout:g} seconds"
            ) from e
        except requests.exceptions.ConnectionError as e:
            logger.error(f"Connection error to {url}: {e}")
            raise TransportError(f"Network error connecting to {settings.base_url}: {e}") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request error for {url}: {e}")
            raise TransportError(f"Request failed: {e}") from e

        logger.debug(f"Response status: {response.status_code}")
        return response

    @staticmethod
    def _client_params(settings: SyncSettings) -> dict[str, str]:
        return {"sap-client": settings.client}

    @staticmethod
    def _has_server_header(response: requests.Response, settings: SyncSettings) -> bool:
        return bool(settings.server_header) and settings.server_header in response.headers

    def _check_response(
        self,
        response: requests.Response,
        settings: SyncSettings,
        doc_num: str,
        empty_ok: bool = False,
    ) -> SyncResponse | None:
        """Interpret an update/delete response.

        Returns the envelope on TYPE == "S", or None for an accepted empty body.

        Raises:
            SyncConflict: On HTTP 409
            ProtocolError: On any other non-2xx status or an unreadable body
            SyncFailure: If TYPE is not "S"
        """
        body = response.text or ""

        if response.status_code == 409:
            raise SyncConflict(doc_num)

        if not response.ok:
            logger.error(
                "Request for document %s failed with status %s: %s",
                doc_num,
                response.status_code,
                body[:500],
            )
            raise ProtocolError(
                f"Unexpected status {response.status_code} ({response.reason}) "
                f"for document {doc_num}",
                status_code=response.status_code,
                body=body,
            )

        if not body.strip():
            if empty_ok and self._has_server_header(response, settings):
                logger.info(
                    "Empty response with %s header for document %s, treating as success",
                    settings.server_header,
                    doc_num,
                )
                return None
            raise ProtocolError(
                f"Empty response for document {doc_num}", status_code=response.status_code
            )

        envelope = SyncResponse.parse(body)
        if not envelope.is_success:
            logger.warning(
                "Remote system returned non-success type %r for document %s: %s",
                envelope.type,
                doc_num,
                envelope.message,
            )
            message = (
                f"Remote system returned TYPE={envelope.type or '<empty>'} for document {doc_num}"
            )
            if envelope.message:
                message += f": {envelope.message}"
            raise SyncFailure(message, status_code=response.status_code)
        return envelope

    def _update_once(
        self, record: TransactionRecord, artifact_path: str, settings: SyncSettings
    ) -> SyncOutcome:
        """Send one update request built fresh from the record."""
        payload = SyncPayload.from_record(record, artifact_path)

        logger.info("Sending update for document: %s", record.ts_num)
        response = self._request(
            "POST",
            settings,
            params=self._client_params(settings),
            json_data=payload.to_dict(),
        )
        envelope = self._check_response(response, settings, record.ts_num)

        logger.info("Successfully updated document %s on the remote system", record.ts_num)
        return SyncOutcome(
            success=True,
            status_code=response.status_code,
            message=envelope.message if envelope else "",
            response=envelope,
        )

    def push_document(
        self,
        record: TransactionRecord,
        artifact_path: str,
        settings: SyncSettings | None = None,
    ) -> SyncOutcome:
        """
        Update a document on the remote system.

        On HTTP 409 the existing remote document is deleted and the update is
        retried exactly once. A failed delete or a failed retry is final.

        Args:
            record: Transaction whose fields populate the payload
            artifact_path: Path of the generated QR image
            settings: Optional settings override

        Returns:
            SyncOutcome describing the final result
        """
        settings = settings or self.settings

        try:
            return self._update_once(record, artifact_path, settings)
        except SyncConflict:
            logger.warning(
                "Conflict for document %s, deleting remote copy before retry", record.ts_num
            )
        except FiscalSyncError as e:
            return SyncOutcome.from_error(e)

        deleted = self.remove_document(record.ts_num, settings)
        if not deleted.success:
            logger.error(
                "Conflict remediation failed for document %s: delete failed (%s)",
                record.ts_num,
                deleted.message,
            )
            return SyncOutcome(
                success=False,
                kind=ErrorKind.SYNC_FAILURE,
                status_code=deleted.status_code,
                message=f"Conflict for document {record.ts_num}; delete failed: {deleted.message}",
            )

        try:
            return self._update_once(record, artifact_path, settings)
        except FiscalSyncError as e:
            logger.error("Retry after conflict failed for document %s: %s", record.ts_num, e)
            return SyncOutcome(
                success=False,
                kind=ErrorKind.SYNC_FAILURE if isinstance(e, SyncConflict) else e.kind,
                status_code=getattr(e, "status_code", None),
                message=f"Retry after conflict failed for document {record.ts_num}: {e.message}",
            )

    def update_document(
        self,
        record: TransactionRecord,
        artifact_path: str,
        settings: SyncSettings | None = None,
    ) -> bool:
        """Update a document; True only if the remote system confirmed it."""
        return self.push_document(record, artifact_path, settings).success

    def remove_document(self, doc_num: str, settings: SyncSettings | None = None) -> SyncOutcome:
        """
        Delete a document on the remote system.

        Success is TYPE == "S", or an empty body carrying the server header.
        """
        settings = settings or self.settings

        logger.info("Deleting document %s on the remote system", doc_num)
        try:
            response = self._request(
                "DELETE",
                settings,
                params=self._client_params(settings),
                json_data=DeletePayload(vbeln=doc_num).to_dict(),
            )
            envelope = self._check_response(response, settings, doc_num, empty_ok=True)
        except FiscalSyncError as e:
            logger.warning("Delete failed for document %s: %s", doc_num, e)
            return SyncOutcome.from_error(e)

        logger.info("Deleted document %s on the remote system", doc_num)
        return SyncOutcome(
            success=True,
            status_code=response.status_code,
            message=envelope.message if envelope else "empty response with server header",
            response=envelope,
        )

    def delete_document(self, doc_num: str, settings: SyncSettings | None = None) -> bool:
        """Delete a document; True if the remote system confirmed it."""
        return self.remove_document(doc_num, settings).success

    def test_connection(self, settings: SyncSettings | None = None) -> ConnectionTestResult:
        """
        Probe the documents endpoint.

        Non-2xx responses are classified (401, 404, other). Any 2xx is a
        success; a JSON body is parsed for diagnostics only.
        """
        settings = settings or self.settings

        if not settings.base_url.strip() or not settings.username.strip():
            message = "Invalid settings - base URL and username are required"
            logger.error(message)
            return ConnectionTestResult(False, message, "")

        from_date, to_date = settings.probe_date_range()
        params = {**self._client_params(settings), "fromdate": from_date, "todate": to_date}

        logger.info("Testing connection to %s", settings.documents_url)
        logger.info("Authentication: %s/[PASSWORD_MASKED]", settings.username)

        try:
            response = self._request(
                "GET",
                settings,
                params=params,
                headers={"Accept": "*/*", "Cache-Control": "no-cache"},
            )
        except TransportError as e:
            return ConnectionTestResult(False, e.message, "")

        body = response.text or ""
        logger.info(
            "Response status: %s (%s), %d characters",
            response.status_code,
            response.reason,
            len(body),
        )
        logger.debug("Response headers: %s", dict(response.headers))

        if not response.ok:
            if response.status_code == 401:
                message = "Authentication failed! Please verify username and password"
                logger.error("Connection test: 401 Unauthorized")
            elif response.status_code == 404:
                message = "Endpoint not found! Please verify base URL and documents endpoint"
                logger.error("Connection test: 404 Not Found")
            else:
                message = f"Connection failed: {response.status_code} ({response.reason})"
                logger.warning("Connection test failed: %s, body: %s", message, body[:500])
            return ConnectionTestResult(False, message, body)

        if not body.strip():
            if self._has_server_header(response, settings):
                return ConnectionTestResult(
                    True,
                    f"Connection successful - server verified "
                    f"(empty response with {settings.server_header} header)",
                    "",
                )
            return ConnectionTestResult(
                True, "Connection successful - server reachable (empty response)", ""
            )

        if body.lstrip().startswith(("{", "[")):
            try:
                json.loads(body)
                logger.info("Remote system returned a valid JSON response")
            except ValueError as e:
                logger.warning("Response is not valid JSON, but connection successful: %s", e)

        message = f"Connection successful! Server responded: {response.status_code} ({response.reason})"
        logger.info("Connection test successful")
        return ConnectionTestResult(True, message, body)
