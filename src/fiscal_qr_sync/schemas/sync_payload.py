"""
Wire shapes for the remote document endpoint.

Request bodies use the remote system's lower-case field names; response
envelopes use upper-case keys (TYPE, MESSAGE, NUMBER, LOG_NO, ...).
"""

import json
from dataclasses import asdict, dataclass, field
from typing import Any

from ..errors import ProtocolError
from .records import TransactionRecord

SUCCESS_TYPE = "S"
STATUS_REGENERATED = "1"


@dataclass
class SyncPayload:
    """Body of the document update POST."""

    vbeln: str
    cusn: str = ""
    cuin: str = ""
    fiscalerror: str = ""
    fiscalseal: str = ""
    status: str = STATUS_REGENERATED
    qrcodepath: str = ""

    @classmethod
    def from_record(cls, record: TransactionRecord, qr_code_path: str) -> "SyncPayload":
        return cls(
            vbeln=record.ts_num,
            cusn=record.serial_number or "",
            cuin=record.control_code or "",
            fiscalseal=record.qr_code or "",
            qrcodepath=qr_code_path,
        )

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class DeletePayload:
    """Body of the document DELETE."""

    vbeln: str

    def to_dict(self) -> dict[str, str]:
        return asdict(self)


@dataclass
class SyncResponse:
    """Response envelope returned by the remote system.

    Only TYPE decides success; the other fields are kept for diagnostics.
    """

    type: str = ""
    message: str = ""
    number: int | None = None
    log_no: str = ""
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def is_success(self) -> bool:
        return self.type == SUCCESS_TYPE

    @classmethod
    def from_json(cls, data: Any) -> "SyncResponse":
        """Build from decoded JSON.

        Accepts a single object or a list of objects (first one wins).
        Keys are matched case-insensitively.

        Raises:
            ProtocolError: If the JSON is neither an object nor a list of objects.
        """
        if isinstance(data, list):
            data = next((item for item in data if isinstance(item, dict)), None)
        if not isinstance(data, dict):
            raise ProtocolError(
                f"Unexpected response envelope: {type(data).__name__}"
            )

        upper = {str(k).upper(): v for k, v in data.items()}
        number = upper.get("NUMBER")
        try:
            number = int(number) if number not in (None, "") else None
        except (TypeError, ValueError):
            number = None

        return cls(
            type=str(upper.get("TYPE") or ""),
            message=str(upper.get("MESSAGE") or ""),
            number=number,
            log_no=str(upper.get("LOG_NO") or ""),
            raw=data,
        )

    @classmethod
    def parse(cls, body: str) -> "SyncResponse":
        """Parse a raw response body.

        Raises:
            ProtocolError: If the body is not valid JSON or has the wrong shape.
        """
        try:
            data = json.loads(body)
        except ValueError as e:
            raise ProtocolError(f"Response is not valid JSON: {e}", body=body) from e
        return cls.from_json(data)
