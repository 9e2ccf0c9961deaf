"""
QR code image generation for fiscal payloads.
"""

import logging
import re
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import qrcode
from qrcode.constants import ERROR_CORRECT_Q

from ..errors import ArtifactError, ValidationError

logger = logging.getLogger(__name__)

# Pixels per QR module
DEFAULT_SCALE = 25
DEFAULT_BORDER = 4

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def _safe_label(label: str) -> str:
    return _UNSAFE_FILENAME_CHARS.sub("_", label.strip())


class QRCodeCodec:
    """
    Encode a payload into a PNG QR code under an artifact directory.

    Error correction is level Q (~25% redundancy). File names are
    QR_{label}_{YYYYMMDDHHMMSS}.png; two calls with the same label within the
    same second produce the same name and the later one overwrites.
    """

    def __init__(
        self,
        scale: int = DEFAULT_SCALE,
        border: int = DEFAULT_BORDER,
        clock: Callable[[], datetime] | None = None,
    ):
        """
        Args:
            scale: Pixels per module
            border: Quiet zone width in modules
            clock: Returns the current local time (file name timestamp)
        """
        self.scale = scale
        self.border = border
        self._clock = clock or datetime.now

    def ensure_directory(self, output_dir: Path | str) -> Path:
        """Create output_dir (and parents) if absent."""
        path = Path(output_dir)
        try:
            if not path.is_dir():
                path.mkdir(parents=True, exist_ok=True)
                logger.info("Created QR codes directory: %s", path)
        except OSError as e:
            logger.error("Failed to create QR codes directory %s: %s", path, e)
            raise ArtifactError(f"Cannot create QR codes directory {path}: {e}") from e
        return path

    def file_name(self, label: str) -> str:
        return f"QR_{_safe_label(label)}_{self._clock():%Y%m%d%H%M%S}.png"

    def encode(self, payload: str, label: str, output_dir: Path | str) -> str:
        """Encode payload and write it as a PNG.

        Args:
            payload: Text/URL to encode
            label: Document number used in the file name
            output_dir: Artifact directory

        Returns:
            Absolute path of the written image

        Raises:
            ValidationError: If payload or label is empty
            ArtifactError: If the directory or file cannot be written
        """
        if not payload:
            raise ValidationError("QR payload cannot be empty")
        if not label or not label.strip():
            raise ValidationError("QR label (document number) cannot be empty")

        directory = self.ensure_directory(output_dir)

        logger.info("Generating QR code for document: %s", label)

        qr = qrcode.QRCode(
            error_correction=ERROR_CORRECT_Q,
            box_size=self.scale,
            border=self.border,
        )
        qr.add_data(payload)
        qr.make(fit=True)
        image = qr.make_image(fill_color="black", back_color="white")

        file_path = (directory / self.file_name(label)).resolve()
        try:
            image.save(str(file_path))
        except OSError as e:
            logger.error("Failed to write QR code for document %s: %s", label, e)
            raise ArtifactError(f"Cannot write QR code {file_path}: {e}") from e

        logger.info("Saved QR code to file: %s", file_path)
        return str(file_path)
