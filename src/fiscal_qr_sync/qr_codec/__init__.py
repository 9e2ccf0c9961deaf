"""
QR code codec: payload + label + directory -> PNG file path.
"""

from .codec import QRCodeCodec

__all__ = [
    "QRCodeCodec",
]
