"""
CLI runner module.

Provides commands:
- run: Regenerate QR codes and sync a batch of records
- test-connection: Probe the remote document endpoint
- delete: Delete a document on the remote system
- status: Source and ledger statistics
- init-config: Write a default config file
"""

from .main import create_cli, main

__all__ = [
    "create_cli",
    "main",
]
