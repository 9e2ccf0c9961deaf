"""
Completion ledger (SQLite-based).

Lightweight persistent DB recording which fiscal documents completed the
pipeline. Enforces uniqueness on the document number.
"""

from .ledger import CompletionLedger

__all__ = [
    "CompletionLedger",
]
