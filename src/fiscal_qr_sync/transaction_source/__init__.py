"""
Fiscal transaction source.

Provides:
- All transactions, or an explicit id subset, in Id order
- Single transaction lookup and count
"""

from .source import SqliteTransactionSource

__all__ = [
    "SqliteTransactionSource",
]
