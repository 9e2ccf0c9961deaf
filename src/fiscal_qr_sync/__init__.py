"""
Fiscal transactions → QR regeneration → Completion ledger → Remote document sync

A single-worker batch pipeline that regenerates fiscal QR codes for stored
transactions, records each completed document in an idempotency ledger, and
pushes the result to a remote ERP endpoint with delete-then-retry conflict
remediation.
"""

__version__ = "0.1.0"
