# fleetledger/errors.py
"""
Exception hierarchy for the ledger core.

ValidationError      bad user input; shown inline, blocks submission.
NotFoundError        row missing or not owned by the caller.
StorageReadError     a fetch from the database failed; the flow aborts.
StorageWriteError    an insert/update/delete failed; nothing was committed.
"""

from __future__ import annotations


class LedgerError(Exception):
    """Base class for every error raised by fleetledger."""

    def __init__(self, message: str, context: dict | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(message)


class ValidationError(LedgerError):
    pass


class NotFoundError(LedgerError):
    pass


class StorageReadError(LedgerError):
    pass


class StorageWriteError(LedgerError):
    pass
