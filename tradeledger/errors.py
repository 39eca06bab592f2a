# tradeledger/errors.py
"""
Exception types raised by the import pipeline.
"""

from typing import List, Optional


class LedgerError(Exception):
    """Base class for all tradeledger errors."""


class EncodingRecoveryError(LedgerError):
    """None of the candidate encodings produced plausible text."""

    def __init__(self, message: str, attempted: Optional[List[str]] = None):
        super().__init__(message)
        self.attempted = attempted or []


class UnsupportedFormatError(LedgerError):
    """The export layout is not one of the known formats."""


class RowMappingError(LedgerError):
    """A single export row could not be turned into a transaction."""

    def __init__(self, message: str, record_number: Optional[int] = None):
        super().__init__(message)
        self.record_number = record_number


class TransactionValidationError(LedgerError):
    """A canonical transaction violated one or more invariants.

    All violations are collected, not just the first one.
    """

    def __init__(self, violations: List[str]):
        self.violations = list(violations)
        super().__init__("invalid transaction: " + "; ".join(self.violations))


class LedgerWriteError(LedgerError):
    """The persistence store rejected a write. Nothing was committed."""
