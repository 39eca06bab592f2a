# tradeledger/__init__.py
from .models import BatchMeta, CanonicalTransaction, Subtype, TradeType, compute_fingerprint, expected_sign
from .errors import (
    EncodingRecoveryError,
    LedgerError,
    LedgerWriteError,
    RowMappingError,
    TransactionValidationError,
    UnsupportedFormatError,
)
from .parser import parse_export, parse_file, map_row
from .column_detector import detect_format, find_column_value
from .encoding import decode_export
from .ledger import TransactionLedger, UpsertResult
from .positions import Position, aggregate_trades, positions_from_transactions, active_positions
from .exposure import ExposureBreakdown, StoredExposureProvider, aggregate_exposure
from .importer import ImportOrchestrator, ImportReport, AcceptanceReport
from .storage import InMemoryStore, JsonFileStore

__all__ = [
    "BatchMeta",
    "CanonicalTransaction",
    "Subtype",
    "TradeType",
    "compute_fingerprint",
    "expected_sign",
    "EncodingRecoveryError",
    "LedgerError",
    "LedgerWriteError",
    "RowMappingError",
    "TransactionValidationError",
    "UnsupportedFormatError",
    "parse_export",
    "parse_file",
    "map_row",
    "detect_format",
    "find_column_value",
    "decode_export",
    "TransactionLedger",
    "UpsertResult",
    "Position",
    "aggregate_trades",
    "positions_from_transactions",
    "active_positions",
    "ExposureBreakdown",
    "StoredExposureProvider",
    "aggregate_exposure",
    "ImportOrchestrator",
    "ImportReport",
    "AcceptanceReport",
    "InMemoryStore",
    "JsonFileStore",
]
