# tradeledger/importer.py
"""
Import use case: parse an export, insert it into the ledger, and report.

ImportOrchestrator is the only component that touches the persistence
store directly; the parser and aggregators are pure.
"""

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional, Sequence, Union

from pydantic import BaseModel, Field

from .config import Settings
from .exposure import ExposureBreakdown, ExposureProvider, StoredExposureProvider, aggregate_exposure
from .ledger import TransactionLedger, UpsertResult
from .models import BatchMeta, CanonicalTransaction, Subtype
from .parser import DEFAULT_SOURCE, PARSER_VERSION, parse_export
from .positions import Position, active_positions, positions_from_transactions
from .storage import JsonFileStore, KeyValueStore

logger = logging.getLogger(__name__)


class CashflowSummary(BaseModel):
    """Approximate cashflow of a batch in the base currency."""
    currency: str
    inflow: float = 0.0
    outflow: float = 0.0
    net: float = 0.0
    unknown_fx: int = 0      # entries excluded because no FX rate was known


class AcceptanceReport(BaseModel):
    """
    Advisory post-import checks. Nothing here blocks an import.
    """
    checked: int = 0
    sign_mismatches: int = 0
    sign_mismatch_rate: float = 0.0
    inserted: int = 0
    skipped: int = 0
    updated: int = 0
    cashflow: CashflowSummary


class ImportReport(BaseModel):
    file_name: Optional[str] = None
    format: str
    encoding: str
    total_rows: int = 0
    converted_rows: int = 0
    warnings: List[str] = Field(default_factory=list)
    upsert: UpsertResult
    acceptance: AcceptanceReport
    batch: BatchMeta


@dataclass
class PortfolioAnalysis:
    positions: List[Position] = field(default_factory=list)
    exposure: ExposureBreakdown = field(default_factory=ExposureBreakdown)


def file_hash(raw: Union[bytes, str]) -> str:
    data = raw.encode("utf-8") if isinstance(raw, str) else raw
    return hashlib.sha256(data).hexdigest()


class ImportOrchestrator:
    def __init__(self, ledger: TransactionLedger, exposure_provider: Optional[ExposureProvider] = None,
                 source: str = DEFAULT_SOURCE, base_currency: str = "JPY",
                 encodings: Optional[Sequence[str]] = None):
        self.ledger = ledger
        self.exposure_provider = exposure_provider
        self.source = source
        self.base_currency = base_currency.upper()
        self.encodings = encodings

    @classmethod
    def from_store(cls, store: KeyValueStore, settings: Optional[Settings] = None) -> "ImportOrchestrator":
        settings = settings or Settings()
        return cls(
            ledger=TransactionLedger(store, namespace=settings.namespace),
            exposure_provider=StoredExposureProvider(store, namespace=settings.namespace),
            source=settings.source,
            base_currency=settings.base_currency,
            encodings=settings.encodings,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "ImportOrchestrator":
        return cls.from_store(JsonFileStore(settings.store_dir), settings)

    def import_export(self, raw: Union[bytes, str], fmt: Union[Subtype, str, None] = None,
                      file_name: Optional[str] = None) -> ImportReport:
        """
        Parse an export and append its new transactions to the ledger.

        Rejected rows end up as warnings in the report.

        Raises:
            EncodingRecoveryError: the file could not be decoded
            LedgerWriteError: the ledger write failed; nothing was stored
        """
        parsed = parse_export(raw, fmt, source=self.source, encodings=self.encodings)
        batch = BatchMeta(
            source=self.source,
            subtype=parsed.format.value,
            file_hash=file_hash(raw),
            parser_version=PARSER_VERSION,
            file_name=file_name,
            imported_at=datetime.now(timezone.utc),
        )
        upsert = self.ledger.upsert_batch(batch, parsed.transactions)
        acceptance = self.acceptance_check(parsed.transactions, upsert)

        if acceptance.sign_mismatches:
            logger.warning("%d of %d entries disagree with the sign convention",
                           acceptance.sign_mismatches, acceptance.checked)

        return ImportReport(
            file_name=file_name,
            format=parsed.format.value,
            encoding=parsed.encoding,
            total_rows=parsed.total_rows,
            converted_rows=parsed.converted_rows,
            warnings=parsed.warnings,
            upsert=upsert,
            acceptance=acceptance,
            batch=batch,
        )

    def import_file(self, file_path: Union[str, Path], fmt: Union[Subtype, str, None] = None) -> ImportReport:
        p = Path(file_path)
        if not p.exists():
            raise FileNotFoundError(f"File not found: {p}")
        return self.import_export(p.read_bytes(), fmt, file_name=p.name)

    def acceptance_check(self, transactions: Iterable[CanonicalTransaction],
                         upsert: Optional[UpsertResult] = None) -> AcceptanceReport:
        """
        Reconcile a batch: sign-convention mismatches, dedup counters and
        a cashflow summary converted to the base currency at each entry's
        own FX rate.
        """
        txs = list(transactions)
        mismatches = sum(1 for t in txs if not t.check_sign_convention())
        cash = CashflowSummary(currency=self.base_currency)

        for t in txs:
            if t.settled_currency == self.base_currency:
                amount = t.settled_amount
            elif t.fx_rate:
                amount = t.settled_amount * t.fx_rate
            else:
                cash.unknown_fx += 1
                continue
            if amount >= 0:
                cash.inflow += amount
            else:
                cash.outflow += -amount
        cash.net = cash.inflow - cash.outflow

        upsert = upsert or UpsertResult()
        return AcceptanceReport(
            checked=len(txs),
            sign_mismatches=mismatches,
            sign_mismatch_rate=round(mismatches / len(txs), 4) if txs else 0.0,
            inserted=upsert.inserted,
            skipped=upsert.skipped,
            updated=upsert.updated,
            cashflow=cash,
        )

    def analyze(self, date_from: Union[date, str, None] = None, date_to: Union[date, str, None] = None,
                as_of: Optional[date] = None, active_only: bool = False) -> PortfolioAnalysis:
        """Positions and sector / region exposure recomputed from the stored ledger."""
        if date_from or date_to:
            txs = self.ledger.list_by_date_range(date_from, date_to)
        else:
            txs = self.ledger.get_all()
        positions = positions_from_transactions(txs)
        if active_only:
            positions = active_positions(positions)
        exposure = aggregate_exposure(positions, self.exposure_provider, as_of=as_of)
        return PortfolioAnalysis(positions=positions, exposure=exposure)
