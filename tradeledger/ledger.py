# tradeledger/ledger.py
import logging
from collections import Counter
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Union

import pandas as pd
from pydantic import BaseModel

from .errors import LedgerWriteError, TransactionValidationError
from .models import BatchMeta, CanonicalTransaction
from .symbol_mapper import parse_date
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "investment-"
TRANSACTIONS_KEY = "transactions"


class UpsertResult(BaseModel):
    inserted: int = 0
    skipped: int = 0
    updated: int = 0
    total: int = 0
    rejected: int = 0


class LedgerStats(BaseModel):
    total: int = 0
    by_trade_type: Dict[str, int] = {}
    by_subtype: Dict[str, int] = {}
    by_currency: Dict[str, int] = {}
    first_trade_date: Optional[date] = None
    last_trade_date: Optional[date] = None


class TransactionLedger:
    """
    Append-only store of canonical transactions, deduplicated by fingerprint.

    The whole collection lives under one namespaced key of the store. Every
    call reloads it; nothing is cached between calls.
    """

    def __init__(self, store: KeyValueStore, namespace: str = DEFAULT_NAMESPACE):
        self.store = store
        self.key = f"{namespace}{TRANSACTIONS_KEY}"

    def _load_rows(self) -> List[Dict[str, Any]]:
        rows = self.store.get(self.key)
        return rows if isinstance(rows, list) else []

    def upsert_batch(self, batch_meta: BatchMeta,
                     transactions: Iterable[Union[CanonicalTransaction, Dict[str, Any]]]) -> UpsertResult:
        """
        Append the transactions whose fingerprint is not stored yet.

        Duplicates within the batch are caught as well. Plain dicts are
        validated first; invalid ones are counted as rejected.

        Raises:
            LedgerWriteError: the store rejected the write; nothing was committed
        """
        existing = self._load_rows()
        seen = {row.get("fingerprint") for row in existing}
        result = UpsertResult()
        to_append: List[Dict[str, Any]] = []

        for t in transactions:
            if not isinstance(t, CanonicalTransaction):
                try:
                    t = CanonicalTransaction.model_validate(t)
                except TransactionValidationError as e:
                    logger.warning("rejected transaction in batch: %s", e)
                    result.rejected += 1
                    continue

            if t.fingerprint in seen:
                result.skipped += 1
                continue
            to_append.append(t.with_batch(batch_meta).to_record())
            seen.add(t.fingerprint)
            result.inserted += 1

        all_rows = existing + to_append
        if to_append:
            try:
                self.store.set(self.key, all_rows)
            except Exception as e:
                raise LedgerWriteError(f"failed to save {self.key}: {e}") from e

        result.total = len(all_rows)
        logger.info("batch %s/%s: inserted=%d skipped=%d rejected=%d total=%d",
                    batch_meta.source, batch_meta.subtype,
                    result.inserted, result.skipped, result.rejected, result.total)
        return result

    def _reconstruct(self, rows: Iterable[Dict[str, Any]]) -> List[CanonicalTransaction]:
        out = []
        for row in rows:
            try:
                out.append(CanonicalTransaction.model_validate(row))
            except TransactionValidationError as e:
                logger.warning("stored row %s could not be reconstructed: %s", row.get("fingerprint"), e)
        return out

    def get_all(self) -> List[CanonicalTransaction]:
        return self._reconstruct(self._load_rows())

    def list_by_date_range(self, date_from: Union[date, str, None] = None,
                           date_to: Union[date, str, None] = None) -> List[CanonicalTransaction]:
        """Transactions whose trade date falls within [date_from, date_to]; either bound may be None."""
        start = parse_date(date_from) if date_from else None
        end = parse_date(date_to) if date_to else None
        selected = [
            t for t in self.get_all()
            if (start is None or t.trade_date >= start) and (end is None or t.trade_date <= end)
        ]
        logger.debug("list_by_date_range %s..%s -> %d", start, end, len(selected))
        return selected

    def fingerprints(self) -> set:
        return {row.get("fingerprint") for row in self._load_rows()}

    def stats(self) -> LedgerStats:
        txs = self.get_all()
        if not txs:
            return LedgerStats()
        dates = [t.trade_date for t in txs]
        return LedgerStats(
            total=len(txs),
            by_trade_type=dict(Counter(t.trade_type for t in txs)),
            by_subtype=dict(Counter(t.subtype for t in txs)),
            by_currency=dict(Counter(t.settled_currency for t in txs)),
            first_trade_date=min(dates),
            last_trade_date=max(dates),
        )

    def to_frame(self, transactions: Optional[List[CanonicalTransaction]] = None) -> pd.DataFrame:
        """Flat DataFrame of the ledger (or the given transactions), newest first, for CSV export."""
        txs = self.get_all() if transactions is None else transactions
        records = [t.model_dump(mode="json", exclude={"batch"}) for t in txs]
        columns = [f for f in CanonicalTransaction.model_fields if f != "batch"]
        df = pd.DataFrame.from_records(records, columns=columns)
        if not df.empty:
            df = df.sort_values("trade_date", ascending=False, kind="stable").reset_index(drop=True)
        return df
