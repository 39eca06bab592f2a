# tradeledger/exposure.py
import logging
from collections import defaultdict
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Protocol

from pydantic import BaseModel, Field

from .positions import Position
from .sector_mapper import UNCLASSIFIED, SectorMaster, infer_region, normalize_sector_name
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

SECTOR_KEY = "exposure-sectors"
REGION_KEY = "exposure-regions"


class ExposureWeight(NamedTuple):
    classification_id: str
    weight: float


class ExposureProvider(Protocol):
    def get_sector_exposure(self, instrument_key: str, as_of: Optional[date] = None) -> List[ExposureWeight]:
        ...

    def get_region_exposure(self, instrument_key: str, as_of: Optional[date] = None) -> List[ExposureWeight]:
        ...


class ExposureShare(BaseModel):
    key: str
    value: float
    percentage: float


class ExposureBreakdown(BaseModel):
    sector: List[ExposureShare] = Field(default_factory=list)
    region: List[ExposureShare] = Field(default_factory=list)
    total_value: float = 0.0


def coerce_weights(raw: Any) -> List[ExposureWeight]:
    """
    Accept weights as ExposureWeight / (id, weight) tuples or dicts keyed
    classification_id, sectorId or regionId. Entries without an id are dropped.
    """
    weights = []
    for item in raw or []:
        if isinstance(item, dict):
            cid = item.get("classification_id") or item.get("sectorId") or item.get("regionId") or item.get("id")
            w = item.get("weight", 0)
        else:
            cid, w = item[0], item[1]
        if not cid:
            continue
        try:
            weight = float(w)
        except (TypeError, ValueError):
            weight = 0.0
        weights.append(ExposureWeight(str(cid), weight))
    return weights


class StoredExposureProvider:
    """
    Manually maintained sector / region weight tables kept in the key-value
    store, keyed by instrument key ("JP:7203", "US:AAPL", "FUND:<fund name>").

    Instruments without a stored table are Unclassified by sector, or looked
    up in sector_master when one is given, and take a region inferred from
    the key's market prefix.
    """

    def __init__(self, store: KeyValueStore, namespace: str = "investment-",
                 sector_master: Optional[SectorMaster] = None):
        self.store = store
        self.sector_key = f"{namespace}{SECTOR_KEY}"
        self.region_key = f"{namespace}{REGION_KEY}"
        self.sector_master = sector_master

    def _table(self, key: str) -> Dict[str, Any]:
        table = self.store.get(key)
        return table if isinstance(table, dict) else {}

    def _save(self, key: str, instrument_key: str, weights: Iterable[Any], normalize=None) -> None:
        table = self._table(key)
        rows = []
        for w in coerce_weights(list(weights)):
            cid = normalize(w.classification_id) if normalize else w.classification_id
            rows.append({"classification_id": cid, "weight": w.weight})
        table[instrument_key] = rows
        self.store.set(key, table)

    def set_sector_exposure(self, instrument_key: str, weights: Iterable[Any]) -> None:
        self._save(self.sector_key, instrument_key, weights, normalize=normalize_sector_name)

    def set_region_exposure(self, instrument_key: str, weights: Iterable[Any]) -> None:
        self._save(self.region_key, instrument_key, weights)

    def get_sector_exposure(self, instrument_key: str, as_of: Optional[date] = None) -> List[ExposureWeight]:
        stored = coerce_weights(self._table(self.sector_key).get(instrument_key))
        if stored:
            return stored
        if self.sector_master is None:
            return [ExposureWeight(UNCLASSIFIED, 1.0)]
        instrument = instrument_key.split(":", 1)[-1]
        return [ExposureWeight(self.sector_master.assign_sector(instrument, instrument), 1.0)]

    def get_region_exposure(self, instrument_key: str, as_of: Optional[date] = None) -> List[ExposureWeight]:
        stored = coerce_weights(self._table(self.region_key).get(instrument_key))
        if stored:
            return stored
        return [ExposureWeight(infer_region(instrument_key), 1.0)]


def _lookup(fn: Optional[Callable], instrument_key: str, as_of: date) -> List[ExposureWeight]:
    if fn is None:
        return []
    try:
        return coerce_weights(fn(instrument_key, as_of))
    except Exception as e:
        # treated as "no data" for this instrument
        logger.warning("exposure lookup failed for %s: %s", instrument_key, e)
        return []


def _shares(totals: Dict[str, float], total_value: float) -> List[ExposureShare]:
    ordered = sorted(totals.items(), key=lambda kv: kv[1], reverse=True)
    return [
        ExposureShare(
            key=key,
            value=value,
            percentage=round(value / total_value * 100, 2) if total_value > 0 else 0.0,
        )
        for key, value in ordered
    ]


def aggregate_exposure(positions: Iterable[Position], provider: Optional[ExposureProvider] = None,
                       as_of: Optional[date] = None) -> ExposureBreakdown:
    """
    Distribute each position's cost across its sector and region weights.

    Args:
        positions: Positions to weight; non-positive cost ones are skipped
        provider: Weight lookup; None, errors and empty answers all mean
            "Unclassified" sector and a region inferred from the market
        as_of: Date passed through to the provider (today by default)

    Returns:
        ExposureBreakdown with shares sorted by value, percentages of the
        total positive cost rounded to 2 decimals
    """
    as_of = as_of or date.today()
    sector_totals: Dict[str, float] = defaultdict(float)
    region_totals: Dict[str, float] = defaultdict(float)
    total_value = 0.0

    for p in positions:
        value = p.total_cost
        if value <= 0:
            continue
        total_value += value
        key = p.instrument_key

        sectors = _lookup(getattr(provider, "get_sector_exposure", None), key, as_of) \
            or [ExposureWeight(UNCLASSIFIED, 1.0)]
        regions = _lookup(getattr(provider, "get_region_exposure", None), key, as_of) \
            or [ExposureWeight(infer_region(key), 1.0)]

        for w in sectors:
            sector_totals[w.classification_id] += value * w.weight
        for w in regions:
            region_totals[w.classification_id] += value * w.weight

    return ExposureBreakdown(
        sector=_shares(sector_totals, total_value),
        region=_shares(region_totals, total_value),
        total_value=total_value,
    )
