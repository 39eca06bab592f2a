# tradeledger/positions.py
"""
Weighted-average-cost position aggregation.

A buy adds its cost and quantity. A sell removes cost at the current
average (not lot by lot) and never drives the cost basis below zero. Other
trade types (dividend, interest, fee, transfers) leave quantity and cost
untouched.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional

from .models import CanonicalTransaction, TradeType, market_for_subtype

_EPSILON = 1e-9


class PositionKey(NamedTuple):
    instrument: str
    market: str
    currency: str


@dataclass
class Position:
    symbol: Optional[str]
    name: str
    market: str
    currency: str
    quantity_net: float = 0.0
    total_cost: float = 0.0
    avg_price: float = 0.0

    @property
    def key(self) -> PositionKey:
        return PositionKey(self.symbol or self.name, self.market, self.currency)

    @property
    def instrument_key(self) -> str:
        """"<market>:<symbol-or-name>", the key weight tables are stored under."""
        return f"{self.market}:{self.symbol or self.name}"

    def apply_buy(self, quantity: float, cost: float) -> None:
        self.total_cost += cost
        self.quantity_net += quantity
        self._refresh()

    def apply_sell(self, quantity: float) -> None:
        current_avg = self.total_cost / self.quantity_net if self.quantity_net > 0 else 0.0
        self.total_cost = max(0.0, self.total_cost - current_avg * quantity)
        self.quantity_net -= quantity
        self._refresh()

    def _refresh(self) -> None:
        # a full sell lands on exactly zero
        if math.isclose(self.quantity_net, 0.0, abs_tol=_EPSILON):
            self.quantity_net = 0.0
        if self.total_cost < _EPSILON:
            self.total_cost = 0.0
        self.avg_price = self.total_cost / self.quantity_net if self.quantity_net > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["instrument_key"] = self.instrument_key
        return data


class _PositionBook:
    def __init__(self):
        self._positions: Dict[PositionKey, Position] = {}

    def get(self, symbol: Optional[str], name: str, market: str, currency: str) -> Position:
        key = PositionKey(symbol or name, market, currency)
        if key not in self._positions:
            self._positions[key] = Position(symbol=symbol, name=name, market=market, currency=currency)
        return self._positions[key]

    def apply(self, position: Position, side: str, quantity: float, cost: float) -> None:
        if side == TradeType.BUY.value:
            position.apply_buy(quantity, cost)
        elif side == TradeType.SELL.value:
            position.apply_sell(quantity)

    def positions(self) -> List[Position]:
        return list(self._positions.values())


def _num(value: Any) -> float:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    return 0.0 if math.isnan(n) else n


def aggregate_trades(trades: Iterable[Mapping[str, Any]]) -> List[Position]:
    """
    Fold lightweight trade records into positions.

    Each record is a mapping with symbol, market, currency, side
    ("buy" / "sell"), quantity, amount and optionally price; the buy cost is
    amount, or quantity * price when amount is missing. Records without a
    symbol are ignored.
    """
    book = _PositionBook()
    for tx in trades:
        if not tx or not tx.get("symbol"):
            continue
        symbol = str(tx["symbol"])
        market = tx.get("market") or "OTHER"
        currency = str(tx.get("currency") or "JPY").upper()
        quantity = _num(tx.get("quantity"))
        amount = _num(tx.get("amount")) or quantity * _num(tx.get("price"))
        side = str(tx.get("side") or "buy").lower()

        position = book.get(symbol, symbol, market, currency)
        book.apply(position, side, quantity, abs(amount))
    return book.positions()


def positions_from_transactions(transactions: Iterable[CanonicalTransaction]) -> List[Position]:
    """
    Fold canonical transactions into positions.

    The instrument is keyed by (symbol-or-name, market, settled currency).
    Market falls back to the subtype's market (JP / US / FUND) when the
    transaction has none. A buy costs abs(settled_amount).
    """
    book = _PositionBook()
    for tx in transactions:
        if tx is None:
            continue
        market = tx.market or market_for_subtype(tx.subtype)
        currency = tx.settled_currency or tx.currency
        position = book.get(tx.symbol, tx.name or tx.symbol or "", market, currency)
        book.apply(position, tx.trade_type, tx.quantity, abs(tx.settled_amount))
    return book.positions()


def active_positions(positions: Iterable[Position]) -> List[Position]:
    """Positions still held (quantity_net > 0)."""
    return [p for p in positions if p.quantity_net > 0]
