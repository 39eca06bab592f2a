# tradeledger/models.py
import hashlib
import re
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, model_validator

from .errors import TransactionValidationError
from .symbol_mapper import currency_code_from_label, parse_amount, parse_date, parse_number


CURRENCY_CODE = re.compile(r"^[A-Z]{3}$")


class Subtype(str, Enum):
    """The three export layouts and the transaction subtype each one produces."""
    DOMESTIC_EQUITY = "domestic_equity"
    FOREIGN_EQUITY = "foreign_equity"
    FUND_UNIT = "fund_unit"

    @classmethod
    def parse(cls, value: Any) -> "Subtype":
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().lower().replace("-", "_")
        if key in _SUBTYPE_ALIASES:
            return _SUBTYPE_ALIASES[key]
        return cls(key)

    @property
    def market(self) -> str:
        return _SUBTYPE_MARKETS[self]


_SUBTYPE_ALIASES = {
    "jp": Subtype.DOMESTIC_EQUITY,
    "jp_stock": Subtype.DOMESTIC_EQUITY,
    "jp_equity": Subtype.DOMESTIC_EQUITY,
    "us": Subtype.FOREIGN_EQUITY,
    "us_stock": Subtype.FOREIGN_EQUITY,
    "us_equity": Subtype.FOREIGN_EQUITY,
    "invst": Subtype.FUND_UNIT,
    "fund": Subtype.FUND_UNIT,
    "mutual_fund": Subtype.FUND_UNIT,
}

_SUBTYPE_MARKETS = {
    Subtype.DOMESTIC_EQUITY: "JP",
    Subtype.FOREIGN_EQUITY: "US",
    Subtype.FUND_UNIT: "FUND",
}


def market_for_subtype(subtype: Any) -> str:
    """JP / US / FUND for the known subtypes, OTHER for anything else."""
    try:
        return Subtype.parse(subtype).market
    except ValueError:
        return "OTHER"


class TradeType(str, Enum):
    BUY = "buy"
    SELL = "sell"
    DIVIDEND = "dividend"
    INTEREST = "interest"
    STAKING = "staking"
    FEE = "fee"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    OTHER = "other"


# +1: cash inflow (>= 0), -1: outflow (<= 0), 0: unconstrained
EXPECTED_SIGN = {
    TradeType.BUY.value: -1,
    TradeType.SELL.value: 1,
    TradeType.DIVIDEND.value: 1,
    TradeType.INTEREST.value: 1,
    TradeType.STAKING.value: 1,
    TradeType.FEE.value: -1,
    TradeType.TRANSFER_IN.value: 1,
    TradeType.TRANSFER_OUT.value: -1,
}


def normalize_trade_type(value: Any) -> str:
    return re.sub(r"[\s\-]+", "_", str(value or "").strip().lower())


def expected_sign(trade_type: Any) -> int:
    return EXPECTED_SIGN.get(normalize_trade_type(trade_type), 0)


def apply_sign_convention(trade_type: Any, amount: float) -> float:
    """Force the sign of a settlement amount to the trade type's convention."""
    sign = expected_sign(trade_type)
    if sign == 0:
        return amount
    return sign * abs(amount)


class BatchMeta(BaseModel):
    """Provenance attached to every transaction inserted by one import."""
    source: str
    subtype: str
    file_hash: Optional[str] = None
    parser_version: Optional[str] = None
    file_name: Optional[str] = None
    imported_at: Optional[datetime] = None


FINGERPRINT_FIELDS = (
    "source", "subtype", "trade_date", "name", "symbol", "trade_type",
    "quantity", "price", "currency", "settled_amount", "settled_currency",
)


def _fingerprint_part(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return str(value)
    if isinstance(value, float):
        return str(int(value)) if value.is_integer() else repr(value)
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _escape_part(part: str) -> str:
    # keeps "a|b" + "c" apart from "a" + "b|c"
    return part.replace("\\", "\\\\").replace("|", "\\|")


def compute_fingerprint(fields: Dict[str, Any]) -> str:
    """
    Deterministic dedup key: "tx-" + 128 bits of sha256 over the
    pipe-joined key fields, with "|" and "\\" escaped inside each field.
    """
    base = "|".join(_escape_part(_fingerprint_part(fields.get(k))) for k in FINGERPRINT_FIELDS)
    return "tx-" + hashlib.sha256(base.encode("utf-8")).hexdigest()[:32]


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, Enum):
        value = value.value
    s = str(value).strip()
    return s or None


def _currency_or_none(value: Any) -> Optional[str]:
    code = currency_code_from_label(value)
    return code or None


def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    # tolerate camelCase records (tradeDate, settledAmount, _batch)
    raw: Dict[str, Any] = {}
    for k, v in data.items():
        key = "batch" if k == "_batch" else _snake(str(k))
        if key not in raw or raw[key] is None:
            raw[key] = v

    quantity = parse_number(raw.get("quantity"))
    fx_rate = parse_number(raw.get("fx_rate"))

    return {
        "source": _text(raw.get("source")) or "",
        "subtype": (_text(raw.get("subtype")) or "").lower(),
        "trade_date": parse_date(raw.get("trade_date")),
        "settle_date": parse_date(raw.get("settle_date")),
        "symbol": _text(raw.get("symbol")),
        "name": _text(raw.get("name")) or "",
        "market": _text(raw.get("market")),
        "account_type": _text(raw.get("account_type")),
        "margin_type": _text(raw.get("margin_type")),
        "trade_type": normalize_trade_type(raw.get("trade_type")),
        "quantity": quantity,
        "quantity_unit": _text(raw.get("quantity_unit")) or "",
        "price": parse_number(raw.get("price")),
        "price_currency": _currency_or_none(raw.get("price_currency")),
        "gross_amount": parse_number(raw.get("gross_amount")),
        "gross_currency": _currency_or_none(raw.get("gross_currency")),
        "fee": parse_amount(raw.get("fee")),
        "tax": parse_amount(raw.get("tax")),
        "other_costs": parse_amount(raw.get("other_costs")),
        "currency": currency_code_from_label(raw.get("currency")),
        "fx_rate": fx_rate if fx_rate else None,
        "settled_amount": parse_number(raw.get("settled_amount")),
        "settled_currency": currency_code_from_label(raw.get("settled_currency")),
        "remarks": _text(raw.get("remarks")),
        "fingerprint": _text(raw.get("fingerprint")) or "",
        "batch": raw.get("batch"),
    }


def _violations(v: Dict[str, Any]) -> List[str]:
    errors = []
    if not v["source"]:
        errors.append("source is required")
    if not v["subtype"]:
        errors.append("subtype is required")
    if v["trade_date"] is None:
        errors.append("trade_date is required")
    if not v["name"]:
        errors.append("name is required")
    if not v["trade_type"]:
        errors.append("trade_type is required")
    if v["quantity"] is None or not v["quantity"] > 0:
        errors.append("quantity must be a positive number")
    if not v["quantity_unit"]:
        errors.append("quantity_unit is required")
    if not CURRENCY_CODE.match(v["currency"]):
        errors.append("currency must be a 3-letter code")
    if v["settled_amount"] is None:
        errors.append("settled_amount must be numeric")
    if not CURRENCY_CODE.match(v["settled_currency"]):
        errors.append("settled_currency must be a 3-letter code")
    if v["price_currency"] and not CURRENCY_CODE.match(v["price_currency"]):
        errors.append("price_currency must be a 3-letter code")
    if v["gross_currency"] and not CURRENCY_CODE.match(v["gross_currency"]):
        errors.append("gross_currency must be a 3-letter code")
    return errors


class CanonicalTransaction(BaseModel):
    """
    The single normalized record every export row is converted into.

    Construction normalizes the raw values (currency labels to codes, dates
    to `date`, numbers stripped of separators and symbols), then checks all
    invariants at once and raises TransactionValidationError listing every
    violation. Instances are immutable.
    """
    model_config = ConfigDict(frozen=True)

    source: str
    subtype: str
    trade_date: date
    settle_date: Optional[date] = None
    symbol: Optional[str] = None
    name: str
    market: Optional[str] = None
    account_type: Optional[str] = None
    margin_type: Optional[str] = None
    trade_type: str
    quantity: float
    quantity_unit: str
    price: Optional[float] = None
    price_currency: Optional[str] = None
    gross_amount: Optional[float] = None
    gross_currency: Optional[str] = None
    fee: float = 0.0
    tax: float = 0.0
    other_costs: float = 0.0
    currency: str
    fx_rate: Optional[float] = None
    settled_amount: float
    settled_currency: str
    remarks: Optional[str] = None
    fingerprint: str = ""
    batch: Optional[BatchMeta] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_and_check(cls, data: Any) -> Any:
        if isinstance(data, BaseModel):
            return data
        if not isinstance(data, dict):
            raise TransactionValidationError(["transaction data must be a mapping"])
        values = _normalize(data)
        violations = _violations(values)
        if violations:
            raise TransactionValidationError(violations)
        # a stored fingerprint is kept so older records stay stable on reload
        if not values["fingerprint"]:
            values["fingerprint"] = compute_fingerprint(values)
        return values

    @property
    def expected_sign(self) -> int:
        return expected_sign(self.trade_type)

    def check_sign_convention(self) -> bool:
        """True when settled_amount's sign agrees with the trade type (inflow >= 0, outflow <= 0)."""
        sign = self.expected_sign
        if sign > 0:
            return self.settled_amount >= 0
        if sign < 0:
            return self.settled_amount <= 0
        return True

    def with_batch(self, batch: BatchMeta) -> "CanonicalTransaction":
        return self.model_copy(update={"batch": batch})

    def to_record(self) -> Dict[str, Any]:
        """JSON-safe dict used by the ledger's persisted collection."""
        return self.model_dump(mode="json")
