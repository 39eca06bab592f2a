# tradeledger/parser.py
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .column_detector import (
    DOMESTIC_COLUMNS,
    FOREIGN_COLUMNS,
    FUND_COLUMNS,
    REQUIRED_FIELDS,
    FORMAT_COLUMNS,
    detect_format,
    find_column_value,
    missing_required_columns,
)
from .encoding import decode_export
from .errors import RowMappingError, TransactionValidationError, UnsupportedFormatError
from .models import CanonicalTransaction, Subtype, TradeType, apply_sign_convention
from .symbol_mapper import (
    currency_code_from_label,
    normalize_symbol,
    parse_amount,
    parse_date,
    parse_number,
    split_points_amount,
)

logger = logging.getLogger(__name__)

PARSER_VERSION = "1.2.0"
DEFAULT_SOURCE = "rakuten"

# Checked in order; the first pattern found in the label wins
TRADE_TYPE_PATTERNS: List[Tuple[TradeType, Tuple[str, ...]]] = [
    (TradeType.TRANSFER_IN, ("入庫", "移管入", "transfer_in", "transfer in")),
    (TradeType.TRANSFER_OUT, ("出庫", "移管出", "transfer_out", "transfer out")),
    (TradeType.BUY, ("再投資",)),
    (TradeType.DIVIDEND, ("配当", "分配", "dividend")),
    (TradeType.INTEREST, ("利息", "金利", "interest")),
    (TradeType.STAKING, ("ステーキング", "staking")),
    (TradeType.FEE, ("手数料", "fee")),
    (TradeType.SELL, ("売", "解約", "sell")),
    (TradeType.BUY, ("買", "積立", "buy")),
]


def classify_trade_type(label: Any) -> str:
    """Map a trade-type cell ("買付", "売付", "配当金", "Buy", ...) to a canonical trade type."""
    s = str(label or "").strip().lower()
    if not s:
        return ""
    for trade_type, patterns in TRADE_TYPE_PATTERNS:
        if any(p in s for p in patterns):
            return trade_type.value
    return TradeType.OTHER.value


@dataclass
class RowResult:
    """Outcome of mapping one export row: a transaction or an error message."""
    record_number: int
    transaction: Optional[CanonicalTransaction] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.transaction is not None


@dataclass
class ParseResult:
    format: Subtype
    encoding: str
    headers: List[str] = field(default_factory=list)
    transactions: List[CanonicalTransaction] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    total_rows: int = 0

    @property
    def converted_rows(self) -> int:
        return len(self.transactions)

    @property
    def failed_rows(self) -> int:
        return self.total_rows - self.converted_rows


def read_table(text: str) -> Tuple[pd.DataFrame, List[str]]:
    """
    Tokenize CSV text into a string-typed DataFrame with trimmed headers.

    Lines with too many fields are skipped and reported back as warnings.
    """
    bad_lines: List[str] = []

    def _on_bad_line(line: List[str]) -> None:
        bad_lines.append("malformed line skipped: " + ",".join(line)[:80])
        return None

    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            engine="python",
            on_bad_lines=_on_bad_line,
        )
    except pd.errors.EmptyDataError:
        return pd.DataFrame(), ["empty-input"]

    df.columns = [str(c).strip() for c in df.columns]
    return df.fillna(""), bad_lines


def _is_blank_row(raw: Dict[str, Any]) -> bool:
    return not any(str(v).strip() for v in raw.values())


def _gross(quantity: Optional[float], price: Optional[float]) -> Optional[float]:
    if quantity is None or price is None:
        return None
    return abs(quantity) * price


def _settled(trade_type: str, amount: Optional[float], fallback: Optional[float] = None) -> Optional[float]:
    # the sign comes from the trade type, never from the export
    if amount is None:
        amount = fallback
    if amount is None:
        return None
    return apply_sign_convention(trade_type, amount)


def map_domestic_row(row: Dict[str, Any], source: str = DEFAULT_SOURCE) -> Dict[str, Any]:
    """Domestic-equity row to CanonicalTransaction keyword arguments."""
    def v(name):
        return find_column_value(row, DOMESTIC_COLUMNS[name])

    trade_type = classify_trade_type(v("trade_type"))
    quantity = parse_number(v("quantity"))
    quantity = abs(quantity) if quantity is not None else None
    price = parse_number(v("price"))
    gross = _gross(quantity, price)

    return {
        "source": source,
        "subtype": Subtype.DOMESTIC_EQUITY.value,
        "trade_date": v("trade_date"),
        "settle_date": v("settle_date"),
        "symbol": normalize_symbol(v("symbol")),
        "name": v("name"),
        "market": v("market"),
        "account_type": v("account_type"),
        "margin_type": v("margin_type"),
        "trade_type": trade_type,
        "quantity": quantity,
        "quantity_unit": "株",
        "price": price,
        "price_currency": "JPY",
        "gross_amount": gross,
        "gross_currency": "JPY" if gross is not None else None,
        "fee": parse_amount(v("fee")),
        "tax": parse_amount(v("tax")),
        "other_costs": parse_amount(v("other_costs")),
        "currency": "JPY",
        "settled_amount": _settled(trade_type, parse_number(v("settled_amount"))),
        "settled_currency": "JPY",
    }


def map_foreign_row(row: Dict[str, Any], source: str = DEFAULT_SOURCE) -> Dict[str, Any]:
    """
    Foreign-equity row to CanonicalTransaction keyword arguments.

    The settlement-currency selector decides which settlement column is
    authoritative: "円" settles from the JPY column, anything else from the
    USD column.
    """
    def v(name):
        return find_column_value(row, FOREIGN_COLUMNS[name])

    trade_type = classify_trade_type(v("trade_type"))
    quantity = parse_number(v("quantity"))
    quantity = abs(quantity) if quantity is not None else None
    price = parse_number(v("price"))
    gross = parse_number(v("gross_amount"))
    if gross is None:
        gross = _gross(quantity, price)
    fx_rate = parse_number(v("fx_rate"))

    settle_code = currency_code_from_label(v("settlement_currency")) or "USD"
    if settle_code == "JPY":
        amount = parse_number(v("settled_amount_domestic"))
        fallback = gross * fx_rate if gross is not None and fx_rate else None
    else:
        amount = parse_number(v("settled_amount_foreign"))
        fallback = gross

    return {
        "source": source,
        "subtype": Subtype.FOREIGN_EQUITY.value,
        "trade_date": v("trade_date"),
        "settle_date": v("settle_date"),
        "symbol": normalize_symbol(v("symbol")),
        "name": v("name"),
        "account_type": v("account_type"),
        "margin_type": v("margin_type"),
        "trade_type": trade_type,
        "quantity": quantity,
        "quantity_unit": "株",
        "price": price,
        "price_currency": "USD",
        "gross_amount": gross,
        "gross_currency": "USD" if gross is not None else None,
        "fee": parse_amount(v("fee")),
        "tax": parse_amount(v("tax")),
        "currency": settle_code,
        "fx_rate": fx_rate,
        "settled_amount": _settled(trade_type, amount, fallback),
        "settled_currency": settle_code,
    }


def map_fund_row(row: Dict[str, Any], source: str = DEFAULT_SOURCE) -> Dict[str, Any]:
    """
    Fund-unit row to CanonicalTransaction keyword arguments.

    The settlement cell carries points used in parentheses ("10,000(500)");
    the amount before the parenthesis is the settled amount and the points
    go to remarks.
    """
    def v(name):
        return find_column_value(row, FUND_COLUMNS[name])

    trade_type = classify_trade_type(v("trade_type"))
    quantity = parse_number(v("quantity"))
    quantity = abs(quantity) if quantity is not None else None
    amount, points = split_points_amount(v("settled_amount"))
    currency = currency_code_from_label(v("settlement_currency")) or "JPY"

    remarks = []
    if points:
        remarks.append(f"points={points}")
    if v("buy_method"):
        remarks.append(f"buy_method={v('buy_method')}")
    if v("distribution"):
        remarks.append(f"distribution={v('distribution')}")

    return {
        "source": source,
        "subtype": Subtype.FUND_UNIT.value,
        "trade_date": v("trade_date"),
        "settle_date": v("settle_date"),
        "name": v("name"),
        "account_type": v("account_type"),
        "trade_type": trade_type,
        "quantity": quantity,
        "quantity_unit": "口",
        "price": parse_number(v("price")),
        "price_currency": currency,
        "fee": parse_amount(v("fee")),
        "currency": currency,
        "fx_rate": parse_number(v("fx_rate")),
        "settled_amount": _settled(trade_type, amount),
        "settled_currency": currency,
        "remarks": "; ".join(remarks) or None,
    }


ROW_MAPPERS = {
    Subtype.DOMESTIC_EQUITY: map_domestic_row,
    Subtype.FOREIGN_EQUITY: map_foreign_row,
    Subtype.FUND_UNIT: map_fund_row,
}


def _check_row(row: Dict[str, Any], fmt: Subtype, record_number: int) -> None:
    columns = FORMAT_COLUMNS[fmt]
    missing = [f for f in REQUIRED_FIELDS if find_column_value(row, columns[f]) is None]
    if missing:
        raise RowMappingError(f"record {record_number}: missing required field(s): {', '.join(missing)}", record_number)
    raw_date = find_column_value(row, columns["trade_date"])
    if parse_date(raw_date) is None:
        raise RowMappingError(f"record {record_number}: unparseable trade date {raw_date!r}", record_number)


def map_row(row: Dict[str, Any], fmt: Union[Subtype, str], record_number: int,
            source: str = DEFAULT_SOURCE) -> Optional[RowResult]:
    """
    Map one export row. Returns None for blank rows, otherwise a RowResult
    holding either the transaction or the reason the row was rejected.
    """
    if _is_blank_row(row):
        return None
    fmt = Subtype.parse(fmt)
    try:
        _check_row(row, fmt, record_number)
        kwargs = ROW_MAPPERS[fmt](row, source)
        return RowResult(record_number, transaction=CanonicalTransaction(**kwargs))
    except RowMappingError as e:
        return RowResult(record_number, error=str(e))
    except TransactionValidationError as e:
        return RowResult(record_number, error=f"record {record_number}: {'; '.join(e.violations)}")


def map_rows(rows: Sequence[Dict[str, Any]], fmt: Union[Subtype, str],
             source: str = DEFAULT_SOURCE) -> List[RowResult]:
    """
    Map the data records read by read_table.

    Records are numbered from 1 in read order. Lines read_table dropped
    (empty or malformed) are not counted, so a record number is not a file
    line number.
    """
    results = []
    for idx, raw in enumerate(rows, start=1):
        result = map_row(raw, fmt, idx, source)
        if result is not None:
            results.append(result)
    return results


def resolve_format(fmt: Union[Subtype, str, None], headers: Sequence[str]) -> Subtype:
    if not fmt:
        return detect_format(headers)
    try:
        return Subtype.parse(fmt)
    except ValueError:
        raise UnsupportedFormatError(f"unknown export format: {fmt!r}") from None


def parse_export(raw: Union[bytes, str], fmt: Union[Subtype, str, None] = None,
                 source: str = DEFAULT_SOURCE,
                 encodings: Optional[Sequence[str]] = None) -> ParseResult:
    """
    Decode, tokenize and map a broker export into canonical transactions.

    Args:
        raw: File bytes (or already-decoded text)
        fmt: Declared layout (Subtype or "JP" / "US" / "INVST"); detected from headers when None
        source: Origin tag stamped on every transaction
        encodings: Candidate encodings for decode_export

    Returns:
        ParseResult with the converted transactions and one warning per rejected row

    Raises:
        EncodingRecoveryError: the bytes could not be decoded plausibly
        UnsupportedFormatError: fmt is None and the layout is not recognized
    """
    text, encoding = decode_export(raw, encodings)
    df, table_warnings = read_table(text)
    headers = list(df.columns)
    layout = resolve_format(fmt, headers)

    result = ParseResult(format=layout, encoding=encoding, headers=headers)
    result.warnings.extend(table_warnings)

    missing = missing_required_columns(headers, layout) if headers else []
    if missing:
        result.warnings.append(f"required column(s) not found: {', '.join(missing)}")

    for row_result in map_rows(df.to_dict(orient="records"), layout, source):
        result.total_rows += 1
        if row_result.ok:
            result.transactions.append(row_result.transaction)
        else:
            logger.warning("skipping %s", row_result.error)
            result.warnings.append(row_result.error)

    if not result.transactions:
        result.warnings.append("no-valid-rows")

    logger.info("parsed %s export: %d/%d rows converted (%s)",
                layout.value, result.converted_rows, result.total_rows, encoding)
    return result


def parse_file(file_path: Union[str, Path], fmt: Union[Subtype, str, None] = None,
               source: str = DEFAULT_SOURCE,
               encodings: Optional[Sequence[str]] = None) -> ParseResult:
    p = Path(file_path)
    if not p.exists():
        raise FileNotFoundError(file_path)
    return parse_export(p.read_bytes(), fmt, source=source, encodings=encodings)
