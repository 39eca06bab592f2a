# tradeledger/column_detector.py
"""
Tolerant column lookup and layout detection for the three export formats.

Export tools change column punctuation between versions ("数量［株］" vs
"数量[株]", stray spaces, renamed settlement columns), so every field is
looked up through a prioritized list of candidate header names.
"""

from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import UnsupportedFormatError
from .models import Subtype


# Candidate header names per field, highest priority first
DOMESTIC_COLUMNS: Dict[str, List[str]] = {
    "trade_date": ["約定日", "取引日"],
    "settle_date": ["受渡日"],
    "symbol": ["銘柄コード", "コード"],
    "name": ["銘柄名"],
    "market": ["市場名称", "市場"],
    "account_type": ["口座区分", "口座"],
    "trade_type": ["売買区分", "取引区分", "取引"],
    "margin_type": ["信用区分"],
    "quantity": ["数量［株］", "数量[株]", "数量"],
    "price": ["単価［円］", "単価[円]", "単価"],
    "fee": ["手数料［円］", "手数料[円]", "手数料"],
    "tax": ["税金等［円］", "税金等[円]", "税金"],
    "other_costs": ["諸費用［円］", "諸費用[円]", "諸費用"],
    "settled_amount": ["受渡金額［円］", "受渡金額[円]", "受渡金額"],
}

FOREIGN_COLUMNS: Dict[str, List[str]] = {
    "trade_date": ["約定日", "取引日"],
    "settle_date": ["受渡日"],
    "symbol": ["ティッカー", "シンボル"],
    "name": ["銘柄名"],
    "account_type": ["口座区分", "口座"],
    "trade_type": ["売買区分", "取引区分", "取引"],
    "margin_type": ["信用区分"],
    "settlement_currency": ["決済通貨"],
    "quantity": ["数量［株］", "数量[株]", "数量"],
    "price": ["単価［USドル］", "単価[USドル]", "単価"],
    "gross_amount": ["約定代金［USドル］", "約定代金[USドル]", "約定代金"],
    "fx_rate": ["為替レート"],
    "fee": ["手数料［USドル］", "手数料[USドル]", "手数料"],
    "tax": ["税金［USドル］", "税金[USドル]", "税金"],
    "settled_amount_foreign": ["受渡金額［USドル］", "受渡金額[USドル]"],
    "settled_amount_domestic": ["受渡金額［円］", "受渡金額[円]"],
}

FUND_COLUMNS: Dict[str, List[str]] = {
    "trade_date": ["約定日", "取引日"],
    "settle_date": ["受渡日"],
    "name": ["ファンド名", "銘柄名"],
    "distribution": ["分配金"],
    "account_type": ["口座"],
    "trade_type": ["取引", "売買区分"],
    "buy_method": ["買付方法"],
    "quantity": ["数量［口］", "数量[口]", "数量"],
    "price": ["単価", "基準価額"],
    "fee": ["経費", "手数料"],
    "fx_rate": ["為替レート"],
    "settled_amount": ["受渡金額/(ポイント利用)[円]", "受渡金額", "買付金額", "金額"],
    "settlement_currency": ["決済通貨"],
}

FORMAT_COLUMNS: Dict[Subtype, Dict[str, List[str]]] = {
    Subtype.DOMESTIC_EQUITY: DOMESTIC_COLUMNS,
    Subtype.FOREIGN_EQUITY: FOREIGN_COLUMNS,
    Subtype.FUND_UNIT: FUND_COLUMNS,
}

# Columns that must be non-empty for a row to be mapped at all
REQUIRED_FIELDS = ("trade_date", "name", "trade_type")

# Headers that only one layout carries, used by detect_format
UNIQUE_HEADERS: Dict[Subtype, List[str]] = {
    Subtype.FOREIGN_EQUITY: ["ティッカー", "単価［USドル］", "約定代金［USドル］", "為替レート"],
    Subtype.FUND_UNIT: ["ファンド名", "数量［口］", "受渡金額/(ポイント利用)[円]"],
    Subtype.DOMESTIC_EQUITY: ["銘柄コード", "市場名称", "数量［株］"],
}


def _is_empty(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def find_column(headers: Sequence[str], candidates: Sequence[str]) -> Optional[str]:
    """
    Find the header matching the first candidate that matches at all.

    Each candidate is tried against the headers as: exact name, trimmed
    name, header containing the candidate, candidate containing the header.

    Args:
        headers: Header names as they appear in the file
        candidates: Candidate names, highest priority first

    Returns:
        The original header name, or None if nothing matched
    """
    for candidate in candidates:
        match = _match_one(headers, candidate)
        if match is not None:
            return match
    return None


def _match_one(headers: Sequence[str], candidate: str) -> Optional[str]:
    if candidate in headers:
        return candidate
    wanted = candidate.strip()
    for header in headers:
        if str(header).strip() == wanted:
            return header
    for header in headers:
        h = str(header).strip()
        if h and (wanted in h or h in wanted):
            return header
    return None


def find_column_value(row: Mapping[str, Any], candidates: Sequence[str]) -> Optional[str]:
    """
    Value of the first candidate column that is present and non-empty.

    Unlike find_column, an empty cell falls through to the next candidate,
    so a row whose "売買区分" is blank can still be typed from "取引区分".
    """
    headers = list(row.keys())
    for candidate in candidates:
        header = _match_one(headers, candidate)
        if header is None:
            continue
        value = row.get(header)
        if not _is_empty(value):
            return str(value).strip()
    return None


def detect_columns(headers: Sequence[str], fmt: Subtype) -> Dict[str, Optional[str]]:
    """
    Resolve every field of a layout to a header (or None).

    Useful for reporting which columns a file actually provided.
    """
    columns = FORMAT_COLUMNS[Subtype.parse(fmt)]
    return {field: find_column(headers, candidates) for field, candidates in columns.items()}


def missing_required_columns(headers: Sequence[str], fmt: Subtype) -> List[str]:
    detected = detect_columns(headers, fmt)
    return [f for f in REQUIRED_FIELDS if detected.get(f) is None]


def detect_format(headers: Sequence[str]) -> Subtype:
    """
    Infer the layout from headers only one layout carries.

    Callers normally declare the layout; this is for files of unknown
    origin. The layout with the most unique headers present wins.

    Raises:
        UnsupportedFormatError: none of the unique headers are present
    """
    trimmed = [str(h).strip() for h in headers]
    scores = {
        fmt: sum(1 for u in unique if u in trimmed)
        for fmt, unique in UNIQUE_HEADERS.items()
    }
    best = max(scores, key=lambda f: scores[f])
    if scores[best] == 0:
        raise UnsupportedFormatError(f"unrecognized export layout: {', '.join(trimmed[:8])}")
    return best
