# tradeledger/symbol_mapper.py
"""
Normalization of the free-text values found in broker exports: instrument
codes, currency labels, amounts and dates.
"""

from datetime import date, datetime
from typing import Any, Optional
import re


# Currency labels as they appear in export cells and headers
CURRENCY_LABELS = {
    "円": "JPY",
    "日本円": "JPY",
    "JPY": "JPY",
    "USドル": "USD",
    "米ドル": "USD",
    "ドル": "USD",
    "US$": "USD",
    "$": "USD",
    "USD": "USD",
    "ユーロ": "EUR",
    "EUR": "EUR",
    "豪ドル": "AUD",
    "AUD": "AUD",
    "香港ドル": "HKD",
    "HKD": "HKD",
    "人民元": "CNY",
    "CNY": "CNY",
    "USDT": "USDT",
}

DATE_FORMATS = ["%Y-%m-%d", "%Y/%m/%d", "%Y%m%d", "%Y.%m.%d", "%m/%d/%Y"]

_EMPTY_MARKERS = {"", "-", "--", "nan", "none", "n/a"}
_KANJI_DATE = re.compile(r"^(\d{4})年(\d{1,2})月(\d{1,2})日")


def currency_code_from_label(label: Any) -> str:
    """
    Map a currency label to an ISO-style code.

    Known labels ("円", "USドル", ...) map through CURRENCY_LABELS. Anything
    else is upper-cased and truncated to three characters, so "usd " becomes
    "USD" and an unrecognised label stays visible instead of being dropped.
    Empty input gives "".
    """
    if label is None:
        return ""
    s = str(label).strip()
    if not s:
        return ""
    if s in CURRENCY_LABELS:
        return CURRENCY_LABELS[s]
    upper = s.upper()
    if upper in CURRENCY_LABELS:
        return CURRENCY_LABELS[upper]
    return upper[:3]


def parse_number(x: Any) -> Optional[float]:
    """Coerce strings like '1,000', '¥10,000' or '+12.5' into float. None if empty / invalid."""
    if x is None:
        return None
    if isinstance(x, bool):
        return None
    if isinstance(x, (int, float)):
        if x != x:  # NaN
            return None
        return float(x)
    s = str(x).strip()
    if s.lower() in _EMPTY_MARKERS:
        return None

    negative = s.startswith("(") and s.endswith(")")
    s = re.sub(r"[^\d\.\-]", "", s)
    if s in {"", "-", ".", "-."}:
        return None
    try:
        value = float(s)
    except ValueError:
        return None
    return -value if negative else value


def parse_amount(x: Any) -> float:
    """Absolute amount, 0 when missing or non-numeric."""
    n = parse_number(x)
    return abs(n) if n is not None else 0.0


def split_points_amount(x: Any) -> tuple:
    """
    Split a points-adjusted cell such as '10,000(500)' into (10000.0, '500').

    The part inside the parentheses is the points used and is returned
    verbatim (or None when absent).
    """
    if x is None:
        return None, None
    s = str(x).strip()
    m = re.match(r"^([^()（）]*)[(（]([^()（）]*)[)）]\s*$", s)
    if m:
        points = m.group(2).strip() or None
        return parse_number(m.group(1)), points
    return parse_number(s), None


def parse_date(value: Any) -> Optional[date]:
    """Parse an export date cell into a date. Returns None when not parseable."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    s = str(value).strip()
    if not s:
        return None

    m = _KANJI_DATE.match(s)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            return None

    # drop a time component or trailing notes ("2024/01/05 10:31", "2024-01-05T00:00:00")
    s = re.split(r"[ T]", s, maxsplit=1)[0]
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    return None


def normalize_symbol(raw: Any) -> Optional[str]:
    """
    Normalize an instrument code.

    Domestic codes come through as digits (sometimes as '7203.0' after a
    spreadsheet round trip); tickers are upper-cased. Empty gives None.
    """
    if raw is None:
        return None
    s = str(raw).strip()
    if s.lower() in _EMPTY_MARKERS:
        return None
    if re.match(r"^\d+\.0+$", s):
        s = s.split(".")[0]
    s = re.sub(r"\s+", "", s)
    return s.upper() or None
