from datetime import date, datetime

import pytest

from tradeledger.symbol_mapper import (
    currency_code_from_label,
    normalize_symbol,
    parse_amount,
    parse_date,
    parse_number,
    split_points_amount,
)


@pytest.mark.parametrize("label,code", [
    ("円", "JPY"),
    ("USドル", "USD"),
    ("米ドル", "USD"),
    ("usd", "USD"),
    (" eur ", "EUR"),
    ("Bitcoin", "BIT"),
    ("", ""),
    (None, ""),
])
def test_currency_code_from_label(label, code):
    assert currency_code_from_label(label) == code


@pytest.mark.parametrize("raw,expected", [
    ("1,000", 1000.0),
    ("¥10,000", 10000.0),
    ("+12.5", 12.5),
    ("-3,000", -3000.0),
    ("(500)", -500.0),
    (42, 42.0),
    ("", None),
    ("-", None),
    ("abc", None),
    (None, None),
    (float("nan"), None),
])
def test_parse_number(raw, expected):
    assert parse_number(raw) == expected


def test_parse_amount_is_absolute_and_total():
    assert parse_amount("-275") == 275.0
    assert parse_amount("n/a") == 0.0


def test_split_points_amount():
    assert split_points_amount("10,000(500)") == (10000.0, "500")
    assert split_points_amount("3,000（0）") == (3000.0, "0")
    assert split_points_amount("8,000") == (8000.0, None)
    assert split_points_amount(None) == (None, None)


@pytest.mark.parametrize("raw", [
    "2024-01-05",
    "2024/01/05",
    "20240105",
    "2024.01.05",
    "01/05/2024",
    "2024年1月5日",
    "2024/01/05 10:31",
    "2024-01-05T00:00:00",
    datetime(2024, 1, 5, 9, 0),
    date(2024, 1, 5),
])
def test_parse_date_forms(raw):
    assert parse_date(raw) == date(2024, 1, 5)


@pytest.mark.parametrize("raw", ["", "2024/13/40", "yesterday", None])
def test_parse_date_rejects(raw):
    assert parse_date(raw) is None


def test_normalize_symbol():
    assert normalize_symbol("7203.0") == "7203"
    assert normalize_symbol(" aapl ") == "AAPL"
    assert normalize_symbol("-") is None
    assert normalize_symbol(None) is None
