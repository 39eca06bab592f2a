"""Shared fixtures: in-memory stores and small export files in the three layouts."""

import csv
import io
import logging
from typing import List, Sequence

import pytest

from tradeledger.ledger import TransactionLedger
from tradeledger.models import BatchMeta, CanonicalTransaction
from tradeledger.storage import InMemoryStore


DOMESTIC_HEADERS = [
    "約定日", "受渡日", "銘柄コード", "銘柄名", "市場名称", "口座区分", "取引区分",
    "売買区分", "信用区分", "弁済期限", "数量［株］", "単価［円］", "手数料［円］",
    "税金等［円］", "諸費用［円］", "税区分", "受渡金額［円］",
]

FOREIGN_HEADERS = [
    "約定日", "受渡日", "ティッカー", "銘柄名", "口座", "取引区分", "売買区分",
    "信用区分", "決済方法", "決済通貨", "数量［株］", "単価［USドル］",
    "約定代金［USドル］", "為替レート", "手数料［USドル］", "税金［USドル］",
    "受渡金額［USドル］", "受渡金額［円］",
]

FUND_HEADERS = [
    "約定日", "受渡日", "ファンド名", "分配金", "口座", "取引", "買付方法",
    "数量［口］", "単価", "経費", "為替レート", "受渡金額/(ポイント利用)[円]", "決済通貨",
]


def to_csv(headers: Sequence[str], rows: Sequence[Sequence[str]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buf.getvalue()


def domestic_row(trade_date="2024/01/10", code="7203", name="トヨタ自動車", side="買付",
                 quantity="100", price="2,500", settled="250,000") -> List[str]:
    return [trade_date, "2024/01/12", code, name, "東証", "特定", "現物", side, "-", "-",
            quantity, price, "0", "0", "0", "-", settled]


def foreign_row(trade_date="2024/02/01", ticker="AAPL", name="アップル", side="買付",
                settle_currency="USドル", quantity="10", price="180.00", gross="1,800.00",
                fx="150.00", settled_usd="1,800.00", settled_jpy="270,000") -> List[str]:
    return [trade_date, "2024/02/05", ticker, name, "特定", "現物", side, "-", "-",
            settle_currency, quantity, price, gross, fx, "0.00", "0.00", settled_usd, settled_jpy]


def fund_row(trade_date="2024/03/01", name="eMAXIS Slim 全世界株式", side="買付",
             quantity="5,000", price="20,000", settled="10,000(500)", method="つみたて") -> List[str]:
    return [trade_date, "2024/03/04", name, "再投資", "NISA", side, method,
            quantity, price, "0", "-", settled, "円"]


@pytest.fixture(autouse=True)
def _reset_package_logger():
    yield
    logger = logging.getLogger("tradeledger")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def ledger(store):
    return TransactionLedger(store)


@pytest.fixture
def batch():
    return BatchMeta(source="rakuten", subtype="domestic_equity", parser_version="test")


@pytest.fixture
def make_tx():
    def _make(**overrides) -> CanonicalTransaction:
        data = {
            "source": "rakuten",
            "subtype": "domestic_equity",
            "trade_date": "2024-01-10",
            "symbol": "7203",
            "name": "トヨタ自動車",
            "trade_type": "buy",
            "quantity": 100,
            "quantity_unit": "株",
            "price": 2500,
            "currency": "JPY",
            "settled_amount": -250000,
            "settled_currency": "JPY",
        }
        data.update(overrides)
        return CanonicalTransaction(**data)
    return _make


@pytest.fixture
def domestic_csv():
    rows = [
        domestic_row(),
        domestic_row(trade_date="2024/01/20", side="売付", quantity="40", price="3,000", settled="120,000"),
        domestic_row(trade_date="2024/01/15", code="6758", name="ソニーグループ", quantity="10",
                     price="13,000", settled="130,000"),
    ]
    return to_csv(DOMESTIC_HEADERS, rows)
