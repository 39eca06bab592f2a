import pytest

from tradeledger.positions import (
    Position,
    PositionKey,
    active_positions,
    aggregate_trades,
    positions_from_transactions,
)


def trade(side, quantity, amount=None, price=None, symbol="7203", market="JP", currency="JPY"):
    return {"symbol": symbol, "market": market, "currency": currency, "side": side,
            "quantity": quantity, "amount": amount, "price": price}


class TestWeightedAverageCost:
    def test_partial_sell_removes_cost_at_average(self):
        (pos,) = aggregate_trades([trade("buy", 100, 10000), trade("sell", 40, 5000)])
        assert pos.quantity_net == 60
        assert pos.total_cost == pytest.approx(6000)
        assert pos.avg_price == pytest.approx(100)

    def test_full_sell_nets_to_zero(self):
        trades = [trade("buy", 30, 1000), trade("buy", 70, 2333.33), trade("sell", 100, 9999)]
        (pos,) = aggregate_trades(trades)
        assert pos.quantity_net == 0
        assert pos.total_cost == 0
        assert pos.avg_price == 0

    def test_cost_never_goes_negative(self):
        (pos,) = aggregate_trades([trade("buy", 10, 1000), trade("sell", 15)])
        assert pos.total_cost == 0
        assert pos.quantity_net == -5
        assert pos.avg_price == 0

    def test_price_used_when_amount_missing(self):
        (pos,) = aggregate_trades([trade("buy", 10, price=250)])
        assert pos.total_cost == 2500

    def test_other_sides_are_ignored(self):
        (pos,) = aggregate_trades([trade("buy", 10, 1000), trade("dividend", 0, 50)])
        assert pos.quantity_net == 10
        assert pos.total_cost == 1000

    def test_records_without_symbol_are_skipped(self):
        assert aggregate_trades([{"side": "buy", "quantity": 1, "amount": 1}, None]) == []

    def test_same_symbol_in_two_currencies_is_two_positions(self):
        positions = aggregate_trades([trade("buy", 1, 100), trade("buy", 1, 1, currency="usd")])
        assert {p.key for p in positions} == {
            PositionKey("7203", "JP", "JPY"),
            PositionKey("7203", "JP", "USD"),
        }


class TestFromTransactions:
    def test_market_defaults_from_subtype(self, make_tx):
        txs = [
            make_tx(),
            make_tx(subtype="foreign_equity", symbol="AAPL", name="アップル", quantity=10,
                    currency="USD", settled_amount=-1800, settled_currency="USD"),
            make_tx(subtype="fund_unit", symbol=None, name="eMAXIS Slim 全世界株式",
                    quantity=5000, quantity_unit="口", settled_amount=-10000),
        ]
        keys = sorted(p.instrument_key for p in positions_from_transactions(txs))
        assert keys == ["FUND:eMAXIS Slim 全世界株式", "JP:7203", "US:AAPL"]

    def test_explicit_market_is_kept(self, make_tx):
        (pos,) = positions_from_transactions([make_tx(market="東証")])
        assert pos.instrument_key == "東証:7203"

    def test_buy_then_sell(self, make_tx):
        txs = [
            make_tx(quantity=100, settled_amount=-10000),
            make_tx(trade_type="sell", quantity=40, settled_amount=5000),
            make_tx(trade_type="dividend", quantity=100, settled_amount=300),
        ]
        (pos,) = positions_from_transactions(txs)
        assert pos.quantity_net == 60
        assert pos.total_cost == pytest.approx(6000)
        assert pos.to_dict()["instrument_key"] == "JP:7203"


def test_active_positions():
    held = Position(symbol="7203", name="トヨタ自動車", market="JP", currency="JPY", quantity_net=10)
    closed = Position(symbol="6758", name="ソニーグループ", market="JP", currency="JPY")
    assert active_positions([held, closed]) == [held]
