"""
Unit tests for the canonical transaction model.
"""

from datetime import date

import pytest

from tradeledger.errors import TransactionValidationError
from tradeledger.models import (
    CanonicalTransaction,
    Subtype,
    apply_sign_convention,
    compute_fingerprint,
    expected_sign,
    market_for_subtype,
)


class TestNormalization:
    def test_values_are_normalized_at_construction(self, make_tx):
        tx = make_tx(trade_date="2024年1月10日", currency="円", settled_currency="円",
                     settled_amount="-250,000", fee="¥275", tax="abc")
        assert tx.trade_date == date(2024, 1, 10)
        assert tx.currency == "JPY"
        assert tx.settled_currency == "JPY"
        assert tx.settled_amount == -250000.0
        assert tx.fee == 275.0
        assert tx.tax == 0.0

    def test_negative_cost_fields_are_stored_as_absolute(self, make_tx):
        tx = make_tx(fee="-120", other_costs="(30)")
        assert tx.fee == 120.0
        assert tx.other_costs == 30.0

    def test_camel_case_record_is_accepted(self, make_tx):
        record = {
            "source": "rakuten",
            "subtype": "foreign_equity",
            "tradeDate": "2024-02-01",
            "name": "アップル",
            "tradeType": "Buy",
            "quantity": "10",
            "quantityUnit": "株",
            "currency": "usd",
            "settledAmount": "-1800",
            "settledCurrency": "USドル",
        }
        tx = CanonicalTransaction.model_validate(record)
        assert tx.trade_type == "buy"
        assert tx.currency == "USD"
        assert tx.settled_currency == "USD"

    def test_instances_are_immutable(self, make_tx):
        tx = make_tx()
        with pytest.raises(Exception):
            tx.quantity = 5


class TestValidation:
    def test_every_violation_is_reported(self):
        with pytest.raises(TransactionValidationError) as exc:
            CanonicalTransaction(
                source="",
                subtype="domestic_equity",
                trade_date="not a date",
                name="",
                trade_type="buy",
                quantity=0,
                quantity_unit="株",
                currency="JPY",
                settled_amount="n/a",
                settled_currency="JPY",
            )
        violations = exc.value.violations
        assert "source is required" in violations
        assert "trade_date is required" in violations
        assert "name is required" in violations
        assert "quantity must be a positive number" in violations
        assert "settled_amount must be numeric" in violations
        assert len(violations) == 5

    def test_bad_currency_code(self, make_tx):
        with pytest.raises(TransactionValidationError) as exc:
            make_tx(currency="", settled_currency="")
        assert "currency must be a 3-letter code" in exc.value.violations
        assert "settled_currency must be a 3-letter code" in exc.value.violations

    def test_non_mapping_input(self):
        with pytest.raises(TransactionValidationError):
            CanonicalTransaction.model_validate(["not", "a", "mapping"])


class TestFingerprint:
    def test_same_fields_same_fingerprint(self, make_tx):
        assert make_tx().fingerprint == make_tx().fingerprint
        assert make_tx().fingerprint.startswith("tx-")
        assert len(make_tx().fingerprint) == 3 + 32

    def test_numeric_rendering_is_canonical(self, make_tx):
        assert make_tx(quantity=100).fingerprint == make_tx(quantity="100.0").fingerprint

    @pytest.mark.parametrize("field,value", [
        ("trade_date", "2024-01-11"),
        ("quantity", 101),
        ("settled_amount", -250001),
        ("trade_type", "sell"),
        ("symbol", "6758"),
    ])
    def test_key_fields_change_fingerprint(self, make_tx, field, value):
        assert make_tx().fingerprint != make_tx(**{field: value}).fingerprint

    def test_non_key_fields_do_not_change_fingerprint(self, make_tx):
        assert make_tx().fingerprint == make_tx(remarks="note", account_type="特定").fingerprint

    def test_stored_fingerprint_is_kept(self, make_tx):
        tx = make_tx(fingerprint="tx-legacy")
        assert tx.fingerprint == "tx-legacy"

    def test_record_round_trip_keeps_fingerprint(self, make_tx):
        tx = make_tx()
        reloaded = CanonicalTransaction.model_validate(tx.to_record())
        assert reloaded == tx

    def test_compute_fingerprint_treats_none_as_empty(self):
        assert compute_fingerprint({"symbol": None}) == compute_fingerprint({"symbol": ""})

    def test_pipe_inside_a_field_does_not_collide(self):
        assert compute_fingerprint({"name": "a|b", "symbol": "c"}) != compute_fingerprint({"name": "a", "symbol": "b|c"})
        assert compute_fingerprint({"name": "a\\", "symbol": "|b"}) != compute_fingerprint({"name": "a\\|", "symbol": "b"})


class TestSignConvention:
    @pytest.mark.parametrize("trade_type,sign", [
        ("buy", -1), ("sell", 1), ("dividend", 1), ("interest", 1), ("staking", 1),
        ("fee", -1), ("transfer_in", 1), ("Transfer Out", -1), ("split", 0),
    ])
    def test_expected_sign(self, trade_type, sign):
        assert expected_sign(trade_type) == sign

    def test_apply_sign_convention(self):
        assert apply_sign_convention("buy", 1000) == -1000
        assert apply_sign_convention("sell", -1000) == 1000
        assert apply_sign_convention("split", -5) == -5

    def test_check_sign_convention(self, make_tx):
        assert make_tx().check_sign_convention()
        assert not make_tx(settled_amount=250000).check_sign_convention()
        assert make_tx(trade_type="other", settled_amount=10).check_sign_convention()


class TestSubtype:
    @pytest.mark.parametrize("raw,expected", [
        ("JP", Subtype.DOMESTIC_EQUITY),
        ("us", Subtype.FOREIGN_EQUITY),
        ("INVST", Subtype.FUND_UNIT),
        ("fund_unit", Subtype.FUND_UNIT),
    ])
    def test_parse(self, raw, expected):
        assert Subtype.parse(raw) is expected

    def test_unknown_subtype(self):
        with pytest.raises(ValueError):
            Subtype.parse("crypto")
        assert market_for_subtype("crypto") == "OTHER"
        assert market_for_subtype("fund_unit") == "FUND"
