"""
Tests for trade row normalization.
"""

import pytest

from tradebook.positions.normalize import normalize_timestamp, normalize_trade_row, normalize_trade_rows
from tests.conftest import make_txn_row


def test_normalizes_a_deribit_row_from_its_instrument():
    result = normalize_trade_row(make_txn_row(side="sell", amount=-2, action="close", info="rolled"))
    assert result.ok
    trade = result.value
    assert trade.side == "sell"
    assert trade.qty == 2
    assert trade.option_type == "call"
    assert trade.expiry == "2024-12-27"
    assert trade.strike == 100000.0
    assert trade.open_close == "close"
    assert trade.trade_id == "T-1"
    assert trade.order_id == "O-1"
    assert trade.fee == 0.0003
    assert trade.notes == "rolled"
    assert trade.timestamp == "2024-12-01T10:00:00Z"


def test_explicit_fields_override_the_instrument():
    row = make_txn_row(instrument="not-an-option", expiry="2025-01-31", strike="95000", option_type="P")
    trade = normalize_trade_row(row).value
    assert trade.expiry == "2025-01-31"
    assert trade.strike == 95000.0
    assert trade.option_type == "put"


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"amount": 0}, "Missing quantity for trade T-1."),
        ({"amount": "abc"}, "Missing quantity for trade T-1."),
        ({"price": ""}, "Missing price for trade T-1."),
        ({"side": "hold"}, "Missing side (buy/sell) for trade T-1."),
        ({"instrument": "BTC-PERPETUAL"}, "Missing expiry for trade T-1."),
        ({"instrument": "BTC-PERPETUAL", "expiry": "2024-12-27"}, "Missing strike for trade T-1."),
        (
            {"instrument": "BTC-PERPETUAL", "expiry": "2024-12-27", "strike": 100000},
            "Missing option type for trade T-1.",
        ),
    ],
)
def test_rejections_name_the_row(overrides, message):
    result = normalize_trade_row(make_txn_row(**overrides))
    assert not result.ok
    assert result.error == message


def test_non_positive_strike_is_rejected():
    result = normalize_trade_row(make_txn_row(strike=0, instrument="X", expiry="2024-12-27", option_type="C"))
    assert result.error == "Missing strike for trade T-1."


def test_row_description_falls_back_to_order_then_instrument():
    no_trade = make_txn_row(trade_id=None, amount=0)
    assert normalize_trade_row(no_trade).error == "Missing quantity for order O-1."
    bare = make_txn_row(trade_id=None, order_id=None, amount=0)
    assert normalize_trade_row(bare).error == "Missing quantity for BTC-27DEC24-100000-C."


def test_timestamp_rules():
    assert normalize_timestamp("2024-12-01 10:00:00") == "2024-12-01T10:00:00Z"
    assert normalize_timestamp("  sometime  ") == "sometime"
    assert normalize_timestamp(None).endswith("Z")


def test_batch_fails_on_first_bad_row():
    rows = [make_txn_row(), make_txn_row(trade_id="T-2", price=None), make_txn_row(trade_id="T-3", side="")]
    result = normalize_trade_rows(rows)
    assert not result.ok
    assert result.error == "Missing price for trade T-2."
    assert result.trades == []


def test_delivery_row_without_trade_id_gets_synthetic_id():
    row = make_txn_row(trade_id=None, action="delivery", price=0)
    trade = normalize_trade_row(row).value
    assert trade.trade_id.startswith("D")
    assert trade.open_close is None
    # the exchange's own delivery id in the raw record wins over the hash
    raw_row = make_txn_row(trade_id=None, order_id=None, action="delivery", raw={"Delivery ID": "77"})
    assert normalize_trade_row(raw_row).value.trade_id == "D77"
    # order ids are not promoted to trade ids on this path
    assert normalize_trade_row(make_txn_row(trade_id=None)).value.trade_id is None
