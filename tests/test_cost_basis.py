"""
Unit tests for the weighted-average cost-basis calculator.
Pure calculation, no database.
"""

from decimal import Decimal

import pytest

from cryptofolio.errors import DataIntegrityError, ValidationError
from cryptofolio.services.cost_basis import CostBasisCalculator


@pytest.fixture
def calculator():
    return CostBasisCalculator()


@pytest.fixture
def three_buys(make_tx):
    return [
        make_tx("ETH", "buy", 1, 100, day=0),
        make_tx("ETH", "buy", 1, 200, day=1),
        make_tx("ETH", "buy", 2, 300, day=2),
    ]


# =============================================================================
# INVESTED AND AVERAGE COST
# =============================================================================

def test_weighted_average_of_three_buys(calculator, three_buys):
    position = calculator.calculate("ETH", three_buys)

    # (1*100 + 1*200 + 2*300) / 4 = 900 / 4
    assert position.total_invested == Decimal("900")
    assert position.average_cost == Decimal("225")
    assert position.holdings == Decimal("4")
    assert position.quantity_bought == Decimal("4")


def test_invested_includes_fees(calculator, make_tx):
    txs = [
        make_tx("BTC", "buy", "0.5", 40000, fee=Decimal("12.5")),
        make_tx("BTC", "buy", "0.25", 48000, day=1, fee=Decimal("7.5")),
    ]

    position = calculator.calculate("BTC", txs)

    assert position.total_invested == Decimal("20000") + Decimal("12.5") + Decimal("12000") + Decimal("7.5")
    assert position.total_fees == Decimal("20")
    assert position.average_cost == Decimal("32020") / Decimal("0.75")


def test_invested_is_order_independent(calculator, three_buys):
    forward = calculator.calculate("ETH", three_buys)
    backward = calculator.calculate("ETH", list(reversed(three_buys)))

    assert forward.total_invested == backward.total_invested
    assert forward.average_cost == backward.average_cost


def test_other_assets_are_ignored(calculator, make_tx, three_buys):
    txs = three_buys + [make_tx("BTC", "buy", 1, 50000)]

    assert calculator.calculate("ETH", txs).total_invested == Decimal("900")


def test_empty_history(calculator):
    position = calculator.calculate("BTC", [])

    assert position.holdings == Decimal("0")
    assert position.average_cost == Decimal("0")
    assert position.unrealized_pnl is None


# =============================================================================
# SELLS AND REALIZED P&L
# =============================================================================

def test_partial_sell_keeps_average_and_realizes_gain(calculator, make_tx, three_buys):
    txs = three_buys + [make_tx("ETH", "sell", 1, 300, day=3, fee=Decimal("5"))]

    position = calculator.calculate("ETH", txs)

    assert position.average_cost == Decimal("225")
    assert position.holdings == Decimal("3")
    assert position.total_sold == Decimal("295")
    assert position.realized_pnl == Decimal("70")
    assert position.net_invested == Decimal("605")


def test_realized_uses_average_at_time_of_sale(calculator, make_tx):
    txs = [
        make_tx("SOL", "buy", 10, 10, day=0),
        make_tx("SOL", "sell", 5, 20, day=1),  # average 10
        make_tx("SOL", "buy", 5, 40, day=2),  # average now 300 / 15 = 20
        make_tx("SOL", "sell", 5, 40, day=3),
    ]

    position = calculator.calculate("SOL", txs)

    assert position.realized_pnl == Decimal("50") + Decimal("100")
    assert position.holdings == Decimal("5")


def test_selling_more_than_held_raises(calculator, make_tx):
    txs = [make_tx("BTC", "buy", 1, 20000), make_tx("BTC", "sell", "1.0001", 21000, day=1)]

    with pytest.raises(DataIntegrityError):
        calculator.calculate("BTC", txs)


def test_sell_dated_before_buy_raises(calculator, make_tx):
    txs = [make_tx("BTC", "sell", 1, 21000, day=0), make_tx("BTC", "buy", 1, 20000, day=1)]

    with pytest.raises(DataIntegrityError):
        calculator.calculate("BTC", txs)


def test_sell_everything(calculator, make_tx):
    txs = [make_tx("BTC", "buy", 1, 20000), make_tx("BTC", "sell", 1, 25000, day=1)]

    position = calculator.calculate("BTC", txs, current_price=Decimal("30000"))

    assert position.holdings == Decimal("0")
    assert position.realized_pnl == Decimal("5000")
    assert position.market_value == Decimal("0")
    assert position.unrealized_pnl == Decimal("0")


# =============================================================================
# UNREALIZED P&L
# =============================================================================

def test_unrealized_pnl_with_price(calculator, three_buys):
    position = calculator.calculate("ETH", three_buys, current_price=Decimal("250"))

    assert position.market_value == Decimal("1000")
    assert position.unrealized_pnl == Decimal("100")
    assert position.pnl_pct == Decimal("100") / Decimal("900") * 100


def test_negative_price_is_rejected(calculator, three_buys):
    with pytest.raises(ValidationError):
        calculator.calculate("ETH", three_buys, current_price=Decimal("-1"))


def test_float_price_is_taken_at_face_value(calculator, three_buys):
    position = calculator.calculate("ETH", three_buys, current_price=0.1)

    assert position.current_price == Decimal("0.1")
