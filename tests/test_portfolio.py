"""
Tests for portfolio aggregation across assets and display currencies.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from cryptofolio.errors import DataIntegrityError, MissingQuoteError
from cryptofolio.services.common import CrossAssetPolicy
from cryptofolio.services.ledger import TransactionLedger
from cryptofolio.services.portfolio import PortfolioAggregator, PortfolioService

VND_TABLE = {("USD", "VND"): Decimal("25400")}


@pytest.fixture
def ledger():
    return TransactionLedger()


@pytest.fixture
def usdt_btc_ledger(ledger, make_tx):
    ledger.record(make_tx("USDT", "buy", 100, 1, day=0))
    ledger.record(make_tx("BTC", "buy", "0.001", 50000, day=1, payment_source="USDT"))
    return ledger


# =============================================================================
# EMPTY LEDGER AND FX
# =============================================================================

def test_empty_ledger_is_all_zero_in_every_currency(ledger):
    summary = PortfolioAggregator(ledger).summarize(None, ["USD", "VND"], {}, VND_TABLE)

    assert set(summary.totals) == {"USD", "VND"}
    for totals in summary.totals.values():
        assert totals.total_invested == Decimal("0")
        assert totals.total_sold == Decimal("0")
        assert totals.total_crypto_sold == Decimal("0")
        assert totals.cross_asset_payments_total == Decimal("0")
        assert totals.net_invested == Decimal("0")
        assert totals.total_value == Decimal("0")
    assert summary.positions == []


def test_missing_fx_raises_even_for_empty_ledger(ledger):
    with pytest.raises(MissingQuoteError) as excinfo:
        PortfolioAggregator(ledger).summarize(None, ["USD", "VND"], {}, {})

    assert excinfo.value.pair == ("USD", "VND")


def test_non_positive_fx_is_treated_as_missing(ledger):
    with pytest.raises(MissingQuoteError):
        PortfolioAggregator(ledger).summarize(None, ["VND"], {}, {("USD", "VND"): Decimal("0")})


def test_inverse_fx_pair_is_used(ledger):
    fx = PortfolioAggregator.fx_rate("USD", "EUR", {("EUR", "USD"): Decimal("1.25")})

    assert fx == Decimal("0.8")


def test_base_currency_converts_at_one(ledger):
    assert PortfolioAggregator.fx_rate("USD", "usd", {}) == Decimal("1")


def test_fx_lookup_ignores_case():
    assert PortfolioAggregator.fx_rate("usd", "vnd", VND_TABLE) == Decimal("25400")

    with pytest.raises(MissingQuoteError) as excinfo:
        PortfolioAggregator.fx_rate("usd", "eur", VND_TABLE)

    assert excinfo.value.pair == ("USD", "EUR")
    assert excinfo.value.symbol is None


# =============================================================================
# TOTALS
# =============================================================================

def test_usdt_funded_btc_scenario(usdt_btc_ledger):
    prices = {"USDT": Decimal("1"), "BTC": Decimal("60000")}

    summary = PortfolioAggregator(usdt_btc_ledger).summarize(None, ["USD", "VND"], prices, VND_TABLE)
    usd = summary.in_currency("USD")

    assert summary.position("BTC").total_invested == Decimal("0")
    assert summary.position("BTC").holdings == Decimal("0.001")
    assert usd.total_invested == Decimal("100")
    assert usd.cross_asset_payments_total == Decimal("50")
    assert usd.net_invested == Decimal("100")
    assert usd.total_value == Decimal("110")
    assert summary.usdt_used_for_payments == Decimal("50")

    vnd = summary.in_currency("VND")
    assert vnd.total_invested == Decimal("2540000")
    assert vnd.cross_asset_payments_total == Decimal("1270000")
    assert vnd.total_value == Decimal("2794000")


def test_fiat_invested_is_sum_of_buys_plus_fees(ledger, make_tx):
    ledger.record(make_tx("BTC", "buy", "0.1", 40000, day=2, fee=Decimal("4")))
    ledger.record(make_tx("ETH", "buy", 2, 2500, day=0, fee=Decimal("1.5")))
    ledger.record(make_tx("BTC", "buy", "0.2", 45000, day=1, fee=Decimal("9")))
    prices = {"BTC": Decimal("50000"), "ETH": Decimal("3000")}

    usd = PortfolioAggregator(ledger).summarize(None, ["USD"], prices, {}).in_currency("USD")

    assert usd.total_invested == Decimal("4004") + Decimal("5001.5") + Decimal("9009")


def test_crypto_sold_excludes_stablecoins(ledger, make_tx):
    ledger.record(make_tx("USDT", "buy", 500, 1, day=0))
    ledger.record(make_tx("USDT", "sell", 100, 1, day=1))
    ledger.record(make_tx("BTC", "buy", 1, 20000, day=0))
    ledger.record(make_tx("BTC", "sell", "0.5", 30000, day=1))
    prices = {"USDT": Decimal("1"), "BTC": Decimal("30000")}

    usd = PortfolioAggregator(ledger).summarize(None, ["USD"], prices, {}).in_currency("USD")

    assert usd.total_sold == Decimal("15100")
    assert usd.total_crypto_sold == Decimal("15000")
    assert usd.realized_pnl == Decimal("5000")
    assert usd.unrealized_pnl == Decimal("5000")
    assert usd.total_pnl == Decimal("10000")


def test_missing_price_for_held_asset_raises(usdt_btc_ledger):
    with pytest.raises(MissingQuoteError) as excinfo:
        PortfolioAggregator(usdt_btc_ledger).summarize(None, ["USD"], {"USDT": Decimal("1")}, {})

    assert excinfo.value.symbol == "BTC"


def test_fully_sold_asset_needs_no_price(ledger, make_tx):
    ledger.record(make_tx("BTC", "buy", 1, 20000, day=0))
    ledger.record(make_tx("BTC", "sell", 1, 25000, day=1))

    usd = PortfolioAggregator(ledger).summarize(None, ["USD"], {}, {}).in_currency("USD")

    assert usd.total_value == Decimal("0")
    assert usd.realized_pnl == Decimal("5000")


def test_as_of_ignores_later_transactions(usdt_btc_ledger):
    as_of = datetime(2026, 1, 1, 12, 0)
    summary = PortfolioAggregator(usdt_btc_ledger).summarize(as_of, ["USD"], {"USDT": Decimal("1")}, {})

    usd = summary.in_currency("USD")
    assert usd.total_value == Decimal("100")
    assert usd.cross_asset_payments_total == Decimal("0")
    assert summary.position("BTC") is None


def test_disposal_policy_totals(make_tx):
    ledger = TransactionLedger(policy=CrossAssetPolicy.DISPOSAL)
    ledger.record(make_tx("USDT", "buy", 100, 1, day=0))
    ledger.record(make_tx("BTC", "buy", "0.001", 50000, day=1, payment_source="USDT"))
    prices = {"USDT": Decimal("1"), "BTC": Decimal("60000")}

    usd = PortfolioAggregator(ledger).summarize(None, ["USD"], prices, {}).in_currency("USD")

    assert usd.total_invested == Decimal("150")
    assert usd.total_sold == Decimal("50")
    assert usd.net_invested == Decimal("100")
    assert usd.cross_asset_payments_total == Decimal("50")


def test_inconsistent_loaded_ledger_surfaces_on_summarize(make_tx):
    class Storage:
        def get_all(self):
            return [make_tx("BTC", "sell", 1, 20000, id=1)]

    ledger = TransactionLedger.load(Storage())

    with pytest.raises(DataIntegrityError):
        PortfolioAggregator(ledger).summarize(None, ["USD"], {"BTC": Decimal("1")}, {})


def test_unrequested_currency_is_not_available(usdt_btc_ledger):
    prices = {"USDT": Decimal("1"), "BTC": Decimal("60000")}
    summary = PortfolioAggregator(usdt_btc_ledger).summarize(None, ["USD"], prices, {})

    with pytest.raises(KeyError):
        summary.in_currency("VND")


# =============================================================================
# PORTFOLIO SERVICE
# =============================================================================

def test_top_holdings_ordered_by_value(ledger, make_tx):
    ledger.record(make_tx("ETH", "buy", 1, 3000))
    ledger.record(make_tx("BTC", "buy", "0.1", 50000))
    ledger.record(make_tx("SOL", "buy", 1, 100))
    ledger.record(make_tx("SOL", "sell", 1, 120, day=1))
    prices = {"ETH": Decimal("3000"), "BTC": Decimal("60000")}
    summary = PortfolioAggregator(ledger).summarize(None, ["USD"], prices, {})

    top = PortfolioService.get_top_holdings(summary, limit=5)

    assert [p.symbol for p in top] == ["BTC", "ETH"]


def test_calculate_portfolio_with_stored_ledger(db, quotes, make_tx):
    from cryptofolio.repositories import TransactionRepository

    ledger = TransactionLedger(storage=TransactionRepository)
    ledger.record(make_tx("USDT", "buy", 100, 1, day=0))
    ledger.record(make_tx("BTC", "buy", "0.001", 50000, day=1, payment_source="USDT"))
    quotes["BTC-USD"] = 60000.0
    quotes["USDVND=X"] = 25400.0

    summary = PortfolioService.calculate_portfolio(["USD", "VND"])

    usd = summary.in_currency("USD")
    assert usd.total_invested == Decimal("100")
    assert usd.total_value == Decimal("110")
    assert summary.in_currency("VND").fx_rate == Decimal("25400")


def test_calculate_portfolio_keeps_an_empty_ledger(db, quotes, make_tx):
    from cryptofolio.repositories import TransactionRepository
    from cryptofolio.services.market_data import QuoteService

    TransactionRepository.insert(make_tx("BTC", "buy", 1, 100))

    summary = PortfolioService.calculate_portfolio(["USD"], ledger=TransactionLedger(), quote_service=QuoteService())

    assert summary.positions == []
    assert summary.in_currency("USD").total_invested == Decimal("0")


def test_calculate_portfolio_prices_in_the_ledger_base(quotes, make_tx):
    ledger = TransactionLedger(base_currency="EUR")
    ledger.record(make_tx("BTC", "buy", 1, 20000))
    quotes["BTC-EUR"] = 30000.0
    quotes["BTC-USD"] = 33000.0

    summary = PortfolioService.calculate_portfolio(["EUR"], ledger=ledger)

    assert summary.base_currency == "EUR"
    assert summary.in_currency("EUR").total_value == Decimal("30000")
