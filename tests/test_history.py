"""
Tests for portfolio snapshots and value history.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from cryptofolio.services.history import PortfolioHistoryService, TimeRange
from cryptofolio.services.ledger import TransactionLedger
from cryptofolio.services.portfolio import PortfolioAggregator

NOW = datetime(2026, 3, 1, 12, 0)


@pytest.fixture
def summary(make_tx):
    ledger = TransactionLedger()
    ledger.record(make_tx("BTC", "buy", 1, 20000))
    return PortfolioAggregator(ledger).summarize(
        None, ["USD", "VND"], {"BTC": Decimal("25000")}, {("USD", "VND"): Decimal("25000")}
    )


def snapshot_at(summary, when):
    PortfolioHistoryService.create_snapshot(summary, snapshot_date=when)


def test_time_range_windows():
    assert TimeRange("1D").start(NOW) == NOW - timedelta(days=1)
    assert TimeRange("3M").start(NOW) == NOW - timedelta(days=90)
    assert TimeRange("ALL").start(NOW) is None
    with pytest.raises(ValueError):
        TimeRange("5Y")


def test_snapshot_writes_one_row_per_currency(db, summary):
    ids = PortfolioHistoryService.create_snapshot(summary, snapshot_date=NOW)

    assert len(ids) == 2
    usd = PortfolioHistoryService.get_latest_snapshot("USD")
    vnd = PortfolioHistoryService.get_latest_snapshot("vnd")
    assert usd.total_value == Decimal("25000")
    assert usd.total_invested == Decimal("20000")
    assert vnd.total_value == Decimal("625000000")


def test_history_is_a_dataframe_within_range(db, summary):
    for days_ago in (40, 6, 2, 0):
        snapshot_at(summary, NOW - timedelta(days=days_ago))

    week = PortfolioHistoryService.get_history("1W", "USD", now=NOW)
    everything = PortfolioHistoryService.get_history("ALL", "USD", now=NOW)

    assert list(week.columns) == ["total_value", "total_invested", "net_invested"]
    assert len(week) == 3
    assert week.index[0] == NOW - timedelta(days=6)
    assert len(everything) == 4


def test_empty_history(db):
    history = PortfolioHistoryService.get_history("1M", "USD", now=NOW)

    assert history.empty
    assert PortfolioHistoryService.get_change("1M", "USD", now=NOW) is None


def test_change_compares_first_in_range_with_latest(db, make_tx):
    ledger = TransactionLedger()
    ledger.record(make_tx("BTC", "buy", 1, 20000))
    aggregator = PortfolioAggregator(ledger)
    for days_ago, price in ((3, "20000"), (1, "22000"), (0, "25000")):
        summary = aggregator.summarize(None, ["USD"], {"BTC": Decimal(price)}, {})
        snapshot_at(summary, NOW - timedelta(days=days_ago))

    change = PortfolioHistoryService.get_change("1W", "USD", now=NOW)

    assert change.previous_value == Decimal("20000")
    assert change.current_value == Decimal("25000")
    assert change.change == Decimal("5000")
    assert change.change_percent == Decimal("25")
