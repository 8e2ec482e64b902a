"""
Repository tests against a throwaway SQLite database.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from cryptofolio.repositories import (
    AssetRepository,
    P2PRepository,
    SnapshotRepository,
    TransactionRepository,
)
from cryptofolio.services.common import FeeCurrency
from cryptofolio.services.ledger import TransactionLedger
from cryptofolio.services.p2p import P2PService


# =============================================================================
# ASSETS
# =============================================================================

def test_asset_precision_class_defaults(db):
    btc = AssetRepository.add("btc", "Bitcoin")
    usdt = AssetRepository.add("USDT")

    assert btc.symbol == "BTC"
    assert btc.precision_class == "high"
    assert usdt.precision_class == "stable"
    assert usdt.name == "USDT"


def test_asset_symbol_is_unique(db):
    AssetRepository.add("BTC")

    with pytest.raises(IntegrityError):
        AssetRepository.add("btc")


def test_get_or_create_reuses_existing(db):
    first = AssetRepository.get_or_create("ETH")
    second = AssetRepository.get_or_create("eth")

    assert first.id == second.id
    assert [a.symbol for a in AssetRepository.get_all()] == ["ETH"]


# =============================================================================
# TRANSACTIONS
# =============================================================================

def test_insert_and_query_round_trip(db, make_tx):
    tx_id = TransactionRepository.insert(
        make_tx("BTC", "buy", "0.001", 50000, payment_source="USDT", exchange="Binance")
    )

    stored = TransactionRepository.get_by_id(tx_id)
    assert stored.id == tx_id
    assert stored.symbol == "BTC"
    assert stored.quantity == Decimal("0.001")
    assert stored.price_per_unit == Decimal("50000")
    assert stored.payment_source == "USDT"
    assert stored.exchange == "Binance"
    assert [tx.id for tx in TransactionRepository.query("btc")] == [tx_id]
    assert TransactionRepository.query("ETH") == []


def test_get_all_is_chronological(db, make_tx):
    late = TransactionRepository.insert(make_tx("BTC", "buy", 1, 20000, day=5))
    early = TransactionRepository.insert(make_tx("ETH", "buy", 1, 2000, day=1))

    assert [tx.id for tx in TransactionRepository.get_all()] == [early, late]


def test_update_changes_fields_and_total(db, make_tx):
    tx_id = TransactionRepository.insert(make_tx("BTC", "buy", 1, 20000))

    updated = TransactionRepository.update(tx_id, {"quantity": Decimal("2"), "notes": "fixed"})

    assert updated.quantity == Decimal("2")
    assert updated.notes == "fixed"
    assert TransactionRepository.get_by_id(tx_id).total_amount == Decimal("40000")


def test_update_unknown_id_returns_none(db):
    assert TransactionRepository.update(999, {"notes": "x"}) is None


def test_ledger_persists_through_repository(db, make_tx):
    ledger = TransactionLedger(storage=TransactionRepository)
    ledger.record(make_tx("BTC", "buy", "0.5", 40000, fee=Decimal("0.001"), fee_currency="CRYPTO"))
    ledger.record(make_tx("BTC", "sell", "0.25", 50000, day=1))
    ledger.correct(2, {"price_per_unit": Decimal("52000")})

    reloaded = TransactionLedger.load(TransactionRepository)

    assert len(reloaded) == 2
    first, second = reloaded.list_by_asset("BTC")
    assert first.fee == Decimal("40")
    assert first.fee_in_crypto == Decimal("0.001")
    assert first.fee_currency is FeeCurrency.CRYPTO
    assert second.price_per_unit == Decimal("52000")


# =============================================================================
# P2P
# =============================================================================

def test_p2p_trade_round_trip(db):
    trade = P2PService.prepare_trade(
        "buy", Decimal("25500000"), Decimal("25500"),
        market_rate=Decimal("25000"), fee_amount=Decimal("25500"), platform="Binance P2P",
        timestamp=datetime(2026, 1, 2),
    )

    trade_id = P2PRepository.add_trade(trade)
    stored = P2PRepository.get_trades("usdt", "vnd")

    assert len(stored) == 1
    assert stored[0].id == trade_id
    assert stored[0] == trade


def test_latest_market_rate(db):
    now = datetime(2026, 1, 10)
    P2PRepository.add_market_rate("USDT", "VND", Decimal("25400"), timestamp=now - timedelta(hours=2))
    P2PRepository.add_market_rate("USDT", "VND", Decimal("25600"), source="manual", timestamp=now)
    P2PRepository.add_market_rate("USDC", "VND", Decimal("25000"), timestamp=now + timedelta(hours=1))

    latest = P2PRepository.get_latest_market_rate("usdt", "vnd")

    assert latest.rate == Decimal("25600")
    assert latest.source == "manual"
    assert [r.rate for r in P2PRepository.get_market_rates("USDT", "VND")] == [Decimal("25600"), Decimal("25400")]


def test_no_market_rate(db):
    assert P2PRepository.get_latest_market_rate("USDT", "VND") is None


def test_p2p_summary_from_database(db):
    P2PRepository.add_trade(P2PService.prepare_trade(
        "buy", Decimal("25500000"), Decimal("25500"), timestamp=datetime(2026, 1, 1)
    ))
    P2PRepository.add_market_rate("USDT", "VND", Decimal("26000"))

    summary = P2PService.get_summary()

    assert summary.holdings == Decimal("1000")
    assert summary.unrealized_pnl == Decimal("500000")


# =============================================================================
# SNAPSHOTS
# =============================================================================

def test_snapshots_filtered_by_currency_and_start(db):
    base = datetime(2026, 1, 1)
    for day in range(3):
        for currency, fx in (("USD", 1), ("VND", 25000)):
            SnapshotRepository.add(
                snapshot_date=base + timedelta(days=day),
                currency=currency,
                total_value=Decimal(100 + day) * fx,
                total_invested=Decimal("100") * fx,
                net_invested=Decimal("100") * fx,
            )

    usd = SnapshotRepository.get_since("USD", base + timedelta(days=1))

    assert [s.total_value for s in usd] == [Decimal("101"), Decimal("102")]
    assert len(SnapshotRepository.get_since("VND")) == 3
    assert SnapshotRepository.get_latest("VND").total_value == Decimal("2550000")
