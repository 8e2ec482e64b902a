"""
Shared pytest fixtures.

Every test runs against its own settings and a throwaway SQLite file under
tmp_path, and no test reaches the network: yfinance lookups go through the
`quotes` fixture.
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pandas as pd
import pytest

from cryptofolio.config import reload_settings
from cryptofolio.db_engine import init_db, reset_engine
from cryptofolio.services.common import LedgerTransaction
from cryptofolio.services.market_data import MarketDataService


# =============================================================================
# ENVIRONMENT
# =============================================================================

@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    """Point settings at a per-test database and reset cached state."""
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'cryptofolio.db'}")
    monkeypatch.setenv("BASE_CURRENCY", "USD")
    monkeypatch.setenv("CROSS_ASSET_POLICY", "transfer")
    reset_engine()
    settings = reload_settings()
    MarketDataService.clear_cache()
    yield settings
    reset_engine()
    MarketDataService.clear_cache()


@pytest.fixture
def db():
    """Create all tables in the per-test database."""
    init_db()


# =============================================================================
# MARKET DATA STUBS
# =============================================================================

@pytest.fixture
def quotes(monkeypatch):
    """
    Replace yfinance with an in-memory table of last closes.

    Tests fill the returned dict with ticker -> close, e.g. {"BTC-USD": 60000}.
    Tickers not in the dict come back as an empty history.
    """
    closes = {}

    def fake_history(yf_symbol, period="1d"):
        if yf_symbol not in closes:
            return pd.DataFrame(columns=["Close"])
        return pd.DataFrame({"Close": [closes[yf_symbol]]}, index=[pd.Timestamp("2026-01-01")])

    monkeypatch.setattr(MarketDataService, "_fetch_ticker_history", staticmethod(fake_history))
    return closes


# =============================================================================
# TRANSACTION FACTORY
# =============================================================================

T0 = datetime(2026, 1, 1, 12, 0)


@pytest.fixture
def make_tx():
    """Build a LedgerTransaction dated `day` days after 2026-01-01."""
    def _make(symbol, transaction_type, quantity, price, day=0, **kwargs):
        return LedgerTransaction(
            symbol=symbol,
            transaction_type=transaction_type,
            quantity=Decimal(str(quantity)),
            price_per_unit=Decimal(str(price)),
            timestamp=kwargs.pop("timestamp", T0 + timedelta(days=day)),
            **kwargs
        )
    return _make
