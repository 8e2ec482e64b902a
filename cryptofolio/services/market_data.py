"""
Market data service for fetching crypto prices and FX rates.
Uses yfinance with tenacity retry logic and caches results.
QuoteService assembles the price and FX tables the portfolio aggregator consumes.
"""

import logging
from decimal import Decimal
from functools import lru_cache
from typing import Dict, Iterable, Optional, Tuple

import pandas as pd
import yfinance as yf
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from cryptofolio.config import get_settings
from cryptofolio.services.common import ZERO, normalize_symbol, to_decimal

logger = logging.getLogger(__name__)


class MarketDataService:
    """
    Service for fetching crypto prices and exchange rates.
    Absent quotes are reported as None, never as zero.
    """

    @staticmethod
    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(Exception),
        reraise=True
    )
    def _fetch_ticker_history(yf_symbol: str, period: str = "1d") -> pd.DataFrame:
        """Fetch ticker history with retry logic."""
        ticker = yf.Ticker(yf_symbol)
        return ticker.history(period=period)

    @staticmethod
    def _last_close(yf_symbol: str) -> Optional[Decimal]:
        hist = MarketDataService._fetch_ticker_history(yf_symbol, period="1d")
        if hist is None or hist.empty:
            return None
        close = hist['Close'].iloc[-1]
        if pd.isna(close) or close <= 0:
            return None
        return to_decimal(float(close), yf_symbol)

    @staticmethod
    @lru_cache(maxsize=256)
    def get_current_price(symbol: str, quote_currency: str = "USD") -> Optional[Decimal]:
        """
        Fetch the current price of a coin, e.g. BTC -> BTC-USD.

        Args:
            symbol: Coin symbol
            quote_currency: Currency to quote in (default: "USD")

        Returns:
            Price as Decimal, or None if unavailable
        """
        yf_symbol = f"{normalize_symbol(symbol)}-{normalize_symbol(quote_currency)}"
        try:
            price = MarketDataService._last_close(yf_symbol)
        except Exception as e:
            logger.error(f"Error fetching price for {yf_symbol}: {e}")
            return None
        if price is None:
            logger.warning(f"No price available for {yf_symbol}")
        return price

    @staticmethod
    @lru_cache(maxsize=128)
    def get_exchange_rate(from_currency: str, to_currency: str = "USD") -> Optional[Decimal]:
        """
        Fetch a real-time exchange rate using yfinance with retry logic.

        Args:
            from_currency: Source currency code (e.g., "USD")
            to_currency: Target currency code (default: "USD")

        Returns:
            Units of to_currency per unit of from_currency, 1 for the same
            currency, or None if unavailable

        Examples:
            get_exchange_rate("USD", "VND") -> 25400
            get_exchange_rate("EUR", "USD") -> 1.08
        """
        from_currency = normalize_symbol(from_currency)
        to_currency = normalize_symbol(to_currency)
        if from_currency == to_currency:
            return Decimal("1")

        # yfinance FX tickers look like USDVND=X
        ticker_symbol = f"{from_currency}{to_currency}=X"
        try:
            rate = MarketDataService._last_close(ticker_symbol)
        except Exception as e:
            logger.error(f"Error fetching exchange rate {from_currency}->{to_currency}: {e}")
            return None
        if rate is None:
            logger.warning(f"Could not get exchange rate for {ticker_symbol}")
        return rate

    @staticmethod
    def clear_cache():
        """Clear the LRU cache."""
        MarketDataService.get_current_price.cache_clear()
        MarketDataService.get_exchange_rate.cache_clear()
        logger.info("Market data cache cleared")


class QuoteService:
    """
    Builds price and FX tables for the portfolio aggregator.

    Missing quotes are left out of the tables rather than defaulted, so the
    aggregator can reject them.
    """

    def __init__(self, base_currency: Optional[str] = None, stablecoins: Optional[Iterable[str]] = None):
        settings = get_settings()
        self.base_currency = normalize_symbol(base_currency or settings.base_currency)
        coins = settings.stablecoins if stablecoins is None else stablecoins
        self.stablecoins = {normalize_symbol(s) for s in coins}

    def build_price_table(self, symbols: Iterable[str]) -> Dict[str, Decimal]:
        """
        Current prices in the base currency.
        Stablecoins are priced at exactly 1 when the base currency is USD.
        """
        prices: Dict[str, Decimal] = {}
        for symbol in symbols:
            symbol = normalize_symbol(symbol)
            if symbol in prices:
                continue
            if self.base_currency == "USD" and symbol in self.stablecoins:
                prices[symbol] = Decimal("1")
                continue
            price = MarketDataService.get_current_price(symbol, self.base_currency)
            if price is not None:
                prices[symbol] = price
        logger.info(f"Built price table for {len(prices)} assets")
        return prices

    def build_fx_table(self, base: str, currencies: Iterable[str]) -> Dict[Tuple[str, str], Decimal]:
        """
        FX rates from the base currency into each display currency.

        When the base is USD the latest stored USDT/<currency> P2P market rate
        takes precedence over the yfinance FX quote.
        """
        base = normalize_symbol(base)
        table: Dict[Tuple[str, str], Decimal] = {}
        for currency in currencies:
            currency = normalize_symbol(currency)
            if currency == base:
                continue
            rate = None
            if base == "USD":
                rate = self.get_p2p_rate("USDT", currency)
            if rate is None:
                rate = MarketDataService.get_exchange_rate(base, currency)
            if rate is not None and rate > ZERO:
                table[(base, currency)] = rate
            else:
                logger.warning(f"No FX rate for {base}/{currency}")
        return table

    @staticmethod
    def get_p2p_rate(crypto: str, fiat_currency: str) -> Optional[Decimal]:
        """Latest stored P2P market rate for a crypto/fiat pair, if any."""
        from cryptofolio.repositories import P2PRepository

        market_rate = P2PRepository.get_latest_market_rate(crypto, fiat_currency)
        if market_rate is None:
            return None
        return to_decimal(market_rate.rate, f"{crypto}/{fiat_currency} rate")
