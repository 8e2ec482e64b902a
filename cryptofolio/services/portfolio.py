"""
Portfolio service for rolling per-asset positions into portfolio totals.
Totals are computed in the base currency and replicated into every requested
display currency through a supplied FX table.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from cryptofolio.config import get_settings
from cryptofolio.errors import MissingQuoteError
from cryptofolio.services.common import ZERO, decimal_sum, normalize_symbol, to_decimal
from cryptofolio.services.cost_basis import AssetPosition
from cryptofolio.services.ledger import TransactionLedger

logger = logging.getLogger(__name__)

PriceTable = Mapping[str, Decimal]
FxTable = Mapping[Tuple[str, str], Decimal]


@dataclass(frozen=True)
class CurrencyTotals:
    """Portfolio totals expressed in one currency."""
    currency: str
    fx_rate: Decimal  # Units of this currency per unit of base currency
    total_invested: Decimal
    total_sold: Decimal
    total_crypto_sold: Decimal
    cross_asset_payments_total: Decimal
    total_value: Decimal
    realized_pnl: Decimal
    unrealized_pnl: Decimal

    @property
    def net_invested(self) -> Decimal:
        return self.total_invested - self.total_sold

    @property
    def total_pnl(self) -> Decimal:
        return self.realized_pnl + self.unrealized_pnl

    def converted(self, currency: str, fx_rate: Decimal) -> "CurrencyTotals":
        """Re-express base-currency totals in another currency."""
        return CurrencyTotals(
            currency=currency,
            fx_rate=fx_rate,
            total_invested=self.total_invested * fx_rate,
            total_sold=self.total_sold * fx_rate,
            total_crypto_sold=self.total_crypto_sold * fx_rate,
            cross_asset_payments_total=self.cross_asset_payments_total * fx_rate,
            total_value=self.total_value * fx_rate,
            realized_pnl=self.realized_pnl * fx_rate,
            unrealized_pnl=self.unrealized_pnl * fx_rate,
        )


@dataclass
class PortfolioSummary:
    """Portfolio totals per display currency plus the per-asset positions behind them."""
    as_of: Optional[datetime]
    base_currency: str
    base_totals: CurrencyTotals
    totals: Dict[str, CurrencyTotals] = field(default_factory=dict)
    positions: List[AssetPosition] = field(default_factory=list)
    payments_by_funding_asset: Dict[str, Decimal] = field(default_factory=dict)

    def in_currency(self, currency: str) -> CurrencyTotals:
        currency = normalize_symbol(currency)
        if currency not in self.totals:
            raise KeyError(f"Summary was not computed in {currency}")
        return self.totals[currency]

    @property
    def usdt_used_for_payments(self) -> Decimal:
        return self.payments_by_funding_asset.get("USDT", ZERO)

    def position(self, symbol: str) -> Optional[AssetPosition]:
        symbol = normalize_symbol(symbol)
        for position in self.positions:
            if position.symbol == symbol:
                return position
        return None


class PortfolioAggregator:
    """Combines every asset's cost-basis output into portfolio-level totals."""

    def __init__(self, ledger: TransactionLedger):
        self.ledger = ledger

    def summarize(
        self,
        as_of: Optional[datetime],
        display_currencies: Iterable[str],
        price_table: PriceTable,
        fx_table: FxTable,
    ) -> PortfolioSummary:
        """
        Summarize the portfolio as of a point in time.

        Args:
            as_of: Ignore transactions after this timestamp (None = all)
            display_currencies: Currency codes to replicate the totals in
            price_table: Symbol -> current price in base currency
            fx_table: (from, to) -> units of `to` per unit of `from`

        Returns:
            PortfolioSummary with totals per display currency

        Raises:
            MissingQuoteError: if a held asset has no price or a display
                currency has no FX rate
            DataIntegrityError: if the ledger drives any holding negative
        """
        base = self.ledger.base_currency
        prices = {normalize_symbol(symbol): to_decimal(price, f"price of {symbol}")
                  for symbol, price in price_table.items()}

        transactions = [tx for tx in self.ledger.all() if as_of is None or tx.timestamp <= as_of]
        resolution = self.ledger.resolver.resolve(transactions)

        symbols: Dict[str, None] = {}
        for tx in transactions:
            symbols.setdefault(tx.symbol)
        for symbol in resolution.funding_symbols():
            symbols.setdefault(symbol)

        positions = []
        for symbol in symbols:
            position = self.ledger.calculator.calculate(
                symbol, transactions, resolution.for_asset(symbol), prices.get(symbol)
            )
            if position.current_price is None:
                if position.holdings != ZERO:
                    raise MissingQuoteError(f"No current price for {symbol}", symbol=symbol)
                position.current_price = ZERO
            positions.append(position)

        base_totals = CurrencyTotals(
            currency=base,
            fx_rate=Decimal("1"),
            total_invested=decimal_sum(p.total_invested for p in positions),
            total_sold=decimal_sum(p.total_sold for p in positions),
            total_crypto_sold=decimal_sum(
                p.total_sold for p in positions if p.symbol not in self.ledger.stablecoins
            ),
            cross_asset_payments_total=resolution.cross_asset_payments_total,
            total_value=decimal_sum(p.market_value for p in positions),
            realized_pnl=decimal_sum(p.realized_pnl for p in positions),
            unrealized_pnl=decimal_sum(p.unrealized_pnl for p in positions),
        )

        totals: Dict[str, CurrencyTotals] = {}
        for currency in display_currencies:
            currency = normalize_symbol(currency)
            if currency in totals:
                continue
            rate = self.fx_rate(base, currency, fx_table)
            totals[currency] = base_totals.converted(currency, rate)

        logger.info(
            f"Summarized {len(positions)} assets: value {base_totals.total_value} {base}, "
            f"net invested {base_totals.net_invested} {base}"
        )
        return PortfolioSummary(
            as_of=as_of,
            base_currency=base,
            base_totals=base_totals,
            totals=totals,
            positions=positions,
            payments_by_funding_asset=dict(resolution.by_funding_asset),
        )

    @staticmethod
    def fx_rate(base: str, currency: str, fx_table: FxTable) -> Decimal:
        """
        Units of `currency` per unit of `base`.
        Uses the direct pair when present, else the inverse pair.
        """
        base = normalize_symbol(base)
        currency = normalize_symbol(currency)
        if currency == base:
            return Decimal("1")
        table = {(normalize_symbol(a), normalize_symbol(b)): rate for (a, b), rate in fx_table.items()}
        if (base, currency) in table:
            rate = to_decimal(table[(base, currency)], f"{base}/{currency} rate")
            if rate > ZERO:
                return rate
        elif (currency, base) in table:
            inverse = to_decimal(table[(currency, base)], f"{currency}/{base} rate")
            if inverse > ZERO:
                return Decimal("1") / inverse
        raise MissingQuoteError(f"No FX rate for {base}/{currency}", pair=(base, currency))


class PortfolioService:
    """
    Service wiring the ledger, stored transactions and market quotes together.
    """

    @staticmethod
    def load_ledger() -> TransactionLedger:
        """Build a ledger backed by the transaction repository."""
        from cryptofolio.repositories import TransactionRepository

        return TransactionLedger.load(TransactionRepository)

    @staticmethod
    def calculate_portfolio(
        display_currencies: Optional[Iterable[str]] = None,
        as_of: Optional[datetime] = None,
        ledger: Optional[TransactionLedger] = None,
        quote_service=None,
    ) -> PortfolioSummary:
        """
        Calculate the portfolio summary from stored transactions and live quotes.

        Args:
            display_currencies: Currencies to report in (default: from settings)
            as_of: Point in time to summarize at (default: everything)
            ledger: Ledger to summarize (default: loaded from the database)
            quote_service: QuoteService to price assets with

        Returns:
            PortfolioSummary in every display currency
        """
        from cryptofolio.services.market_data import QuoteService

        settings = get_settings()
        currencies = [normalize_symbol(c) for c in (display_currencies or settings.display_currencies)]
        ledger = ledger if ledger is not None else PortfolioService.load_ledger()
        if quote_service is None:
            quote_service = QuoteService(base_currency=ledger.base_currency, stablecoins=ledger.stablecoins)

        price_table = quote_service.build_price_table(ledger.symbols())
        fx_table = quote_service.build_fx_table(ledger.base_currency, currencies)
        return PortfolioAggregator(ledger).summarize(as_of, currencies, price_table, fx_table)

    @staticmethod
    def get_top_holdings(summary: PortfolioSummary, limit: int = 5) -> List[AssetPosition]:
        """Positions with holdings, largest market value first."""
        held = [p for p in summary.positions if p.holdings > ZERO]
        held.sort(key=lambda p: p.market_value or ZERO, reverse=True)
        return held[:limit]
