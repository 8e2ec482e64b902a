"""
Services package for cryptofolio.
Provides the accounting core and market data, separated from the data layer.
"""

from cryptofolio.services.common import (
    LedgerTransaction,
    TransactionType,
    FeeCurrency,
    CrossAssetPolicy,
    PrecisionClass,
    normalize_symbol,
    to_decimal,
)
from cryptofolio.services.payments import CrossAssetPaymentResolver, PaymentResolution, Redeployment
from cryptofolio.services.cost_basis import AssetPosition, CostBasisCalculator
from cryptofolio.services.ledger import TransactionLedger, Correction
from cryptofolio.services.portfolio import (
    CurrencyTotals,
    PortfolioSummary,
    PortfolioAggregator,
    PortfolioService,
)
from cryptofolio.services.market_data import MarketDataService, QuoteService
from cryptofolio.services.p2p import P2PTrade, P2PSummary, P2PService
from cryptofolio.services.history import TimeRange, PortfolioChange, PortfolioHistoryService

__all__ = [
    # Common types
    'LedgerTransaction',
    'TransactionType',
    'FeeCurrency',
    'CrossAssetPolicy',
    'PrecisionClass',
    'normalize_symbol',
    'to_decimal',
    # Accounting core
    'CrossAssetPaymentResolver',
    'PaymentResolution',
    'Redeployment',
    'AssetPosition',
    'CostBasisCalculator',
    'TransactionLedger',
    'Correction',
    'CurrencyTotals',
    'PortfolioSummary',
    'PortfolioAggregator',
    'PortfolioService',
    # Market data
    'MarketDataService',
    'QuoteService',
    # P2P and history
    'P2PTrade',
    'P2PSummary',
    'P2PService',
    'TimeRange',
    'PortfolioChange',
    'PortfolioHistoryService',
]
