"""
Database models for cryptofolio.
All SQLModel table definitions are centralized here.
"""

from cryptofolio.models.asset import Asset
from cryptofolio.models.transaction import Transaction
from cryptofolio.models.p2p_transaction import P2PTransaction, MarketRate
from cryptofolio.models.portfolio_snapshot import PortfolioSnapshot

__all__ = [
    'Asset',
    'Transaction',
    'P2PTransaction',
    'MarketRate',
    'PortfolioSnapshot',
]
