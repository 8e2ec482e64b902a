"""
Repositories package for cryptofolio.
Provides data access layer for all database operations.
"""

from cryptofolio.repositories.asset_repository import AssetRepository
from cryptofolio.repositories.transaction_repository import TransactionRepository
from cryptofolio.repositories.p2p_repository import P2PRepository
from cryptofolio.repositories.snapshot_repository import SnapshotRepository

__all__ = [
    'AssetRepository',
    'TransactionRepository',
    'P2PRepository',
    'SnapshotRepository',
]
