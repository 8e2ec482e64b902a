"""
Error taxonomy for cryptofolio.
Every accounting failure is raised to the caller; nothing is coerced to zero.
"""

from typing import Optional, Tuple


class CryptofolioError(Exception):
    """Base class for all cryptofolio errors."""


class ValidationError(CryptofolioError):
    """Malformed transaction input (non-positive quantity, negative price or fee, ...)."""


class DataIntegrityError(CryptofolioError):
    """Ledger state is inconsistent, e.g. a sell exceeds the quantity held."""


class MissingQuoteError(CryptofolioError):
    """No price or FX rate is available for a needed computation."""

    def __init__(self, message: str, symbol: Optional[str] = None, pair: Optional[Tuple[str, str]] = None):
        super().__init__(message)
        self.symbol = symbol
        self.pair = pair
