"""
P2P models - off-exchange crypto/fiat trades and the market rates they are compared to.
"""

from typing import Optional
from datetime import datetime
from decimal import Decimal
from sqlmodel import SQLModel, Field


class P2PTransaction(SQLModel, table=True):
    """Represents a P2P trade pairing a crypto amount with a fiat amount."""
    __tablename__ = "p2p_transaction"

    id: Optional[int] = Field(default=None, primary_key=True)
    transaction_type: str  # "buy" or "sell"
    crypto: str = Field(default="USDT", index=True)
    crypto_amount: Decimal = Field(max_digits=38, decimal_places=18)
    fiat_currency: str = Field(default="VND", index=True)
    fiat_amount: Decimal = Field(max_digits=38, decimal_places=18)
    exchange_rate: Decimal = Field(max_digits=38, decimal_places=18)  # Fiat per crypto unit
    market_rate: Optional[Decimal] = Field(default=None, max_digits=38, decimal_places=18)
    spread_percent: Optional[Decimal] = Field(default=None, max_digits=38, decimal_places=18)
    fee_amount: Optional[Decimal] = Field(default=None, max_digits=38, decimal_places=18)  # Fiat
    fee_percent: Optional[Decimal] = Field(default=None, max_digits=38, decimal_places=18)
    platform: Optional[str] = Field(default=None)  # Binance P2P, OTC, ...
    counterparty: Optional[str] = Field(default=None)
    payment_method: Optional[str] = Field(default=None)
    bank_name: Optional[str] = Field(default=None)
    reference: Optional[str] = Field(default=None)
    notes: Optional[str] = Field(default=None)
    transaction_date: datetime = Field(index=True)
    created_at: datetime = Field(default_factory=datetime.now)


class MarketRate(SQLModel, table=True):
    """Market rate of a crypto in a fiat currency at a point in time."""
    __tablename__ = "market_rate"

    id: Optional[int] = Field(default=None, primary_key=True)
    crypto: str = Field(index=True)
    fiat_currency: str = Field(index=True)
    rate: Decimal = Field(max_digits=38, decimal_places=18)
    source: Optional[str] = Field(default=None)  # P2P Market, CoinGecko, ...
    timestamp: datetime = Field(default_factory=datetime.now, index=True)
