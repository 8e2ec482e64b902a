"""
Transaction model - represents a buy/sell transaction for a crypto asset.
"""

from typing import Optional
from datetime import datetime
from decimal import Decimal
from sqlmodel import SQLModel, Field


class Transaction(SQLModel, table=True):
    """Represents a buy/sell transaction for a crypto asset."""
    __tablename__ = "crypto_transaction"

    id: Optional[int] = Field(default=None, primary_key=True)
    asset_id: int = Field(foreign_key="crypto_asset.id", index=True)
    transaction_type: str  # "buy" or "sell"
    quantity: Decimal = Field(max_digits=38, decimal_places=18)
    price_per_unit: Decimal = Field(max_digits=38, decimal_places=18)  # In base fiat
    total_amount: Decimal = Field(max_digits=38, decimal_places=18)  # quantity * price_per_unit
    fee: Decimal = Field(default=Decimal("0"), max_digits=38, decimal_places=18)  # Always base fiat
    fee_currency: str = Field(default="USD")  # "USD" or "CRYPTO"
    fee_in_crypto: Optional[Decimal] = Field(default=None, max_digits=38, decimal_places=18)
    payment_source: Optional[str] = Field(default=None)  # Funding asset symbol, None = fiat
    payment_quantity: Optional[Decimal] = Field(default=None, max_digits=38, decimal_places=18)
    exchange: Optional[str] = Field(default=None)  # Binance, Coinbase, P2P-Binance, ...
    notes: Optional[str] = Field(default=None)
    transaction_date: datetime = Field(index=True)
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)
