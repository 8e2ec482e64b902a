"""
Asset model - represents a crypto asset held in the portfolio.
"""

from typing import Optional
from datetime import datetime
from sqlmodel import SQLModel, Field


class Asset(SQLModel, table=True):
    """Represents a crypto asset in the portfolio."""
    __tablename__ = "crypto_asset"

    id: Optional[int] = Field(default=None, primary_key=True)
    symbol: str = Field(index=True, unique=True)  # e.g., "BTC", "USDT"
    name: str  # e.g., "Bitcoin", "Tether"
    precision_class: str = Field(default="high")  # "high" or "stable"
    created_at: datetime = Field(default_factory=datetime.now)
