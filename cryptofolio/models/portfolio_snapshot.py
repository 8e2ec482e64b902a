"""
PortfolioSnapshot model - point-in-time portfolio totals for historical charting.
"""

from typing import Optional
from datetime import datetime
from decimal import Decimal
from sqlmodel import SQLModel, Field


class PortfolioSnapshot(SQLModel, table=True):
    """
    Portfolio totals in one display currency at a point in time.
    A snapshot taken in several currencies produces one row per currency.
    """
    __tablename__ = "portfolio_snapshot"

    id: Optional[int] = Field(default=None, primary_key=True)
    snapshot_date: datetime = Field(index=True)
    currency: str = Field(index=True)
    total_value: Decimal = Field(max_digits=38, decimal_places=18)
    total_invested: Decimal = Field(max_digits=38, decimal_places=18)
    net_invested: Decimal = Field(max_digits=38, decimal_places=18)
    created_at: datetime = Field(default_factory=datetime.now)
