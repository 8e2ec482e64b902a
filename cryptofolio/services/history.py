"""
Portfolio history service.
Stores append-only portfolio snapshots and reads them back as pandas time series.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import List, Optional

import pandas as pd

from cryptofolio.services.common import ZERO, normalize_symbol, to_decimal
from cryptofolio.services.portfolio import PortfolioSummary

logger = logging.getLogger(__name__)

HISTORY_COLUMNS = ["total_value", "total_invested", "net_invested"]


class TimeRange(str, Enum):
    ONE_DAY = "1D"
    ONE_WEEK = "1W"
    ONE_MONTH = "1M"
    THREE_MONTHS = "3M"
    ONE_YEAR = "1Y"
    ALL = "ALL"

    @property
    def lookback(self) -> Optional[timedelta]:
        """Window length; None for ALL."""
        return {
            TimeRange.ONE_DAY: timedelta(days=1),
            TimeRange.ONE_WEEK: timedelta(days=7),
            TimeRange.ONE_MONTH: timedelta(days=30),
            TimeRange.THREE_MONTHS: timedelta(days=90),
            TimeRange.ONE_YEAR: timedelta(days=365),
        }.get(self)

    def start(self, now: datetime) -> Optional[datetime]:
        lookback = self.lookback
        return None if lookback is None else now - lookback


@dataclass(frozen=True)
class PortfolioChange:
    """Change in total value over a time range."""
    currency: str
    current_value: Decimal
    previous_value: Decimal
    change: Decimal
    change_percent: Decimal


class PortfolioHistoryService:
    """Service for portfolio snapshots and value history."""

    @staticmethod
    def create_snapshot(summary: PortfolioSummary, snapshot_date: Optional[datetime] = None) -> List[int]:
        """
        Append one snapshot row per currency in the summary.

        Args:
            summary: Portfolio summary to snapshot
            snapshot_date: Snapshot time (default: now)

        Returns:
            Ids of the stored rows
        """
        from cryptofolio.repositories import SnapshotRepository

        snapshot_date = snapshot_date or datetime.now()
        ids = [
            SnapshotRepository.add(
                snapshot_date=snapshot_date,
                currency=totals.currency,
                total_value=totals.total_value,
                total_invested=totals.total_invested,
                net_invested=totals.net_invested,
            )
            for totals in summary.totals.values()
        ]
        logger.info(f"Created portfolio snapshot at {snapshot_date} in {', '.join(summary.totals)}")
        return ids

    @staticmethod
    def get_history(range_: str = "1W", currency: str = "USD", now: Optional[datetime] = None) -> pd.DataFrame:
        """
        Snapshot history for a time range.

        Args:
            range_: One of 1D, 1W, 1M, 3M, 1Y, ALL
            currency: Display currency of the snapshots
            now: Reference time (default: now)

        Returns:
            DataFrame indexed by snapshot_date with total_value, total_invested
            and net_invested columns (Decimal values), oldest first
        """
        from cryptofolio.repositories import SnapshotRepository

        time_range = TimeRange(range_)
        start = time_range.start(now or datetime.now())
        snapshots = SnapshotRepository.get_since(normalize_symbol(currency), start)

        df = pd.DataFrame(
            [
                {
                    "snapshot_date": s.snapshot_date,
                    "total_value": to_decimal(s.total_value, "total_value"),
                    "total_invested": to_decimal(s.total_invested, "total_invested"),
                    "net_invested": to_decimal(s.net_invested, "net_invested"),
                }
                for s in snapshots
            ],
            columns=["snapshot_date"] + HISTORY_COLUMNS,
        )
        return df.set_index("snapshot_date").sort_index()

    @staticmethod
    def get_latest_snapshot(currency: str = "USD"):
        """Most recent snapshot row in a currency, or None."""
        from cryptofolio.repositories import SnapshotRepository

        return SnapshotRepository.get_latest(normalize_symbol(currency))

    @staticmethod
    def get_change(range_: str = "1D", currency: str = "USD", now: Optional[datetime] = None) -> Optional[PortfolioChange]:
        """
        Change between the first snapshot in the range and the latest snapshot.

        Returns:
            PortfolioChange, or None when there is no history in the range
        """
        history = PortfolioHistoryService.get_history(range_, currency, now)
        if history.empty:
            return None
        latest = PortfolioHistoryService.get_latest_snapshot(currency)
        if latest is None:
            return None

        current_value = to_decimal(latest.total_value, "total_value")
        previous_value = history["total_value"].iloc[0]
        change = current_value - previous_value
        change_percent = change / previous_value * 100 if previous_value > ZERO else ZERO
        return PortfolioChange(
            currency=normalize_symbol(currency),
            current_value=current_value,
            previous_value=previous_value,
            change=change,
            change_percent=change_percent,
        )
