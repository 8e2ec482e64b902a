"""
Snapshot Repository - data access layer for PortfolioSnapshot model.
Snapshots are append-only.
"""

from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from sqlmodel import Session, select

from cryptofolio.db_engine import get_engine
from cryptofolio.models import PortfolioSnapshot


class SnapshotRepository:
    """Repository for PortfolioSnapshot operations."""

    @staticmethod
    def add(
        snapshot_date: datetime,
        currency: str,
        total_value: Decimal,
        total_invested: Decimal,
        net_invested: Decimal,
        session: Optional[Session] = None
    ) -> int:
        """
        Append a snapshot row.

        Args:
            snapshot_date: Snapshot time
            currency: Display currency of the totals
            total_value: Portfolio market value
            total_invested: Total fiat invested
            net_invested: Invested minus sold
            session: Optional existing session for transaction reuse

        Returns:
            Id of the stored row
        """
        def _add(sess: Session) -> int:
            snapshot = PortfolioSnapshot(
                snapshot_date=snapshot_date,
                currency=currency,
                total_value=total_value,
                total_invested=total_invested,
                net_invested=net_invested,
            )
            try:
                sess.add(snapshot)
                sess.commit()
                sess.refresh(snapshot)
            except Exception:
                sess.rollback()
                raise
            return snapshot.id

        if session is not None:
            return _add(session)
        else:
            with Session(get_engine()) as session:
                return _add(session)

    @staticmethod
    def get_since(
        currency: str,
        start: Optional[datetime] = None,
        session: Optional[Session] = None
    ) -> List[PortfolioSnapshot]:
        """
        Snapshots in a currency from `start` onwards, oldest first.

        Args:
            currency: Display currency
            start: Earliest snapshot time (None = all history)
            session: Optional existing session for transaction reuse

        Returns:
            List of PortfolioSnapshot objects
        """
        def _get_since(sess: Session) -> List[PortfolioSnapshot]:
            statement = select(PortfolioSnapshot).where(PortfolioSnapshot.currency == currency)
            if start is not None:
                statement = statement.where(PortfolioSnapshot.snapshot_date >= start)
            statement = statement.order_by(PortfolioSnapshot.snapshot_date, PortfolioSnapshot.id)
            return list(sess.exec(statement).all())

        if session is not None:
            return _get_since(session)
        else:
            with Session(get_engine()) as session:
                return _get_since(session)

    @staticmethod
    def get_latest(currency: str, session: Optional[Session] = None) -> Optional[PortfolioSnapshot]:
        """Most recent snapshot in a currency, or None."""
        def _get_latest(sess: Session) -> Optional[PortfolioSnapshot]:
            statement = (
                select(PortfolioSnapshot)
                .where(PortfolioSnapshot.currency == currency)
                .order_by(PortfolioSnapshot.snapshot_date.desc(), PortfolioSnapshot.id.desc())
            )
            return sess.exec(statement).first()

        if session is not None:
            return _get_latest(session)
        else:
            with Session(get_engine()) as session:
                return _get_latest(session)
