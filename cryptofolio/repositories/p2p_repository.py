"""
P2P Repository - data access layer for P2PTransaction and MarketRate models.
"""

from typing import Optional, List
from datetime import datetime
from decimal import Decimal
from sqlmodel import Session, select

from cryptofolio.db_engine import get_engine
from cryptofolio.models import MarketRate, P2PTransaction
from cryptofolio.services.common import normalize_symbol
from cryptofolio.services.p2p import P2PTrade


class P2PRepository:
    """Repository for P2P trades and market rates. Both are append-only."""

    @staticmethod
    def add_trade(trade: P2PTrade, session: Optional[Session] = None) -> int:
        """
        Store a prepared P2P trade.

        Args:
            trade: Trade from P2PService.prepare_trade
            session: Optional existing session for transaction reuse

        Returns:
            Id of the stored row
        """
        def _add_trade(sess: Session) -> int:
            row = P2PTransaction(
                transaction_type=trade.transaction_type.value,
                crypto=trade.crypto,
                crypto_amount=trade.crypto_amount,
                fiat_currency=trade.fiat_currency,
                fiat_amount=trade.fiat_amount,
                exchange_rate=trade.exchange_rate,
                market_rate=trade.market_rate,
                spread_percent=trade.spread_percent,
                fee_amount=trade.fee_amount,
                fee_percent=trade.fee_percent,
                platform=trade.platform,
                counterparty=trade.counterparty,
                payment_method=trade.payment_method,
                bank_name=trade.bank_name,
                reference=trade.reference,
                notes=trade.notes,
                transaction_date=trade.timestamp,
            )
            try:
                sess.add(row)
                sess.commit()
                sess.refresh(row)
            except Exception:
                sess.rollback()
                raise
            return row.id

        if session is not None:
            return _add_trade(session)
        else:
            with Session(get_engine()) as session:
                return _add_trade(session)

    @staticmethod
    def get_trades(
        crypto: Optional[str] = None,
        fiat_currency: Optional[str] = None,
        session: Optional[Session] = None
    ) -> List[P2PTrade]:
        """
        Retrieve P2P trades, oldest first, optionally for one crypto/fiat pair.

        Args:
            crypto: Crypto symbol filter (optional)
            fiat_currency: Fiat code filter (optional)
            session: Optional existing session for transaction reuse

        Returns:
            List of P2PTrade objects
        """
        def _get_trades(sess: Session) -> List[P2PTrade]:
            statement = select(P2PTransaction)
            if crypto:
                statement = statement.where(P2PTransaction.crypto == normalize_symbol(crypto))
            if fiat_currency:
                statement = statement.where(P2PTransaction.fiat_currency == normalize_symbol(fiat_currency))
            statement = statement.order_by(P2PTransaction.transaction_date, P2PTransaction.id)
            return [P2PTrade.from_record(row) for row in sess.exec(statement)]

        if session is not None:
            return _get_trades(session)
        else:
            with Session(get_engine()) as session:
                return _get_trades(session)

    @staticmethod
    def add_market_rate(
        crypto: str,
        fiat_currency: str,
        rate: Decimal,
        source: Optional[str] = None,
        timestamp: Optional[datetime] = None,
        session: Optional[Session] = None
    ) -> MarketRate:
        """
        Record a market rate observation.

        Args:
            crypto: Crypto symbol
            fiat_currency: Fiat code
            rate: Fiat per crypto unit
            source: Where the rate came from (optional)
            timestamp: Observation time (default: now)
            session: Optional existing session for transaction reuse

        Returns:
            Created MarketRate object
        """
        def _add_market_rate(sess: Session) -> MarketRate:
            market_rate = MarketRate(
                crypto=normalize_symbol(crypto),
                fiat_currency=normalize_symbol(fiat_currency),
                rate=rate,
                source=source,
                timestamp=timestamp or datetime.now(),
            )
            try:
                sess.add(market_rate)
                sess.commit()
                sess.refresh(market_rate)
            except Exception:
                sess.rollback()
                raise
            return market_rate

        if session is not None:
            return _add_market_rate(session)
        else:
            with Session(get_engine()) as session:
                return _add_market_rate(session)

    @staticmethod
    def get_latest_market_rate(
        crypto: str,
        fiat_currency: str,
        session: Optional[Session] = None
    ) -> Optional[MarketRate]:
        """Most recent market rate for a crypto/fiat pair, or None."""
        rates = P2PRepository.get_market_rates(crypto, fiat_currency, limit=1, session=session)
        return rates[0] if rates else None

    @staticmethod
    def get_market_rates(
        crypto: str,
        fiat_currency: str,
        limit: int = 100,
        session: Optional[Session] = None
    ) -> List[MarketRate]:
        """
        Market rate history for a crypto/fiat pair, newest first.

        Args:
            crypto: Crypto symbol
            fiat_currency: Fiat code
            limit: Maximum number of rates to return
            session: Optional existing session for transaction reuse

        Returns:
            List of MarketRate objects
        """
        def _get_market_rates(sess: Session) -> List[MarketRate]:
            statement = (
                select(MarketRate)
                .where(MarketRate.crypto == normalize_symbol(crypto))
                .where(MarketRate.fiat_currency == normalize_symbol(fiat_currency))
                .order_by(MarketRate.timestamp.desc(), MarketRate.id.desc())
                .limit(limit)
            )
            return list(sess.exec(statement).all())

        if session is not None:
            return _get_market_rates(session)
        else:
            with Session(get_engine()) as session:
                return _get_market_rates(session)
