"""
Asset Repository - data access layer for Asset model.
Optimized with optional session parameter for transaction reuse.
"""

from typing import Optional, List
from sqlmodel import Session, select

from cryptofolio.config import get_settings
from cryptofolio.db_engine import get_engine
from cryptofolio.models import Asset
from cryptofolio.services.common import PrecisionClass, normalize_symbol


class AssetRepository:
    """Repository for Asset operations. Assets are immutable reference data."""

    @staticmethod
    def add(
        symbol: str,
        name: Optional[str] = None,
        precision_class: Optional[str] = None,
        session: Optional[Session] = None
    ) -> Asset:
        """
        Add a new asset to the database.

        Args:
            symbol: Coin symbol (upper-cased on store)
            name: Display name (default: the symbol)
            precision_class: "high" or "stable" (default: "stable" for
                configured stablecoins, "high" otherwise)
            session: Optional existing session for transaction reuse

        Returns:
            Created Asset object
        """
        symbol = normalize_symbol(symbol)
        if precision_class is None:
            stable = get_settings().is_stablecoin(symbol)
            precision_class = PrecisionClass.STABLE if stable else PrecisionClass.HIGH
        precision_class = PrecisionClass(precision_class).value

        def _create_asset(sess: Session) -> Asset:
            asset = Asset(symbol=symbol, name=name or symbol, precision_class=precision_class)
            try:
                sess.add(asset)
                sess.commit()
                sess.refresh(asset)
            except Exception:
                sess.rollback()
                raise
            return asset

        if session is not None:
            return _create_asset(session)
        else:
            with Session(get_engine()) as session:
                return _create_asset(session)

    @staticmethod
    def get_all(session: Optional[Session] = None) -> List[Asset]:
        """
        Retrieve all assets from the database.

        Args:
            session: Optional existing session for transaction reuse

        Returns:
            List of all Asset objects
        """
        def _get_all(sess: Session) -> List[Asset]:
            statement = select(Asset).order_by(Asset.symbol)
            results = sess.exec(statement)
            return list(results.all())

        if session is not None:
            return _get_all(session)
        else:
            with Session(get_engine()) as session:
                return _get_all(session)

    @staticmethod
    def get_by_symbol(symbol: str, session: Optional[Session] = None) -> Optional[Asset]:
        """
        Retrieve an asset by its symbol.

        Args:
            symbol: Coin symbol (case-insensitive)
            session: Optional existing session for transaction reuse

        Returns:
            Asset object or None if not found
        """
        symbol = normalize_symbol(symbol)

        def _get_by_symbol(sess: Session) -> Optional[Asset]:
            statement = select(Asset).where(Asset.symbol == symbol)
            return sess.exec(statement).first()

        if session is not None:
            return _get_by_symbol(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_symbol(session)

    @staticmethod
    def get_or_create(symbol: str, session: Optional[Session] = None) -> Asset:
        """Return the asset for a symbol, creating it on first use."""
        def _get_or_create(sess: Session) -> Asset:
            asset = AssetRepository.get_by_symbol(symbol, session=sess)
            if asset is None:
                asset = AssetRepository.add(symbol, session=sess)
            return asset

        if session is not None:
            return _get_or_create(session)
        else:
            with Session(get_engine()) as session:
                return _get_or_create(session)
