"""
Transaction Repository - data access layer for Transaction model.
Optimized with optional session parameter for transaction reuse.

Serves as the ledger's storage collaborator: rows go in and come out as
LedgerTransaction objects.
"""

from typing import Any, Dict, Optional, List
from datetime import datetime
from enum import Enum
from sqlmodel import Session, select

from cryptofolio.db_engine import get_engine
from cryptofolio.models import Asset, Transaction
from cryptofolio.repositories.asset_repository import AssetRepository
from cryptofolio.services.common import LedgerTransaction, normalize_symbol


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class TransactionRepository:
    """Repository for Transaction operations."""

    @staticmethod
    def insert(transaction: LedgerTransaction, session: Optional[Session] = None) -> int:
        """
        Store a ledger transaction, creating its asset on first use.

        Args:
            transaction: Validated ledger transaction
            session: Optional existing session for transaction reuse

        Returns:
            Id of the stored row
        """
        def _insert(sess: Session) -> int:
            try:
                asset = AssetRepository.get_or_create(transaction.symbol, session=sess)
                row = Transaction(
                    asset_id=asset.id,
                    transaction_type=transaction.transaction_type.value,
                    quantity=transaction.quantity,
                    price_per_unit=transaction.price_per_unit,
                    total_amount=transaction.total_amount,
                    fee=transaction.fee,
                    fee_currency=transaction.fee_currency.value,
                    fee_in_crypto=transaction.fee_in_crypto,
                    payment_source=transaction.payment_source,
                    payment_quantity=transaction.payment_quantity,
                    exchange=transaction.exchange,
                    notes=transaction.notes,
                    transaction_date=transaction.timestamp,
                )
                sess.add(row)
                sess.commit()
                sess.refresh(row)
            except Exception:
                sess.rollback()
                raise
            return row.id

        if session is not None:
            return _insert(session)
        else:
            with Session(get_engine()) as session:
                return _insert(session)

    @staticmethod
    def query(asset_symbol: str, session: Optional[Session] = None) -> List[LedgerTransaction]:
        """
        Retrieve all transactions of one asset, chronological.

        Args:
            asset_symbol: Coin symbol
            session: Optional existing session for transaction reuse

        Returns:
            List of LedgerTransaction objects
        """
        symbol = normalize_symbol(asset_symbol)

        def _query(sess: Session) -> List[LedgerTransaction]:
            statement = (
                select(Transaction, Asset)
                .join(Asset, Transaction.asset_id == Asset.id)
                .where(Asset.symbol == symbol)
                .order_by(Transaction.transaction_date, Transaction.id)
            )
            return [LedgerTransaction.from_record(row, asset.symbol) for row, asset in sess.exec(statement)]

        if session is not None:
            return _query(session)
        else:
            with Session(get_engine()) as session:
                return _query(session)

    @staticmethod
    def get_all(session: Optional[Session] = None) -> List[LedgerTransaction]:
        """
        Retrieve every transaction, chronological.

        Args:
            session: Optional existing session for transaction reuse

        Returns:
            List of LedgerTransaction objects
        """
        def _get_all(sess: Session) -> List[LedgerTransaction]:
            statement = (
                select(Transaction, Asset)
                .join(Asset, Transaction.asset_id == Asset.id)
                .order_by(Transaction.transaction_date, Transaction.id)
            )
            return [LedgerTransaction.from_record(row, asset.symbol) for row, asset in sess.exec(statement)]

        if session is not None:
            return _get_all(session)
        else:
            with Session(get_engine()) as session:
                return _get_all(session)

    @staticmethod
    def get_by_id(transaction_id: int, session: Optional[Session] = None) -> Optional[LedgerTransaction]:
        """
        Retrieve a transaction by its ID.

        Args:
            transaction_id: Transaction ID to look up
            session: Optional existing session for transaction reuse

        Returns:
            LedgerTransaction or None if not found
        """
        def _get_by_id(sess: Session) -> Optional[LedgerTransaction]:
            row = sess.get(Transaction, transaction_id)
            if row is None:
                return None
            asset = sess.get(Asset, row.asset_id)
            return LedgerTransaction.from_record(row, asset.symbol)

        if session is not None:
            return _get_by_id(session)
        else:
            with Session(get_engine()) as session:
                return _get_by_id(session)

    @staticmethod
    def update(
        transaction_id: int,
        fields: Dict[str, Any],
        session: Optional[Session] = None
    ) -> Optional[LedgerTransaction]:
        """
        Apply a correction to a stored transaction.
        Only the given fields change; total_amount is kept in step.

        Args:
            transaction_id: Transaction ID to update
            fields: Ledger field name -> new value
            session: Optional existing session for transaction reuse

        Returns:
            Updated LedgerTransaction or None if not found
        """
        def _update(sess: Session) -> Optional[LedgerTransaction]:
            row = sess.get(Transaction, transaction_id)
            if row is None:
                return None
            try:
                for name, value in fields.items():
                    column = "transaction_date" if name == "timestamp" else name
                    setattr(row, column, _column_value(value))
                row.total_amount = row.quantity * row.price_per_unit
                row.updated_at = datetime.now()
                sess.add(row)
                sess.commit()
                sess.refresh(row)
            except Exception:
                sess.rollback()
                raise
            asset = sess.get(Asset, row.asset_id)
            return LedgerTransaction.from_record(row, asset.symbol)

        if session is not None:
            return _update(session)
        else:
            with Session(get_engine()) as session:
                return _update(session)
