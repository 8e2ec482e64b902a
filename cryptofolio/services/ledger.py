"""
Append-only transaction ledger.
Validates transactions and enforces holdings integrity at write time, optionally
persisting through a storage collaborator (see TransactionRepository).
"""

import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional

from cryptofolio.config import get_settings
from cryptofolio.errors import ValidationError
from cryptofolio.services.common import (
    ZERO,
    CrossAssetPolicy,
    FeeCurrency,
    LedgerTransaction,
    chronological,
    normalize_symbol,
)
from cryptofolio.services.cost_basis import CostBasisCalculator
from cryptofolio.services.payments import CrossAssetPaymentResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Correction:
    """Administrative rewrite of a stored transaction."""
    transaction_id: int
    fields: Dict[str, Any]
    previous: LedgerTransaction


class TransactionLedger:
    """
    In-memory ledger of buy/sell transactions.

    When a storage collaborator is given, ids come from `storage.insert` and
    corrections go through `storage.update`. Every write replays the affected
    assets first, so a ledger never accepts a sell or a cross-asset payment
    that its holdings cannot cover.
    """

    EDITABLE_FIELDS = frozenset({
        "transaction_type",
        "quantity",
        "price_per_unit",
        "fee",
        "fee_currency",
        "fee_in_crypto",
        "payment_source",
        "payment_quantity",
        "exchange",
        "notes",
        "timestamp",
    })

    def __init__(
        self,
        storage: Any = None,
        policy: Optional[CrossAssetPolicy] = None,
        stablecoins: Optional[Iterable[str]] = None,
        base_currency: Optional[str] = None,
    ):
        settings = get_settings()
        self._storage = storage
        self.policy = CrossAssetPolicy(policy or settings.cross_asset_policy)
        self.base_currency = normalize_symbol(base_currency or settings.base_currency)
        coins = settings.stablecoins if stablecoins is None else stablecoins
        self.stablecoins = frozenset(normalize_symbol(s) for s in coins)
        # Stablecoins only trade 1:1 with the base fiat when that fiat is USD
        pegged = self.stablecoins if self.base_currency == "USD" else ()
        self.resolver = CrossAssetPaymentResolver(pegged)
        self.calculator = CostBasisCalculator(self.policy)
        self.corrections: List[Correction] = []
        self._transactions: List[LedgerTransaction] = []
        self._next_id = 1

    @classmethod
    def load(cls, storage: Any, **kwargs) -> "TransactionLedger":
        """
        Build a ledger from everything the storage collaborator holds.
        Stored rows are taken as-is; inconsistencies surface when positions are calculated.
        """
        ledger = cls(storage=storage, **kwargs)
        for tx in storage.get_all():
            ledger._transactions.append(tx)
            if tx.id is not None:
                ledger._next_id = max(ledger._next_id, tx.id + 1)
        logger.info(f"Loaded {len(ledger._transactions)} transactions into ledger")
        return ledger

    def __len__(self) -> int:
        return len(self._transactions)

    # ==================== Writes ====================

    def record(self, transaction: LedgerTransaction) -> int:
        """
        Validate and append a transaction.

        Args:
            transaction: Transaction to record; any id on it is ignored

        Returns:
            Id assigned to the transaction

        Raises:
            ValidationError: if the transaction is malformed
            DataIntegrityError: if it would drive holdings negative
        """
        tx = self._normalize(replace(transaction, id=self._next_id))
        self._validate(tx)
        self._check_integrity(self._transactions + [tx], self._affected_symbols(tx))

        if self._storage is not None:
            transaction_id = self._storage.insert(replace(tx, id=None))
        else:
            transaction_id = self._next_id
        self._next_id = max(self._next_id, transaction_id) + 1

        tx = replace(tx, id=transaction_id)
        self._transactions.append(tx)
        logger.info(
            f"Recorded {tx.transaction_type.value} of {tx.quantity} {tx.symbol} @ {tx.price_per_unit}"
            + (f" paid with {tx.payment_source}" if tx.payment_source else "")
            + f" (id={transaction_id})"
        )
        return transaction_id

    def correct(self, transaction_id: int, fields: Dict[str, Any]) -> LedgerTransaction:
        """
        Rewrite a stored transaction as an explicit administrative operation.

        The corrected record is validated and integrity-checked like a new one.

        Args:
            transaction_id: Id of the transaction to correct
            fields: Field name -> new value; only EDITABLE_FIELDS are accepted

        Returns:
            The corrected transaction
        """
        if not fields:
            raise ValidationError("A correction needs at least one field")
        unknown = set(fields) - self.EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot correct field(s): {', '.join(sorted(unknown))}")

        index, previous = self._find(transaction_id)
        corrected = replace(previous, **fields)
        if corrected.fee_currency is FeeCurrency.CRYPTO and "fee" in fields:
            corrected = replace(corrected, fee_in_crypto=corrected.fee)
        corrected = self._normalize(corrected)
        self._validate(corrected)

        candidate = list(self._transactions)
        candidate[index] = corrected
        affected = self._affected_symbols(previous) | self._affected_symbols(corrected)
        self._check_integrity(candidate, affected)

        if self._storage is not None:
            self._storage.update(transaction_id, self._changes(previous, corrected))
        self._transactions[index] = corrected
        self.corrections.append(Correction(transaction_id, dict(fields), previous))
        logger.info(f"Corrected transaction {transaction_id}: {sorted(fields)}")
        return corrected

    # ==================== Reads ====================

    def get(self, transaction_id: int) -> LedgerTransaction:
        return self._find(transaction_id)[1]

    def list_by_asset(self, symbol: str) -> List[LedgerTransaction]:
        """Transactions of one asset, chronological with ties in insertion order."""
        symbol = normalize_symbol(symbol)
        return chronological(tx for tx in self._transactions if tx.symbol == symbol)

    def all(self) -> List[LedgerTransaction]:
        return chronological(self._transactions)

    def symbols(self) -> List[str]:
        """Every asset symbol the ledger touches, including funding assets."""
        seen: Dict[str, None] = {}
        for tx in self.all():
            seen.setdefault(tx.symbol)
            if tx.payment_source:
                seen.setdefault(tx.payment_source)
        return list(seen)

    # ==================== Internals ====================

    def _find(self, transaction_id: int):
        for index, tx in enumerate(self._transactions):
            if tx.id == transaction_id:
                return index, tx
        raise ValidationError(f"Transaction {transaction_id} not found")

    @staticmethod
    def _normalize(tx: LedgerTransaction) -> LedgerTransaction:
        """Store fees in base fiat; a fee entered in crypto is converted at the transaction price."""
        if tx.fee_currency is FeeCurrency.CRYPTO:
            fee_in_crypto = tx.fee_in_crypto if tx.fee_in_crypto is not None else tx.fee
            return replace(tx, fee_in_crypto=fee_in_crypto, fee=fee_in_crypto * tx.price_per_unit)
        if tx.fee_in_crypto is not None:
            return replace(tx, fee_in_crypto=None)
        return tx

    def _validate(self, tx: LedgerTransaction) -> None:
        if tx.quantity <= ZERO:
            raise ValidationError(f"Quantity must be positive, got {tx.quantity}")
        if tx.price_per_unit < ZERO:
            raise ValidationError(f"Price per unit must not be negative, got {tx.price_per_unit}")
        if tx.fee < ZERO or (tx.fee_in_crypto is not None and tx.fee_in_crypto < ZERO):
            raise ValidationError(f"Fee must not be negative, got {tx.fee}")
        if tx.payment_source is not None:
            if tx.is_sell:
                raise ValidationError("Only buys can be funded by another asset")
            if tx.payment_source == tx.symbol:
                raise ValidationError(f"{tx.symbol} cannot fund its own purchase")
        if tx.payment_quantity is not None:
            if tx.payment_source is None:
                raise ValidationError("payment_quantity requires a payment_source")
            if tx.payment_quantity <= ZERO:
                raise ValidationError(f"Payment quantity must be positive, got {tx.payment_quantity}")
        if tx.is_cross_asset:
            # Raises when a non-pegged funding asset has no payment_quantity
            self.resolver.spent_quantity(tx)

    def _check_integrity(self, transactions: List[LedgerTransaction], symbols: Iterable[str]) -> None:
        resolution = self.resolver.resolve(transactions)
        for symbol in symbols:
            self.calculator.calculate(symbol, transactions, resolution.for_asset(symbol))

    @staticmethod
    def _affected_symbols(tx: LedgerTransaction) -> set:
        symbols = {tx.symbol}
        if tx.payment_source:
            symbols.add(tx.payment_source)
        return symbols

    def _changes(self, previous: LedgerTransaction, corrected: LedgerTransaction) -> Dict[str, Any]:
        return {
            name: getattr(corrected, name)
            for name in sorted(self.EDITABLE_FIELDS)
            if getattr(corrected, name) != getattr(previous, name)
        }
