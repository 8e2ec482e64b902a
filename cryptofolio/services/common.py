"""
Common domain types and helpers shared by the accounting services.
Symbol normalization, decimal coercion, and the immutable ledger transaction.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Optional

from cryptofolio.errors import ValidationError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class TransactionType(str, Enum):
    BUY = "buy"
    SELL = "sell"


class FeeCurrency(str, Enum):
    """Currency a fee was entered in. Stored fees are always base fiat."""
    FIAT = "USD"
    CRYPTO = "CRYPTO"


class CrossAssetPolicy(str, Enum):
    """
    How spending one held asset to buy another is accounted for.

    TRANSFER: capital redeployment. The funding asset's holdings shrink but no
    disposal is realized, and the purchased asset carries no invested capital.
    DISPOSAL: the spend is a sale of the funding asset at the purchase's
    fiat-equivalent amount, and the purchased asset takes that amount as cost.
    """
    TRANSFER = "transfer"
    DISPOSAL = "disposal"


class PrecisionClass(str, Enum):
    HIGH = "high"  # BTC, ETH, ... quoted to 8 decimals
    STABLE = "stable"  # USDT, USDC, ... quoted to 2 decimals


def normalize_symbol(symbol: Optional[str]) -> str:
    """Upper-case and strip an asset or currency symbol; reject empty values."""
    if symbol is None or not str(symbol).strip():
        raise ValidationError("Symbol must be a non-empty string")
    return str(symbol).strip().upper()


def to_decimal(value: Any, field_name: str = "value") -> Decimal:
    """
    Coerce a number into a Decimal.

    Floats go through their string form so that 0.1 becomes Decimal("0.1")
    rather than its binary expansion.

    Raises:
        ValidationError: if the value is missing or not numeric
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number, got {value!r}")
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(value)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError(f"{field_name} must be a number, got {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be finite, got {value!r}")
    return result


def optional_decimal(value: Any, field_name: str = "value") -> Optional[Decimal]:
    return None if value is None else to_decimal(value, field_name)


def decimal_sum(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


@dataclass(frozen=True)
class LedgerTransaction:
    """
    A single buy or sell of one asset.

    Amounts are in the base fiat currency. `payment_source` names another asset
    that funded a buy (None means fiat); `payment_quantity` is how many units of
    that asset were spent.
    """
    symbol: str
    transaction_type: TransactionType
    quantity: Decimal
    price_per_unit: Decimal
    timestamp: datetime
    fee: Decimal = ZERO
    fee_currency: FeeCurrency = FeeCurrency.FIAT
    fee_in_crypto: Optional[Decimal] = None
    payment_source: Optional[str] = None
    payment_quantity: Optional[Decimal] = None
    exchange: Optional[str] = None
    notes: Optional[str] = None
    id: Optional[int] = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "symbol", normalize_symbol(self.symbol))
        try:
            object.__setattr__(self, "transaction_type", TransactionType(self.transaction_type))
        except ValueError:
            raise ValidationError(f"Unknown transaction type {self.transaction_type!r}")
        try:
            object.__setattr__(self, "fee_currency", FeeCurrency(self.fee_currency))
        except ValueError:
            raise ValidationError(f"Unknown fee currency {self.fee_currency!r}")
        object.__setattr__(self, "quantity", to_decimal(self.quantity, "quantity"))
        object.__setattr__(self, "price_per_unit", to_decimal(self.price_per_unit, "price_per_unit"))
        object.__setattr__(self, "fee", to_decimal(self.fee if self.fee is not None else ZERO, "fee"))
        object.__setattr__(self, "fee_in_crypto", optional_decimal(self.fee_in_crypto, "fee_in_crypto"))
        object.__setattr__(self, "payment_quantity", optional_decimal(self.payment_quantity, "payment_quantity"))
        if self.payment_source is not None:
            object.__setattr__(self, "payment_source", normalize_symbol(self.payment_source))
        if not isinstance(self.timestamp, datetime):
            raise ValidationError(f"timestamp must be a datetime, got {self.timestamp!r}")

    @property
    def total_amount(self) -> Decimal:
        """quantity x price_per_unit, in base fiat."""
        return self.quantity * self.price_per_unit

    @property
    def is_buy(self) -> bool:
        return self.transaction_type is TransactionType.BUY

    @property
    def is_sell(self) -> bool:
        return self.transaction_type is TransactionType.SELL

    @property
    def is_cross_asset(self) -> bool:
        """True for a buy funded by another held asset rather than fiat."""
        return self.is_buy and self.payment_source is not None

    @property
    def sort_key(self) -> tuple:
        return (self.timestamp, self.id if self.id is not None else 0)

    @classmethod
    def from_record(cls, record: Any, symbol: str) -> "LedgerTransaction":
        """
        Create a LedgerTransaction from a stored Transaction row.

        Args:
            record: Transaction model instance
            symbol: Symbol of the asset the row belongs to

        Returns:
            LedgerTransaction populated from the row
        """
        return cls(
            id=record.id,
            symbol=symbol,
            transaction_type=record.transaction_type,
            quantity=record.quantity,
            price_per_unit=record.price_per_unit,
            fee=record.fee if record.fee is not None else ZERO,
            fee_currency=record.fee_currency or FeeCurrency.FIAT,
            fee_in_crypto=record.fee_in_crypto,
            payment_source=record.payment_source,
            payment_quantity=record.payment_quantity,
            exchange=record.exchange,
            notes=record.notes,
            timestamp=record.transaction_date,
        )


def chronological(transactions: Iterable[LedgerTransaction]) -> list:
    """Order transactions by timestamp, ties broken by id (insertion order)."""
    return sorted(transactions, key=lambda tx: tx.sort_key)
