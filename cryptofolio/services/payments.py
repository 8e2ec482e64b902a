"""
Cross-asset payment resolution.

Detects buys funded by spending another held asset (typically USDT) and turns
each into an implicit outflow of the funding asset, so that the capital is
counted once: when the funding asset was originally bought with fiat.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from cryptofolio.errors import ValidationError
from cryptofolio.services.common import ZERO, LedgerTransaction, normalize_symbol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Redeployment:
    """Units of a funding asset spent to buy another asset."""
    funding_symbol: str
    purchased_symbol: str
    quantity: Decimal  # In units of the funding asset
    amount: Decimal  # Fiat-equivalent of the purchase, in base fiat
    timestamp: datetime
    transaction_id: Optional[int] = None

    @property
    def sort_key(self) -> tuple:
        return (self.timestamp, self.transaction_id if self.transaction_id is not None else 0)


@dataclass
class PaymentResolution:
    """All redeployments found in a set of transactions."""
    redeployments: List[Redeployment] = field(default_factory=list)
    by_funding_asset: Dict[str, Decimal] = field(default_factory=OrderedDict)

    @property
    def cross_asset_payments_total(self) -> Decimal:
        return sum(self.by_funding_asset.values(), ZERO)

    @property
    def usdt_used_for_payments(self) -> Decimal:
        return self.by_funding_asset.get("USDT", ZERO)

    def for_asset(self, symbol: str) -> List[Redeployment]:
        """Redeployments that draw down the given funding asset."""
        symbol = normalize_symbol(symbol)
        return [r for r in self.redeployments if r.funding_symbol == symbol]

    def funding_symbols(self) -> List[str]:
        return list(self.by_funding_asset.keys())


class CrossAssetPaymentResolver:
    """
    Builds the implicit outflows implied by cross-asset buys.

    Assets in `pegged_symbols` trade 1:1 with the base fiat (stablecoins against
    USD), so the spent quantity defaults to the purchase's fiat amount. Any other
    funding asset needs an explicit `payment_quantity`.
    """

    def __init__(self, pegged_symbols: Optional[Iterable[str]] = None):
        self.pegged_symbols = {normalize_symbol(s) for s in (pegged_symbols or ())}

    def spent_quantity(self, transaction: LedgerTransaction) -> Decimal:
        """
        Units of the funding asset a cross-asset buy consumed.

        Raises:
            ValidationError: if the funding asset is not pegged and no
                payment_quantity was recorded
        """
        if transaction.payment_quantity is not None:
            return transaction.payment_quantity
        if transaction.payment_source in self.pegged_symbols:
            return transaction.total_amount
        raise ValidationError(
            f"Buy of {transaction.symbol} funded with {transaction.payment_source} "
            f"needs a payment_quantity: {transaction.payment_source} is not pegged to the base currency"
        )

    def resolve(self, transactions: Iterable[LedgerTransaction]) -> PaymentResolution:
        """
        Collect every cross-asset buy as a Redeployment.

        Args:
            transactions: Ledger transactions in any order

        Returns:
            PaymentResolution with the redeployments in chronological order and
            the fiat-equivalent total per funding asset
        """
        resolution = PaymentResolution()
        for tx in sorted(transactions, key=lambda t: t.sort_key):
            if not tx.is_cross_asset:
                continue
            redeployment = Redeployment(
                funding_symbol=tx.payment_source,
                purchased_symbol=tx.symbol,
                quantity=self.spent_quantity(tx),
                amount=tx.total_amount,
                timestamp=tx.timestamp,
                transaction_id=tx.id,
            )
            resolution.redeployments.append(redeployment)
            resolution.by_funding_asset[tx.payment_source] = (
                resolution.by_funding_asset.get(tx.payment_source, ZERO) + redeployment.amount
            )
            logger.debug(
                f"Redeployed {redeployment.quantity} {redeployment.funding_symbol} "
                f"into {tx.quantity} {tx.symbol} ({redeployment.amount} fiat-equivalent)"
            )
        return resolution
