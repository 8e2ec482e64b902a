"""
Weighted-average cost basis and P&L for a single asset.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from cryptofolio.errors import DataIntegrityError, ValidationError
from cryptofolio.services.common import (
    ZERO,
    CrossAssetPolicy,
    LedgerTransaction,
    normalize_symbol,
    optional_decimal,
)
from cryptofolio.services.payments import Redeployment

logger = logging.getLogger(__name__)


@dataclass
class AssetPosition:
    """Derived accounting figures for one asset. All money amounts are base fiat."""
    symbol: str
    holdings: Decimal = ZERO
    quantity_bought: Decimal = ZERO
    quantity_sold: Decimal = ZERO
    quantity_redeployed: Decimal = ZERO
    cost_quantity: Decimal = ZERO  # Units bought with fiat (the average-cost denominator)
    total_invested: Decimal = ZERO
    total_sold: Decimal = ZERO
    total_fees: Decimal = ZERO
    cross_asset_purchases: Decimal = ZERO  # Fiat-equivalent of buys funded by other assets
    realized_pnl: Decimal = ZERO
    transaction_count: int = 0
    current_price: Optional[Decimal] = None

    @property
    def average_cost(self) -> Decimal:
        """Total invested / units bought with fiat; zero when nothing was bought with fiat."""
        if self.cost_quantity == ZERO:
            return ZERO
        return self.total_invested / self.cost_quantity

    @property
    def net_invested(self) -> Decimal:
        return self.total_invested - self.total_sold

    @property
    def market_value(self) -> Optional[Decimal]:
        if self.current_price is None:
            return None
        return self.holdings * self.current_price

    @property
    def unrealized_pnl(self) -> Optional[Decimal]:
        if self.current_price is None:
            return None
        return (self.current_price - self.average_cost) * self.holdings

    @property
    def cost_of_holdings(self) -> Decimal:
        return self.average_cost * self.holdings

    @property
    def pnl_pct(self) -> Optional[Decimal]:
        """Unrealized P&L as a percentage of the cost of current holdings."""
        unrealized = self.unrealized_pnl
        cost = self.cost_of_holdings
        if unrealized is None or cost == ZERO:
            return None
        return unrealized / cost * 100


class CostBasisCalculator:
    """
    Replays an asset's transactions in chronological order.

    Average cost only moves on buys, so a partial sell leaves the average of the
    remaining units unchanged. Lot tracking (FIFO/LIFO) is not supported.
    """

    def __init__(self, policy: CrossAssetPolicy = CrossAssetPolicy.TRANSFER):
        self.policy = CrossAssetPolicy(policy)

    def calculate(
        self,
        symbol: str,
        transactions: Iterable[LedgerTransaction],
        redeployments: Sequence[Redeployment] = (),
        current_price: Optional[Decimal] = None,
    ) -> AssetPosition:
        """
        Calculate the position for one asset.

        Args:
            symbol: Asset symbol; transactions of other assets are ignored
            transactions: Ledger transactions (any order)
            redeployments: Implicit outflows where this asset funded another buy
            current_price: Current market price in base fiat, if known

        Returns:
            AssetPosition for the asset

        Raises:
            DataIntegrityError: if a sell or redeployment exceeds the quantity held
        """
        symbol = normalize_symbol(symbol)
        price = optional_decimal(current_price, "current_price")
        if price is not None and price < ZERO:
            raise ValidationError(f"Price for {symbol} must not be negative, got {price}")

        events = [tx for tx in transactions if tx.symbol == symbol]
        events.extend(r for r in redeployments if r.funding_symbol == symbol)
        events.sort(key=lambda event: event.sort_key)

        position = AssetPosition(symbol=symbol, current_price=price)
        for event in events:
            if isinstance(event, Redeployment):
                self._apply_redeployment(position, event)
            elif event.is_buy:
                self._apply_buy(position, event)
            else:
                self._apply_sell(position, event)

        return position

    def _apply_buy(self, position: AssetPosition, tx: LedgerTransaction) -> None:
        position.transaction_count += 1
        position.holdings += tx.quantity
        position.quantity_bought += tx.quantity
        position.total_fees += tx.fee

        if tx.payment_source is None or self.policy is CrossAssetPolicy.DISPOSAL:
            position.total_invested += tx.total_amount + tx.fee
            position.cost_quantity += tx.quantity
        else:
            position.cross_asset_purchases += tx.total_amount

    def _apply_sell(self, position: AssetPosition, tx: LedgerTransaction) -> None:
        if tx.payment_source is not None:
            raise DataIntegrityError(
                f"Sell of {tx.symbol} (transaction {tx.id}) carries a payment source {tx.payment_source}"
            )
        if tx.quantity > position.holdings:
            raise DataIntegrityError(
                f"Sell of {tx.quantity} {tx.symbol} on {tx.timestamp:%Y-%m-%d %H:%M} "
                f"exceeds holdings of {position.holdings}"
            )
        average_cost = position.average_cost
        proceeds = tx.total_amount - tx.fee

        position.transaction_count += 1
        position.holdings -= tx.quantity
        position.quantity_sold += tx.quantity
        position.total_sold += proceeds
        position.total_fees += tx.fee
        position.realized_pnl += proceeds - tx.quantity * average_cost

    def _apply_redeployment(self, position: AssetPosition, redeployment: Redeployment) -> None:
        if redeployment.quantity > position.holdings:
            raise DataIntegrityError(
                f"Paying {redeployment.quantity} {redeployment.funding_symbol} for "
                f"{redeployment.purchased_symbol} on {redeployment.timestamp:%Y-%m-%d %H:%M} "
                f"exceeds holdings of {position.holdings}"
            )
        average_cost = position.average_cost
        position.holdings -= redeployment.quantity
        position.quantity_redeployed += redeployment.quantity

        if self.policy is CrossAssetPolicy.DISPOSAL:
            position.total_sold += redeployment.amount
            position.realized_pnl += redeployment.amount - redeployment.quantity * average_cost
