"""
P2P trading service.

Validates off-exchange crypto/fiat trades (typically USDT against VND),
computes their spread against the market rate, and summarizes holdings and
P&L in the trade's fiat currency using the same weighted-average cost logic
as the transaction ledger.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Optional

from cryptofolio.config import get_settings
from cryptofolio.errors import MissingQuoteError, ValidationError
from cryptofolio.services.common import (
    ZERO,
    CrossAssetPolicy,
    LedgerTransaction,
    TransactionType,
    decimal_sum,
    normalize_symbol,
    optional_decimal,
    to_decimal,
)
from cryptofolio.services.cost_basis import CostBasisCalculator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class P2PTrade:
    """A P2P trade. Rates are fiat per crypto unit, fees are in fiat."""
    transaction_type: TransactionType
    crypto: str
    crypto_amount: Decimal
    fiat_currency: str
    fiat_amount: Decimal
    exchange_rate: Decimal
    timestamp: datetime
    market_rate: Optional[Decimal] = None
    spread_percent: Optional[Decimal] = None
    fee_amount: Optional[Decimal] = None
    fee_percent: Optional[Decimal] = None
    platform: Optional[str] = None
    counterparty: Optional[str] = None
    payment_method: Optional[str] = None
    bank_name: Optional[str] = None
    reference: Optional[str] = None
    notes: Optional[str] = None
    id: Optional[int] = field(default=None, compare=False)

    @property
    def is_buy(self) -> bool:
        return self.transaction_type is TransactionType.BUY

    @property
    def spread_cost(self) -> Decimal:
        """Fiat lost (or gained) against the market rate at trade time."""
        if self.market_rate is None:
            return ZERO
        return abs(self.crypto_amount * (self.exchange_rate - self.market_rate))

    @classmethod
    def from_record(cls, record: Any) -> "P2PTrade":
        """Create a P2PTrade from a stored P2PTransaction row."""
        return cls(
            id=record.id,
            transaction_type=TransactionType(record.transaction_type),
            crypto=record.crypto,
            crypto_amount=to_decimal(record.crypto_amount, "crypto_amount"),
            fiat_currency=record.fiat_currency,
            fiat_amount=to_decimal(record.fiat_amount, "fiat_amount"),
            exchange_rate=to_decimal(record.exchange_rate, "exchange_rate"),
            market_rate=optional_decimal(record.market_rate, "market_rate"),
            spread_percent=optional_decimal(record.spread_percent, "spread_percent"),
            fee_amount=optional_decimal(record.fee_amount, "fee_amount"),
            fee_percent=optional_decimal(record.fee_percent, "fee_percent"),
            platform=record.platform,
            counterparty=record.counterparty,
            payment_method=record.payment_method,
            bank_name=record.bank_name,
            reference=record.reference,
            notes=record.notes,
            timestamp=record.transaction_date,
        )


@dataclass(frozen=True)
class P2PSummary:
    """Holdings and P&L of one crypto/fiat pair, in the fiat currency."""
    crypto: str
    fiat_currency: str
    total_bought: Decimal
    total_sold: Decimal
    holdings: Decimal
    total_fiat_spent: Decimal  # Buys including fees
    total_fiat_received: Decimal  # Sells net of fees
    total_fees: Decimal
    total_spread: Decimal
    weighted_average_rate: Decimal
    market_rate: Optional[Decimal]
    current_value: Decimal
    cost_basis: Decimal
    unrealized_pnl: Decimal
    realized_pnl: Decimal
    trade_count: int

    @property
    def unrealized_pnl_percent(self) -> Decimal:
        if self.cost_basis <= ZERO:
            return ZERO
        return self.unrealized_pnl / self.cost_basis * 100

    @property
    def total_pnl(self) -> Decimal:
        return self.realized_pnl + self.unrealized_pnl

    @property
    def net_invested(self) -> Decimal:
        return self.total_fiat_spent - self.total_fiat_received


class P2PService:
    """Service for P2P trade validation, summaries and ledger conversion."""

    @staticmethod
    def prepare_trade(
        transaction_type: str,
        fiat_amount: Decimal,
        exchange_rate: Decimal,
        crypto_amount: Optional[Decimal] = None,
        crypto: Optional[str] = None,
        fiat_currency: Optional[str] = None,
        market_rate: Optional[Decimal] = None,
        fee_amount: Optional[Decimal] = None,
        fee_percent: Optional[Decimal] = None,
        timestamp: Optional[datetime] = None,
        **details
    ) -> P2PTrade:
        """
        Validate a P2P trade and derive its computed fields.

        The crypto amount is always recomputed as fiat_amount / exchange_rate.
        A supplied crypto_amount is only checked against it.

        Args:
            transaction_type: "buy" or "sell"
            fiat_amount: Fiat paid or received
            exchange_rate: Fiat per crypto unit
            crypto_amount: Crypto amount as entered, if any
            crypto: Crypto symbol (default: settings.p2p_default_crypto)
            fiat_currency: Fiat code (default: settings.p2p_default_fiat)
            market_rate: Market rate at trade time, for the spread
            fee_amount: Fee in fiat
            fee_percent: Fee as a percentage of fiat_amount, used when fee_amount is absent
            timestamp: Trade time (default: now)
            **details: platform, counterparty, payment_method, bank_name, reference, notes

        Returns:
            Validated P2PTrade

        Raises:
            ValidationError: on non-positive amounts or a crypto amount mismatch
        """
        settings = get_settings()
        try:
            trade_type = TransactionType(transaction_type)
        except ValueError:
            raise ValidationError(f"Unknown P2P transaction type {transaction_type!r}")

        fiat_amount = to_decimal(fiat_amount, "fiat_amount")
        exchange_rate = to_decimal(exchange_rate, "exchange_rate")
        if fiat_amount <= ZERO:
            raise ValidationError(f"Fiat amount must be positive, got {fiat_amount}")
        if exchange_rate <= ZERO:
            raise ValidationError(f"Exchange rate must be positive, got {exchange_rate}")

        computed = fiat_amount / exchange_rate
        entered = optional_decimal(crypto_amount, "crypto_amount")
        if entered is not None:
            if entered <= ZERO:
                raise ValidationError(f"Crypto amount must be positive, got {entered}")
            if abs(computed - entered) > settings.p2p_amount_tolerance:
                raise ValidationError(
                    f"Crypto amount {entered} does not match fiat amount / exchange rate = {computed}"
                )

        fee_amount = optional_decimal(fee_amount, "fee_amount")
        fee_percent = optional_decimal(fee_percent, "fee_percent")
        if fee_amount is None and fee_percent is not None:
            fee_amount = fiat_amount * fee_percent / 100
        if fee_amount is not None and fee_amount < ZERO:
            raise ValidationError(f"Fee must not be negative, got {fee_amount}")

        market_rate = optional_decimal(market_rate, "market_rate")
        spread_percent = None
        if market_rate is not None and market_rate > ZERO:
            # Positive spread means paying more than market on a buy, or receiving less on a sell
            if trade_type is TransactionType.BUY:
                spread_percent = (exchange_rate - market_rate) / market_rate * 100
            else:
                spread_percent = (market_rate - exchange_rate) / market_rate * 100

        unknown = set(details) - {"platform", "counterparty", "payment_method", "bank_name", "reference", "notes"}
        if unknown:
            raise ValidationError(f"Unknown P2P field(s): {', '.join(sorted(unknown))}")

        return P2PTrade(
            transaction_type=trade_type,
            crypto=normalize_symbol(crypto or settings.p2p_default_crypto),
            crypto_amount=computed,
            fiat_currency=normalize_symbol(fiat_currency or settings.p2p_default_fiat),
            fiat_amount=fiat_amount,
            exchange_rate=exchange_rate,
            market_rate=market_rate,
            spread_percent=spread_percent,
            fee_amount=fee_amount,
            fee_percent=fee_percent,
            timestamp=timestamp or datetime.now(),
            **details
        )

    @staticmethod
    def summarize(
        trades: Iterable[P2PTrade],
        crypto: Optional[str] = None,
        fiat_currency: Optional[str] = None,
        market_rate: Optional[Decimal] = None,
    ) -> P2PSummary:
        """
        Summarize the trades of one crypto/fiat pair.

        Args:
            trades: P2P trades; trades of other pairs are ignored
            crypto: Crypto symbol (default: settings.p2p_default_crypto)
            fiat_currency: Fiat code (default: settings.p2p_default_fiat)
            market_rate: Current market rate (fiat per crypto unit)

        Returns:
            P2PSummary

        Raises:
            MissingQuoteError: if crypto is held and no market rate is given
            DataIntegrityError: if sells exceed the crypto bought
        """
        settings = get_settings()
        crypto = normalize_symbol(crypto or settings.p2p_default_crypto)
        fiat_currency = normalize_symbol(fiat_currency or settings.p2p_default_fiat)
        market_rate = optional_decimal(market_rate, "market_rate")

        pair = [t for t in trades if t.crypto == crypto and t.fiat_currency == fiat_currency]
        ledger_view = [P2PService._as_fiat_transaction(t) for t in pair]
        position = CostBasisCalculator(CrossAssetPolicy.TRANSFER).calculate(crypto, ledger_view)

        if market_rate is None and position.holdings != ZERO:
            raise MissingQuoteError(
                f"No {crypto}/{fiat_currency} market rate to value {position.holdings} {crypto}",
                pair=(crypto, fiat_currency),
            )
        rate = market_rate if market_rate is not None else ZERO
        current_value = position.holdings * rate
        cost_basis = position.cost_of_holdings

        summary = P2PSummary(
            crypto=crypto,
            fiat_currency=fiat_currency,
            total_bought=position.quantity_bought,
            total_sold=position.quantity_sold,
            holdings=position.holdings,
            total_fiat_spent=position.total_invested,
            total_fiat_received=position.total_sold,
            total_fees=position.total_fees,
            total_spread=decimal_sum(t.spread_cost for t in pair),
            weighted_average_rate=position.average_cost,
            market_rate=market_rate,
            current_value=current_value,
            cost_basis=cost_basis,
            unrealized_pnl=current_value - cost_basis,
            realized_pnl=position.realized_pnl,
            trade_count=len(pair),
        )
        logger.info(
            f"P2P {crypto}/{fiat_currency}: {len(pair)} trades, holdings {summary.holdings}, "
            f"average rate {summary.weighted_average_rate}"
        )
        return summary

    @staticmethod
    def to_ledger_transaction(trade: P2PTrade, fiat_per_base: Optional[Decimal] = None) -> LedgerTransaction:
        """
        Convert a P2P trade into a base-currency ledger transaction.

        Args:
            trade: P2P trade
            fiat_per_base: Units of the trade's fiat per unit of base currency.
                Defaults to the trade's own exchange rate, i.e. the crypto is
                taken as pegged 1:1 to the base currency.

        Returns:
            LedgerTransaction for the crypto leg of the trade
        """
        fiat_per_base = trade.exchange_rate if fiat_per_base is None else to_decimal(fiat_per_base, "fiat_per_base")
        if fiat_per_base <= ZERO:
            raise ValidationError(f"fiat_per_base must be positive, got {fiat_per_base}")

        return LedgerTransaction(
            symbol=trade.crypto,
            transaction_type=trade.transaction_type,
            quantity=trade.crypto_amount,
            price_per_unit=trade.exchange_rate / fiat_per_base,
            fee=(trade.fee_amount or ZERO) / fiat_per_base,
            exchange=f"P2P-{trade.platform or 'Direct'}",
            notes=f"P2P {trade.transaction_type.value} at {trade.exchange_rate} {trade.fiat_currency}/{trade.crypto}",
            timestamp=trade.timestamp,
        )

    @staticmethod
    def record_trade(trade: P2PTrade) -> int:
        """Persist a prepared trade."""
        from cryptofolio.repositories import P2PRepository

        return P2PRepository.add_trade(trade)

    @staticmethod
    def get_summary(crypto: Optional[str] = None, fiat_currency: Optional[str] = None) -> P2PSummary:
        """Summarize stored trades against the latest stored market rate."""
        from cryptofolio.repositories import P2PRepository

        settings = get_settings()
        crypto = normalize_symbol(crypto or settings.p2p_default_crypto)
        fiat_currency = normalize_symbol(fiat_currency or settings.p2p_default_fiat)
        latest = P2PRepository.get_latest_market_rate(crypto, fiat_currency)
        return P2PService.summarize(
            P2PRepository.get_trades(crypto, fiat_currency),
            crypto,
            fiat_currency,
            latest.rate if latest is not None else None,
        )

    @staticmethod
    def _as_fiat_transaction(trade: P2PTrade) -> LedgerTransaction:
        # Priced in the trade's fiat so the calculator's averages come out in fiat per crypto unit
        return LedgerTransaction(
            symbol=trade.crypto,
            transaction_type=trade.transaction_type,
            quantity=trade.crypto_amount,
            price_per_unit=trade.exchange_rate,
            fee=trade.fee_amount or ZERO,
            timestamp=trade.timestamp,
            id=trade.id,
        )
