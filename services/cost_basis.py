"""
Average-cost basis calculator.
Pure functions: no database access, no clock, no logging side effects.

Buys blend into a volume-weighted average price. Sells reduce quantity and
leave the average price of the remaining units unchanged. A position that
reaches zero ceases to exist.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple

from errors import InsufficientHoldingError, InvalidPriceError, InvalidQuantityError, ValidationError
from models import AssetType, TransactionType
from services.common import MAX_UNIT_VALUE, TradeOrder, normalize_symbol, quantize


@dataclass(frozen=True)
class Position:
    """Quantity and average cost of one holding."""
    quantity: Decimal
    average_price: Decimal

    @property
    def cost_basis(self) -> Decimal:
        return self.quantity * self.average_price


@dataclass(frozen=True)
class CostBasisResult:
    """
    Outcome of applying one transaction.
    position is None when the holding no longer exists; applied_quantity is
    the signed change in held quantity (+ for buys, - for sells).
    """
    position: Optional[Position]
    applied_quantity: Decimal


def apply_transaction(existing: Optional[Position], order: TradeOrder) -> CostBasisResult:
    """
    Derive the new holding state from the current one and an incoming order.

    Raises:
        InvalidQuantityError: quantity is not strictly positive, or a buy would
            grow the holding past the storable quantity
        InvalidPriceError: price is not strictly positive
        ValidationError: symbol is empty
        InsufficientHoldingError: sell with no holding, or more than is held
    """
    if order.quantity <= 0:
        raise InvalidQuantityError(order.quantity)
    if order.price_per_unit <= 0:
        raise InvalidPriceError(order.price_per_unit)
    if not order.symbol or not normalize_symbol(order.symbol):
        raise ValidationError({'symbol': "is required"})

    if order.transaction_type == TransactionType.BUY:
        if existing is None:
            return CostBasisResult(
                position=Position(order.quantity, order.price_per_unit),
                applied_quantity=order.quantity,
            )
        new_quantity = existing.quantity + order.quantity
        if new_quantity >= MAX_UNIT_VALUE:
            raise InvalidQuantityError(order.quantity, f"would raise the holding to {MAX_UNIT_VALUE} units or more")
        new_average = quantize(
            (existing.quantity * existing.average_price + order.total_amount) / new_quantity
        )
        return CostBasisResult(
            position=Position(new_quantity, new_average),
            applied_quantity=order.quantity,
        )

    # Sell
    if existing is None:
        raise InsufficientHoldingError(order.symbol, order.asset_type.value, order.quantity)
    if order.quantity > existing.quantity:
        raise InsufficientHoldingError(
            order.symbol, order.asset_type.value, order.quantity, existing.quantity
        )

    new_quantity = existing.quantity - order.quantity
    if new_quantity <= 0:
        return CostBasisResult(position=None, applied_quantity=-order.quantity)
    return CostBasisResult(
        position=Position(new_quantity, existing.average_price),
        applied_quantity=-order.quantity,
    )


def replay_transactions(transactions: Iterable) -> Dict[Tuple[str, str], Position]:
    """
    Rebuild holdings by folding ledger entries through apply_transaction.

    Args:
        transactions: Transaction rows (or objects with the same fields) in
            the order they were applied

    Returns:
        Mapping of (symbol, asset_type) to the resulting Position; fully
        liquidated holdings are absent
    """
    positions: Dict[Tuple[str, str], Position] = {}
    for tx in transactions:
        order = TradeOrder(
            user_id=tx.user_id,
            symbol=tx.symbol,
            asset_type=AssetType(tx.asset_type),
            transaction_type=TransactionType(tx.transaction_type),
            quantity=Decimal(tx.quantity),
            price_per_unit=Decimal(tx.price_per_unit),
        )
        key = (order.symbol, order.asset_type.value)
        result = apply_transaction(positions.get(key), order)
        if result.position is None:
            positions.pop(key, None)
        else:
            positions[key] = result.position
    return positions
