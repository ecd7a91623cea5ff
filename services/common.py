"""
Common utilities and shared functions.
Symbol normalization, decimal coercion and trade order validation.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_EVEN
from typing import Any, Dict, Optional, Type, TypeVar
from enum import Enum

from errors import InvalidPriceError, InvalidQuantityError, ValidationError
from models import AssetType, TransactionType

# Storage scale of quantities and prices (NUMERIC(20, 8))
DECIMAL_PLACES = 8
QUANTUM = Decimal(1).scaleb(-DECIMAL_PLACES)
# Quantities and prices must stay below 10^12 (12 integer digits)
MAX_UNIT_VALUE = Decimal(10) ** (20 - DECIMAL_PLACES)
# Transaction totals are NUMERIC(28, 8)
MAX_TOTAL_AMOUNT = Decimal(10) ** (28 - DECIMAL_PLACES)

MAX_USER_ID_LENGTH = 64
MAX_SYMBOL_LENGTH = 32

E = TypeVar("E", bound=Enum)


def normalize_symbol(symbol: str) -> str:
    """Strip whitespace and upper-case a symbol (e.g. " aapl " -> "AAPL")."""
    return symbol.strip().upper()


def normalize_user_id(user_id: Any) -> str:
    """Opaque user ids are compared as stripped strings (42 -> "42")."""
    return str(user_id).strip()


def quantize(value: Decimal) -> Decimal:
    """Round to storage scale using banker's rounding."""
    return value.quantize(QUANTUM, rounding=ROUND_HALF_EVEN)


def to_decimal(value: Any) -> Decimal:
    """
    Convert an input number to Decimal without passing through binary floats.
    Floats are converted via their shortest repr, so 0.1 becomes Decimal("0.1").

    Raises:
        ValueError: for booleans, non-numeric values, NaN and infinities
    """
    if isinstance(value, bool):
        raise ValueError("booleans are not numbers")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, int):
        result = Decimal(value)
    elif isinstance(value, float):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValueError(f"not a number: {value!r}")
    else:
        raise ValueError(f"unsupported type {type(value).__name__}")

    if not result.is_finite():
        raise ValueError("must be a finite number")
    return result


def decimal_places(value: Decimal) -> int:
    """Number of significant digits after the decimal point."""
    exponent = value.normalize().as_tuple().exponent
    return max(0, -exponent)


def parse_enum(enum_cls: Type[E], value: Any) -> E:
    """Parse an enum member from itself or its (case-insensitive) string value."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().lower())
        except ValueError:
            pass
    choices = ", ".join(member.value for member in enum_cls)
    raise ValueError(f"must be one of: {choices}")


@dataclass(frozen=True)
class TradeOrder:
    """
    A validated transaction request.
    Quantities and prices are Decimal and strictly positive.
    """
    user_id: str
    symbol: str
    asset_type: AssetType
    transaction_type: TransactionType
    quantity: Decimal
    price_per_unit: Decimal

    @property
    def total_amount(self) -> Decimal:
        """quantity * price_per_unit at storage scale."""
        return quantize(self.quantity * self.price_per_unit)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def validate_order(
    user_id: Any,
    symbol: Any,
    asset_type: Any,
    transaction_type: Any,
    quantity: Any,
    price_per_unit: Any
) -> TradeOrder:
    """
    Validate a raw transaction request.

    Missing and malformed fields are all reported together in one
    ValidationError. Well-formed but non-positive numbers raise
    InvalidQuantityError / InvalidPriceError.

    Returns:
        TradeOrder with normalized symbol, parsed enums and Decimal amounts
    """
    errors: Dict[str, str] = {}

    normalized_user: Optional[str] = None
    if _is_missing(user_id):
        errors['user_id'] = "is required"
    else:
        normalized_user = normalize_user_id(user_id)
        if len(normalized_user) > MAX_USER_ID_LENGTH:
            errors['user_id'] = f"must be at most {MAX_USER_ID_LENGTH} characters"

    normalized_symbol: Optional[str] = None
    if _is_missing(symbol):
        errors['symbol'] = "is required"
    elif not isinstance(symbol, str):
        errors['symbol'] = "must be a string"
    else:
        normalized_symbol = normalize_symbol(symbol)
        if len(normalized_symbol) > MAX_SYMBOL_LENGTH:
            errors['symbol'] = f"must be at most {MAX_SYMBOL_LENGTH} characters"

    parsed_asset_type: Optional[AssetType] = None
    if _is_missing(asset_type):
        errors['asset_type'] = "is required"
    else:
        try:
            parsed_asset_type = parse_enum(AssetType, asset_type)
        except ValueError as e:
            errors['asset_type'] = str(e)

    parsed_tx_type: Optional[TransactionType] = None
    if _is_missing(transaction_type):
        errors['transaction_type'] = "is required"
    else:
        try:
            parsed_tx_type = parse_enum(TransactionType, transaction_type)
        except ValueError as e:
            errors['transaction_type'] = str(e)

    amounts: Dict[str, Decimal] = {}
    for field, raw in (('quantity', quantity), ('price_per_unit', price_per_unit)):
        if _is_missing(raw):
            errors[field] = "is required"
            continue
        try:
            amounts[field] = to_decimal(raw)
        except ValueError as e:
            errors[field] = str(e)

    if errors:
        raise ValidationError(errors)

    qty = amounts['quantity']
    price = amounts['price_per_unit']
    if qty <= 0:
        raise InvalidQuantityError(quantity)
    if decimal_places(qty) > DECIMAL_PLACES:
        raise InvalidQuantityError(quantity, f"must have at most {DECIMAL_PLACES} decimal places")
    if qty >= MAX_UNIT_VALUE:
        raise InvalidQuantityError(quantity, f"must be less than {MAX_UNIT_VALUE}")
    if price <= 0:
        raise InvalidPriceError(price_per_unit)
    if decimal_places(price) > DECIMAL_PLACES:
        raise InvalidPriceError(price_per_unit, f"must have at most {DECIMAL_PLACES} decimal places")
    if price >= MAX_UNIT_VALUE:
        raise InvalidPriceError(price_per_unit, f"must be less than {MAX_UNIT_VALUE}")
    if qty * price >= MAX_TOTAL_AMOUNT:
        raise ValidationError({'total_amount': f"quantity * price_per_unit must be less than {MAX_TOTAL_AMOUNT}"})

    return TradeOrder(
        user_id=normalized_user,
        symbol=normalized_symbol,
        asset_type=parsed_asset_type,
        transaction_type=parsed_tx_type,
        quantity=qty,
        price_per_unit=price,
    )
