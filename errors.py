"""
Error taxonomy for the holdings ledger.
Every error carries its kind plus the offending fields so a caller
(e.g. an HTTP layer) can map it to a meaningful response.
"""

from decimal import Decimal
from typing import Any, Dict, Optional


class LedgerError(Exception):
    """Base class for all ledger errors."""

    kind = "ledger_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def details(self) -> Dict[str, Any]:
        return {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the error for an API response body."""
        payload = {'error': self.kind, 'message': self.message}
        payload.update(self.details())
        return payload


class ValidationError(LedgerError):
    """One or more required fields are missing or malformed."""

    kind = "validation_error"

    def __init__(self, errors: Dict[str, str]):
        self.errors = dict(errors)
        listed = "; ".join(f"{field}: {reason}" for field, reason in self.errors.items())
        super().__init__(f"Invalid transaction request ({listed})")

    def details(self) -> Dict[str, Any]:
        return {'fields': dict(self.errors)}


class InvalidQuantityError(ValidationError):
    """Quantity is zero, negative or not representable."""

    kind = "invalid_quantity"

    def __init__(self, value: Any, reason: str = "must be greater than zero"):
        self.value = value
        super().__init__({'quantity': f"{reason} (got {value!r})"})


class InvalidPriceError(ValidationError):
    """Price per unit is zero, negative or not representable."""

    kind = "invalid_price"

    def __init__(self, value: Any, reason: str = "must be greater than zero"):
        self.value = value
        super().__init__({'price_per_unit': f"{reason} (got {value!r})"})


class InsufficientHoldingError(LedgerError):
    """A sell exceeds (or has no) existing holding."""

    kind = "insufficient_holding"

    def __init__(self, symbol: str, asset_type: str, requested: Decimal,
                 available: Optional[Decimal] = None):
        self.symbol = symbol
        self.asset_type = asset_type
        self.requested = requested
        self.available = available if available is not None else Decimal("0")
        if available is None:
            message = f"Cannot sell {requested} {symbol} ({asset_type}): no holding exists"
        else:
            message = (
                f"Cannot sell {requested} {symbol} ({asset_type}): "
                f"only {available} held"
            )
        super().__init__(message)

    def details(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'asset_type': self.asset_type,
            'requested': str(self.requested),
            'available': str(self.available),
        }


class PersistenceError(LedgerError):
    """The store is unavailable or a unit of work failed to commit."""

    kind = "persistence_error"


class ConcurrentModificationError(PersistenceError):
    """A concurrent writer created the same holding first."""

    kind = "concurrent_modification"
