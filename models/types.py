"""
Column types shared by the ledger tables.
"""

from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator


class LedgerDecimal(TypeDecorator):
    """
    Exact fixed-point column for quantities, prices and amounts.

    Server databases get NUMERIC(precision, scale). SQLite has no exact
    numeric storage, so there the value is kept as its decimal text at the
    column's scale and parsed back into a Decimal on load.
    """

    impl = Numeric
    cache_ok = True

    def __init__(self, precision: int = 20, scale: int = 8):
        super().__init__(precision=precision, scale=scale, asdecimal=True)
        self.precision = precision
        self.scale = scale

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            # Sign and decimal point on top of the digits
            return dialect.type_descriptor(String(self.precision + 2))
        return dialect.type_descriptor(Numeric(self.precision, self.scale, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        value = Decimal(value)
        if dialect.name == "sqlite":
            return format(value.quantize(Decimal(1).scaleb(-self.scale)), "f")
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, Decimal):
            return value
        return Decimal(str(value))
