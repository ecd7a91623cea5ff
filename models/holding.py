"""
Holding model - the derived position a user holds in one instrument.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field

from models.types import LedgerDecimal


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Holding(SQLModel, table=True):
    """
    Aggregate of all transactions for one (user, symbol, asset type).
    A row exists only while quantity is strictly positive.
    """
    __tablename__ = "holdings"
    __table_args__ = (
        UniqueConstraint("user_id", "symbol", "asset_type", name="uq_holdings_user_symbol_type"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(index=True, max_length=64)
    symbol: str = Field(max_length=32)  # upper-case, e.g. "AAPL", "BTC"
    asset_type: str = Field(max_length=16)  # AssetType value
    quantity: Decimal = Field(sa_type=LedgerDecimal(20, 8), max_digits=20, decimal_places=8)
    average_price: Decimal = Field(sa_type=LedgerDecimal(20, 8), max_digits=20, decimal_places=8)  # USD per unit
    updated_at: datetime = Field(default_factory=utcnow)
