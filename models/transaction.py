"""
Transaction model - an immutable buy/sell entry in the ledger.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import Index
from sqlmodel import SQLModel, Field

from models.holding import utcnow
from models.types import LedgerDecimal


class Transaction(SQLModel, table=True):
    """Represents a buy/sell transaction. Never updated or deleted once written."""
    __tablename__ = "transactions"
    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "transaction_date"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(max_length=64)
    symbol: str = Field(max_length=32)
    asset_type: str = Field(max_length=16)  # "stock" or "crypto"
    transaction_type: str = Field(max_length=8)  # "buy" or "sell"
    quantity: Decimal = Field(sa_type=LedgerDecimal(20, 8), max_digits=20, decimal_places=8)
    price_per_unit: Decimal = Field(sa_type=LedgerDecimal(20, 8), max_digits=20, decimal_places=8)
    total_amount: Decimal = Field(sa_type=LedgerDecimal(28, 8), max_digits=28, decimal_places=8)  # quantity * price_per_unit
    transaction_date: datetime = Field(default_factory=utcnow)
