"""
Enumerations shared by the Holding and Transaction models.
"""

from enum import Enum


class AssetType(str, Enum):
    """Kind of instrument a holding tracks."""
    STOCK = "stock"
    CRYPTO = "crypto"


class TransactionType(str, Enum):
    """Direction of a ledger entry."""
    BUY = "buy"
    SELL = "sell"
