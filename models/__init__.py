"""
Database models for the holdings ledger.
All SQLModel table definitions are centralized here.
"""

from models.enums import AssetType, TransactionType
from models.holding import Holding
from models.transaction import Transaction

__all__ = [
    'AssetType',
    'TransactionType',
    'Holding',
    'Transaction',
]
