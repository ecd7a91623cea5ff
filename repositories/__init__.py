"""
Repositories package for the holdings ledger.
Provides data access layer for all database operations.
"""

from repositories.holding_repository import HoldingRepository
from repositories.transaction_repository import TransactionRepository

__all__ = [
    'HoldingRepository',
    'TransactionRepository',
]
