"""
Transaction Repository - data access layer for the Transaction model.
The ledger is append-only: this repository exposes no update or delete.
"""

from typing import Optional, List
from sqlalchemy import func
from sqlmodel import Session, select

from models import Transaction


class TransactionRepository:
    """Repository for appending and reading ledger entries."""

    @staticmethod
    def add(transaction: Transaction, session: Session) -> Transaction:
        """
        Append a transaction to the ledger.

        Args:
            transaction: New Transaction (id and date filled in on flush)
            session: Active unit-of-work session

        Returns:
            The persisted Transaction with its generated id
        """
        session.add(transaction)
        session.flush()
        session.refresh(transaction)
        return transaction

    @staticmethod
    def list_by_user(
        user_id: str,
        session: Session,
        limit: Optional[int] = None
    ) -> List[Transaction]:
        """Retrieve a user's transactions, newest first."""
        statement = select(Transaction).where(
            Transaction.user_id == user_id
        ).order_by(Transaction.transaction_date.desc(), Transaction.id.desc())
        if limit is not None:
            statement = statement.limit(limit)
        return list(session.exec(statement).all())

    @staticmethod
    def list_for_replay(user_id: str, session: Session) -> List[Transaction]:
        """Retrieve a user's transactions in the order they were applied."""
        statement = select(Transaction).where(
            Transaction.user_id == user_id
        ).order_by(Transaction.transaction_date.asc(), Transaction.id.asc())
        return list(session.exec(statement).all())

    @staticmethod
    def count_by_user(user_id: str, session: Session) -> int:
        """Number of ledger entries a user has."""
        statement = select(func.count()).select_from(Transaction).where(
            Transaction.user_id == user_id
        )
        return session.exec(statement).one()
