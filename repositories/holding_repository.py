"""
Holding Repository - data access layer for the Holding model.
All methods run inside a caller-supplied session so that a holding change
and its transaction row share one unit of work.
"""

from typing import Optional, List
from sqlmodel import Session, select

from models import Holding
from models.holding import utcnow


class HoldingRepository:
    """Repository for Holding reads and writes."""

    @staticmethod
    def get(
        user_id: str,
        symbol: str,
        asset_type: str,
        session: Session,
        for_update: bool = False
    ) -> Optional[Holding]:
        """
        Retrieve the holding for one (user, symbol, asset type).

        Args:
            user_id: Owning user
            symbol: Upper-case symbol
            asset_type: AssetType value
            session: Active session
            for_update: Lock the row until the unit of work ends

        Returns:
            Holding object or None if the user holds nothing
        """
        statement = select(Holding).where(
            Holding.user_id == user_id,
            Holding.symbol == symbol,
            Holding.asset_type == asset_type
        )
        if for_update:
            statement = statement.with_for_update()
        return session.exec(statement).first()

    @staticmethod
    def list_by_user(user_id: str, session: Session) -> List[Holding]:
        """Retrieve all holdings of a user, ordered by symbol."""
        statement = select(Holding).where(
            Holding.user_id == user_id
        ).order_by(Holding.symbol.asc(), Holding.asset_type.asc())
        return list(session.exec(statement).all())

    @staticmethod
    def save(holding: Holding, session: Session) -> Holding:
        """Insert or update a holding; flushed so constraint violations surface here."""
        holding.updated_at = utcnow()
        session.add(holding)
        session.flush()
        return holding

    @staticmethod
    def delete(holding: Holding, session: Session) -> None:
        """Remove a fully liquidated holding."""
        session.delete(holding)
        session.flush()
