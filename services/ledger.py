"""
Transaction processor.
Records a buy/sell and keeps the derived holding consistent with the ledger
in a single atomic unit of work.
Enhanced with tenacity to re-run a unit of work that lost a first-buy race.
"""

import logging
from decimal import Decimal
from typing import Any, Optional

from tenacity import Retrying, stop_after_attempt, wait_exponential, retry_if_exception_type, before_sleep_log

from config import Settings, get_settings
from db_engine import LedgerStore
from errors import ConcurrentModificationError
from models import Holding, Transaction
from repositories import HoldingRepository, TransactionRepository
from services.common import TradeOrder, validate_order
from services.cost_basis import Position, apply_transaction

logger = logging.getLogger(__name__)


class TransactionProcessor:
    """
    Service for recording transactions against the ledger store.

    Same-holding writes are serialized by the store: SELECT ... FOR UPDATE on
    server databases, BEGIN IMMEDIATE on SQLite. Two concurrent first buys of
    a fresh holding collide on the unique constraint instead; the loser's unit
    of work is rolled back in full and run again.
    """

    def __init__(self, store: LedgerStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or get_settings()

    def record_transaction(
        self,
        user_id: Any,
        symbol: Any,
        asset_type: Any,
        transaction_type: Any,
        quantity: Any,
        price_per_unit: Any
    ) -> Transaction:
        """
        Validate and atomically record a transaction.

        Args:
            user_id: Authenticated user id
            symbol: Instrument symbol (case-insensitive)
            asset_type: "stock" or "crypto"
            transaction_type: "buy" or "sell"
            quantity: Units traded (> 0)
            price_per_unit: Unit price in USD (> 0)

        Returns:
            The persisted Transaction, including generated id and timestamp

        Raises:
            ValidationError: missing/malformed input (nothing written)
            InsufficientHoldingError: sell without enough holding (nothing written)
            PersistenceError: store failure (nothing written)
        """
        order = validate_order(user_id, symbol, asset_type, transaction_type, quantity, price_per_unit)

        retrying = Retrying(
            stop=stop_after_attempt(max(1, self.settings.conflict_retry_attempts)),
            wait=wait_exponential(multiplier=self.settings.conflict_retry_wait_seconds, max=1),
            retry=retry_if_exception_type(ConcurrentModificationError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True
        )
        transaction = retrying(self._apply_order, order)

        logger.info(
            f"Recorded {order.transaction_type.value} of {order.quantity} {order.symbol} "
            f"({order.asset_type.value}) @ {order.price_per_unit} for user {order.user_id} "
            f"as transaction {transaction.id}"
        )
        return transaction

    def _apply_order(self, order: TradeOrder) -> Transaction:
        """One attempt at the unit of work: lock, compute, append, persist."""
        with self.store.unit_of_work() as session:
            holding = HoldingRepository.get(
                order.user_id,
                order.symbol,
                order.asset_type.value,
                session=session,
                for_update=True
            )
            existing = None
            if holding is not None:
                existing = Position(Decimal(holding.quantity), Decimal(holding.average_price))

            result = apply_transaction(existing, order)

            transaction = TransactionRepository.add(
                Transaction(
                    user_id=order.user_id,
                    symbol=order.symbol,
                    asset_type=order.asset_type.value,
                    transaction_type=order.transaction_type.value,
                    quantity=order.quantity,
                    price_per_unit=order.price_per_unit,
                    total_amount=order.total_amount,
                ),
                session=session
            )

            if result.position is None:
                if holding is not None:
                    HoldingRepository.delete(holding, session=session)
                    logger.info(f"Holding {order.symbol} ({order.asset_type.value}) closed for user {order.user_id}")
            elif holding is None:
                HoldingRepository.save(
                    Holding(
                        user_id=order.user_id,
                        symbol=order.symbol,
                        asset_type=order.asset_type.value,
                        quantity=result.position.quantity,
                        average_price=result.position.average_price,
                    ),
                    session=session
                )
            else:
                holding.quantity = result.position.quantity
                holding.average_price = result.position.average_price
                HoldingRepository.save(holding, session=session)

            return transaction
