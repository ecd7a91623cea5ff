"""
Portfolio query service: holdings, transaction history, valuation summary.
A read-only projection over the ledger store, optionally combined with an
injected price source.
Enhanced with concentration risk checks and ledger replay verification.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Tuple

from config import Settings, get_settings
from db_engine import LedgerStore
from models import AssetType, Holding, Transaction
from repositories import HoldingRepository, TransactionRepository
from services.common import normalize_user_id
from services.cost_basis import Position, replay_transactions
from services.market_data import PriceLookup, PriceSource, as_price_source

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENTS = Decimal("0.01")


def _money(value: Optional[Decimal]) -> Optional[str]:
    """Format a Decimal with 2 decimal places for display; None stays None."""
    if value is None:
        return None
    return str(value.quantize(CENTS, rounding=ROUND_HALF_UP))


@dataclass
class PositionValuation:
    """Valuation of a single holding."""
    symbol: str
    asset_type: str
    quantity: Decimal
    average_price: Decimal
    invested: Decimal
    current_price: Optional[Decimal] = None
    current_value: Optional[Decimal] = None
    gain_loss: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'symbol': self.symbol,
            'type': self.asset_type,
            'quantity': str(self.quantity),
            'averagePrice': str(self.average_price),
            'invested': _money(self.invested),
            'currentPrice': str(self.current_price) if self.current_price is not None else None,
            'currentValue': _money(self.current_value),
            'gainLoss': _money(self.gain_loss),
        }


@dataclass
class PortfolioSummary:
    """
    Aggregate valuation of a user's portfolio.
    Current value, gain/loss and gain/loss percent are None when unknown
    (no price source, or at least one holding could not be priced).
    """
    total_holdings: int
    total_invested: Decimal
    total_current_value: Optional[Decimal]
    total_gain_loss: Optional[Decimal]
    total_gain_loss_percent: Optional[Decimal]
    unpriced_symbols: List[str] = field(default_factory=list)
    positions: List[PositionValuation] = field(default_factory=list)

    @property
    def is_fully_priced(self) -> bool:
        return self.total_current_value is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalHoldings': self.total_holdings,
            'totalInvested': _money(self.total_invested),
            'totalCurrentValue': _money(self.total_current_value),
            'totalGainLoss': _money(self.total_gain_loss),
            'totalGainLossPercent': _money(self.total_gain_loss_percent),
            'unpricedSymbols': list(self.unpriced_symbols),
            'positions': [p.to_dict() for p in self.positions],
        }


@dataclass
class LedgerDiscrepancy:
    """A stored holding that does not match the replayed transaction log."""
    symbol: str
    asset_type: str
    stored: Optional[Position]
    replayed: Optional[Position]


class PortfolioQueryService:
    """
    Service for portfolio reads and valuation.
    Never writes; safe to call concurrently with the TransactionProcessor.
    """

    def __init__(
        self,
        store: LedgerStore,
        price_source: Optional[PriceLookup] = None,
        settings: Optional[Settings] = None
    ):
        self.store = store
        self.price_source = as_price_source(price_source)
        self.settings = settings or get_settings()

    def list_holdings(self, user_id: str) -> List[Holding]:
        """Holdings of a user ordered by symbol ascending."""
        with self.store.read_session() as session:
            return HoldingRepository.list_by_user(normalize_user_id(user_id), session=session)

    def list_transactions(self, user_id: str, limit: Optional[int] = None) -> List[Transaction]:
        """Transaction history of a user, newest first."""
        with self.store.read_session() as session:
            return TransactionRepository.list_by_user(normalize_user_id(user_id), session=session, limit=limit)

    def _resolve_source(self, price_source: Optional[PriceLookup]) -> Optional[PriceSource]:
        if price_source is not None:
            return as_price_source(price_source)
        return self.price_source

    def value_holdings(
        self,
        holdings: List[Holding],
        price_source: Optional[PriceSource]
    ) -> Tuple[List[PositionValuation], List[str]]:
        """
        Value each holding at its current price.

        Returns:
            (valuations, symbols that could not be priced)
        """
        valuations = []
        unpriced = []

        for holding in holdings:
            quantity = Decimal(holding.quantity)
            average_price = Decimal(holding.average_price)
            valuation = PositionValuation(
                symbol=holding.symbol,
                asset_type=holding.asset_type,
                quantity=quantity,
                average_price=average_price,
                invested=quantity * average_price,
            )

            if price_source is not None:
                price = price_source.get_price(holding.symbol, AssetType(holding.asset_type))
                if price is None:
                    logger.warning(f"No current price for {holding.symbol} ({holding.asset_type})")
                    unpriced.append(holding.symbol)
                else:
                    valuation.current_price = price
                    valuation.current_value = quantity * price
                    valuation.gain_loss = valuation.current_value - valuation.invested

            valuations.append(valuation)

        return valuations, unpriced

    def get_summary(
        self,
        user_id: str,
        price_source: Optional[PriceLookup] = None
    ) -> PortfolioSummary:
        """
        Calculate total invested, current value and gain/loss for a user.

        Args:
            user_id: User to summarize
            price_source: Overrides the service's default price source

        Returns:
            PortfolioSummary; current-value fields are None when unknown
        """
        source = self._resolve_source(price_source)
        holdings = self.list_holdings(user_id)
        valuations, unpriced = self.value_holdings(holdings, source)

        total_invested = sum((v.invested for v in valuations), ZERO)

        if not valuations:
            total_current_value = ZERO
        elif source is None or unpriced:
            total_current_value = None
        else:
            total_current_value = sum((v.current_value for v in valuations), ZERO)

        total_gain_loss = None
        total_gain_loss_percent = None
        if total_current_value is not None:
            total_gain_loss = total_current_value - total_invested

        if total_invested == 0:
            total_gain_loss_percent = ZERO
        elif total_gain_loss is not None:
            total_gain_loss_percent = total_gain_loss / total_invested * HUNDRED

        return PortfolioSummary(
            total_holdings=len(valuations),
            total_invested=total_invested,
            total_current_value=total_current_value,
            total_gain_loss=total_gain_loss,
            total_gain_loss_percent=total_gain_loss_percent,
            unpriced_symbols=unpriced,
            positions=valuations,
        )

    def check_concentration_risk(
        self,
        user_id: str,
        price_source: Optional[PriceLookup] = None,
        max_single_position_pct: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Check for concentration risk in the portfolio.
        Positions are weighted by current value, falling back to cost basis
        for holdings without a price.

        Args:
            user_id: User to analyze
            price_source: Overrides the service's default price source
            max_single_position_pct: Max % for a single position (default from settings)

        Returns:
            Dictionary with concentration warnings and metrics
        """
        if max_single_position_pct is None:
            max_single_position_pct = self.settings.max_single_position_pct
        max_pct = Decimal(str(max_single_position_pct))
        high_pct = Decimal(str(self.settings.high_concentration_pct))

        source = self._resolve_source(price_source)
        valuations, _ = self.value_holdings(self.list_holdings(user_id), source)

        weights = {}
        for v in valuations:
            value = v.current_value if v.current_value is not None else v.invested
            key = (v.symbol, v.asset_type)
            weights[key] = weights.get(key, ZERO) + value
        total_value = sum(weights.values(), ZERO)

        if not valuations or total_value == 0:
            return {
                'warnings': [],
                'single_position_risk': {},
                'total_positions': len(valuations),
                'largest_position_pct': ZERO,
                'max_recommended_position_pct': max_pct
            }

        # Symbols held as both a stock and a crypto are keyed with their type
        symbol_counts = {}
        for symbol, _ in weights:
            symbol_counts[symbol] = symbol_counts.get(symbol, 0) + 1

        warnings = []
        position_risks = {}
        largest_position_pct = ZERO

        for (symbol, asset_type), value in sorted(weights.items(), key=lambda item: item[1], reverse=True):
            position_pct = (value / total_value * HUNDRED).quantize(CENTS, rounding=ROUND_HALF_UP)
            label = symbol if symbol_counts[symbol] == 1 else f"{symbol} ({asset_type})"
            position_risks[label] = {
                'type': asset_type,
                'value': value,
                'percentage': position_pct
            }
            largest_position_pct = max(largest_position_pct, position_pct)

            if position_pct > max_pct:
                warnings.append({
                    'type': 'single_position',
                    'severity': 'high' if position_pct > high_pct else 'medium',
                    'symbol': symbol,
                    'message': f"{label} is {position_pct:.1f}% of portfolio (max {max_pct}%)"
                })

        if len(valuations) < self.settings.min_positions:
            warnings.append({
                'type': 'diversification',
                'severity': 'medium',
                'message': f"Portfolio has only {len(valuations)} position(s). Consider diversifying."
            })

        return {
            'warnings': warnings,
            'single_position_risk': position_risks,
            'total_positions': len(valuations),
            'largest_position_pct': largest_position_pct,
            'max_recommended_position_pct': max_pct
        }

    def verify_ledger(self, user_id: str) -> List[LedgerDiscrepancy]:
        """
        Replay a user's transaction log and compare it with stored holdings.

        Returns:
            Discrepancies; an empty list means holdings match the ledger
        """
        user_id = normalize_user_id(user_id)
        with self.store.read_session() as session:
            transactions = TransactionRepository.list_for_replay(user_id, session=session)
            holdings = HoldingRepository.list_by_user(user_id, session=session)

        replayed = replay_transactions(transactions)
        stored = {
            (h.symbol, h.asset_type): Position(Decimal(h.quantity), Decimal(h.average_price))
            for h in holdings
        }

        discrepancies = []
        for key in sorted(set(replayed) | set(stored)):
            expected = replayed.get(key)
            actual = stored.get(key)
            if expected != actual:
                discrepancies.append(LedgerDiscrepancy(
                    symbol=key[0],
                    asset_type=key[1],
                    stored=actual,
                    replayed=expected
                ))

        if discrepancies:
            logger.error(f"Ledger verification found {len(discrepancies)} discrepancies for user {user_id}")
        return discrepancies
