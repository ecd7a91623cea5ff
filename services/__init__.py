"""
Services package for the holdings ledger.
Provides core business logic separated from the persistence layer.
"""

from services.common import (
    normalize_symbol,
    normalize_user_id,
    to_decimal,
    validate_order,
    TradeOrder
)
from services.cost_basis import (
    Position,
    CostBasisResult,
    apply_transaction,
    replay_transactions
)
from services.market_data import (
    PriceSource,
    StaticPriceSource,
    CallablePriceSource,
    YFinancePriceSource,
    as_price_source
)
from services.ledger import TransactionProcessor
from services.portfolio import (
    PortfolioQueryService,
    PortfolioSummary,
    PositionValuation,
    LedgerDiscrepancy
)
from services.report import holdings_to_frame, format_portfolio_report

__all__ = [
    # Common utilities
    'normalize_symbol',
    'normalize_user_id',
    'to_decimal',
    'validate_order',
    'TradeOrder',
    # Cost basis
    'Position',
    'CostBasisResult',
    'apply_transaction',
    'replay_transactions',
    # Prices
    'PriceSource',
    'StaticPriceSource',
    'CallablePriceSource',
    'YFinancePriceSource',
    'as_price_source',
    # Services
    'TransactionProcessor',
    'PortfolioQueryService',
    'PortfolioSummary',
    'PositionValuation',
    'LedgerDiscrepancy',
    # Reporting
    'holdings_to_frame',
    'format_portfolio_report',
]
