import pytest
from decimal import Decimal

from config import Settings
from db_engine import LedgerStore
from services.ledger import TransactionProcessor
from services.market_data import StaticPriceSource
from services.portfolio import PortfolioQueryService

USER = "user-1"
OTHER_USER = "user-2"

# ── Price snapshot used for valuation tests ──
# AAPL up 10% from a 100 cost basis, BTC flat at 30000
MOCK_PRICES = {
    "AAPL": Decimal("110"),
    ("BTC", "crypto"): Decimal("30000"),
    "MSFT": Decimal("400"),
}


@pytest.fixture
def settings(tmp_path):
    """
    Settings pointing at an isolated SQLite file in a temp directory.
    A file (not :memory:) so that several threads can share the database.
    """
    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'test_ledger.db'}",
        conflict_retry_attempts=5,
        conflict_retry_wait_seconds=0.01,
        price_fetch_attempts=1,
    )


@pytest.fixture
def store(settings):
    """Ledger store with the schema created. Closed after the test."""
    ledger_store = LedgerStore.from_settings(settings)
    ledger_store.create_schema()
    yield ledger_store
    ledger_store.close()


@pytest.fixture
def processor(store, settings):
    return TransactionProcessor(store, settings=settings)


@pytest.fixture
def queries(store, settings):
    return PortfolioQueryService(store, settings=settings)


@pytest.fixture
def prices():
    return StaticPriceSource(MOCK_PRICES)


@pytest.fixture
def buy(processor):
    """Shorthand: buy(symbol, quantity, price, asset_type='stock', user=USER)."""
    def _buy(symbol, quantity, price, asset_type="stock", user=USER):
        return processor.record_transaction(user, symbol, asset_type, "buy", quantity, price)
    return _buy


@pytest.fixture
def sell(processor):
    """Shorthand: sell(symbol, quantity, price, asset_type='stock', user=USER)."""
    def _sell(symbol, quantity, price, asset_type="stock", user=USER):
        return processor.record_transaction(user, symbol, asset_type, "sell", quantity, price)
    return _sell
