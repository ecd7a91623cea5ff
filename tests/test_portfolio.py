"""Tests for the read side: holdings, history, summary, concentration, verification."""

from decimal import Decimal

import pytest
from sqlalchemy import text

from conftest import USER, OTHER_USER
from errors import PersistenceError
from models import AssetType
from services.market_data import StaticPriceSource
from services.portfolio import PortfolioQueryService


class TestListing:
    def test_holdings_ordered_by_symbol(self, queries, buy):
        for symbol in ("MSFT", "AAPL", "TSLA"):
            buy(symbol, 1, 10)
        assert [h.symbol for h in queries.list_holdings(USER)] == ["AAPL", "MSFT", "TSLA"]

    def test_list_holdings_is_idempotent(self, queries, buy):
        buy("AAPL", 1, 10)
        buy("BTC", "0.5", 100, asset_type="crypto")
        first = [(h.symbol, h.asset_type, h.quantity, h.average_price) for h in queries.list_holdings(USER)]
        second = [(h.symbol, h.asset_type, h.quantity, h.average_price) for h in queries.list_holdings(USER)]
        assert first == second

    def test_transactions_newest_first(self, queries, buy, sell):
        first = buy("AAPL", 2, 10)
        second = buy("AAPL", 2, 20)
        third = sell("AAPL", 1, 30)
        assert [tx.id for tx in queries.list_transactions(USER)] == [third.id, second.id, first.id]
        assert [tx.id for tx in queries.list_transactions(USER, limit=1)] == [third.id]

    def test_unknown_user_has_no_data(self, queries):
        assert queries.list_holdings("nobody") == []
        assert queries.list_transactions("nobody") == []

    def test_read_failure_is_not_masked(self, store, queries):
        with store.engine.begin() as conn:
            conn.execute(text("DROP TABLE holdings"))
        with pytest.raises(PersistenceError):
            queries.list_holdings(USER)


class TestSummary:
    def test_without_price_source_current_value_is_unknown(self, queries, buy):
        buy("AAPL", 10, 100)
        summary = queries.get_summary(USER)
        assert summary.total_holdings == 1
        assert summary.total_invested == Decimal("1000")
        assert summary.total_current_value is None
        assert summary.total_gain_loss is None
        assert summary.total_gain_loss_percent is None
        assert not summary.is_fully_priced

    def test_with_price_source(self, queries, buy, prices):
        buy("AAPL", 10, 100)
        buy("BTC", "0.1", 30000, asset_type="crypto")
        summary = queries.get_summary(USER, prices)
        assert summary.total_invested == Decimal("4000")
        assert summary.total_current_value == Decimal("4100")
        assert summary.total_gain_loss == Decimal("100")
        assert summary.total_gain_loss_percent == Decimal("2.5")
        assert summary.unpriced_symbols == []

    def test_callable_price_lookup(self, queries, buy):
        buy("AAPL", 10, 100)
        summary = queries.get_summary(USER, lambda symbol, asset_type: "90")
        assert summary.total_gain_loss == Decimal("-100")
        assert summary.total_gain_loss_percent == Decimal("-10")

    def test_missing_price_is_reported_not_fabricated(self, queries, buy):
        buy("AAPL", 10, 100)
        buy("ZZZZ", 1, 5)
        summary = queries.get_summary(USER, StaticPriceSource({"AAPL": 110}))
        assert summary.unpriced_symbols == ["ZZZZ"]
        assert summary.total_current_value is None
        assert summary.total_gain_loss is None
        aapl = next(p for p in summary.positions if p.symbol == "AAPL")
        assert aapl.current_value == Decimal("1100")

    def test_empty_portfolio_has_zero_percent(self, queries, prices):
        summary = queries.get_summary(USER, prices)
        assert summary.total_invested == Decimal("0")
        assert summary.total_current_value == Decimal("0")
        assert summary.total_gain_loss_percent == Decimal("0")

    def test_empty_portfolio_without_prices(self, queries):
        summary = queries.get_summary(USER)
        assert summary.total_gain_loss_percent == Decimal("0")

    def test_default_price_source_from_constructor(self, store, settings, buy, prices):
        buy("AAPL", 1, 100)
        service = PortfolioQueryService(store, price_source=prices, settings=settings)
        assert service.get_summary(USER).total_current_value == Decimal("110")

    def test_to_dict_uses_two_decimal_strings(self, queries, buy, prices):
        buy("AAPL", 3, "33.333")
        data = queries.get_summary(USER, prices).to_dict()
        assert data['totalHoldings'] == 1
        assert data['totalInvested'] == "100.00"
        assert data['totalCurrentValue'] == "330.00"
        assert data['totalGainLoss'] == "230.00"
        assert data['positions'][0]['symbol'] == "AAPL"

    def test_summary_is_per_user(self, queries, buy):
        buy("AAPL", 1, 100, user=USER)
        buy("AAPL", 5, 100, user=OTHER_USER)
        assert queries.get_summary(USER).total_invested == Decimal("100")


class TestConcentrationRisk:
    def test_single_dominant_position(self, queries, buy, prices):
        buy("AAPL", 10, 100)   # 1100 at current price
        buy("MSFT", 1, 400)    # 400
        result = queries.check_concentration_risk(USER, prices)
        assert result['total_positions'] == 2
        assert result['largest_position_pct'] == Decimal("73.33")
        kinds = [w['type'] for w in result['warnings']]
        assert kinds.count('single_position') == 2
        assert 'diversification' in kinds
        aapl = next(w for w in result['warnings'] if w.get('symbol') == "AAPL")
        assert aapl['severity'] == 'high'

    def test_falls_back_to_cost_basis_without_prices(self, queries, buy):
        for symbol in ("A", "B", "C", "D", "E"):
            buy(symbol, 1, 100)
        result = queries.check_concentration_risk(USER)
        assert result['warnings'] == []
        assert result['largest_position_pct'] == Decimal("20.00")

    def test_custom_threshold(self, queries, buy):
        for symbol in ("A", "B", "C", "D", "E"):
            buy(symbol, 1, 100)
        result = queries.check_concentration_risk(USER, max_single_position_pct=10)
        assert len([w for w in result['warnings'] if w['type'] == 'single_position']) == 5
        assert all(w['severity'] == 'medium' for w in result['warnings'])

    def test_empty_portfolio(self, queries):
        result = queries.check_concentration_risk(USER)
        assert result['warnings'] == []
        assert result['total_positions'] == 0

    @pytest.mark.parametrize("stock_price,crypto_price", [(10, 3000), (3000, 10)])
    def test_symbol_held_as_stock_and_crypto_is_keyed_by_type(self, queries, buy, stock_price, crypto_price):
        buy("ETH", 1, stock_price, asset_type="stock")
        buy("ETH", 1, crypto_price, asset_type="crypto")
        buy("AAPL", 1, 100)
        result = queries.check_concentration_risk(USER)
        assert set(result['single_position_risk']) == {"ETH (stock)", "ETH (crypto)", "AAPL"}
        assert result['single_position_risk']["ETH (crypto)"]['type'] == "crypto"


class TestVerifyLedger:
    def test_consistent_ledger(self, queries, buy, sell):
        buy("AAPL", 10, 100)
        buy("AAPL", 10, 200)
        sell("AAPL", 5, 300)
        buy("BTC", "0.25", 40000, asset_type="crypto")
        sell("BTC", "0.25", 41000, asset_type="crypto")
        assert queries.verify_ledger(USER) == []

    def test_detects_tampered_holding(self, store, queries, buy):
        buy("AAPL", 10, 100)
        with store.engine.begin() as conn:
            conn.execute(text("UPDATE holdings SET quantity = 11 WHERE symbol = 'AAPL'"))
        [discrepancy] = queries.verify_ledger(USER)
        assert discrepancy.symbol == "AAPL"
        assert discrepancy.stored.quantity == Decimal("11")
        assert discrepancy.replayed.quantity == Decimal("10")

    def test_detects_orphan_holding(self, store, queries):
        with store.engine.begin() as conn:
            conn.execute(text(
                "INSERT INTO holdings (user_id, symbol, asset_type, quantity, average_price, updated_at) "
                "VALUES (:user, 'GHOST', 'stock', 1, 1, '2024-01-15 15:00:00')"
            ), {"user": USER})
        [discrepancy] = queries.verify_ledger(USER)
        assert discrepancy.symbol == "GHOST"
        assert discrepancy.replayed is None


def test_static_price_source_prefers_typed_keys():
    """Verify (symbol, type) keys win over bare symbol keys."""
    source = StaticPriceSource({"ETH": 10, ("eth", "crypto"): 3000})
    assert source.get_price("ETH", AssetType.CRYPTO) == Decimal("3000")
    assert source.get_price("eth", AssetType.STOCK) == Decimal("10")
    assert source.get_price("NOPE", AssetType.STOCK) is None
