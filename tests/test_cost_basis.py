"""Tests for the pure average-cost calculator."""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from errors import InsufficientHoldingError, InvalidPriceError, InvalidQuantityError, ValidationError
from models import AssetType, TransactionType
from services.common import TradeOrder
from services.cost_basis import Position, apply_transaction, replay_transactions


def order(side, quantity, price, symbol="AAPL", asset_type=AssetType.STOCK):
    return TradeOrder(
        user_id="u1",
        symbol=symbol,
        asset_type=asset_type,
        transaction_type=TransactionType(side),
        quantity=Decimal(str(quantity)),
        price_per_unit=Decimal(str(price)),
    )


class TestBuy:
    def test_first_buy_opens_position_at_trade_price(self):
        result = apply_transaction(None, order("buy", 10, 100))
        assert result.position == Position(Decimal("10"), Decimal("100"))
        assert result.applied_quantity == Decimal("10")

    def test_repeated_buys_use_weighted_average(self):
        first = apply_transaction(None, order("buy", 10, 100)).position
        second = apply_transaction(first, order("buy", 10, 200)).position
        assert second.quantity == Decimal("20")
        assert second.average_price == Decimal("150")

    def test_uneven_buys(self):
        # (2 * 150 + 3 * 180) / 5 = 840 / 5 = 168
        first = apply_transaction(None, order("buy", 2, 150)).position
        second = apply_transaction(first, order("buy", 3, 180)).position
        assert second == Position(Decimal("5"), Decimal("168"))
        assert second.cost_basis == Decimal("840")

    def test_average_rounded_to_eight_places(self):
        first = apply_transaction(None, order("buy", 3, 1)).position
        second = apply_transaction(first, order("buy", 3, 2)).position
        third = apply_transaction(second, order("buy", 3, 2)).position
        # 15 / 9 = 1.666...
        assert third.average_price == Decimal("1.66666667")

    def test_fractional_crypto_quantities_are_exact(self):
        first = apply_transaction(None, order("buy", "0.1", 30000, "BTC", AssetType.CRYPTO)).position
        second = apply_transaction(first, order("buy", "0.2", 30000, "BTC", AssetType.CRYPTO)).position
        assert second.quantity == Decimal("0.3")
        assert second.average_price == Decimal("30000")


class TestSell:
    def test_partial_sell_keeps_average_price(self):
        existing = Position(Decimal("20"), Decimal("150"))
        result = apply_transaction(existing, order("sell", 5, 999))
        assert result.position == Position(Decimal("15"), Decimal("150"))
        assert result.applied_quantity == Decimal("-5")

    def test_full_sell_removes_position(self):
        existing = Position(Decimal("15"), Decimal("150"))
        result = apply_transaction(existing, order("sell", 15, 150))
        assert result.position is None
        assert result.applied_quantity == Decimal("-15")

    def test_sell_without_holding_is_rejected(self):
        with pytest.raises(InsufficientHoldingError) as exc_info:
            apply_transaction(None, order("sell", 1, 100))
        assert exc_info.value.symbol == "AAPL"
        assert exc_info.value.available == Decimal("0")

    def test_oversell_is_rejected(self):
        existing = Position(Decimal("5"), Decimal("100"))
        with pytest.raises(InsufficientHoldingError) as exc_info:
            apply_transaction(existing, order("sell", 6, 100))
        assert exc_info.value.requested == Decimal("6")
        assert exc_info.value.available == Decimal("5")


class TestGuards:
    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity(self, quantity):
        with pytest.raises(InvalidQuantityError):
            apply_transaction(None, order("buy", quantity, 100))

    @pytest.mark.parametrize("price", [0, "-0.01"])
    def test_non_positive_price(self, price):
        with pytest.raises(InvalidPriceError):
            apply_transaction(None, order("buy", 1, price))

    def test_empty_symbol(self):
        with pytest.raises(ValidationError):
            apply_transaction(None, order("buy", 1, 100, symbol=""))

    def test_buy_cannot_grow_holding_past_storable_quantity(self):
        existing = Position(Decimal("999999999999"), Decimal("1"))
        with pytest.raises(InvalidQuantityError):
            apply_transaction(existing, order("buy", 1, 1))


def test_replay_rebuilds_positions_and_drops_closed_ones():
    """Verify replaying a log folds buys and sells per (symbol, asset type)."""
    def entry(symbol, asset_type, side, quantity, price):
        return SimpleNamespace(
            user_id="u1", symbol=symbol, asset_type=asset_type,
            transaction_type=side, quantity=Decimal(quantity), price_per_unit=Decimal(price),
        )

    log = [
        entry("AAPL", "stock", "buy", "10", "100"),
        entry("AAPL", "stock", "buy", "10", "200"),
        entry("BTC", "crypto", "buy", "0.5", "20000"),
        entry("AAPL", "stock", "sell", "5", "300"),
        entry("MSFT", "stock", "buy", "1", "400"),
        entry("MSFT", "stock", "sell", "1", "410"),
    ]

    positions = replay_transactions(log)

    assert positions == {
        ("AAPL", "stock"): Position(Decimal("15"), Decimal("150")),
        ("BTC", "crypto"): Position(Decimal("0.5"), Decimal("20000")),
    }
