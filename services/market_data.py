"""
Price sources used to value holdings.
The ledger never computes prices: a PriceSource is injected wherever a
current value is needed. Sources report an unknown price as None, never 0.
"""

import logging
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional, Protocol, Union, runtime_checkable

import yfinance as yf
from cachetools import TTLCache
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from config import Settings, get_settings
from models import AssetType
from services.common import normalize_symbol, to_decimal

logger = logging.getLogger(__name__)


@runtime_checkable
class PriceSource(Protocol):
    """Anything that can quote a current unit price in USD."""

    def get_price(self, symbol: str, asset_type: AssetType) -> Optional[Decimal]:
        ...


class StaticPriceSource:
    """
    Mapping-backed prices, e.g. a snapshot supplied by the caller.
    Keys are symbols or (symbol, asset_type) pairs; pairs take precedence.
    """

    def __init__(self, prices: Mapping[Any, Any]):
        self._prices = {}
        for key, price in prices.items():
            if isinstance(key, tuple):
                symbol, asset_type = key
                key = (normalize_symbol(symbol), AssetType(asset_type).value)
            else:
                key = normalize_symbol(key)
            self._prices[key] = to_decimal(price)

    def get_price(self, symbol: str, asset_type: AssetType) -> Optional[Decimal]:
        symbol = normalize_symbol(symbol)
        pair = (symbol, AssetType(asset_type).value)
        if pair in self._prices:
            return self._prices[pair]
        return self._prices.get(symbol)


class CallablePriceSource:
    """Adapts a plain function (symbol, asset_type) -> price | None."""

    def __init__(self, lookup: Callable[[str, AssetType], Any]):
        self._lookup = lookup

    def get_price(self, symbol: str, asset_type: AssetType) -> Optional[Decimal]:
        price = self._lookup(symbol, asset_type)
        if price is None:
            return None
        return to_decimal(price)


PriceLookup = Union[PriceSource, Callable[[str, AssetType], Any]]


def as_price_source(lookup: Optional[PriceLookup]) -> Optional[PriceSource]:
    """Accept a PriceSource, a bare callable or None."""
    if lookup is None or isinstance(lookup, PriceSource):
        return lookup
    if callable(lookup):
        return CallablePriceSource(lookup)
    raise TypeError(f"Expected a PriceSource or callable, got {type(lookup).__name__}")


def to_yfinance_symbol(symbol: str, asset_type: AssetType) -> str:
    """Convert a ledger symbol to yfinance format (crypto quotes are BTC-USD style)."""
    symbol = normalize_symbol(symbol)
    if AssetType(asset_type) == AssetType.CRYPTO and not symbol.endswith("-USD"):
        return f"{symbol}-USD"
    return symbol


class YFinancePriceSource:
    """
    Live quotes from Yahoo Finance with retry logic and a short-lived cache.
    Fetch failures are logged and reported as an unknown price.
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self._cache = TTLCache(maxsize=512, ttl=settings.price_cache_ttl_seconds)
        self._fetch = retry(
            stop=stop_after_attempt(max(1, settings.price_fetch_attempts)),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type(Exception),
            reraise=True
        )(self._fetch_quote)

    @staticmethod
    def _fetch_quote(yf_symbol: str) -> Optional[float]:
        """Fetch the latest price for one yfinance symbol."""
        ticker = yf.Ticker(yf_symbol)
        info = ticker.info or {}
        price = info.get('currentPrice') or info.get('regularMarketPrice')

        if price is None:
            hist = ticker.history(period="1d")
            if not hist.empty:
                price = hist['Close'].iloc[-1]
        return price

    def get_price(self, symbol: str, asset_type: AssetType) -> Optional[Decimal]:
        yf_symbol = to_yfinance_symbol(symbol, asset_type)
        if yf_symbol in self._cache:
            return self._cache[yf_symbol]

        try:
            raw = self._fetch(yf_symbol)
        except Exception as e:
            logger.error(f"Error fetching price for {yf_symbol}: {e}")
            return None

        if raw is None:
            logger.warning(f"No price available for {yf_symbol}")
            return None

        price = to_decimal(float(raw))
        if price <= 0:
            logger.warning(f"Ignoring non-positive price {price} for {yf_symbol}")
            return None
        self._cache[yf_symbol] = price
        return price
