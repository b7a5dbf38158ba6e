"""Price-data provider access for market resolution."""

from .cache import TTLCache
from .client import CoinGeckoClient
from .fetcher import MarketDataFetcher

__all__ = ["CoinGeckoClient", "MarketDataFetcher", "TTLCache"]
