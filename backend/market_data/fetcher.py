"""Assemble the ``FinalMarketData`` an evaluator needs for a closed market."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone

from loguru import logger

from app.core.config import Settings, get_settings
from app.domain import FinalMarketData, PriceSnapshot, TokenSnapshot, VolumeSnapshot
from app.resolution.errors import FetchError
from app.resolution.extraction import extract_hours, extract_token_symbol

from .cache import TTLCache
from .client import CoinGeckoClient

FALLBACK_SOURCE = "Fallback price table"
DEGRADED_SUFFIX = " (degraded)"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class MarketDataFetcher:
    def __init__(
        self,
        client: CoinGeckoClient | None = None,
        *,
        cache: TTLCache[TokenSnapshot] | None = None,
        settings: Settings | None = None,
        fallback_prices: Mapping[str, float] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings or get_settings()
        self._client = client or CoinGeckoClient(token_ids=self.settings.token_coingecko_ids)
        self._cache: TTLCache[TokenSnapshot] = (
            cache
            if cache is not None
            else TTLCache(
                self.settings.market_data_cache_ttl_seconds,
                self.settings.market_data_cache_max_entries,
            )
        )
        self.allowlist = self.settings.token_allowlist
        self.fallback_prices = dict(
            fallback_prices if fallback_prices is not None else self.settings.fallback_token_prices
        )
        self.history_window = timedelta(minutes=self.settings.market_data_history_window_minutes)
        self.history_interval = timedelta(seconds=self.settings.market_data_history_interval_seconds)
        self._clock = clock

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "MarketDataFetcher":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Current data

    def get_token_snapshot(self, symbol: str) -> TokenSnapshot:
        """Return current data for ``symbol``, falling back to last-known prices.

        Raises ``FetchError`` when the provider fails and the ticker has no
        entry in the fallback table.
        """

        cached = self._cache.get(symbol)
        if cached is not None:
            return cached

        try:
            token = self._client.get_current_data(symbol)
        except FetchError as exc:
            logger.warning("Current data for {} unavailable: {}", symbol, exc)
            token = None

        if token is not None:
            self._cache.set(symbol, token)
            return token
        return self._fallback_snapshot(symbol)

    def _fallback_snapshot(self, symbol: str) -> TokenSnapshot:
        price = self.fallback_prices.get(symbol)
        if price is None:
            raise FetchError(f"No market data available for {symbol}")

        logger.warning("Using fallback price {} for {}", price, symbol)
        market_cap = price * 1_000_000_000
        return TokenSnapshot(
            symbol=symbol,
            coin_id=self.settings.token_coingecko_ids.get(symbol, symbol.lower()),
            name=symbol,
            current_price=price,
            market_cap=market_cap,
            total_volume=market_cap * 0.1,
            ath=price * 1.5,
            atl=price * 0.5,
            last_updated=self._clock(),
            source=FALLBACK_SOURCE,
        )

    # ------------------------------------------------------------------
    # Resolution data

    def history_start(
        self,
        question: str,
        closing_date: datetime,
        opened_at: datetime | None = None,
    ) -> datetime:
        """Earliest sample a market may be judged on.

        The configured history window is narrowed to the ``next N hours`` the
        question names and never reaches back before the market opened.
        """

        closing = _as_utc(closing_date)
        start = closing - self.history_window
        hours = extract_hours(question)
        if hours:
            start = max(start, closing - timedelta(hours=hours))
        if opened_at is not None:
            start = max(start, _as_utc(opened_at))
        return min(start, closing)

    def get_final_market_data(
        self,
        question: str,
        closing_date: datetime,
        opened_at: datetime | None = None,
    ) -> FinalMarketData:
        symbol = extract_token_symbol(question, self.allowlist)
        token = self.get_token_snapshot(symbol)

        closing = _as_utc(closing_date)
        start = self.history_start(question, closing, opened_at)
        try:
            price_history, volume_history = self._client.get_historical_samples(
                symbol,
                start,
                closing,
                self.history_interval,
            )
        except FetchError as exc:
            logger.warning("Price history for {} unavailable: {}", symbol, exc)
            price_history, volume_history = [], []

        price_history = [s for s in price_history if start <= _as_utc(s.timestamp) <= closing]
        volume_history = [s for s in volume_history if start <= _as_utc(s.timestamp) <= closing]

        data_source = token.source
        if not price_history:
            logger.warning(
                "Resolving {} from a single snapshot at {}", symbol, closing.isoformat()
            )
            price_history = [
                PriceSnapshot(
                    timestamp=closing,
                    price=token.current_price,
                    volume=token.total_volume,
                    source=token.source,
                )
            ]
            volume_history = [
                VolumeSnapshot(
                    timestamp=closing,
                    volume_24h=token.total_volume,
                    volume_1h=token.total_volume / 24,
                    source=token.source,
                    market_cap=token.market_cap,
                )
            ]
            data_source += DEGRADED_SUFFIX
        elif not volume_history:
            logger.warning("No volume samples for {} at close; using current figures", symbol)

        at_close = volume_history[-1] if volume_history else None
        final_volume = at_close.volume_24h if at_close else token.total_volume
        final_market_cap = (
            at_close.market_cap
            if at_close is not None and at_close.market_cap is not None
            else token.market_cap
        )

        return FinalMarketData(
            final_price=price_history[-1].price,
            final_volume=final_volume,
            final_market_cap=final_market_cap,
            price_history=price_history,
            volume_history=volume_history,
            ath=token.ath,
            atl=token.atl,
            data_source=data_source,
        )


__all__ = ["MarketDataFetcher", "FALLBACK_SOURCE"]
