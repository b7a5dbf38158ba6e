from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

import httpx
from loguru import logger

from app.core.config import settings
from app.domain import PriceSnapshot, TokenSnapshot, VolumeSnapshot
from app.resolution.errors import FetchError

from .normalize import normalize_market_chart, normalize_token

PRO_API_KEY_HEADER = "x-cg-pro-api-key"

COIN_DETAIL_PARAMS = {
    "localization": "false",
    "tickers": "false",
    "market_data": "true",
    "community_data": "false",
    "developer_data": "false",
    "sparkline": "false",
}


class CoinGeckoClient:
    """Thin wrapper around the CoinGecko coin and market-chart endpoints.

    When a Pro API key is configured the Pro endpoint is tried first and the
    public endpoint is used as a fallback (if enabled). Every request carries
    the configured timeout; transport errors, timeouts and non-2xx responses
    surface as ``FetchError``.
    """

    def __init__(
        self,
        *,
        token_ids: Mapping[str, str] | None = None,
        base_url: str | None = None,
        pro_base_url: str | None = None,
        api_key: str | None = None,
        use_free_fallback: bool | None = None,
        timeout: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.token_ids = dict(token_ids or settings.token_coingecko_ids)
        self.timeout = timeout or settings.coingecko_timeout_seconds
        api_key = api_key if api_key is not None else settings.coingecko_api_key
        use_free_fallback = (
            settings.coingecko_use_free_fallback if use_free_fallback is None else use_free_fallback
        )

        self._endpoints: list[tuple[str, httpx.Client]] = []
        if api_key:
            self._endpoints.append(
                (
                    "CoinGecko Pro",
                    httpx.Client(
                        base_url=pro_base_url or str(settings.coingecko_pro_base_url),
                        headers={PRO_API_KEY_HEADER: api_key},
                        timeout=self.timeout,
                        transport=transport,
                    ),
                )
            )
        if not api_key or use_free_fallback:
            self._endpoints.append(
                (
                    "CoinGecko",
                    httpx.Client(
                        base_url=base_url or str(settings.coingecko_base_url),
                        timeout=self.timeout,
                        transport=transport,
                    ),
                )
            )

    def coin_id(self, symbol: str) -> str | None:
        return self.token_ids.get(symbol.upper())

    def _get(self, path: str, params: dict[str, Any]) -> tuple[str, Any]:
        last_error: Exception | None = None
        for source, client in self._endpoints:
            try:
                response = client.get(path, params=params)
                response.raise_for_status()
                return source, response.json()
            except (httpx.HTTPError, ValueError) as exc:
                last_error = exc
                logger.warning("{} GET {} failed: {}", source, path, exc)
        raise FetchError(f"Price-data provider unavailable for {path}") from last_error

    def get_current_data(self, symbol: str) -> TokenSnapshot | None:
        coin_id = self.coin_id(symbol)
        if not coin_id:
            logger.warning("No CoinGecko id configured for token {}", symbol)
            return None

        source, payload = self._get(f"/coins/{coin_id}", COIN_DETAIL_PARAMS)
        if not isinstance(payload, dict):
            return None
        token = normalize_token(payload, symbol=symbol, source=source)
        if token is None:
            logger.warning("{} returned no usable market data for {}", source, symbol)
        return token

    def get_historical_samples(
        self,
        symbol: str,
        from_time: datetime,
        to_time: datetime,
        interval: timedelta,
    ) -> tuple[list[PriceSnapshot], list[VolumeSnapshot]]:
        coin_id = self.coin_id(symbol)
        if not coin_id:
            raise FetchError(f"No CoinGecko id configured for token {symbol}")

        params = {
            "vs_currency": "usd",
            "from": int(from_time.timestamp()),
            "to": int(to_time.timestamp()),
        }
        source, payload = self._get(f"/coins/{coin_id}/market_chart/range", params)
        if not isinstance(payload, dict):
            raise FetchError(f"Malformed market chart payload for {symbol}")
        return normalize_market_chart(payload, interval=interval, source=source)

    def close(self) -> None:
        for _, client in self._endpoints:
            client.close()

    def __enter__(self) -> "CoinGeckoClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
