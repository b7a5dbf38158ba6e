from __future__ import annotations

from bisect import bisect_left, bisect_right
from datetime import datetime, timedelta, timezone
from typing import Any

from dateutil import parser as date_parser

from app.domain import PriceSnapshot, TokenSnapshot, VolumeSnapshot


def _parse_datetime(value: Any) -> datetime | None:
    if not value:
        return None
    try:
        parsed = date_parser.isoparse(str(value))
    except (ValueError, TypeError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _parse_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _usd(market_data: dict[str, Any], key: str) -> float | None:
    value = market_data.get(key)
    if isinstance(value, dict):
        return _parse_float(value.get("usd"))
    return _parse_float(value)


def _from_millis(value: Any) -> datetime | None:
    millis = _parse_float(value)
    if millis is None:
        return None
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)


def normalize_token(payload: dict[str, Any], *, symbol: str, source: str) -> TokenSnapshot | None:
    """Convert a ``/coins/{id}`` response into a ``TokenSnapshot``.

    Returns ``None`` when the payload carries no usable USD price.
    """

    market_data = payload.get("market_data")
    if not isinstance(market_data, dict):
        return None

    price = _usd(market_data, "current_price")
    if price is None or price <= 0:
        return None

    return TokenSnapshot(
        symbol=symbol.upper(),
        coin_id=str(payload.get("id") or symbol.lower()),
        name=str(payload.get("name") or symbol),
        current_price=price,
        market_cap=_usd(market_data, "market_cap") or 0.0,
        total_volume=_usd(market_data, "total_volume") or 0.0,
        price_change_24h=_parse_float(market_data.get("price_change_percentage_24h")) or 0.0,
        price_change_7d=_usd(market_data, "price_change_percentage_7d_in_currency") or 0.0,
        price_change_30d=_usd(market_data, "price_change_percentage_30d_in_currency") or 0.0,
        ath=_usd(market_data, "ath"),
        atl=_usd(market_data, "atl"),
        last_updated=_parse_datetime(payload.get("last_updated") or market_data.get("last_updated")),
        source=source,
    )


def _series(payload: dict[str, Any], key: str) -> list[tuple[datetime, float]]:
    rows = payload.get(key)
    if not isinstance(rows, list):
        return []
    points: list[tuple[datetime, float]] = []
    for row in rows:
        if not isinstance(row, (list, tuple)) or len(row) < 2:
            continue
        timestamp = _from_millis(row[0])
        value = _parse_float(row[1])
        if timestamp is None or value is None:
            continue
        points.append((timestamp, value))
    points.sort(key=lambda point: point[0])
    return points


def _thin(points: list[tuple[datetime, float]], interval: timedelta) -> list[tuple[datetime, float]]:
    if interval <= timedelta(0):
        return points
    thinned: list[tuple[datetime, float]] = []
    for point in points:
        if not thinned or point[0] - thinned[-1][0] >= interval:
            thinned.append(point)
    if points and thinned[-1] is not points[-1]:
        thinned.append(points[-1])
    return thinned


def _nearest(points: list[tuple[datetime, float]], timestamp: datetime) -> float:
    if not points:
        return 0.0
    keys = [point[0] for point in points]
    index = bisect_left(keys, timestamp)
    candidates = [points[i] for i in (index - 1, index) if 0 <= i < len(points)]
    return min(candidates, key=lambda point: abs(point[0] - timestamp))[1]


def _at_or_before(points: list[tuple[datetime, float]], timestamp: datetime) -> float | None:
    keys = [point[0] for point in points]
    index = bisect_right(keys, timestamp)
    return points[index - 1][1] if index else None


def normalize_market_chart(
    payload: dict[str, Any],
    *,
    interval: timedelta,
    source: str,
) -> tuple[list[PriceSnapshot], list[VolumeSnapshot]]:
    """Convert a ``market_chart/range`` response into evidence snapshots.

    Series are thinned so consecutive samples are at least ``interval`` apart,
    except that the latest sample is always kept.
    The provider only reports rolling 24h volume; ``volume_1h`` is the implied
    average hourly rate. Each volume sample also carries the latest market cap
    reported at or before it.
    """

    prices = _thin(_series(payload, "prices"), interval)
    volumes = _series(payload, "total_volumes")
    market_caps = _series(payload, "market_caps")

    price_history = [
        PriceSnapshot(
            timestamp=timestamp,
            price=price,
            volume=_nearest(volumes, timestamp),
            source=source,
        )
        for timestamp, price in prices
    ]
    volume_history = [
        VolumeSnapshot(
            timestamp=timestamp,
            volume_24h=volume,
            volume_1h=volume / 24,
            source=source,
            market_cap=_at_or_before(market_caps, timestamp),
        )
        for timestamp, volume in _thin(volumes, interval)
    ]
    return price_history, volume_history
