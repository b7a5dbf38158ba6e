"""Higher-level conveniences for interacting with market persistence."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence

from sqlalchemy.orm import Session

from app.repositories import MarketRepository
from app.schemas import Market, MarketResolution


@dataclass(slots=True)
class MarketQuery:
    status: str | None = None
    closing_before: datetime | None = None
    sort: str = "closing_date"
    order: str = "asc"
    limit: int = 50
    offset: int = 0

    def to_repository_kwargs(self) -> dict[str, Any]:
        """Serialize the query so repository functions receive consistent kwargs."""

        return {
            "status": self.status,
            "closing_before": self.closing_before,
            "sort": self.sort,
            "order": self.order,
            "limit": self.limit,
            "offset": self.offset,
        }


@dataclass(slots=True)
class MarketQueryResult:
    total: int
    markets: Sequence[Market]


class MarketService:
    """Read-only facade over market listings used by the API."""

    def __init__(self, session: Session):
        self._session = session
        self._market_repo = MarketRepository(session)

    def list_markets(self, query: MarketQuery) -> MarketQueryResult:
        markets, total = self._market_repo.list_markets(**query.to_repository_kwargs())
        return MarketQueryResult(
            total=total,
            markets=[Market.model_validate(market) for market in markets],
        )

    def get_market(self, market_id: str) -> Market | None:
        market = self._market_repo.get_market(market_id)
        if market is None:
            return None
        return Market.model_validate(market)

    def get_resolution(self, market_id: str) -> MarketResolution | None:
        market = self._market_repo.get_market(market_id)
        if market is None:
            return None
        return MarketResolution.model_validate(market)
