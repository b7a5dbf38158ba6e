"""Market-focused data access helpers."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import asc, desc, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models import Market, MarketStatus
from app.resolution.errors import PersistenceError


class MarketRepository:
    """Encapsulate all market persistence concerns."""

    def __init__(self, session: Session) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Mutations

    def create_market(
        self,
        *,
        question: str,
        closing_date: datetime,
        question_type_detailed: str | None = None,
        resolution_criteria: str | None = None,
        token_symbol: str | None = None,
        question_type: str = "yes_no",
        status: str = MarketStatus.ACTIVE.value,
        market_id: str | None = None,
    ) -> Market:
        market = Market(
            market_id=market_id or str(uuid.uuid4()),
            question=question,
            question_type=question_type,
            question_type_detailed=question_type_detailed,
            resolution_criteria=resolution_criteria,
            token_symbol=token_symbol,
            closing_date=closing_date,
            status=status,
        )
        self._session.add(market)
        self._session.flush()
        return market

    def update_market(
        self,
        market_id: str,
        values: dict[str, Any],
        *,
        expected_status: str | None = None,
    ) -> bool:
        """Apply ``values`` to one market and report whether a row changed.

        With ``expected_status`` the update only lands while the row still has
        that status, so concurrent resolvers cannot both write a terminal state.
        """

        statement = update(Market).where(Market.market_id == market_id)
        if expected_status is not None:
            statement = statement.where(Market.status == expected_status)
        statement = statement.values(**values).execution_options(synchronize_session=False)
        try:
            result = self._session.execute(statement)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Failed to update market {market_id}") from exc
        return bool(result.rowcount)

    # ------------------------------------------------------------------
    # Queries

    def get_market(self, market_id: str) -> Market | None:
        return self._session.execute(
            select(Market).where(Market.market_id == market_id)
        ).scalar_one_or_none()

    def list_markets(
        self,
        *,
        status: str | None = None,
        closing_before: datetime | None = None,
        sort: str = "closing_date",
        order: str = "asc",
        limit: int | None = 50,
        offset: int = 0,
    ) -> tuple[list[Market], int]:
        filters = self._filters(status=status, closing_before=closing_before)

        sort_column = {
            "closing_date": Market.closing_date,
            "created_at": Market.created_at,
            "resolved_at": Market.resolved_at,
        }.get(sort, Market.closing_date)
        sort_direction = asc if order.lower() != "desc" else desc

        query = (
            select(Market)
            .where(*filters)
            .order_by(sort_direction(sort_column), Market.market_id.asc())
            .offset(offset)
        )
        if limit:
            query = query.limit(limit)

        markets = list(self._session.execute(query).scalars().all())
        total = self._session.execute(
            select(func.count(Market.market_id)).where(*filters)
        ).scalar_one()
        return markets, total

    def count_markets(
        self,
        *,
        status: str | None = None,
        closing_before: datetime | None = None,
        resolved_from: datetime | None = None,
        resolved_to: datetime | None = None,
    ) -> int:
        filters = self._filters(
            status=status,
            closing_before=closing_before,
            resolved_from=resolved_from,
            resolved_to=resolved_to,
        )
        return self._session.execute(
            select(func.count(Market.market_id)).where(*filters)
        ).scalar_one()

    @staticmethod
    def _filters(
        *,
        status: str | None = None,
        closing_before: datetime | None = None,
        resolved_from: datetime | None = None,
        resolved_to: datetime | None = None,
    ) -> list[Any]:
        filters: list[Any] = []
        if status:
            filters.append(Market.status == status)
        if closing_before is not None:
            filters.append(Market.closing_date < closing_before)
        if resolved_from is not None:
            filters.append(Market.resolved_at >= resolved_from)
        if resolved_to is not None:
            filters.append(Market.resolved_at < resolved_to)
        return filters


__all__ = ["MarketRepository"]
