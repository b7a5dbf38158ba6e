from __future__ import annotations

import sys
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings
from app.db import Base
from app.domain import FinalMarketData, PriceSnapshot
from app.models import Market, MarketStatus

CLOSING = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def price_path(
    prices: list[float],
    *,
    start: datetime = CLOSING - timedelta(hours=1),
    step: timedelta = timedelta(minutes=5),
) -> list[PriceSnapshot]:
    return [
        PriceSnapshot(timestamp=start + step * index, price=price, volume=1_000_000.0, source="test")
        for index, price in enumerate(prices)
    ]


def market_data(
    prices: list[float],
    *,
    step: timedelta = timedelta(minutes=5),
    start: datetime = CLOSING - timedelta(hours=1),
    volume: float = 50_000_000.0,
    market_cap: float = 2_000_000_000.0,
    ath: float | None = None,
    atl: float | None = None,
) -> FinalMarketData:
    path = price_path(prices, start=start, step=step)
    return FinalMarketData(
        final_price=path[-1].price if path else 0.0,
        final_volume=volume,
        final_market_cap=market_cap,
        price_history=path,
        ath=ath,
        atl=atl,
        data_source="test",
    )


@pytest.fixture
def test_settings(tmp_path, monkeypatch) -> Settings:
    settings = Settings(
        database_url=f"sqlite:///{tmp_path/'market_resolver.db'}",
        coingecko_base_url="https://api.coingecko.test/api/v3",
        coingecko_pro_base_url="https://pro-api.coingecko.test/api/v3",
        coingecko_api_key=None,
        cron_secret=None,
    )
    monkeypatch.setattr("app.core.config.get_settings", lambda: settings)
    monkeypatch.setattr("app.core.config.settings", settings)
    return settings


@pytest.fixture
def session_factory() -> Iterator[sessionmaker[Session]]:
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(bind=engine, autoflush=True, autocommit=False, future=True)
    finally:
        engine.dispose()


@pytest.fixture
def session_scope(session_factory):
    @contextmanager
    def scope() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return scope


@pytest.fixture
def add_market(session_scope):
    def add(
        market_id: str,
        *,
        question: str = "Will WIF reach $2.50 by the deadline?",
        closing_date: datetime = CLOSING,
        status: str = MarketStatus.ACTIVE.value,
        question_type_detailed: str | None = "price",
        resolution_criteria: str | None = "Price must reach or exceed $2.50",
        **extra,
    ) -> None:
        with session_scope() as session:
            session.add(
                Market(
                    market_id=market_id,
                    question=question,
                    closing_date=closing_date,
                    status=status,
                    question_type_detailed=question_type_detailed,
                    resolution_criteria=resolution_criteria,
                    **extra,
                )
            )

    return add
