from __future__ import annotations

from datetime import timedelta

from app.models import Market, MarketStatus
from app.repositories import MarketRepository
from app.services.market_service import MarketQuery, MarketService
from conftest import CLOSING


def test_create_market_assigns_id_and_defaults(session_scope):
    with session_scope() as session:
        market = MarketRepository(session).create_market(
            question="Will SOL close above $190 today?",
            closing_date=CLOSING,
            question_type_detailed="time_sensitive",
            token_symbol="SOL",
        )
        market_id = market.market_id

    with session_scope() as session:
        stored = session.get(Market, market_id)
        assert stored.status == MarketStatus.ACTIVE.value
        assert stored.question_type == "yes_no"
        assert stored.token_symbol == "SOL"
        assert stored.resolution is None
        assert stored.created_at is not None


def test_list_markets_filters_sorts_and_paginates(session_scope, add_market):
    for offset_minutes, market_id in [(30, "late"), (10, "early"), (20, "middle")]:
        add_market(market_id, closing_date=CLOSING + timedelta(minutes=offset_minutes))
    add_market("closed", status=MarketStatus.CLOSED.value)

    with session_scope() as session:
        repo = MarketRepository(session)
        markets, total = repo.list_markets(status=MarketStatus.ACTIVE.value, limit=2)
        assert total == 3
        assert [market.market_id for market in markets] == ["early", "middle"]

        markets, _ = repo.list_markets(
            status=MarketStatus.ACTIVE.value, order="desc", limit=2, offset=1
        )
        assert [market.market_id for market in markets] == ["middle", "early"]

        markets, total = repo.list_markets(closing_before=CLOSING + timedelta(minutes=20))
        assert total == 2
        assert {market.market_id for market in markets} == {"early", "closed"}


def test_closing_before_is_strict(session_scope, add_market):
    add_market("boundary")

    with session_scope() as session:
        repo = MarketRepository(session)
        assert repo.count_markets(closing_before=CLOSING) == 0
        assert repo.count_markets(closing_before=CLOSING + timedelta(seconds=1)) == 1


def test_conditional_update_only_applies_to_expected_status(session_scope, add_market):
    add_market("m-1")
    values = {"status": MarketStatus.CLOSED.value, "resolution": "yes"}

    with session_scope() as session:
        repo = MarketRepository(session)
        assert repo.update_market("m-1", values, expected_status=MarketStatus.ACTIVE.value)
    with session_scope() as session:
        repo = MarketRepository(session)
        assert not repo.update_market(
            "m-1", {"resolution": "no"}, expected_status=MarketStatus.ACTIVE.value
        )
        assert not repo.update_market("missing", values)

    with session_scope() as session:
        assert session.get(Market, "m-1").resolution == "yes"


def test_market_service_returns_timezone_aware_schemas(session_scope, add_market):
    add_market("m-1")

    with session_scope() as session:
        service = MarketService(session)
        result = service.list_markets(MarketQuery(status=MarketStatus.ACTIVE.value))
        resolution = service.get_resolution("m-1")

    assert result.total == 1
    (market,) = result.markets
    assert market.closing_date == CLOSING
    assert market.closing_date.tzinfo is not None
    assert resolution.status == MarketStatus.ACTIVE.value
    assert resolution.resolution is None
