from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from app import schemas
from app.core.config import Settings, get_settings
from app.domain import ResolutionStats, ScheduledResolution, TokenSnapshot
from app.main import _fetcher, _market_service, _scheduler, app
from app.resolution import FetchError
from app.services.market_service import MarketQueryResult
from app.services.scheduler import ResolutionSummary

PAST = datetime(2020, 1, 1, tzinfo=timezone.utc)
FUTURE = datetime(2999, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def client():
    """Test client that cleans up dependency overrides after each test."""
    yield TestClient(app)
    app.dependency_overrides.clear()


def _market(status: str = "active", closing_date: datetime = PAST, **extra) -> schemas.Market:
    return schemas.Market(
        market_id="m-1",
        question="Will WIF reach $2.50 by the deadline?",
        question_type="yes_no",
        question_type_detailed="price",
        resolution_criteria="Price must reach or exceed $2.50",
        token_symbol="WIF",
        closing_date=closing_date,
        status=status,
        **extra,
    )


def _override(dependency, value) -> None:
    app.dependency_overrides[dependency] = lambda: value


def test_healthcheck(client):
    response = client.get("/healthz")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_list_markets(client):
    """Verify the /markets endpoint forwards filters and returns the page."""
    mock_service = MagicMock()
    mock_service.list_markets.return_value = MarketQueryResult(total=1, markets=[_market()])
    _override(_market_service, mock_service)

    response = client.get("/markets", params={"status": "active", "order": "desc", "limit": 10})

    assert response.status_code == 200
    payload = response.json()
    assert payload["total"] == 1
    assert payload["items"][0]["market_id"] == "m-1"
    query = mock_service.list_markets.call_args.args[0]
    assert query.status == "active"
    assert query.order == "desc"
    assert query.limit == 10


def test_list_markets_rejects_unknown_sort(client):
    _override(_market_service, MagicMock())

    response = client.get("/markets", params={"sort": "question"})

    assert response.status_code == 422


def test_get_market_not_found(client):
    mock_service = MagicMock()
    mock_service.get_market.return_value = None
    _override(_market_service, mock_service)

    response = client.get("/markets/non-existent-id")

    assert response.status_code == 404
    mock_service.get_market.assert_called_once_with("non-existent-id")


def test_get_market_resolution(client):
    mock_service = MagicMock()
    mock_service.get_resolution.return_value = schemas.MarketResolution(
        market_id="m-1",
        status="closed",
        resolution="yes",
        resolution_data={"dataSource": "CoinGecko", "confidence": 0.95},
        resolved_at=PAST,
    )
    _override(_market_service, mock_service)

    response = client.get("/markets/m-1/resolution")

    assert response.status_code == 200
    payload = response.json()
    assert payload["resolution"] == "yes"
    assert payload["resolution_data"]["dataSource"] == "CoinGecko"
    assert payload["dispute_reason"] is None


@pytest.mark.parametrize(
    "market, detail",
    [
        (_market(status="closed"), "Market already resolved"),
        (_market(status="pending"), "Market is not active"),
        (_market(closing_date=FUTURE), "Market has not reached its closing date"),
    ],
)
def test_resolve_market_guards(client, market, detail):
    mock_service = MagicMock()
    mock_service.get_market.return_value = market
    scheduler = MagicMock()
    _override(_market_service, mock_service)
    _override(_scheduler, scheduler)

    response = client.post("/markets/m-1/resolve")

    assert response.status_code == 400
    assert response.json()["detail"] == detail
    scheduler.process_market_resolution.assert_not_called()


def test_resolve_unknown_market_returns_404(client):
    mock_service = MagicMock()
    mock_service.get_market.return_value = None
    _override(_market_service, mock_service)
    _override(_scheduler, MagicMock())

    response = client.post("/markets/missing/resolve")

    assert response.status_code == 404


def test_resolve_market_success(client):
    mock_service = MagicMock()
    mock_service.get_market.return_value = _market()
    mock_service.get_resolution.return_value = schemas.MarketResolution(
        market_id="m-1", status="closed", resolution="no", resolved_at=PAST
    )
    scheduler = MagicMock()
    scheduler.process_market_resolution.return_value = True
    _override(_market_service, mock_service)
    _override(_scheduler, scheduler)

    response = client.post("/markets/m-1/resolve")

    assert response.status_code == 200
    assert response.json()["resolution"] == "no"
    (scheduled,) = scheduler.process_market_resolution.call_args.args
    assert scheduled.market_id == "m-1"
    assert scheduled.question_type == "price"
    assert scheduled.closing_date == PAST


def test_resolve_market_lost_race_returns_400(client):
    def skipped(resolution):
        resolution.status = "skipped"
        return False

    mock_service = MagicMock()
    mock_service.get_market.return_value = _market()
    scheduler = MagicMock()
    scheduler.process_market_resolution.side_effect = skipped
    _override(_market_service, mock_service)
    _override(_scheduler, scheduler)

    response = client.post("/markets/m-1/resolve")

    assert response.status_code == 400
    assert response.json()["detail"] == "Market already resolved"


def test_resolve_market_store_failure_returns_500(client):
    def failed(resolution):
        resolution.status = "failed"
        resolution.error = "database unavailable"
        return False

    mock_service = MagicMock()
    mock_service.get_market.return_value = _market()
    scheduler = MagicMock()
    scheduler.process_market_resolution.side_effect = failed
    _override(_market_service, mock_service)
    _override(_scheduler, scheduler)

    response = client.post("/markets/m-1/resolve")

    assert response.status_code == 500


def test_resolution_overview(client):
    scheduler = MagicMock()
    scheduler.get_resolution_stats.return_value = ResolutionStats(
        total_markets=4, active_markets=2, closed_markets=2, pending_resolutions=1, resolved_today=1
    )
    scheduler.check_pending_resolutions.return_value = [
        ScheduledResolution(
            market_id="m-1",
            question="Will WIF reach $2.50?",
            question_type="price",
            resolution_criteria="",
            closing_date=PAST,
        )
    ]
    _override(_scheduler, scheduler)

    response = client.get("/resolutions")

    assert response.status_code == 200
    payload = response.json()
    assert payload["stats"]["pending_resolutions"] == 1
    assert [item["market_id"] for item in payload["pending"]] == ["m-1"]


@pytest.fixture
def run_scheduler():
    scheduler = MagicMock()
    scheduler.process_all_pending_resolutions.return_value = ResolutionSummary(
        checked_markets=2, resolved=1, disputed=1
    )
    scheduler.get_resolution_stats.return_value = ResolutionStats(total_markets=2, closed_markets=2)
    _override(_scheduler, scheduler)
    return scheduler


def test_run_resolutions_requires_cron_secret(client, run_scheduler):
    _override(get_settings, Settings(cron_secret="s3cret"))

    missing = client.post("/resolutions/run")
    wrong = client.post("/resolutions/run", headers={"Authorization": "Bearer nope"})

    assert missing.status_code == 401
    assert wrong.status_code == 401
    run_scheduler.process_all_pending_resolutions.assert_not_called()


def test_run_resolutions_with_valid_secret(client, run_scheduler):
    _override(get_settings, Settings(cron_secret="s3cret"))

    response = client.post(
        "/resolutions/run",
        params={"limit": 5},
        headers={"Authorization": "Bearer s3cret"},
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["summary"]["checked_markets"] == 2
    assert payload["summary"]["disputed"] == 1
    assert payload["stats"]["closed_markets"] == 2
    run_scheduler.process_all_pending_resolutions.assert_called_once_with(5)


def test_run_resolutions_open_when_no_secret_configured(client, run_scheduler):
    _override(get_settings, Settings(cron_secret=None))

    response = client.post("/resolutions/run")

    assert response.status_code == 200
    run_scheduler.process_all_pending_resolutions.assert_called_once_with(None)


@pytest.fixture
def question_fetcher():
    fetcher = MagicMock()
    fetcher.allowlist = ("WIF", "SOL")
    fetcher.get_token_snapshot.return_value = TokenSnapshot(
        symbol="SOL",
        coin_id="solana",
        name="Solana",
        current_price=185.5,
        market_cap=90_000_000_000.0,
        total_volume=3_000_000_000.0,
        price_change_24h=12.0,
        ath=200.0,
        atl=150.0,
    )
    _override(_fetcher, fetcher)
    return fetcher


def test_suggest_questions(client, question_fetcher):
    response = client.get("/tokens/sol/questions", params={"timeframe": "24H"})

    assert response.status_code == 200
    payload = response.json()
    assert payload["symbol"] == "SOL"
    assert payload["current_price"] == 185.5
    assert 0 < len(payload["items"]) <= 10
    assert all(0.1 <= item["expected_probability"] <= 0.9 for item in payload["items"])
    first = payload["items"][0]
    assert 1 <= len(first["descriptions"]) <= 3
    assert first["descriptions"][-1]["title"] == "Comprehensive Market Rules"
    assert "SOL" in first["descriptions"][0]["description"]
    question_fetcher.get_token_snapshot.assert_called_once_with("SOL")


def test_suggest_questions_unsupported_token(client, question_fetcher):
    response = client.get("/tokens/ADA/questions")

    assert response.status_code == 404
    question_fetcher.get_token_snapshot.assert_not_called()


def test_suggest_questions_rejects_unknown_timeframe(client, question_fetcher):
    response = client.get("/tokens/SOL/questions", params={"timeframe": "2H"})

    assert response.status_code == 422


def test_suggest_questions_provider_down(client, question_fetcher):
    question_fetcher.get_token_snapshot.side_effect = FetchError("provider down")

    response = client.get("/tokens/WIF/questions")

    assert response.status_code == 503
