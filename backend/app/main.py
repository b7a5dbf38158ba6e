from __future__ import annotations

import hmac
from collections.abc import Iterator
from datetime import datetime, timezone
from typing import Annotated

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from loguru import logger

from . import schemas
from .core.config import Settings, get_settings, settings
from .db import get_db, init_db
from .models import MarketStatus
from .resolution import FetchError
from .resolution.evaluators import EvaluationParameters
from .services.description_service import generate_descriptions
from .services.market_service import MarketQuery, MarketService
from .services.question_service import TIMEFRAMES, generate_questions
from .services.scheduler import MarketScheduler, scheduled_from_market
from market_data import MarketDataFetcher

app = FastAPI(title="Market Resolution API", version="0.1.0", debug=settings.debug)


@app.on_event("startup")
def on_startup() -> None:
    """Initialize database connections when the API boots."""

    init_db()


@app.get("/healthz", tags=["system"])
def healthcheck() -> dict[str, str]:
    """Basic readiness check consumed by infrastructure monitors."""

    return {"status": "ok"}


def _market_query(
    *,
    status: Annotated[str | None, Query(description="Market status filter", example="active")] = None,
    closing_before: Annotated[
        datetime | None,
        Query(description="Return markets closing before this timestamp"),
    ] = None,
    sort: Annotated[
        str,
        Query(description="Field to sort by", pattern="^(closing_date|created_at|resolved_at)$"),
    ] = "closing_date",
    order: Annotated[
        str,
        Query(description="Sort order (asc|desc)", pattern="^(asc|desc)$", min_length=3, max_length=4),
    ] = "asc",
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> MarketQuery:
    """Normalize shared market listing query parameters."""

    return MarketQuery(
        status=status,
        closing_before=closing_before,
        sort=sort,
        order=order,
        limit=limit,
        offset=offset,
    )


def _market_service(db=Depends(get_db)) -> MarketService:
    """Provide the market service wired with a SQLAlchemy session."""

    return MarketService(db)


def _scheduler() -> Iterator[MarketScheduler]:
    scheduler = MarketScheduler()
    try:
        yield scheduler
    finally:
        scheduler.close()


def _fetcher() -> Iterator[MarketDataFetcher]:
    fetcher = MarketDataFetcher()
    try:
        yield fetcher
    finally:
        fetcher.close()


def _require_cron_secret(
    authorization: Annotated[str | None, Header()] = None,
    config: Settings = Depends(get_settings),
) -> None:
    """Reject batch runs that do not carry the configured bearer token."""

    if not config.cron_secret:
        return
    expected = f"Bearer {config.cron_secret}"
    if not authorization or not hmac.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")


@app.get("/markets", response_model=schemas.MarketList, tags=["markets"])
def list_markets(
    *,
    query: MarketQuery = Depends(_market_query),
    service: MarketService = Depends(_market_service),
):
    """List markets with optional pagination and filtering controls."""

    result = service.list_markets(query)
    return schemas.MarketList(total=result.total, items=list(result.markets))


@app.get("/markets/{market_id}", response_model=schemas.Market, tags=["markets"])
def get_market(market_id: str, service: MarketService = Depends(_market_service)):
    market = service.get_market(market_id)
    if not market:
        raise HTTPException(status_code=404, detail="Market not found")
    return market


@app.get(
    "/markets/{market_id}/resolution",
    response_model=schemas.MarketResolution,
    tags=["resolution"],
)
def get_market_resolution(market_id: str, service: MarketService = Depends(_market_service)):
    resolution = service.get_resolution(market_id)
    if not resolution:
        raise HTTPException(status_code=404, detail="Market not found")
    return resolution


@app.post(
    "/markets/{market_id}/resolve",
    response_model=schemas.MarketResolution,
    tags=["resolution"],
)
def resolve_market(
    market_id: str,
    service: MarketService = Depends(_market_service),
    scheduler: MarketScheduler = Depends(_scheduler),
):
    """Resolve a single market immediately once its closing date has passed."""

    market = service.get_market(market_id)
    if not market:
        raise HTTPException(status_code=404, detail="Market not found")
    if market.status == MarketStatus.CLOSED.value:
        raise HTTPException(status_code=400, detail="Market already resolved")
    if market.status != MarketStatus.ACTIVE.value:
        raise HTTPException(status_code=400, detail="Market is not active")
    if market.closing_date > datetime.now(timezone.utc):
        raise HTTPException(status_code=400, detail="Market has not reached its closing date")

    scheduled = scheduled_from_market(market)
    if not scheduler.process_market_resolution(scheduled):
        if scheduled.status == "skipped":
            raise HTTPException(status_code=400, detail="Market already resolved")
        logger.error("Manual resolution of market {} failed: {}", market_id, scheduled.error)
        raise HTTPException(status_code=500, detail="Failed to resolve market")

    return service.get_resolution(market_id)


@app.get("/resolutions", response_model=schemas.ResolutionOverview, tags=["resolution"])
def resolution_overview(scheduler: MarketScheduler = Depends(_scheduler)):
    """Aggregate counts plus the markets waiting for the next resolution run."""

    stats = scheduler.get_resolution_stats()
    pending = scheduler.check_pending_resolutions()
    return schemas.ResolutionOverview(
        stats=schemas.ResolutionStats.model_validate(stats),
        pending=[schemas.PendingResolution.model_validate(item) for item in pending],
    )


@app.post(
    "/resolutions/run",
    response_model=schemas.ResolutionRunResult,
    tags=["resolution"],
    dependencies=[Depends(_require_cron_secret)],
)
def run_resolutions(
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
    scheduler: MarketScheduler = Depends(_scheduler),
):
    """Resolve every pending market; invoked by the cron trigger."""

    summary = scheduler.process_all_pending_resolutions(limit)
    stats = scheduler.get_resolution_stats()
    return schemas.ResolutionRunResult(
        summary=schemas.ResolutionRunSummary(**summary.to_dict()),
        stats=schemas.ResolutionStats.model_validate(stats),
    )


@app.get(
    "/tokens/{symbol}/questions",
    response_model=schemas.SmartQuestionList,
    tags=["questions"],
)
def suggest_questions(
    symbol: str,
    timeframe: Annotated[str, Query(pattern="^(1H|3H|6H|12H|24H)$")] = "24H",
    fetcher: MarketDataFetcher = Depends(_fetcher),
    config: Settings = Depends(get_settings),
):
    """Suggest fair, mechanically resolvable questions for a supported token.

    Each item carries plain-language descriptions of how it will be resolved.
    """

    ticker = symbol.upper()
    if ticker not in fetcher.allowlist:
        raise HTTPException(status_code=404, detail="Unsupported token")
    if timeframe not in TIMEFRAMES:
        raise HTTPException(status_code=400, detail="Unsupported timeframe")

    try:
        token = fetcher.get_token_snapshot(ticker)
    except FetchError as exc:
        logger.warning("Question suggestions unavailable for {}: {}", ticker, exc)
        raise HTTPException(status_code=503, detail="Market data unavailable") from exc

    questions = generate_questions(token, timeframe)
    params = EvaluationParameters.from_settings(config)
    return schemas.SmartQuestionList(
        symbol=ticker,
        timeframe=timeframe,
        current_price=token.current_price,
        items=[
            schemas.SmartQuestion(
                question=item.question,
                timeframe=item.timeframe,
                expected_probability=item.expected_probability,
                resolution_criteria=item.resolution_criteria,
                question_type=item.question_type.value,
                descriptions=[
                    schemas.MarketDescription.model_validate(description)
                    for description in generate_descriptions(item, token, params)
                ],
            )
            for item in questions
        ],
    )
