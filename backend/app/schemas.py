from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field, field_validator


def _assume_utc(value: Any) -> Any:
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MarketBase(BaseModel):
    market_id: str
    question: str
    question_type: str
    question_type_detailed: str | None = None
    resolution_criteria: str | None = None
    token_symbol: str | None = None
    closing_date: datetime
    status: str
    created_at: datetime | None = None

    @field_validator("closing_date", "created_at", mode="before")
    @classmethod
    def _coerce_timezone(cls, value: Any) -> Any:
        return _assume_utc(value)


class MarketResolution(BaseModel):
    market_id: str
    status: str
    resolution: str | None = None
    resolution_data: dict[str, Any] | None = None
    resolved_at: datetime | None = None
    dispute_reason: str | None = None

    model_config = {"from_attributes": True}

    @field_validator("resolved_at", mode="before")
    @classmethod
    def _coerce_timezone(cls, value: Any) -> Any:
        return _assume_utc(value)


class Market(MarketBase):
    resolution: str | None = None
    resolution_data: dict[str, Any] | None = None
    resolved_at: datetime | None = None
    dispute_reason: str | None = None

    model_config = {"from_attributes": True}

    @field_validator("resolved_at", mode="before")
    @classmethod
    def _coerce_resolved_at(cls, value: Any) -> Any:
        return _assume_utc(value)


class MarketList(BaseModel):
    total: int
    items: list[Market]


class ResolutionStats(BaseModel):
    total_markets: int
    active_markets: int
    closed_markets: int
    pending_resolutions: int
    resolved_today: int

    model_config = {"from_attributes": True}


class PendingResolution(BaseModel):
    market_id: str
    question: str
    question_type: str
    closing_date: datetime

    model_config = {"from_attributes": True}


class ResolutionOverview(BaseModel):
    stats: ResolutionStats
    pending: list[PendingResolution] = Field(default_factory=list)


class ResolutionRunSummary(BaseModel):
    checked_markets: int
    resolved: int
    disputed: int
    skipped: int
    failures: list[dict[str, Any]] = Field(default_factory=list)


class ResolutionRunResult(BaseModel):
    summary: ResolutionRunSummary
    stats: ResolutionStats


class MarketDescription(BaseModel):
    title: str
    description: str
    resolution_criteria: str
    data_sources: str
    edge_cases: str
    dispute_resolution: str
    market_context: str
    token_context: str
    historical_context: str
    liquidity_context: str
    confidence: float

    model_config = {"from_attributes": True}


class SmartQuestion(BaseModel):
    question: str
    timeframe: str
    expected_probability: float
    resolution_criteria: str
    question_type: str
    descriptions: list[MarketDescription] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class SmartQuestionList(BaseModel):
    symbol: str
    timeframe: str
    current_price: float
    items: list[SmartQuestion]
