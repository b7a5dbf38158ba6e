"""Typed domain representations shared by the fetcher, evaluators, engine and scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class QuestionType(str, Enum):
    PRICE = "price"
    VOLUME = "volume"
    MARKET_CAP = "market_cap"
    TREND = "trend"
    SUPPORT_RESISTANCE = "support_resistance"
    ATH_ATL = "ath_atl"
    MOMENTUM = "momentum"
    VOLATILITY = "volatility"
    TIME_SENSITIVE = "time_sensitive"


class Resolution(str, Enum):
    YES = "yes"
    NO = "no"
    DISPUTED = "disputed"


class DisputeRisk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ResolutionStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    DISPUTED = "disputed"


@dataclass(slots=True, frozen=True)
class PriceSnapshot:
    """A single timestamped price observation used as resolution evidence."""

    timestamp: datetime
    price: float
    volume: float
    source: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "price": self.price,
            "volume": self.volume,
            "source": self.source,
        }


@dataclass(slots=True, frozen=True)
class VolumeSnapshot:
    timestamp: datetime
    volume_24h: float
    volume_1h: float
    source: str
    market_cap: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "volume24h": self.volume_24h,
            "volume1h": self.volume_1h,
            "marketCap": self.market_cap,
            "source": self.source,
        }


@dataclass(slots=True, frozen=True)
class TokenSnapshot:
    """Current provider data for a single token."""

    symbol: str
    coin_id: str
    name: str
    current_price: float
    market_cap: float
    total_volume: float
    price_change_24h: float = 0.0
    price_change_7d: float = 0.0
    price_change_30d: float = 0.0
    ath: float | None = None
    atl: float | None = None
    last_updated: datetime | None = None
    source: str = "CoinGecko"


@dataclass(slots=True)
class FinalMarketData:
    """Everything an evaluator may look at when deciding a market."""

    final_price: float
    final_volume: float
    final_market_cap: float
    price_history: list[PriceSnapshot] = field(default_factory=list)
    volume_history: list[VolumeSnapshot] = field(default_factory=list)
    ath: float | None = None
    atl: float | None = None
    data_source: str = "CoinGecko"


@dataclass(slots=True)
class ResolutionResult:
    success: bool
    resolution: Resolution
    confidence: float
    data: dict[str, Any] | None
    explanation: str
    dispute_risk: DisputeRisk

    @classmethod
    def disputed(cls, explanation: str) -> "ResolutionResult":
        """Fail-closed outcome for questions that cannot be decided mechanically."""

        return cls(
            success=False,
            resolution=Resolution.DISPUTED,
            confidence=0.0,
            data=None,
            explanation=explanation,
            dispute_risk=DisputeRisk.HIGH,
        )


@dataclass(slots=True)
class ResolutionEvidence:
    resolution_timestamp: datetime
    data_source: str
    confidence: float
    final_price: float | None = None
    final_volume: float | None = None
    final_market_cap: float | None = None
    price_history: list[PriceSnapshot] = field(default_factory=list)
    volume_history: list[VolumeSnapshot] = field(default_factory=list)
    explanation: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON document stored in ``markets.resolution_data``."""

        return {
            "finalPrice": self.final_price,
            "finalVolume": self.final_volume,
            "finalMarketCap": self.final_market_cap,
            "priceHistory": [snapshot.to_dict() for snapshot in self.price_history],
            "volumeHistory": [snapshot.to_dict() for snapshot in self.volume_history],
            "resolutionTimestamp": self.resolution_timestamp.isoformat(),
            "dataSource": self.data_source,
            "confidence": self.confidence,
            "explanation": self.explanation,
        }


@dataclass(slots=True)
class MarketResolutionData:
    market_id: str
    question: str
    question_type: str
    resolution_criteria: str
    closing_date: datetime
    resolution_status: ResolutionStatus
    resolution: Resolution
    resolution_data: ResolutionEvidence
    dispute_reason: str | None = None


@dataclass(slots=True)
class ScheduledResolution:
    market_id: str
    question: str
    question_type: str
    resolution_criteria: str
    closing_date: datetime
    opened_at: datetime | None = None
    status: str = "pending"
    attempts: int = 0
    last_attempt: datetime | None = None
    error: str | None = None


@dataclass(slots=True)
class ResolutionStats:
    total_markets: int = 0
    active_markets: int = 0
    closed_markets: int = 0
    pending_resolutions: int = 0
    resolved_today: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "total_markets": self.total_markets,
            "active_markets": self.active_markets,
            "closed_markets": self.closed_markets,
            "pending_resolutions": self.pending_resolutions,
            "resolved_today": self.resolved_today,
        }
