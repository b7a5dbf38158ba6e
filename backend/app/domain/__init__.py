"""Domain models representing market data and resolution outcomes."""

from .models import (
    DisputeRisk,
    FinalMarketData,
    MarketResolutionData,
    PriceSnapshot,
    QuestionType,
    Resolution,
    ResolutionEvidence,
    ResolutionResult,
    ResolutionStats,
    ResolutionStatus,
    ScheduledResolution,
    TokenSnapshot,
    VolumeSnapshot,
)

__all__ = [
    "DisputeRisk",
    "FinalMarketData",
    "MarketResolutionData",
    "PriceSnapshot",
    "QuestionType",
    "Resolution",
    "ResolutionEvidence",
    "ResolutionResult",
    "ResolutionStats",
    "ResolutionStatus",
    "ScheduledResolution",
    "TokenSnapshot",
    "VolumeSnapshot",
]
