"""End-to-end resolution of a single market: fetch, evaluate, assemble."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from loguru import logger

from app.core.config import Settings, get_settings
from app.domain import (
    DisputeRisk,
    MarketResolutionData,
    QuestionType,
    Resolution,
    ResolutionEvidence,
    ResolutionResult,
    ResolutionStatus,
)
from market_data import MarketDataFetcher

from .classifier import QuestionClassifier
from .evaluators import EvaluationParameters

FALLBACK_DATA_SOURCE = "Fallback Analysis"
FALLBACK_DISPUTE_REASON = "Used fallback resolution due to data error"

# Numeric targets in these markets are usually optimistic and end up unmet.
_FALLBACK_RESOLUTIONS: dict[str, Resolution] = {
    QuestionType.PRICE.value: Resolution.NO,
    QuestionType.MARKET_CAP.value: Resolution.NO,
    QuestionType.SUPPORT_RESISTANCE.value: Resolution.NO,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def fallback_resolution(question: str, question_type: str) -> Resolution:
    return _FALLBACK_RESOLUTIONS.get(question_type, Resolution.NO)


class ResolutionEngine:
    """Resolve one market. ``resolve_market`` always returns a decided record."""

    def __init__(
        self,
        fetcher: MarketDataFetcher | None = None,
        classifier: QuestionClassifier | None = None,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings or get_settings()
        self.fetcher = fetcher or MarketDataFetcher(settings=self.settings)
        self.classifier = classifier or QuestionClassifier(
            parameters=EvaluationParameters.from_settings(self.settings)
        )
        self._clock = clock

    def close(self) -> None:
        self.fetcher.close()

    def resolve_market(
        self,
        market_id: str,
        question: str,
        question_type: str,
        resolution_criteria: str,
        closing_date: datetime,
        opened_at: datetime | None = None,
    ) -> MarketResolutionData:
        logger.info("Resolving market {}: {!r}", market_id, question)
        try:
            data = self.fetcher.get_final_market_data(
                question, closing_date, opened_at=opened_at
            )
            logger.debug(
                "Market data for {}: price={}, volume={}, market_cap={}, samples={}",
                market_id,
                data.final_price,
                data.final_volume,
                data.final_market_cap,
                len(data.price_history),
            )
            result = self.classifier.evaluate(question, question_type, resolution_criteria, data)
        except Exception:
            logger.exception("Error resolving market {}; using fallback resolution", market_id)
            return self._fallback(
                market_id, question, question_type, resolution_criteria, closing_date
            )

        evidence = ResolutionEvidence(
            resolution_timestamp=self._clock(),
            data_source=data.data_source,
            confidence=result.confidence,
            final_price=data.final_price,
            final_volume=data.final_volume,
            final_market_cap=data.final_market_cap,
            price_history=list(data.price_history),
            volume_history=list(data.volume_history),
            explanation=result.explanation,
        )
        status = (
            ResolutionStatus.DISPUTED
            if result.resolution is Resolution.DISPUTED
            else ResolutionStatus.RESOLVED
        )
        logger.info(
            "Market {} resolved: {} (confidence {:.2f}, dispute risk {})",
            market_id,
            result.resolution.value,
            result.confidence,
            result.dispute_risk.value,
        )
        return MarketResolutionData(
            market_id=market_id,
            question=question,
            question_type=question_type,
            resolution_criteria=resolution_criteria,
            closing_date=closing_date,
            resolution_status=status,
            resolution=result.resolution,
            resolution_data=evidence,
            dispute_reason=self._dispute_reason(result),
        )

    def _dispute_reason(self, result: ResolutionResult) -> str | None:
        if result.resolution is Resolution.DISPUTED:
            return result.explanation
        if result.dispute_risk is not DisputeRisk.LOW:
            return f"{result.dispute_risk.value.capitalize()} dispute risk detected"
        if result.confidence < self.settings.resolution_low_confidence_threshold:
            return f"Low confidence resolution ({result.confidence:.2f})"
        return None

    def _fallback(
        self,
        market_id: str,
        question: str,
        question_type: str,
        resolution_criteria: str,
        closing_date: datetime,
    ) -> MarketResolutionData:
        resolution = fallback_resolution(question, question_type)
        logger.warning("Fallback resolution for {}: {}", market_id, resolution.value)
        return MarketResolutionData(
            market_id=market_id,
            question=question,
            question_type=question_type,
            resolution_criteria=resolution_criteria,
            closing_date=closing_date,
            resolution_status=ResolutionStatus.RESOLVED,
            resolution=resolution,
            resolution_data=ResolutionEvidence(
                resolution_timestamp=self._clock(),
                data_source=FALLBACK_DATA_SOURCE,
                confidence=self.settings.resolution_fallback_confidence,
            ),
            dispute_reason=FALLBACK_DISPUTE_REASON,
        )


def resolve_market(
    market_id: str,
    question: str,
    question_type: str,
    resolution_criteria: str,
    closing_date: datetime,
    opened_at: datetime | None = None,
) -> MarketResolutionData:
    """One-shot convenience wrapper that builds and disposes of an engine."""

    engine = ResolutionEngine()
    try:
        return engine.resolve_market(
            market_id,
            question,
            question_type,
            resolution_criteria,
            closing_date,
            opened_at=opened_at,
        )
    finally:
        engine.close()


__all__ = [
    "FALLBACK_DATA_SOURCE",
    "FALLBACK_DISPUTE_REASON",
    "ResolutionEngine",
    "fallback_resolution",
    "resolve_market",
]
