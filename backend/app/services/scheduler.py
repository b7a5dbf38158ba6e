"""Find markets past their closing date and resolve them one at a time."""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.db import session_scope
from app.domain import Resolution, ResolutionStats, ScheduledResolution
from app.models import Market, MarketStatus
from app.repositories import MarketRepository
from app.resolution import PersistenceError, infer_question_type
from app.resolution.engine import ResolutionEngine
from app.schemas import Market as MarketSchema

PROCESSING_FAILED_REASON = "Resolution processing failed"

SessionScope = Callable[[], AbstractContextManager[Session]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def scheduled_from_market(market: Market | MarketSchema) -> ScheduledResolution:
    """Snapshot a market so it can be resolved outside its session."""

    question_type = market.question_type_detailed or infer_question_type(market.question).value
    return ScheduledResolution(
        market_id=market.market_id,
        question=market.question,
        question_type=question_type,
        resolution_criteria=market.resolution_criteria or "",
        closing_date=_as_utc(market.closing_date),
        opened_at=_as_utc(market.created_at) if market.created_at else None,
    )


@dataclass(slots=True)
class ResolutionSummary:
    checked_markets: int = 0
    resolved: int = 0
    disputed: int = 0
    skipped: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "checked_markets": self.checked_markets,
            "resolved": self.resolved,
            "disputed": self.disputed,
            "skipped": self.skipped,
            "failures": self.failures,
        }


class MarketScheduler:
    """Drive resolution of every active market whose closing date has passed.

    Each market gets its own session so a failed write never rolls back a
    neighbour's resolution. Terminal writes are conditional on the row still
    being ``active``; a market closed by a concurrent run is skipped.
    """

    def __init__(
        self,
        engine: ResolutionEngine | None = None,
        *,
        settings: Settings | None = None,
        session_factory: SessionScope = session_scope,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.settings = settings or get_settings()
        self.engine = engine or ResolutionEngine(settings=self.settings)
        self._session_scope = session_factory
        self._clock = clock

    def close(self) -> None:
        self.engine.close()

    def check_pending_resolutions(self, limit: int | None = None) -> list[ScheduledResolution]:
        now = self._clock()
        with self._session_scope() as session:
            markets, _ = MarketRepository(session).list_markets(
                status=MarketStatus.ACTIVE.value,
                closing_before=now,
                limit=limit or self.settings.resolution_batch_limit,
            )
            return [scheduled_from_market(market) for market in markets]

    def process_market_resolution(self, resolution: ScheduledResolution) -> bool:
        resolution.attempts += 1
        resolution.last_attempt = self._clock()

        outcome = self.engine.resolve_market(
            resolution.market_id,
            resolution.question,
            resolution.question_type,
            resolution.resolution_criteria,
            resolution.closing_date,
            opened_at=resolution.opened_at,
        )
        values = {
            "status": MarketStatus.CLOSED.value,
            "resolution": outcome.resolution.value,
            "resolution_data": outcome.resolution_data.to_dict(),
            "resolved_at": self._clock(),
            "dispute_reason": outcome.dispute_reason,
        }

        try:
            with self._session_scope() as session:
                written = MarketRepository(session).update_market(
                    resolution.market_id,
                    values,
                    expected_status=MarketStatus.ACTIVE.value,
                )
        except (PersistenceError, SQLAlchemyError) as exc:
            logger.exception("Failed to store resolution for market {}", resolution.market_id)
            resolution.status = "failed"
            resolution.error = str(exc)
            self._mark_processing_failed(resolution.market_id)
            return False

        if not written:
            logger.info("Market {} is no longer active; skipping", resolution.market_id)
            resolution.status = "skipped"
            return False

        resolution.status = (
            "disputed" if outcome.resolution is Resolution.DISPUTED else "resolved"
        )
        logger.info(
            "Market {} closed with resolution {}", resolution.market_id, outcome.resolution.value
        )
        return True

    def _mark_processing_failed(self, market_id: str) -> None:
        values = {
            "status": MarketStatus.CLOSED.value,
            "resolution": Resolution.DISPUTED.value,
            "resolved_at": self._clock(),
            "dispute_reason": PROCESSING_FAILED_REASON,
        }
        try:
            with self._session_scope() as session:
                written = MarketRepository(session).update_market(
                    market_id, values, expected_status=MarketStatus.ACTIVE.value
                )
        except (PersistenceError, SQLAlchemyError):
            logger.critical(
                "Market {} could not be marked as disputed and remains active past its closing date",
                market_id,
            )
            return

        if written:
            logger.warning("Market {} marked as disputed after a processing failure", market_id)
        else:
            logger.info("Market {} is no longer active; remediation skipped", market_id)

    def process_all_pending_resolutions(self, limit: int | None = None) -> ResolutionSummary:
        summary = ResolutionSummary()
        pending = self.check_pending_resolutions(limit)
        logger.info("Found {} markets pending resolution", len(pending))

        for item in pending:
            summary.checked_markets += 1
            try:
                succeeded = self.process_market_resolution(item)
            except Exception as exc:
                logger.exception("Unexpected error resolving market {}", item.market_id)
                summary.failures.append({"market_id": item.market_id, "reason": str(exc)})
                continue

            if succeeded:
                if item.status == "disputed":
                    summary.disputed += 1
                else:
                    summary.resolved += 1
            elif item.status == "skipped":
                summary.skipped += 1
            else:
                summary.failures.append(
                    {"market_id": item.market_id, "reason": item.error or PROCESSING_FAILED_REASON}
                )

        logger.info(
            "Resolution sweep finished: checked={}, resolved={}, disputed={}, skipped={}, failures={}",
            summary.checked_markets,
            summary.resolved,
            summary.disputed,
            summary.skipped,
            len(summary.failures),
        )
        return summary

    def get_resolution_stats(self) -> ResolutionStats:
        now = self._clock()
        day_start = now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        day_end = day_start + timedelta(days=1)

        with self._session_scope() as session:
            repo = MarketRepository(session)
            return ResolutionStats(
                total_markets=repo.count_markets(),
                active_markets=repo.count_markets(status=MarketStatus.ACTIVE.value),
                closed_markets=repo.count_markets(status=MarketStatus.CLOSED.value),
                pending_resolutions=repo.count_markets(
                    status=MarketStatus.ACTIVE.value, closing_before=now
                ),
                resolved_today=repo.count_markets(
                    status=MarketStatus.CLOSED.value,
                    resolved_from=day_start,
                    resolved_to=day_end,
                ),
            )


__all__ = [
    "MarketScheduler",
    "PROCESSING_FAILED_REASON",
    "ResolutionSummary",
    "scheduled_from_market",
]
