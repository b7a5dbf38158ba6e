"""Per-question-type decision rules.

Each evaluator is a pure function of the question text, the advisory
resolution criteria and the fetched ``FinalMarketData``. Ambiguous or
unparseable questions resolve to ``disputed`` rather than a guessed
``yes``/``no``.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from statistics import fmean, pstdev
from typing import Any
from zoneinfo import ZoneInfo

from app.core.config import Settings
from app.domain import (
    DisputeRisk,
    FinalMarketData,
    PriceSnapshot,
    Resolution,
    ResolutionResult,
)

from .errors import ExtractionError
from .extraction import (
    contains_any,
    extract_dollar_target,
    extract_hours,
    extract_percentage,
    extract_scaled_target,
    targets_upward,
)

RESISTANCE_TERMS = ("resistance", "break")
SUPPORT_TERMS = ("support", "hold")
ATH_PATTERN = re.compile(r"\b(ath|all[- ]time[- ]high)\b", re.IGNORECASE)
ATL_PATTERN = re.compile(r"\b(atl|all[- ]time[- ]low)\b", re.IGNORECASE)
CLOSE_PATTERN = re.compile(r"\bclose\b", re.IGNORECASE)
MAINTAIN_PATTERN = re.compile(r"\b(maintain|stay|remain)\b", re.IGNORECASE)

US_MARKET_TZ = ZoneInfo("America/New_York")
US_TRADING_OPEN = time(9, 0)
US_TRADING_CLOSE = time(16, 0)


@dataclass(slots=True, frozen=True)
class EvaluationParameters:
    confirmation_period: timedelta = timedelta(minutes=2)
    resistance_samples: int = 2
    support_hold_ratio: float = 0.8
    momentum_window: timedelta = timedelta(minutes=30)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EvaluationParameters":
        return cls(
            confirmation_period=timedelta(seconds=settings.resolution_confirmation_seconds),
            resistance_samples=settings.resolution_resistance_samples,
            support_hold_ratio=settings.resolution_support_hold_ratio,
            momentum_window=timedelta(minutes=settings.resolution_momentum_window_minutes),
        )


DEFAULT_PARAMETERS = EvaluationParameters()

Evaluator = Callable[[str, str, FinalMarketData, EvaluationParameters], ResolutionResult]


# ----------------------------------------------------------------------
# Price path helpers


def _as_utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def ordered_path(history: Sequence[PriceSnapshot]) -> list[PriceSnapshot]:
    return sorted(history, key=lambda snapshot: _as_utc(snapshot.timestamp))


def reached_with_confirmation(
    path: Sequence[PriceSnapshot],
    target: float,
    upward: bool,
    period: timedelta,
) -> bool:
    """True when the condition holds continuously for at least ``period``.

    A single sample on the wrong side of the target restarts the window, so
    short spikes through the level never count.
    """

    window_start: datetime | None = None
    for snapshot in path:
        hit = snapshot.price >= target if upward else snapshot.price <= target
        if not hit:
            window_start = None
            continue
        timestamp = _as_utc(snapshot.timestamp)
        if window_start is None:
            window_start = timestamp
        if timestamp - window_start >= period:
            return True
    return False


def _relative_volatility(prices: Sequence[float]) -> float | None:
    mean = fmean(prices)
    if mean <= 0:
        return None
    return pstdev(prices) / mean


def price_confidence(path: Sequence[PriceSnapshot]) -> float:
    if len(path) < 3:
        return 0.5
    relative = _relative_volatility([snapshot.price for snapshot in path])
    if relative is None:
        return 0.0
    stability = max(0.0, 1.0 - relative)
    adequacy = min(1.0, len(path) / 10)
    return (stability + adequacy) / 2


def dispute_risk_for(path: Sequence[PriceSnapshot]) -> DisputeRisk:
    if len(path) < 3:
        return DisputeRisk.HIGH
    relative = _relative_volatility([snapshot.price for snapshot in path])
    if relative is None:
        return DisputeRisk.HIGH
    if relative < 0.02:
        return DisputeRisk.LOW
    if relative < 0.05:
        return DisputeRisk.MEDIUM
    return DisputeRisk.HIGH


def _tail(path: Sequence[PriceSnapshot], count: int) -> list[dict[str, Any]]:
    return [snapshot.to_dict() for snapshot in list(path)[-count:]]


def _outcome(flag: bool) -> Resolution:
    return Resolution.YES if flag else Resolution.NO


# ----------------------------------------------------------------------
# Evaluators


def evaluate_price(
    question: str,
    criteria: str,
    data: FinalMarketData,
    params: EvaluationParameters = DEFAULT_PARAMETERS,
) -> ResolutionResult:
    try:
        target = extract_dollar_target(question)
    except ExtractionError:
        return ResolutionResult.disputed("Could not extract price target from question")

    upward = targets_upward(question)
    path = ordered_path(data.price_history)
    if MAINTAIN_PATTERN.search(question):
        # Held on the right side of the level for every sample, not just once.
        condition = "maintain"
        reached = bool(path) and all(
            (s.price > target) if upward else (s.price < target) for s in path
        )
    else:
        condition = "reach"
        reached = reached_with_confirmation(path, target, upward, params.confirmation_period)

    return ResolutionResult(
        success=True,
        resolution=_outcome(reached),
        confidence=price_confidence(path),
        data={
            "targetPrice": target,
            "finalPrice": data.final_price,
            "condition": condition,
            "direction": "above" if upward else "below",
            "priceHistory": _tail(path, 10),
        },
        explanation=(
            f"Target price: ${target:.4f}, Final price: ${data.final_price:.4f}, "
            f"{'Held' if condition == 'maintain' else 'Reached'}: {reached}"
        ),
        dispute_risk=dispute_risk_for(path),
    )


def evaluate_volume(
    question: str,
    criteria: str,
    data: FinalMarketData,
    params: EvaluationParameters = DEFAULT_PARAMETERS,
) -> ResolutionResult:
    try:
        target = extract_scaled_target(question, ("K", "M", "B"))
    except ExtractionError:
        return ResolutionResult.disputed("Could not extract volume target from question")

    reached = data.final_volume >= target
    return ResolutionResult(
        success=True,
        resolution=_outcome(reached),
        confidence=0.95,
        data={
            "targetVolume": target,
            "finalVolume": data.final_volume,
            "volumeHistory": [snapshot.to_dict() for snapshot in data.volume_history[-5:]],
        },
        explanation=(
            f"Target volume: ${target / 1_000_000:.1f}M, "
            f"Final volume: ${data.final_volume / 1_000_000:.1f}M"
        ),
        dispute_risk=DisputeRisk.LOW,
    )


def evaluate_market_cap(
    question: str,
    criteria: str,
    data: FinalMarketData,
    params: EvaluationParameters = DEFAULT_PARAMETERS,
) -> ResolutionResult:
    try:
        target = extract_scaled_target(question, ("M", "B"))
    except ExtractionError:
        return ResolutionResult.disputed("Could not extract market cap target from question")

    reached = data.final_market_cap >= target
    return ResolutionResult(
        success=True,
        resolution=_outcome(reached),
        confidence=0.95,
        data={"targetMarketCap": target, "finalMarketCap": data.final_market_cap},
        explanation=(
            f"Target market cap: ${target / 1_000_000_000:.1f}B, "
            f"Final market cap: ${data.final_market_cap / 1_000_000_000:.1f}B"
        ),
        dispute_risk=DisputeRisk.LOW,
    )


def _broke_resistance(path: Sequence[PriceSnapshot], level: float, required: int) -> bool:
    consecutive = 0
    for snapshot in path:
        if snapshot.price > level:
            consecutive += 1
            if consecutive >= required:
                return True
        else:
            consecutive = 0
    return False


def evaluate_support_resistance(
    question: str,
    criteria: str,
    data: FinalMarketData,
    params: EvaluationParameters = DEFAULT_PARAMETERS,
) -> ResolutionResult:
    try:
        level = extract_dollar_target(question)
    except ExtractionError:
        return ResolutionResult.disputed(
            "Could not extract support/resistance level from question"
        )

    is_resistance = contains_any(question, RESISTANCE_TERMS)
    is_support = contains_any(question, SUPPORT_TERMS)
    if is_resistance == is_support:
        return ResolutionResult.disputed(
            "Could not determine if this is a support or resistance question"
        )

    path = ordered_path(data.price_history)
    if not path:
        return ResolutionResult.disputed("No price history available for level check")

    if is_resistance:
        held = _broke_resistance(path, level, params.resistance_samples)
        explanation = f"Resistance level: ${level:.4f}, Broke resistance: {held}"
        observed_ratio = None
    else:
        observed_ratio = sum(1 for snapshot in path if snapshot.price > level) / len(path)
        held = observed_ratio >= params.support_hold_ratio
        explanation = (
            f"Support level: ${level:.4f}, Held support: {held} "
            f"({observed_ratio:.0%} of samples above)"
        )

    return ResolutionResult(
        success=True,
        resolution=_outcome(held),
        confidence=0.85,
        data={
            "level": level,
            "kind": "resistance" if is_resistance else "support",
            "aboveRatio": observed_ratio,
            "priceHistory": _tail(path, 20),
        },
        explanation=explanation,
        dispute_risk=DisputeRisk.MEDIUM,
    )


def evaluate_trend(
    question: str,
    criteria: str,
    data: FinalMarketData,
    params: EvaluationParameters = DEFAULT_PARAMETERS,
) -> ResolutionResult:
    lowered = question.lower()
    reverse = "reverse" in lowered
    if "uptrend" in lowered:
        expect_up = not reverse
    elif "downtrend" in lowered:
        expect_up = reverse
    else:
        return ResolutionResult.disputed("Could not determine the expected trend direction")

    path = ordered_path(data.price_history)
    moves = [
        current.price - previous.price
        for previous, current in zip(path, path[1:])
        if current.price != previous.price
    ]
    if not moves:
        return ResolutionResult.disputed("Not enough price movement to measure a trend")

    up_share = sum(1 for move in moves if move > 0) / len(moves)
    majority = up_share > 0.5 if expect_up else up_share < 0.5

    try:
        target: float | None = extract_dollar_target(question)
    except ExtractionError:
        target = None
    reached = (
        True
        if target is None
        else reached_with_confirmation(path, target, expect_up, params.confirmation_period)
    )

    dominance = max(up_share, 1.0 - up_share)
    adequacy = min(1.0, len(path) / 10)
    outcome = majority and reached
    return ResolutionResult(
        success=True,
        resolution=_outcome(outcome),
        confidence=(dominance + adequacy) / 2,
        data={
            "expectedDirection": "up" if expect_up else "down",
            "upMoveShare": up_share,
            "targetPrice": target,
            "targetReached": reached if target is not None else None,
            "priceHistory": _tail(path, 10),
        },
        explanation=(
            f"Expected {'up' if expect_up else 'down'}trend, "
            f"{up_share:.0%} of moves were up, majority held: {majority}"
            + (f", target ${target:.4f} reached: {reached}" if target is not None else "")
        ),
        dispute_risk=dispute_risk_for(path),
    )


def evaluate_ath_atl(
    question: str,
    criteria: str,
    data: FinalMarketData,
    params: EvaluationParameters = DEFAULT_PARAMETERS,
) -> ResolutionResult:
    is_ath = bool(ATH_PATTERN.search(question))
    is_atl = bool(ATL_PATTERN.search(question))
    if is_ath == is_atl:
        return ResolutionResult.disputed("Could not determine if this is an ATH or ATL question")

    try:
        level: float | None = extract_dollar_target(question)
    except ExtractionError:
        level = data.ath if is_ath else data.atl
    if level is None:
        return ResolutionResult.disputed("No recorded all-time extreme available")

    path = ordered_path(data.price_history)
    reached = reached_with_confirmation(path, level, is_ath, params.confirmation_period)
    label = "ATH" if is_ath else "ATL"
    return ResolutionResult(
        success=True,
        resolution=_outcome(reached),
        confidence=price_confidence(path),
        data={
            "extreme": label,
            "level": level,
            "pathHigh": max((snapshot.price for snapshot in path), default=None),
            "pathLow": min((snapshot.price for snapshot in path), default=None),
            "priceHistory": _tail(path, 10),
        },
        explanation=f"{label} level: ${level:.4f}, {'Broken' if is_ath else 'Retested'}: {reached}",
        dispute_risk=dispute_risk_for(path),
    )


def evaluate_momentum(
    question: str,
    criteria: str,
    data: FinalMarketData,
    params: EvaluationParameters = DEFAULT_PARAMETERS,
) -> ResolutionResult:
    try:
        target = extract_dollar_target(question)
    except ExtractionError:
        return ResolutionResult.disputed("Could not extract momentum target from question")

    path = ordered_path(data.price_history)
    if len(path) < 2:
        return ResolutionResult.disputed("Not enough price history to measure momentum")

    opening = path[0].price
    upward = target >= opening
    reached = reached_with_confirmation(path, target, upward, params.confirmation_period)

    window_start = _as_utc(path[-1].timestamp) - params.momentum_window
    window = [snapshot for snapshot in path if _as_utc(snapshot.timestamp) >= window_start]
    rate_of_change = 0.0
    if len(window) >= 2 and window[0].price > 0:
        rate_of_change = (window[-1].price - window[0].price) / window[0].price
    sustained = rate_of_change > 0 if upward else rate_of_change < 0

    return ResolutionResult(
        success=True,
        resolution=_outcome(reached and sustained),
        confidence=price_confidence(path),
        data={
            "targetPrice": target,
            "direction": "up" if upward else "down",
            "rateOfChange": rate_of_change,
            "targetReached": reached,
            "priceHistory": _tail(path, 10),
        },
        explanation=(
            f"Target ${target:.4f} reached: {reached}, trailing momentum "
            f"{rate_of_change:+.2%} ({'sustained' if sustained else 'faded'})"
        ),
        dispute_risk=dispute_risk_for(path),
    )


def evaluate_volatility(
    question: str,
    criteria: str,
    data: FinalMarketData,
    params: EvaluationParameters = DEFAULT_PARAMETERS,
) -> ResolutionResult:
    try:
        threshold = extract_percentage(question) / 100
    except ExtractionError:
        return ResolutionResult.disputed("Could not extract volatility threshold from question")

    path = ordered_path(data.price_history)
    prices = [snapshot.price for snapshot in path]
    if len(prices) < 2 or prices[0] <= 0:
        return ResolutionResult.disputed("Not enough price history to measure volatility")

    if "volatility" in question.lower():
        returns = [
            current / previous - 1
            for previous, current in zip(prices, prices[1:])
            if previous > 0
        ]
        if len(returns) < 2:
            return ResolutionResult.disputed("Not enough returns to measure realised volatility")
        measure = "realisedVolatility"
        measured = pstdev(returns)
    else:
        measure = "maxSwing"
        measured = max(abs(price - prices[0]) / prices[0] for price in prices)

    exceeded = measured >= threshold
    adequacy = min(1.0, len(prices) / 10)
    if len(prices) < 3:
        risk = DisputeRisk.HIGH
    elif threshold > 0 and abs(measured - threshold) / threshold < 0.1:
        risk = DisputeRisk.MEDIUM
    else:
        risk = DisputeRisk.LOW

    return ResolutionResult(
        success=True,
        resolution=_outcome(exceeded),
        confidence=0.5 + 0.5 * adequacy,
        data={"threshold": threshold, "measure": measure, "measured": measured},
        explanation=f"Threshold {threshold:.2%}, measured {measure} {measured:.2%}",
        dispute_risk=risk,
    )


def _evaluation_window(question: str, path: Sequence[PriceSnapshot]) -> tuple[str, list[PriceSnapshot]] | None:
    lowered = question.lower()
    end = _as_utc(path[-1].timestamp)
    if "trading hours" in lowered:
        in_hours: list[tuple[datetime, PriceSnapshot]] = []
        for snapshot in path:
            local = _as_utc(snapshot.timestamp).astimezone(US_MARKET_TZ)
            if US_TRADING_OPEN <= local.time() < US_TRADING_CLOSE:
                in_hours.append((local, snapshot))
        if not in_hours:
            return "US trading hours", []
        # Only the most recent session counts.
        session_day = in_hours[-1][0].date()
        return "US trading hours", [s for local, s in in_hours if local.date() == session_day]
    hours = extract_hours(question)
    if hours:
        start = end - timedelta(hours=hours)
        return f"last {hours}h", [s for s in path if _as_utc(s.timestamp) >= start]
    if "today" in lowered:
        return "closing day", [s for s in path if _as_utc(s.timestamp).date() == end.date()]
    return None


def evaluate_time_sensitive(
    question: str,
    criteria: str,
    data: FinalMarketData,
    params: EvaluationParameters = DEFAULT_PARAMETERS,
) -> ResolutionResult:
    try:
        target = extract_dollar_target(question)
    except ExtractionError:
        return ResolutionResult.disputed("Could not extract price target from question")

    path = ordered_path(data.price_history)
    if not path:
        return ResolutionResult.disputed("No price history available")

    selection = _evaluation_window(question, path)
    if selection is None:
        return ResolutionResult.disputed("Could not determine the evaluation window")
    label, window = selection
    if not window:
        return ResolutionResult.disputed(f"No price samples inside the {label} window")

    upward = targets_upward(question)
    if MAINTAIN_PATTERN.search(question):
        condition = "maintain"
        met = all((s.price > target) if upward else (s.price < target) for s in window)
    elif CLOSE_PATTERN.search(question):
        condition = "close"
        last = window[-1].price
        met = last > target if upward else last < target
    else:
        condition = "reach"
        met = reached_with_confirmation(window, target, upward, params.confirmation_period)

    return ResolutionResult(
        success=True,
        resolution=_outcome(met),
        confidence=price_confidence(window),
        data={
            "targetPrice": target,
            "window": label,
            "condition": condition,
            "direction": "above" if upward else "below",
            "samplesInWindow": len(window),
            "priceHistory": _tail(window, 10),
        },
        explanation=(
            f"{condition.capitalize()} {'above' if upward else 'below'} ${target:.4f} "
            f"during {label}: {met}"
        ),
        dispute_risk=dispute_risk_for(window),
    )


__all__ = [
    "DEFAULT_PARAMETERS",
    "EvaluationParameters",
    "Evaluator",
    "dispute_risk_for",
    "evaluate_ath_atl",
    "evaluate_market_cap",
    "evaluate_momentum",
    "evaluate_price",
    "evaluate_support_resistance",
    "evaluate_time_sensitive",
    "evaluate_trend",
    "evaluate_volatility",
    "evaluate_volume",
    "ordered_path",
    "price_confidence",
    "reached_with_confirmation",
]
