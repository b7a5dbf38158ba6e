"""Generate resolvable market questions from a token's current market data.

Question wording is kept in the forms the resolution evaluators parse: a
``$`` target (or ``$<n>M``/``$<n>B`` amount, or ``<n>%`` threshold) plus the
direction and window keywords each evaluator looks for.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from app.domain import QuestionType, TokenSnapshot
from app.resolution.evaluators import US_MARKET_TZ, US_TRADING_CLOSE, US_TRADING_OPEN


@dataclass(slots=True, frozen=True)
class TimeframeProfile:
    hours: int
    min_price_change: float
    volume_multiplier: float
    realistic_move: float
    swing_percent: int


TIMEFRAMES: dict[str, TimeframeProfile] = {
    "1H": TimeframeProfile(1, 0.005, 1.5, 0.01, 5),
    "3H": TimeframeProfile(3, 0.01, 2.0, 0.025, 8),
    "6H": TimeframeProfile(6, 0.015, 2.5, 0.035, 10),
    "12H": TimeframeProfile(12, 0.02, 2.8, 0.045, 12),
    "24H": TimeframeProfile(24, 0.02, 3.0, 0.05, 15),
}

MAX_QUESTIONS = 10
MAX_PER_TYPE = 2


@dataclass(slots=True, frozen=True)
class MarketContext:
    current_price: float
    market_cap: float
    volume: float
    price_change_24h: float
    ath: float | None
    atl: float | None
    volatility: float
    support_level: float
    resistance_level: float
    is_trading_hours: bool


@dataclass(slots=True, frozen=True)
class SmartQuestion:
    question: str
    timeframe: str
    expected_probability: float
    resolution_criteria: str
    question_type: QuestionType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_price(value: float) -> str:
    """Render a dollar amount with enough decimals to stay non-zero."""

    if value >= 0.01:
        return f"{value:.4f}"
    decimals = -math.floor(math.log10(value)) + 3
    return f"{value:.{decimals}f}"


def format_amount(value: float) -> str:
    if value >= 1e9:
        return f"{value / 1e9:.1f}B"
    if value >= 1e6:
        return f"{value / 1e6:.1f}M"
    return f"{value / 1e3:.1f}K"


def closing_date_for(timeframe: str, now: datetime | None = None) -> datetime:
    profile = TIMEFRAMES[timeframe]
    return (now or _utcnow()) + timedelta(hours=profile.hours)


def build_market_context(token: TokenSnapshot, now: datetime | None = None) -> MarketContext:
    local_time = (now or _utcnow()).astimezone(US_MARKET_TZ).time()
    return MarketContext(
        current_price=token.current_price,
        market_cap=token.market_cap,
        volume=token.total_volume,
        price_change_24h=token.price_change_24h,
        ath=token.ath,
        atl=token.atl,
        volatility=abs(token.price_change_24h) / 100,
        support_level=token.current_price * 0.95,
        resistance_level=token.current_price * 1.05,
        is_trading_hours=US_TRADING_OPEN <= local_time < US_TRADING_CLOSE,
    )


def _question(
    question: str,
    timeframe: str,
    probability: float,
    criteria: str,
    question_type: QuestionType,
) -> SmartQuestion:
    return SmartQuestion(
        question=question,
        timeframe=timeframe,
        expected_probability=probability,
        resolution_criteria=criteria,
        question_type=question_type,
    )


def _price_questions(symbol: str, timeframe: str, ctx: MarketContext, profile: TimeframeProfile):
    move = ctx.current_price * profile.realistic_move
    bullish = format_price(ctx.current_price + move)
    bearish = format_price(ctx.current_price - move)
    return [
        _question(
            f"Will {symbol} reach ${bullish} or higher in the next {timeframe}?",
            timeframe,
            0.6,
            f"Price must reach or exceed ${bullish} within the specified timeframe",
            QuestionType.PRICE,
        ),
        _question(
            f"Will {symbol} drop below ${bearish} in the next {timeframe}?",
            timeframe,
            0.4,
            f"Price must drop below ${bearish} within the specified timeframe",
            QuestionType.PRICE,
        ),
    ]


def _volume_questions(symbol: str, timeframe: str, ctx: MarketContext, profile: TimeframeProfile):
    if ctx.volume <= 0:
        return []
    threshold = format_amount(ctx.volume * profile.volume_multiplier)
    return [
        _question(
            f"Will {symbol} volume exceed ${threshold} in the next {timeframe}?",
            timeframe,
            0.3,
            f"24-hour volume must exceed ${threshold} within the specified timeframe",
            QuestionType.VOLUME,
        )
    ]


def _market_cap_questions(symbol: str, timeframe: str, ctx: MarketContext):
    if ctx.market_cap <= 0:
        return []
    if ctx.market_cap < 1e9:
        target, probability = "1B", 0.2
    elif ctx.market_cap < 5e9:
        target, probability = "5B", 0.15
    else:
        return []
    return [
        _question(
            f"Will {symbol} reach ${target} market cap in the next {timeframe}?",
            timeframe,
            probability,
            f"Market cap must reach or exceed ${target} within the specified timeframe",
            QuestionType.MARKET_CAP,
        )
    ]


def _trend_questions(symbol: str, timeframe: str, ctx: MarketContext, profile: TimeframeProfile):
    target = format_price(ctx.current_price * (1 + profile.min_price_change))
    criteria = f"Price must reach or exceed ${target} within the specified timeframe"
    if ctx.price_change_24h > 5:
        wording, probability = "continue its uptrend", 0.6
    elif ctx.price_change_24h < -5:
        wording, probability = "reverse its downtrend", 0.3
    else:
        return []
    return [
        _question(
            f"Will {symbol} {wording} and reach ${target} in the next {timeframe}?",
            timeframe,
            probability,
            criteria,
            QuestionType.TREND,
        )
    ]


def _support_resistance_questions(symbol: str, timeframe: str, ctx: MarketContext):
    resistance = format_price(ctx.resistance_level)
    support = format_price(ctx.support_level)
    return [
        _question(
            f"Will {symbol} break resistance at ${resistance} in the next {timeframe}?",
            timeframe,
            0.4,
            f"Price must trade above ${resistance} within the specified timeframe",
            QuestionType.SUPPORT_RESISTANCE,
        ),
        _question(
            f"Will {symbol} hold above support at ${support} in the next {timeframe}?",
            timeframe,
            0.6,
            f"Price must remain above ${support} within the specified timeframe",
            QuestionType.SUPPORT_RESISTANCE,
        ),
    ]


def _ath_atl_questions(symbol: str, timeframe: str, ctx: MarketContext):
    questions = []
    price = ctx.current_price
    if ctx.ath and ctx.ath > price and (ctx.ath - price) / price < 0.5:
        ath = format_price(ctx.ath)
        questions.append(
            _question(
                f"Will {symbol} break its ATH of ${ath} in the next {timeframe}?",
                timeframe,
                0.2,
                f"Price must reach or exceed ${ath} within the specified timeframe",
                QuestionType.ATH_ATL,
            )
        )
    if ctx.atl and ctx.atl < price and (price - ctx.atl) / price < 0.3:
        atl = format_price(ctx.atl)
        questions.append(
            _question(
                f"Will {symbol} retest its ATL of ${atl} in the next {timeframe}?",
                timeframe,
                0.2,
                f"Price must reach or drop below ${atl} within the specified timeframe",
                QuestionType.ATH_ATL,
            )
        )
    return questions


def _momentum_questions(symbol: str, timeframe: str, ctx: MarketContext, profile: TimeframeProfile):
    questions = []
    if abs(ctx.price_change_24h) > 10:
        rising = ctx.price_change_24h > 0
        target = format_price(ctx.current_price * (1.02 if rising else 0.98))
        questions.append(
            _question(
                f"Will {symbol} {'continue' if rising else 'reverse'} its momentum "
                f"and reach ${target} in the next {timeframe}?",
                timeframe,
                0.4,
                f"Price must reach ${target} with momentum still pointing the same way at close",
                QuestionType.MOMENTUM,
            )
        )
    if ctx.volatility > 0.1:
        swing = profile.swing_percent
        questions.append(
            _question(
                f"Will {symbol} experience a {swing}%+ price swing in the next {timeframe}?",
                timeframe,
                0.3,
                f"Price must move {swing}% or more in either direction within the specified timeframe",
                QuestionType.VOLATILITY,
            )
        )
    return questions


def _time_sensitive_questions(symbol: str, timeframe: str, ctx: MarketContext):
    questions = []
    price = ctx.current_price
    if ctx.is_trading_hours and timeframe in {"3H", "6H", "12H"}:
        floor = format_price(price * 0.98)
        questions.append(
            _question(
                f"Will {symbol} maintain above ${floor} during US trading hours?",
                timeframe,
                0.6,
                f"Price must remain above ${floor} during US trading hours (9 AM - 4 PM ET)",
                QuestionType.TIME_SENSITIVE,
            )
        )
    if timeframe == "6H":
        floor = format_price(price * 0.99)
        questions.append(
            _question(
                f"Will {symbol} maintain above ${floor} for the next 6 hours?",
                timeframe,
                0.55,
                f"Price must remain above ${floor} for the entire 6-hour period",
                QuestionType.TIME_SENSITIVE,
            )
        )
    if timeframe == "12H":
        target = format_price(price * 1.03)
        questions.append(
            _question(
                f"Will {symbol} reach ${target} within the next 12 hours?",
                timeframe,
                0.4,
                f"Price must reach or exceed ${target} within the 12-hour period",
                QuestionType.TIME_SENSITIVE,
            )
        )
    if timeframe == "24H":
        target = format_price(price * 1.02)
        questions.append(
            _question(
                f"Will {symbol} close above ${target} today?",
                timeframe,
                0.45,
                f"Price must close above ${target} at the end of the day",
                QuestionType.TIME_SENSITIVE,
            )
        )
    return questions


def manipulation_risk(question: SmartQuestion) -> str:
    probability = question.expected_probability
    if probability < 0.05 or probability > 0.95:
        return "high"
    if probability < 0.1 or probability > 0.9:
        return "medium"
    return "low"


def is_fair(question: SmartQuestion) -> bool:
    return 0.1 <= question.expected_probability <= 0.9 and manipulation_risk(question) == "low"


def diversify(questions: list[SmartQuestion]) -> list[SmartQuestion]:
    counts: dict[QuestionType, int] = {}
    selected: list[SmartQuestion] = []
    for question in questions:
        seen = counts.get(question.question_type, 0)
        if seen >= MAX_PER_TYPE:
            continue
        counts[question.question_type] = seen + 1
        selected.append(question)
    return selected[:MAX_QUESTIONS]


def generate_questions(
    token: TokenSnapshot,
    timeframe: str,
    *,
    now: datetime | None = None,
) -> list[SmartQuestion]:
    profile = TIMEFRAMES.get(timeframe)
    if profile is None or token.current_price <= 0:
        return []

    ctx = build_market_context(token, now)
    symbol = token.symbol
    candidates = [
        *_price_questions(symbol, timeframe, ctx, profile),
        *_volume_questions(symbol, timeframe, ctx, profile),
        *_market_cap_questions(symbol, timeframe, ctx),
        *_trend_questions(symbol, timeframe, ctx, profile),
        *_support_resistance_questions(symbol, timeframe, ctx),
        *_ath_atl_questions(symbol, timeframe, ctx),
        *_momentum_questions(symbol, timeframe, ctx, profile),
        *_time_sensitive_questions(symbol, timeframe, ctx),
    ]
    return diversify([question for question in candidates if is_fair(question)])


__all__ = [
    "MarketContext",
    "SmartQuestion",
    "TIMEFRAMES",
    "build_market_context",
    "closing_date_for",
    "diversify",
    "format_amount",
    "format_price",
    "generate_questions",
    "is_fair",
]
