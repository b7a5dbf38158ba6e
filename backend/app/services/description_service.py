"""Plain-language market rules for generated questions.

Each description explains how a question will be resolved, in terms of the
checks the evaluators actually run, plus short market, token, history and
liquidity notes drawn from the token's current data.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Literal

from app.domain import QuestionType, TokenSnapshot
from app.resolution.errors import ExtractionError
from app.resolution.evaluators import DEFAULT_PARAMETERS, EvaluationParameters
from app.resolution.extraction import extract_dollar_target, extract_scaled_target
from app.services.question_service import SmartQuestion, format_amount, format_price

MAX_DESCRIPTIONS = 3

Liquidity = Literal["high", "medium", "low"]

DATA_SOURCES = (
    "Price, volume and market cap come from CoinGecko's aggregated market chart, "
    "sampled up to the closing date. If the chart is unavailable the market is "
    "resolved from a single current snapshot and the evidence is marked as degraded."
)
DISPUTE_RULES = (
    "Outcomes that cannot be determined mechanically, or that rest on thin or "
    "noisy data, are recorded as disputed with a reason instead of being forced "
    "to yes or no."
)

TIMEFRAME_NOTES = {
    "1H": "short enough that a single burst of momentum can decide it",
    "3H": "long enough to capture intraday trends and news-driven moves",
    "6H": "long enough to span a full trading session",
    "12H": "long enough to include overnight moves",
    "24H": "a full daily market cycle",
}


@dataclass(slots=True, frozen=True)
class DescriptionContext:
    symbol: str
    timeframe: str
    current_price: float
    market_cap: float
    volume: float
    price_change_24h: float
    price_change_7d: float | None
    volatility: float
    liquidity: Liquidity


@dataclass(slots=True, frozen=True)
class MarketDescription:
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

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def liquidity_tier(volume: float, market_cap: float) -> Liquidity:
    if volume > 10_000_000 and market_cap > 100_000_000:
        return "high"
    if volume > 1_000_000 and market_cap > 10_000_000:
        return "medium"
    return "low"


def build_description_context(token: TokenSnapshot, timeframe: str) -> DescriptionContext:
    return DescriptionContext(
        symbol=token.symbol,
        timeframe=timeframe,
        current_price=token.current_price,
        market_cap=token.market_cap,
        volume=token.total_volume,
        price_change_24h=token.price_change_24h,
        price_change_7d=token.price_change_7d,
        volatility=abs(token.price_change_24h) / 100,
        liquidity=liquidity_tier(token.total_volume, token.market_cap),
    )


# ----------------------------------------------------------------------
# Context paragraphs


def market_context(ctx: DescriptionContext) -> str:
    if ctx.price_change_24h > 5:
        condition = "bullish"
    elif ctx.price_change_24h < -5:
        condition = "bearish"
    else:
        condition = "neutral"
    if ctx.volatility > 0.15:
        level = "high"
    elif ctx.volatility > 0.08:
        level = "medium"
    else:
        level = "low"
    note = TIMEFRAME_NOTES.get(ctx.timeframe, "suitable for this kind of question")
    return (
        f"{ctx.symbol} is in a {condition} phase with {level} volatility. "
        f"The {ctx.timeframe} window is {note}."
    )


def token_context(ctx: DescriptionContext) -> str:
    if ctx.market_cap > 1_000_000_000:
        cap_tier = "large-cap"
    elif ctx.market_cap > 100_000_000:
        cap_tier = "mid-cap"
    else:
        cap_tier = "small-cap"
    if ctx.current_price > 1:
        price_tier = "high-value"
    elif ctx.current_price > 0.01:
        price_tier = "mid-value"
    else:
        price_tier = "low-value"
    return (
        f"{ctx.symbol} is a {cap_tier} token at a {price_tier} price point, "
        f"with a market cap of ${format_amount(ctx.market_cap)} "
        f"and 24h volume of ${format_amount(ctx.volume)}."
    )


def historical_context(ctx: DescriptionContext) -> str:
    recent = "positive" if ctx.price_change_24h > 0 else "negative"
    if ctx.price_change_7d is None:
        weekly = "an unknown weekly trend"
    else:
        direction = "upward" if ctx.price_change_7d > 0 else "downward"
        weekly = f"a {direction} weekly trend ({ctx.price_change_7d:.2f}%)"
    sensitivity = "high" if ctx.volatility > 0.15 else "moderate"
    return (
        f"Recent performance shows {recent} 24h movement ({ctx.price_change_24h:.2f}%) "
        f"and {weekly}. A {ctx.volatility:.1%} daily move points to {sensitivity} "
        "price sensitivity."
    )


def liquidity_context(ctx: DescriptionContext) -> str:
    impact = {"high": "minimal", "medium": "moderate", "low": "significant"}[ctx.liquidity]
    return (
        f"{ctx.symbol} has {ctx.liquidity} liquidity with ${format_amount(ctx.volume)} "
        f"daily volume, so large trades have {impact} impact on price."
    )


def _describe(
    ctx: DescriptionContext,
    *,
    title: str,
    description: str,
    resolution_criteria: str,
    edge_cases: str,
    confidence: float,
) -> MarketDescription:
    return MarketDescription(
        title=title,
        description=description,
        resolution_criteria=resolution_criteria,
        data_sources=DATA_SOURCES,
        edge_cases=edge_cases,
        dispute_resolution=DISPUTE_RULES,
        market_context=market_context(ctx),
        token_context=token_context(ctx),
        historical_context=historical_context(ctx),
        liquidity_context=liquidity_context(ctx),
        confidence=confidence,
    )


def _dollar_target(question: str, default: float) -> float:
    try:
        return extract_dollar_target(question)
    except ExtractionError:
        return default


def _scaled_target(question: str, suffixes: tuple[str, ...], default: float) -> float:
    try:
        return extract_scaled_target(question, suffixes)
    except ExtractionError:
        return default


# ----------------------------------------------------------------------
# Per question type


def _price(question: SmartQuestion, ctx: DescriptionContext, params: EvaluationParameters):
    target = format_price(_dollar_target(question.question, ctx.current_price))
    seconds = int(params.confirmation_period.total_seconds())
    descriptions = [
        _describe(
            ctx,
            title="Standard Price Resolution",
            description=(
                f"Resolves YES if {ctx.symbol} trades beyond ${target} during the "
                f"{ctx.timeframe} window. A single tick past the level is not enough."
            ),
            resolution_criteria=(
                f"The price must stay beyond ${target} for at least {seconds} seconds "
                "of consecutive samples before the closing date."
            ),
            edge_cases=(
                "Flash spikes shorter than the confirmation period are ignored. "
                "Samples after the closing date are never used."
            ),
            confidence=0.95,
        )
    ]
    if ctx.timeframe in {"1H", "3H"}:
        descriptions.append(
            _describe(
                ctx,
                title="High-Frequency Price Tracking",
                description=(
                    f"Short {ctx.timeframe} market judged only on samples taken after "
                    "the market opened and inside its window."
                ),
                resolution_criteria=(
                    f"Earlier moves do not count, even if {ctx.symbol} crossed "
                    f"${target} shortly before the window began."
                ),
                edge_cases="Sparse data lowers the confidence and may lead to a dispute.",
                confidence=0.92,
            )
        )
    return descriptions


def _volume(question: SmartQuestion, ctx: DescriptionContext, params: EvaluationParameters):
    target = format_amount(_scaled_target(question.question, ("K", "M", "B"), ctx.volume * 2))
    return [
        _describe(
            ctx,
            title="Volume-Based Resolution",
            description=(
                f"Resolves YES if {ctx.symbol}'s rolling 24-hour volume is at least "
                f"${target} at the closing date."
            ),
            resolution_criteria=(
                "The check uses the last 24h volume sample at or before the close, "
                "and the threshold is inclusive."
            ),
            edge_cases="Hourly volume is estimated as one twenty-fourth of 24h volume.",
            confidence=0.88,
        )
    ]


def _market_cap(question: SmartQuestion, ctx: DescriptionContext, params: EvaluationParameters):
    target = format_amount(_scaled_target(question.question, ("M", "B"), ctx.market_cap * 2))
    return [
        _describe(
            ctx,
            title="Market Cap Milestone Resolution",
            description=(
                f"Resolves YES if {ctx.symbol}'s market capitalisation is at least "
                f"${target} at the closing date."
            ),
            resolution_criteria=(
                "The check uses the last market cap sample at or before the close, "
                "and the threshold is inclusive."
            ),
            edge_cases="Supply changes are reflected only as the provider reports them.",
            confidence=0.90,
        )
    ]


def _trend(question: SmartQuestion, ctx: DescriptionContext, params: EvaluationParameters):
    current = "uptrend" if ctx.price_change_24h > 0 else "downtrend"
    return [
        _describe(
            ctx,
            title="Trend Continuation Analysis",
            description=(
                f"Asks whether {ctx.symbol}'s current {current} continues or reverses "
                f"within the {ctx.timeframe} window."
            ),
            resolution_criteria=(
                "Most price moves in the window must point the expected way, and any "
                "named price target must also be reached with confirmation."
            ),
            edge_cases="A window without any price movement is disputed.",
            confidence=0.75,
        )
    ]


def _support_resistance(question: SmartQuestion, ctx: DescriptionContext, params: EvaluationParameters):
    return [
        _describe(
            ctx,
            title="Support/Resistance Level Analysis",
            description=(
                f"Tests whether {ctx.symbol} breaks through or holds a key level "
                f"within the {ctx.timeframe} window."
            ),
            resolution_criteria=(
                f"A resistance break needs {params.resistance_samples} consecutive samples "
                f"above the level. A support hold needs {params.support_hold_ratio:.0%} of "
                "samples above it."
            ),
            edge_cases="Questions that mention both support and resistance are disputed.",
            confidence=0.80,
        )
    ]


def _ath_atl(question: SmartQuestion, ctx: DescriptionContext, params: EvaluationParameters):
    return [
        _describe(
            ctx,
            title="All-Time High/Low Resolution",
            description=(
                f"Tests whether {ctx.symbol} sets a new all-time high or retests its "
                f"all-time low within the {ctx.timeframe} window."
            ),
            resolution_criteria=(
                "The level named in the question, or the recorded extreme when none is "
                "named, must be crossed with the usual confirmation period."
            ),
            edge_cases="Brief spikes that do not hold through confirmation are ignored.",
            confidence=0.95,
        )
    ]


def _momentum(question: SmartQuestion, ctx: DescriptionContext, params: EvaluationParameters):
    minutes = int(params.momentum_window.total_seconds() // 60)
    return [
        _describe(
            ctx,
            title="Momentum Analysis Resolution",
            description=(
                f"Evaluates whether {ctx.symbol} reaches its target and is still moving "
                f"the same way at the end of the {ctx.timeframe} window."
            ),
            resolution_criteria=(
                f"The target must be reached with confirmation, and the price change over "
                f"the final {minutes} minutes must point in the target's direction."
            ),
            edge_cases="Fewer than two samples cannot show momentum and are disputed.",
            confidence=0.78,
        )
    ]


def _volatility(question: SmartQuestion, ctx: DescriptionContext, params: EvaluationParameters):
    return [
        _describe(
            ctx,
            title="Volatility Measurement Resolution",
            description=(
                f"Measures {ctx.symbol}'s price swings within the {ctx.timeframe} window."
            ),
            resolution_criteria=(
                "A price swing is the largest move away from the opening price. Realised "
                "volatility is the standard deviation of returns between samples. "
                "Either must meet or exceed the stated percentage."
            ),
            edge_cases="Results within a tenth of the threshold carry a medium dispute risk.",
            confidence=0.85,
        )
    ]


def _time_sensitive(question: SmartQuestion, ctx: DescriptionContext, params: EvaluationParameters):
    return [
        _describe(
            ctx,
            title="Time-Sensitive Market Resolution",
            description=(
                f"Applies its price condition only inside the time window named in "
                f"the question, within the {ctx.timeframe} market."
            ),
            resolution_criteria=(
                "US trading hours run from 9 AM to 4 PM New York time, and only the most "
                "recent session counts. 'Today' means the UTC day of the last sample."
            ),
            edge_cases="Daylight saving changes are handled through the New York time zone.",
            confidence=0.88,
        )
    ]


def _comprehensive(ctx: DescriptionContext) -> MarketDescription:
    return _describe(
        ctx,
        title="Comprehensive Market Rules",
        description=(
            f"This {ctx.symbol} market resolves automatically after its closing date "
            f"from recorded market data for the {ctx.timeframe} window."
        ),
        resolution_criteria=(
            "Each market is resolved exactly once. The evidence, explanation and "
            "confidence are stored alongside the outcome."
        ),
        edge_cases=(
            "If market data cannot be fetched or evaluated, the market resolves NO "
            "with reduced confidence."
        ),
        confidence=0.92,
    )


_GENERATORS = {
    QuestionType.PRICE: _price,
    QuestionType.VOLUME: _volume,
    QuestionType.MARKET_CAP: _market_cap,
    QuestionType.TREND: _trend,
    QuestionType.SUPPORT_RESISTANCE: _support_resistance,
    QuestionType.ATH_ATL: _ath_atl,
    QuestionType.MOMENTUM: _momentum,
    QuestionType.VOLATILITY: _volatility,
    QuestionType.TIME_SENSITIVE: _time_sensitive,
}


def generate_descriptions(
    question: SmartQuestion,
    token: TokenSnapshot,
    params: EvaluationParameters = DEFAULT_PARAMETERS,
) -> list[MarketDescription]:
    """Type-specific descriptions first, then the general market rules."""

    ctx = build_description_context(token, question.timeframe)
    generator = _GENERATORS.get(question.question_type)
    descriptions = generator(question, ctx, params) if generator else []
    descriptions.append(_comprehensive(ctx))
    return descriptions[:MAX_DESCRIPTIONS]


__all__ = [
    "DescriptionContext",
    "MAX_DESCRIPTIONS",
    "MarketDescription",
    "build_description_context",
    "generate_descriptions",
    "liquidity_tier",
]
