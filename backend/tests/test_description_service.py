from __future__ import annotations

from datetime import timedelta

import pytest

from app.domain import QuestionType, TokenSnapshot
from app.resolution.evaluators import EvaluationParameters
from app.services.description_service import (
    MAX_DESCRIPTIONS,
    build_description_context,
    generate_descriptions,
    liquidity_tier,
)
from app.services.question_service import SmartQuestion


def _token(**overrides) -> TokenSnapshot:
    fields = {
        "symbol": "SOL",
        "coin_id": "solana",
        "name": "Solana",
        "current_price": 185.5,
        "market_cap": 90_000_000_000.0,
        "total_volume": 3_000_000_000.0,
        "price_change_24h": 12.0,
        "price_change_7d": -3.5,
    }
    fields.update(overrides)
    return TokenSnapshot(**fields)


def _question(text: str, question_type: QuestionType, timeframe: str = "24H") -> SmartQuestion:
    return SmartQuestion(
        question=text,
        timeframe=timeframe,
        expected_probability=0.5,
        resolution_criteria="",
        question_type=question_type,
    )


@pytest.mark.parametrize("question_type", list(QuestionType))
def test_every_question_type_gets_specific_and_general_rules(question_type):
    question = _question("Will SOL reach $190 in the next 24H?", question_type)

    descriptions = generate_descriptions(question, _token())

    assert 2 <= len(descriptions) <= MAX_DESCRIPTIONS
    assert descriptions[-1].title == "Comprehensive Market Rules"
    assert descriptions[0].title != "Comprehensive Market Rules"
    assert all(0 < description.confidence <= 1 for description in descriptions)


def test_short_price_market_adds_high_frequency_rules():
    question = _question("Will SOL reach $187.3550 or higher in the next 1H?", QuestionType.PRICE, "1H")

    titles = [d.title for d in generate_descriptions(question, _token())]

    assert titles == [
        "Standard Price Resolution",
        "High-Frequency Price Tracking",
        "Comprehensive Market Rules",
    ]


def test_price_rules_quote_target_and_confirmation_period():
    question = _question("Will SOL reach $194.7750 or higher in the next 24H?", QuestionType.PRICE)
    params = EvaluationParameters(confirmation_period=timedelta(seconds=300))

    (standard, _) = generate_descriptions(question, _token(), params)

    assert "$194.7750" in standard.description
    assert "300 seconds" in standard.resolution_criteria


def test_volume_and_support_rules_use_question_and_parameters():
    volume = _question("Will SOL volume exceed $9.0B in the next 24H?", QuestionType.VOLUME)
    support = _question(
        "Will SOL hold above support at $176.2250 in the next 24H?",
        QuestionType.SUPPORT_RESISTANCE,
    )

    (volume_rules, _) = generate_descriptions(volume, _token())
    (support_rules, _) = generate_descriptions(
        support, _token(), EvaluationParameters(resistance_samples=3, support_hold_ratio=0.75)
    )

    assert "$9.0B" in volume_rules.description
    assert "3 consecutive samples" in support_rules.resolution_criteria
    assert "75%" in support_rules.resolution_criteria


def test_context_paragraphs_reflect_token_data():
    (description, *_) = generate_descriptions(
        _question("Will SOL reach $190 in the next 24H?", QuestionType.PRICE), _token()
    )

    assert "bullish" in description.market_context
    assert "large-cap" in description.token_context
    assert "$90.0B" in description.token_context
    assert "downward weekly trend (-3.50%)" in description.historical_context
    assert "high liquidity" in description.liquidity_context


@pytest.mark.parametrize(
    "volume, market_cap, expected",
    [
        (20_000_000.0, 500_000_000.0, "high"),
        (5_000_000.0, 50_000_000.0, "medium"),
        (20_000_000.0, 50_000_000.0, "medium"),
        (500_000.0, 500_000_000.0, "low"),
    ],
)
def test_liquidity_tier(volume, market_cap, expected):
    assert liquidity_tier(volume, market_cap) == expected


def test_description_context_volatility_from_daily_change():
    ctx = build_description_context(_token(price_change_24h=-9.0), "6H")

    assert ctx.volatility == pytest.approx(0.09)
    assert ctx.timeframe == "6H"
