from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest

from app.domain import QuestionType, TokenSnapshot
from app.resolution import infer_question_type
from app.resolution.extraction import extract_dollar_target, extract_scaled_target
from app.services.question_service import (
    MAX_PER_TYPE,
    MAX_QUESTIONS,
    TIMEFRAMES,
    closing_date_for,
    format_amount,
    format_price,
    generate_questions,
)

# 10:00 in New York, inside US trading hours.
TRADING_NOW = datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc)
# 22:00 in New York the previous evening.
OVERNIGHT_NOW = datetime(2026, 3, 2, 3, 0, tzinfo=timezone.utc)


def _token(**overrides) -> TokenSnapshot:
    fields = {
        "symbol": "SOL",
        "coin_id": "solana",
        "name": "Solana",
        "current_price": 185.5,
        "market_cap": 90_000_000_000.0,
        "total_volume": 3_000_000_000.0,
        "price_change_24h": 12.0,
        "ath": 200.0,
        "atl": 150.0,
    }
    fields.update(overrides)
    return TokenSnapshot(**fields)


def _quiet_token(**overrides) -> TokenSnapshot:
    """A token with no trend, momentum, volatility or ATH/ATL questions."""
    return _token(price_change_24h=0.0, ath=None, atl=None, **overrides)


@pytest.mark.parametrize("timeframe", list(TIMEFRAMES))
def test_generated_questions_are_bounded_and_fair(timeframe):
    questions = generate_questions(_token(), timeframe, now=TRADING_NOW)

    assert 0 < len(questions) <= MAX_QUESTIONS
    per_type = Counter(question.question_type for question in questions)
    assert max(per_type.values()) <= MAX_PER_TYPE
    assert all(0.1 <= question.expected_probability <= 0.9 for question in questions)
    assert all(question.timeframe == timeframe for question in questions)


@pytest.mark.parametrize("timeframe", list(TIMEFRAMES))
def test_generated_wording_is_classified_back_to_its_type(timeframe):
    questions = [
        *generate_questions(_token(), timeframe, now=TRADING_NOW),
        *generate_questions(_quiet_token(), timeframe, now=TRADING_NOW),
    ]

    for question in questions:
        assert infer_question_type(question.question) is question.question_type, question.question


def test_price_targets_are_embedded_verbatim():
    questions = generate_questions(_token(), "24H", now=TRADING_NOW)
    by_type = {}
    for question in questions:
        by_type.setdefault(question.question_type, question)

    bullish = by_type[QuestionType.PRICE]
    assert bullish.question == "Will SOL reach $194.7750 or higher in the next 24H?"
    assert extract_dollar_target(bullish.question) == pytest.approx(185.5 * 1.05)

    volume = by_type[QuestionType.VOLUME]
    assert extract_scaled_target(volume.question) == pytest.approx(9e9)


def test_small_cap_token_gets_market_cap_question():
    token = _quiet_token(symbol="WIF", coin_id="dogwifcoin", current_price=2.45, market_cap=2.45e9)

    questions = generate_questions(token, "24H", now=TRADING_NOW)

    (market_cap,) = [q for q in questions if q.question_type is QuestionType.MARKET_CAP]
    assert market_cap.question == "Will WIF reach $5B market cap in the next 24H?"
    assert market_cap.expected_probability == 0.15


def test_trading_hours_question_only_during_session():
    during = generate_questions(_quiet_token(), "3H", now=TRADING_NOW)
    overnight = generate_questions(_quiet_token(), "3H", now=OVERNIGHT_NOW)

    assert any("during US trading hours" in q.question for q in during)
    assert not any("during US trading hours" in q.question for q in overnight)


def test_six_hour_timeframe_adds_hold_question():
    questions = generate_questions(_quiet_token(), "6H", now=OVERNIGHT_NOW)

    holds = [q for q in questions if q.question_type is QuestionType.TIME_SENSITIVE]
    assert [q.question for q in holds] == ["Will SOL maintain above $183.6450 for the next 6 hours?"]


def test_sub_cent_prices_keep_non_zero_targets():
    token = _quiet_token(symbol="PEPE", coin_id="pepe", current_price=0.00001234, market_cap=5e9)

    questions = generate_questions(token, "24H", now=TRADING_NOW)

    price_questions = [q for q in questions if q.question_type is QuestionType.PRICE]
    assert price_questions
    assert all(extract_dollar_target(q.question) > 0 for q in price_questions)


@pytest.mark.parametrize(
    "token",
    [_token(current_price=0.0), _token(current_price=-1.0)],
)
def test_non_positive_price_yields_no_questions(token):
    assert generate_questions(token, "24H", now=TRADING_NOW) == []


def test_unknown_timeframe_yields_no_questions():
    assert generate_questions(_token(), "2H", now=TRADING_NOW) == []


@pytest.mark.parametrize(
    "value, expected",
    [
        (2.5, "2.5000"),
        (185.5, "185.5000"),
        (0.0089, "0.008900"),
        (0.00001234, "0.00001234"),
    ],
)
def test_format_price(value, expected):
    assert format_price(value) == expected


@pytest.mark.parametrize(
    "value, expected",
    [(3.2e9, "3.2B"), (450e6, "450.0M"), (12_300, "12.3K")],
)
def test_format_amount(value, expected):
    assert format_amount(value) == expected


def test_closing_date_for_timeframe():
    assert closing_date_for("6H", TRADING_NOW) == TRADING_NOW + timedelta(hours=6)
