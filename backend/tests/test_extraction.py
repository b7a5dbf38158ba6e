from __future__ import annotations

import pytest

from app.core.config import DEFAULT_TOKEN_IDS
from app.resolution.errors import ExtractionError
from app.resolution.extraction import (
    extract_dollar_target,
    extract_hours,
    extract_percentage,
    extract_scaled_target,
    extract_token_symbol,
    targets_upward,
)

ALLOWLIST = tuple(DEFAULT_TOKEN_IDS)


def test_extract_dollar_target_reads_first_amount():
    assert extract_dollar_target("Will WIF reach $2.50 by Friday?") == 2.5
    assert extract_dollar_target("Will BTC close above $65,000 today?") == 65000.0
    assert extract_dollar_target("Will PEPE drop below $0.00001234?") == pytest.approx(0.00001234)


def test_extract_dollar_target_missing_raises():
    with pytest.raises(ExtractionError):
        extract_dollar_target("Will it go up?")


def test_extract_scaled_target_expands_units():
    assert extract_scaled_target("Will WIF volume exceed $327.8M?", ("K", "M", "B")) == pytest.approx(
        327_800_000
    )
    assert extract_scaled_target("Will WIF reach $1B market cap?") == pytest.approx(1_000_000_000)
    assert extract_scaled_target("Will BONK volume exceed $750K?", ("K", "M", "B")) == pytest.approx(750_000)


def test_extract_scaled_target_rejects_disallowed_units():
    with pytest.raises(ExtractionError):
        extract_scaled_target("Will WIF reach $500K market cap?", ("M", "B"))


def test_extract_percentage_and_hours():
    assert extract_percentage("Will SOL experience a 15%+ price swing?") == 15.0
    assert extract_hours("Will SOL maintain above $180 for the next 6 hours?") == 6
    assert extract_hours("Will SOL close above $180 today?") is None
    with pytest.raises(ExtractionError):
        extract_percentage("Will SOL swing wildly?")


def test_extract_token_symbol_uses_allowlist_order():
    assert extract_token_symbol("Will WIF reach $2.50?", ALLOWLIST) == "WIF"
    # SOL precedes BTC in the allowlist
    assert extract_token_symbol("Will BTC outperform SOL this week?", ALLOWLIST) == "SOL"


def test_extract_token_symbol_is_case_sensitive():
    with pytest.raises(ExtractionError):
        extract_token_symbol("Will wif reach $2.50?", ALLOWLIST)
    with pytest.raises(ExtractionError):
        extract_token_symbol("Will ADA reach $1?", ALLOWLIST)


@pytest.mark.parametrize(
    "question, expected",
    [
        ("Will WIF reach $2.50?", True),
        ("Will WIF exceed $2.50?", True),
        ("Will SOL stay above $180?", True),
        ("Will SOL drop below $180?", False),
        ("Will SOL fall under $180?", False),
        ("Will SOL be at $180?", False),
        ("Will THUNDER token reach $0.50?", True),
        ("Will SOL reach $180 after a fallen week?", True),
        ("Will SOL finish overall at $180?", False),
        ("Will SOL fall below $180?", False),
        ("Will WIF volume exceeds $1M?", True),
    ],
)
def test_targets_upward(question, expected):
    assert targets_upward(question) is expected
