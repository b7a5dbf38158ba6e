"""Pattern-based extraction of targets and tickers from market question text.

Every helper fails closed: when the expected pattern is missing an
``ExtractionError`` is raised and the caller decides how to surface it.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from .errors import ExtractionError

_NUMBER = r"([0-9][0-9,]*(?:\.[0-9]+)?)"

DOLLAR_PATTERN = re.compile(r"\$" + _NUMBER)
SCALED_DOLLAR_PATTERN = re.compile(r"\$" + _NUMBER + r"([KMB])\b")
PERCENT_PATTERN = re.compile(_NUMBER + r"\s*%")
HOURS_PATTERN = re.compile(r"\bnext\s+(\d+)\s*(?:hours?|h)\b", re.IGNORECASE)

SCALE_MULTIPLIERS: dict[str, float] = {
    "K": 1_000.0,
    "M": 1_000_000.0,
    "B": 1_000_000_000.0,
}

# Whole words only, so "overall" or "thunder" carry no direction.
UPWARD_PATTERN = re.compile(
    r"\b(above|exceed(?:s|ed)?|reach(?:es|ed)?|higher|over|break(?:s)?)\b", re.IGNORECASE
)
DOWNWARD_PATTERN = re.compile(
    r"\b(below|drop(?:s|ped)?|fall(?:s)?|under|lower)\b", re.IGNORECASE
)


def _to_float(raw: str) -> float:
    try:
        return float(raw.replace(",", ""))
    except ValueError as exc:
        raise ExtractionError(f"Could not parse number from {raw!r}") from exc


def extract_dollar_target(question: str) -> float:
    match = DOLLAR_PATTERN.search(question)
    if not match:
        raise ExtractionError("Could not extract a dollar target from question")
    return _to_float(match.group(1))


def extract_scaled_target(question: str, units: Iterable[str] = ("M", "B")) -> float:
    """Return a ``$<number><unit>`` amount expanded to dollars, e.g. ``$327.8M``."""

    allowed = set(units)
    for match in SCALED_DOLLAR_PATTERN.finditer(question):
        unit = match.group(2)
        if unit in allowed:
            return _to_float(match.group(1)) * SCALE_MULTIPLIERS[unit]
    raise ExtractionError(
        f"Could not extract a $<amount>{'/'.join(sorted(allowed))} target from question"
    )


def extract_percentage(question: str) -> float:
    match = PERCENT_PATTERN.search(question)
    if not match:
        raise ExtractionError("Could not extract a percentage from question")
    return _to_float(match.group(1))


def extract_hours(question: str) -> int | None:
    match = HOURS_PATTERN.search(question)
    if not match:
        return None
    return int(match.group(1))


def extract_token_symbol(question: str, allowlist: Iterable[str]) -> str:
    """Return the first allowlisted ticker found verbatim in the question."""

    for symbol in allowlist:
        if symbol in question:
            return symbol
    raise ExtractionError("Could not extract token symbol from question")


def contains_any(text: str, terms: Iterable[str]) -> bool:
    lowered = text.lower()
    return any(term in lowered for term in terms)


def targets_upward(question: str) -> bool:
    """True when the question asks for a move to or through a level from below.

    Explicit downward wording wins; otherwise the upward keywords decide and
    anything unmarked is treated as a downward target.
    """

    if DOWNWARD_PATTERN.search(question):
        return False
    return bool(UPWARD_PATTERN.search(question))


__all__ = [
    "extract_dollar_target",
    "extract_scaled_target",
    "extract_percentage",
    "extract_hours",
    "extract_token_symbol",
    "contains_any",
    "targets_upward",
]
