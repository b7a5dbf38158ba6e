"""Exceptions raised while resolving markets."""

from __future__ import annotations


class ResolutionError(Exception):
    """Base class for resolution failures."""


class ExtractionError(ResolutionError):
    """The question text lacks a parseable target value or token symbol."""


class FetchError(ResolutionError):
    """The price-data provider was unavailable or returned malformed data."""


class PersistenceError(ResolutionError):
    """Writing a resolution back to the market store failed."""


class UnknownQuestionType(ResolutionError):
    """No evaluator is registered for the requested question type."""

    def __init__(self, question_type: str) -> None:
        super().__init__(f"Unknown question type: {question_type!r}")
        self.question_type = question_type


__all__ = [
    "ResolutionError",
    "ExtractionError",
    "FetchError",
    "PersistenceError",
    "UnknownQuestionType",
]
