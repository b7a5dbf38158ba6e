"""Dispatch from a market's detailed question type to its evaluator."""

from __future__ import annotations

from collections.abc import Mapping

from loguru import logger

from app.domain import FinalMarketData, QuestionType, ResolutionResult

from . import evaluators
from .errors import UnknownQuestionType
from .evaluators import DEFAULT_PARAMETERS, EvaluationParameters, Evaluator
from .extraction import contains_any

DEFAULT_EVALUATORS: Mapping[QuestionType, Evaluator] = {
    QuestionType.PRICE: evaluators.evaluate_price,
    QuestionType.VOLUME: evaluators.evaluate_volume,
    QuestionType.MARKET_CAP: evaluators.evaluate_market_cap,
    QuestionType.TREND: evaluators.evaluate_trend,
    QuestionType.SUPPORT_RESISTANCE: evaluators.evaluate_support_resistance,
    QuestionType.ATH_ATL: evaluators.evaluate_ath_atl,
    QuestionType.MOMENTUM: evaluators.evaluate_momentum,
    QuestionType.VOLATILITY: evaluators.evaluate_volatility,
    QuestionType.TIME_SENSITIVE: evaluators.evaluate_time_sensitive,
}

# Checked in order; the first matching rule wins.
_INFERENCE_RULES: tuple[tuple[QuestionType, tuple[str, ...]], ...] = (
    (QuestionType.MARKET_CAP, ("market cap", "market-cap", "marketcap")),
    (QuestionType.VOLUME, ("volume",)),
    (QuestionType.SUPPORT_RESISTANCE, ("support", "resistance")),
    (QuestionType.ATH_ATL, ("ath ", "atl ", "all-time", "all time")),
    (QuestionType.MOMENTUM, ("momentum",)),
    (QuestionType.VOLATILITY, ("swing", "volatility")),
    (QuestionType.TREND, ("uptrend", "downtrend")),
    (QuestionType.TIME_SENSITIVE, ("trading hours", "within the next", "for the next", "today")),
)


def infer_question_type(question: str) -> QuestionType:
    """Best-effort keyword guess for markets stored without a detailed type."""

    padded = f"{question} "
    for question_type, keywords in _INFERENCE_RULES:
        if contains_any(padded, keywords):
            return question_type
    return QuestionType.PRICE


class QuestionClassifier:
    def __init__(
        self,
        evaluator_map: Mapping[QuestionType, Evaluator] | None = None,
        *,
        parameters: EvaluationParameters = DEFAULT_PARAMETERS,
    ) -> None:
        self._evaluators = dict(evaluator_map or DEFAULT_EVALUATORS)
        self.parameters = parameters

    def evaluator_for(self, question_type: str) -> Evaluator:
        try:
            key = QuestionType(question_type)
        except ValueError as exc:
            raise UnknownQuestionType(question_type) from exc
        evaluator = self._evaluators.get(key)
        if evaluator is None:
            raise UnknownQuestionType(question_type)
        return evaluator

    def evaluate(
        self,
        question: str,
        question_type: str,
        criteria: str,
        data: FinalMarketData,
    ) -> ResolutionResult:
        try:
            evaluator = self.evaluator_for(question_type)
        except UnknownQuestionType as exc:
            logger.warning("{}; marking market as disputed", exc)
            return ResolutionResult.disputed("Unknown question type")
        return evaluator(question, criteria, data, self.parameters)


__all__ = ["DEFAULT_EVALUATORS", "QuestionClassifier", "infer_question_type"]
