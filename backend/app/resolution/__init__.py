"""Market resolution core: question extraction, evaluators and dispatch.

The engine lives in ``app.resolution.engine`` and is imported from there.
"""

from .classifier import DEFAULT_EVALUATORS, QuestionClassifier, infer_question_type
from .errors import (
    ExtractionError,
    FetchError,
    PersistenceError,
    ResolutionError,
    UnknownQuestionType,
)
from .evaluators import DEFAULT_PARAMETERS, EvaluationParameters

__all__ = [
    "DEFAULT_EVALUATORS",
    "DEFAULT_PARAMETERS",
    "EvaluationParameters",
    "ExtractionError",
    "FetchError",
    "PersistenceError",
    "QuestionClassifier",
    "ResolutionError",
    "UnknownQuestionType",
    "infer_question_type",
]
