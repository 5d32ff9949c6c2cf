"""Typed failures raised by the evaluation pipeline."""
from __future__ import annotations

from typing import Any


class EvaluationError(Exception):
    """Base class for every failure the evaluator surfaces."""


class RetryExhausted(EvaluationError):
    """All attempts of an external call failed."""
    def __init__(self, label: str, attempts: int, last_error: BaseException):
        super().__init__(f"{label} failed after {attempts} attempts: {last_error}")
        self.label = label
        self.attempts = attempts
        self.last_error = last_error


class EmptyResponse(EvaluationError):
    """The completion call succeeded but returned no text."""


class ParseError(EvaluationError):
    """The completion text could not be read as JSON."""


class ValidationError(EvaluationError):
    """Parsed JSON is missing a required field or holds an out-of-range value."""
    def __init__(self, message: str, key: str | None = None, value: Any = None):
        super().__init__(message)
        self.key = key
        self.value = value


class LLMCallError(Exception):
    """LLM SDK call failed."""
    def __init__(self, message: str, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable
