"""Turn raw completion text into a validated evaluation structure."""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from daoeval.config import CRITERIA
from daoeval.errors import ParseError, ValidationError

log = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class ParsedEvaluation:
    """Validated model output; every criterion score is a number in [0, 100]."""
    scores: dict[str, float]
    reasoning: dict[str, str]
    strengths: list[str] = field(default_factory=list)
    weaknesses: list[str] = field(default_factory=list)
    opportunities: list[str] = field(default_factory=list)
    threats: list[str] = field(default_factory=list)
    missing_information: list[str] = field(default_factory=list)
    clarification_questions: list[str] = field(default_factory=list)
    overall_assessment: str = ""


def extract_json(raw: str) -> Any:
    """Parse *raw* as JSON, falling back to the first fenced code block.

    Raises ``ParseError`` with the direct-parse error message when neither
    strategy yields JSON.
    """
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        original = exc

    m = _FENCE_RE.search(raw)
    if m:
        try:
            return json.loads(m.group(1))
        except json.JSONDecodeError as exc:
            log.debug("Fenced block is not valid JSON: %s", exc)
    raise ParseError(f"Failed to parse AI response: {original}") from original


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value]


def validate_evaluation(data: Any) -> ParsedEvaluation:
    """Check the parsed payload and build a ``ParsedEvaluation``.

    All 8 criterion scores must be present and in range; there is no partial
    acceptance.
    """
    if not isinstance(data, dict):
        raise ValidationError(f"AI response must be a JSON object, got {type(data).__name__}")
    scores = data.get("scores")
    reasoning = data.get("reasoning")
    if not isinstance(scores, dict) or not isinstance(reasoning, dict):
        raise ValidationError("Missing required fields in AI response: scores and reasoning")

    checked: dict[str, float] = {}
    for key in CRITERIA:
        if key not in scores:
            raise ValidationError(f"Missing score: {key}", key=key)
        value = scores[key]
        if not is_number(value):
            raise ValidationError(f"Invalid score: {key} = {value!r}", key=key, value=value)
        if not 0 <= value <= 100:
            raise ValidationError(f"Score out of range (0-100): {key} = {value}", key=key, value=value)
        checked[key] = value

    return ParsedEvaluation(
        scores=checked,
        reasoning={key: str(reasoning.get(key) or "") for key in CRITERIA},
        strengths=_string_list(data.get("strengths")),
        weaknesses=_string_list(data.get("weaknesses")),
        opportunities=_string_list(data.get("opportunities")),
        threats=_string_list(data.get("threats")),
        missing_information=_string_list(data.get("missingInformation")),
        clarification_questions=_string_list(data.get("clarificationQuestions")),
        overall_assessment=str(data.get("overallAssessment") or ""),
    )


def parse_evaluation_response(raw: str) -> ParsedEvaluation:
    """Parse and validate an evaluation completion."""
    return validate_evaluation(extract_json(raw))
