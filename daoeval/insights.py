"""Secondary AI checks: milestone completion, treasury health, service health."""
from __future__ import annotations

import logging
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from daoeval.errors import EmptyResponse, ValidationError
from daoeval.llm import CompleteFn, CompletionOptions
from daoeval.parser import extract_json
from daoeval.prompts import (
    MILESTONE_SYSTEM_PROMPT, TREASURY_SYSTEM_PROMPT, build_milestone_prompt, build_treasury_prompt,
)
from daoeval.retry import DEFAULT_BASE_DELAY, DEFAULT_MAX_ATTEMPTS, with_retry
from daoeval.schemas import (
    Milestone, MilestoneEvidence, MilestoneValidation, TreasuryData, TreasuryInsights,
)

log = logging.getLogger(__name__)

MILESTONE_OPTIONS = CompletionOptions(temperature=0.2, max_tokens=1500)
TREASURY_OPTIONS = CompletionOptions(temperature=0.3, max_tokens=2000)


def _validate_as(model: type[BaseModel], data: Any, label: str):
    if not isinstance(data, dict):
        raise ValidationError(f"{label}: expected a JSON object, got {type(data).__name__}")
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        key = ".".join(str(p) for p in first["loc"])
        raise ValidationError(
            f"{label}: invalid field {key}: {first['msg']}", key=key, value=first.get("input"),
        ) from exc


async def _ask(
    complete: CompleteFn,
    system: str,
    prompt: str,
    options: CompletionOptions,
    label: str,
    max_attempts: int,
    retry_delay: float,
) -> Any:
    completion = await with_retry(
        lambda: complete(system, prompt, options), label,
        max_attempts=max_attempts, base_delay=retry_delay,
    )
    if not completion.text or not completion.text.strip():
        raise EmptyResponse(f"{label}: empty response from AI model")
    return extract_json(completion.text)


async def validate_milestone(
    complete: CompleteFn,
    milestone: Milestone,
    evidence: MilestoneEvidence,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    retry_delay: float = DEFAULT_BASE_DELAY,
) -> MilestoneValidation:
    """Ask the model whether submitted evidence completes *milestone*."""
    label = "Milestone validation"
    log.info("Validating milestone: %s", milestone.title)
    data = await _ask(
        complete, MILESTONE_SYSTEM_PROMPT, build_milestone_prompt(milestone, evidence),
        MILESTONE_OPTIONS, label, max_attempts, retry_delay,
    )
    result = _validate_as(MilestoneValidation, data, label)
    log.info("Milestone %r complete=%s score=%.0f", milestone.title, result.is_complete,
             result.completion_score)
    return result


async def treasury_insights(
    complete: CompleteFn,
    data: TreasuryData,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    retry_delay: float = DEFAULT_BASE_DELAY,
) -> TreasuryInsights:
    label = "Treasury insights generation"
    log.info("Generating treasury insights")
    raw = await _ask(
        complete, TREASURY_SYSTEM_PROMPT, build_treasury_prompt(data),
        TREASURY_OPTIONS, label, max_attempts, retry_delay,
    )
    return _validate_as(TreasuryInsights, raw, label)


async def health_check(complete: CompleteFn, model: str) -> dict[str, Any]:
    """Single un-retried probe of the completion service. Never raises."""
    try:
        completion = await complete(
            "Health check.", "Respond with: OK", CompletionOptions(temperature=0, max_tokens=10),
        )
    except Exception as exc:
        log.warning("AI health check failed: %s", exc)
        return {"status": "unhealthy", "connected": False, "model": model, "error": str(exc)}
    return {
        "status": "healthy",
        "connected": True,
        "model": model,
        "response": (completion.text or "")[:50],
    }
