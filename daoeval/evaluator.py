"""Evaluation orchestrator: prompt -> completion (with retry) -> parse -> score.

``ProposalEvaluator`` holds no per-proposal state, so separate ``evaluate``
calls may run concurrently. Persistence stays outside: ``batch_evaluate``
hands each result to the injected ``save`` callable when one is given.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime
from typing import Callable, Iterable, Mapping

from daoeval.config import DEFAULT_SCORING, LLMSettings, ScoringConfig
from daoeval.errors import EmptyResponse
from daoeval.llm import Completion, CompleteFn, CompletionOptions, LLMClient
from daoeval.parser import parse_evaluation_response
from daoeval.prompts import EVALUATION_SYSTEM_PROMPT, build_evaluation_prompt
from daoeval.retry import DEFAULT_BASE_DELAY, DEFAULT_MAX_ATTEMPTS, with_retry
from daoeval.schemas import (
    BatchItemResult, BatchResult, EvaluationResult, HumanOverride, OverrideRequest, ProposalInput,
)
from daoeval.scorer import ScoringEngine

log = logging.getLogger(__name__)

SaveFn = Callable[[EvaluationResult], int | str]

EVALUATION_LABEL = "AI evaluation"
DEFAULT_BATCH_DELAY = 1.0  # seconds between batch items


class ProposalEvaluator:
    def __init__(
        self,
        complete: CompleteFn,
        *,
        model: str,
        scoring: ScoringConfig = DEFAULT_SCORING,
        options: CompletionOptions | None = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_BASE_DELAY,
        batch_delay: float = DEFAULT_BATCH_DELAY,
        save: SaveFn | None = None,
    ):
        self._complete = complete
        self.model = model
        self.engine = ScoringEngine(scoring)
        self.options = options or CompletionOptions()
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.batch_delay = batch_delay
        self._save = save

    @property
    def complete(self) -> CompleteFn:
        return self._complete

    @classmethod
    def from_settings(
        cls,
        settings: LLMSettings | None = None,
        scoring: ScoringConfig = DEFAULT_SCORING,
        save: SaveFn | None = None,
    ) -> ProposalEvaluator:
        """Build an evaluator backed by a real ``LLMClient``."""
        client = LLMClient(settings)
        s = client.settings
        return cls(
            client.complete,
            model=client.model,
            scoring=scoring,
            options=client.default_options,
            max_attempts=s.max_attempts,
            retry_delay=s.retry_delay,
            batch_delay=s.batch_delay,
            save=save,
        )

    async def _call_model(self, prompt: str) -> Completion:
        return await with_retry(
            lambda: self._complete(EVALUATION_SYSTEM_PROMPT, prompt, self.options),
            EVALUATION_LABEL,
            max_attempts=self.max_attempts,
            base_delay=self.retry_delay,
        )

    async def evaluate(self, proposal: ProposalInput) -> EvaluationResult:
        """Evaluate one proposal. Every failure propagates to the caller."""
        log.info("Starting AI evaluation for proposal %s", proposal.id or proposal.title)
        prompt = build_evaluation_prompt(proposal)
        log.debug("Evaluation prompt is %d chars", len(prompt))

        completion = await self._call_model(prompt)
        if not completion.text or not completion.text.strip():
            raise EmptyResponse("Empty response from AI model")

        parsed = parse_evaluation_response(completion.text)
        scores = parsed.scores
        overall = self.engine.overall_score(scores)
        recommendation = self.engine.recommendation(overall)
        clarification = self.engine.needs_clarification(parsed, scores)

        result = EvaluationResult(
            proposal_id=proposal.id,
            strategic_alignment=scores["strategicAlignment"],
            feasibility=scores["feasibility"],
            team_capability=scores["teamCapability"],
            financial_reasonableness=scores["financialReasonableness"],
            roi_potential=scores["roiPotential"],
            risk_level=scores["riskLevel"],
            milestone_clarity=scores["milestoneClarity"],
            transparency=scores["transparency"],
            overall_score=overall,
            reasoning=dict(parsed.reasoning),
            strengths=parsed.strengths,
            weaknesses=parsed.weaknesses,
            opportunities=parsed.opportunities,
            threats=parsed.threats,
            recommendation=recommendation,
            ai_explanation=parsed.overall_assessment,
            clarification_needed=clarification,
            clarification_questions=parsed.clarification_questions,
            missing_information=parsed.missing_information,
            evaluated_at=datetime.now(UTC),
            model=self.model,
            tokens_used=completion.usage_tokens or 0,
        )
        log.info(
            "Evaluated proposal %s: overall=%.2f recommendation=%s clarification=%s",
            proposal.id, overall, recommendation, clarification,
        )
        return result

    async def reevaluate(
        self,
        proposal_id: int | str,
        proposal: ProposalInput,
        prior_evaluation_id: int | str | None = None,
    ) -> EvaluationResult:
        """Run a fresh, independent evaluation; link it to the prior one if any."""
        log.info("Re-evaluating proposal %s", proposal_id)
        result = await self.evaluate(proposal)
        update: dict = {"proposal_id": proposal_id}
        if prior_evaluation_id is not None:
            update["previous_evaluation_id"] = prior_evaluation_id
        return result.model_copy(update=update)

    async def batch_evaluate(
        self,
        proposals: Iterable[ProposalInput],
        save: SaveFn | None = None,
        prior_ids: Mapping[int | str, int | str] | None = None,
    ) -> BatchResult:
        """Evaluate proposals one after another, pausing between items.

        A failing item (evaluation or save) is recorded and the batch moves on.
        *save* replaces the evaluator's own ``save`` for this batch. Proposals
        listed in *prior_ids* (proposal id -> current evaluation id) are
        re-evaluated and linked to that evaluation.
        """
        items = list(proposals)
        save = save or self._save
        prior_ids = prior_ids or {}
        log.info("Starting batch evaluation of %d proposals", len(items))
        results: list[BatchItemResult] = []

        for idx, proposal in enumerate(items):
            try:
                prior = prior_ids.get(proposal.id) if proposal.id is not None else None
                if prior is None:
                    evaluation = await self.evaluate(proposal)
                else:
                    evaluation = await self.reevaluate(proposal.id, proposal, prior)
                evaluation_id = save(evaluation) if save else None
                results.append(BatchItemResult(
                    proposal_id=proposal.id, success=True, evaluation_id=evaluation_id,
                ))
            except Exception as exc:
                log.warning("Batch evaluation failed for proposal %s: %s", proposal.id, exc)
                results.append(BatchItemResult(proposal_id=proposal.id, success=False, error=str(exc)))

            if self.batch_delay > 0 and idx < len(items) - 1:
                await asyncio.sleep(self.batch_delay)

        successful = sum(1 for r in results if r.success)
        log.info("Batch evaluation complete: %d/%d successful", successful, len(items))
        return BatchResult(
            total=len(items), successful=successful, failed=len(items) - successful, results=results,
        )


def apply_override(
    evaluation: EvaluationResult,
    override: OverrideRequest,
    now: datetime | None = None,
) -> EvaluationResult:
    """Return a copy of *evaluation* carrying a human override.

    The override recommendation is taken as given; scores are not touched.
    The pre-override recommendation is captured only on the first override.
    """
    previous = evaluation.human_override
    original = previous.original_recommendation if previous.overridden else evaluation.recommendation
    record = HumanOverride(
        overridden=True,
        overridden_by=override.overridden_by,
        override_reason=override.reason,
        original_recommendation=original,
        overridden_at=now or datetime.now(UTC),
    )
    return evaluation.model_copy(update={
        "recommendation": override.new_recommendation,
        "human_override": record,
    })
