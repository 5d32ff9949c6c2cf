"""Storage-backed operations shared by the API and scripts.

This is the persistence collaborator of the evaluator: ``save_evaluation``
is the concrete ``save(evaluation) -> id`` and the rest reads evaluation
history back out.
"""
from __future__ import annotations

import json
import logging
from collections import Counter
from datetime import UTC, datetime
from typing import Any, Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from daoeval.config import CRITERIA
from daoeval.evaluator import ProposalEvaluator, apply_override
from daoeval.models import Evaluation, Proposal
from daoeval.schemas import (
    BatchResult, EvaluationResult, HumanOverride, OverrideRequest, ProposalCreate, ProposalInput,
)

log = logging.getLogger(__name__)

# EvaluationResult attribute -> Evaluation column, for the plain columns
_SCORE_COLUMNS = (
    "strategic_alignment", "feasibility", "team_capability", "financial_reasonableness",
    "roi_potential", "risk_level", "milestone_clarity", "transparency",
)

_LIST_COLUMNS = (
    "strengths", "weaknesses", "opportunities", "threats",
    "clarification_questions", "missing_information",
)

# [low, high) buckets; the last one is closed so a perfect 100 lands in it
SCORE_BUCKETS: tuple[tuple[str, float, float], ...] = (
    ("0-20", 0, 20), ("20-40", 20, 40), ("40-60", 40, 60), ("60-80", 60, 80), ("80-100", 80, 100.01),
)


class AlreadyEvaluated(Exception):
    """A proposal already has an evaluation and re-evaluation was not requested."""
    def __init__(self, evaluation_id: int):
        super().__init__(f"Proposal already evaluated (evaluation {evaluation_id})")
        self.evaluation_id = evaluation_id


_MISSING = object()


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def get_entity(session: Session, model, entity_id: int):
    return session.execute(select(model).where(model.id == entity_id)).scalars().first()


# ---------------------------------------------------------------------------
# Proposals
# ---------------------------------------------------------------------------


def create_proposal(session: Session, body: ProposalCreate) -> Proposal:
    """Insert a proposal (caller must commit)."""
    data = body.model_dump(mode="json", by_alias=True)
    proposal = Proposal(
        title=body.title,
        description=body.description,
        sector=body.sector,
        amount_requested=body.amount_requested,
        team_json=json.dumps(data["team"]),
        milestones_json=json.dumps(data["milestones"]),
        budget_breakdown_json=json.dumps(data["budgetBreakdown"]),
        risks=body.risks,
        success_metrics=body.success_metrics,
        timeline=body.timeline,
    )
    session.add(proposal)
    session.flush()
    return proposal


def proposal_input(proposal: Proposal) -> ProposalInput:
    """Read-only evaluator view of a stored proposal."""
    return ProposalInput.model_validate({
        "id": proposal.id,
        "title": proposal.title,
        "description": proposal.description or "",
        "sector": proposal.sector,
        "amountRequested": proposal.amount_requested,
        "team": json_parse(proposal.team_json, []),
        "milestones": json_parse(proposal.milestones_json, []),
        "budgetBreakdown": json_parse(proposal.budget_breakdown_json, []),
        "risks": proposal.risks,
        "successMetrics": proposal.success_metrics,
        "timeline": proposal.timeline,
    })


def proposal_summary(session: Session, proposal: Proposal) -> dict[str, Any]:
    data = proposal_input(proposal).model_dump(by_alias=True, mode="json")
    latest = latest_evaluation(session, proposal.id)
    data.update({
        "createdAt": proposal.created_at.isoformat() if proposal.created_at else None,
        "overallScore": latest.overall_score if latest else None,
        "recommendation": latest.recommendation if latest else None,
    })
    return data


# ---------------------------------------------------------------------------
# Evaluations
# ---------------------------------------------------------------------------


def _stored_id(value: Any, label: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Evaluation needs a stored {label} id, got {value!r}") from None


def _naive_utc(value: datetime | None) -> datetime | None:
    """Columns hold naive UTC; aware values are converted first."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _aware_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def evaluation_row(result: EvaluationResult) -> Evaluation:
    row = Evaluation(
        proposal_id=_stored_id(result.proposal_id, "proposal"),
        overall_score=result.overall_score,
        reasoning_json=json.dumps(result.reasoning),
        recommendation=result.recommendation,
        ai_explanation=result.ai_explanation,
        clarification_needed=result.clarification_needed,
        evaluated_at=_naive_utc(result.evaluated_at),
        llm_model=result.model,
        tokens_used=result.tokens_used,
        previous_evaluation_id=(
            _stored_id(result.previous_evaluation_id, "previous evaluation")
            if result.previous_evaluation_id is not None else None
        ),
    )
    for col in _SCORE_COLUMNS:
        setattr(row, col, getattr(result, col))
    for col in _LIST_COLUMNS:
        setattr(row, f"{col}_json", json.dumps(getattr(result, col)))
    _write_override(row, result.human_override)
    return row


def _write_override(row: Evaluation, override: HumanOverride) -> None:
    row.overridden = override.overridden
    row.overridden_by = override.overridden_by
    row.override_reason = override.override_reason
    row.original_recommendation = override.original_recommendation
    row.overridden_at = _naive_utc(override.overridden_at)


def evaluation_result(row: Evaluation) -> EvaluationResult:
    data: dict[str, Any] = {col: getattr(row, col) for col in _SCORE_COLUMNS}
    data.update({col: json_parse(getattr(row, f"{col}_json"), []) for col in _LIST_COLUMNS})
    data.update(
        proposal_id=row.proposal_id,
        overall_score=row.overall_score,
        reasoning=json_parse(row.reasoning_json, {}),
        recommendation=row.recommendation,
        ai_explanation=row.ai_explanation or "",
        clarification_needed=bool(row.clarification_needed),
        evaluated_at=_aware_utc(row.evaluated_at),
        model=row.llm_model or "",
        tokens_used=row.tokens_used or 0,
        previous_evaluation_id=row.previous_evaluation_id,
        human_override=HumanOverride(
            overridden=bool(row.overridden),
            overridden_by=row.overridden_by,
            override_reason=row.override_reason,
            original_recommendation=row.original_recommendation,
            overridden_at=_aware_utc(row.overridden_at),
        ),
    )
    return EvaluationResult(**data)


def evaluation_dict(row: Evaluation) -> dict[str, Any]:
    return {"id": row.id, **evaluation_result(row).to_json_dict()}


def save_evaluation(session: Session, result: EvaluationResult) -> int:
    """Append *result* to the evaluation history and return its id (caller must commit)."""
    row = evaluation_row(result)
    session.add(row)
    session.flush()
    log.info("Saved evaluation %d for proposal %s", row.id, row.proposal_id)
    return row.id


def committing_saver(session: Session) -> Callable[[EvaluationResult], int]:
    """``save`` callable that commits each evaluation on its own."""
    def save(result: EvaluationResult) -> int:
        try:
            evaluation_id = save_evaluation(session, result)
            session.commit()
        except Exception:
            session.rollback()
            raise
        return evaluation_id
    return save


def evaluation_history(session: Session, proposal_id: int) -> list[Evaluation]:
    """All evaluations of a proposal, newest first."""
    return list(session.execute(
        select(Evaluation)
        .where(Evaluation.proposal_id == proposal_id)
        .order_by(Evaluation.evaluated_at.desc(), Evaluation.id.desc())
    ).scalars().all())


def latest_evaluation(session: Session, proposal_id: int) -> Evaluation | None:
    history = evaluation_history(session, proposal_id)
    return history[0] if history else None


async def run_evaluation(
    session: Session,
    proposal: Proposal,
    evaluator: ProposalEvaluator,
    force: bool = False,
) -> Evaluation:
    """Evaluate a stored proposal and append the result (caller must commit).

    With an existing evaluation, raises ``AlreadyEvaluated`` unless *force*
    is set, in which case a linked re-evaluation is stored.
    """
    prior = latest_evaluation(session, proposal.id)
    if prior is not None and not force:
        raise AlreadyEvaluated(prior.id)
    proposal_view = proposal_input(proposal)
    if prior is None:
        result = await evaluator.evaluate(proposal_view)
    else:
        result = await evaluator.reevaluate(proposal.id, proposal_view, prior.id)
    evaluation_id = save_evaluation(session, result)
    return get_entity(session, Evaluation, evaluation_id)


async def run_batch(
    session: Session,
    evaluator: ProposalEvaluator,
    proposal_ids: list[int] | None = None,
) -> BatchResult:
    """Evaluate the given proposals, or every never-evaluated one, committing per item.

    Proposals that already have an evaluation are re-evaluated and linked to it.
    """
    query = select(Proposal).order_by(Proposal.id)
    if proposal_ids:
        query = query.where(Proposal.id.in_(proposal_ids))
    else:
        query = query.where(~Proposal.evaluations.any())
    proposals = session.execute(query).scalars().all()
    inputs = [proposal_input(p) for p in proposals]
    prior_ids: dict[int, int] = {}
    for proposal in proposals:
        prior = latest_evaluation(session, proposal.id)
        if prior is not None:
            prior_ids[proposal.id] = prior.id
    return await evaluator.batch_evaluate(
        inputs, save=committing_saver(session), prior_ids=prior_ids,
    )


def override_evaluation(
    session: Session, evaluation_id: int, body: OverrideRequest,
) -> Evaluation | None:
    """Apply a human override to a stored evaluation (caller must commit)."""
    row = get_entity(session, Evaluation, evaluation_id)
    if row is None:
        return None
    updated = apply_override(evaluation_result(row), body)
    row.recommendation = updated.recommendation
    _write_override(row, updated.human_override)
    log.info("Applied human override to evaluation %d: %s", row.id, updated.recommendation)
    return row


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def _bucket(score: float) -> str:
    for name, low, high in SCORE_BUCKETS:
        if low <= score < high:
            return name
    return "other"


def compute_stats(session: Session) -> dict[str, Any]:
    """Aggregate over the current (latest) evaluation of each proposal."""
    rows = session.execute(
        select(Evaluation).order_by(Evaluation.evaluated_at, Evaluation.id)
    ).scalars().all()
    latest: dict[int, Evaluation] = {}
    for row in rows:
        latest[row.proposal_id] = row
    current = list(latest.values())

    by_recommendation: Counter[str] = Counter(r.recommendation for r in current)
    distribution: Counter[str] = Counter({name: 0 for name, _, _ in SCORE_BUCKETS})
    distribution.update(_bucket(r.overall_score) for r in current)

    averages: dict[str, float] = {}
    average_overall = None
    if current:
        n = len(current)
        average_overall = round(sum(r.overall_score for r in current) / n, 2)
        for criterion, col in zip(CRITERIA, _SCORE_COLUMNS):
            averages[criterion] = round(sum(getattr(r, col) for r in current) / n, 2)

    return {
        "totalEvaluations": len(rows),
        "evaluatedProposals": len(current),
        "averageOverallScore": average_overall,
        "averageScores": averages,
        "byRecommendation": dict(by_recommendation),
        "scoreDistribution": dict(distribution),
        "clarificationNeeded": sum(1 for r in current if r.clarification_needed),
        "overridden": sum(1 for r in current if r.overridden),
    }
