from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Generator

from fastapi import Depends, FastAPI, HTTPException, Query
from sqlalchemy.orm import Session

from daoeval import services
from daoeval.config import DEFAULT_SCORING, ScoringConfig
from daoeval.db import get_session, init_db
from daoeval.errors import EmptyResponse, EvaluationError, ParseError, RetryExhausted, ValidationError
from daoeval.evaluator import ProposalEvaluator
from daoeval.insights import health_check, treasury_insights, validate_milestone
from daoeval.models import Evaluation, Proposal
from daoeval.schemas import (
    BatchRequest,
    BatchResult,
    CriterionScore,
    MilestoneValidation,
    MilestoneValidationRequest,
    OverrideRequest,
    ProposalCreate,
    ProposalOut,
    StatsOut,
    TreasuryData,
    TreasuryInsights,
)

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield


app = FastAPI(
    title="DAO Eval",
    version="0.1.0",
    description=(
        "AI evaluation of DAO funding proposals. Scores proposals on 8 weighted "
        "criteria, records an append-only evaluation history and accepts human "
        "overrides. All endpoints return JSON. No authentication required."
    ),
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Proposals", "description": "Submit and read funding proposals."},
        {"name": "Evaluation", "description": "LLM-powered proposal evaluation. Requires an API key."},
        {"name": "Governance", "description": "Human overrides of AI recommendations."},
        {"name": "Insights", "description": "Milestone validation and treasury health analysis."},
        {"name": "Stats", "description": "Aggregate statistics and service health."},
    ],
)


# ---------------------------------------------------------------------------
# Dependencies & Helpers
# ---------------------------------------------------------------------------


def db_session() -> Generator[Session, None, None]:
    session = get_session()
    try:
        yield session
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


_evaluator: ProposalEvaluator | None = None


def get_evaluator() -> ProposalEvaluator:
    global _evaluator
    if _evaluator is None:
        try:
            _evaluator = ProposalEvaluator.from_settings(scoring=get_scoring())
        except Exception as exc:
            log.warning("AI client unavailable: %s", exc)
            raise HTTPException(503, f"AI client unavailable: {exc}") from exc
    return _evaluator


def optional_evaluator() -> ProposalEvaluator | None:
    """Like ``get_evaluator`` but yields None when no client can be built."""
    try:
        return get_evaluator()
    except HTTPException:
        return None


def get_scoring() -> ScoringConfig:
    return DEFAULT_SCORING


def _get_or_404(session: Session, model, entity_id: int, label: str = "Entity"):
    obj = services.get_entity(session, model, entity_id)
    if not obj:
        raise HTTPException(404, f"{label} not found")
    return obj


def _ai_failure(exc: EvaluationError) -> HTTPException:
    """Map a pipeline failure to a gateway error for the caller."""
    if isinstance(exc, RetryExhausted):
        return HTTPException(503, str(exc))
    if isinstance(exc, (EmptyResponse, ParseError, ValidationError)):
        return HTTPException(502, str(exc))
    return HTTPException(500, str(exc))


# ---------------------------------------------------------------------------
# Routes: Proposals
# ---------------------------------------------------------------------------


@app.post("/api/proposals", response_model=ProposalOut, status_code=201,
          tags=["Proposals"], summary="Submit a funding proposal")
async def create_proposal(body: ProposalCreate, session: Session = Depends(db_session)):
    proposal = services.create_proposal(session, body)
    session.commit()
    return services.proposal_summary(session, proposal)


@app.get("/api/proposals/{proposal_id}", response_model=ProposalOut,
         tags=["Proposals"], summary="Get a proposal with its current score")
async def get_proposal(proposal_id: int, session: Session = Depends(db_session)):
    proposal = _get_or_404(session, Proposal, proposal_id, "Proposal")
    return services.proposal_summary(session, proposal)


# ---------------------------------------------------------------------------
# Routes: Evaluation
# ---------------------------------------------------------------------------


@app.post("/api/proposals/{proposal_id}/evaluate", tags=["Evaluation"],
          summary="Evaluate a proposal via LLM (force=true re-evaluates)")
async def evaluate_proposal(
    proposal_id: int,
    force: bool = Query(False),
    session: Session = Depends(db_session),
    evaluator: ProposalEvaluator = Depends(get_evaluator),
):
    proposal = _get_or_404(session, Proposal, proposal_id, "Proposal")
    try:
        row = await services.run_evaluation(session, proposal, evaluator, force=force)
        session.commit()
    except services.AlreadyEvaluated as exc:
        raise HTTPException(409, str(exc)) from exc
    except EvaluationError as exc:
        log.warning("Evaluation of proposal %d failed: %s", proposal_id, exc)
        raise _ai_failure(exc) from exc
    return services.evaluation_dict(row)


@app.get("/api/proposals/{proposal_id}/evaluation", tags=["Evaluation"],
         summary="Get the current evaluation of a proposal")
async def get_current_evaluation(proposal_id: int, session: Session = Depends(db_session)):
    _get_or_404(session, Proposal, proposal_id, "Proposal")
    row = services.latest_evaluation(session, proposal_id)
    if row is None:
        raise HTTPException(404, "Proposal has not been evaluated")
    return services.evaluation_dict(row)


@app.get("/api/proposals/{proposal_id}/evaluations", tags=["Evaluation"],
         summary="List every evaluation of a proposal, newest first")
async def list_evaluations(proposal_id: int, session: Session = Depends(db_session)):
    _get_or_404(session, Proposal, proposal_id, "Proposal")
    return [services.evaluation_dict(r) for r in services.evaluation_history(session, proposal_id)]


@app.get("/api/evaluations/{evaluation_id}/breakdown", response_model=list[CriterionScore],
         tags=["Evaluation"], summary="Per-criterion weighted scores of an evaluation")
async def get_breakdown(
    evaluation_id: int,
    session: Session = Depends(db_session),
    scoring: ScoringConfig = Depends(get_scoring),
):
    row = _get_or_404(session, Evaluation, evaluation_id, "Evaluation")
    return services.evaluation_result(row).score_breakdown(scoring)


@app.post("/api/evaluate/batch", response_model=BatchResult, tags=["Evaluation"],
          summary="Evaluate several proposals sequentially (default: all unevaluated)")
async def evaluate_batch(
    body: BatchRequest | None = None,
    session: Session = Depends(db_session),
    evaluator: ProposalEvaluator = Depends(get_evaluator),
):
    proposal_ids = body.proposal_ids if body else None
    return await services.run_batch(session, evaluator, proposal_ids)


# ---------------------------------------------------------------------------
# Routes: Governance
# ---------------------------------------------------------------------------


@app.post("/api/evaluations/{evaluation_id}/override", tags=["Governance"],
          summary="Replace the AI recommendation with a human decision")
async def override(evaluation_id: int, body: OverrideRequest, session: Session = Depends(db_session)):
    row = services.override_evaluation(session, evaluation_id, body)
    if row is None:
        raise HTTPException(404, "Evaluation not found")
    session.commit()
    return services.evaluation_dict(row)


# ---------------------------------------------------------------------------
# Routes: Insights
# ---------------------------------------------------------------------------


@app.post("/api/milestones/validate", response_model=MilestoneValidation,
          tags=["Insights"], summary="Check milestone evidence against its deliverables")
async def milestone_validation(
    body: MilestoneValidationRequest,
    evaluator: ProposalEvaluator = Depends(get_evaluator),
):
    try:
        return await validate_milestone(
            evaluator.complete, body.milestone, body.evidence,
            max_attempts=evaluator.max_attempts, retry_delay=evaluator.retry_delay,
        )
    except EvaluationError as exc:
        raise _ai_failure(exc) from exc


@app.post("/api/treasury/insights", response_model=TreasuryInsights,
          tags=["Insights"], summary="Assess treasury health and runway")
async def treasury(body: TreasuryData, evaluator: ProposalEvaluator = Depends(get_evaluator)):
    try:
        return await treasury_insights(
            evaluator.complete, body,
            max_attempts=evaluator.max_attempts, retry_delay=evaluator.retry_delay,
        )
    except EvaluationError as exc:
        raise _ai_failure(exc) from exc


# ---------------------------------------------------------------------------
# Routes: Stats
# ---------------------------------------------------------------------------


@app.get("/api/stats", response_model=StatsOut,
         tags=["Stats"], summary="Get aggregate evaluation statistics")
async def get_stats(session: Session = Depends(db_session)):
    return services.compute_stats(session)


@app.get("/api/health", tags=["Stats"], summary="Probe the AI completion service")
async def health(
    evaluator: ProposalEvaluator | None = Depends(optional_evaluator),
) -> dict[str, Any]:
    if evaluator is None:
        return {
            "status": "unhealthy", "connected": False, "model": None,
            "error": "AI client is not configured",
        }
    return await health_check(evaluator.complete, evaluator.model)


# ---------------------------------------------------------------------------
# Startup
# ---------------------------------------------------------------------------


def main():
    import uvicorn
    uvicorn.run("daoeval.app:app", host="127.0.0.1", port=8002, reload=True)


if __name__ == "__main__":
    main()
