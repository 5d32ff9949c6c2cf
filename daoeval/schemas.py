"""Pydantic models for proposals, evaluations and the API surface.

Python attributes are snake_case; the JSON form uses camelCase aliases so a
dumped ``EvaluationResult`` carries the wire field names
(``overallScore``, ``clarificationNeeded`` ...).
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from daoeval.config import CRITERIA, ScoringConfig

Recommendation = Literal["strongly-approve", "approve", "review", "reject", "strongly-reject"]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class _FrozenCamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


# ---------------------------------------------------------------------------
# Proposal input
# ---------------------------------------------------------------------------


class TeamMember(_FrozenCamelModel):
    name: str = ""
    role: str = ""
    bio: str | None = None
    wallet: str | None = Field(None, validation_alias=AliasChoices("wallet", "walletAddress"))
    time_commitment: str | None = None


class Milestone(_FrozenCamelModel):
    title: str = ""
    description: str | None = None
    deliverables: tuple[str, ...] = ()
    funding_amount: float | None = None
    duration_days: int | None = None
    success_criteria: str | None = None


class BudgetItem(_FrozenCamelModel):
    category: str = ""
    amount: float = 0
    description: str | None = None
    justification: str | None = None


class ProposalFields(_FrozenCamelModel):
    title: str
    description: str = ""
    sector: str | None = None
    amount_requested: float | None = None
    team: tuple[TeamMember, ...] = ()
    milestones: tuple[Milestone, ...] = ()
    budget_breakdown: tuple[BudgetItem, ...] = ()
    risks: str | None = None
    success_metrics: str | None = None
    timeline: str | None = None


class ProposalInput(ProposalFields):
    """Read-only view of a proposal handed to the evaluator."""
    id: int | str | None = None


# ---------------------------------------------------------------------------
# Evaluation output
# ---------------------------------------------------------------------------


class CriterionScore(_CamelModel):
    name: str
    value: float
    weight: float
    weighted_score: float
    reasoning: str = ""


class HumanOverride(_CamelModel):
    overridden: bool = False
    overridden_by: str | None = None
    override_reason: str | None = None
    original_recommendation: Recommendation | None = None
    overridden_at: datetime | None = None


class EvaluationResult(_CamelModel):
    proposal_id: int | str | None = None

    strategic_alignment: float
    feasibility: float
    team_capability: float
    financial_reasonableness: float
    roi_potential: float
    risk_level: float
    milestone_clarity: float
    transparency: float
    overall_score: float
    reasoning: dict[str, str] = {}

    strengths: list[str] = []
    weaknesses: list[str] = []
    opportunities: list[str] = []
    threats: list[str] = []

    recommendation: Recommendation
    ai_explanation: str = ""
    clarification_needed: bool = False
    clarification_questions: list[str] = []
    missing_information: list[str] = []

    evaluated_at: datetime
    model: str = ""
    tokens_used: int = 0

    previous_evaluation_id: int | str | None = None
    human_override: HumanOverride = Field(default_factory=HumanOverride)

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, protected_namespaces=(),
    )

    def scores(self) -> dict[str, float]:
        """The 8 criterion scores keyed by their wire names."""
        return {c: getattr(self, _attr(c)) for c in CRITERIA}

    def score_breakdown(self, config: ScoringConfig) -> list[CriterionScore]:
        breakdown = []
        for criterion, value in self.scores().items():
            weight = config.weights[criterion]
            breakdown.append(CriterionScore(
                name=criterion, value=value, weight=weight,
                weighted_score=round(value * weight, 4),
                reasoning=self.reasoning.get(criterion, ""),
            ))
        return breakdown

    def to_json_dict(self) -> dict[str, Any]:
        """Serialize to the wire field set.

        ``previousEvaluationId`` appears only on re-evaluations and
        ``humanOverride`` only once an override has been applied.
        """
        exclude: set[str] = set()
        if self.previous_evaluation_id is None:
            exclude.add("previous_evaluation_id")
        if not self.human_override.overridden:
            exclude.add("human_override")
        return self.model_dump(by_alias=True, mode="json", exclude=exclude)


def _attr(criterion: str) -> str:
    """camelCase criterion name -> snake_case attribute name."""
    return "".join("_" + ch.lower() if ch.isupper() else ch for ch in criterion)


class OverrideRequest(_CamelModel):
    overridden_by: str = Field(min_length=1)
    reason: str = Field("", max_length=500)
    new_recommendation: Recommendation


class BatchItemResult(_CamelModel):
    proposal_id: int | str | None = None
    success: bool
    evaluation_id: int | str | None = None
    error: str | None = None


class BatchResult(_CamelModel):
    total: int
    successful: int
    failed: int
    results: list[BatchItemResult] = []


# ---------------------------------------------------------------------------
# Milestone validation & treasury insights
# ---------------------------------------------------------------------------


class MilestoneEvidence(_CamelModel):
    description: str
    links: list[str] = []


class MilestoneValidation(_CamelModel):
    is_complete: bool
    completion_score: float = Field(ge=0, le=100)
    deliverables_met: list[str] = []
    deliverables_not_met: list[str] = []
    assessment: str = ""
    recommendation: Literal["approve-payment", "request-revision", "reject"]


class TreasuryTransaction(_CamelModel):
    type: str
    amount: float
    description: str = ""


class TreasuryData(_CamelModel):
    current_balance: float
    monthly_burn_rate: float
    runway_months: float
    total_allocated: float = 0
    total_spent: float = 0
    recent_transactions: list[TreasuryTransaction] = []


class TreasuryInsights(_CamelModel):
    health_status: Literal["healthy", "concerning", "critical"]
    health_score: float = Field(ge=0, le=100)
    insights: list[str] = []
    recommendations: list[str] = []
    risks: list[str] = []
    opportunities: list[str] = []


# ---------------------------------------------------------------------------
# API bodies
# ---------------------------------------------------------------------------


class ProposalCreate(ProposalFields):
    pass


class ProposalOut(ProposalFields):
    id: int
    created_at: datetime | None = None
    overall_score: float | None = None
    recommendation: Recommendation | None = None


class BatchRequest(_CamelModel):
    proposal_ids: list[int] | None = None


class StatsOut(_CamelModel):
    total_evaluations: int
    evaluated_proposals: int
    average_overall_score: float | None = None
    average_scores: dict[str, float] = {}
    by_recommendation: dict[str, int] = {}
    score_distribution: dict[str, int] = {}
    clarification_needed: int = 0
    overridden: int = 0


class MilestoneValidationRequest(_CamelModel):
    milestone: Milestone
    evidence: MilestoneEvidence
