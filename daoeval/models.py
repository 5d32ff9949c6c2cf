from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class Proposal(Base):
    __tablename__ = "proposals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    sector: Mapped[str | None] = mapped_column(String(200), nullable=True)
    amount_requested: Mapped[float | None] = mapped_column(Float, nullable=True)  # APT
    team_json: Mapped[str] = mapped_column(Text, default="[]")
    milestones_json: Mapped[str] = mapped_column(Text, default="[]")
    budget_breakdown_json: Mapped[str] = mapped_column(Text, default="[]")
    risks: Mapped[str | None] = mapped_column(Text, nullable=True)
    success_metrics: Mapped[str | None] = mapped_column(Text, nullable=True)
    timeline: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    evaluations: Mapped[list[Evaluation]] = relationship(
        "Evaluation", back_populates="proposal", cascade="all, delete-orphan",
        foreign_keys="Evaluation.proposal_id",
    )


class Evaluation(Base):
    """One AI evaluation run. Rows are append-only; the newest is current."""
    __tablename__ = "evaluations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    proposal_id: Mapped[int] = mapped_column(Integer, ForeignKey("proposals.id"), nullable=False, index=True)

    strategic_alignment: Mapped[float] = mapped_column(Float, nullable=False)
    feasibility: Mapped[float] = mapped_column(Float, nullable=False)
    team_capability: Mapped[float] = mapped_column(Float, nullable=False)
    financial_reasonableness: Mapped[float] = mapped_column(Float, nullable=False)
    roi_potential: Mapped[float] = mapped_column(Float, nullable=False)
    risk_level: Mapped[float] = mapped_column(Float, nullable=False)
    milestone_clarity: Mapped[float] = mapped_column(Float, nullable=False)
    transparency: Mapped[float] = mapped_column(Float, nullable=False)
    overall_score: Mapped[float] = mapped_column(Float, nullable=False, index=True)
    reasoning_json: Mapped[str] = mapped_column(Text, default="{}")

    strengths_json: Mapped[str] = mapped_column(Text, default="[]")
    weaknesses_json: Mapped[str] = mapped_column(Text, default="[]")
    opportunities_json: Mapped[str] = mapped_column(Text, default="[]")
    threats_json: Mapped[str] = mapped_column(Text, default="[]")

    # strongly-approve | approve | review | reject | strongly-reject
    recommendation: Mapped[str] = mapped_column(String(30), nullable=False, index=True)
    ai_explanation: Mapped[str] = mapped_column(Text, default="")
    clarification_needed: Mapped[bool] = mapped_column(Boolean, default=False)
    clarification_questions_json: Mapped[str] = mapped_column(Text, default="[]")
    missing_information_json: Mapped[str] = mapped_column(Text, default="[]")

    evaluated_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    llm_model: Mapped[str] = mapped_column(String(100), default="")
    tokens_used: Mapped[int] = mapped_column(Integer, default=0)
    previous_evaluation_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("evaluations.id"), nullable=True,
    )

    overridden: Mapped[bool] = mapped_column(Boolean, default=False)
    overridden_by: Mapped[str | None] = mapped_column(String(200), nullable=True)
    override_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    original_recommendation: Mapped[str | None] = mapped_column(String(30), nullable=True)
    overridden_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    proposal: Mapped[Proposal] = relationship(
        "Proposal", back_populates="evaluations", foreign_keys=[proposal_id],
    )
