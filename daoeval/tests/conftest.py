"""Shared fixtures: canned model output and a scriptable completion function."""
from __future__ import annotations

import json
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from daoeval.config import CRITERIA
from daoeval.llm import Completion
from daoeval.models import Base
from daoeval.schemas import BudgetItem, Milestone, ProposalInput, TeamMember


def evaluation_payload(**scores: float) -> dict[str, Any]:
    """A well-formed model reply; every criterion defaults to 70."""
    values = {c: 70 for c in CRITERIA}
    values.update(scores)
    return {
        "scores": values,
        "reasoning": {c: f"Reasoning for {c}." for c in CRITERIA},
        "strengths": ["Experienced team", "Clear scope"],
        "weaknesses": ["Tight timeline"],
        "opportunities": ["Ecosystem growth"],
        "threats": ["Competing projects"],
        "missingInformation": [],
        "clarificationQuestions": [],
        "overallAssessment": "A solid proposal with manageable risks.",
    }


class FakeCompletion:
    """Async ``complete`` stand-in that replays scripted replies in order.

    Each reply is a ``Completion``, a str (wrapped in one), a dict (dumped as
    JSON) or an exception instance (raised).
    """

    def __init__(self, *replies: Any):
        self.replies = list(replies)
        self.calls: list[tuple[str, str, Any]] = []

    async def __call__(self, system, user, options):
        self.calls.append((system, user, options))
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        if isinstance(reply, dict):
            return Completion(text=json.dumps(reply), usage_tokens=1234)
        if isinstance(reply, str):
            return Completion(text=reply)
        return reply


@pytest.fixture()
def payload():
    return evaluation_payload


@pytest.fixture()
def fake_llm():
    return FakeCompletion


@pytest.fixture()
def proposal():
    return ProposalInput(
        id=7,
        title="Aptos Wallet SDK",
        description="A TypeScript SDK for wallet integrations.",
        sector="Infrastructure",
        amount_requested=25000,
        team=(TeamMember(name="Ada", role="Lead Engineer", bio="Move developer", wallet="0xabc"),),
        milestones=(Milestone(title="Alpha", deliverables=("SDK core", "Docs"), funding_amount=10000,
                              duration_days=30),),
        budget_breakdown=(BudgetItem(category="Development", amount=20000),),
        risks="Key person dependency; mitigated by pairing.",
    )


@pytest.fixture()
def engine():
    eng = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    return eng


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def session(session_factory):
    sess = session_factory()
    try:
        yield sess
    finally:
        sess.close()
