"""HTTP-level tests for the FastAPI endpoints.

Uses TestClient with the database session and evaluator dependencies
overridden, so no network calls are made.
"""
from __future__ import annotations

from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient

from daoeval import services
from daoeval.config import CRITERIA
from daoeval.evaluator import ProposalEvaluator
from daoeval.schemas import EvaluationResult, ProposalCreate

PROPOSAL_BODY = {
    "title": "Aptos Wallet SDK",
    "description": "SDK for wallet integrations",
    "sector": "Infrastructure",
    "amountRequested": 25000,
    "team": [{"name": "Ada", "role": "Lead", "walletAddress": "0xabc"}],
    "milestones": [{"title": "Alpha", "deliverables": ["SDK core"], "fundingAmount": 10000}],
    "budgetBreakdown": [{"category": "Development", "amount": 20000}],
}


@pytest.fixture()
def replies():
    """Scripted model replies; tests replace the list before calling the API."""
    return []


@pytest.fixture()
def client(session_factory, fake_llm, payload, replies, tmp_path, monkeypatch):
    monkeypatch.setenv("DAOEVAL_DB", str(tmp_path / "lifespan.db"))
    from daoeval.app import app, db_session, get_evaluator, optional_evaluator

    def override_db_session():
        session = session_factory()
        try:
            yield session
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def override_evaluator():
        complete = fake_llm(*(replies or [payload()]))
        return ProposalEvaluator(complete, model="test-model", retry_delay=0, batch_delay=0)

    app.dependency_overrides[db_session] = override_db_session
    app.dependency_overrides[get_evaluator] = override_evaluator
    app.dependency_overrides[optional_evaluator] = override_evaluator
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def proposal_id(client):
    resp = client.post("/api/proposals", json=PROPOSAL_BODY)
    assert resp.status_code == 201
    return resp.json()["id"]


class TestProposalEndpoints:
    def test_create_and_get(self, client, proposal_id):
        resp = client.get(f"/api/proposals/{proposal_id}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["title"] == "Aptos Wallet SDK"
        assert data["team"][0]["wallet"] == "0xabc"
        assert data["milestones"][0]["fundingAmount"] == 10000
        assert data["overallScore"] is None

    def test_get_missing(self, client):
        assert client.get("/api/proposals/999").status_code == 404

    def test_create_requires_title(self, client):
        assert client.post("/api/proposals", json={"description": "x"}).status_code == 422


class TestEvaluateEndpoints:
    def test_evaluate(self, client, proposal_id):
        resp = client.post(f"/api/proposals/{proposal_id}/evaluate")
        assert resp.status_code == 200
        data = resp.json()
        assert data["proposalId"] == proposal_id
        assert data["overallScore"] == 70.0
        assert data["recommendation"] == "approve"
        assert "humanOverride" not in data

        current = client.get(f"/api/proposals/{proposal_id}/evaluation").json()
        assert current["id"] == data["id"]
        summary = client.get(f"/api/proposals/{proposal_id}").json()
        assert summary["overallScore"] == 70.0

    def test_evaluate_twice_conflicts(self, client, proposal_id):
        client.post(f"/api/proposals/{proposal_id}/evaluate")
        assert client.post(f"/api/proposals/{proposal_id}/evaluate").status_code == 409

    def test_force_reevaluate(self, client, proposal_id):
        first = client.post(f"/api/proposals/{proposal_id}/evaluate").json()
        resp = client.post(f"/api/proposals/{proposal_id}/evaluate", params={"force": "true"})
        assert resp.status_code == 200
        assert resp.json()["previousEvaluationId"] == first["id"]

        history = client.get(f"/api/proposals/{proposal_id}/evaluations").json()
        assert [e["id"] for e in history] == [resp.json()["id"], first["id"]]

    def test_unparseable_reply(self, client, proposal_id, replies):
        replies.append("I am not JSON")
        resp = client.post(f"/api/proposals/{proposal_id}/evaluate")
        assert resp.status_code == 502
        assert "Failed to parse AI response" in resp.json()["detail"]

    def test_out_of_range_reply(self, client, proposal_id, replies, payload):
        replies.append(payload(feasibility=105))
        assert client.post(f"/api/proposals/{proposal_id}/evaluate").status_code == 502

    def test_model_unreachable(self, client, proposal_id, replies):
        replies.append(ConnectionError("down"))
        resp = client.post(f"/api/proposals/{proposal_id}/evaluate")
        assert resp.status_code == 503
        assert "AI evaluation failed after 3 attempts" in resp.json()["detail"]

    def test_not_evaluated(self, client, proposal_id):
        assert client.get(f"/api/proposals/{proposal_id}/evaluation").status_code == 404

    def test_evaluate_missing_proposal(self, client):
        assert client.post("/api/proposals/999/evaluate").status_code == 404

    def test_breakdown(self, client, proposal_id):
        evaluation_id = client.post(f"/api/proposals/{proposal_id}/evaluate").json()["id"]
        rows = client.get(f"/api/evaluations/{evaluation_id}/breakdown").json()
        assert len(rows) == 8
        feasibility = next(r for r in rows if r["name"] == "feasibility")
        assert feasibility["weight"] == 0.20
        assert feasibility["weightedScore"] == 14.0


class TestBatchEndpoint:
    def test_batch_defaults_to_unevaluated(self, client, proposal_id):
        second = client.post("/api/proposals", json={"title": "Second"}).json()["id"]
        client.post(f"/api/proposals/{proposal_id}/evaluate")
        resp = client.post("/api/evaluate/batch")
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        assert data["results"][0]["proposalId"] == second

    def test_batch_isolates_failures(self, client, proposal_id, replies, payload):
        second = client.post("/api/proposals", json={"title": "Second"}).json()["id"]
        replies.extend(["garbage", payload()])
        resp = client.post("/api/evaluate/batch", json={"proposalIds": [proposal_id, second]})
        data = resp.json()
        assert (data["total"], data["successful"], data["failed"]) == (2, 1, 1)
        assert data["results"][0]["success"] is False
        assert data["results"][1]["evaluationId"] is not None


class TestOverrideEndpoint:
    def test_override(self, client, proposal_id):
        evaluation_id = client.post(f"/api/proposals/{proposal_id}/evaluate").json()["id"]
        resp = client.post(f"/api/evaluations/{evaluation_id}/override", json={
            "overriddenBy": "0xcouncil", "reason": "Strategic priority",
            "newRecommendation": "strongly-approve",
        })
        assert resp.status_code == 200
        data = resp.json()
        assert data["recommendation"] == "strongly-approve"
        assert data["overallScore"] == 70.0
        assert data["humanOverride"]["originalRecommendation"] == "approve"
        assert data["humanOverride"]["overriddenBy"] == "0xcouncil"

    def test_override_bad_body(self, client, proposal_id):
        evaluation_id = client.post(f"/api/proposals/{proposal_id}/evaluate").json()["id"]
        resp = client.post(f"/api/evaluations/{evaluation_id}/override", json={
            "overriddenBy": "x", "newRecommendation": "maybe",
        })
        assert resp.status_code == 422

    def test_override_missing(self, client):
        resp = client.post("/api/evaluations/999/override", json={
            "overriddenBy": "x", "newRecommendation": "approve",
        })
        assert resp.status_code == 404


class TestInsightEndpoints:
    def test_milestone_validation(self, client, replies):
        replies.append({
            "isComplete": True, "completionScore": 88, "deliverablesMet": ["SDK core"],
            "deliverablesNotMet": [], "assessment": "Done.", "recommendation": "approve-payment",
        })
        resp = client.post("/api/milestones/validate", json={
            "milestone": {"title": "Alpha", "deliverables": ["SDK core"]},
            "evidence": {"description": "Released", "links": []},
        })
        assert resp.status_code == 200
        assert resp.json()["recommendation"] == "approve-payment"

    def test_treasury_insights_invalid_reply(self, client, replies):
        replies.append({"healthStatus": "fantastic", "healthScore": 99})
        resp = client.post("/api/treasury/insights", json={
            "currentBalance": 1000, "monthlyBurnRate": 100, "runwayMonths": 10,
        })
        assert resp.status_code == 502


class TestStatsAndHealth:
    def test_stats(self, client, proposal_id):
        client.post(f"/api/proposals/{proposal_id}/evaluate")
        data = client.get("/api/stats").json()
        assert data["totalEvaluations"] == 1
        assert data["averageOverallScore"] == 70.0
        assert data["byRecommendation"] == {"approve": 1}

    def test_health(self, client, replies):
        replies.append("OK")
        data = client.get("/api/health").json()
        assert data["status"] == "healthy"
        assert data["model"] == "test-model"


class TestWithoutApiKeys:
    """Real dependencies with no provider credentials in the environment."""

    @pytest.fixture()
    def bare_client(self, session_factory, tmp_path, monkeypatch):
        for var in ("GROQ_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY",
                    "LLM_PROVIDER", "LLM_MODEL", "OPENAI_BASE_URL"):
            monkeypatch.delenv(var, raising=False)
        monkeypatch.setenv("DAOEVAL_DB", str(tmp_path / "lifespan.db"))
        from daoeval import app as app_module
        monkeypatch.setattr(app_module, "_evaluator", None)

        def override_db_session():
            session = session_factory()
            try:
                yield session
            finally:
                session.close()

        app_module.app.dependency_overrides[app_module.db_session] = override_db_session
        with TestClient(app_module.app, raise_server_exceptions=True) as c:
            yield c
        app_module.app.dependency_overrides.clear()

    def test_health_reports_unhealthy(self, bare_client):
        resp = bare_client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "unhealthy"
        assert resp.json()["connected"] is False

    def test_breakdown_needs_no_client(self, bare_client, session_factory):
        session = session_factory()
        proposal = services.create_proposal(session, ProposalCreate(title="Offline"))
        evaluation_id = services.save_evaluation(session, EvaluationResult(
            proposal_id=proposal.id, overall_score=70, recommendation="approve",
            evaluated_at=datetime.now(UTC),
            **{c: 70 for c in ("strategic_alignment", "feasibility", "team_capability",
                               "financial_reasonableness", "roi_potential", "risk_level",
                               "milestone_clarity", "transparency")},
        ))
        session.commit()
        session.close()

        resp = bare_client.get(f"/api/evaluations/{evaluation_id}/breakdown")
        assert resp.status_code == 200
        assert {r["name"] for r in resp.json()} == set(CRITERIA)

    def test_evaluate_unavailable(self, bare_client):
        proposal_id = bare_client.post("/api/proposals", json={"title": "Offline"}).json()["id"]
        resp = bare_client.post(f"/api/proposals/{proposal_id}/evaluate")
        assert resp.status_code == 503
        assert "AI client unavailable" in resp.json()["detail"]
