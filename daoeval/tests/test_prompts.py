from __future__ import annotations

from daoeval.config import CRITERIA
from daoeval.prompts import (
    NOT_SPECIFIED, build_evaluation_prompt, build_milestone_prompt, build_treasury_prompt,
)
from daoeval.schemas import (
    Milestone, MilestoneEvidence, ProposalInput, TeamMember, TreasuryData, TreasuryTransaction,
)


class TestEvaluationPrompt:
    def test_renders_proposal_fields(self, proposal):
        prompt = build_evaluation_prompt(proposal)
        assert "**Title:** Aptos Wallet SDK" in prompt
        assert "**Sector:** Infrastructure" in prompt
        assert "**Amount Requested:** 25000 APT" in prompt
        assert "1. Ada - Lead Engineer" in prompt
        assert "Wallet: 0xabc" in prompt
        assert "Deliverables: SDK core, Docs" in prompt
        assert "Duration: 30 days" in prompt
        assert "1. Development: 20000 APT" in prompt
        assert "- Risks & Mitigation: Key person dependency; mitigated by pairing." in prompt

    def test_absent_fields_use_placeholder(self):
        prompt = build_evaluation_prompt(ProposalInput(title="Bare"))
        assert f"**Sector:** {NOT_SPECIFIED}" in prompt
        assert f"**Amount Requested:** {NOT_SPECIFIED}" in prompt
        assert f"**Team Members:**\n{NOT_SPECIFIED}" in prompt
        assert f"**Milestones:**\n{NOT_SPECIFIED}" in prompt
        assert f"**Budget Breakdown:**\n{NOT_SPECIFIED}" in prompt
        assert f"- Timeline: {NOT_SPECIFIED}" in prompt

    def test_member_placeholders(self):
        prompt = build_evaluation_prompt(ProposalInput(title="T", team=(TeamMember(name="Bo"),)))
        assert f"1. Bo - {NOT_SPECIFIED}" in prompt
        assert f"Bio: {NOT_SPECIFIED}" in prompt

    def test_deterministic(self, proposal):
        assert build_evaluation_prompt(proposal) == build_evaluation_prompt(proposal)

    def test_layout_independent_of_completeness(self, proposal):
        full = build_evaluation_prompt(proposal)
        bare = build_evaluation_prompt(ProposalInput(title="Bare"))
        headings = [line for line in full.splitlines() if line.startswith("**")]
        bare_headings = [line.split(":**")[0] for line in bare.splitlines() if line.startswith("**")]
        assert [h.split(":**")[0] for h in headings] == bare_headings

    def test_lists_every_criterion_and_output_format(self, proposal):
        prompt = build_evaluation_prompt(proposal)
        for key in CRITERIA:
            assert f"[key: {key}]" in prompt
            assert f'"{key}": <integer 0-100>' in prompt
        assert "**EVALUATION FRAMEWORK:**" in prompt
        assert "**REQUIRED OUTPUT FORMAT:**" in prompt
        assert '"missingInformation"' in prompt

    def test_wallet_address_alias(self):
        member = TeamMember.model_validate({"name": "Cy", "role": "Dev", "walletAddress": "0x1"})
        assert member.wallet == "0x1"


class TestSecondaryPrompts:
    def test_milestone_prompt(self):
        prompt = build_milestone_prompt(
            Milestone(title="Beta", deliverables=("API",), funding_amount=500),
            MilestoneEvidence(description="Shipped the API", links=["https://example.org/pr/1"]),
        )
        assert "Title: Beta" in prompt
        assert "Expected Deliverables: API" in prompt
        assert "Funding Amount: 500 APT" in prompt
        assert "https://example.org/pr/1" in prompt
        assert f"Success Criteria: {NOT_SPECIFIED}" in prompt
        assert '"recommendation": "<approve-payment|request-revision|reject>"' in prompt

    def test_treasury_prompt(self):
        prompt = build_treasury_prompt(TreasuryData(
            current_balance=120000, monthly_burn_rate=10000, runway_months=12,
            recent_transactions=[TreasuryTransaction(type="grant", amount=5000, description="SDK")],
        ))
        assert "Current Balance: 120000 APT" in prompt
        assert "Runway: 12 months" in prompt
        assert "- grant: 5000 APT (SDK)" in prompt

    def test_treasury_prompt_without_transactions(self):
        prompt = build_treasury_prompt(TreasuryData(
            current_balance=1, monthly_burn_rate=1, runway_months=1,
        ))
        assert f"**Recent Transactions:**\n{NOT_SPECIFIED}" in prompt
