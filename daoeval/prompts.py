"""Prompt rendering for proposal evaluation, milestone checks and treasury reviews.

Every builder is a pure function of its input. Absent optional fields render
as ``Not specified`` so the prompt layout never changes with input
completeness.
"""
from __future__ import annotations

from daoeval.schemas import (
    BudgetItem, Milestone, MilestoneEvidence, ProposalInput, TeamMember, TreasuryData,
)

NOT_SPECIFIED = "Not specified"

EVALUATION_SYSTEM_PROMPT = (
    "You are an expert proposal evaluator for a DAO on the Aptos blockchain. "
    "Respond with valid JSON only, no markdown formatting."
)

MILESTONE_SYSTEM_PROMPT = "You are a milestone validation expert. Respond with valid JSON only."

TREASURY_SYSTEM_PROMPT = "You are a treasury management expert. Respond with valid JSON only."

# (key, heading, definition) in the order the rubric lists them
RUBRIC: tuple[tuple[str, str, str], ...] = (
    ("strategicAlignment", "Strategic Alignment",
     "How well does this proposal align with the DAO's mission to advance the Aptos ecosystem? "
     "Consider relevance to DAO goals, ecosystem impact, community priorities, and originality."),
    ("feasibility", "Feasibility",
     "How technically and operationally viable is this proposal? Consider technical complexity "
     "versus team capability, resource needs, timeline realism, dependencies, and prior work."),
    ("teamCapability", "Team Capability",
     "How qualified is the team to execute? Consider relevant experience, team composition, "
     "track record, adequacy of time commitment, and skill gaps."),
    ("financialReasonableness", "Financial Reasonableness",
     "Is the budget justified and efficient? Consider budget size versus scope, clarity of the "
     "cost breakdown, market rates, contingency planning, and value for money."),
    ("roiPotential", "ROI Potential",
     "What return can the DAO expect? Consider quantifiable benefits, strategic benefits, "
     "long-term value, measurability of returns, and time to value."),
    ("riskLevel", "Risk Assessment",
     "How well are risks identified and mitigated? Consider completeness of risk identification, "
     "quality of mitigations, likelihood and impact, and the risk/reward balance."),
    ("milestoneClarity", "Milestone Clarity",
     "How clear, measurable and achievable are the milestones? Consider deliverable specificity, "
     "measurable success criteria, timeline fit, and ease of progress tracking."),
    ("transparency", "Transparency",
     "How complete and open is the information provided? Consider documentation quality, "
     "communication clarity, team identification, and openness about challenges."),
)

OUTPUT_FORMAT = """\
Respond with a single valid JSON object (no markdown code blocks, just raw JSON) in this EXACT structure:

{
  "scores": {
    "strategicAlignment": <integer 0-100>,
    "feasibility": <integer 0-100>,
    "teamCapability": <integer 0-100>,
    "financialReasonableness": <integer 0-100>,
    "roiPotential": <integer 0-100>,
    "riskLevel": <integer 0-100>,
    "milestoneClarity": <integer 0-100>,
    "transparency": <integer 0-100>
  },
  "reasoning": {
    "strategicAlignment": "<2-3 sentences>",
    "feasibility": "<2-3 sentences>",
    "teamCapability": "<2-3 sentences>",
    "financialReasonableness": "<2-3 sentences>",
    "roiPotential": "<2-3 sentences>",
    "riskLevel": "<2-3 sentences>",
    "milestoneClarity": "<2-3 sentences>",
    "transparency": "<2-3 sentences>"
  },
  "strengths": ["<string>", "<string>", "<string>"],
  "weaknesses": ["<string>", "<string>", "<string>"],
  "opportunities": ["<string>", "<string>"],
  "threats": ["<string>", "<string>"],
  "missingInformation": ["<string>"],
  "clarificationQuestions": ["<string>"],
  "overallAssessment": "<3-4 sentences summarizing the evaluation>"
}

Ensure all scores are integers between 0 and 100. Be objective, thorough, and constructive."""


def _or_placeholder(value) -> str:
    if value is None or value == "":
        return NOT_SPECIFIED
    return str(value)


def _num(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _amount(value: float | None) -> str:
    if value is None:
        return NOT_SPECIFIED
    return f"{_num(value)} APT"


def _enumerate(items, render, empty: str) -> str:
    if not items:
        return empty
    return "\n\n".join(render(idx, item) for idx, item in enumerate(items, start=1))


def _render_member(idx: int, m: TeamMember) -> str:
    return (
        f"{idx}. {_or_placeholder(m.name)} - {_or_placeholder(m.role)}\n"
        f"   Bio: {_or_placeholder(m.bio)}\n"
        f"   Wallet: {_or_placeholder(m.wallet)}\n"
        f"   Commitment: {_or_placeholder(m.time_commitment)}"
    )


def _render_milestone(idx: int, m: Milestone) -> str:
    deliverables = ", ".join(m.deliverables) if m.deliverables else NOT_SPECIFIED
    duration = f"{m.duration_days} days" if m.duration_days is not None else NOT_SPECIFIED
    return (
        f"{idx}. {_or_placeholder(m.title)}\n"
        f"   Description: {_or_placeholder(m.description)}\n"
        f"   Deliverables: {deliverables}\n"
        f"   Funding Amount: {_amount(m.funding_amount)}\n"
        f"   Duration: {duration}\n"
        f"   Success Criteria: {_or_placeholder(m.success_criteria)}"
    )


def _render_budget_item(idx: int, b: BudgetItem) -> str:
    return (
        f"{idx}. {_or_placeholder(b.category)}: {_amount(b.amount)}\n"
        f"   Description: {_or_placeholder(b.description)}\n"
        f"   Justification: {_or_placeholder(b.justification)}"
    )


def _render_rubric() -> str:
    return "\n\n".join(
        f"**{idx}. {heading} (0-100)** [key: {key}]\n{definition}"
        for idx, (key, heading, definition) in enumerate(RUBRIC, start=1)
    )


def build_evaluation_prompt(proposal: ProposalInput) -> str:
    """Render *proposal* into the evaluation request sent as the user message."""
    sections = [
        "You are an expert AI evaluator for a decentralized autonomous organization on the Aptos blockchain.",
        "",
        "Evaluate the following proposal using EXACTLY these 8 parameters. "
        "Provide a score from 0-100 for each parameter, along with reasoning.",
        "",
        "**PROPOSAL INFORMATION:**",
        "",
        f"**Title:** {_or_placeholder(proposal.title)}",
        f"**Sector:** {_or_placeholder(proposal.sector)}",
        "",
        "**Description:**",
        _or_placeholder(proposal.description),
        "",
        f"**Amount Requested:** {_amount(proposal.amount_requested)}",
        "",
        "**Team Members:**",
        _enumerate(proposal.team, _render_member, NOT_SPECIFIED),
        "",
        "**Milestones:**",
        _enumerate(proposal.milestones, _render_milestone, NOT_SPECIFIED),
        "",
        "**Budget Breakdown:**",
        _enumerate(proposal.budget_breakdown, _render_budget_item, NOT_SPECIFIED),
        "",
        "**Additional Information:**",
        f"- Risks & Mitigation: {_or_placeholder(proposal.risks)}",
        f"- Success Metrics: {_or_placeholder(proposal.success_metrics)}",
        f"- Timeline: {_or_placeholder(proposal.timeline)}",
        "",
        "---",
        "",
        "**EVALUATION FRAMEWORK:**",
        "",
        _render_rubric(),
        "",
        "---",
        "",
        "**REQUIRED OUTPUT FORMAT:**",
        "",
        OUTPUT_FORMAT,
    ]
    return "\n".join(sections)


def build_milestone_prompt(milestone: Milestone, evidence: MilestoneEvidence) -> str:
    links = "\n".join(evidence.links) if evidence.links else NOT_SPECIFIED
    deliverables = ", ".join(milestone.deliverables) if milestone.deliverables else NOT_SPECIFIED
    return f"""\
**MILESTONE INFORMATION:**

Title: {_or_placeholder(milestone.title)}
Description: {_or_placeholder(milestone.description)}
Success Criteria: {_or_placeholder(milestone.success_criteria)}
Expected Deliverables: {deliverables}
Funding Amount: {_amount(milestone.funding_amount)}

**SUBMITTED EVIDENCE:**

{_or_placeholder(evidence.description)}

Evidence Links:
{links}

Validate whether the milestone is complete and the deliverables meet the success criteria.

Respond with JSON:

{{
  "isComplete": <boolean>,
  "completionScore": <number 0-100>,
  "deliverablesMet": ["<string>"],
  "deliverablesNotMet": ["<string>"],
  "assessment": "<3-4 sentences>",
  "recommendation": "<approve-payment|request-revision|reject>"
}}"""


def build_treasury_prompt(data: TreasuryData) -> str:
    if data.recent_transactions:
        txs = "\n".join(
            f"- {tx.type}: {_num(tx.amount)} APT ({_or_placeholder(tx.description)})"
            for tx in data.recent_transactions
        )
    else:
        txs = NOT_SPECIFIED
    return f"""\
**TREASURY DATA:**

Current Balance: {_num(data.current_balance)} APT
Monthly Burn Rate: {_num(data.monthly_burn_rate)} APT
Runway: {_num(data.runway_months)} months
Total Allocated: {_num(data.total_allocated)} APT
Total Spent: {_num(data.total_spent)} APT

**Recent Transactions:**
{txs}

Analyze the treasury health and respond with JSON:

{{
  "healthStatus": "<healthy|concerning|critical>",
  "healthScore": <number 0-100>,
  "insights": ["<string>"],
  "recommendations": ["<string>"],
  "risks": ["<string>"],
  "opportunities": ["<string>"]
}}"""
