"""
Coordinator contracts — what each coordinator agent does, which tools it
may use and what it must not do. Rendered into the planner prompt so the
model can pick agents, tasks and dependencies.
"""

from pydantic import BaseModel, Field


class CoordinatorContract(BaseModel):
    """Static description of one coordinator agent."""
    model_config = {"frozen": True}

    agent: str
    name: str
    nickname: str
    focus: str
    description: str
    capabilities: list[str] = Field(default_factory=list)
    tools: list[str] = Field(default_factory=list)
    deliverables: str = ""
    limitations: list[str] = Field(default_factory=list)


ANALYSIS_CONTRACT = CoordinatorContract(
    agent="analysis",
    name="Analysis Agent",
    nickname="The Behavior Observer",
    focus="Retrospective view, spending patterns and current cash-flow health.",
    description=(
        "Specialist in past and present financial behavior. Finds where the money "
        "is going, but does not suggest where to invest it."
    ),
    capabilities=[
        "Spending diagnosis: break expenses down by category and compare with previous months",
        "Pattern detection: forgotten subscriptions and duplicated charges",
        "Cash-flow analysis: income versus expenses for the month",
        "Deviation alerts: spending far from the user's historical average",
    ],
    tools=["finance_bridge", "serper", "tavily", "math"],
    deliverables="Analytical reports, trends, comparisons",
    limitations=[
        "Does NOT analyze assets (stocks, REITs, treasury bonds)",
        "Does NOT suggest contributions or portfolio reallocation",
    ],
)

INVESTMENTS_CONTRACT = CoordinatorContract(
    agent="investments",
    name="Investments Agent",
    nickname="The Asset Strategist",
    focus="Capital growth, market analysis and portfolio management.",
    description="Looks at the external market and at the user's invested wealth.",
    capabilities=[
        "Portfolio analysis: return and risk of the user's current assets",
        "Market analysis: quotes, dividends and indicators (P/E, dividend yield) from Brapi",
        "Contribution advice: where to invest surplus cash",
        "Investment math: compound-interest projections and asset comparisons",
    ],
    tools=["brapi", "finance_bridge", "serper", "tavily", "math"],
    deliverables="Asset analysis, allocation suggestions, risk assessment",
    limitations=["Does NOT analyze household spending or leisure budgets"],
)

PLANNING_CONTRACT = CoordinatorContract(
    agent="planning",
    name="Planning Agent",
    nickname="The Future Architect",
    focus="Goals, budgets and financial feasibility.",
    description=(
        "Connects today's reality (from Analysis) with future wishes (from Investments). "
        "Works with projections and limits."
    ),
    capabilities=[
        "Budgets: spending caps per category",
        "Goal tracking: emergency fund, car purchase and similar targets",
        "Action plans: step-by-step paths out of debt or toward financial freedom",
        "Scenario simulation: effect of changing the monthly contribution",
    ],
    tools=["finance_bridge", "serper", "math"],
    deliverables="Action plans, budgets, financial roadmaps",
    limitations=[
        "Does NOT judge whether a specific stock is cheap (Investments does)",
        "Does NOT list where the user spent money yesterday (Analysis does)",
    ],
)

CONTRACTS: dict[str, CoordinatorContract] = {
    contract.agent: contract
    for contract in (ANALYSIS_CONTRACT, INVESTMENTS_CONTRACT, PLANNING_CONTRACT)
}


def format_contracts_for_prompt() -> str:
    lines: list[str] = []
    for contract in CONTRACTS.values():
        lines.append(f"### {contract.name} ({contract.nickname}) — agent id: `{contract.agent}`")
        lines.append(f"**Focus:** {contract.focus}")
        lines.append(f"**Description:** {contract.description}")
        lines.append("**Capabilities:**")
        lines.extend(f"  - {item}" for item in contract.capabilities)
        lines.append(f"**Tools:** {', '.join(contract.tools)}")
        lines.append(f"**Deliverables:** {contract.deliverables}")
        lines.append("**Limitations:**")
        lines.extend(f"  - {item}" for item in contract.limitations)
        lines.append("")
    return "\n".join(lines).rstrip() + "\n"
