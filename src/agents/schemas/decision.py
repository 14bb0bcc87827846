"""Pydantic schemas for Decision Synthesizer output."""

from pydantic import BaseModel, Field


class SignalBucket(BaseModel):
    """Accumulated votes for one consensus signal."""

    count: int = 0
    strength: float = Field(default=0.0, ge=0.0)
    agents: list[str] = Field(default_factory=list)


class ConsensusResult(BaseModel):
    """Weighted signal distribution across agents."""

    signals: dict[str, SignalBucket] = Field(
        default_factory=dict, description="Keys: buy, sell, hold, caution"
    )
    primary_signal: str = Field(description="One of: buy, sell, hold, caution")
    primary_strength: float = Field(default=0.0, ge=0.0)
    secondary_signal: str | None = None
    secondary_strength: float = Field(default=0.0, ge=0.0)
    strength: str = Field(description="One of: strong, moderate, weak, mixed")
    share: float = Field(default=0.0, ge=0.0, le=1.0)
    total_strength: float = Field(default=0.0, ge=0.0)


class PlannedAction(BaseModel):
    """One step of the prioritized action plan."""

    priority: int = Field(ge=1)
    action: str
    description: str
    timing: str = Field(description="One of: immediate, within_24h, ongoing")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    risk_level: str = Field(
        default="acceptable", description="One of: low, acceptable, elevated"
    )
    hotel: str | None = None
    expected_profit: float | None = None


class RankedRecommendation(BaseModel):
    """Agent recommendation after cross-agent deduplication and ranking."""

    agent: str
    action: str
    reason: str
    urgency: str
    combined_score: float = Field(ge=0.0)
    target: str | None = None


class RiskFactor(BaseModel):
    factor: str
    impact: str = Field(description="One of: low, medium, high")
    points: int = Field(ge=0)
    description: str


class RiskAssessment(BaseModel):
    """Point-accumulated risk level for the current decision."""

    level: str = Field(description="One of: LOW, MEDIUM, HIGH")
    score: int = Field(ge=0)
    factors: list[RiskFactor] = Field(default_factory=list)
    risk_tolerance: str = "medium"
    within_tolerance: bool = True


class ExecutiveSummary(BaseModel):
    headline: str
    key_findings: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)


class AgentAgreement(BaseModel):
    """How many successful agents voted for the primary signal."""

    agreeing_agents: int = Field(ge=0)
    total_agents: int = Field(ge=0)
    agreement_pct: float = Field(ge=0.0, le=100.0)


class DecisionOutput(BaseModel):
    """Consensus, action plan and risk assessment for one analysis."""

    success: bool
    message: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    agents_used: list[str] = Field(default_factory=list)
    agents_failed: list[str] = Field(default_factory=list)
    consensus: ConsensusResult | None = None
    action_plan: list[PlannedAction] = Field(default_factory=list)
    recommendations: list[RankedRecommendation] = Field(default_factory=list)
    risk: RiskAssessment | None = None
    summary: ExecutiveSummary | None = None
    agreement: AgentAgreement | None = None
