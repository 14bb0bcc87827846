"""Decision Synthesizer.

Collects the analysis agent reports, votes their recommendations into a
weighted consensus signal, and turns that into a prioritized action plan
with a point-based risk assessment.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping

from src.agents.schemas.decision import (
    AgentAgreement,
    ConsensusResult,
    DecisionOutput,
    ExecutiveSummary,
    PlannedAction,
    RankedRecommendation,
    RiskAssessment,
    RiskFactor,
    SignalBucket,
)
from src.agents.schemas.opportunity import DetectedOpportunity
from src.agents.schemas.report import AgentReport
from src.config.logging_config import get_logger

logger = get_logger("synthesizer")

# Agent weight in the consensus vote
AGENT_WEIGHTS: dict[str, float] = {
    "market": 0.25,
    "demand": 0.25,
    "competition": 0.20,
    "opportunity_detector": 0.30,
}
DEFAULT_AGENT_WEIGHT = 0.2

URGENCY_STRENGTH: dict[str, float] = {"high": 1.0, "medium": 0.7, "low": 0.4}
URGENCY_BOOST: dict[str, float] = {"high": 1.5, "medium": 1.2, "low": 1.0}

SIGNALS = ("buy", "sell", "hold", "caution")

# (minimum primary share, label); anything lower is "mixed"
CONSENSUS_THRESHOLDS = [
    (0.7, "strong"),
    (0.5, "moderate"),
    (0.3, "weak"),
]

MIN_SUCCESSFUL_REPORTS = 2
TOP_OPPORTUNITY_ACTIONS = 5
MAX_RECOMMENDATIONS = 20
CROWDED_MARKET_HOTELS = 50

TOLERANCE_LEVELS = {"low": 1, "medium": 2, "high": 3}
RISK_LEVEL_RANK = {"LOW": 1, "MEDIUM": 2, "HIGH": 3}


def synthesize(
    reports: Iterable[AgentReport] | Mapping[str, AgentReport],
    risk_tolerance: str = "medium",
    weights: Mapping[str, float] | None = None,
) -> DecisionOutput:
    """Combine agent reports into a consensus, action plan and risk level.

    Args:
        reports: Agent reports (failed ones are excluded from all math).
        risk_tolerance: One of low, medium, high.
        weights: Optional per-agent weight overrides.

    Returns:
        DecisionOutput; `success=False` when fewer than two agents succeeded.
    """
    if isinstance(reports, Mapping):
        reports = reports.values()
    reports = list(reports)
    valid = [r for r in reports if r.success]
    failed = [r.agent for r in reports if not r.success]

    if len(valid) < MIN_SUCCESSFUL_REPORTS:
        logger.warning("insufficient_agent_results", valid=len(valid), failed=failed)
        return DecisionOutput(
            success=False,
            message=(
                f"Insufficient agent results: {len(valid)} successful "
                f"(need {MIN_SUCCESSFUL_REPORTS})"
            ),
            agents_used=[r.agent for r in valid],
            agents_failed=failed,
        )

    tolerance = risk_tolerance.lower() if risk_tolerance.lower() in TOLERANCE_LEVELS else "medium"
    agent_weights = {**AGENT_WEIGHTS, **(weights or {})}

    consensus = build_consensus(valid, agent_weights)
    action_plan = _build_action_plan(consensus, valid, tolerance)
    recommendations = _prioritize_recommendations(valid, agent_weights)
    risk = _assess_risk(valid, action_plan, consensus, tolerance)
    agreement = _agent_agreement(consensus, valid)
    confidence = _overall_confidence(valid, agent_weights)

    logger.info(
        "synthesis_complete",
        primary_signal=consensus.primary_signal,
        strength=consensus.strength,
        risk=risk.level,
        actions=len(action_plan),
        agents=[r.agent for r in valid],
    )

    return DecisionOutput(
        success=True,
        confidence=confidence,
        agents_used=[r.agent for r in valid],
        agents_failed=failed,
        consensus=consensus,
        action_plan=action_plan,
        recommendations=recommendations,
        risk=risk,
        summary=_executive_summary(consensus, action_plan, risk, recommendations),
        agreement=agreement,
    )


# ---------------------------------------------------------------------------
# Consensus
# ---------------------------------------------------------------------------

def action_signal(action: str) -> str | None:
    """Map an agent action tag onto a consensus signal."""
    tag = action.upper()
    if "BUY" in tag:
        return "buy"
    if "SELL" in tag:
        return "sell"
    if "HOLD" in tag or "WAIT" in tag:
        return "hold"
    if "CAUTION" in tag:
        return "caution"
    return None


def build_consensus(
    reports: list[AgentReport],
    weights: Mapping[str, float] = AGENT_WEIGHTS,
) -> ConsensusResult:
    """Weighted vote of every recommendation into buy/sell/hold/caution."""
    buckets = {signal: SignalBucket() for signal in SIGNALS}

    for report in reports:
        weight = weights.get(report.agent, DEFAULT_AGENT_WEIGHT)
        for rec in report.recommendations:
            signal = action_signal(rec.action)
            if signal is None:
                continue
            bucket = buckets[signal]
            bucket.count += 1
            bucket.strength += URGENCY_STRENGTH.get(rec.urgency, 0.5) * weight
            if report.agent not in bucket.agents:
                bucket.agents.append(report.agent)

    ordered = sorted(SIGNALS, key=lambda s: buckets[s].strength, reverse=True)
    primary = ordered[0] if buckets[ordered[0]].strength > 0 else "hold"
    runner_up = next((s for s in ordered if s != primary and buckets[s].strength > 0), None)

    total = sum(b.strength for b in buckets.values())
    share = buckets[primary].strength / total if total > 0 else 0.0

    return ConsensusResult(
        signals={s: SignalBucket(
            count=b.count, strength=round(b.strength, 4), agents=b.agents,
        ) for s, b in buckets.items()},
        primary_signal=primary,
        primary_strength=round(buckets[primary].strength, 4),
        secondary_signal=runner_up,
        secondary_strength=round(buckets[runner_up].strength, 4) if runner_up else 0.0,
        strength=_strength_label(share),
        share=round(min(1.0, share), 4),
        total_strength=round(total, 4),
    )


def _strength_label(share: float) -> str:
    for threshold, label in CONSENSUS_THRESHOLDS:
        if share > threshold:
            return label
    return "mixed"


# ---------------------------------------------------------------------------
# Action plan
# ---------------------------------------------------------------------------

def _priority_to_risk(priority: str, tolerance: str) -> str:
    if priority == "high":
        return "acceptable" if tolerance == "high" else "elevated"
    if priority == "medium":
        return "elevated" if tolerance == "low" else "acceptable"
    return "low"


def _build_action_plan(
    consensus: ConsensusResult,
    reports: list[AgentReport],
    tolerance: str,
) -> list[PlannedAction]:
    actions: list[PlannedAction] = []
    decisive = consensus.strength in ("strong", "moderate")

    if decisive and consensus.primary_signal in ("buy", "sell"):
        verb = consensus.primary_signal.upper()
        actions.append(PlannedAction(
            priority=1,
            action=f"EXECUTE_{verb}",
            description=(
                f"{consensus.strength.capitalize()} {consensus.primary_signal} consensus "
                f"from {', '.join(consensus.signals[consensus.primary_signal].agents)}"
            ),
            timing="immediate",
            confidence=consensus.share,
            risk_level="low" if consensus.strength == "strong" else "acceptable",
        ))

    for idx, opp in enumerate(_top_opportunities(reports)):
        actions.append(PlannedAction(
            priority=idx + 2,
            action=opp.action or opp.opportunity_type,
            description=opp.reason,
            timing="immediate" if opp.priority == "high" else "within_24h",
            confidence=opp.confidence,
            risk_level=_priority_to_risk(opp.priority, tolerance),
            hotel=opp.hotel,
            expected_profit=opp.expected_profit,
        ))

    if not decisive:
        actions.append(PlannedAction(
            priority=10,
            action="MONITOR",
            description="Mixed signals, continue monitoring the market",
            timing="ongoing",
            confidence=consensus.share,
            risk_level="low",
        ))

    return sorted(actions, key=lambda a: a.priority)


def _top_opportunities(reports: list[AgentReport]) -> list[DetectedOpportunity]:
    for report in reports:
        if report.agent == "opportunity_detector":
            return list(report.analysis.get("opportunities", []))[:TOP_OPPORTUNITY_ACTIONS]
    return []


def _prioritize_recommendations(
    reports: list[AgentReport],
    weights: Mapping[str, float],
) -> list[RankedRecommendation]:
    """Cross-agent recommendation list, deduplicated on (action, target)."""
    ranked: list[RankedRecommendation] = []
    for report in reports:
        weight = weights.get(report.agent, DEFAULT_AGENT_WEIGHT)
        for rec in report.recommendations:
            ranked.append(RankedRecommendation(
                agent=report.agent,
                action=rec.action,
                reason=rec.reason,
                urgency=rec.urgency,
                combined_score=round(weight * 10 * URGENCY_BOOST.get(rec.urgency, 1.0), 2),
                target=rec.targets[0] if rec.targets else None,
            ))

    ranked.sort(key=lambda r: r.combined_score, reverse=True)

    seen: set[tuple[str, str | None]] = set()
    unique: list[RankedRecommendation] = []
    for rec in ranked:
        key = (rec.action, rec.target)
        if key in seen:
            continue
        seen.add(key)
        unique.append(rec)
    return unique[:MAX_RECOMMENDATIONS]


# ---------------------------------------------------------------------------
# Risk, confidence, summary
# ---------------------------------------------------------------------------

def _assess_risk(
    reports: list[AgentReport],
    action_plan: list[PlannedAction],
    consensus: ConsensusResult,
    tolerance: str,
) -> RiskAssessment:
    by_agent = {r.agent: r for r in reports}
    factors: list[RiskFactor] = []

    market = by_agent.get("market")
    if market and market.analysis.get("indicators", {}).get("is_volatile"):
        factors.append(RiskFactor(
            factor="High Market Volatility",
            impact="high",
            points=3,
            description="Use smaller position sizes",
        ))

    elevated = any(a.risk_level == "elevated" for a in action_plan)
    if elevated or consensus.strength == "mixed":
        factors.append(RiskFactor(
            factor="Mixed Agent Signals",
            impact="medium",
            points=2,
            description="Wait for clearer signals",
        ))

    competition = by_agent.get("competition")
    if competition and competition.analysis.get("total_hotels", 0) > CROWDED_MARKET_HOTELS:
        factors.append(RiskFactor(
            factor="High Competition",
            impact="medium",
            points=1,
            description="Focus on niche opportunities",
        ))

    score = sum(f.points for f in factors)
    if score > 4:
        level = "HIGH"
    elif score > 2:
        level = "MEDIUM"
    else:
        level = "LOW"

    return RiskAssessment(
        level=level,
        score=score,
        factors=factors,
        risk_tolerance=tolerance,
        within_tolerance=RISK_LEVEL_RANK[level] <= TOLERANCE_LEVELS[tolerance],
    )


def _overall_confidence(reports: list[AgentReport], weights: Mapping[str, float]) -> float:
    total_weight = 0.0
    weighted = 0.0
    for r in reports:
        w = weights.get(r.agent, DEFAULT_AGENT_WEIGHT)
        weighted += r.confidence * w
        total_weight += w
    if total_weight == 0:
        return 0.0
    return round(weighted / total_weight, 4)


def _agent_agreement(consensus: ConsensusResult, reports: list[AgentReport]) -> AgentAgreement:
    agreeing = len(consensus.signals[consensus.primary_signal].agents)
    return AgentAgreement(
        agreeing_agents=agreeing,
        total_agents=len(reports),
        agreement_pct=round(agreeing / len(reports) * 100, 1),
    )


def _executive_summary(
    consensus: ConsensusResult,
    action_plan: list[PlannedAction],
    risk: RiskAssessment,
    recommendations: list[RankedRecommendation],
) -> ExecutiveSummary:
    signal = consensus.primary_signal
    agents = consensus.signals[signal].agents

    if consensus.strength == "strong":
        text = f"Strong {signal} signal, {len(agents)} agents agree."
    elif consensus.strength == "moderate":
        text = f"Moderate {signal} signal, most indicators point the same way."
    elif consensus.strength == "weak":
        text = f"Weak {signal} signal, consider waiting for clearer direction."
    else:
        text = "No clear consensus between agents, keep monitoring."

    return ExecutiveSummary(
        headline=f"{consensus.strength.upper()} {signal.upper()} SIGNAL",
        key_findings=[
            text,
            f"Primary signal: {signal} (strength {consensus.primary_strength:.2f})",
            f"Risk level: {risk.level} (score {risk.score})",
            f"Total recommendations: {len(recommendations)}",
        ],
        next_steps=[a.action for a in action_plan[:3]],
    )
