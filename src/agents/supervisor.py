"""LangGraph supervisor for the analysis pipeline.

Orchestrates the analysis agents using a StateGraph:
- Router node: decides which agents run for this request
- Agent nodes: each wraps one pure analysis function
- Synthesizer node: combines the reports into a decision

Agents selected by the router fan out in parallel over the same read-only
SignalBatch. A failing agent is turned into a failed report and never
aborts its siblings.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any, TypedDict

from langgraph.graph import END, StateGraph
from pydantic import BaseModel, Field

from src.agents.competition_agent import analyze_competition
from src.agents.demand_agent import analyze_demand
from src.agents.market_analysis_agent import analyze_market
from src.agents.opportunity_detector_agent import detect_opportunities
from src.agents.schemas.decision import DecisionOutput
from src.agents.schemas.opportunity import OpportunityFilters
from src.agents.schemas.report import AgentReport
from src.agents.schemas.signals import ScopeFilters, SignalBatch
from src.agents.synthesizer import synthesize
from src.agents.tools.signal_store import SignalStore
from src.config.logging_config import bind_analysis_context, get_logger
from src.config.settings import get_settings

logger = get_logger("supervisor")


# ---------------------------------------------------------------------------
# State definition
# ---------------------------------------------------------------------------

class AnalysisState(TypedDict, total=False):
    """State shared across all nodes in the supervisor graph."""

    # Input
    batch: SignalBatch
    scope: ScopeFilters
    agents: list[str]
    filters: OpportunityFilters | None
    instructions: str | None
    risk_tolerance: str
    future_days: int

    # Router output
    plan: list[str]

    # Agent reports (populated by agent nodes)
    market_report: AgentReport | None
    demand_report: AgentReport | None
    competition_report: AgentReport | None
    opportunity_report: AgentReport | None

    # Synthesized output
    decision: DecisionOutput | None


class AnalysisResult(BaseModel):
    """Everything one analysis request produced."""

    success: bool
    message: str = ""
    request_id: str
    data_points: int = 0
    search_points: int = 0
    reports: dict[str, AgentReport] = Field(default_factory=dict)
    decision: DecisionOutput | None = None


AGENT_NAMES = ["market", "demand", "competition", "opportunity_detector"]

AGENT_NODE_MAP = {
    "market": "market_agent",
    "demand": "demand_agent",
    "competition": "competition_agent",
    "opportunity_detector": "opportunity_agent",
}


# ---------------------------------------------------------------------------
# Node functions
# ---------------------------------------------------------------------------

def router_node(state: AnalysisState) -> dict[str, Any]:
    """Decide which agents to invoke."""
    requested = state.get("agents") or AGENT_NAMES
    plan = [name for name in requested if name in AGENT_NODE_MAP]
    if not plan:
        plan = list(AGENT_NAMES)
    logger.info("router_decision", agents=plan)
    return {"plan": plan}


def _run_agent(
    name: str,
    state_key: str,
    fn: Callable[[], AgentReport],
) -> dict[str, Any]:
    try:
        return {state_key: fn()}
    except Exception as e:
        logger.warning(f"{name}_agent_failed", error=str(e))
        return {state_key: AgentReport.declined(name, f"Agent failed: {e}")}


def market_node(state: AnalysisState) -> dict[str, Any]:
    """Run Market Analysis Agent."""
    return _run_agent(
        "market", "market_report",
        lambda: analyze_market(state["batch"], state.get("scope")),
    )


def demand_node(state: AnalysisState) -> dict[str, Any]:
    """Run Demand Prediction Agent."""
    return _run_agent(
        "demand", "demand_report",
        lambda: analyze_demand(
            state["batch"], state.get("scope"), future_days=state.get("future_days", 30),
        ),
    )


def competition_node(state: AnalysisState) -> dict[str, Any]:
    """Run Competition Monitor Agent."""
    return _run_agent(
        "competition", "competition_report",
        lambda: analyze_competition(state["batch"], state.get("scope")),
    )


def opportunity_node(state: AnalysisState) -> dict[str, Any]:
    """Run Opportunity Detector Agent."""
    return _run_agent(
        "opportunity_detector", "opportunity_report",
        lambda: detect_opportunities(
            state["batch"],
            state.get("scope"),
            filters=state.get("filters"),
            instructions=state.get("instructions"),
            max_results=get_settings().max_ranked_opportunities,
        ),
    )


def synthesizer_node(state: AnalysisState) -> dict[str, Any]:
    """Combine all agent reports into a decision."""
    reports = [
        state.get(key)
        for key in ("market_report", "demand_report", "competition_report", "opportunity_report")
    ]
    reports = [r for r in reports if r is not None]

    try:
        decision = synthesize(reports, risk_tolerance=state.get("risk_tolerance", "medium"))
    except Exception as e:
        logger.warning("synthesizer_failed", error=str(e))
        decision = DecisionOutput(success=False, message=f"Synthesis failed: {e}")
    return {"decision": decision}


# ---------------------------------------------------------------------------
# Conditional routing
# ---------------------------------------------------------------------------

def route_to_agents(state: AnalysisState) -> list[str]:
    """Route to the planned agent nodes (parallel fan-out)."""
    return [AGENT_NODE_MAP[name] for name in state.get("plan", AGENT_NAMES)]


# ---------------------------------------------------------------------------
# Graph construction
# ---------------------------------------------------------------------------

def build_supervisor_graph() -> StateGraph:
    """Build the supervisor StateGraph.

    Graph structure:
        router → [agent_1, agent_2, ...] → synthesizer → END
    """
    graph = StateGraph(AnalysisState)

    graph.add_node("router", router_node)
    graph.add_node("market_agent", market_node)
    graph.add_node("demand_agent", demand_node)
    graph.add_node("competition_agent", competition_node)
    graph.add_node("opportunity_agent", opportunity_node)
    graph.add_node("synthesizer", synthesizer_node)

    graph.add_conditional_edges(
        "router",
        route_to_agents,
        {node: node for node in AGENT_NODE_MAP.values()},
    )

    for node_name in AGENT_NODE_MAP.values():
        graph.add_edge(node_name, "synthesizer")

    graph.add_edge("synthesizer", END)
    graph.set_entry_point("router")

    return graph


def compile_supervisor():
    """Compile and return the supervisor graph ready for invocation."""
    return build_supervisor_graph().compile()


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

def build_signal_batch(
    store: SignalStore,
    scope: ScopeFilters,
    lookback_days: int | None = None,
    as_of: datetime | None = None,
) -> SignalBatch:
    """Pull one immutable snapshot of bookings and searches for the scope."""
    settings = get_settings()
    lookback = lookback_days or settings.analysis_lookback_days
    as_of = as_of or datetime.now()

    bookings = store.fetch_booking_signals(
        hotel_id=scope.hotel_id,
        city=scope.city,
        from_date=(as_of - timedelta(days=lookback)).date(),
    )
    searches = store.fetch_search_signals(
        hotel_id=scope.hotel_id, city=scope.city, lookback_days=lookback,
    )

    return SignalBatch(
        bookings=tuple(bookings),
        searches=tuple(searches),
        hotel_id=scope.hotel_id,
        city=scope.city,
        lookback_days=lookback,
        as_of=as_of,
    )


def run_batch_analysis(
    batch: SignalBatch,
    scope: ScopeFilters | None = None,
    agents: list[str] | None = None,
    filters: OpportunityFilters | None = None,
    instructions: str | None = None,
    risk_tolerance: str = "medium",
    future_days: int | None = None,
) -> dict[str, Any]:
    """Run the graph over an existing batch and return the final state."""
    app = compile_supervisor()
    initial_state: AnalysisState = {
        "batch": batch,
        "scope": scope or ScopeFilters(hotel_id=batch.hotel_id, city=batch.city),
        "agents": agents or list(AGENT_NAMES),
        "filters": filters,
        "instructions": instructions,
        "risk_tolerance": risk_tolerance,
        "future_days": future_days or get_settings().forecast_days,
    }
    return app.invoke(initial_state)


def run_analysis(
    store: SignalStore,
    hotel_id: int | None = None,
    city: str | None = None,
    agents: list[str] | None = None,
    filters: OpportunityFilters | None = None,
    instructions: str | None = None,
    risk_tolerance: str = "medium",
    future_days: int | None = None,
    lookback_days: int | None = None,
    as_of: datetime | None = None,
) -> AnalysisResult:
    """Run the full analysis pipeline for a hotel or city.

    Args:
        store: Signal store collaborator.
        hotel_id: Optional hotel scope.
        city: Optional city scope.
        agents: Subset of agents to run (defaults to all four).
        filters: Structured opportunity filters.
        instructions: Free-text opportunity instructions.
        risk_tolerance: One of low, medium, high.
        future_days: Demand forecast horizon.
        lookback_days: Signal lookback window.
        as_of: Reference time (defaults to now).

    Returns:
        AnalysisResult with every agent report and the synthesized decision.
    """
    request_id = uuid.uuid4().hex[:12]
    bind_analysis_context(request_id=request_id, hotel_id=hotel_id, city=city)
    scope = ScopeFilters(hotel_id=hotel_id, city=city)

    try:
        batch = build_signal_batch(store, scope, lookback_days=lookback_days, as_of=as_of)
    except Exception as e:
        logger.error("signal_batch_failed", error=str(e))
        return AnalysisResult(
            success=False,
            message=f"Signal lookup failed: {e}",
            request_id=request_id,
        )
    if not batch.bookings:
        logger.warning("no_booking_signals")
        return AnalysisResult(
            success=False,
            message="No booking data available for analysis",
            request_id=request_id,
        )

    state = run_batch_analysis(
        batch,
        scope=scope,
        agents=agents,
        filters=filters,
        instructions=instructions,
        risk_tolerance=risk_tolerance,
        future_days=future_days,
    )

    reports: dict[str, AgentReport] = {}
    for key in ("market_report", "demand_report", "competition_report", "opportunity_report"):
        report = state.get(key)
        if report is not None:
            reports[report.agent] = report
    decision = state.get("decision")

    logger.info(
        "analysis_complete",
        bookings=len(batch.bookings),
        searches=len(batch.searches),
        agents_ok=[name for name, r in reports.items() if r.success],
        decision_ok=bool(decision and decision.success),
    )

    return AnalysisResult(
        success=bool(decision and decision.success),
        message=decision.message if decision else "",
        request_id=request_id,
        data_points=len(batch.bookings),
        search_points=len(batch.searches),
        reports=reports,
        decision=decision,
    )
