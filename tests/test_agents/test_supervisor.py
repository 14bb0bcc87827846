"""Tests for Supervisor routing and the analysis graph."""

from tests.conftest import AS_OF


class TestRouterNode:
    """Test router node function."""

    def test_router_defaults_to_all_agents(self) -> None:
        from src.agents.supervisor import AGENT_NAMES, router_node

        result = router_node({})
        assert result["plan"] == AGENT_NAMES

    def test_router_keeps_requested_subset(self) -> None:
        from src.agents.supervisor import router_node

        result = router_node({"agents": ["market", "demand"]})
        assert result["plan"] == ["market", "demand"]

    def test_router_drops_unknown_agents(self) -> None:
        from src.agents.supervisor import AGENT_NAMES, router_node

        assert router_node({"agents": ["market", "weather"]})["plan"] == ["market"]
        assert router_node({"agents": ["weather"]})["plan"] == AGENT_NAMES

    def test_route_to_agents_maps_nodes(self) -> None:
        from src.agents.supervisor import route_to_agents

        nodes = route_to_agents({"plan": ["competition", "opportunity_detector"]})
        assert nodes == ["competition_agent", "opportunity_agent"]


class TestGraphConstruction:
    def test_graph_compiles(self) -> None:
        from src.agents.supervisor import compile_supervisor

        app = compile_supervisor()
        assert app is not None

    def test_graph_has_all_nodes(self) -> None:
        from src.agents.supervisor import build_supervisor_graph

        graph = build_supervisor_graph()
        for node in ("router", "market_agent", "demand_agent", "competition_agent",
                     "opportunity_agent", "synthesizer"):
            assert node in graph.nodes


class TestBatchAnalysis:
    """Full fan-out over a shared batch."""

    def test_all_agents_report(self, market_bookings, make_batch) -> None:
        from src.agents.supervisor import run_batch_analysis

        state = run_batch_analysis(make_batch(market_bookings))

        for key in ("market_report", "demand_report", "competition_report", "opportunity_report"):
            assert state[key] is not None
            assert state[key].success is True
        assert state["decision"].success is True
        assert len(state["decision"].agents_used) == 4

    def test_subset_only_runs_requested_agents(self, market_bookings, make_batch) -> None:
        from src.agents.supervisor import run_batch_analysis

        state = run_batch_analysis(make_batch(market_bookings), agents=["market", "competition"])

        assert state.get("demand_report") is None
        assert state.get("opportunity_report") is None
        assert sorted(state["decision"].agents_used) == ["competition", "market"]

    def test_agent_failure_is_isolated(self, market_bookings, make_batch, monkeypatch) -> None:
        import src.agents.supervisor as supervisor

        def boom(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(supervisor, "analyze_market", boom)
        state = supervisor.run_batch_analysis(make_batch(market_bookings))

        market = state["market_report"]
        assert market.success is False
        assert market.confidence == 0.0
        assert "boom" in market.message
        assert state["demand_report"].success is True
        assert state["decision"].agents_failed == ["market"]
        assert state["decision"].success is True


class TestRunAnalysis:
    def test_empty_store_fails_cleanly(self) -> None:
        from src.agents.supervisor import run_analysis
        from src.agents.tools.signal_store import InMemorySignalStore

        result = run_analysis(InMemorySignalStore(now=AS_OF), city="Paris", as_of=AS_OF)
        assert result.success is False
        assert result.message == "No booking data available for analysis"
        assert result.decision is None

    def test_city_analysis(self, market_bookings, make_search) -> None:
        from src.agents.supervisor import AGENT_NAMES, run_analysis
        from src.agents.tools.signal_store import InMemorySignalStore

        store = InMemorySignalStore(
            bookings=market_bookings,
            searches=[make_search() for _ in range(5)],
            now=AS_OF,
        )
        result = run_analysis(store, city="Paris", as_of=AS_OF)

        assert result.success is True
        assert result.data_points == 30
        assert result.search_points == 5
        assert sorted(result.reports) == sorted(AGENT_NAMES)
        assert len(result.request_id) == 12

    def test_instructions_reach_detector(self, market_bookings) -> None:
        from src.agents.supervisor import run_analysis
        from src.agents.tools.signal_store import InMemorySignalStore

        store = InMemorySignalStore(bookings=market_bookings, now=AS_OF)
        result = run_analysis(
            store, city="Paris", instructions="only sell", as_of=AS_OF,
        )

        detector = result.reports["opportunity_detector"]
        assert detector.analysis["filters"] == {"only_sell": True}
        assert all(
            o.category in ("sell", "timing") for o in detector.analysis["opportunities"]
        )

    def test_store_failure_returns_failed_result(self) -> None:
        from unittest.mock import MagicMock

        from src.agents.supervisor import run_analysis

        store = MagicMock()
        store.fetch_booking_signals.side_effect = ConnectionError("db down")
        result = run_analysis(store, city="Paris", as_of=AS_OF)

        assert result.success is False
        assert result.message == "Signal lookup failed: db down"
        assert result.reports == {}
