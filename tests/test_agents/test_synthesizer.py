"""Tests for the Decision Synthesizer."""

import pytest

from src.agents.schemas.opportunity import DetectedOpportunity
from src.agents.schemas.report import AgentReport, Recommendation


def _report(agent, *actions, confidence=0.7, analysis=None):
    """Successful report whose recommendations are (action, urgency) pairs."""
    return AgentReport(
        agent=agent,
        success=True,
        confidence=confidence,
        analysis=analysis or {},
        recommendations=[
            Recommendation(action=action, reason=f"{agent} says {action}", urgency=urgency)
            for action, urgency in actions
        ],
    )


def _opportunity(priority="high", profit=65.0):
    return DetectedOpportunity(
        category="buy",
        opportunity_type="BUY",
        reason="Price 60.0% below market reference",
        hotel="Hotel Lumiere",
        hotel_id=1,
        buy_price=40.0,
        expected_profit=profit,
        priority=priority,
        confidence=0.9,
        action="BUY",
    )


class TestSynthesizerFailure:
    def test_all_agents_failed(self) -> None:
        from src.agents.synthesizer import synthesize

        reports = [
            AgentReport.declined(name, "no data")
            for name in ("market", "demand", "competition", "opportunity_detector")
        ]
        decision = synthesize(reports)

        assert decision.success is False
        assert decision.consensus is None
        assert decision.action_plan == []
        assert len(decision.agents_failed) == 4

    def test_single_success_is_not_enough(self) -> None:
        from src.agents.synthesizer import synthesize

        decision = synthesize([
            _report("market", ("BUY", "high")),
            AgentReport.declined("demand", "no data"),
        ])
        assert decision.success is False
        assert decision.agents_used == ["market"]
        assert decision.agents_failed == ["demand"]

    def test_failed_report_cannot_carry_confidence(self) -> None:
        with pytest.raises(ValueError):
            AgentReport(agent="market", success=False, confidence=0.5)


class TestConsensus:
    def test_action_signal_mapping(self) -> None:
        from src.agents.synthesizer import action_signal

        assert action_signal("BUY_SOON") == "buy"
        assert action_signal("BUY_BULK_DISCOUNT") == "buy"
        assert action_signal("SELL_URGENTLY") == "sell"
        assert action_signal("WAIT") == "hold"
        assert action_signal("CAUTION_PRICE_ALERTS") == "caution"
        assert action_signal("PREPARE_INVENTORY") is None

    def test_strong_buy_consensus(self) -> None:
        from src.agents.synthesizer import synthesize

        decision = synthesize([
            _report("market", ("BUY", "high")),
            _report("opportunity_detector", ("BUY", "high")),
        ])

        assert decision.success is True
        assert decision.consensus.primary_signal == "buy"
        assert decision.consensus.strength == "strong"
        assert decision.consensus.primary_strength == pytest.approx(0.55)
        assert decision.action_plan[0].action == "EXECUTE_BUY"
        assert decision.action_plan[0].priority == 1
        assert decision.agreement.agreement_pct == 100.0
        assert decision.risk.level == "LOW"

    def test_no_votes_defaults_to_hold(self) -> None:
        from src.agents.synthesizer import build_consensus

        consensus = build_consensus([
            _report("demand", ("PREPARE_INVENTORY", "high")),
            _report("market"),
        ])
        assert consensus.primary_signal == "hold"
        assert consensus.share == 0.0
        assert consensus.strength == "mixed"

    def test_mixed_signals_monitor(self) -> None:
        from src.agents.synthesizer import synthesize

        weights = {"market": 1.0, "demand": 1.0, "competition": 1.0, "opportunity_detector": 1.0}
        decision = synthesize(
            [
                _report("market", ("BUY", "low")),
                _report("demand", ("SELL", "low")),
                _report("competition", ("CAUTION", "low")),
                _report("opportunity_detector", ("HOLD", "low")),
            ],
            weights=weights,
        )

        assert decision.consensus.strength == "mixed"
        assert [a.action for a in decision.action_plan] == ["MONITOR"]
        assert decision.action_plan[0].priority == 10
        factors = [f.factor for f in decision.risk.factors]
        assert "Mixed Agent Signals" in factors

    def test_mapping_input_accepted(self) -> None:
        from src.agents.synthesizer import synthesize

        decision = synthesize({
            "market": _report("market", ("SELL", "high")),
            "demand": _report("demand", ("SELL", "medium")),
        })
        assert decision.consensus.primary_signal == "sell"
        assert decision.action_plan[0].action == "EXECUTE_SELL"


class TestActionPlanAndRisk:
    def test_top_opportunities_follow_consensus(self) -> None:
        from src.agents.synthesizer import synthesize

        detector = _report(
            "opportunity_detector",
            ("BUY", "high"),
            analysis={"opportunities": [_opportunity() for _ in range(7)]},
        )
        decision = synthesize([_report("market", ("BUY", "high")), detector])

        priorities = [a.priority for a in decision.action_plan]
        assert priorities == [1, 2, 3, 4, 5, 6]
        assert decision.action_plan[1].hotel == "Hotel Lumiere"
        assert decision.action_plan[1].expected_profit == 65.0
        assert decision.action_plan[1].timing == "immediate"

    def test_volatile_market_with_elevated_actions_is_high_risk(self) -> None:
        from src.agents.synthesizer import synthesize

        market = _report(
            "market", ("BUY", "high"), analysis={"indicators": {"is_volatile": True}},
        )
        detector = _report(
            "opportunity_detector",
            ("BUY", "high"),
            analysis={"opportunities": [_opportunity(priority="high")]},
        )

        medium = synthesize([market, detector], risk_tolerance="medium")
        assert medium.risk.score == 5
        assert medium.risk.level == "HIGH"
        assert medium.risk.within_tolerance is False

        high = synthesize([market, detector], risk_tolerance="high")
        assert high.risk.score == 3
        assert high.risk.level == "MEDIUM"
        assert high.risk.within_tolerance is True

    def test_crowded_market_factor(self) -> None:
        from src.agents.synthesizer import synthesize

        decision = synthesize([
            _report("market", ("BUY", "high")),
            _report("competition", ("BUY_BULK_DISCOUNT", "medium"), analysis={"total_hotels": 60}),
        ])
        assert "High Competition" in [f.factor for f in decision.risk.factors]

    def test_recommendations_deduplicated(self) -> None:
        from src.agents.synthesizer import synthesize

        decision = synthesize([
            _report("market", ("BUY", "high")),
            _report("opportunity_detector", ("BUY", "high")),
        ])
        assert [r.action for r in decision.recommendations] == ["BUY"]
        assert decision.recommendations[0].agent == "opportunity_detector"

    def test_overall_confidence_is_weighted(self) -> None:
        from src.agents.synthesizer import synthesize

        decision = synthesize([
            _report("market", ("BUY", "high"), confidence=0.5),
            _report("opportunity_detector", ("BUY", "high"), confidence=1.0),
        ])
        # (0.5 * 0.25 + 1.0 * 0.30) / 0.55
        assert decision.confidence == pytest.approx(0.7727, abs=1e-4)

    def test_summary_headline(self) -> None:
        from src.agents.synthesizer import synthesize

        decision = synthesize([
            _report("market", ("BUY", "high")),
            _report("opportunity_detector", ("BUY", "high")),
        ])
        assert decision.summary.headline == "STRONG BUY SIGNAL"
        assert decision.summary.next_steps[0] == "EXECUTE_BUY"
