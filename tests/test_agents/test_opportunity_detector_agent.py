"""Tests for the Opportunity Detector Agent."""

from datetime import date, timedelta

import pytest

from tests.conftest import AS_OF


@pytest.fixture
def discounted_batch(make_booking, make_batch):
    """20 rooms at 100 and 5 active, unsold rooms at 40 for one hotel."""
    bookings = [make_booking(price=100.0) for _ in range(20)]
    bookings += [make_booking(price=40.0, active=True, sold=False) for _ in range(5)]
    return make_batch(bookings)


class TestDetectorDecline:
    def test_too_few_bookings(self, make_booking, make_batch) -> None:
        from src.agents.opportunity_detector_agent import detect_opportunities

        report = detect_opportunities(make_batch([make_booking() for _ in range(4)]))
        assert report.success is False
        assert report.confidence == 0.0

    def test_conflicting_filters_decline(self, discounted_batch) -> None:
        from src.agents.opportunity_detector_agent import detect_opportunities

        report = detect_opportunities(
            discounted_batch, instructions="only buy and only sell please",
        )
        assert report.success is False
        assert "Invalid filters" in report.message


class TestBuyDetection:
    """The low-priced cluster is flagged for purchase."""

    def test_flags_five_buys_at_sixty_percent(self, discounted_batch) -> None:
        from src.agents.opportunity_detector_agent import detect_opportunities

        report = detect_opportunities(discounted_batch)
        buys = [o for o in report.analysis["opportunities"] if o.category == "buy"]

        assert len(buys) == 5
        for o in buys:
            assert o.discount_pct == pytest.approx(60.0)
            assert o.buy_price == 40.0
            assert o.estimated_sell_price == 105.0
            assert o.expected_profit == 65.0
            assert o.priority == "high"
            assert o.confidence == pytest.approx(0.9)

    def test_inactive_rooms_are_not_buys(self, make_booking, make_batch) -> None:
        from src.agents.opportunity_detector_agent import detect_opportunities

        bookings = [make_booking(price=100.0) for _ in range(20)]
        bookings += [make_booking(price=40.0, active=False) for _ in range(5)]
        report = detect_opportunities(make_batch(bookings))

        assert report.analysis["summary"]["buy_opportunities"] == 0

    def test_buy_recommendation_emitted(self, discounted_batch) -> None:
        from src.agents.opportunity_detector_agent import detect_opportunities

        report = detect_opportunities(discounted_batch)
        buy = next(r for r in report.recommendations if r.action == "BUY")
        assert buy.urgency == "high"
        assert buy.targets == ["Hotel Lumiere"]


class TestOtherCategories:
    def test_arbitrage_between_providers(self, make_booking, make_batch) -> None:
        from src.agents.opportunity_detector_agent import detect_opportunities

        stay = date(2025, 7, 1)
        bookings = [
            make_booking(price=100.0, check_in=stay + timedelta(days=i * 2))
            for i in range(4)
        ]
        bookings.append(make_booking(price=120.0, check_in=stay, provider="Expedia"))
        bookings.append(make_booking(price=80.0, check_in=stay, provider="Innstant"))
        report = detect_opportunities(make_batch(bookings))

        arbitrage = [o for o in report.analysis["opportunities"] if o.category == "arbitrage"]
        assert len(arbitrage) == 1
        assert arbitrage[0].spread_pct == 50.0
        assert arbitrage[0].buy_from == "Innstant"
        assert arbitrage[0].sell_to == "Expedia"
        assert arbitrage[0].expected_profit == 40.0

    def test_last_minute_inventory(self, make_booking, make_batch) -> None:
        from src.agents.opportunity_detector_agent import detect_opportunities

        bookings = [
            make_booking(price=100.0, check_in=date(2025, 8, 1) + timedelta(days=i))
            for i in range(5)
        ]
        soon = AS_OF.date() + timedelta(days=2)
        bookings.append(make_booking(price=100.0, check_in=soon, sold=False))
        report = detect_opportunities(make_batch(bookings))

        timing = [o for o in report.analysis["opportunities"] if o.category == "timing"]
        assert len(timing) == 1
        assert timing[0].action == "SELL_URGENTLY"
        assert timing[0].days_until_check_in == 1

    def test_anomalies_beyond_two_std(self, make_booking, make_batch) -> None:
        from src.agents.opportunity_detector_agent import find_price_anomalies

        rows = [make_booking(price=100.0) for _ in range(20)] + [make_booking(price=300.0)]
        anomalies = find_price_anomalies({"Hotel Lumiere": rows})
        assert len(anomalies) == 1
        assert anomalies[0].anomaly_type == "ABOVE_AVERAGE"
        assert anomalies[0].price == 300.0


class TestRankingAndFilters:
    def test_ranking_is_descending(self, discounted_batch) -> None:
        from src.agents.opportunity_detector_agent import detect_opportunities

        ranked = detect_opportunities(discounted_batch).analysis["opportunities"]
        scores = [o.final_score for o in ranked]
        assert scores == sorted(scores, reverse=True)

    def test_only_buy_filter(self, discounted_batch) -> None:
        from src.agents.opportunity_detector_agent import detect_opportunities
        from src.agents.schemas.opportunity import OpportunityFilters

        report = detect_opportunities(discounted_batch, filters=OpportunityFilters(only_buy=True))
        categories = {o.category for o in report.analysis["opportunities"]}
        assert categories <= {"buy", "arbitrage"}
        assert report.analysis["summary"]["sell_opportunities"] == 0

    def test_instructions_only_narrow(self, discounted_batch) -> None:
        from src.agents.opportunity_detector_agent import detect_opportunities
        from src.agents.schemas.opportunity import OpportunityFilters

        base = detect_opportunities(discounted_batch, filters=OpportunityFilters(only_buy=True))
        narrowed = detect_opportunities(
            discounted_batch,
            filters=OpportunityFilters(only_buy=True),
            instructions="max price 50",
        )
        def keys(report):
            return {(o.category, o.booking_id) for o in report.analysis["opportunities"]}

        assert keys(narrowed) <= keys(base)
        assert narrowed.analysis["summary"]["buy_opportunities"] == 5
        assert narrowed.analysis["filters"] == {"only_buy": True, "max_price": 50.0}

    def test_season_phrase_keeps_june_buys(self, discounted_batch) -> None:
        from src.agents.opportunity_detector_agent import detect_opportunities

        report = detect_opportunities(discounted_batch, instructions="only buy in Summer")

        assert report.analysis["filters"] == {"only_buy": True, "season": "summer"}
        buys = [o for o in report.analysis["opportunities"] if o.category == "buy"]
        assert len(buys) == 5

    def test_min_discount_filter_drops_small_discounts(self, discounted_batch) -> None:
        from src.agents.opportunity_detector_agent import detect_opportunities
        from src.agents.schemas.opportunity import OpportunityFilters

        report = detect_opportunities(
            discounted_batch,
            filters=OpportunityFilters(only_buy=True, min_discount_pct=70),
        )
        assert report.analysis["summary"]["buy_opportunities"] == 0

    def test_max_results_caps_list_not_summary(self, discounted_batch) -> None:
        from src.agents.opportunity_detector_agent import detect_opportunities

        report = detect_opportunities(discounted_batch, max_results=3)
        assert len(report.analysis["opportunities"]) == 3
        assert report.analysis["summary"]["total_opportunities"] > 3
