"""Tests for the Competition Monitor Agent."""

import pytest


def _hotel(make_booking, hotel_id, name, prices, sold=False, city="Paris"):
    return [
        make_booking(hotel_id=hotel_id, hotel_name=name, city=city, price=p, sold=sold)
        for p in prices
    ]


class TestCompetitionDecline:
    def test_single_hotel_is_not_a_market(self, make_booking, make_batch) -> None:
        from src.agents.competition_agent import analyze_competition

        report = analyze_competition(make_batch([make_booking() for _ in range(8)]))
        assert report.success is False
        assert report.message == "Insufficient competitor data"

    def test_empty_batch(self, make_batch) -> None:
        from src.agents.competition_agent import analyze_competition

        assert analyze_competition(make_batch([])).success is False


class TestCompetitionAnalysis:
    def test_rankings_and_confidence(self, market_bookings, make_batch) -> None:
        from src.agents.competition_agent import analyze_competition

        report = analyze_competition(make_batch(market_bookings))

        assert report.success is True
        assert report.analysis["total_hotels"] == 3
        assert report.confidence == 0.15
        ranks = [r["rank"] for r in report.analysis["rankings"]]
        assert ranks == [1, 2, 3]
        assert sum(report.analysis["market_share"].values()) == pytest.approx(100.0, abs=0.05)

    def test_price_gap_detected(self, make_booking, make_batch) -> None:
        from src.agents.competition_agent import analyze_competition

        bookings = _hotel(make_booking, 1, "Budget Stay", [100.0] * 4)
        bookings += _hotel(make_booking, 2, "Grand Palace", [150.0] * 4)
        report = analyze_competition(make_batch(bookings))

        gaps = report.analysis["price_gaps"]
        assert len(gaps) == 1
        assert gaps[0]["lower_hotel"] == "Budget Stay"
        assert gaps[0]["gap_pct"] == 50.0
        assert "FILL_PRICE_GAP" in [r.action for r in report.recommendations]

    def test_underperforming_inventory(self, make_booking, make_batch) -> None:
        from src.agents.competition_agent import analyze_competition

        bookings = _hotel(make_booking, 1, "Empty Rooms", [100.0] * 12, sold=False)
        bookings += _hotel(make_booking, 2, "Busy Inn", [105.0] * 12, sold=True)
        report = analyze_competition(make_batch(bookings))

        under = report.analysis["opportunities"]["underperforming_inventory"]
        leaders = report.analysis["opportunities"]["market_leaders"]
        assert [u["hotel"] for u in under] == ["Empty Rooms"]
        assert [leader["hotel"] for leader in leaders] == ["Busy Inn"]

        bulk = next(r for r in report.recommendations if r.action == "BUY_BULK_DISCOUNT")
        assert bulk.targets == ["Empty Rooms"]

    def test_volatile_pricing_is_caution(self, make_booking, make_batch) -> None:
        from src.agents.competition_agent import analyze_competition

        bookings = _hotel(make_booking, 1, "Swingy", [50.0, 150.0, 50.0, 150.0])
        bookings += _hotel(make_booking, 2, "Steady", [100.0] * 4)
        report = analyze_competition(make_batch(bookings))

        caution = next(r for r in report.recommendations if r.action == "CAUTION_PRICE_ALERTS")
        assert caution.targets == ["Swingy"]
        assert caution.urgency == "high"

    def test_target_hotel_excluded_from_competitors(self, market_bookings, make_batch) -> None:
        from src.agents.competition_agent import analyze_competition
        from src.agents.schemas.signals import ScopeFilters

        report = analyze_competition(
            make_batch(market_bookings), ScopeFilters(hotel_id=1, city="Paris"),
        )

        assert report.analysis["target_hotel"] == "Hotel Lumiere"
        names = [c["hotel"] for c in report.analysis["competitors"]]
        assert "Hotel Lumiere" not in names
        assert len(names) == 2

    def test_market_limited_to_city(self, make_booking, make_batch) -> None:
        from src.agents.competition_agent import analyze_competition
        from src.agents.schemas.signals import ScopeFilters

        bookings = _hotel(make_booking, 1, "Paris One", [100.0] * 3)
        bookings += _hotel(make_booking, 2, "Paris Two", [110.0] * 3)
        bookings += _hotel(make_booking, 3, "Roma Uno", [90.0] * 3, city="Rome")
        report = analyze_competition(make_batch(bookings), ScopeFilters(city="Paris"))

        assert report.analysis["total_hotels"] == 2
