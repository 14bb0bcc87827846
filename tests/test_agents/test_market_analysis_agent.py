"""Tests for the Market Analysis Agent."""

from datetime import date, timedelta

from tests.conftest import AS_OF


class TestMarketDecline:
    """Agent declines instead of raising on thin data."""

    def test_empty_batch(self, make_batch) -> None:
        from src.agents.market_analysis_agent import analyze_market

        report = analyze_market(make_batch([]))
        assert report.success is False
        assert report.confidence == 0.0
        assert report.message == "No data available for analysis"

    def test_too_few_priced_bookings(self, make_booking, make_batch) -> None:
        from src.agents.market_analysis_agent import analyze_market

        bookings = [make_booking(price=100.0) for _ in range(4)]
        bookings.append(make_booking(price=0.0))
        report = analyze_market(make_batch(bookings))
        assert report.success is False
        assert "Insufficient price data" in report.message


class TestMarketAnalysis:
    """Statistics, trend and recommendations."""

    def test_price_stats(self, make_booking, make_batch) -> None:
        from src.agents.market_analysis_agent import analyze_market

        bookings = [make_booking(price=p) for p in [80.0, 90.0, 100.0, 110.0, 120.0]]
        report = analyze_market(make_batch(bookings))

        assert report.success is True
        stats = report.analysis["price_stats"]
        assert stats["avg"] == 100.0
        assert stats["min"] == 80.0
        assert stats["max"] == 120.0
        assert report.analysis["data_points"] == 5

    def test_rising_trend_recommends_buy_soon(self, make_booking, make_batch) -> None:
        from src.agents.market_analysis_agent import analyze_market

        bookings = [
            make_booking(price=100.0 + i * 2, inserted_at=AS_OF - timedelta(days=30 - i))
            for i in range(10)
        ]
        report = analyze_market(make_batch(bookings))

        assert report.analysis["trend"] == "rising"
        actions = [r.action for r in report.recommendations]
        assert "BUY_SOON" in actions

    def test_trend_is_idempotent(self, market_bookings, make_batch) -> None:
        from src.agents.market_analysis_agent import analyze_market

        batch = make_batch(market_bookings)
        first = analyze_market(batch)
        second = analyze_market(batch)
        assert first.analysis["trend"] == second.analysis["trend"]
        assert first.analysis == second.analysis

    def test_undervalued_current_price_is_buy(self, make_booking, make_batch) -> None:
        from src.agents.market_analysis_agent import analyze_market

        bookings = [
            make_booking(price=100.0, inserted_at=AS_OF - timedelta(days=20 - i))
            for i in range(9)
        ]
        bookings.append(make_booking(price=60.0, inserted_at=AS_OF - timedelta(days=1)))
        report = analyze_market(make_batch(bookings))

        indicators = report.analysis["indicators"]
        assert indicators["is_undervalued"] is True
        assert report.recommendations[0].action == "BUY"
        assert report.recommendations[0].urgency == "high"

    def test_flat_market_holds(self, make_booking, make_batch) -> None:
        from src.agents.market_analysis_agent import analyze_market

        report = analyze_market(make_batch([make_booking(price=100.0) for _ in range(6)]))
        assert [r.action for r in report.recommendations] == ["HOLD"]

    def test_day_of_week_uses_check_in(self, make_booking, make_batch) -> None:
        from src.agents.market_analysis_agent import analyze_market

        monday = date(2025, 6, 9)
        bookings = [make_booking(price=80.0, check_in=monday) for _ in range(3)]
        bookings += [
            make_booking(price=140.0, check_in=monday + timedelta(days=4)) for _ in range(3)
        ]
        report = analyze_market(make_batch(bookings))

        dow = report.analysis["day_of_week"]
        assert dow["best_day_to_buy"] == "Monday"
        assert dow["worst_day_to_buy"] == "Friday"
        assert dow["by_day"]["Monday"]["bookings"] == 3

    def test_confidence_grows_with_sample(self, market_bookings, make_booking, make_batch) -> None:
        from src.agents.market_analysis_agent import analyze_market

        small = analyze_market(make_batch([make_booking() for _ in range(6)]))
        large = analyze_market(make_batch(market_bookings))
        assert small.confidence == 0.3
        assert large.confidence == 0.5

    def test_scope_filters_by_hotel(self, market_bookings, make_batch) -> None:
        from src.agents.market_analysis_agent import analyze_market
        from src.agents.schemas.signals import ScopeFilters

        report = analyze_market(make_batch(market_bookings), ScopeFilters(hotel_id=2))
        assert report.analysis["data_points"] == 10
