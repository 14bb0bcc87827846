"""Tests for price elasticity and objective-based recommendations."""

from datetime import date, datetime

import pandas as pd
import pytest

from tests.conftest import AS_OF


@pytest.fixture
def tiered_store(make_booking):
    """Ten offers in each of three price tiers with falling conversion."""
    from src.agents.tools.signal_store import InMemorySignalStore

    bookings = []
    for price, sold_count in ((60.0, 8), (110.0, 4), (160.0, 1)):
        bookings += [make_booking(price=price, sold=i < sold_count) for i in range(10)]
    return InMemorySignalStore(bookings=bookings, now=AS_OF)


def _optimizer(store, **kwargs):
    from src.quant.pricing.elasticity import ElasticityOptimizer

    return ElasticityOptimizer(store, today=lambda: AS_OF.date(), **kwargs)


class TestBucketing:
    def test_fixed_width_bins(self) -> None:
        from src.quant.pricing.elasticity import bucket_prices

        frame = pd.DataFrame({
            "price": [10.0, 24.9, 25.0, 49.0, 120.0],
            "sold": [True, False, True, True, False],
            "lead_time": [5, 7, 10, 20, 40],
        })
        buckets = bucket_prices(frame)

        assert [b.price for b in buckets] == [12.5, 37.5, 112.5]
        assert [b.count for b in buckets] == [2, 2, 1]
        assert buckets[0].conversion_rate == 0.5
        assert buckets[1].conversion_rate == 1.0
        assert buckets[0].avg_lead_time == 6.0

    def test_sparse_and_zero_conversion_pairs_skipped(self) -> None:
        from src.agents.schemas.pricing import PriceBucket
        from src.quant.pricing.elasticity import adjacent_elasticities

        buckets = [
            PriceBucket(price=12.5, count=2, sold=1, conversion_rate=0.5),
            PriceBucket(price=37.5, count=5, sold=0, conversion_rate=0.0),
            PriceBucket(price=62.5, count=5, sold=2, conversion_rate=0.4),
        ]
        assert adjacent_elasticities(buckets) == []

    def test_demand_classification(self) -> None:
        from src.quant.pricing.elasticity import classify_demand

        assert classify_demand(-0.3)[0] == "HIGHLY_INELASTIC"
        assert classify_demand(-0.8)[0] == "INELASTIC"
        assert classify_demand(-1.2)[0] == "UNITARY"
        assert classify_demand(-2.0)[0] == "ELASTIC"
        assert classify_demand(-3.0)[0] == "HIGHLY_ELASTIC"


class TestCalculateElasticity:
    def test_falling_conversion_gives_negative_elasticity(self, tiered_store) -> None:
        profile = _optimizer(tiered_store).calculate_elasticity(1)

        assert profile.success is True
        assert profile.data_points == 30
        assert [b.price for b in profile.buckets] == [62.5, 112.5, 162.5]
        # mean of -0.625 and -1.6875
        assert profile.elasticity == pytest.approx(-1.15625, abs=1e-3)
        assert profile.elasticity < 0
        assert profile.demand_type == "UNITARY"
        assert profile.optimal_price_point.price == 62.5

    def test_insufficient_data(self, make_booking) -> None:
        from src.agents.tools.signal_store import InMemorySignalStore

        store = InMemorySignalStore(
            bookings=[make_booking(price=100.0) for _ in range(3)], now=AS_OF,
        )
        profile = _optimizer(store).calculate_elasticity(1, min_data_points=10)

        assert profile.success is False
        assert profile.error == "Insufficient data points (3 < 10)"

    def test_single_tier_uses_default(self, make_booking) -> None:
        from src.agents.tools.signal_store import InMemorySignalStore
        from src.quant.pricing.elasticity import DEFAULT_ELASTICITY

        store = InMemorySignalStore(
            bookings=[make_booking(price=100.0, sold=i < 5) for i in range(12)], now=AS_OF,
        )
        profile = _optimizer(store).calculate_elasticity(1)

        assert profile.elasticity == DEFAULT_ELASTICITY
        assert profile.elasticity_range is None

    def test_profile_is_cached(self, tiered_store) -> None:
        from src.utils.ttl_cache import TTLCache

        optimizer = _optimizer(tiered_store, cache=TTLCache(ttl_seconds=60))
        first = optimizer.calculate_elasticity(1)
        tiered_store.bookings.clear()

        assert optimizer.calculate_elasticity(1) is first


class TestRecommendPrice:
    def test_revenue_objective(self, tiered_store) -> None:
        rec = _optimizer(tiered_store).recommend_price(1, current_price=110.0)

        assert rec.success is True
        assert rec.recommended_price == 62.5
        assert rec.expected_conversion_rate == 0.8
        assert rec.impact.price_change == -47.5
        assert rec.impact.conversion_change == pytest.approx(0.4)
        assert rec.confidence == 0.60

    def test_profit_objective_respects_cost(self, tiered_store) -> None:
        rec = _optimizer(tiered_store).recommend_price(1, 110.0, objective="profit")
        assert rec.recommended_price == 112.5

    def test_conversion_objective(self, tiered_store) -> None:
        rec = _optimizer(tiered_store).recommend_price(1, 160.0, objective="Conversion")
        assert rec.objective == "conversion"
        assert rec.recommended_price == 62.5

    def test_unknown_objective(self, tiered_store) -> None:
        rec = _optimizer(tiered_store).recommend_price(1, 110.0, objective="volume")
        assert rec.success is False
        assert rec.error == "Unknown objective: volume"

    def test_non_positive_price(self, tiered_store) -> None:
        rec = _optimizer(tiered_store).recommend_price(1, 0.0)
        assert rec.success is False

    def test_propagates_insufficient_data(self) -> None:
        from src.agents.tools.signal_store import InMemorySignalStore

        rec = _optimizer(InMemorySignalStore(now=AS_OF)).recommend_price(1, 100.0)
        assert rec.success is False
        assert rec.error.startswith("Insufficient data points")


class TestSegments:
    def test_weekend_lead_time_and_season(self, make_booking) -> None:
        from src.agents.tools.signal_store import InMemorySignalStore

        # Summer weekday stays booked months ahead, mostly unsold
        summer = [make_booking(price=120.0, sold=i == 0) for i in range(5)]
        # Winter Friday stays booked a few days out, all sold
        winter = [
            make_booking(
                price=80.0,
                sold=True,
                inserted_at=datetime(2025, 2, 10, 9, 0),
                check_in=date(2025, 2, 14),
                check_out=date(2025, 2, 16),
            )
            for _ in range(5)
        ]
        store = InMemorySignalStore(bookings=summer + winter, now=AS_OF)
        analysis = _optimizer(store).analyze_segments(1)

        assert analysis.success is True
        weekend = {s.segment: s for s in analysis.segments["weekend"]}
        assert weekend["Weekend"].avg_price == 80.0
        assert weekend["Weekday"].avg_price == 120.0
        lead = {s.segment: s for s in analysis.segments["leadtime"]}
        assert lead["Last Minute"].conversion_rate == 1.0
        assert lead["Early Booking"].conversion_rate == 0.2
        seasons = {s.segment for s in analysis.segments["seasonal"]}
        assert seasons == {"Summer", "Winter"}

        insights = {i.category: i for i in analysis.insights}
        assert "lower" in insights["Weekend Premium"].message
        assert insights["Weekend Premium"].recommendation == "Consider increasing weekend prices"
        assert insights["Lead Time Strategy"].recommendation == "Maintain last-minute availability"
        assert "50.0% higher" in insights["Seasonal Pricing"].message

    def test_no_offers(self) -> None:
        from src.agents.tools.signal_store import InMemorySignalStore

        analysis = _optimizer(InMemorySignalStore(now=AS_OF)).analyze_segments(1)
        assert analysis.success is False
