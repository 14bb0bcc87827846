"""Price elasticity of conversion.

Buckets a hotel's historical offers into fixed 25-unit price bins, measures
each bin's conversion rate and derives point elasticity between adjacent
bins. The resulting profile classifies demand and drives objective-based
price recommendations (revenue, profit or conversion).
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date, timedelta

import numpy as np
import pandas as pd

from src.agents.schemas.pricing import (
    ElasticityProfile,
    PriceBucket,
    PriceImpact,
    PriceRecommendation,
    SegmentAnalysis,
    SegmentInsight,
    SegmentStats,
)
from src.agents.schemas.signals import BookingRecord
from src.agents.tools.signal_store import SignalStore
from src.config.logging_config import get_logger
from src.utils.ttl_cache import TTLCache, make_key

logger = get_logger("pricing.elasticity")

BUCKET_WIDTH = 25.0
MIN_BUCKET_SAMPLES = 3
DEFAULT_ELASTICITY = -1.2
DEFAULT_COST_RATIO = 0.7
SEGMENT_LOOKBACK_DAYS = 180

# (exclusive lower bound, demand type, interpretation); checked in order
DEMAND_TYPES: list[tuple[float, str, str]] = [
    (-0.5, "HIGHLY_INELASTIC",
     "Demand is highly inelastic: price increases barely reduce conversions. "
     "Consider premium pricing."),
    (-1.0, "INELASTIC",
     "Demand is inelastic: moderate price increases are viable without major "
     "conversion loss."),
    (-1.5, "UNITARY",
     "Demand is unitary elastic: price changes move conversions proportionally."),
    (-2.5, "ELASTIC",
     "Demand is elastic: a price-sensitive market, price competitively."),
]
HIGHLY_ELASTIC = (
    "HIGHLY_ELASTIC",
    "Demand is highly elastic: lower prices significantly increase conversions.",
)

# (minimum sample, confidence)
RECOMMENDATION_CONFIDENCE = [(100, 0.95), (50, 0.85), (20, 0.70), (10, 0.60)]

OBJECTIVES = ("revenue", "profit", "conversion")


def classify_demand(elasticity: float) -> tuple[str, str]:
    """Demand type and its interpretation for a scalar elasticity."""
    for bound, demand_type, interpretation in DEMAND_TYPES:
        if elasticity > bound:
            return demand_type, interpretation
    return HIGHLY_ELASTIC


def bucket_prices(frame: pd.DataFrame) -> list[PriceBucket]:
    """Group (price, sold, lead_time) rows into 25-unit bins, cheapest first."""
    bins = (frame["price"] // BUCKET_WIDTH) * BUCKET_WIDTH + BUCKET_WIDTH / 2
    grouped = (
        frame.assign(bucket=bins)
        .groupby("bucket")
        .agg(count=("sold", "size"), sold=("sold", "sum"), avg_lead=("lead_time", "mean"))
        .sort_index()
    )

    buckets = []
    for price, row in grouped.iterrows():
        count = int(row["count"])
        sold = int(row["sold"])
        avg_lead = row["avg_lead"]
        buckets.append(PriceBucket(
            price=float(price),
            count=count,
            sold=sold,
            conversion_rate=sold / count,
            avg_lead_time=None if pd.isna(avg_lead) else round(float(avg_lead), 1),
        ))
    return buckets


def adjacent_elasticities(buckets: list[PriceBucket]) -> list[float]:
    """Point elasticity between neighbouring bins with enough samples.

    Pairs whose lower bin never converted are skipped: a percentage change
    from zero conversion is undefined.
    """
    values = []
    for low, high in zip(buckets, buckets[1:]):
        if low.count < MIN_BUCKET_SAMPLES or high.count < MIN_BUCKET_SAMPLES:
            continue
        if low.conversion_rate == 0:
            continue
        price_change = (high.price - low.price) / low.price
        if price_change == 0:
            values.append(0.0)
            continue
        conversion_change = (high.conversion_rate - low.conversion_rate) / low.conversion_rate
        values.append(conversion_change / price_change)
    return values


def _offer_frame(bookings: list[BookingRecord]) -> pd.DataFrame:
    rows = []
    for b in bookings:
        price = b.list_price if b.list_price else b.price
        if price <= 0:
            continue
        lead = (b.check_in - b.inserted_at.date()).days if b.check_in else np.nan
        rows.append({
            "price": float(price),
            "sold": bool(b.sold),
            "lead_time": lead,
            "check_in": b.check_in,
        })
    return pd.DataFrame(rows, columns=["price", "sold", "lead_time", "check_in"])


class ElasticityOptimizer:
    """Elasticity profiles and objective-based price recommendations.

    Args:
        store: Signal store collaborator.
        cache: Optional TTL cache for computed profiles.
        today: Date source for lookback windows.
    """

    def __init__(
        self,
        store: SignalStore,
        cache: TTLCache | None = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.store = store
        self.cache = cache
        self.today = today

    def calculate_elasticity(
        self,
        hotel_id: int,
        timeframe_days: int = 90,
        min_data_points: int = 10,
    ) -> ElasticityProfile:
        """Build the elasticity profile for a hotel.

        Returns:
            ElasticityProfile; `success=False` with an "Insufficient data
            points" error when fewer than `min_data_points` offers qualify.
        """
        if self.cache is not None:
            key = make_key(
                "elasticity", hotel_id=hotel_id, days=timeframe_days, min=min_data_points,
            )
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        bookings = self.store.fetch_booking_signals(
            hotel_id=hotel_id,
            from_date=self.today() - timedelta(days=timeframe_days),
        )
        frame = _offer_frame(bookings)

        if len(frame) < min_data_points:
            logger.warning(
                "insufficient_elasticity_data",
                hotel_id=hotel_id,
                data_points=len(frame),
                required=min_data_points,
            )
            return ElasticityProfile(
                success=False,
                error=f"Insufficient data points ({len(frame)} < {min_data_points})",
                hotel_id=hotel_id,
                timeframe_days=timeframe_days,
                data_points=len(frame),
            )

        buckets = bucket_prices(frame)
        values = adjacent_elasticities(buckets)
        elasticity = float(np.mean(values)) if values else DEFAULT_ELASTICITY
        demand_type, interpretation = classify_demand(elasticity)
        optimal = max(buckets, key=lambda b: b.price * b.conversion_rate * b.count)

        profile = ElasticityProfile(
            success=True,
            hotel_id=hotel_id,
            timeframe_days=timeframe_days,
            data_points=len(frame),
            elasticity=round(elasticity, 4),
            elasticity_range=(round(min(values), 4), round(max(values), 4)) if values else None,
            demand_type=demand_type,
            interpretation=interpretation,
            buckets=buckets,
            optimal_price_point=optimal,
        )

        logger.info(
            "elasticity_calculated",
            hotel_id=hotel_id,
            elasticity=profile.elasticity,
            demand_type=demand_type,
            buckets=len(buckets),
            pairs=len(values),
        )

        if self.cache is not None:
            self.cache.set(key, profile)
        return profile

    def recommend_price(
        self,
        hotel_id: int,
        current_price: float,
        objective: str = "revenue",
        assumed_cost_ratio: float = DEFAULT_COST_RATIO,
    ) -> PriceRecommendation:
        """Pick the bucket price that maximizes the objective.

        Args:
            hotel_id: Hotel to price.
            current_price: Price in force today.
            objective: One of revenue, profit, conversion.
            assumed_cost_ratio: Cost as a share of the current price (profit).
        """
        objective = objective.lower()
        if objective not in OBJECTIVES:
            return PriceRecommendation(
                success=False,
                error=f"Unknown objective: {objective}",
                hotel_id=hotel_id,
                objective=objective,
                current_price=current_price,
            )
        if current_price <= 0:
            return PriceRecommendation(
                success=False,
                error="current_price must be positive",
                hotel_id=hotel_id,
                objective=objective,
                current_price=current_price,
            )

        profile = self.calculate_elasticity(hotel_id)
        if not profile.success:
            return PriceRecommendation(
                success=False,
                error=profile.error,
                hotel_id=hotel_id,
                objective=objective,
                current_price=current_price,
            )

        cost = current_price * assumed_cost_ratio
        scorers: dict[str, Callable[[PriceBucket], float]] = {
            "revenue": lambda b: b.price * b.conversion_rate,
            "profit": lambda b: (b.price - cost) * b.conversion_rate,
            "conversion": lambda b: b.conversion_rate,
        }
        best = max(profile.buckets, key=scorers[objective])
        current = min(profile.buckets, key=lambda b: abs(b.price - current_price))

        expected_revenue = best.price * best.conversion_rate
        current_revenue = current_price * current.conversion_rate
        impact = PriceImpact(
            price_change=round(best.price - current_price, 2),
            price_change_pct=round((best.price - current_price) / current_price * 100, 2),
            conversion_change=round(best.conversion_rate - current.conversion_rate, 4),
            current_revenue=round(current_revenue, 2),
            expected_revenue=round(expected_revenue, 2),
            revenue_change=round(expected_revenue - current_revenue, 2),
        )

        logger.info(
            "price_recommended",
            hotel_id=hotel_id,
            objective=objective,
            current=current_price,
            recommended=best.price,
        )

        return PriceRecommendation(
            success=True,
            hotel_id=hotel_id,
            objective=objective,
            current_price=current_price,
            recommended_price=best.price,
            expected_conversion_rate=best.conversion_rate,
            elasticity=profile.elasticity,
            demand_type=profile.demand_type,
            impact=impact,
            confidence=_sample_confidence(min(best.count, current.count)),
        )

    def analyze_segments(self, hotel_id: int) -> SegmentAnalysis:
        """Average offer price and conversion by weekend, lead time and season."""
        bookings = self.store.fetch_booking_signals(
            hotel_id=hotel_id,
            from_date=self.today() - timedelta(days=SEGMENT_LOOKBACK_DAYS),
        )
        frame = _offer_frame(bookings).dropna(subset=["check_in"])
        if frame.empty:
            return SegmentAnalysis(
                success=False, error="No dated offers to segment", hotel_id=hotel_id,
            )

        check_in = pd.to_datetime(frame["check_in"])
        frame = frame.assign(
            weekend=np.where(check_in.dt.dayofweek.isin([4, 5]), "Weekend", "Weekday"),
            lead=pd.cut(
                frame["lead_time"],
                bins=[-np.inf, 7, 30, np.inf],
                labels=["Last Minute", "Short Lead", "Early Booking"],
                right=False,
            ).astype(str),
            season=np.select(
                [check_in.dt.month.isin([6, 7, 8]), check_in.dt.month.isin([12, 1, 2])],
                ["Summer", "Winter"],
                default="Shoulder",
            ),
        )

        segments = {
            "weekend": _segment_stats(frame, "weekend"),
            "leadtime": _segment_stats(frame, "lead"),
            "seasonal": _segment_stats(frame, "season"),
        }
        return SegmentAnalysis(
            success=True,
            hotel_id=hotel_id,
            segments=segments,
            insights=_segment_insights(segments),
        )


def _segment_stats(frame: pd.DataFrame, column: str) -> list[SegmentStats]:
    grouped = frame.groupby(column).agg(
        avg_price=("price", "mean"), conversion=("sold", "mean"), count=("sold", "size"),
    )
    return [
        SegmentStats(
            segment=str(name),
            avg_price=round(float(row["avg_price"]), 2),
            conversion_rate=round(float(row["conversion"]), 4),
            data_points=int(row["count"]),
        )
        for name, row in grouped.iterrows()
        if str(name) != "nan"
    ]


def _segment_insights(segments: dict[str, list[SegmentStats]]) -> list[SegmentInsight]:
    def find(group: str, name: str) -> SegmentStats | None:
        return next((s for s in segments[group] if s.segment == name), None)

    insights: list[SegmentInsight] = []

    weekend, weekday = find("weekend", "Weekend"), find("weekend", "Weekday")
    if weekend and weekday and weekday.avg_price > 0:
        diff = (weekend.avg_price - weekday.avg_price) / weekday.avg_price * 100
        insights.append(SegmentInsight(
            category="Weekend Premium",
            message=f"Weekend prices are {abs(diff):.1f}% {'higher' if diff > 0 else 'lower'} than weekdays",
            recommendation=(
                "Consider increasing weekend prices" if diff < 5 else "Weekend premium is adequate"
            ),
        ))

    last_minute, early = find("leadtime", "Last Minute"), find("leadtime", "Early Booking")
    if last_minute and early:
        diff = last_minute.conversion_rate - early.conversion_rate
        insights.append(SegmentInsight(
            category="Lead Time Strategy",
            message=(
                f"Last minute offers convert {abs(diff) * 100:.1f} points "
                f"{'better' if diff > 0 else 'worse'}"
            ),
            recommendation=(
                "Maintain last-minute availability" if diff > 0.1
                else "Focus on early booking incentives"
            ),
        ))

    summer, winter = find("seasonal", "Summer"), find("seasonal", "Winter")
    if summer and winter and winter.avg_price > 0:
        diff = (summer.avg_price - winter.avg_price) / winter.avg_price * 100
        insights.append(SegmentInsight(
            category="Seasonal Pricing",
            message=f"Summer prices are {abs(diff):.1f}% {'higher' if diff > 0 else 'lower'} than winter",
            recommendation="Adjust pricing strategy to seasonal demand",
        ))

    return insights


def _sample_confidence(sample_size: int) -> float:
    for minimum, confidence in RECOMMENDATION_CONFIDENCE:
        if sample_size >= minimum:
            return confidence
    return 0.50
