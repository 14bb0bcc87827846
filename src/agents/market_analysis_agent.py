"""Market Analysis Agent.

Reads the priced bookings in scope and answers "is now a good time to buy?":
- Price statistics and a short-window trend
- Day-of-week and month seasonality buckets (by check-in date)
- Market indicators: price position vs average, volatility, momentum
- BUY / SELL / WAIT / BUY_SOON / CAUTION / HOLD recommendations
"""

from __future__ import annotations

import calendar

import pandas as pd

from src.agents.schemas.report import AgentReport, Recommendation
from src.agents.schemas.signals import BookingRecord, ScopeFilters, SignalBatch
from src.config.logging_config import get_logger
from src.quant.stats import (
    MARKET_CONFIDENCE_LADDER,
    classify_trend,
    confidence_from_sample_size,
    describe,
    mean_step,
)

logger = get_logger("market_analysis_agent")

AGENT_NAME = "market"
MIN_PRICED_BOOKINGS = 5

UNDERVALUED_PCT = -10.0
OVERVALUED_PCT = 10.0
VOLATILE_PCT = 20.0
MOMENTUM_WINDOW = 20


def analyze_market(
    batch: SignalBatch,
    scope: ScopeFilters | None = None,
) -> AgentReport:
    """Analyse price levels, trend and seasonality for the scoped bookings.

    Args:
        batch: Shared signal snapshot.
        scope: Hotel / city filter (defaults to the batch scope).

    Returns:
        AgentReport; declined when fewer than MIN_PRICED_BOOKINGS priced
        bookings are in scope.
    """
    scope = scope or ScopeFilters(hotel_id=batch.hotel_id, city=batch.city)
    bookings = [b for b in batch.scoped_bookings(scope) if b.price > 0]

    if not bookings:
        logger.warning("no_market_data", hotel_id=scope.hotel_id, city=scope.city)
        return AgentReport.declined(AGENT_NAME, "No data available for analysis")
    if len(bookings) < MIN_PRICED_BOOKINGS:
        logger.warning("insufficient_market_data", bookings=len(bookings))
        return AgentReport.declined(
            AGENT_NAME,
            f"Insufficient price data: {len(bookings)} bookings "
            f"(need {MIN_PRICED_BOOKINGS})",
        )

    prices = [b.price for b in bookings]
    stats = describe(prices)
    trend = classify_trend(prices)
    frame = _to_frame(bookings)
    indicators = _market_indicators(prices, stats)
    recommendations = _build_recommendations(indicators, trend)
    confidence = confidence_from_sample_size(len(prices), MARKET_CONFIDENCE_LADDER)

    logger.info(
        "market_analysis_complete",
        data_points=len(prices),
        trend=trend,
        price_position=indicators["price_position_pct"],
        recommendations=[r.action for r in recommendations],
    )

    return AgentReport(
        agent=AGENT_NAME,
        success=True,
        confidence=confidence,
        analysis={
            "data_points": len(prices),
            "price_stats": {k: round(v, 2) for k, v in stats.items()},
            "trend": trend,
            "day_of_week": _day_of_week_patterns(frame),
            "seasonality": _seasonality(frame),
            "indicators": indicators,
        },
        recommendations=recommendations,
    )


def _to_frame(bookings: list[BookingRecord]) -> pd.DataFrame:
    return pd.DataFrame({
        "price": [b.price for b in bookings],
        "check_in": pd.to_datetime([b.check_in for b in bookings]),
    })


def _day_of_week_patterns(frame: pd.DataFrame) -> dict:
    """Average price and volume per check-in weekday."""
    dated = frame.dropna(subset=["check_in"])
    if dated.empty:
        return {"by_day": {}, "best_day_to_buy": None, "worst_day_to_buy": None}

    grouped = dated.groupby(dated["check_in"].dt.dayofweek)["price"].agg(["mean", "count"])
    by_day = {
        calendar.day_name[int(day)]: {
            "avg_price": round(float(row["mean"]), 2),
            "bookings": int(row["count"]),
        }
        for day, row in grouped.iterrows()
    }

    return {
        "by_day": by_day,
        "best_day_to_buy": calendar.day_name[int(grouped["mean"].idxmin())],
        "worst_day_to_buy": calendar.day_name[int(grouped["mean"].idxmax())],
    }


def _seasonality(frame: pd.DataFrame) -> dict:
    """Average price per check-in month with peak and low seasons."""
    dated = frame.dropna(subset=["check_in"])
    if dated.empty:
        return {"by_month": {}, "peak_season": [], "low_season": []}

    grouped = dated.groupby(dated["check_in"].dt.month)["price"].agg(["mean", "count"])
    by_month = {
        calendar.month_abbr[int(month)]: {
            "avg_price": round(float(row["mean"]), 2),
            "bookings": int(row["count"]),
        }
        for month, row in grouped.iterrows()
    }
    ordered = grouped["mean"].sort_values(ascending=False, kind="mergesort")

    return {
        "by_month": by_month,
        "peak_season": [calendar.month_abbr[int(m)] for m in ordered.index[:3]],
        "low_season": [calendar.month_abbr[int(m)] for m in ordered.index[::-1][:3]],
    }


def _market_indicators(prices: list[float], stats: dict[str, float]) -> dict:
    avg = stats["avg"]
    current = prices[-1]
    position = (current - avg) / avg * 100 if avg else 0.0
    volatility = stats["std"] / avg * 100 if avg else 0.0

    return {
        "current_price": round(current, 2),
        "price_position_pct": round(position, 2),
        "volatility_pct": round(volatility, 2),
        "momentum": round(mean_step(prices, MOMENTUM_WINDOW), 2),
        "is_undervalued": position < UNDERVALUED_PCT,
        "is_overvalued": position > OVERVALUED_PCT,
        "is_volatile": volatility > VOLATILE_PCT,
    }


def _build_recommendations(indicators: dict, trend: str) -> list[Recommendation]:
    recs: list[Recommendation] = []
    position = indicators["price_position_pct"]

    if indicators["is_undervalued"]:
        recs.append(Recommendation(
            action="BUY",
            reason=f"Current price is {abs(position):.1f}% below average",
            urgency="high",
        ))

    if trend == "falling":
        recs.append(Recommendation(
            action="WAIT",
            reason="Prices are trending down, better prices are likely",
            urgency="medium",
        ))
    elif trend == "rising" and not indicators["is_overvalued"]:
        recs.append(Recommendation(
            action="BUY_SOON",
            reason="Prices are trending up, buy before they rise further",
            urgency="medium",
        ))

    if indicators["is_overvalued"]:
        recs.append(Recommendation(
            action="SELL",
            reason=f"Current price is {position:.1f}% above average",
            urgency="high",
        ))

    if indicators["is_volatile"]:
        recs.append(Recommendation(
            action="CAUTION",
            reason=f"Market is volatile ({indicators['volatility_pct']:.1f}% variation)",
            urgency="low",
        ))

    if not recs:
        recs.append(Recommendation(
            action="HOLD",
            reason="Market is stable, no strong signal",
            urgency="low",
        ))

    return recs
