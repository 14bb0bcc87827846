"""Demand Prediction Agent.

Two channels feed the demand picture:
- Bookings: velocity, time-of-day mix, lead-time distribution, a per-day
  forecast for the coming N days and the historically hot weeks.
- Search intent: searches/day and its trend, with its own recommendations.

Searches count one tenth of a booking in the sample-size confidence.
"""

from __future__ import annotations

import calendar
from collections import Counter
from datetime import date, datetime, timedelta

import pandas as pd

from src.agents.schemas.report import AgentReport, Recommendation
from src.agents.schemas.signals import BookingRecord, ScopeFilters, SearchRecord, SignalBatch
from src.config.logging_config import get_logger
from src.quant.stats import (
    DEMAND_CONFIDENCE_LADDER,
    classify_trend,
    confidence_from_sample_size,
)

logger = get_logger("demand_agent")

AGENT_NAME = "demand"
MIN_BOOKINGS = 10
SEARCH_WEIGHT_DIVISOR = 10
RECENT_BOOKING_DAYS = 30
RECENT_SEARCH_DAYS = 7
MAX_LEAD_TIME_DAYS = 365
HOT_PERIOD_MULTIPLIER = 1.5

# Monday=0 ... Sunday=6
DAY_OF_WEEK_MULTIPLIERS: dict[int, float] = {
    0: 0.8,
    1: 0.9,
    2: 0.9,
    3: 1.0,
    4: 1.3,
    5: 1.4,
    6: 1.2,
}

LEAD_TIME_BUCKETS: list[tuple[float, str]] = [
    (1, "same_day"),
    (3, "1_3_days"),
    (7, "3_7_days"),
    (14, "1_2_weeks"),
    (28, "2_4_weeks"),
    (float("inf"), "over_4_weeks"),
]

# (start hour inclusive, end hour exclusive, label); anything else is night
DAY_PERIODS: list[tuple[int, int, str]] = [
    (6, 12, "morning"),
    (12, 18, "afternoon"),
    (18, 22, "evening"),
]


def analyze_demand(
    batch: SignalBatch,
    scope: ScopeFilters | None = None,
    future_days: int = 30,
) -> AgentReport:
    """Forecast demand from booking history and search intent.

    Args:
        batch: Shared signal snapshot.
        scope: Hotel / city filter (defaults to the batch scope).
        future_days: Forecast horizon starting at `batch.as_of`.

    Returns:
        AgentReport; declined below MIN_BOOKINGS bookings.
    """
    scope = scope or ScopeFilters(hotel_id=batch.hotel_id, city=batch.city)
    bookings = batch.scoped_bookings(scope)

    if len(bookings) < MIN_BOOKINGS:
        logger.warning("insufficient_demand_data", bookings=len(bookings))
        return AgentReport.declined(
            AGENT_NAME,
            f"Insufficient booking data for demand prediction: {len(bookings)} "
            f"bookings (need {MIN_BOOKINGS})",
        )

    searches = batch.scoped_searches(scope)
    forecast = _forecast(bookings, batch.as_of.date(), future_days)
    search_intent = _search_intent(searches, batch.as_of)

    recommendations = _booking_recommendations(forecast) + _search_recommendations(search_intent)
    effective_sample = len(bookings) + len(searches) / SEARCH_WEIGHT_DIVISOR
    confidence = confidence_from_sample_size(effective_sample, DEMAND_CONFIDENCE_LADDER)

    velocity = _booking_velocity(bookings, batch.as_of)
    logger.info(
        "demand_analysis_complete",
        bookings=len(bookings),
        searches=len(searches),
        velocity_trend=velocity["trend"],
        search_trend=search_intent["trend"],
    )

    return AgentReport(
        agent=AGENT_NAME,
        success=True,
        confidence=confidence,
        analysis={
            "data_points": len(bookings),
            "search_points": len(searches),
            "velocity": velocity,
            "demand_by_period": _demand_by_period(bookings),
            "lead_time": _lead_time_distribution(bookings),
            "day_of_week_multipliers": {
                calendar.day_name[d]: m for d, m in DAY_OF_WEEK_MULTIPLIERS.items()
            },
            "forecast": forecast,
            "hot_periods": _hot_periods(bookings),
            "search_intent": search_intent,
        },
        recommendations=recommendations,
    )


def _booking_velocity(bookings: list[BookingRecord], as_of: datetime) -> dict:
    first = bookings[0].inserted_at
    last = bookings[-1].inserted_at
    span_days = max(1.0, (last - first).total_seconds() / 86400)
    daily = len(bookings) / span_days

    cutoff = as_of - timedelta(days=RECENT_BOOKING_DAYS)
    recent = sum(1 for b in bookings if b.inserted_at >= cutoff)
    recent_daily = recent / RECENT_BOOKING_DAYS

    if recent_daily > daily * 1.2:
        trend = "accelerating"
    elif recent_daily < daily * 0.8:
        trend = "decelerating"
    else:
        trend = "stable"

    return {
        "daily": round(daily, 3),
        "weekly": round(daily * 7, 2),
        "recent_daily": round(recent_daily, 3),
        "recent_bookings": recent,
        "trend": trend,
    }


def _period_of_day(hour: int) -> str:
    for start, end, label in DAY_PERIODS:
        if start <= hour < end:
            return label
    return "night"


def _demand_by_period(bookings: list[BookingRecord]) -> dict:
    counts = Counter(_period_of_day(b.inserted_at.hour) for b in bookings)
    total = len(bookings)
    periods = {
        label: {"bookings": counts.get(label, 0), "pct": round(counts.get(label, 0) / total * 100, 1)}
        for label in ("morning", "afternoon", "evening", "night")
    }
    peak = max(periods, key=lambda label: periods[label]["bookings"])
    return {"periods": periods, "peak_period": peak}


def _lead_time_bucket(days: int) -> str:
    for upper, label in LEAD_TIME_BUCKETS:
        if days < upper:
            return label
    return LEAD_TIME_BUCKETS[-1][1]


def _lead_time_distribution(bookings: list[BookingRecord]) -> dict:
    lead_times = [
        (b.check_in - b.inserted_at.date()).days
        for b in bookings
        if b.check_in is not None
    ]
    lead_times = [d for d in lead_times if 0 <= d < MAX_LEAD_TIME_DAYS]
    if not lead_times:
        return {"avg_days": None, "samples": 0, "distribution": {}}

    counts = Counter(_lead_time_bucket(d) for d in lead_times)
    distribution = {
        label: {
            "bookings": counts.get(label, 0),
            "pct": round(counts.get(label, 0) / len(lead_times) * 100, 1),
        }
        for _, label in LEAD_TIME_BUCKETS
    }
    return {
        "avg_days": round(sum(lead_times) / len(lead_times), 1),
        "samples": len(lead_times),
        "distribution": distribution,
    }


def _demand_level(predicted: int, avg_daily: float) -> str:
    if predicted < avg_daily * 0.5:
        return "low"
    if predicted < avg_daily:
        return "medium"
    if predicted < avg_daily * 1.5:
        return "high"
    return "very_high"


def _forecast(bookings: list[BookingRecord], start: date, future_days: int) -> list[dict]:
    """Per-day demand for the next `future_days` days.

    Historical check-ins on the same day of the year, scaled by the
    day-of-week multiplier, compared against the average daily volume.
    """
    by_day_of_year = Counter(
        b.check_in.timetuple().tm_yday for b in bookings if b.check_in is not None
    )
    avg_daily = len(bookings) / 365

    forecast = []
    for offset in range(future_days):
        day = start + timedelta(days=offset)
        historical = by_day_of_year.get(day.timetuple().tm_yday, 0)
        multiplier = DAY_OF_WEEK_MULTIPLIERS[day.weekday()]
        predicted = int(round(historical * multiplier))
        forecast.append({
            "date": day,
            "day_of_week": calendar.day_name[day.weekday()],
            "historical": historical,
            "multiplier": multiplier,
            "predicted_demand": predicted,
            "demand_level": _demand_level(predicted, avg_daily),
        })
    return forecast


def _hot_periods(bookings: list[BookingRecord], limit: int = 10) -> list[dict]:
    """ISO weeks whose check-in volume exceeds 1.5x the average week."""
    weeks = Counter()
    for b in bookings:
        if b.check_in is None:
            continue
        year, week, _ = b.check_in.isocalendar()
        weeks[f"{year}-W{week:02d}"] += 1

    if not weeks:
        return []

    avg = sum(weeks.values()) / len(weeks)
    hot = [
        {"week": key, "bookings": count, "vs_average": round(count / avg, 2)}
        for key, count in weeks.items()
        if count > avg * HOT_PERIOD_MULTIPLIER
    ]
    hot.sort(key=lambda h: h["bookings"], reverse=True)
    return hot[:limit]


def _search_intent(searches: list[SearchRecord], as_of: datetime) -> dict:
    if not searches:
        return {
            "total_searches": 0,
            "searches_per_day": 0.0,
            "recent_per_day": 0.0,
            "trend": "stable",
            "avg_search_price": None,
        }

    daily = (
        pd.Series(1, index=pd.to_datetime([s.updated_at for s in searches]))
        .resample("D")
        .sum()
    )
    per_day = len(searches) / len(daily)

    cutoff = as_of - timedelta(days=RECENT_SEARCH_DAYS)
    recent = sum(1 for s in searches if s.updated_at >= cutoff)
    priced = [s.price for s in searches if s.price > 0]

    return {
        "total_searches": len(searches),
        "searches_per_day": round(per_day, 2),
        "recent_per_day": round(recent / RECENT_SEARCH_DAYS, 2),
        "trend": classify_trend(daily.tolist()),
        "avg_search_price": round(sum(priced) / len(priced), 2) if priced else None,
    }


def _booking_recommendations(forecast: list[dict]) -> list[Recommendation]:
    recs: list[Recommendation] = []
    busy = [f["date"] for f in forecast if f["demand_level"] in ("high", "very_high")]
    quiet = [f["date"] for f in forecast if f["demand_level"] == "low"]

    if busy:
        recs.append(Recommendation(
            action="PREPARE_INVENTORY",
            reason=f"High demand expected on {len(busy)} upcoming days",
            urgency="high",
            dates=busy[:5],
        ))
    if quiet:
        recs.append(Recommendation(
            action="BUY_OPPORTUNITY",
            reason=f"Low demand expected on {len(quiet)} days, buy at lower prices",
            urgency="medium",
            dates=quiet[:5],
        ))
    return recs


def _search_recommendations(intent: dict) -> list[Recommendation]:
    if intent["total_searches"] == 0:
        return []

    if intent["trend"] == "rising":
        return [Recommendation(
            action="BUY_AHEAD_OF_SEARCH_DEMAND",
            reason=f"Search interest is rising ({intent['searches_per_day']} searches/day)",
            urgency="high" if intent["searches_per_day"] >= 5 else "medium",
            channel="search",
        )]
    if intent["trend"] == "falling":
        return [Recommendation(
            action="HOLD_SEARCH_COOLING",
            reason="Search interest is cooling, hold off on new inventory",
            urgency="low",
            channel="search",
        )]
    return []
