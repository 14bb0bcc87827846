"""Opportunity Detector Agent.

Scans the bookings in scope for four kinds of trade:
- BUY: inventory priced well below its hotel's mean, still active
- SELL: unsold active inventory priced well above its hotel's mean
- ARBITRAGE: the same hotel and check-in quoted at >15% spread by providers
- LAST_MINUTE: unsold active inventory checking in within a week

Price anomalies (beyond two standard deviations) are reported alongside.
Opportunities are merged, score-normalized by priority and ranked. Optional
structured filters and free-text instructions narrow the ranked list.
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime

from src.agents.instruction_parser import parse_instructions
from src.agents.schemas.opportunity import (
    SEASON_MONTHS,
    DetectedOpportunity,
    OpportunityFilters,
    PriceAnomaly,
)
from src.agents.schemas.report import AgentReport, Recommendation
from src.agents.schemas.signals import BookingRecord, ScopeFilters, SignalBatch
from src.config.logging_config import get_logger
from src.quant.stats import describe

logger = get_logger("opportunity_detector_agent")

AGENT_NAME = "opportunity_detector"
MIN_BOOKINGS = 5
MIN_HOTEL_PRICES = 3
MAX_RESULTS = 50

ANOMALY_STD_MULTIPLIER = 2.0
BUY_BELOW_MEAN = 0.85
SELL_ABOVE_MEAN = 1.10
RESALE_MARKUP = 1.05
ARBITRAGE_MIN_SPREAD_PCT = 15.0
LAST_MINUTE_DAYS = 7

PRIORITY_MULTIPLIERS: dict[str, float] = {"high": 1.5, "medium": 1.0, "low": 0.7}
ARBITRAGE_MULTIPLIER = 1.2

WEEKEND_DAYS = (4, 5)  # Friday, Saturday check-ins


def detect_opportunities(
    batch: SignalBatch,
    scope: ScopeFilters | None = None,
    filters: OpportunityFilters | None = None,
    instructions: str | None = None,
    max_results: int = MAX_RESULTS,
) -> AgentReport:
    """Find and rank buy / sell / arbitrage / timing opportunities.

    Args:
        batch: Shared signal snapshot.
        scope: Hotel / city filter (defaults to the batch scope).
        filters: Structured filters applied to the ranked list.
        instructions: Free-text instructions, parsed into further filters.
        max_results: Cap on the ranked list.

    Returns:
        AgentReport whose analysis holds `opportunities` (ranked
        DetectedOpportunity list), `anomalies` and a `summary`.
    """
    scope = scope or ScopeFilters(hotel_id=batch.hotel_id, city=batch.city)
    bookings = batch.scoped_bookings(scope)

    if len(bookings) < MIN_BOOKINGS:
        logger.warning("insufficient_opportunity_data", bookings=len(bookings))
        return AgentReport.declined(
            AGENT_NAME,
            f"Insufficient data for opportunity detection: {len(bookings)} "
            f"bookings (need {MIN_BOOKINGS})",
        )

    try:
        effective_filters = _resolve_filters(filters, instructions)
    except ValueError as e:
        logger.warning("invalid_opportunity_filters", error=str(e))
        return AgentReport.declined(AGENT_NAME, f"Invalid filters: {e}")

    groups = _group_by_hotel(bookings)
    anomalies = find_price_anomalies(groups)

    candidates = (
        _buy_opportunities(groups)
        + _sell_opportunities(groups)
        + _arbitrage_opportunities(bookings)
        + _timing_opportunities(bookings, batch.as_of)
    )
    ranked = rank_opportunities(candidates)
    if effective_filters is not None:
        ranked = apply_filters(ranked, effective_filters, batch.as_of)

    summary = {
        "total_opportunities": len(ranked),
        "buy_opportunities": sum(1 for o in ranked if o.category == "buy"),
        "sell_opportunities": sum(1 for o in ranked if o.category == "sell"),
        "arbitrage_opportunities": sum(1 for o in ranked if o.category == "arbitrage"),
        "timing_opportunities": sum(1 for o in ranked if o.category == "timing"),
        "high_priority_count": sum(1 for o in ranked if o.priority == "high"),
        "anomalies": len(anomalies),
    }
    ranked = ranked[:max_results]
    confidence = _detector_confidence(len(bookings), summary["total_opportunities"])

    logger.info(
        "opportunity_detection_complete",
        bookings=len(bookings),
        opportunities=summary["total_opportunities"],
        high_priority=summary["high_priority_count"],
        filtered=effective_filters is not None,
    )

    return AgentReport(
        agent=AGENT_NAME,
        success=True,
        confidence=confidence,
        analysis={
            "data_points": len(bookings),
            "opportunities": ranked,
            "anomalies": anomalies,
            "summary": summary,
            "filters": effective_filters.model_dump(exclude_defaults=True) if effective_filters else {},
        },
        recommendations=_build_recommendations(ranked),
    )


# ---------------------------------------------------------------------------
# Detection
# ---------------------------------------------------------------------------

def _group_by_hotel(bookings: list[BookingRecord]) -> dict[str, list[BookingRecord]]:
    groups: dict[str, list[BookingRecord]] = defaultdict(list)
    for b in bookings:
        if b.price > 0:
            groups[b.hotel_key].append(b)
    return groups


def find_price_anomalies(groups: dict[str, list[BookingRecord]]) -> list[PriceAnomaly]:
    """Bookings more than two standard deviations from their hotel mean."""
    anomalies: list[PriceAnomaly] = []
    for hotel, rows in groups.items():
        if len(rows) < MIN_HOTEL_PRICES:
            continue
        stats = describe([b.price for b in rows])
        if stats["std"] == 0:
            continue

        for b in rows:
            deviation = abs(b.price - stats["avg"])
            if deviation > ANOMALY_STD_MULTIPLIER * stats["std"]:
                anomalies.append(PriceAnomaly(
                    hotel=hotel,
                    hotel_id=b.hotel_id,
                    booking_id=b.booking_id,
                    price=b.price,
                    hotel_avg=round(stats["avg"], 2),
                    deviation=round(deviation, 2),
                    anomaly_type="BELOW_AVERAGE" if b.price < stats["avg"] else "ABOVE_AVERAGE",
                    score=round(deviation / stats["avg"] * 100, 2),
                    check_in=b.check_in,
                ))

    anomalies.sort(key=lambda a: a.score, reverse=True)
    return anomalies


def _priority(pct: float, high: float = 20.0, medium: float = 10.0) -> str:
    if pct > high:
        return "high"
    if pct > medium:
        return "medium"
    return "low"


def _opportunity_confidence(pct: float, sample_size: int) -> float:
    confidence = 0.6
    if pct > 25:
        confidence += 0.2
    elif pct > 15:
        confidence += 0.1
    if sample_size > 20:
        confidence += 0.1
    if sample_size > 50:
        confidence += 0.1
    return min(0.95, confidence)


def _buy_opportunities(groups: dict[str, list[BookingRecord]]) -> list[DetectedOpportunity]:
    """Active inventory priced below 85% of its hotel's mean.

    The discount is measured against the hotel's reference price: the mean
    of its prices that are not themselves discounted, so a cluster of cheap
    rooms does not drag down the price they are compared with.
    """
    opportunities: list[DetectedOpportunity] = []
    for hotel, rows in groups.items():
        if len(rows) < MIN_HOTEL_PRICES:
            continue
        prices = [b.price for b in rows]
        avg = describe(prices)["avg"]
        threshold = avg * BUY_BELOW_MEAN
        reference_prices = [p for p in prices if p >= threshold]
        reference = sum(reference_prices) / len(reference_prices)

        for b in rows:
            if b.price >= threshold or not b.active:
                continue
            discount = (reference - b.price) / reference * 100
            sell_price = reference * RESALE_MARKUP
            profit = sell_price - b.price
            opportunities.append(DetectedOpportunity(
                category="buy",
                opportunity_type="BUY",
                reason=f"Price {discount:.1f}% below market reference",
                hotel=hotel,
                hotel_id=b.hotel_id,
                city=b.city,
                booking_id=b.booking_id,
                check_in=b.check_in,
                check_out=b.check_out,
                current_price=b.price,
                market_avg=round(reference, 2),
                discount_pct=round(discount, 2),
                buy_price=b.price,
                estimated_sell_price=round(sell_price, 2),
                expected_profit=round(profit, 2),
                profit_margin_pct=round(profit / sell_price * 100, 2),
                roi_pct=round(profit / b.price * 100, 2),
                score=round(discount, 2),
                priority=_priority(discount),
                confidence=_opportunity_confidence(discount, len(prices)),
                action="BUY",
                free_cancellation=b.free_cancellation,
                pushed=b.pushed,
                sold=b.sold,
            ))
    return opportunities


def _sell_opportunities(groups: dict[str, list[BookingRecord]]) -> list[DetectedOpportunity]:
    """Unsold active inventory priced above 110% of its hotel's mean."""
    opportunities: list[DetectedOpportunity] = []
    for hotel, rows in groups.items():
        if len(rows) < MIN_HOTEL_PRICES:
            continue
        avg = describe([b.price for b in rows])["avg"]

        for b in rows:
            if b.price <= avg * SELL_ABOVE_MEAN or b.sold or not b.active:
                continue
            premium = (b.price - avg) / avg * 100
            opportunities.append(DetectedOpportunity(
                category="sell",
                opportunity_type="SELL",
                reason=f"Price {premium:.1f}% above market average",
                hotel=hotel,
                hotel_id=b.hotel_id,
                city=b.city,
                booking_id=b.booking_id,
                check_in=b.check_in,
                check_out=b.check_out,
                current_price=b.price,
                market_avg=round(avg, 2),
                premium_pct=round(premium, 2),
                score=round(premium, 2),
                priority=_priority(premium),
                confidence=_opportunity_confidence(premium, len(rows)),
                action="SELL",
                free_cancellation=b.free_cancellation,
                pushed=b.pushed,
                sold=b.sold,
            ))
    return opportunities


def _arbitrage_opportunities(bookings: list[BookingRecord]) -> list[DetectedOpportunity]:
    """Same hotel and check-in quoted at a wide spread."""
    quotes: dict[tuple, list[BookingRecord]] = defaultdict(list)
    for b in bookings:
        if b.price > 0 and b.check_in is not None:
            quotes[(b.hotel_key, b.check_in)].append(b)

    opportunities: list[DetectedOpportunity] = []
    for (hotel, check_in), rows in quotes.items():
        if len(rows) < 2:
            continue
        cheapest = min(rows, key=lambda b: b.price)
        dearest = max(rows, key=lambda b: b.price)
        spread = (dearest.price - cheapest.price) / cheapest.price * 100
        if spread <= ARBITRAGE_MIN_SPREAD_PCT:
            continue

        profit = dearest.price - cheapest.price
        opportunities.append(DetectedOpportunity(
            category="arbitrage",
            opportunity_type="ARBITRAGE",
            reason=f"{spread:.1f}% spread between providers for the same stay",
            hotel=hotel,
            hotel_id=cheapest.hotel_id,
            city=cheapest.city,
            check_in=check_in,
            check_out=cheapest.check_out,
            spread_pct=round(spread, 2),
            buy_price=cheapest.price,
            estimated_sell_price=dearest.price,
            expected_profit=round(profit, 2),
            profit_margin_pct=round(profit / dearest.price * 100, 2),
            roi_pct=round(profit / cheapest.price * 100, 2),
            buy_from=cheapest.provider or None,
            sell_to=dearest.provider or None,
            score=round(spread, 2),
            priority=_priority(spread, high=30.0, medium=20.0),
            confidence=_opportunity_confidence(spread, len(rows)),
            action="ARBITRAGE",
            free_cancellation=cheapest.free_cancellation,
            pushed=cheapest.pushed,
            sold=cheapest.sold,
        ))
    return opportunities


def _timing_opportunities(
    bookings: list[BookingRecord],
    as_of: datetime,
) -> list[DetectedOpportunity]:
    """Unsold active inventory checking in within the next week."""
    opportunities: list[DetectedOpportunity] = []
    for b in bookings:
        if b.check_in is None or b.sold or not b.active or b.price <= 0:
            continue
        days = _days_until(b.check_in, as_of)
        if not 0 < days < LAST_MINUTE_DAYS:
            continue

        urgent = days < 3
        opportunities.append(DetectedOpportunity(
            category="timing",
            opportunity_type="LAST_MINUTE",
            reason=f"Check-in in {days:.1f} days and still unsold",
            hotel=b.hotel_key,
            hotel_id=b.hotel_id,
            city=b.city,
            booking_id=b.booking_id,
            check_in=b.check_in,
            check_out=b.check_out,
            days_until_check_in=math.floor(days),
            current_price=b.price,
            score=round(LAST_MINUTE_DAYS - days, 2),
            priority="high" if urgent else "medium",
            action="SELL_URGENTLY" if urgent else "MONITOR",
            free_cancellation=b.free_cancellation,
            pushed=b.pushed,
            sold=b.sold,
        ))
    return opportunities


def _days_until(check_in, as_of: datetime) -> float:
    start = datetime(check_in.year, check_in.month, check_in.day)
    return (start - as_of.replace(tzinfo=None)).total_seconds() / 86400


# ---------------------------------------------------------------------------
# Ranking and filtering
# ---------------------------------------------------------------------------

def rank_opportunities(opportunities: list[DetectedOpportunity]) -> list[DetectedOpportunity]:
    """Score-normalize by priority (and arbitrage bonus), best first."""
    ranked = []
    for o in opportunities:
        final = o.score * PRIORITY_MULTIPLIERS.get(o.priority, 1.0)
        if o.category == "arbitrage":
            final *= ARBITRAGE_MULTIPLIER
        ranked.append(o.model_copy(update={"final_score": round(final, 2)}))

    ranked.sort(key=lambda o: o.final_score, reverse=True)
    return ranked


def _resolve_filters(
    filters: OpportunityFilters | None,
    instructions: str | None,
) -> OpportunityFilters | None:
    parsed = parse_instructions(instructions) if instructions else None
    if filters is None:
        return parsed
    if parsed is None:
        return filters
    return filters.narrowed_by(parsed)


def apply_filters(
    opportunities: list[DetectedOpportunity],
    filters: OpportunityFilters,
    as_of: datetime,
) -> list[DetectedOpportunity]:
    """Keep only the opportunities that satisfy every set filter."""
    return [o for o in opportunities if _passes(o, filters, as_of)]


def _passes(o: DetectedOpportunity, f: OpportunityFilters, as_of: datetime) -> bool:
    if f.only_buy and o.category not in ("buy", "arbitrage"):
        return False
    if f.only_sell and o.category not in ("sell", "timing"):
        return False
    if f.urgent_only and o.priority != "high":
        return False

    if f.min_discount_pct is not None and o.category == "buy":
        if (o.discount_pct or 0) < f.min_discount_pct:
            return False

    price = o.current_price if o.current_price is not None else o.buy_price
    if price is not None:
        if f.max_price is not None and price > f.max_price:
            return False
        if f.min_price is not None and price < f.min_price:
            return False

    if f.hotel_name and f.hotel_name.lower() not in o.hotel.lower():
        return False
    if f.city and f.city.lower() not in o.city.lower():
        return False

    profit = o.expected_profit or 0
    if f.min_profit is not None and profit < f.min_profit:
        return False
    if f.max_profit is not None and profit > f.max_profit:
        return False
    if f.min_margin_pct is not None and (o.profit_margin_pct or 0) < f.min_margin_pct:
        return False
    if f.min_roi_pct is not None and (o.roi_pct or 0) < f.min_roi_pct:
        return False

    if o.check_in is not None:
        days = math.ceil(_days_until(o.check_in, as_of))
        if f.max_days_to_check_in is not None and days > f.max_days_to_check_in:
            return False
        if f.min_days_to_check_in is not None and days < f.min_days_to_check_in:
            return False
        if f.season and o.check_in.month not in SEASON_MONTHS[f.season.lower()]:
            return False
    if f.weekend_only and (o.check_in is None or o.check_in.weekday() not in WEEKEND_DAYS):
        return False

    if f.free_cancellation_only and o.free_cancellation is not True:
        return False
    if f.pushed is not None and o.pushed != f.pushed:
        return False
    if f.sold is not None and o.sold != f.sold:
        return False

    return True


def _detector_confidence(sample_size: int, opportunity_count: int) -> float:
    confidence = 0.5
    if sample_size > 100:
        confidence += 0.2
    if sample_size > 500:
        confidence += 0.1
    if opportunity_count > 10:
        confidence += 0.1
    return min(0.95, confidence)


def _build_recommendations(ranked: list[DetectedOpportunity]) -> list[Recommendation]:
    recs: list[Recommendation] = []
    buys = [o for o in ranked if o.category in ("buy", "arbitrage")]
    sells = [o for o in ranked if o.category in ("sell", "timing")]

    if buys:
        recs.append(Recommendation(
            action="BUY",
            reason=f"{len(buys)} inventory items priced below market",
            urgency="high" if any(o.priority == "high" for o in buys) else "medium",
            targets=list(dict.fromkeys(o.hotel for o in buys))[:5],
        ))
    if sells:
        recs.append(Recommendation(
            action="SELL",
            reason=f"{len(sells)} unsold items priced above market or checking in soon",
            urgency="high" if any(o.priority == "high" for o in sells) else "medium",
            targets=list(dict.fromkeys(o.hotel for o in sells))[:5],
        ))
    return recs
