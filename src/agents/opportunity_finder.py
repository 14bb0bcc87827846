"""Opportunity finder: historical performance meets live supplier prices.

Looks backward at a city's best-converting hotels, asks the live-price
source what each one costs right now, and scores every stay on price
advantage, margin and risk. Lookups fan out concurrently; a hotel whose
lookup fails or times out is dropped and recorded in `skipped`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from datetime import date, timedelta

import pandas as pd

from src.agents.schemas.portfolio import (
    CityBreakdown,
    CityRank,
    FinderResult,
    Opportunity,
    ScanResult,
    SkippedHotel,
)
from src.agents.schemas.signals import BookingRecord
from src.agents.tools.live_price_api import LivePrice, LivePriceSource
from src.agents.tools.signal_store import SignalStore
from src.config.logging_config import get_logger
from src.config.settings import Settings, get_settings
from src.quant.stats import clamp, describe
from src.utils.errors import InvalidConstraintError, UpstreamUnavailableError

logger = get_logger("opportunity_finder")

# Fallbacks when the hotel has no history
DEFAULT_SUCCESS_RATE = 50.0
DEFAULT_MARGIN = 15.0
DEFAULT_CANCEL_RATE = 10.0

MARKUP_BONUS = 5.0
MARKUP_CAP = 25.0
SEARCH_LOOKBACK_DAYS = 30
TOP_CITIES_LOOKBACK_MONTHS = 3
TOP_CITIES_MIN_BOOKINGS = 10


class OpportunityFinder:
    """Find buyable stays by comparing live prices with hotel history.

    Args:
        store: Signal store collaborator.
        live_prices: Live supplier price collaborator.
        today: Date source for lookback and lead-time computations.
        settings: Overrides the process settings.
    """

    def __init__(
        self,
        store: SignalStore,
        live_prices: LivePriceSource,
        today: Callable[[], date] = date.today,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.live_prices = live_prices
        self.today = today
        self.settings = settings or get_settings()

    # -----------------------------------------------------------------
    # Public operations
    # -----------------------------------------------------------------

    async def find_opportunities(
        self,
        city: str,
        check_in: date,
        check_out: date,
        min_margin: float = 10.0,
        max_risk: float = 60.0,
        limit: int = 20,
    ) -> FinderResult:
        """Score live prices for the top historical hotels in a city.

        Args:
            city: City to search.
            check_in: Stay start.
            check_out: Stay end.
            min_margin: Minimum expected margin, percent.
            max_risk: Maximum risk score, 0-100.
            limit: How many historical hotels to price.

        Returns:
            FinderResult with surviving opportunities sorted by expected margin.
        """
        try:
            _validate_window(city, check_in, check_out, min_margin, max_risk, limit)
        except InvalidConstraintError as e:
            return FinderResult(success=False, error=str(e), city=city)

        try:
            history = await asyncio.to_thread(self._history, city=city)
        except Exception as e:
            logger.error("finder_history_failed", city=city, error=str(e))
            return FinderResult(success=False, error=f"History lookup failed: {e}", city=city)

        hotels = rank_hotels(history, limit)
        logger.info("candidate_hotels", city=city, hotels=len(hotels))

        hotel_ids = [h["hotel_id"] for h in hotels]
        prices, search_counts = await asyncio.gather(
            self._fetch_prices(hotel_ids, check_in, check_out),
            self._search_counts(hotel_ids),
        )

        opportunities: list[Opportunity] = []
        skipped: list[SkippedHotel] = []
        for hotel, price in zip(hotels, prices):
            hotel_id = hotel["hotel_id"]
            if isinstance(price, BaseException):
                skipped.append(SkippedHotel(hotel_id=hotel_id, reason=str(price)))
                continue
            if price is None:
                skipped.append(SkippedHotel(hotel_id=hotel_id, reason="no availability"))
                continue

            hotel_history = [b for b in history if b.hotel_id == hotel_id]
            opportunity = self.analyze_opportunity(
                hotel_history, price, check_in, check_out,
                search_count=search_counts[hotel_id],
                hotel_name=hotel["hotel_name"],
                city=hotel["city"] or city,
            )
            if opportunity.expected_margin >= min_margin and opportunity.risk_score <= max_risk:
                opportunities.append(opportunity)

        opportunities.sort(key=lambda o: o.expected_margin, reverse=True)

        logger.info(
            "opportunities_found",
            city=city,
            scanned=len(hotels),
            found=len(opportunities),
            skipped=len(skipped),
        )

        return FinderResult(
            success=True,
            city=city,
            opportunities=opportunities,
            hotels_scanned=len(hotels),
            skipped=skipped,
        )

    async def scan_all_cities(
        self,
        cities: Sequence[str],
        check_in: date,
        check_out: date,
        min_margin: float = 10.0,
        max_risk: float = 60.0,
        limit_per_city: int | None = None,
    ) -> ScanResult:
        """Run `find_opportunities` for every city and merge the results."""
        limit = limit_per_city or self.settings.scan_limit_per_city
        results = await asyncio.gather(*(
            self.find_opportunities(
                city, check_in, check_out,
                min_margin=min_margin, max_risk=max_risk, limit=limit,
            )
            for city in cities
        ), return_exceptions=True)

        merged: list[Opportunity] = []
        breakdown: list[CityBreakdown] = []
        for city, result in zip(cities, results):
            if isinstance(result, Exception):
                logger.error("city_scan_failed", city=city, error=str(result))
                breakdown.append(CityBreakdown(city=city, success=False, error=str(result)))
                continue
            breakdown.append(CityBreakdown(
                city=city,
                opportunities=len(result.opportunities),
                success=result.success,
                error=result.error,
            ))
            merged.extend(result.opportunities)

        merged.sort(key=lambda o: o.expected_margin, reverse=True)
        return ScanResult(
            success=True,
            opportunities=merged[: self.settings.scan_max_results],
            cities_scanned=len(cities),
            city_breakdown=breakdown,
        )

    def top_cities_to_scan(self, limit: int = 10) -> list[CityRank]:
        """Cities with the best recent sell-through, then booking volume."""
        since = self.today() - timedelta(days=30 * TOP_CITIES_LOOKBACK_MONTHS)
        try:
            bookings = self.store.fetch_booking_signals(from_date=since)
        except Exception as e:
            logger.error("top_cities_lookup_failed", error=str(e))
            return []

        rows = [
            {"city": b.city, "hotel_id": b.hotel_id, "sold": b.sold}
            for b in bookings
            if b.city
        ]
        if not rows:
            return []

        grouped = (
            pd.DataFrame(rows)
            .groupby("city")
            .agg(bookings=("sold", "size"), sold=("sold", "sum"), hotels=("hotel_id", "nunique"))
        )
        grouped = grouped[grouped["bookings"] >= TOP_CITIES_MIN_BOOKINGS]
        grouped["success_rate"] = grouped["sold"] / grouped["bookings"] * 100
        grouped = grouped.sort_values(["success_rate", "bookings"], ascending=False).head(limit)

        return [
            CityRank(
                city=str(city),
                bookings=int(row["bookings"]),
                hotels=int(row["hotels"]),
                success_rate=round(float(row["success_rate"]), 1),
            )
            for city, row in grouped.iterrows()
        ]

    # -----------------------------------------------------------------
    # Scoring
    # -----------------------------------------------------------------

    def analyze_opportunity(
        self,
        history: Sequence[BookingRecord],
        live: LivePrice,
        check_in: date,
        check_out: date,
        search_count: int = 0,
        hotel_name: str = "",
        city: str = "",
    ) -> Opportunity:
        """Score one live price against the hotel's own booking history."""
        priced = [b for b in history if b.price > 0]
        stats = describe([b.price for b in priced])

        historical_avg = stats["avg"] or live.price
        price_diff_pct = (historical_avg - live.price) / historical_avg * 100

        sold = [b for b in priced if b.sold]
        success_rate = len(sold) / len(priced) * 100 if priced else DEFAULT_SUCCESS_RATE

        margins = [
            (b.list_price - b.price) / b.price * 100
            for b in sold
            if b.list_price is not None
        ]
        historical_margin = sum(margins) / len(margins) if margins else DEFAULT_MARGIN

        markup = clamp(historical_margin + MARKUP_BONUS, 0.0, MARKUP_CAP)
        days_to_arrival = (check_in - self.today()).days

        volatility = stats["std"] / stats["avg"] * 100 if stats["avg"] else 0.0
        cancel_rate = (
            sum(1 for b in priced if b.cancelled) / len(priced) * 100
            if priced else DEFAULT_CANCEL_RATE
        )
        risk = risk_score(volatility, days_to_arrival, cancel_rate, success_rate, search_count)
        recommendation, confidence, reasons = recommend(price_diff_pct, success_rate, risk)

        return Opportunity(
            hotel_id=live.hotel_id,
            hotel_name=hotel_name,
            city=city,
            check_in=check_in,
            check_out=check_out,
            buy_price=live.price,
            currency=live.currency,
            room_type=live.room_type,
            historical_avg_price=round(historical_avg, 2),
            price_diff_pct=round(price_diff_pct, 1),
            success_rate=round(success_rate, 1),
            historical_margin=round(historical_margin, 1),
            expected_margin=round(markup, 1),
            suggested_sell_price=round(live.price * (1 + markup / 100)),
            success_probability=round(
                success_probability(success_rate, price_diff_pct, search_count), 1
            ),
            risk_score=round(risk, 1),
            risk_level=risk_level(risk),
            recommendation=recommendation,
            confidence=confidence,
            reasons=reasons,
            search_count=search_count,
            days_to_arrival=days_to_arrival,
        )

    # -----------------------------------------------------------------
    # Collaborator access
    # -----------------------------------------------------------------

    def _history(self, city: str | None = None, hotel_id: int | None = None) -> list[BookingRecord]:
        since = self.today() - timedelta(days=30 * self.settings.finder_history_months)
        return self.store.fetch_booking_signals(hotel_id=hotel_id, city=city, from_date=since)

    async def _search_counts(self, hotel_ids: list[int]) -> dict[int, int]:
        """Recent search volume per hotel; a failed lookup counts as no searches."""
        results = await asyncio.gather(*(
            asyncio.to_thread(
                self.store.fetch_search_signals,
                hotel_id=hotel_id,
                lookback_days=SEARCH_LOOKBACK_DAYS,
            )
            for hotel_id in hotel_ids
        ), return_exceptions=True)

        counts = {}
        for hotel_id, result in zip(hotel_ids, results):
            if isinstance(result, Exception):
                logger.warning("search_lookup_failed", hotel_id=hotel_id, error=str(result))
                counts[hotel_id] = 0
            else:
                counts[hotel_id] = len(result)
        return counts

    async def _fetch_prices(
        self, hotel_ids: list[int], check_in: date, check_out: date
    ) -> list[LivePrice | None | BaseException]:
        timeout = self.settings.live_price_timeout_seconds
        adults = self.settings.live_price_adults

        async def one(hotel_id: int) -> LivePrice | None:
            try:
                return await asyncio.wait_for(
                    self.live_prices.fetch_live_price(hotel_id, check_in, check_out, adults),
                    timeout=timeout,
                )
            except asyncio.TimeoutError as e:
                logger.warning("live_price_lookup_timeout", hotel_id=hotel_id)
                raise UpstreamUnavailableError("live_price", "timeout") from e

        results = await asyncio.gather(*(one(h) for h in hotel_ids), return_exceptions=True)
        for hotel_id, result in zip(hotel_ids, results):
            if isinstance(result, BaseException) and not isinstance(
                result, UpstreamUnavailableError
            ):
                logger.warning("live_price_lookup_failed", hotel_id=hotel_id, error=str(result))
        return results


# ---------------------------------------------------------------------------
# Pure scoring helpers
# ---------------------------------------------------------------------------

def rank_hotels(history: Sequence[BookingRecord], limit: int) -> list[dict]:
    """Hotels ordered by success rate, then booking volume."""
    if not history:
        return []

    frame = pd.DataFrame([
        {"hotel_id": b.hotel_id, "hotel_name": b.hotel_name, "city": b.city, "sold": b.sold}
        for b in history
    ])
    grouped = frame.groupby("hotel_id").agg(
        hotel_name=("hotel_name", "first"),
        city=("city", "first"),
        bookings=("sold", "size"),
        sold=("sold", "sum"),
    )
    grouped["success_rate"] = grouped["sold"] / grouped["bookings"] * 100
    grouped = grouped.sort_values(["success_rate", "bookings"], ascending=False).head(limit)

    return [
        {
            "hotel_id": int(hotel_id),
            "hotel_name": str(row["hotel_name"]),
            "city": str(row["city"]),
            "bookings": int(row["bookings"]),
            "success_rate": float(row["success_rate"]),
        }
        for hotel_id, row in grouped.iterrows()
    ]


def risk_score(
    volatility_pct: float,
    days_to_arrival: int,
    cancel_rate_pct: float,
    success_rate_pct: float,
    search_count: int,
) -> float:
    """Additive 0-100 risk score.

    Components: volatility 0-25, lead time 0-20, cancellations 0-20,
    low success rate 0-20, low search demand 0-15.
    """
    score = min(25.0, max(0.0, volatility_pct))

    if days_to_arrival < 7:
        score += 20
    elif days_to_arrival < 14:
        score += 12
    elif days_to_arrival < 30:
        score += 5

    score += min(20.0, max(0.0, cancel_rate_pct))

    if success_rate_pct < 40:
        score += 20
    elif success_rate_pct < 60:
        score += 10

    if search_count < 5:
        score += 15
    elif search_count < 20:
        score += 8

    return score


def risk_level(score: float) -> str:
    if score < 30:
        return "LOW"
    if score < 60:
        return "MEDIUM"
    return "HIGH"


def success_probability(success_rate_pct: float, price_diff_pct: float, search_count: int) -> float:
    """Chance the stay resells, percent, clamped to [20, 95]."""
    probability = 50 + (success_rate_pct - 50) * 0.3

    if price_diff_pct > 10:
        probability += 15
    elif price_diff_pct > 5:
        probability += 8
    elif price_diff_pct < -10:
        probability -= 15

    if search_count > 50:
        probability += 10
    elif search_count < 10:
        probability -= 5

    return clamp(probability, 20.0, 95.0)


def recommend(
    price_diff_pct: float, success_rate_pct: float, risk: float
) -> tuple[str, float, list[str]]:
    """Recommendation label, confidence and the reasons behind it."""
    reasons: list[str] = []

    if price_diff_pct > 10 and success_rate_pct > 60 and risk < 40:
        reasons.append(f"Price {price_diff_pct:.1f}% below historical average")
        reasons.append(f"High success rate ({success_rate_pct:.0f}%)")
        reasons.append("Low risk profile")
        return "STRONG BUY", 0.85, reasons

    if price_diff_pct > 0 and success_rate_pct > 50 and risk < 60:
        reasons.append(f"Price {price_diff_pct:.1f}% below average")
        reasons.append(f"Good success rate ({success_rate_pct:.0f}%)")
        return "BUY", 0.70, reasons

    if success_rate_pct > 40 and risk < 70:
        reasons.append("Moderate opportunity")
        if price_diff_pct < 0:
            reasons.append(f"Price {abs(price_diff_pct):.1f}% above average")
        return "CONSIDER", 0.50, reasons

    if success_rate_pct < 40:
        reasons.append(f"Low success rate ({success_rate_pct:.0f}%)")
    if risk >= 70:
        reasons.append("High risk")
    if price_diff_pct < -10:
        reasons.append("Price too high vs historical")
    return "PASS", 0.30, reasons


def _validate_window(
    city: str,
    check_in: date,
    check_out: date,
    min_margin: float,
    max_risk: float,
    limit: int,
) -> None:
    if not city or not city.strip():
        raise InvalidConstraintError("city is required")
    if check_out <= check_in:
        raise InvalidConstraintError("check_out must be after check_in")
    if min_margin < 0:
        raise InvalidConstraintError("min_margin must not be negative")
    if not 0 <= max_risk <= 100:
        raise InvalidConstraintError("max_risk must be within [0, 100]")
    if limit < 1:
        raise InvalidConstraintError("limit must be at least 1")
