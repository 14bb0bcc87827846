"""Ensemble resell-price predictor.

Four sub-models run over one feature vector:
1. Base: linear blend of historical / competitor deltas, lead-time decay,
   demand and occupancy adjustments, weekend and high-season premiums
2. Elasticity: +/- adjustment from an elasticity estimate
3. Competitor: nudge toward the competitor average, damped by pressure
4. Seasonal: multiplicative month / weekend / occupancy factor

The ensemble is (base + elasticity + competitor) x seasonal, clamped to
[buy x 1.10, buy x 2.0]. Missing upstream data falls back to fixed
multiples of the buy price instead of failing the prediction.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import date
from typing import Any

from src.agents.schemas.pricing import (
    ComponentModels,
    PredictionResult,
    PriceBounds,
    PriceFeatures,
    PricePrediction,
)
from src.agents.tools.signal_store import SignalStore
from src.config.logging_config import get_logger
from src.quant.stats import clamp
from src.utils.errors import InvalidConstraintError
from src.utils.ttl_cache import TTLCache, make_key

logger = get_logger("pricing.ensemble")

MIN_MARGIN_MULTIPLIER = 1.10
MAX_PRICE_MULTIPLIER = 2.0

# Fallbacks when upstream data is missing, as multiples of the buy price
FALLBACK_HISTORICAL_AVG = 1.25
FALLBACK_COMPETITOR_AVG = 1.30
FALLBACK_COMPETITOR_MIN = 1.15
FALLBACK_COMPETITOR_MAX = 1.50
FALLBACK_OCCUPANCY = 0.7
FALLBACK_CONVERSION = 0.5

DEMAND_LEVELS: dict[str, float] = {
    "LOW": 0.3,
    "MEDIUM": 0.5,
    "HIGH": 0.8,
    "VERY_HIGH": 0.95,
}

ROOM_TYPE_CODES: dict[str, int] = {
    "STANDARD": 1,
    "DELUXE": 2,
    "SUITE": 3,
    "EXECUTIVE": 4,
}

HIGH_SEASON_MONTHS = (6, 7, 8, 12)
WEEKEND_DAYS = (4, 5)  # Friday, Saturday check-ins

MONTH_FACTORS: dict[int, float] = {
    1: 0.90, 2: 0.92, 3: 0.95, 4: 1.05, 5: 1.08, 6: 1.15,
    7: 1.20, 8: 1.18, 9: 1.05, 10: 1.00, 11: 0.95, 12: 1.12,
}

SEARCH_LOOKBACK_DAYS = 30


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

def base_price_model(f: PriceFeatures) -> float:
    """Linear blend floored at the minimum margin."""
    buy = f.buy_price
    price = buy
    price += (f.historical_avg_price - buy) * 0.3
    price += (f.competitor_avg - buy) * 0.2
    price += f.lead_time_days * -0.002 * buy
    price += (f.demand_level - 0.5) * 0.15 * buy
    price += (f.occupancy - 0.7) * 0.1 * buy
    if f.is_weekend:
        price += buy * 0.05
    if f.is_high_season:
        price += buy * 0.08
    return max(price, buy * MIN_MARGIN_MULTIPLIER)


def estimate_elasticity(f: PriceFeatures) -> float:
    elasticity = -1.2
    if f.lead_time_days < 7:
        elasticity = -2.5
    elif f.lead_time_days > 60:
        elasticity = -0.8
    if f.competitor_count > 5:
        elasticity -= 0.5
    if f.demand_level > 0.8:
        elasticity += 0.3
    return elasticity


def elasticity_adjustment(f: PriceFeatures, elasticity: float) -> float:
    """Raise prices where demand is inelastic, trim them where it is elastic."""
    buy = f.buy_price
    if elasticity > -1:
        adjustment = buy * 0.15
    elif elasticity < -2:
        adjustment = -buy * 0.05
    else:
        adjustment = buy * 0.05

    if f.lead_time_days < 7:
        adjustment *= 0.7
    elif f.lead_time_days > 60:
        adjustment *= 1.2
    return adjustment


def competitor_adjustment(f: PriceFeatures) -> float:
    """Move toward the competitor band; zero when already near parity."""
    if f.competitor_count == 0:
        return 0.0

    our_price = f.buy_price * 1.25
    if our_price > f.competitor_avg * 1.1:
        adjustment = (f.competitor_avg * 1.05 - our_price) * 0.5
    elif our_price < f.competitor_avg * 0.9:
        adjustment = (f.competitor_avg * 0.95 - our_price) * 0.3
    else:
        adjustment = 0.0
    return adjustment * (1 - f.competitive_pressure * 0.3)


def seasonal_factor(f: PriceFeatures) -> float:
    factor = 1.0
    if f.is_high_season:
        factor *= 1.15
    if f.is_weekend:
        factor *= 1.08
    if f.occupancy > 0.8:
        factor *= 1.10
    elif f.occupancy < 0.5:
        factor *= 0.95
    return factor * MONTH_FACTORS[f.month]


def estimate_conversion(price: float, f: PriceFeatures) -> float:
    """Expected probability that the room sells at `price`."""
    conversion = 0.5
    ratio = price / f.competitor_avg if f.competitor_avg > 0 else 1.0
    if ratio < 0.95:
        conversion += 0.15
    elif ratio > 1.10:
        conversion -= 0.15
    conversion += (f.demand_level - 0.5) * 0.3
    if f.lead_time_days < 7:
        conversion += 0.1

    if f.has_history:
        conversion = conversion * 0.6 + f.historical_conversion * 0.4
    return clamp(conversion, 0.1, 0.95)


def prediction_confidence(f: PriceFeatures) -> float:
    confidence = 0.5
    if f.historical_sample_size > 50:
        confidence += 0.2
    elif f.historical_sample_size > 20:
        confidence += 0.1
    if f.competitor_count > 3:
        confidence += 0.15
    elif f.competitor_count > 0:
        confidence += 0.08
    if f.search_volume > 100:
        confidence += 0.1
    if f.has_occupancy:
        confidence += 0.05
    return min(0.95, confidence)


def risk_label(confidence: float, conversion: float) -> str:
    if confidence >= 0.8 and conversion >= 0.6:
        return "LOW"
    if confidence >= 0.6 and conversion >= 0.4:
        return "MEDIUM"
    return "HIGH"


# ---------------------------------------------------------------------------
# Predictor
# ---------------------------------------------------------------------------

class EnsemblePricePredictor:
    """Recommends a resell price for a stay from history and market data.

    Args:
        store: Signal store collaborator.
        cache: Optional TTL cache for collaborator lookups.
        today: Date source for lead-time computation (injectable for tests).
    """

    def __init__(
        self,
        store: SignalStore,
        cache: TTLCache | None = None,
        today: Callable[[], date] = date.today,
        history_months: int = 6,
    ) -> None:
        self.store = store
        self.cache = cache
        self.today = today
        self.history_months = history_months

    def predict_price(
        self,
        hotel_id: int,
        check_in: date,
        check_out: date,
        buy_price: float,
        room_type: str = "STANDARD",
        lead_time_days: int | None = None,
        demand_level: str = "MEDIUM",
    ) -> PredictionResult:
        """Predict the optimal resell price for one stay.

        Returns:
            PredictionResult; `success=False` only for invalid input, never
            for missing upstream data.
        """
        try:
            _validate_request(check_in, check_out, buy_price, demand_level)
        except InvalidConstraintError as e:
            logger.warning("invalid_prediction_request", hotel_id=hotel_id, error=str(e))
            return PredictionResult(success=False, error=str(e))

        features = self.extract_features(
            hotel_id, check_in, check_out, buy_price,
            room_type=room_type, lead_time_days=lead_time_days, demand_level=demand_level,
        )

        base = base_price_model(features)
        elasticity = estimate_elasticity(features)
        elast_adj = elasticity_adjustment(features, elasticity)
        comp_adj = competitor_adjustment(features)
        season = seasonal_factor(features)

        min_price = buy_price * MIN_MARGIN_MULTIPLIER
        max_price = buy_price * MAX_PRICE_MULTIPLIER
        raw = (base + elast_adj + comp_adj) * season
        price = clamp(round(clamp(raw, min_price, max_price), 2), min_price, max_price)

        conversion = estimate_conversion(price, features)
        confidence = prediction_confidence(features)
        variance = (1 - confidence) * 0.15

        prediction = PricePrediction(
            hotel_id=hotel_id,
            check_in=check_in,
            check_out=check_out,
            buy_price=buy_price,
            optimal_price=price,
            confidence=round(confidence, 4),
            price_range=PriceBounds(
                min=round(price * (1 - variance), 2),
                max=round(price * (1 + variance), 2),
            ),
            expected_conversion_rate=round(conversion, 4),
            expected_profit=round(price - buy_price, 2),
            expected_revenue=round(price * conversion, 2),
            risk_level=risk_label(confidence, conversion),
            models=ComponentModels(
                base=round(base, 2),
                elasticity_adjustment=round(elast_adj, 2),
                elasticity_estimate=elasticity,
                competitor_adjustment=round(comp_adj, 2),
                seasonal_factor=round(season, 4),
            ),
            features=features,
        )

        logger.info(
            "price_predicted",
            hotel_id=hotel_id,
            buy_price=buy_price,
            price=price,
            confidence=prediction.confidence,
            risk=prediction.risk_level,
        )
        return PredictionResult(success=True, prediction=prediction)

    def batch_predict(self, requests: list[dict[str, Any]]) -> list[PredictionResult]:
        """Predict prices for many stays; one bad request does not stop the rest."""
        results = []
        for request in requests:
            try:
                results.append(self.predict_price(**request))
            except TypeError as e:
                logger.warning("malformed_prediction_request", error=str(e))
                results.append(PredictionResult(success=False, error=f"Malformed request: {e}"))
        return results

    def extract_features(
        self,
        hotel_id: int,
        check_in: date,
        check_out: date,
        buy_price: float,
        room_type: str = "STANDARD",
        lead_time_days: int | None = None,
        demand_level: str = "MEDIUM",
    ) -> PriceFeatures:
        """Join the buy price with history, competitors, searches and occupancy."""
        if lead_time_days is None:
            lead_time_days = max(0, (check_in - self.today()).days)

        history = self._lookup(
            make_key("history", hotel_id=hotel_id, months=self.history_months),
            lambda: self.store.fetch_historical_performance(hotel_id, self.history_months),
            "historical_performance",
        )
        competitors = self._lookup(
            make_key("competitors", hotel_id=hotel_id, check_in=check_in, check_out=check_out),
            lambda: self.store.fetch_competitor_snapshot(hotel_id, check_in, check_out),
            "competitor_snapshot",
        )
        searches = self._lookup(
            make_key("searches", hotel_id=hotel_id, days=SEARCH_LOOKBACK_DAYS),
            lambda: self.store.fetch_search_signals(
                hotel_id=hotel_id, lookback_days=SEARCH_LOOKBACK_DAYS,
            ),
            "search_signals",
        )
        occupancy = self._lookup(
            make_key("occupancy", hotel_id=hotel_id, month=check_in.month),
            lambda: self.store.fetch_monthly_occupancy(hotel_id, check_in.month),
            "occupancy",
        )

        has_history = history is not None and history.sample_size > 0
        if competitors is not None and competitors.competitor_count > 0:
            comp_avg, comp_min, comp_max = competitors.avg, competitors.min, competitors.max
            comp_count = competitors.competitor_count
            pressure = (1 - (comp_avg - buy_price) / buy_price) * min(comp_count / 10, 1)
        else:
            comp_avg = buy_price * FALLBACK_COMPETITOR_AVG
            comp_min = buy_price * FALLBACK_COMPETITOR_MIN
            comp_max = buy_price * FALLBACK_COMPETITOR_MAX
            comp_count = 0
            pressure = 0.0

        room_key = room_type.upper()
        return PriceFeatures(
            buy_price=buy_price,
            lead_time_days=lead_time_days,
            day_of_week=check_in.weekday(),
            month=check_in.month,
            is_weekend=check_in.weekday() in WEEKEND_DAYS,
            is_high_season=check_in.month in HIGH_SEASON_MONTHS,
            room_type=room_key,
            room_type_code=ROOM_TYPE_CODES.get(room_key, 1),
            historical_avg_price=(
                history.avg_price if has_history else buy_price * FALLBACK_HISTORICAL_AVG
            ),
            historical_conversion=(
                history.success_rate / 100 if has_history else FALLBACK_CONVERSION
            ),
            historical_sample_size=history.sample_size if has_history else 0,
            has_history=has_history,
            competitor_avg=comp_avg,
            competitor_min=comp_min,
            competitor_max=comp_max,
            competitor_count=comp_count,
            competitive_pressure=pressure,
            demand_level=DEMAND_LEVELS[demand_level.upper()],
            search_volume=len(searches or []),
            occupancy=clamp(occupancy, 0.0, 1.0) if occupancy is not None else FALLBACK_OCCUPANCY,
            has_occupancy=occupancy is not None,
        )

    def _lookup(self, key: tuple, fetch: Callable[[], Any], source: str) -> Any:
        try:
            if self.cache is not None:
                return self.cache.get_or_set(key, fetch)
            return fetch()
        except Exception as e:
            logger.warning("feature_lookup_failed", source=source, error=str(e))
            return None


def _validate_request(
    check_in: date,
    check_out: date,
    buy_price: float,
    demand_level: str,
) -> None:
    if buy_price <= 0:
        raise InvalidConstraintError("buy_price must be positive")
    if check_out <= check_in:
        raise InvalidConstraintError("check_out must be after check_in")
    if demand_level.upper() not in DEMAND_LEVELS:
        raise InvalidConstraintError(f"unknown demand level: {demand_level}")
