"""Pydantic schemas for Opportunity Detector output and its filters."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field, model_validator

from src.utils.errors import InvalidConstraintError


class PriceAnomaly(BaseModel):
    """A booking priced more than two standard deviations off its hotel mean."""

    hotel: str
    hotel_id: int
    booking_id: str | None = None
    price: float
    hotel_avg: float
    deviation: float
    anomaly_type: str = Field(description="One of: BELOW_AVERAGE, ABOVE_AVERAGE")
    score: float = Field(ge=0.0)
    check_in: date | None = None


class DetectedOpportunity(BaseModel):
    """A buy / sell / arbitrage / timing opportunity found in the batch."""

    category: str = Field(description="One of: buy, sell, arbitrage, timing")
    opportunity_type: str = Field(
        description="One of: BUY, SELL, ARBITRAGE, LAST_MINUTE"
    )
    reason: str
    hotel: str
    hotel_id: int
    city: str = ""
    booking_id: str | None = None
    check_in: date | None = None
    check_out: date | None = None
    days_until_check_in: float | None = None

    current_price: float | None = None
    market_avg: float | None = None
    discount_pct: float | None = Field(default=None, ge=0.0, le=100.0)
    premium_pct: float | None = Field(default=None, ge=0.0)
    spread_pct: float | None = Field(default=None, ge=0.0)

    buy_price: float | None = None
    estimated_sell_price: float | None = None
    expected_profit: float | None = None
    profit_margin_pct: float | None = None
    roi_pct: float | None = None
    buy_from: str | None = None
    sell_to: str | None = None

    score: float = 0.0
    priority: str = Field(default="medium", description="One of: high, medium, low")
    final_score: float = 0.0
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    action: str | None = None

    free_cancellation: bool | None = None
    pushed: bool | None = None
    sold: bool | None = None


SEASON_MONTHS: dict[str, tuple[int, ...]] = {
    "summer": (6, 7, 8),
    "winter": (12, 1, 2),
    "spring": (3, 4, 5),
    "fall": (9, 10, 11),
}


class OpportunityFilters(BaseModel):
    """Structured post-hoc filters that narrow the detected opportunity set.

    Every field is optional; an unset field never removes anything.
    """

    only_buy: bool = False
    only_sell: bool = False
    urgent_only: bool = False
    min_discount_pct: float | None = Field(default=None, ge=0)
    min_price: float | None = Field(default=None, ge=0)
    max_price: float | None = Field(default=None, ge=0)
    hotel_name: str | None = None
    city: str | None = None

    min_profit: float | None = None
    max_profit: float | None = None
    min_margin_pct: float | None = None
    min_roi_pct: float | None = None
    min_days_to_check_in: float | None = None
    max_days_to_check_in: float | None = None
    season: str | None = Field(default=None, description="One of: summer, winter, spring, fall")
    weekend_only: bool = False
    free_cancellation_only: bool = False
    pushed: bool | None = None
    sold: bool | None = None

    @model_validator(mode="after")
    def _check_consistency(self) -> OpportunityFilters:
        if self.only_buy and self.only_sell:
            raise InvalidConstraintError("only_buy and only_sell are mutually exclusive")
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise InvalidConstraintError("min_price exceeds max_price")
        if (
            self.min_profit is not None
            and self.max_profit is not None
            and self.min_profit > self.max_profit
        ):
            raise InvalidConstraintError("min_profit exceeds max_profit")
        if (
            self.min_days_to_check_in is not None
            and self.max_days_to_check_in is not None
            and self.min_days_to_check_in > self.max_days_to_check_in
        ):
            raise InvalidConstraintError("days-to-check-in window is empty")
        if self.season is not None and self.season.lower() not in SEASON_MONTHS:
            raise InvalidConstraintError(f"unknown season: {self.season}")
        return self

    def narrowed_by(self, other: OpportunityFilters) -> OpportunityFilters:
        """Combine two filter sets keeping the stricter value of each field."""
        return OpportunityFilters(
            only_buy=self.only_buy or other.only_buy,
            only_sell=self.only_sell or other.only_sell,
            urgent_only=self.urgent_only or other.urgent_only,
            min_discount_pct=_stricter_min(self.min_discount_pct, other.min_discount_pct),
            min_price=_stricter_min(self.min_price, other.min_price),
            max_price=_stricter_max(self.max_price, other.max_price),
            hotel_name=self.hotel_name or other.hotel_name,
            city=self.city or other.city,
            min_profit=_stricter_min(self.min_profit, other.min_profit),
            max_profit=_stricter_max(self.max_profit, other.max_profit),
            min_margin_pct=_stricter_min(self.min_margin_pct, other.min_margin_pct),
            min_roi_pct=_stricter_min(self.min_roi_pct, other.min_roi_pct),
            min_days_to_check_in=_stricter_min(
                self.min_days_to_check_in, other.min_days_to_check_in
            ),
            max_days_to_check_in=_stricter_max(
                self.max_days_to_check_in, other.max_days_to_check_in
            ),
            season=self.season or other.season,
            weekend_only=self.weekend_only or other.weekend_only,
            free_cancellation_only=self.free_cancellation_only or other.free_cancellation_only,
            pushed=self.pushed if self.pushed is not None else other.pushed,
            sold=self.sold if self.sold is not None else other.sold,
        )


def _stricter_min(a: float | None, b: float | None) -> float | None:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


def _stricter_max(a: float | None, b: float | None) -> float | None:
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)
