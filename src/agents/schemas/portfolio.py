"""Pydantic schemas for the opportunity finder and portfolio optimizer."""

from __future__ import annotations

import math
from datetime import date

from pydantic import BaseModel, Field, model_validator

from src.utils.errors import InvalidConstraintError

RISK_LEVELS = ("LOW", "MEDIUM", "HIGH")


class Opportunity(BaseModel):
    """A live candidate trade scored against the hotel's history."""

    hotel_id: int
    hotel_name: str = ""
    city: str = ""
    check_in: date
    check_out: date
    buy_price: float = Field(gt=0, description="Live supplier price")
    currency: str = "EUR"
    room_type: str = "Standard"

    historical_avg_price: float
    price_diff_pct: float
    success_rate: float = Field(ge=0.0, le=100.0)
    historical_margin: float
    expected_margin: float = Field(ge=0.0, le=100.0)
    suggested_sell_price: float
    success_probability: float = Field(ge=0.0, le=100.0)
    risk_score: float = Field(ge=0.0, le=100.0)
    risk_level: str = Field(description="One of: LOW, MEDIUM, HIGH")
    recommendation: str = Field(description="One of: STRONG BUY, BUY, CONSIDER, PASS")
    confidence: float = Field(ge=0.0, le=1.0)
    reasons: list[str] = Field(default_factory=list)
    search_count: int = Field(default=0, ge=0)
    days_to_arrival: int = 0


class SkippedHotel(BaseModel):
    hotel_id: int
    reason: str


class FinderResult(BaseModel):
    success: bool
    error: str = ""
    city: str = ""
    opportunities: list[Opportunity] = Field(default_factory=list)
    hotels_scanned: int = 0
    skipped: list[SkippedHotel] = Field(default_factory=list)


class CityBreakdown(BaseModel):
    city: str
    opportunities: int = 0
    success: bool = True
    error: str = ""


class ScanResult(BaseModel):
    success: bool
    error: str = ""
    opportunities: list[Opportunity] = Field(default_factory=list)
    cities_scanned: int = 0
    city_breakdown: list[CityBreakdown] = Field(default_factory=list)


class CityRank(BaseModel):
    city: str
    bookings: int
    hotels: int
    success_rate: float = Field(ge=0.0, le=100.0)


class PortfolioCandidate(BaseModel):
    """An opportunity expressed in the terms the optimizer scores on."""

    key: str
    hotel_id: int
    hotel_name: str = ""
    buy_price: float = Field(gt=0)
    expected_revenue: float = Field(ge=0.0)
    expected_profit: float
    confidence: float = Field(ge=0.0, le=1.0)
    risk_level: str = "MEDIUM"
    score: float = Field(default=0.0, ge=0.0)

    @property
    def margin(self) -> float:
        """Expected profit relative to the buy price."""
        return self.expected_profit / self.buy_price


class PortfolioConstraints(BaseModel):
    """Budget and risk limits for portfolio selection."""

    max_total_investment: float = math.inf
    min_margin: float = 0.15
    max_risk: str = "MEDIUM"
    target_revenue: float | None = None

    @model_validator(mode="after")
    def _check_constraints(self) -> PortfolioConstraints:
        if self.max_total_investment < 0:
            raise InvalidConstraintError("max_total_investment must not be negative")
        if self.min_margin < 0:
            raise InvalidConstraintError("min_margin must not be negative")
        if self.max_risk.upper() not in RISK_LEVELS:
            raise InvalidConstraintError(f"unknown risk level: {self.max_risk}")
        if self.target_revenue is not None and self.target_revenue <= 0:
            raise InvalidConstraintError("target_revenue must be positive")
        return self


class PortfolioMetrics(BaseModel):
    avg_roi: float
    avg_margin: float
    portfolio_risk: str = Field(description="One of: LOW, MEDIUM, HIGH")
    utilization_rate: float | None = Field(default=None, ge=0.0, le=1.0)


class Portfolio(BaseModel):
    """Opportunities selected under the budget and risk constraints."""

    success: bool
    error: str = ""
    selected: list[PortfolioCandidate] = Field(default_factory=list)
    total_investment: float = 0.0
    expected_revenue: float = 0.0
    expected_profit: float = 0.0
    metrics: PortfolioMetrics | None = None
    rejected_count: int = 0
    target_reached: bool = False
