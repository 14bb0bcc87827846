"""Pydantic schemas for the ensemble price predictor and elasticity optimizer."""

from datetime import date

from pydantic import BaseModel, Field


class PriceFeatures(BaseModel):
    """Feature vector the ensemble sub-models run over."""

    buy_price: float = Field(gt=0)
    lead_time_days: int
    day_of_week: int = Field(ge=0, le=6, description="Monday=0")
    month: int = Field(ge=1, le=12)
    is_weekend: bool
    is_high_season: bool
    room_type: str = "STANDARD"
    room_type_code: int = 1

    historical_avg_price: float
    historical_conversion: float = Field(ge=0.0, le=1.0)
    historical_sample_size: int = Field(ge=0)
    has_history: bool = False

    competitor_avg: float
    competitor_min: float
    competitor_max: float
    competitor_count: int = Field(ge=0)
    competitive_pressure: float

    demand_level: float = Field(ge=0.0, le=1.0)
    search_volume: int = Field(ge=0)

    occupancy: float = Field(ge=0.0, le=1.0)
    has_occupancy: bool = False


class ComponentModels(BaseModel):
    """Outputs of the four sub-models, kept for auditability."""

    base: float
    elasticity_adjustment: float
    elasticity_estimate: float
    competitor_adjustment: float
    seasonal_factor: float


class PriceBounds(BaseModel):
    min: float
    max: float


class PricePrediction(BaseModel):
    """Recommended resell price for one stay."""

    hotel_id: int
    check_in: date
    check_out: date
    buy_price: float = Field(gt=0)
    optimal_price: float
    confidence: float = Field(ge=0.0, le=0.95)
    price_range: PriceBounds
    expected_conversion_rate: float = Field(ge=0.1, le=0.95)
    expected_profit: float
    expected_revenue: float
    risk_level: str = Field(description="One of: LOW, MEDIUM, HIGH")
    models: ComponentModels
    features: PriceFeatures


class PredictionResult(BaseModel):
    success: bool
    error: str = ""
    prediction: PricePrediction | None = None


class PriceBucket(BaseModel):
    """Fixed-width price bin with its observed conversion."""

    price: float = Field(description="Bin centre")
    count: int = Field(ge=0)
    sold: int = Field(ge=0)
    conversion_rate: float = Field(ge=0.0, le=1.0)
    avg_lead_time: float | None = None


class ElasticityProfile(BaseModel):
    """Per-hotel price elasticity of conversion."""

    success: bool
    error: str = ""
    hotel_id: int
    timeframe_days: int = 90
    data_points: int = 0
    elasticity: float | None = None
    elasticity_range: tuple[float, float] | None = None
    demand_type: str | None = Field(
        default=None,
        description="One of: HIGHLY_INELASTIC, INELASTIC, UNITARY, ELASTIC, HIGHLY_ELASTIC",
    )
    interpretation: str = ""
    buckets: list[PriceBucket] = Field(default_factory=list)
    optimal_price_point: PriceBucket | None = None


class PriceImpact(BaseModel):
    price_change: float
    price_change_pct: float
    conversion_change: float
    current_revenue: float
    expected_revenue: float
    revenue_change: float


class PriceRecommendation(BaseModel):
    """Objective-maximizing price picked from the elasticity buckets."""

    success: bool
    error: str = ""
    hotel_id: int
    objective: str
    current_price: float
    recommended_price: float | None = None
    expected_conversion_rate: float | None = Field(default=None, ge=0.0, le=1.0)
    elasticity: float | None = None
    demand_type: str | None = None
    impact: PriceImpact | None = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)


class SegmentStats(BaseModel):
    segment: str
    avg_price: float
    conversion_rate: float = Field(ge=0.0, le=1.0)
    data_points: int = Field(ge=0)


class SegmentInsight(BaseModel):
    category: str
    message: str
    recommendation: str


class SegmentAnalysis(BaseModel):
    """Price and conversion broken down by weekend, lead-time band and season."""

    success: bool
    error: str = ""
    hotel_id: int
    segments: dict[str, list[SegmentStats]] = Field(default_factory=dict)
    insights: list[SegmentInsight] = Field(default_factory=list)
