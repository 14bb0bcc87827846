"""Competition Monitor Agent.

Compares the hotels competing in the same market:
- Per-hotel volume, price level, volatility and conversion
- Composite competitive score and ranking
- Direct competitors of a target hotel by price / volatility similarity
- Market share and price gaps between adjacent price tiers
- Actionable classes: underperforming inventory, volatile pricing, leaders
"""

from __future__ import annotations

import numpy as np
import pandas as pd

from src.agents.schemas.report import AgentReport, Recommendation
from src.agents.schemas.signals import ScopeFilters, SignalBatch
from src.config.logging_config import get_logger
from src.quant.stats import describe

logger = get_logger("competition_agent")

AGENT_NAME = "competition"
MIN_HOTELS = 2
MAX_COMPETITORS = 10
PRICE_GAP_PCT = 20.0

UNDERPERFORMER_MIN_BOOKINGS = 10
UNDERPERFORMER_MAX_CONVERSION = 20.0
VOLATILE_PRICING_PCT = 25.0
LEADER_MIN_CONVERSION = 50.0


def analyze_competition(
    batch: SignalBatch,
    scope: ScopeFilters | None = None,
) -> AgentReport:
    """Rank competing hotels and flag the actionable ones.

    The market is every hotel in the scope's city (or the whole batch when
    no city is given); `scope.hotel_id` only selects the target hotel.

    Returns:
        AgentReport; declined when fewer than two hotels are present.
    """
    scope = scope or ScopeFilters(hotel_id=batch.hotel_id, city=batch.city)
    bookings = batch.scoped_bookings(ScopeFilters(city=scope.city))

    frame = pd.DataFrame({
        "hotel": [b.hotel_key for b in bookings],
        "hotel_id": [b.hotel_id for b in bookings],
        "price": [b.price for b in bookings],
        "sold": [b.sold for b in bookings],
        "active": [b.active for b in bookings],
    })

    if frame.empty or frame["hotel"].nunique() < MIN_HOTELS:
        logger.warning("insufficient_competitor_data", hotels=int(frame["hotel"].nunique()) if not frame.empty else 0)
        return AgentReport.declined(AGENT_NAME, "Insufficient competitor data")

    metrics = _hotel_metrics(frame)
    target = _target_hotel(metrics, scope.hotel_id)
    competitors = _find_competitors(metrics, target)
    gaps = _price_gaps(metrics)
    opportunities = _opportunity_classes(metrics)
    recommendations = _build_recommendations(opportunities, gaps)

    n_hotels = len(metrics)
    confidence = min(0.9, n_hotels / 20)

    logger.info(
        "competition_analysis_complete",
        hotels=n_hotels,
        target=target,
        price_gaps=len(gaps),
        underperformers=len(opportunities["underperforming_inventory"]),
    )

    return AgentReport(
        agent=AGENT_NAME,
        success=True,
        confidence=confidence,
        analysis={
            "total_hotels": n_hotels,
            "target_hotel": target,
            "rankings": metrics.to_dict(orient="records"),
            "competitors": competitors,
            "market_share": _market_share(metrics),
            "price_gaps": gaps,
            "opportunities": opportunities,
        },
        recommendations=recommendations,
    )


def _hotel_metrics(frame: pd.DataFrame) -> pd.DataFrame:
    """One row per hotel with its volume, price and conversion metrics."""
    rows = []
    for hotel, group in frame.groupby("hotel", sort=False):
        stats = describe(group.loc[group["price"] > 0, "price"].tolist())
        total = len(group)
        sold = int(group["sold"].sum())
        active = int(group["active"].sum())
        rows.append({
            "hotel": hotel,
            "hotel_id": int(group["hotel_id"].iloc[0]),
            "total_bookings": total,
            "avg_price": round(stats["avg"], 2),
            "min_price": round(stats["min"], 2),
            "max_price": round(stats["max"], 2),
            "price_range": round(stats["max"] - stats["min"], 2),
            "price_volatility": round(stats["std"] / stats["avg"] * 100, 2) if stats["avg"] else 0.0,
            "sold_count": sold,
            "active_count": active,
            "conversion_rate": round(sold / total * 100, 2),
        })

    metrics = pd.DataFrame(rows)
    metrics["score"] = (
        np.minimum(40, metrics["total_bookings"] / 10)
        + metrics["conversion_rate"] * 0.3
        + np.maximum(0, 20 - metrics["avg_price"] / 50)
        + np.minimum(10, metrics["active_count"] / 5)
    ).round(2)

    metrics = metrics.sort_values("score", ascending=False, kind="mergesort").reset_index(drop=True)
    metrics["rank"] = np.arange(1, len(metrics) + 1)
    return metrics


def _target_hotel(metrics: pd.DataFrame, hotel_id: int | None) -> str | None:
    if hotel_id is None:
        return None
    match = metrics.loc[metrics["hotel_id"] == hotel_id, "hotel"]
    return str(match.iloc[0]) if not match.empty else None


def _find_competitors(metrics: pd.DataFrame, target: str | None) -> list[dict]:
    """Most similar hotels to the target, or the biggest ones without a target."""
    if target is None:
        top = metrics.sort_values("total_bookings", ascending=False, kind="mergesort")
        return top.head(MAX_COMPETITORS).to_dict(orient="records")

    row = metrics.loc[metrics["hotel"] == target].iloc[0]
    others = metrics.loc[metrics["hotel"] != target].copy()
    if others.empty:
        return []

    if row["avg_price"] > 0:
        price_diff = (others["avg_price"] - row["avg_price"]).abs() / row["avg_price"]
    else:
        price_diff = pd.Series(1.0, index=others.index)
    vol_diff = (others["price_volatility"] - row["price_volatility"]).abs() / 100
    others["similarity"] = ((1 - (price_diff * 0.6 + vol_diff * 0.4)) * 100).round()

    others = others.sort_values("similarity", ascending=False, kind="mergesort")
    return others.head(MAX_COMPETITORS).to_dict(orient="records")


def _market_share(metrics: pd.DataFrame) -> dict[str, float]:
    total = metrics["total_bookings"].sum()
    return {
        str(row["hotel"]): round(float(row["total_bookings"] / total * 100), 2)
        for _, row in metrics.iterrows()
    }


def _price_gaps(metrics: pd.DataFrame) -> list[dict]:
    """Jumps of more than PRICE_GAP_PCT between adjacent price tiers."""
    priced = metrics.loc[metrics["avg_price"] > 0].sort_values("avg_price", kind="mergesort")
    gaps = []
    rows = list(priced.itertuples(index=False))
    for lower, upper in zip(rows, rows[1:]):
        gap = (upper.avg_price - lower.avg_price) / lower.avg_price * 100
        if gap > PRICE_GAP_PCT:
            gaps.append({
                "lower_hotel": lower.hotel,
                "upper_hotel": upper.hotel,
                "lower_price": float(lower.avg_price),
                "upper_price": float(upper.avg_price),
                "gap_pct": round(float(gap), 2),
            })
    return gaps


def _opportunity_classes(metrics: pd.DataFrame) -> dict[str, list[dict]]:
    underperforming = metrics.loc[
        (metrics["total_bookings"] > UNDERPERFORMER_MIN_BOOKINGS)
        & (metrics["conversion_rate"] < UNDERPERFORMER_MAX_CONVERSION)
    ]
    volatile = metrics.loc[metrics["price_volatility"] > VOLATILE_PRICING_PCT]
    leaders = metrics.loc[metrics["conversion_rate"] > LEADER_MIN_CONVERSION]

    columns = ["hotel", "total_bookings", "avg_price", "price_volatility", "conversion_rate"]
    return {
        "underperforming_inventory": underperforming[columns].to_dict(orient="records"),
        "price_volatility": volatile[columns].to_dict(orient="records"),
        "market_leaders": leaders[columns].to_dict(orient="records"),
    }


def _build_recommendations(
    opportunities: dict[str, list[dict]],
    gaps: list[dict],
) -> list[Recommendation]:
    recs: list[Recommendation] = []

    underperforming = opportunities["underperforming_inventory"]
    if underperforming:
        recs.append(Recommendation(
            action="BUY_BULK_DISCOUNT",
            reason=f"{len(underperforming)} hotels have unsold inventory, negotiate bulk rates",
            urgency="medium",
            targets=[o["hotel"] for o in underperforming[:5]],
        ))

    volatile = opportunities["price_volatility"]
    if volatile:
        recs.append(Recommendation(
            action="CAUTION_PRICE_ALERTS",
            reason=f"{len(volatile)} hotels show high price volatility, set price alerts",
            urgency="high",
            targets=[o["hotel"] for o in volatile[:5]],
        ))

    if gaps:
        recs.append(Recommendation(
            action="FILL_PRICE_GAP",
            reason=f"{len(gaps)} price gaps between competitors could be filled",
            urgency="medium",
            targets=[f"{g['lower_hotel']} -> {g['upper_hotel']}" for g in gaps[:5]],
        ))

    return recs
