"""Portfolio selection over scored opportunities.

Greedy knapsack under a budget cap:
1. Score each candidate on revenue, margin, confidence and risk.
2. Drop candidates below the minimum margin or above the maximum risk.
3. Accept in descending score order while the cap still has room,
   optionally stopping once a target revenue is reached.
"""

from __future__ import annotations

import math
from collections.abc import Iterable

import pandas as pd

from src.agents.schemas.portfolio import (
    Opportunity,
    Portfolio,
    PortfolioCandidate,
    PortfolioConstraints,
    PortfolioMetrics,
)
from src.config.logging_config import get_logger
from src.quant.pricing.ensemble import EnsemblePricePredictor

logger = get_logger("portfolio.optimizer")

RISK_RANK = {"LOW": 1, "MEDIUM": 2, "HIGH": 3}

SCORE_WEIGHTS = {
    "revenue": 0.4,
    "margin": 0.3,
    "confidence": 0.2,
    "risk": 0.1,
}


def risk_rank(level: str) -> int:
    """Ordinal for a risk label; unknown labels count as MEDIUM."""
    return RISK_RANK.get(level.upper(), 2)


def score_candidate(candidate: PortfolioCandidate) -> float:
    """Weighted attractiveness score, floored at zero.

    0.4 x revenue/1000 + 0.3 x margin% + 0.2 x confidence x 100
    - 0.1 x risk penalty, where the penalty is 10 per risk rank.
    """
    revenue = candidate.expected_revenue
    margin_pct = candidate.expected_profit / revenue * 100 if revenue > 0 else 0.0
    score = (
        SCORE_WEIGHTS["revenue"] * revenue / 1000
        + SCORE_WEIGHTS["margin"] * margin_pct
        + SCORE_WEIGHTS["confidence"] * candidate.confidence * 100
        - SCORE_WEIGHTS["risk"] * risk_rank(candidate.risk_level) * 10
    )
    return max(0.0, score)


def portfolio_risk(levels: Iterable[str]) -> str:
    """Categorical average of member risk levels."""
    ranks = [risk_rank(level) for level in levels]
    if not ranks:
        return "LOW"
    avg = sum(ranks) / len(ranks)
    if avg <= 1:
        return "LOW"
    if avg <= 2:
        return "MEDIUM"
    return "HIGH"


def build_candidates(
    opportunities: Iterable[Opportunity],
    predictor: EnsemblePricePredictor | None = None,
) -> list[PortfolioCandidate]:
    """Turn finder opportunities into optimizer candidates.

    Without a predictor the finder's suggested sell price and success
    probability set revenue and profit. With one, each stay is repriced
    through the ensemble and stays it cannot price are dropped.
    """
    candidates = []
    for opp in opportunities:
        key = f"{opp.hotel_id}:{opp.check_in.isoformat()}"

        if predictor is None:
            candidates.append(PortfolioCandidate(
                key=key,
                hotel_id=opp.hotel_id,
                hotel_name=opp.hotel_name,
                buy_price=opp.buy_price,
                expected_revenue=round(
                    opp.suggested_sell_price * opp.success_probability / 100, 2
                ),
                expected_profit=round(opp.suggested_sell_price - opp.buy_price, 2),
                confidence=opp.confidence,
                risk_level=opp.risk_level,
            ))
            continue

        result = predictor.predict_price(
            opp.hotel_id, opp.check_in, opp.check_out, opp.buy_price,
        )
        if not result.success or result.prediction is None:
            logger.warning("candidate_unpriced", key=key, error=result.error)
            continue

        prediction = result.prediction
        candidates.append(PortfolioCandidate(
            key=key,
            hotel_id=opp.hotel_id,
            hotel_name=opp.hotel_name,
            buy_price=opp.buy_price,
            expected_revenue=prediction.expected_revenue,
            expected_profit=prediction.expected_profit,
            confidence=prediction.confidence,
            risk_level=prediction.risk_level,
        ))

    return candidates


def optimize_portfolio(
    candidates: Iterable[PortfolioCandidate],
    constraints: PortfolioConstraints | dict | None = None,
) -> Portfolio:
    """Select the best candidates that fit the budget and risk limits.

    Args:
        candidates: Scored or unscored candidates; scores are recomputed.
        constraints: Budget cap, minimum margin, maximum risk, target revenue.

    Returns:
        Portfolio; `success=False` when the constraints are inconsistent.
    """
    try:
        if constraints is None:
            constraints = PortfolioConstraints()
        elif isinstance(constraints, dict):
            constraints = PortfolioConstraints.model_validate(constraints)
    except ValueError as e:
        logger.warning("invalid_portfolio_constraints", error=str(e))
        return Portfolio(success=False, error=str(e))

    candidates = list(candidates)
    if not candidates:
        return Portfolio(
            success=True,
            metrics=PortfolioMetrics(avg_roi=0.0, avg_margin=0.0, portfolio_risk="LOW"),
        )

    frame = pd.DataFrame({
        "idx": range(len(candidates)),
        "key": [c.key for c in candidates],
        "score": [score_candidate(c) for c in candidates],
        "margin": [c.margin for c in candidates],
        "risk": [risk_rank(c.risk_level) for c in candidates],
    })
    viable = frame[
        (frame["margin"] >= constraints.min_margin)
        & (frame["risk"] <= risk_rank(constraints.max_risk))
    ]
    # key breaks score ties so input order never changes the selection
    viable = viable.sort_values(["score", "key"], ascending=[False, True])

    selected: list[PortfolioCandidate] = []
    investment = revenue = profit = 0.0
    target_reached = False

    for row in viable.itertuples(index=False):
        candidate = candidates[row.idx]
        if investment + candidate.buy_price > constraints.max_total_investment:
            continue
        selected.append(candidate.model_copy(update={"score": round(row.score, 4)}))
        investment += candidate.buy_price
        revenue += candidate.expected_revenue
        profit += candidate.expected_profit

        if constraints.target_revenue is not None and revenue >= constraints.target_revenue:
            target_reached = True
            break

    cap = constraints.max_total_investment
    metrics = PortfolioMetrics(
        avg_roi=round(profit / investment, 4) if investment else 0.0,
        avg_margin=round(profit / revenue, 4) if revenue else 0.0,
        portfolio_risk=portfolio_risk(c.risk_level for c in selected),
        utilization_rate=round(investment / cap, 4) if math.isfinite(cap) and cap > 0 else None,
    )

    logger.info(
        "portfolio_optimized",
        evaluated=len(candidates),
        viable=len(viable),
        selected=len(selected),
        investment=round(investment, 2),
    )

    return Portfolio(
        success=True,
        selected=selected,
        total_investment=round(investment, 2),
        expected_revenue=round(revenue, 2),
        expected_profit=round(profit, 2),
        metrics=metrics,
        rejected_count=len(viable) - len(selected),
        target_reached=target_reached,
    )
