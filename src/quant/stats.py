"""Shared numeric primitives for the analysis agents and pricing models.

- Descriptive statistics (mean/min/max/population std)
- Trend classification over a short moving window
- Confidence-from-sample-size ladders
"""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

# (exclusive upper bound on sample size, confidence); last entry is the cap
MARKET_CONFIDENCE_LADDER: list[tuple[float, float]] = [
    (10, 0.3),
    (50, 0.5),
    (100, 0.7),
    (500, 0.85),
    (float("inf"), 0.95),
]

DEMAND_CONFIDENCE_LADDER: list[tuple[float, float]] = [
    (20, 0.2),
    (50, 0.4),
    (100, 0.6),
    (500, 0.8),
    (float("inf"), 0.9),
]

TREND_WINDOW = 10
TREND_DEAD_ZONE_PCT = 5.0


def describe(values: Sequence[float]) -> dict[str, float]:
    """Mean, min, max and population standard deviation.

    Returns zeros for an empty input rather than NaN.
    """
    if len(values) == 0:
        return {"avg": 0.0, "min": 0.0, "max": 0.0, "std": 0.0}

    arr = np.asarray(values, dtype=float)
    return {
        "avg": float(arr.mean()),
        "min": float(arr.min()),
        "max": float(arr.max()),
        "std": float(arr.std()),
    }


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Std / mean as a percentage; 0 when the mean is 0."""
    stats = describe(values)
    if stats["avg"] == 0:
        return 0.0
    return stats["std"] / stats["avg"] * 100


def classify_trend(
    values: Sequence[float],
    window: int = TREND_WINDOW,
    dead_zone_pct: float = TREND_DEAD_ZONE_PCT,
) -> str:
    """Classify the recent direction of a series.

    Takes the last `window` values, compares the average of the first half
    with the average of the second half and labels the change outside a
    symmetric dead zone.

    Returns:
        One of: rising, falling, stable.
    """
    if len(values) < 2:
        return "stable"

    recent = np.asarray(values[-window:], dtype=float)
    half = len(recent) // 2
    first_avg = recent[:half].mean()
    second_avg = recent[half:].mean()

    if first_avg == 0:
        return "rising" if second_avg > 0 else "stable"

    change = (second_avg - first_avg) / first_avg * 100
    if change > dead_zone_pct:
        return "rising"
    if change < -dead_zone_pct:
        return "falling"
    return "stable"


def confidence_from_sample_size(
    n: float,
    ladder: Sequence[tuple[float, float]] = MARKET_CONFIDENCE_LADDER,
) -> float:
    """Map a sample size onto a confidence step from the given ladder."""
    for upper, confidence in ladder:
        if n < upper:
            return confidence
    return ladder[-1][1]


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def mean_step(values: Sequence[float], window: int = 20) -> float:
    """Average consecutive difference over the last `window` values."""
    recent = np.asarray(values[-window:], dtype=float)
    if len(recent) < 2:
        return 0.0
    return float(np.diff(recent).mean())
