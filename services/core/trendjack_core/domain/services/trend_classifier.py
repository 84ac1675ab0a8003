"""Discrete trend state for a global entity.

Rules are checked in order and the first match wins.
"""

from enum import Enum
from typing import Sequence


# =============================================================================
# CONSTANTS
# =============================================================================

NEW_MAX_VOLUME = 3
EXPLODING_MIN_Z = 2.0
EXPLODING_MIN_VOLUME = 10
SLOW_BURN_MIN_SLOPE = 0.15
SLOW_BURN_MIN_R_SQUARED = 0.7
SLOW_BURN_MIN_VOLUME = 5
DECLINING_MAX_Z = -1.0
DECLINING_MAX_SLOPE = -0.1
PEAKED_MIN_VOLUME = 20


class TrendState(str, Enum):
    """Trend state stored on ``GlobalEntity.trend_status``."""

    NEW = "New"
    EXPLODING = "Exploding"
    SLOW_BURN = "Slow Burn"
    DECLINING = "Declining"
    PEAKED = "Peaked"
    STABLE = "Stable"


def classify_trend(
    z_score: float,
    slope: float,
    r_squared: float,
    volume_24h: float,
) -> TrendState:
    """Map entity statistics to a trend state.

    Args:
        z_score: Latest day's volume against the preceding 30 days.
        slope: Least-squares slope of the daily series.
        r_squared: Goodness of fit of that slope.
        volume_24h: Mentions in the latest day.

    Returns:
        The first matching TrendState.
    """
    if volume_24h < NEW_MAX_VOLUME:
        return TrendState.NEW
    if z_score > EXPLODING_MIN_Z and volume_24h > EXPLODING_MIN_VOLUME:
        return TrendState.EXPLODING
    if (
        slope > SLOW_BURN_MIN_SLOPE
        and r_squared > SLOW_BURN_MIN_R_SQUARED
        and volume_24h > SLOW_BURN_MIN_VOLUME
    ):
        return TrendState.SLOW_BURN
    if z_score < DECLINING_MAX_Z and slope < DECLINING_MAX_SLOPE:
        return TrendState.DECLINING
    if volume_24h > PEAKED_MIN_VOLUME:
        return TrendState.PEAKED
    return TrendState.STABLE


def linear_regression(points: Sequence[tuple[float, float]]) -> tuple[float, float]:
    """Least-squares slope and r-squared of (x, y) points.

    Returns (0.0, 0.0) for fewer than two points or a vertical x spread.
    """
    n = len(points)
    if n < 2:
        return 0.0, 0.0

    sum_x = sum(x for x, _ in points)
    sum_y = sum(y for _, y in points)
    sum_xy = sum(x * y for x, y in points)
    sum_x2 = sum(x * x for x, _ in points)

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return 0.0, 0.0

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n

    mean_y = sum_y / n
    ss_total = sum((y - mean_y) ** 2 for _, y in points)
    ss_residual = sum((y - (slope * x + intercept)) ** 2 for x, y in points)
    r_squared = 1 - ss_residual / ss_total if ss_total > 0 else 0.0

    return slope, r_squared


__all__ = ["TrendState", "classify_trend", "linear_regression"]
