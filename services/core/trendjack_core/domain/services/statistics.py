"""Trend statistics over hourly mention counts.

Pure functions: no I/O, no database access. The baseline (mean and
population standard deviation) is taken over the whole lookback window,
while ``current`` is the total of the buckets inside the recent window.

Usage:
    analysis = analyze_series(
        [(bucket.bucket_start, bucket.news_count) for bucket in buckets],
        window_hours=24,
        now=datetime.utcnow(),
    )
    if analysis and analysis.is_trending:
        ...
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Optional, Sequence


# =============================================================================
# CONSTANTS
# =============================================================================

Z_SCORE_THRESHOLD = 1.5
MIN_CURRENT_COUNT = 5
DEFAULT_WINDOW_HOURS = 24
DEFAULT_HISTORY_DAYS = 7

# Fewer points than this cannot produce a jerk value
MIN_SNAP_POINTS = 4

ROUND_DIGITS = 2


# =============================================================================
# BASIC STATISTICS
# =============================================================================


def compute_mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def compute_std_dev(values: Sequence[float], mean: Optional[float] = None) -> float:
    """Population standard deviation (divides by n, not n - 1)."""
    if not values:
        return 0.0
    if mean is None:
        mean = compute_mean(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return math.sqrt(variance)


def compute_z_score(current: float, mean: float, std_dev: float) -> float:
    """Standard deviations of ``current`` above the baseline.

    A flat history (std_dev == 0) yields 0 rather than dividing by zero.
    """
    if std_dev == 0:
        return 0.0
    return (current - mean) / std_dev


def compute_heat_score(current: float, mean: float) -> float:
    """Legacy relative-change metric, stored alongside the z-score."""
    return (current - mean) / (mean + 1)


def detect_trend(
    z_score: float,
    current_count: float,
    z_threshold: float = Z_SCORE_THRESHOLD,
    min_current: int = MIN_CURRENT_COUNT,
) -> bool:
    """The only rule that marks a keyword as trending.

    The absolute floor keeps low-volume noise from tripping on a tiny baseline.
    """
    return z_score > z_threshold and current_count >= min_current


# =============================================================================
# DERIVATIVE CHAIN
# =============================================================================


@dataclass
class Derivatives:
    """Successive differences of a count series."""

    velocity: list[float] = field(default_factory=list)
    acceleration: list[float] = field(default_factory=list)
    jerk: list[float] = field(default_factory=list)


def differences(values: Sequence[float]) -> list[float]:
    return [values[i] - values[i - 1] for i in range(1, len(values))]


def derivatives(counts: Sequence[float]) -> Derivatives:
    """Velocity, acceleration and jerk series of ``counts``."""
    velocity = differences(counts)
    acceleration = differences(velocity)
    jerk = differences(acceleration)
    return Derivatives(velocity=velocity, acceleration=acceleration, jerk=jerk)


def compute_snap_score(counts: Sequence[float]) -> float:
    """Jerk of the latest point, scaled by acceleration and its stability.

    ``latest_jerk * |latest_acceleration| / stability`` where stability is
    the population variance of the acceleration series, or 1 when that
    variance is 0. Returns 0 for fewer than four points.
    """
    if len(counts) < MIN_SNAP_POINTS:
        return 0.0

    chain = derivatives(counts)
    latest_jerk = chain.jerk[-1]
    latest_accel = chain.acceleration[-1]

    accel_mean = compute_mean(chain.acceleration)
    variance = compute_std_dev(chain.acceleration, accel_mean) ** 2
    stability = variance if variance != 0 else 1.0

    return (latest_jerk * abs(latest_accel)) / stability


# =============================================================================
# SERIES ANALYSIS
# =============================================================================


@dataclass
class TrendAnalysis:
    """Rounded outcome of analyzing one keyword's bucket series."""

    current_count: int
    mean: float
    std_dev: float
    z_score: float
    heat_score: float
    snap_score: float
    is_trending: bool
    total_buckets: int
    current_buckets: int
    window_hours: int = DEFAULT_WINDOW_HOURS

    def baseline_json(self) -> dict:
        """Baseline document stored with each TrendScore row."""
        return {
            "mean": self.mean,
            "std_dev": self.std_dev,
            "current_window": self.current_count,
            "total_buckets": self.total_buckets,
            "current_window_buckets": self.current_buckets,
            "snap_score": self.snap_score,
        }


def analyze_series(
    buckets: Sequence[tuple[datetime, int]],
    window_hours: int = DEFAULT_WINDOW_HOURS,
    now: Optional[datetime] = None,
    z_threshold: float = Z_SCORE_THRESHOLD,
    min_current: int = MIN_CURRENT_COUNT,
) -> Optional[TrendAnalysis]:
    """Analyze a lookback window of (bucket_start, count) pairs.

    Args:
        buckets: Bucket pairs covering the lookback window, any order.
        window_hours: Length of the recent window summed into ``current``.
        now: Reference time; defaults to the newest bucket start.
        z_threshold: z-score that must be exceeded to trend.
        min_current: Minimum recent total required to trend.

    Returns:
        TrendAnalysis, or None when there are no buckets.
    """
    if not buckets:
        return None

    ordered = sorted(buckets, key=lambda b: b[0])
    if now is None:
        now = ordered[-1][0]
    cutoff = now - timedelta(hours=window_hours)

    counts = [count for _, count in ordered]
    recent = [count for start, count in ordered if start >= cutoff]
    current = sum(recent)

    mean = compute_mean(counts)
    std_dev = compute_std_dev(counts, mean)
    # trend on the stored value so the flag agrees with the persisted z
    z_score = round(compute_z_score(current, mean, std_dev), ROUND_DIGITS)

    return TrendAnalysis(
        current_count=current,
        mean=round(mean, ROUND_DIGITS),
        std_dev=round(std_dev, ROUND_DIGITS),
        z_score=z_score,
        heat_score=round(compute_heat_score(current, mean), ROUND_DIGITS),
        snap_score=round(compute_snap_score(counts), ROUND_DIGITS),
        is_trending=detect_trend(z_score, current, z_threshold, min_current),
        total_buckets=len(ordered),
        current_buckets=len(recent),
        window_hours=window_hours,
    )


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "DEFAULT_HISTORY_DAYS",
    "DEFAULT_WINDOW_HOURS",
    "MIN_CURRENT_COUNT",
    "ROUND_DIGITS",
    "Z_SCORE_THRESHOLD",
    "Derivatives",
    "TrendAnalysis",
    "analyze_series",
    "compute_heat_score",
    "compute_mean",
    "compute_snap_score",
    "compute_std_dev",
    "compute_z_score",
    "derivatives",
    "detect_trend",
]
