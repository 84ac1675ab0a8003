"""Unit tests for trend statistics.

Tests cover:
1. Mean, population standard deviation and z-score
2. Heat score and the trending rule
3. Derivative chain and snap score
4. Series analysis over a recent window
"""

import math
from datetime import datetime, timedelta

import pytest

from trendjack_core.domain.services.statistics import (
    analyze_series,
    compute_heat_score,
    compute_mean,
    compute_snap_score,
    compute_std_dev,
    compute_z_score,
    derivatives,
    detect_trend,
)


NOW = datetime(2026, 3, 15, 12, 0, 0)


def daily_buckets(counts, end=NOW):
    """(bucket_start, count) pairs 25 hours apart, so only the last is recent."""
    step = timedelta(hours=25)
    return [(end - step * (len(counts) - 1 - i), c) for i, c in enumerate(counts)]


# =============================================================================
# BASIC STATISTICS
# =============================================================================


class TestBasicStatistics:
    """Tests for mean, standard deviation and z-score."""

    def test_mean_of_empty_is_zero(self):
        assert compute_mean([]) == 0.0

    def test_mean(self):
        assert compute_mean([2, 2, 3, 4, 9]) == 4.0

    def test_std_dev_is_population(self):
        """Variance divides by n, not n - 1."""
        assert compute_std_dev([2, 2, 3, 4, 9]) == pytest.approx(math.sqrt(6.8))

    def test_std_dev_of_empty_is_zero(self):
        assert compute_std_dev([]) == 0.0

    def test_z_score_with_flat_history_is_zero(self):
        """A zero standard deviation must not divide by zero."""
        assert compute_z_score(10, 5, 0) == 0.0

    def test_z_score(self):
        assert compute_z_score(9, 4, 2.5) == 2.0

    def test_heat_score(self):
        assert compute_heat_score(9, 4) == 1.0
        assert compute_heat_score(0, 0) == 0.0


# =============================================================================
# TRENDING RULE
# =============================================================================


class TestDetectTrend:
    """Tests for the z-score plus volume floor rule."""

    def test_trending_requires_z_above_threshold(self):
        assert detect_trend(1.6, 5) is True
        assert detect_trend(1.5, 50) is False

    def test_trending_requires_minimum_volume(self):
        """A large z-score on a tiny count is noise."""
        assert detect_trend(3.0, 4) is False

    def test_custom_thresholds(self):
        assert detect_trend(1.2, 2, z_threshold=1.0, min_current=2) is True


# =============================================================================
# DERIVATIVES & SNAP
# =============================================================================


class TestDerivatives:
    """Tests for the velocity/acceleration/jerk chain."""

    def test_chain_lengths_shrink_by_one(self):
        chain = derivatives([2, 2, 3, 4, 9])

        assert chain.velocity == [0, 1, 1, 5]
        assert chain.acceleration == [1, 0, 4]
        assert chain.jerk == [-1, 4]

    def test_snap_needs_four_points(self):
        assert compute_snap_score([1, 2, 3]) == 0.0

    def test_snap_uses_acceleration_variance(self):
        """16 / variance([1, 0, 4]) = 16 / (26/9)."""
        assert compute_snap_score([2, 2, 3, 4, 9]) == pytest.approx(16 / (26 / 9))

    def test_snap_with_constant_acceleration_uses_unit_stability(self):
        # accel [1, 1, 1] has zero variance; jerk is 0 so the score is 0
        assert compute_snap_score([1, 2, 4, 7, 11]) == 0.0

    def test_snap_of_flat_series_is_zero(self):
        assert compute_snap_score([5, 5, 5, 5, 5]) == 0.0


# =============================================================================
# SERIES ANALYSIS
# =============================================================================


class TestAnalyzeSeries:
    """Tests for analyze_series."""

    def test_no_buckets_returns_none(self):
        assert analyze_series([]) is None

    def test_spike_in_recent_window_is_trending(self):
        analysis = analyze_series(daily_buckets([2, 2, 3, 4, 9]), window_hours=24, now=NOW)

        assert analysis.current_count == 9
        assert analysis.current_buckets == 1
        assert analysis.total_buckets == 5
        assert analysis.mean == 4.0
        assert analysis.std_dev == 2.61
        assert analysis.z_score == 1.92
        assert analysis.heat_score == 1.0
        assert analysis.snap_score == 5.54
        assert analysis.is_trending is True

    def test_flat_series_is_not_trending(self):
        analysis = analyze_series(daily_buckets([6, 6, 6, 6, 6]), window_hours=24, now=NOW)

        assert analysis.z_score == 0.0
        assert analysis.is_trending is False

    def test_trending_decided_on_rounded_z_score(self):
        """Raw z is sqrt(2) = 1.4142; the stored 1.41 does not exceed 1.412."""
        analysis = analyze_series(
            daily_buckets([1, 1, 7]), window_hours=24, now=NOW, z_threshold=1.412
        )

        assert analysis.current_count == 7
        assert analysis.z_score == 1.41
        assert analysis.is_trending is False
        assert analysis.is_trending == detect_trend(analysis.z_score, analysis.current_count, 1.412)

    def test_bucket_order_does_not_matter(self):
        buckets = daily_buckets([2, 2, 3, 4, 9])
        forward = analyze_series(buckets, now=NOW)
        backward = analyze_series(list(reversed(buckets)), now=NOW)

        assert forward == backward

    def test_now_defaults_to_newest_bucket(self):
        analysis = analyze_series(daily_buckets([2, 2, 3, 4, 9]))

        assert analysis.current_count == 9

    def test_current_sums_every_bucket_in_window(self):
        """Hourly buckets within the window all count toward current."""
        buckets = [(NOW - timedelta(hours=h), 1) for h in range(48)]

        analysis = analyze_series(buckets, window_hours=24, now=NOW)

        # Inclusive cutoff: hours 0..24
        assert analysis.current_count == 25
        assert analysis.current_buckets == 25

    def test_baseline_json_shape(self):
        analysis = analyze_series(daily_buckets([2, 2, 3, 4, 9]), now=NOW)

        baseline = analysis.baseline_json()

        assert baseline == {
            "mean": 4.0,
            "std_dev": 2.61,
            "current_window": 9,
            "total_buckets": 5,
            "current_window_buckets": 1,
            "snap_score": 5.54,
        }
