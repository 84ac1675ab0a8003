"""Momentum dynamics for per-entity daily mention history.

Computes average velocity and acceleration, a volume-normalized
"g-force" that surfaces small but accelerating entities, and a
qualitative momentum signal read from the signs of the latest jerk,
acceleration and velocity.

Usage:
    points = [(mention.mention_date, mention.mention_count) for mention in mentions]
    dynamics = calculate_trend_dynamics(points)
    signal = classify_signal(points)
    label = prediction_label(dynamics.g_force)
"""

import itertools
import math
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, Sequence, Union

from trendjack_core.domain.services.statistics import ROUND_DIGITS, derivatives


# =============================================================================
# CONSTANTS
# =============================================================================

DYNAMICS_WINDOW = 14
MIN_DYNAMICS_POINTS = 3
MIN_SIGNAL_POINTS = 5

IMMINENT_BREAKOUT_G_FORCE = 20
HIGH_G_FORCE = 10
BUILDING_MOMENTUM_G_FORCE = 5

Point = tuple[Union[date, str], float]


class SnapSignal(str, Enum):
    """Qualitative momentum signal of an entity."""

    PRE_EXPLOSION = "Pre-Explosion"
    TOPPING_OUT = "Topping Out"
    POTENTIAL_REVERSAL = "Potential Reversal"
    FADING = "Fading"
    ACCELERATING = "Accelerating"
    NEUTRAL = "Neutral"
    INSUFFICIENT_DATA = "Insufficient Data"


class PredictionLabel(str, Enum):
    """G-force band shown next to an entity."""

    IMMINENT_BREAKOUT = "IMMINENT BREAKOUT"
    HIGH_G_FORCE = "HIGH G-FORCE"
    BUILDING_MOMENTUM = "BUILDING MOMENTUM"
    EARLY_SIGNAL = "EARLY SIGNAL"


# =============================================================================
# SIGNAL TRUTH TABLE
# =============================================================================

# Rules keyed by (sign(jerk), sign(acceleration), sign(velocity)); None
# matches any sign. Earlier rows win, so row order is the precedence.
SIGNAL_RULES: list[tuple[Optional[int], Optional[int], Optional[int], SnapSignal]] = [
    (1, 1, None, SnapSignal.PRE_EXPLOSION),
    (-1, 1, None, SnapSignal.TOPPING_OUT),
    (1, None, -1, SnapSignal.POTENTIAL_REVERSAL),
    (-1, -1, None, SnapSignal.FADING),
    (1, None, 1, SnapSignal.ACCELERATING),
]


def _sign(value: float) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def _build_signal_table() -> dict[tuple[int, int, int], SnapSignal]:
    table = {}
    for key in itertools.product((-1, 0, 1), repeat=3):
        signal = SnapSignal.NEUTRAL
        for rule in SIGNAL_RULES:
            if all(want is None or want == got for want, got in zip(rule[:3], key)):
                signal = rule[3]
                break
        table[key] = signal
    return table


# Every one of the 27 sign combinations, resolved once at import
SIGNAL_TABLE = _build_signal_table()


# =============================================================================
# DYNAMICS
# =============================================================================


@dataclass
class TrendDynamics:
    """Averaged derivatives and g-force of the recent mention window."""

    velocity: float = 0.0
    acceleration: float = 0.0
    g_force: float = 0.0
    confidence: int = 0
    current_volume: float = 0


def _ordered_counts(points: Sequence[Point]) -> list[float]:
    return [count for _, count in sorted(points, key=lambda p: str(p[0]))]


def calculate_trend_dynamics(points: Sequence[Point]) -> TrendDynamics:
    """Compute momentum over the last 14 points of a daily series.

    Args:
        points: (date, count) pairs in any order.

    Returns:
        TrendDynamics; all zeros when fewer than three points are given.
    """
    if len(points) < MIN_DYNAMICS_POINTS:
        return TrendDynamics()

    counts = _ordered_counts(points)[-DYNAMICS_WINDOW:]
    chain = derivatives(counts)

    avg_velocity = sum(chain.velocity) / len(chain.velocity)
    avg_accel = (
        sum(chain.acceleration) / len(chain.acceleration) if chain.acceleration else 0.0
    )

    current_volume = counts[-1]
    safe_volume = max(current_volume, 1)

    g_force = 0.0
    if avg_accel > 0:
        g_force = (avg_accel * 100) / math.sqrt(safe_volume)

    positive = sum(1 for a in chain.acceleration if a > 0)
    confidence = round(positive / len(chain.acceleration) * 100) if chain.acceleration else 0

    return TrendDynamics(
        velocity=round(avg_velocity, ROUND_DIGITS),
        acceleration=round(avg_accel, ROUND_DIGITS),
        g_force=round(g_force, ROUND_DIGITS),
        confidence=confidence,
        current_volume=current_volume,
    )


def signal_for(jerk: float, acceleration: float, velocity: float) -> SnapSignal:
    """Look up the signal for the latest derivative values."""
    return SIGNAL_TABLE[(_sign(jerk), _sign(acceleration), _sign(velocity))]


def classify_signal(points: Sequence[Point]) -> SnapSignal:
    """Classify the momentum signal of a series of at least five points."""
    if len(points) < MIN_SIGNAL_POINTS:
        return SnapSignal.INSUFFICIENT_DATA

    chain = derivatives(_ordered_counts(points))
    return signal_for(chain.jerk[-1], chain.acceleration[-1], chain.velocity[-1])


def prediction_label(g_force: float) -> Optional[PredictionLabel]:
    if g_force >= IMMINENT_BREAKOUT_G_FORCE:
        return PredictionLabel.IMMINENT_BREAKOUT
    if g_force >= HIGH_G_FORCE:
        return PredictionLabel.HIGH_G_FORCE
    if g_force >= BUILDING_MOMENTUM_G_FORCE:
        return PredictionLabel.BUILDING_MOMENTUM
    if g_force > 0:
        return PredictionLabel.EARLY_SIGNAL
    return None


# =============================================================================
# EXPORTS
# =============================================================================


__all__ = [
    "PredictionLabel",
    "SIGNAL_TABLE",
    "SnapSignal",
    "TrendDynamics",
    "calculate_trend_dynamics",
    "classify_signal",
    "prediction_label",
    "signal_for",
]
