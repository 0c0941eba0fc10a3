"""Physical effort score from distance, climbing and steepness."""

import math
from dataclasses import dataclass

from mtb_difficulty.models import TrackStatistics
from mtb_difficulty.percentiles import clamp

# Effort at which the effort component saturates (sqrt(km) + gain_km)
EFFORT_SATURATION = 12.0

EFFORT_WEIGHT = 0.78
STEEP_WEIGHT = 0.22


@dataclass(frozen=True)
class PhysicalScore:
    effort: float
    steep_bonus: float
    score: int  # 0..100


def physical_score(stats: TrackStatistics) -> PhysicalScore:
    """Score effort 0..100.

    effort = sqrt(km) + gain_m / 1000, saturating at 12; a steep-climbing
    bonus built from the >10% and >15% distance shares adds up to 22 points.
    """
    effort = math.sqrt(max(0.0, stats.distance_km)) + stats.elevation_gain_m / 1000
    steep_bonus = clamp(0.7 * stats.slope_fraction.over10pct + 1.3 * stats.slope_fraction.over15pct)
    effort_norm = clamp(effort / EFFORT_SATURATION)
    score = int(round(100 * (EFFORT_WEIGHT * effort_norm + STEEP_WEIGHT * steep_bonus)))
    return PhysicalScore(
        effort=round(effort, 2),
        steep_bonus=round(steep_bonus, 3),
        score=max(0, min(100, score)),
    )
