"""Whole-track statistics: distance, elevation and climbing steepness."""

from mtb_difficulty.distance import distance_between
from mtb_difficulty.models import SlopeFraction, TrackPoint, TrackStatistics

# Climbing grades (percent) counted as steep / very steep
STEEP_SLOPE_PCT = 10.0
VERY_STEEP_SLOPE_PCT = 15.0


def compute_statistics(points: list[TrackPoint]) -> TrackStatistics:
    """Compute distance, elevation gain/loss and steep-climb fractions in one pass.

    Only climbing steps count toward the steep fractions: they measure
    climbing effort, while descending steepness is handled by technical scoring.

    A track whose elevation pairs are all missing or all exactly zero is
    treated as having no elevation data, and every elevation field is zeroed.
    """
    total_distance = 0.0
    elevation_gain = 0.0
    elevation_loss = 0.0
    steep_distance = 0.0
    very_steep_distance = 0.0

    has_elevation = False
    all_zero = True

    for i in range(1, len(points)):
        pt_a, pt_b = points[i - 1], points[i]

        dist = distance_between(pt_a, pt_b)
        if not dist > 0:
            continue
        total_distance += dist

        if pt_a.elevation is None or pt_b.elevation is None:
            continue

        has_elevation = True
        if pt_a.elevation != 0 or pt_b.elevation != 0:
            all_zero = False

        delta = pt_b.elevation - pt_a.elevation
        if delta > 0:
            elevation_gain += delta
        else:
            elevation_loss += -delta

        slope_pct = delta / dist * 100
        if slope_pct > STEEP_SLOPE_PCT:
            steep_distance += dist
        if slope_pct > VERY_STEEP_SLOPE_PCT:
            very_steep_distance += dist

    if not has_elevation or all_zero:
        has_elevation = False
        elevation_gain = elevation_loss = 0.0
        steep_distance = very_steep_distance = 0.0

    if total_distance > 0:
        slope_fraction = SlopeFraction(
            over10pct=round(steep_distance / total_distance, 3),
            over15pct=round(very_steep_distance / total_distance, 3),
        )
    else:
        slope_fraction = SlopeFraction()

    return TrackStatistics(
        distance_km=round(total_distance / 1000, 2),
        elevation_gain_m=int(round(elevation_gain)),
        elevation_loss_m=int(round(elevation_loss)),
        has_valid_elevation=has_elevation,
        slope_fraction=slope_fraction,
    )
