"""Road / track / singletrack percentage breakdown."""

from mtb_difficulty.distance import bearing_between, distance_between, heading_change
from mtb_difficulty.models import SurfaceBreakdown, TerrainSample, TrackPoint
from mtb_difficulty.percentiles import clamp

# Roughness class boundaries
ROAD_MAX_ROUGHNESS = 0.08
SINGLE_MIN_ROUGHNESS = 0.60

GEOMETRY_WINDOW_M = 300.0


def _to_percentages(road: float, track: float, single: float, source: str) -> SurfaceBreakdown:
    """Round weights to integer percentages summing to exactly 100.

    Rounding drift goes to the largest class (road, then track, on ties).
    """
    total = road + track + single
    if total <= 0:
        return SurfaceBreakdown(road_pct=0, track_pct=100, single_pct=0, source=source)
    pcts = [int(round(100 * clamp(w / total))) for w in (road, track, single)]
    drift = 100 - sum(pcts)
    if drift:
        largest = max(range(3), key=lambda i: (pcts[i], -i))
        pcts[largest] += drift
    return SurfaceBreakdown(road_pct=pcts[0], track_pct=pcts[1], single_pct=pcts[2], source=source)


def breakdown_from_samples(samples: list[TerrainSample]) -> SurfaceBreakdown | None:
    """Classify resolved terrain samples by roughness, weighted by sample distance."""
    road = track = single = 0.0
    for s in samples:
        if s.roughness is None:
            continue
        w = max(1.0, s.weight_m)
        if s.roughness <= ROAD_MAX_ROUGHNESS:
            road += w
        elif s.roughness < SINGLE_MIN_ROUGHNESS:
            track += w
        else:
            single += w
    if road + track + single <= 0:
        return None
    return _to_percentages(road, track, single, "terrain")


def breakdown_from_geometry(points: list[TrackPoint], has_elevation: bool) -> SurfaceBreakdown:
    """Estimate the breakdown from track shape when no map data is available.

    Each ~300 m window is scored for singletrack (winding, twisty, bumpy) vs
    road (straight, smooth); track takes whatever sits in between.
    """
    road = track = single = 0.0
    start = 0
    acc = 0.0

    for i in range(1, len(points)):
        d = distance_between(points[i - 1], points[i])
        if not d > 0:
            continue
        acc += d
        if acc < GEOMETRY_WINDOW_M and i != len(points) - 1:
            continue

        window = points[start:i + 1]
        start, acc = i, 0.0

        path = sum(distance_between(window[k - 1], window[k]) for k in range(1, len(window)))
        if path <= 10:
            continue

        direct = distance_between(window[0], window[-1])
        sinuosity_n = clamp((path / max(direct, 1.0) - 1.0) / 0.3)

        turn = sum(
            heading_change(bearing_between(window[k - 2], window[k - 1]), bearing_between(window[k - 1], window[k]))
            for k in range(2, len(window))
        )
        turn_n = clamp((turn / (path / 1000) - 150) / 450)

        rough_n = 0.0
        if has_elevation:
            deltas = [
                abs(window[k].elevation - window[k - 1].elevation)
                for k in range(1, len(window))
                if window[k].elevation is not None and window[k - 1].elevation is not None
            ]
            if deltas:
                rough_n = clamp((sum(deltas) / len(deltas) - 0.15) / 1.2)

        single_score = clamp(0.45 * sinuosity_n + 0.35 * turn_n + 0.20 * rough_n)
        road_score = clamp(1 - (0.60 * sinuosity_n + 0.30 * turn_n + 0.10 * rough_n))
        track_score = clamp(1 - abs(single_score - 0.5) * 2)

        score_sum = single_score + road_score + track_score or 1.0
        road += path * road_score / score_sum
        track += path * track_score / score_sum
        single += path * single_score / score_sum

    return _to_percentages(road, track, single, "geometry")


def surface_breakdown(
    points: list[TrackPoint], samples: list[TerrainSample] | None, has_elevation: bool
) -> SurfaceBreakdown:
    """Prefer terrain samples; fall back to geometry when none resolved."""
    if samples:
        from_samples = breakdown_from_samples(samples)
        if from_samples is not None:
            return from_samples
    return breakdown_from_geometry(points, has_elevation)
