"""Per-segment technical difficulty from track geometry and terrain roughness.

Each segment gets four 0..1 signals:

- sinuosity norm: how much the path winds compared to a straight line
- slope technicality: how much of the segment is spent on steep grades
- turn norm: heading change per km (switchbacks, tight corners)
- terrain roughness: surface difficulty from map tags (optional)

These are blended into a technical coefficient using the weights of a named
preset. Track-level values use the distance-weighted 75th percentile so the
hardest quarter of the course drives the score.
"""

from dataclasses import dataclass

from mtb_difficulty.distance import bearing_between, distance_between, heading_change
from mtb_difficulty.models import Segment, TerrainSample, TrackPoint
from mtb_difficulty.percentiles import clamp, percentile, weighted_percentile
from mtb_difficulty.segments import (
    DEFAULT_NOISE_FILTER,
    NoiseFilter,
    SegmentRange,
    iter_grade_steps,
)

# Grade thresholds (fraction) for slope technicality
GRADE_TECH_THRESHOLD = 0.10
GRADE_HARD_THRESHOLD = 0.16

# Sinuosity above 1.30 saturates the norm
SINUOSITY_SPAN = 0.30

# Turn density normalization (degrees per km)
TURN_BASELINE_DEG_PER_KM = 120.0
TURN_SPAN_DEG_PER_KM = 500.0
MIN_TURN_SEGMENT_M = 30.0

TRACK_PERCENTILE = 0.75


@dataclass(frozen=True)
class TechnicalPreset:
    """Weights of the technical coefficient and the GPX-only technicality.

    All weights are non-negative: every signal can only raise the coefficient.
    """
    name: str
    coeff_min: float = 0.80
    coeff_max: float = 1.80
    w_terrain: float = 0.22
    w_sinuosity: float = 0.14
    w_slope: float = 0.18
    w_turn: float = 0.16
    # GPX-only technicality (0..1) used as the hybrid bonus input
    gpx_w_slope: float = 0.45
    gpx_w_turn: float = 0.35
    gpx_w_sinuosity: float = 0.20


PRESETS = {
    "tech-sensitive": TechnicalPreset(name="tech-sensitive"),
    "classic": TechnicalPreset(
        name="classic",
        coeff_max=1.60,
        w_terrain=0.20,
        w_sinuosity=0.10,
        w_slope=0.30,
        w_turn=0.10,
    ),
}
DEFAULT_PRESET = "tech-sensitive"


def get_preset(name: str) -> TechnicalPreset:
    """Look up a preset by name.

    Raises:
        ValueError: If the preset is unknown.
    """
    try:
        return PRESETS[name]
    except KeyError:
        raise ValueError(f"Unknown technical preset: {name} (choose from {', '.join(sorted(PRESETS))})") from None


@dataclass(frozen=True)
class SlopeTechnicality:
    score: float  # 0..1
    p10: float  # share of steps with |grade| >= 10%
    p16: float  # share of steps with |grade| >= 16%
    grade_p90: float  # 90th percentile of |grade|
    used_steps: int


def sinuosity_metrics(seg_points: list[TrackPoint]) -> tuple[float, float, float]:
    """Return (path length m, sinuosity, sinuosity norm) for a run of points."""
    path = 0.0
    for i in range(1, len(seg_points)):
        d = distance_between(seg_points[i - 1], seg_points[i])
        if d > 0:
            path += d
    direct = distance_between(seg_points[0], seg_points[-1])
    sinuosity = path / max(direct, 1.0)
    sinuosity_norm = clamp((sinuosity - 1.0) / SINUOSITY_SPAN)
    return path, sinuosity, sinuosity_norm


def slope_technicality(
    seg_points: list[TrackPoint], noise: NoiseFilter = DEFAULT_NOISE_FILTER
) -> SlopeTechnicality:
    """Steep-grade exposure over noise-filtered steps, climbing or descending."""
    abs_grades = [abs(step.grade) for step in iter_grade_steps(seg_points, noise) if step is not None]
    if not abs_grades:
        return SlopeTechnicality(score=0.0, p10=0.0, p16=0.0, grade_p90=0.0, used_steps=0)

    n = len(abs_grades)
    p10 = sum(1 for g in abs_grades if g >= GRADE_TECH_THRESHOLD) / n
    p16 = sum(1 for g in abs_grades if g >= GRADE_HARD_THRESHOLD) / n
    grade_p90 = percentile(abs_grades, 0.90)

    grade_norm = clamp((grade_p90 - 0.08) / 0.22)
    score = clamp(0.55 * p10 + 0.45 * p16 + 0.55 * grade_norm)
    return SlopeTechnicality(
        score=round(score, 3),
        p10=round(p10, 3),
        p16=round(p16, 3),
        grade_p90=round(grade_p90, 3),
        used_steps=n,
    )


def turn_density(
    seg_points: list[TrackPoint], path_m: float, noise: NoiseFilter = DEFAULT_NOISE_FILTER
) -> tuple[float, float]:
    """Return (degrees of heading change per km, turn norm).

    Only triplets whose two steps both pass the step-length filter count.
    """
    if len(seg_points) < 3 or path_m < MIN_TURN_SEGMENT_M:
        return 0.0, 0.0

    turn = 0.0
    for i in range(2, len(seg_points)):
        p0, p1, p2 = seg_points[i - 2], seg_points[i - 1], seg_points[i]
        if not noise.accepts_step(distance_between(p0, p1)):
            continue
        if not noise.accepts_step(distance_between(p1, p2)):
            continue
        turn += heading_change(bearing_between(p0, p1), bearing_between(p1, p2))

    turn_per_km = turn / (path_m / 1000)
    turn_norm = clamp((turn_per_km - TURN_BASELINE_DEG_PER_KM) / TURN_SPAN_DEG_PER_KM)
    return turn_per_km, turn_norm


def segment_terrain_roughness(
    samples: list[TerrainSample], seg: SegmentRange, fallback: float | None = None
) -> float | None:
    """Weighted median roughness of the resolved samples inside the segment."""
    values = []
    weights = []
    for s in samples:
        if s.roughness is not None and seg.start <= s.index <= seg.end:
            values.append(s.roughness)
            weights.append(max(1.0, s.weight_m))
    median = weighted_percentile(values, weights, 0.5)
    if median is None:
        return fallback
    return median


def score_segment(
    points: list[TrackPoint],
    seg: SegmentRange,
    preset: TechnicalPreset,
    samples: list[TerrainSample] | None = None,
    terrain_fallback: float | None = None,
    noise: NoiseFilter = DEFAULT_NOISE_FILTER,
) -> Segment:
    seg_points = seg.points(points)
    path_m, sinuosity, sinuosity_norm = sinuosity_metrics(seg_points)
    slope = slope_technicality(seg_points, noise)
    turn_per_km, turn_norm = turn_density(seg_points, path_m, noise)

    if samples:
        terrain = segment_terrain_roughness(samples, seg, terrain_fallback)
    else:
        terrain = terrain_fallback

    coefficient = clamp(
        preset.coeff_min
        + preset.w_terrain * (terrain or 0.0)
        + preset.w_sinuosity * sinuosity_norm
        + preset.w_slope * slope.score
        + preset.w_turn * turn_norm,
        preset.coeff_min,
        preset.coeff_max,
    )
    gpx_technicality = clamp(
        preset.gpx_w_slope * slope.score
        + preset.gpx_w_turn * turn_norm
        + preset.gpx_w_sinuosity * sinuosity_norm
    )

    return Segment(
        start_index=seg.start,
        end_index=seg.end,
        length_m=round(path_m, 1),
        sinuosity=round(sinuosity, 3),
        sinuosity_norm=round(sinuosity_norm, 3),
        turn_density_per_km=round(turn_per_km, 1),
        turn_norm=round(turn_norm, 3),
        slope_technicality=slope.score,
        terrain_roughness=None if terrain is None else round(terrain, 3),
        gpx_technicality=round(gpx_technicality, 3),
        technical_coefficient=round(coefficient, 3),
    )


def score_segments(
    points: list[TrackPoint],
    ranges: list[SegmentRange],
    preset: TechnicalPreset,
    samples: list[TerrainSample] | None = None,
    terrain_fallback: float | None = None,
    noise: NoiseFilter = DEFAULT_NOISE_FILTER,
) -> list[Segment]:
    return [score_segment(points, seg, preset, samples, terrain_fallback, noise) for seg in ranges]


@dataclass(frozen=True)
class TechnicalSummary:
    coefficient_p75: float
    coefficient_score: int  # 0..100, coefficient P75 mapped from [min, max]
    gpx_technical_p75: float  # 0..1


def summarize_segments(segments: list[Segment], preset: TechnicalPreset) -> TechnicalSummary:
    """Aggregate segments with a length-weighted 75th percentile."""
    weights = [s.length_m for s in segments]
    coeff = weighted_percentile([s.technical_coefficient for s in segments], weights, TRACK_PERCENTILE)
    gpx = weighted_percentile([s.gpx_technicality for s in segments], weights, TRACK_PERCENTILE)

    if coeff is None:
        coeff = preset.coeff_min
    span = preset.coeff_max - preset.coeff_min
    coefficient_score = int(round(100 * clamp((coeff - preset.coeff_min) / span)))

    return TechnicalSummary(
        coefficient_p75=round(coeff, 3),
        coefficient_score=coefficient_score,
        gpx_technical_p75=round(clamp(gpx or 0.0), 3),
    )
