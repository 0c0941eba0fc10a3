"""Heuristic discipline hint: cross-country, enduro, downhill or other.

Signals, all computed over noise-filtered steps:

- climb per km (D+/km)
- up/down share: distance climbing / descending steeper than 8%
- longest continuous descent steeper than 5% (length and drop)
- alternation: sign changes of grade per km
- technical packs: runs of consecutive segments that are strongly
  descending or twisty

Downhill favours dominant, long descents with little climbing. Enduro
favours balanced climbing and descending with several distinct technical
packs. Cross-country favours steady climbing and rolling terrain without
dominant descent.
"""

from dataclasses import dataclass

from mtb_difficulty.distance import step_distances
from mtb_difficulty.models import DisciplineHint, TrackPoint, TrackStatistics
from mtb_difficulty.percentiles import clamp, percentile
from mtb_difficulty.segments import (
    DEFAULT_NOISE_FILTER,
    NoiseFilter,
    iter_grade_steps,
    split_segments,
)
from mtb_difficulty.technical import sinuosity_metrics, turn_density

LABEL_XC = "XC"
LABEL_ENDURO = "Enduro"
LABEL_DH = "Downhill"
LABEL_OTHER = "Other/Trail"

# Minimum score a label needs before it is suggested
MIN_LABEL_SCORE = 0.35
OTHER_CONFIDENCE = 0.25
NO_ELEVATION_CONFIDENCE = 0.10


@dataclass(frozen=True)
class DisciplineThresholds:
    segment_length_m: float = 200.0
    up_grade: float = 0.08  # climbing share threshold
    down_grade: float = 0.08  # descending share threshold
    down_run_grade: float = 0.05  # continuous descent threshold
    pack_down_grade: float = 0.10  # "strong descent" inside a pack
    pack_min_segment_m: float = 50.0


@dataclass(frozen=True)
class SlopeProfile:
    has_elevation: bool
    distance_m: float
    climb_m: float
    up_share: float
    down_share: float
    max_down_run_m: float
    max_down_run_drop_m: float
    sign_changes_per_km: float
    grade_p90: float

    @property
    def climb_per_km(self) -> float:
        km = self.distance_m / 1000
        return self.climb_m / km if km > 0 else 0.0


def slope_profile(
    points: list[TrackPoint],
    thresholds: DisciplineThresholds = DisciplineThresholds(),
    noise: NoiseFilter = DEFAULT_NOISE_FILTER,
) -> SlopeProfile:
    distance = sum(d for d in step_distances(points) if noise.accepts_step(d))

    climb = 0.0
    up_dist = 0.0
    down_dist = 0.0
    grades: list[float] = []
    run_dist = run_drop = 0.0
    max_run_dist = max_run_drop = 0.0

    for step in iter_grade_steps(points, noise):
        if step is None:
            run_dist = run_drop = 0.0
            continue

        grades.append(step.grade)
        if step.delta_ele_m > 0:
            climb += step.delta_ele_m
        if step.grade >= thresholds.up_grade:
            up_dist += step.distance_m
        if step.grade <= -thresholds.down_grade:
            down_dist += step.distance_m

        if step.grade <= -thresholds.down_run_grade:
            run_dist += step.distance_m
            run_drop += -step.delta_ele_m
            max_run_dist = max(max_run_dist, run_dist)
            max_run_drop = max(max_run_drop, run_drop)
        else:
            run_dist = run_drop = 0.0

    sign_changes = 0
    for prev, cur in zip(grades, grades[1:]):
        if prev != 0 and cur != 0 and (prev > 0) != (cur > 0):
            sign_changes += 1

    km = distance / 1000
    return SlopeProfile(
        has_elevation=bool(grades),
        distance_m=distance,
        climb_m=climb,
        up_share=up_dist / distance if distance > 0 else 0.0,
        down_share=down_dist / distance if distance > 0 else 0.0,
        max_down_run_m=max_run_dist,
        max_down_run_drop_m=max_run_drop,
        sign_changes_per_km=sign_changes / km if km > 0 else 0.0,
        grade_p90=percentile([abs(g) for g in grades], 0.90),
    )


def technical_packs(
    points: list[TrackPoint],
    thresholds: DisciplineThresholds = DisciplineThresholds(),
    noise: NoiseFilter = DEFAULT_NOISE_FILTER,
) -> tuple[int, float]:
    """Count runs of consecutive technical segments; return (packs, longest pack m)."""
    flags: list[tuple[bool, float]] = []
    for seg in split_segments(points, thresholds.segment_length_m):
        seg_points = seg.points(points)
        path_m, _, sinuosity_norm = sinuosity_metrics(seg_points)
        if path_m < thresholds.pack_min_segment_m:
            flags.append((False, path_m))
            continue

        strong_down = sum(
            step.distance_m
            for step in iter_grade_steps(seg_points, noise)
            if step is not None and step.grade <= -thresholds.pack_down_grade
        )
        _, turn_norm = turn_density(seg_points, path_m, noise)
        is_pack = strong_down / path_m >= 0.25 or (turn_norm >= 0.55 and sinuosity_norm >= 0.35)
        flags.append((is_pack, path_m))

    packs = 0
    pack_lengths = []
    current = None
    for is_pack, length in flags:
        if is_pack:
            if current is None:
                packs += 1
                current = 0.0
            current += length
        elif current is not None:
            pack_lengths.append(current)
            current = None
    if current is not None:
        pack_lengths.append(current)

    return packs, max(pack_lengths, default=0.0)


def _score_labels(profile: SlopeProfile, packs: int) -> dict[str, float]:
    climb_per_km = profile.climb_per_km
    alternation = profile.sign_changes_per_km

    dh = (
        0.45 * clamp((profile.down_share - 0.45) / 0.35)
        + 0.25 * clamp((12 - climb_per_km) / 12)
        + 0.30 * clamp((profile.max_down_run_drop_m - 180) / 450)
    )
    enduro = (
        0.25 * clamp((profile.up_share - 0.18) / 0.25)
        + 0.25 * clamp((profile.down_share - 0.25) / 0.35)
        + 0.30 * clamp((packs - 2) / 4)
        + 0.20 * clamp((alternation - 0.8) / 1.4)
    )
    xc = (
        0.35 * clamp((climb_per_km - 15) / 25)
        + 0.25 * clamp((alternation - 0.7) / 1.4)
        + 0.25 * clamp((0.45 - profile.down_share) / 0.25)
        + 0.15 * clamp((profile.up_share - 0.05) / 0.20)
    )
    return {
        LABEL_XC: round(clamp(xc), 3),
        LABEL_ENDURO: round(clamp(enduro), 3),
        LABEL_DH: round(clamp(dh), 3),
    }


def classify_discipline(
    points: list[TrackPoint],
    stats: TrackStatistics | None = None,
    thresholds: DisciplineThresholds = DisciplineThresholds(),
    noise: NoiseFilter = DEFAULT_NOISE_FILTER,
) -> DisciplineHint:
    """Suggest a discipline label with a 0..1 confidence."""
    if len(points) < 2:
        return DisciplineHint(label=LABEL_OTHER, confidence=0.0)

    profile = slope_profile(points, thresholds, noise)
    packs, max_pack_m = technical_packs(points, thresholds, noise)
    scores = _score_labels(profile, packs)

    metrics = {
        "distanceKm": round(profile.distance_m / 1000, 3),
        "climbPerKm": round(profile.climb_per_km, 1),
        "upShare": round(profile.up_share, 3),
        "downShare": round(profile.down_share, 3),
        "maxDownRunKm": round(profile.max_down_run_m / 1000, 3),
        "maxDownRunDropM": int(round(profile.max_down_run_drop_m)),
        "signChangesPerKm": round(profile.sign_changes_per_km, 3),
        "gradeP90": round(profile.grade_p90, 3),
        "techPacks": packs,
        "maxPackKm": round(max_pack_m / 1000, 3),
    }

    has_elevation = profile.has_elevation and (stats is None or stats.has_valid_elevation)
    if not has_elevation:
        return DisciplineHint(label=LABEL_OTHER, confidence=NO_ELEVATION_CONFIDENCE, scores=scores, metrics=metrics)

    ranked = sorted(scores.items(), key=lambda kv: (-kv[1], kv[0]))
    (best_label, best), (_, second) = ranked[0], ranked[1]
    if best < MIN_LABEL_SCORE:
        return DisciplineHint(label=LABEL_OTHER, confidence=OTHER_CONFIDENCE, scores=scores, metrics=metrics)

    confidence = clamp(0.40 + 0.60 * (best - second) + 0.20 * best)
    return DisciplineHint(label=best_label, confidence=round(confidence, 3), scores=scores, metrics=metrics)
