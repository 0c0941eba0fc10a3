"""Split a track into fixed-length segments and filter noisy steps."""

from dataclasses import dataclass
from typing import Iterator

from mtb_difficulty.distance import distance_between
from mtb_difficulty.models import TrackPoint

DEFAULT_SEGMENT_LENGTH_M = 200.0

# Segments this short cannot support stable sinuosity / slope estimates
MIN_SEGMENT_LENGTH_M = 10.0


@dataclass(frozen=True)
class SegmentRange:
    """Inclusive index range [start, end] into the original point list."""
    start: int
    end: int
    length_m: float  # real path length

    def points(self, track: list[TrackPoint]) -> list[TrackPoint]:
        return track[self.start:self.end + 1]


@dataclass(frozen=True)
class NoiseFilter:
    """Bounds outside which a step is treated as GPS noise."""
    min_step_m: float = 3.0
    max_step_m: float = 80.0
    max_delta_ele_m: float = 25.0
    max_abs_grade: float = 0.45

    def accepts_step(self, dist: float) -> bool:
        return self.min_step_m <= dist <= self.max_step_m


DEFAULT_NOISE_FILTER = NoiseFilter()


@dataclass(frozen=True)
class GradeStep:
    """A noise-filtered step with valid elevation on both ends."""
    index: int  # index of the step's end point
    distance_m: float
    delta_ele_m: float
    grade: float  # fraction, signed


def _segment_length(points: list[TrackPoint], start: int, end: int) -> float:
    length = 0.0
    for i in range(start + 1, end + 1):
        d = distance_between(points[i - 1], points[i])
        if d > 0:
            length += d
    return length


def split_segments(
    points: list[TrackPoint], target_m: float = DEFAULT_SEGMENT_LENGTH_M
) -> list[SegmentRange]:
    """Split points into consecutive segments of roughly target_m meters.

    A segment closes at the first point where the accumulated distance reaches
    target_m; the next one starts at that same point. A trailing partial
    segment is kept when it spans at least two points, and any segment of
    MIN_SEGMENT_LENGTH_M or less is discarded.
    """
    ranges: list[tuple[int, int]] = []
    start = 0
    acc = 0.0
    for i in range(1, len(points)):
        d = distance_between(points[i - 1], points[i])
        if not d > 0:
            continue
        acc += d
        if acc >= target_m:
            ranges.append((start, i))
            start = i
            acc = 0.0
    if start < len(points) - 1:
        ranges.append((start, len(points) - 1))

    segments = []
    for start, end in ranges:
        length = _segment_length(points, start, end)
        if length > MIN_SEGMENT_LENGTH_M:
            segments.append(SegmentRange(start=start, end=end, length_m=length))
    return segments


def iter_grade_steps(
    points: list[TrackPoint], noise: NoiseFilter = DEFAULT_NOISE_FILTER, offset: int = 0
) -> Iterator[GradeStep | None]:
    """Yield a GradeStep per accepted step, or None for each rejected step.

    None markers let callers break continuity-based metrics (descent runs)
    at noisy or elevation-less steps.
    """
    for i in range(1, len(points)):
        a, b = points[i - 1], points[i]
        d = distance_between(a, b)
        if not noise.accepts_step(d):
            yield None
            continue
        if a.elevation is None or b.elevation is None:
            yield None
            continue
        de = b.elevation - a.elevation
        if abs(de) > noise.max_delta_ele_m:
            yield None
            continue
        grade = de / d
        if abs(grade) > noise.max_abs_grade:
            yield None
            continue
        yield GradeStep(index=offset + i, distance_m=d, delta_ele_m=de, grade=grade)
