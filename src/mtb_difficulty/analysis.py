"""End-to-end difficulty analysis of a track.

Stages run in a fixed order so the result only depends on the points, the
options and the contents of the terrain cache:

1. statistics
2. fixed-length segments
3. terrain sampling, then the fetch stage (the only concurrent one)
4. terrain summary with the coverage gate
5. per-segment technical scoring and the track-level P75
6. physical, hybrid technical and global scores
7. discipline hint and surface breakdown
"""

import logging
import threading
from pathlib import Path

from mtb_difficulty.config import AnalysisOptions
from mtb_difficulty.discipline import classify_discipline
from mtb_difficulty.errors import CoverageTooLow
from mtb_difficulty.hybrid import HybridWeights, combine_technical, global_score
from mtb_difficulty.models import AnalysisResult, TrackPoint
from mtb_difficulty.parser import parse_track_file
from mtb_difficulty.physical import physical_score
from mtb_difficulty.segments import split_segments
from mtb_difficulty.stats import compute_statistics
from mtb_difficulty.surface import surface_breakdown
from mtb_difficulty.technical import get_preset, score_segments, summarize_segments
from mtb_difficulty.terrain import (
    OverpassClient,
    TerrainCache,
    TerrainLookup,
    sample_track,
    summarize_terrain,
)

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_COVERAGE_TOO_LOW = "coverage_too_low"
STATUS_FALLBACK = "fallback"


def build_lookup(options: AnalysisOptions, cache: TerrainCache | None = None) -> TerrainLookup | None:
    """Create the terrain lookup described by the options (None when offline).

    A long-lived caller can pass its own cache so hit and miss counts
    accumulate across analyses.
    """
    if options.offline:
        return None
    if cache is None:
        cache = TerrainCache(Path(options.cache_dir).expanduser(), ttl_seconds=options.cache_ttl_seconds)
    client = OverpassClient(url=options.overpass_url, timeout=options.timeout_s)
    return TerrainLookup(cache, client, radius_m=options.radius_m, max_workers=options.max_workers)


def analyze_track(
    points: list[TrackPoint],
    options: AnalysisOptions = AnalysisOptions(),
    lookup: TerrainLookup | None = None,
    cancel: threading.Event | None = None,
) -> AnalysisResult:
    """Score a parsed track.

    Args:
        points: Validated, deduplicated track points (at least 2).
        options: Analysis parameters.
        lookup: Terrain lookup used for the fetch stage. None skips map data,
            leaving the technical score unavailable unless
            options.terrain_fallback is set.
        cancel: Optional flag checked before each external query.

    Returns:
        AnalysisResult with all scores. technical_score and global_score are
        None when terrain coverage is too low and no fallback was requested.

    Raises:
        ValueError: If the options name an unknown preset or an invalid weight.
    """
    preset = get_preset(options.preset)
    weights = HybridWeights(physical_weight=options.physical_weight)

    stats = compute_statistics(points)
    logger.info(
        "Track: %d points, %.2f km, +%d m (elevation %s)",
        len(points), stats.distance_km, stats.elevation_gain_m,
        "valid" if stats.has_valid_elevation else "missing",
    )

    ranges = split_segments(points, options.segment_length_m)
    samples = sample_track(points, options.sample_every_m)
    if lookup is not None:
        samples = lookup.resolve(samples, cancel)
    else:
        logger.info("Offline: skipping terrain lookup for %d samples", len(samples))

    terrain_fallback = options.fallback_roughness if options.terrain_fallback else None
    technical_reason = None
    try:
        summary = summarize_terrain(samples, options.min_coverage, options.min_resolved)
        terrain_coverage = summary.coverage
        terrain_p75 = summary.score_p75
        technical_status = STATUS_OK
    except CoverageTooLow as e:
        terrain_coverage = e.coverage
        technical_reason = str(e)
        if terrain_fallback is not None:
            logger.warning("%s; using fallback roughness %.2f", e, terrain_fallback)
            terrain_p75 = terrain_fallback
            technical_status = STATUS_FALLBACK
        else:
            logger.warning("%s; technical score unavailable", e)
            terrain_p75 = None
            technical_status = STATUS_COVERAGE_TOO_LOW

    segments = score_segments(points, ranges, preset, samples, terrain_fallback)
    tech_summary = summarize_segments(segments, preset)
    logger.info(
        "Scored %d segments: coefficient P75 %.3f, GPX technicality P75 %.3f",
        len(segments), tech_summary.coefficient_p75, tech_summary.gpx_technical_p75,
    )

    physical = physical_score(stats)
    technical_score = None
    if terrain_p75 is not None:
        technical_score = combine_technical(terrain_p75, tech_summary.gpx_technical_p75, weights).score

    return AnalysisResult(
        statistics=stats,
        physical_score=physical.score,
        effort=physical.effort,
        technical_score=technical_score,
        global_score=global_score(physical.score, technical_score, weights),
        technical_status=technical_status,
        technical_reason=technical_reason,
        terrain_coverage=terrain_coverage,
        terrain_score_p75=terrain_p75,
        gpx_technical_p75=tech_summary.gpx_technical_p75,
        technical_coefficient_p75=tech_summary.coefficient_p75,
        coefficient_score=tech_summary.coefficient_score,
        preset=preset.name,
        discipline_hint=classify_discipline(points, stats),
        surface_breakdown=surface_breakdown(points, samples, stats.has_valid_elevation),
        segments=segments,
        terrain_samples=samples,
    )


def analyze_file(
    filepath: str,
    options: AnalysisOptions = AnalysisOptions(),
    lookup: TerrainLookup | None = None,
) -> AnalysisResult:
    """Parse a GPX or JSON points file and analyze it.

    A lookup is built from the options when none is given.
    """
    points = parse_track_file(filepath)
    if lookup is None:
        lookup = build_lookup(options)
    return analyze_track(points, options, lookup)
