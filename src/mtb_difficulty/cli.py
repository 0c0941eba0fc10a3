import argparse
import logging
import sys

from mtb_difficulty.analysis import analyze_track, build_lookup
from mtb_difficulty.config import AnalysisOptions, _load_config, load_options
from mtb_difficulty.errors import ParseError
from mtb_difficulty.formatters import (
    format_breakdown,
    format_discipline,
    format_optional,
    format_pct,
    format_score,
)
from mtb_difficulty.models import AnalysisResult
from mtb_difficulty.parser import parse_track_file
from mtb_difficulty.technical import PRESETS

# Default values for CLI options
DEFAULTS = {
    "preset": AnalysisOptions.preset,
    "segment_length_m": AnalysisOptions.segment_length_m,
    "sample_every_m": AnalysisOptions.sample_every_m,
    "radius_m": AnalysisOptions.radius_m,
    "physical_weight": AnalysisOptions.physical_weight,
    "max_workers": AnalysisOptions.max_workers,
    "timeout_s": AnalysisOptions.timeout_s,
}

TRACK_UNREADABLE = "track unreadable"
TECHNICAL_UNAVAILABLE = "technical score unavailable (terrain data insufficient)"


def build_parser(config: dict | None = None) -> argparse.ArgumentParser:
    """Build argument parser with defaults from config file."""
    if config is None:
        config = {}

    def get_default(key: str):
        return config.get(key, DEFAULTS[key])

    parser = argparse.ArgumentParser(
        prog="mtb-difficulty",
        description="Score the physical and technical difficulty of an MTB course.",
    )
    parser.add_argument("track_file", help="Path to a GPX file or a JSON array of points")
    parser.add_argument("--json", action="store_true", help="Print the full result as JSON")
    parser.add_argument(
        "--offline",
        action="store_true",
        default=None,
        help="Skip terrain lookups (technical score unavailable unless --terrain-fallback)",
    )
    parser.add_argument(
        "--terrain-fallback",
        action="store_true",
        default=None,
        help="Use a fixed roughness when terrain coverage is too low",
    )
    parser.add_argument(
        "--preset",
        choices=sorted(PRESETS),
        default=get_default("preset"),
        help=f"Technical weighting preset (default: {DEFAULTS['preset']})",
    )
    parser.add_argument(
        "--segment-length",
        type=float,
        default=get_default("segment_length_m"),
        help=f"Segment length in meters (default: {DEFAULTS['segment_length_m']:.0f})",
    )
    parser.add_argument(
        "--sample-every",
        type=float,
        default=get_default("sample_every_m"),
        help=f"Terrain sample spacing in meters (default: {DEFAULTS['sample_every_m']:.0f})",
    )
    parser.add_argument(
        "--radius",
        type=int,
        default=get_default("radius_m"),
        help=f"Terrain query radius in meters (default: {DEFAULTS['radius_m']})",
    )
    parser.add_argument(
        "--physical-weight",
        type=float,
        default=get_default("physical_weight"),
        help=f"Weight of the physical score in the global score (default: {DEFAULTS['physical_weight']})",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=get_default("max_workers"),
        help=f"Concurrent terrain lookups (default: {DEFAULTS['max_workers']})",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=get_default("timeout_s"),
        help=f"Per-request timeout in seconds (default: {DEFAULTS['timeout_s']:.0f})",
    )
    parser.add_argument(
        "--cache-dir",
        default=None,
        help="Terrain cache directory (default: ~/.cache/mtb-difficulty/terrain)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser


def print_report(result: AnalysisResult) -> None:
    stats = result.statistics
    print("=== MTB Course Difficulty ===")
    print(f"Distance:        {stats.distance_km:.2f} km")
    if stats.has_valid_elevation:
        print(f"Elevation Gain:  {stats.elevation_gain_m} m")
        print(f"Elevation Loss:  {stats.elevation_loss_m} m")
        print(f"Climbing >10%:   {format_pct(stats.slope_fraction.over10pct)}")
        print(f"Climbing >15%:   {format_pct(stats.slope_fraction.over15pct)}")
    else:
        print("Elevation:       not available")
    print("")
    print(f"Physical Score:  {format_score(result.physical_score)}")
    print(f"Technical Score: {format_score(result.technical_score)}")
    print(f"Global Score:    {format_score(result.global_score)}")
    print(f"Terrain P75:     {format_optional(result.terrain_score_p75, 3)}")
    coverage = None if result.terrain_coverage is None else result.terrain_coverage * 100
    print(f"Terrain Cover.:  {format_optional(coverage, 0, '%')}")
    print(f"Coefficient P75: {result.technical_coefficient_p75:.3f} ({result.preset})")
    print(f"Surface:         {format_breakdown(result.surface_breakdown)}")
    print(f"Discipline:      {format_discipline(result.discipline_hint)}")
    if result.technical_status == "fallback":
        print("")
        print("Note: terrain data insufficient, technical score uses fallback roughness.")


def main(argv: list[str] | None = None) -> None:
    config = _load_config()
    parser = build_parser(config)
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        options = load_options({
            "preset": args.preset,
            "segment_length_m": args.segment_length,
            "sample_every_m": args.sample_every,
            "radius_m": args.radius,
            "physical_weight": args.physical_weight,
            "max_workers": args.workers,
            "timeout_s": args.timeout,
            "cache_dir": args.cache_dir,
            "offline": args.offline,
            "terrain_fallback": args.terrain_fallback,
        })
    except ValueError as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        points = parse_track_file(args.track_file)
    except FileNotFoundError:
        print(f"Error: {TRACK_UNREADABLE}: file not found: {args.track_file}", file=sys.stderr)
        sys.exit(1)
    except (ParseError, OSError, UnicodeDecodeError) as e:
        print(f"Error: {TRACK_UNREADABLE}: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        result = analyze_track(points, options, build_lookup(options))
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(result.to_json(indent=2))
    else:
        print_report(result)

    if not result.technical_available:
        print(TECHNICAL_UNAVAILABLE, file=sys.stderr)


if __name__ == "__main__":
    main()
