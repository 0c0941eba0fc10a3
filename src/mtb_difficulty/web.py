"""JSON HTTP service around the analysis pipeline."""

import logging
import os
import threading
from pathlib import Path

from flask import Flask, jsonify, request

from mtb_difficulty import __version_date__, get_git_hash
from mtb_difficulty.analysis import analyze_track, build_lookup
from mtb_difficulty.config import coerce_option, load_options
from mtb_difficulty.errors import ParseError
from mtb_difficulty.parser import MAX_FILE_BYTES, parse_track
from mtb_difficulty.technical import PRESETS
from mtb_difficulty.terrain import TerrainCache

logger = logging.getLogger(__name__)

# Options a client may set per request
REQUEST_OPTIONS = (
    "preset",
    "segment_length_m",
    "sample_every_m",
    "radius_m",
    "physical_weight",
    "terrain_fallback",
    "offline",
)

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = MAX_FILE_BYTES

# Terrain caches live as long as the app so hit/miss stats span requests
_terrain_caches: dict[Path, TerrainCache] = {}
_terrain_caches_lock = threading.Lock()


def _get_terrain_cache(options) -> TerrainCache:
    cache_dir = Path(options.cache_dir).expanduser()
    with _terrain_caches_lock:
        cache = _terrain_caches.get(cache_dir)
        if cache is None or cache.ttl != options.cache_ttl_seconds:
            cache = TerrainCache(cache_dir, ttl_seconds=options.cache_ttl_seconds)
            _terrain_caches[cache_dir] = cache
        return cache


def _error(message: str, kind: str, status: int):
    return jsonify({"ok": False, "error": message, "kind": kind}), status


def _request_overrides(raw) -> dict:
    """Coerce the optional "options" object of a request.

    Raises:
        ValueError: If options is not an object or a value has the wrong type.
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError("options must be an object")
    overrides = {}
    for key in REQUEST_OPTIONS:
        if raw.get(key) is not None:
            overrides[key] = coerce_option(key, raw[key])
    if "preset" in overrides and overrides["preset"] not in PRESETS:
        raise ValueError(f"Unknown technical preset: {overrides['preset']}")
    return overrides


@app.route("/api/health")
def api_health():
    return jsonify({"ok": True, "version_date": __version_date__, "git_hash": get_git_hash()})


@app.route("/api/analyze", methods=["POST"])
def api_analyze():
    """Analyze a track posted as {"points": [...]} or {"gpx": "<xml>"}.

    Returns 200 {"ok": true, "result": {...}} (technical and global scores
    are null when terrain coverage is too low), 400 for unreadable tracks or
    bad options, 500 for anything else.
    """
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return _error("Request body must be a JSON object", "bad_request", 400)

    if body.get("points") is not None:
        source = body["points"]
    elif body.get("gpx") is not None:
        source = body["gpx"]
    else:
        return _error("Provide either 'points' or 'gpx'", "bad_request", 400)

    try:
        options = load_options(_request_overrides(body.get("options")))
    except ValueError as e:
        return _error(str(e), "invalid_options", 400)

    try:
        points = parse_track(source)
    except ParseError as e:
        logger.info("Rejected track: %s", e)
        return _error(f"track unreadable: {e}", e.kind, 400)

    try:
        result = analyze_track(points, options, build_lookup(options, _get_terrain_cache(options)))
    except ValueError as e:
        return _error(str(e), "invalid_options", 400)
    except Exception:
        logger.exception("Analysis failed")
        return _error("Internal error while analyzing the track", "internal", 500)

    if not result.technical_available:
        logger.info("Technical score unavailable: %s", result.technical_reason)
    return jsonify({"ok": True, "result": result.to_dict()})


@app.route("/cache-stats")
def cache_stats():
    """Return terrain cache statistics as JSON."""
    options = load_options()
    return {"terrain_cache": _get_terrain_cache(options).stats()}


@app.route("/cache-clear", methods=["POST"])
def cache_clear():
    """Remove every cached terrain entry."""
    options = load_options()
    cleared = _get_terrain_cache(options).clear()
    return {"status": "ok", "message": f"Terrain cache cleared ({cleared} entries)"}


def main():
    """Run the web server."""
    port = int(os.environ.get("PORT", 5050))
    print("Starting MTB Difficulty API server...")
    print(f"Listening on http://localhost:{port}/api/analyze")
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
