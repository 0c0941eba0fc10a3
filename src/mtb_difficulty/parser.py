"""Turn GPX documents or point arrays into validated TrackPoint sequences."""

import json
import logging
import math
import os
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Any, Iterable

import gpxpy
import gpxpy.gpx

from mtb_difficulty.errors import (
    InsufficientPointsError,
    InvalidInput,
    MalformedTrackError,
    ParseError,
)
from mtb_difficulty.models import TrackPoint

logger = logging.getLogger(__name__)

MAX_FILE_BYTES = 25 * 1024 * 1024
MIN_POINTS = 2


def _to_float(value: Any) -> float | None:
    """Coerce to float, returning None for missing or non-numeric values."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _normalize_time(value: Any) -> str | None:
    """Return an ISO 8601 string, or None when the value is not a usable time."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text).isoformat()
    except ValueError:
        return None


def make_track_point(lat: Any, lon: Any, elevation: Any = None, timestamp: Any = None) -> TrackPoint:
    """Build a TrackPoint from loosely-typed values.

    Raises:
        InvalidInput: If latitude or longitude is missing, non-finite or out of range.
    """
    lat_f = _to_float(lat)
    lon_f = _to_float(lon)
    if lat_f is None or lon_f is None:
        raise InvalidInput(f"missing coordinate (lat={lat!r}, lon={lon!r})")
    if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
        raise InvalidInput(f"non-finite coordinate ({lat_f}, {lon_f})")
    if not (-90.0 <= lat_f <= 90.0 and -180.0 <= lon_f <= 180.0):
        raise InvalidInput(f"coordinate out of range ({lat_f}, {lon_f})")

    ele = _to_float(elevation)
    if ele is not None and not math.isfinite(ele):
        ele = None

    return TrackPoint(lat=lat_f, lon=lon_f, elevation=ele, timestamp=_normalize_time(timestamp))


def dedupe_consecutive(points: list[TrackPoint]) -> list[TrackPoint]:
    """Drop points whose (lat, lon) exactly repeats the previous kept point."""
    if len(points) < 2:
        return list(points)
    out = [points[0]]
    for pt in points[1:]:
        prev = out[-1]
        if pt.lat == prev.lat and pt.lon == prev.lon:
            continue
        out.append(pt)
    return out


def _finalize(raw: Iterable[tuple[Any, Any, Any, Any]], source: str) -> list[TrackPoint]:
    """Validate raw (lat, lon, ele, time) tuples, dedupe and enforce the minimum size."""
    points: list[TrackPoint] = []
    dropped = 0
    for lat, lon, ele, when in raw:
        try:
            points.append(make_track_point(lat, lon, ele, when))
        except InvalidInput as e:
            dropped += 1
            logger.debug("Dropping %s point: %s", source, e)

    points = dedupe_consecutive(points)
    if dropped:
        logger.info("Dropped %d invalid %s point(s)", dropped, source)
    if len(points) < MIN_POINTS:
        raise InsufficientPointsError(len(points))
    return points


def _salvage_gpx_points(gpx_text: str) -> list[tuple[Any, Any, Any, Any]]:
    """Extract point tuples element by element.

    gpxpy rejects a whole document when a single point has a bad field; this
    keeps the readable points so they can be validated individually.
    """
    root = ET.fromstring(gpx_text)
    raw = []
    for tag in ("trkpt", "rtept"):
        for node in root.iterfind(f".//{{*}}{tag}"):
            ele_node = node.find("{*}ele")
            time_node = node.find("{*}time")
            raw.append((
                node.get("lat"),
                node.get("lon"),
                ele_node.text if ele_node is not None else None,
                time_node.text if time_node is not None else None,
            ))
        if raw:
            break
    return raw


def parse_gpx_text(gpx_text: str) -> list[TrackPoint]:
    """Parse GPX XML text into TrackPoints.

    Track points are used when present; route points are the fallback.

    Raises:
        MalformedTrackError: If the text is empty or not well-formed XML.
        InsufficientPointsError: If fewer than 2 valid points remain.
    """
    if not gpx_text or not gpx_text.strip():
        raise MalformedTrackError("GPX text is empty")

    try:
        gpx = gpxpy.parse(gpx_text)
    except gpxpy.gpx.GPXXMLSyntaxException as e:
        raise MalformedTrackError(f"GPX is not well-formed XML: {e}") from e
    except (gpxpy.gpx.GPXException, ValueError) as e:
        logger.warning("gpxpy rejected document (%s), salvaging readable points", e)
        try:
            raw = _salvage_gpx_points(gpx_text)
        except ET.ParseError as xml_error:
            raise MalformedTrackError(f"GPX could not be read: {xml_error}") from xml_error
        return _finalize(raw, "gpx")

    raw = [
        (pt.latitude, pt.longitude, pt.elevation, pt.time)
        for track in gpx.tracks
        for segment in track.segments
        for pt in segment.points
    ]
    if not raw:
        raw = [
            (pt.latitude, pt.longitude, pt.elevation, pt.time)
            for route in gpx.routes
            for pt in route.points
        ]
    return _finalize(raw, "gpx")


def parse_points(items: Any) -> list[TrackPoint]:
    """Parse a pre-parsed array of {lat, lon, ele?, time?} mappings.

    ``elevation``/``timestamp`` are accepted as aliases of ``ele``/``time``.

    Raises:
        MalformedTrackError: If items is not a list of mappings.
        InsufficientPointsError: If fewer than 2 valid points remain.
    """
    if not isinstance(items, list):
        raise MalformedTrackError(f"Expected a list of points, got {type(items).__name__}")

    raw = []
    for item in items:
        if not isinstance(item, dict):
            raise MalformedTrackError(f"Expected point objects, got {type(item).__name__}")
        raw.append((
            item.get("lat"),
            item.get("lon"),
            item.get("ele", item.get("elevation")),
            item.get("time", item.get("timestamp")),
        ))
    return _finalize(raw, "array")


def parse_track(source: Any) -> list[TrackPoint]:
    """Parse GPX text, JSON point-array text, raw bytes or an already-decoded point list."""
    if isinstance(source, bytes):
        try:
            source = source.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise MalformedTrackError(f"Track data is not UTF-8: {e}") from e
    if isinstance(source, str):
        stripped = source.lstrip()
        if stripped.startswith("["):
            try:
                return parse_points(json.loads(stripped))
            except json.JSONDecodeError as e:
                raise MalformedTrackError(f"Invalid JSON point array: {e}") from e
        return parse_gpx_text(source)
    if isinstance(source, list):
        return parse_points(source)
    raise MalformedTrackError(f"Unsupported track input: {type(source).__name__}")


def parse_gpx(filepath: str) -> list[TrackPoint]:
    """Parse a GPX file and return a list of TrackPoints."""
    with open(filepath, "r", encoding="utf-8-sig") as f:
        return parse_gpx_text(f.read())


def parse_track_file(filepath: str) -> list[TrackPoint]:
    """Parse a .gpx or .json track file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ParseError: If the file is too large or its content is unusable.
    """
    size = os.path.getsize(filepath)
    if size > MAX_FILE_BYTES:
        raise ParseError(f"Track file too large ({size // (1024 * 1024)} MB > {MAX_FILE_BYTES // (1024 * 1024)} MB)")

    if filepath.lower().endswith(".json"):
        with open(filepath, "r", encoding="utf-8-sig") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise MalformedTrackError(f"Invalid JSON point array: {e}") from e
        return parse_points(data)
    return parse_gpx(filepath)
