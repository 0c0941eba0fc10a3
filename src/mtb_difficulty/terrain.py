"""Terrain roughness from OpenStreetMap way tags, with a local disk cache.

The track is sampled every ~120 m. For each sample the Overpass API is asked
for ways within a small radius, the first way carrying a relevant tag is
turned into a 0..1 roughness score, and the result is written to
~/.cache/mtb-difficulty/terrain/<lat>_<lon>_r<radius>.json so each location
is only ever queried once.
"""

import json
import logging
import os
import tempfile
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path

import requests

from mtb_difficulty.distance import distance_between
from mtb_difficulty.errors import CoverageTooLow, ExternalLookupError
from mtb_difficulty.models import TerrainCacheEntry, TerrainSample, TerrainSummary, TrackPoint
from mtb_difficulty.percentiles import clamp, weighted_percentile

logger = logging.getLogger(__name__)

OVERPASS_URL = "https://overpass-api.de/api/interpreter"
USER_AGENT = "mtb-difficulty/1.0 (terrain roughness lookup)"
CACHE_DIR = Path.home() / ".cache" / "mtb-difficulty" / "terrain"

DEFAULT_SAMPLE_EVERY_M = 120.0
DEFAULT_RADIUS_M = 20
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_MAX_WORKERS = 2

# Coverage gate
MIN_COVERAGE = 0.30
MIN_RESOLVED_SAMPLES = 3
TERRAIN_PERCENTILE = 0.75

# Roughness used in place of map data when the caller opts in
FALLBACK_ROUGHNESS = 0.40

RELEVANT_TAGS = ("highway", "surface", "smoothness", "tracktype", "mtb:scale", "sac_scale")

ROAD_HIGHWAYS = {
    "motorway", "trunk", "primary", "secondary", "tertiary",
    "unclassified", "residential", "service", "living_street",
}
PAVED_SURFACES = {"asphalt", "paved"}
ROCKY_SURFACES = {"rock", "stone", "boulders", "scree", "ground_rock"}

SMOOTHNESS_ROUGHNESS = {
    "excellent": 0.20,
    "good": 0.30,
    "intermediate": 0.50,
    "bad": 0.70,
    "very_bad": 0.90,
    "horrible": 0.90,
    "very_horrible": 0.90,
    "impassable": 0.90,
}
TRACKTYPE_ROUGHNESS = {
    "grade1": 0.20,
    "grade2": 0.35,
    "grade3": 0.50,
    "grade4": 0.60,
    "grade5": 0.70,
}
UNGRADED_TRACK_ROUGHNESS = 0.45
PATH_ROUGHNESS = 0.60
ROCKY_PATH_BONUS = 0.20
SAC_SCALE_ROUGHNESS = {
    "demanding_mountain_hiking": 0.80,
    "alpine_hiking": 0.80,
    "difficult_alpine_hiking": 0.90,
}
SURFACE_ROUGHNESS = {
    "gravel": 0.25,
    "fine_gravel": 0.25,
    "compacted": 0.25,
    "ground": 0.45,
    "dirt": 0.45,
    "earth": 0.45,
    "grass": 0.45,
    "rock": 0.85,
    "stone": 0.85,
    "boulders": 0.85,
    "scree": 0.85,
}


def coord_key(lat: float, lon: float, radius_m: int) -> str:
    """Cache key: coordinates rounded to 5 decimals (~1 m) plus query radius."""
    return f"{lat:.5f}_{lon:.5f}_r{radius_m}"


def sample_track(points: list[TrackPoint], every_m: float = DEFAULT_SAMPLE_EVERY_M) -> list[TerrainSample]:
    """Pick terrain sample points roughly every_m meters apart.

    The first point is always sampled (weighted as half a step), then a point
    each time the accumulated distance reaches every_m (weighted by that
    distance), and finally the last point if it was not already sampled.
    """
    if not points:
        return []

    samples = [TerrainSample(index=0, lat=points[0].lat, lon=points[0].lon, weight_m=every_m / 2)]
    acc = 0.0
    for i in range(1, len(points)):
        d = distance_between(points[i - 1], points[i])
        if not d > 0:
            continue
        acc += d
        if acc >= every_m:
            samples.append(TerrainSample(index=i, lat=points[i].lat, lon=points[i].lon, weight_m=acc))
            acc = 0.0

    last_idx = len(points) - 1
    if samples[-1].index != last_idx:
        last = points[last_idx]
        samples.append(TerrainSample(index=last_idx, lat=last.lat, lon=last.lon, weight_m=max(1.0, acc)))
    return samples


def pick_way_tags(payload: dict) -> dict | None:
    """Return the tags of the first way element carrying a relevant tag."""
    for element in payload.get("elements", []):
        if element.get("type") != "way":
            continue
        tags = element.get("tags") or {}
        if any(tags.get(k) for k in RELEVANT_TAGS):
            return tags
    return None


def roughness_from_tags(tags: dict | None) -> float | None:
    """Convert OSM way tags to a 0..1 roughness score, or None if nothing matches.

    Tags are checked in priority order: mtb:scale, smoothness, road classes,
    track grades, paths, sac_scale, then bare surface values.
    """
    if not tags:
        return None

    mtb_scale = tags.get("mtb:scale")
    if mtb_scale not in (None, ""):
        try:
            return clamp(float(str(mtb_scale).split(";")[0]) / 5)
        except ValueError:
            pass

    smoothness = str(tags.get("smoothness", "")).lower()
    if smoothness in SMOOTHNESS_ROUGHNESS:
        return SMOOTHNESS_ROUGHNESS[smoothness]

    highway = str(tags.get("highway", "")).lower()
    surface = str(tags.get("surface", "")).lower()
    tracktype = str(tags.get("tracktype", "")).lower()
    sac_scale = str(tags.get("sac_scale", "")).lower()

    if highway == "cycleway" or highway in ROAD_HIGHWAYS or surface in PAVED_SURFACES:
        return 0.0

    if highway == "track":
        return TRACKTYPE_ROUGHNESS.get(tracktype, UNGRADED_TRACK_ROUGHNESS)

    if highway in ("path", "footway", "bridleway"):
        base = PATH_ROUGHNESS
        if surface in ROCKY_SURFACES:
            base += ROCKY_PATH_BONUS
        return clamp(base)

    if sac_scale in SAC_SCALE_ROUGHNESS:
        return SAC_SCALE_ROUGHNESS[sac_scale]

    return SURFACE_ROUGHNESS.get(surface)


class TerrainCache:
    """One JSON file per coordinate key.

    Entries never expire unless ttl_seconds is set. Writes go through a temp
    file and os.replace, so concurrent writers of the same key leave a
    complete file (last writer wins).
    """

    def __init__(self, cache_dir: Path = CACHE_DIR, ttl_seconds: float | None = None):
        self.cache_dir = Path(cache_dir)
        self.ttl = ttl_seconds
        self._stats = {"hits": 0, "misses": 0}
        self._lock = threading.Lock()

    def path_for(self, key: str) -> Path:
        return self.cache_dir / f"{key}.json"

    def get(self, key: str) -> TerrainCacheEntry | None:
        """Load a cached entry, or None if absent, unreadable or expired."""
        path = self.path_for(key)
        entry = None
        if path.exists():
            try:
                with path.open() as f:
                    entry = TerrainCacheEntry.from_dict(json.load(f))
            except (json.JSONDecodeError, KeyError, OSError) as e:
                logger.warning("Ignoring unreadable terrain cache file %s: %s", path, e)
                entry = None
            if entry is not None and self.ttl is not None and time.time() - entry.fetched_at >= self.ttl:
                entry = None

        with self._lock:
            if entry is None:
                self._stats["misses"] += 1
            else:
                self._stats["hits"] += 1
        return entry

    def set(self, entry: TerrainCacheEntry) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.cache_dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(entry.to_dict(), f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path_for(entry.coord_key))
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def invalidate(self, key: str) -> bool:
        """Remove one entry so the next lookup queries again."""
        path = self.path_for(key)
        if path.exists():
            path.unlink()
            return True
        return False

    def clear(self) -> int:
        """Remove all cached entries. Returns number of entries cleared."""
        if not self.cache_dir.exists():
            return 0
        count = 0
        for path in self.cache_dir.glob("*.json"):
            path.unlink()
            count += 1
        with self._lock:
            self._stats = {"hits": 0, "misses": 0}
        return count

    def stats(self) -> dict:
        """Return cache statistics."""
        size = len(list(self.cache_dir.glob("*.json"))) if self.cache_dir.exists() else 0
        with self._lock:
            hits, misses = self._stats["hits"], self._stats["misses"]
        total = hits + misses
        hit_rate = (hits / total * 100) if total > 0 else 0
        return {
            "hit_rate": f"{hit_rate:.1f}%",
            "hits": hits,
            "misses": misses,
            "size": size,
        }


class OverpassClient:
    """Minimal Overpass API client for way tags around a coordinate."""

    def __init__(
        self,
        url: str = OVERPASS_URL,
        timeout: float = DEFAULT_TIMEOUT_S,
        user_agent: str = USER_AGENT,
        session: requests.Session | None = None,
    ):
        self.url = url
        self.timeout = timeout
        self.user_agent = user_agent
        self.session = session or requests.Session()

    @staticmethod
    def build_query(lat: float, lon: float, radius_m: int) -> str:
        return (
            "[out:json][timeout:25];\n"
            f"(way(around:{radius_m},{lat},{lon})[\"highway\"];);\n"
            "out tags 10;"
        )

    def fetch_way_tags(self, lat: float, lon: float, radius_m: int) -> dict | None:
        """Query ways near a point and return the best tag set (or None).

        Raises:
            ExternalLookupError: If the request fails or the response is not JSON.
        """
        query = self.build_query(lat, lon, radius_m)
        try:
            response = self.session.post(
                self.url,
                data={"data": query},
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise ExternalLookupError(f"Overpass request failed: {e}") from e
        try:
            payload = response.json()
        except requests.JSONDecodeError as e:
            raise ExternalLookupError(f"Overpass returned invalid JSON: {e}") from e
        return pick_way_tags(payload)


class TerrainLookup:
    """Resolve terrain roughness for sample points through the cache."""

    def __init__(
        self,
        cache: TerrainCache,
        client: OverpassClient | None = None,
        radius_m: int = DEFAULT_RADIUS_M,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        self.cache = cache
        self.client = client or OverpassClient()
        self.radius_m = radius_m
        self.max_workers = max(1, max_workers)

    def lookup(self, lat: float, lon: float, cancel: threading.Event | None = None) -> tuple[float | None, bool]:
        """Return (roughness, was_cached) for one coordinate.

        A failed query is stored as a null entry with an error marker, so it
        is not retried until that entry is removed. A cancelled lookup
        returns None without touching the cache.
        """
        key = coord_key(lat, lon, self.radius_m)
        entry = self.cache.get(key)
        if entry is not None:
            logger.debug("Terrain cache hit %s -> %s", key, entry.roughness_score)
            return entry.roughness_score, True

        if cancel is not None and cancel.is_set():
            return None, False

        try:
            tags = self.client.fetch_way_tags(lat, lon, self.radius_m)
        except ExternalLookupError as e:
            logger.warning("Terrain lookup failed for %s: %s", key, e)
            self.cache.set(TerrainCacheEntry(
                coord_key=key, roughness_score=None, raw_tags=None, error=str(e), fetched_at=time.time(),
            ))
            return None, False

        roughness = roughness_from_tags(tags)
        self.cache.set(TerrainCacheEntry(
            coord_key=key, roughness_score=roughness, raw_tags=tags, fetched_at=time.time(),
        ))
        return roughness, False

    def resolve(
        self, samples: list[TerrainSample], cancel: threading.Event | None = None
    ) -> list[TerrainSample]:
        """Fill in roughness for every sample.

        Samples sharing a cache key are looked up once. Unique keys are
        resolved on a bounded thread pool; results do not depend on order.
        """
        unique: dict[str, tuple[float, float]] = {}
        for s in samples:
            unique.setdefault(coord_key(s.lat, s.lon, self.radius_m), (s.lat, s.lon))
        keys = sorted(unique)

        def _resolve(key: str) -> tuple[float | None, bool]:
            lat, lon = unique[key]
            return self.lookup(lat, lon, cancel)

        if self.max_workers == 1 or len(keys) <= 1:
            results = [_resolve(k) for k in keys]
        else:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results = list(pool.map(_resolve, keys))

        by_key = dict(zip(keys, results))
        resolved = []
        for s in samples:
            roughness, cached = by_key[coord_key(s.lat, s.lon, self.radius_m)]
            resolved.append(replace(s, roughness=roughness, cached=cached))

        hits = sum(1 for _, cached in results if cached)
        logger.info("Resolved %d terrain samples (%d unique, %d cached)", len(samples), len(keys), hits)
        return resolved


def summarize_terrain(
    samples: list[TerrainSample],
    min_coverage: float = MIN_COVERAGE,
    min_resolved: int = MIN_RESOLVED_SAMPLES,
) -> TerrainSummary:
    """Aggregate resolved samples into a track-level terrain score.

    Raises:
        CoverageTooLow: If fewer than min_resolved samples resolved, or the
            resolved share is below min_coverage.
    """
    total = len(samples)
    resolved = [s for s in samples if s.roughness is not None]
    share = len(resolved) / total if total else 0.0
    coverage = round(share, 3)

    if share < min_coverage or len(resolved) < min_resolved:
        raise CoverageTooLow(coverage, len(resolved), total)

    score = weighted_percentile(
        [s.roughness for s in resolved],
        [max(1.0, s.weight_m) for s in resolved],
        TERRAIN_PERCENTILE,
    )
    return TerrainSummary(
        coverage=coverage,
        resolved=len(resolved),
        total=total,
        score_p75=None if score is None else round(clamp(score), 3),
        samples=list(samples),
    )
