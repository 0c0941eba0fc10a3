import os
import threading

import pytest
from geopy.distance import geodesic

from mtb_difficulty.errors import ExternalLookupError
from mtb_difficulty.models import TrackPoint
from mtb_difficulty.terrain import TerrainCache, TerrainLookup

DATA_DIR = os.path.join(os.path.dirname(__file__), "functional", "data")
SAMPLE_GPX_PATH = os.path.join(DATA_DIR, "sample_ride.gpx")
MALFORMED_GPX_PATH = os.path.join(DATA_DIR, "malformed.gpx")
SINGLE_POINT_GPX_PATH = os.path.join(DATA_DIR, "single_point.gpx")
ROUTE_ONLY_GPX_PATH = os.path.join(DATA_DIR, "route_only.gpx")


def build_track(legs, step_m=20.0, start=(45.0, 6.0), start_ele=500.0):
    """Synthesize a track from (bearing_deg, length_m, grade) legs.

    Points are placed every step_m meters along each leg with geodesic
    destinations; elevation changes by grade * step. start_ele=None gives a
    track without elevation.
    """
    lat, lon = start
    ele = start_ele
    points = [TrackPoint(lat=lat, lon=lon, elevation=ele)]
    for bearing, length, grade in legs:
        travelled = 0.0
        while travelled < length - 1e-6:
            step = min(step_m, length - travelled)
            dest = geodesic(meters=step).destination((lat, lon), bearing)
            lat, lon = dest.latitude, dest.longitude
            if ele is not None:
                ele = round(ele + grade * step, 3)
            travelled += step
            points.append(TrackPoint(lat=lat, lon=lon, elevation=ele))
    return points


class FakeOverpassClient:
    """Stands in for OverpassClient; records every query."""

    def __init__(self, tags=None, fail=False):
        self.tags = tags
        self.fail = fail
        self.calls = []
        self._lock = threading.Lock()

    def fetch_way_tags(self, lat, lon, radius_m):
        with self._lock:
            self.calls.append((lat, lon, radius_m))
        if self.fail:
            raise ExternalLookupError("Overpass request failed: connection refused")
        if callable(self.tags):
            return self.tags(lat, lon)
        return self.tags


@pytest.fixture
def straight_flat_track():
    """10 km due north, flat at 100 m."""
    return build_track([(0.0, 10_000.0, 0.0)], step_m=25.0, start_ele=100.0)


@pytest.fixture
def out_and_back_track():
    """1.1 km north then straight back south."""
    return build_track([(0.0, 1_100.0, 0.0), (180.0, 1_100.0, 0.0)], start_ele=300.0)


@pytest.fixture
def switchback_descent_track():
    """500 m of 50 m switchback legs descending at 20% (100 m drop)."""
    legs = [(45.0, 50.0, -0.20), (315.0, 50.0, -0.20)] * 5
    return build_track(legs, start_ele=1_200.0)


@pytest.fixture
def rolling_climb_track():
    """2 km of alternating 100 m climbs at 10% and 100 m descents at 4%."""
    legs = [(0.0, 100.0, 0.10), (0.0, 100.0, -0.04)] * 10
    return build_track(legs, start_ele=400.0)


@pytest.fixture
def no_elevation_track():
    return build_track([(45.0, 1_000.0, 0.0)], start_ele=None)


@pytest.fixture
def fake_client():
    return FakeOverpassClient(tags={"highway": "cycleway"})


@pytest.fixture
def terrain_cache(tmp_path):
    return TerrainCache(tmp_path / "terrain")


@pytest.fixture
def make_lookup(terrain_cache):
    """Factory for a TerrainLookup backed by a temp cache and a fake client."""
    def _make(client, max_workers=1, cache=None):
        return TerrainLookup(cache or terrain_cache, client, radius_m=20, max_workers=max_workers)
    return _make


@pytest.fixture
def no_config(tmp_path, monkeypatch):
    """Ensure no config files or environment overrides are picked up."""
    from mtb_difficulty import config
    monkeypatch.setattr(config, "CONFIG_PATH", tmp_path / "nonexistent" / "global.json")
    monkeypatch.setattr(config, "LOCAL_CONFIG_PATH", tmp_path / "nonexistent" / "local.json")
    monkeypatch.delenv(config.ENV_CACHE_DIR, raising=False)
    monkeypatch.delenv(config.ENV_OVERPASS_URL, raising=False)
