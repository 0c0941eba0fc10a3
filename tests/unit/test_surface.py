from conftest import build_track
from mtb_difficulty.models import TerrainSample
from mtb_difficulty.surface import (
    breakdown_from_geometry,
    breakdown_from_samples,
    surface_breakdown,
)


def _samples(pairs):
    return [TerrainSample(index=i, lat=0, lon=0, weight_m=w, roughness=r) for i, (r, w) in enumerate(pairs)]


def _total(b):
    return b.road_pct + b.track_pct + b.single_pct


class TestBreakdownFromSamples:
    def test_classes(self):
        b = breakdown_from_samples(_samples([(0.0, 100), (0.08, 100), (0.45, 100), (0.6, 100)]))
        assert (b.road_pct, b.track_pct, b.single_pct) == (50, 25, 25)
        assert b.source == "terrain"

    def test_weighted_by_distance(self):
        b = breakdown_from_samples(_samples([(0.0, 300), (0.9, 100)]))
        assert (b.road_pct, b.track_pct, b.single_pct) == (75, 0, 25)

    def test_rounding_drift_goes_to_largest(self):
        b = breakdown_from_samples(_samples([(0.0, 1), (0.3, 1), (0.9, 1)]))
        assert _total(b) == 100
        assert (b.road_pct, b.track_pct, b.single_pct) == (34, 33, 33)

    def test_unresolved_ignored(self):
        b = breakdown_from_samples(_samples([(None, 500), (0.5, 100)]))
        assert b.track_pct == 100

    def test_nothing_resolved(self):
        assert breakdown_from_samples(_samples([(None, 100)])) is None
        assert breakdown_from_samples([]) is None


class TestBreakdownFromGeometry:
    def test_straight_smooth_is_road(self):
        b = breakdown_from_geometry(build_track([(0.0, 3_000.0, 0.0)]), has_elevation=True)
        assert b.source == "geometry"
        assert b.road_pct == 100

    def test_twisty_track_has_singletrack(self):
        legs = [(0.0, 20.0, 0.0), (90.0, 20.0, 0.0)] * 40
        b = breakdown_from_geometry(build_track(legs), has_elevation=False)
        assert _total(b) == 100
        assert b.single_pct > 0
        assert b.road_pct < 50

    def test_too_short_defaults_to_track(self):
        b = breakdown_from_geometry(build_track([(0.0, 8.0, 0.0)], step_m=4.0), has_elevation=False)
        assert (b.road_pct, b.track_pct, b.single_pct) == (0, 100, 0)


class TestSurfaceBreakdown:
    def test_prefers_samples(self):
        points = build_track([(0.0, 1_000.0, 0.0)])
        b = surface_breakdown(points, _samples([(0.7, 100), (0.7, 100), (0.7, 100)]), has_elevation=True)
        assert b.source == "terrain"
        assert b.single_pct == 100

    def test_falls_back_to_geometry(self):
        points = build_track([(0.0, 1_000.0, 0.0)])
        assert surface_breakdown(points, _samples([(None, 100)]), has_elevation=True).source == "geometry"
        assert surface_breakdown(points, None, has_elevation=True).source == "geometry"
