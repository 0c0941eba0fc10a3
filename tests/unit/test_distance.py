import math

import pytest

from mtb_difficulty.distance import (
    EARTH_RADIUS_M,
    bearing_between,
    calculate_bearing,
    distance_between,
    haversine_distance,
    heading_change,
    step_distances,
)
from mtb_difficulty.models import TrackPoint


class TestHaversineDistance:
    def test_same_point_is_zero(self):
        assert haversine_distance(45.0, 6.0, 45.0, 6.0) == 0.0

    def test_one_degree_of_latitude(self):
        expected = EARTH_RADIUS_M * math.pi / 180
        assert haversine_distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(expected)

    def test_symmetric(self):
        d1 = haversine_distance(45.1, 6.2, 45.2, 6.35)
        d2 = haversine_distance(45.2, 6.35, 45.1, 6.2)
        assert d1 == pytest.approx(d2)

    def test_antipodal_points_do_not_fail(self):
        assert haversine_distance(0.0, 0.0, 0.0, 180.0) == pytest.approx(math.pi * EARTH_RADIUS_M)

    def test_nan_propagates(self):
        assert math.isnan(haversine_distance(float("nan"), 0.0, 1.0, 1.0))


class TestBearing:
    def test_due_north(self):
        assert calculate_bearing(45.0, 6.0, 46.0, 6.0) == pytest.approx(0.0)

    def test_due_east_at_equator(self):
        assert calculate_bearing(0.0, 0.0, 0.0, 1.0) == pytest.approx(90.0)

    def test_due_west_is_normalized(self):
        assert calculate_bearing(0.0, 1.0, 0.0, 0.0) == pytest.approx(270.0)

    def test_point_form(self):
        a = TrackPoint(lat=45.0, lon=6.0)
        b = TrackPoint(lat=44.0, lon=6.0)
        assert bearing_between(a, b) == pytest.approx(180.0)


class TestHeadingChange:
    def test_simple_change(self):
        assert heading_change(10.0, 100.0) == pytest.approx(90.0)

    def test_wraps_across_north(self):
        assert heading_change(350.0, 10.0) == pytest.approx(20.0)

    def test_reversal_is_180(self):
        assert heading_change(0.0, 180.0) == pytest.approx(180.0)

    def test_never_exceeds_180(self):
        for b1 in range(0, 360, 30):
            for b2 in range(0, 360, 30):
                assert 0.0 <= heading_change(b1, b2) <= 180.0


class TestPointHelpers:
    def test_distance_between_matches_haversine(self):
        a = TrackPoint(lat=45.0, lon=6.0)
        b = TrackPoint(lat=45.001, lon=6.001)
        assert distance_between(a, b) == pytest.approx(haversine_distance(45.0, 6.0, 45.001, 6.001))

    def test_step_distances(self):
        points = [TrackPoint(lat=45.0, lon=6.0), TrackPoint(lat=45.001, lon=6.0), TrackPoint(lat=45.001, lon=6.0)]
        steps = step_distances(points)
        assert len(steps) == 2
        assert steps[0] == pytest.approx(111.19, abs=0.01)
        assert steps[1] == 0.0
