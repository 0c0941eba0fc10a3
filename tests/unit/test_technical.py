import pytest

from conftest import build_track
from mtb_difficulty.models import Segment, TerrainSample
from mtb_difficulty.percentiles import percentile, weighted_percentile
from mtb_difficulty.segments import SegmentRange, split_segments
from mtb_difficulty.technical import (
    PRESETS,
    get_preset,
    score_segment,
    score_segments,
    segment_terrain_roughness,
    sinuosity_metrics,
    slope_technicality,
    summarize_segments,
    turn_density,
)


def _whole(points):
    return SegmentRange(start=0, end=len(points) - 1, length_m=0.0)


def _segment(coefficient, gpx, length_m=200.0):
    return Segment(
        start_index=0,
        end_index=1,
        length_m=length_m,
        sinuosity=1.0,
        sinuosity_norm=0.0,
        turn_density_per_km=0.0,
        turn_norm=0.0,
        slope_technicality=0.0,
        terrain_roughness=None,
        gpx_technicality=gpx,
        technical_coefficient=coefficient,
    )


class TestPercentiles:
    def test_linear_percentile(self):
        assert percentile([0.0, 1.0], 0.9) == pytest.approx(0.9)

    def test_percentile_empty(self):
        assert percentile([], 0.9) == 0.0

    def test_weighted_p75_equal_weights(self):
        assert weighted_percentile([0.9, 0.1, 0.5], [1, 1, 1], 0.75) == 0.9

    def test_weighted_median(self):
        assert weighted_percentile([0.1, 0.5, 0.9], [1, 1, 1], 0.5) == 0.5

    def test_heavy_weight_dominates(self):
        assert weighted_percentile([0.1, 0.9], [100, 1], 0.75) == 0.1

    def test_non_positive_total(self):
        assert weighted_percentile([0.1, 0.2], [0, 0], 0.75) is None
        assert weighted_percentile([], [], 0.75) is None

    def test_order_independent(self):
        values = [0.3, 0.8, 0.1, 0.6]
        weights = [50, 120, 200, 80]
        expected = weighted_percentile(values, weights, 0.75)
        assert weighted_percentile(values[::-1], weights[::-1], 0.75) == expected


class TestPresets:
    def test_default_preset(self):
        preset = get_preset("tech-sensitive")
        assert (preset.coeff_min, preset.coeff_max) == (0.80, 1.80)
        assert preset.w_terrain == 0.22

    def test_classic_preset(self):
        preset = get_preset("classic")
        assert preset.coeff_max == 1.60
        assert preset.w_slope == 0.30

    def test_unknown_preset(self):
        with pytest.raises(ValueError, match="Unknown technical preset"):
            get_preset("downhill-only")

    def test_weights_non_negative(self):
        for preset in PRESETS.values():
            assert min(preset.w_terrain, preset.w_sinuosity, preset.w_slope, preset.w_turn) >= 0


class TestSegmentMetrics:
    def test_straight_line_sinuosity(self):
        points = build_track([(0.0, 200.0, 0.0)])
        path, sinuosity, norm = sinuosity_metrics(points)
        assert path == pytest.approx(200.0, rel=0.01)
        assert sinuosity == pytest.approx(1.0, abs=0.001)
        assert norm == pytest.approx(0.0, abs=0.01)

    def test_right_angle_sinuosity(self):
        points = build_track([(0.0, 100.0, 0.0), (90.0, 100.0, 0.0)])
        _, sinuosity, norm = sinuosity_metrics(points)
        assert sinuosity == pytest.approx(2 ** 0.5, rel=0.01)
        assert norm == 1.0

    def test_constant_grade_slope_technicality(self):
        points = build_track([(0.0, 200.0, -0.12)])
        slope = slope_technicality(points)
        assert slope.used_steps == 10
        assert slope.p10 == 1.0
        assert slope.p16 == 0.0
        assert slope.grade_p90 == pytest.approx(0.12, abs=0.001)
        assert slope.score == pytest.approx(0.65, abs=0.005)

    def test_flat_slope_technicality(self):
        assert slope_technicality(build_track([(0.0, 200.0, 0.0)])).score == 0.0

    def test_no_elevation_slope_technicality(self, no_elevation_track):
        assert slope_technicality(no_elevation_track).used_steps == 0

    def test_straight_turn_density(self):
        points = build_track([(0.0, 200.0, 0.0)])
        turn_per_km, turn_norm = turn_density(points, 200.0)
        assert turn_per_km == pytest.approx(0.0, abs=1.0)
        assert turn_norm == 0.0

    def test_zigzag_turn_density(self):
        points = build_track([(0.0, 20.0, 0.0), (90.0, 20.0, 0.0)] * 5)
        path, _, _ = sinuosity_metrics(points)
        turn_per_km, turn_norm = turn_density(points, path)
        assert turn_per_km > 3_000
        assert turn_norm == 1.0

    def test_short_segment_has_no_turn_density(self):
        points = build_track([(0.0, 10.0, 0.0), (90.0, 10.0, 0.0)], step_m=5.0)
        assert turn_density(points, 20.0) == (0.0, 0.0)


class TestSegmentTerrain:
    def test_weighted_median_inside_range(self):
        samples = [
            TerrainSample(index=0, lat=0, lon=0, weight_m=60, roughness=0.2),
            TerrainSample(index=4, lat=0, lon=0, weight_m=120, roughness=0.6),
            TerrainSample(index=8, lat=0, lon=0, weight_m=120, roughness=0.9),
            TerrainSample(index=20, lat=0, lon=0, weight_m=120, roughness=0.0),
        ]
        seg = SegmentRange(start=0, end=10, length_m=200.0)
        assert segment_terrain_roughness(samples, seg) == 0.6

    def test_unresolved_uses_fallback(self):
        samples = [TerrainSample(index=2, lat=0, lon=0, weight_m=120, roughness=None)]
        seg = SegmentRange(start=0, end=10, length_m=200.0)
        assert segment_terrain_roughness(samples, seg) is None
        assert segment_terrain_roughness(samples, seg, fallback=0.4) == 0.4


class TestScoreSegment:
    def test_coefficient_within_preset_bounds(self, switchback_descent_track):
        for name, preset in PRESETS.items():
            for seg in score_segments(switchback_descent_track, split_segments(switchback_descent_track), preset):
                assert preset.coeff_min <= seg.technical_coefficient <= preset.coeff_max
                assert 0.0 <= seg.gpx_technicality <= 1.0
                assert seg.sinuosity >= 1.0

    def test_flat_straight_is_minimum(self):
        points = build_track([(0.0, 200.0, 0.0)])
        seg = score_segment(points, _whole(points), get_preset("tech-sensitive"))
        assert seg.technical_coefficient == pytest.approx(0.80, abs=0.005)
        assert seg.terrain_roughness is None

    def test_terrain_only_raises_coefficient(self):
        points = build_track([(0.0, 200.0, 0.0)])
        preset = get_preset("tech-sensitive")
        smooth = score_segment(points, _whole(points), preset, terrain_fallback=0.0)
        rough = score_segment(points, _whole(points), preset, terrain_fallback=1.0)
        assert rough.technical_coefficient - smooth.technical_coefficient == pytest.approx(preset.w_terrain, abs=0.002)
        assert rough.gpx_technicality == smooth.gpx_technicality

    def test_steeper_is_harder(self):
        preset = get_preset("tech-sensitive")
        gentle = build_track([(0.0, 200.0, -0.05)])
        steep = build_track([(0.0, 200.0, -0.20)])
        assert (
            score_segment(steep, _whole(steep), preset).technical_coefficient
            > score_segment(gentle, _whole(gentle), preset).technical_coefficient
        )


class TestSummarizeSegments:
    def test_weighted_p75(self):
        preset = get_preset("tech-sensitive")
        segments = [_segment(0.8, 0.0), _segment(1.0, 0.2), _segment(1.3, 0.5), _segment(1.8, 1.0)]
        summary = summarize_segments(segments, preset)
        assert summary.coefficient_p75 == 1.3
        assert summary.gpx_technical_p75 == 0.5
        assert summary.coefficient_score == 50

    def test_no_segments(self):
        summary = summarize_segments([], get_preset("classic"))
        assert summary.coefficient_p75 == 0.80
        assert summary.coefficient_score == 0
        assert summary.gpx_technical_p75 == 0.0
