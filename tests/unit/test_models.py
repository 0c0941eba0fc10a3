import json

import pytest

from mtb_difficulty.models import (
    AnalysisResult,
    DisciplineHint,
    Segment,
    SlopeFraction,
    SurfaceBreakdown,
    TerrainCacheEntry,
    TerrainSample,
    TrackPoint,
    TrackStatistics,
)


@pytest.fixture
def result():
    stats = TrackStatistics(
        distance_km=12.34,
        elevation_gain_m=456,
        elevation_loss_m=450,
        has_valid_elevation=True,
        slope_fraction=SlopeFraction(over10pct=0.12, over15pct=0.03),
    )
    segment = Segment(
        start_index=0, end_index=10, length_m=201.3, sinuosity=1.05, sinuosity_norm=0.167,
        turn_density_per_km=250.0, turn_norm=0.26, slope_technicality=0.4, terrain_roughness=0.45,
        gpx_technicality=0.3, technical_coefficient=1.2,
    )
    return AnalysisResult(
        statistics=stats,
        physical_score=42,
        effort=3.97,
        technical_score=None,
        global_score=None,
        technical_status="coverage_too_low",
        technical_reason="Terrain coverage too low: 1/10 samples resolved (10%)",
        terrain_coverage=0.1,
        terrain_score_p75=None,
        gpx_technical_p75=0.3,
        technical_coefficient_p75=1.2,
        coefficient_score=40,
        preset="tech-sensitive",
        discipline_hint=DisciplineHint(label="Other/Trail", confidence=0.25),
        surface_breakdown=SurfaceBreakdown(road_pct=10, track_pct=60, single_pct=30, source="geometry"),
        segments=[segment],
        terrain_samples=[TerrainSample(index=0, lat=45.1234567, lon=6.7654321, weight_m=60.0)],
    )


class TestTrackPoint:
    def test_construction(self):
        pt = TrackPoint(lat=45.0, lon=6.0)
        assert pt.elevation is None
        assert pt.timestamp is None

    def test_immutable(self):
        pt = TrackPoint(lat=45.0, lon=6.0)
        with pytest.raises(AttributeError):
            pt.lat = 46.0


class TestAnalysisResult:
    def test_properties(self, result):
        assert result.distance_km == 12.34
        assert result.elevation_gain_m == 456
        assert result.elevation_loss_m == 450
        assert result.has_elevation is True
        assert result.technical_available is False

    def test_to_dict_keys(self, result):
        data = result.to_dict()
        assert data["distanceKm"] == 12.34
        assert data["technicalScore"] is None
        assert data["globalScore"] is None
        assert data["technicalStatus"] == "coverage_too_low"
        assert data["slopeFraction"] == {"over10pct": 0.12, "over15pct": 0.03}
        assert data["surfaceBreakdown"]["singlePct"] == 30
        assert data["disciplineHint"]["label"] == "Other/Trail"
        assert data["segments"][0]["technicalCoefficient"] == 1.2
        assert data["terrainSamples"][0]["lat"] == 45.123457

    def test_to_json_is_deterministic(self, result):
        text = result.to_json()
        assert text == result.to_json()
        assert json.loads(text)["physicalScore"] == 42
        keys = list(json.loads(text).keys())
        assert keys == sorted(keys)


class TestTerrainCacheEntry:
    def test_dict_round_trip(self):
        entry = TerrainCacheEntry(coord_key="k", roughness_score=None, raw_tags=None, error="timeout", fetched_at=12.5)
        assert TerrainCacheEntry.from_dict(entry.to_dict()) == entry

    def test_from_dict_defaults(self):
        entry = TerrainCacheEntry.from_dict({"coordKey": "k", "roughnessScore": 0.2})
        assert entry.raw_tags is None
        assert entry.error is None
        assert entry.fetched_at == 0.0
