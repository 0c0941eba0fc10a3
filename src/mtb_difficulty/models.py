import json
from dataclasses import dataclass, field


@dataclass(frozen=True)
class TrackPoint:
    lat: float
    lon: float
    elevation: float | None = None  # meters
    timestamp: str | None = None  # ISO 8601

    def to_dict(self) -> dict:
        return {"lat": self.lat, "lon": self.lon, "ele": self.elevation, "time": self.timestamp}


@dataclass(frozen=True)
class SlopeFraction:
    over10pct: float = 0.0  # share of distance climbing steeper than 10%
    over15pct: float = 0.0  # share of distance climbing steeper than 15%

    def to_dict(self) -> dict:
        return {"over10pct": self.over10pct, "over15pct": self.over15pct}


@dataclass(frozen=True)
class TrackStatistics:
    distance_km: float
    elevation_gain_m: int
    elevation_loss_m: int
    has_valid_elevation: bool
    slope_fraction: SlopeFraction

    def to_dict(self) -> dict:
        return {
            "distanceKm": self.distance_km,
            "elevationGainM": self.elevation_gain_m,
            "elevationLossM": self.elevation_loss_m,
            "hasValidElevation": self.has_valid_elevation,
            "slopeFraction": self.slope_fraction.to_dict(),
        }


@dataclass(frozen=True)
class Segment:
    start_index: int
    end_index: int
    length_m: float
    sinuosity: float  # path length / straight-line length, >= 1
    sinuosity_norm: float  # 0..1
    turn_density_per_km: float  # degrees of heading change per km
    turn_norm: float  # 0..1
    slope_technicality: float  # 0..1
    terrain_roughness: float | None  # 0..1, None when no terrain data
    gpx_technicality: float  # 0..1, geometry-only technicality
    technical_coefficient: float  # within the preset's [coeff_min, coeff_max]

    def to_dict(self) -> dict:
        return {
            "startIndex": self.start_index,
            "endIndex": self.end_index,
            "lengthM": self.length_m,
            "sinuosity": self.sinuosity,
            "sinuosityNorm": self.sinuosity_norm,
            "turnDensityPerKm": self.turn_density_per_km,
            "turnNorm": self.turn_norm,
            "slopeTechnicality": self.slope_technicality,
            "terrainRoughness": self.terrain_roughness,
            "gpxTechnicality": self.gpx_technicality,
            "technicalCoefficient": self.technical_coefficient,
        }


@dataclass(frozen=True)
class TerrainSample:
    index: int  # index of the sampled point in the track
    lat: float
    lon: float
    weight_m: float  # meters of track this sample represents
    roughness: float | None = None
    cached: bool = False

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "lat": round(self.lat, 6),
            "lon": round(self.lon, 6),
            "weightM": round(self.weight_m),
            "roughness": None if self.roughness is None else round(self.roughness, 3),
            "cached": self.cached,
        }


@dataclass(frozen=True)
class TerrainCacheEntry:
    coord_key: str
    roughness_score: float | None
    raw_tags: dict | None
    error: str | None = None
    fetched_at: float = 0.0  # unix seconds

    def to_dict(self) -> dict:
        return {
            "coordKey": self.coord_key,
            "roughnessScore": self.roughness_score,
            "rawTags": self.raw_tags,
            "error": self.error,
            "fetchedAt": self.fetched_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "TerrainCacheEntry":
        return cls(
            coord_key=data["coordKey"],
            roughness_score=data.get("roughnessScore"),
            raw_tags=data.get("rawTags"),
            error=data.get("error"),
            fetched_at=data.get("fetchedAt", 0.0),
        )


@dataclass(frozen=True)
class TerrainSummary:
    coverage: float  # resolved / total
    resolved: int
    total: int
    score_p75: float | None
    samples: list[TerrainSample] = field(default_factory=list)


@dataclass(frozen=True)
class DisciplineHint:
    label: str
    confidence: float
    scores: dict[str, float] = field(default_factory=dict)
    metrics: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "label": self.label,
            "confidence": self.confidence,
            "scores": dict(self.scores),
            "metrics": dict(self.metrics),
        }


@dataclass(frozen=True)
class SurfaceBreakdown:
    road_pct: int
    track_pct: int
    single_pct: int
    source: str  # "terrain" or "geometry"

    def to_dict(self) -> dict:
        return {
            "roadPct": self.road_pct,
            "trackPct": self.track_pct,
            "singlePct": self.single_pct,
            "source": self.source,
        }


@dataclass(frozen=True)
class AnalysisResult:
    statistics: TrackStatistics
    physical_score: int
    effort: float
    technical_score: int | None
    global_score: int | None
    technical_status: str  # "ok", "coverage_too_low" or "fallback"
    technical_reason: str | None
    terrain_coverage: float | None
    terrain_score_p75: float | None
    gpx_technical_p75: float
    technical_coefficient_p75: float
    coefficient_score: int
    preset: str
    discipline_hint: DisciplineHint
    surface_breakdown: SurfaceBreakdown
    segments: list[Segment] = field(default_factory=list)
    terrain_samples: list[TerrainSample] = field(default_factory=list)

    @property
    def distance_km(self) -> float:
        return self.statistics.distance_km

    @property
    def elevation_gain_m(self) -> int:
        return self.statistics.elevation_gain_m

    @property
    def elevation_loss_m(self) -> int:
        return self.statistics.elevation_loss_m

    @property
    def has_elevation(self) -> bool:
        return self.statistics.has_valid_elevation

    @property
    def technical_available(self) -> bool:
        return self.technical_score is not None

    def to_dict(self) -> dict:
        return {
            "distanceKm": self.statistics.distance_km,
            "elevationGainM": self.statistics.elevation_gain_m,
            "elevationLossM": self.statistics.elevation_loss_m,
            "hasElevation": self.statistics.has_valid_elevation,
            "slopeFraction": self.statistics.slope_fraction.to_dict(),
            "physicalScore": self.physical_score,
            "effort": self.effort,
            "technicalScore": self.technical_score,
            "globalScore": self.global_score,
            "technicalStatus": self.technical_status,
            "technicalReason": self.technical_reason,
            "terrainCoverage": self.terrain_coverage,
            "terrainScoreP75": self.terrain_score_p75,
            "gpxTechnicalP75": self.gpx_technical_p75,
            "technicalCoefficientP75": self.technical_coefficient_p75,
            "coefficientScore": self.coefficient_score,
            "preset": self.preset,
            "disciplineHint": self.discipline_hint.to_dict(),
            "surfaceBreakdown": self.surface_breakdown.to_dict(),
            "segments": [s.to_dict() for s in self.segments],
            "terrainSamples": [s.to_dict() for s in self.terrain_samples],
        }

    def to_json(self, indent: int | None = None) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, indent=indent)
