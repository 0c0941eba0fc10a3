"""Blend terrain and geometry signals into the final technical and global scores.

The map-derived terrain score is authoritative. The GPX-only technicality can
only add a capped bonus on top of it, never reduce it.
"""

from dataclasses import dataclass

from mtb_difficulty.percentiles import clamp


@dataclass(frozen=True)
class HybridWeights:
    w_terrain: float = 0.80
    w_gpx: float = 0.20
    bonus_cap: float = 0.15  # max bonus in 0..1 space (+15 points)
    physical_weight: float = 0.55  # global = pw * physical + (1 - pw) * technical

    def __post_init__(self):
        if not 0.0 <= self.physical_weight <= 1.0:
            raise ValueError(f"physical_weight must be within [0, 1], got {self.physical_weight}")
        if self.w_terrain < 0 or self.w_gpx < 0 or self.bonus_cap < 0:
            raise ValueError("Hybrid weights and bonus cap must be non-negative")


@dataclass(frozen=True)
class TechnicalScore:
    tech01: float
    bonus_applied: float
    score: int  # 0..100


def combine_technical(
    terrain_p75: float, gpx_technical_p75: float, weights: HybridWeights = HybridWeights()
) -> TechnicalScore:
    base = weights.w_terrain * terrain_p75
    bonus = min(weights.w_gpx * max(0.0, gpx_technical_p75), weights.bonus_cap)
    tech01 = clamp(base + bonus)
    return TechnicalScore(
        tech01=round(tech01, 3),
        bonus_applied=round(bonus, 3),
        score=int(round(100 * tech01)),
    )


def global_score(physical: int, technical: int | None, weights: HybridWeights = HybridWeights()) -> int | None:
    """Weighted blend of physical and technical scores; None if technical is unavailable."""
    if technical is None:
        return None
    blended = weights.physical_weight * physical + (1 - weights.physical_weight) * technical
    return max(0, min(100, int(round(blended))))
