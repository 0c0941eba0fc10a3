"""Formatting utilities for display."""

from mtb_difficulty.models import DisciplineHint, SurfaceBreakdown


def format_score(score: int | None) -> str:
    """Format a 0-100 score as 'N/100', or 'n/a' when unavailable."""
    if score is None:
        return "n/a"
    return f"{score}/100"


def format_optional(value: float | None, decimals: int = 2, unit: str = "") -> str:
    """Format a number with fixed decimals, or 'n/a' for None."""
    if value is None:
        return "n/a"
    text = f"{value:.{decimals}f}"
    return f"{text} {unit}" if unit else text


def format_pct(fraction: float) -> str:
    """Format a 0-1 fraction as a percentage."""
    return f"{fraction * 100:.1f}%"


def format_breakdown(breakdown: SurfaceBreakdown) -> str:
    """Format a surface breakdown as 'road X% / track Y% / single Z%'."""
    text = f"road {breakdown.road_pct}% / track {breakdown.track_pct}% / single {breakdown.single_pct}%"
    if breakdown.source == "geometry":
        text += " (estimated from geometry)"
    return text


def format_discipline(hint: DisciplineHint) -> str:
    return f"{hint.label} (confidence {hint.confidence * 100:.0f}%)"
