"""Percentile helpers shared by the scoring engines."""

import numpy as np


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


def percentile(values: list[float], p: float) -> float:
    """Linearly interpolated percentile, p in [0, 1]. Empty input gives 0."""
    if not values:
        return 0.0
    return float(np.percentile(np.asarray(values, dtype=float), p * 100))


def weighted_percentile(values: list[float], weights: list[float], p: float) -> float | None:
    """Smallest value whose cumulative weight reaches fraction p of the total.

    Values are sorted ascending before accumulating, so the result does not
    depend on input order. Returns None when the total weight is not positive.
    """
    if not values:
        return None
    vals = np.asarray(values, dtype=float)
    wts = np.asarray(weights, dtype=float)
    total = wts.sum()
    if total <= 0:
        return None

    order = np.argsort(vals, kind="stable")
    cumulative = np.cumsum(wts[order])
    idx = int(np.searchsorted(cumulative, total * p, side="left"))
    idx = min(idx, len(vals) - 1)
    return float(vals[order][idx])
