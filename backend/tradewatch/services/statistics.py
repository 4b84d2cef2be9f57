"""
Statistical Primitives for Anomaly Detection
─────────────────────────────────────────────
Pure numeric helpers shared by every detector. No I/O.

For a series X = [x1..xn]:
  μ = mean(X)
  σ = sqrt(mean((xi - μ)²))          population std-dev (ddof=0)
  z = (x - μ) / σ                    0 when σ = 0
  Δ% = (new - old) / old * 100       0 when old = 0
  volatility = σ(Δ% of consecutive points)

Degenerate input (empty series, σ = 0) always yields 0 rather than NaN.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class TimeSeriesPoint:
    value: float
    date: str


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def std_dev(values: Sequence[float]) -> float:
    if len(values) == 0 or min(values) == max(values):
        return 0.0
    return float(np.std(values))


def z_score(value: float, mean_value: float, std: float) -> float:
    if std == 0:
        return 0.0
    return (value - mean_value) / std


def percentage_change(old: float, new: float) -> float:
    if old == 0:
        return 0.0
    return (new - old) / old * 100


def percentage_changes(values: Sequence[float]) -> List[float]:
    """Consecutive Δ% series, one shorter than the input."""
    return [percentage_change(values[i - 1], values[i]) for i in range(1, len(values))]


def volatility(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    return std_dev(percentage_changes(values))


def moving_average(points: Sequence[TimeSeriesPoint], window: int) -> List[Tuple[str, float]]:
    """
    Trailing moving average.

    Returns one ``(date, avg)`` per position where a full window fits, i.e.
    ``len(points) - window + 1`` entries (none when the window is larger
    than the series).
    """
    if window <= 0 or window > len(points):
        return []
    values = np.array([p.value for p in points], dtype=float)
    averages = np.convolve(values, np.ones(window) / window, mode="valid")
    return [(points[i + window - 1].date, float(avg)) for i, avg in enumerate(averages)]


def find_outliers(values: Sequence[float], threshold: float = 2.0) -> List[Dict[str, float]]:
    """Every point whose |z| against the whole series exceeds ``threshold``."""
    m = mean(values)
    s = std_dev(values)
    outliers = []
    for index, value in enumerate(values):
        z = z_score(value, m, s)
        if abs(z) > threshold:
            outliers.append({"index": index, "value": value, "z_score": z})
    return outliers


def detect_spike(current: float, recent: Sequence[float], multiplier: float = 1.5) -> Dict:
    """Flag ``current`` when it exceeds ``multiplier`` × the recent average."""
    baseline = mean(recent)
    return {
        "is_spike": current > baseline * multiplier,
        "baseline": baseline,
        "percentage_increase": percentage_change(baseline, current),
    }


def min_max(values: Sequence[float]) -> Tuple[float, float]:
    if len(values) == 0:
        return 0.0, 0.0
    return float(min(values)), float(max(values))
