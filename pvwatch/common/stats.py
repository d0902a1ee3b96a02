"""
Numeric helpers shared by the baseline builder, detectors and forecasters.
"""

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from pvwatch.core.domain.baseline import BaselineStatistics, Percentiles


@dataclass(frozen=True)
class TrendFit:
    slope: float
    intercept: float
    r_squared: float


def percentile(values: Sequence[float], q: float) -> float:
    """Percentile with linear interpolation between order statistics (q in [0, 1])."""
    return float(np.percentile(np.asarray(values, dtype=float), q * 100.0))


def population_std(values: Sequence[float]) -> float:
    return float(np.std(np.asarray(values, dtype=float)))


def summarize(values: Sequence[float]) -> BaselineStatistics:
    """Mean/median/population std/min/max and p25/p75/p95/p99 of a non-empty series."""
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        raise ValueError("cannot summarize an empty series")
    return BaselineStatistics(
        mean=float(arr.mean()),
        median=float(np.median(arr)),
        std_dev=float(arr.std()),
        min=float(arr.min()),
        max=float(arr.max()),
        percentiles=Percentiles(
            p25=percentile(arr, 0.25),
            p75=percentile(arr, 0.75),
            p95=percentile(arr, 0.95),
            p99=percentile(arr, 0.99),
        ),
        count=int(arr.size),
    )


def linear_trend(values: Sequence[float]) -> TrendFit:
    """
    Ordinary least squares against the sample index.

    R² is 1.0 for a constant series (nothing left unexplained).
    """
    y = np.asarray(values, dtype=float)
    n = y.size
    if n == 0:
        raise ValueError("cannot fit a trend to an empty series")
    x = np.arange(n, dtype=float)
    x_mean = x.mean()
    y_mean = y.mean()

    denominator = float(((x - x_mean) ** 2).sum())
    slope = 0.0 if denominator == 0 else float(((x - x_mean) * (y - y_mean)).sum()) / denominator
    intercept = float(y_mean - slope * x_mean)

    predicted = y_mean + slope * (x - x_mean)
    ss_res = float(((y - predicted) ** 2).sum())
    ss_tot = float(((y - y_mean) ** 2).sum())
    r_squared = 1.0 if ss_tot == 0 else 1.0 - ss_res / ss_tot

    return TrendFit(slope=slope, intercept=intercept, r_squared=r_squared)
