"""
Statistical primitives shared by the analytics engines.

All functions are pure and operate on plain sequences of floats. Variance and
standard deviation are population statistics. Degenerate inputs never raise:
empty sequences yield 0, constant sequences yield an R-squared and an
autocorrelation of 0.
"""
import math
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.linear_model import LinearRegression

from ..utils.constants import DEFAULT_SMOOTHING_ALPHA, WEEKLY_PERIOD


@dataclass(frozen=True)
class LinearFit:
    """Ordinary least squares fit of values against their index 0..n-1."""
    slope: float
    intercept: float
    r_squared: float

    def predict(self, x: float) -> float:
        return self.slope * x + self.intercept


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(values))


def variance(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.var(values))


def std_dev(values: Sequence[float]) -> float:
    return math.sqrt(variance(values))


def coefficient_of_variation(values: Sequence[float], absolute_mean: bool = False) -> float:
    """Population std divided by the mean.

    A zero mean yields infinity when the values vary and 0 when they don't.
    """
    avg = mean(values)
    if absolute_mean:
        avg = abs(avg)
    std = std_dev(values)
    if avg == 0:
        return math.inf if std > 0 else 0.0
    return std / avg


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Linear-interpolation percentile at index ``p/100 * (n-1)``."""
    if len(sorted_values) == 0:
        return 0.0
    return float(np.percentile(np.asarray(sorted_values, dtype=float), p, method="linear"))


def linear_regression(values: Sequence[float]) -> LinearFit:
    """Fit ``values[i] ~ slope * i + intercept``."""
    n = len(values)
    if n == 0:
        return LinearFit(slope=0.0, intercept=0.0, r_squared=0.0)
    if n < 2:
        return LinearFit(slope=0.0, intercept=float(values[0]), r_squared=0.0)

    x = np.arange(n, dtype=float).reshape(-1, 1)
    y = np.asarray(values, dtype=float)

    model = LinearRegression()
    model.fit(x, y)
    slope = float(model.coef_[0])
    intercept = float(model.intercept_)

    predicted = slope * x.ravel() + intercept
    ss_res = float(np.sum((y - predicted) ** 2))
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    r_squared = 1 - ss_res / ss_tot if ss_tot > 0 else 0.0

    return LinearFit(slope=slope, intercept=intercept, r_squared=r_squared)


def exponential_smoothing(values: Sequence[float], alpha: float = DEFAULT_SMOOTHING_ALPHA) -> List[float]:
    """Simple exponential smoothing seeded with the first value."""
    if len(values) == 0:
        return []
    series = pd.Series(values, dtype=float)
    return series.ewm(alpha=alpha, adjust=False).mean().tolist()


def autocorrelation(values: Sequence[float], lag: int = WEEKLY_PERIOD) -> float:
    """Lag autocorrelation normalized by the squared deviations of ``values[lag:]``."""
    if len(values) <= lag:
        return 0.0
    y = np.asarray(values, dtype=float)
    centered = y - y.mean()
    numerator = float(np.sum(centered[lag:] * centered[:-lag]))
    denominator = float(np.sum(centered[lag:] ** 2))
    if denominator == 0:
        return 0.0
    return numerator / denominator


def detect_seasonality(
    values: Sequence[float],
    period: int = WEEKLY_PERIOD,
    threshold: float = 0.8,
    min_points: int = 28
) -> bool:
    if len(values) < min_points:
        return False
    return abs(autocorrelation(values, lag=period)) > threshold


def trend_strength(values: Sequence[float]) -> float:
    """Absolute OLS slope relative to the mean."""
    avg = mean(values)
    if avg == 0:
        return 0.0
    return abs(linear_regression(values).slope) / avg


def detect_trend(values: Sequence[float], threshold: float = 0.01, min_points: int = 14) -> bool:
    if len(values) < min_points:
        return False
    return trend_strength(values) > threshold


def seasonal_component(values: Sequence[float], period: int = WEEKLY_PERIOD) -> List[float]:
    """Per-phase averages normalized to a mean of 1."""
    if len(values) == 0:
        return [1.0] * period

    phases = pd.Series(values, dtype=float).groupby(np.arange(len(values)) % period).mean()
    averages = [float(phases.get(phase, 1.0)) for phase in range(period)]

    overall = sum(averages) / period
    if overall == 0:
        return [1.0] * period
    return [avg / overall for avg in averages]


def trend_component(values: Sequence[float], window: Optional[int] = None) -> List[float]:
    """Trailing moving average; the window defaults to ``min(7, n // 4)``."""
    if len(values) == 0:
        return []
    if window is None:
        window = min(WEEKLY_PERIOD, len(values) // 4)
    window = max(1, window)
    series = pd.Series(values, dtype=float)
    return series.rolling(window=window, min_periods=1).mean().tolist()


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    if math.isnan(value):
        return lower
    return max(lower, min(upper, value))


def round_money(value: float) -> float:
    """Round half up to 2 decimals."""
    if math.isinf(value) or math.isnan(value):
        return value
    return math.floor(value * 100 + 0.5) / 100
