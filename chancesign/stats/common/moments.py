"""
chancesign.stats.common.moments
===============================

Moment statistics and simple regression over numeric sequences.

Variance uses the n-1 denominator. Skewness and kurtosis are the
sample-adjusted estimators (kurtosis is reported as excess kurtosis, 0 for a
normal distribution).
"""

from __future__ import annotations
import math
from typing import NamedTuple, Sequence, Tuple, Union

import numpy as np
from scipy import stats as sps

from chancesign.errors import EmptyInput, InsufficientData, InvalidArgument

ArrayLike = Union[Sequence[float], np.ndarray]


class Regression(NamedTuple):
    """Ordinary least squares fit of y on x."""

    slope: float
    intercept: float
    slope_standard_error: float
    correlation: float
    degrees_of_freedom: int


def _as_array(values: ArrayLike, what: str, minimum: int = 1) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.size == 0:
        raise EmptyInput(what)
    if arr.size < minimum:
        raise InsufficientData(what, required=minimum, actual=int(arr.size))
    return arr


def mean(values: ArrayLike) -> float:
    return float(np.mean(_as_array(values, "mean")))


def variance(values: ArrayLike) -> float:
    """Sample variance (n-1 denominator), floored at 0 against rounding."""
    arr = _as_array(values, "variance", minimum=2)
    return max(0.0, float(np.var(arr, ddof=1)))


def standard_deviation(values: ArrayLike) -> float:
    return math.sqrt(variance(values))


def skewness(values: ArrayLike) -> float:
    """Adjusted Fisher–Pearson skewness; 0 for a constant sequence."""
    arr = _as_array(values, "skewness", minimum=3)
    n = arr.size
    sd = float(np.std(arr, ddof=1))
    if sd == 0:
        return 0.0
    centered = (arr - arr.mean()) / sd
    return float(n / ((n - 1) * (n - 2)) * np.sum(centered**3))


def kurtosis(values: ArrayLike) -> float:
    """Sample excess kurtosis; 0 for a constant sequence."""
    arr = _as_array(values, "kurtosis", minimum=4)
    n = arr.size
    sd = float(np.std(arr, ddof=1))
    if sd == 0:
        return 0.0
    centered = (arr - arr.mean()) / sd
    lead = n * (n + 1) / ((n - 1) * (n - 2) * (n - 3))
    tail = 3 * (n - 1) ** 2 / ((n - 2) * (n - 3))
    return float(lead * np.sum(centered**4) - tail)


def median(values: ArrayLike) -> float:
    return float(np.median(_as_array(values, "median")))


def autocorrelation(values: ArrayLike, lag: int = 1) -> float:
    """Sample autocorrelation at ``lag``; 0 when the sequence has no spread."""
    if lag < 1:
        raise InvalidArgument(f"lag must be >= 1, got {lag}")
    arr = _as_array(values, "autocorrelation", minimum=lag + 2)
    centered = arr - arr.mean()
    denominator = float(np.dot(centered, centered))
    if denominator == 0:
        return 0.0
    return float(np.dot(centered[:-lag], centered[lag:]) / denominator)


def linear_regression(x: ArrayLike, y: ArrayLike) -> Regression:
    """Fit y = intercept + slope * x by ordinary least squares.

    Args:
        x: Predictor values, not all equal
        y: Response values, same length as x

    Returns:
        Regression with slope, intercept, slope standard error, Pearson r
        and residual degrees of freedom (n - 2).
    """
    xs = _as_array(x, "linear regression", minimum=3)
    ys = _as_array(y, "linear regression", minimum=3)
    if xs.size != ys.size:
        raise InvalidArgument(
            f"x and y must have the same length, got {xs.size} and {ys.size}"
        )
    if np.all(xs == xs[0]):
        raise InvalidArgument("linear regression needs at least two distinct x values")
    fit = sps.linregress(xs, ys)
    # Constant y leaves r and the slope error undefined; both are zero here.
    correlation = 0.0 if math.isnan(fit.rvalue) else float(fit.rvalue)
    stderr = 0.0 if math.isnan(fit.stderr) else float(fit.stderr)
    return Regression(
        slope=float(fit.slope),
        intercept=float(fit.intercept),
        slope_standard_error=stderr,
        correlation=correlation,
        degrees_of_freedom=int(xs.size - 2),
    )


def jarque_bera(values: ArrayLike) -> Tuple[float, float]:
    """Jarque–Bera normality statistic and its chi-square(2) p-value."""
    arr = _as_array(values, "Jarque-Bera test", minimum=4)
    result = sps.jarque_bera(arr)
    statistic = float(result.statistic)
    p_value = float(result.pvalue)
    if math.isnan(statistic):
        # Constant input: no shape information at all.
        return 0.0, 1.0
    return statistic, p_value
