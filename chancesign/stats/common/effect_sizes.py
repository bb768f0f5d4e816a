"""
chancesign.stats.common.effect_sizes
====================================

Standardized effect sizes and power analysis.

Cohen's d expresses a mean difference in units of a reference standard
deviation; Hedges' g removes d's small-sample bias. The power helpers use the
normal approximation for one-sample designs unless stated otherwise.

Examples
--------
>>> from chancesign.stats.common.effect_sizes import cohens_d, interpret_effect_size
>>> cohens_d(103.0, 100.0, 6.0)
0.5
>>> interpret_effect_size(0.5)
'medium'
"""

from __future__ import annotations
import math
from typing import Literal, Sequence

import numpy as np
from scipy.stats import nct, t as student_t

from chancesign.errors import EmptyInput, InvalidArgument
from chancesign.stats.common.distributions import normal_cdf, normal_inverse

EffectSizeInterpretation = Literal["negligible", "small", "medium", "large"]


def _check_alpha(alpha: float) -> None:
    if not (0 < alpha < 1):
        raise InvalidArgument(f"alpha must be in (0, 1), got {alpha}")


def cohens_d(observed_mean: float, reference_mean: float, reference_std: float) -> float:
    """Mean difference in units of ``reference_std``."""
    if not (reference_std > 0):
        raise InvalidArgument(f"reference_std must be positive, got {reference_std}")
    return (observed_mean - reference_mean) / reference_std


def hedges_g(
    observed_mean: float,
    reference_mean: float,
    reference_std: float,
    n1: int,
    n2: int = 1,
) -> float:
    """Cohen's d with the small-sample correction 1 - 3 / (4 df - 1).

    Args:
        observed_mean: Mean of the observed group
        reference_mean: Mean of the reference group or fixed reference value
        reference_std: Standard deviation used to standardize
        n1: Size of the observed group
        n2: Size of the reference group; 1 for a fixed reference value

    Returns:
        Bias-corrected standardized mean difference
    """
    df = n1 + n2 - 2
    if df < 1:
        raise InvalidArgument(f"Degrees of freedom must be >= 1, got {df}")
    correction = 1 - 3 / (4 * df - 1)
    return cohens_d(observed_mean, reference_mean, reference_std) * correction


def pooled_standard_deviation(std1: float, n1: int, std2: float, n2: int) -> float:
    """Pooled standard deviation of two samples with df = n1 + n2 - 2."""
    df = n1 + n2 - 2
    if df < 1:
        raise InvalidArgument(f"Degrees of freedom must be >= 1, got {df}")
    pooled = ((n1 - 1) * std1**2 + (n2 - 1) * std2**2) / df
    return math.sqrt(max(0.0, pooled))


def point_biserial_correlation(values: Sequence[float], split: Sequence[bool]) -> float:
    """Correlation between a continuous variable and a binary split.

    Uses r = (M1 - M0) / s * sqrt(n1 n0 / n²) with the population standard
    deviation s of all values. Returns 0 when either group is empty or the
    values have no spread.
    """
    arr = np.asarray(values, dtype=float)
    mask = np.asarray(split, dtype=bool)
    if arr.size == 0:
        raise EmptyInput("point-biserial correlation")
    if arr.size != mask.size:
        raise InvalidArgument(
            f"values and split must have the same length, got {arr.size} and {mask.size}"
        )
    n1 = int(mask.sum())
    n0 = arr.size - n1
    spread = float(np.std(arr))
    if n1 == 0 or n0 == 0 or spread == 0:
        return 0.0
    difference = float(arr[mask].mean() - arr[~mask].mean())
    return difference / spread * math.sqrt(n1 * n0 / arr.size**2)


def interpret_effect_size(d: float) -> EffectSizeInterpretation:
    """Cohen's conventional labels at 0.2 / 0.5 / 0.8."""
    magnitude = abs(d)
    if magnitude < 0.2:
        return "negligible"
    if magnitude < 0.5:
        return "small"
    if magnitude < 0.8:
        return "medium"
    return "large"


def statistical_power(effect_size: float, n: int, alpha: float = 0.05) -> float:
    """Power of a two-sided one-sample t-test for a standardized effect.

    Uses the noncentral t distribution with df = n - 1 and noncentrality
    effect_size * sqrt(n).
    """
    _check_alpha(alpha)
    if n < 2:
        raise InvalidArgument(f"n must be at least 2, got {n}")
    df = n - 1
    critical = float(student_t.ppf(1 - alpha / 2, df))
    noncentrality = effect_size * math.sqrt(n)
    power = nct.sf(critical, df, noncentrality) + nct.cdf(-critical, df, noncentrality)
    return float(min(1.0, max(0.0, power)))


def required_sample_size(
    effect_size: float, power: float = 0.8, alpha: float = 0.05
) -> float:
    """Trials needed to detect ``effect_size`` with a two-sided z-test.

    Returns ``math.inf`` for a zero effect.
    """
    _check_alpha(alpha)
    if not (0 < power < 1):
        raise InvalidArgument(f"power must be in (0, 1), got {power}")
    if effect_size == 0:
        return math.inf
    z_alpha = normal_inverse(1 - alpha / 2)
    z_beta = normal_inverse(power)
    return float(math.ceil(((z_alpha + z_beta) / abs(effect_size)) ** 2))


def minimum_detectable_effect(n: int, power: float = 0.8, alpha: float = 0.05) -> float:
    """Smallest standardized effect detectable with ``n`` trials."""
    _check_alpha(alpha)
    if not (0 < power < 1):
        raise InvalidArgument(f"power must be in (0, 1), got {power}")
    if n < 1:
        raise InvalidArgument(f"n must be positive, got {n}")
    return (normal_inverse(1 - alpha / 2) + normal_inverse(power)) / math.sqrt(n)


def z_test_power(effect_size: float, n: int, alpha: float = 0.05) -> float:
    """Power of a two-sided one-sample z-test (normal approximation)."""
    _check_alpha(alpha)
    if n < 1:
        raise InvalidArgument(f"n must be positive, got {n}")
    critical = normal_inverse(1 - alpha / 2)
    shift = abs(effect_size) * math.sqrt(n)
    return normal_cdf(shift - critical) + normal_cdf(-shift - critical)
