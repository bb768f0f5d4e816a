"""
chancesign.stats.common.distributions
=====================================

Distribution functions for the normal, chi-square and Student-t families.

All values come from `scipy.stats`, whose normal CDF and quantile use rational
approximations accurate to roughly 1e-15. Arguments outside the domain of a
function raise `InvalidArgument` instead of returning NaN.

Examples
--------
>>> from chancesign.stats.common.distributions import normal_cdf, normal_inverse
>>> round(normal_inverse(normal_cdf(1.5)), 6)
1.5
>>> round(normal_probability(1.96), 3)
0.05
"""

from __future__ import annotations
import math

from scipy.stats import chi2, norm, t as student_t

from chancesign.errors import InvalidArgument


def _check_finite(name: str, value: float) -> None:
    if math.isnan(value):
        raise InvalidArgument(f"{name} must be a number, got NaN")


def _check_probability(p: float) -> None:
    if not (0 < p < 1):
        raise InvalidArgument(f"Probability must be in (0, 1), got {p}")


def _check_df(df: float) -> None:
    if not (df >= 1):
        raise InvalidArgument(f"Degrees of freedom must be >= 1, got {df}")


def normal_cdf(z: float) -> float:
    """Standard normal cumulative distribution function Φ(z)."""
    _check_finite("z", z)
    return float(norm.cdf(z))


def normal_inverse(p: float) -> float:
    """Standard normal quantile Φ⁻¹(p) for p in (0, 1)."""
    _check_probability(p)
    return float(norm.ppf(p))


def normal_probability(z: float) -> float:
    """Two-tailed p-value P(|Z| ≥ |z|)."""
    _check_finite("z", z)
    return float(2 * norm.sf(abs(z)))


def normal_probability_one_tailed(z: float) -> float:
    """Upper-tail p-value P(Z ≥ z)."""
    _check_finite("z", z)
    return float(norm.sf(z))


def chi_square_probability(x: float, df: float) -> float:
    """Upper-tail probability P(X ≥ x) for a chi-square with ``df`` degrees of freedom.

    Args:
        x: Observed statistic, must be non-negative
        df: Degrees of freedom, at least 1

    Returns:
        Upper-tail probability in [0, 1]
    """
    _check_finite("x", x)
    _check_df(df)
    if x < 0:
        raise InvalidArgument(f"Chi-square statistic must be non-negative, got {x}")
    return float(chi2.sf(x, df))


def chi_square_inverse(p: float, df: float) -> float:
    """Quantile of the chi-square distribution (lower-tail probability ``p``)."""
    _check_probability(p)
    _check_df(df)
    return float(chi2.ppf(p, df))


def t_distribution_probability(t: float, df: float) -> float:
    """Two-sided tail probability P(|T| ≥ |t|) of Student's t.

    This is the upper tail of |T|, the p-value of every two-sided t-test in
    the package.
    """
    _check_finite("t", t)
    _check_df(df)
    return float(2 * student_t.sf(abs(t), df))


def t_inverse(p: float, df: float) -> float:
    """Quantile of Student's t (lower-tail probability ``p``)."""
    _check_probability(p)
    _check_df(df)
    return float(student_t.ppf(p, df))
