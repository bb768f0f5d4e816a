"""
chancesign.stats.deviation
==========================

Deviation and variance analyses of a trial sequence.

These functions turn trial values into deviation metrics against the chance
reference in `AnalysisParameters`:

- `calculate_cumulative_deviation`: cumulative deviation trajectory with
  per-trial Z-scores and excursion periods
- `calculate_network_variance`: combined (squared Stouffer Z) variance test
- `calculate_device_variance`: per-trial standardized distribution checks
- `calculate_z_score` / `calculate_effect_size`: single-sample tests of the
  mean against the reference

Examples
--------
>>> from datetime import datetime, timezone
>>> from chancesign.config import AnalysisParameters
>>> from chancesign.core.trials import trials_from_values
>>> from chancesign.stats.deviation import calculate_z_score
>>> trials = trials_from_values([100, 104, 96, 100], start=datetime(2024, 1, 1, tzinfo=timezone.utc))
>>> calculate_z_score(trials, AnalysisParameters()).z_score
0.0
"""

from __future__ import annotations
import logging
import math
from typing import List, Optional, Sequence

import numpy as np
from scipy.stats import kstest, norm

from chancesign.config import AnalysisParameters
from chancesign.core.names import Significance
from chancesign.core.results import (
    CumulativePoint,
    CumulativeResult,
    DeviceVarianceResult,
    EffectSizeResult,
    ExcursionPeriod,
    NetworkVarianceResult,
    ZScoreResult,
)
from chancesign.core.trials import Trial, trial_values
from chancesign.errors import InsufficientData
from chancesign.stats.common import moments
from chancesign.stats.common.distributions import (
    chi_square_inverse,
    chi_square_probability,
    normal_probability,
    normal_probability_one_tailed,
)
from chancesign.stats.common.effect_sizes import (
    cohens_d,
    hedges_g,
    interpret_effect_size,
    point_biserial_correlation,
)

logger = logging.getLogger(__name__)


def _params(params: Optional[AnalysisParameters]) -> AnalysisParameters:
    return params if params is not None else AnalysisParameters()


# --------------------------------------------------------------------------
# Cumulative deviation and excursions
# --------------------------------------------------------------------------


def detect_excursions(
    trials: Sequence[Trial],
    z_scores: Sequence[float],
    *,
    threshold: float,
    minimum_length: int,
) -> List[ExcursionPeriod]:
    """Find maximal same-sign runs of ``|z| > threshold`` in one forward pass.

    A run closes when the sign flips or |z| falls to the threshold; a run that
    closes on a sign flip is immediately followed by a new one starting at the
    flipping index. Runs shorter than ``minimum_length`` are dropped,
    including a run still open at the end of the input.
    """
    excursions: List[ExcursionPeriod] = []
    in_excursion = False
    start = 0
    sign = 0
    peak = 0.0

    def close(end: int) -> None:
        if end - start + 1 >= minimum_length:
            excursions.append(
                ExcursionPeriod(
                    start_index=start,
                    end_index=end,
                    start_time=trials[start].timestamp,
                    end_time=trials[end].timestamp,
                    peak_z_score=peak,
                    sign=sign,
                    significance=normal_probability_one_tailed(abs(peak)),
                )
            )

    for i, z in enumerate(z_scores):
        above = abs(z) > threshold
        current_sign = 1 if z > 0 else -1
        if in_excursion and (not above or current_sign != sign):
            close(i - 1)
            in_excursion = False
        if above:
            if not in_excursion:
                in_excursion = True
                start, sign, peak = i, current_sign, z
            elif abs(z) > abs(peak):
                peak = z

    if in_excursion:
        close(len(z_scores) - 1)
    return excursions


def calculate_cumulative_deviation(
    trials: Sequence[Trial], params: Optional[AnalysisParameters] = None
) -> CumulativeResult:
    """Cumulative deviation trajectory of a trial sequence.

    At index n (1-based count n), Z = S_n / (σ·sqrt(n)) where S_n is the running
    sum of ``value - expected_mean``. Each point also carries the one-tailed
    p-value of Z and Welford running moments of the raw values.

    Args:
        trials: Ordered trial sequence, non-empty
        params: Analysis parameters (defaults for a 200-bit source)

    Returns:
        CumulativeResult with one point per trial and the detected excursions

    Raises:
        EmptyInput: If ``trials`` is empty.
    """
    params = _params(params)
    values = trial_values(trials, params, what="cumulative deviation")
    sigma = params.expected_standard_deviation

    points: List[CumulativePoint] = []
    z_scores: List[float] = []
    cumulative = 0.0
    running_mean = 0.0
    m2 = 0.0
    crossings = 0
    last_sign = 0
    max_deviation = -math.inf
    min_deviation = math.inf

    for i, value in enumerate(values):
        n = i + 1
        cumulative += value - params.expected_mean
        delta = value - running_mean
        running_mean += delta / n
        m2 += delta * (value - running_mean)
        running_variance = max(0.0, m2 / (n - 1)) if n > 1 else 0.0

        z = cumulative / (sigma * math.sqrt(n))
        z_scores.append(z)
        points.append(
            CumulativePoint(
                trial_index=i,
                timestamp=trials[i].timestamp,
                cumulative_deviation=cumulative,
                running_mean=running_mean,
                z_score=z,
                p_value=normal_probability_one_tailed(z),
                running_variance=running_variance,
            )
        )

        max_deviation = max(max_deviation, cumulative)
        min_deviation = min(min_deviation, cumulative)
        if cumulative != 0:
            current_sign = 1 if cumulative > 0 else -1
            if last_sign and current_sign != last_sign:
                crossings += 1
            last_sign = current_sign

    excursions = detect_excursions(
        trials,
        z_scores,
        threshold=params.excursion_threshold,
        minimum_length=params.minimum_excursion_length,
    )
    logger.debug(
        "cumulative deviation over %d trials: final Z %.3f, %d excursion(s)",
        len(points),
        z_scores[-1],
        len(excursions),
    )
    return CumulativeResult(
        points=tuple(points),
        final_deviation=cumulative,
        final_z_score=z_scores[-1],
        final_p_value=points[-1].p_value,
        max_deviation=max_deviation,
        min_deviation=min_deviation,
        crossings=crossings,
        excursions=tuple(excursions),
    )


# --------------------------------------------------------------------------
# Network and device variance
# --------------------------------------------------------------------------


def _normalized(
    trials: Sequence[Trial], params: AnalysisParameters, what: str, minimum: int
) -> np.ndarray:
    values = trial_values(trials, params, what=what)
    if values.size < minimum:
        raise InsufficientData(what, required=minimum, actual=int(values.size))
    return (values - params.expected_mean) / params.expected_standard_deviation


def calculate_network_variance(
    trials: Sequence[Trial], params: Optional[AnalysisParameters] = None
) -> NetworkVarianceResult:
    """Chi-square test of the variance of normalized trial deviations.

    Each trial is normalized to z_i = (x_i - μ)/σ. The normalized variance
    (sample variance of z_i, expected 1 under chance) is tested with
    χ² = (n - 1)·netvar on n - 1 degrees of freedom (upper tail). Requires at
    least 2 trials.
    """
    params = _params(params)
    z = _normalized(trials, params, "network variance", minimum=2)
    n = int(z.size)
    df = n - 1

    netvar = moments.variance(z)
    chi_square = df * netvar
    probability = chi_square_probability(chi_square, df)

    alpha = 1 - params.confidence_level
    interval = (
        chi_square / chi_square_inverse(1 - alpha / 2, df),
        chi_square / chi_square_inverse(alpha / 2, df),
    )
    temporal_correlation = moments.autocorrelation(z, 1) if n >= 3 else 0.0

    return NetworkVarianceResult(
        netvar=netvar,
        degrees_of_freedom=df,
        chi_square=chi_square,
        probability=probability,
        significance=Significance.from_p_value(probability, params.significance_level),
        confidence_interval=interval,
        expected_netvar=1.0,
        standard_error=math.sqrt(2 / n),
        temporal_correlation=temporal_correlation,
        stouffer_z=float(z.sum() / math.sqrt(n)),
        sample_size=n,
        normalized_deviations=tuple(float(v) for v in z),
    )


def _ad_asymptotic_cdf(statistic: float) -> float:
    """Limiting distribution of the Anderson–Darling statistic (Marsaglia & Marsaglia, 2004)."""
    z = statistic
    if z <= 0:
        return 0.0
    if z < 2:
        return (
            z**-0.5
            * math.exp(-1.2337141 / z)
            * (
                2.00012
                + (
                    0.247105
                    - (0.0649821 - (0.0347962 - (0.011672 - 0.00168691 * z) * z) * z) * z
                )
                * z
            )
        )
    return math.exp(
        -math.exp(
            1.0776
            - (2.30695 - (0.43424 - (0.082433 - (0.008056 - 0.0003146 * z) * z) * z) * z)
            * z
        )
    )


def anderson_darling_standard_normal(z: np.ndarray) -> tuple[float, float]:
    """Anderson–Darling statistic against a fully specified N(0, 1) and its p-value."""
    ordered = np.sort(np.asarray(z, dtype=float))
    n = ordered.size
    i = np.arange(1, n + 1)
    log_cdf = norm.logcdf(ordered)
    log_sf = norm.logsf(ordered[::-1])
    statistic = float(-n - np.sum((2 * i - 1) * (log_cdf + log_sf)) / n)
    p_value = min(1.0, max(0.0, 1.0 - _ad_asymptotic_cdf(statistic)))
    return statistic, p_value


def calculate_device_variance(
    trials: Sequence[Trial], params: Optional[AnalysisParameters] = None
) -> DeviceVarianceResult:
    """Distributional checks of independently standardized trials.

    Reports shape (skewness, excess kurtosis), a linear drift slope of the
    standardized values over trial index, lag-1 autocorrelation, and
    Kolmogorov–Smirnov / Anderson–Darling goodness of fit against N(0, 1).
    The overall ``probability`` is the Anderson–Darling p-value. Requires at
    least 4 trials.
    """
    params = _params(params)
    z = _normalized(trials, params, "device variance", minimum=4)
    n = int(z.size)

    ks = kstest(z, "norm")
    ad_statistic, ad_p_value = anderson_darling_standard_normal(z)
    drift = moments.linear_regression(np.arange(n, dtype=float), z)

    return DeviceVarianceResult(
        device_mean=float(z.mean()),
        device_variance=moments.variance(z),
        skewness=moments.skewness(z),
        kurtosis=moments.kurtosis(z),
        drift_slope=drift.slope,
        autocorrelation=moments.autocorrelation(z, 1),
        ks_statistic=float(ks.statistic),
        ks_p_value=float(ks.pvalue),
        ad_statistic=ad_statistic,
        ad_p_value=ad_p_value,
        probability=ad_p_value,
        significance=Significance.from_p_value(ad_p_value, params.significance_level),
        sample_size=n,
        individual_z_scores=tuple(float(v) for v in z),
    )


# --------------------------------------------------------------------------
# Z-score and effect size
# --------------------------------------------------------------------------


def calculate_z_score(
    trials: Sequence[Trial], params: Optional[AnalysisParameters] = None
) -> ZScoreResult:
    """Single-sample Z-test of the mean trial value against ``expected_mean``.

    Uses the known reference standard deviation: SE = σ / sqrt(n). The
    one-tailed p-value is for the upper tail (mean above chance).
    """
    params = _params(params)
    values = trial_values(trials, params, what="z-score")
    n = int(values.size)
    observed_mean = float(values.mean())
    standard_error = params.expected_standard_deviation / math.sqrt(n)
    z = (observed_mean - params.expected_mean) / standard_error
    p_value = normal_probability(z)
    margin = params.critical_value * standard_error

    return ZScoreResult(
        z_score=z,
        p_value=p_value,
        p_value_one_tailed=normal_probability_one_tailed(z),
        confidence_interval=(observed_mean - margin, observed_mean + margin),
        standard_error=standard_error,
        observed_mean=observed_mean,
        expected_mean=params.expected_mean,
        effect_size=cohens_d(
            observed_mean, params.expected_mean, params.expected_standard_deviation
        ),
        sample_size=n,
        significance=Significance.from_p_value(p_value, params.significance_level),
    )


def calculate_effect_size(
    trials: Sequence[Trial], params: Optional[AnalysisParameters] = None
) -> EffectSizeResult:
    """Standardized effect of the sample mean against ``expected_mean``.

    Cohen's d and Hedges' g use the reference standard deviation. The
    point-biserial correlation relates each trial's value to whether it lies
    above the reference. The interval for d uses SE = sqrt(1/n + d²/(2n)).
    Requires at least 2 trials.
    """
    params = _params(params)
    values = trial_values(trials, params, what="effect size")
    n = int(values.size)
    if n < 2:
        raise InsufficientData("effect size", required=2, actual=n)

    observed_mean = float(values.mean())
    sigma = params.expected_standard_deviation
    d = cohens_d(observed_mean, params.expected_mean, sigma)
    g = hedges_g(observed_mean, params.expected_mean, sigma, n)
    r_pb = point_biserial_correlation(values, values > params.expected_mean)

    se_d = math.sqrt(1 / n + d**2 / (2 * n))
    margin = params.critical_value * se_d
    return EffectSizeResult(
        cohens_d=d,
        hedges_g=g,
        point_biserial=r_pb,
        confidence_interval=(d - margin, d + margin),
        interpretation=interpret_effect_size(d),
        practical_significance=abs(d) >= 0.2,
        sample_size=n,
    )
