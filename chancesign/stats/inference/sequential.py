"""
chancesign.stats.inference.sequential
=====================================

Wald's sequential probability ratio test (SPRT) for the trial mean, and
adaptive re-estimation of the required sample size.

The SPRT compares a null mean μ0 with an alternative μ1 under the known
reference variance σ². After n trials with mean x̄,

    log LR = n (μ1 - μ0) (x̄ - (μ0 + μ1) / 2) / σ²

is compared with the efficacy boundary log((1 - β) / α) and the futility
boundary log(β / (1 - α)).

Examples
--------
>>> from chancesign.stats.inference.sequential import sprt_from_summary
>>> result = sprt_from_summary(n=100, sample_mean=101.0, null_mean=100.0, alternative_mean=102.0)
>>> result.recommendation, result.next_analysis_at
('continue', 200)
"""

from __future__ import annotations
import logging
import math
from typing import Optional, Sequence

from chancesign.config import AnalysisParameters
from chancesign.core.results import SampleSizeRecommendation, SequentialAnalysisResult
from chancesign.core.trials import Trial, trial_values
from chancesign.errors import InvalidArgument
from chancesign.stats.common.distributions import normal_inverse, normal_probability

logger = logging.getLogger(__name__)

DEFAULT_ALTERNATIVE_SHIFT = 2.0
NEXT_LOOK_INCREMENT = 100
ADAPTIVE_MIN_TRIALS = 50
EXPECTED_EFFECT_WEIGHT = 0.7


def wald_boundaries(alpha: float, beta: float) -> tuple[float, float]:
    """Return (efficacy, futility) log-likelihood-ratio boundaries."""
    if not (0 < alpha < 1):
        raise InvalidArgument(f"alpha must be in (0, 1), got {alpha}")
    if not (0 < beta < 1):
        raise InvalidArgument(f"beta must be in (0, 1), got {beta}")
    return math.log((1 - beta) / alpha), math.log(beta / (1 - alpha))


def sprt_from_summary(
    n: int,
    sample_mean: float,
    *,
    null_mean: Optional[float] = None,
    alternative_mean: Optional[float] = None,
    alpha: float = 0.05,
    beta: float = 0.20,
    params: Optional[AnalysisParameters] = None,
) -> SequentialAnalysisResult:
    """SPRT decision from a running count and mean.

    Args:
        n: Number of trials observed so far (at least 1)
        sample_mean: Mean of those trials
        null_mean: μ0, defaults to ``params.expected_mean``
        alternative_mean: μ1, defaults to μ0 + 2
        alpha: Type I error rate
        beta: Type II error rate
        params: Analysis parameters supplying σ² and the defaults

    Returns:
        SequentialAnalysisResult; when continuing, ``next_analysis_at`` is
        n + 100.
    """
    params = params if params is not None else AnalysisParameters()
    if n < 1:
        raise InvalidArgument(f"n must be at least 1, got {n}")
    mu0 = params.expected_mean if null_mean is None else null_mean
    mu1 = mu0 + DEFAULT_ALTERNATIVE_SHIFT if alternative_mean is None else alternative_mean
    if mu1 == mu0:
        raise InvalidArgument("alternative_mean must differ from null_mean")
    efficacy, futility = wald_boundaries(alpha, beta)

    variance = params.expected_variance
    log_lr = n * (mu1 - mu0) * (sample_mean - (mu0 + mu1) / 2) / variance
    if log_lr >= efficacy:
        recommendation = "stop_efficacy"
    elif log_lr <= futility:
        recommendation = "stop_futility"
    else:
        recommendation = "continue"

    z = (sample_mean - mu0) / (params.expected_standard_deviation / math.sqrt(n))
    return SequentialAnalysisResult(
        current_n=n,
        sample_mean=sample_mean,
        log_likelihood_ratio=log_lr,
        efficacy_boundary=efficacy,
        futility_boundary=futility,
        recommendation=recommendation,
        next_analysis_at=n + NEXT_LOOK_INCREMENT if recommendation == "continue" else None,
        z_score=z,
        p_value=normal_probability(z),
    )


def sequential_probability_ratio_test(
    trials: Sequence[Trial],
    *,
    null_mean: Optional[float] = None,
    alternative_mean: Optional[float] = None,
    alpha: float = 0.05,
    beta: float = 0.20,
    params: Optional[AnalysisParameters] = None,
) -> SequentialAnalysisResult:
    """SPRT over the trials collected so far. See `sprt_from_summary`."""
    params = params if params is not None else AnalysisParameters()
    values = trial_values(trials, params, what="sequential test")
    result = sprt_from_summary(
        int(values.size),
        float(values.mean()),
        null_mean=null_mean,
        alternative_mean=alternative_mean,
        alpha=alpha,
        beta=beta,
        params=params,
    )
    logger.debug(
        "SPRT at n=%d: log LR %.3f -> %s",
        result.current_n,
        result.log_likelihood_ratio,
        result.recommendation,
    )
    return result


def adaptive_sample_size(
    trials: Sequence[Trial],
    *,
    expected_effect: float,
    target_power: float = 0.8,
    alpha: float = 0.05,
    params: Optional[AnalysisParameters] = None,
) -> SampleSizeRecommendation:
    """Re-estimate the trials needed to detect a mean shift.

    Once more than 50 trials are in, the planning effect becomes
    0.7·expected + 0.3·|x̄ - μ0|. The required size follows the two-sided
    power formula n = ceil(2σ²(z_{α/2} + z_β)² / effect²) and is never less
    than the current count.

    Args:
        trials: Trials collected so far (may be empty)
        expected_effect: Planned mean shift in trial-value units, positive
        target_power: Desired power in (0, 1)
        alpha: Two-sided significance level in (0, 1)
        params: Analysis parameters supplying μ0 and σ
    """
    params = params if params is not None else AnalysisParameters()
    if not (expected_effect > 0):
        raise InvalidArgument(f"expected_effect must be positive, got {expected_effect}")
    if not (0 < target_power < 1):
        raise InvalidArgument(f"target_power must be in (0, 1), got {target_power}")
    if not (0 < alpha < 1):
        raise InvalidArgument(f"alpha must be in (0, 1), got {alpha}")

    n = len(trials)
    observed: Optional[float] = None
    effect = expected_effect
    if n > ADAPTIVE_MIN_TRIALS:
        values = trial_values(trials, params, what="adaptive sample size")
        observed = abs(float(values.mean()) - params.expected_mean)
        effect = (
            EXPECTED_EFFECT_WEIGHT * expected_effect
            + (1 - EXPECTED_EFFECT_WEIGHT) * observed
        )

    z_alpha = normal_inverse(1 - alpha / 2)
    z_beta = normal_inverse(target_power)
    required = math.ceil(2 * params.expected_variance * (z_alpha + z_beta) ** 2 / effect**2)
    return SampleSizeRecommendation(
        current_n=n,
        required_n=max(required, n),
        adjusted_effect=effect,
        observed_effect=observed,
        target_power=target_power,
        alpha=alpha,
    )
