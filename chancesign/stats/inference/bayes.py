"""
chancesign.stats.inference.bayes
================================

Bayesian evidence and posterior updating for the trial mean.

Bayes factors compare two point hypotheses about the mean and variance of
trial values using the Gaussian likelihood of the sample. Posterior updating
supports the conjugate Normal–Normal model only.

Examples
--------
>>> from datetime import datetime, timezone
>>> from chancesign.core.results import PriorDistribution
>>> from chancesign.core.trials import trials_from_values
>>> from chancesign.stats.inference.bayes import Hypothesis, calculate_bayes_factor
>>> trials = trials_from_values([100, 102, 98, 100], start=datetime(2024, 1, 1, tzinfo=timezone.utc))
>>> h0 = Hypothesis(mean=100.0, variance=50.0)
>>> calculate_bayes_factor(trials, h0, h0).interpretation
'inconclusive'
"""

from __future__ import annotations
import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from chancesign.config import AnalysisParameters
from chancesign.core.results import (
    BayesFactorResult,
    BayesianResult,
    EvidenceLabel,
    Interval,
    PosteriorDistribution,
    PriorDistribution,
)
from chancesign.core.trials import Trial, trial_values
from chancesign.errors import (
    InsufficientData,
    InvalidArgument,
    UnsupportedDistribution,
    UnsupportedPriorType,
)
from chancesign.stats.common import moments
from chancesign.stats.common.distributions import normal_inverse

logger = logging.getLogger(__name__)

_MAX_EXP = 709.0


@dataclass(frozen=True)
class Hypothesis:
    """A point hypothesis about the distribution of trial values."""

    mean: float
    variance: float

    def __post_init__(self) -> None:
        if not (self.variance > 0):
            raise InvalidArgument(f"Hypothesis variance must be positive, got {self.variance}")


def _safe_exp(x: float) -> float:
    return math.inf if x > _MAX_EXP else math.exp(x)


def log_marginal_likelihood(
    n: int, sample_mean: float, sum_of_squares: float, hypothesis: Hypothesis
) -> float:
    """Gaussian log-likelihood of a sample from its sufficient statistics.

    ``sum_of_squares`` is Σ(x_i - x̄)².
    """
    var = hypothesis.variance
    return (
        -0.5 * n * math.log(2 * math.pi * var)
        - 0.5 * (sum_of_squares + n * (sample_mean - hypothesis.mean) ** 2) / var
    )


def jeffreys_label(bf10: float) -> EvidenceLabel:
    """Jeffreys (1961) evidence category for BF10."""
    if bf10 > 100:
        return "extreme"
    if bf10 > 30:
        return "very_strong"
    if bf10 > 10:
        return "strong"
    if bf10 > 3:
        return "moderate"
    if bf10 > 1:
        return "weak"
    return "inconclusive"


def calculate_bayes_factor(
    trials: Sequence[Trial],
    null: Hypothesis,
    alternative: Hypothesis,
    params: Optional[AnalysisParameters] = None,
) -> BayesFactorResult:
    """Bayes factor BF10 = exp(logML1 - logML0) of ``alternative`` over ``null``.

    Args:
        trials: Non-empty trial sequence
        null: Null hypothesis (mean, variance)
        alternative: Alternative hypothesis (mean, variance)
        params: Analysis parameters, used to range-check trial values

    Returns:
        BayesFactorResult with BF10, BF01, log BF10 and the Jeffreys label.
        Identical hypotheses give BF10 = 1 exactly.
    """
    values = trial_values(trials, params, what="Bayes factor")
    n = int(values.size)
    sample_mean = float(values.mean())
    sum_of_squares = float(np.sum((values - sample_mean) ** 2))

    log_bf10 = log_marginal_likelihood(
        n, sample_mean, sum_of_squares, alternative
    ) - log_marginal_likelihood(n, sample_mean, sum_of_squares, null)
    bf10 = _safe_exp(log_bf10)

    if alternative.mean > null.mean:
        hypothesis = "alternative_greater"
    elif alternative.mean < null.mean:
        hypothesis = "alternative_less"
    else:
        hypothesis = "alternative_different"

    logger.debug("Bayes factor over %d trials: log BF10 = %.4f", n, log_bf10)
    return BayesFactorResult(
        bf10=bf10,
        bf01=_safe_exp(-log_bf10),
        log_bf10=log_bf10,
        interpretation=jeffreys_label(bf10),
        hypothesis=hypothesis,
        sample_size=n,
    )


def posterior_distribution(
    trials: Sequence[Trial],
    prior: PriorDistribution,
    params: Optional[AnalysisParameters] = None,
) -> PosteriorDistribution:
    """Normal–Normal conjugate update of a prior over the trial mean.

    The prior needs ``mean`` and ``variance`` parameters; ``known_variance``
    sets the data variance, otherwise the sample variance is used (which needs
    at least 2 trials). Posterior precision = prior precision + n / data
    variance.

    Raises:
        UnsupportedPriorType: If the prior family is not ``"normal"``.
    """
    if prior.family != "normal":
        raise UnsupportedPriorType(
            f"Only normal priors have a conjugate update here, got {prior.family!r}"
        )
    try:
        prior_mean = float(prior.parameters["mean"])
        prior_variance = float(prior.parameters["variance"])
    except KeyError as exc:
        raise InvalidArgument(f"Normal prior is missing parameter {exc}") from None
    if not (prior_variance > 0):
        raise InvalidArgument(f"Prior variance must be positive, got {prior_variance}")

    values = trial_values(trials, params, what="posterior update")
    n = int(values.size)
    known = prior.parameters.get("known_variance")
    if known is not None:
        data_variance = float(known)
    else:
        if n < 2:
            raise InsufficientData(
                "posterior update",
                required=2,
                actual=n,
                detail="sample variance needed without known_variance",
            )
        data_variance = moments.variance(values)
    if not (data_variance > 0):
        raise InvalidArgument(f"Data variance must be positive, got {data_variance}")

    prior_precision = 1 / prior_variance
    data_precision = n / data_variance
    posterior_precision = prior_precision + data_precision
    posterior_mean = (
        prior_precision * prior_mean + data_precision * float(values.mean())
    ) / posterior_precision

    return PosteriorDistribution(
        family="normal",
        parameters={"mean": posterior_mean, "variance": 1 / posterior_precision},
        sample_size=n,
    )


def credible_interval(
    posterior: PosteriorDistribution, level: float = 0.95
) -> Interval:
    """Symmetric credible interval of a normal posterior.

    Raises:
        UnsupportedDistribution: If the posterior is not normal.
    """
    if posterior.family != "normal":
        raise UnsupportedDistribution(
            f"Credible intervals are only available for normal posteriors, got {posterior.family!r}"
        )
    if not (0 < level < 1):
        raise InvalidArgument(f"Credible level must be in (0, 1), got {level}")
    margin = normal_inverse(1 - (1 - level) / 2) * posterior.standard_deviation
    return (posterior.mean - margin, posterior.mean + margin)


def bayesian_analysis(
    trials: Sequence[Trial],
    prior: PriorDistribution,
    *,
    null: Optional[Hypothesis] = None,
    alternative: Optional[Hypothesis] = None,
    params: Optional[AnalysisParameters] = None,
) -> BayesianResult:
    """Posterior, credible interval and (optionally) a Bayes factor in one result.

    The credible level is ``params.confidence_level``. A Bayes factor is
    included when both hypotheses are given.
    """
    params = params if params is not None else AnalysisParameters()
    posterior = posterior_distribution(trials, prior, params)
    bayes_factor = None
    if null is not None and alternative is not None:
        bayes_factor = calculate_bayes_factor(trials, null, alternative, params)
    return BayesianResult(
        prior=prior,
        posterior=posterior,
        credible_interval=credible_interval(posterior, params.confidence_level),
        credible_level=params.confidence_level,
        bayes_factor=bayes_factor,
    )
