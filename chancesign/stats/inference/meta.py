"""
chancesign.stats.inference.meta
===============================

Fixed- and random-effects meta-analysis of per-session effect sizes.

Each session contributes an `EffectSizeData` (standardized mean shift and
its standard error). Fixed-effects pooling uses inverse-variance weights;
random-effects pooling adds the DerSimonian–Laird between-session variance τ²
to every study variance before weighting. Heterogeneity is reported as
Cochran's Q, I² and Q's chi-square p-value.

Examples
--------
>>> from chancesign.stats.inference.meta import effect_size_data, fixed_effects_meta_analysis
>>> study = effect_size_data("s1", effect_size=0.12, standard_error=0.05)
>>> pooled = fixed_effects_meta_analysis([study])
>>> pooled.pooled_effect_size, pooled.pooled_standard_error
(0.12, 0.05)
"""

from __future__ import annotations
import logging
import math
from dataclasses import replace
from typing import List, Literal, Mapping, Optional, Sequence, Tuple

from chancesign.config import AnalysisParameters
from chancesign.core.results import (
    EffectSizeData,
    ForestPlotData,
    Interval,
    MetaAnalysisResult,
)
from chancesign.core.trials import Trial, trial_values
from chancesign.errors import EmptyInput, InvalidArgument
from chancesign.stats.common.distributions import (
    chi_square_probability,
    normal_inverse,
    normal_probability,
)

logger = logging.getLogger(__name__)

FOREST_PADDING = 0.1


def _critical(level: float) -> float:
    return normal_inverse(1 - (1 - level) / 2)


def effect_size_data(
    session_id: str,
    effect_size: float,
    standard_error: float,
    *,
    sample_size: int = 0,
    level: float = 0.95,
) -> EffectSizeData:
    """Package one study's effect with its interval and inverse-variance weight."""
    if not (standard_error > 0) or not math.isfinite(standard_error):
        raise InvalidArgument(
            f"standard_error must be positive and finite, got {standard_error}"
        )
    margin = _critical(level) * standard_error
    return EffectSizeData(
        session_id=session_id,
        effect_size=effect_size,
        standard_error=standard_error,
        confidence_interval=(effect_size - margin, effect_size + margin),
        weight=1 / standard_error**2,
        sample_size=sample_size,
    )


def session_effect_size(
    session_id: str,
    trials: Sequence[Trial],
    params: Optional[AnalysisParameters] = None,
) -> EffectSizeData:
    """Standardized mean shift of one session: d = (x̄ - μ)/σ with SE = 1/sqrt(n)."""
    params = params if params is not None else AnalysisParameters()
    values = trial_values(trials, params, what=f"session {session_id} effect size")
    n = int(values.size)
    d = (float(values.mean()) - params.expected_mean) / params.expected_standard_deviation
    return effect_size_data(
        session_id,
        d,
        1 / math.sqrt(n),
        sample_size=n,
        level=params.confidence_level,
    )


def effects_from_sessions(
    sessions: Mapping[str, Sequence[Trial]],
    params: Optional[AnalysisParameters] = None,
) -> List[EffectSizeData]:
    """Effect sizes for every session, in mapping order."""
    return [session_effect_size(sid, trials, params) for sid, trials in sessions.items()]


def heterogeneity(
    studies: Sequence[EffectSizeData], pooled_effect: float
) -> Tuple[float, float, float]:
    """Return Cochran's Q, I² (percent) and Q's chi-square p-value.

    I² is 0 when Q is 0; with a single study (df = 0) the p-value is 1.
    """
    q = sum(s.weight * (s.effect_size - pooled_effect) ** 2 for s in studies)
    df = len(studies) - 1
    i_squared = max(0.0, (q - df) / q) * 100 if q > 0 else 0.0
    p_value = chi_square_probability(q, df) if df >= 1 else 1.0
    return q, i_squared, p_value


def _pool(
    studies: Sequence[EffectSizeData], weights: Sequence[float]
) -> Tuple[float, float]:
    if len(studies) == 1:
        # A single study is its own pooled estimate.
        return studies[0].effect_size, studies[0].standard_error
    total = sum(weights)
    pooled = sum(w * s.effect_size for w, s in zip(weights, studies)) / total
    return pooled, math.sqrt(1 / total)


def forest_plot_data(
    studies: Sequence[EffectSizeData],
    pooled_effect: float,
    pooled_interval: Interval,
    significance_level: float = 0.05,
) -> ForestPlotData:
    """Studies plus pooled estimate, with an x-axis range padded by 10% each side."""
    lows = [s.confidence_interval[0] for s in studies] + [pooled_interval[0]]
    highs = [s.confidence_interval[1] for s in studies] + [pooled_interval[1]]
    low, high = min(lows), max(highs)
    span = high - low
    padding = FOREST_PADDING * span if span > 0 else FOREST_PADDING
    return ForestPlotData(
        studies=tuple(studies),
        pooled_effect=pooled_effect,
        pooled_confidence_interval=pooled_interval,
        x_axis_range=(low - padding, high + padding),
        significance_level=significance_level,
    )


def _validated(studies: Sequence[EffectSizeData]) -> List[EffectSizeData]:
    if len(studies) == 0:
        raise EmptyInput("meta-analysis")
    for study in studies:
        if not (study.standard_error > 0) or not math.isfinite(study.standard_error):
            raise InvalidArgument(
                f"Study {study.session_id!r} has invalid standard error {study.standard_error}"
            )
    return list(studies)


def _result(
    model: Literal["fixed", "random"],
    studies: List[EffectSizeData],
    weights: List[float],
    q: float,
    i_squared: float,
    q_p_value: float,
    tau_squared: float,
    params: AnalysisParameters,
) -> MetaAnalysisResult:
    pooled, se = _pool(studies, weights)
    margin = params.critical_value * se
    interval = (pooled - margin, pooled + margin)
    z = pooled / se
    weighted = [replace(s, weight=w) for s, w in zip(studies, weights)]
    logger.debug(
        "%s-effects pooling of %d studies: %.4f ± %.4f (I² %.1f%%)",
        model,
        len(studies),
        pooled,
        se,
        i_squared,
    )
    return MetaAnalysisResult(
        model=model,
        pooled_effect_size=pooled,
        pooled_standard_error=se,
        pooled_confidence_interval=interval,
        z_score=z,
        p_value=normal_probability(z),
        heterogeneity_q=q,
        heterogeneity_i2=i_squared,
        heterogeneity_p_value=q_p_value,
        tau_squared=tau_squared,
        individual_effects=tuple(weighted),
        forest_plot_data=forest_plot_data(
            weighted, pooled, interval, params.significance_level
        ),
    )


def fixed_effects_meta_analysis(
    studies: Sequence[EffectSizeData],
    params: Optional[AnalysisParameters] = None,
) -> MetaAnalysisResult:
    """Inverse-variance weighted pooling assuming one common true effect.

    With a single study the pooled effect and standard error are that study's
    own values.
    """
    params = params if params is not None else AnalysisParameters()
    studies = _validated(studies)
    weights = [1 / s.standard_error**2 for s in studies]
    pooled, _ = _pool(studies, weights)
    q, i_squared, q_p_value = heterogeneity(
        [replace(s, weight=w) for s, w in zip(studies, weights)], pooled
    )
    return _result("fixed", studies, weights, q, i_squared, q_p_value, 0.0, params)


def dersimonian_laird_tau_squared(
    studies: Sequence[EffectSizeData], q: float
) -> float:
    """Between-study variance τ² = max(0, (Q - df) / C)."""
    weights = [1 / s.standard_error**2 for s in studies]
    total = sum(weights)
    c = total - sum(w * w for w in weights) / total
    if c <= 0:
        return 0.0
    return max(0.0, (q - (len(studies) - 1)) / c)


def random_effects_meta_analysis(
    studies: Sequence[EffectSizeData],
    params: Optional[AnalysisParameters] = None,
) -> MetaAnalysisResult:
    """DerSimonian–Laird random-effects pooling.

    Heterogeneity statistics come from the fixed-effects fit; studies are then
    re-weighted by 1 / (SE² + τ²).
    """
    params = params if params is not None else AnalysisParameters()
    studies = _validated(studies)
    fixed_weights = [1 / s.standard_error**2 for s in studies]
    fixed_pooled, _ = _pool(studies, fixed_weights)
    q, i_squared, q_p_value = heterogeneity(
        [replace(s, weight=w) for s, w in zip(studies, fixed_weights)], fixed_pooled
    )
    tau_squared = dersimonian_laird_tau_squared(studies, q)
    weights = [1 / (s.standard_error**2 + tau_squared) for s in studies]
    return _result(
        "random", studies, weights, q, i_squared, q_p_value, tau_squared, params
    )
