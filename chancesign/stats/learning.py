"""
chancesign.stats.learning
=========================

Learning curves across sessions, and simple per-trial stream models.

Session performance is the standardized mean shift of the session,
d = (x̄ - μ)/σ, the same effect size that meta-analysis pools. Every
function here is deterministic: the same trials always give the same result.

- `detect_anomalies`: per-trial z or interquartile-range scores
- `forecast_time_series`: simple exponential smoothing with a flat forecast
- `analyze_learning_curve`: performance by session, its trend and plateau
- `feature_importance`: which session features track performance

Sessions are passed as a mapping of session id to trials, or as one flat
trial sequence split by ``Trial.session_id``.

Examples
--------
>>> from datetime import datetime, timezone
>>> from chancesign.core.trials import trials_from_values
>>> from chancesign.stats.learning import detect_anomalies
>>> trials = trials_from_values(
...     [100, 101, 99, 100, 100, 101, 99, 100, 100, 130],
...     start=datetime(2024, 1, 1, tzinfo=timezone.utc),
... )
>>> detect_anomalies(trials, threshold=2.5).indices
(9,)
"""

from __future__ import annotations
import logging
import math
from typing import Dict, List, Literal, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.signal import lfilter

from chancesign.config import AnalysisParameters
from chancesign.core.names import IntentionTag
from chancesign.core.results import (
    AnomalyDetection,
    FeatureImportance,
    Forecast,
    LearningCurveAnalysis,
    LearningCurvePoint,
    SkillLevel,
    TrendDirection,
)
from chancesign.core.trials import Trial, split_by_session, trial_values
from chancesign.errors import EmptyInput, InsufficientData, InvalidArgument
from chancesign.stats.common import moments
from chancesign.stats.common.distributions import normal_inverse, t_distribution_probability
from chancesign.stats.inference.meta import session_effect_size

logger = logging.getLogger(__name__)

Sessions = Union[Sequence[Trial], Mapping[str, Sequence[Trial]]]

DEFAULT_THRESHOLDS: Dict[str, float] = {"z": 3.0, "iqr": 1.5}
PLATEAU_WINDOW = 10
PLATEAU_TOLERANCE = 0.01
# Lowest cumulative performance (effect size d) reaching each level.
SKILL_LEVELS: Tuple[Tuple[float, SkillLevel], ...] = (
    (0.05, "expert"),
    (0.02, "advanced"),
    (-0.01, "intermediate"),
)
INTENTION_DIRECTION: Dict[IntentionTag, float] = {
    IntentionTag.POSITIVE: 1.0,
    IntentionTag.NEUTRAL: 0.0,
    IntentionTag.NEGATIVE: -1.0,
}
SESSION_FEATURES = ("duration", "trial_count", "time_of_day", "intention")


def _params(params: Optional[AnalysisParameters]) -> AnalysisParameters:
    return params if params is not None else AnalysisParameters()


def _session_groups(sessions: Sessions) -> Dict[str, Sequence[Trial]]:
    groups = dict(sessions) if isinstance(sessions, Mapping) else split_by_session(sessions)
    if not groups:
        raise EmptyInput("session list")
    for session_id, trials in groups.items():
        if len(trials) == 0:
            raise EmptyInput(f"session {session_id}")
    return groups


def _chronological(sessions: Sessions) -> List[Tuple[str, Sequence[Trial]]]:
    """Sessions ordered by their first trial; ties keep input order."""
    groups = _session_groups(sessions)
    return sorted(groups.items(), key=lambda item: min(t.timestamp for t in item[1]))


# --------------------------------------------------------------------------
# Per-trial models
# --------------------------------------------------------------------------


def detect_anomalies(
    trials: Sequence[Trial],
    threshold: Optional[float] = None,
    params: Optional[AnalysisParameters] = None,
    *,
    method: Literal["z", "iqr"] = "z",
) -> AnomalyDetection:
    """Score every trial by its distance from the bulk of the stream.

    ``method="z"`` scores |x - x̄|/s with the sample standard deviation
    (default threshold 3). ``method="iqr"`` scores the distance beyond the
    nearer quartile in interquartile ranges (Tukey fences, default threshold
    1.5). A trial is anomalous when its score exceeds ``threshold``.
    """
    if method not in DEFAULT_THRESHOLDS:
        raise InvalidArgument(f"Unknown anomaly method {method!r}; expected 'z' or 'iqr'")
    if threshold is None:
        threshold = DEFAULT_THRESHOLDS[method]
    if not threshold > 0:
        raise InvalidArgument(f"threshold must be positive, got {threshold}")
    values = trial_values(trials, _params(params), what="anomaly detection")
    if values.size < 2:
        raise InsufficientData("anomaly detection", required=2, actual=int(values.size))

    if method == "z":
        center = float(values.mean())
        spread = moments.standard_deviation(values)
        distance = np.abs(values - center)
    else:
        q1, center, q3 = (float(q) for q in np.percentile(values, [25, 50, 75]))
        spread = q3 - q1
        distance = np.maximum(np.maximum(q1 - values, values - q3), 0.0)
    if spread > 0:
        scores = distance / spread
    else:
        # No spread: any distance at all is unbounded.
        scores = np.where(distance > 0, math.inf, 0.0)

    indices = tuple(int(i) for i in np.flatnonzero(scores > threshold))
    if indices:
        logger.info(
            "%d of %d trials anomalous (%s score > %.2f)",
            len(indices),
            values.size,
            method,
            threshold,
        )
    return AnomalyDetection(
        method=method,
        threshold=float(threshold),
        center=center,
        spread=spread,
        scores=tuple(float(s) for s in scores),
        indices=indices,
    )


def forecast_time_series(
    trials: Sequence[Trial],
    steps: int = 10,
    alpha: float = 0.3,
    params: Optional[AnalysisParameters] = None,
) -> Forecast:
    """Simple exponential smoothing of trial values.

    s₀ = x₀ and sₜ = α·xₜ + (1 - α)·sₜ₋₁. The forecast is flat at the last
    smoothed level for ``steps`` trials ahead. Its interval half-width is the
    normal quantile for ``params.confidence_level`` times the sample standard
    deviation of the one-step-ahead errors xₜ - sₜ₋₁. Requires 3 trials.
    """
    params = _params(params)
    if steps < 1:
        raise InvalidArgument(f"steps must be positive, got {steps}")
    if not (0 < alpha <= 1):
        raise InvalidArgument(f"alpha must be in (0, 1], got {alpha}")
    values = trial_values(trials, params, what="forecasting")
    if values.size < 3:
        raise InsufficientData("forecasting", required=3, actual=int(values.size))

    smoothed, _ = lfilter([alpha], [1.0, alpha - 1.0], values, zi=[(1 - alpha) * values[0]])
    errors = values[1:] - smoothed[:-1]
    residual_sd = moments.standard_deviation(errors)
    margin = normal_inverse((1 + params.confidence_level) / 2) * residual_sd
    level = float(smoothed[-1])
    return Forecast(
        alpha=alpha,
        level=level,
        smoothed=tuple(float(s) for s in smoothed),
        forecast=(level,) * steps,
        margin=margin,
        intervals=((level - margin, level + margin),) * steps,
        residual_standard_deviation=residual_sd,
    )


# --------------------------------------------------------------------------
# Learning curves
# --------------------------------------------------------------------------


def skill_level(performance: float) -> SkillLevel:
    for lower, level in SKILL_LEVELS:
        if performance > lower:
            return level
    return "novice"


def _half_difference(performances: np.ndarray) -> float:
    """Mean of the later half minus mean of the earlier half."""
    if performances.size < 2:
        return 0.0
    half = performances.size // 2
    return float(performances[half:].mean() - performances[:half].mean())


def detect_plateau(
    performances: Sequence[float], tolerance: float = PLATEAU_TOLERANCE
) -> Optional[int]:
    """First session number whose following window mean stays within
    ``tolerance`` of the preceding window mean, or None.

    Both windows hold min(10, n // 3) sessions.
    """
    perf = np.asarray(performances, dtype=float)
    n = int(perf.size)
    window = min(PLATEAU_WINDOW, n // 3)
    if window < 1:
        return None
    for i in range(window, n - window + 1):
        before = perf[i - window : i].mean()
        after = perf[i : i + window].mean()
        if abs(after - before) < tolerance:
            return i + 1
    return None


def _learning_trend(
    performances: np.ndarray, alpha: float
) -> Tuple[float, float, TrendDirection, float]:
    """Slope per session, its p-value, direction and the next fitted value."""
    n = int(performances.size)
    if n == 1:
        return 0.0, 1.0, "stable", float(performances[0])
    if n == 2:
        rate = float(performances[1] - performances[0])
        return rate, 1.0, "stable", float(performances[1]) + rate
    fit = moments.linear_regression(np.arange(n, dtype=float), performances)
    if fit.slope_standard_error == 0:
        p_value = 1.0 if fit.slope == 0 else 0.0
    else:
        p_value = t_distribution_probability(
            fit.slope / fit.slope_standard_error, fit.degrees_of_freedom
        )
    if p_value < alpha:
        direction: TrendDirection = "increasing" if fit.slope > 0 else "decreasing"
    else:
        direction = "stable"
    return fit.slope, p_value, direction, fit.intercept + fit.slope * n


def analyze_learning_curve(
    sessions: Sessions,
    params: Optional[AnalysisParameters] = None,
    *,
    plateau_tolerance: float = PLATEAU_TOLERANCE,
) -> LearningCurveAnalysis:
    """Session performance over time, in order of each session's first trial.

    Each point carries the session's effect size, the running mean of effect
    sizes, the running learning rate (later-half mean minus earlier-half mean)
    and a skill level from the running mean.

    The overall learning rate is the OLS slope of performance on session
    number, tested with df = sessions - 2; the trend is increasing or
    decreasing when that slope is significant at ``params.significance_level``.
    With two sessions the rate is their difference and the trend is stable.

    ``predicted_plateau`` is the mean performance since the plateau began when
    one is detected, otherwise the fitted performance of the next session.
    """
    params = _params(params)
    ordered = _chronological(sessions)
    performances = np.array(
        [session_effect_size(sid, trials, params).effect_size for sid, trials in ordered]
    )

    points: List[LearningCurvePoint] = []
    for i, (session_id, trials) in enumerate(ordered):
        so_far = performances[: i + 1]
        cumulative = float(so_far.mean())
        points.append(
            LearningCurvePoint(
                session_number=i + 1,
                session_id=session_id,
                started_at=min(t.timestamp for t in trials),
                performance=float(performances[i]),
                cumulative_performance=cumulative,
                learning_rate=_half_difference(so_far),
                skill_level=skill_level(cumulative),
            )
        )

    rate, p_value, direction, next_value = _learning_trend(
        performances, params.significance_level
    )
    plateau_start = detect_plateau(performances, plateau_tolerance)
    if plateau_start is not None:
        predicted = float(performances[plateau_start - 1 :].mean())
        logger.info("learning plateau from session %d at d=%.4f", plateau_start, predicted)
    else:
        predicted = next_value
    return LearningCurveAnalysis(
        points=tuple(points),
        overall_learning_rate=rate,
        learning_rate_p_value=p_value,
        improvement_trend=direction,
        plateau_detected=plateau_start is not None,
        plateau_start=plateau_start,
        predicted_plateau=predicted,
    )


def _session_features(trials: Sequence[Trial]) -> Tuple[float, float, float, float]:
    first = min(t.timestamp for t in trials)
    last = max(t.timestamp for t in trials)
    return (
        (last - first).total_seconds(),
        float(len(trials)),
        first.hour + first.minute / 60,
        float(np.mean([INTENTION_DIRECTION[t.intention] for t in trials])),
    )


def feature_importance(
    sessions: Sessions, params: Optional[AnalysisParameters] = None
) -> FeatureImportance:
    """Relative importance of session features for session performance.

    Features are duration in seconds, trial count, UTC time of day of the
    first trial (hours) and mean intention direction (+1 positive, -1
    negative, 0 neutral). Each gets its Pearson r with session performance,
    0 when either side is constant; importance is |r| normalized to sum to 1
    (all zero when no feature varies with performance). Requires 3 sessions.
    """
    params = _params(params)
    groups = _session_groups(sessions)
    if len(groups) < 3:
        raise InsufficientData("feature importance", required=3, actual=len(groups))
    performances = np.array(
        [session_effect_size(sid, trials, params).effect_size for sid, trials in groups.items()]
    )
    features = np.array([_session_features(trials) for trials in groups.values()])

    correlations: List[float] = []
    for column in features.T:
        if np.ptp(column) == 0 or np.ptp(performances) == 0:
            correlations.append(0.0)
        else:
            correlations.append(moments.linear_regression(column, performances).correlation)
    weights = np.abs(correlations)
    total = float(weights.sum())
    importance = weights / total if total > 0 else np.zeros_like(weights)
    return FeatureImportance(
        features=SESSION_FEATURES,
        correlations=tuple(correlations),
        importance=tuple(float(w) for w in importance),
    )
