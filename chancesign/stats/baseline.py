"""
chancesign.stats.baseline
=========================

Baseline calibration, drift detection and control-period comparison.

- `analyze_calibration_data`: does a current sample still match the stored
  baseline, or does the source need recalibration?
- `detect_baseline_drift`: linear drift of windowed means over calendar time
- `compare_control_periods`: pooled two-sample t-test of an intention period
  against a control period, the primary hypothesis test of a session

Examples
--------
>>> from datetime import datetime, timezone
>>> from chancesign.core.trials import trials_from_values
>>> from chancesign.stats.baseline import compare_control_periods
>>> start = datetime(2024, 1, 1, tzinfo=timezone.utc)
>>> intention = trials_from_values([101, 103, 99, 105], start=start)
>>> control = trials_from_values([100, 98, 102, 100], start=start)
>>> compare_control_periods(intention, control).mean_difference
2.0
"""

from __future__ import annotations
import logging
import math
from datetime import datetime, timedelta
from typing import List, Optional, Sequence, Tuple

import numpy as np

from chancesign.config import AnalysisParameters
from chancesign.core.results import (
    CalibrationAnalysis,
    ComparisonResult,
    DriftAnalysis,
    DriftWindow,
)
from chancesign.core.trials import Trial, trial_values
from chancesign.errors import InsufficientData, InvalidArgument
from chancesign.stats.common import moments
from chancesign.stats.common.distributions import t_distribution_probability, t_inverse
from chancesign.stats.common.effect_sizes import pooled_standard_deviation

logger = logging.getLogger(__name__)

RECALIBRATION_P_VALUE = 0.05
RECALIBRATION_STD_MULTIPLE = 2.0

MIN_DRIFT_TRIALS = 100
MIN_WINDOW_TRIALS = 10
MIN_WINDOWS = 3
PROJECTION_DAYS = 30
MAINTENANCE_P_VALUE = 0.01
MAINTENANCE_PROJECTED_DRIFT = 5.0
MAINTENANCE_DAILY_RATE = 0.5
TREND_P_VALUE = 0.05

_SECONDS_PER_DAY = 86400.0


def _params(params: Optional[AnalysisParameters]) -> AnalysisParameters:
    return params if params is not None else AnalysisParameters()


def _sample(
    trials: Sequence[Trial], params: AnalysisParameters, what: str
) -> np.ndarray:
    values = trial_values(trials, params, what=what)
    if values.size < 2:
        raise InsufficientData(what, required=2, actual=int(values.size))
    return values


def _pooled_t(
    first: np.ndarray, second: np.ndarray
) -> Tuple[float, float, float, int]:
    """Return (difference, standard error, t, df) for mean(first) - mean(second)."""
    n1, n2 = int(first.size), int(second.size)
    df = n1 + n2 - 2
    pooled = pooled_standard_deviation(
        moments.standard_deviation(first), n1, moments.standard_deviation(second), n2
    )
    difference = float(first.mean() - second.mean())
    se = pooled * math.sqrt(1 / n1 + 1 / n2)
    if se == 0:
        # Both samples constant: any difference is exact.
        t = 0.0 if difference == 0 else math.copysign(math.inf, difference)
    else:
        t = difference / se
    return difference, se, t, df


def analyze_calibration_data(
    baseline_trials: Sequence[Trial],
    current_trials: Sequence[Trial],
    params: Optional[AnalysisParameters] = None,
) -> CalibrationAnalysis:
    """Compare a current sample against the stored baseline.

    Drift is current mean minus baseline mean, tested with a pooled two-sample
    t-statistic on n1 + n2 - 2 degrees of freedom. Recalibration is flagged
    when the drift is significant (p < 0.05) or exceeds twice the baseline
    standard deviation. Each sample needs at least 2 trials.
    """
    params = _params(params)
    baseline = _sample(baseline_trials, params, "calibration baseline")
    current = _sample(current_trials, params, "calibration sample")

    drift, _, t, df = _pooled_t(current, baseline)
    p_value = t_distribution_probability(t, df)
    baseline_std = moments.standard_deviation(baseline)
    recalibrate = (
        p_value < RECALIBRATION_P_VALUE
        or abs(drift) > RECALIBRATION_STD_MULTIPLE * baseline_std
    )
    if recalibrate:
        logger.warning(
            "calibration drift %.3f (t=%.2f, p=%.4g): recalibration needed",
            drift,
            t,
            p_value,
        )
    return CalibrationAnalysis(
        baseline_mean=float(baseline.mean()),
        baseline_std=baseline_std,
        current_mean=float(current.mean()),
        current_std=moments.standard_deviation(current),
        drift=drift,
        t_statistic=t,
        degrees_of_freedom=df,
        drift_significance=p_value,
        recalibration_needed=recalibrate,
        baseline_size=int(baseline.size),
        current_size=int(current.size),
    )


def _stable(reason: str, windows: Tuple[DriftWindow, ...] = ()) -> DriftAnalysis:
    logger.info("drift analysis neutral: %s", reason)
    return DriftAnalysis(
        drift_rate=0.0,
        drift_significance=1.0,
        trend_direction="stable",
        projected_drift=0.0,
        maintenance_recommended=False,
        windows=windows,
        reason=reason,
    )


def drift_windows(
    trials: Sequence[Trial], period: timedelta, minimum_trials: int = MIN_WINDOW_TRIALS
) -> List[DriftWindow]:
    """Bucket trials into consecutive ``period``-long windows from the first trial.

    Windows holding fewer than ``minimum_trials`` trials are dropped.
    ``midpoint_days`` is measured from the first trial.
    """
    ordered = sorted(trials, key=lambda t: t.timestamp)
    origin = ordered[0].timestamp
    buckets: dict[int, List[float]] = {}
    for trial in ordered:
        index = int((trial.timestamp - origin) / period)
        buckets.setdefault(index, []).append(float(trial.value))

    windows: List[DriftWindow] = []
    for index in sorted(buckets):
        values = buckets[index]
        if len(values) < minimum_trials:
            continue
        start: datetime = origin + index * period
        end = start + period
        midpoint = (start - origin + period / 2).total_seconds() / _SECONDS_PER_DAY
        windows.append(
            DriftWindow(
                start=start,
                end=end,
                midpoint_days=midpoint,
                mean=float(np.mean(values)),
                count=len(values),
            )
        )
    return windows


def detect_baseline_drift(
    trials: Sequence[Trial],
    period_days: float = 7.0,
    params: Optional[AnalysisParameters] = None,
) -> DriftAnalysis:
    """Linear drift of window means over time.

    Trials are bucketed into ``period_days``-long windows (at least 10 trials
    each); window means are regressed on window midpoints by ordinary least
    squares and the slope is tested with df = windows - 2.

    Maintenance is recommended when the slope is significant at 0.01, the
    30-day projected drift exceeds 5 units, or the daily rate exceeds 0.5
    units; ``maintenance_reasons`` lists the triggers that fired.

    A neutral stable result, with ``reason`` set, is returned for fewer than
    100 trials, a span shorter than two periods, or fewer than 3 valid
    windows.
    """
    params = _params(params)
    if period_days <= 0:
        raise InvalidArgument(f"period_days must be positive, got {period_days}")
    if len(trials) < MIN_DRIFT_TRIALS:
        return _stable("insufficient_trials")
    trial_values(trials, params, what="drift analysis")

    period = timedelta(days=period_days)
    timestamps = [t.timestamp for t in trials]
    if max(timestamps) - min(timestamps) < 2 * period:
        return _stable("short_duration")

    windows = tuple(drift_windows(trials, period))
    if len(windows) < MIN_WINDOWS:
        return _stable("too_few_windows", windows)

    fit = moments.linear_regression(
        [w.midpoint_days for w in windows], [w.mean for w in windows]
    )
    df = fit.degrees_of_freedom
    if fit.slope_standard_error == 0:
        # Window means lie exactly on a line.
        t = 0.0 if fit.slope == 0 else math.copysign(math.inf, fit.slope)
    else:
        t = fit.slope / fit.slope_standard_error
    p_value = t_distribution_probability(t, df)

    rate = fit.slope
    projected = rate * PROJECTION_DAYS
    reasons: List[str] = []
    if p_value < MAINTENANCE_P_VALUE:
        reasons.append("significant_drift")
    if abs(projected) > MAINTENANCE_PROJECTED_DRIFT:
        reasons.append("projected_drift")
    if abs(rate) > MAINTENANCE_DAILY_RATE:
        reasons.append("daily_rate")

    if p_value < TREND_P_VALUE:
        direction = "increasing" if rate > 0 else "decreasing"
    else:
        direction = "stable"

    if reasons:
        logger.warning(
            "baseline drift %.4f/day (p=%.4g): maintenance recommended (%s)",
            rate,
            p_value,
            ", ".join(reasons),
        )
    return DriftAnalysis(
        drift_rate=rate,
        drift_significance=p_value,
        trend_direction=direction,
        projected_drift=projected,
        maintenance_recommended=bool(reasons),
        t_statistic=t,
        maintenance_reasons=tuple(reasons),
        windows=windows,
    )


def compare_control_periods(
    intention_trials: Sequence[Trial],
    control_trials: Sequence[Trial],
    params: Optional[AnalysisParameters] = None,
) -> ComparisonResult:
    """Pooled two-sample t-test of an intention period against a control period.

    Reports the mean difference (intention - control), Cohen's d with the
    pooled standard deviation, and a confidence interval for the difference
    at ``params.confidence_level`` using the t quantile. Each period needs at
    least 2 trials.
    """
    params = _params(params)
    intention = _sample(intention_trials, params, "intention period")
    control = _sample(control_trials, params, "control period")

    difference, se, t, df = _pooled_t(intention, control)
    p_value = t_distribution_probability(t, df)
    pooled = se / math.sqrt(1 / intention.size + 1 / control.size)
    effect = difference / pooled if pooled > 0 else 0.0

    margin = t_inverse(1 - (1 - params.confidence_level) / 2, df) * se
    return ComparisonResult(
        intention_mean=float(intention.mean()),
        control_mean=float(control.mean()),
        mean_difference=difference,
        standard_error=se,
        t_statistic=t,
        degrees_of_freedom=df,
        p_value=p_value,
        effect_size=effect,
        confidence_interval=(difference - margin, difference + margin),
        significant_difference=p_value < params.significance_level,
        intention_size=int(intention.size),
        control_size=int(control.size),
    )
