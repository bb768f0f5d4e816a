"""
chancesign.stats.realtime
=========================

Live-monitoring analyses.

`RunningStatistics` is the one stateful object in the package: an O(1)
per-trial accumulator (Welford's algorithm) owned by a single monitoring
session. It must not be shared between concurrent sessions without external
synchronization; call `reset()` to start over.

The remaining functions are pure analyses used alongside it:

- `current_significance`: where the session stands right now
- `detect_trend`: drift across consecutive windows and CUSUM change points
- `assess_data_quality`: pattern and integrity checks on the raw stream

Examples
--------
>>> from datetime import datetime, timezone
>>> from chancesign.core.trials import trials_from_values
>>> from chancesign.stats.realtime import RunningStatistics
>>> stats = RunningStatistics()
>>> stats.update_many(trials_from_values([98, 102, 104], start=datetime(2024, 1, 1, tzinfo=timezone.utc)))
>>> stats.count, stats.mean, stats.cumulative_deviation
(3, 101.33333333333333, 4.0)
"""

from __future__ import annotations
import logging
import math
from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

import numpy as np
from scipy.stats import binom

from chancesign.config import AnalysisParameters
from chancesign.core.results import (
    ChangePoint,
    QualityAssessment,
    RunningStatsSnapshot,
    SignificanceInterpretation,
    SignificanceResult,
    TrendAnalysis,
)
from chancesign.core.trials import Trial
from chancesign.errors import EmptyInput, InsufficientData, InvalidArgument
from chancesign.stats.common import moments
from chancesign.stats.common.distributions import normal_probability, t_distribution_probability
from chancesign.stats.common.effect_sizes import z_test_power

logger = logging.getLogger(__name__)

CUSUM_REFERENCE = 0.5
CUSUM_DECISION = 5.0
OUTLIER_Z = 4.0
STUCK_RUN = 5
GAP_MULTIPLE = 3.0
PATTERN_Z = 3.0


class RunningStatistics:
    """Welford accumulator over a live trial stream.

    Tracks count, mean, sample variance, extremes, the cumulative deviation
    from ``params.expected_mean`` and the time of the last update.
    """

    def __init__(self, params: Optional[AnalysisParameters] = None):
        self.params = params if params is not None else AnalysisParameters()
        self.reset()

    def reset(self) -> None:
        """Drop all accumulated state."""
        self.count = 0
        self.mean = 0.0
        self._m2 = 0.0
        self.minimum = math.inf
        self.maximum = -math.inf
        self.cumulative_deviation = 0.0
        self.last_updated: Optional[datetime] = None

    def update(self, trial: Trial) -> None:
        value = float(trial.value)
        if value > self.params.bits_per_trial:
            raise InvalidArgument(
                f"Trial value {trial.value} exceeds bits_per_trial={self.params.bits_per_trial}"
            )
        self.count += 1
        delta = value - self.mean
        self.mean += delta / self.count
        self._m2 += delta * (value - self.mean)
        self.minimum = min(self.minimum, value)
        self.maximum = max(self.maximum, value)
        self.cumulative_deviation += value - self.params.expected_mean
        self.last_updated = trial.timestamp

    def update_many(self, trials: Iterable[Trial]) -> None:
        for trial in trials:
            self.update(trial)

    @property
    def variance(self) -> float:
        if self.count < 2:
            return 0.0
        return max(0.0, self._m2 / (self.count - 1))

    @property
    def standard_deviation(self) -> float:
        return math.sqrt(self.variance)

    @property
    def z_score(self) -> float:
        """Cumulative-deviation Z against the reference standard deviation."""
        if self.count == 0:
            return 0.0
        return self.cumulative_deviation / (
            self.params.expected_standard_deviation * math.sqrt(self.count)
        )

    def snapshot(self) -> RunningStatsSnapshot:
        """Immutable copy of the current state."""
        empty = self.count == 0
        return RunningStatsSnapshot(
            count=self.count,
            mean=self.mean,
            variance=self.variance,
            standard_deviation=self.standard_deviation,
            minimum=0.0 if empty else self.minimum,
            maximum=0.0 if empty else self.maximum,
            cumulative_deviation=self.cumulative_deviation,
            z_score=self.z_score,
            last_updated=self.last_updated,
        )


def interpret_p_value(p_value: float) -> SignificanceInterpretation:
    if p_value < 0.01:
        return "highly_significant"
    if p_value < 0.05:
        return "significant"
    if p_value < 0.1:
        return "marginally_significant"
    return "random"


def current_significance(
    trials: Sequence[Trial], params: Optional[AnalysisParameters] = None
) -> SignificanceResult:
    """Z-test of the session so far, with effect size and observed power."""
    params = params if params is not None else AnalysisParameters()
    if len(trials) == 0:
        raise EmptyInput("current significance")
    stats = RunningStatistics(params)
    stats.update_many(trials)

    n = stats.count
    standard_error = params.expected_standard_deviation / math.sqrt(n)
    z = (stats.mean - params.expected_mean) / standard_error
    p_value = normal_probability(z)
    effect = (stats.mean - params.expected_mean) / params.expected_standard_deviation
    margin = params.critical_value * standard_error
    return SignificanceResult(
        z_score=z,
        p_value=p_value,
        effect_size=effect,
        confidence_interval=(stats.mean - margin, stats.mean + margin),
        interpretation=interpret_p_value(p_value),
        power=z_test_power(effect, n, params.significance_level),
        sample_size=n,
    )


def cusum_change_points(
    trials: Sequence[Trial],
    params: AnalysisParameters,
    *,
    reference: float = CUSUM_REFERENCE,
    decision: float = CUSUM_DECISION,
) -> List[ChangePoint]:
    """Two-sided tabular CUSUM on standardized values.

    A change point is emitted when either side exceeds ``decision`` (in
    standard units); both sides then restart from zero.
    """
    upper = lower = 0.0
    points: List[ChangePoint] = []
    for i, trial in enumerate(trials):
        z = (trial.value - params.expected_mean) / params.expected_standard_deviation
        upper = max(0.0, upper + z - reference)
        lower = max(0.0, lower - z - reference)
        if upper > decision or lower > decision:
            direction = "up" if upper > decision else "down"
            points.append(
                ChangePoint(
                    index=i,
                    timestamp=trial.timestamp,
                    direction=direction,
                    magnitude=upper if direction == "up" else lower,
                )
            )
            upper = lower = 0.0
    return points


def detect_trend(
    trials: Sequence[Trial],
    window_size: int = 100,
    params: Optional[AnalysisParameters] = None,
) -> TrendAnalysis:
    """Trend of consecutive window means, plus CUSUM change points.

    The stream is cut into consecutive non-overlapping windows of
    ``window_size`` trials (a trailing partial window is ignored). Window means
    are regressed on window index; the slope is in trial-value units per
    window. Requires at least 3 full windows.
    """
    params = params if params is not None else AnalysisParameters()
    if window_size < 1:
        raise InvalidArgument(f"window_size must be positive, got {window_size}")
    windows = len(trials) // window_size
    if windows < 3:
        raise InsufficientData(
            "trend detection", required=3 * window_size, actual=len(trials)
        )

    values = np.fromiter((t.value for t in trials), dtype=float, count=len(trials))
    means = values[: windows * window_size].reshape(windows, window_size).mean(axis=1)
    fit = moments.linear_regression(np.arange(windows, dtype=float), means)
    if fit.slope_standard_error == 0:
        p_value = 1.0 if fit.slope == 0 else 0.0
    else:
        p_value = t_distribution_probability(
            fit.slope / fit.slope_standard_error, fit.degrees_of_freedom
        )
    if p_value < 0.05:
        direction = "increasing" if fit.slope > 0 else "decreasing"
    else:
        direction = "stable"

    return TrendAnalysis(
        window_size=window_size,
        window_means=tuple(float(m) for m in means),
        slope=fit.slope,
        slope_p_value=p_value,
        direction=direction,
        change_points=tuple(cusum_change_points(trials, params)),
    )


def _longest_repeat(values: np.ndarray) -> int:
    longest = current = 1
    for previous, value in zip(values[:-1], values[1:]):
        current = current + 1 if value == previous else 1
        longest = max(longest, current)
    return longest


def _turning_point_z(values: np.ndarray) -> tuple[float, float]:
    """Return (turning-point rate, its Z against 2/3) over points with distinct neighbours."""
    left, middle, right = values[:-2], values[1:-1], values[2:]
    usable = (left != middle) & (middle != right)
    n = int(usable.sum())
    if n < 3:
        return 2 / 3, 0.0
    turning = ((middle > left) & (middle > right)) | ((middle < left) & (middle < right))
    count = int((turning & usable).sum())
    rate = count / n
    z = (count - 2 * n / 3) / math.sqrt((16 * n - 29) / 90)
    return rate, z


_ISSUE_ADVICE = {
    "excessive_repeats": "Consecutive identical values are too frequent; check for a stalled or buffered source.",
    "stuck_values": "The source repeated one value many times in a row; check the hardware connection.",
    "alternation_pattern": "Values rise and fall in an unnatural rhythm; check for oscillation in the source.",
    "temporal_gaps": "Gaps in the trial timeline; check the collection loop for stalls.",
    "duplicate_sequence_numbers": "Duplicate sequence numbers; check that trials are not recorded twice.",
    "out_of_range_values": "Values outside [0, N]; check the bits-per-trial configuration.",
    "outliers": "Values beyond four standard deviations; inspect the affected trials.",
}


def assess_data_quality(
    trials: Sequence[Trial],
    params: Optional[AnalysisParameters] = None,
    *,
    expected_interval: Optional[timedelta] = None,
) -> QualityAssessment:
    """Pattern and integrity checks on a raw trial stream.

    Patterns: frequency of identical consecutive values against the binomial
    expectation, the longest identical run, and the turning-point rate
    (2/3 for an independent stream). Integrity: gaps longer than three times
    ``expected_interval`` (default: the median gap), duplicate
    (session, sequence number) pairs, values above ``bits_per_trial``, and
    values beyond four reference standard deviations.

    The score is the fraction of the seven checks without an issue.
    Requires at least 3 trials.
    """
    params = params if params is not None else AnalysisParameters()
    if len(trials) == 0:
        raise EmptyInput("data quality assessment")
    if len(trials) < 3:
        raise InsufficientData("data quality assessment", required=3, actual=len(trials))

    values = np.fromiter((t.value for t in trials), dtype=float, count=len(trials))
    n = values.size

    repeats = int(np.count_nonzero(values[1:] == values[:-1]))
    repeat_fraction = repeats / (n - 1)
    support = np.arange(params.bits_per_trial + 1)
    expected_repeat = float(np.sum(binom.pmf(support, params.bits_per_trial, 0.5) ** 2))
    repeat_sd = math.sqrt(expected_repeat * (1 - expected_repeat) / (n - 1))
    longest = _longest_repeat(values)
    alternation_rate, turning_z = _turning_point_z(values)

    times = sorted(t.timestamp for t in trials)
    gaps = [(b - a).total_seconds() for a, b in zip(times[:-1], times[1:])]
    interval = (
        expected_interval.total_seconds()
        if expected_interval is not None
        else float(np.median(gaps))
    )
    temporal_gaps = (
        sum(1 for g in gaps if g > GAP_MULTIPLE * interval) if interval > 0 else 0
    )

    keys = Counter((t.session_id, t.sequence_number) for t in trials)
    duplicates = sum(count - 1 for count in keys.values() if count > 1)
    out_of_range = int(np.count_nonzero(values > params.bits_per_trial))
    z = np.abs(values - params.expected_mean) / params.expected_standard_deviation
    outliers = int(np.count_nonzero(z > OUTLIER_Z))

    issues: List[str] = []
    if repeat_sd > 0 and (repeat_fraction - expected_repeat) / repeat_sd > PATTERN_Z:
        issues.append("excessive_repeats")
    if longest >= STUCK_RUN:
        issues.append("stuck_values")
    if abs(turning_z) > PATTERN_Z:
        issues.append("alternation_pattern")
    if temporal_gaps:
        issues.append("temporal_gaps")
    if duplicates:
        issues.append("duplicate_sequence_numbers")
    if out_of_range:
        issues.append("out_of_range_values")
    if outliers:
        issues.append("outliers")

    if issues:
        logger.warning("data quality issues over %d trials: %s", n, ", ".join(issues))
    return QualityAssessment(
        score=1 - len(issues) / len(_ISSUE_ADVICE),
        repeat_fraction=repeat_fraction,
        alternation_rate=alternation_rate,
        longest_repeat=longest,
        temporal_gaps=temporal_gaps,
        duplicate_sequence_numbers=duplicates,
        out_of_range=out_of_range,
        outliers=outliers,
        issues=tuple(issues),
        recommendations=tuple(_ISSUE_ADVICE[i] for i in issues),
    )
