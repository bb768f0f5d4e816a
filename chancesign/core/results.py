"""
chancesign.core.results
=======================

Immutable result objects returned by every analysis.

Each result is a frozen dataclass computed once from its inputs and never
updated in place. Results carry a class-level ``kind`` tag naming the
analysis that produced them, and ``to_dict()`` renders them as JSON-ready
data for the ledger and reporting layers.

Examples
--------
>>> from chancesign.core.results import ZScoreResult
>>> ZScoreResult.kind
'z_score'
"""

from __future__ import annotations
import math
from collections import abc
from dataclasses import dataclass, field, fields, is_dataclass
from datetime import datetime, timedelta
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Dict, Literal, Mapping, Optional, Tuple

import numpy as np

from chancesign.core.names import Significance
from chancesign.errors import UnsupportedDistribution

Interval = Tuple[float, float]


def _jsonable(value: Any) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, timedelta):
        return value.total_seconds()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, abc.Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, np.generic):
        return value.item()
    return value


class _Result:
    """Mixin giving result dataclasses a JSON-ready dict form."""

    kind: ClassVar[str] = "result"

    def to_dict(self) -> Dict[str, Any]:
        payload = _jsonable(self)
        payload["kind"] = self.kind
        return payload


# --------------------------------------------------------------------------
# Deviation & variance
# --------------------------------------------------------------------------


@dataclass(frozen=True)
class CumulativePoint(_Result):
    """Cumulative deviation state after ``trial_index + 1`` trials."""

    kind: ClassVar[str] = "cumulative_point"

    trial_index: int
    timestamp: datetime
    cumulative_deviation: float
    running_mean: float
    z_score: float
    p_value: float
    running_variance: float


@dataclass(frozen=True)
class ExcursionPeriod(_Result):
    """A maximal same-sign run of the cumulative Z beyond the threshold.

    ``start_index`` and ``end_index`` are inclusive trial indices;
    ``peak_z_score`` keeps the sign of the excursion and ``significance`` is
    the one-tailed p-value of the peak |Z|.
    """

    kind: ClassVar[str] = "excursion"

    start_index: int
    end_index: int
    start_time: datetime
    end_time: datetime
    peak_z_score: float
    sign: int
    significance: float

    @property
    def length(self) -> int:
        return self.end_index - self.start_index + 1

    @property
    def duration(self) -> timedelta:
        return self.end_time - self.start_time


@dataclass(frozen=True)
class CumulativeResult(_Result):
    kind: ClassVar[str] = "cumulative"

    points: Tuple[CumulativePoint, ...]
    final_deviation: float
    final_z_score: float
    final_p_value: float
    max_deviation: float
    min_deviation: float
    crossings: int
    excursions: Tuple[ExcursionPeriod, ...]


@dataclass(frozen=True)
class NetworkVarianceResult(_Result):
    """Combined (squared Stouffer Z) variance of normalized trial deviations."""

    kind: ClassVar[str] = "network_variance"

    netvar: float
    degrees_of_freedom: int
    chi_square: float
    probability: float
    significance: Significance
    confidence_interval: Interval
    expected_netvar: float
    standard_error: float
    temporal_correlation: float
    stouffer_z: float
    sample_size: int
    normalized_deviations: Tuple[float, ...] = field(repr=False, default=())


@dataclass(frozen=True)
class DeviceVarianceResult(_Result):
    """Distribution of independently standardized trials against N(0, 1)."""

    kind: ClassVar[str] = "device_variance"

    device_mean: float
    device_variance: float
    skewness: float
    kurtosis: float
    drift_slope: float
    autocorrelation: float
    ks_statistic: float
    ks_p_value: float
    ad_statistic: float
    ad_p_value: float
    probability: float
    significance: Significance
    sample_size: int
    individual_z_scores: Tuple[float, ...] = field(repr=False, default=())


@dataclass(frozen=True)
class ZScoreResult(_Result):
    kind: ClassVar[str] = "z_score"

    z_score: float
    p_value: float
    p_value_one_tailed: float
    confidence_interval: Interval
    standard_error: float
    observed_mean: float
    expected_mean: float
    effect_size: float
    sample_size: int
    significance: Significance


@dataclass(frozen=True)
class EffectSizeResult(_Result):
    kind: ClassVar[str] = "effect_size"

    cohens_d: float
    hedges_g: float
    point_biserial: float
    confidence_interval: Interval
    interpretation: str
    practical_significance: bool
    sample_size: int


# --------------------------------------------------------------------------
# Randomness validation
# --------------------------------------------------------------------------


@dataclass(frozen=True)
class RandomnessTest(_Result):
    """Outcome of one test in the randomness battery.

    ``p_value`` is the raw p-value; ``adjusted_p_value`` is the value after
    the battery-wide multiple-comparison correction, and ``passed`` compares
    it against the significance level.
    """

    kind: ClassVar[str] = "randomness_test"

    name: str
    category: str
    statistic: float
    p_value: float
    adjusted_p_value: float
    passed: bool
    description: str


@dataclass(frozen=True)
class RandomnessTestResult(_Result):
    kind: ClassVar[str] = "randomness"

    tests: Tuple[RandomnessTest, ...]
    overall_score: float
    is_random_at_level: bool
    recommendations: Tuple[str, ...]
    sample_size: int
    correction: str = "none"
    skipped_tests: Tuple[str, ...] = ()

    def test(self, name: str) -> RandomnessTest:
        """Look up a test outcome by name."""
        for outcome in self.tests:
            if outcome.name == name:
                return outcome
        raise KeyError(name)

    @property
    def failed_categories(self) -> Tuple[str, ...]:
        seen: Dict[str, None] = {}
        for outcome in self.tests:
            if not outcome.passed:
                seen.setdefault(outcome.category, None)
        return tuple(seen)


# --------------------------------------------------------------------------
# Baseline & drift
# --------------------------------------------------------------------------


@dataclass(frozen=True)
class CalibrationAnalysis(_Result):
    kind: ClassVar[str] = "calibration"

    baseline_mean: float
    baseline_std: float
    current_mean: float
    current_std: float
    drift: float
    t_statistic: float
    degrees_of_freedom: int
    drift_significance: float
    recalibration_needed: bool
    baseline_size: int
    current_size: int


@dataclass(frozen=True)
class DriftWindow(_Result):
    kind: ClassVar[str] = "drift_window"

    start: datetime
    end: datetime
    midpoint_days: float
    mean: float
    count: int


TrendDirection = Literal["increasing", "decreasing", "stable"]


@dataclass(frozen=True)
class DriftAnalysis(_Result):
    """Linear drift of window means over time.

    ``reason`` is set when the result is the neutral stable result, naming
    why no regression could be fitted.
    """

    kind: ClassVar[str] = "drift"

    drift_rate: float
    drift_significance: float
    trend_direction: TrendDirection
    projected_drift: float
    maintenance_recommended: bool
    t_statistic: float = 0.0
    maintenance_reasons: Tuple[str, ...] = ()
    windows: Tuple[DriftWindow, ...] = ()
    reason: Optional[str] = None


@dataclass(frozen=True)
class ComparisonResult(_Result):
    kind: ClassVar[str] = "comparison"

    intention_mean: float
    control_mean: float
    mean_difference: float
    standard_error: float
    t_statistic: float
    degrees_of_freedom: int
    p_value: float
    effect_size: float
    confidence_interval: Interval
    significant_difference: bool
    intention_size: int
    control_size: int


# --------------------------------------------------------------------------
# Inference
# --------------------------------------------------------------------------

EvidenceLabel = Literal[
    "extreme", "very_strong", "strong", "moderate", "weak", "inconclusive"
]


@dataclass(frozen=True)
class BayesFactorResult(_Result):
    kind: ClassVar[str] = "bayes_factor"

    bf10: float
    bf01: float
    log_bf10: float
    interpretation: EvidenceLabel
    hypothesis: str
    sample_size: int


def _freeze_parameters(distribution: Any) -> None:
    # Read-only copy of the caller's mapping.
    frozen = MappingProxyType(dict(distribution.parameters))
    object.__setattr__(distribution, "parameters", frozen)


@dataclass(frozen=True)
class PriorDistribution(_Result):
    """A prior over the trial mean, e.g. ``PriorDistribution("normal", {"mean": 100, "variance": 4})``."""

    kind: ClassVar[str] = "prior"

    family: str
    parameters: Mapping[str, float]

    def __post_init__(self) -> None:
        _freeze_parameters(self)


@dataclass(frozen=True)
class PosteriorDistribution(_Result):
    kind: ClassVar[str] = "posterior"

    family: str
    parameters: Mapping[str, float]
    sample_size: int = 0

    def __post_init__(self) -> None:
        _freeze_parameters(self)

    def _normal_parameter(self, name: str) -> float:
        if self.family != "normal":
            raise UnsupportedDistribution(
                f"{name} is only defined here for normal posteriors, got {self.family!r}"
            )
        return float(self.parameters[name])

    @property
    def mean(self) -> float:
        return self._normal_parameter("mean")

    @property
    def variance(self) -> float:
        return self._normal_parameter("variance")

    @property
    def standard_deviation(self) -> float:
        return math.sqrt(self.variance)


@dataclass(frozen=True)
class BayesianResult(_Result):
    kind: ClassVar[str] = "bayesian"

    prior: PriorDistribution
    posterior: PosteriorDistribution
    credible_interval: Interval
    credible_level: float
    bayes_factor: Optional[BayesFactorResult] = None


SequentialRecommendation = Literal["continue", "stop_efficacy", "stop_futility"]


@dataclass(frozen=True)
class SequentialAnalysisResult(_Result):
    kind: ClassVar[str] = "sequential"

    current_n: int
    sample_mean: float
    log_likelihood_ratio: float
    efficacy_boundary: float
    futility_boundary: float
    recommendation: SequentialRecommendation
    next_analysis_at: Optional[int]
    z_score: float
    p_value: float
    boundary_type: str = "sprt"

    @property
    def should_stop(self) -> bool:
        return self.recommendation != "continue"


@dataclass(frozen=True)
class SampleSizeRecommendation(_Result):
    kind: ClassVar[str] = "sample_size"

    current_n: int
    required_n: int
    adjusted_effect: float
    observed_effect: Optional[float]
    target_power: float
    alpha: float

    @property
    def additional_trials(self) -> int:
        return self.required_n - self.current_n


@dataclass(frozen=True)
class EffectSizeData(_Result):
    """One study (session) entering a meta-analysis."""

    kind: ClassVar[str] = "effect_size_data"

    session_id: str
    effect_size: float
    standard_error: float
    confidence_interval: Interval
    weight: float
    sample_size: int


@dataclass(frozen=True)
class ForestPlotData(_Result):
    kind: ClassVar[str] = "forest_plot"

    studies: Tuple[EffectSizeData, ...]
    pooled_effect: float
    pooled_confidence_interval: Interval
    x_axis_range: Interval
    significance_level: float


@dataclass(frozen=True)
class MetaAnalysisResult(_Result):
    kind: ClassVar[str] = "meta_analysis"

    model: Literal["fixed", "random"]
    pooled_effect_size: float
    pooled_standard_error: float
    pooled_confidence_interval: Interval
    z_score: float
    p_value: float
    heterogeneity_q: float
    heterogeneity_i2: float
    heterogeneity_p_value: float
    tau_squared: float
    individual_effects: Tuple[EffectSizeData, ...]
    forest_plot_data: ForestPlotData


# --------------------------------------------------------------------------
# Real-time monitoring
# --------------------------------------------------------------------------


@dataclass(frozen=True)
class RunningStatsSnapshot(_Result):
    kind: ClassVar[str] = "running_stats"

    count: int
    mean: float
    variance: float
    standard_deviation: float
    minimum: float
    maximum: float
    cumulative_deviation: float
    z_score: float
    last_updated: Optional[datetime]


SignificanceInterpretation = Literal[
    "random", "marginally_significant", "significant", "highly_significant"
]


@dataclass(frozen=True)
class SignificanceResult(_Result):
    kind: ClassVar[str] = "significance"

    z_score: float
    p_value: float
    effect_size: float
    confidence_interval: Interval
    interpretation: SignificanceInterpretation
    power: float
    sample_size: int


@dataclass(frozen=True)
class ChangePoint(_Result):
    kind: ClassVar[str] = "change_point"

    index: int
    timestamp: datetime
    direction: Literal["up", "down"]
    magnitude: float


@dataclass(frozen=True)
class TrendAnalysis(_Result):
    kind: ClassVar[str] = "trend"

    window_size: int
    window_means: Tuple[float, ...]
    slope: float
    slope_p_value: float
    direction: TrendDirection
    change_points: Tuple[ChangePoint, ...]


@dataclass(frozen=True)
class QualityAssessment(_Result):
    kind: ClassVar[str] = "quality"

    score: float
    repeat_fraction: float
    alternation_rate: float
    longest_repeat: int
    temporal_gaps: int
    duplicate_sequence_numbers: int
    out_of_range: int
    outliers: int
    issues: Tuple[str, ...]
    recommendations: Tuple[str, ...]


# --------------------------------------------------------------------------
# Learning curves & forecasting
# --------------------------------------------------------------------------


@dataclass(frozen=True)
class AnomalyDetection(_Result):
    """Per-trial anomaly scores; ``indices`` are the positions scoring above ``threshold``."""

    kind: ClassVar[str] = "anomalies"

    method: Literal["z", "iqr"]
    threshold: float
    center: float
    spread: float
    scores: Tuple[float, ...]
    indices: Tuple[int, ...]

    @property
    def is_anomaly(self) -> Tuple[bool, ...]:
        return tuple(score > self.threshold for score in self.scores)


@dataclass(frozen=True)
class Forecast(_Result):
    kind: ClassVar[str] = "forecast"

    alpha: float
    level: float
    smoothed: Tuple[float, ...]
    forecast: Tuple[float, ...]
    margin: float
    intervals: Tuple[Interval, ...]
    residual_standard_deviation: float


SkillLevel = Literal["novice", "intermediate", "advanced", "expert"]


@dataclass(frozen=True)
class LearningCurvePoint(_Result):
    kind: ClassVar[str] = "learning_point"

    session_number: int
    session_id: str
    started_at: datetime
    performance: float
    cumulative_performance: float
    learning_rate: float
    skill_level: SkillLevel


@dataclass(frozen=True)
class LearningCurveAnalysis(_Result):
    kind: ClassVar[str] = "learning_curve"

    points: Tuple[LearningCurvePoint, ...]
    overall_learning_rate: float
    learning_rate_p_value: float
    improvement_trend: TrendDirection
    plateau_detected: bool
    plateau_start: Optional[int]
    predicted_plateau: float


@dataclass(frozen=True)
class FeatureImportance(_Result):
    """Share of |Pearson r| between each session feature and session performance."""

    kind: ClassVar[str] = "feature_importance"

    features: Tuple[str, ...]
    correlations: Tuple[float, ...]
    importance: Tuple[float, ...]
