"""
chancesign.api.session
======================

Session-level facade in the vocabulary of the experiment operator.

- `analyze_session()`: every per-session analysis in one report
- `compare_intention_to_control()`: the primary intention-vs-control test
- `combine_sessions()`: meta-analysis across sessions
- `live_monitor()`: a ready-to-use live monitor, optionally ledger-backed

Examples
--------
>>> import numpy as np
>>> from datetime import datetime, timezone
>>> from chancesign.core.trials import trials_from_values
>>> from chancesign.api.session import analyze_session
>>> rng = np.random.default_rng(7)
>>> trials = trials_from_values(rng.binomial(200, 0.5, size=500), start=datetime(2024, 1, 1, tzinfo=timezone.utc))
>>> report = analyze_session(trials)
>>> report.sample_size
500
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Literal, Mapping, Optional, Sequence, Union

from chancesign.config import AnalysisParameters
from chancesign.core.ledger import Ledger
from chancesign.core.names import IntentionTag
from chancesign.core.results import (
    ComparisonResult,
    CumulativeResult,
    DeviceVarianceResult,
    EffectSizeResult,
    MetaAnalysisResult,
    NetworkVarianceResult,
    QualityAssessment,
    RandomnessTestResult,
    SignificanceResult,
    ZScoreResult,
)
from chancesign.core.trials import Trial, split_by_intention, split_by_session
from chancesign.errors import EmptyInput
from chancesign.runtime.monitor import LiveMonitor, MonitorConfig
from chancesign.stats.baseline import compare_control_periods
from chancesign.stats.deviation import (
    calculate_cumulative_deviation,
    calculate_device_variance,
    calculate_effect_size,
    calculate_network_variance,
    calculate_z_score,
)
from chancesign.stats.inference.meta import (
    effects_from_sessions,
    fixed_effects_meta_analysis,
    random_effects_meta_analysis,
)
from chancesign.stats.randomness import run_randomness_tests
from chancesign.stats.realtime import assess_data_quality, current_significance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionReport:
    """Everything computed for one session.

    Analyses whose minimum sample is not met are ``None``: device variance
    needs 4 trials, network variance and effect size 2, data quality 3.
    """

    session_id: str
    sample_size: int
    z_score: ZScoreResult
    significance: SignificanceResult
    cumulative: CumulativeResult
    randomness: RandomnessTestResult
    network_variance: Optional[NetworkVarianceResult]
    device_variance: Optional[DeviceVarianceResult]
    effect_size: Optional[EffectSizeResult]
    quality: Optional[QualityAssessment]


def analyze_session(
    trials: Sequence[Trial],
    params: Optional[AnalysisParameters] = None,
    *,
    session_id: Optional[str] = None,
) -> SessionReport:
    """
    Run the per-session analyses over one trial sequence.

    Parameters
    ----------
    trials : Sequence[Trial]
        Trials of the session, in recording order
    params : AnalysisParameters, optional
        Analysis parameters; defaults to a 200-bit source
    session_id : str, optional
        Label for the report, defaults to the first trial's session

    Returns
    -------
    SessionReport
    """
    params = params if params is not None else AnalysisParameters()
    if len(trials) == 0:
        raise EmptyInput("session analysis")
    n = len(trials)
    label = session_id if session_id is not None else trials[0].session_id
    logger.info("analyzing session %s (%d trials)", label, n)
    return SessionReport(
        session_id=label,
        sample_size=n,
        z_score=calculate_z_score(trials, params),
        significance=current_significance(trials, params),
        cumulative=calculate_cumulative_deviation(trials, params),
        randomness=run_randomness_tests(trials, params),
        network_variance=calculate_network_variance(trials, params) if n >= 2 else None,
        device_variance=calculate_device_variance(trials, params) if n >= 4 else None,
        effect_size=calculate_effect_size(trials, params) if n >= 2 else None,
        quality=assess_data_quality(trials, params) if n >= 3 else None,
    )


def compare_intention_to_control(
    trials: Sequence[Trial],
    params: Optional[AnalysisParameters] = None,
    *,
    intention: Union[IntentionTag, str] = IntentionTag.POSITIVE,
    control: Union[IntentionTag, str] = IntentionTag.NEUTRAL,
) -> ComparisonResult:
    """
    Split a mixed trial stream by intention tag and compare the two periods.

    Parameters
    ----------
    trials : Sequence[Trial]
        Trials recorded under several intentions
    intention : IntentionTag or str, default="positive"
        Tag of the intention period
    control : IntentionTag or str, default="neutral"
        Tag of the control period

    Examples
    --------
    >>> from datetime import datetime, timezone
    >>> from chancesign.core.trials import trials_from_values
    >>> start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    >>> mixed = trials_from_values([104, 102, 106], start=start, intention="positive") + trials_from_values([100, 98, 102], start=start)
    >>> compare_intention_to_control(mixed).mean_difference
    4.0
    """
    groups = split_by_intention(trials)
    return compare_control_periods(
        groups[IntentionTag(intention)], groups[IntentionTag(control)], params
    )


def combine_sessions(
    sessions: Union[Sequence[Trial], Mapping[str, Sequence[Trial]]],
    params: Optional[AnalysisParameters] = None,
    *,
    model: Literal["fixed", "random"] = "random",
) -> MetaAnalysisResult:
    """
    Meta-analysis of per-session effect sizes.

    Parameters
    ----------
    sessions : Sequence[Trial] or Mapping[str, Sequence[Trial]]
        Either a mapping of session id to trials, or a flat trial sequence
        that is split by ``Trial.session_id``
    model : {"fixed", "random"}, default="random"
        Pooling model; "random" uses DerSimonian–Laird
    """
    if not isinstance(sessions, Mapping):
        sessions = split_by_session(sessions)
    if not sessions:
        raise EmptyInput("session combination")
    studies = effects_from_sessions(sessions, params)
    if model == "fixed":
        return fixed_effects_meta_analysis(studies, params)
    return random_effects_meta_analysis(studies, params)


def live_monitor(
    session_id: str,
    params: Optional[AnalysisParameters] = None,
    *,
    ledger: Optional[Ledger] = None,
    look_every: int = 100,
    alpha: float = 0.05,
    beta: float = 0.20,
) -> LiveMonitor:
    """A `LiveMonitor` taking an SPRT look every ``look_every`` trials."""
    return LiveMonitor(
        session_id,
        params,
        ledger,
        config=MonitorConfig(look_every=look_every, alpha=alpha, beta=beta),
    )
