"""
chancesign.core.trials
======================

The trial record and helpers to turn trial sequences into numeric arrays.

A trial is one sampled outcome: the sum of N independent fair binary draws,
stamped with a time, a session and the intention it was recorded under.
Trials are immutable once recorded.

Examples
--------
>>> from datetime import datetime, timezone
>>> from chancesign.core.trials import Trial, trials_from_values, trial_values
>>> trials = trials_from_values([98, 103, 100], start=datetime(2024, 1, 1, tzinfo=timezone.utc))
>>> [t.sequence_number for t in trials]
[0, 1, 2]
>>> trial_values(trials).tolist()
[98.0, 103.0, 100.0]
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Sequence, TYPE_CHECKING

import numpy as np

from chancesign.core.names import IntentionTag
from chancesign.errors import EmptyInput, InvalidArgument

if TYPE_CHECKING:
    from chancesign.config import AnalysisParameters


@dataclass(frozen=True)
class Trial:
    """One recorded trial.

    Attributes:
        timestamp: When the trial was sampled.
        value: Number of ones among the N draws, an integer in [0, N].
        session_id: Session the trial belongs to.
        intention: Intention tag active when the trial was recorded.
        sequence_number: Position of the trial within its session.
    """

    timestamp: datetime
    value: int
    session_id: str = "default"
    intention: IntentionTag = IntentionTag.NEUTRAL
    sequence_number: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or int(self.value) != self.value:
            raise InvalidArgument(f"Trial value must be an integer, got {self.value!r}")
        if self.value < 0:
            raise InvalidArgument(f"Trial value must be non-negative, got {self.value}")
        if not isinstance(self.intention, IntentionTag):
            object.__setattr__(self, "intention", IntentionTag(self.intention))


def trials_from_values(
    values: Iterable[int],
    *,
    start: Optional[datetime] = None,
    interval: timedelta = timedelta(seconds=1),
    session_id: str = "default",
    intention: IntentionTag = IntentionTag.NEUTRAL,
    first_sequence_number: int = 0,
) -> List[Trial]:
    """Build an evenly spaced trial sequence from raw values.

    Args:
        values: Trial values in recording order.
        start: Timestamp of the first trial, defaults to now (UTC).
        interval: Spacing between consecutive trials.
        session_id: Session assigned to every trial.
        intention: Intention assigned to every trial.
        first_sequence_number: Sequence number of the first trial.

    Returns:
        List of trials in the same order as ``values``.
    """
    if start is None:
        start = datetime.now(timezone.utc)
    return [
        Trial(
            timestamp=start + i * interval,
            value=int(v),
            session_id=session_id,
            intention=intention,
            sequence_number=first_sequence_number + i,
        )
        for i, v in enumerate(values)
    ]


def trial_values(
    trials: Sequence[Trial],
    params: Optional["AnalysisParameters"] = None,
    *,
    what: str = "analysis",
) -> np.ndarray:
    """Return trial values as a float array, checked against the trial range.

    Raises:
        EmptyInput: If ``trials`` is empty.
        InvalidArgument: If a value exceeds ``params.bits_per_trial``.
    """
    if len(trials) == 0:
        raise EmptyInput(what)
    values = np.fromiter((t.value for t in trials), dtype=float, count=len(trials))
    if params is not None:
        top = float(values.max())
        if top > params.bits_per_trial:
            raise InvalidArgument(
                f"Trial value {top:g} exceeds bits_per_trial={params.bits_per_trial}"
            )
    return values


def split_by_intention(
    trials: Iterable[Trial],
) -> dict[IntentionTag, List[Trial]]:
    """Group trials by intention tag, preserving order within each group."""
    groups: dict[IntentionTag, List[Trial]] = {tag: [] for tag in IntentionTag}
    for trial in trials:
        groups[trial.intention].append(trial)
    return groups


def split_by_session(trials: Iterable[Trial]) -> dict[str, List[Trial]]:
    """Group trials by session id, in order of first appearance."""
    groups: dict[str, List[Trial]] = {}
    for trial in trials:
        groups.setdefault(trial.session_id, []).append(trial)
    return groups
