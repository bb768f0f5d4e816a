"""
chancesign.runtime.monitor
==========================

Live monitoring of one trial session.

`LiveMonitor` keeps a `RunningStatistics` accumulator for a single session,
takes an SPRT look every ``look_every`` trials from the running summary, and
optionally records what it saw to a `Ledger`:

- OBS      / "trial":            every ingested trial
- STATS    / "stat:running":     running statistics at each look
- CRITERIA / "crit:sprt":        SPRT boundaries and log LR at each look
- SIGNALS  / "sprt:decision":    the stopping decision, once reached

Examples
--------
>>> from datetime import datetime, timezone
>>> from chancesign.core.trials import trials_from_values
>>> from chancesign.runtime.monitor import LiveMonitor, MonitorConfig
>>> monitor = LiveMonitor("s1", config=MonitorConfig(look_every=2))
>>> looks = monitor.add_trials(trials_from_values([100, 101, 99, 100], start=datetime(2024, 1, 1, tzinfo=timezone.utc)))
>>> [look.count for look in looks]
[2, 4]
>>> monitor.get_summary()["count"]
4
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from chancesign.config import AnalysisParameters
from chancesign.core.ledger import Ledger
from chancesign.core.names import Namespace
from chancesign.core.results import RunningStatsSnapshot, SequentialAnalysisResult
from chancesign.core.trials import Trial
from chancesign.errors import InvalidArgument
from chancesign.stats.inference.sequential import sprt_from_summary
from chancesign.stats.realtime import RunningStatistics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonitorConfig:
    """SPRT settings for a live session.

    ``alternative_mean`` defaults to the null mean plus 2; ``null_mean`` to
    ``params.expected_mean``.
    """

    look_every: int = 100
    alpha: float = 0.05
    beta: float = 0.20
    null_mean: Optional[float] = None
    alternative_mean: Optional[float] = None
    record_trials: bool = True

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        if self.look_every < 1:
            raise InvalidArgument(f"look_every must be positive, got {self.look_every}")
        if not (0 < self.alpha < 1):
            raise InvalidArgument(f"alpha must be in (0, 1), got {self.alpha}")
        if not (0 < self.beta < 1):
            raise InvalidArgument(f"beta must be in (0, 1), got {self.beta}")


@dataclass(frozen=True)
class MonitorLook:
    """One interim look: the running state and the SPRT verdict at that point."""

    look_number: int
    count: int
    snapshot: RunningStatsSnapshot
    sequential: SequentialAnalysisResult

    @property
    def should_stop(self) -> bool:
        return self.sequential.should_stop


class LiveMonitor:
    """
    Runner for one live session.

    Trials are ingested one at a time or in batches; every ``look_every``
    trials an SPRT look is taken. Once a look recommends stopping, the
    decision is kept and no further looks are taken, although trials are
    still accumulated.

    Not safe for concurrent use; give each session its own monitor.
    """

    def __init__(
        self,
        session_id: str,
        params: Optional[AnalysisParameters] = None,
        ledger: Optional[Ledger] = None,
        *,
        config: Optional[MonitorConfig] = None,
    ):
        self.session_id = session_id
        self.params = params if params is not None else AnalysisParameters()
        self.config = config if config is not None else MonitorConfig()
        self.ledger = ledger
        self.statistics = RunningStatistics(self.params)
        self.looks: List[MonitorLook] = []
        self.decision: Optional[SequentialAnalysisResult] = None

    def setup(self, ledger: Ledger) -> None:
        """Attach a ledger; later events are recorded to it."""
        self.ledger = ledger

    def ingest(self, trial: Trial) -> Optional[MonitorLook]:
        """Add one trial; return the look taken at this trial, if any."""
        self.statistics.update(trial)
        count = self.statistics.count
        if self.ledger is not None and self.config.record_trials:
            self.ledger.write_event(
                time_index=count,
                namespace=Namespace.OBS,
                kind="trial",
                session_id=self.session_id,
                step_key=str(count),
                payload_type="Trial",
                payload={
                    "value": trial.value,
                    "sequence_number": trial.sequence_number,
                    "intention": trial.intention.value,
                    "timestamp": trial.timestamp.isoformat(),
                },
                ts=trial.timestamp,
            )
        if self.decision is None and count % self.config.look_every == 0:
            return self.analyze()
        return None

    def add_trials(self, trials: Sequence[Trial]) -> List[MonitorLook]:
        """Add a batch of trials; return the looks taken along the way."""
        looks: List[MonitorLook] = []
        for trial in trials:
            look = self.ingest(trial)
            if look is not None:
                looks.append(look)
        return looks

    def analyze(self) -> MonitorLook:
        """Take an SPRT look at the current running summary."""
        if self.statistics.count == 0:
            raise InvalidArgument("No trials ingested yet")
        snapshot = self.statistics.snapshot()
        sequential = sprt_from_summary(
            snapshot.count,
            snapshot.mean,
            null_mean=self.config.null_mean,
            alternative_mean=self.config.alternative_mean,
            alpha=self.config.alpha,
            beta=self.config.beta,
            params=self.params,
        )
        look = MonitorLook(
            look_number=len(self.looks) + 1,
            count=snapshot.count,
            snapshot=snapshot,
            sequential=sequential,
        )
        self.looks.append(look)
        if sequential.should_stop and self.decision is None:
            self.decision = sequential
            logger.info(
                "session %s: %s after %d trials (log LR %.3f)",
                self.session_id,
                sequential.recommendation,
                snapshot.count,
                sequential.log_likelihood_ratio,
            )
        self._record_look(look)
        return look

    def _record_look(self, look: MonitorLook) -> None:
        if self.ledger is None:
            return
        step = f"look{look.look_number}"
        ts = look.snapshot.last_updated
        common = dict(
            time_index=look.count, session_id=self.session_id, step_key=step, ts=ts
        )
        self.ledger.write_event(
            namespace=Namespace.STATS,
            kind="stat:running",
            payload_type="RunningStatsSnapshot",
            payload=look.snapshot,
            **common,
        )
        self.ledger.write_event(
            namespace=Namespace.CRITERIA,
            kind="crit:sprt",
            payload_type="SprtBoundaries",
            payload={
                "log_likelihood_ratio": look.sequential.log_likelihood_ratio,
                "efficacy_boundary": look.sequential.efficacy_boundary,
                "futility_boundary": look.sequential.futility_boundary,
            },
            **common,
        )
        if look.should_stop:
            self.ledger.write_event(
                namespace=Namespace.SIGNALS,
                kind="sprt:decision",
                payload_type="SequentialAnalysisResult",
                payload=look.sequential,
                tag=look.sequential.recommendation,
                **common,
            )

    def get_summary(self) -> Dict[str, Any]:
        """Current state of the session as plain data."""
        snapshot = self.statistics.snapshot()
        return {
            "session_id": self.session_id,
            "count": snapshot.count,
            "mean": snapshot.mean,
            "z_score": snapshot.z_score,
            "looks": len(self.looks),
            "decision": None if self.decision is None else self.decision.recommendation,
            "stopped_at": None if self.decision is None else self.decision.current_n,
        }

    def reset(self) -> None:
        """Drop accumulated state; ledger events already written are kept."""
        self.statistics.reset()
        self.looks = []
        self.decision = None
