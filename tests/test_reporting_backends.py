"""Tests for polars trial frames, file sources/sinks and report frames."""

from __future__ import annotations

from datetime import datetime, timezone

import polars as pl
import pytest

from chancesign.backends.polars.trials import (
    CsvTrialSink,
    CsvTrialSource,
    ParquetTrialSink,
    ParquetTrialSource,
    read_trials,
    trials_from_frame,
    trials_to_frame,
    write_trials,
)
from chancesign.core.ledger import Ledger, create_test_connection
from chancesign.core.names import IntentionTag, Namespace
from chancesign.errors import InvalidArgument
from chancesign.reporting.frames import (
    LedgerReporter,
    cumulative_frame,
    excursions_frame,
    forest_plot_frame,
    randomness_frame,
)
from chancesign.runtime.monitor import LiveMonitor, MonitorConfig
from chancesign.stats.deviation import calculate_cumulative_deviation
from chancesign.stats.inference.meta import effect_size_data, fixed_effects_meta_analysis
from chancesign.stats.randomness import run_randomness_tests

# ---------------------------------------------------------------------------
# trial frames and I/O
# ---------------------------------------------------------------------------


class TestTrialFrames:
    def test_frame_layout(self, make_trials) -> None:
        df = trials_to_frame(make_trials([99, 101], session_id="s1", intention=IntentionTag.POSITIVE))
        assert df.columns == ["timestamp", "value", "session_id", "intention", "sequence_number"]
        assert df.schema["timestamp"] == pl.Datetime(time_unit="us", time_zone="UTC")
        assert df["intention"].to_list() == ["positive", "positive"]
        assert df["sequence_number"].to_list() == [0, 1]

    def test_round_trip_preserves_trials(self, make_trials) -> None:
        trials = make_trials([99, 101, 100], session_id="s1", intention=IntentionTag.NEGATIVE)
        assert trials_from_frame(trials_to_frame(trials)) == trials

    def test_minimal_frame_uses_defaults(self) -> None:
        df = pl.DataFrame({"timestamp": [datetime(2024, 1, 1, 12)], "value": [104]})
        (trial,) = trials_from_frame(df)
        assert trial.timestamp == datetime(2024, 1, 1, 12, tzinfo=timezone.utc)
        assert trial.session_id == "default"
        assert trial.intention is IntentionTag.NEUTRAL
        assert trial.sequence_number == 0

    def test_missing_columns(self) -> None:
        with pytest.raises(InvalidArgument):
            trials_from_frame(pl.DataFrame({"value": [100]}))

    def test_parquet_round_trip(self, tmp_path, fair_trials) -> None:
        path = str(tmp_path / "trials.parquet")
        write_trials(ParquetTrialSink(path), fair_trials[:50])
        assert read_trials(ParquetTrialSource(path)) == fair_trials[:50]

    def test_csv_round_trip(self, tmp_path, make_trials) -> None:
        path = str(tmp_path / "trials.csv")
        trials = make_trials([98, 103], session_id="s9")
        write_trials(CsvTrialSink(path), trials)
        restored = read_trials(CsvTrialSource(path))
        assert [t.value for t in restored] == [98, 103]
        assert [t.session_id for t in restored] == ["s9", "s9"]
        assert [t.timestamp for t in restored] == [t.timestamp for t in trials]


# ---------------------------------------------------------------------------
# result frames
# ---------------------------------------------------------------------------


class TestResultFrames:
    def test_cumulative_frame(self, make_trials) -> None:
        result = calculate_cumulative_deviation(make_trials([101, 99, 104]))
        df = cumulative_frame(result)
        assert df.height == 3
        assert df["trial_index"].to_list() == [0, 1, 2]
        assert df["cumulative_deviation"].to_list() == [1.0, 0.0, 4.0]

    def test_excursions_frame_can_be_empty(self, make_trials) -> None:
        df = excursions_frame(calculate_cumulative_deviation(make_trials([100] * 10)))
        assert df.height == 0
        assert df.schema["length"] == pl.Int64

    def test_randomness_frame(self, fair_trials) -> None:
        result = run_randomness_tests(fair_trials)
        df = randomness_frame(result)
        assert df["name"].to_list() == [t.name for t in result.tests]
        assert df["passed"].dtype == pl.Boolean

    def test_forest_plot_frame(self) -> None:
        studies = [
            effect_size_data("a", effect_size=0.2, standard_error=0.1),
            effect_size_data("b", effect_size=0.4, standard_error=0.1),
        ]
        result = fixed_effects_meta_analysis(studies)
        df = forest_plot_frame(result.forest_plot_data)
        assert df["label"].to_list() == ["a", "b", "pooled"]
        assert df["pooled"].to_list() == [False, False, True]
        assert df["weight"][-1] == pytest.approx(200.0)
        assert df["effect_size"][-1] == pytest.approx(0.3)


# ---------------------------------------------------------------------------
# ledger reporting
# ---------------------------------------------------------------------------


class TestLedgerReporter:
    @pytest.fixture
    def reporter(self, make_trials) -> LedgerReporter:
        ledger = Ledger(create_test_connection("duckdb"), "report")
        for session in ("s1", "s2"):
            monitor = LiveMonitor(session, ledger=ledger, config=MonitorConfig(look_every=10))
            monitor.add_trials(make_trials([101] * 20, session_id=session))
        return LedgerReporter(ledger)

    def test_events_by_namespace(self, reporter: LedgerReporter) -> None:
        assert reporter.events().height == 2 * (20 + 2 + 2)
        stats = reporter.events(Namespace.STATS)
        assert stats.height == 4
        assert set(stats["kind"].to_list()) == {"stat:running"}

    def test_events_with_shared_timestamp_follow_time_index(self) -> None:
        ledger = Ledger(create_test_connection("duckdb"), "ties")
        ts = datetime(2024, 3, 1, 12, tzinfo=timezone.utc)
        for index in (10, 9, 2):
            ledger.write_event(
                time_index=index,
                namespace=Namespace.OBS,
                kind="trial",
                session_id="s1",
                step_key=str(index),
                payload_type="Trial",
                payload={"value": 100},
                ts=ts,
            )
        events = LedgerReporter(ledger).events()
        assert events["time_index"].to_list() == ["2", "9", "10"]

    def test_namespace_kind_counts(self, reporter: LedgerReporter) -> None:
        counts = reporter.namespace_kind_counts()
        rows = {(r["namespace"], r["kind"]): r["count"] for r in counts.iter_rows(named=True)}
        assert rows == {
            ("criteria", "crit:sprt"): 4,
            ("obs", "trial"): 40,
            ("stats", "stat:running"): 4,
        }

    def test_sessions(self, reporter: LedgerReporter) -> None:
        assert reporter.sessions() == ["s1", "s2"]
