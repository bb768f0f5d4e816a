"""Tests for the session-level facade in chancesign.api.session."""

from __future__ import annotations

import math

import pytest

from chancesign.api.session import (
    analyze_session,
    combine_sessions,
    compare_intention_to_control,
    live_monitor,
)
from chancesign.core.ledger import Ledger, create_test_connection
from chancesign.core.names import IntentionTag
from chancesign.errors import EmptyInput, InsufficientData
from chancesign.runtime.monitor import LiveMonitor


class TestAnalyzeSession:
    def test_full_report(self, fair_trials) -> None:
        report = analyze_session(fair_trials[:500])
        assert report.session_id == "default"
        assert report.sample_size == 500
        assert report.z_score.sample_size == 500
        assert report.significance.sample_size == 500
        assert len(report.cumulative.points) == 500
        assert len(report.randomness.tests) == 8
        assert report.network_variance is not None
        assert report.device_variance is not None
        assert report.effect_size is not None
        assert report.quality is not None

    def test_small_session_skips_what_it_cannot_compute(self, make_trials) -> None:
        report = analyze_session(make_trials([101, 99, 104]), session_id="tiny")
        assert report.session_id == "tiny"
        assert report.device_variance is None
        assert report.network_variance is not None
        assert report.quality is not None
        assert report.randomness.tests == ()

    def test_single_trial(self, make_trials) -> None:
        report = analyze_session(make_trials([104]))
        assert report.network_variance is None
        assert report.effect_size is None
        assert report.quality is None
        assert report.z_score.z_score == pytest.approx(4 / math.sqrt(50))

    def test_empty(self) -> None:
        with pytest.raises(EmptyInput):
            analyze_session([])


class TestCompareIntentionToControl:
    def test_splits_by_intention(self, make_trials) -> None:
        mixed = make_trials([104, 102, 106], intention=IntentionTag.POSITIVE) + make_trials([100, 98, 102])
        result = compare_intention_to_control(mixed)
        assert result.mean_difference == pytest.approx(4.0)
        assert (result.intention_size, result.control_size) == (3, 3)

    def test_tags_may_be_strings(self, make_trials) -> None:
        mixed = make_trials([96, 98], intention=IntentionTag.NEGATIVE) + make_trials([100, 102])
        result = compare_intention_to_control(mixed, intention="negative", control="neutral")
        assert result.mean_difference == pytest.approx(-4.0)

    def test_missing_period(self, make_trials) -> None:
        with pytest.raises(InsufficientData):
            compare_intention_to_control(make_trials([100, 101, 99]))


class TestCombineSessions:
    def test_flat_trials_are_split_by_session(self, make_trials) -> None:
        trials = make_trials([103] * 50, session_id="s1") + make_trials([101] * 50, session_id="s2")
        result = combine_sessions(trials, model="fixed")
        assert result.model == "fixed"
        assert [s.session_id for s in result.individual_effects] == ["s1", "s2"]
        assert result.pooled_effect_size == pytest.approx(2 / math.sqrt(50))
        assert result.pooled_standard_error == pytest.approx(1 / 10)

    def test_mapping_defaults_to_random_effects(self, make_trials) -> None:
        sessions = {"a": make_trials([102] * 40), "b": make_trials([102] * 40)}
        result = combine_sessions(sessions)
        assert result.model == "random"
        assert result.tau_squared == 0.0
        assert result.pooled_effect_size == pytest.approx(2 / math.sqrt(50))

    def test_no_sessions(self) -> None:
        with pytest.raises(EmptyInput):
            combine_sessions({})


class TestLiveMonitorFactory:
    def test_builds_configured_monitor(self, make_trials) -> None:
        ledger = Ledger(create_test_connection("duckdb"))
        monitor = live_monitor("s1", ledger=ledger, look_every=25, alpha=0.01)
        assert isinstance(monitor, LiveMonitor)
        assert monitor.config.look_every == 25
        assert monitor.config.alpha == 0.01
        assert monitor.ledger is ledger
        looks = monitor.add_trials(make_trials([101] * 50))
        assert [look.count for look in looks] == [25, 50]
