"""Tests for configuration, errors, logging setup, trials and result objects."""

from __future__ import annotations

import dataclasses
import json
import logging
import math
from datetime import datetime, timedelta

import numpy as np
import pytest

from chancesign.config import AnalysisParameters
from chancesign.core.names import IntentionTag, Namespace, Significance
from chancesign.core.results import (
    ExcursionPeriod,
    PosteriorDistribution,
    RandomnessTest,
    RandomnessTestResult,
)
from chancesign.core.trials import (
    Trial,
    split_by_intention,
    split_by_session,
    trial_values,
)
from chancesign.errors import (
    ChanceSignError,
    EmptyInput,
    InsufficientData,
    InvalidArgument,
    UnsupportedDistribution,
)
from chancesign.logging import _parse_log_level, setup_logging

# ---------------------------------------------------------------------------
# AnalysisParameters
# ---------------------------------------------------------------------------


class TestAnalysisParameters:
    def test_defaults_describe_200_bit_source(self) -> None:
        params = AnalysisParameters()
        assert params.bits_per_trial == 200
        assert params.expected_mean == 100.0
        assert params.expected_standard_deviation == pytest.approx(math.sqrt(50))
        assert params.expected_variance == pytest.approx(50.0)
        assert params.confidence_level == 0.95
        assert params.minimum_excursion_length == 100
        assert params.excursion_threshold == 2.0
        assert params.significance_level == 0.05
        assert params.multiple_comparisons == "holm"

    def test_for_bits_derives_reference_moments(self) -> None:
        params = AnalysisParameters.for_bits(64, confidence_level=0.99)
        assert params.expected_mean == 32.0
        assert params.expected_standard_deviation == pytest.approx(4.0)
        assert params.confidence_level == 0.99

    def test_critical_value(self) -> None:
        assert AnalysisParameters().critical_value == pytest.approx(1.959964, abs=1e-6)

    def test_frozen(self) -> None:
        params = AnalysisParameters()
        with pytest.raises(dataclasses.FrozenInstanceError):
            params.expected_mean = 50.0  # type: ignore[misc]

    def test_with_overrides_returns_new_object(self) -> None:
        params = AnalysisParameters()
        changed = params.with_overrides(significance_level=0.01)
        assert changed.significance_level == 0.01
        assert params.significance_level == 0.05

    @pytest.mark.parametrize(
        "overrides",
        [
            {"bits_per_trial": 0},
            {"expected_standard_deviation": 0.0},
            {"expected_mean": math.inf},
            {"confidence_level": 1.0},
            {"significance_level": 0.0},
            {"minimum_excursion_length": 0},
            {"excursion_threshold": -1.0},
            {"multiple_comparisons": "sidak"},
        ],
    )
    def test_invalid_values_rejected(self, overrides: dict) -> None:
        with pytest.raises(InvalidArgument):
            AnalysisParameters(**overrides)


# ---------------------------------------------------------------------------
# errors
# ---------------------------------------------------------------------------


class TestErrors:
    def test_hierarchy(self) -> None:
        assert issubclass(EmptyInput, InsufficientData)
        assert issubclass(InsufficientData, InvalidArgument)
        assert issubclass(InvalidArgument, ValueError)
        assert issubclass(UnsupportedDistribution, ChanceSignError)

    def test_insufficient_data_carries_counts(self) -> None:
        err = InsufficientData("serial test", required=64, actual=10, detail="bits")
        assert (err.what, err.required, err.actual) == ("serial test", 64, 10)
        assert "64" in str(err) and "bits" in str(err)

    def test_empty_input(self) -> None:
        err = EmptyInput("z-score")
        assert err.required == 1
        assert err.actual == 0


# ---------------------------------------------------------------------------
# logging
# ---------------------------------------------------------------------------


class TestLogging:
    @pytest.fixture(autouse=True)
    def restore_package_logger(self):
        package_logger = logging.getLogger("chancesign")
        level, handlers = package_logger.level, list(package_logger.handlers)
        yield
        package_logger.setLevel(level)
        package_logger.handlers[:] = handlers

    @pytest.mark.parametrize(
        "value, expected",
        [("debug", logging.DEBUG), (" INFO ", logging.INFO), ("nonsense", logging.WARNING), (None, logging.WARNING)],
    )
    def test_parse_log_level(self, value, expected) -> None:
        assert _parse_log_level(value) == expected

    def test_environment_sets_level(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHANCESIGN_LOG_LEVEL", "ERROR")
        logger = setup_logging()
        assert logger.level == logging.ERROR

    def test_verbose_forces_debug(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("CHANCESIGN_LOG_LEVEL", "ERROR")
        assert setup_logging(verbose=True).level == logging.DEBUG

    def test_repeated_setup_does_not_duplicate_handlers(self) -> None:
        setup_logging()
        logger = setup_logging()
        ours = [h for h in logger.handlers if getattr(h, "_chancesign_handler", False)]
        assert len(ours) == 1


# ---------------------------------------------------------------------------
# trials
# ---------------------------------------------------------------------------


class TestTrials:
    def test_factory_spacing_and_sequence(self, make_trials, start: datetime) -> None:
        trials = make_trials([100, 101, 99], interval=timedelta(seconds=2))
        assert [t.sequence_number for t in trials] == [0, 1, 2]
        assert trials[2].timestamp - start == timedelta(seconds=4)

    def test_value_must_be_non_negative_integer(self, start: datetime) -> None:
        with pytest.raises(InvalidArgument):
            Trial(timestamp=start, value=-1)
        with pytest.raises(InvalidArgument):
            Trial(timestamp=start, value=1.5)  # type: ignore[arg-type]

    def test_intention_string_is_coerced(self, start: datetime) -> None:
        trial = Trial(timestamp=start, value=100, intention="positive")  # type: ignore[arg-type]
        assert trial.intention is IntentionTag.POSITIVE

    def test_trial_values_rejects_out_of_range(self, make_trials) -> None:
        with pytest.raises(InvalidArgument):
            trial_values(make_trials([100, 201]), AnalysisParameters())

    def test_trial_values_rejects_empty(self) -> None:
        with pytest.raises(EmptyInput):
            trial_values([])

    def test_split_by_intention_and_session(self, make_trials) -> None:
        trials = (
            make_trials([101, 102], session_id="a", intention=IntentionTag.POSITIVE)
            + make_trials([99], session_id="b")
        )
        groups = split_by_intention(trials)
        assert [t.value for t in groups[IntentionTag.POSITIVE]] == [101, 102]
        assert [t.value for t in groups[IntentionTag.NEUTRAL]] == [99]
        assert groups[IntentionTag.NEGATIVE] == []
        assert list(split_by_session(trials)) == ["a", "b"]


# ---------------------------------------------------------------------------
# names and results
# ---------------------------------------------------------------------------


class TestNamesAndResults:
    def test_namespace_str_is_value(self) -> None:
        assert str(Namespace.SIGNALS) == "signals"

    def test_significance_from_p_value(self) -> None:
        assert Significance.from_p_value(0.01, 0.05) is Significance.SIGNIFICANT
        assert Significance.from_p_value(0.05, 0.05) is Significance.NONE

    def test_to_dict_is_json_ready(self, start: datetime) -> None:
        excursion = ExcursionPeriod(
            start_index=0,
            end_index=109,
            start_time=start,
            end_time=start + timedelta(seconds=109),
            peak_z_score=np.float64(2.7),
            sign=1,
            significance=0.0035,
        )
        payload = excursion.to_dict()
        assert payload["kind"] == "excursion"
        assert payload["start_time"] == start.isoformat()
        assert json.loads(json.dumps(payload))["peak_z_score"] == pytest.approx(2.7)
        assert excursion.length == 110

    def test_randomness_result_lookup(self) -> None:
        test = RandomnessTest(
            name="Frequency",
            category="frequency",
            statistic=3.1,
            p_value=0.002,
            adjusted_p_value=0.02,
            passed=False,
            description="",
        )
        result = RandomnessTestResult(
            tests=(test,),
            overall_score=0.0,
            is_random_at_level=False,
            recommendations=(),
            sample_size=500,
        )
        assert result.test("Frequency") is test
        assert result.failed_categories == ("frequency",)
        with pytest.raises(KeyError):
            result.test("Runs")

    def test_posterior_moments(self) -> None:
        posterior = PosteriorDistribution("normal", {"mean": 100.5, "variance": 0.04})
        assert posterior.mean == 100.5
        assert posterior.standard_deviation == pytest.approx(0.2)

    def test_non_normal_posterior_moments_unsupported(self) -> None:
        posterior = PosteriorDistribution("beta", {"alpha": 2.0, "beta": 3.0})
        with pytest.raises(UnsupportedDistribution):
            _ = posterior.mean
