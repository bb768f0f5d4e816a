"""Tests for chancesign.stats.deviation."""

from __future__ import annotations

import math
from typing import List

import numpy as np
import pytest

from chancesign.config import AnalysisParameters
from chancesign.core.names import Significance
from chancesign.errors import EmptyInput, InsufficientData, InvalidArgument
from chancesign.stats.deviation import (
    _ad_asymptotic_cdf,
    calculate_cumulative_deviation,
    calculate_device_variance,
    calculate_effect_size,
    calculate_network_variance,
    calculate_z_score,
)

SIGMA = math.sqrt(50)


def biased_block(length: int, z_target: float = 2.2) -> List[int]:
    """Values whose cumulative Z stays just above ``z_target`` for ``length`` trials."""
    values: List[int] = []
    total = 0
    for n in range(1, length + 1):
        target = math.ceil(z_target * SIGMA * math.sqrt(n))
        values.append(100 + target - total)
        total = target
    return values


def excursion_stream(length: int) -> List[int]:
    # A single 0 pulls the cumulative Z back under the threshold; flat 100s follow.
    return biased_block(length) + [0] + [100] * 50


# ---------------------------------------------------------------------------
# cumulative deviation
# ---------------------------------------------------------------------------


class TestCumulativeDeviation:
    def test_running_values(self, make_trials) -> None:
        result = calculate_cumulative_deviation(make_trials([101, 98, 102, 100]))
        assert [p.cumulative_deviation for p in result.points] == [1.0, -1.0, 1.0, 1.0]
        assert [p.running_mean for p in result.points] == pytest.approx([101, 99.5, 100.333333, 100.25])
        assert result.points[1].z_score == pytest.approx(-1 / (SIGMA * math.sqrt(2)))
        assert result.final_deviation == 1.0
        assert result.max_deviation == 1.0
        assert result.min_deviation == -1.0
        assert result.crossings == 2

    def test_running_variance_matches_batch_variance(self, make_trials, rng) -> None:
        values = rng.binomial(200, 0.5, size=50)
        result = calculate_cumulative_deviation(make_trials(values))
        assert result.points[-1].running_variance == pytest.approx(np.var(values, ddof=1))
        assert result.points[0].running_variance == 0.0

    def test_p_value_is_one_tailed(self, make_trials) -> None:
        result = calculate_cumulative_deviation(make_trials([110]))
        z = 10 / SIGMA
        assert result.final_z_score == pytest.approx(z)
        assert result.final_p_value == pytest.approx(0.5 * math.erfc(z / math.sqrt(2)))

    def test_deterministic_and_order_sensitive(self, make_trials, rng) -> None:
        values = list(rng.binomial(200, 0.5, size=300))
        forward = calculate_cumulative_deviation(make_trials(values))
        again = calculate_cumulative_deviation(make_trials(values))
        backward = calculate_cumulative_deviation(make_trials(values[::-1]))
        assert forward == again
        assert forward.final_deviation == pytest.approx(backward.final_deviation)
        assert [p.z_score for p in forward.points] != [p.z_score for p in backward.points]

    def test_empty_input(self) -> None:
        with pytest.raises(EmptyInput):
            calculate_cumulative_deviation([])

    def test_out_of_range_value(self, make_trials) -> None:
        with pytest.raises(InvalidArgument):
            calculate_cumulative_deviation(make_trials([100, 250]))


class TestExcursions:
    def test_biased_block_past_minimum_is_one_excursion(self, make_trials) -> None:
        result = calculate_cumulative_deviation(make_trials(excursion_stream(110)))
        assert len(result.excursions) == 1
        excursion = result.excursions[0]
        assert excursion.start_index == 0
        assert excursion.end_index == 109
        assert excursion.length == 110
        assert excursion.sign == 1
        assert excursion.peak_z_score > 2.0
        assert excursion.significance < 0.025

    def test_biased_block_below_minimum_is_not_reported(self, make_trials) -> None:
        result = calculate_cumulative_deviation(make_trials(excursion_stream(90)))
        assert result.excursions == ()

    def test_negative_excursion(self, make_trials) -> None:
        mirrored = [200 - v for v in excursion_stream(120)]
        result = calculate_cumulative_deviation(make_trials(mirrored))
        assert len(result.excursions) == 1
        assert result.excursions[0].sign == -1
        assert result.excursions[0].peak_z_score < -2.0

    def test_open_excursion_at_end_is_kept(self, make_trials) -> None:
        result = calculate_cumulative_deviation(make_trials(biased_block(105)))
        assert len(result.excursions) == 1
        assert result.excursions[0].end_index == 104

    def test_custom_minimum_length(self, make_trials) -> None:
        params = AnalysisParameters(minimum_excursion_length=50)
        result = calculate_cumulative_deviation(make_trials(excursion_stream(60)), params)
        assert [e.length for e in result.excursions] == [60]

    def test_excursion_invariants_on_fair_data(self, make_trials, rng) -> None:
        params = AnalysisParameters(minimum_excursion_length=20)
        trials = make_trials(rng.binomial(200, 0.5, size=3000))
        result = calculate_cumulative_deviation(trials, params)
        for excursion in result.excursions:
            assert excursion.length >= 20
            window = result.points[excursion.start_index : excursion.end_index + 1]
            assert all(excursion.sign * p.z_score > 2.0 for p in window)


# ---------------------------------------------------------------------------
# network and device variance
# ---------------------------------------------------------------------------


class TestNetworkVariance:
    def test_fair_stream(self, fair_trials) -> None:
        result = calculate_network_variance(fair_trials)
        assert result.netvar == pytest.approx(1.0, abs=0.1)
        assert result.degrees_of_freedom == 1999
        assert result.chi_square == pytest.approx(1999 * result.netvar)
        assert result.expected_netvar == 1.0
        assert result.standard_error == pytest.approx(math.sqrt(2 / 2000))
        low, high = result.confidence_interval
        assert low < result.netvar < high
        assert abs(result.temporal_correlation) < 0.1

    def test_stouffer_z_matches_mean_z_score(self, fair_trials) -> None:
        network = calculate_network_variance(fair_trials)
        assert network.stouffer_z == pytest.approx(calculate_z_score(fair_trials).z_score)

    def test_inflated_variance_is_significant(self, make_trials, rng) -> None:
        values = np.clip(100 + 2 * (rng.binomial(200, 0.5, size=500) - 100), 0, 200)
        result = calculate_network_variance(make_trials(values))
        assert result.netvar > 3
        assert result.significance is Significance.SIGNIFICANT

    def test_needs_two_trials(self, make_trials) -> None:
        with pytest.raises(InsufficientData):
            calculate_network_variance(make_trials([100]))


class TestDeviceVariance:
    def test_fair_stream(self, fair_trials) -> None:
        # Short prefix: the binomial lattice itself is detectable by KS at large n.
        result = calculate_device_variance(fair_trials[:200])
        assert result.sample_size == 200
        assert result.device_mean == pytest.approx(0.0, abs=0.3)
        assert result.device_variance == pytest.approx(1.0, abs=0.3)
        assert abs(result.skewness) < 0.6
        assert abs(result.kurtosis) < 1.2
        assert result.ks_p_value > 0.001
        assert result.probability == result.ad_p_value
        assert len(result.individual_z_scores) == 200

    def test_shifted_stream_fails_goodness_of_fit(self, make_trials, rng) -> None:
        result = calculate_device_variance(make_trials(rng.binomial(200, 0.55, size=500)))
        assert result.ad_p_value < 1e-6
        assert result.ks_p_value < 1e-6
        assert result.significance is Significance.SIGNIFICANT

    def test_anderson_darling_critical_values(self) -> None:
        assert 1 - _ad_asymptotic_cdf(2.492) == pytest.approx(0.05, abs=0.002)
        assert 1 - _ad_asymptotic_cdf(3.857) == pytest.approx(0.01, abs=0.001)

    def test_needs_four_trials(self, make_trials) -> None:
        with pytest.raises(InsufficientData):
            calculate_device_variance(make_trials([100, 101, 99]))


# ---------------------------------------------------------------------------
# z-score and effect size
# ---------------------------------------------------------------------------


class TestZScore:
    def test_scenario_with_narrow_reference(self, make_trials) -> None:
        # 300 trials averaging exactly 103 against σ = 7.2
        params = AnalysisParameters(expected_standard_deviation=7.2)
        result = calculate_z_score(make_trials([100, 106] * 150), params)
        assert result.observed_mean == 103.0
        assert result.z_score == pytest.approx(3 / (7.2 / math.sqrt(300)))
        assert result.z_score == pytest.approx(7.2169, abs=1e-3)
        assert result.significance is Significance.SIGNIFICANT
        assert result.p_value < 1e-10

    def test_interval_and_effect(self, make_trials) -> None:
        result = calculate_z_score(make_trials([102] * 50))
        se = SIGMA / math.sqrt(50)
        assert result.standard_error == pytest.approx(se)
        assert result.confidence_interval == pytest.approx((102 - 1.959964 * se, 102 + 1.959964 * se), abs=1e-5)
        assert result.effect_size == pytest.approx(2 / SIGMA)
        assert result.p_value_one_tailed == pytest.approx(result.p_value / 2)

    def test_type_one_error_rate(self, make_trials) -> None:
        rng = np.random.default_rng(99)
        rejections = 0
        runs = 2000
        for _ in range(runs):
            result = calculate_z_score(make_trials(rng.binomial(200, 0.5, size=1000)))
            rejections += result.significance is Significance.SIGNIFICANT
        assert 0.04 <= rejections / runs <= 0.06

    def test_empty(self) -> None:
        with pytest.raises(EmptyInput):
            calculate_z_score([])


class TestEffectSize:
    def test_shifted_sample(self, make_trials) -> None:
        result = calculate_effect_size(make_trials([100, 106] * 50))
        d = 3 / SIGMA
        assert result.cohens_d == pytest.approx(d)
        assert result.hedges_g == pytest.approx(d * (1 - 3 / 395))
        assert result.interpretation == "small"
        assert result.practical_significance is True
        se = math.sqrt(1 / 100 + d**2 / 200)
        assert result.confidence_interval == pytest.approx((d - 1.959964 * se, d + 1.959964 * se), abs=1e-5)
        assert result.point_biserial > 0.9

    def test_negligible_effect(self, fair_trials) -> None:
        result = calculate_effect_size(fair_trials)
        assert result.interpretation == "negligible"
        assert result.practical_significance is False

    def test_needs_two_trials(self, make_trials) -> None:
        with pytest.raises(InsufficientData):
            calculate_effect_size(make_trials([103]))
