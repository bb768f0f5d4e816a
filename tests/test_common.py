"""Tests for chancesign.stats.common — distributions, moments, effect sizes, corrections."""

from __future__ import annotations

import math

import numpy as np
import pytest
from scipy import stats as sps

from chancesign.errors import EmptyInput, InsufficientData, InvalidArgument
from chancesign.stats.common import moments
from chancesign.stats.common.corrections import (
    adjust_p_values,
    benjamini_hochberg,
    bonferroni,
    holm,
)
from chancesign.stats.common.distributions import (
    chi_square_inverse,
    chi_square_probability,
    normal_cdf,
    normal_inverse,
    normal_probability,
    normal_probability_one_tailed,
    t_distribution_probability,
    t_inverse,
)
from chancesign.stats.common.effect_sizes import (
    cohens_d,
    hedges_g,
    interpret_effect_size,
    minimum_detectable_effect,
    point_biserial_correlation,
    pooled_standard_deviation,
    required_sample_size,
    statistical_power,
    z_test_power,
)

# ---------------------------------------------------------------------------
# distributions
# ---------------------------------------------------------------------------


class TestNormal:
    def test_cdf_at_zero(self) -> None:
        assert normal_cdf(0.0) == pytest.approx(0.5)

    def test_inverse_of_upper_quantile(self) -> None:
        assert normal_inverse(0.975) == pytest.approx(1.959964, abs=1e-6)

    def test_inverse_round_trips_cdf(self) -> None:
        for x in np.linspace(-4, 4, 81):
            assert normal_inverse(normal_cdf(float(x))) == pytest.approx(x, abs=1e-9)

    @pytest.mark.parametrize("p", [0.0, 1.0, -0.1, 1.5])
    def test_inverse_rejects_probabilities_outside_open_interval(self, p: float) -> None:
        with pytest.raises(InvalidArgument):
            normal_inverse(p)

    def test_two_tailed_probability(self) -> None:
        assert normal_probability(1.959964) == pytest.approx(0.05, abs=1e-6)
        assert normal_probability(-1.959964) == pytest.approx(0.05, abs=1e-6)

    def test_one_tailed_is_upper_tail(self) -> None:
        assert normal_probability_one_tailed(1.644854) == pytest.approx(0.05, abs=1e-6)
        assert normal_probability_one_tailed(-1.644854) == pytest.approx(0.95, abs=1e-6)

    def test_nan_is_rejected(self) -> None:
        with pytest.raises(InvalidArgument):
            normal_cdf(math.nan)


class TestChiSquare:
    def test_upper_tail_at_critical_value(self) -> None:
        assert chi_square_probability(3.841459, 1) == pytest.approx(0.05, abs=1e-6)

    def test_zero_statistic_has_probability_one(self) -> None:
        assert chi_square_probability(0.0, 3) == pytest.approx(1.0)

    def test_negative_statistic_rejected(self) -> None:
        with pytest.raises(InvalidArgument):
            chi_square_probability(-1.0, 2)

    def test_degrees_of_freedom_below_one_rejected(self) -> None:
        with pytest.raises(InvalidArgument):
            chi_square_probability(1.0, 0)

    def test_inverse(self) -> None:
        assert chi_square_inverse(0.95, 2) == pytest.approx(5.991465, abs=1e-6)


class TestStudentT:
    def test_two_sided_probability_at_critical_value(self) -> None:
        assert t_distribution_probability(2.228139, 10) == pytest.approx(0.05, abs=1e-6)

    def test_symmetric_in_t(self) -> None:
        assert t_distribution_probability(-2.0, 5) == t_distribution_probability(2.0, 5)

    def test_inverse(self) -> None:
        assert t_inverse(0.975, 10) == pytest.approx(2.228139, abs=1e-6)

    def test_large_df_approaches_normal(self) -> None:
        assert t_distribution_probability(1.96, 100_000) == pytest.approx(
            normal_probability(1.96), abs=1e-4
        )


# ---------------------------------------------------------------------------
# moments
# ---------------------------------------------------------------------------


class TestMoments:
    def test_mean_and_variance(self) -> None:
        assert moments.mean([1, 2, 3, 4]) == pytest.approx(2.5)
        assert moments.variance([1, 2, 3, 4]) == pytest.approx(5 / 3)
        assert moments.standard_deviation([1, 2, 3, 4]) == pytest.approx(math.sqrt(5 / 3))

    def test_empty_input(self) -> None:
        with pytest.raises(EmptyInput):
            moments.mean([])

    def test_variance_needs_two_values(self) -> None:
        with pytest.raises(InsufficientData) as info:
            moments.variance([5.0])
        assert info.value.required == 2
        assert info.value.actual == 1

    def test_skewness_matches_adjusted_estimator(self) -> None:
        data = [1.0, 2.0, 2.5, 4.0, 10.0, 3.0]
        assert moments.skewness(data) == pytest.approx(sps.skew(data, bias=False))

    def test_kurtosis_matches_adjusted_excess_estimator(self) -> None:
        data = [1.0, 2.0, 2.5, 4.0, 10.0, 3.0, 2.2]
        assert moments.kurtosis(data) == pytest.approx(
            sps.kurtosis(data, fisher=True, bias=False)
        )

    def test_shape_of_constant_sequence_is_zero(self) -> None:
        assert moments.skewness([3, 3, 3]) == 0.0
        assert moments.kurtosis([3, 3, 3, 3]) == 0.0

    def test_kurtosis_needs_four_values(self) -> None:
        with pytest.raises(InsufficientData):
            moments.kurtosis([1, 2, 3])

    def test_median(self) -> None:
        assert moments.median([5, 1, 3, 2]) == pytest.approx(2.5)

    def test_autocorrelation(self) -> None:
        # centered [-2, -1, 0, 1, 2]: lag-1 products sum to 4, squares to 10
        assert moments.autocorrelation([1, 2, 3, 4, 5]) == pytest.approx(0.4)

    def test_autocorrelation_of_constant_is_zero(self) -> None:
        assert moments.autocorrelation([2, 2, 2, 2]) == 0.0


class TestLinearRegression:
    def test_exact_line(self) -> None:
        fit = moments.linear_regression([0, 1, 2, 3], [1, 3, 5, 7])
        assert fit.slope == pytest.approx(2.0)
        assert fit.intercept == pytest.approx(1.0)
        assert fit.slope_standard_error == pytest.approx(0.0, abs=1e-12)
        assert fit.correlation == pytest.approx(1.0)
        assert fit.degrees_of_freedom == 2

    def test_constant_response_has_zero_slope_error(self) -> None:
        fit = moments.linear_regression([1, 2, 3], [5, 5, 5])
        assert fit.slope == 0.0
        assert fit.slope_standard_error == 0.0
        assert fit.correlation == 0.0

    def test_identical_x_rejected(self) -> None:
        with pytest.raises(InvalidArgument):
            moments.linear_regression([1, 1, 1], [1, 2, 3])

    def test_length_mismatch_rejected(self) -> None:
        with pytest.raises(InvalidArgument):
            moments.linear_regression([1, 2, 3], [1, 2, 3, 4])


class TestJarqueBera:
    def test_normal_sample_is_not_rejected(self, rng: np.random.Generator) -> None:
        _, p_value = moments.jarque_bera(rng.normal(size=2000))
        assert p_value > 0.001

    def test_skewed_sample_is_rejected(self, rng: np.random.Generator) -> None:
        _, p_value = moments.jarque_bera(rng.exponential(size=2000))
        assert p_value < 1e-6


# ---------------------------------------------------------------------------
# effect sizes and power
# ---------------------------------------------------------------------------


class TestEffectSizes:
    def test_cohens_d(self) -> None:
        assert cohens_d(103.0, 100.0, math.sqrt(50)) == pytest.approx(0.424264, abs=1e-6)

    def test_cohens_d_rejects_zero_spread(self) -> None:
        with pytest.raises(InvalidArgument):
            cohens_d(1.0, 0.0, 0.0)

    def test_hedges_g_shrinks_d(self) -> None:
        # df = 10 + 1 - 2 = 9, correction 1 - 3/35
        assert hedges_g(103.0, 100.0, 6.0, 10) == pytest.approx(0.5 * (1 - 3 / 35))

    def test_pooled_standard_deviation(self) -> None:
        assert pooled_standard_deviation(2.0, 5, 4.0, 5) == pytest.approx(math.sqrt(10.0))

    def test_point_biserial_matches_pearson(self) -> None:
        values = np.array([1.0, 4.0, 2.0, 8.0, 5.0, 7.0])
        split = values > 4.5
        expected = np.corrcoef(values, split.astype(float))[0, 1]
        assert point_biserial_correlation(values, split) == pytest.approx(expected)

    def test_point_biserial_with_empty_group(self) -> None:
        assert point_biserial_correlation([1.0, 2.0], [False, False]) == 0.0

    @pytest.mark.parametrize(
        "d, label",
        [(0.1, "negligible"), (-0.3, "small"), (0.5, "medium"), (0.79, "medium"), (-1.2, "large")],
    )
    def test_interpretation(self, d: float, label: str) -> None:
        assert interpret_effect_size(d) == label


class TestPower:
    def test_required_sample_size_for_medium_effect(self) -> None:
        # ((1.959964 + 0.841621) / 0.5)^2 = 31.4 → 32
        assert required_sample_size(0.5, power=0.8, alpha=0.05) == 32

    def test_required_sample_size_for_zero_effect_is_infinite(self) -> None:
        assert math.isinf(required_sample_size(0.0))

    def test_minimum_detectable_effect_inverts_sample_size(self) -> None:
        mde = minimum_detectable_effect(400, power=0.8, alpha=0.05)
        assert mde == pytest.approx((1.959964 + 0.841621) / 20, abs=1e-5)

    def test_z_test_power_at_design_point(self) -> None:
        effect = minimum_detectable_effect(400)
        assert z_test_power(effect, 400) == pytest.approx(0.8, abs=1e-3)

    def test_t_test_power_close_to_z_power_for_large_n(self) -> None:
        assert statistical_power(0.2, 500) == pytest.approx(z_test_power(0.2, 500), abs=0.01)

    def test_power_of_null_effect_is_alpha(self) -> None:
        assert statistical_power(0.0, 50, alpha=0.05) == pytest.approx(0.05, abs=1e-6)

    def test_power_needs_two_trials(self) -> None:
        with pytest.raises(InvalidArgument):
            statistical_power(0.5, 1)


# ---------------------------------------------------------------------------
# multiple comparisons
# ---------------------------------------------------------------------------


class TestCorrections:
    P_VALUES = [0.01, 0.04, 0.03, 0.005]

    def test_bonferroni(self) -> None:
        assert bonferroni(self.P_VALUES) == pytest.approx([0.04, 0.16, 0.12, 0.02])

    def test_holm_is_monotone_step_down(self) -> None:
        # sorted: 0.005*4, 0.01*3, 0.03*2, 0.04*1 → 0.02, 0.03, 0.06, max(0.04, 0.06)
        assert holm(self.P_VALUES) == pytest.approx([0.03, 0.06, 0.06, 0.02])

    def test_benjamini_hochberg(self) -> None:
        # sorted: 0.005*4/1, 0.01*4/2, 0.03*4/3, 0.04*4/4 → 0.02, 0.02, 0.04, 0.04
        assert benjamini_hochberg(self.P_VALUES) == pytest.approx([0.02, 0.04, 0.04, 0.02])

    def test_none_leaves_values_unchanged(self) -> None:
        assert adjust_p_values(self.P_VALUES, "none") == pytest.approx(self.P_VALUES)

    def test_adjusted_values_capped_at_one(self) -> None:
        assert bonferroni([0.5, 0.9]) == pytest.approx([1.0, 1.0])

    def test_unknown_method(self) -> None:
        with pytest.raises(InvalidArgument):
            adjust_p_values([0.1], "sidak")

    def test_out_of_range_p_value(self) -> None:
        with pytest.raises(InvalidArgument):
            holm([0.1, 1.2])

    def test_empty_family(self) -> None:
        assert holm([]) == []
