"""
chancesign.config
=================

Analysis configuration shared by every entry point.

`AnalysisParameters` is a frozen value object: it is passed into each analysis
call and never mutated. Defaults describe a 200-bit trial source, whose values
have mean N/2 = 100 and standard deviation sqrt(N/4) = sqrt(50).

Examples
--------
>>> from chancesign.config import AnalysisParameters
>>> params = AnalysisParameters.for_bits(100)
>>> params.expected_mean, round(params.expected_standard_deviation, 3)
(50.0, 5.0)
>>> params.with_overrides(confidence_level=0.99).confidence_level
0.99
"""

from __future__ import annotations
import math
from dataclasses import dataclass, replace
from typing import Any, Literal, Tuple

from chancesign.errors import InvalidArgument
from chancesign.stats.common.distributions import normal_inverse

MultipleComparisons = Literal["none", "bonferroni", "holm", "benjamini_hochberg"]

_CORRECTIONS: Tuple[str, ...] = ("none", "bonferroni", "holm", "benjamini_hochberg")

DEFAULT_BITS_PER_TRIAL = 200


@dataclass(frozen=True)
class AnalysisParameters:
    """
    Configuration for all analyses of a trial stream.

    Parameters
    ----------
    bits_per_trial : int, default=200
        N, the number of binary draws summed into one trial value.
    expected_mean : float, default=100.0
        Reference mean under chance (N/2).
    expected_standard_deviation : float, default=sqrt(50)
        Reference per-trial standard deviation under chance (sqrt(N/4)).
    confidence_level : float, default=0.95
        Level used for confidence and credible intervals.
    minimum_excursion_length : int, default=100
        Shortest run of trials reported as an excursion.
    excursion_threshold : float, default=2.0
        |Z| that the cumulative deviation must exceed to be in an excursion.
    significance_level : float, default=0.05
        Alpha used for pass/fail and significance flags.
    multiple_comparisons : str, default="holm"
        Correction applied across the randomness battery before pass/fail.
    """

    bits_per_trial: int = DEFAULT_BITS_PER_TRIAL
    expected_mean: float = DEFAULT_BITS_PER_TRIAL / 2
    expected_standard_deviation: float = math.sqrt(DEFAULT_BITS_PER_TRIAL / 4)
    confidence_level: float = 0.95
    minimum_excursion_length: int = 100
    excursion_threshold: float = 2.0
    significance_level: float = 0.05
    multiple_comparisons: MultipleComparisons = "holm"

    def __post_init__(self) -> None:
        self.validate()

    @classmethod
    def for_bits(cls, bits_per_trial: int, **overrides: Any) -> "AnalysisParameters":
        """Build parameters whose reference moments follow from N fair bits."""
        if bits_per_trial < 1:
            raise InvalidArgument(
                f"bits_per_trial must be positive, got {bits_per_trial}"
            )
        return cls(
            bits_per_trial=bits_per_trial,
            expected_mean=bits_per_trial / 2,
            expected_standard_deviation=math.sqrt(bits_per_trial / 4),
            **overrides,
        )

    def with_overrides(self, **changes: Any) -> "AnalysisParameters":
        """Return a copy with some fields replaced."""
        return replace(self, **changes)

    def validate(self) -> None:
        """Validate the configuration, raising InvalidArgument on bad values."""
        if self.bits_per_trial < 1:
            raise InvalidArgument(
                f"bits_per_trial must be positive, got {self.bits_per_trial}"
            )
        if not math.isfinite(self.expected_mean):
            raise InvalidArgument(f"expected_mean must be finite, got {self.expected_mean}")
        if not (self.expected_standard_deviation > 0) or not math.isfinite(
            self.expected_standard_deviation
        ):
            raise InvalidArgument(
                "expected_standard_deviation must be positive, "
                f"got {self.expected_standard_deviation}"
            )
        if not (0 < self.confidence_level < 1):
            raise InvalidArgument(
                f"confidence_level must be in (0, 1), got {self.confidence_level}"
            )
        if not (0 < self.significance_level < 1):
            raise InvalidArgument(
                f"significance_level must be in (0, 1), got {self.significance_level}"
            )
        if self.minimum_excursion_length < 1:
            raise InvalidArgument(
                "minimum_excursion_length must be at least 1, "
                f"got {self.minimum_excursion_length}"
            )
        if self.excursion_threshold <= 0:
            raise InvalidArgument(
                f"excursion_threshold must be positive, got {self.excursion_threshold}"
            )
        if self.multiple_comparisons not in _CORRECTIONS:
            raise InvalidArgument(
                f"multiple_comparisons must be one of {_CORRECTIONS}, "
                f"got {self.multiple_comparisons!r}"
            )

    @property
    def expected_variance(self) -> float:
        return self.expected_standard_deviation**2

    @property
    def critical_value(self) -> float:
        """Two-sided normal quantile for ``confidence_level`` (1.96 at 95%)."""
        return normal_inverse(1 - (1 - self.confidence_level) / 2)
