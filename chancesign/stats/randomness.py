"""
chancesign.stats.randomness
===========================

Randomness validation battery for trial streams.

`run_randomness_tests` runs every test below over a trial sequence and
aggregates them into a quality score. Bit-level tests first map trial values
onto a binary sequence: above/below the sample median for the runs test,
above/below the reference mean for the others. Values equal to the pivot are
dropped, so under chance the remaining bits are fair and independent.

Battery (in order):

1. Frequency: Z-test of the mean value against the reference mean
2. Runs: Wald–Wolfowitz count of runs
3. Longest run: exact tail of the longest same-bit run
4. Binary matrix rank: GF(2) ranks of square bit matrices (>= 1000 trials)
5. Discrete Fourier transform: spectral peaks below the 95% threshold (>= 1000 trials)
6. Serial: overlapping 3-bit pattern frequencies
7. Approximate entropy: 2- vs 3-bit block entropy
8. Cumulative sums, forward and backward
9. Jarque–Bera normality of the values

Examples
--------
>>> import numpy as np
>>> from datetime import datetime, timezone
>>> from chancesign.core.trials import trials_from_values
>>> from chancesign.stats.randomness import run_randomness_tests
>>> rng = np.random.default_rng(7)
>>> trials = trials_from_values(rng.binomial(200, 0.5, 2000), start=datetime(2024, 1, 1, tzinfo=timezone.utc))
>>> result = run_randomness_tests(trials)
>>> result.test("Frequency").category
'frequency'
"""

from __future__ import annotations
import logging
import math
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.stats import norm

from chancesign.config import AnalysisParameters
from chancesign.core.results import RandomnessTest, RandomnessTestResult
from chancesign.core.trials import Trial, trial_values
from chancesign.errors import InsufficientData
from chancesign.stats.common import moments
from chancesign.stats.common.corrections import adjust_p_values
from chancesign.stats.common.distributions import (
    chi_square_probability,
    normal_probability,
)

logger = logging.getLogger(__name__)

ArrayLike = Union[Sequence[float], np.ndarray]

MIN_SUITE_TRIALS = 100
MIN_MATRIX_TRIALS = 1000
MIN_SPECTRAL_TRIALS = 1000
MIN_BITS = 20
MIN_PATTERN_BITS = 64
MIN_MATRICES = 60
MAX_MATRIX_SIDE = 32
SERIAL_BLOCK = 3
ENTROPY_BLOCK = 2
SPECTRAL_LEVEL = 0.95


def _params(params: Optional[AnalysisParameters]) -> AnalysisParameters:
    return params if params is not None else AnalysisParameters()


def _outcome(
    name: str,
    category: str,
    statistic: float,
    p_value: float,
    description: str,
    alpha: float,
) -> RandomnessTest:
    p_value = min(1.0, max(0.0, float(p_value)))
    return RandomnessTest(
        name=name,
        category=category,
        statistic=float(statistic),
        p_value=p_value,
        adjusted_p_value=p_value,
        passed=p_value > alpha,
        description=description,
    )


def to_bits(values: ArrayLike, pivot: float) -> np.ndarray:
    """Map values above ``pivot`` to 1 and below to 0, dropping ties."""
    arr = np.asarray(values, dtype=float)
    kept = arr[arr != pivot]
    return (kept > pivot).astype(np.int64)


def _require(what: str, actual: int, required: int, detail: Optional[str] = None) -> None:
    if actual < required:
        raise InsufficientData(what, required=required, actual=actual, detail=detail)


# --------------------------------------------------------------------------
# Individual tests
# --------------------------------------------------------------------------


def frequency_test(
    values: ArrayLike, params: Optional[AnalysisParameters] = None
) -> RandomnessTest:
    """Monobit frequency test: Z of the observed mean against the reference mean."""
    params = _params(params)
    arr = np.asarray(values, dtype=float)
    _require("frequency test", int(arr.size), 1)
    se = params.expected_standard_deviation / math.sqrt(arr.size)
    z = (float(arr.mean()) - params.expected_mean) / se
    return _outcome(
        "Frequency",
        "frequency",
        z,
        normal_probability(z),
        "Mean trial value against the chance expectation",
        params.significance_level,
    )


def runs_test(
    values: ArrayLike, params: Optional[AnalysisParameters] = None
) -> RandomnessTest:
    """Wald–Wolfowitz runs test on the above/below-median sequence."""
    params = _params(params)
    arr = np.asarray(values, dtype=float)
    _require("runs test", int(arr.size), MIN_BITS)
    bits = to_bits(arr, moments.median(arr))
    n = int(bits.size)
    ones = int(bits.sum())
    zeros = n - ones
    _require("runs test", n, MIN_BITS, "values off the median")
    if ones == 0 or zeros == 0:
        raise InsufficientData(
            "runs test", required=1, actual=0, detail="no values on one side of the median"
        )

    runs = 1 + int(np.count_nonzero(bits[1:] != bits[:-1]))
    expected = 2 * ones * zeros / n + 1
    var = 2 * ones * zeros * (2 * ones * zeros - n) / (n**2 * (n - 1))
    z = (runs - expected) / math.sqrt(var)
    return _outcome(
        "Runs",
        "runs",
        z,
        normal_probability(z),
        f"{runs} runs observed, {expected:.1f} expected under independence",
        params.significance_level,
    )


def _longest_run_cdf(n: int, m: int) -> float:
    """P(longest run of identical fair bits in a length-n sequence <= m)."""
    if m >= n:
        return 1.0
    if m < 1:
        return 0.0
    state = np.zeros(m)
    state[0] = 1.0
    for _ in range(n - 1):
        total = state.sum()
        state[1:] = 0.5 * state[:-1]
        state[0] = 0.5 * total
    return float(state.sum())


def longest_run(bits: np.ndarray) -> int:
    if bits.size == 0:
        return 0
    change = np.flatnonzero(np.diff(bits) != 0)
    bounds = np.concatenate(([-1], change, [bits.size - 1]))
    return int(np.diff(bounds).max())


def longest_run_test(
    values: ArrayLike, params: Optional[AnalysisParameters] = None
) -> RandomnessTest:
    """Longest same-bit run against its exact distribution under fair bits.

    The expected longest run grows like log2(n). The p-value is two-sided:
    runs that are too long (sticking) and too short (over-alternation) both
    count against randomness.
    """
    params = _params(params)
    bits = to_bits(values, params.expected_mean)
    n = int(bits.size)
    _require("longest run test", n, MIN_BITS)
    observed = longest_run(bits)
    upper = 1.0 - _longest_run_cdf(n, observed - 1)
    lower = _longest_run_cdf(n, observed)
    return _outcome(
        "Longest Run",
        "runs",
        observed,
        min(1.0, 2 * min(upper, lower)),
        f"Longest run {observed} bits, about {math.log2(n):.1f} expected",
        params.significance_level,
    )


def matrix_side(n_bits: int) -> int:
    """Largest square side (capped at 32) leaving at least 60 matrices."""
    return min(MAX_MATRIX_SIDE, int(math.isqrt(n_bits // MIN_MATRICES)))


def rank_probabilities(side: int) -> Tuple[float, float, float]:
    """Probabilities that a random side×side GF(2) matrix has rank side, side-1, or less."""

    def probability(rank: int) -> float:
        product = 1.0
        for i in range(rank):
            product *= (1 - 2.0 ** (i - side)) ** 2 / (1 - 2.0 ** (i - rank))
        return 2.0 ** (rank * (2 * side - rank) - side * side) * product

    full = probability(side)
    deficient = probability(side - 1)
    return full, deficient, 1.0 - full - deficient


def gf2_rank(rows: Sequence[int]) -> int:
    """Rank over GF(2) of a matrix given as row bitmasks."""
    basis: Dict[int, int] = {}
    for row in rows:
        row = int(row)
        while row:
            lead = row.bit_length() - 1
            if lead not in basis:
                basis[lead] = row
                break
            row ^= basis[lead]
    return len(basis)


def binary_matrix_rank_test(
    values: ArrayLike, params: Optional[AnalysisParameters] = None
) -> RandomnessTest:
    """Rank distribution of disjoint square bit matrices over GF(2).

    Uses 32×32 matrices when the data holds at least 60 of them, otherwise
    the largest side that does (at least 3). Ranks are binned as full,
    full-1 and lower and compared with their theoretical probabilities
    (0.2888 full rank for 32×32) by a chi-square test with 2 degrees of
    freedom. Requires at least 1000 trials.
    """
    params = _params(params)
    arr = np.asarray(values, dtype=float)
    _require("binary matrix rank test", int(arr.size), MIN_MATRIX_TRIALS)
    bits = to_bits(arr, params.expected_mean)
    side = matrix_side(int(bits.size))
    _require("binary matrix rank test", side, 3, "matrix side from available bits")

    count = bits.size // (side * side)
    weights = 1 << np.arange(side - 1, -1, -1, dtype=np.int64)
    blocks = bits[: count * side * side].reshape(count, side, side)
    row_masks = blocks @ weights

    ranks = np.array([gf2_rank(rows) for rows in row_masks])
    observed = np.array(
        [
            np.count_nonzero(ranks == side),
            np.count_nonzero(ranks == side - 1),
            np.count_nonzero(ranks < side - 1),
        ]
    )
    expected = count * np.array(rank_probabilities(side))
    chi_square = float(np.sum((observed - expected) ** 2 / expected))
    return _outcome(
        "Binary Matrix Rank",
        "matrix",
        chi_square,
        chi_square_probability(chi_square, 2),
        f"{observed[0]}/{count} full-rank {side}x{side} matrices, "
        f"{expected[0] / count:.4f} expected proportion",
        params.significance_level,
    )


def spectral_test(
    values: ArrayLike, params: Optional[AnalysisParameters] = None
) -> RandomnessTest:
    """Discrete Fourier transform test for periodic features.

    Counts spectral magnitudes of the ±1 sequence below the 95% threshold
    sqrt(ln(1/0.05)·n) and compares with the expected 0.95·n/2. Requires at
    least 1000 trials.
    """
    params = _params(params)
    arr = np.asarray(values, dtype=float)
    _require("spectral test", int(arr.size), MIN_SPECTRAL_TRIALS)
    bits = to_bits(arr, params.expected_mean)
    n = int(bits.size)
    _require("spectral test", n, MIN_BITS, "values off the reference mean")
    signal = 2.0 * bits - 1.0
    magnitudes = np.abs(np.fft.fft(signal)[: n // 2])
    threshold = math.sqrt(math.log(1 / (1 - SPECTRAL_LEVEL)) * n)
    expected = SPECTRAL_LEVEL * n / 2
    below = int(np.count_nonzero(magnitudes < threshold))
    d = (below - expected) / math.sqrt(n * SPECTRAL_LEVEL * (1 - SPECTRAL_LEVEL) / 4)
    return _outcome(
        "Discrete Fourier Transform",
        "spectral",
        d,
        normal_probability(d),
        f"{below} of {n // 2} peaks below threshold, {expected:.1f} expected",
        params.significance_level,
    )


def _pattern_counts(bits: np.ndarray, m: int) -> np.ndarray:
    """Counts of overlapping m-bit patterns, wrapping around the end."""
    n = bits.size
    extended = np.concatenate((bits, bits[: m - 1]))
    index = np.zeros(n, dtype=np.int64)
    for k in range(m):
        index = (index << 1) | extended[k : k + n]
    return np.bincount(index, minlength=2**m)


def _psi_squared(bits: np.ndarray, m: int) -> float:
    if m == 0:
        return 0.0
    n = bits.size
    counts = _pattern_counts(bits, m)
    return float(2**m / n * np.sum(counts.astype(float) ** 2) - n)


def serial_test(
    values: ArrayLike,
    params: Optional[AnalysisParameters] = None,
    *,
    block: int = SERIAL_BLOCK,
) -> RandomnessTest:
    """Serial test: uniformity of overlapping ``block``-bit patterns (∇ψ²)."""
    params = _params(params)
    bits = to_bits(values, params.expected_mean)
    _require("serial test", int(bits.size), MIN_PATTERN_BITS)
    statistic = _psi_squared(bits, block) - _psi_squared(bits, block - 1)
    return _outcome(
        "Serial",
        "serial",
        statistic,
        chi_square_probability(max(0.0, statistic), 2 ** (block - 1)),
        f"Overlapping {block}-bit pattern frequencies",
        params.significance_level,
    )


def _phi(bits: np.ndarray, m: int) -> float:
    counts = _pattern_counts(bits, m)
    proportions = counts[counts > 0] / bits.size
    return float(np.sum(proportions * np.log(proportions)))


def approximate_entropy_test(
    values: ArrayLike,
    params: Optional[AnalysisParameters] = None,
    *,
    block: int = ENTROPY_BLOCK,
) -> RandomnessTest:
    """Approximate entropy: ApEn(m) = φ(m) - φ(m+1), χ² = 2n(ln 2 - ApEn)."""
    params = _params(params)
    bits = to_bits(values, params.expected_mean)
    n = int(bits.size)
    _require("approximate entropy test", n, MIN_PATTERN_BITS)
    apen = _phi(bits, block) - _phi(bits, block + 1)
    # ApEn never exceeds ln 2 except by rounding.
    chi_square = max(0.0, 2 * n * (math.log(2) - apen))
    return _outcome(
        "Approximate Entropy",
        "entropy",
        chi_square,
        chi_square_probability(chi_square, 2**block),
        f"ApEn({block}) = {apen:.6f}, ln 2 = {math.log(2):.6f} for a fair source",
        params.significance_level,
    )


def cusum_p_value(z: float, n: int) -> float:
    """Tail probability of a maximal partial-sum excursion ``z`` over ``n`` unit steps."""
    if z <= 0:
        return 1.0
    root_n = math.sqrt(n)
    k1 = np.arange(math.floor((-n / z + 1) / 4), math.floor((n / z - 1) / 4) + 1)
    k2 = np.arange(math.floor((-n / z - 3) / 4), math.floor((n / z - 1) / 4) + 1)
    sum1 = np.sum(norm.cdf((4 * k1 + 1) * z / root_n) - norm.cdf((4 * k1 - 1) * z / root_n))
    sum2 = np.sum(norm.cdf((4 * k2 + 3) * z / root_n) - norm.cdf((4 * k2 + 1) * z / root_n))
    return float(min(1.0, max(0.0, 1.0 - sum1 + sum2)))


def cumulative_sums_test(
    values: ArrayLike,
    params: Optional[AnalysisParameters] = None,
    *,
    reverse: bool = False,
) -> RandomnessTest:
    """Maximal excursion of the standardized partial sums, forward or backward."""
    params = _params(params)
    arr = np.asarray(values, dtype=float)
    _require("cumulative sums test", int(arr.size), MIN_BITS)
    steps = (arr - params.expected_mean) / params.expected_standard_deviation
    if reverse:
        steps = steps[::-1]
    z = float(np.max(np.abs(np.cumsum(steps))))
    direction = "backward" if reverse else "forward"
    return _outcome(
        f"Cumulative Sums ({direction})",
        "cumulative_sums",
        z,
        cusum_p_value(z, int(arr.size)),
        f"Largest {direction} partial-sum excursion in standard units",
        params.significance_level,
    )


def normality_test(
    values: ArrayLike, params: Optional[AnalysisParameters] = None
) -> RandomnessTest:
    """Jarque–Bera test of the value distribution against a normal shape.

    A stream with no spread at all (a stuck source) fails outright.
    """
    params = _params(params)
    arr = np.asarray(values, dtype=float)
    _require("Jarque-Bera test", int(arr.size), MIN_BITS)
    if np.all(arr == arr[0]):
        return _outcome(
            "Jarque-Bera",
            "normality",
            math.inf,
            0.0,
            f"Every value equals {arr[0]:g}; the source shows no spread",
            params.significance_level,
        )
    statistic, p_value = moments.jarque_bera(arr)
    return _outcome(
        "Jarque-Bera",
        "normality",
        statistic,
        p_value,
        "Skewness and kurtosis against a normal shape",
        params.significance_level,
    )


BATTERY: Tuple[Tuple[str, Callable[..., RandomnessTest]], ...] = (
    ("Frequency", frequency_test),
    ("Runs", runs_test),
    ("Longest Run", longest_run_test),
    ("Binary Matrix Rank", binary_matrix_rank_test),
    ("Discrete Fourier Transform", spectral_test),
    ("Serial", serial_test),
    ("Approximate Entropy", approximate_entropy_test),
    ("Cumulative Sums (forward)", cumulative_sums_test),
    ("Cumulative Sums (backward)", lambda v, p: cumulative_sums_test(v, p, reverse=True)),
    ("Jarque-Bera", normality_test),
)

_CATEGORY_ADVICE: Dict[str, str] = {
    "frequency": "Bias: the mean departs from chance; check the source for a systematic offset.",
    "runs": "Pattern/correlation: successive trials are not independent; check sampling and buffering.",
    "serial": "Pattern/correlation: successive trials are not independent; check sampling and buffering.",
    "spectral": "Periodicity: a periodic component is present; look for interference or clocked artifacts.",
    "entropy": "Predictability: the sequence carries less entropy than a fair source.",
    "matrix": "Linear dependence: bit blocks are linearly dependent; review any whitening or post-processing.",
    "cumulative_sums": "Cumulative drift: partial sums wander further than chance allows.",
    "normality": "Distribution shape: values do not follow the expected binomial-normal shape.",
}
_HARDWARE_ADVICE = "Low overall score: inspect the generator hardware and recalibrate before further sessions."
_PASS_ADVICE = "Randomness quality is acceptable: all tests passed."
_NEUTRAL_ADVICE = (
    f"Collect at least {MIN_SUITE_TRIALS} trials before assessing randomness quality."
)


def recommendations_for(tests: Sequence[RandomnessTest], score: float) -> Tuple[str, ...]:
    """Advice derived, in battery order, from the categories of failed tests."""
    advice: List[str] = []
    for outcome in tests:
        if not outcome.passed:
            message = _CATEGORY_ADVICE[outcome.category]
            if message not in advice:
                advice.append(message)
    if score < 0.8:
        advice.append(_HARDWARE_ADVICE)
    return tuple(advice) if advice else (_PASS_ADVICE,)


def run_randomness_tests(
    trials: Sequence[Trial], params: Optional[AnalysisParameters] = None
) -> RandomnessTestResult:
    """Run the randomness battery and aggregate a quality score.

    Below 100 trials a neutral result is returned (score 0.5, not random at
    level). Tests whose own minimum is not met are listed in
    ``skipped_tests``. P-values are adjusted across the battery with
    ``params.multiple_comparisons`` and a test passes when its adjusted
    p-value exceeds ``params.significance_level``. The score is the fraction
    of tests passed; the stream is random at level when the score is at least
    0.95.
    """
    params = _params(params)
    if len(trials) < MIN_SUITE_TRIALS:
        logger.info(
            "randomness battery needs %d trials, got %d; returning neutral result",
            MIN_SUITE_TRIALS,
            len(trials),
        )
        return RandomnessTestResult(
            tests=(),
            overall_score=0.5,
            is_random_at_level=False,
            recommendations=(_NEUTRAL_ADVICE,),
            sample_size=len(trials),
            correction=params.multiple_comparisons,
        )

    values = trial_values(trials, params, what="randomness battery")
    outcomes: List[RandomnessTest] = []
    skipped: List[str] = []
    for name, test in BATTERY:
        try:
            outcomes.append(test(values, params))
        except InsufficientData as exc:
            logger.info("skipping %s: %s", name, exc)
            skipped.append(name)

    adjusted = adjust_p_values([o.p_value for o in outcomes], params.multiple_comparisons)
    outcomes = [
        replace(o, adjusted_p_value=a, passed=a > params.significance_level)
        for o, a in zip(outcomes, adjusted)
    ]
    passed = sum(1 for o in outcomes if o.passed)
    score = passed / len(outcomes)
    logger.debug("randomness battery: %d/%d passed", passed, len(outcomes))
    return RandomnessTestResult(
        tests=tuple(outcomes),
        overall_score=score,
        is_random_at_level=score >= 0.95,
        recommendations=recommendations_for(outcomes, score),
        sample_size=len(trials),
        correction=params.multiple_comparisons,
        skipped_tests=tuple(skipped),
    )
