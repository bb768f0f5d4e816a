"""
chancesign.stats.common.corrections
===================================

Multiple-comparison corrections for families of p-values.

Each function returns adjusted p-values in the input order, so a test is
rejected at level alpha when its adjusted p-value is at most alpha.

Examples
--------
>>> from chancesign.stats.common.corrections import holm
>>> holm([0.01, 0.02, 0.2])
[0.03, 0.04, 0.2]
"""

from __future__ import annotations
from typing import Callable, Dict, List, Sequence

import numpy as np

from chancesign.errors import InvalidArgument


def _validated(p_values: Sequence[float]) -> np.ndarray:
    arr = np.asarray(p_values, dtype=float)
    if np.any(np.isnan(arr)) or np.any(arr < 0) or np.any(arr > 1):
        raise InvalidArgument(f"p-values must lie in [0, 1], got {list(p_values)}")
    return arr


def bonferroni(p_values: Sequence[float]) -> List[float]:
    """Multiply each p-value by the family size, capped at 1."""
    arr = _validated(p_values)
    return [float(p) for p in np.minimum(1.0, arr * arr.size)]


def holm(p_values: Sequence[float]) -> List[float]:
    """Holm step-down adjustment (controls the family-wise error rate)."""
    arr = _validated(p_values)
    m = arr.size
    if m == 0:
        return []
    order = np.argsort(arr, kind="stable")
    scaled = arr[order] * (m - np.arange(m))
    stepped = np.minimum(1.0, np.maximum.accumulate(scaled))
    adjusted = np.empty(m)
    adjusted[order] = stepped
    return [float(p) for p in adjusted]


def benjamini_hochberg(p_values: Sequence[float]) -> List[float]:
    """Benjamini–Hochberg step-up adjustment (controls the false discovery rate)."""
    arr = _validated(p_values)
    m = arr.size
    if m == 0:
        return []
    order = np.argsort(arr, kind="stable")
    scaled = arr[order] * m / np.arange(1, m + 1)
    stepped = np.minimum(1.0, np.minimum.accumulate(scaled[::-1])[::-1])
    adjusted = np.empty(m)
    adjusted[order] = stepped
    return [float(p) for p in adjusted]


_METHODS: Dict[str, Callable[[Sequence[float]], List[float]]] = {
    "none": lambda p: [float(x) for x in _validated(p)],
    "bonferroni": bonferroni,
    "holm": holm,
    "benjamini_hochberg": benjamini_hochberg,
}


def adjust_p_values(p_values: Sequence[float], method: str = "holm") -> List[float]:
    """Adjust ``p_values`` with the named method ("none" leaves them unchanged)."""
    try:
        correction = _METHODS[method]
    except KeyError:
        raise InvalidArgument(
            f"Unknown correction {method!r}, expected one of {sorted(_METHODS)}"
        ) from None
    return correction(p_values)
