"""
chancesign.errors
=================

Exception taxonomy for the analysis engine.

Every analysis either returns a fully populated result or raises one of these.
`InsufficientData` carries the minimum a test declared and the count it got,
so callers can show a "not yet analyzable" state instead of a hard failure.

Examples
--------
>>> from chancesign.errors import InsufficientData, InvalidArgument
>>> err = InsufficientData("runs test", required=2, actual=1)
>>> isinstance(err, InvalidArgument), err.required
(True, 2)
"""

from __future__ import annotations
from typing import Optional


class ChanceSignError(Exception):
    """Base class for all chancesign errors."""


class InvalidArgument(ChanceSignError, ValueError):
    """A numeric input lies outside the domain of the operation."""


class InsufficientData(InvalidArgument):
    """Fewer observations than the operation requires."""

    def __init__(
        self, what: str, *, required: int, actual: int, detail: Optional[str] = None
    ):
        self.what = what
        self.required = required
        self.actual = actual
        message = f"{what} requires at least {required} observations, got {actual}"
        if detail:
            message = f"{message} ({detail})"
        super().__init__(message)


class EmptyInput(InsufficientData):
    """The input sequence is empty."""

    def __init__(self, what: str):
        super().__init__(what, required=1, actual=0)


class UnsupportedPriorType(ChanceSignError, ValueError):
    """Posterior updating was requested for a prior family with no conjugate update."""


class UnsupportedDistribution(ChanceSignError, ValueError):
    """An operation was requested for a distribution family it does not handle."""
