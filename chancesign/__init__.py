"""
chancesign — statistical analysis and randomness validation for streams of random trials.

A trial is the sum of N fair binary draws taken from a hardware or software
random source. Across a long-running protocol (baseline calibration,
intention-tagged sessions, continuous monitoring) the question is always the
same: does this stream still look like chance, and if not, how far and for how
long has it wandered?

chancesign answers it with pure functions over immutable trial sequences:
deviation metrics, a battery of randomness-quality tests, baseline drift
detection, and Bayesian, sequential and meta-analytic inference across
sessions. The only stateful piece is the running-statistics accumulator used
for live monitoring, which can record what it sees in an append-only ledger.

Example
-------
>>> import chancesign
>>> from chancesign.config import AnalysisParameters
>>> AnalysisParameters().expected_mean
100.0
"""

import logging

from chancesign.__version__ import __version__

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = ["__version__"]
