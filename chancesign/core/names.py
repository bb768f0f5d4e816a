"""
chancesign.core.names
=====================

Typed names shared across the package.

- `Namespace`: an Enum for well-known ledger namespaces.
- `IntentionTag`: the intention recorded with a trial.
- `Significance`: binary significance label carried by test results.
- `SessionId`, `StepKey`, `TimeIndex`: NewType wrappers for clarity.
- `Literal` tags for monitor events.

Examples
--------
>>> from chancesign.core.names import Namespace, IntentionTag
>>> Namespace.OBS.value
'obs'
>>> IntentionTag("positive") is IntentionTag.POSITIVE
True
"""

from __future__ import annotations
from enum import Enum
from typing import Literal, NewType


class Namespace(str, Enum):
    """Well-known ledger namespaces.

    - OBS: raw trials
    - STATS: running statistics and test results
    - CRITERIA: sequential boundaries
    - SIGNALS: stopping decisions and recommendations
    """

    OBS = "obs"
    STATS = "stats"
    CRITERIA = "criteria"
    SIGNALS = "signals"

    def __str__(self) -> str:
        return self.value


class IntentionTag(str, Enum):
    """Intention under which a trial was recorded."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class Significance(str, Enum):
    NONE = "none"
    SIGNIFICANT = "significant"

    @classmethod
    def from_p_value(cls, p_value: float, alpha: float) -> "Significance":
        return cls.SIGNIFICANT if p_value < alpha else cls.NONE


SessionId = NewType("SessionId", str)
StepKey = NewType("StepKey", str)
TimeIndex = NewType("TimeIndex", str)

# Monitor event tags.
RunningStatsTag = Literal["stat:running"]
SprtBoundaryTag = Literal["crit:sprt"]
SprtDecisionTag = Literal["sprt:decision"]
