"""Shared test fixtures for chancesign tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Sequence

import numpy as np
import pytest

from chancesign.core.names import IntentionTag
from chancesign.core.trials import Trial, trials_from_values

START = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

MakeTrials = Callable[..., List[Trial]]


@pytest.fixture
def start() -> datetime:
    return START


@pytest.fixture
def rng() -> np.random.Generator:
    """Seeded generator; every test gets the same stream."""
    return np.random.default_rng(20240301)


@pytest.fixture
def make_trials() -> MakeTrials:
    """Factory turning raw values into evenly spaced trials."""

    def factory(
        values: Sequence[int],
        *,
        start: datetime = START,
        interval: timedelta = timedelta(seconds=1),
        session_id: str = "default",
        intention: IntentionTag = IntentionTag.NEUTRAL,
    ) -> List[Trial]:
        return trials_from_values(
            [int(v) for v in values],
            start=start,
            interval=interval,
            session_id=session_id,
            intention=intention,
        )

    return factory


@pytest.fixture
def fair_trials(rng: np.random.Generator, make_trials: MakeTrials) -> List[Trial]:
    """2000 trials of 200 fair bits each."""
    return make_trials(rng.binomial(200, 0.5, size=2000))
