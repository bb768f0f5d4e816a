"""
chancesign.backends.polars.trials
=================================

Polars frames of trials, and pluggable **sources/sinks** to read and write
them. This module contains no analysis, just conversion and I/O.

Frame layout: ``timestamp`` (UTC datetime), ``value``, ``session_id``,
``intention``, ``sequence_number``.

Examples
--------
>>> from datetime import datetime, timezone
>>> from chancesign.core.trials import trials_from_values
>>> from chancesign.backends.polars.trials import trials_to_frame, trials_from_frame
>>> df = trials_to_frame(trials_from_values([99, 101], start=datetime(2024, 1, 1, tzinfo=timezone.utc)))
>>> df.columns
['timestamp', 'value', 'session_id', 'intention', 'sequence_number']
>>> [t.value for t in trials_from_frame(df)]
[99, 101]
>>> ParquetTrialSink("_tmp.parquet").write(df)  # doctest: +SKIP
"""

from __future__ import annotations
from datetime import timezone
from typing import Any, List, Protocol, Sequence, cast

import polars as pl

from chancesign.core.names import IntentionTag
from chancesign.core.trials import Trial
from chancesign.errors import InvalidArgument

TRIAL_SCHEMA = {
    "timestamp": pl.Datetime(time_unit="us", time_zone="UTC"),
    "value": pl.Int64,
    "session_id": pl.Utf8,
    "intention": pl.Utf8,
    "sequence_number": pl.Int64,
}


class TrialSource(Protocol):
    """A read-only source of trials: storage -> DataFrame."""

    def read(self) -> pl.DataFrame: ...


class TrialSink(Protocol):
    """A write-only sink: DataFrame -> storage."""

    def write(self, df: pl.DataFrame) -> None: ...


def trials_to_frame(trials: Sequence[Trial]) -> pl.DataFrame:
    """One row per trial, in input order."""
    return pl.DataFrame(
        {
            "timestamp": [t.timestamp for t in trials],
            "value": [t.value for t in trials],
            "session_id": [t.session_id for t in trials],
            "intention": [t.intention.value for t in trials],
            "sequence_number": [t.sequence_number for t in trials],
        },
        schema=cast(Any, TRIAL_SCHEMA),
    )


def trials_from_frame(df: pl.DataFrame) -> List[Trial]:
    """Rebuild trials from a frame with at least ``timestamp`` and ``value``.

    Missing optional columns take the `Trial` defaults; naive timestamps are
    taken as UTC.
    """
    missing = {"timestamp", "value"} - set(df.columns)
    if missing:
        raise InvalidArgument(f"Trial frame is missing columns: {sorted(missing)}")
    trials: List[Trial] = []
    for row in df.iter_rows(named=True):
        ts = row["timestamp"]
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        trials.append(
            Trial(
                timestamp=ts,
                value=row["value"],
                session_id=row.get("session_id") or "default",
                intention=IntentionTag(row.get("intention") or IntentionTag.NEUTRAL.value),
                sequence_number=row.get("sequence_number") or 0,
            )
        )
    return trials


def read_trials(source: TrialSource) -> List[Trial]:
    return trials_from_frame(source.read())


def write_trials(sink: TrialSink, trials: Sequence[Trial]) -> None:
    sink.write(trials_to_frame(trials))


class ParquetTrialSink:
    def __init__(self, path: str) -> None:
        self.path = path

    def write(self, df: pl.DataFrame) -> None:
        df.write_parquet(self.path)


class CsvTrialSink:
    def __init__(self, path: str) -> None:
        self.path = path

    def write(self, df: pl.DataFrame) -> None:
        df.write_csv(self.path)


class ParquetTrialSource:
    def __init__(self, path: str) -> None:
        self.path = path

    def read(self) -> pl.DataFrame:
        return pl.read_parquet(self.path)


class CsvTrialSource:
    """CSV source; timestamps are parsed as ISO-8601."""

    def __init__(self, path: str) -> None:
        self.path = path

    def read(self) -> pl.DataFrame:
        df = pl.read_csv(self.path, try_parse_dates=True)
        if df.schema.get("timestamp") == pl.Utf8:
            df = df.with_columns(pl.col("timestamp").str.to_datetime(time_zone="UTC"))
        return df
