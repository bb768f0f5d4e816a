"""
chancesign.reporting.frames
===========================

Polars views of analysis results and of the event ledger, ready for a
presentation layer to plot or tabulate.

Examples
--------
>>> from datetime import datetime, timezone
>>> from chancesign.core.trials import trials_from_values
>>> from chancesign.stats.deviation import calculate_cumulative_deviation
>>> from chancesign.reporting.frames import cumulative_frame
>>> result = calculate_cumulative_deviation(trials_from_values([101, 99, 104], start=datetime(2024, 1, 1, tzinfo=timezone.utc)))
>>> cumulative_frame(result)["cumulative_deviation"].to_list()
[1.0, 0.0, 4.0]
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import ibis
import polars as pl

from chancesign.core.names import Namespace
from chancesign.core.results import (
    CumulativeResult,
    ForestPlotData,
    RandomnessTestResult,
)

if TYPE_CHECKING:
    from chancesign.core.ledger import Ledger


def cumulative_frame(result: CumulativeResult) -> pl.DataFrame:
    """One row per trial: cumulative deviation, running mean, Z and p."""
    return pl.DataFrame(
        {
            "trial_index": [p.trial_index for p in result.points],
            "timestamp": [p.timestamp for p in result.points],
            "cumulative_deviation": [p.cumulative_deviation for p in result.points],
            "running_mean": [p.running_mean for p in result.points],
            "z_score": [p.z_score for p in result.points],
            "p_value": [p.p_value for p in result.points],
        },
        schema_overrides={"trial_index": pl.Int64},
    )


def excursions_frame(result: CumulativeResult) -> pl.DataFrame:
    excursions = result.excursions
    return pl.DataFrame(
        {
            "start_index": [e.start_index for e in excursions],
            "end_index": [e.end_index for e in excursions],
            "length": [e.length for e in excursions],
            "start_time": [e.start_time for e in excursions],
            "end_time": [e.end_time for e in excursions],
            "peak_z_score": [e.peak_z_score for e in excursions],
            "sign": [e.sign for e in excursions],
            "significance": [e.significance for e in excursions],
        },
        schema_overrides={
            "start_index": pl.Int64,
            "end_index": pl.Int64,
            "length": pl.Int64,
            "peak_z_score": pl.Float64,
            "sign": pl.Int64,
            "significance": pl.Float64,
        },
    )


def randomness_frame(result: RandomnessTestResult) -> pl.DataFrame:
    """One row per test of the battery, in battery order."""
    tests = result.tests
    return pl.DataFrame(
        {
            "name": [t.name for t in tests],
            "category": [t.category for t in tests],
            "statistic": [t.statistic for t in tests],
            "p_value": [t.p_value for t in tests],
            "adjusted_p_value": [t.adjusted_p_value for t in tests],
            "passed": [t.passed for t in tests],
        },
        schema_overrides={
            "name": pl.Utf8,
            "category": pl.Utf8,
            "statistic": pl.Float64,
            "p_value": pl.Float64,
            "adjusted_p_value": pl.Float64,
            "passed": pl.Boolean,
        },
    )


def forest_plot_frame(data: ForestPlotData) -> pl.DataFrame:
    """Rows for every study followed by a final ``pooled`` row."""
    rows = [
        {
            "label": s.session_id,
            "effect_size": s.effect_size,
            "lower": s.confidence_interval[0],
            "upper": s.confidence_interval[1],
            "weight": s.weight,
            "pooled": False,
        }
        for s in data.studies
    ]
    rows.append(
        {
            "label": "pooled",
            "effect_size": data.pooled_effect,
            "lower": data.pooled_confidence_interval[0],
            "upper": data.pooled_confidence_interval[1],
            "weight": sum(s.weight for s in data.studies),
            "pooled": True,
        }
    )
    return pl.DataFrame(rows)


@dataclass
class LedgerReporter:
    """
    Session-agnostic view of ledger events.
    """

    ledger: "Ledger"

    def events(self, namespace: Optional[Namespace] = None) -> pl.DataFrame:
        """Events of this ledger, optionally restricted to one namespace, in write order.

        Events sharing a timestamp are ordered by numeric ``time_index``, so
        index 10 follows index 9.
        """
        table = self.ledger.table
        if namespace is not None:
            table = table.filter(table.namespace == str(namespace))
        return table.order_by(
            [table.ts, table.time_index.try_cast("int64"), table.time_index]
        ).to_polars()

    def namespace_kind_counts(self) -> pl.DataFrame:
        """Event counts grouped by namespace and kind."""
        table = self.ledger.table
        return (
            table.group_by([table.namespace, table.kind])
            .aggregate(count=ibis._.count())
            .order_by(["namespace", "kind"])
            .to_polars()
        )

    def sessions(self) -> list[str]:
        """Session ids with at least one event."""
        entities = self.ledger.table.select("entity").distinct().to_polars()["entity"]
        return sorted({e.split("#", 1)[0] for e in entities.to_list()})
