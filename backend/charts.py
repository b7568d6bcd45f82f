"""
Chart queries built on top of the series processors.

A FULL query builds charts for the whole requested time range. Its result
carries a `ChartContext` which an UPDATE query uses to extend the charts with
new measurements only, continuing cumulative and per second series from the
stored accumulators.
"""
import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import database
from series import (
    Interval,
    Series,
    time_key,
    timeline_interval,
    to_changes_per_second_series,
    to_cumulative_series,
    to_simple_series,
)

logger = logging.getLogger(__name__)

# Metrics reported by pipeline elements mapped to how their values are charted
METRIC_PROCESSORS = {
    "caps": to_cumulative_series,
    "event": to_cumulative_series,
    "buffer": to_changes_per_second_series,
    "bitrate": to_changes_per_second_series,
    "store": to_simple_series,
    "take_and_demand": to_simple_series,
    "queue_len": to_simple_series,
}

METRICS = list(METRIC_PROCESSORS)


@dataclass
class ChartContext:
    """
    State of one metric's chart needed to update it later.

    `latest_time` is the `time_to` of the latest query, `paths` keeps the order
    of the chart series and `accumulators` the per path processor state.
    """
    metric: str
    time_from: int
    time_to: int
    accuracy: int
    latest_time: Optional[int] = None
    paths: List[str] = field(default_factory=list)
    interval: Interval = field(default_factory=list)
    series: Series = field(default_factory=dict)
    accumulators: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChartResult:
    chart: Dict[str, list]
    paths: List[str]
    context: ChartContext


def empty_chart() -> Dict[str, list]:
    return {"series": [], "data": [[]]}

def processor_for(metric: str):
    return METRIC_PROCESSORS.get(metric, to_simple_series)

def assemble_chart(interval: Interval, data_by_paths: Series) -> Dict[str, list]:
    """
    Combine per path series into chart data.

    Series labels and data rows are in the same order: `time` and the timeline
    first, then one entry per path.
    """
    series = [{"label": "time"}]
    data = [list(interval)]
    for path, values in data_by_paths.items():
        series.append({"label": path})
        data.append(values)
    return {"series": series, "data": data}

def one_chart_query(conn, metric: str, time_from: int, time_to: int, accuracy: int) -> ChartResult:
    """Query one metric's chart, a failing database query results in an empty chart."""
    context = ChartContext(metric=metric, time_from=time_from, time_to=time_to, accuracy=accuracy)

    try:
        rows = database.fetch_measurements(conn, metric, time_from, time_to, accuracy)
    except sqlite3.Error as e:
        logger.warning("Failed to query %s measurements: %s", metric, e)
        return ChartResult(empty_chart(), [], context)

    interval = timeline_interval(time_from, time_to, accuracy)
    data_by_paths, accumulators = processor_for(metric)(rows, interval, {})

    context.latest_time = time_to
    context.paths = list(data_by_paths)
    context.interval = interval
    context.series = data_by_paths
    context.accumulators = accumulators

    return ChartResult(assemble_chart(interval, data_by_paths), context.paths, context)

def query(conn, metrics: List[str], time_from: int, time_to: int, accuracy: int) -> List[ChartResult]:
    """
    Query charts for all given metrics, time range and accuracy (all in milliseconds).

    Returns:
        list: One ChartResult per metric, in the order of `metrics`
    """
    return [one_chart_query(conn, metric, time_from, time_to, accuracy) for metric in metrics]

def merge_boundary_tick(metric: str, charted, updated):
    """
    Combine the value already charted at the latest query's last bucket with the
    value computed from rows which arrived in that bucket afterwards.
    """
    if updated is None:
        return charted
    if charted is None:
        return updated
    if processor_for(metric) is to_simple_series:
        return max(charted, updated)
    # Running totals and windows were seeded with the accumulators, `updated` already includes `charted`
    return updated

def query_update(conn, context: ChartContext, time_to: int, time_from: Optional[int] = None) -> ChartResult:
    """
    Extend a chart with measurements between `context.latest_time` and `time_to`.

    The new ticks are appended to the stored ones, paths seen for the first time
    get None for the already charted ticks. Measurements which arrived after
    `latest_time` but still in its bucket are merged into that bucket's tick.
    When `time_from` is given, ticks before it are dropped so the chart keeps
    a sliding window.

    The context is updated in place, a failing database query leaves it untouched.
    A context which was never filled is queried in full.
    """
    if context.latest_time is None:
        return one_chart_query(conn, context.metric, time_from or context.time_from, time_to, context.accuracy)
    if time_to < context.latest_time:
        return ChartResult(assemble_chart(context.interval, context.series), list(context.paths), context)

    accuracy = context.accuracy

    try:
        rows = database.fetch_measurements(conn, context.metric, context.latest_time + 1, time_to, accuracy)
    except sqlite3.Error as e:
        logger.warning("Failed to query %s measurements update: %s", context.metric, e)
        return ChartResult(assemble_chart(context.interval, context.series), list(context.paths), context)

    # The last tick lies one bucket after the latest query's range and never has a value,
    # the update interval starts with that very tick
    new_interval = timeline_interval(context.latest_time, time_to, accuracy)
    history = len(context.interval) - 1 if context.interval else 0

    # The tick before it is the bucket of `latest_time`, it may still receive measurements
    boundary_key = time_key(context.latest_time // accuracy * accuracy / 1000)
    has_boundary = history > 0 and time_key(context.interval[history - 1]) == boundary_key
    ticks = [context.interval[history - 1]] + new_interval if has_boundary else new_interval
    skip = 1 if has_boundary else 0

    new_series, accumulators = processor_for(context.metric)(rows, ticks, context.accumulators)

    series = {}
    for path in context.paths:
        charted = context.series[path][:history]
        values = new_series.get(path)
        if values is None:
            series[path] = charted + [None] * len(new_interval)
            continue
        if has_boundary:
            charted[-1] = merge_boundary_tick(context.metric, charted[-1], values[0])
        series[path] = charted + values[skip:]
    for path, values in new_series.items():
        if path not in series:
            series[path] = [None] * (history - skip) + values

    interval = context.interval[:history] + new_interval

    if time_from is not None:
        first_tick = timeline_interval(time_from, time_from, accuracy)
        drop = 0
        while drop < len(interval) and time_key(interval[drop]) < time_key(first_tick[0]):
            drop += 1
        interval = interval[drop:]
        series = {path: values[drop:] for path, values in series.items()}
        context.time_from = time_from

    context.accumulators.update(accumulators)
    context.time_to = time_to
    context.latest_time = time_to
    context.paths = list(series)
    context.interval = interval
    context.series = series

    return ChartResult(assemble_chart(interval, series), list(context.paths), context)
