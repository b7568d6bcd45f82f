"""
Resampling of measurement rows into dense, fixed-interval chart series.

Charts need a value for every tick of a discrete timeline, no matter whether a
measurement happened at that tick or not. Rows coming from the database are
already bucketed by accuracy, so every row lands exactly on one tick.

Each processor returns a pair `(data_by_path, accumulators)`. The accumulator
of a path is the state needed to continue its series in a later update query.
"""
import math
from collections import deque
from typing import Any, Callable, Dict, List, Optional, Tuple

Row = Tuple[float, str, float]
Interval = List[float]
PathData = List[Tuple[float, float]]
Series = Dict[str, List[Optional[float]]]

# Length of the trailing window of the changes per second series
WINDOW_SECONDS = 1.0


def to_seconds(time) -> float:
    """Convert UNIX time in milliseconds to seconds."""
    return time / 1000

def apply_accuracy(time: int, accuracy_in_seconds: float) -> float:
    """Quantize a millisecond bound so it matches timestamps bucketed by the database."""
    return math.floor(time / (1000 * accuracy_in_seconds)) * accuracy_in_seconds

def timeline_interval_size(time_from: int, time_to: int, accuracy: int) -> int:
    """
    Number of ticks in the interval returned by `timeline_interval`, never negative.

    Equal to `floor((q(to) - q(from)) / step) + 1` but computed on whole buckets,
    subtracting the quantized floats can lose a tick to rounding.
    """
    return max(time_to // accuracy - time_from // accuracy + 1, 0)

def timeline_interval(time_from: int, time_to: int, accuracy: int) -> Interval:
    """
    Generate the chart timeline between `time_from` and `time_to` (milliseconds).

    Two neighbouring ticks differ by `accuracy` milliseconds. The first tick is one
    step after the quantized `time_from`, e.g. `timeline_interval(1619776875855,
    1619776875905, 10)` has 6 ticks from 1619776875.86 up to 1619776875.91.
    """
    accuracy_in_seconds = to_seconds(accuracy)

    size = timeline_interval_size(time_from, time_to, accuracy)
    start = apply_accuracy(time_from, accuracy_in_seconds)

    return [start + k * accuracy_in_seconds for k in range(1, size + 1)]

def time_key(time: float) -> float:
    # Ticks are built as `start + k * step` while rows come as `floor(..) * step`,
    # both are whole milliseconds
    return round(time, 3)

def group_by_path(rows) -> Dict[str, PathData]:
    """Group (time, path, value) rows by path keeping the row order."""
    data_by_paths: Dict[str, PathData] = {}
    for time, path, value in rows:
        data_by_paths.setdefault(path, []).append((time, value))
    return data_by_paths

def group_rows_by_metric(rows) -> Dict[str, List[Row]]:
    """Split (time, metric, path, value) rows into per metric (time, path, value) rows."""
    rows_by_metric: Dict[str, List[Row]] = {}
    for time, metric, path, value in rows:
        rows_by_metric.setdefault(metric, []).append((time, path, value))
    return rows_by_metric

def reduce_path_data(data: PathData, reducer: Callable[[List[float]], float]) -> PathData:
    """
    Collapse consecutive measurements sharing a timestamp into a single one.

    Due to accuracy several measurements can land on the same tick while the
    chart can only show one value there.
    """
    reduced = []
    current_time = None
    values: List[float] = []

    for time, value in data:
        if values and time == current_time:
            values.append(value)
            continue
        if values:
            reduced.append((current_time, reducer(values)))
        current_time, values = time, [value]

    if values:
        reduced.append((current_time, reducer(values)))

    return reduced

def _max_value(values):
    return max(values, default=0)

def fill_with_nils(path_data: Dict[float, float], interval: Interval) -> List[Optional[float]]:
    """Take the value measured exactly at every tick or None."""
    return [path_data.get(time_key(timestamp)) for timestamp in interval]

def fill_with_running_total(path_data: Dict[float, float], interval: Interval, total) -> Tuple[List[Optional[float]], Any]:
    """
    Like `fill_with_nils` but every present value is added to a running total
    which is emitted instead. Ticks without a measurement leave the total untouched.
    """
    filled = []
    for timestamp in interval:
        value = path_data.get(time_key(timestamp))
        if value is None:
            filled.append(None)
        else:
            total += value
            filled.append(total)
    return filled, total

def _keyed(data: PathData) -> Dict[float, float]:
    return {time_key(time): value for time, value in data}

def process_simple_series(data_by_paths: Dict[str, PathData], interval: Interval):
    series: Series = {}
    accumulators: Dict[str, Any] = {}
    for path, data in data_by_paths.items():
        processed = _keyed(reduce_path_data(data, _max_value))
        series[path] = fill_with_nils(processed, interval)
        accumulators[path] = None
    return series, accumulators

def process_cumulative_series(data_by_paths: Dict[str, PathData], interval: Interval, initial_accumulators):
    series: Series = {}
    accumulators: Dict[str, Any] = {}
    for path, data in data_by_paths.items():
        processed = _keyed(reduce_path_data(data, sum))
        initial = initial_accumulators.get(path)
        series[path], accumulators[path] = fill_with_running_total(
            processed, interval, 0 if initial is None else initial
        )
    return series, accumulators

def changes_per_second(data: PathData, initial_accumulator) -> Tuple[PathData, Tuple[float, list]]:
    """
    Replace every measurement with the sum of measurements from the last second.

    The accumulator is the window sum and the (time, value) pairs of the last
    second before the first timestamp of `data`, oldest first. It keeps the sum
    continuous when `data` continues a previous query.
    """
    window_sum, window = initial_accumulator
    window = deque((time, value) for time, value in window)

    processed = []
    for time, value in data:
        while window and time - window[0][0] >= WINDOW_SECONDS:
            _old_time, old_value = window.popleft()
            window_sum -= old_value
        window_sum += value
        processed.append((time, window_sum))
        window.append((time, value))

    return processed, (window_sum, list(window))

def process_changes_per_second_series(data_by_paths: Dict[str, PathData], interval: Interval, initial_accumulators):
    series: Series = {}
    accumulators: Dict[str, Any] = {}
    for path, data in data_by_paths.items():
        initial = initial_accumulators.get(path) or (0, [])
        processed, accumulators[path] = changes_per_second(reduce_path_data(data, sum), initial)
        series[path] = fill_with_nils(_keyed(processed), interval)
    return series, accumulators

def to_simple_series(rows, interval: Interval, initial_accumulators: Optional[Dict[str, Any]] = None):
    """
    Create a series with the biggest value measured at every tick.

    Values are not carried over gaps and `initial_accumulators` is ignored, the
    returned accumulators are all None.
    """
    return process_simple_series(group_by_path(rows), interval)

def to_cumulative_series(rows, interval: Interval, initial_accumulators: Optional[Dict[str, Any]] = None):
    """Create an increasing series where each value is the sum of all values so far."""
    return process_cumulative_series(group_by_path(rows), interval, initial_accumulators or {})

def to_changes_per_second_series(rows, interval: Interval, initial_accumulators: Optional[Dict[str, Any]] = None):
    """Create a series where each value is the sum of values from the last second."""
    return process_changes_per_second_series(group_by_path(rows), interval, initial_accumulators or {})
