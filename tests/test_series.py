"""
Tests for timeline generation and the series processors.

Usage:
    pytest tests/test_series.py -v
"""
import pytest

from series import (
    group_by_path,
    group_rows_by_metric,
    reduce_path_data,
    timeline_interval,
    timeline_interval_size,
    to_changes_per_second_series,
    to_cumulative_series,
    to_simple_series,
)


# =============================================================================
# Timeline interval
# =============================================================================

class TestTimelineInterval:

    @pytest.mark.parametrize("time_from,time_to,accuracy,expected_size", [
        (0, 1000, 100, 11),
        (1500, 1500, 1000, 1),
        (1619776875855, 1619776875905, 10, 6),
        (0, 59_999, 1000, 60),
        (5, 999, 1, 995),
        (1_000_000, 1_600_000, 60_000, 11),
    ])
    def test_size_matches_closed_form(self, time_from, time_to, accuracy, expected_size):
        interval = timeline_interval(time_from, time_to, accuracy)

        assert len(interval) == expected_size
        assert timeline_interval_size(time_from, time_to, accuracy) == expected_size

    def test_first_tick_is_one_step_after_quantized_from(self):
        interval = timeline_interval(1050, 2000, 100)

        assert interval[0] == pytest.approx(1.1)
        assert interval[-1] == pytest.approx(2.1)

    def test_ticks_are_spaced_by_accuracy(self):
        interval = timeline_interval(1619776875855, 1619776875905, 10)

        assert interval[0] == pytest.approx(1619776875.86)
        for previous, current in zip(interval, interval[1:]):
            assert current - previous == pytest.approx(0.01, abs=1e-6)

    def test_is_deterministic(self):
        assert timeline_interval(123_456, 987_654, 250) == timeline_interval(123_456, 987_654, 250)

    def test_reversed_bounds_give_empty_interval(self):
        assert timeline_interval(2000, 1000, 100) == []
        assert timeline_interval_size(2000, 1000, 100) == 0


# =============================================================================
# Grouping and bucket reduction
# =============================================================================

def test_group_by_path_keeps_row_order():
    rows = [(1, "b", 1), (1, "a", 2), (2, "b", 3), (2, "a", 4)]

    grouped = group_by_path(rows)

    assert list(grouped) == ["b", "a"]
    assert grouped["b"] == [(1, 1), (2, 3)]
    assert grouped["a"] == [(1, 2), (2, 4)]


def test_group_rows_by_metric():
    rows = [(1, "buffer", "a", 1), (1, "caps", "a", 2), (2, "buffer", "b", 3)]

    grouped = group_rows_by_metric(rows)

    assert grouped == {
        "buffer": [(1, "a", 1), (2, "b", 3)],
        "caps": [(1, "a", 2)],
    }


def test_reduce_path_data_only_merges_consecutive_timestamps():
    data = [(0, 1), (0, 2), (1, 3), (0, 4)]

    assert reduce_path_data(data, sum) == [(0, 3), (1, 3), (0, 4)]
    assert reduce_path_data([], sum) == []


# =============================================================================
# Processors
# =============================================================================

class TestSimpleSeries:

    def test_values_are_not_carried_over_gaps(self):
        series, _ = to_simple_series([(0, "p", 5)], [0, 1, 2])

        assert series == {"p": [5, None, None]}

    def test_bucket_keeps_biggest_value(self):
        rows = [(1, "p", 3), (1, "p", 7), (2, "p", 1)]

        series, _ = to_simple_series(rows, [1, 2, 3])

        assert series["p"] == [7, 1, None]

    def test_accumulators_are_ignored(self):
        series, accumulators = to_simple_series([(1, "p", 3)], [1, 2], {"p": 100})

        assert series["p"] == [3, None]
        assert accumulators == {"p": None}

    def test_rows_match_ticks_despite_float_drift(self):
        interval = timeline_interval(1619776875855, 1619776875905, 10)
        rows = [(1619776875860 / 1000.0, "p", 1), (1619776875900 / 1000.0, "p", 2)]

        series, _ = to_simple_series(rows, interval)

        assert series["p"] == [1, None, None, None, 2, None]


class TestCumulativeSeries:

    def test_running_total(self):
        rows = [(0, "p", 1), (0, "p", 2), (2, "p", 4)]

        series, accumulators = to_cumulative_series(rows, [0, 1, 2])

        assert series["p"] == [3, None, 7]
        assert accumulators == {"p": 7}

    def test_continues_from_accumulator(self):
        _, accumulators = to_cumulative_series([(0, "p", 3)], [0])

        series, accumulators = to_cumulative_series([(1, "p", 2)], [1], accumulators)

        assert series["p"] == [5]
        assert accumulators == {"p": 5}

    def test_unknown_path_starts_from_zero(self):
        series, _ = to_cumulative_series([(1, "q", 2)], [1], {"p": 10})

        assert series["q"] == [2]


class TestChangesPerSecondSeries:

    def test_window_evicts_measurements_older_than_a_second(self):
        rows = [(0, "p", 1), (0.5, "p", 1), (1.1, "p", 1)]

        series, accumulators = to_changes_per_second_series(rows, [0, 0.5, 1.1])

        assert series["p"] == [1, 2, 2]
        window_sum, window = accumulators["p"]
        assert window_sum == 2
        assert window == [(0.5, 1), (1.1, 1)]

    def test_bucket_values_are_summed_first(self):
        rows = [(0, "p", 1), (0, "p", 2), (0.5, "p", 4)]

        series, accumulators = to_changes_per_second_series(rows, [0, 0.5])

        assert series["p"] == [3, 7]
        assert accumulators["p"][1] == [(0, 3), (0.5, 4)]

    def test_continues_from_accumulator(self):
        series, accumulators = to_changes_per_second_series(
            [(1.5, "p", 1)], [1.4, 1.5], {"p": (2, [(0.5, 1), (1.1, 1)])}
        )

        # 0.5 falls out of the window exactly one second later
        assert series["p"] == [None, 2]
        assert accumulators["p"] == (2, [(1.1, 1), (1.5, 1)])

    def test_accepts_json_decoded_accumulator(self):
        series, _ = to_changes_per_second_series([(1.5, "p", 1)], [1.5], {"p": [2, [[0.5, 1], [1.1, 1]]]})

        assert series["p"] == [2]

    def test_window_is_only_sampled_at_measurements(self):
        series, _ = to_changes_per_second_series([(0, "p", 1)], [0, 0.5, 1.0])

        assert series["p"] == [1, None, None]


@pytest.mark.parametrize("processor", [to_simple_series, to_cumulative_series, to_changes_per_second_series])
def test_series_are_aligned_with_interval(processor):
    interval = [0, 1, 2, 3, 4]
    rows = [(1, "a", 1), (1, "b", 2), (3, "a", 3), (9, "b", 4)]

    series, accumulators = processor(rows, interval)

    assert list(series) == ["a", "b"]
    assert set(accumulators) == {"a", "b"}
    for values in series.values():
        assert len(values) == len(interval)


@pytest.mark.parametrize("processor", [to_simple_series, to_cumulative_series, to_changes_per_second_series])
def test_paths_without_rows_are_absent(processor):
    series, accumulators = processor([], [0, 1, 2])

    assert series == {}
    assert accumulators == {}
