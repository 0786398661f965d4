import math

import numpy as np
import pytest

from genoscore.core import Method, SummaryMergeError
from genoscore.stats import (
    SignalSummary,
    calculate_score,
    empty_score,
    merge_summaries,
    reduce_values,
    summarize_intervals,
    summarize_zoom_records,
)


def test_calculate_score_methods():
    values = [1.0, 2.0, 3.0, 10.0]
    assert calculate_score(Method.MEAN, values) == 4.0
    assert calculate_score(Method.SCORE, values) == 4.0
    assert calculate_score(Method.MEDIAN, values) == 2.5
    assert calculate_score(Method.MIN, values) == 1.0
    assert calculate_score(Method.MAX, values) == 10.0
    assert calculate_score(Method.SUM, values) == 16.0
    assert calculate_score(Method.COUNT, values) == 4
    # population standard deviation
    assert calculate_score(Method.STDDEV, values) == pytest.approx(np.std(values))


def test_calculate_score_empty():
    assert calculate_score(Method.COUNT, []) == 0
    assert calculate_score(Method.SUM, []) == 0
    assert calculate_score(Method.NCOUNT, None) == 0
    assert calculate_score(Method.MEAN, []) is None
    assert calculate_score(Method.MAX, []) is None
    assert empty_score(Method.PCOUNT) == 0
    assert empty_score(Method.MEDIAN) is None


def test_ncount_counts_distinct_names():
    assert calculate_score(Method.NCOUNT, ["r1", "r2", "r1", ["r3", "r2"]]) == 3
    assert reduce_values(Method.NCOUNT, ["a", "a", "b"]) == 2
    assert reduce_values(Method.COUNT, [1, 1, 1]) == 3


def test_summarize_intervals_weights_by_overlap():
    starts = np.array([9, 30], dtype=np.int64)
    ends = np.array([20, 40], dtype=np.int64)
    values = np.array([2.0, np.nan], dtype=np.float64)
    valid, total, squares, lo_val, hi_val = summarize_intervals(starts, ends, values, 4, 25)
    assert valid == 11
    assert total == 22.0
    assert squares == 44.0
    assert lo_val == hi_val == 2.0


def test_summarize_intervals_no_overlap():
    starts = np.array([100], dtype=np.int64)
    ends = np.array([110], dtype=np.int64)
    values = np.array([1.0], dtype=np.float64)
    summary = SignalSummary.from_tuple(summarize_intervals(starts, ends, values, 0, 50))
    assert summary.empty
    assert math.isnan(summary.min)


def test_summarize_zoom_records_partial_weighting():
    # one zoom bin of 10 bases, half inside the window
    starts = np.array([0], dtype=np.int64)
    ends = np.array([10], dtype=np.int64)
    result = summarize_zoom_records(
        starts, ends,
        np.array([10.0]), np.array([30.0]), np.array([100.0]),
        np.array([1.0]), np.array([5.0]),
        5, 20,
    )
    valid, total, squares, lo_val, hi_val = result
    assert valid == 5.0
    assert total == 15.0
    assert squares == 50.0
    assert (lo_val, hi_val) == (1.0, 5.0)


def test_signal_summary_values():
    summary = SignalSummary(valid_count=4, sum=8.0, sum_squares=20.0, min=1.0, max=3.0)
    assert summary.value(Method.MEAN) == 2.0
    assert summary.value(Method.SUM) == 8.0
    assert summary.value(Method.COUNT) == 4
    assert summary.value(Method.MIN) == 1.0
    assert summary.value(Method.MAX) == 3.0
    assert summary.value(Method.STDDEV) == pytest.approx(math.sqrt(4.0 / 3.0))

    empty = SignalSummary()
    assert empty.value(Method.SUM) == 0
    assert empty.value(Method.COUNT) == 0
    assert empty.value(Method.MEAN) is None
    assert empty.value(Method.MIN) is None


def test_merge_summaries():
    a = SignalSummary(valid_count=2, sum=4.0, sum_squares=8.0, min=2.0, max=2.0)
    b = SignalSummary(valid_count=6, sum=36.0, sum_squares=216.0, min=6.0, max=6.0)
    empty = SignalSummary()

    # mean comes from the summed totals, not the mean of means
    assert merge_summaries(Method.MEAN, [a, b]) == 5.0
    assert merge_summaries(Method.SUM, [a, b, empty]) == 40.0
    assert merge_summaries(Method.COUNT, [a, b]) == 8
    assert merge_summaries(Method.MIN, [a, b, empty]) == 2.0
    assert merge_summaries(Method.MAX, [a, b]) == 6.0
    assert merge_summaries(Method.MEAN, [empty, empty]) is None
    assert merge_summaries(Method.SUM, []) == 0


def test_merge_summaries_stddev_needs_one_file():
    a = SignalSummary(valid_count=2, sum=4.0, sum_squares=8.0, min=2.0, max=2.0)
    assert merge_summaries(Method.STDDEV, [a]) == 0.0
    with pytest.raises(SummaryMergeError):
        merge_summaries(Method.STDDEV, [a, a])
