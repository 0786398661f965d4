"""Score aggregation and signal summary statistics."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
from numba import jit

from .core import Method, SummaryMergeError


@jit(nopython=True, cache=True)
def summarize_intervals(
    starts: np.ndarray, ends: np.ndarray, values: np.ndarray, lo: int, hi: int
) -> tuple[float, float, float, float, float]:
    """Summarize step values over the half-open window [lo, hi).

    Each interval contributes its value once per base overlapping the
    window. NaN values are ignored. Returns (valid_bases, sum, sum_squares,
    min, max); min and max are NaN when nothing overlaps.
    """
    valid = 0.0
    total = 0.0
    squares = 0.0
    lo_val = np.inf
    hi_val = -np.inf
    for i in range(len(values)):
        v = values[i]
        if np.isnan(v):
            continue
        overlap = min(ends[i], hi) - max(starts[i], lo)
        if overlap <= 0:
            continue
        valid += overlap
        total += v * overlap
        squares += v * v * overlap
        if v < lo_val:
            lo_val = v
        if v > hi_val:
            hi_val = v
    if valid == 0.0:
        return 0.0, 0.0, 0.0, np.nan, np.nan
    return valid, total, squares, lo_val, hi_val


@jit(nopython=True, cache=True)
def summarize_zoom_records(
    starts: np.ndarray,
    ends: np.ndarray,
    covered: np.ndarray,
    sums: np.ndarray,
    squares: np.ndarray,
    mins: np.ndarray,
    maxs: np.ndarray,
    lo: int,
    hi: int,
) -> tuple[float, float, float, float, float]:
    """Combine zoom-level summary records over [lo, hi).

    Records only partly inside the window are weighted by the overlapping
    fraction of their span.
    """
    valid = 0.0
    total = 0.0
    sq = 0.0
    lo_val = np.inf
    hi_val = -np.inf
    for i in range(len(starts)):
        span = ends[i] - starts[i]
        overlap = min(ends[i], hi) - max(starts[i], lo)
        if overlap <= 0 or span <= 0 or covered[i] <= 0:
            continue
        frac = overlap / span
        valid += covered[i] * frac
        total += sums[i] * frac
        sq += squares[i] * frac
        if mins[i] < lo_val:
            lo_val = mins[i]
        if maxs[i] > hi_val:
            hi_val = maxs[i]
    if valid == 0.0:
        return 0.0, 0.0, 0.0, np.nan, np.nan
    return valid, total, sq, lo_val, hi_val


@dataclass(frozen=True)
class SignalSummary:
    """Summary statistics of signal over one interval of one file."""

    valid_count: float = 0.0
    sum: float = 0.0
    sum_squares: float = 0.0
    min: float = math.nan
    max: float = math.nan

    @classmethod
    def from_tuple(cls, values: tuple[float, float, float, float, float]) -> "SignalSummary":
        valid, total, squares, lo_val, hi_val = values
        return cls(float(valid), float(total), float(squares), float(lo_val), float(hi_val))

    @property
    def empty(self) -> bool:
        return self.valid_count <= 0

    @property
    def mean(self) -> float | None:
        return None if self.empty else self.sum / self.valid_count

    @property
    def stddev(self) -> float | None:
        if self.empty:
            return None
        n = self.valid_count
        if n <= 1:
            return 0.0
        var = (self.sum_squares - self.sum * self.sum / n) / (n - 1)
        return math.sqrt(max(var, 0.0))

    def value(self, method: Method) -> float | int | None:
        if method in (Method.SUM,):
            return self.sum
        if method in (Method.COUNT, Method.PCOUNT, Method.NCOUNT):
            return int(round(self.valid_count))
        if self.empty:
            return None
        if method in (Method.MEAN, Method.SCORE):
            return self.mean
        if method == Method.MIN:
            return self.min
        if method == Method.MAX:
            return self.max
        if method == Method.STDDEV:
            return self.stddev
        raise ValueError(f"Method '{method.value}' cannot be computed from a summary")


SUMMARY_METHODS = frozenset(
    {Method.SCORE, Method.MEAN, Method.MIN, Method.MAX, Method.SUM, Method.COUNT,
     Method.PCOUNT, Method.NCOUNT, Method.STDDEV}
)


def merge_summaries(method: Method, summaries: Sequence[SignalSummary]) -> float | int | None:
    """Combine per-file summaries into one value for ``method``.

    Mean is recomputed from the summed totals and valid counts, sum and count
    add up, min and max take the extremes. Standard deviation cannot be
    recovered from several summaries and raises ``SummaryMergeError``.
    """
    if not summaries:
        return empty_score(method)
    if len(summaries) == 1:
        return summaries[0].value(method)
    if method == Method.STDDEV:
        raise SummaryMergeError("Cannot calculate stddev from multiple signal file summaries")
    valid = sum(s.valid_count for s in summaries)
    total = sum(s.sum for s in summaries)
    if method == Method.SUM:
        return total
    if method in (Method.COUNT, Method.PCOUNT, Method.NCOUNT):
        return int(round(valid))
    filled = [s for s in summaries if not s.empty]
    if not filled:
        return None
    if method in (Method.MEAN, Method.SCORE):
        return total / valid
    if method == Method.MIN:
        return min(s.min for s in filled)
    if method == Method.MAX:
        return max(s.max for s in filled)
    raise ValueError(f"Method '{method.value}' cannot be computed from summaries")


def empty_score(method: Method) -> int | None:
    """The score reported when a region holds no data."""
    if method in (Method.COUNT, Method.PCOUNT, Method.NCOUNT, Method.SUM):
        return 0
    return None


def calculate_score(method: Method, scores: Sequence[Any] | None) -> float | int | None:
    """Reduce a list of collected values to one score.

    ``ncount`` lists hold read or feature names (or lists of names) and count
    distinct names. Empty input yields 0 for count and sum methods and None
    otherwise.
    """
    if not scores:
        return empty_score(method)
    if method == Method.NCOUNT:
        names: set = set()
        for s in scores:
            if isinstance(s, (list, tuple, set)):
                names.update(s)
            else:
                names.add(s)
        return len(names)
    if method in (Method.COUNT, Method.PCOUNT):
        return len(scores)
    arr = np.asarray(scores, dtype=np.float64)
    if method in (Method.MEAN, Method.SCORE):
        return float(arr.mean())
    if method == Method.SUM:
        return float(arr.sum())
    if method == Method.MEDIAN:
        return float(np.median(arr))
    if method == Method.MIN:
        return float(arr.min())
    if method == Method.MAX:
        return float(arr.max())
    if method == Method.STDDEV:
        # population standard deviation of the collected values
        return float(arr.std())
    raise ValueError(f"Unrecognized method '{method}'")


def reduce_values(method: Method, values: Sequence[Any]) -> float | int | None:
    """Reduce the values recorded at one position."""
    if method == Method.NCOUNT:
        return len(set(values))
    if method in (Method.COUNT, Method.PCOUNT):
        return sum(values)
    return calculate_score(method, values)
