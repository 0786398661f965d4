"""Alignment filtering routines and their dispatch cache.

Counting alignments walks every record the index returns for a region, so
the strand, method and result shape decisions are taken once per query
instead of once per record: :class:`DispatchCache` hands back one of a fixed
set of specialized routines, each called as ``routine(alignment, window)``.

Alignment strand follows the first mate of a pair. A record is in the
forward class when it is unpaired and not reversed, a reversed second mate,
or a non-reversed first mate; the reverse class is the mirror image.
"""
from __future__ import annotations

from typing import Any, Callable

from .core import (
    COUNT_METHODS,
    DispatchError,
    Method,
    ResultShape,
    Strand,
    Strandedness,
)

FLAG_PAIRED = 0x1
FLAG_PROPER_PAIR = 0x2
FLAG_UNMAPPED = 0x4
FLAG_MATE_UNMAPPED = 0x8
FLAG_REVERSE = 0x10
FLAG_FIRST_MATE = 0x40
FLAG_SECONDARY = 0x100
FLAG_DUPLICATE = 0x400
FLAG_SUPPLEMENTARY = 0x800

REJECT_FLAGS = FLAG_SECONDARY | FLAG_DUPLICATE | FLAG_SUPPLEMENTARY

Routine = Callable[[Any, "FetchWindow"], None]


class FetchWindow:
    """Query bounds and result buffers shared by one region fetch.

    ``start`` and ``stop`` are 1-based inclusive. Array routines append to
    ``scores``; indexed routines fill ``index`` with position -> count, or
    position -> list of read names for ``ncount``.
    """

    __slots__ = ("start", "stop", "min_mapq", "scores", "index")

    def __init__(self, start: int, stop: int, min_mapq: int = 0):
        self.start = start
        self.stop = stop
        self.min_mapq = min_mapq
        self.scores: list = []
        self.index: dict[int, Any] = {}


def is_forward(flag: int) -> bool:
    if flag & FLAG_PAIRED:
        return bool(flag & FLAG_FIRST_MATE) != bool(flag & FLAG_REVERSE)
    return not flag & FLAG_REVERSE


def is_reverse(flag: int) -> bool:
    if flag & FLAG_PAIRED:
        return bool(flag & FLAG_FIRST_MATE) == bool(flag & FLAG_REVERSE)
    return bool(flag & FLAG_REVERSE)


def _any_orientation(flag: int) -> bool:
    return True


_ORIENTATIONS: dict[str, Callable[[int], bool]] = {
    "all": _any_orientation,
    "forward": is_forward,
    "reverse": is_reverse,
}


def _make_routine(orientation: str, method: Method, indexed: bool) -> Routine:
    accept = _ORIENTATIONS[orientation]

    if method == Method.PCOUNT:
        if indexed:
            def routine(aln, window):
                flag = aln.flag
                if flag & REJECT_FLAGS or aln.mapping_quality < window.min_mapq or not accept(flag):
                    return
                s = aln.reference_start + 1
                e = aln.reference_end
                if e is None or s < window.start or e > window.stop:
                    return
                pos = e if flag & FLAG_REVERSE else s
                window.index[pos] = window.index.get(pos, 0) + 1
        else:
            def routine(aln, window):
                flag = aln.flag
                if flag & REJECT_FLAGS or aln.mapping_quality < window.min_mapq or not accept(flag):
                    return
                e = aln.reference_end
                if e is None or aln.reference_start + 1 < window.start or e > window.stop:
                    return
                window.scores.append(1)

    elif method == Method.COUNT:
        if indexed:
            def routine(aln, window):
                flag = aln.flag
                if flag & REJECT_FLAGS or aln.mapping_quality < window.min_mapq or not accept(flag):
                    return
                s = aln.reference_start + 1
                e = aln.reference_end
                if e is None:
                    return
                if not (window.start <= s <= window.stop or window.start <= e <= window.stop):
                    return
                pos = e if flag & FLAG_REVERSE else s
                window.index[pos] = window.index.get(pos, 0) + 1
        else:
            def routine(aln, window):
                flag = aln.flag
                if flag & REJECT_FLAGS or aln.mapping_quality < window.min_mapq or not accept(flag):
                    return
                s = aln.reference_start + 1
                e = aln.reference_end
                if e is None:
                    return
                if window.start <= s <= window.stop or window.start <= e <= window.stop:
                    window.scores.append(1)

    elif method == Method.NCOUNT:
        if indexed:
            def routine(aln, window):
                flag = aln.flag
                if flag & REJECT_FLAGS or aln.mapping_quality < window.min_mapq or not accept(flag):
                    return
                # one position per fragment: the first mate of a proper pair
                if flag & FLAG_PAIRED and flag & FLAG_PROPER_PAIR and not flag & FLAG_FIRST_MATE:
                    return
                s = aln.reference_start + 1
                e = aln.reference_end
                if e is None:
                    return
                if not (window.start <= s <= window.stop or window.start <= e <= window.stop):
                    return
                pos = e if flag & FLAG_REVERSE else s
                window.index.setdefault(pos, []).append(aln.query_name)
        else:
            def routine(aln, window):
                flag = aln.flag
                if flag & REJECT_FLAGS or aln.mapping_quality < window.min_mapq or not accept(flag):
                    return
                s = aln.reference_start + 1
                e = aln.reference_end
                if e is None:
                    return
                if window.start <= s <= window.stop or window.start <= e <= window.stop:
                    window.scores.append(aln.query_name)

    else:
        raise DispatchError(f"No alignment routine for method '{method.value}'")

    routine.__name__ = f"{orientation}_{method.value}_{'indexed' if indexed else 'array'}"
    routine.__qualname__ = routine.__name__
    return routine


ROUTINES: dict[tuple[str, Method, bool], Routine] = {
    (orientation, method, indexed): _make_routine(orientation, method, indexed)
    for orientation in _ORIENTATIONS
    for method in (Method.COUNT, Method.PCOUNT, Method.NCOUNT)
    for indexed in (True, False)
}


def select_routine(strandedness, strand, method, shape) -> Routine:
    """Pick the routine for one combination, failing on anything unknown."""
    combo = f"strandedness={strandedness!r}, strand={strand!r}, method={method!r}, shape={shape!r}"
    try:
        strandedness = Strandedness(strandedness)
        strand = Strand(strand)
        method = Method(method)
        shape = ResultShape(shape)
    except ValueError as e:
        raise DispatchError(f"Unsupported alignment collection ({combo}): {e}") from None

    if method not in COUNT_METHODS:
        raise DispatchError(f"Unsupported alignment collection ({combo}): method is not a count")

    if strandedness == Strandedness.ALL:
        orientation = "all"
    elif strandedness == Strandedness.SENSE:
        orientation = "forward" if strand >= 0 else "reverse"
    elif strandedness == Strandedness.ANTISENSE:
        orientation = "reverse" if strand >= 0 else "forward"
    else:  # pragma: no cover - enum is exhaustive
        raise DispatchError(f"Unsupported alignment collection ({combo})")

    return ROUTINES[(orientation, method, shape == ResultShape.POSITIONAL)]


class DispatchCache:
    """Remembers the routine chosen for each (strandedness, strand, method, shape)."""

    def __init__(self) -> None:
        self._routines: dict[tuple, Routine] = {}

    def lookup(self, strandedness, strand, method, shape) -> Routine:
        key = (strandedness, strand, method, shape)
        routine = self._routines.get(key)
        if routine is None:
            routine = select_routine(strandedness, strand, method, shape)
            self._routines[key] = routine
        return routine

    def __contains__(self, key: tuple) -> bool:
        return key in self._routines

    def __len__(self) -> int:
        return len(self._routines)
