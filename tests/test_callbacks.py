import pytest

from genoscore.callbacks import (
    ROUTINES,
    DispatchCache,
    FetchWindow,
    is_forward,
    is_reverse,
)
from genoscore.core import DispatchError, Method, ResultShape, Strand, Strandedness

from fakes import FakeAlignment

PAIRED, PROPER, REVERSE, READ1, READ2 = 0x1, 0x2, 0x10, 0x40, 0x80


def paired_reads():
    # two fragments from each physical strand
    return [
        FakeAlignment("fragA", 100, 120, PAIRED | PROPER | READ1),
        FakeAlignment("fragA", 150, 170, PAIRED | PROPER | READ2 | REVERSE),
        FakeAlignment("fragB", 110, 130, PAIRED | PROPER | READ1 | REVERSE),
        FakeAlignment("fragB", 60, 80, PAIRED | PROPER | READ2),
        FakeAlignment("single_f", 105, 125, 0),
        FakeAlignment("single_r", 140, 160, REVERSE),
    ]


def run(routine, reads, start=50, stop=200, min_mapq=0):
    window = FetchWindow(start, stop, min_mapq)
    for aln in reads:
        routine(aln, window)
    return window


def test_orientation_classes():
    assert is_forward(0)
    assert is_reverse(REVERSE)
    assert is_forward(PAIRED | READ1)
    assert is_forward(PAIRED | READ2 | REVERSE)
    assert is_reverse(PAIRED | READ1 | REVERSE)
    assert is_reverse(PAIRED | READ2)


def test_dispatch_identity():
    cache = DispatchCache()
    first = cache.lookup(Strandedness.SENSE, Strand.FORWARD, Method.COUNT, ResultShape.LIST)
    second = cache.lookup(Strandedness.SENSE, Strand.FORWARD, Method.COUNT, ResultShape.LIST)
    assert first is second
    assert len(cache) == 1
    # another context builds its own cache but lands on the same routine
    assert DispatchCache().lookup("sense", 1, "count", "list") is first


def test_dispatch_rejects_unknown_combinations():
    cache = DispatchCache()
    with pytest.raises(DispatchError, match="mean"):
        cache.lookup(Strandedness.ALL, Strand.NONE, Method.MEAN, ResultShape.LIST)
    with pytest.raises(DispatchError):
        cache.lookup("both", 1, "count", "list")
    with pytest.raises(DispatchError):
        cache.lookup("sense", 2, "count", "list")
    with pytest.raises(DispatchError):
        cache.lookup("sense", 1, "count", "table")
    assert len(cache) == 0


def test_eighteen_routines():
    assert len(ROUTINES) == 18
    assert len({id(r) for r in ROUTINES.values()}) == 18


def test_strand_symmetry():
    cache = DispatchCache()
    reads = paired_reads()
    for method in (Method.COUNT, Method.NCOUNT):
        sense_plus = cache.lookup(Strandedness.SENSE, Strand.FORWARD, method, ResultShape.LIST)
        anti_minus = cache.lookup(Strandedness.ANTISENSE, Strand.REVERSE, method, ResultShape.LIST)
        sense_minus = cache.lookup(Strandedness.SENSE, Strand.REVERSE, method, ResultShape.LIST)
        anti_plus = cache.lookup(Strandedness.ANTISENSE, Strand.FORWARD, method, ResultShape.LIST)
        assert sense_plus is anti_minus
        assert sense_minus is anti_plus
        assert run(sense_plus, reads).scores == run(anti_minus, reads).scores
        assert run(sense_minus, reads).scores == run(anti_plus, reads).scores

    forward = run(cache.lookup("sense", 1, "ncount", "list"), reads).scores
    reverse = run(cache.lookup("sense", -1, "ncount", "list"), reads).scores
    assert sorted(forward) == ["fragA", "fragA", "single_f"]
    assert sorted(reverse) == ["fragB", "fragB", "single_r"]


def test_unstranded_query_on_sense_uses_forward():
    cache = DispatchCache()
    assert cache.lookup("sense", 0, "count", "list") is cache.lookup("sense", 1, "count", "list")
    assert cache.lookup("all", -1, "count", "list") is cache.lookup("all", 1, "count", "list")


def test_filters_reject_flags_and_low_quality():
    reads = [
        FakeAlignment("ok", 100, 120, 0, mapq=30),
        FakeAlignment("secondary", 100, 120, 0x100),
        FakeAlignment("duplicate", 100, 120, 0x400),
        FakeAlignment("supplementary", 100, 120, 0x800),
        FakeAlignment("lowq", 100, 120, 0, mapq=3),
    ]
    routine = DispatchCache().lookup("all", 0, "ncount", "list")
    assert run(routine, reads, min_mapq=10).scores == ["ok"]
    assert sorted(run(routine, reads).scores) == ["lowq", "ok"]


def test_count_overlap_and_pcount_containment():
    reads = [
        FakeAlignment("inside", 110, 130),
        FakeAlignment("left_edge", 90, 105),
        FakeAlignment("right_edge", 195, 215),
        FakeAlignment("spanning", 40, 260),
    ]
    cache = DispatchCache()
    counted = run(cache.lookup("all", 0, "count", "list"), reads, 100, 200).scores
    precise = run(cache.lookup("all", 0, "pcount", "list"), reads, 100, 200).scores
    # a read spanning the whole window has neither end inside it
    assert len(counted) == 3
    assert len(precise) == 1


def test_pcount_subset_of_count():
    reads = paired_reads() + [FakeAlignment("edge", 45, 64), FakeAlignment("late", 190, 210, REVERSE)]
    cache = DispatchCache()
    for start, stop in [(50, 200), (100, 150), (60, 125), (1, 1000)]:
        names = set(run(cache.lookup("all", 0, "ncount", "list"), reads, start, stop).scores)
        contained = {
            r.query_name + str(r.reference_start) for r in reads
            if r.reference_start + 1 >= start and r.reference_end <= stop
        }
        overlapping = {
            r.query_name + str(r.reference_start) for r in reads
            if start <= r.reference_start + 1 <= stop or start <= r.reference_end <= stop
        }
        assert contained <= overlapping
        assert len(run(cache.lookup("all", 0, "pcount", "list"), reads, start, stop).scores) == len(contained)
        assert len(run(cache.lookup("all", 0, "count", "list"), reads, start, stop).scores) == len(overlapping)
        assert names <= {r.query_name for r in reads}


def test_positional_routines_key_on_five_prime_end():
    reads = [
        FakeAlignment("f1", 100, 120, 0),
        FakeAlignment("f2", 100, 125, 0),
        FakeAlignment("r1", 101, 130, REVERSE),
    ]
    cache = DispatchCache()
    counts = run(cache.lookup("all", 0, "count", "positional"), reads).index
    assert counts == {100: 2, 130: 1}
    precise = run(cache.lookup("all", 0, "pcount", "positional"), reads, 100, 125).index
    assert precise == {100: 2}


def test_positional_ncount_records_first_mate_only():
    reads = paired_reads()
    window = run(DispatchCache().lookup("all", 0, "ncount", "positional"), reads)
    names = [n for found in window.index.values() for n in found]
    assert sorted(names) == ["fragA", "fragB", "single_f", "single_r"]
    # fragB's first mate is reversed, so its 5' end is the alignment end
    assert window.index[130] == ["fragB"]
