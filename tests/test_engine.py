import gffutils
import pytest

from genoscore.bam import BamAdapter
from genoscore.bigwig import BigWigAdapter, BigWigSet, BigWigSetAdapter
from genoscore.context import OpenedResource, ScoreContext
from genoscore.core import UnsupportedDatasetError, make_params
from genoscore.engine import adapter_class, adapter_for, get_segment_score
from genoscore.featuredb import FeatureStoreAdapter
from genoscore.intervals import IntervalAdapter

from fakes import FakeAlignment, FakeAlignmentFile, FakeBigWig

LENGTHS = {"chr1": 1000}


def test_adapter_class_by_suffix():
    assert adapter_class("reads.bam") is BamAdapter
    assert adapter_class("reads.CRAM") is BamAdapter
    assert adapter_class("file:signal.bw") is BigWigAdapter
    assert adapter_class("signal.bigWig") is BigWigAdapter
    assert adapter_class("peaks.bb") is IntervalAdapter
    assert adapter_class("peaks.bed.gz") is IntervalAdapter


def test_adapter_class_by_database(tmp_path):
    assert adapter_class("rna", str(tmp_path)) is BigWigSetAdapter
    assert adapter_class("rna", BigWigSet(tmp_path, [])) is BigWigSetAdapter
    assert adapter_class("gene", str(tmp_path / "annot.db")) is FeatureStoreAdapter
    store = gffutils.create_db("chr1\tt\tgene\t1\t10\t.\t+\t.\tID=g\n", ":memory:", from_string=True)
    assert adapter_class("gene", store) is FeatureStoreAdapter
    # files keep their own adapter even when a database is given
    assert adapter_class("reads.bam", str(tmp_path)) is BamAdapter


def test_unrecognized_datasets():
    with pytest.raises(UnsupportedDatasetError):
        adapter_class("gene")
    with pytest.raises(UnsupportedDatasetError, match="bam"):
        adapter_for(make_params("chr1", 1, 10, "reads.bam", "signal.bw"), ScoreContext())


def test_adapter_is_reused_within_a_context():
    context = ScoreContext()
    first = adapter_for(make_params("chr1", 1, 10, "a.bw"), context)
    assert adapter_for(make_params("chr2", 5, 50, "b.bw"), context) is first
    assert adapter_for(make_params("chr1", 1, 10, "a.bw"), ScoreContext()) is not first


def test_get_segment_score_dispatches_on_shape():
    context = ScoreContext()
    reads = {"chr1": [FakeAlignment("r1", 100, 119), FakeAlignment("r2", 150, 169)]}
    context.resources.add("reads.bam", OpenedResource.build(FakeAlignmentFile(reads, LENGTHS), LENGTHS))
    context.resources.add("signal.bw", OpenedResource.build(FakeBigWig({"chr1": [(99, 110, 2.5)]}, LENGTHS), LENGTHS))

    params = make_params("chr1", 90, 200, "reads.bam", method="count")
    assert get_segment_score(params, context) == 2
    assert get_segment_score(params._replace(shape="list"), context) == [1, 1]
    assert get_segment_score(params._replace(shape="positional"), context) == {100: 1, 150: 1}

    signal = make_params("chr1", 1, 1000, "signal.bw", method="max")
    assert get_segment_score(signal, context) == 2.5
    assert get_segment_score(signal._replace(shape="positional", stop=101), context) == {100: 2.5, 101: 2.5}
