"""Interval archives: tabix-indexed BED files and bigBed files."""
from __future__ import annotations

import os
from typing import Any, Iterable, Iterator, NamedTuple

import pybigtools
import pysam

from .adapters import ScoreAdapter, is_remote, strip_file_prefix
from .chromosomes import ChromosomeMap
from .context import OpenedResource
from .core import (
    Method,
    ResourceOpenError,
    ScoreParams,
    Strandedness,
    from_half_open,
    to_half_open,
)
from .stats import reduce_values

TABIX_SUFFIXES = (".bed.gz", ".gz", ".bgz")
BIGBED_SUFFIXES = (".bb", ".bigbed")


class IntervalRecord(NamedTuple):
    """One interval in 1-based inclusive coordinates."""

    start: int
    end: int
    name: str | None = None
    score: float | None = None
    strand: int = 0

    def label(self, chrom: str) -> str:
        return self.name or f"{chrom}:{self.start}-{self.end}:{self.strand}"


def parse_strand(value: str | None) -> int:
    if value in ("+", "1", "+1"):
        return 1
    if value in ("-", "-1"):
        return -1
    return 0


def parse_score(value: Any) -> float | None:
    if value is None or value in ("", "."):
        return None
    return float(value)


def record_from_fields(start: int, end: int, rest: Iterable[str]) -> IntervalRecord:
    """Build a record from half-open coordinates and the remaining BED columns."""
    rest = list(rest)
    s, e = from_half_open(int(start), int(end))
    return IntervalRecord(
        s,
        e,
        rest[0] if len(rest) > 0 and rest[0] not in ("", ".") else None,
        parse_score(rest[1]) if len(rest) > 1 else None,
        parse_strand(rest[2]) if len(rest) > 2 else 0,
    )


def midpoint(record: IntervalRecord) -> int:
    if record.start == record.end:
        return record.start
    return int((record.start + record.end) / 2 + 0.5)


def strand_matches(feature_strand: int, strand: int, strandedness: Strandedness) -> bool:
    """Whether a feature on ``feature_strand`` is collected for the query.

    Unstranded features always match. A stranded feature needs the same
    strand for ``sense`` and a different one for ``antisense``, so an
    unstranded query collects every stranded feature only as antisense.
    """
    if strandedness == Strandedness.ALL or feature_strand == 0:
        return True
    if strandedness == Strandedness.SENSE:
        return feature_strand == strand
    return feature_strand != strand


class TabixIntervals:
    """Reads a bgzip-compressed, tabix-indexed BED file."""

    def __init__(self, tabix: pysam.TabixFile):
        self.tabix = tabix

    @property
    def contigs(self) -> list[str]:
        return list(self.tabix.contigs)

    def records(self, chrom: str, start: int, stop: int) -> Iterator[IntervalRecord]:
        lo, hi = to_half_open(start, stop)
        for line in self.tabix.fetch(chrom, lo, hi):
            fields = line.rstrip("\n").split("\t")
            yield record_from_fields(fields[1], fields[2], fields[3:])


class BigBedIntervals:
    """Reads a bigBed file opened with pybigtools."""

    def __init__(self, bigbed: Any):
        self.bigbed = bigbed

    @property
    def contigs(self) -> list[str]:
        return list(self.bigbed.chroms())

    def records(self, chrom: str, start: int, stop: int) -> Iterator[IntervalRecord]:
        lo, hi = to_half_open(start, stop)
        for rec in self.bigbed.records(chrom, lo, hi):
            if len(rec) == 3 and isinstance(rec[2], str):
                rest = rec[2].split("\t") if rec[2] else []
            else:
                rest = [str(f) for f in rec[2:]]
            yield record_from_fields(rec[0], rec[1], rest)


def open_intervals(dataset: str):
    """Open an interval archive by suffix; returns (reader, chromosome lengths)."""
    path = strip_file_prefix(dataset)
    if not is_remote(path) and not os.path.exists(path):
        raise ResourceOpenError(path, "no such file")

    if path.lower().endswith(BIGBED_SUFFIXES):
        try:
            bigbed = pybigtools.open(path)
        except (OSError, ValueError) as e:
            raise ResourceOpenError(path, str(e)) from e
        return BigBedIntervals(bigbed), {k: int(v) for k, v in bigbed.chroms().items()}

    try:
        tabix = pysam.TabixFile(path)
    except (OSError, ValueError) as e:
        raise ResourceOpenError(path, str(e)) from e
    return TabixIntervals(tabix), {}


class IntervalAdapter(ScoreAdapter):
    """Counts or scores intervals overlapping the query."""

    name = "intervals"
    suffixes = TABIX_SUFFIXES + BIGBED_SUFFIXES

    def open(self, dataset: str) -> OpenedResource:
        reader, lengths = open_intervals(dataset)
        prefix = self.context.config.chromosome_prefix
        if lengths:
            return OpenedResource.build(reader, lengths, prefix)
        return OpenedResource(reader, ChromosomeMap.from_names(reader.contigs, prefix), {})

    def _records(self, params: ScoreParams) -> Iterator[tuple[str, IntervalRecord]]:
        for resource, chrom, start, stop in self.regions(params):
            for record in resource.handle.records(chrom, start, stop):
                if strand_matches(record.strand, params.strand, params.strandedness):
                    yield chrom, record

    def scores(self, params: ScoreParams) -> list:
        return collect_scores(self._records(params), params)

    def position_scores(self, params: ScoreParams) -> dict[int, Any]:
        return collect_positions(self._records(params), params)


def collect_scores(records: Iterable[tuple[str, IntervalRecord]], params: ScoreParams) -> list:
    method = params.method
    out: list = []
    for chrom, record in records:
        if method == Method.COUNT:
            out.append(1)
        elif method == Method.PCOUNT:
            if record.start >= params.start and record.end <= params.stop:
                out.append(1)
        elif method == Method.NCOUNT:
            out.append(record.label(chrom))
        elif record.score is not None:
            out.append(record.score)
    return out


def collect_positions(records: Iterable[tuple[str, IntervalRecord]], params: ScoreParams) -> dict[int, Any]:
    """Key records by midpoint and reduce each position by the method.

    Midpoints outside the query are dropped.
    """
    method = params.method
    found: dict[int, list] = {}
    for chrom, record in records:
        pos = midpoint(record)
        if pos < params.start or pos > params.stop:
            continue
        if method == Method.COUNT:
            found.setdefault(pos, []).append(1)
        elif method == Method.PCOUNT:
            if record.start >= params.start and record.end <= params.stop:
                found.setdefault(pos, []).append(1)
        elif method == Method.NCOUNT:
            found.setdefault(pos, []).append(record.label(chrom))
        elif record.score is not None:
            found.setdefault(pos, []).append(record.score)

    reducer = Method.MEAN if method == Method.SCORE else method
    return {pos: reduce_values(reducer, values) for pos, values in found.items()}
