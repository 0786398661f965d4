"""Indexed alignment files (BAM/CRAM) through pysam."""
from __future__ import annotations

import os
from typing import Any

import numpy as np
import pysam
from loguru import logger

from .adapters import ScoreAdapter, is_remote, strip_file_prefix
from .callbacks import FetchWindow
from .context import OpenedResource
from .core import COUNT_METHODS, Method, ResourceOpenError, ResultShape, ScoreParams, to_half_open

INDEX_SUFFIXES = {".bam": (".bai", ".csi"), ".cram": (".crai", ".csi")}


def find_index(path: str) -> str | None:
    """Return the index file next to ``path``, if there is one."""
    stem, ext = os.path.splitext(path)
    for suffix in INDEX_SUFFIXES.get(ext.lower(), (".bai", ".csi")):
        for candidate in (path + suffix, stem + suffix):
            if os.path.exists(candidate):
                return candidate
    return None


def open_alignments(path: str, auto_index: bool = True) -> pysam.AlignmentFile:
    """Open an alignment file, indexing it first when allowed and needed."""
    path = strip_file_prefix(path)
    mode = "rc" if path.lower().endswith(".cram") else "rb"
    if not is_remote(path):
        if not os.path.exists(path):
            raise ResourceOpenError(path, "no such file")
        if find_index(path) is None:
            if not auto_index:
                raise ResourceOpenError(path, "alignment file is not indexed")
            logger.info(f"Indexing {path}")
            try:
                pysam.index(path)
            except pysam.utils.SamtoolsError as e:
                raise ResourceOpenError(path, f"indexing failed: {e}") from e
    try:
        return pysam.AlignmentFile(path, mode)
    except (OSError, ValueError) as e:
        raise ResourceOpenError(path, str(e)) from e


def coverage(handle: Any, chrom: str, start: int, stop: int) -> np.ndarray:
    """Per-base depth over the 1-based interval, all four bases summed."""
    s, e = to_half_open(start, stop)
    counts = handle.count_coverage(chrom, s, e, quality_threshold=0, read_callback="nofilter")
    return np.asarray(counts, dtype=np.int64).sum(axis=0)


class BamAdapter(ScoreAdapter):
    """Counts alignments or reports coverage from indexed alignment files.

    ``count``, ``pcount`` and ``ncount`` walk the alignments through the
    routine picked by the context's dispatch cache. Every other method works
    on per-base coverage and ignores strand.
    """

    name = "bam"
    suffixes = (".bam", ".cram")

    def open(self, dataset: str) -> OpenedResource:
        config = self.context.config
        handle = open_alignments(dataset, auto_index=config.auto_index)
        lengths = dict(zip(handle.references, handle.lengths))
        return OpenedResource.build(handle, lengths, config.chromosome_prefix)

    def _walk(self, params: ScoreParams, shape: ResultShape) -> list[FetchWindow]:
        routine = self.context.dispatch.lookup(
            params.strandedness, params.strand, params.method, shape
        )
        min_mapq = self.context.config.min_mapq
        windows = []
        for resource, chrom, start, stop in self.regions(params):
            window = FetchWindow(start, stop, min_mapq)
            s, e = to_half_open(start, stop)
            for aln in resource.handle.fetch(chrom, s, e):
                routine(aln, window)
            windows.append(window)
        return windows

    def _coverage(self, params: ScoreParams) -> dict[int, int]:
        depth: dict[int, int] = {}
        for resource, chrom, start, stop in self.regions(params):
            values = coverage(resource.handle, chrom, start, stop)
            for pos, value in enumerate(values.tolist(), start):
                depth[pos] = depth.get(pos, 0) + value
        return depth

    def scores(self, params: ScoreParams) -> list:
        if params.method in COUNT_METHODS:
            out: list = []
            for window in self._walk(params, ResultShape.LIST):
                out.extend(window.scores)
            return out
        return list(self._coverage(params).values())

    def position_scores(self, params: ScoreParams) -> dict[int, Any]:
        if params.method not in COUNT_METHODS:
            return self._coverage(params)

        windows = self._walk(params, ResultShape.POSITIONAL)
        if params.method == Method.NCOUNT:
            names: dict[int, set] = {}
            for window in windows:
                for pos, found in window.index.items():
                    names.setdefault(pos, set()).update(found)
            return {pos: len(found) for pos, found in names.items()}

        totals: dict[int, int] = {}
        for window in windows:
            for pos, n in window.index.items():
                totals[pos] = totals.get(pos, 0) + n
        return totals

