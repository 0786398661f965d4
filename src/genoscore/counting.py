"""Total mapped alignment counts, optionally spread over worker processes."""
from __future__ import annotations

import time
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Sequence

from loguru import logger

from .bam import open_alignments
from .callbacks import (
    FLAG_MATE_UNMAPPED,
    FLAG_PROPER_PAIR,
    FLAG_REVERSE,
    FLAG_UNMAPPED,
    REJECT_FLAGS,
)
from .context import ScoreContext

SKIP_FLAGS = FLAG_UNMAPPED | REJECT_FLAGS
SKIP_PAIRED_FLAGS = SKIP_FLAGS | FLAG_MATE_UNMAPPED | FLAG_REVERSE


def count_chromosome(handle, chrom: str, min_mapq: int = 0, paired: bool = False) -> int:
    """Count alignments on one chromosome.

    With ``paired`` only properly paired, forward-oriented records with a
    mapped mate are counted, so each fragment is seen once.
    """
    skip = SKIP_PAIRED_FLAGS if paired else SKIP_FLAGS
    total = 0
    for aln in handle.fetch(chrom):
        flag = aln.flag
        if flag & skip:
            continue
        if paired and not flag & FLAG_PROPER_PAIR:
            continue
        if aln.mapping_quality < min_mapq:
            continue
        total += 1
    return total


def partition_chromosomes(lengths: dict[str, int], parts: int) -> list[list[str]]:
    """Deal chromosomes, longest first, round robin into ``parts`` groups."""
    ordered = sorted(lengths, key=lambda c: lengths[c], reverse=True)
    groups: list[list[str]] = [[] for _ in range(max(1, parts))]
    for i, chrom in enumerate(ordered):
        groups[i % len(groups)].append(chrom)
    return [g for g in groups if g]


def _count_partition(path: str, chromosomes: Sequence[str], min_mapq: int, paired: bool) -> int:
    # runs in a worker process; every worker holds its own handle
    handle = open_alignments(path, auto_index=False)
    try:
        return sum(count_chromosome(handle, chrom, min_mapq, paired) for chrom in chromosomes)
    finally:
        handle.close()


def sum_total_alignments(
    path: str,
    min_mapq: int = 0,
    paired: bool = False,
    workers: int | None = None,
    context: ScoreContext | None = None,
) -> int:
    """Count every qualifying alignment in an indexed alignment file.

    Single process unless ``workers`` (or the context's ``max_workers`` when
    ``workers`` is None) is above one. Exceptions from a worker propagate.
    """
    context = context or ScoreContext()
    config = context.config
    workers = config.max_workers if workers is None else workers
    start_time = time.time()

    handle = open_alignments(path, auto_index=config.auto_index)
    lengths = dict(zip(handle.references, handle.lengths))
    groups = partition_chromosomes(lengths, workers)

    if workers <= 1 or len(groups) <= 1:
        try:
            total = sum(count_chromosome(handle, chrom, min_mapq, paired) for chrom in lengths)
        finally:
            handle.close()
    else:
        handle.close()
        logger.info(f"Counting {path} across {len(groups)} worker processes")
        total = 0
        with ProcessPoolExecutor(max_workers=len(groups)) as executor:
            futures = {
                executor.submit(_count_partition, path, group, min_mapq, paired): group
                for group in groups
            }
            for future in as_completed(futures):
                n = future.result()
                logger.debug(f"{len(futures[future])} chromosomes: {n:,} alignments")
                total += n

    logger.info(f"{path}: {total:,} alignments in {time.time() - start_time:.2f}s")
    return total
