"""bigWig signal files and directories of them, through pybigtools."""
from __future__ import annotations

import math
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Iterator, Sequence

import numpy as np
import pybigtools
from loguru import logger

from .adapters import ScoreAdapter, is_remote, strip_file_prefix
from .context import OpenedResource
from .core import (
    ResourceOpenError,
    ScoreParams,
    Strandedness,
    to_half_open,
)
from .positions import PositionScores
from .stats import (
    SUMMARY_METHODS,
    SignalSummary,
    calculate_score,
    merge_summaries,
    summarize_intervals,
    summarize_zoom_records,
)

BIGWIG_SUFFIXES = (".bw", ".bigwig")

_FORWARD_NAME = re.compile(r"[_.\-](?:f|for|forward|top|plus|\+)\.(?:bw|bigwig)$", re.IGNORECASE)
_REVERSE_NAME = re.compile(r"[_.\-](?:r|rev|reverse|bottom|minus|-)\.(?:bw|bigwig)$", re.IGNORECASE)


def open_bigwig(path: str):
    path = strip_file_prefix(path)
    if not is_remote(path) and not os.path.exists(path):
        raise ResourceOpenError(path, "no such file")
    try:
        return pybigtools.open(path)
    except (OSError, ValueError) as e:
        raise ResourceOpenError(path, str(e)) from e


def zoom_levels(handle: Any) -> list[int]:
    """Reduction levels of the file's zoom summaries, finest first."""
    zooms = getattr(handle, "zooms", None)
    if zooms is None:
        return []
    return sorted(int(z) for z in zooms())


def choose_zoom(levels: Sequence[int], span: int) -> int | None:
    """Coarsest reduction level no larger than half the query span."""
    usable = [z for z in levels if 0 < z <= span // 2]
    return max(usable) if usable else None


def _summary_fields(summary: Any) -> tuple[float, float, float, float, float]:
    """(bases_covered, sum, sum_squares, min, max) from one zoom summary."""
    if isinstance(summary, dict):
        return (
            summary["bases_covered"],
            summary["sum"],
            summary["sum_squares"],
            summary["min_val"],
            summary["max_val"],
        )
    if hasattr(summary, "bases_covered"):
        return (
            summary.bases_covered,
            summary.sum,
            summary.sum_squares,
            summary.min_val,
            summary.max_val,
        )
    # tuples carry an item count in front of the bbi zoom record layout
    if len(summary) == 6:
        summary = summary[1:]
    covered, lo_val, hi_val, total, squares = summary
    return covered, total, squares, lo_val, hi_val


def summarize(handle: Any, chrom: str, start: int, stop: int) -> SignalSummary:
    """Summary statistics of one file over a 1-based inclusive interval."""
    lo, hi = to_half_open(start, stop)
    level = choose_zoom(zoom_levels(handle), hi - lo)
    if level is not None:
        rows = [(s, e, *_summary_fields(summary)) for s, e, summary in handle.zoom_records(level, chrom, lo, hi)]
        if not rows:
            return SignalSummary()
        arr = np.asarray(rows, dtype=np.float64)
        return SignalSummary.from_tuple(
            summarize_zoom_records(
                arr[:, 0].astype(np.int64),
                arr[:, 1].astype(np.int64),
                arr[:, 2],
                arr[:, 3],
                arr[:, 4],
                arr[:, 5],
                arr[:, 6],
                lo,
                hi,
            )
        )

    records = list(handle.records(chrom, lo, hi))
    if not records:
        return SignalSummary()
    starts = np.fromiter((r[0] for r in records), dtype=np.int64, count=len(records))
    ends = np.fromiter((r[1] for r in records), dtype=np.int64, count=len(records))
    values = np.fromiter((r[2] for r in records), dtype=np.float64, count=len(records))
    return SignalSummary.from_tuple(summarize_intervals(starts, ends, values, lo, hi))


def expand_records(records: Iterable[tuple], start: int, stop: int) -> Iterator[tuple[int, float]]:
    """Spread (start, end, value) records over 1-bp positions in [start, stop]."""
    for s, e, value in records:
        if math.isnan(value):
            continue
        for pos in range(max(s + 1, start), min(e, stop) + 1):
            yield pos, value


class BigWigAdapter(ScoreAdapter):
    """Scores from one or more bigWig files.

    Scalar statistics come from the files' summary data and are merged
    across files; median needs the raw values and is computed from the list.
    """

    name = "bigwig"
    suffixes = BIGWIG_SUFFIXES

    def open(self, dataset: str) -> OpenedResource:
        handle = open_bigwig(dataset)
        lengths = {name: int(length) for name, length in handle.chroms().items()}
        return OpenedResource.build(handle, lengths, self.context.config.chromosome_prefix)

    def summaries(self, params: ScoreParams) -> list[SignalSummary]:
        return [
            summarize(resource.handle, chrom, start, stop)
            for resource, chrom, start, stop in self.regions(params)
        ]

    def score(self, params: ScoreParams) -> float | int | None:
        if params.method not in SUMMARY_METHODS:
            return calculate_score(params.method, self.scores(params))
        return merge_summaries(params.method, self.summaries(params))

    def scores(self, params: ScoreParams) -> list:
        values: list[float] = []
        for resource, chrom, start, stop in self.regions(params):
            lo, hi = to_half_open(start, stop)
            values.extend(
                value for _, _, value in resource.handle.records(chrom, lo, hi) if not math.isnan(value)
            )
        return values

    def position_scores(self, params: ScoreParams) -> dict[int, float]:
        acc = PositionScores()
        for resource, chrom, start, stop in self.regions(params):
            lo, hi = to_half_open(start, stop)
            acc.update(expand_records(resource.handle.records(chrom, lo, hi), start, stop))
        if acc.collisions:
            logger.debug(f"Averaging {acc.collisions} positions shared between files")
        return acc.reconcile()


# -- bigWig sets ---------------------------------------------------------------


def infer_strand(filename: str) -> int:
    if _FORWARD_NAME.search(filename):
        return 1
    if _REVERSE_NAME.search(filename):
        return -1
    return 0


def parse_strand(value: str) -> int:
    value = value.strip().lower()
    if value in {"1", "+1", "+", "plus", "forward"}:
        return 1
    if value in {"-1", "-", "minus", "reverse"}:
        return -1
    if value in {"0", ".", "none", ""}:
        return 0
    raise ValueError(f"Unrecognized strand value '{value}'")


def read_metadata(path: Path) -> dict[str, dict[str, str]]:
    """Parse ``[file.bw]`` stanzas of ``key = value`` lines."""
    stanzas: dict[str, dict[str, str]] = {}
    current: dict[str, str] | None = None
    with open(path) as fh:
        for line in fh:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("[") and line.endswith("]"):
                current = stanzas.setdefault(line[1:-1].strip(), {})
            elif "=" in line and current is not None:
                key, value = line.split("=", 1)
                current[key.strip().lower()] = value.strip()
            else:
                logger.warning(f"{path}: ignoring line '{line}'")
    return stanzas


@dataclass
class BigWigSetEntry:
    path: str
    name: str
    type: str = "region"
    strand: int = 0
    attributes: dict[str, str] = field(default_factory=dict)


class BigWigSet:
    """A directory of bigWig files addressed by type or name.

    Optional ``meta*.txt`` files in the directory describe files by stanza.
    Entries without an explicit strand get one from their file name.
    """

    def __init__(self, directory: str | Path, entries: list[BigWigSetEntry]):
        self.directory = Path(directory)
        self.entries = entries

    @classmethod
    def load(cls, directory: str | Path) -> "BigWigSet":
        directory = Path(strip_file_prefix(str(directory)))
        if not directory.is_dir():
            raise ResourceOpenError(str(directory), "not a directory")

        metadata: dict[str, dict[str, str]] = {}
        for meta in sorted(directory.glob("meta*.txt")):
            metadata.update(read_metadata(meta))

        entries = []
        for path in sorted(directory.iterdir()):
            if not path.name.lower().endswith(BIGWIG_SUFFIXES):
                continue
            attrs = dict(metadata.get(path.name, {}))
            strand = parse_strand(attrs["strand"]) if "strand" in attrs else infer_strand(path.name)
            entries.append(
                BigWigSetEntry(
                    path=str(path),
                    name=attrs.get("name") or attrs.get("display_name") or path.stem,
                    type=attrs.get("type", "region"),
                    strand=strand,
                    attributes=attrs,
                )
            )
        if not entries:
            raise ResourceOpenError(str(directory), "no bigWig files in directory")
        logger.debug(f"Loaded bigWig set {directory} with {len(entries)} files")
        return cls(directory, entries)

    @property
    def paths(self) -> list[str]:
        return [e.path for e in self.entries]

    def select(self, selectors: Sequence[str], strand: int = 0, strandedness: Strandedness = Strandedness.ALL) -> list[str]:
        """Paths matching the selectors by type, falling back to name.

        For stranded collection only files on the wanted strand and
        unstranded files are kept.
        """
        wanted = {s.lower() for s in selectors}
        chosen = [e for e in self.entries if e.type.lower() in wanted]
        if not chosen:
            chosen = [e for e in self.entries if e.name.lower() in wanted or Path(e.path).name.lower() in wanted]

        strandedness = Strandedness(strandedness)
        if strandedness != Strandedness.ALL and strand != 0:
            keep = strand if strandedness == Strandedness.SENSE else -strand
            chosen = [e for e in chosen if e.strand in (keep, 0)]
        return [e.path for e in chosen]

    def __len__(self) -> int:
        return len(self.entries)

    def __repr__(self) -> str:
        return f"BigWigSet({str(self.directory)!r}, {len(self.entries)} files)"


class BigWigSetAdapter(BigWigAdapter):
    """Signal queries against a :class:`BigWigSet` given as ``params.db``."""

    name = "bigwigset"
    suffixes = ()

    def bigwig_set(self, db: BigWigSet | str | Path) -> BigWigSet:
        if isinstance(db, BigWigSet):
            return db
        key = ("bigwigset", str(db))
        found = self.context.selections.get(key)
        if found is None:
            found = self.context.selections[key] = BigWigSet.load(db)
        return found

    def resolve(self, params: ScoreParams) -> ScoreParams:
        """Swap the set's selectors for the selected bigWig paths."""
        if params.db is None:
            return params
        bws = self.bigwig_set(params.db)
        key = ("bigwigset-files", str(bws.directory), params.datasets, params.strandedness, int(params.strand))
        paths = self.context.selections.get(key)
        if paths is None:
            paths = tuple(bws.select(params.datasets, params.strand, params.strandedness))
            self.context.selections[key] = paths
            logger.debug(f"{bws}: {len(paths)} files selected for {', '.join(params.datasets)}")
        return params._replace(datasets=paths, db=None)

    def score(self, params: ScoreParams) -> float | int | None:
        return super().score(self.resolve(params))

    def scores(self, params: ScoreParams) -> list:
        return super().scores(self.resolve(params))

    def position_scores(self, params: ScoreParams) -> dict[int, float]:
        return super().position_scores(self.resolve(params))
