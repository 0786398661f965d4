from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any, Literal, NamedTuple

import psutil
from pydantic import BaseModel, Field, field_validator


class Strand(IntEnum):
    REVERSE = -1
    NONE = 0
    FORWARD = 1


class Strandedness(str, Enum):
    """Which physical strand to collect relative to the query strand."""
    SENSE = "sense"
    ANTISENSE = "antisense"
    ALL = "all"


class Method(str, Enum):
    SCORE = "score"
    COUNT = "count"
    PCOUNT = "pcount"
    NCOUNT = "ncount"
    MEAN = "mean"
    MEDIAN = "median"
    MIN = "min"
    MAX = "max"
    SUM = "sum"
    STDDEV = "stddev"


class ResultShape(str, Enum):
    """Shape of a collected result.

    ``SCORE`` is a single value, ``LIST`` the unordered values a score is
    computed from, ``POSITIONAL`` a mapping of 1-based position to value.
    """
    SCORE = "score"
    LIST = "list"
    POSITIONAL = "positional"


COUNT_METHODS = frozenset({Method.COUNT, Method.PCOUNT, Method.NCOUNT})


class ResourceOpenError(OSError):
    """A dataset could not be opened."""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        message = f"Unable to open '{path}'"
        super().__init__(f"{message}: {reason}" if reason else message)


class DispatchError(ValueError):
    """No routine exists for a strandedness/strand/method/shape combination."""


class SummaryMergeError(ValueError):
    """A statistic cannot be combined from several per-file summaries."""


class UnsupportedDatasetError(ValueError):
    """The dataset type is not recognized by any adapter."""


class GenomicRegion(BaseModel):
    """A validated genomic interval in 1-based, inclusive coordinates.

    Attributes:
        chrom: chromosome/contig name
        start: 1-based first position
        stop: 1-based last position (must be >= start)
    """
    model_config = {"validate_assignment": True, "extra": "forbid"}

    chrom: str = Field(..., min_length=1)
    start: int = Field(..., ge=1)
    stop: int = Field(..., ge=1)

    @field_validator("stop")
    @classmethod
    def validate_interval(cls, v: int, info) -> int:
        if "start" in info.data and v < info.data["start"]:
            raise ValueError(f"Stop position ({v}) must not be less than start ({info.data['start']})")
        return v

    @property
    def length(self) -> int:
        """Return the number of bases covered by this region."""
        return self.stop - self.start + 1

    def to_half_open(self) -> tuple[int, int]:
        return to_half_open(self.start, self.stop)

    def __str__(self) -> str:
        return f"{self.chrom}:{self.start:,}-{self.stop:,}"


def to_half_open(start: int, stop: int) -> tuple[int, int]:
    """Convert 1-based inclusive coordinates to 0-based half-open ones."""
    return start - 1, stop


def from_half_open(start: int, end: int) -> tuple[int, int]:
    """Convert 0-based half-open coordinates to 1-based inclusive ones."""
    return start + 1, end


class ScoreParams(NamedTuple):
    """One score collection request.

    Field order is fixed; ``datasets`` always comes last and holds one or
    more dataset identifiers (file paths, URLs, feature or bigWig types).
    """
    chromosome: str
    start: int
    stop: int
    strand: Strand
    strandedness: Strandedness
    method: Method
    shape: ResultShape
    db: Any
    datasets: tuple[str, ...]

    @property
    def native_interval(self) -> tuple[int, int]:
        return to_half_open(self.start, self.stop)


def split_datasets(datasets) -> tuple[str, ...]:
    """Flatten dataset identifiers, splitting ``a&b`` combined datasets."""
    out: list[str] = []
    for d in datasets:
        if isinstance(d, str) and "&" in d:
            out.extend(p for p in d.split("&") if p)
        else:
            out.append(d)
    return tuple(out)


def make_params(
    chromosome: str,
    start: int,
    stop: int,
    *datasets: str,
    strand: int = 0,
    strandedness: Strandedness | str = Strandedness.ALL,
    method: Method | str = Method.MEAN,
    shape: ResultShape | str = ResultShape.SCORE,
    db: Any = None,
) -> ScoreParams:
    """Build a validated :class:`ScoreParams`.

    Raises ``ValueError`` (including pydantic's ``ValidationError``) for an
    inverted interval, a strand outside {-1, 0, 1}, an unknown enum value or
    an empty dataset list.
    """
    region = GenomicRegion(chrom=chromosome, start=start, stop=stop)
    ids = split_datasets(datasets)
    if not ids:
        raise ValueError("At least one dataset must be given")
    return ScoreParams(
        region.chrom,
        region.start,
        region.stop,
        Strand(int(strand)),
        Strandedness(strandedness),
        Method(method),
        ResultShape(shape),
        db,
        ids,
    )


class FeatureStoreConfig(BaseModel):
    """Resolved feature database connection defaults.

    ``dsn`` maps a database name to its store path; names missing from it
    are resolved as ``dsn_prefix + name``.
    """
    model_config = {"validate_assignment": True, "extra": "forbid"}

    adaptor: Literal["sqlite", "memory"] = Field(
        default="sqlite", description="Store backend for named databases"
    )
    dsn_prefix: str = Field(default="", description="Prefix prepended to database names")
    dsn: dict[str, str] = Field(default_factory=dict, description="Explicit name -> store path")

    def resolve(self, name: str) -> str:
        return self.dsn.get(name) or f"{self.dsn_prefix}{name}"


class CollectionConfig(BaseModel):
    """Behavioral settings shared by all adapters of a context."""
    model_config = {"validate_assignment": True, "extra": "forbid"}

    min_mapq: int = Field(default=0, ge=0, le=255, description="Minimum alignment mapping quality")
    chromosome_prefix: str = Field(default="chr", min_length=1, description="Chromosome naming prefix")
    auto_index: bool = Field(default=True, description="Build missing alignment indexes on open")
    max_workers: int = Field(
        default_factory=lambda: max(1, psutil.cpu_count(logical=False) or 2),
        ge=1,
        description="Worker processes for whole-file alignment counting",
    )
    database: FeatureStoreConfig = Field(default_factory=FeatureStoreConfig)

    def __str__(self) -> str:
        return f"Config(min_mapq={self.min_mapq}, prefix={self.chromosome_prefix!r}, workers={self.max_workers})"
