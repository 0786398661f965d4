"""The narrow interface every storage backend implements."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Iterator

from loguru import logger

from .context import OpenedResource, ScoreContext
from .core import ResultShape, ScoreParams
from .stats import calculate_score


def strip_file_prefix(dataset: str) -> str:
    return dataset[5:] if dataset.startswith("file:") else dataset


def is_remote(path: str) -> bool:
    return "://" in path


class ScoreAdapter(ABC):
    """Retrieves scores for one storage family.

    Subclasses implement :meth:`open` plus the list and positional
    retrievals; the scalar score defaults to reducing the list.
    """

    #: lower-case file suffixes this adapter claims
    suffixes: tuple[str, ...] = ()

    def __init__(self, context: ScoreContext | None = None):
        self.context = context or ScoreContext()

    @property
    @abstractmethod
    def name(self) -> str:
        """Short identifier of the storage family."""

    @classmethod
    def handles(cls, dataset: str) -> bool:
        return strip_file_prefix(dataset).lower().endswith(cls.suffixes)

    # -- Resources -----------------------------------------------------------

    @abstractmethod
    def open(self, dataset: str) -> OpenedResource:
        """Open ``dataset`` and describe its chromosomes.

        Raises ``ResourceOpenError`` when the dataset cannot be opened.
        """

    def wrap(self, dataset: str, handle: Any, lengths: dict[str, int]) -> OpenedResource:
        """Register an already open ``handle`` under ``dataset``."""
        resource = OpenedResource.build(handle, lengths, self.context.config.chromosome_prefix)
        return self.context.resources.add(dataset, resource)

    def resource(self, dataset: str) -> OpenedResource:
        return self.context.resources.get_or_open(dataset, lambda: self.open(dataset))

    def regions(self, params: ScoreParams) -> Iterator[tuple[OpenedResource, str, int, int]]:
        """Yield (resource, native chromosome, start, stop) per dataset.

        Datasets lacking the chromosome, or whose chromosome ends before the
        query starts, are skipped.
        """
        for dataset in params.datasets:
            resource = self.resource(dataset)
            chrom = resource.resolve(params.chromosome)
            if chrom is None:
                logger.debug(f"{dataset}: no chromosome {params.chromosome}")
                continue
            bounds = resource.clamp(chrom, params.start, params.stop)
            if bounds is None:
                continue
            yield resource, chrom, bounds[0], bounds[1]

    # -- Retrieval -----------------------------------------------------------

    @abstractmethod
    def scores(self, params: ScoreParams) -> list:
        """Unordered values collected over the interval."""

    @abstractmethod
    def position_scores(self, params: ScoreParams) -> dict[int, Any]:
        """1-based position -> value over the interval."""

    def score(self, params: ScoreParams) -> float | int | None:
        return calculate_score(params.method, self.scores(params))

    def collect(self, params: ScoreParams):
        """Dispatch on the requested result shape."""
        if params.shape == ResultShape.POSITIONAL:
            return self.position_scores(params)
        if params.shape == ResultShape.LIST:
            return self.scores(params)
        return self.score(params)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.context!r})"
