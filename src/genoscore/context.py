"""Per-process caches for opened resources and dispatch decisions."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from loguru import logger

from .callbacks import DispatchCache
from .chromosomes import ChromosomeMap
from .core import CollectionConfig


@dataclass(frozen=True)
class OpenedResource:
    """A live backend handle plus its chromosome aliases and lengths."""

    handle: Any
    chromosomes: ChromosomeMap
    lengths: dict[str, int] = field(default_factory=dict)

    @classmethod
    def build(cls, handle: Any, lengths: dict[str, int], prefix: str = "chr") -> "OpenedResource":
        return cls(handle, ChromosomeMap.from_names(lengths, prefix), dict(lengths))

    def resolve(self, chrom: str) -> str | None:
        return self.chromosomes.resolve(chrom)

    def clamp(self, chrom: str, start: int, stop: int) -> tuple[int, int] | None:
        """Clamp 1-based coordinates to the native chromosome length.

        Returns None when ``start`` lies past the end of the chromosome.
        """
        length = self.lengths.get(chrom)
        if length is None:
            return start, stop
        if start > length:
            return None
        return start, min(stop, length)


class ResourceCache:
    """Memoizes opened resources keyed by path or identifier.

    Entries belong to the process that opened them. Touching the cache from
    another process (a forked worker) drops the inherited entries so every
    handle is reopened there instead of being shared across the fork.
    """

    def __init__(self) -> None:
        self._entries: dict[str, OpenedResource] = {}
        self._pid = os.getpid()

    def _check_process(self) -> None:
        pid = os.getpid()
        if pid != self._pid:
            logger.debug(f"Process {pid} dropping {len(self._entries)} inherited resources")
            self._entries = {}
            self._pid = pid

    def get(self, key: str) -> OpenedResource | None:
        self._check_process()
        return self._entries.get(key)

    def add(self, key: str, resource: OpenedResource) -> OpenedResource:
        self._check_process()
        self._entries[key] = resource
        return resource

    def get_or_open(self, key: str, opener: Callable[[], OpenedResource]) -> OpenedResource:
        resource = self.get(key)
        if resource is None:
            resource = opener()
            self._entries[key] = resource
            logger.debug(f"Opened resource {key} ({len(resource.lengths)} chromosomes)")
        return resource

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        self._check_process()
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        self._check_process()
        return iter(list(self._entries))


class ScoreContext:
    """Owns the caches used by every adapter call.

    Several independent contexts may live in one process; none of them is
    shared across processes.
    """

    def __init__(self, config: CollectionConfig | None = None):
        self.config = config or CollectionConfig()
        self.resources = ResourceCache()
        self.dispatch = DispatchCache()
        self.selections: dict[tuple, Any] = {}

    def __repr__(self) -> str:
        return f"ScoreContext({self.config}, resources={len(self.resources)})"
