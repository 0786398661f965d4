"""Chromosome name aliasing.

Datasets disagree on whether chromosome names carry a ``chr`` style prefix.
A :class:`ChromosomeMap` is built once per opened resource from its native
sequence names and answers lookups for either spelling.
"""
from __future__ import annotations

from typing import Iterable, Mapping


def toggle_prefix(name: str, prefix: str = "chr") -> str:
    """Strip ``prefix`` from ``name`` if present, otherwise add it."""
    if len(name) > len(prefix) and name[: len(prefix)].lower() == prefix.lower():
        return name[len(prefix):]
    return f"{prefix}{name}"


class ChromosomeMap(Mapping[str, str]):
    """Read-only mapping of name spelling -> native chromosome name."""

    __slots__ = ("_lookup", "_native")

    def __init__(self, lookup: dict[str, str], native: tuple[str, ...]):
        self._lookup = lookup
        self._native = native

    @classmethod
    def from_names(cls, names: Iterable[str], prefix: str = "chr") -> "ChromosomeMap":
        native = tuple(names)
        lookup: dict[str, str] = {}
        # variants first so exact native names always win
        for name in native:
            lookup.setdefault(toggle_prefix(name, prefix), name)
        for name in native:
            lookup[name] = name
        return cls(lookup, native)

    @property
    def native_names(self) -> tuple[str, ...]:
        return self._native

    def resolve(self, name: str) -> str | None:
        """Return the native spelling of ``name`` or None when absent."""
        return self._lookup.get(name)

    def __getitem__(self, key: str) -> str:
        return self._lookup[key]

    def __iter__(self):
        return iter(self._lookup)

    def __len__(self) -> int:
        return len(self._lookup)

    def __repr__(self) -> str:
        return f"ChromosomeMap({len(self._native)} chromosomes)"
