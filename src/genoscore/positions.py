from __future__ import annotations

from typing import Callable, Iterable, Sequence


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values)


class PositionScores:
    """Accumulates position -> value pairs from one or more sources.

    The first value seen at a position is stored directly. Further values at
    the same position are queued in a side table, and :meth:`reconcile`
    collapses each colliding position to the mean of everything recorded
    there. Only colliding positions are visited when reconciling.
    """

    __slots__ = ("_first", "_pending")

    def __init__(self) -> None:
        self._first: dict[int, float] = {}
        self._pending: dict[int, list[float]] = {}

    def add(self, position: int, value: float) -> None:
        first = self._first
        if position in first:
            pending = self._pending.get(position)
            if pending is None:
                self._pending[position] = [first[position], value]
            else:
                pending.append(value)
        else:
            first[position] = value

    def update(self, items: Iterable[tuple[int, float]]) -> None:
        for position, value in items:
            self.add(position, value)

    @property
    def collisions(self) -> int:
        return len(self._pending)

    def __len__(self) -> int:
        return len(self._first)

    def __contains__(self, position: int) -> bool:
        return position in self._first

    def reconcile(self, reducer: Callable[[Sequence[float]], float] = _mean) -> dict[int, float]:
        """Return the finalized map with one value per position."""
        out = dict(self._first)
        for position, values in self._pending.items():
            out[position] = reducer(values)
        return out


def reconcile_positions(sources: Iterable[Iterable[tuple[int, float]]]) -> dict[int, float]:
    """Merge several position/value streams, averaging shared positions."""
    acc = PositionScores()
    for source in sources:
        acc.update(source)
    return acc.reconcile()
