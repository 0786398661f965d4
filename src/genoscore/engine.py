"""Adapter selection and the single score entry point.

Example:
    >>> params = make_params("chr1", 1000, 2000, "sample.bw", method="mean")
    >>> get_segment_score(params)
"""
from __future__ import annotations

from pathlib import Path
from typing import Any

from loguru import logger

from .adapters import ScoreAdapter
from .bam import BamAdapter
from .bigwig import BigWigAdapter, BigWigSet, BigWigSetAdapter
from .context import ScoreContext
from .core import ScoreParams, UnsupportedDatasetError
from .featuredb import FeatureStoreAdapter
from .intervals import IntervalAdapter

FILE_ADAPTERS: tuple[type[ScoreAdapter], ...] = (BamAdapter, BigWigAdapter, IntervalAdapter)


def adapter_class(dataset: str, db: Any = None) -> type[ScoreAdapter]:
    """The adapter type serving ``dataset``.

    File datasets are recognized by suffix. Anything else is looked up in
    ``db``: a directory (or :class:`BigWigSet`) is a bigWig set, every other
    database is a feature store.
    """
    for cls in FILE_ADAPTERS:
        if cls.handles(dataset):
            return cls
    if db is None:
        raise UnsupportedDatasetError(f"Unrecognized dataset '{dataset}' and no database given")
    if isinstance(db, BigWigSet) or (isinstance(db, (str, Path)) and Path(str(db)).is_dir()):
        return BigWigSetAdapter
    return FeatureStoreAdapter


def adapter_for(params: ScoreParams, context: ScoreContext) -> ScoreAdapter:
    """Return the context's adapter for every dataset of ``params``."""
    classes = {adapter_class(d, params.db) for d in params.datasets}
    if len(classes) != 1:
        names = ", ".join(sorted(c.name for c in classes))
        raise UnsupportedDatasetError(f"Datasets of one query span several storage types: {names}")
    cls = classes.pop()

    key = ("adapter", cls.name)
    adapter = context.selections.get(key)
    if adapter is None:
        adapter = context.selections[key] = cls(context)
        logger.debug(f"Selected {cls.name} adapter for {', '.join(params.datasets)}")
    return adapter


def get_segment_score(params: ScoreParams, context: ScoreContext | None = None):
    """Collect a score, list or position map as ``params.shape`` asks."""
    context = context or ScoreContext()
    return adapter_for(params, context).collect(params)
