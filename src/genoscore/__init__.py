"""genoscore package (src layout)

One parameter contract for scores over genomic regions, served from
alignment files, bigWig signal, interval archives and feature stores.
"""
from .context import ScoreContext
from .core import (
    CollectionConfig,
    FeatureStoreConfig,
    Method,
    ResultShape,
    ScoreParams,
    Strand,
    Strandedness,
    make_params,
)
from .counting import sum_total_alignments
from .engine import adapter_for, get_segment_score

__all__ = [
    "CollectionConfig",
    "FeatureStoreConfig",
    "Method",
    "ResultShape",
    "ScoreContext",
    "ScoreParams",
    "Strand",
    "Strandedness",
    "adapter_for",
    "get_segment_score",
    "make_params",
    "sum_total_alignments",
]
