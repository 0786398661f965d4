"""Generic annotation feature stores through gffutils.

``params.db`` names the store and ``params.datasets`` are feature types,
optionally written ``type:source``. Features that point at a bigWig file
through a ``bigwigfile`` or ``wigfile`` attribute stand in for that file's
signal, which is then collected instead of the features themselves.
"""
from __future__ import annotations

import os
from typing import Any, Iterator

import gffutils
from loguru import logger

from .adapters import ScoreAdapter, strip_file_prefix
from .bigwig import BIGWIG_SUFFIXES, BigWigAdapter
from .chromosomes import ChromosomeMap, toggle_prefix
from .context import OpenedResource
from .core import (
    FeatureStoreConfig,
    ResourceOpenError,
    ResultShape,
    ScoreParams,
    UnsupportedDatasetError,
)
from .intervals import IntervalRecord, collect_positions, collect_scores, parse_score, strand_matches
from .stats import calculate_score

GFF_SUFFIXES = (".gff", ".gff3", ".gtf", ".gff.gz", ".gff3.gz", ".gtf.gz")
STORE_SUFFIXES = (".db", ".sqlite", ".sqlite3")
LEGACY_ATTRIBUTES = ("bigwigfile", "wigfile")


def open_feature_store(db: Any, config: FeatureStoreConfig | None = None) -> gffutils.FeatureDB:
    """Open a feature store from a path, a GFF file or a configured name."""
    if isinstance(db, gffutils.FeatureDB):
        return db
    config = config or FeatureStoreConfig()
    path = strip_file_prefix(str(db))
    lower = path.lower()
    if not lower.endswith(GFF_SUFFIXES + STORE_SUFFIXES):
        path = config.resolve(path)
        lower = path.lower()
    if not os.path.exists(path):
        raise ResourceOpenError(path, "no such feature store")

    try:
        if lower.endswith(GFF_SUFFIXES) or config.adaptor == "memory":
            logger.info(f"Loading {path} into an in-memory feature store")
            return gffutils.create_db(path, ":memory:", merge_strategy="create_unique", keep_order=True)
        return gffutils.FeatureDB(path)
    except (OSError, ValueError) as e:
        raise ResourceOpenError(path, str(e)) from e


def feature_strand(feature) -> int:
    return {"+": 1, "-": -1}.get(feature.strand, 0)


def feature_record(feature) -> IntervalRecord:
    names = feature.attributes.get("Name") or feature.attributes.get("name")
    return IntervalRecord(
        feature.start,
        feature.end,
        names[0] if names else feature.id,
        parse_score(feature.score),
        feature_strand(feature),
    )


def legacy_file(feature) -> str | None:
    for key in LEGACY_ATTRIBUTES:
        values = feature.attributes.get(key)
        if values:
            return values[0]
    return None


class FeatureStoreAdapter(ScoreAdapter):
    """Counts or scores annotation features from a gffutils store."""

    name = "featuredb"
    suffixes = ()

    def describe(self, store: gffutils.FeatureDB) -> OpenedResource:
        """Wrap ``store`` with a map of the sequence ids it holds."""
        seqids = [row[0] for row in store.execute("SELECT DISTINCT seqid FROM features")]
        return OpenedResource(store, ChromosomeMap.from_names(seqids, self.context.config.chromosome_prefix), {})

    def open(self, dataset: str) -> OpenedResource:
        return self.describe(open_feature_store(dataset, self.context.config.database))

    def store(self, db: Any) -> OpenedResource:
        # live FeatureDB objects are described on every call
        if isinstance(db, gffutils.FeatureDB):
            return self.describe(db)
        if db is None:
            raise ResourceOpenError("<none>", "no feature store given")
        return self.resource(str(db))

    def _query(self, store, chrom: str, params: ScoreParams) -> list:
        found = []
        for dataset in params.datasets:
            featuretype, _, source = dataset.partition(":")
            for feature in store.region(seqid=chrom, start=params.start, end=params.stop, featuretype=featuretype):
                if source and feature.source != source:
                    continue
                found.append(feature)
        return found

    def features(self, params: ScoreParams) -> list:
        """Features of the requested types overlapping the query."""
        resource = self.store(params.db)
        chrom = resource.resolve(params.chromosome)
        if chrom is not None:
            return self._query(resource.handle, chrom, params)
        logger.debug(f"{params.db}: {params.chromosome} is not a known sequence id, retrying with the prefix toggled")
        return self._query(resource.handle, toggle_prefix(params.chromosome, self.context.config.chromosome_prefix), params)

    def redirect(self, params: ScoreParams, features: list) -> ScoreParams | None:
        """Parameters for the bigWig files the features point at, if any."""
        files: list[str] = []
        for feature in features:
            target = legacy_file(feature)
            if target is None:
                continue
            if not strand_matches(feature_strand(feature), params.strand, params.strandedness):
                continue
            if not target.lower().endswith(BIGWIG_SUFFIXES):
                raise UnsupportedDatasetError(f"Unsupported wiggle target '{target}' on feature {feature.id}")
            if target not in files:
                files.append(target)
        if not files:
            return None
        logger.debug(f"Collecting {params.method.value} from {len(files)} linked bigWig files")
        return params._replace(datasets=tuple(files), db=None)

    def _matching(self, features: list, params: ScoreParams) -> Iterator[tuple[str, IntervalRecord]]:
        for feature in features:
            record = feature_record(feature)
            if strand_matches(record.strand, params.strand, params.strandedness):
                yield feature.seqid, record

    def _signal(self) -> BigWigAdapter:
        return BigWigAdapter(self.context)

    def collect(self, params: ScoreParams):
        features = self.features(params)
        linked = self.redirect(params, features)
        if linked is not None:
            return self._signal().collect(linked)
        if params.shape == ResultShape.POSITIONAL:
            return collect_positions(self._matching(features, params), params)
        values = collect_scores(self._matching(features, params), params)
        if params.shape == ResultShape.LIST:
            return values
        return calculate_score(params.method, values)

    def scores(self, params: ScoreParams) -> list:
        return self.collect(params._replace(shape=ResultShape.LIST))

    def position_scores(self, params: ScoreParams) -> dict[int, Any]:
        return self.collect(params._replace(shape=ResultShape.POSITIONAL))

    def score(self, params: ScoreParams) -> float | int | None:
        return self.collect(params._replace(shape=ResultShape.SCORE))
