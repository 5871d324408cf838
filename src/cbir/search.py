#!/usr/bin/env python3
"""Retrieval driver: score a corpus against a target image and rank it.

Every retrieval mode is a declarative :class:`Pipeline` of feature components.
Each component pairs a feature extractor with a metric; the component scores
of a corpus entry are summed without weights and the corpus is sorted in the
pipeline's direction.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, get_args

import numpy as np
import numpy.typing as npt
from tqdm import tqdm

from .config import Config, RetrievalMode
from .database import FeatureStore, iter_image_files
from .errors import InvalidParameterError, ResourceUnavailableError
from .features import center_patch_vector, identifier_for, load_image
from .histograms import color_histogram, hsv_histogram, rg_chromaticity_histogram, texture_histogram
from .metrics import CosineDistance, DistanceMetric, HistogramIntersection, SumSquaredDifference
from .models import MatchResult

logger = logging.getLogger(__name__)

Extractor = Callable[[npt.NDArray[Any], Config], npt.NDArray[np.float32]]
Features = dict[str, npt.NDArray[np.float32]]

# Numeric histogram-type selectors accepted on the command line
_MODE_ALIASES: dict[str, RetrievalMode] = {
    "0": "rg",
    "1": "hsv",
    "2": "color",
    "3": "color_texture",
}


@dataclass(frozen=True)
class Component:
    """One feature channel of a pipeline.

    Attributes:
        name: Feature name, also the key used to bind a FeatureStore.
        metric: Metric comparing target and candidate features.
        extract: Builds the feature from an image, or None when the feature
            only exists in a FeatureStore (precomputed embeddings).
    """

    name: str
    metric: DistanceMetric
    extract: Extractor | None = None


@dataclass(frozen=True)
class Pipeline:
    """Feature components plus the ranking direction of their summed score."""

    components: tuple[Component, ...]
    higher_is_better: bool


def _patch(img: npt.NDArray[Any], cfg: Config) -> npt.NDArray[np.float32]:
    return center_patch_vector(img, cfg.patch_size)


def _rg(img: npt.NDArray[Any], cfg: Config) -> npt.NDArray[np.float32]:
    return rg_chromaticity_histogram(img, cfg.rg_bins)


def _hsv(img: npt.NDArray[Any], cfg: Config) -> npt.NDArray[np.float32]:
    return hsv_histogram(img, cfg.hue_bins, cfg.sat_bins)


def _color(img: npt.NDArray[Any], cfg: Config) -> npt.NDArray[np.float32]:
    return color_histogram(img, cfg.color_bins)


def _texture(img: npt.NDArray[Any], cfg: Config) -> npt.NDArray[np.float32]:
    return texture_histogram(img, cfg.texture_bins)


_INTERSECTION = HistogramIntersection()

PATCH = Component("patch", SumSquaredDifference(), _patch)
RG = Component("rg", _INTERSECTION, _rg)
HSV = Component("hsv", _INTERSECTION, _hsv)
COLOR = Component("color", _INTERSECTION, _color)
TEXTURE = Component("texture", _INTERSECTION, _texture)
EMBEDDING = Component("embedding", CosineDistance())

PIPELINES: dict[RetrievalMode, Pipeline] = {
    "baseline": Pipeline((PATCH,), higher_is_better=False),
    "rg": Pipeline((RG,), higher_is_better=True),
    "hsv": Pipeline((HSV,), higher_is_better=True),
    "both": Pipeline((RG, HSV), higher_is_better=True),
    "color": Pipeline((COLOR,), higher_is_better=True),
    "color_texture": Pipeline((COLOR, TEXTURE), higher_is_better=True),
    "dnn": Pipeline((EMBEDDING,), higher_is_better=False),
    "cbir": Pipeline((COLOR, TEXTURE, EMBEDDING), higher_is_better=False),
}


def parse_mode(value: str) -> RetrievalMode:
    """Resolve a mode name or numeric histogram-type selector.

    Raises:
        InvalidParameterError: If the value names no retrieval mode.
    """
    key = value.strip().lower()
    if key in _MODE_ALIASES:
        return _MODE_ALIASES[key]
    if key in get_args(RetrievalMode):
        return key  # type: ignore[return-value]
    msg = f"Unknown retrieval mode: {value!r} (expected one of {list(get_args(RetrievalMode))} or 0-3)"
    raise InvalidParameterError(msg)


def rank(
    results: list[MatchResult], top_n: int, higher_is_better: bool
) -> list[MatchResult]:
    """Sort scored entries and keep the first ``top_n``.

    The sort is stable: entries with equal scores keep corpus order.
    """
    if top_n < 1:
        msg = f"top_n must be >= 1, got {top_n}"
        raise InvalidParameterError(msg)
    ordered = sorted(results, key=lambda m: m.score, reverse=higher_is_better)
    return ordered[:top_n]


class Retriever:
    """Ranks a corpus by similarity to a target image for one retrieval mode."""

    def __init__(
        self,
        cfg: Config,
        mode: RetrievalMode,
        stores: Mapping[str, FeatureStore] | None = None,
    ):
        """Initialize retriever.

        Args:
            cfg: Configuration object.
            mode: Retrieval mode selecting the pipeline.
            stores: Precomputed features keyed by component name, e.g.
                ``{"embedding": store}`` or ``{"patch": store}``.

        Raises:
            InvalidParameterError: If the mode is unknown or a stored-only
                component has no store.
        """
        cfg.validate()
        if mode not in PIPELINES:
            msg = f"Unknown retrieval mode: {mode}"
            raise InvalidParameterError(msg)

        self.cfg = cfg
        self.mode = mode
        self.pipeline = PIPELINES[mode]
        self.stores: dict[str, FeatureStore] = dict(stores or {})

        for component in self.pipeline.components:
            if component.extract is None and component.name not in self.stores:
                msg = f"Mode '{mode}' needs a '{component.name}' feature file"
                raise InvalidParameterError(msg)

    @property
    def _store_only(self) -> bool:
        """True when every component is backed by a store (no image scan)."""
        return all(c.name in self.stores for c in self.pipeline.components)

    def _lookup(self, component: Component, identifier: str) -> npt.NDArray[np.float32] | None:
        record = self.stores[component.name].lookup(identifier)
        return None if record is None else record.vector

    def target_features(self, target: Path) -> Features:
        """Build or look up every component feature of the target.

        Raises:
            ResourceUnavailableError: If the target image cannot be read, or a
                stored-only feature has no record for the target.
        """
        identifier = identifier_for(target)
        features: Features = {}
        img = None
        for component in self.pipeline.components:
            if component.extract is not None:
                if img is None:
                    img = load_image(target)
                features[component.name] = component.extract(img, self.cfg)
                continue
            vector = self._lookup(component, identifier)
            if vector is None:
                msg = f"No '{component.name}' features for target {identifier}"
                raise ResourceUnavailableError(msg)
            features[component.name] = vector
        return features

    def _iter_store_corpus(self, target_id: str) -> Iterator[tuple[str, Features]]:
        first = self.pipeline.components[0]
        seen: set[str] = set()
        for identifier in self.stores[first.name].identifiers():
            if identifier == target_id or identifier in seen:
                continue
            seen.add(identifier)

            features: Features = {}
            for component in self.pipeline.components:
                vector = self._lookup(component, identifier)
                if vector is None:
                    break
                features[component.name] = vector
            else:
                yield identifier, features
                continue
            logger.warning(f"Skipping {identifier}: missing '{component.name}' features")

    def _iter_directory_corpus(
        self, corpus_dir: Path, target: Path
    ) -> Iterator[tuple[str, Features]]:
        target_resolved = target.resolve()
        files = iter_image_files(corpus_dir, self.cfg.image_extensions)
        logger.info(f"Found {len(files)} images in {corpus_dir}")

        for img_path in tqdm(files, desc="Scoring corpus", disable=not self.cfg.show_progress):
            if img_path.resolve() == target_resolved:
                continue
            try:
                features = self._image_features(img_path)
            except (ResourceUnavailableError, InvalidParameterError) as e:
                logger.warning(f"Skipping {img_path.name}: {e}")
                continue
            if features is not None:
                yield img_path.name, features

    def _image_features(self, img_path: Path) -> Features | None:
        features: Features = {}
        img = None
        for component in self.pipeline.components:
            if component.name in self.stores:
                vector = self._lookup(component, img_path.name)
                if vector is None:
                    logger.warning(f"Skipping {img_path.name}: missing '{component.name}' features")
                    return None
                features[component.name] = vector
                continue
            if img is None:
                img = load_image(img_path)
            features[component.name] = component.extract(img, self.cfg)  # type: ignore[misc]
        return features

    def _combine(self, target: Features, candidate: Features, self_scores: dict[str, float]) -> float:
        total = 0.0
        for component in self.pipeline.components:
            score = component.metric.compute(target[component.name], candidate[component.name])
            if component.metric.higher_is_better != self.pipeline.higher_is_better:
                # Similarity inside a distance pipeline: 1 - fraction of the target's own score
                own = self_scores[component.name]
                score = 1.0 - (score / own if own > 0 else 0.0)
            total += score
        return total

    def score_corpus(self, target: Path, corpus_dir: Path | None = None) -> list[MatchResult]:
        """Score every corpus entry against the target, in corpus order.

        Args:
            target: Target image path (only its file name is needed when all
                features come from stores).
            corpus_dir: Directory of corpus images; required unless every
                component is backed by a store.

        Returns:
            Unsorted match results. Entries that fail to decode or whose score
            is not finite are skipped.
        """
        target = Path(target)
        target_feats = self.target_features(target)
        self_scores = {
            c.name: c.metric.compute(target_feats[c.name], target_feats[c.name])
            for c in self.pipeline.components
            if c.metric.higher_is_better != self.pipeline.higher_is_better
        }

        if self._store_only:
            corpus = self._iter_store_corpus(identifier_for(target))
        elif corpus_dir is None:
            msg = f"Mode '{self.mode}' needs a corpus directory"
            raise InvalidParameterError(msg)
        else:
            corpus = self._iter_directory_corpus(Path(corpus_dir), target)

        results: list[MatchResult] = []
        for identifier, features in corpus:
            score = self._combine(target_feats, features, self_scores)
            if not math.isfinite(score):
                logger.warning(f"Skipping {identifier}: score is not finite")
                continue
            results.append(MatchResult(identifier=identifier, score=score))

        logger.info(f"Scored {len(results)} corpus entries")
        return results

    def search(
        self, target: str | Path, corpus_dir: str | Path | None = None, top_n: int | None = None
    ) -> list[MatchResult]:
        """Return the ``top_n`` corpus entries most similar to the target.

        Args:
            target: Target image path.
            corpus_dir: Directory of corpus images (see :meth:`score_corpus`).
            top_n: Number of results; defaults to ``cfg.top_n``.

        Returns:
            Ranked match results, best first.
        """
        top_n = self.cfg.top_n if top_n is None else top_n
        logger.info(f"Mode: {self.mode}, target: {target}, top N: {top_n}")
        results = self.score_corpus(
            Path(target), Path(corpus_dir) if corpus_dir is not None else None
        )
        return rank(results, top_n, self.pipeline.higher_is_better)
