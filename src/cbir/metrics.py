#!/usr/bin/env python3
"""Distance and similarity metrics between histograms and feature vectors."""

from __future__ import annotations

from typing import Protocol

import numpy as np
import numpy.typing as npt

from .errors import DimensionMismatchError, InvalidParameterError


def _check_shapes(a: np.ndarray, b: np.ndarray, what: str) -> None:
    if a.shape != b.shape:
        msg = f"Cannot compare {what} of shape {a.shape} with {b.shape}"
        raise DimensionMismatchError(msg)


def hist_intersect(hist_a: npt.ArrayLike, hist_b: npt.ArrayLike) -> float:
    """Histogram intersection: sum of the per-bin minimum.

    Args:
        hist_a: First normalized histogram (1-D or 2-D).
        hist_b: Second normalized histogram, same shape as hist_a.

    Returns:
        Similarity score (higher is more similar). Intersecting a histogram
        with itself yields its total mass.

    Raises:
        DimensionMismatchError: If the histograms have different shapes.
    """
    a = np.asarray(hist_a, dtype=np.float64)
    b = np.asarray(hist_b, dtype=np.float64)
    _check_shapes(a, b, "histograms")
    return float(np.minimum(a, b).sum())


def sum_squared_difference(vec_a: npt.ArrayLike, vec_b: npt.ArrayLike) -> float:
    """Sum of squared component differences (lower is more similar).

    Raises:
        DimensionMismatchError: If the vectors have different lengths.
    """
    a = np.asarray(vec_a, dtype=np.float64).ravel()
    b = np.asarray(vec_b, dtype=np.float64).ravel()
    _check_shapes(a, b, "vectors")
    diff = a - b
    return float(np.dot(diff, diff))


def cosine_distance(vec_a: npt.ArrayLike, vec_b: npt.ArrayLike) -> float:
    """Cosine distance ``1 - cos(a, b)``.

    The result is nan when either vector is all zero; callers must check
    with ``math.isfinite`` before ranking.

    Raises:
        DimensionMismatchError: If the vectors have different lengths.
    """
    a = np.asarray(vec_a, dtype=np.float64).ravel()
    b = np.asarray(vec_b, dtype=np.float64).ravel()
    _check_shapes(a, b, "vectors")
    norm = np.linalg.norm(a) * np.linalg.norm(b)
    with np.errstate(divide="ignore", invalid="ignore"):
        similarity = np.float64(np.dot(a, b)) / norm
    return float(1.0 - similarity)


class DistanceMetric(Protocol):
    """Protocol defining the interface for retrieval metrics."""

    name: str
    higher_is_better: bool

    def compute(self, a: np.ndarray, b: np.ndarray) -> float:
        """Score feature *b* against feature *a*."""
        ...


class HistogramIntersection:
    """Histogram intersection similarity (higher = more similar)."""

    name = "intersection"
    higher_is_better = True

    def compute(self, a: np.ndarray, b: np.ndarray) -> float:
        return hist_intersect(a, b)


class SumSquaredDifference:
    """Sum of squared differences for raw pixel-patch vectors."""

    name = "ssd"
    higher_is_better = False

    def compute(self, a: np.ndarray, b: np.ndarray) -> float:
        return sum_squared_difference(a, b)


class CosineDistance:
    """Cosine distance for deep-network embeddings."""

    name = "cosine"
    higher_is_better = False

    def compute(self, a: np.ndarray, b: np.ndarray) -> float:
        return cosine_distance(a, b)


_METRICS: dict[str, type[HistogramIntersection | SumSquaredDifference | CosineDistance]] = {
    HistogramIntersection.name: HistogramIntersection,
    SumSquaredDifference.name: SumSquaredDifference,
    CosineDistance.name: CosineDistance,
}


def create_metric(name: str) -> DistanceMetric:
    """Factory function to create a metric by name.

    Args:
        name: One of "intersection", "ssd" or "cosine".

    Returns:
        Metric instance.

    Raises:
        InvalidParameterError: If the name is unknown.
    """
    try:
        return _METRICS[name]()
    except KeyError:
        msg = f"Unknown metric: {name} (expected one of {sorted(_METRICS)})"
        raise InvalidParameterError(msg) from None
