"""K-means clustering of 3-channel pixel samples.

Lloyd's algorithm with comb-sampled initial means: the only randomness is the
starting offset of the comb, so passing ``offset`` (or a seeded ``rng``) makes
a run reproducible.
"""

import logging
from typing import Any

import numpy as np
import numpy.typing as npt

from .errors import InvalidParameterError
from .models import KMeansResult

logger = logging.getLogger(__name__)

_CHANNELS = 3
_CHUNK_ROWS = 65536  # Bounds the (rows, K, 3) difference tensor during classification


def _classify(data: npt.NDArray[np.int64], means: npt.NDArray[np.int64]) -> npt.NDArray[np.intp]:
    """Label every sample with its nearest mean (first minimum wins on ties)."""
    labels = np.empty(len(data), dtype=np.intp)
    for start in range(0, len(data), _CHUNK_ROWS):
        chunk = data[start:start + _CHUNK_ROWS]
        diff = chunk[:, None, :] - means[None, :, :]
        ssd = np.einsum("nkc,nkc->nk", diff, diff)
        labels[start:start + len(chunk)] = np.argmin(ssd, axis=1)
    return labels


def _update(
    data: npt.NDArray[np.int64], labels: npt.NDArray[np.intp], means: npt.NDArray[np.int64]
) -> npt.NDArray[np.int64]:
    """Recompute means as truncated averages; empty clusters keep their mean."""
    k = len(means)
    counts = np.bincount(labels, minlength=k)
    sums = np.stack(
        [np.bincount(labels, weights=data[:, c], minlength=k) for c in range(_CHANNELS)],
        axis=1,
    ).astype(np.int64)

    new_means = means.copy()
    filled = counts > 0
    new_means[filled] = sums[filled] // counts[filled, None]
    return new_means


def kmeans(  # noqa: PLR0913
    data: npt.ArrayLike,
    k: int,
    max_iterations: int = 10,
    stop_thresh: int = 0,
    offset: int | None = None,
    rng: np.random.Generator | None = None,
) -> KMeansResult:
    """Cluster pixel samples into ``k`` representative colors.

    Args:
        data: Samples as an (N, 3) array of channel values.
        k: Number of clusters (1 <= k <= N).
        max_iterations: Maximum number of classify/update rounds.
        stop_thresh: Stop early once the summed squared movement of all means
            in a round is at most this value.
        offset: Starting position of the initial comb sample, in
            ``[0, max(N mod k, 1))``. Drawn from ``rng`` when omitted.
        rng: Random generator used to draw the offset.

    Returns:
        KMeansResult with (k, 3) means and one label per sample.

    Raises:
        InvalidParameterError: If k, max_iterations, stop_thresh, offset or the
            sample shape is invalid.
    """
    samples = np.asarray(data)
    if samples.ndim != 2 or samples.shape[1] != _CHANNELS:
        msg = f"data must have shape (N, {_CHANNELS}), got {samples.shape}"
        raise InvalidParameterError(msg)
    samples = samples.astype(np.int64)
    n = len(samples)

    if k < 1 or k > n:
        msg = f"K must be between 1 and the number of samples ({n}), got {k}"
        raise InvalidParameterError(msg)
    if max_iterations < 1:
        msg = f"max_iterations must be >= 1, got {max_iterations}"
        raise InvalidParameterError(msg)
    if stop_thresh < 0:
        msg = f"stop_thresh must be >= 0, got {stop_thresh}"
        raise InvalidParameterError(msg)

    # Comb sampling of the initial means
    delta = n // k
    gap = max(n % k, 1)
    if offset is None:
        offset = int((rng or np.random.default_rng()).integers(gap))
    elif not 0 <= offset < gap:
        msg = f"offset must be in [0, {gap}), got {offset}"
        raise InvalidParameterError(msg)
    logger.debug(f"K-means init: N={n}, K={k}, delta={delta}, offset={offset}")

    indices = (offset + np.arange(k) * delta) % n
    means = samples[indices].copy()

    labels = np.zeros(n, dtype=np.intp)
    shift = 0
    iterations = 0
    for iterations in range(1, max_iterations + 1):
        labels = _classify(samples, means)
        new_means = _update(samples, labels, means)

        movement = new_means - means
        shift = int(np.sum(movement * movement))
        means = new_means
        logger.debug(f"Iteration {iterations}, shift: {shift}")

        if shift <= stop_thresh:
            break

    return KMeansResult(
        means=means,
        labels=labels,
        iterations=iterations,
        shift=shift,
        converged=shift <= stop_thresh,
    )


def posterize(
    img: npt.NDArray[Any], k: int, **kwargs: Any
) -> tuple[npt.NDArray[np.uint8], KMeansResult]:
    """Quantize an image to ``k`` colors.

    Args:
        img: Input image (H, W, 3).
        k: Number of colors.
        **kwargs: Forwarded to :func:`kmeans`.

    Returns:
        Tuple of (image painted with cluster means, clustering result).
    """
    if img.ndim != 3 or img.shape[2] != _CHANNELS:
        msg = f"Expected a 3-channel image, got shape {img.shape}"
        raise InvalidParameterError(msg)

    result = kmeans(img.reshape(-1, _CHANNELS), k, **kwargs)
    palette = np.clip(result.means, 0, 255).astype(np.uint8)
    quantized = palette[result.labels].reshape(img.shape)
    logger.info(f"Posterized to {k} colors in {result.iterations} iterations "
                f"(shift {result.shift})")
    return quantized, result
