"""Histogram builders for color, chromaticity and texture matching.

All builders take OpenCV BGR ``uint8`` images and return dense ``float32``
arrays. Quantized indices are clamped into ``[0, bins - 1]`` so every pixel
contributes exactly once (or three times for the color histogram).
"""

from typing import Any

import cv2
import numpy as np
import numpy.typing as npt

from .errors import InvalidParameterError

_COLOR_CHANNELS = 3
_HUE_RANGE = 180.0  # OpenCV 8-bit hue is 0-179
_SAT_RANGE = 256.0


def _check_bins(**bins: int) -> None:
    for name, value in bins.items():
        if value < 1:
            msg = f"{name} must be >= 1, got {value}"
            raise InvalidParameterError(msg)


def _ensure_bgr(img: npt.NDArray[Any]) -> npt.NDArray[Any]:
    if img.size == 0:
        msg = "Cannot build a histogram from an empty image"
        raise InvalidParameterError(msg)
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    if img.ndim != 3 or img.shape[2] != _COLOR_CHANNELS:
        msg = f"Expected a BGR image, got shape {img.shape}"
        raise InvalidParameterError(msg)
    return img


def _quantize(values: npt.NDArray[np.float64], bins: int) -> npt.NDArray[np.intp]:
    """Floor values to bin indices and clamp them into range."""
    return np.clip(np.floor(values), 0, bins - 1).astype(np.intp)


def _accumulate_2d(
    rows: npt.NDArray[np.intp], cols: npt.NDArray[np.intp], shape: tuple[int, int]
) -> npt.NDArray[np.float32]:
    flat = np.ravel_multi_index((rows, cols), shape)
    counts = np.bincount(flat, minlength=shape[0] * shape[1])
    return counts.reshape(shape).astype(np.float32)


def min_max_normalize(hist: npt.NDArray[Any]) -> npt.NDArray[np.float32]:
    """Scale a histogram linearly so its smallest bin is 0 and largest is 1.

    A constant histogram normalizes to all zeros.
    """
    hist = hist.astype(np.float32)
    normalized = cv2.normalize(hist, None, 0.0, 1.0, cv2.NORM_MINMAX)
    return normalized.reshape(hist.shape)


def rg_chromaticity_histogram(
    img: npt.NDArray[Any], hist_size: int = 30
) -> npt.NDArray[np.float32]:
    """Compute a 2-D r/g chromaticity histogram.

    For every pixel ``r = R / (R + G + B)`` and ``g = G / (R + G + B)``
    (the denominator is 1 for black pixels). Each ratio is quantized with
    ``round(ratio * (hist_size - 1))``.

    Args:
        img: Input image (BGR).
        hist_size: Number of bins per axis.

    Returns:
        ``(hist_size, hist_size)`` histogram indexed ``[r, g]``, divided by the
        pixel count so all bins sum to 1.
    """
    _check_bins(hist_size=hist_size)
    pixels = _ensure_bgr(img).reshape(-1, _COLOR_CHANNELS).astype(np.float64)
    blue, green, red = pixels[:, 0], pixels[:, 1], pixels[:, 2]

    divisor = red + green + blue
    divisor[divisor == 0] = 1.0
    r = red / divisor
    g = green / divisor

    r_idx = _quantize(r * (hist_size - 1) + 0.5, hist_size)
    g_idx = _quantize(g * (hist_size - 1) + 0.5, hist_size)

    hist = _accumulate_2d(r_idx, g_idx, (hist_size, hist_size))
    return hist / np.float32(len(pixels))


def hsv_histogram(
    img: npt.NDArray[Any], hue_bins: int = 30, sat_bins: int = 30
) -> npt.NDArray[np.float32]:
    """Compute a 2-D hue/saturation histogram.

    Args:
        img: Input image (BGR).
        hue_bins: Number of hue bins over the full 0-179 range.
        sat_bins: Number of saturation bins over the full 0-255 range.

    Returns:
        ``(hue_bins, sat_bins)`` histogram min-max normalized to [0, 1].
    """
    _check_bins(hue_bins=hue_bins, sat_bins=sat_bins)
    hsv = cv2.cvtColor(_ensure_bgr(img), cv2.COLOR_BGR2HSV)
    pixels = hsv.reshape(-1, _COLOR_CHANNELS).astype(np.float64)

    h_idx = _quantize(pixels[:, 0] * hue_bins / _HUE_RANGE, hue_bins)
    s_idx = _quantize(pixels[:, 1] * sat_bins / _SAT_RANGE, sat_bins)

    return min_max_normalize(_accumulate_2d(h_idx, s_idx, (hue_bins, sat_bins)))


def color_histogram(img: npt.NDArray[Any], bins: int = 256) -> npt.NDArray[np.float32]:
    """Compute the full-channel color histogram.

    Each channel value is quantized with ``v * (bins - 1) / 255``; every pixel
    then increments the three channel-pair cells (b, g), (g, r) and (r, b) of a
    single 2-D table.

    Args:
        img: Input image (BGR).
        bins: Number of bins per axis.

    Returns:
        ``(bins, bins)`` histogram min-max normalized to [0, 1].
    """
    _check_bins(bins=bins)
    pixels = _ensure_bgr(img).reshape(-1, _COLOR_CHANNELS).astype(np.float64)
    b_idx, g_idx, r_idx = (
        _quantize(pixels[:, c] * (bins - 1) / 255.0, bins) for c in range(_COLOR_CHANNELS)
    )

    rows = np.concatenate([b_idx, g_idx, r_idx])
    cols = np.concatenate([g_idx, r_idx, b_idx])
    return min_max_normalize(_accumulate_2d(rows, cols, (bins, bins)))


def gradient_magnitude(img: npt.NDArray[Any]) -> npt.NDArray[np.float32]:
    """Compute the Sobel gradient magnitude scaled to [0, 1].

    Args:
        img: Input image (BGR or grayscale).

    Returns:
        Float32 array with the image's height and width.
    """
    gray = cv2.cvtColor(_ensure_bgr(img), cv2.COLOR_BGR2GRAY)

    sobelx = cv2.Sobel(gray, cv2.CV_32F, 1, 0, ksize=3)
    sobely = cv2.Sobel(gray, cv2.CV_32F, 0, 1, ksize=3)
    magnitude = cv2.magnitude(sobelx, sobely)

    # Saturate like an 8-bit magnitude image, then rescale
    return np.minimum(magnitude, 255.0) / np.float32(255.0)


def texture_histogram(img: npt.NDArray[Any], bins: int = 256) -> npt.NDArray[np.float32]:
    """Compute a 1-D histogram of gradient magnitude.

    The magnitude field is binned over the fixed range [0, 1] so histograms of
    different images are directly comparable.

    Args:
        img: Input image (BGR or grayscale).
        bins: Number of bins.

    Returns:
        ``(bins,)`` histogram min-max normalized to [0, 1].
    """
    _check_bins(bins=bins)
    magnitude = gradient_magnitude(img).ravel().astype(np.float64)
    idx = _quantize(magnitude * bins, bins)
    counts = np.bincount(idx, minlength=bins).astype(np.float32)
    return min_max_normalize(counts)
