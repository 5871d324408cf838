"""
Unit tests for histogram builders and the baseline patch descriptor.
"""

import numpy as np
import pytest

from cbir import InvalidParameterError
from cbir.features import center_patch_vector
from cbir.histograms import (
    color_histogram,
    gradient_magnitude,
    hsv_histogram,
    min_max_normalize,
    rg_chromaticity_histogram,
    texture_histogram,
)


def uniform_image(color: tuple[int, int, int], size: int = 20) -> np.ndarray:
    """Create a BGR image filled with one color."""
    img = np.zeros((size, size, 3), dtype=np.uint8)
    img[:] = color
    return img


class TestRGChromaticity:
    """Test the r/g chromaticity histogram."""

    def test_gray_image_concentrates_at_one_third(self):
        """Test that a uniform gray image puts all mass at r = g = 1/3."""
        hist_size = 30
        hist = rg_chromaticity_histogram(uniform_image((128, 128, 128)), hist_size)

        idx = int(np.floor((hist_size - 1) / 3 + 0.5))
        assert hist.shape == (hist_size, hist_size)
        assert hist[idx, idx] == pytest.approx(1.0)
        assert hist.sum() == pytest.approx(1.0)

    def test_black_image_uses_floored_denominator(self):
        """Test that all-zero pixels land in the (0, 0) bin instead of failing."""
        hist = rg_chromaticity_histogram(uniform_image((0, 0, 0)), 16)

        assert hist[0, 0] == pytest.approx(1.0)

    def test_pure_red_lands_in_last_r_bin(self):
        """Test that r = 1 maps to the last r bin and g = 0 to the first g bin."""
        hist = rg_chromaticity_histogram(uniform_image((0, 0, 255)), 10)

        assert hist[9, 0] == pytest.approx(1.0)

    def test_normalized_by_pixel_count(self):
        """Test that a random image's histogram sums to 1."""
        rng = np.random.default_rng(0)
        img = rng.integers(0, 256, size=(40, 30, 3), dtype=np.uint8)

        hist = rg_chromaticity_histogram(img, 30)

        assert hist.dtype == np.float32
        assert hist.sum() == pytest.approx(1.0, rel=1e-4)

    def test_invalid_bins(self):
        """Test that bin counts below 1 are rejected."""
        with pytest.raises(InvalidParameterError):
            rg_chromaticity_histogram(uniform_image((1, 2, 3)), 0)


class TestHSVHistogram:
    """Test the hue/saturation histogram."""

    def test_shape_and_range(self):
        """Test that the histogram is min-max normalized to [0, 1]."""
        rng = np.random.default_rng(1)
        img = rng.integers(0, 256, size=(50, 50, 3), dtype=np.uint8)

        hist = hsv_histogram(img, 30, 20)

        assert hist.shape == (30, 20)
        assert hist.min() == pytest.approx(0.0)
        assert hist.max() == pytest.approx(1.0)

    def test_saturated_red_bin(self):
        """Test that pure red (hue 0, saturation 255) fills the last saturation bin."""
        hist = hsv_histogram(uniform_image((0, 0, 255)), 30, 30)

        assert hist[0, 29] == pytest.approx(1.0)
        assert hist.sum() == pytest.approx(1.0)

    def test_accepts_grayscale(self):
        """Test that a grayscale image is handled (zero saturation)."""
        gray = np.full((10, 10), 77, dtype=np.uint8)

        hist = hsv_histogram(gray, 8, 8)

        assert hist[0, 0] == pytest.approx(1.0)


class TestColorHistogram:
    """Test the full-channel color histogram."""

    def test_white_image_hits_last_cell(self):
        """Test that saturated channels quantize to the last bin."""
        hist = color_histogram(uniform_image((255, 255, 255)), 16)

        assert hist.shape == (16, 16)
        assert hist[15, 15] == pytest.approx(1.0)
        assert hist.sum() == pytest.approx(1.0)

    def test_channel_pair_cells(self):
        """Test that each pixel increments the (b,g), (g,r) and (r,b) cells."""
        # b=255 -> 3, g=0 -> 0, r=0 -> 0 with 4 bins
        hist = color_histogram(uniform_image((255, 0, 0)), 4)

        nonzero = {tuple(int(v) for v in idx) for idx in np.argwhere(hist > 0)}
        assert nonzero == {(3, 0), (0, 0), (0, 3)}


class TestTexture:
    """Test gradient magnitude and the texture histogram."""

    def test_magnitude_range(self):
        """Test that gradient magnitude is scaled into [0, 1]."""
        rng = np.random.default_rng(2)
        img = rng.integers(0, 256, size=(30, 30, 3), dtype=np.uint8)

        mag = gradient_magnitude(img)

        assert mag.shape == (30, 30)
        assert mag.min() >= 0.0
        assert mag.max() <= 1.0

    def test_flat_image_fills_first_bin(self):
        """Test that an image without edges has all mass in bin 0."""
        hist = texture_histogram(uniform_image((90, 90, 90)), 32)

        assert hist.shape == (32,)
        assert hist[0] == pytest.approx(1.0)
        assert hist[1:].sum() == pytest.approx(0.0)

    def test_strong_edges_are_clamped_into_last_bin(self):
        """Test that magnitude 1.0 is counted in the last bin, not dropped."""
        img = np.zeros((20, 20, 3), dtype=np.uint8)
        img[:, 10:] = 255

        hist = texture_histogram(img, 32)

        assert hist[-1] > 0.0


class TestNormalization:
    """Test min-max normalization."""

    def test_min_max(self):
        """Test scaling of a simple histogram."""
        hist = min_max_normalize(np.array([2.0, 4.0, 6.0]))

        assert hist.shape == (3,)
        assert np.allclose(hist, [0.0, 0.5, 1.0])

    def test_constant_histogram_is_zero(self):
        """Test that a constant histogram normalizes to zeros."""
        hist = min_max_normalize(np.full((3, 3), 5.0))

        assert np.allclose(hist, 0.0)


class TestCenterPatch:
    """Test the baseline center patch descriptor."""

    def test_patch_size(self):
        """Test that a 7x7 patch yields 49 values from the image center."""
        img = np.zeros((21, 31), dtype=np.uint8)
        img[10, 15] = 255

        vec = center_patch_vector(img, 7)

        assert vec.shape == (49,)
        assert vec.dtype == np.float32
        assert vec[24] == 255.0
        assert vec.sum() == 255.0

    def test_image_smaller_than_patch(self):
        """Test that a too-small image is rejected."""
        with pytest.raises(InvalidParameterError):
            center_patch_vector(np.zeros((5, 5), dtype=np.uint8), 7)
