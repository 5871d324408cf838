"""Image loading and the baseline pixel-patch descriptor."""

from pathlib import Path
from typing import Any

import cv2
import numpy as np
import numpy.typing as npt

from .errors import InvalidParameterError, ResourceUnavailableError

_COLOR_CHANNELS = 3


def identifier_for(path: str | Path) -> str:
    """Return the record identifier of an image path (its file name)."""
    return Path(path).name


def load_image(path: str | Path, grayscale: bool = False) -> npt.NDArray[Any]:
    """Read an image from disk.

    Args:
        path: Image file path.
        grayscale: If True, decode as a single-channel image.

    Returns:
        BGR (or grayscale) uint8 image.

    Raises:
        ResourceUnavailableError: If the file is missing or cannot be decoded.
    """
    flags = cv2.IMREAD_GRAYSCALE if grayscale else cv2.IMREAD_COLOR
    img = cv2.imread(str(path), flags)
    if img is None:
        msg = f"Cannot read image: {path}"
        raise ResourceUnavailableError(msg)
    return img


def center_patch_vector(img: npt.NDArray[Any], patch_size: int = 7) -> npt.NDArray[np.float32]:
    """Extract the grayscale center patch as a flat feature vector.

    Args:
        img: Input image (BGR or grayscale).
        patch_size: Side length of the square patch.

    Returns:
        Float32 vector of ``patch_size * patch_size`` pixel values.

    Raises:
        InvalidParameterError: If the image is smaller than the patch.
    """
    if patch_size < 1:
        msg = f"patch_size must be >= 1, got {patch_size}"
        raise InvalidParameterError(msg)

    gray = img
    if img.ndim == 3 and img.shape[2] == _COLOR_CHANNELS:
        gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)

    h, w = gray.shape[:2]
    if h < patch_size or w < patch_size:
        msg = f"Image of size {w}x{h} is smaller than the {patch_size}x{patch_size} patch"
        raise InvalidParameterError(msg)

    top = h // 2 - patch_size // 2
    left = w // 2 - patch_size // 2
    patch = gray[top:top + patch_size, left:left + patch_size]
    return patch.astype(np.float32).ravel()
