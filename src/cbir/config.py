#!/usr/bin/env python3
"""Configuration dataclass for the cbir package."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from .errors import InvalidParameterError

# Type aliases
RetrievalMode = Literal[
    "baseline", "rg", "hsv", "both", "color", "color_texture", "dnn", "cbir"
]

DEFAULT_FEATURES_CSV = Path("feature_vectors") / "feature_vectors.csv"


@dataclass
class Config:
    """Tunables shared by feature extraction, clustering and retrieval."""

    # Baseline Settings
    patch_size: int = 7  # Side of the center patch (7x7 = 49 values)

    # Histogram Settings
    rg_bins: int = 30
    hue_bins: int = 30
    sat_bins: int = 30
    color_bins: int = 256
    texture_bins: int = 256

    # Retrieval Settings
    top_n: int = 3
    image_extensions: tuple[str, ...] = (".jpg", ".png", ".ppm", ".tif")
    features_csv: Path = DEFAULT_FEATURES_CSV
    show_progress: bool = True

    # K-means Settings
    max_iterations: int = 10
    stop_thresh: int = 0

    def validate(self) -> None:
        """Validate configuration parameters.

        Raises:
            InvalidParameterError: If any parameter is invalid.
        """
        for name in ("patch_size", "rg_bins", "hue_bins", "sat_bins", "color_bins", "texture_bins"):
            value = getattr(self, name)
            if value < 1:
                msg = f"{name} must be positive, got {value}"
                raise InvalidParameterError(msg)
        if self.top_n < 1:
            msg = f"top_n must be >= 1, got {self.top_n}"
            raise InvalidParameterError(msg)
        if self.max_iterations < 1:
            msg = f"max_iterations must be >= 1, got {self.max_iterations}"
            raise InvalidParameterError(msg)
        if self.stop_thresh < 0:
            msg = f"stop_thresh must be >= 0, got {self.stop_thresh}"
            raise InvalidParameterError(msg)
        if not self.image_extensions:
            msg = "image_extensions must not be empty"
            raise InvalidParameterError(msg)
