#!/usr/bin/env python3
"""Corpus directory scanning and the CSV feature-vector store."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from pathlib import Path

import numpy as np
import numpy.typing as npt
import pandas as pd
from tqdm import tqdm

from .config import Config
from .errors import InvalidParameterError, ResourceUnavailableError
from .features import center_patch_vector, load_image
from .models import FeatureRecord

logger = logging.getLogger(__name__)

# Nine significant digits read back to the same float32
_FLOAT_FORMAT = "%.9g"


def iter_image_files(directory: str | Path, extensions: Iterable[str]) -> list[Path]:
    """List the image files of a corpus directory.

    The scan is not recursive. A file counts as an image when its name
    contains one of ``extensions`` anywhere (``photo.jpg.bak`` matches
    ``.jpg``); subdirectories are ignored.

    Args:
        directory: Corpus directory.
        extensions: Name fragments such as ".jpg".

    Returns:
        Sorted list of image paths.

    Raises:
        ResourceUnavailableError: If the directory cannot be opened.
    """
    directory = Path(directory)
    extensions = tuple(extensions)
    try:
        entries = sorted(directory.iterdir())
    except OSError as e:
        msg = f"Cannot open directory {directory}: {e}"
        raise ResourceUnavailableError(msg) from e

    return [
        entry for entry in entries
        if entry.is_file() and any(ext in entry.name for ext in extensions)
    ]


def reset_file(path: str | Path) -> None:
    """Create an empty feature file, truncating any existing content."""
    path = Path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("")
    except OSError as e:
        msg = f"Cannot write feature file {path}: {e}"
        raise ResourceUnavailableError(msg) from e


def append_record(path: str | Path, identifier: str, vector: npt.ArrayLike) -> None:
    """Append one ``identifier,v0,...,vk`` line to a feature file.

    No uniqueness check is made: appending an identifier twice stores it twice.

    Raises:
        ResourceUnavailableError: If the file cannot be written.
    """
    path = Path(path)
    values = np.asarray(vector, dtype=np.float64).ravel().tolist()
    row = pd.DataFrame([[identifier, *values]])
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        row.to_csv(path, mode="a", header=False, index=False, float_format=_FLOAT_FORMAT)
    except OSError as e:
        msg = f"Cannot append to feature file {path}: {e}"
        raise ResourceUnavailableError(msg) from e


def _strip_padding(row: npt.NDArray[np.float32]) -> npt.NDArray[np.float32]:
    """Drop the trailing NaN run pandas pads shorter rows with."""
    present = np.flatnonzero(~np.isnan(row))
    length = present[-1] + 1 if present.size else 0
    return row[:length]


class FeatureStore:
    """Ordered collection of feature records loaded from a delimited file.

    Lookup is a linear scan in file order, so when an identifier was appended
    more than once the first record wins.
    """

    def __init__(self, records: Iterable[FeatureRecord] | None = None, path: Path | None = None):
        """Initialize store.

        Args:
            records: Initial records, in order.
            path: Backing file used by :meth:`append`, if any.
        """
        self.records: list[FeatureRecord] = list(records or [])
        self.path = path

    @classmethod
    def load(cls, path: str | Path) -> FeatureStore:
        """Read every record of a feature file into memory.

        Args:
            path: CSV file with one ``identifier,v0,...,vk`` record per line.

        Returns:
            Store backed by ``path``. An empty file gives an empty store.

        Raises:
            ResourceUnavailableError: If the file is missing or malformed.
        """
        path = Path(path)
        if not path.is_file():
            msg = f"Cannot open feature vector file {path}"
            raise ResourceUnavailableError(msg)

        try:
            # Only empty fields are missing; identifiers such as "NA" stay text
            df = pd.read_csv(path, header=None, dtype={0: str}, keep_default_na=False, na_values=[""])
            identifiers = df.iloc[:, 0].fillna("").astype(str).tolist()
            values = df.iloc[:, 1:].to_numpy(dtype=np.float32)
        except pd.errors.EmptyDataError:
            logger.warning(f"Feature vector file {path} is empty")
            return cls(path=path)
        except (pd.errors.ParserError, UnicodeDecodeError, ValueError, OSError) as e:
            msg = f"Cannot parse feature vector file {path}: {e}"
            raise ResourceUnavailableError(msg) from e

        records = []
        for identifier, row in zip(identifiers, values, strict=True):
            records.append(FeatureRecord(identifier=identifier, vector=_strip_padding(row)))

        logger.info(f"Read {len(records)} feature vectors from {path}")
        return cls(records, path=path)

    def append(self, identifier: str, vector: npt.ArrayLike) -> FeatureRecord:
        """Add a record in memory and, if the store is file-backed, on disk."""
        record = FeatureRecord(identifier=identifier, vector=vector)
        if self.path is not None:
            append_record(self.path, identifier, record.vector)
        self.records.append(record)
        return record

    def lookup(self, identifier: str) -> FeatureRecord | None:
        """Return the first record with ``identifier``, or None."""
        for record in self.records:
            if record.identifier == identifier:
                return record
        return None

    def identifiers(self) -> list[str]:
        """Identifiers in file order (duplicates included)."""
        return [record.identifier for record in self.records]

    def __iter__(self) -> Iterator[FeatureRecord]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


def extract_directory(
    directory: str | Path, csv_path: str | Path, cfg: Config, reset: bool = True
) -> int:
    """Write the baseline center-patch vector of every corpus image to a file.

    Args:
        directory: Corpus directory.
        csv_path: Output feature file.
        cfg: Configuration (patch size, extensions, progress bars).
        reset: If True, start from an empty file; otherwise append.

    Returns:
        Number of records written.
    """
    files = iter_image_files(directory, cfg.image_extensions)
    logger.info(f"Found {len(files)} images in {directory}")
    if reset:
        reset_file(csv_path)

    written = 0
    for img_path in tqdm(files, desc="Extracting features", disable=not cfg.show_progress):
        try:
            img = load_image(img_path)
            vector = center_patch_vector(img, cfg.patch_size)
        except (ResourceUnavailableError, InvalidParameterError) as e:
            logger.warning(f"Skipping {img_path.name}: {e}")
            continue
        append_record(csv_path, img_path.name, vector)
        written += 1

    logger.info(f"Wrote {written} feature vectors to {csv_path}")
    return written
