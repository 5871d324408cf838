"""
Unit tests for corpus scanning and the feature-vector store.
"""

import tempfile
from pathlib import Path

import cv2
import numpy as np
import pytest

from cbir import Config, FeatureStore, ResourceUnavailableError, extract_directory, iter_image_files
from cbir.database import append_record, reset_file


def create_test_image(path: Path, color: tuple[int, int, int] = (128, 128, 128)) -> None:
    """Create a test image with given color.

    Args:
        path: Path to save image.
        color: BGR color tuple.
    """
    img = np.ones((32, 32, 3), dtype=np.uint8)
    img[:] = color
    cv2.imwrite(str(path), img)


class TestIterImageFiles:
    """Test non-recursive corpus directory scanning."""

    def test_filters_by_extension_fragment(self):
        """Test that only names containing a known extension are returned."""
        with tempfile.TemporaryDirectory() as tmpdir:
            folder = Path(tmpdir)
            for name in ["b.png", "a.jpg", "c.tif", "d.ppm", "notes.txt", "e.jpg.bak"]:
                (folder / name).write_bytes(b"")
            (folder / "sub.jpg").mkdir()

            files = iter_image_files(folder, Config().image_extensions)

            assert [f.name for f in files] == ["a.jpg", "b.png", "c.tif", "d.ppm", "e.jpg.bak"]

    def test_missing_directory(self):
        """Test that a missing directory raises ResourceUnavailableError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(ResourceUnavailableError):
                iter_image_files(Path(tmpdir) / "nope", (".jpg",))


class TestFeatureStore:
    """Test loading, appending and lookup of feature records."""

    def test_append_and_load(self):
        """Test that appended records are read back in order."""
        with tempfile.TemporaryDirectory() as tmpdir:
            csv_path = Path(tmpdir) / "features" / "vectors.csv"
            append_record(csv_path, "a.jpg", [1.0, 2.5, 3.0])
            append_record(csv_path, "b.jpg", [4.0, 5.0, 6.25])

            store = FeatureStore.load(csv_path)

            assert len(store) == 2
            assert store.identifiers() == ["a.jpg", "b.jpg"]
            assert np.allclose(store.lookup("b.jpg").vector, [4.0, 5.0, 6.25])
            assert store.lookup("b.jpg").vector.dtype == np.float32

    def test_duplicate_identifier_first_match_wins(self):
        """Test that looking up an identifier appended twice returns the first vector."""
        with tempfile.TemporaryDirectory() as tmpdir:
            csv_path = Path(tmpdir) / "vectors.csv"
            store = FeatureStore(path=csv_path)
            store.append("x", [1.0, 1.0])
            store.append("x", [9.0, 9.0])

            assert np.allclose(store.lookup("x").vector, [1.0, 1.0])

            reloaded = FeatureStore.load(csv_path)
            assert reloaded.identifiers() == ["x", "x"]
            assert np.allclose(reloaded.lookup("x").vector, [1.0, 1.0])

    def test_lookup_missing(self):
        """Test that an unknown identifier returns None."""
        store = FeatureStore()
        assert store.lookup("missing.jpg") is None

    def test_missing_file(self):
        """Test that a missing file raises ResourceUnavailableError."""
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(ResourceUnavailableError):
                FeatureStore.load(Path(tmpdir) / "missing.csv")

    def test_empty_file(self):
        """Test that an empty file loads as an empty store."""
        with tempfile.TemporaryDirectory() as tmpdir:
            csv_path = Path(tmpdir) / "empty.csv"
            reset_file(csv_path)

            store = FeatureStore.load(csv_path)

            assert len(store) == 0

    def test_malformed_file(self):
        """Test that non-numeric vector values are reported as unreadable."""
        with tempfile.TemporaryDirectory() as tmpdir:
            csv_path = Path(tmpdir) / "bad.csv"
            csv_path.write_text("a.jpg,1.0,oops\n")

            with pytest.raises(ResourceUnavailableError):
                FeatureStore.load(csv_path)

    def test_float32_vectors_read_back_exactly(self):
        """Test that non-integer float32 values survive a write and reload unchanged."""
        with tempfile.TemporaryDirectory() as tmpdir:
            csv_path = Path(tmpdir) / "embeddings.csv"
            vector = np.random.default_rng(0).random(2000).astype(np.float32)
            FeatureStore(path=csv_path).append("x.jpg", vector)

            loaded = FeatureStore.load(csv_path).lookup("x.jpg").vector

            assert np.array_equal(loaded, vector)

    def test_only_trailing_padding_is_dropped(self):
        """Test that short rows lose their padding but keep interior gaps."""
        with tempfile.TemporaryDirectory() as tmpdir:
            csv_path = Path(tmpdir) / "ragged.csv"
            csv_path.write_text("b.png,1,2,3,4\na.png,1,,3\n")

            store = FeatureStore.load(csv_path)

            assert len(store.lookup("b.png").vector) == 4
            short = store.lookup("a.png").vector
            assert len(short) == 3
            assert np.isnan(short[1])
            assert short[2] == 3.0

    def test_na_like_identifiers_stay_text(self):
        """Test that identifiers such as NA and None are not read as missing values."""
        with tempfile.TemporaryDirectory() as tmpdir:
            csv_path = Path(tmpdir) / "vectors.csv"
            csv_path.write_text("NA,1,2\nNone,3,4\nnan,5,6\n")

            store = FeatureStore.load(csv_path)

            assert store.identifiers() == ["NA", "None", "nan"]
            assert np.array_equal(store.lookup("None").vector, [3.0, 4.0])


class TestExtractDirectory:
    """Test the baseline feature extraction tool."""

    def test_writes_one_record_per_image(self):
        """Test that each decodable image gets a 49-value record."""
        with tempfile.TemporaryDirectory() as tmpdir:
            folder = Path(tmpdir) / "images"
            folder.mkdir()
            create_test_image(folder / "gray.png", (100, 100, 100))
            create_test_image(folder / "white.png", (255, 255, 255))
            (folder / "broken.jpg").write_bytes(b"not an image")
            csv_path = Path(tmpdir) / "vectors.csv"

            written = extract_directory(folder, csv_path, Config(show_progress=False))

            store = FeatureStore.load(csv_path)
            assert written == 2
            assert store.identifiers() == ["gray.png", "white.png"]
            assert store.lookup("gray.png").vector.shape == (49,)
            assert np.allclose(store.lookup("gray.png").vector, 100.0)

    def test_reset_replaces_previous_content(self):
        """Test that a new extraction run starts from an empty file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            folder = Path(tmpdir) / "images"
            folder.mkdir()
            create_test_image(folder / "gray.png")
            csv_path = Path(tmpdir) / "vectors.csv"
            cfg = Config(show_progress=False)

            extract_directory(folder, csv_path, cfg)
            extract_directory(folder, csv_path, cfg)
            assert len(FeatureStore.load(csv_path)) == 1

            extract_directory(folder, csv_path, cfg, reset=False)
            assert len(FeatureStore.load(csv_path)) == 2
