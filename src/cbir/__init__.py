"""Content-based image retrieval: histogram, patch and embedding matching."""

from .config import Config, RetrievalMode
from .database import FeatureStore, extract_directory, iter_image_files
from .errors import (
    DimensionMismatchError,
    InvalidParameterError,
    ResourceUnavailableError,
    RetrievalError,
)
from .kmeans import kmeans, posterize
from .metrics import cosine_distance, hist_intersect, sum_squared_difference
from .models import FeatureRecord, KMeansResult, MatchResult
from .search import PIPELINES, Retriever, parse_mode, rank

__version__ = "0.1.0"

__all__ = [
    "PIPELINES",
    "Config",
    "DimensionMismatchError",
    "FeatureRecord",
    "FeatureStore",
    "InvalidParameterError",
    "KMeansResult",
    "MatchResult",
    "ResourceUnavailableError",
    "RetrievalError",
    "RetrievalMode",
    "Retriever",
    "cosine_distance",
    "extract_directory",
    "hist_intersect",
    "iter_image_files",
    "kmeans",
    "parse_mode",
    "posterize",
    "rank",
    "sum_squared_difference",
]
