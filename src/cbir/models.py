"""Pydantic models for type-safe data structures."""

import math

import numpy as np
from pydantic import BaseModel, ConfigDict, field_validator


class MatchResult(BaseModel):
    """Single corpus entry scored against the target.

    Attributes:
        identifier: File name (or CSV identifier) of the matched image.
        score: Distance or similarity, depending on the retrieval mode.
    """
    identifier: str
    score: float

    @field_validator("score")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            msg = f"score must be finite, got {value}"
            raise ValueError(msg)
        return value


class FeatureRecord(BaseModel):
    """One catalog image descriptor from a feature-vector file.

    Attributes:
        identifier: Image identifier, usually the file name.
        vector: 1-D float32 feature vector.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    identifier: str
    vector: np.ndarray

    @field_validator("vector", mode="before")
    @classmethod
    def _as_float_vector(cls, value: object) -> np.ndarray:
        return np.asarray(value, dtype=np.float32).ravel()


class KMeansResult(BaseModel):
    """Output of a K-means run.

    Attributes:
        means: Cluster means, shape (K, 3), integer valued.
        labels: Cluster index of every sample, shape (N,).
        iterations: Number of E-M rounds that were run.
        shift: Sum of squared mean movement in the last round.
        converged: True if the last shift was within the stop threshold.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    means: np.ndarray
    labels: np.ndarray
    iterations: int
    shift: int
    converged: bool
