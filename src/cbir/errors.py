"""Error types raised by the retrieval toolkit."""


class RetrievalError(Exception):
    """Base class for all errors raised by cbir."""


class InvalidParameterError(RetrievalError, ValueError):
    """A parameter (cluster count, bin count, mode, CLI number) is out of range."""


class ResourceUnavailableError(RetrievalError, OSError):
    """An image, directory or feature file cannot be read."""


class DimensionMismatchError(RetrievalError, ValueError):
    """Two histograms or feature vectors with different shapes were compared."""
