"""
Error taxonomy for the carrier matching core.

Only DocumentStoreError is meant to reach callers of the pipeline; the
embedding and retrieval failures are recovered where they happen.
"""

from typing import Optional


class CarrierFitError(Exception):
    """Base exception for carrier matching errors."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class EmbeddingFailure(CarrierFitError):
    """Raised when the embedding provider errors or returns an empty vector."""
    pass


class RetrievalFailure(CarrierFitError):
    """Raised when a vector index query fails."""
    pass


class DocumentStoreError(CarrierFitError):
    """Raised when the relational document store is unavailable or fails."""
    pass


class ConfigurationError(CarrierFitError):
    """Raised when configuration is invalid or missing."""
    pass
