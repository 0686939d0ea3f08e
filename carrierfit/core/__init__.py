"""
Core services for the carrier matching system.
"""

from .exceptions import (
    CarrierFitError,
    EmbeddingFailure,
    RetrievalFailure,
    DocumentStoreError,
    ConfigurationError,
)
from .observability import ObservabilityContext, get_observability
from .embedding_service import EmbeddingService, get_embedding_service
from .vector_search import VectorIndex, InMemoryVectorIndex, AtlasVectorIndex, get_vector_index

__all__ = [
    "CarrierFitError",
    "EmbeddingFailure",
    "RetrievalFailure",
    "DocumentStoreError",
    "ConfigurationError",
    "ObservabilityContext",
    "get_observability",
    "EmbeddingService",
    "get_embedding_service",
    "VectorIndex",
    "InMemoryVectorIndex",
    "AtlasVectorIndex",
    "get_vector_index",
]
