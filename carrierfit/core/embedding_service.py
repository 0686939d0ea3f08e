"""
Embedding service for generating query and document vectors.
Failures never reach the caller: they come back as an empty vector.
"""

import logging
from functools import lru_cache
from typing import List, Optional

from carrierfit.core.exceptions import EmbeddingFailure
from carrierfit.core.observability import ObservabilityContext, get_observability


logger = logging.getLogger(__name__)

class EmbeddingService:
    """
    Service for generating embeddings for guideline chunks and queries.

    Wraps an embedding provider client exposing
    ``generate_embeddings(texts, prefix)``. Every public method returns an
    empty list in place of a vector that could not be produced.
    """

    QUERY_PREFIX = "search_query: "
    DOCUMENT_PREFIX = "search_document: "

    def __init__(
        self,
        client,
        observability: Optional[ObservabilityContext] = None,
    ):
        """Initialize with an embedding provider client."""
        self.client = client
        self.observability = observability or get_observability()

    def embed_query(self, text: str) -> List[float]:
        """
        Generate embedding for a search query.

        Args:
            text: Query text to embed

        Returns:
            Embedding vector, or an empty list on failure
        """
        return self._embed_one(text, self.QUERY_PREFIX)

    def embed_document(self, text: str) -> List[float]:
        """
        Generate embedding for a document chunk.

        Args:
            text: Chunk text to embed

        Returns:
            Embedding vector, or an empty list on failure
        """
        return self._embed_one(text, self.DOCUMENT_PREFIX)

    def embed_documents(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple chunks.

        Tries one batch call first. If the batch fails, each text is
        embedded on its own so one bad text only costs its own vector.

        Args:
            texts: List of chunk texts

        Returns:
            List of embedding vectors aligned with ``texts``
        """
        if not texts:
            return []

        try:
            vectors = self.client.generate_embeddings(texts, prefix=self.DOCUMENT_PREFIX)
            if len(vectors) != len(texts):
                raise EmbeddingFailure(
                    f"Expected {len(texts)} embeddings, got {len(vectors)}"
                )
            return [self._checked(vector, "batch item") for vector in vectors]
        except Exception as e:
            logger.warning(f"Batch embedding of {len(texts)} texts failed, retrying individually: {e}")
            return [self.embed_document(text) for text in texts]

    def _embed_one(self, text: str, prefix: str) -> List[float]:
        if not text or not text.strip():
            self.observability.record_error("embedding_failures", "empty text")
            return []

        try:
            vectors = self.client.generate_embeddings([text], prefix=prefix)
            if not vectors:
                raise EmbeddingFailure("Provider returned no embeddings")
            return self._checked(vectors[0], text[:60])
        except Exception as e:
            logger.warning(f"Embedding failed for text '{text[:60]}': {e}")
            self.observability.record_error("embedding_failures", str(e))
            return []

    def _checked(self, vector: Optional[List[float]], label: str) -> List[float]:
        if not vector:
            self.observability.record_error("embedding_failures", f"empty vector for {label}")
            return []
        return [float(v) for v in vector]


@lru_cache()
def get_embedding_service() -> EmbeddingService:
    """Get cached embedding service instance backed by Fireworks."""
    from carrierfit.core.fireworks_client import get_fireworks_client

    return EmbeddingService(get_fireworks_client())
