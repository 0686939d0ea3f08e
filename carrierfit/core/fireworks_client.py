"""
Fireworks AI client for embeddings.
Provides wrapper around the Fireworks API with retry logic.
"""

import logging
from functools import lru_cache
from typing import List

from fireworks.client import Fireworks
from tenacity import retry, stop_after_attempt, wait_exponential

from carrierfit.config import get_settings
from carrierfit.core.exceptions import ConfigurationError, EmbeddingFailure


logger = logging.getLogger(__name__)


class FireworksClient:
    """
    Wrapper for the Fireworks AI embeddings API.
    """

    def __init__(self, api_key: str = "", embedding_model: str = ""):
        """Initialize the Fireworks client with API key."""
        settings = get_settings()
        api_key = api_key or settings.fireworks_api_key
        if not api_key:
            raise ConfigurationError("CARRIERFIT_FIREWORKS_API_KEY is not set")

        self.client = Fireworks(api_key=api_key)
        self.embedding_model = embedding_model or settings.fireworks_embedding_model

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=20),
        reraise=True,
    )
    def generate_embeddings(
        self,
        texts: List[str],
        prefix: str = ""
    ) -> List[List[float]]:
        """
        Generate embeddings for a list of texts.

        Args:
            texts: List of texts to embed
            prefix: Optional prefix to add to each text

        Returns:
            List of embedding vectors, one per input text

        Raises:
            EmbeddingFailure: if the provider returns a different number of
                vectors than texts were sent
        """
        if prefix:
            texts = [f"{prefix}{text}" for text in texts]

        response = self.client.embeddings.create(
            model=self.embedding_model,
            input=texts,
        )

        vectors = [item.embedding for item in response.data]
        if len(vectors) != len(texts):
            raise EmbeddingFailure(
                f"Expected {len(texts)} embeddings, got {len(vectors)}"
            )
        return vectors


@lru_cache()
def get_fireworks_client() -> FireworksClient:
    """Get cached Fireworks client instance."""
    return FireworksClient()
