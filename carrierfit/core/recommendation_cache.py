"""
Cached copies of evaluation results.

The cache is write-mostly: evaluations always recompute, and the stored copy
only serves later lookups by evaluation id.
"""

import logging
from typing import Optional

from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from carrierfit.pipeline.models import EvaluationResult


logger = logging.getLogger(__name__)


class RecommendationCache:
    """Stores EvaluationResult documents in a MongoDB collection."""

    def __init__(self, collection: Collection):
        self.collection = collection

    def save(self, result: EvaluationResult) -> bool:
        """
        Store a copy of an evaluation result keyed by its evaluation id.

        Returns:
            True if the copy was written. Failures are logged, not raised.
        """
        try:
            document = result.model_dump(mode="json")
            document["_id"] = result.evaluation_id
            self.collection.replace_one({"_id": result.evaluation_id}, document, upsert=True)
            logger.info(f"Cached evaluation {result.evaluation_id}")
            return True
        except PyMongoError as e:
            logger.warning(f"Failed to cache evaluation {result.evaluation_id}: {e}")
            return False

    def get(self, evaluation_id: str) -> Optional[EvaluationResult]:
        """Fetch a cached evaluation result, or None if absent."""
        document = self.collection.find_one({"_id": evaluation_id})
        if not document:
            return None
        document.pop("_id", None)
        return EvaluationResult.model_validate(document)


def get_recommendation_cache() -> RecommendationCache:
    """Build a cache over the configured MongoDB database."""
    from carrierfit.core.mongodb_client import Collections, get_collection

    return RecommendationCache(get_collection(Collections.RECOMMENDATIONS))
