"""
Tests for the MongoDB-backed recommendation cache.
"""

from pymongo.errors import ServerSelectionTimeoutError

from carrierfit.core.recommendation_cache import RecommendationCache, get_recommendation_cache
from carrierfit.pipeline.models import EvaluationResult


class TestRecommendationCache:
    """Tests for RecommendationCache."""

    def _result(self, pipeline, standard_profile):
        return pipeline.run_evaluation(standard_profile)

    def test_save_upserts_by_evaluation_id(self, mocker, pipeline, standard_profile):
        """Test that results are stored with the evaluation id as _id."""
        collection = mocker.MagicMock()
        cache = RecommendationCache(collection)
        result = self._result(pipeline, standard_profile)

        assert cache.save(result) is True

        collection.replace_one.assert_called_once()
        selector, document = collection.replace_one.call_args.args
        assert selector == {"_id": result.evaluation_id}
        assert document["_id"] == result.evaluation_id
        assert document["recommendations"][0]["carrier_id"] == result.recommendations[0].carrier_id
        assert collection.replace_one.call_args.kwargs == {"upsert": True}

    def test_save_failure_is_not_raised(self, mocker, pipeline, standard_profile):
        """Test that a MongoDB outage only logs a warning."""
        collection = mocker.MagicMock()
        collection.replace_one.side_effect = ServerSelectionTimeoutError("no servers")
        cache = RecommendationCache(collection)

        assert cache.save(self._result(pipeline, standard_profile)) is False

    def test_get_round_trip(self, mocker, pipeline, standard_profile):
        """Test that a stored copy validates back into an EvaluationResult."""
        result = self._result(pipeline, standard_profile)
        stored = result.model_dump(mode="json")
        stored["_id"] = result.evaluation_id
        collection = mocker.MagicMock()
        collection.find_one.return_value = stored

        cached = RecommendationCache(collection).get(result.evaluation_id)

        assert isinstance(cached, EvaluationResult)
        assert cached.evaluation_id == result.evaluation_id
        assert cached.recommendations == result.recommendations
        collection.find_one.assert_called_once_with({"_id": result.evaluation_id})

    def test_get_missing(self, mock_mongodb):
        """Test that an unknown evaluation id returns None."""
        cache = get_recommendation_cache()

        assert cache.get("missing") is None
        assert cache.collection is mock_mongodb
