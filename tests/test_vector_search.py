"""
Tests for the vector index backends.
"""

import math

import pytest
from pymongo.errors import OperationFailure

from carrierfit.config import Settings
from carrierfit.core.exceptions import RetrievalFailure
from carrierfit.core.vector_search import AtlasVectorIndex, InMemoryVectorIndex, get_vector_index


class TestInMemoryVectorIndex:
    """Tests for the in-process cosine index."""

    def test_query_orders_by_similarity(self):
        """Test that results come back best first with cosine scores."""
        index = InMemoryVectorIndex()
        index.upsert("same", [1.0, 0.0], {"carrier_id": "acme"})
        index.upsert("close", [1.0, 1.0], {"carrier_id": "acme"})
        index.upsert("orthogonal", [0.0, 1.0], {"carrier_id": "acme"})

        matches = index.query([2.0, 0.0], top_k=3)

        assert [m[0] for m in matches] == ["same", "close", "orthogonal"]
        assert matches[0][1] == pytest.approx(1.0)
        assert matches[1][1] == pytest.approx(0.7071, abs=1e-4)
        assert matches[2][1] == pytest.approx(0.0)

    def test_scores_clamped_to_unit_interval(self):
        """Test that opposite vectors score zero rather than negative."""
        index = InMemoryVectorIndex()
        index.upsert("opposite", [-1.0, 0.0], {})
        assert index.query([1.0, 0.0], top_k=1)[0][1] == 0.0

    def test_filter_by_metadata(self):
        """Test that the filter restricts matches to equal metadata."""
        index = InMemoryVectorIndex()
        index.upsert("a", [1.0, 0.0], {"carrier_id": "acme"})
        index.upsert("z", [1.0, 0.0], {"carrier_id": "zenith"})

        matches = index.query([1.0, 0.0], top_k=5, filter={"carrier_id": "zenith"})
        assert [m[0] for m in matches] == ["z"]
        assert matches[0][2] == {"carrier_id": "zenith"}

    def test_top_k(self):
        """Test that at most top_k matches are returned."""
        index = InMemoryVectorIndex()
        for i in range(10):
            index.upsert(f"e{i}", [1.0, float(i)], {})
        assert len(index.query([1.0, 0.0], top_k=4)) == 4

    def test_upsert_replaces(self):
        """Test that re-upserting an id replaces it instead of duplicating."""
        index = InMemoryVectorIndex()
        index.upsert("c1", [1.0, 0.0], {"seq": 0})
        index.upsert("c1", [0.0, 1.0], {"seq": 1})

        assert index.count() == 1
        match = index.query([0.0, 1.0], top_k=1)[0]
        assert match[1] == pytest.approx(1.0)
        assert match[2] == {"seq": 1}

    def test_empty_index_and_empty_query(self):
        """Test that nothing to search returns an empty list."""
        index = InMemoryVectorIndex()
        assert index.query([1.0, 0.0], top_k=3) == []
        index.upsert("c1", [1.0, 0.0], {})
        assert index.query([], top_k=3) == []
        assert index.query([0.0, 0.0], top_k=3) == []

    def test_empty_vector_rejected_on_upsert(self):
        """Test that an empty vector cannot be indexed."""
        with pytest.raises(ValueError):
            InMemoryVectorIndex().upsert("c1", [], {})

    def test_dimension_mismatch_skipped(self):
        """Test that entries of another dimension are ignored."""
        index = InMemoryVectorIndex()
        index.upsert("short", [1.0, 0.0], {})
        index.upsert("long", [1.0, 0.0, 0.0], {})
        assert [m[0] for m in index.query([1.0, 0.0, 0.0], top_k=5)] == ["long"]

    def test_delete_and_count(self):
        """Test deletion and filtered counting."""
        index = InMemoryVectorIndex()
        index.upsert("a1", [1.0], {"carrier_id": "acme"})
        index.upsert("a2", [1.0], {"carrier_id": "acme"})
        index.upsert("z1", [1.0], {"carrier_id": "zenith"})

        assert index.count({"carrier_id": "acme"}) == 2
        assert index.delete(["a1", "missing"]) == 1
        assert index.count({"carrier_id": "acme"}) == 1
        assert index.count() == 2


class TestAtlasVectorIndex:
    """Tests for the MongoDB Atlas backend against a mocked collection."""

    def test_upsert_replaces_by_id(self, mock_mongodb):
        """Test that upsert is a replace_one keyed by chunk id."""
        index = AtlasVectorIndex(mock_mongodb, index_name="vector_index")
        index.upsert("doc-chunk-0", [0.1, 0.2], {"carrier_id": "acme", "seq": 0})

        mock_mongodb.replace_one.assert_called_once_with(
            {"_id": "doc-chunk-0"},
            {"carrier_id": "acme", "seq": 0, "_id": "doc-chunk-0", "embedding": [0.1, 0.2]},
            upsert=True,
        )

    def test_query_builds_vector_search_pipeline(self, mock_mongodb):
        """Test the $vectorSearch stage, filter and score projection."""
        mock_mongodb.aggregate.return_value = [
            {"_id": "doc-chunk-1", "carrier_id": "acme", "seq": 1, "score": 0.75},
        ]
        index = AtlasVectorIndex(mock_mongodb, index_name="guidelines_index")

        matches = index.query([0.5, 0.5], top_k=3, filter={"carrier_id": "acme"})

        pipeline = mock_mongodb.aggregate.call_args[0][0]
        stage = pipeline[0]["$vectorSearch"]
        assert stage["index"] == "guidelines_index"
        assert stage["limit"] == 3
        assert stage["numCandidates"] == 30
        assert stage["filter"] == {"carrier_id": {"$eq": "acme"}}
        assert pipeline[1]["$project"]["score"] == {"$meta": "vectorSearchScore"}
        assert matches == [("doc-chunk-1", 0.5, {"carrier_id": "acme", "seq": 1})]

    def test_scores_match_in_memory_cosine(self, mock_mongodb):
        """Test that Atlas scores are mapped back to the in-memory cosine scale."""
        query = [1.0, 0.0]
        weak = [0.3, math.sqrt(1 - 0.3 ** 2)]
        memory = InMemoryVectorIndex()
        memory.upsert("weak", weak, {"carrier_id": "acme"})
        memory_score = memory.query(query, top_k=1)[0][1]

        mock_mongodb.aggregate.return_value = [
            {"_id": "weak", "score": (1 + 0.3) / 2},
            {"_id": "orthogonal", "score": 0.5},
            {"_id": "opposite", "score": 0.1},
        ]
        atlas_scores = [score for _, score, _ in AtlasVectorIndex(mock_mongodb).query(query, top_k=3)]

        assert memory_score == pytest.approx(0.3)
        assert atlas_scores == pytest.approx([memory_score, 0.0, 0.0])

    def test_query_errors_wrapped(self, mock_mongodb):
        """Test that driver errors surface as RetrievalFailure."""
        mock_mongodb.aggregate.side_effect = OperationFailure("index not found")
        index = AtlasVectorIndex(mock_mongodb)

        with pytest.raises(RetrievalFailure):
            index.query([0.1], top_k=3)

    def test_delete_many(self, mock_mongodb):
        """Test that delete removes by id list."""
        mock_mongodb.delete_many.return_value.deleted_count = 2
        index = AtlasVectorIndex(mock_mongodb)

        assert index.delete(["a", "b"]) == 2
        mock_mongodb.delete_many.assert_called_once_with({"_id": {"$in": ["a", "b"]}})


class TestGetVectorIndex:
    """Tests for backend selection from settings."""

    def test_memory_backend(self, settings):
        """Test that the default backend is the in-process index."""
        assert isinstance(get_vector_index(settings), InMemoryVectorIndex)

    def test_mongodb_backend_uses_configured_collection(self, mocker, mock_mongodb):
        """Test that the Atlas index reads its collection and index name from settings."""
        get_collection = mocker.patch("carrierfit.core.mongodb_client.get_collection", return_value=mock_mongodb)
        settings = Settings(
            _env_file=None,
            vector_backend="mongodb",
            vector_collection="guideline_vectors",
            vector_index_name="guidelines_index",
        )

        index = get_vector_index(settings)

        get_collection.assert_called_once_with("guideline_vectors")
        assert isinstance(index, AtlasVectorIndex)
        assert index.collection is mock_mongodb
        assert index.index_name == "guidelines_index"
