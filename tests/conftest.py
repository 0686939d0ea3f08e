"""
Pytest configuration and fixtures.
"""

import pytest
from datetime import date
from pathlib import Path
import sys

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from carrierfit.config import Settings
from carrierfit.core.document_store import DocumentStore
from carrierfit.core.embedding_service import EmbeddingService
from carrierfit.core.observability import ObservabilityContext
from carrierfit.core.vector_search import InMemoryVectorIndex
from carrierfit.pipeline.models import (
    Carrier,
    ChunkReference,
    ClientProfile,
    QueryDimension,
    QueryRetrieval,
    RetrievalQuery,
    RetrievalResult,
)
from carrierfit.pipeline.orchestrator import CarrierMatchPipeline


# One dimension per underwriting topic, plus a constant bias dimension so
# that text without any keyword still embeds to a non-zero vector.
TOPIC_KEYWORDS = [
    ("eligibility", ["face amount", "issue age"]),
    ("build", ["bmi", "build"]),
    ("tobacco", ["tobacco", "nicotine", "smok"]),
    ("cannabis", ["marijuana", "cannabis"]),
    ("diabetes", ["diabet", "a1c"]),
    ("cardiac", ["cardiac", "heart"]),
    ("cancer", ["cancer"]),
    ("risk", ["avocation", "hazardous", "dui"]),
    ("accelerated", ["accelerated", "no exam"]),
    ("financial", ["financial", "income"]),
]
BIAS = 0.1


class KeywordEmbeddingClient:
    """Deterministic stand-in for the embedding provider."""

    def __init__(self):
        self.calls = []

    def generate_embeddings(self, texts, prefix=""):
        self.calls.append(list(texts))
        return [self.vector_for(text) for text in texts]

    @staticmethod
    def vector_for(text):
        lowered = text.lower()
        vector = [
            1.0 if any(keyword in lowered for keyword in keywords) else 0.0
            for _, keywords in TOPIC_KEYWORDS
        ]
        return vector + [BIAS]

    def embedded_texts(self):
        return [text for batch in self.calls for text in batch]


@pytest.fixture
def tobacco_guide():
    """Guideline text covering only tobacco."""
    return (
        "Section 3: Tobacco\n"
        "Applicants with no nicotine use in the last 24 months qualify for non-tobacco rates.\n"
    )


@pytest.fixture
def settings():
    """Default settings, isolated from any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def observability():
    return ObservabilityContext()


@pytest.fixture
def embedding_client():
    return KeywordEmbeddingClient()


@pytest.fixture
def embedding_service(embedding_client, observability):
    return EmbeddingService(embedding_client, observability=observability)


@pytest.fixture
def vector_index():
    return InMemoryVectorIndex()


@pytest.fixture
def document_store(tmp_path):
    """File-backed SQLite document store in a temporary directory."""
    store = DocumentStore(f"sqlite:///{tmp_path / 'carrierfit.db'}")
    store.create_schema()
    yield store
    store.close()


@pytest.fixture
def pipeline(embedding_service, vector_index, document_store, observability, settings):
    return CarrierMatchPipeline(
        embedding_service=embedding_service,
        vector_index=vector_index,
        document_store=document_store,
        observability=observability,
        settings=settings,
    )


@pytest.fixture
def carrier():
    return Carrier(id="acme", name="Acme Life", preference_rank=3)


@pytest.fixture
def standard_profile():
    """45-year-old non-smoker, 70in/180lb (BMI about 25.8), $500k term."""
    return ClientProfile(
        age=45,
        sex="male",
        height_inches=70,
        weight_pounds=180,
        tobacco={"status": "never"},
        coverage={"amount": 500_000, "product_type": "term"},
    )


@pytest.fixture
def make_retrieval():
    """Factory for QueryRetrieval objects with given (chunk_id, score) results."""

    def _make(dimension, scored_chunks, carrier_id="acme", failed=False):
        results = [
            RetrievalResult(
                chunk=ChunkReference(
                    chunk_id=chunk_id,
                    document_id="doc-1",
                    carrier_id=carrier_id,
                    text=f"Guideline text for {chunk_id}",
                    section="Section 1: General",
                    document_title="Acme Underwriting Guide",
                    effective_date=date(2025, 1, 1),
                ),
                score=score,
                carrier_id=carrier_id,
            )
            for chunk_id, score in scored_chunks
        ]
        return QueryRetrieval(
            carrier_id=carrier_id,
            query=RetrievalQuery(dimension=QueryDimension(dimension), text=f"{dimension} query"),
            results=results,
            failed=failed,
        )

    return _make


@pytest.fixture
def mock_mongodb(mocker):
    """Mock MongoDB client for unit tests."""
    mock_client = mocker.MagicMock()
    mock_db = mocker.MagicMock()
    mock_collection = mocker.MagicMock()

    mock_client.__getitem__.return_value = mock_db
    mock_db.__getitem__.return_value = mock_collection
    mock_collection.aggregate.return_value = []
    mock_collection.find_one.return_value = None

    mocker.patch('carrierfit.core.mongodb_client.get_mongodb_client', return_value=mock_client)
    mocker.patch('carrierfit.core.mongodb_client.get_database', return_value=mock_db)
    mocker.patch('carrierfit.core.mongodb_client.get_collection', return_value=mock_collection)

    return mock_collection
