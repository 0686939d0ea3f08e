"""
Vector index implementations for guideline chunk retrieval.

Two backends share one contract: an in-process numpy index used for local
runs and tests, and MongoDB Atlas Vector Search for deployments.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from carrierfit.config import Settings, get_settings
from carrierfit.core.exceptions import RetrievalFailure


logger = logging.getLogger(__name__)

# (id, score, metadata)
VectorMatch = Tuple[str, float, Dict[str, Any]]


class VectorIndex(ABC):
    """
    Stores (id, vector, metadata) entries and answers nearest-neighbor
    queries. Scores are cosine-like in [0, 1], higher is better.
    """

    @abstractmethod
    def upsert(self, entry_id: str, vector: List[float], metadata: Dict[str, Any]) -> None:
        """Insert or replace the entry with this id."""

    @abstractmethod
    def query(
        self,
        vector: List[float],
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        """Return at most top_k matches ordered by descending score."""

    @abstractmethod
    def delete(self, entry_ids: List[str]) -> int:
        """Remove entries by id, returning how many were removed."""

    @abstractmethod
    def count(self, filter: Optional[Dict[str, Any]] = None) -> int:
        """Count entries, optionally restricted by metadata."""

    def upsert_many(self, entries: List[Tuple[str, List[float], Dict[str, Any]]]) -> int:
        for entry_id, vector, metadata in entries:
            self.upsert(entry_id, vector, metadata)
        return len(entries)


def _matches(metadata: Dict[str, Any], filter: Optional[Dict[str, Any]]) -> bool:
    if not filter:
        return True
    return all(metadata.get(key) == value for key, value in filter.items())


class InMemoryVectorIndex(VectorIndex):
    """
    Brute-force cosine similarity index held in process memory.
    Vectors are L2-normalized on insert so a dot product is the cosine.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[str, Tuple[np.ndarray, Dict[str, Any]]] = {}

    def upsert(self, entry_id: str, vector: List[float], metadata: Dict[str, Any]) -> None:
        if not vector:
            raise ValueError(f"Cannot index empty vector for {entry_id}")
        array = np.asarray(vector, dtype=float)
        norm = np.linalg.norm(array)
        if norm > 0:
            array = array / norm
        with self._lock:
            self._entries[entry_id] = (array, dict(metadata))

    def query(
        self,
        vector: List[float],
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        if not vector or top_k <= 0:
            return []

        query = np.asarray(vector, dtype=float)
        norm = np.linalg.norm(query)
        if norm == 0:
            return []
        query = query / norm

        with self._lock:
            candidates = [
                (entry_id, array, metadata)
                for entry_id, (array, metadata) in self._entries.items()
                if _matches(metadata, filter)
            ]

        matches: List[VectorMatch] = []
        for entry_id, array, metadata in candidates:
            if array.shape != query.shape:
                logger.warning(
                    f"Skipping {entry_id}: dimension {array.shape} does not match query {query.shape}"
                )
                continue
            score = float(np.clip(np.dot(array, query), 0.0, 1.0))
            matches.append((entry_id, score, dict(metadata)))

        matches.sort(key=lambda match: match[1], reverse=True)
        return matches[:top_k]

    def delete(self, entry_ids: List[str]) -> int:
        removed = 0
        with self._lock:
            for entry_id in entry_ids:
                if self._entries.pop(entry_id, None) is not None:
                    removed += 1
        return removed

    def count(self, filter: Optional[Dict[str, Any]] = None) -> int:
        with self._lock:
            return sum(1 for _, metadata in self._entries.values() if _matches(metadata, filter))


class AtlasVectorIndex(VectorIndex):
    """
    Vector index backed by MongoDB Atlas Vector Search.

    Each entry is one document keyed by the chunk id, holding the
    embedding under ``vector_field`` and metadata as top-level fields so
    they can be declared as filter fields on the Atlas index.
    """

    def __init__(
        self,
        collection: Collection,
        index_name: str = "vector_index",
        vector_field: str = "embedding",
    ):
        """Initialize with the collection holding chunk vectors."""
        self.collection = collection
        self.index_name = index_name
        self.vector_field = vector_field

    def upsert(self, entry_id: str, vector: List[float], metadata: Dict[str, Any]) -> None:
        if not vector:
            raise ValueError(f"Cannot index empty vector for {entry_id}")
        document = {**metadata, "_id": entry_id, self.vector_field: list(vector)}
        try:
            self.collection.replace_one({"_id": entry_id}, document, upsert=True)
        except PyMongoError as e:
            raise RetrievalFailure(f"Vector upsert failed for {entry_id}", e) from e

    def query(
        self,
        vector: List[float],
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[VectorMatch]:
        """
        Perform vector similarity search.

        Args:
            vector: Query embedding
            top_k: Maximum number of results
            filter: Optional metadata equality filter (e.g. carrier_id)

        Returns:
            List of (id, score, metadata) ordered by descending score
        """
        if not vector or top_k <= 0:
            return []

        pipeline: List[Dict[str, Any]] = [
            {
                "$vectorSearch": {
                    "queryVector": list(vector),
                    "path": self.vector_field,
                    "numCandidates": top_k * 10,  # Oversample for better recall
                    "limit": top_k,
                    "index": self.index_name,
                }
            },
            {
                "$project": {
                    self.vector_field: 0,
                    "score": {"$meta": "vectorSearchScore"},
                }
            },
        ]
        if filter:
            pipeline[0]["$vectorSearch"]["filter"] = {
                key: {"$eq": value} for key, value in filter.items()
            }

        try:
            results = list(self.collection.aggregate(pipeline))
        except PyMongoError as e:
            raise RetrievalFailure("Vector search failed", e) from e

        matches: List[VectorMatch] = []
        for doc in results[:top_k]:
            entry_id = str(doc.pop("_id"))
            # Atlas reports cosine as (1 + cosine) / 2
            score = 2 * float(doc.pop("score", 0.0)) - 1
            matches.append((entry_id, min(1.0, max(0.0, score)), doc))
        return matches

    def delete(self, entry_ids: List[str]) -> int:
        if not entry_ids:
            return 0
        try:
            result = self.collection.delete_many({"_id": {"$in": list(entry_ids)}})
        except PyMongoError as e:
            raise RetrievalFailure("Vector delete failed", e) from e
        return result.deleted_count

    def count(self, filter: Optional[Dict[str, Any]] = None) -> int:
        try:
            return self.collection.count_documents(filter or {})
        except PyMongoError as e:
            raise RetrievalFailure("Vector count failed", e) from e


def get_vector_index(settings: Optional[Settings] = None) -> VectorIndex:
    """Build the vector index selected by settings."""
    settings = settings or get_settings()
    if settings.vector_backend == "mongodb":
        from carrierfit.core.mongodb_client import get_collection

        return AtlasVectorIndex(
            get_collection(settings.vector_collection),
            index_name=settings.vector_index_name,
        )
    return InMemoryVectorIndex()
