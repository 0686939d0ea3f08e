"""
Step 3: Retrieval
Runs filtered similarity search for every (carrier, query) pair.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple

from carrierfit.config import get_settings
from carrierfit.core.embedding_service import EmbeddingService
from carrierfit.core.observability import ObservabilityContext, get_observability
from carrierfit.core.vector_search import VectorIndex, VectorMatch
from carrierfit.pipeline.models import (
    Carrier,
    QueryRetrieval,
    RetrievalQuery,
    RetrievalResult,
)


logger = logging.getLogger(__name__)


class RetrieverStep:
    """
    Fan-out/fan-in over the embedder and the vector index.

    Each distinct query string is embedded once per call to execute. Index
    calls for different carriers and queries run concurrently, and a failed
    call only empties the result of its own (carrier, query) pair.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_index: VectorIndex,
        document_store,
        observability: Optional[ObservabilityContext] = None,
        top_k: Optional[int] = None,
        max_workers: Optional[int] = None,
    ):
        """Initialize with required services."""
        settings = get_settings()
        self.embedding_service = embedding_service
        self.vector_index = vector_index
        self.document_store = document_store
        self.observability = observability or get_observability()
        self.top_k = top_k if top_k is not None else settings.retrieval_top_k
        self.max_workers = max_workers if max_workers is not None else settings.max_workers

    def embed_queries(self, queries: List[RetrievalQuery]) -> Dict[str, List[float]]:
        """Embed each distinct query text once."""
        vectors: Dict[str, List[float]] = {}
        for query in queries:
            if query.text not in vectors:
                vectors[query.text] = self.embedding_service.embed_query(query.text)
        return vectors

    def execute(
        self,
        carriers: List[Carrier],
        queries: List[RetrievalQuery],
        vectors: Optional[Dict[str, List[float]]] = None,
    ) -> Dict[str, List[QueryRetrieval]]:
        """
        Retrieve scored passages for every carrier and query.

        Args:
            carriers: Carriers to search
            queries: Generated queries
            vectors: Query embeddings keyed by query text, embedded here
                when not given

        Returns:
            Mapping of carrier id to one QueryRetrieval per query, in
            query order

        Raises:
            DocumentStoreError: if chunk metadata cannot be loaded
        """
        if not carriers or not queries:
            return {carrier.id: [] for carrier in carriers}

        if vectors is None:
            vectors = self.embed_queries(queries)
        pairs = [(carrier, query) for carrier in carriers for query in queries]

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(pairs))) as executor:
            raw = list(executor.map(
                lambda pair: self._search(pair[0], pair[1], vectors.get(pair[1].text, [])),
                pairs,
            ))

        chunk_ids = {match[0] for matches, _ in raw for match in matches}
        references = self.document_store.get_chunk_references(sorted(chunk_ids))

        retrievals: Dict[str, List[QueryRetrieval]] = {carrier.id: [] for carrier in carriers}
        for (carrier, query), (matches, failed) in zip(pairs, raw):
            results = []
            for chunk_id, score, _ in matches:
                reference = references.get(chunk_id)
                if reference is None:
                    logger.warning(f"Vector entry {chunk_id} has no stored chunk, skipping")
                    continue
                results.append(RetrievalResult(chunk=reference, score=score, carrier_id=carrier.id))
            results.sort(key=lambda r: r.score, reverse=True)
            retrievals[carrier.id].append(
                QueryRetrieval(carrier_id=carrier.id, query=query, results=results, failed=failed)
            )

        return retrievals

    def _search(
        self,
        carrier: Carrier,
        query: RetrievalQuery,
        vector: List[float],
    ) -> Tuple[List[VectorMatch], bool]:
        if not vector:
            return [], False
        try:
            matches = self.vector_index.query(vector, self.top_k, filter={"carrier_id": carrier.id})
            return matches[:self.top_k], False
        except Exception as e:
            logger.warning(
                f"Vector search failed for carrier {carrier.id} "
                f"({query.dimension.value}): {e}"
            )
            self.observability.record_error(
                "retrieval_failures",
                str(e),
                carrier_id=carrier.id,
                dimension=query.dimension.value,
            )
            return [], True
