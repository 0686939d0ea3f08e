"""
Pipeline Orchestrator
Coordinates guideline ingestion and carrier evaluation.
"""

import hashlib
import logging
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from carrierfit.config import Settings, get_settings
from carrierfit.core.document_store import DocumentStore
from carrierfit.core.embedding_service import EmbeddingService
from carrierfit.core.observability import ObservabilityContext, get_observability
from carrierfit.core.recommendation_cache import RecommendationCache
from carrierfit.core.vector_search import VectorIndex
from carrierfit.pipeline.models import (
    Carrier,
    CarrierRecommendation,
    Chunk,
    ClientProfile,
    Document,
    EvaluationMetrics,
    EvaluationResult,
    EvaluationSummary,
    IngestionRequest,
    IngestionResult,
    RetrievalQuery,
)
from carrierfit.pipeline.steps import (
    ChunkerStep,
    EvidenceAggregatorStep,
    QueryGeneratorStep,
    RankerStep,
    RetrieverStep,
)


logger = logging.getLogger(__name__)

FURTHER_REVIEW_AVERAGE_FIT = 70


def content_hash(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def document_id_for(carrier_id: str, title: str, version: int, text_hash: str) -> str:
    """Stable document id; identical input always maps to the same id."""
    key = f"{carrier_id}|{title}|{version}|{text_hash}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()[:32]


def vector_metadata(chunk: Chunk, carrier_id: str) -> Dict:
    return {
        "carrier_id": carrier_id,
        "document_id": chunk.document_id,
        "section": chunk.section,
        "seq": chunk.seq,
    }


class CarrierMatchPipeline:
    """
    Matches client profiles against carrier underwriting guidelines.

    Ingestion: chunk, embed, store, index. Evaluation: generate queries,
    retrieve per carrier, aggregate evidence, rank. Embedding and retrieval
    failures degrade to empty results; DocumentStoreError propagates.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_index: VectorIndex,
        document_store: DocumentStore,
        observability: Optional[ObservabilityContext] = None,
        cache: Optional[RecommendationCache] = None,
        settings: Optional[Settings] = None,
        progress_callback: Optional[Callable[[int, str, str], None]] = None,
    ):
        """
        Initialize the pipeline with required services.

        Args:
            embedding_service: Embedder for chunks and queries
            vector_index: Similarity index over chunk vectors
            document_store: Relational store for carriers, documents, chunks
            observability: Failure counters (process-wide context if omitted)
            cache: Optional store for copies of evaluation results
            settings: Tunables (environment settings if omitted)
            progress_callback: Optional callback for progress updates
                             (step_number, step_name, status)
        """
        self.settings = settings or get_settings()
        self.embedding_service = embedding_service
        self.vector_index = vector_index
        self.document_store = document_store
        self.observability = observability or get_observability()
        self.cache = cache
        self.progress_callback = progress_callback
        self._document_locks: Dict[Tuple[str, str], threading.Lock] = {}
        self._locks_guard = threading.Lock()

        s = self.settings
        self.chunker = ChunkerStep(chunk_size=s.chunk_size, overlap=s.chunk_overlap)
        self.query_generator = QueryGeneratorStep(
            accelerated_max_age=s.accelerated_max_age,
            accelerated_max_coverage=s.accelerated_max_coverage,
            financial_coverage_threshold=s.financial_coverage_threshold,
        )
        self.retriever = RetrieverStep(
            embedding_service,
            vector_index,
            document_store,
            observability=self.observability,
            top_k=s.retrieval_top_k,
            max_workers=s.max_workers,
        )
        self.aggregator = EvidenceAggregatorStep(
            similarity_floor=s.similarity_floor,
            citation_floor=s.citation_floor,
            max_citations=s.max_citations,
            neutral_fit_score=s.neutral_fit_score,
            max_fit_score=s.max_fit_score,
            snippet_length=s.snippet_length,
        )
        self.ranker = RankerStep(top_n=s.default_top_n, neutral_fit_score=s.neutral_fit_score)

    def _document_lock(self, carrier_id: str, title: str) -> threading.Lock:
        """One lock per carrier document, so versions resolve one writer at a time."""
        with self._locks_guard:
            return self._document_locks.setdefault((carrier_id, title), threading.Lock())

    def _report_progress(self, step: int, name: str, status: str):
        """Report progress if callback is set."""
        if self.progress_callback:
            self.progress_callback(step, name, status)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(
        self,
        document_text: str,
        carrier_id: str,
        title: str,
        effective_date: date,
        version: Optional[int] = None,
        source_location: Optional[str] = None,
    ) -> str:
        """Ingest one guideline document and return its document id."""
        return self.ingest_document(
            document_text,
            carrier_id,
            title,
            effective_date,
            version=version,
            source_location=source_location,
        ).document_id

    def ingest_document(
        self,
        document_text: str,
        carrier_id: str,
        title: str,
        effective_date: date,
        version: Optional[int] = None,
        source_location: Optional[str] = None,
    ) -> IngestionResult:
        """
        Chunk, embed, store and index one document.

        Chunks whose embedding fails are stored without a vector; that is
        partial success, not an error. Re-ingesting identical input reuses
        the same document and chunk ids, so the index is not duplicated.

        Args:
            document_text: Extracted plain text
            carrier_id: Owning carrier
            title: Document title
            effective_date: Date the guidelines take effect
            version: Explicit version; derived from stored versions if omitted
            source_location: Where the original file lives

        Returns:
            IngestionResult with chunk and embedding counts

        Raises:
            DocumentStoreError: if the document store fails
        """
        request = IngestionRequest(
            document_text=document_text,
            carrier_id=carrier_id,
            title=title,
            effective_date=effective_date,
            version=version,
            source_location=source_location,
        )
        with self._document_lock(request.carrier_id, request.title):
            return self._ingest(request)

    def _ingest(self, request: IngestionRequest) -> IngestionResult:
        text_hash = content_hash(request.document_text)
        latest = self.document_store.find_latest_document(request.carrier_id, request.title)
        resolved_version = self._resolve_version(request, latest, text_hash)

        document = Document(
            id=document_id_for(request.carrier_id, request.title, resolved_version, text_hash),
            carrier_id=request.carrier_id,
            title=request.title,
            effective_date=request.effective_date,
            version=resolved_version,
            source_location=request.source_location,
            content_hash=text_hash,
        )
        reused = latest is not None and latest.id == document.id

        # An older version than the active one is kept on record, unindexed
        stale = latest is not None and not reused and resolved_version < latest.version
        if stale:
            document = document.model_copy(update={"superseded_by": latest.id})

        chunks = self.chunker.execute(document.id, request.document_text)
        self.document_store.save_document(document)

        embedded: List[Chunk] = []
        if not stale:
            embedded = self._embed_and_index(chunks, document.carrier_id)
        by_id = {chunk.id: chunk for chunk in embedded}
        self.document_store.save_chunks([by_id.get(chunk.id, chunk) for chunk in chunks])

        superseded_id = None
        if latest is not None and not reused and not stale:
            self._supersede(latest, document.id)
            superseded_id = latest.id

        self.observability.increment("documents_ingested")
        self.observability.increment("chunks_ingested", len(chunks))

        logger.info(
            f"Ingested '{document.title}' v{document.version} for {document.carrier_id}: "
            f"{len(chunks)} chunks, {len(embedded)} embedded"
        )

        return IngestionResult(
            document_id=document.id,
            carrier_id=document.carrier_id,
            version=document.version,
            chunk_count=len(chunks),
            embedded_count=len(embedded),
            unembedded_count=len(chunks) - len(embedded),
            superseded_document_id=superseded_id,
            reused_existing=reused,
        )

    def ingest_many(self, requests: Sequence[IngestionRequest]) -> List[IngestionResult]:
        """Ingest documents concurrently, one task per document."""
        if not requests:
            return []

        with ThreadPoolExecutor(max_workers=min(self.settings.max_workers, len(requests))) as executor:
            futures = [
                executor.submit(
                    self.ingest_document,
                    request.document_text,
                    request.carrier_id,
                    request.title,
                    request.effective_date,
                    version=request.version,
                    source_location=request.source_location,
                )
                for request in requests
            ]
            return [future.result() for future in futures]

    def backfill_embeddings(self, limit: Optional[int] = None) -> int:
        """
        Retry embedding for stored chunks that have no vector.

        Returns:
            Number of chunks embedded and indexed
        """
        missing = self.document_store.chunks_missing_embeddings(limit)
        if not missing:
            return 0

        carriers: Dict[str, str] = {}
        by_carrier: Dict[str, List[Chunk]] = {}
        for chunk in missing:
            if chunk.document_id not in carriers:
                document = self.document_store.get_document(chunk.document_id)
                carriers[chunk.document_id] = document.carrier_id if document else ""
            carrier_id = carriers[chunk.document_id]
            if carrier_id:
                by_carrier.setdefault(carrier_id, []).append(chunk)

        filled = 0
        for carrier_id, chunks in by_carrier.items():
            for chunk in self._embed_and_index(chunks, carrier_id):
                self.document_store.update_chunk_embedding(chunk.id, chunk.embedding)
                filled += 1

        logger.info(f"Backfilled embeddings for {filled}/{len(missing)} chunks")
        return filled

    def rebuild_index(self) -> int:
        """
        Load stored chunk vectors of active documents into the vector index.
        Used to warm an in-memory index from the document store.
        """
        entries = [
            (chunk.id, chunk.embedding, vector_metadata(chunk, carrier_id))
            for chunk, carrier_id in self.document_store.embedded_chunks()
        ]
        loaded = self.vector_index.upsert_many(entries) if entries else 0
        logger.info(f"Loaded {loaded} stored vectors into the index")
        return loaded

    def _resolve_version(
        self,
        request: IngestionRequest,
        latest: Optional[Document],
        text_hash: str,
    ) -> int:
        if request.version is not None:
            return request.version
        if latest is not None and latest.content_hash == text_hash:
            return latest.version
        return self.document_store.max_version(request.carrier_id, request.title) + 1

    def _embed_and_index(self, chunks: List[Chunk], carrier_id: str) -> List[Chunk]:
        """Embed chunks and upsert the ones that got a vector. Returns those chunks."""
        if not chunks:
            return []

        vectors = self.embedding_service.embed_documents([chunk.text for chunk in chunks])
        indexed = []
        for chunk, vector in zip(chunks, vectors):
            if not vector:
                continue
            try:
                self.vector_index.upsert(chunk.id, vector, vector_metadata(chunk, carrier_id))
            except Exception as e:
                logger.warning(f"Vector upsert failed for {chunk.id}: {e}")
                self.observability.record_error("vector_upsert_failures", str(e), chunk_id=chunk.id)
                continue
            indexed.append(chunk.model_copy(update={"embedding": vector}))
        return indexed

    def _supersede(self, previous: Document, replacement_id: str) -> None:
        self.document_store.mark_superseded(previous.id, replacement_id)
        stale_ids = [chunk.id for chunk in self.document_store.get_chunks(previous.id)]
        try:
            removed = self.vector_index.delete(stale_ids)
        except Exception as e:
            logger.warning(f"Could not remove vectors of superseded document {previous.id}: {e}")
            self.observability.record_error("vector_delete_failures", str(e), document_id=previous.id)
            return
        logger.info(f"Document {previous.id} superseded by {replacement_id}, removed {removed} vectors")

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(
        self,
        client_profile: Union[ClientProfile, Dict],
        carrier_list: Optional[Sequence[Union[Carrier, Dict]]] = None,
        top_n: Optional[int] = None,
    ) -> List[CarrierRecommendation]:
        """
        Rank carriers for a client profile.

        Args:
            client_profile: Profile model or a dict validated into one
            carrier_list: Carriers to consider; all stored carriers if None
            top_n: Maximum recommendations; configured default if None

        Returns:
            Ranked recommendations, never empty

        Raises:
            DocumentStoreError: if the document store fails
            ValueError: if top_n is not positive
        """
        recommendations, _, _, _, _ = self._evaluate(client_profile, carrier_list, top_n)
        return recommendations

    def run_evaluation(
        self,
        client_profile: Union[ClientProfile, Dict],
        carrier_list: Optional[Sequence[Union[Carrier, Dict]]] = None,
        top_n: Optional[int] = None,
    ) -> EvaluationResult:
        """
        Evaluate a profile and package the result with a summary and metrics.
        A copy is stored in the recommendation cache when one is configured.
        """
        recommendations, profile, queries, metrics, warnings = self._evaluate(
            client_profile, carrier_list, top_n
        )

        result = EvaluationResult(
            evaluation_id=uuid.uuid4().hex,
            profile=profile,
            queries=queries,
            recommendations=recommendations,
            summary=self._summarize(recommendations, metrics.carriers_evaluated),
            metrics=metrics,
            warnings=warnings,
        )

        if self.cache is not None:
            self.cache.save(result)

        return result

    def _evaluate(
        self,
        client_profile: Union[ClientProfile, Dict],
        carrier_list: Optional[Sequence[Union[Carrier, Dict]]],
        top_n: Optional[int],
    ) -> Tuple[List[CarrierRecommendation], ClientProfile, List[RetrievalQuery], EvaluationMetrics, List[str]]:
        start_time = time.time()
        warnings: List[str] = []

        profile = (
            client_profile if isinstance(client_profile, ClientProfile)
            else ClientProfile.model_validate(client_profile)
        )
        carriers = self._select_carriers(profile, carrier_list, warnings)

        # Step 1: Query Generation
        self._report_progress(1, "Query Generator", "running")
        queries = self.query_generator.execute(profile)
        self._report_progress(1, "Query Generator", "complete")
        logger.info(f"Step 1 complete: {len(queries)} queries generated")

        retrieval_calls = 0
        retrieval_failures = 0
        embedding_failures = 0

        if not carriers or self.document_store.count_documents() == 0:
            if carriers:
                warnings.append("No guideline documents have been ingested")
            recommendations = self.ranker.execute([], profile, top_n)
        else:
            # Step 2: Retrieval
            self._report_progress(2, "Retriever", "running")
            vectors = self.retriever.embed_queries(queries)
            embedding_failures = sum(1 for vector in vectors.values() if not vector)
            retrievals = self.retriever.execute(carriers, queries, vectors)
            for carrier_retrievals in retrievals.values():
                for retrieval in carrier_retrievals:
                    if vectors.get(retrieval.query.text):
                        retrieval_calls += 1
                    if retrieval.failed:
                        retrieval_failures += 1
            self._report_progress(2, "Retriever", "complete")
            logger.info(
                f"Step 2 complete: {retrieval_calls} searches across {len(carriers)} carriers, "
                f"{retrieval_failures} failed"
            )

            # Step 3: Evidence Aggregation
            self._report_progress(3, "Evidence Aggregator", "running")
            scored = [
                self.aggregator.execute(profile, carrier, retrievals[carrier.id])
                for carrier in carriers
            ]
            self._report_progress(3, "Evidence Aggregator", "complete")
            logger.info(f"Step 3 complete: scored {len(scored)} carriers")

            # Step 4: Ranking
            self._report_progress(4, "Ranker", "running")
            recommendations = self.ranker.execute(scored, profile, top_n)
            self._report_progress(4, "Ranker", "complete")

        metrics = EvaluationMetrics(
            total_duration_seconds=round(time.time() - start_time, 2),
            carriers_evaluated=len(carriers),
            query_count=len(queries),
            retrieval_calls=retrieval_calls,
            retrieval_failures=retrieval_failures,
            embedding_failures=embedding_failures,
            citations_found=sum(len(r.citations) for r in recommendations),
        )
        logger.info(
            f"Evaluation complete: {len(recommendations)} recommendations "
            f"in {metrics.total_duration_seconds}s"
        )
        return recommendations, profile, queries, metrics, warnings

    def _select_carriers(
        self,
        profile: ClientProfile,
        carrier_list: Optional[Sequence[Union[Carrier, Dict]]],
        warnings: List[str],
    ) -> List[Carrier]:
        if carrier_list is None:
            candidates = self.document_store.list_carriers()
        else:
            candidates = [
                c if isinstance(c, Carrier) else Carrier.model_validate(c) for c in carrier_list
            ]

        carriers: List[Carrier] = []
        seen = set()
        for carrier in candidates:
            if carrier.id not in seen:
                seen.add(carrier.id)
                carriers.append(carrier)

        if not carriers:
            warnings.append("No carriers configured")
            return []

        if self.settings.filter_by_jurisdiction and profile.state:
            available = [c for c in carriers if c.is_available_in(profile.state)]
            if not available:
                warnings.append(f"No carriers available in {profile.state.upper()}")
            carriers = available

        return carriers

    @staticmethod
    def _summarize(
        recommendations: List[CarrierRecommendation],
        carriers_evaluated: int,
    ) -> EvaluationSummary:
        average_fit = sum(r.fit_score for r in recommendations) / len(recommendations)
        top = recommendations[0]
        return EvaluationSummary(
            top_pick=None if top.is_fallback else top.carrier_name,
            top_carrier_id=None if top.is_fallback else top.carrier_id,
            average_fit=round(average_fit, 1),
            total_carriers_evaluated=carriers_evaluated,
            further_review_recommended=average_fit < FURTHER_REVIEW_AVERAGE_FIT,
        )
