"""
Step 4: Evidence Aggregation
Merges retrieval results for one carrier into a scored recommendation.
"""

import logging
from typing import Dict, List, Optional

from carrierfit.config import get_settings
from carrierfit.pipeline.models import (
    Carrier,
    CarrierRecommendation,
    Citation,
    ClientProfile,
    QueryDimension,
    QueryRetrieval,
    RetrievalResult,
)
from carrierfit.pipeline.steps.query_generator import round_half_up
from carrierfit.pipeline.steps.underwriting_rules import (
    further_review_likely,
    generate_advisories,
    generate_reasons,
)


logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 80
MEDIUM_CONFIDENCE = 60


def confidence_tier(fit_score: int, evidence_sufficient: bool = True) -> str:
    """Map a fit score to low/medium/high. Insufficient evidence is always low."""
    if not evidence_sufficient:
        return "low"
    if fit_score >= HIGH_CONFIDENCE:
        return "high"
    if fit_score >= MEDIUM_CONFIDENCE:
        return "medium"
    return "low"


def make_snippet(text: str, length: int) -> str:
    text = text.strip()
    return text[:length] + "..." if len(text) > length else text


class EvidenceAggregatorStep:
    """
    Evidence-weighted fit scoring.

    A query counts as matched when its best result reaches the similarity
    floor. The fit score is the mean best score of matched queries on a
    0-100 scale, capped at ``max_fit_score``. With no matched query the
    carrier gets the neutral score and low confidence: that means
    insufficient evidence, not a poor fit.
    """

    def __init__(
        self,
        similarity_floor: Optional[float] = None,
        citation_floor: Optional[float] = None,
        max_citations: Optional[int] = None,
        neutral_fit_score: Optional[int] = None,
        max_fit_score: Optional[int] = None,
        snippet_length: Optional[int] = None,
    ):
        settings = get_settings()
        self.similarity_floor = similarity_floor if similarity_floor is not None else settings.similarity_floor
        self.citation_floor = citation_floor if citation_floor is not None else settings.citation_floor
        self.max_citations = max_citations if max_citations is not None else settings.max_citations
        self.neutral_fit_score = neutral_fit_score if neutral_fit_score is not None else settings.neutral_fit_score
        self.max_fit_score = max_fit_score if max_fit_score is not None else settings.max_fit_score
        self.snippet_length = snippet_length if snippet_length is not None else settings.snippet_length

    def execute(
        self,
        profile: ClientProfile,
        carrier: Carrier,
        retrievals: List[QueryRetrieval],
    ) -> CarrierRecommendation:
        """
        Score one carrier.

        Args:
            profile: Client underwriting intake
            carrier: Carrier being scored
            retrievals: One QueryRetrieval per generated query

        Returns:
            CarrierRecommendation with score, reasons, advisories, citations
        """
        best_results = [(r.query.dimension, r.best) for r in retrievals if r.best is not None]
        matched = [
            (dimension, best) for dimension, best in best_results
            if best.score >= self.similarity_floor
        ]

        query_count = len(matched)
        evidence_sufficient = query_count > 0
        if evidence_sufficient:
            total_score = sum(best.score * 100 for _, best in matched)
            fit_score = min(self.max_fit_score, round_half_up(total_score / query_count))
        else:
            fit_score = self.neutral_fit_score

        matched_criteria: List[QueryDimension] = []
        for dimension, _ in matched:
            if dimension not in matched_criteria:
                matched_criteria.append(dimension)

        citations = self._citations([best for _, best in best_results])

        logger.debug(
            f"Carrier {carrier.id}: {query_count}/{len(retrievals)} queries matched, "
            f"fit {fit_score}, {len(citations)} citations"
        )

        return CarrierRecommendation(
            carrier_id=carrier.id,
            carrier_name=carrier.name,
            fit_score=fit_score,
            confidence=confidence_tier(fit_score, evidence_sufficient),
            reasons=generate_reasons(profile, carrier, fit_score, evidence_sufficient),
            advisories=generate_advisories(profile, evidence_sufficient),
            citations=citations,
            further_review_likely=further_review_likely(profile, fit_score),
            matched_criteria=matched_criteria,
            queries_matched=query_count,
            evidence_sufficient=evidence_sufficient,
            preference_rank=carrier.preference_rank,
        )

    def _citations(self, best_results: List[RetrievalResult]) -> List[Citation]:
        by_chunk: Dict[str, RetrievalResult] = {}
        for result in best_results:
            if result.score < self.citation_floor:
                continue
            current = by_chunk.get(result.chunk.chunk_id)
            if current is None or result.score > current.score:
                by_chunk[result.chunk.chunk_id] = result

        ordered = sorted(by_chunk.values(), key=lambda r: r.score, reverse=True)
        return [
            Citation(
                chunk_id=result.chunk.chunk_id,
                snippet=make_snippet(result.chunk.text, self.snippet_length),
                document_title=result.chunk.document_title,
                effective_date=result.chunk.effective_date,
                section=result.chunk.section,
                score=result.score,
            )
            for result in ordered[:self.max_citations]
        ]
