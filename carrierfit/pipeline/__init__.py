"""
Carrier matching pipeline components.

The orchestrator lives in carrierfit.pipeline.orchestrator; it is not
re-exported here because the document store depends on these models.
"""

from .models import (
    Carrier,
    Document,
    Chunk,
    ClientProfile,
    QueryDimension,
    RetrievalQuery,
    RetrievalResult,
    Citation,
    CarrierRecommendation,
    EvaluationResult,
    IngestionRequest,
    IngestionResult,
)

__all__ = [
    "Carrier",
    "Document",
    "Chunk",
    "ClientProfile",
    "QueryDimension",
    "RetrievalQuery",
    "RetrievalResult",
    "Citation",
    "CarrierRecommendation",
    "EvaluationResult",
    "IngestionRequest",
    "IngestionResult",
]
