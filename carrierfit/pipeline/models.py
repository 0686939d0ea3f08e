"""
Pydantic models for the carrier matching pipeline.
These models define the records passed between ingestion and evaluation steps.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Guideline corpus
# ---------------------------------------------------------------------------

class Carrier(BaseModel):
    """Carrier under consideration. Read-only during evaluation."""
    id: str = Field(min_length=1, description="Carrier identifier")
    name: str = Field(min_length=1, description="Display name")
    preference_rank: int = Field(default=99, ge=0, description="Agency preference, lower is preferred")
    available_states: List[str] = Field(default_factory=list, description="Jurisdictions where products are offered; empty means everywhere")

    @field_validator("available_states")
    @classmethod
    def _upper_states(cls, value: List[str]) -> List[str]:
        return [state.strip().upper() for state in value if state.strip()]

    def is_available_in(self, state: Optional[str]) -> bool:
        if not state or not self.available_states:
            return True
        return state.strip().upper() in self.available_states


class Document(BaseModel):
    """Carrier guideline document. Immutable once chunked."""
    id: str
    carrier_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    effective_date: date
    version: int = Field(default=1, ge=1)
    source_location: Optional[str] = Field(default=None)
    content_hash: str = Field(description="SHA-256 of the raw text")
    superseded_by: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow)


class Chunk(BaseModel):
    """Overlap-linked passage of a document; the unit of retrieval."""
    id: str
    document_id: str
    seq: int = Field(ge=0)
    section: Optional[str] = Field(default=None)
    text: str
    overlap_chars: int = Field(default=0, ge=0, description="Length of the leading overlap copied from the previous chunk")
    token_count: int = Field(ge=0)
    embedding: Optional[List[float]] = Field(default=None)

    @property
    def body(self) -> str:
        """Chunk text without its leading overlap."""
        return self.text[self.overlap_chars:]


def chunk_id_for(document_id: str, seq: int) -> str:
    """Stable chunk id; a pure function of document id and sequence."""
    return f"{document_id}-chunk-{seq}"


# ---------------------------------------------------------------------------
# Client profile
# ---------------------------------------------------------------------------

class TobaccoUse(BaseModel):
    """Nicotine/tobacco history."""
    status: Literal["never", "past_24_months", "current"] = "never"
    type: Optional[str] = Field(default=None, description="cigarettes, vape, cigars, chew, nrt")
    frequency: Optional[str] = Field(default=None)


class CannabisUse(BaseModel):
    """Marijuana/cannabis history."""
    status: Literal["never", "past_12_months", "current"] = "never"
    type: Optional[str] = Field(default=None, description="smoke, vape, edible")
    frequency: Optional[str] = Field(default=None)
    medical: bool = Field(default=False)


class DiabetesHistory(BaseModel):
    has_condition: bool = False
    type: Optional[Literal["type1", "type2"]] = None
    controlled: bool = Field(default=True)
    a1c: Optional[float] = Field(default=None, gt=0)
    years_since_diagnosis: Optional[float] = Field(default=None, ge=0)


class CardiacHistory(BaseModel):
    has_history: bool = False
    conditions: List[str] = Field(default_factory=list, description="mi, stents, angina, chf")
    years_since_event: Optional[float] = Field(default=None, ge=0)


class CancerHistory(BaseModel):
    has_history: bool = False
    type: Optional[str] = None
    stage: Optional[str] = None
    years_since_treatment: Optional[float] = Field(default=None, ge=0)


class CoverageTarget(BaseModel):
    amount: float = Field(gt=0, description="Desired face amount in dollars")
    product_type: str = Field(default="term", min_length=1, description="term, iul, whole, annuity")


class ClientProfile(BaseModel):
    """Structured underwriting intake for one prospective insured."""
    age: int = Field(ge=0, le=120)
    sex: Optional[Literal["male", "female"]] = None
    state: Optional[str] = Field(default=None, description="Residence state, used for carrier availability")
    height_inches: float = Field(gt=0)
    weight_pounds: float = Field(gt=0)
    tobacco: TobaccoUse = Field(default_factory=TobaccoUse)
    cannabis: CannabisUse = Field(default_factory=CannabisUse)
    diabetes: Optional[DiabetesHistory] = None
    cardiac: Optional[CardiacHistory] = None
    cancer: Optional[CancerHistory] = None
    dui_history: bool = False
    risk_activities: List[str] = Field(default_factory=list, description="aviation, scuba, racing, climbing")
    coverage: CoverageTarget

    model_config = {"frozen": True}

    @property
    def bmi(self) -> float:
        """Body mass index from imperial units."""
        return self.weight_pounds / (self.height_inches ** 2) * 703

    @property
    def has_diabetes(self) -> bool:
        return bool(self.diabetes and self.diabetes.has_condition)

    @property
    def has_cardiac_history(self) -> bool:
        return bool(self.cardiac and self.cardiac.has_history)

    @property
    def has_cancer_history(self) -> bool:
        return bool(self.cancer and self.cancer.has_history)

    @property
    def has_medical_history(self) -> bool:
        return self.has_diabetes or self.has_cardiac_history or self.has_cancer_history


# ---------------------------------------------------------------------------
# Retrieval and scoring
# ---------------------------------------------------------------------------

class QueryDimension(str, Enum):
    """Underwriting dimension a retrieval query targets, in precedence order."""
    ELIGIBILITY = "eligibility"
    BUILD = "build"
    TOBACCO = "tobacco"
    CANNABIS = "cannabis"
    DIABETES = "diabetes"
    CARDIAC = "cardiac"
    CANCER = "cancer"
    RISK_ACTIVITY = "risk_activity"
    ACCELERATED_UNDERWRITING = "accelerated_underwriting"
    FINANCIAL_UNDERWRITING = "financial_underwriting"


class RetrievalQuery(BaseModel):
    dimension: QueryDimension
    text: str = Field(min_length=1)


class ChunkReference(BaseModel):
    """Chunk joined with its parent document metadata."""
    chunk_id: str
    document_id: str
    carrier_id: str
    text: str
    section: Optional[str] = None
    document_title: str
    effective_date: date


class RetrievalResult(BaseModel):
    """One scored passage for one (carrier, query) pair."""
    chunk: ChunkReference
    score: float = Field(ge=0.0, le=1.0)
    carrier_id: str


class QueryRetrieval(BaseModel):
    """All results a carrier returned for one query, best first."""
    carrier_id: str
    query: RetrievalQuery
    results: List[RetrievalResult] = Field(default_factory=list)
    failed: bool = Field(default=False, description="The index call failed and was recovered as empty")

    @property
    def best(self) -> Optional[RetrievalResult]:
        return max(self.results, key=lambda r: r.score) if self.results else None


class Citation(BaseModel):
    """Traceable excerpt supporting a recommendation."""
    chunk_id: str
    snippet: str
    document_title: str
    effective_date: date
    section: Optional[str] = None
    score: float


class CarrierRecommendation(BaseModel):
    """Fit assessment for one carrier, computed fresh per evaluation."""
    carrier_id: str
    carrier_name: str
    fit_score: int = Field(ge=0, le=100)
    confidence: Literal["low", "medium", "high"]
    reasons: List[str] = Field(min_length=1)
    advisories: List[str] = Field(default_factory=list)
    citations: List[Citation] = Field(default_factory=list, max_length=5)
    further_review_likely: bool = False
    matched_criteria: List[QueryDimension] = Field(default_factory=list)
    queries_matched: int = Field(default=0, ge=0)
    evidence_sufficient: bool = Field(default=False)
    preference_rank: int = Field(default=99)
    is_fallback: bool = Field(default=False)


# ---------------------------------------------------------------------------
# Operation results
# ---------------------------------------------------------------------------

class IngestionRequest(BaseModel):
    """One document to ingest."""
    document_text: str
    carrier_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    effective_date: date
    version: Optional[int] = Field(default=None, ge=1)
    source_location: Optional[str] = None


class IngestionResult(BaseModel):
    document_id: str
    carrier_id: str
    version: int
    chunk_count: int = 0
    embedded_count: int = 0
    unembedded_count: int = 0
    superseded_document_id: Optional[str] = None
    reused_existing: bool = False


class EvaluationMetrics(BaseModel):
    """Metrics about one evaluation run."""
    total_duration_seconds: float
    carriers_evaluated: int = 0
    query_count: int = 0
    retrieval_calls: int = 0
    retrieval_failures: int = 0
    embedding_failures: int = 0
    citations_found: int = 0


class EvaluationSummary(BaseModel):
    top_pick: Optional[str] = None
    top_carrier_id: Optional[str] = None
    average_fit: float = 0.0
    total_carriers_evaluated: int = 0
    further_review_recommended: bool = False


class EvaluationResult(BaseModel):
    """Complete result of one evaluation request."""
    evaluation_id: str
    profile: ClientProfile
    queries: List[RetrievalQuery] = Field(default_factory=list)
    recommendations: List[CarrierRecommendation] = Field(min_length=1)
    summary: EvaluationSummary
    metrics: Optional[EvaluationMetrics] = None
    generated_at: datetime = Field(default_factory=_utcnow)
    warnings: List[str] = Field(default_factory=list)
