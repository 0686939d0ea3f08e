"""
Deterministic underwriting rules.
Cross-reference a client profile against fixed thresholds to produce
reasons, advisories and the further-review flag. Independent of retrieval.
"""

from typing import List, Optional

from carrierfit.pipeline.models import Carrier, ClientProfile


SIMPLIFIED_MAX_AGE = 60
SIMPLIFIED_MAX_COVERAGE = 1_000_000
STANDARD_BMI_RANGE = (18.5, 30.0)
LARGE_FACE_AMOUNT = 1_000_000
PREFERRED_RANK_CUTOFF = 2
MAX_REASONS = 4

REVIEW_AGE = 55
REVIEW_COVERAGE = 500_000
REVIEW_FIT_SCORE = 70

STANDARD_REVIEW_REASON = "Standard underwriting review available"
LIMITED_DATA_ADVISORY = "Limited data available - verify requirements with carrier"


def generate_reasons(
    profile: ClientProfile,
    carrier: Optional[Carrier],
    fit_score: int,
    evidence_sufficient: bool,
) -> List[str]:
    """
    Reasons supporting a carrier for this profile, most general first.
    Never empty.
    """
    reasons = []

    if profile.age <= SIMPLIFIED_MAX_AGE and profile.coverage.amount <= SIMPLIFIED_MAX_COVERAGE:
        reasons.append("Age and amount qualify for simplified underwriting")

    low, high = STANDARD_BMI_RANGE
    if low <= profile.bmi <= high:
        reasons.append("Build within standard range")

    if profile.tobacco.status == "never":
        reasons.append("Non-tobacco qualification")

    if evidence_sufficient:
        if fit_score > 80:
            reasons.append("Strong carrier match based on profile")
        elif fit_score > 60:
            reasons.append("Good carrier option with consideration")

    if carrier is not None and carrier.preference_rank <= PREFERRED_RANK_CUTOFF:
        reasons.append("Preferred carrier in agency lineup")

    return reasons[:MAX_REASONS] or [STANDARD_REVIEW_REASON]


def generate_advisories(profile: ClientProfile, evidence_sufficient: bool) -> List[str]:
    advisories = []

    if profile.tobacco.status == "current":
        advisories.append("Current nicotine use will impact rating class")

    if profile.cannabis.status in ("current", "past_12_months"):
        advisories.append("Recent marijuana use may disqualify accelerated underwriting")

    if profile.coverage.amount > LARGE_FACE_AMOUNT:
        advisories.append("Large face amount may require additional financial documentation")

    if profile.has_medical_history:
        advisories.append("Medical history requires careful underwriting review")

    if not evidence_sufficient:
        advisories.append(LIMITED_DATA_ADVISORY)

    return advisories


def further_review_likely(profile: ClientProfile, fit_score: int) -> bool:
    """Whether attending-physician statements or similar review are likely."""
    return (
        profile.age > REVIEW_AGE
        or profile.coverage.amount > REVIEW_COVERAGE
        or profile.has_medical_history
        or fit_score < REVIEW_FIT_SCORE
    )
