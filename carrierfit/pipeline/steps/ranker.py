"""
Step 5: Ranking
Orders carrier recommendations and guarantees a non-empty result.
"""

import logging
from typing import List, Optional

from carrierfit.config import get_settings
from carrierfit.pipeline.models import CarrierRecommendation, ClientProfile
from carrierfit.pipeline.steps.underwriting_rules import generate_advisories, generate_reasons


logger = logging.getLogger(__name__)

FALLBACK_CARRIER_ID = "fallback"
FALLBACK_CARRIER_NAME = "No carrier guidelines available"


class RankerStep:
    """
    Sorts by fit score descending, then preference rank ascending, and
    truncates to top_n. An empty input yields one synthetic low-confidence
    recommendation instead of an empty list.
    """

    def __init__(self, top_n: Optional[int] = None, neutral_fit_score: Optional[int] = None):
        settings = get_settings()
        if top_n is not None and top_n <= 0:
            raise ValueError(f"top_n must be positive, got {top_n}")
        self.top_n = top_n if top_n is not None else settings.default_top_n
        self.neutral_fit_score = (
            neutral_fit_score if neutral_fit_score is not None else settings.neutral_fit_score
        )

    def execute(
        self,
        recommendations: List[CarrierRecommendation],
        profile: ClientProfile,
        top_n: Optional[int] = None,
    ) -> List[CarrierRecommendation]:
        """
        Rank recommendations.

        Args:
            recommendations: Scored carriers, any order
            profile: Client profile, used to build the fallback entry
            top_n: Overrides the configured limit; None means unlimited

        Returns:
            Ranked recommendations, never empty

        Raises:
            ValueError: if top_n is not positive
        """
        if top_n is not None and top_n <= 0:
            raise ValueError(f"top_n must be positive, got {top_n}")

        if not recommendations:
            logger.info("No carriers to rank, returning fallback recommendation")
            return [self.fallback(profile)]

        ranked = sorted(recommendations, key=lambda r: (-r.fit_score, r.preference_rank))

        limit = top_n if top_n is not None else self.top_n
        if limit is not None:
            ranked = ranked[:limit]
        return ranked

    def fallback(self, profile: ClientProfile) -> CarrierRecommendation:
        """Synthetic entry returned when there is nothing to evaluate."""
        fit_score = self.neutral_fit_score
        return CarrierRecommendation(
            carrier_id=FALLBACK_CARRIER_ID,
            carrier_name=FALLBACK_CARRIER_NAME,
            fit_score=fit_score,
            confidence="low",
            reasons=generate_reasons(profile, None, fit_score, evidence_sufficient=False),
            advisories=generate_advisories(profile, evidence_sufficient=False),
            citations=[],
            further_review_likely=True,
            is_fallback=True,
        )
