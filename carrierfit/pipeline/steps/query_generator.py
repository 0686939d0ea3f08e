"""
Step 2: Query Generation
Derives retrieval queries from a client profile.
"""

import math
from typing import List, Optional

from carrierfit.config import get_settings
from carrierfit.pipeline.models import ClientProfile, QueryDimension, RetrievalQuery


MIN_QUERIES = 3
MAX_QUERIES = 9


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _amount(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.2f}"


class QueryGeneratorStep:
    """
    Rule-based query generation.

    Emits one query per relevant underwriting dimension in a fixed order:
    eligibility, build, tobacco, cannabis, medical conditions, risk
    activities, accelerated underwriting, financial underwriting. The
    eligibility query is always first and tobacco is always present.
    """

    def __init__(
        self,
        accelerated_max_age: Optional[int] = None,
        accelerated_max_coverage: Optional[float] = None,
        financial_coverage_threshold: Optional[float] = None,
    ):
        settings = get_settings()
        self.accelerated_max_age = (
            accelerated_max_age if accelerated_max_age is not None else settings.accelerated_max_age
        )
        self.accelerated_max_coverage = (
            accelerated_max_coverage if accelerated_max_coverage is not None
            else settings.accelerated_max_coverage
        )
        self.financial_coverage_threshold = (
            financial_coverage_threshold if financial_coverage_threshold is not None
            else settings.financial_coverage_threshold
        )

    def execute(self, profile: ClientProfile) -> List[RetrievalQuery]:
        """
        Generate retrieval queries for a profile.

        Args:
            profile: Client underwriting intake

        Returns:
            Ordered list of tagged queries
        """
        coverage = profile.coverage
        queries = [
            RetrievalQuery(
                dimension=QueryDimension.ELIGIBILITY,
                text=(
                    f"age {profile.age} face amount {_amount(coverage.amount)} "
                    f"{coverage.product_type} underwriting requirements"
                ),
            ),
            RetrievalQuery(
                dimension=QueryDimension.BUILD,
                text=(
                    f"BMI {round_half_up(profile.bmi)} height {_amount(profile.height_inches)} "
                    f"weight {_amount(profile.weight_pounds)} build chart requirements"
                ),
            ),
            self._tobacco_query(profile),
        ]

        if profile.cannabis.status != "never":
            cannabis = profile.cannabis
            detail = " ".join(
                part for part in (cannabis.status, cannabis.type, cannabis.frequency) if part
            )
            queries.append(RetrievalQuery(
                dimension=QueryDimension.CANNABIS,
                text=f"marijuana cannabis use {detail} underwriting impact",
            ))

        if profile.has_diabetes:
            diabetes = profile.diabetes
            control = "controlled" if diabetes.controlled else "uncontrolled"
            parts = [diabetes.type or "", control]
            if diabetes.a1c is not None:
                parts.append(f"A1C {diabetes.a1c:g}")
            queries.append(RetrievalQuery(
                dimension=QueryDimension.DIABETES,
                text=f"diabetes {' '.join(p for p in parts if p)} underwriting",
            ))

        if profile.has_cardiac_history:
            cardiac = profile.cardiac
            parts = list(cardiac.conditions)
            if cardiac.years_since_event is not None:
                parts.append(f"{cardiac.years_since_event:g} years since event")
            queries.append(RetrievalQuery(
                dimension=QueryDimension.CARDIAC,
                text=" ".join(["cardiac heart condition", *parts, "underwriting requirements"]),
            ))

        if profile.has_cancer_history:
            cancer = profile.cancer
            parts = [cancer.type or "", cancer.stage or ""]
            if cancer.years_since_treatment is not None:
                parts.append(f"survivor {cancer.years_since_treatment:g} years post-treatment")
            queries.append(RetrievalQuery(
                dimension=QueryDimension.CANCER,
                text=" ".join(["cancer", *(p for p in parts if p), "underwriting"]),
            ))

        if profile.dui_history or profile.risk_activities:
            parts = list(profile.risk_activities)
            if profile.dui_history:
                parts.append("DUI driving history")
            queries.append(RetrievalQuery(
                dimension=QueryDimension.RISK_ACTIVITY,
                text=f"avocation hazardous activity {', '.join(parts)} underwriting requirements",
            ))

        if (
            profile.age <= self.accelerated_max_age
            and coverage.amount <= self.accelerated_max_coverage
        ):
            queries.append(RetrievalQuery(
                dimension=QueryDimension.ACCELERATED_UNDERWRITING,
                text="accelerated simplified issue no exam underwriting eligibility",
            ))

        if coverage.amount > self.financial_coverage_threshold:
            queries.append(RetrievalQuery(
                dimension=QueryDimension.FINANCIAL_UNDERWRITING,
                text=(
                    f"financial underwriting income verification face amount "
                    f"{_amount(coverage.amount)} requirements"
                ),
            ))

        return queries[:MAX_QUERIES]

    @staticmethod
    def _tobacco_query(profile: ClientProfile) -> RetrievalQuery:
        tobacco = profile.tobacco
        if tobacco.status == "never":
            text = "non-tobacco non-smoker qualification requirements"
        else:
            detail = " ".join(part for part in (tobacco.status, tobacco.type, tobacco.frequency) if part)
            text = f"nicotine tobacco use {detail} underwriting guidelines"
        return RetrievalQuery(dimension=QueryDimension.TOBACCO, text=text)
