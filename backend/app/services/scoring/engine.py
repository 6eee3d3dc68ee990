"""Municipal financial scoring engine.

Turns raw financial metrics into a weighted 0-100 overall score with four
pillar scores (financial health, infrastructure, efficiency, accountability).
The engine is pure and synchronous; it never raises for missing data.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from app.services.scoring.numeric import ZERO, clamp_score, decimal_to_float
from app.services.scoring.pillars import (
    accountability_score,
    efficiency_score,
    financial_health_score,
    infrastructure_score,
)
from app.services.scoring.policy import DEFAULT_POLICY, ScoringPolicy

logger = logging.getLogger("seemycity.scoring")


@dataclass(frozen=True)
class ScoringInput:
    """Raw metrics for one municipality-year. Every field is optional."""
    revenue: Optional[Decimal] = None
    operating_expenditure: Optional[Decimal] = None
    capital_expenditure: Optional[Decimal] = None
    debt: Optional[Decimal] = None
    audit_outcome: Optional[str] = None
    population: Optional[int] = None


@dataclass(frozen=True)
class ScoreBreakdown:
    """Output from scoring. All scores are in [0, 100]."""
    overall_score: Decimal
    financial_health_score: Decimal
    infrastructure_score: Decimal
    efficiency_score: Decimal
    accountability_score: Decimal

    def as_dict(self) -> dict[str, Decimal]:
        return {
            "overall_score": self.overall_score,
            "financial_health_score": self.financial_health_score,
            "infrastructure_score": self.infrastructure_score,
            "efficiency_score": self.efficiency_score,
            "accountability_score": self.accountability_score,
        }

    def as_json(self) -> dict[str, Any]:
        return {key: decimal_to_float(value) for key, value in self.as_dict().items()}


def score_or_default(score: Optional[Decimal]) -> Decimal:
    """Missing-pillar policy: a pillar that cannot be assessed counts as 0.

    Weights are not renormalised, so missing data pulls the overall score
    down rather than being excluded from it.
    """
    if score is None:
        return ZERO
    return score


def calculate_financial_score(
    input_data: ScoringInput,
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> ScoreBreakdown:
    """Score one municipality-year.

    overall = 0.30 * financial_health + 0.25 * infrastructure
              + 0.25 * efficiency + 0.20 * accountability
    (weights taken from ``policy``).
    """
    logger.debug("Calculating financial score with input: %s", input_data)

    fin_health = score_or_default(
        financial_health_score(input_data.revenue, input_data.debt, input_data.population, policy)
    )
    infra = score_or_default(
        infrastructure_score(input_data.operating_expenditure, input_data.capital_expenditure, policy)
    )
    efficiency = score_or_default(
        efficiency_score(input_data.operating_expenditure, input_data.revenue, policy)
    )
    accountability = accountability_score(input_data.audit_outcome, policy)

    overall = clamp_score(
        fin_health * policy.weight_financial_health
        + infra * policy.weight_infrastructure
        + efficiency * policy.weight_efficiency
        + accountability * policy.weight_accountability
    )

    logger.info(
        "Calculated scores: overall=%.2f fh=%.2f infra=%.2f eff=%.2f acc=%.2f",
        overall, fin_health, infra, efficiency, accountability,
    )

    return ScoreBreakdown(
        overall_score=overall,
        financial_health_score=clamp_score(fin_health),
        infrastructure_score=clamp_score(infra),
        efficiency_score=clamp_score(efficiency),
        accountability_score=accountability,
    )
