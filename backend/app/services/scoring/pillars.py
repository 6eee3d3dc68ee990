"""Pillar calculators for the municipal financial score.

Each calculator takes optional inputs and returns an optional 0-100 score.
``None`` means the pillar cannot be assessed (missing input or a
non-positive denominator); the aggregator decides what that is worth.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Sequence

from app.services.scoring.audit import classify_audit_outcome
from app.services.scoring.numeric import ZERO, clamp_score
from app.services.scoring.policy import DEFAULT_POLICY, Anchor, ScoringPolicy


def interpolate_piecewise(value: Decimal, anchors: Sequence[Anchor]) -> Decimal:
    """Piecewise linear interpolation over (x, score) anchors sorted by x.

    Values outside the anchor range take the nearest end score; nothing is
    extrapolated.  The result is clamped to [0, 100].
    """
    first_x, first_y = anchors[0]
    last_x, last_y = anchors[-1]
    if value <= first_x:
        return clamp_score(first_y)
    if value >= last_x:
        return clamp_score(last_y)

    for (x0, y0), (x1, y1) in zip(anchors, anchors[1:]):
        if x0 <= value <= x1:
            t = (value - x0) / (x1 - x0)
            return clamp_score(y0 + t * (y1 - y0))
    return clamp_score(last_y)


# ── Financial health ─────────────────────────────────────────

def revenue_per_capita_subscore(
    revenue: Optional[Decimal],
    population: Optional[int],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> Optional[Decimal]:
    if revenue is None or population is None or population <= 0:
        return None
    rev_per_capita = revenue / Decimal(population)
    return interpolate_piecewise(rev_per_capita, policy.revenue_per_capita_curve)


def debt_ratio_subscore(
    debt: Optional[Decimal],
    revenue: Optional[Decimal],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> Optional[Decimal]:
    """Lower debt relative to revenue scores higher."""
    if debt is None or revenue is None or revenue <= ZERO:
        return None
    return interpolate_piecewise(debt / revenue, policy.debt_ratio_curve)


def financial_health_score(
    revenue: Optional[Decimal],
    debt: Optional[Decimal],
    population: Optional[int],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> Optional[Decimal]:
    """Weighted blend of the revenue-per-capita and debt-ratio sub-scores.

    Both sub-scores are required; if either is ``None`` so is the pillar.
    """
    rev_score = revenue_per_capita_subscore(revenue, population, policy)
    debt_score = debt_ratio_subscore(debt, revenue, policy)
    if rev_score is None or debt_score is None:
        return None
    return clamp_score(
        rev_score * policy.weight_revenue_per_capita
        + debt_score * policy.weight_debt_ratio
    )


# ── Infrastructure investment ────────────────────────────────

def infrastructure_score(
    operating_expenditure: Optional[Decimal],
    capital_expenditure: Optional[Decimal],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> Optional[Decimal]:
    """Capex share of total expenditure, capex / (opex + capex).

    A municipality with no positive total spend is scored 0, not skipped.
    """
    if operating_expenditure is None or capital_expenditure is None:
        return None
    total = operating_expenditure + capital_expenditure
    if total <= ZERO:
        return ZERO
    capex = max(capital_expenditure, ZERO)
    return interpolate_piecewise(capex / total, policy.infrastructure_curve)


# ── Operating efficiency ─────────────────────────────────────

def efficiency_score(
    operating_expenditure: Optional[Decimal],
    revenue: Optional[Decimal],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> Optional[Decimal]:
    """Opex / revenue around breakeven; spending less than you earn scores high."""
    if operating_expenditure is None or revenue is None or revenue <= ZERO:
        return None
    return interpolate_piecewise(operating_expenditure / revenue, policy.efficiency_curve)


# ── Accountability ───────────────────────────────────────────

def accountability_score(
    audit_outcome: Optional[str],
    policy: ScoringPolicy = DEFAULT_POLICY,
) -> Decimal:
    # Never None: a missing audit opinion is itself scored as worst case.
    classification = classify_audit_outcome(audit_outcome)
    return clamp_score(policy.audit_scores[classification.category])
