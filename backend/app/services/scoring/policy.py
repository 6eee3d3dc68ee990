"""Scoring policy: the weights and curve breakpoints used by the engine.

The policy shape is fixed (which breakpoints exist); only the values are
tunable.  A policy validates itself on construction, so a bad set of weights
fails at startup rather than producing skewed rankings.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType

from app.services.scoring.audit import AuditCategory
from app.services.scoring.numeric import HUNDRED, ONE, ZERO

Anchor = tuple[Decimal, Decimal]

MID_SCORE = Decimal("50")


class ScoringPolicyError(ValueError):
    """Raised when a scoring policy is internally inconsistent."""


def _default_audit_scores() -> dict[AuditCategory, Decimal]:
    return {
        AuditCategory.CLEAN: Decimal("100"),
        AuditCategory.FINANCIALLY_UNQUALIFIED: Decimal("75"),
        AuditCategory.QUALIFIED: Decimal("50"),
        AuditCategory.ADVERSE: Decimal("25"),
        AuditCategory.DISCLAIMER: Decimal("25"),
        AuditCategory.UNRECOGNIZED: Decimal("0"),
    }


@dataclass(frozen=True)
class ScoringPolicy:
    # Pillar weights (must sum to exactly 1)
    weight_financial_health: Decimal = Decimal("0.30")
    weight_infrastructure: Decimal = Decimal("0.25")
    weight_efficiency: Decimal = Decimal("0.25")
    weight_accountability: Decimal = Decimal("0.20")

    # Financial-health sub-weights (must sum to exactly 1)
    weight_revenue_per_capita: Decimal = Decimal("0.5")
    weight_debt_ratio: Decimal = Decimal("0.5")

    # Revenue per capita: MIN -> 0, MAX -> 100
    rev_per_capita_min: Decimal = Decimal("0")
    rev_per_capita_max: Decimal = Decimal("14000")

    # Debt / revenue: MIN -> 100, MAX -> 0
    debt_ratio_min: Decimal = Decimal("0.10")
    debt_ratio_max: Decimal = Decimal("1.0")

    # Capex / (opex + capex): WORST -> 0, MID -> 50, BEST -> 100
    infra_ratio_worst: Decimal = Decimal("0.00")
    infra_ratio_mid: Decimal = Decimal("0.10")
    infra_ratio_best: Decimal = Decimal("0.30")

    # Opex / revenue: BEST -> 100, MID -> 50, WORST -> 0
    efficiency_ratio_best: Decimal = Decimal("0.85")
    efficiency_ratio_mid: Decimal = Decimal("1.10")
    efficiency_ratio_worst: Decimal = Decimal("1.15")

    # Wrapped read-only in __post_init__; left out of the hash
    audit_scores: Mapping[AuditCategory, Decimal] = field(
        default_factory=_default_audit_scores, hash=False,
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "audit_scores", MappingProxyType(dict(self.audit_scores)))

        for name, weight in (
            ("weight_financial_health", self.weight_financial_health),
            ("weight_infrastructure", self.weight_infrastructure),
            ("weight_efficiency", self.weight_efficiency),
            ("weight_accountability", self.weight_accountability),
            ("weight_revenue_per_capita", self.weight_revenue_per_capita),
            ("weight_debt_ratio", self.weight_debt_ratio),
        ):
            if not ZERO <= weight <= ONE:
                raise ScoringPolicyError(f"{name} must be between 0 and 1, got {weight}")

        pillar_total = (
            self.weight_financial_health
            + self.weight_infrastructure
            + self.weight_efficiency
            + self.weight_accountability
        )
        if pillar_total != ONE:
            raise ScoringPolicyError(f"Pillar weights must sum to 1, got {pillar_total}")

        sub_total = self.weight_revenue_per_capita + self.weight_debt_ratio
        if sub_total != ONE:
            raise ScoringPolicyError(f"Financial health sub-weights must sum to 1, got {sub_total}")

        for name, curve in (
            ("revenue_per_capita", self.revenue_per_capita_curve),
            ("debt_ratio", self.debt_ratio_curve),
            ("infrastructure", self.infrastructure_curve),
            ("efficiency", self.efficiency_curve),
        ):
            xs = [x for x, _ in curve]
            if any(b <= a for a, b in zip(xs, xs[1:])):
                raise ScoringPolicyError(f"{name} breakpoints must be strictly increasing: {xs}")

        missing = set(AuditCategory) - set(self.audit_scores)
        if missing:
            raise ScoringPolicyError(
                f"Audit score table is missing: {sorted(c.value for c in missing)}"
            )
        for category, score in self.audit_scores.items():
            if not ZERO <= score <= HUNDRED:
                raise ScoringPolicyError(f"Audit score for {category.value} out of range: {score}")

    @property
    def pillar_weights(self) -> dict[str, Decimal]:
        return {
            "financial_health": self.weight_financial_health,
            "infrastructure": self.weight_infrastructure,
            "efficiency": self.weight_efficiency,
            "accountability": self.weight_accountability,
        }

    @property
    def revenue_per_capita_curve(self) -> tuple[Anchor, ...]:
        return ((self.rev_per_capita_min, ZERO), (self.rev_per_capita_max, HUNDRED))

    @property
    def debt_ratio_curve(self) -> tuple[Anchor, ...]:
        return ((self.debt_ratio_min, HUNDRED), (self.debt_ratio_max, ZERO))

    @property
    def infrastructure_curve(self) -> tuple[Anchor, ...]:
        return (
            (self.infra_ratio_worst, ZERO),
            (self.infra_ratio_mid, MID_SCORE),
            (self.infra_ratio_best, HUNDRED),
        )

    @property
    def efficiency_curve(self) -> tuple[Anchor, ...]:
        return (
            (self.efficiency_ratio_best, HUNDRED),
            (self.efficiency_ratio_mid, MID_SCORE),
            (self.efficiency_ratio_worst, ZERO),
        )


DEFAULT_POLICY = ScoringPolicy()
