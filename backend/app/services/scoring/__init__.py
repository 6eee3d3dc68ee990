"""Municipal financial scoring: pillar calculators, policy and aggregator."""

from app.services.scoring.audit import (
    AuditCategory,
    AuditClassification,
    classify_audit_outcome,
)
from app.services.scoring.engine import (
    ScoreBreakdown,
    ScoringInput,
    calculate_financial_score,
    score_or_default,
)
from app.services.scoring.policy import DEFAULT_POLICY, ScoringPolicy, ScoringPolicyError
