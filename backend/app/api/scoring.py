"""Scoring API: score ad-hoc metrics without persisting anything."""

from fastapi import APIRouter

from app.schemas import ScorePreviewRequest, ScorePreviewResponse
from app.services.municipalities import sanitize_amount
from app.services.scoring import ScoringInput, calculate_financial_score, classify_audit_outcome

router = APIRouter()


@router.post("/preview", response_model=ScorePreviewResponse)
async def preview_score(data: ScorePreviewRequest):
    population = data.population if data.population and data.population > 0 else None
    breakdown = calculate_financial_score(
        ScoringInput(
            revenue=sanitize_amount("revenue", data.revenue, "preview"),
            operating_expenditure=sanitize_amount("operating_expenditure", data.operating_expenditure, "preview"),
            capital_expenditure=sanitize_amount("capital_expenditure", data.capital_expenditure, "preview"),
            debt=sanitize_amount("debt", data.debt, "preview"),
            audit_outcome=data.audit_outcome,
            population=population,
        )
    )
    audit = classify_audit_outcome(data.audit_outcome)
    return {
        "scores": breakdown.as_dict(),
        "audit": {
            "category": audit.category.value,
            "label": audit.label,
            "recognized": audit.is_recognized,
        },
    }
