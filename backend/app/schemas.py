"""Pydantic schemas for request/response validation."""

from decimal import Decimal
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, Field, PlainSerializer

# Decimals are exact internally and plain JSON numbers on the wire
JsonDecimal = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


# ── Municipalities ────────────────────────────────────

class MunicipalityBasic(BaseModel):
    id: str
    name: str
    province: str


class FinancialYearResponse(BaseModel):
    year: int
    revenue: Optional[JsonDecimal] = None
    operating_expenditure: Optional[JsonDecimal] = None
    capital_expenditure: Optional[JsonDecimal] = None
    debt: Optional[JsonDecimal] = None
    audit_outcome: Optional[str] = None
    audit_category: str = "unrecognized"
    overall_score: Optional[JsonDecimal] = None
    financial_health_score: Optional[JsonDecimal] = None
    infrastructure_score: Optional[JsonDecimal] = None
    efficiency_score: Optional[JsonDecimal] = None
    accountability_score: Optional[JsonDecimal] = None


class MunicipalityDetailResponse(BaseModel):
    id: str
    name: str
    province: str
    population: Optional[float] = None
    classification: Optional[str] = None
    address: Optional[str] = None
    website: Optional[str] = None
    phone: Optional[str] = None
    district_id: Optional[str] = None
    district_name: Optional[str] = None
    geometry: Optional[dict[str, Any]] = None
    financials: list[FinancialYearResponse] = []


# ── Map (GeoJSON) ─────────────────────────────────────

class MapFeatureProperties(BaseModel):
    id: str
    name: str
    province: str
    population: Optional[float] = None
    classification: Optional[str] = None
    latest_score: Optional[float] = None


class MapFeature(BaseModel):
    type: Literal["Feature"] = "Feature"
    geometry: dict[str, Any]
    properties: MapFeatureProperties


class MapFeatureCollection(BaseModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: list[MapFeature] = []


# ── Scoring ───────────────────────────────────────────

class ScorePreviewRequest(BaseModel):
    """Ad-hoc metrics to score without touching the cache."""
    revenue: Optional[Decimal] = None
    operating_expenditure: Optional[Decimal] = None
    capital_expenditure: Optional[Decimal] = None
    debt: Optional[Decimal] = None
    audit_outcome: Optional[str] = Field(None, max_length=200)
    population: Optional[int] = None


class AuditClassificationResponse(BaseModel):
    category: str
    label: Optional[str] = None
    recognized: bool


class ScoreBreakdownResponse(BaseModel):
    overall_score: JsonDecimal
    financial_health_score: JsonDecimal
    infrastructure_score: JsonDecimal
    efficiency_score: JsonDecimal
    accountability_score: JsonDecimal


class ScorePreviewResponse(BaseModel):
    scores: ScoreBreakdownResponse
    audit: AuditClassificationResponse


# ── System ────────────────────────────────────────────

class HealthResponse(BaseModel):
    status: str  # healthy | degraded
    service: str
    version: str
    upstream: str
    upstream_reachable: bool
