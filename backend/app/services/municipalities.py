"""Municipality service: map data, detail lookups and the cache-or-fetch flow.

A detail request for one municipality-year:

1. loads the municipality row (None → caller returns 404);
2. reads the cached ``financial_data`` row for the year;
3. fetches only the metrics the cache is missing, concurrently;
4. clamps negative amounts to zero and scores the result;
5. upserts metrics and scores back to the cache.

Upstream and cache failures are logged and never fail the request; the
caller always gets the freshest data that could be assembled.
"""

from __future__ import annotations

import asyncio
import json
import logging
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.financial import FinancialData, METRIC_FIELDS, SCORE_FIELDS
from app.models.municipality import Municipality, MunicipalGeometry
from app.services.error_logger import log_error_standalone
from app.services.financials import (
    get_all_financial_years,
    get_cached_financials,
    upsert_financial_record,
)
from app.services.muni_money.adapter import FinancialDataSource
from app.services.scoring import (
    ScoreBreakdown,
    ScoringInput,
    calculate_financial_score,
    classify_audit_outcome,
)
from app.services.scoring.numeric import ZERO, decimal_to_float, to_decimal

logger = logging.getLogger(__name__)

AMOUNT_FIELDS = ("revenue", "operating_expenditure", "capital_expenditure", "debt")


# ── Reference data reads ────────────────────────────────────

async def get_all_municipalities_basic(db: AsyncSession) -> list[dict[str, Any]]:
    result = await db.execute(
        select(Municipality.id, Municipality.name, Municipality.province)
        .order_by(Municipality.name)
    )
    return [
        {"id": row.id, "name": row.name, "province": row.province}
        for row in result.all()
    ]


async def get_municipality(db: AsyncSession, municipality_id: str) -> Optional[Municipality]:
    result = await db.execute(select(Municipality).where(Municipality.id == municipality_id))
    return result.scalar_one_or_none()


def parse_geometry(raw: Optional[str], municipality_id: str) -> Optional[dict[str, Any]]:
    """Decode ``ST_AsGeoJSON`` output; None when absent or malformed."""
    if raw is None:
        return None
    try:
        geometry = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Unparseable geometry for municipality %s", municipality_id)
        return None
    if not isinstance(geometry, dict):
        logger.warning("Geometry for municipality %s is not a GeoJSON object", municipality_id)
        return None
    return geometry


async def get_municipality_geometry(db: AsyncSession, municipality_id: str) -> Optional[dict[str, Any]]:
    result = await db.execute(
        select(func.ST_AsGeoJSON(MunicipalGeometry.geom))
        .where(MunicipalGeometry.munic_id == municipality_id)
        .limit(1)
    )
    return parse_geometry(result.scalar_one_or_none(), municipality_id)


async def get_map_features(db: AsyncSession, limit: int) -> dict[str, Any]:
    """GeoJSON FeatureCollection of municipalities with their latest overall score."""
    latest = (
        select(
            FinancialData.municipality_id,
            FinancialData.overall_score,
            func.row_number()
            .over(partition_by=FinancialData.municipality_id, order_by=FinancialData.year.desc())
            .label("rn"),
        )
        .subquery()
    )
    stmt = (
        select(
            Municipality.id,
            Municipality.name,
            Municipality.province,
            Municipality.population,
            Municipality.classification,
            func.ST_AsGeoJSON(MunicipalGeometry.geom).label("geometry"),
            latest.c.overall_score,
        )
        .outerjoin(MunicipalGeometry, MunicipalGeometry.munic_id == Municipality.id)
        .outerjoin(latest, and_(latest.c.municipality_id == Municipality.id, latest.c.rn == 1))
        .order_by(Municipality.name)
        .limit(limit)
    )
    result = await db.execute(stmt)

    features = []
    skipped = 0
    for row in result.all():
        geometry = parse_geometry(row.geometry, row.id)
        if geometry is None:
            skipped += 1
            logger.warning("Skipping municipality %s on map: no geometry", row.id)
            continue
        features.append({
            "type": "Feature",
            "geometry": geometry,
            "properties": {
                "id": row.id,
                "name": row.name,
                "province": row.province,
                "population": row.population,
                "classification": row.classification,
                "latest_score": decimal_to_float(row.overall_score),
            },
        })

    logger.info("Built map with %d features (%d skipped)", len(features), skipped)
    return {"type": "FeatureCollection", "features": features}


# ── Scoring inputs ──────────────────────────────────────────

def sanitize_amount(field: str, value: Any, municipality_id: str = "?") -> Optional[Decimal]:
    """Convert an upstream amount to Decimal, clamping negatives to zero."""
    amount = to_decimal(value)
    if amount is not None and amount < ZERO:
        logger.warning(
            "Negative %s (%s) for municipality %s clamped to 0", field, amount, municipality_id,
        )
        return ZERO
    return amount


def build_scoring_input(metrics: dict[str, Any], population: Optional[int]) -> ScoringInput:
    return ScoringInput(
        revenue=metrics.get("revenue"),
        operating_expenditure=metrics.get("operating_expenditure"),
        capital_expenditure=metrics.get("capital_expenditure"),
        debt=metrics.get("debt"),
        audit_outcome=metrics.get("audit_outcome"),
        population=population,
    )


def _fetchers(source: FinancialDataSource) -> dict[str, Any]:
    return {
        "revenue": source.get_total_revenue,
        "operating_expenditure": source.get_operating_expenditure,
        "capital_expenditure": source.get_capital_expenditure,
        "debt": source.get_total_debt,
        "audit_outcome": source.get_audit_outcome,
    }


async def fetch_missing_metrics(
    source: FinancialDataSource,
    municipality_id: str,
    year: int,
    cached: Optional[FinancialData] = None,
) -> dict[str, Any]:
    """Merge cached metrics with upstream values for whichever are missing.

    Fetches run concurrently. A failed fetch is logged and leaves the metric
    absent.
    """
    metrics: dict[str, Any] = {
        field: getattr(cached, field) if cached is not None else None
        for field in METRIC_FIELDS
    }
    missing = [field for field in METRIC_FIELDS if metrics[field] is None]
    if not missing:
        return metrics

    logger.info("Fetching %s for %s %s from %s", ", ".join(missing), municipality_id, year, source.provider_name)
    fetchers = _fetchers(source)
    results = await asyncio.gather(
        *(fetchers[field](municipality_id, year) for field in missing),
        return_exceptions=True,
    )
    for field, result in zip(missing, results):
        if isinstance(result, Exception):
            logger.error("Failed to fetch %s for %s %s: %s", field, municipality_id, year, result)
            continue
        metrics[field] = result

    for field in AMOUNT_FIELDS:
        metrics[field] = sanitize_amount(field, metrics[field], municipality_id)
    return metrics


# ── Serialisation ───────────────────────────────────────────

def financial_record(year: int, metrics: dict[str, Any], scores: dict[str, Any]) -> dict[str, Any]:
    classification = classify_audit_outcome(metrics.get("audit_outcome"))
    record: dict[str, Any] = {"year": year}
    for field in METRIC_FIELDS:
        record[field] = metrics.get(field)
    record["audit_category"] = classification.category.value
    for field in SCORE_FIELDS:
        record[field] = scores.get(field)
    return record


def record_from_row(row: FinancialData) -> dict[str, Any]:
    return financial_record(
        row.year,
        {field: getattr(row, field) for field in METRIC_FIELDS},
        {field: getattr(row, field) for field in SCORE_FIELDS},
    )


def municipality_base(municipality: Municipality) -> dict[str, Any]:
    return {
        "id": municipality.id,
        "name": municipality.name,
        "province": municipality.province,
        "population": municipality.population,
        "classification": municipality.classification,
        "address": municipality.address,
        "website": municipality.website,
        "phone": municipality.phone,
        "district_id": municipality.district_id,
        "district_name": municipality.district_name,
    }


# ── Detail flow ─────────────────────────────────────────────

def _is_fresh(cached: Optional[FinancialData]) -> bool:
    return cached is not None and cached.is_complete and cached.overall_score is not None


async def refresh_financial_year(
    db: AsyncSession,
    source: FinancialDataSource,
    municipality: Municipality,
    year: int,
) -> dict[str, Any]:
    """Return the scored record for one year, fetching and caching as needed."""
    cached = await get_cached_financials(db, municipality.id, year)
    if _is_fresh(cached):
        return record_from_row(cached)

    metrics = await fetch_missing_metrics(source, municipality.id, year, cached)
    breakdown: ScoreBreakdown = calculate_financial_score(
        build_scoring_input(metrics, municipality.usable_population)
    )

    try:
        await upsert_financial_record(db, municipality.id, year, metrics, breakdown)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        await log_error_standalone(
            exc,
            module="services.municipalities",
            function_name="refresh_financial_year",
            municipality_id=municipality.id,
            financial_year=year,
        )

    return financial_record(year, metrics, breakdown.as_dict())


async def get_municipality_detail(
    db: AsyncSession,
    source: FinancialDataSource,
    municipality_id: str,
    year: int,
) -> Optional[dict[str, Any]]:
    """Full detail view for one municipality, or None when it does not exist."""
    municipality = await get_municipality(db, municipality_id)
    if municipality is None:
        return None

    geometry = await get_municipality_geometry(db, municipality_id)
    record = await refresh_financial_year(db, source, municipality, year)

    detail = municipality_base(municipality)
    detail["geometry"] = geometry
    detail["financials"] = [record]
    return detail


async def get_financial_history(db: AsyncSession, municipality_id: str) -> Optional[list[dict[str, Any]]]:
    """All cached years for a municipality, newest first; None when unknown."""
    municipality = await get_municipality(db, municipality_id)
    if municipality is None:
        return None
    rows = await get_all_financial_years(db, municipality_id)
    return [record_from_row(row) for row in rows]
